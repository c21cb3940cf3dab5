"""Chat summarizer using Gemini - TLDR Bot.

Large message sets are summarized hierarchically: contiguous chunks are
summarized one after another, then a single merge request combines the
chunk summaries.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Sequence

from .errors import ChunkFailureError, classify_generation_error
from ..utils.message_utils import sender_label

logger = logging.getLogger(__name__)

NO_MESSAGES_TEXT = "No messages found in the specified time range."
EMPTY_RESPONSE_TEXT = "Generated summary (no text returned)"

MESSAGES_PLACEHOLDER = "{{messages}}"

# Sets larger than this are summarized in chunks
SINGLE_CHUNK_LIMIT = 1000
# Chunk size for hierarchical summarization (leaves room for prompt formatting)
CHUNK_SIZE = 900

STYLE_INSTRUCTIONS = {
    'detailed': (
        "Provide a detailed, comprehensive summary. Include all important points, "
        "context, and nuances. Keep the summary under 500 words."
    ),
    'brief': (
        "Provide a very brief summary. Focus only on the most critical points. "
        "Keep the summary under 150 words."
    ),
    'bullet': (
        "Provide a summary using bullet points. Each bullet should be concise and clear. "
        "Keep the summary under 300 words."
    ),
    'timeline': (
        "Provide a chronological summary, organizing events and discussions in the order "
        "they occurred. Keep the summary under 400 words."
    ),
    'default': (
        "Provide a concise, well-structured summary. Keep the summary under 300 words "
        "and use bullet points if helpful."
    ),
}


def get_style_instructions(style: Optional[str]) -> str:
    """Return the length/format guidance for a summary style."""
    return STYLE_INSTRUCTIONS.get(style or 'default', STYLE_INSTRUCTIONS['default'])


def chunk_messages(messages: Sequence, chunk_size: int = CHUNK_SIZE) -> List[Sequence]:
    """Split messages into contiguous chunks of at most chunk_size, keeping order."""
    return [messages[i:i + chunk_size] for i in range(0, len(messages), chunk_size)]


def format_messages(messages: Sequence) -> str:
    """Render messages as numbered "[sender]: content" lines for the prompt."""
    return "\n\n".join(
        f"{idx}. [{sender_label(msg)}]: {msg.content}"
        for idx, msg in enumerate(messages, start=1)
    )


class ChatSummarizer:
    """Generate summaries of group chat messages."""

    def __init__(
        self,
        generator,
        max_retries: int = 3,
        base_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        """Initialize chat summarizer.

        Args:
            generator: Object with `async generate(prompt) -> str` (GeminiClient)
            max_retries: Attempts per chunk before giving up
            base_delay: Backoff delay in seconds, doubled after each failed attempt
            sleep: Coroutine used for backoff (injectable for tests)
        """
        self.generator = generator
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._sleep = sleep

    async def summarize_messages(
        self,
        messages: Sequence,
        summary_style: str = 'default',
        custom_prompt: Optional[str] = None
    ) -> str:
        """Summarize an ordered message sequence of any size.

        Args:
            messages: Chronologically ordered messages (objects with content,
                username and display_name attributes)
            summary_style: One of default, detailed, brief, bullet, timeline
            custom_prompt: Optional template containing {{messages}}

        Returns:
            Summary text (never empty)

        Raises:
            SummarizationError: Classified generation failure
            ChunkFailureError: A chunk failed in the hierarchical path
        """
        if not messages:
            logger.info("No messages provided for summarization")
            return NO_MESSAGES_TEXT

        if len(messages) > SINGLE_CHUNK_LIMIT:
            return await self._summarize_large_message_set(messages, summary_style, custom_prompt)

        logger.info(f"Generating summary for {len(messages)} messages (style={summary_style})")
        return await self._summarize_chunk(messages, summary_style, custom_prompt)

    async def _summarize_large_message_set(
        self,
        messages: Sequence,
        summary_style: str,
        custom_prompt: Optional[str]
    ) -> str:
        """Summarize each chunk in order, then merge the chunk summaries."""
        total_messages = len(messages)
        chunks = chunk_messages(messages)

        logger.info(f"Summarizing {total_messages} messages in {len(chunks)} chunks...")

        chunk_summaries = []
        for index, chunk in enumerate(chunks, start=1):
            try:
                chunk_summary = await self._summarize_chunk(chunk, summary_style, custom_prompt)
            except Exception as e:
                logger.error(f"Chunk {index}/{len(chunks)} failed, aborting summary: {e}")
                raise ChunkFailureError(index, len(chunks), e) from e
            chunk_summaries.append(
                f"[Chunk {index}/{len(chunks)} - {len(chunk)} messages]:\n{chunk_summary}"
            )

        merged_summaries = "\n\n---\n\n".join(chunk_summaries)
        prompt = self._build_merge_prompt(merged_summaries, len(chunks), total_messages, summary_style)

        try:
            text = await self.generator.generate(prompt)
        except Exception as e:
            logger.error(f"Merge of {len(chunks)} chunk summaries failed, returning them unmerged: {e}")
            return f"Summary of {total_messages} messages:\n\n{merged_summaries}"

        return text or f"Summary of {total_messages} messages (processed in {len(chunks)} chunks)"

    async def _summarize_chunk(
        self,
        messages: Sequence,
        summary_style: str,
        custom_prompt: Optional[str]
    ) -> str:
        """Summarize one chunk, retrying with exponential backoff.

        Raises:
            SummarizationError: Classified failure after the last attempt
            Exception: Unrecognized failure after the last attempt, as raised
        """
        prompt = self._build_prompt(format_messages(messages), summary_style, custom_prompt)

        for attempt in range(self.max_retries):
            try:
                text = await self.generator.generate(prompt)
                return text or EMPTY_RESPONSE_TEXT
            except Exception as e:
                if attempt < self.max_retries - 1:
                    delay = self.base_delay * (2 ** attempt)
                    logger.warning(
                        f"Summary attempt {attempt + 1}/{self.max_retries} failed: {e}. "
                        f"Retrying in {delay:.1f}s"
                    )
                    await self._sleep(delay)
                    continue

                classified = classify_generation_error(e)
                if classified is None:
                    raise
                raise classified from e

        raise RuntimeError("Failed to generate summary after multiple retries.")

    def _build_prompt(self, formatted_messages: str, summary_style: str, custom_prompt: Optional[str]) -> str:
        """Build the prompt for one chunk."""
        if custom_prompt:
            if MESSAGES_PLACEHOLDER in custom_prompt:
                return custom_prompt.replace(MESSAGES_PLACEHOLDER, formatted_messages)
            return f"{custom_prompt}\n\nConversation:\n{formatted_messages}"

        return f"""You are a helpful assistant that summarizes Telegram group chat conversations.
{get_style_instructions(summary_style)}

Focus on:
- Main topics discussed
- Key decisions or conclusions
- Important announcements
- Ongoing questions or unresolved issues
- Skip greetings, emojis-only messages, and spam

IMPORTANT: Format your response using markdown:
- Use **bold** for important topics or section headers
- Use bullet points (* item) for lists
- Keep the summary clear and organized

Conversation:
{formatted_messages}

Summary:"""

    def _build_merge_prompt(
        self,
        merged_summaries: str,
        chunk_count: int,
        total_messages: int,
        summary_style: str
    ) -> str:
        """Build the prompt that merges chunk summaries into one."""
        return f"""You are a helpful assistant that creates a comprehensive summary from multiple partial summaries of a Telegram group chat.

{get_style_instructions(summary_style)}

You have received {chunk_count} partial summaries covering {total_messages} total messages. Please create a unified, coherent summary that:
- Combines all the important information from the partial summaries
- Removes any redundancy or duplication
- Maintains chronological order where relevant
- Highlights the most important topics, decisions, and announcements
- Preserves the key points from each partial summary

Partial Summaries:
{merged_summaries}

Unified Summary:"""
