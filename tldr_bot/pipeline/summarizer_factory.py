"""Build per-group summarizers from stored credentials."""

import logging
from typing import Callable

from ..ai.gemini_client import GeminiClient
from ..ai.summarizer import ChatSummarizer
from ..database.secrets import SecretCodec
from .models import GroupDisabledError, GroupNotConfiguredError

logger = logging.getLogger(__name__)


class SummarizerFactory:
    """Creates a ChatSummarizer bound to a group's own API key."""

    def __init__(
        self,
        secret_codec: SecretCodec,
        client_factory: Callable[[str], object] = GeminiClient,
        summarizer_factory: Callable[[object], ChatSummarizer] = ChatSummarizer
    ):
        """Initialize the factory.

        Args:
            secret_codec: Resolves GroupConfig.api_key_secret_ref to a key
            client_factory: Builds a generation client from an API key
            summarizer_factory: Builds a summarizer around a client
        """
        self.secret_codec = secret_codec
        self.client_factory = client_factory
        self.summarizer_factory = summarizer_factory

    def for_group(self, group) -> ChatSummarizer:
        """Create a summarizer for an active group.

        Raises:
            GroupNotConfiguredError: Group is missing or pending
            GroupDisabledError: Group is disabled
        """
        if group is None or group.is_pending:
            raise GroupNotConfiguredError()
        if not group.enabled:
            raise GroupDisabledError()

        api_key = self.secret_codec.reveal(group.api_key_secret_ref)
        return self.summarizer_factory(self.client_factory(api_key))
