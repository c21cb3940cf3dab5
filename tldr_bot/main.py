"""Main entry point for TLDR Bot."""

import os
import logging
import re

import colorlog

# Telegram Bot API URLs embed the token: https://api.telegram.org/bot<id>:<secret>/getUpdates
_BOT_TOKEN_RE = re.compile(r'bot\d+:[A-Za-z0-9_-]+')

# Chatty third-party loggers; LIBRARY_LOG_LEVEL overrides their level
NOISY_LOGGERS = (
    'apscheduler',
    'httpx',
    'httpcore',
    'telegram',
    'telegram.ext',
    'google_genai',
)


class BotTokenFilter(logging.Filter):
    """Redact Telegram bot tokens from log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = _BOT_TOKEN_RE.sub('bot<redacted>', message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def setup_logging():
    """Set up colored logging with bot-token redaction."""
    log_level = os.getenv('LOG_LEVEL', 'INFO').upper()
    library_level = os.getenv('LIBRARY_LOG_LEVEL', 'WARNING').upper()

    formatter = colorlog.ColoredFormatter(
        '%(log_color)s%(asctime)s - %(name)s - %(levelname)s%(reset)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        log_colors={
            'DEBUG': 'cyan',
            'INFO': 'green',
            'WARNING': 'yellow',
            'ERROR': 'red',
            'CRITICAL': 'red,bg_white',
        }
    )

    # Filter on the handler so records propagated from library loggers are covered too
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    handler.addFilter(BotTokenFilter())

    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(getattr(logging, library_level))


def main():
    """Main entry point."""
    setup_logging()

    # Import CLI after logging is set up
    from .cli.commands import cli

    cli()


if __name__ == '__main__':
    main()
