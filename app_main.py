"""Application entry point for the testing platform API."""

from __future__ import annotations

from quiz_platform.config import Settings
from quiz_platform.core.platform_manager import QuizPlatform
from quiz_platform.server.api_server import run_api_server
from quiz_platform.utils.logging_config import configure_logging


def main() -> None:
    """Initialize logging and settings, then serve the API."""
    settings = Settings()
    logger = configure_logging(settings.log_level)
    logger.info("Starting testing platform API on %s:%d", settings.host, settings.port)

    platform = QuizPlatform(settings=settings)
    platform.seed_operator_accounts()
    if not settings.operator_session_tokens:
        logger.warning("No operator tokens configured; set QUIZ_OPERATOR_TOKENS to sign in as an administrator.")

    try:
        run_api_server(platform, host=settings.host, port=settings.port, log_level=settings.log_level)
    finally:
        platform.shutdown()


if __name__ == "__main__":
    main()
