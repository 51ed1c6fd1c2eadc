"""memassist entry point."""

import asyncio
import sys

from dotenv import find_dotenv, load_dotenv

from .cli import run_cli


def run_bot() -> int:
    """Start the Telegram bot from environment configuration."""
    from .app import Assistant
    from .config import Settings
    from .errors import ConfigError
    from .logging import configure_logging
    from .telegram import TelegramBot

    try:
        settings = Settings.from_env()
        configure_logging(settings.log_level)
        assistant = Assistant.from_settings(settings)
        bot = TelegramBot(assistant)
    except ConfigError as e:
        print(f"Error: {e}")
        return 1

    bot.run()
    return 0


def main() -> None:
    """Main entry point."""
    load_dotenv(find_dotenv(usecwd=True))

    if len(sys.argv) > 1 and sys.argv[1] == "bot":
        sys.exit(run_bot())

    asyncio.run(run_cli())


if __name__ == "__main__":
    main()
