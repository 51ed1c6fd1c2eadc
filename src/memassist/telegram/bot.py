"""Telegram bot integration for memassist."""

import logging

from telegram import Update
from telegram.error import TelegramError
from telegram.ext import (
    Application,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from ..agent import FAILURE_NOTICE
from ..app import Assistant
from ..errors import ConfigError
from .formatter import (
    build_file_prompt,
    file_history_text,
    format_facts,
    is_text_file,
    split_message,
)

logger = logging.getLogger(__name__)

UNAUTHORIZED_MESSAGE = "Unauthorized."
FILE_NOT_TEXT_MESSAGE = "Could not read file as text."

WELCOME_MESSAGE = """Personal knowledge assistant

I remember facts about you, keep the documents you send me, and track the people, projects and technologies they mention.

Model: {model}
API keys configured: {key_count}

Send /help to see the commands."""

HELP_MESSAGE = """Commands:
/start - Show assistant info
/help - Show this message
/new - Start a new conversation (saved facts and documents are kept)
/memory - List saved facts

Anything else you write goes to the assistant. Ask it to remember something, save a note, or search what it knows.

You can also send a text or code file, with an optional caption saying what to do with it."""


class TelegramBot:
    """Telegram bot for memassist."""

    def __init__(self, assistant: Assistant, token: str | None = None) -> None:
        self.assistant = assistant
        self.token = token or assistant.settings.telegram_token
        if not self.token:
            raise ConfigError("TELEGRAM_BOT_TOKEN not set")
        self._app: Application | None = None

    def _authorize(self, update: Update) -> int | None:
        """Return the sender's user id, or None if they are not allowed."""
        user = update.effective_user
        if user is None or not self.assistant.settings.is_allowed(user.id):
            logger.warning("Rejected message from user %s", user.id if user else None)
            return None
        return user.id

    async def _reply(self, update: Update, text: str) -> None:
        assert update.message is not None
        for chunk in split_message(text):
            await update.message.reply_text(chunk)

    async def _handle_start(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle /start command."""
        if self._authorize(update) is None:
            await self._reply(update, UNAUTHORIZED_MESSAGE)
            return

        await self._reply(
            update,
            WELCOME_MESSAGE.format(
                model=self.assistant.settings.model,
                key_count=len(self.assistant.keys),
            ),
        )

    async def _handle_help(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle /help command."""
        if self._authorize(update) is None:
            await self._reply(update, UNAUTHORIZED_MESSAGE)
            return
        await self._reply(update, HELP_MESSAGE)

    async def _handle_new(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle /new command."""
        user_id = self._authorize(update)
        if user_id is None:
            await self._reply(update, UNAUTHORIZED_MESSAGE)
            return

        await self.assistant.sessions.start_new_conversation(user_id)
        await self._reply(update, "Started a new conversation. Saved facts and documents are kept.")

    async def _handle_memory(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle /memory command."""
        user_id = self._authorize(update)
        if user_id is None:
            await self._reply(update, UNAUTHORIZED_MESSAGE)
            return
        await self._reply(update, format_facts(self.assistant.store.list_facts(user_id)))

    async def _handle_message(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle incoming messages."""
        assert update.message is not None
        user_id = self._authorize(update)
        if user_id is None:
            await self._reply(update, UNAUTHORIZED_MESSAGE)
            return

        text = update.message.text or ""
        if not text.strip():
            return

        await self._run_agent(update, user_id, text)

    async def _handle_document(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle an uploaded file by passing its text to the agent."""
        assert update.message is not None
        user_id = self._authorize(update)
        if user_id is None:
            await self._reply(update, UNAUTHORIZED_MESSAGE)
            return

        document = update.message.document
        if document is None:
            return

        file_name = document.file_name or "unknown"
        mime_type = document.mime_type or ""
        if not is_text_file(file_name, mime_type):
            await self._reply(
                update,
                f"Unsupported file type: {mime_type or 'unknown'}\nSupported: text files and code",
            )
            return

        try:
            telegram_file = await document.get_file()
            data = await telegram_file.download_as_bytearray()
        except TelegramError as e:
            logger.warning("Download of %s failed: %s", file_name, e)
            await self._reply(update, "Could not download the file.")
            return

        try:
            content = bytes(data).decode("utf-8")
        except UnicodeDecodeError:
            await self._reply(update, FILE_NOT_TEXT_MESSAGE)
            return

        caption = update.message.caption or ""
        await self._run_agent(
            update,
            user_id,
            build_file_prompt(file_name, content, caption),
            history_text=file_history_text(file_name, caption),
        )

    async def _run_agent(
        self, update: Update, user_id: int, text: str, history_text: str | None = None
    ) -> None:
        assert update.message is not None
        try:
            await update.message.chat.send_action("typing")
            result = await self.assistant.agent.handle_message(
                user_id, text, history_text=history_text
            )
        except Exception as e:
            logger.exception("Error processing message")
            self.assistant.event_log.log("error", user_id=user_id, error=type(e).__name__)
            await self._reply(update, FAILURE_NOTICE)
            return

        await self._reply(update, result.response or FAILURE_NOTICE)

    def build_app(self) -> Application:
        """Build the Telegram application."""
        self._app = Application.builder().token(self.token).concurrent_updates(True).build()

        self._app.add_handler(CommandHandler("start", self._handle_start))
        self._app.add_handler(CommandHandler("help", self._handle_help))
        self._app.add_handler(CommandHandler("new", self._handle_new))
        self._app.add_handler(CommandHandler("memory", self._handle_memory))
        self._app.add_handler(
            MessageHandler(filters.TEXT & ~filters.COMMAND, self._handle_message)
        )
        self._app.add_handler(MessageHandler(filters.Document.ALL, self._handle_document))

        return self._app

    def run(self) -> None:
        """Run the bot (blocking)."""
        app = self.build_app()

        logger.info("Starting Telegram bot...")
        try:
            app.run_polling()
        finally:
            self.assistant.close()
