"""CLI interface for memassist."""

from .agent import FAILURE_NOTICE, StopReason
from .app import Assistant
from .config import Settings
from .errors import ConfigError
from .logging import configure_logging
from .telegram.formatter import format_facts

CLI_USER_ID = 0

BANNER = """
+------------------------------------------+
|              memassist                   |
|    Personal knowledge assistant          |
+------------------------------------------+

Commands:
  /new          - Start a new conversation
  /memory       - List saved facts
  /help         - Show this help
  /exit, /quit  - Exit the CLI

Type your message and press Enter.
"""


class CLI:
    """Interactive command-line interface for memassist."""

    def __init__(self, assistant: Assistant, user_id: int = CLI_USER_ID) -> None:
        self.assistant = assistant
        self.user_id = user_id

    def _format_response(self, response: str, stop_reason: StopReason, turns: int) -> str:
        """Format the agent's response for display."""
        output = ["\n" + "-" * 40]
        output.append(response)
        output.append("-" * 40)

        if stop_reason != StopReason.COMPLETE:
            output.append(f"Stopped: {stop_reason.value} (turns: {turns})")

        return "\n".join(output)

    async def _process_message(self, message: str) -> None:
        """Process a user message through the agent."""
        try:
            result = await self.assistant.agent.handle_message(self.user_id, message)
        except Exception as e:
            self.assistant.event_log.log("error", user_id=self.user_id, error=type(e).__name__)
            print(f"\n{FAILURE_NOTICE}")
            return

        print(self._format_response(result.response, result.stop_reason, result.turns))

    async def _handle_command(self, command: str) -> bool:
        """Handle a special command. Returns True if should continue, False to exit."""
        cmd = command.lower().strip()

        if cmd in ("/exit", "/quit", "exit", "quit"):
            print("\nGoodbye!")
            return False

        if cmd == "/new":
            session = await self.assistant.sessions.start_new_conversation(self.user_id)
            print(f"\nNew conversation started: {session.id}")
            return True

        if cmd == "/memory":
            print("\n" + format_facts(self.assistant.store.list_facts(self.user_id)))
            return True

        if cmd == "/help":
            print(BANNER)
            return True

        print(f"Unknown command: {command}. Type /help for the list.")
        return True

    async def run(self) -> None:
        """Run the interactive CLI."""
        print(BANNER)
        session = self.assistant.sessions.get_or_create_session(self.user_id)
        print(f"Session: {session.id}\n")

        try:
            while True:
                try:
                    user_input = input("you> ").strip()
                except (KeyboardInterrupt, EOFError):
                    print("\nGoodbye!")
                    break

                if not user_input:
                    continue

                if user_input.startswith("/") or user_input.lower() in ("exit", "quit"):
                    if not await self._handle_command(user_input):
                        break
                    continue

                await self._process_message(user_input)
        finally:
            self.assistant.close()


async def run_cli() -> None:
    """Run the CLI with configuration from the environment."""
    try:
        settings = Settings.from_env()
    except ConfigError as e:
        print(f"Error: {e}")
        print("Please set it in your .env file or environment")
        return

    configure_logging(settings.log_level)
    cli = CLI(Assistant.from_settings(settings))
    await cli.run()
