"""CLI interface for momentum.

``momentum chat`` runs an interactive conversation that records every turn in
memory. The other subcommands inspect stored memory without calling the LLM.
"""

import argparse
import asyncio
import json
import os
import sys
import uuid
from pathlib import Path

import httpx
from groq import AsyncGroq

from .config import MemoryConfig, config_from_env
from .logging import configure_logger, get_logger
from .memory import MemoryManager, MemoryStore, Personality

BANNER = """
╔══════════════════════════════════════════╗
║           ⚡ momentum v0.1.0             ║
║     Motivational memory playground       ║
╚══════════════════════════════════════════╝

Commands:
  /exit, /quit  - Exit the CLI
  /context      - Show the memory context sent to the model
  /stats        - Show conversation statistics
  /reset        - Start over as a new user
  /help         - Show this help

Type your message and press Enter.
"""

PERSONALITY_PROMPTS = {
    Personality.LANA_CROFT: (
        "You are Lana Croft, a brilliant, adventurous strategist. You are "
        "curious, playful when appropriate, and you turn problems into puzzles."
    ),
    Personality.BAXTER_JORDAN: (
        "You are Baxter Jordan, a calm, grounded coach. You are warm and direct, "
        "and you help people take the next small step."
    ),
}


def create_groq_client() -> AsyncGroq:
    """Create a Groq client with bounded network timeouts."""
    return AsyncGroq(
        api_key=os.getenv("GROQ_API_KEY"),
        timeout=httpx.Timeout(30.0, connect=5.0),
        max_retries=1,
    )


def build_system_prompt(personality: Personality, memory_context: str) -> str:
    """Combine the personality prompt with the user's memory context."""
    return (
        f"{PERSONALITY_PROMPTS[personality]}\n\n"
        "Keep replies short enough to be spoken aloud (2-4 sentences).\n\n"
        f"{memory_context}"
    )


class CLI:
    """Interactive command-line chat backed by conversational memory."""

    def __init__(
        self,
        config: MemoryConfig | None = None,
        groq_client: AsyncGroq | None = None,
        memory: MemoryManager | None = None,
        user_id: str | None = None,
    ) -> None:
        self.config = config or config_from_env()
        self.client = groq_client or create_groq_client()
        self.logger = get_logger()
        self.memory = memory or MemoryManager.from_config(
            self.config, self.client, event_logger=self.logger
        )
        self.user_id = user_id or self._new_user_id()

    def _new_user_id(self) -> str:
        """Generate a new user ID."""
        return f"cli-{uuid.uuid4().hex[:8]}"

    def _reset(self) -> None:
        """Switch to a fresh user."""
        old_user_id = self.user_id
        self.user_id = self._new_user_id()
        self.logger.log("user_reset", user_id=self.user_id, old_user_id=old_user_id)
        print(f"\n✓ New user: {self.user_id}")

    def _format_response(self, response: str) -> str:
        """Format the assistant's response for display."""
        return "\n".join(["\n" + "─" * 40, response, "─" * 40])

    def _format_stats(self) -> str:
        stats = self.memory.get_stats(self.user_id)
        topics = ", ".join(f"{t} ({c})" for t, c in stats.most_common_topics) or "none"
        return (
            f"Conversations: {stats.total_conversations}\n"
            f"Streak: {stats.conversation_streak} day(s)\n"
            f"Facts known: {stats.total_facts}\n"
            f"Top topics: {topics}"
        )

    async def _process_message(self, message: str) -> None:
        """Send a message to the model and record the turn."""
        record = self.memory.get_or_create(self.user_id)
        personality = record.profile.preferred_personality
        system_prompt = build_system_prompt(
            personality, self.memory.format_context(self.user_id)
        )

        try:
            response = await self.client.chat.completions.create(
                model=self.config.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": message},
                ],
                temperature=0.8,
                max_tokens=200,
            )
        except Exception as e:
            print(f"\n❌ Error: {e}")
            self.logger.log("error", user_id=self.user_id, error=str(e))
            return

        reply = (response.choices[0].message.content or "").strip()
        print(self._format_response(reply))
        self.memory.record_turn(self.user_id, message, reply, personality=personality)

    async def _handle_command(self, command: str) -> bool:
        """Handle a special command. Returns True if should continue, False to exit."""
        cmd = command.lower().strip()

        if cmd in ("/exit", "/quit", "exit", "quit"):
            print("\n👋 Goodbye!")
            return False

        if cmd == "/context":
            print("\n" + self.memory.format_context(self.user_id))
            return True

        if cmd == "/stats":
            print("\n" + self._format_stats())
            return True

        if cmd == "/reset":
            self._reset()
            return True

        if cmd == "/help":
            print(BANNER)
            return True

        return True  # Unknown command, continue

    async def run(self) -> None:
        """Run the interactive CLI."""
        print(BANNER)
        print(f"User: {self.user_id}\n")

        self.memory.open()
        try:
            while True:
                try:
                    user_input = input("you> ").strip()

                    if not user_input:
                        continue

                    if user_input.startswith("/") or user_input.lower() in ("exit", "quit"):
                        if not await self._handle_command(user_input):
                            break
                        continue

                    await self._process_message(user_input)

                except (KeyboardInterrupt, EOFError):
                    print("\n👋 Goodbye!")
                    break
        finally:
            print("💾 Saving memory...")
            await self.memory.close()


async def run_cli(user_id: str | None = None) -> None:
    """Run the chat CLI with configuration from the environment."""
    configure_logger()

    if not os.getenv("GROQ_API_KEY"):
        print("❌ Error: GROQ_API_KEY environment variable not set")
        print("Please set it in your .env file or environment")
        return

    cli = CLI(user_id=user_id)
    await cli.run()


def _open_manager() -> MemoryManager:
    """Create a manager over the configured snapshot."""
    config = config_from_env()
    manager = MemoryManager(MemoryStore(config.data_path), config=config)
    manager.open()
    return manager


def cmd_context(args: argparse.Namespace) -> int:
    """Print the memory context for a user."""
    manager = _open_manager()
    print(manager.format_context(args.user_id))
    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    """Print conversation statistics for a user."""
    manager = _open_manager()
    if args.user_id not in manager.user_ids:
        print(f"Unknown user: {args.user_id}")
        return 1
    print(json.dumps(manager.get_stats(args.user_id).to_dict(), indent=2))
    return 0


def cmd_export(args: argparse.Namespace) -> int:
    """Export a user's memory as JSON."""
    manager = _open_manager()
    if args.user_id not in manager.user_ids:
        print(f"Unknown user: {args.user_id}")
        return 1
    data = json.dumps(manager.export_user(args.user_id), indent=2, ensure_ascii=False)
    if args.output:
        Path(args.output).write_text(data, encoding="utf-8")
        print(f"✓ Exported {args.user_id} to {args.output}")
    else:
        print(data)
    return 0


def cmd_import(args: argparse.Namespace) -> int:
    """Import a user's memory from an exported JSON file."""
    path = Path(args.file)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        print(f"Error reading {path}: {e}")
        return 1

    manager = _open_manager()
    try:
        manager.import_user(args.user_id, data)
    except ValueError as e:
        print(f"Error: {e}")
        return 1
    print(f"✓ Imported memory for {args.user_id}")
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for memory subcommands."""
    parser = argparse.ArgumentParser(
        prog="momentum",
        description="Inspect and manage conversational memory",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    chat_parser = subparsers.add_parser("chat", help="Chat interactively")
    chat_parser.add_argument("user_id", nargs="?", help="User to chat as")

    context_parser = subparsers.add_parser("context", help="Show a user's memory context")
    context_parser.add_argument("user_id", help="User identifier")
    context_parser.set_defaults(func=cmd_context)

    stats_parser = subparsers.add_parser("stats", help="Show a user's statistics")
    stats_parser.add_argument("user_id", help="User identifier")
    stats_parser.set_defaults(func=cmd_stats)

    export_parser = subparsers.add_parser("export", help="Export a user's memory")
    export_parser.add_argument("user_id", help="User identifier")
    export_parser.add_argument("-o", "--output", help="Write to this file instead of stdout")
    export_parser.set_defaults(func=cmd_export)

    import_parser = subparsers.add_parser("import", help="Import a user's memory")
    import_parser.add_argument("user_id", help="User identifier")
    import_parser.add_argument("file", help="Exported JSON file")
    import_parser.set_defaults(func=cmd_import)

    return parser


def run_memory_cli(argv: list[str] | None = None) -> int:
    """Run the memory CLI.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:]).

    Returns:
        Exit code (0 for success).
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None or args.command == "chat":
        asyncio.run(run_cli(getattr(args, "user_id", None)))
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(run_memory_cli())
