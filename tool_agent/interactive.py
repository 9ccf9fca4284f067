#!/usr/bin/env python3
"""
Tool Agent Interactive CLI

A command-line interface for chatting with the tool agent, approving tool
calls, and saving or restoring conversations.
"""

import argparse
import asyncio
import json
import logging
import sys
import uuid
from typing import Any, Coroutine, Optional

from .config import Config
from .config_loader import get_app_config, load_config
from .errors import ApprovalStateError, StoreFailure
from .messages import Role, ToolCall, pending_tool_calls
from .orchestration import OrchestrationLoop, TurnResult
from .tracing import create_tracing_client

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity level."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


HELP_TEXT = """
Available commands:
  /help               - Show this help message
  /tools              - List available tools
  /history            - Show the current session history
  /session <id>       - Switch to another session
  /approve            - Run the tool calls awaiting approval
  /reject             - Reject the tool calls awaiting approval
  /checkpoint <file>  - Save the current session to a JSON file
  /restore <file>     - Load a session from a JSON file
  /quit               - Exit the CLI
"""


def print_banner(session_id: str) -> None:
    """Print the welcome banner."""
    print(
        """
╔════════════════════════════════════════════════════════════════╗
║                      Tool Agent Interactive                     ║
║                                                                 ║
║  Crypto prices, weather, PDFs, math and web search via tools    ║
╚════════════════════════════════════════════════════════════════╝"""
    )
    print(HELP_TEXT)
    print(f"Session: {session_id}")
    print("Type your questions below.\n")


def format_tool_call(call: ToolCall) -> str:
    return f"{call.name}({json.dumps(call.arguments)})"


def print_pending(calls: list[ToolCall]) -> None:
    print("\nThe agent wants to run:")
    for call in calls:
        print(f"  - {format_tool_call(call)}")
    print("Use /approve or /reject (or send a new message to reject).\n")


class InteractiveCLI:
    """Interactive REPL driving one orchestration loop."""

    def __init__(
        self,
        loop: OrchestrationLoop,
        session_id: str,
        json_output: bool = False,
    ):
        self.loop = loop
        self.session_id = session_id
        self.json_output = json_output
        self._event_loop = asyncio.new_event_loop()
        self._streamed = False

    def _run(self, coro: Coroutine[Any, Any, Any]) -> Any:
        """Run a coroutine; Ctrl+C cancels it cleanly before re-raising."""
        task = self._event_loop.create_task(coro)
        try:
            return self._event_loop.run_until_complete(task)
        except KeyboardInterrupt:
            task.cancel()
            self._event_loop.run_until_complete(asyncio.gather(task, return_exceptions=True))
            raise

    def _on_token(self, token: str) -> None:
        if self.json_output:
            return
        if not self._streamed:
            print()
            self._streamed = True
        print(token, end="", flush=True)

    def show_result(self, result: TurnResult) -> None:
        if self.json_output:
            print(json.dumps(result.to_dict(), indent=2))
            return
        if result.awaiting_approval:
            if self._streamed:
                print()
            print_pending(result.pending_tool_calls)
            return
        if self._streamed:
            # The answer was already printed token by token.
            print("\n")
        else:
            print(f"\n{result.answer}\n")

    def ask(self, text: str) -> None:
        self._streamed = False
        result = self._run(self.loop.run_turn(self.session_id, text, on_token=self._on_token))
        self.show_result(result)

    def approve(self, approved: bool) -> None:
        self._streamed = False
        try:
            result = self._run(
                self.loop.resume(self.session_id, approved, on_token=self._on_token)
            )
        except ApprovalStateError:
            print("\nNothing is awaiting approval.\n")
            return
        self.show_result(result)

    def print_tools(self) -> None:
        print("\nAvailable Tools:")
        print("─" * 64)
        print(self.loop.registry.get_tools_summary())
        print()

    def print_history(self) -> None:
        session = self._run(self.loop.store.get(self.session_id))
        print("\n" + "═" * 70)
        print(f"SESSION {session.session_id}")
        print("═" * 70)
        for message in session.messages:
            if message.role == Role.ASSISTANT and message.tool_calls:
                calls = ", ".join(format_tool_call(c) for c in message.tool_calls)
                print(f"[assistant] -> {calls}")
            elif message.role == Role.TOOL:
                marker = " (error)" if message.is_error else ""
                content = message.content
                if len(content) > 200:
                    content = content[:200] + "..."
                print(f"[tool:{message.name}]{marker} {content}")
            else:
                print(f"[{message.role.value}] {message.content}")
        if session.awaiting_approval:
            print_pending(pending_tool_calls(session.messages))
        print()

    def checkpoint(self, path: str) -> None:
        snapshot = self._run(self.loop.store.checkpoint(self.session_id))
        with open(path, "w", encoding="utf-8") as f:
            json.dump(snapshot, f, indent=2, ensure_ascii=False)
        print(f"\nSession {self.session_id} saved to {path}\n")

    def restore(self, path: str) -> None:
        with open(path, encoding="utf-8") as f:
            snapshot = json.load(f)
        session_id = snapshot.get("session_id") or self.session_id
        session = self._run(self.loop.store.restore(session_id, snapshot))
        self.session_id = session_id
        print(f"\nRestored session {session_id} ({len(session.messages)} messages)\n")

    def handle_command(self, user_input: str) -> bool:
        """Handle a slash command. Returns False when the CLI should exit."""
        command, _, argument = user_input.partition(" ")
        command = command.lower()
        argument = argument.strip()

        if command in ("/quit", "/exit", "/q"):
            print("\nGoodbye!\n")
            return False
        if command in ("/help", "/h", "/?"):
            print(HELP_TEXT)
        elif command == "/tools":
            self.print_tools()
        elif command == "/history":
            self.print_history()
        elif command == "/session":
            if not argument:
                print(f"\nCurrent session: {self.session_id}\n")
            else:
                self.session_id = argument
                print(f"\nSwitched to session {argument}\n")
        elif command == "/approve":
            self.approve(True)
        elif command == "/reject":
            self.approve(False)
        elif command in ("/checkpoint", "/restore"):
            if not argument:
                print(f"\nUsage: {command} <file>\n")
            elif command == "/checkpoint":
                self.checkpoint(argument)
            else:
                self.restore(argument)
        else:
            print(f"\nUnknown command: {user_input}")
            print("Type /help for available commands.\n")
        return True

    def run(self) -> None:
        """Run the interactive CLI loop."""
        print_banner(self.session_id)

        while True:
            try:
                user_input = input(">>> ").strip()
                if not user_input:
                    continue
                if user_input.startswith("/"):
                    if not self.handle_command(user_input):
                        break
                else:
                    self.ask(user_input)
            except KeyboardInterrupt:
                print("\n\nInterrupted. Type /quit to exit.\n")
            except EOFError:
                print("\nGoodbye!\n")
                break
            except StoreFailure as e:
                print(f"\nSession store error: {e}\n")
            except (OSError, json.JSONDecodeError) as e:
                print(f"\nError: {e}\n")

    def close(self) -> None:
        """Release the model client and the event loop."""
        try:
            self._event_loop.run_until_complete(self.loop.close())
        finally:
            self._event_loop.close()


def build_loop(config: Config) -> OrchestrationLoop:
    tracing = create_tracing_client(config.langfuse)
    return OrchestrationLoop.from_config(config, tracing=tracing)


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Tool Agent Interactive CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                              # Start interactive mode
  %(prog)s -q "What is 2+3?"            # Run a single query
  %(prog)s --session demo --require-approval
""",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument("-q", "--query", type=str, help="Run a single query and exit")
    parser.add_argument(
        "--session", type=str, default=None, help="Session id to use (default: a new one)"
    )
    parser.add_argument(
        "--config", type=str, default=None, help="YAML configuration file (default: CONFIG_PATH, else environment)"
    )
    parser.add_argument(
        "--require-approval",
        action="store_true",
        help="Ask before running any tool call",
    )
    parser.add_argument(
        "--json", action="store_true", help="Output results as JSON (for scripting)"
    )
    args = parser.parse_args(argv)

    setup_logging(args.verbose)

    config = load_config(args.config) if args.config else get_app_config()
    if args.require_approval:
        config.loop.require_approval = True

    session_id = args.session or f"cli-{uuid.uuid4().hex[:8]}"
    cli = InteractiveCLI(build_loop(config), session_id, json_output=args.json)

    try:
        if args.query:
            cli.ask(args.query)
        else:
            cli.run()
    except StoreFailure as e:
        print(f"Session store error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return 130
    finally:
        cli.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
