#!/usr/bin/env python3
"""
slidechat Interactive CLI

A command-line chat that runs the streaming orchestration loop against the
configured model and renders events as they arrive.
"""

import argparse
import asyncio
import json
import logging
import sys
import uuid
from typing import Optional

from .config import get_config, get_llm_config
from .errors import SlideChatError
from .llm_call import LLMClient
from .models import AppConfig, ChatMessage, ToolContext
from .orchestration import (
    ChatOrchestrator,
    ErrorEvent,
    FinalMessageEvent,
    MessageEvent,
    ToolCallCompleteEvent,
    ToolCallErrorEvent,
    ToolCallStartEvent,
    ToolCallStepEvent,
)
from .prompts import build_system_prompt
from .tools import LocalDiskStore, TodoStore, ToolDispatcher, build_registry

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity level."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def print_banner() -> None:
    """Print the welcome banner."""
    banner = """
╔════════════════════════════════════════════════════════════════╗
║                     slidechat Interactive                       ║
║                                                                 ║
║  Slide assistant with todos, disk files, images and browsing   ║
╚════════════════════════════════════════════════════════════════╝

Available commands:
  /help     - Show this help message
  /tools    - List available tools
  /verbose  - Toggle verbose mode
  /clear    - Clear conversation history
  /quit     - Exit the CLI

Type your messages below.
"""
    print(banner)


def _short(value, limit: int = 200) -> str:
    text = value if isinstance(value, str) else json.dumps(value, ensure_ascii=False, default=str)
    return text if len(text) <= limit else text[:limit] + "..."


class InteractiveCLI:
    """Interactive chat session backed by the streaming orchestrator."""

    def __init__(
        self,
        app_config: AppConfig,
        verbose: bool = False,
        character_id: Optional[str] = None,
        model: Optional[str] = None,
    ):
        self.app_config = app_config
        self.verbose = verbose
        self.model = model
        self.session_id = str(uuid.uuid4())
        self.character_id = character_id
        self.history: list[ChatMessage] = []
        self.registry = build_registry(
            app_config,
            TodoStore(max_sessions=app_config.tools.todo.max_sessions),
            LocalDiskStore(app_config.tools.disk.root),
        )
        self.dispatcher = ToolDispatcher(self.registry)

    @property
    def context(self) -> ToolContext:
        return ToolContext(
            disk_id=self.session_id,
            session_id=self.session_id,
            character_id=self.character_id,
        )

    def print_tools(self) -> None:
        """Print available tools."""
        print("\nAvailable Tools:")
        print("─" * 64)
        if not self.app_config.tools.enabled:
            print("  (tools are disabled)")
        for i, schema in enumerate(self.registry.tool_schemas(), start=1):
            function = schema["function"]
            description = function["description"].split(". ")[0]
            print(f"{i}. {function['name'].ljust(20)} - {_short(description, 60)}")
        print()

    def toggle_verbose(self) -> None:
        """Toggle verbose mode."""
        self.verbose = not self.verbose
        logging.getLogger("slidechat").setLevel(logging.DEBUG if self.verbose else logging.WARNING)
        print(f"\nVerbose mode: {'ON' if self.verbose else 'OFF'}\n")

    def clear_history(self) -> None:
        """Clear the conversation and start a new session."""
        self.history = []
        self.session_id = str(uuid.uuid4())
        print("\nConversation history cleared.\n")

    def render(self, event) -> None:
        """Print one orchestration event."""
        if isinstance(event, MessageEvent):
            print(event.content, end="", flush=True)
        elif isinstance(event, ToolCallStartEvent):
            call = event.tool_call
            print(f"\n┌─ {call.name}({_short(call.arguments, 120)})", flush=True)
        elif isinstance(event, ToolCallStepEvent):
            if self.verbose:
                print(f"│  step: {_short(event.step)}", flush=True)
            else:
                print("│  ...", flush=True)
        elif isinstance(event, ToolCallCompleteEvent):
            print(f"└─ ok: {_short(event.tool_call.result)}\n", flush=True)
        elif isinstance(event, ToolCallErrorEvent):
            print(f"└─ error: {event.tool_call.error}\n", flush=True)
        elif isinstance(event, FinalMessageEvent):
            print()
            if event.ceiling_reached:
                print(f"\n{event.content}")
            count = len(event.tool_calls or [])
            print(f"\n(Completed with {count} tool call{'s' if count != 1 else ''})\n")
        elif isinstance(event, ErrorEvent):
            print(f"\nError: {event.error}\n")

    async def process_message(self, message: str) -> None:
        """Send one user message and stream the reply."""
        llm_client = LLMClient(get_llm_config(self.app_config, model=self.model))
        tools = self.registry.tool_schemas() if self.app_config.tools.enabled else []
        orchestrator = ChatOrchestrator(
            llm_client=llm_client,
            dispatcher=self.dispatcher,
            tools=tools,
            max_iterations=self.app_config.orchestrator.max_iterations,
            max_result_bytes=self.app_config.orchestrator.max_tool_result_bytes,
        )
        user_turn = ChatMessage(role="user", content=message)
        conversation = [
            ChatMessage(role="system", content=build_system_prompt()),
            *self.history,
            user_turn,
        ]

        print()
        try:
            async for event in orchestrator.stream(conversation, self.context):
                self.render(event)
                if isinstance(event, FinalMessageEvent):
                    self.history.extend([
                        user_turn,
                        ChatMessage(role="assistant", content=event.content),
                    ])
        finally:
            await llm_client.close()

    def run(self) -> None:
        """Run the interactive CLI loop."""
        print_banner()

        while True:
            try:
                user_input = input(">>> ").strip()

                if not user_input:
                    continue

                if user_input.startswith("/"):
                    command = user_input.lower()

                    if command in ("/quit", "/exit", "/q"):
                        print("\nGoodbye!\n")
                        break
                    elif command in ("/help", "/h", "/?"):
                        print_banner()
                    elif command == "/tools":
                        self.print_tools()
                    elif command == "/verbose":
                        self.toggle_verbose()
                    elif command == "/clear":
                        self.clear_history()
                    else:
                        print(f"\nUnknown command: {user_input}")
                        print("Type /help for available commands.\n")
                else:
                    try:
                        asyncio.run(self.process_message(user_input))
                    except SlideChatError as e:
                        print(f"\nError: {e}\n")

            except KeyboardInterrupt:
                print("\n\nType /quit to exit.\n")
            except EOFError:
                print("\nGoodbye!\n")
                break


async def run_single(app_config: AppConfig, message: str, model: Optional[str], character_id: Optional[str]) -> dict:
    """Run one message through the buffered loop and return a JSON-safe result."""
    cli = InteractiveCLI(app_config, character_id=character_id, model=model)
    llm_client = LLMClient(get_llm_config(app_config, model=model))
    orchestrator = ChatOrchestrator(
        llm_client=llm_client,
        dispatcher=cli.dispatcher,
        tools=cli.registry.tool_schemas() if app_config.tools.enabled else [],
        max_iterations=app_config.orchestrator.max_iterations,
        max_result_bytes=app_config.orchestrator.max_tool_result_bytes,
    )
    conversation = [
        ChatMessage(role="system", content=build_system_prompt()),
        ChatMessage(role="user", content=message),
    ]
    try:
        result = await orchestrator.run(conversation, cli.context)
    finally:
        await llm_client.close()
    return {
        "message": result.message,
        "iterations": result.iterations,
        "ceiling_reached": result.ceiling_reached,
        "tool_calls": [call.to_payload() for call in result.tool_calls or []],
    }


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="slidechat Interactive CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                                  # Start interactive mode
  %(prog)s -v                               # Start with verbose logging
  %(prog)s -q "Outline a deck about tides"  # Run a single message

Use /tools in interactive mode to see available tools.
""",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument("-q", "--query", type=str, help="Run a single message and exit")
    parser.add_argument(
        "--model",
        type=str,
        default=None,
        help="Model override (default: from OPENAI_LLM_MODEL)",
    )
    parser.add_argument(
        "--character",
        type=str,
        default=None,
        help="Character id used for image generation references, e.g. character1",
    )
    parser.add_argument("--json", action="store_true", help="Output results as JSON (for scripting)")

    args = parser.parse_args()
    setup_logging(args.verbose)
    app_config = get_config()

    if args.query:
        try:
            output = asyncio.run(run_single(app_config, args.query, args.model, args.character))
        except SlideChatError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        if args.json:
            print(json.dumps(output, indent=2, ensure_ascii=False, default=str))
        else:
            print(output["message"])
        return

    cli = InteractiveCLI(app_config, verbose=args.verbose, character_id=args.character, model=args.model)
    cli.run()


if __name__ == "__main__":
    main()
