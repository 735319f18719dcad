"""tts-gateway - terminal front end for the TTS gateway.

Reads text from the command line, a file or stdin, drives the long-text
pipeline against the chosen provider and writes one merged audio file.
State (providers, chat transcript, history) lives in a local JSON file.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Optional, Sequence

from rich.console import Console
from rich.logging import RichHandler
from rich.style import Style
from rich.table import Table

from ..errors import TTSGatewayError
from ..schemas.tts import ProviderConfig
from ..services.tts.orchestrator import ChunkState, ProgressUpdate
from ..services.tts.provider_client import TTSProviderClient
from ..services.tts.text_cleaner import CleaningOptions
from .controller import DEFAULT_SERVER_URL, TTSController
from .state import StateStore, default_state_path

# Styles
ASSISTANT_STYLE = Style(color="bright_green")
ERROR_STYLE = Style(color="red", bold=True)
INFO_STYLE = Style(color="cyan")
WARN_STYLE = Style(color="yellow")

DEFAULT_VOICES = {"edge": "zh-CN-XiaoxiaoNeural", "openai": "alloy"}


def _configure_logging(verbose: bool, console: Console) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )
    if not verbose:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)


def _progress_printer(console: Console):
    def _print(update: ProgressUpdate) -> None:
        style = {
            ChunkState.SUCCEEDED: INFO_STYLE,
            ChunkState.RETRYING: WARN_STYLE,
            ChunkState.FAILED: ERROR_STYLE,
        }.get(update.state, INFO_STYLE)
        console.print(f"[{update.percent:5.1f}%] {update.message}", style=style)

    return _print


def _read_text(args: argparse.Namespace) -> str:
    if args.file:
        return Path(args.file).read_text(encoding="utf-8")
    if args.text in (None, "-"):
        return sys.stdin.read()
    return args.text


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tts-gateway",
        description="Terminal client for the TTS gateway",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  tts-gateway speak "Hello there" --voice en-US-JennyNeural
  tts-gateway speak --file chapter1.txt --clean -o chapter1.mp3
  tts-gateway voices --provider oai-tts
  tts-gateway chat "Tell me a joke"

Environment Variables:
  TTS_GATEWAY_SERVER    Default server URL
  TTS_GATEWAY_STATE     Path of the local state file
""",
    )
    parser.add_argument(
        "--server",
        "-s",
        default=os.environ.get("TTS_GATEWAY_SERVER", DEFAULT_SERVER_URL),
        help=f"Gateway server URL (default: {DEFAULT_SERVER_URL})",
    )
    parser.add_argument(
        "--state",
        type=Path,
        default=None,
        help="State file (default: ~/.cache/tts-gateway/state.json or $TTS_GATEWAY_STATE)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    speak = sub.add_parser("speak", help="Synthesize text into one audio file")
    speak.add_argument("text", nargs="?", help="Text to speak; '-' or omitted reads stdin")
    speak.add_argument("--file", "-f", help="Read text from a file")
    speak.add_argument("--provider", "-p", default="edge-api")
    speak.add_argument("--voice", default=None)
    speak.add_argument("--rate", type=int, default=0)
    speak.add_argument("--pitch", type=int, default=0)
    speak.add_argument("--format", dest="audio_format", default="mp3")
    speak.add_argument("--instructions", default=None)
    speak.add_argument("--output", "-o", type=Path, default=None)
    speak.add_argument("--clean", action="store_true", help="Strip markdown, emoji, URLs and citations")
    speak.add_argument("--keep-line-breaks", action="store_true")
    speak.add_argument(
        "--remove", action="append", default=[], metavar="KEYWORD",
        help="Remove a keyword when cleaning (repeatable)",
    )

    preview = sub.add_parser("preview", help="Play a short sample of a voice")
    preview.add_argument("--provider", "-p", default="edge-api")
    preview.add_argument("--voice", default=None)
    preview.add_argument("--text", default=None)
    preview.add_argument("--output", "-o", type=Path, default=None)

    chat = sub.add_parser("chat", help="Ask the chat assistant")
    chat.add_argument("message", nargs="?", help="Message; omitted starts an interactive session")
    chat.add_argument("--clear", action="store_true", help="Clear the transcript first")

    voices = sub.add_parser("voices", help="List the voices of a provider")
    voices.add_argument("--provider", "-p", default="edge-api")
    voices.add_argument("--locale", "-l", default=None)

    providers = sub.add_parser("providers", help="Manage custom providers")
    providers_sub = providers.add_subparsers(dest="action", required=True)
    providers_sub.add_parser("list")
    add = providers_sub.add_parser("add")
    add.add_argument("id")
    add.add_argument("--name", default=None)
    add.add_argument("--endpoint", required=True)
    add.add_argument("--format", dest="wire_format", choices=["edge", "openai"], default="openai")
    add.add_argument("--api-key", default=None, help="Bearer token, or 'x-api-key:<value>'")
    add.add_argument("--model-endpoint", default=None)
    add.add_argument("--voice", dest="voices", action="append", default=[])
    add.add_argument("--max-segment", type=int, default=None)
    remove = providers_sub.add_parser("remove")
    remove.add_argument("id")

    history = sub.add_parser("history", help="Show or clear generation history")
    history_sub = history.add_subparsers(dest="action", required=True)
    history_sub.add_parser("list")
    history_sub.add_parser("clear")

    settings = sub.add_parser("settings", help="Update client settings")
    settings_sub = settings.add_subparsers(dest="section", required=True)
    chat_settings = settings_sub.add_parser("chat")
    chat_settings.add_argument("--api-url", default=None)
    chat_settings.add_argument("--api-key", default=None)
    chat_settings.add_argument("--model", default=None)
    chat_settings.add_argument("--system-prompt", default=None)
    chat_settings.add_argument("--temperature", type=float, default=None)
    chat_settings.add_argument("--max-tokens", type=int, default=None)

    mode = sub.add_parser("mode", help="Show or set the last-used mode")
    mode.add_argument("mode", nargs="?", choices=["chat", "tts"])

    sub.add_parser("serve", help="Run the gateway server")

    return parser


class GatewayCLI:
    """Dispatches parsed arguments to the controller and renders results."""

    def __init__(self, controller: TTSController, console: Optional[Console] = None):
        self.controller = controller
        self.console = console or Console()

    def _voice_for(self, provider_id: str, voice: Optional[str]) -> str:
        if voice:
            return voice
        provider = self.controller.get_provider(provider_id)
        if provider.voices:
            return provider.voices[0]
        return DEFAULT_VOICES[provider.wire_format]

    async def speak(self, args: argparse.Namespace) -> None:
        cleaning = None
        if args.clean:
            cleaning = CleaningOptions(
                remove_line_breaks=not args.keep_line_breaks,
                custom_keywords=list(args.remove),
            )
        elif args.remove:
            # Keywords alone do not switch on the other cleaners
            cleaning = CleaningOptions(
                remove_markdown=False,
                remove_emoji=False,
                remove_urls=False,
                remove_line_breaks=False,
                remove_citations=False,
                custom_keywords=list(args.remove),
            )

        self.controller.set_mode("tts")
        result = await self.controller.speak(
            _read_text(args),
            provider_id=args.provider,
            voice=self._voice_for(args.provider, args.voice),
            rate=args.rate,
            pitch=args.pitch,
            audio_format=args.audio_format,
            instructions=args.instructions,
            cleaning=cleaning,
            output=args.output,
        )
        failed = result.assembled.failed_indices
        if failed:
            skipped = ", ".join(str(index + 1) for index in failed)
            self.console.print(f"Skipped failed chunk(s): {skipped}", style=WARN_STYLE)
        self.console.print(
            f"Request #{result.request_number}: wrote {result.size_bytes} bytes "
            f"({result.chunk_count} chunk(s)) to {result.path}",
            style=INFO_STYLE,
        )

    async def preview(self, args: argparse.Namespace) -> None:
        path = await self.controller.preview(
            provider_id=args.provider,
            voice=self._voice_for(args.provider, args.voice),
            text=args.text,
            output=args.output,
        )
        self.console.print(f"Preview saved to {path}", style=INFO_STYLE)

    async def chat(self, args: argparse.Namespace) -> None:
        if args.clear:
            self.controller.clear_chat()
            self.console.print("Chat history cleared.", style=INFO_STYLE)
        self.controller.set_mode("chat")

        if args.message:
            answer = await self.controller.chat(args.message)
            self.console.print(answer, style=ASSISTANT_STYLE)
            return

        self.console.print("[dim]Empty line or Ctrl-D to quit.[/dim]")
        while True:
            try:
                message = self.console.input("[bold bright_blue]You:[/] ")
            except EOFError:
                break
            if not message.strip():
                break
            try:
                answer = await self.controller.chat(message)
            except TTSGatewayError as exc:
                self.console.print(f"Error: {exc}", style=ERROR_STYLE)
                continue
            self.console.print(answer, style=ASSISTANT_STYLE)

    async def voices(self, args: argparse.Namespace) -> None:
        voices = await self.controller.voices(args.provider, locale=args.locale)
        table = Table(title=f"Voices for {args.provider}")
        table.add_column("Voice ID")
        table.add_column("Label")
        for voice_id, label in voices.items():
            table.add_row(voice_id, label)
        self.console.print(table)

    def providers(self, args: argparse.Namespace) -> None:
        if args.action == "add":
            provider = self.controller.save_provider(
                ProviderConfig(
                    id=args.id,
                    name=args.name or args.id,
                    wire_format=args.wire_format,
                    endpoint=args.endpoint,
                    api_key=args.api_key,
                    model_endpoint=args.model_endpoint,
                    voices=args.voices,
                    max_segment=args.max_segment,
                )
            )
            self.console.print(f"Saved provider {provider.id}", style=INFO_STYLE)
            return
        if args.action == "remove":
            self.controller.delete_provider(args.id)
            self.console.print(f"Removed provider {args.id}", style=INFO_STYLE)
            return

        table = Table(title="Providers")
        for column in ("ID", "Name", "Format", "Endpoint", "Custom"):
            table.add_column(column)
        for provider in self.controller.list_providers().values():
            table.add_row(
                provider.id,
                provider.name,
                provider.wire_format,
                provider.endpoint,
                "yes" if provider.custom else "",
            )
        self.console.print(table)

    def history(self, args: argparse.Namespace) -> None:
        if args.action == "clear":
            self.controller.clear_history()
            self.console.print("History cleared.", style=INFO_STYLE)
            return

        table = Table(title="Generation history")
        for column in ("Time", "Request", "Speaker", "Text", "Size", "File"):
            table.add_column(column)
        for entry in self.controller.history():
            table.add_row(
                entry.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
                entry.request_info,
                entry.speaker,
                entry.text,
                f"{entry.size_bytes / 1024:.1f} KB",
                entry.path or "",
            )
        self.console.print(table)

    def settings(self, args: argparse.Namespace) -> None:
        updated = self.controller.update_chat_settings(
            api_url=args.api_url,
            api_key=args.api_key,
            model=args.model,
            system_prompt=args.system_prompt,
            temperature=args.temperature,
            max_tokens=args.max_tokens,
        )
        self.console.print(
            f"Chat model {updated.model} at {updated.api_url} "
            f"(temperature {updated.temperature}, max tokens {updated.max_tokens})",
            style=INFO_STYLE,
        )

    def mode(self, args: argparse.Namespace) -> None:
        if args.mode:
            self.controller.set_mode(args.mode)
        self.console.print(f"Mode: {self.controller.state.last_mode}", style=INFO_STYLE)

    async def dispatch(self, args: argparse.Namespace) -> None:
        handler = getattr(self, args.command)
        try:
            result = handler(args)
            if asyncio.iscoroutine(result):
                await result
        finally:
            await TTSProviderClient.close_http_client()


def run(
    argv: Optional[Sequence[str]] = None,
    *,
    controller: Optional[TTSController] = None,
    console: Optional[Console] = None,
) -> int:
    """Parse ``argv`` and execute it; return the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)
    console = console or Console()
    _configure_logging(args.verbose, console)

    if args.command == "serve":
        from ..main import main as serve

        serve()
        return 0

    if controller is None:
        controller = TTSController(
            StateStore(args.state or default_state_path()),
            server_url=args.server,
            on_progress=_progress_printer(console),
        )

    cli = GatewayCLI(controller, console)
    try:
        asyncio.run(cli.dispatch(args))
    except TTSGatewayError as exc:
        console.print(f"Error: {exc}", style=ERROR_STYLE)
        return 1
    except (OSError, ValueError) as exc:
        console.print(f"Error: {exc}", style=ERROR_STYLE)
        return 1
    except KeyboardInterrupt:
        console.print("\nInterrupted.", style=WARN_STYLE)
        return 130
    return 0


def main() -> None:
    """CLI entry point."""
    sys.exit(run())


if __name__ == "__main__":
    main()
