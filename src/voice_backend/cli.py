#!/usr/bin/env python3
"""Voice Chat CLI - terminal client for the voice chat backend.

Shows the partial reply as soon as the server answers, then replaces it
when the poller delivers the completed reply. Audio is downloaded on
request with ``--save-audio``.
"""

from __future__ import annotations

import argparse
import asyncio
import os
from pathlib import Path
from typing import Any, Mapping, Optional

import httpx
from rich.console import Console
from rich.markdown import Markdown
from rich.prompt import Prompt
from rich.style import Style

from .client import ChatClientError, PendingReply, VoiceChatClient
from .services.tts.voices import SUPPORTED_LANGUAGES
from .utils.filenames import build_audio_filename

USER_STYLE = Style(color="bright_blue", bold=True)
ASSISTANT_STYLE = Style(color="bright_green")
ERROR_STYLE = Style(color="red", bold=True)
INFO_STYLE = Style(color="cyan")

HELP_TEXT = """
[bold]Commands[/bold]
  /help            Show this help
  /clear           Clear the conversation
  /voice <type>    Set voice type (female or male)
  /lang <code>     Set language (e.g. en-US, fr-FR)
  /say <text>      Speak text without asking the assistant
  /history         Show the conversation so far
  /quit            Exit
"""


class VoiceChatShell:
    """Terminal chat loop around `VoiceChatClient`."""

    def __init__(
        self,
        server_url: str,
        *,
        system_prompt: Optional[str] = None,
        voice_type: str = "female",
        language: str = "en-US",
        save_audio: Optional[Path] = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.console = Console()
        self.save_audio = save_audio
        self.running = True
        self.client = VoiceChatClient(
            server_url,
            system_prompt=system_prompt,
            voice_type=voice_type,
            language=language,
            http_client=http_client,
            on_delivered=self._on_delivered,
            on_abandoned=self._on_abandoned,
        )
        self._downloads: set[asyncio.Task[None]] = set()

    async def _check_health(self) -> bool:
        try:
            await self.client.health()
        except ChatClientError as exc:
            self.console.print(f"Cannot connect to backend: {exc.message}", style=ERROR_STYLE)
            return False
        self.console.print(f"[dim]Connected to {self.client.server_url}[/dim]")
        return True

    def _on_delivered(self, reply: PendingReply, payload: Mapping[str, Any]) -> None:
        message = reply.message
        if message is None:
            return
        self.console.print()
        self.console.print("[bold green]Assistant (complete)[/bold green]")
        self.console.print(Markdown(message.content), style=ASSISTANT_STYLE)
        for url in message.audio_playlist:
            self.console.print(f"[dim]audio: {url}[/dim]")
            self._schedule_download(url)

    def _on_abandoned(self, reply: PendingReply) -> None:
        # The partial reply stays on screen as the final answer
        self.console.print(f"[dim]No completion for {reply.stream_id[:8]}[/dim]")

    def _schedule_download(self, url: str) -> None:
        if self.save_audio is None:
            return
        task = asyncio.create_task(self._download(url))
        self._downloads.add(task)
        task.add_done_callback(self._downloads.discard)

    async def _download(self, url: str) -> None:
        if self.save_audio is None:
            return
        try:
            data = await self.client.fetch_audio(url)
        except ChatClientError as exc:
            self.console.print(f"[dim]Audio download failed: {exc.message}[/dim]")
            return
        self._write_audio(url.rsplit("/", 1)[-1], data)

    def _write_audio(self, filename: str, data: bytes) -> None:
        if self.save_audio is None:
            return
        self.save_audio.mkdir(parents=True, exist_ok=True)
        target = self.save_audio / filename
        target.write_bytes(data)
        self.console.print(f"[dim]saved {target}[/dim]")

    async def _speak(self, text: str) -> None:
        try:
            audio = await self.client.text_to_speech(text)
        except ChatClientError as exc:
            self.console.print(f"Speech failed: {exc.message}", style=ERROR_STYLE)
            return
        if self.save_audio is None:
            self.console.print(f"[dim]{len(audio)} bytes of audio (use --save-audio to keep)[/dim]")
            return
        self._write_audio(build_audio_filename("say"), audio)

    async def _send(self, text: str) -> None:
        try:
            message = await self.client.send(text)
        except ChatClientError as exc:
            self.console.print(
                f"Failed to get response from AI. Please try again. ({exc.message})",
                style=ERROR_STYLE,
            )
            return

        label = "Assistant (partial)" if message.partial else "Assistant"
        self.console.print(f"[bold green]{label}[/bold green]")
        self.console.print(Markdown(message.content), style=ASSISTANT_STYLE)
        if message.audio_url:
            self.console.print(f"[dim]audio: {message.audio_url}[/dim]")
            self._schedule_download(message.audio_url)

    async def _handle_command(self, command: str) -> None:
        name, _, arg = command.partition(" ")
        arg = arg.strip()
        if name in {"/quit", "/exit"}:
            self.running = False
        elif name == "/help":
            self.console.print(HELP_TEXT)
        elif name == "/clear":
            self.client.clear()
            self.console.print("Conversation cleared.", style=INFO_STYLE)
        elif name == "/voice" and arg:
            self.client.voice_settings["voiceType"] = arg
            self.console.print(f"Voice type set to {arg}", style=INFO_STYLE)
        elif name == "/lang" and arg:
            if arg not in SUPPORTED_LANGUAGES:
                self.console.print(
                    f"Unsupported language {arg}. Choose from: {', '.join(SUPPORTED_LANGUAGES)}",
                    style=ERROR_STYLE,
                )
                return
            self.client.voice_settings["language"] = arg
            self.console.print(f"Language set to {arg}", style=INFO_STYLE)
        elif name == "/say" and arg:
            await self._speak(arg)
        elif name == "/history":
            for message in self.client.conversation:
                style = USER_STYLE if message.role == "user" else ASSISTANT_STYLE
                marker = " (partial)" if message.partial else ""
                self.console.print(f"{message.role}{marker}: {message.content}", style=style)
        else:
            self.console.print(f"Unknown command: {command}", style=ERROR_STYLE)

    async def run(self) -> None:
        if not await self._check_health():
            await self.client.aclose()
            return

        self.console.print()
        self.console.print(
            "[bold]Voice Chat[/bold] - Type /help for commands, Ctrl+D to exit",
            style=INFO_STYLE,
        )
        self.console.print()

        try:
            while self.running:
                try:
                    # Prompt in a thread so the poller keeps running while typing
                    user_input = await asyncio.to_thread(
                        Prompt.ask, "[bold blue]You[/bold blue]", console=self.console
                    )
                except EOFError:
                    self.console.print("\n[dim]Goodbye![/dim]")
                    break
                if not user_input.strip():
                    continue
                if user_input.startswith("/"):
                    await self._handle_command(user_input)
                    continue
                await self._send(user_input.strip())
        finally:
            await self.client.poller.wait_idle()
            if self._downloads:
                await asyncio.gather(*self._downloads, return_exceptions=True)
            await self.client.aclose()


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Voice Chat - terminal client for the voice chat backend",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  voice-chat                              Connect to localhost:8000
  voice-chat --server http://pi:8000      Connect to remote server
  voice-chat --save-audio ./replies       Download reply audio

Environment Variables:
  VOICE_CHAT_SERVER    Default server URL
""",
    )
    parser.add_argument(
        "--server",
        "-s",
        default=os.environ.get("VOICE_CHAT_SERVER", "http://localhost:8000"),
        help="Backend server URL (default: http://localhost:8000)",
    )
    parser.add_argument("--system-prompt", default=None, help="System instruction for the assistant")
    parser.add_argument("--voice", default="female", help="Voice type: female or male")
    parser.add_argument("--language", default="en-US", help="Voice language, e.g. en-US")
    parser.add_argument(
        "--save-audio",
        type=Path,
        default=None,
        help="Directory to download reply audio into",
    )

    args = parser.parse_args()

    shell = VoiceChatShell(
        args.server,
        system_prompt=args.system_prompt,
        voice_type=args.voice,
        language=args.language,
        save_audio=args.save_audio,
    )
    try:
        asyncio.run(shell.run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
