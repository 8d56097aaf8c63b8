#!/usr/bin/env python3
"""
Interactive Console UI
======================

Terminal surface of the menu assistant, built on rich:
- a transient status line that is written and then erased
- a character-by-character "typing" effect for the AI's reasoning
- single-choice, yes/no and free-text prompts

Prompts block on stdin, so they run in the default executor and the event
loop suspends at input like it does at network I/O. Tests replace this class
with a scripted fake exposing the same methods.
"""

import asyncio
import functools
from typing import Callable, List, Optional, TypeVar, Union

from rich.console import Console
from rich.control import Control, ControlType
from rich.markup import escape
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.text import Text

from config import TYPING_DELAY_MS

T = TypeVar("T")

AI_PREFIX = " 𝔞𝔦 "


class ConsoleUI:
    """
    Rich terminal UI for the menu assistant.

    Args:
        console: Console to draw on (default: a new stdout console)
        typing_delay_ms: Delay between characters of type_out()
    """

    def __init__(self, console: Optional[Console] = None, typing_delay_ms: int = TYPING_DELAY_MS):
        self.console = console or Console(highlight=False)
        self.typing_delay_ms = typing_delay_ms

    # -------------------------------------------------------------------------
    # Output
    # -------------------------------------------------------------------------

    def status(self, text: str) -> None:
        """Replace the transient status line with `text`."""
        if not self.console.is_terminal:
            return
        self.clear_status()
        self.console.print(Text(text), end="\r", soft_wrap=True)

    def clear_status(self) -> None:
        if not self.console.is_terminal:
            return
        self.console.control(Control.move_to_column(0), Control((ControlType.ERASE_IN_LINE, 2)))

    def say(self, text: Union[str, Text] = "") -> None:
        """Print a line. Strings may use rich markup."""
        self.console.print(text)

    def error(self, text: str) -> None:
        self.clear_status()
        self.console.print(f"[bold red]Error:[/bold red] {escape(text)}")

    async def type_out(self, text: Union[str, Text], delay_ms: Optional[int] = None) -> None:
        """Print `text` one character at a time, then end the line."""
        delay = (self.typing_delay_ms if delay_ms is None else delay_ms) / 1000
        rendered = text if isinstance(text, Text) else Text(text)
        for i in range(len(rendered)):
            self.console.print(rendered[i:i + 1], end="", soft_wrap=True)
            if delay:
                await asyncio.sleep(delay)
        self.console.print()

    async def ai_says(self, text: str, title: Optional[str] = None) -> None:
        """Type out an AI remark, optionally led by a bold title."""
        line = Text(AI_PREFIX)
        if title:
            line.append(title, style="bold")
            line.append(" ")
        line.append(text)
        await self.type_out(line)

    # -------------------------------------------------------------------------
    # Prompts
    # -------------------------------------------------------------------------

    async def _blocking(self, fn: Callable[..., T], *args, **kwargs) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(fn, *args, **kwargs))

    async def select(self, prompt: str, choices: List[str], default: int = 0) -> int:
        """
        Single-choice prompt.

        Returns:
            Index into `choices`; `default` is pre-selected
        """
        self.clear_status()
        self.console.print(f"[bold cyan]?[/bold cyan] [bold]{escape(prompt)}[/bold]")
        for i, choice in enumerate(choices):
            marker = "❯" if i == default else " "
            self.console.print(f"  {marker} {i + 1}) {escape(choice)}")
        answer = await self._blocking(
            IntPrompt.ask,
            "  Choice",
            console=self.console,
            choices=[str(i + 1) for i in range(len(choices))],
            default=default + 1,
            show_choices=False,
        )
        return int(answer) - 1

    async def confirm(self, prompt: str) -> bool:
        self.clear_status()
        return bool(await self._blocking(Confirm.ask, prompt, console=self.console))

    async def ask_text(self, prompt: str, allow_empty: bool = True) -> str:
        self.clear_status()
        if allow_empty:
            answer = await self._blocking(
                Prompt.ask, prompt, console=self.console, default="", show_default=False
            )
        else:
            answer = await self._blocking(Prompt.ask, prompt, console=self.console)
            while not answer.strip():
                answer = await self._blocking(Prompt.ask, prompt, console=self.console)
        return answer.strip()
