import asyncio
from typing import List

from rich.console import Console
from rich.prompt import Confirm, Prompt

console = Console()


class ConsoleUI:
    """
    Terminal side of the agent: free-text prompts, numbered menus and yes/no
    confirmations. Blocking reads run in a worker thread so the event loop stays free.
    """

    def __init__(self, rich_console: Console = None):
        self.console = rich_console or console

    def show_assistant(self, text: str):
        self.console.print()
        self.console.print(text, style="cyan", markup=False, highlight=False)

    def show_notice(self, text: str, style: str = "yellow"):
        self.console.print(text, style=style, markup=False, highlight=False)

    async def prompt_text(self, label: str) -> str:
        return await asyncio.to_thread(Prompt.ask, f"[bold bright_yellow]{label}[/]", console=self.console, default="", show_default=False)

    async def prompt_choice(self, label: str, options: List[str]) -> str:
        for i, option in enumerate(options, 1):
            self.console.print(f"  [bold]{i}.[/] {option}", highlight=False)
        numbers = [str(i) for i in range(1, len(options) + 1)]
        picked = await asyncio.to_thread(Prompt.ask, f"[bold bright_yellow]{label}[/]", console=self.console, choices=numbers, default="1")
        return options[int(picked) - 1]

    async def confirm(self, label: str) -> bool:
        return await asyncio.to_thread(Confirm.ask, f"[bold blue]{label}[/]", console=self.console, default=False)
