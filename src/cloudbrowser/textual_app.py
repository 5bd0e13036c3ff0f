"""Textual-based UI for cloudbrowser."""

from __future__ import annotations

import logging
from typing import Optional

from textual import events
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Vertical
from textual.widgets import Static
from rich.markup import escape as rich_escape

from .api import CloudClient
from .commands import Batch, Command, Quit
from .executor import CommandExecutor
from .messages import KeyPress, Message, WindowResized
from .model import Model
from .render import render
from .update import init, update

logger = logging.getLogger(__name__)


class CloudBrowserApp(App[Optional[str]]):
    TITLE = "cloudbrowser"
    SUB_TITLE = "OVHcloud Public Cloud"
    ENABLE_COMMAND_PALETTE = False

    CSS = """
    Screen {
      layout: vertical;
    }

    #header {
      height: 2;
      padding: 0 1;
      background: $surface;
      color: $text;
    }

    #main {
      height: 1fr;
      border: round $accent;
      padding: 0 1;
    }

    #body {
      height: 1fr;
      overflow: auto;
    }

    #status {
      height: 1;
      padding: 0 1;
      background: $panel;
      color: $text;
    }

    #help {
      height: 1;
      padding: 0 1;
      color: $text-muted;
    }
    """

    BINDINGS = [
        Binding("ctrl+q", "quit", "Quit", show=False, priority=True),
    ]

    def __init__(self, model: Model, client: CloudClient, config_manager=None,
                 executor: Optional[CommandExecutor] = None) -> None:
        super().__init__()
        self.model = model
        self.client = client
        self.executor = executor or CommandExecutor(
            client,
            debug_logger=model.debug_logger,
            config_manager=config_manager,
            suspend=self.suspend,
        )

    def compose(self) -> ComposeResult:
        yield Static("", id="header", markup=False)
        yield Vertical(Static("", id="body"), id="main")
        yield Static("", id="status")
        yield Static("", id="help")

    def on_mount(self) -> None:
        self.model.width = self.size.width
        self.model.height = self.size.height
        self.run_command(init(self.model))
        self._render()

    async def on_unmount(self) -> None:
        await self.client.close()

    def on_resize(self, event: events.Resize) -> None:
        self.send(WindowResized(event.size.width, event.size.height))

    async def on_key(self, event: events.Key) -> None:
        # Every key goes through update(); the active handler decides what it means.
        self.send(KeyPress(event.key, event.character))
        event.stop()

    def check_action(self, action: str, parameters: tuple[object, ...]) -> bool:
        return action == "quit"

    def send(self, msg: Message) -> None:
        self.model, cmd = update(self.model, msg)
        self.run_command(cmd)
        self._render()

    def run_command(self, cmd: Optional[Command]) -> None:
        if cmd is None:
            return
        if isinstance(cmd, Batch):
            for sub in cmd.commands:
                self.run_command(sub)
            return
        if isinstance(cmd, Quit):
            logger.info("Quit requested")
            self.exit(cmd.result)
            return
        self.run_worker(
            self._execute(cmd),
            name=type(cmd).__name__,
            group="commands",
            exclusive=False,
            thread=False,
        )

    async def _execute(self, cmd: Command) -> None:
        for msg in await self.executor.execute(cmd):
            self.send(msg)

    def _render(self) -> None:
        frame = render(self.model)
        self.query_one("#header", Static).update(frame.header)
        self.query_one("#body", Static).update(rich_escape(frame.body))
        self.query_one("#status", Static).update(rich_escape(frame.status))
        self.query_one("#help", Static).update(rich_escape(frame.help))


def run(model: Model, client: CloudClient, config_manager=None) -> Optional[str]:
    """Run the app; returns the shell command the user asked to run after exit, if any."""
    app = CloudBrowserApp(model, client, config_manager)
    return app.run()
