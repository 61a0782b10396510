"""
sf TUI — a live dashboard for a single send or receive.

Built with Textual.  Launched via `sf --tui ...`.  The transfer runs in a
thread worker; progress is marshalled back to the UI with call_from_thread.
"""

from __future__ import annotations

import argparse
import threading
from datetime import datetime

from textual import work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Vertical
from textual.widgets import Footer, Header, Label, ProgressBar, RichLog

from .client import format_size, send_files
from .config import AUTO_ADDRESS
from .discovery import resolve_via_discovery
from .errors import TransferCancelled, TransferError
from .peer import expand_paths
from .server import Receiver


class TransferApp(App):
    """Dashboard for one sf invocation."""

    TITLE = "sf"
    ENABLE_COMMAND_PALETTE = False

    DEFAULT_CSS = """
    #status-panel {
        height: auto;
        padding: 1 2;
        border: round $accent;
    }
    #current-file {
        color: $text-muted;
    }
    #log-view {
        border: round $panel;
    }
    """

    BINDINGS = [
        Binding("q", "quit_app", "Quit", show=True),
    ]

    def __init__(self, args: argparse.Namespace):
        super().__init__()
        self.args = args
        self.sending = args.destination is not None
        self.sub_title = "send" if self.sending else "receive"
        self.exit_code = 1
        self.cancel_event = threading.Event()
        self._receiver: Receiver | None = None

    # --------------------------------------------------------------------------
    # Layout
    # --------------------------------------------------------------------------

    def compose(self) -> ComposeResult:
        yield Header()
        with Vertical(id="status-panel"):
            yield Label("Starting...", id="status")
            yield Label("", id="current-file")
            yield ProgressBar(id="progress-bar", show_eta=False)
        yield RichLog(id="log-view", highlight=True, markup=True)
        yield Footer()

    def on_mount(self) -> None:
        if self.sending:
            self._run_send()
        else:
            self._run_receive()

    # --------------------------------------------------------------------------
    # UI updates (main thread)
    # --------------------------------------------------------------------------

    def _log(self, message: str) -> None:
        ts = datetime.now().strftime("%H:%M:%S")
        self.query_one("#log-view", RichLog).write(f"[dim]{ts}[/]  {message}")

    def _set_status(self, message: str) -> None:
        self.query_one("#status", Label).update(message)

    def _on_progress(self, path: str, current: int, total: int) -> None:
        bar = self.query_one("#progress-bar", ProgressBar)
        if current == 0:
            self._log(f"{path} [dim]({format_size(total)})[/]")
            bar.update(total=max(total, 1), progress=0)
        else:
            bar.update(progress=current)
        self.query_one("#current-file", Label).update(
            f"{path}  {format_size(current)} / {format_size(total)}"
        )
        if current == total:
            bar.update(total=max(total, 1), progress=max(total, 1))

    def _finish(self, success: bool, message: str) -> None:
        self.exit_code = 0 if success else 1
        colour = "green" if success else "red"
        self._set_status(f"[bold {colour}]{message}[/]  (press q to quit)")
        self._log(f"[{colour}]{message}[/]")

    def _progress_from_thread(self, path: str, current: int, total: int) -> None:
        self.call_from_thread(self._on_progress, path, current, total)

    # --------------------------------------------------------------------------
    # Workers
    # --------------------------------------------------------------------------

    @work(thread=True, exit_on_error=False)
    def _run_receive(self) -> None:
        args = self.args
        try:
            self._receiver = Receiver(
                ("0.0.0.0", args.port),
                strip_prefix=args.strip_prefix,
                broadcast=not args.no_broadcast,
                dest_dir=args.dest,
                progress_callback=self._progress_from_thread,
                cancel_event=self.cancel_event,
            )
            with self._receiver as receiver:
                host, port = receiver.address
                self.call_from_thread(
                    self._set_status, f"Waiting for a sender on [bold]{host}:{port}[/]"
                )
                summary = receiver.serve()
        except TransferCancelled:
            self.call_from_thread(self._finish, False, "Cancelled")
        except TransferError as e:
            self.call_from_thread(self._finish, False, f"FATAL: {e}")
        else:
            self.call_from_thread(
                self._finish,
                True,
                f"Received {len(summary.files)} file(s), {format_size(summary.total_bytes)}",
            )

    @work(thread=True, exit_on_error=False)
    def _run_send(self) -> None:
        args = self.args
        try:
            paths = expand_paths(args.files)
            if args.destination == AUTO_ADDRESS:
                self.call_from_thread(self._set_status, "Looking for a receiver...")
                addr = resolve_via_discovery(timeout=args.timeout)
            else:
                addr = args.address
            self.call_from_thread(
                self._set_status,
                f"Sending {len(paths)} file(s) to [bold]{addr[0]}:{addr[1]}[/]",
            )
            summary = send_files(
                addr,
                paths,
                progress_callback=self._progress_from_thread,
                cancel_event=self.cancel_event,
            )
        except TransferCancelled:
            self.call_from_thread(self._finish, False, "Cancelled")
        except TransferError as e:
            self.call_from_thread(self._finish, False, f"FATAL: {e}")
        else:
            self.call_from_thread(
                self._finish,
                True,
                f"Sent {len(summary.files)} file(s), {format_size(summary.total_bytes)}",
            )

    # --------------------------------------------------------------------------
    # Actions
    # --------------------------------------------------------------------------

    def action_quit_app(self) -> None:
        self.cancel_event.set()
        if self._receiver:
            self._receiver.abort()
        self.exit()


# ==============================================================================
# Entry point (called from peer.py)
# ==============================================================================


def run_tui(args: argparse.Namespace) -> int:
    """Launch the dashboard and return the process exit code."""
    app = TransferApp(args)
    app.run()
    return app.exit_code
