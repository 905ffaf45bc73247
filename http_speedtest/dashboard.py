"""Interactive TUI dashboard for http-speedtest."""

import logging
import threading
from typing import TYPE_CHECKING, List, Tuple

from textual.app import App, ComposeResult
from textual.widgets import Header, Footer, Static, DataTable, RichLog
from textual.containers import Vertical
from textual.binding import Binding

from http_speedtest.monitor import Transfer
from http_speedtest.sizes import human_bytes, human_speed

if TYPE_CHECKING:
    from http_speedtest.server import SpeedtestServer


# Global buffer for logs before dashboard is mounted
_log_buffer: List[Tuple[str, int]] = []


def _format_status(transfer: Transfer) -> str:
    if transfer.active:
        return "[cyan]● Active[/cyan]"
    if transfer.aborted:
        return "[red]✗ Aborted[/red]"
    if transfer.status is not None and transfer.status < 400:
        return f"[green]✓ {transfer.status}[/green]"
    return f"[yellow]✗ {transfer.status}[/yellow]"


def _format_progress(transfer: Transfer) -> str:
    moved = transfer.bytes_sent if transfer.method == "GET" else transfer.bytes_received
    if not moved:
        return "-"
    if transfer.expected:
        percent = min(100.0, moved * 100 / transfer.expected)
        return f"{human_bytes(moved)} / {human_bytes(transfer.expected)} ({percent:.0f}%)"
    return human_bytes(moved)


def _format_idle(idle_secs) -> str:
    if idle_secs is None:
        return "waiting"
    if idle_secs < 1:
        return "-"
    return f"{idle_secs:.0f}s"


class LogHandler(logging.Handler):
    """Custom logging handler that sends logs to the dashboard."""

    def __init__(self, dashboard_app: "DashboardApp" = None):
        super().__init__()
        self.dashboard = dashboard_app

    def emit(self, record: logging.LogRecord) -> None:
        """Emit a log record to the dashboard."""
        try:
            msg = self.format(record)
            if self.dashboard is None:
                # Buffer logs until dashboard is ready
                _log_buffer.append((msg, record.levelno))
            else:
                self.dashboard.call_from_thread_safe(self.dashboard.add_log, msg, record.levelno)
        except Exception:
            self.handleError(record)


class TransferDataTable(DataTable):
    """A DataTable widget listing active and recent transfers."""

    def __init__(self, server: "SpeedtestServer", **kwargs):
        super().__init__(**kwargs)
        self.server = server
        self.cursor_type = "row"
        self.zebra_stripes = True

    def on_mount(self) -> None:
        """Set up the table when mounted."""
        self.add_columns("ID", "Method", "Client", "Status", "Progress", "Speed", "Idle", "Time")
        self.refresh_data()

    def refresh_data(self) -> None:
        """Refresh the table data from the server's transfer log."""
        old_cursor_row = self.cursor_row
        self.clear()

        for transfer in self.server.transfers.snapshot():
            if transfer.active:
                stats = transfer.get_stats()
                speed_display = human_speed(stats["send_speed"] + stats["recv_speed"])
                idle_display = _format_idle(stats["idle_secs"])
            else:
                speed_display = human_speed(transfer.average_speed())
                idle_display = "-"
            self.add_row(
                str(transfer.id),
                transfer.method,
                transfer.client,
                _format_status(transfer),
                _format_progress(transfer),
                speed_display,
                idle_display,
                f"{transfer.elapsed:.1f}s",
            )

        # Stay at the same row index if possible
        if len(self.rows) > 0:
            self.move_cursor(row=min(old_cursor_row or 0, len(self.rows) - 1), animate=False)


class LogPanel(Vertical):
    """A collapsible log panel."""

    def __init__(self, *children, **kwargs):
        super().__init__(*children, **kwargs)
        self._expanded = True

    def toggle(self) -> None:
        """Toggle the log panel."""
        self._expanded = not self._expanded
        self.display = self._expanded

    def on_mount(self) -> None:
        """Show by default on mount so logs are visible."""
        self.display = True


class DashboardApp(App):
    """The main dashboard application."""

    TITLE = "http-speedtest"
    CSS = """
    #logs_container {
        height: 30%;
        dock: bottom;
    }
    TransferDataTable {
        height: 1fr;
    }
    #main_content {
        height: 1fr;
    }
    """

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("r", "refresh", "Refresh"),
        Binding("l", "toggle_logs", "Toggle logs"),
        Binding("c", "clear_finished", "Clear finished"),
    ]

    def __init__(self, server: "SpeedtestServer", **kwargs):
        super().__init__(**kwargs)
        self.server = server
        self._log_handler: LogHandler = None
        self._app_thread = None

    def compose(self) -> ComposeResult:
        """Compose the UI."""
        yield Header()
        yield Vertical(
            Static(
                f"[bold cyan]Listening on: {self.server.url}[/bold cyan] | "
                f"curl -o /dev/null '{self.server.url}?bytes=100MB'",
                id="connection_info",
            ),
            Static("Press [bold]R[/bold] to refresh, [bold]C[/bold] to clear finished, [bold]L[/bold] for logs, [bold]Q[/bold] to quit", id="help"),
            TransferDataTable(self.server, id="transfers_table"),
            Static("", id="status"),
            LogPanel(
                Static("[bold]Logs[/bold] (press L to close)", id="logs_title"),
                RichLog(id="logs", markup=True, auto_scroll=True, highlight=True),
                id="logs_container",
            ),
            id="main_content",
        )
        yield Footer()

    def on_mount(self) -> None:
        """Set up refresh timer and log handler when mounted."""
        self._app_thread = threading.get_ident()
        self.set_interval(1, self.auto_refresh)

        # Set up log handler to capture logs
        self._log_handler = LogHandler(self)
        self._log_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s", "%H:%M:%S"))
        logger = logging.getLogger("http-speedtest")
        for handler in list(logger.handlers):
            if isinstance(handler, LogHandler) and handler.dashboard is None:
                logger.removeHandler(handler)
        logger.addHandler(self._log_handler)

        # Replay any buffered logs
        for msg, level in _log_buffer:
            self.add_log(msg, level)
        _log_buffer.clear()

    def on_unmount(self) -> None:
        """Detach the log handler when the app goes away."""
        if self._log_handler is not None:
            logging.getLogger("http-speedtest").removeHandler(self._log_handler)

    def call_from_thread_safe(self, callback, *args) -> None:
        """Run ``callback`` on the app thread, whichever thread calls this."""
        if self._app_thread == threading.get_ident():
            callback(*args)
        else:
            self.call_from_thread(callback, *args)

    def add_log(self, message: str, level: int) -> None:
        """Add a log message to the log widget."""
        log_widget = self.query_one("#logs", RichLog)

        # Colorize based on level
        if level >= logging.ERROR:
            message = f"[red]{message}[/red]"
        elif level >= logging.WARNING:
            message = f"[yellow]{message}[/yellow]"

        log_widget.write(message)

    def auto_refresh(self) -> None:
        """Auto-refresh the table data."""
        table = self.query_one("#transfers_table", TransferDataTable)
        table.refresh_data()

    def action_refresh(self) -> None:
        """Refresh the table data."""
        table = self.query_one("#transfers_table", TransferDataTable)
        table.refresh_data()
        self.query_one("#status").update("[green]⟳ Refreshed[/green]")

    def action_toggle_logs(self) -> None:
        """Toggle the log panel."""
        log_panel = self.query_one("#logs_container", LogPanel)
        log_panel.toggle()

    def action_clear_finished(self) -> None:
        """Drop finished transfers from the table."""
        dropped = self.server.transfers.clear_finished()
        table = self.query_one("#transfers_table", TransferDataTable)
        table.refresh_data()
        self.query_one("#status").update(f"[yellow]✗ Cleared {dropped} finished transfer(s)[/yellow]")


def run_dashboard(server: "SpeedtestServer") -> None:
    """Run the dashboard app."""
    app = DashboardApp(server)
    app.run()
