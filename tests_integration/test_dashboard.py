"""Integration tests for http-speedtest dashboard using Textual Pilot API."""

import logging
import time
from unittest.mock import Mock

import pytest
from textual.widgets import DataTable

from http_speedtest.dashboard import DashboardApp, LogHandler, LogPanel, _log_buffer
from http_speedtest.monitor import TransferLog


@pytest.fixture(autouse=True)
def detach_log_handlers():
    """Make sure no dashboard log handler outlives its test."""
    yield
    logger = logging.getLogger("http-speedtest")
    for handler in list(logger.handlers):
        if isinstance(handler, LogHandler):
            logger.removeHandler(handler)
    _log_buffer.clear()


def make_server(transfers=None):
    mock_server = Mock()
    mock_server.url = "http://127.0.0.1:8080/speedtest"
    mock_server.transfers = transfers if transfers is not None else TransferLog()
    return mock_server


def sample_transfers():
    transfers = TransferLog()
    download = transfers.start("GET", "10.0.0.1", "/speedtest?bytes=1MB")
    download.expected = 1000 * 1000
    download.add_sent(250 * 1000)
    upload = transfers.start("POST", "10.0.0.2", "/speedtest")
    upload.add_received(1000)
    upload.finish(200)
    failed = transfers.start("GET", "10.0.0.3", "/speedtest?bytes=0")
    failed.finish(400)
    return transfers


@pytest.mark.asyncio
async def test_dashboard_compose_and_render():
    """Test that the dashboard can be composed and rendered without errors."""
    app = DashboardApp(make_server(sample_transfers()))

    # Run in test mode (headless, won't touch terminal)
    async with app.run_test() as pilot:
        await pilot.pause()
        table = app.query_one("#transfers_table", DataTable)
        assert table.row_count == 3


@pytest.mark.asyncio
async def test_dashboard_with_no_transfers():
    """Test that the dashboard works correctly before any request arrives."""
    app = DashboardApp(make_server())

    async with app.run_test() as pilot:
        await pilot.pause()
        table = app.query_one("#transfers_table", DataTable)
        assert table.row_count == 0


@pytest.mark.asyncio
async def test_dashboard_rows_newest_first():
    """Test that the newest transfer is listed first with its progress."""
    app = DashboardApp(make_server(sample_transfers()))

    async with app.run_test() as pilot:
        await pilot.pause()
        table = app.query_one("#transfers_table", DataTable)
        first = table.get_row_at(0)
        last = table.get_row_at(2)
        assert str(first[0]) == "3"
        assert str(last[0]) == "1"
        assert "250 kB / 1.0 MB (25%)" in str(last[4])


@pytest.mark.asyncio
async def test_dashboard_refresh_picks_up_new_transfers():
    """Test pressing 'r' shows transfers that started after mount."""
    transfers = TransferLog()
    app = DashboardApp(make_server(transfers))

    async with app.run_test() as pilot:
        await pilot.pause()
        transfers.start("GET", "10.0.0.9", "/speedtest?bytes=1GB")
        await pilot.press("r")
        await pilot.pause()
        table = app.query_one("#transfers_table", DataTable)
        assert table.row_count == 1


@pytest.mark.asyncio
async def test_dashboard_clear_finished():
    """Test pressing 'c' drops finished transfers."""
    transfers = sample_transfers()
    app = DashboardApp(make_server(transfers))

    async with app.run_test() as pilot:
        await pilot.pause()
        await pilot.press("c")
        await pilot.pause()
        table = app.query_one("#transfers_table", DataTable)
        assert table.row_count == 1
        assert len(transfers) == 1


@pytest.mark.asyncio
async def test_dashboard_toggle_logs():
    """Test pressing 'l' hides and shows the log panel."""
    app = DashboardApp(make_server())

    async with app.run_test() as pilot:
        panel = app.query_one("#logs_container", LogPanel)
        assert panel.display is True
        await pilot.press("l")
        await pilot.pause()
        assert panel.display is False
        await pilot.press("l")
        await pilot.pause()
        assert panel.display is True


@pytest.mark.asyncio
async def test_dashboard_replays_buffered_logs():
    """Test that logs emitted before mount are replayed and handlers swapped."""
    logger = logging.getLogger("http-speedtest")
    early_handler = LogHandler()
    logger.addHandler(early_handler)
    try:
        logger.warning("before the dashboard")
        assert _log_buffer

        app = DashboardApp(make_server())
        async with app.run_test() as pilot:
            await pilot.pause()
            assert not _log_buffer
            assert early_handler not in logger.handlers
            logger.info("while the dashboard runs")
            await pilot.pause()
    finally:
        logger.removeHandler(early_handler)


@pytest.mark.asyncio
async def test_dashboard_quit():
    """Test pressing 'q' exits the app."""
    app = DashboardApp(make_server())

    async with app.run_test() as pilot:
        await pilot.press("q")
        await pilot.pause()


@pytest.mark.asyncio
async def test_dashboard_shows_idle_time():
    """Test that stalled and not yet started transfers show their idle state."""
    transfers = TransferLog()
    stalled = transfers.start("POST", "10.0.0.4", "/speedtest")
    stalled.add_received(1000)
    stalled.last_activity = time.monotonic() - 42
    transfers.start("GET", "10.0.0.5", "/speedtest?bytes=1GB")
    done = transfers.start("GET", "10.0.0.6", "/speedtest?bytes=1kB")
    done.finish(200)
    app = DashboardApp(make_server(transfers))

    async with app.run_test() as pilot:
        await pilot.pause()
        table = app.query_one("#transfers_table", DataTable)
        assert str(table.get_row_at(0)[6]) == "-"
        assert str(table.get_row_at(1)[6]) == "waiting"
        assert str(table.get_row_at(2)[6]) in ("42s", "43s")
