"""Unit tests for http-speedtest CLI."""

import logging
from unittest.mock import Mock, patch

import pytest

from http_speedtest.cli import build_parser, main
from http_speedtest.server import DEFAULT_PATH


class TestArgumentParsing:
    """Tests for command-line arguments."""

    def test_defaults(self):
        """Test default settings."""
        args = build_parser().parse_args([])

        assert args.host == "0.0.0.0"
        assert args.port == 8080
        assert args.path == DEFAULT_PATH
        assert args.timeout is None
        assert args.verbose is False
        assert args.dashboard is False

    def test_all_options(self):
        """Test that every option is parsed."""
        args = build_parser().parse_args(
            ["--host", "127.0.0.1", "-p", "9000", "--path", "/st", "-t", "30", "-v", "--dashboard"]
        )

        assert args.host == "127.0.0.1"
        assert args.port == 9000
        assert args.path == "/st"
        assert args.timeout == 30.0
        assert args.verbose is True
        assert args.dashboard is True

    def test_version(self, capsys):
        """Test --version output."""
        with pytest.raises(SystemExit) as excinfo:
            build_parser().parse_args(["--version"])
        assert excinfo.value.code == 0
        assert "http-speedtest" in capsys.readouterr().out


class TestMain:
    """Tests for the main entry point."""

    def test_runs_server(self):
        """Test that main builds and runs the server."""
        with patch("http_speedtest.cli.SpeedtestServer") as mock_server_class:
            mock_server = Mock()
            mock_server_class.return_value = mock_server

            main(["--host", "127.0.0.1", "-p", "9000", "--path", "/st", "-t", "5"])

            mock_server_class.assert_called_once_with(
                ("127.0.0.1", 9000), route_path="/st", request_timeout=5.0
            )
            mock_server.run.assert_called_once()
            mock_server.run_dashboard.assert_not_called()

    def test_runs_dashboard(self):
        """Test that --dashboard runs the dashboard."""
        with patch("http_speedtest.cli.SpeedtestServer") as mock_server_class:
            mock_server = Mock()
            mock_server_class.return_value = mock_server

            main(["--dashboard"])

            mock_server.run_dashboard.assert_called_once()
            mock_server.run.assert_not_called()

    def test_verbose_enables_debug(self):
        """Test that -v switches the logger to DEBUG."""
        logger = logging.getLogger("http-speedtest")
        old_level = logger.level
        try:
            with patch("http_speedtest.cli.SpeedtestServer"):
                main(["-v"])
            assert logger.level == logging.DEBUG
        finally:
            logger.setLevel(old_level)

    @pytest.mark.parametrize(
        "argv",
        [
            ["-p", "70000"],
            ["-p", "-1"],
            ["--path", "speedtest"],
            ["-t", "0"],
        ],
    )
    def test_invalid_settings_exit(self, argv):
        """Test that invalid settings exit with status 1."""
        with patch("http_speedtest.cli.SpeedtestServer") as mock_server_class:
            with pytest.raises(SystemExit) as excinfo:
                main(argv)
            assert excinfo.value.code == 1
            mock_server_class.assert_not_called()

    def test_bind_failure_exits(self):
        """Test that a port already in use exits with status 1."""
        with patch("http_speedtest.cli.SpeedtestServer", side_effect=OSError("Address already in use")):
            with pytest.raises(SystemExit) as excinfo:
                main(["-p", "8080"])
            assert excinfo.value.code == 1
