"""Threaded HTTP/1.1 server hosting the speedtest endpoint."""

import http.server
import logging
import re
import threading
from http import HTTPStatus
from typing import Optional
from urllib.parse import parse_qs, urlsplit

from http_speedtest.__version__ import __version__
from http_speedtest.errors import HTTPError
from http_speedtest.handler import SpeedtestHandler
from http_speedtest.monitor import TransferLog
from http_speedtest.sizes import human_bytes, human_speed

logger = logging.getLogger("http-speedtest")

DEFAULT_PATH = "/speedtest"
CHUNK_SIZE = 65536
# Longest chunk-size or trailer line accepted in a chunked body
MAX_LINE = 4096
# Largest unread body discarded to keep a connection alive after an error
MAX_DRAIN = 256 * 1024

_CHUNK_SIZE_RE = re.compile(rb"[0-9A-Fa-f]+")


class SpeedtestRequestHandler(http.server.BaseHTTPRequestHandler):
    """Per-connection request handler.

    Routes the configured path to the server's SpeedtestHandler and
    provides it with the request interface it needs: query parameters,
    streamed body reading, interim responses and body writing.
    """

    protocol_version = "HTTP/1.1"
    server_version = f"http-speedtest/{__version__}"

    def setup(self):
        self.timeout = self.server.request_timeout
        super().setup()

    def handle_expect_100(self):
        # The upload handler sends 100 Continue itself once it starts reading
        return True

    def _route(self):
        url = urlsplit(self.path)
        self.query = parse_qs(url.query, keep_blank_values=True)
        self.committed = False
        self.transfer = None
        self._status: Optional[int] = None
        self._body_started = False
        self._body_consumed = False
        self._continue_sent = False

        if url.path != self.server.route_path:
            self._send_error(HTTPError(HTTPStatus.NOT_FOUND))
            return

        self.transfer = self.server.transfers.start(self.command, self.client_address[0], self.path)
        aborted = False
        try:
            self.server.handler.serve_http(self)
        except HTTPError as e:
            self._send_error(e)
        except OSError as e:
            if self.committed:
                logger.warning(f"✗ {self.command} {self.path} aborted: {e}")
                self.close_connection = True
                aborted = True
            else:
                self._send_error(HTTPError(HTTPStatus.INTERNAL_SERVER_ERROR, str(e)))
        except Exception:
            logger.exception(f"Error handling {self.command} {self.path}")
            if self.committed:
                self.close_connection = True
                aborted = True
            else:
                self._send_error(HTTPError(HTTPStatus.INTERNAL_SERVER_ERROR))
        finally:
            self.transfer.finish(self._status, aborted=aborted)
            self._log_transfer()

    do_GET = do_POST = do_HEAD = do_PUT = do_DELETE = do_PATCH = do_OPTIONS = do_TRACE = _route

    def _log_transfer(self):
        t = self.transfer
        if self.command == "GET":
            moved, direction = t.bytes_sent, "to"
        else:
            moved, direction = t.bytes_received, "from"
        if t.aborted:
            logger.warning(f"✗ {t.method} aborted after {human_bytes(moved)} ({t.client})")
        elif t.status in (HTTPStatus.OK, HTTPStatus.PARTIAL_CONTENT):
            logger.info(
                f"✓ {t.method} {human_bytes(moved)} {direction} {t.client} "
                f"in {t.elapsed:.2f}s ({human_speed(t.average_speed())})"
            )
        else:
            logger.info(f"✗ {t.method} {t.path} -> {t.status} ({t.client})")

    def _has_body(self) -> bool:
        if self.headers.get("Transfer-Encoding"):
            return True
        return self.headers.get("Content-Length", "0").strip() not in ("", "0")

    def _send_error(self, error: HTTPError):
        if self.committed:
            logger.debug(f"Cannot report {error.status.value} after the response started")
            self.close_connection = True
            return
        if not self._body_consumed and self._has_body() and not self._drain_body():
            # Unread body bytes must not be parsed as the next request
            self.close_connection = True
        try:
            self.send_text(error.status, error.render())
        except OSError as e:
            logger.debug(f"Could not send {error.status.value} to {self.client_address[0]}: {e}")
            self.close_connection = True

    def _drain_body(self) -> bool:
        """Discard a small unread request body. Return True on success."""
        if self._body_started or self.headers.get("Transfer-Encoding"):
            return False
        if "100-continue" in self.headers.get("Expect", "").lower() and not self._continue_sent:
            # The client is waiting for permission and may never send it
            return False
        try:
            length = int(self.headers.get("Content-Length") or 0)
        except ValueError:
            return False
        if not 0 <= length <= MAX_DRAIN:
            return False
        try:
            while length > 0:
                data = self.rfile.read(min(CHUNK_SIZE, length))
                if not data:
                    return False
                length -= len(data)
        except OSError as e:
            logger.debug(f"Could not drain request body: {e}")
            return False
        self._body_consumed = True
        return True

    # Request interface used by SpeedtestHandler and serve_content

    def send_continue(self):
        """Send an interim 100 Continue once, to HTTP/1.1 clients only."""
        if self._continue_sent:
            return
        if self.request_version >= "HTTP/1.1":
            self.send_response_only(HTTPStatus.CONTINUE)
            self.end_headers()
            self._continue_sent = True

    def start_body(self, status: int, headers: Optional[dict], length: int):
        """Send the status line and headers of a body of ``length`` bytes."""
        self.send_response(status)
        for key, value in (headers or {}).items():
            self.send_header(key, value)
        self.send_header("Content-Length", str(length))
        if self.close_connection:
            self.send_header("Connection", "close")
        self.end_headers()
        self.committed = True
        self._status = int(status)
        if self.transfer is not None and self.command == "GET" and status < 300:
            self.transfer.expected = length

    def write_body(self, data):
        if self.command == "HEAD":
            return
        self.wfile.write(data)
        if self.transfer is not None:
            self.transfer.add_sent(len(data))

    def send_text(self, status: int, text: str, headers: Optional[dict] = None):
        """Send a complete plain text response."""
        body = text.encode("utf-8")
        all_headers = {
            "Content-Type": "text/plain; charset=utf-8",
            "X-Content-Type-Options": "nosniff",
        }
        all_headers.update(headers or {})
        self.start_body(status, all_headers, len(body))
        self.write_body(body)

    def iter_body(self):
        """Yield the request body in chunks as it arrives.

        Handles both Content-Length and chunked framing. Raises OSError
        when the client goes away or the framing is broken.
        """
        self._body_started = True
        if "chunked" in self.headers.get("Transfer-Encoding", "").lower():
            chunks = self._read_chunked()
        else:
            try:
                length = int(self.headers.get("Content-Length") or 0)
            except ValueError:
                length = -1
            if length < 0:
                self.close_connection = True
                raise HTTPError(HTTPStatus.BAD_REQUEST, "invalid Content-Length")
            if self.transfer is not None and length:
                self.transfer.expected = length
            chunks = self._read_exact(length)
        yield from chunks
        self._body_consumed = True

    def _read_exact(self, length: int):
        remaining = length
        while remaining > 0:
            data = self.rfile.read(min(CHUNK_SIZE, remaining))
            if not data:
                raise ConnectionError(
                    f"unexpected EOF after {length - remaining} of {length} bytes"
                )
            remaining -= len(data)
            if self.transfer is not None:
                self.transfer.add_received(len(data))
            yield data

    def _read_line(self) -> bytes:
        line = self.rfile.readline(MAX_LINE + 1)
        if not line:
            raise ConnectionError("unexpected EOF in chunked body")
        if len(line) > MAX_LINE:
            raise OSError("chunked body line too long")
        return line

    def _read_chunked(self):
        while True:
            size_text = self._read_line().split(b";", 1)[0].strip()
            if not _CHUNK_SIZE_RE.fullmatch(size_text):
                raise OSError(f"malformed chunk size: {size_text!r}")
            size = int(size_text, 16)
            if size == 0:
                break
            yield from self._read_exact(size)
            if self._read_line().strip():
                raise OSError("missing CRLF after chunk data")
        # Trailer section, discarded
        while self._read_line().strip():
            pass

    def log_message(self, format, *args):
        logger.debug(f"{self.address_string()} - {format % args}")

    def log_error(self, format, *args):
        logger.warning(f"{self.address_string()} - {format % args}")


class SpeedtestServer(http.server.ThreadingHTTPServer):
    """HTTP server that answers speed tests on one path and 404 elsewhere."""

    def __init__(
        self,
        server_address,
        route_path: str = DEFAULT_PATH,
        request_timeout: Optional[float] = None,
        transfers: Optional[TransferLog] = None,
    ):
        self.route_path = route_path
        self.request_timeout = request_timeout
        self.handler = SpeedtestHandler()
        self.transfers = transfers if transfers is not None else TransferLog()
        super().__init__(server_address, SpeedtestRequestHandler)

    @property
    def url(self) -> str:
        host, port = self.server_address[:2]
        return f"http://{host}:{port}{self.route_path}"

    def run(self):
        """Serve until interrupted."""
        logger.info(f"Serving speed tests on {self.url}")
        try:
            self.serve_forever()
        except KeyboardInterrupt:
            logger.info("Received interrupt signal, shutting down...")
        finally:
            self.server_close()
            logger.info("✓ Stopped")

    def run_dashboard(self):
        """Serve in a background thread while the dashboard runs."""
        # Set up log handler early to capture all logs
        from http_speedtest.dashboard import LogHandler
        log_handler = LogHandler()  # No dashboard yet, will buffer logs
        log_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s", "%H:%M:%S"))
        logger.addHandler(log_handler)

        # Remove console handler for dashboard mode (logs go to dashboard panel)
        root = logging.getLogger()
        console_handlers = [
            h for h in root.handlers
            if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        ]
        for handler in console_handlers:
            root.removeHandler(handler)

        thread = threading.Thread(target=self.serve_forever, daemon=True, name="speedtest-server")
        try:
            thread.start()
            logger.info(f"Serving speed tests on {self.url}")

            # Launch dashboard (this blocks)
            from http_speedtest.dashboard import run_dashboard
            run_dashboard(self)
        except KeyboardInterrupt:
            logger.info("Received interrupt signal, shutting down...")
        finally:
            if thread.is_alive():
                self.shutdown()
            thread.join(timeout=5)
            self.server_close()
            for handler in console_handlers:
                root.addHandler(handler)
            logger.removeHandler(log_handler)
            logger.info("✓ Stopped")
