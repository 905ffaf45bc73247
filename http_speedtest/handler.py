"""The speedtest request handler: downloads, uploads and method dispatch."""

import logging
from http import HTTPStatus

from http_speedtest.content import serve_content
from http_speedtest.errors import HTTPError, SizeSpecError
from http_speedtest.sizes import human_bytes, parse_size
from http_speedtest.stream import RandomStream

logger = logging.getLogger("http-speedtest")


class SpeedtestHandler:
    """Serves speed tests on a single endpoint.

    GET streams ``?bytes=<size>`` bytes of deterministic pseudorandom data.
    POST reads and discards the request body and reports how much arrived.

    The handler keeps no state, so one instance is shared by every request
    thread of the server.
    """

    __slots__ = ()

    def serve_http(self, request) -> None:
        """Dispatch ``request`` by method. Raises HTTPError on failure."""
        if request.command == "GET":
            self.handle_get(request)
        elif request.command == "POST":
            self.handle_post(request)
        else:
            raise HTTPError(HTTPStatus.METHOD_NOT_ALLOWED)

    def handle_get(self, request) -> None:
        """Handle GET requests for the speedtest."""
        values = request.query.get("bytes") or [""]
        try:
            size = parse_size(values[0])
        except SizeSpecError as e:
            logger.debug(f"Rejecting download size {values[0]!r}: {e}")
            raise HTTPError(
                HTTPStatus.BAD_REQUEST,
                'invalid or missing "bytes" query parameter',
            ) from e

        with RandomStream(size) as stream:
            serve_content(request, stream, "application/octet-stream")

    def handle_post(self, request) -> None:
        """Handle POST requests for the speedtest."""
        request.send_continue()

        size = 0
        try:
            for chunk in request.iter_body():
                size += len(chunk)
        except OSError as e:
            raise HTTPError(
                HTTPStatus.INTERNAL_SERVER_ERROR,
                f"failed to read request body: {e}",
            ) from e

        if size == 0:
            raise HTTPError(HTTPStatus.BAD_REQUEST, "request body is empty")

        request.send_text(HTTPStatus.OK, f"Received {human_bytes(size)}.\n")
