"""Serving a response body from a seekable source, with Range support.

``serve_content`` works against any binary file object. It only ever asks
the source for its size (``seek(0, SEEK_END)``), rewinds it, and seeks to
the start of the requested range. Whether a range is served therefore
depends on which seeks the source accepts.
"""

import io
import logging
import re
from http import HTTPStatus
from typing import List, NamedTuple, Optional

from http_speedtest.errors import RangeError

logger = logging.getLogger("http-speedtest")

CHUNK_SIZE = 65536
# Content lengths are accounted for as signed 64-bit integers
MAX_CONTENT_SIZE = 2**63 - 1

_POSITION_RE = re.compile(r"[0-9]+")


def _parse_position(text: str) -> int:
    """Parse a Range byte position, which must fit a signed 64-bit integer."""
    if not _POSITION_RE.fullmatch(text):
        raise RangeError("invalid range")
    try:
        position = int(text)
    except ValueError:
        raise RangeError("invalid range") from None
    if position > MAX_CONTENT_SIZE:
        raise RangeError("invalid range")
    return position


class ByteRange(NamedTuple):
    start: int
    length: int

    def content_range(self, size: int) -> str:
        return f"bytes {self.start}-{self.start + self.length - 1}/{size}"


def parse_range(header: Optional[str], size: int) -> List[ByteRange]:
    """Parse a Range header value against content of ``size`` bytes.

    Returns an empty list when there is no header. Raises RangeError when
    the header is malformed, or when none of the ranges overlap the content
    (``no_overlap`` is then set on the error).
    """
    if not header:
        return []
    prefix = "bytes="
    if not header.startswith(prefix):
        raise RangeError("invalid range")

    ranges = []
    no_overlap = False
    for part in header[len(prefix):].split(","):
        part = part.strip(" \t")
        if not part:
            continue
        start, sep, end = part.partition("-")
        start, end = start.strip(" \t"), end.strip(" \t")
        if not sep:
            raise RangeError("invalid range")
        if not start:
            # Suffix range: the last N bytes
            suffix = min(_parse_position(end), size)
            ranges.append(ByteRange(size - suffix, suffix))
            continue
        first = _parse_position(start)
        if first >= size:
            no_overlap = True
            continue
        if not end:
            last = size - 1
        else:
            last = _parse_position(end)
            if first > last:
                raise RangeError("invalid range")
            last = min(last, size - 1)
        ranges.append(ByteRange(first, last - first + 1))

    if no_overlap and not ranges:
        raise RangeError("invalid range: failed to overlap", no_overlap=True)
    return ranges


def serve_content(request, content, content_type: str = "application/octet-stream") -> int:
    """Write ``content`` as the response to ``request``.

    Answers 200 with the whole body, or 206 when a single range can be
    served. Range failures are answered with 416 and an oversized source
    with 500. Multiple ranges are not supported, so such a Range header is
    ignored and the whole body is sent.

    Returns the number of body bytes written.
    """
    try:
        size = content.seek(0, io.SEEK_END)
    except OSError:
        request.send_text(HTTPStatus.INTERNAL_SERVER_ERROR, "seeker can't seek\n")
        return 0
    if size > MAX_CONTENT_SIZE:
        request.send_text(HTTPStatus.INTERNAL_SERVER_ERROR, "negative content size computed\n")
        return 0
    try:
        content.seek(0, io.SEEK_SET)
    except OSError:
        request.send_text(HTTPStatus.INTERNAL_SERVER_ERROR, "seeker can't seek\n")
        return 0

    range_header = request.headers.get("Range")
    if request.headers.get("If-Range"):
        # Nothing to validate the precondition against, so send everything
        range_header = None

    try:
        ranges = parse_range(range_header, size)
    except RangeError as e:
        headers = {"Content-Range": f"bytes */{size}"} if e.no_overlap else None
        request.send_text(HTTPStatus.REQUESTED_RANGE_NOT_SATISFIABLE, f"{e}\n", headers)
        return 0

    if len(ranges) > 1 or sum(r.length for r in ranges) > size:
        logger.debug(f"Ignoring Range header {range_header!r}, serving full content")
        ranges = []

    status = HTTPStatus.OK
    send_size = size
    headers = {"Accept-Ranges": "bytes", "Content-Type": content_type}
    if ranges:
        byte_range = ranges[0]
        try:
            content.seek(byte_range.start, io.SEEK_SET)
        except OSError as e:
            request.send_text(HTTPStatus.REQUESTED_RANGE_NOT_SATISFIABLE, f"{e}\n")
            return 0
        status = HTTPStatus.PARTIAL_CONTENT
        send_size = byte_range.length
        headers["Content-Range"] = byte_range.content_range(size)

    request.start_body(status, headers, send_size)
    return copy_content(request, content, send_size)


def copy_content(request, content, length: int) -> int:
    """Copy exactly ``length`` bytes from ``content`` to the response body."""
    buf = bytearray(min(CHUNK_SIZE, length))
    view = memoryview(buf)
    sent = 0
    while sent < length:
        n = content.readinto(view[:min(len(buf), length - sent)])
        if not n:
            raise OSError(f"content ended after {sent} of {length} bytes")
        request.write_body(view[:n])
        sent += n
    return sent
