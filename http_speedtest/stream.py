"""Deterministic pseudorandom byte stream used as the download body."""

import io
import random

# Fixed seed so that every stream of a given size has the same content
SEED = 0x5EED
# Bytes generated per step; output does not depend on how callers chunk reads
BLOCK_SIZE = 64 * 1024


class RandomStream(io.RawIOBase):
    """A read-only stream of ``size`` pseudorandom bytes.

    Bytes are generated on demand from a generator seeded with a constant,
    so the byte at position ``i`` depends only on ``i``. Two streams of the
    same size are identical and a shorter stream is a prefix of a longer one.

    Only two seeks are supported: ``seek(0)`` rewinds to the start and
    ``seek(0, io.SEEK_END)`` reports the size. Seeking to any other offset
    would mean regenerating every byte before it, so it raises
    ``io.UnsupportedOperation`` instead.
    """

    def __init__(self, size: int):
        super().__init__()
        if size < 0:
            raise ValueError(f"negative size: {size}")
        self.size = size
        self._rewind()

    def _rewind(self):
        self._rng = random.Random(SEED)
        self._pos = 0
        self._block = b""
        self._block_pos = 0

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        if self.closed:
            raise ValueError("I/O operation on closed stream")
        view = memoryview(buffer).cast("B")
        want = min(len(view), self.size - self._pos)
        written = 0
        while written < want:
            if self._block_pos == len(self._block):
                self._block = self._rng.randbytes(BLOCK_SIZE)
                self._block_pos = 0
            n = min(want - written, len(self._block) - self._block_pos)
            view[written:written + n] = self._block[self._block_pos:self._block_pos + n]
            self._block_pos += n
            written += n
        self._pos += written
        return written

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        if offset != 0:
            raise io.UnsupportedOperation("seeking not supported")
        if whence == io.SEEK_SET:
            self._rewind()
        elif whence == io.SEEK_END:
            self._pos = self.size
        elif whence != io.SEEK_CUR:
            raise io.UnsupportedOperation("seeking not supported")
        return self._pos
