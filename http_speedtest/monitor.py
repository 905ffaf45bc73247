"""Traffic accounting for transfers served by the HTTP server."""

import itertools
import threading
import time
from typing import Dict, List, Optional


class Transfer:
    """Traffic record of a single request to the speedtest endpoint."""

    def __init__(self, transfer_id: int, method: str, client: str, path: str = ""):
        self.id = transfer_id
        self.method = method
        self.client = client
        self.path = path
        self.expected: Optional[int] = None  # body size announced up front
        self.status: Optional[int] = None  # final HTTP status, None while active
        self.aborted = False

        # Traffic monitoring
        self.bytes_sent = 0  # response body bytes written to the client
        self.bytes_received = 0  # request body bytes read from the client
        self.started = time.monotonic()
        self.finished: Optional[float] = None
        self.last_activity = 0.0  # timestamp of last data transfer
        self._prev_bytes_sent = 0
        self._prev_bytes_received = 0
        self._prev_snapshot_time = 0.0

    @property
    def active(self) -> bool:
        return self.finished is None

    @property
    def elapsed(self) -> float:
        end = self.finished if self.finished is not None else time.monotonic()
        return end - self.started

    def add_sent(self, n: int):
        self.bytes_sent += n
        self.last_activity = time.monotonic()

    def add_received(self, n: int):
        self.bytes_received += n
        self.last_activity = time.monotonic()

    def finish(self, status: Optional[int], aborted: bool = False):
        """Stamp the end of the transfer."""
        self.status = status
        self.aborted = aborted
        self.finished = time.monotonic()

    def average_speed(self) -> float:
        """Return the mean throughput in bytes/sec over the whole transfer."""
        elapsed = self.elapsed
        if elapsed <= 0:
            return 0.0
        return (self.bytes_sent + self.bytes_received) / elapsed

    def get_stats(self):
        """Return current traffic stats and compute recent speed."""
        now = time.monotonic()
        dt = now - self._prev_snapshot_time if self._prev_snapshot_time else now - self.started

        if dt > 0:
            send_speed = (self.bytes_sent - self._prev_bytes_sent) / dt
            recv_speed = (self.bytes_received - self._prev_bytes_received) / dt
        else:
            send_speed = 0.0
            recv_speed = 0.0

        self._prev_bytes_sent = self.bytes_sent
        self._prev_bytes_received = self.bytes_received
        self._prev_snapshot_time = now

        idle_secs = now - self.last_activity if self.last_activity else None
        return {
            "bytes_sent": self.bytes_sent,
            "bytes_received": self.bytes_received,
            "send_speed": send_speed,
            "recv_speed": recv_speed,
            "idle_secs": idle_secs,
        }


class TransferLog:
    """Thread-safe registry of active and recently finished transfers."""

    def __init__(self, max_finished: int = 100):
        self.max_finished = max_finished
        self._transfers: Dict[int, Transfer] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def start(self, method: str, client: str, path: str = "") -> Transfer:
        """Register a new active transfer."""
        with self._lock:
            transfer = Transfer(next(self._ids), method, client, path)
            self._transfers[transfer.id] = transfer
            self._prune()
        return transfer

    def _prune(self):
        finished = [t for t in self._transfers.values() if not t.active]
        for transfer in finished[:max(0, len(finished) - self.max_finished)]:
            del self._transfers[transfer.id]

    def snapshot(self) -> List[Transfer]:
        """Return all known transfers, newest first."""
        with self._lock:
            self._prune()
            return sorted(self._transfers.values(), key=lambda t: t.id, reverse=True)

    def clear_finished(self) -> int:
        """Forget finished transfers; return how many were dropped."""
        with self._lock:
            finished = [tid for tid, t in self._transfers.items() if not t.active]
            for tid in finished:
                del self._transfers[tid]
        return len(finished)

    def __len__(self):
        with self._lock:
            return len(self._transfers)
