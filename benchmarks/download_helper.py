#!/usr/bin/env python3
"""Helper: run transfers against a speedtest endpoint and report results as JSON.

Usage:
    python download_helper.py download <url> <size>
    python download_helper.py upload <url> <bytes>
    python download_helper.py stress <url> <count> <rps> <size>

Output (JSON on stdout):
    download: {"elapsed": 1.23, "bytes": 100000000}
    upload:   {"elapsed": 0.98, "bytes": 100000000, "reply": "Received 100 MB."}
    stress:   {"elapsed": 12.3, "files_ok": 100, "failed": 2, "bytes": 1024000,
               "target_rps": 10, "actual_rps": 8.3,
               "latencies_ms": [12.1, 15.3, ...]}
"""

import json
import sys
import threading
import time
import urllib.request

CHUNK_SIZE = 65536


def _read_all(resp):
    total = 0
    while True:
        chunk = resp.read(CHUNK_SIZE)
        if not chunk:
            break
        total += len(chunk)
    return total


def download_single(url, size):
    t0 = time.monotonic()
    resp = urllib.request.urlopen(f"{url}?bytes={size}", timeout=600)
    total = _read_all(resp)
    elapsed = time.monotonic() - t0
    return {"elapsed": elapsed, "bytes": total}


def upload_single(url, size):
    block = b"\0" * CHUNK_SIZE

    def body():
        remaining = size
        while remaining > 0:
            n = min(CHUNK_SIZE, remaining)
            yield block[:n]
            remaining -= n

    req = urllib.request.Request(
        url, data=body(), method="POST",
        headers={"Content-Type": "application/octet-stream",
                 "Content-Length": str(size)},
    )
    t0 = time.monotonic()
    resp = urllib.request.urlopen(req, timeout=600)
    reply = resp.read().decode().strip()
    elapsed = time.monotonic() - t0
    return {"elapsed": elapsed, "bytes": size, "reply": reply}


def download_stress(url, count, target_rps, size):
    """Fire requests at a fixed rate (target_rps), each in its own thread."""
    interval = 1.0 / target_rps
    results_lock = threading.Lock()
    latencies = []
    total_bytes = 0
    ok = 0
    failed = 0

    def fetch():
        nonlocal total_bytes, ok, failed
        t0 = time.monotonic()
        try:
            resp = urllib.request.urlopen(f"{url}?bytes={size}", timeout=30)
            nbytes = _read_all(resp)
            lat = (time.monotonic() - t0) * 1000
            with results_lock:
                latencies.append(lat)
                total_bytes += nbytes
                ok += 1
        except OSError:
            with results_lock:
                failed += 1

    threads = []
    t_start = time.monotonic()
    for i in range(count):
        # Schedule at fixed rate
        target_time = t_start + i * interval
        now = time.monotonic()
        if target_time > now:
            time.sleep(target_time - now)

        t = threading.Thread(target=fetch)
        t.start()
        threads.append(t)

    for t in threads:
        t.join(timeout=60)

    elapsed = time.monotonic() - t_start
    actual_rps = ok / elapsed if elapsed > 0 else 0

    latencies.sort()
    return {
        "elapsed": round(elapsed, 2),
        "files_ok": ok,
        "failed": failed,
        "bytes": total_bytes,
        "target_rps": target_rps,
        "actual_rps": round(actual_rps, 1),
        "latencies_ms": [round(x, 1) for x in latencies],
    }


def main():
    mode = sys.argv[1]
    if mode == "download":
        result = download_single(sys.argv[2], sys.argv[3])
    elif mode == "upload":
        result = upload_single(sys.argv[2], int(sys.argv[3]))
    elif mode == "stress":
        result = download_stress(sys.argv[2], int(sys.argv[3]),
                                 float(sys.argv[4]), sys.argv[5])
    else:
        print(json.dumps({"error": f"unknown mode: {mode}"}))
        sys.exit(1)

    print(json.dumps(result))


if __name__ == "__main__":
    main()
