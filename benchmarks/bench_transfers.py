#!/usr/bin/env python3
"""Benchmark: large downloads and uploads against a local http-speedtest.

Downloads generated bodies (10 MB, 100 MB, 1 GB) and uploads bodies of
the same sizes, reporting throughput for each.

Architecture:
  Process 1: Server process (python -m http_speedtest.cli)
  Process 2: Transfer client (separate Python process, like a browser)

Usage:
    python benchmarks/bench_transfers.py
"""

import json
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from bench_common import (
    BENCH_DIR, alloc_port, start_server, stop_server,
    download_single, upload_single, print_header, print_row, print_sep,
)

SIZES = [
    ("10MB",  10 * 1000 * 1000,   "10 MB"),
    ("100MB", 100 * 1000 * 1000,  "100 MB"),
    ("1GB",   1000 * 1000 * 1000, "1 GB"),
]


def _report(direction, label, r, W):
    mbps = r["bytes"] / r["elapsed"] / 1000 / 1000
    print_row([direction, label, f"{mbps:.1f} MB/s", f"{r['elapsed']:.2f}s"], W)
    return {
        "test": direction, "size": label,
        "mbps": round(mbps, 1),
        "elapsed": round(r["elapsed"], 2),
        "bytes": r["bytes"],
    }


def main():
    server, url = start_server(alloc_port())
    all_results = []
    try:
        print_header(f"Large transfers: {url}")
        W = [10, 8, 14, 10]
        print_row(["Direction", "Size", "Throughput", "Time"], W)
        print_sep(W)

        for query, nbytes, label in SIZES:
            try:
                r = download_single(url, query)
                all_results.append(_report("download", label, r, W))
            except Exception as exc:
                print_row(["download", label, "FAIL", str(exc)[:30]], W)

        for query, nbytes, label in SIZES:
            try:
                r = upload_single(url, nbytes)
                all_results.append(_report("upload", label, r, W))
            except Exception as exc:
                print_row(["upload", label, "FAIL", str(exc)[:30]], W)

        # Save results
        out = os.path.join(BENCH_DIR, "results_transfers.json")
        with open(out, "w") as f:
            json.dump(all_results, f, indent=2)
        print(f"\nResults saved to {out}")

    finally:
        stop_server(server)


if __name__ == "__main__":
    main()
