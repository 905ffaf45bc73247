#!/usr/bin/env python3
"""Benchmark: many small downloads at a fixed request rate.

Two test rates:
  - 10 req/s (steady load, 100 requests)
  - 100 req/s (stress test, 1000 requests)

Measures whether the server can sustain the target rate, and reports
actual throughput, latency percentiles, and failure rate.

Usage:
    python benchmarks/bench_stress.py
"""

import json
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from bench_common import (
    BENCH_DIR, alloc_port, start_server, stop_server,
    download_stress, print_header, print_row, print_sep,
)

SCENARIOS = [
    {"label": "Steady load", "rps": 10, "total": 100, "size": "10kB"},
    {"label": "Stress test", "rps": 100, "total": 1000, "size": "10kB"},
]


def percentile(sorted_list, p):
    if not sorted_list:
        return 0
    k = (len(sorted_list) - 1) * p / 100
    f = int(k)
    c = f + 1
    if c >= len(sorted_list):
        return sorted_list[f]
    return sorted_list[f] + (k - f) * (sorted_list[c] - sorted_list[f])


def run_scenario(url, scenario):
    rps = scenario["rps"]
    total = scenario["total"]

    print_header(f"{scenario['label']} ({total} x {scenario['size']} at {rps} req/s)")

    W = [12, 10, 10, 10, 8, 8]
    print_row(["Actual RPS", "p50 ms", "p95 ms", "p99 ms", "Failed", "Time"], W)
    print_sep(W)

    r = download_stress(url, total, rps, scenario["size"])
    lats = sorted(r.get("latencies_ms", []))
    p50 = percentile(lats, 50)
    p95 = percentile(lats, 95)
    p99 = percentile(lats, 99)

    print_row([
        f"{r['actual_rps']:.1f} r/s",
        f"{p50:.0f}", f"{p95:.0f}", f"{p99:.0f}",
        str(r["failed"]), f"{r['elapsed']:.1f}s",
    ], W)

    return {
        "test": "stress", "size": scenario["size"],
        "target_rps": r["target_rps"], "actual_rps": r["actual_rps"],
        "p50_ms": round(p50, 1), "p95_ms": round(p95, 1),
        "p99_ms": round(p99, 1),
        "failed": r["failed"], "files_ok": r["files_ok"],
        "elapsed": r["elapsed"],
    }


def main():
    server, url = start_server(alloc_port())
    try:
        all_results = []
        for scenario in SCENARIOS:
            try:
                all_results.append(run_scenario(url, scenario))
            except Exception as exc:
                print(f"  [!] {scenario['label']} failed: {exc}")
            print()

        out = os.path.join(BENCH_DIR, "results_stress.json")
        with open(out, "w") as f:
            json.dump(all_results, f, indent=2)
        print(f"Results saved to {out}")

    finally:
        stop_server(server)


if __name__ == "__main__":
    main()
