"""Shared infrastructure for benchmark scripts.

Handles the server process lifecycle and transfer client processes.
"""

import json
import os
import socket
import subprocess
import sys
import time

BENCH_DIR = os.path.dirname(os.path.abspath(__file__))
PROJECT_DIR = os.path.dirname(BENCH_DIR)
PYTHON = sys.executable

HOST = "127.0.0.1"
ROUTE_PATH = "/speedtest"

_next_local = 19000


def alloc_port():
    global _next_local
    p = _next_local
    _next_local += 1
    return p


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def wait_tcp(host, port, timeout=30):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        try:
            with socket.create_connection((host, port), timeout=2):
                return True
        except OSError:
            time.sleep(0.3)
    return False


# ---------------------------------------------------------------------------
# Server (separate process, like real usage)
# ---------------------------------------------------------------------------

def start_server(port):
    """Start http-speedtest as a real subprocess. Returns (Popen, url)."""
    args = [PYTHON, "-m", "http_speedtest.cli",
            "--host", HOST, "-p", str(port), "--path", ROUTE_PATH]
    proc = subprocess.Popen(
        args, cwd=PROJECT_DIR,
        stdout=subprocess.DEVNULL, stderr=subprocess.PIPE,
    )

    if not wait_tcp(HOST, port, timeout=10):
        proc.kill()
        stderr = proc.stderr.read().decode()
        raise RuntimeError(f"http-speedtest not reachable on :{port} {stderr[:200]}")

    return proc, f"http://{HOST}:{port}{ROUTE_PATH}"


def stop_server(proc):
    proc.terminate()
    try:
        proc.wait(timeout=5)
    except subprocess.TimeoutExpired:
        proc.kill()


# ---------------------------------------------------------------------------
# Transfer client (separate process, like a browser)
# ---------------------------------------------------------------------------

def _run_helper(args, timeout):
    result = subprocess.run(
        [PYTHON, os.path.join(BENCH_DIR, "download_helper.py")] + args,
        capture_output=True, text=True, timeout=timeout,
    )
    if result.returncode != 0:
        raise RuntimeError(f"transfer failed: {result.stderr[:200]}")
    return json.loads(result.stdout.strip())


def download_single(url, size, timeout=600):
    """Run download_helper.py download as a subprocess. Returns dict."""
    return _run_helper(["download", url, size], timeout)


def upload_single(url, size, timeout=600):
    """Run download_helper.py upload as a subprocess. Returns dict."""
    return _run_helper(["upload", url, str(size)], timeout)


def download_stress(url, count, rps, size="10kB", timeout=600):
    """Run download_helper.py stress as a subprocess. Returns dict."""
    return _run_helper(["stress", url, str(count), str(rps), size], timeout)


# ---------------------------------------------------------------------------
# Table printing
# ---------------------------------------------------------------------------

def print_row(cols, widths):
    print("  " + " | ".join(str(c).ljust(w) for c, w in zip(cols, widths)))


def print_sep(widths):
    print("  " + "-+-".join("-" * w for w in widths))


def print_header(title):
    print()
    print("=" * 70)
    print(f"  {title}")
    print("=" * 70)
