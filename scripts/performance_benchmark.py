#!/usr/bin/env python3
"""
Performance Benchmark for userlog

Measures the write path (one transaction per command, mutation + event)
and the cursor read path against rough targets:

- Commands: >500 commands/sec, single writer
- Cursor reads: <50ms per 1000-event page
- Concurrent writers: no lost or duplicated event ids

Run:
    python scripts/performance_benchmark.py
"""

import tempfile
import threading
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path

from userlog import UserLog
from userlog.kernel.time import TestTimeProvider

START = datetime(2025, 1, 15, 10, 0, 0, tzinfo=timezone.utc)


def fresh_userlog(name: str) -> UserLog:
    db_path = Path(tempfile.mkdtemp()) / f"{name}.db"
    return UserLog(db_path, time_provider=TestTimeProvider(START))


def benchmark_command_rate() -> dict:
    """Benchmark create/update throughput"""
    print("\n=== Benchmark: Command Rate ===")

    log = fresh_userlog("commands")
    num_users = 500

    start_time = time.time()
    for i in range(num_users):
        user = log.create_user(f"user_{i}", "pw")
        log.update_user(user.id, f"user_{i}", "pw2")
    elapsed = time.time() - start_time

    commands = num_users * 2
    per_sec = commands / elapsed if elapsed > 0 else 0

    print(f"  Commands: {commands}")
    print(f"  Time elapsed: {elapsed:.2f}s")
    print(f"  Commands/sec: {per_sec:.1f}")
    print(f"  Target: >500 commands/sec")
    print(f"  Status: {'✓ PASS' if per_sec > 500 else '✗ FAIL'}")

    return {
        "test": "command_rate",
        "commands": commands,
        "elapsed_sec": elapsed,
        "commands_per_sec": per_sec,
        "target": 500,
        "pass": per_sec > 500,
    }


def benchmark_cursor_reads() -> dict:
    """Benchmark paging through the log with a created_at cursor"""
    print("\n=== Benchmark: Cursor Reads ===")

    log = fresh_userlog("reads")
    print("  Creating 5,000 events...")
    for i in range(5000):
        log.create_user(f"user_{i}", "pw")
        log.time_provider.advance_seconds(1)

    since = START - timedelta(seconds=1)
    pages = 0
    seen = 0
    start_time = time.time()
    while True:
        page = log.list_events(since=since, limit=1000)
        if not page:
            break
        pages += 1
        seen += len(page)
        since = page[-1].created_at + timedelta(microseconds=1)
    elapsed_ms = (time.time() - start_time) * 1000
    per_page = elapsed_ms / pages if pages else 0

    print(f"  Pages: {pages}, events: {seen}")
    print(f"  Per page: {per_page:.1f}ms")
    print(f"  Target: <50ms per page")
    print(f"  Status: {'✓ PASS' if per_page < 50 else '✗ FAIL'}")

    return {
        "test": "cursor_reads",
        "events": seen,
        "elapsed_ms": elapsed_ms,
        "target_ms": 50,
        "pass": per_page < 50 and seen == 5000,
    }


def benchmark_concurrent_writers() -> dict:
    """Benchmark several threads updating the same user"""
    print("\n=== Benchmark: Concurrent Writers ===")

    log = UserLog(Path(tempfile.mkdtemp()) / "concurrent.db")
    user = log.create_user("shared", "pw")
    threads_count = 8
    per_thread = 50

    def worker(n: int) -> None:
        for i in range(per_thread):
            log.update_user(user.id, f"writer_{n}_{i}", "pw")

    start_time = time.time()
    threads = [threading.Thread(target=worker, args=(n,)) for n in range(threads_count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    elapsed = time.time() - start_time

    events = log.list_user_events(user.id, since=START, limit=log.settings.max_limit)
    ids = [e.id for e in events]
    expected = 1 + threads_count * per_thread
    ok = len(ids) == expected and len(set(ids)) == expected

    print(f"  Updates: {threads_count * per_thread} from {threads_count} threads")
    print(f"  Time: {elapsed:.2f}s")
    print(f"  Events recorded: {len(ids)} (expected {expected})")
    print(f"  Status: {'✓ PASS' if ok else '✗ FAIL'}")

    return {
        "test": "concurrent_writers",
        "writes": threads_count * per_thread,
        "elapsed_sec": elapsed,
        "pass": ok,
    }


def main() -> None:
    """Run all benchmarks"""
    print("\n" + "="*70)
    print("  userlog - Performance Benchmark Suite")
    print("="*70)

    results = [
        benchmark_command_rate(),
        benchmark_cursor_reads(),
        benchmark_concurrent_writers(),
    ]

    print("\n" + "="*70)
    print("  Summary")
    print("="*70)

    passed = sum(1 for r in results if r["pass"])
    for result in results:
        status = "✓ PASS" if result["pass"] else "✗ FAIL"
        print(f"  {result['test']:30s} {status}")

    print(f"\n  Tests passed: {passed}/{len(results)}")
    print("\n" + "="*70 + "\n")


if __name__ == "__main__":
    main()
