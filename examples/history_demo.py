#!/usr/bin/env python3
"""
History Demonstration - The Log Always Matches the Table

This example walks through what the transactional event log buys you:
every change to a user is committed together with an event, so the log
can be folded back into exactly the state the users table holds.

Scenario:
- Create a few users and update them (some with new passwords)
- Try an update that must fail (unknown user) and one that loses a race
- Fold the event log into a name-per-user map
- Verify it matches the users table
- Print one user's audit trail

Run:
    python examples/history_demo.py
"""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

from userlog import UserLog
from userlog.kernel.errors import UpdateConflict, UserNotFound
from userlog.kernel.time import TestTimeProvider


def print_section(title: str) -> None:
    """Print section header"""
    print(f"\n{'='*70}")
    print(f"  {title}")
    print(f"{'='*70}\n")


def fold_names(log: UserLog, since: datetime) -> dict[int, str]:
    """Rebuild each user's current name from the event log alone"""
    names: dict[int, str] = {}
    for event in log.list_events(since=since, limit=log.settings.max_limit):
        data = log.describe_event(event)["data"]
        names[data["id"]] = data["name"]
    return names


def main() -> None:
    """Run history demonstration"""

    print_section("History Demonstration - Mutations and Events Commit Together")

    db_path = Path(tempfile.mkdtemp()) / "history.db"
    fixed_time = datetime(2025, 1, 15, 10, 0, 0, tzinfo=timezone.utc)
    time_provider = TestTimeProvider(fixed_time)
    log = UserLog(db_path, time_provider=time_provider)

    print(f"Database: {db_path}")
    print(f"Fixed time: {fixed_time.isoformat()}")

    # Phase 1: Write some history
    print_section("Phase 1: Create and Update Users")

    alice = log.create_user("alice", "correct-horse")
    bob = log.create_user("bob", "battery-staple")
    print(f"✓ Created users {alice.id} (alice) and {bob.id} (bob)")

    time_provider.advance_seconds(30)
    log.update_user(alice.id, "alice.smith", "correct-horse")
    print("✓ Renamed alice, same password")

    time_provider.advance_seconds(30)
    log.update_user(bob.id, "bob", "new-battery-staple")
    print("✓ Changed bob's password")

    # Phase 2: Failures leave no trace
    print_section("Phase 2: Failed Commands Write Nothing")

    before = log.event_store.count_events()
    try:
        log.update_user(999, "ghost", "boo")
    except UserNotFound as e:
        print(f"✓ Rejected: {e}")

    try:
        log.update_user(bob.id, "robert", "x", expected_updated_at=bob.updated_at)
    except UpdateConflict as e:
        print(f"✓ Rejected: {e}")

    after = log.event_store.count_events()
    print(f"\n  Events before: {before}, after: {after}")

    # Phase 3: Rebuild from the log
    print_section("Phase 3: Fold the Event Log")

    since = fixed_time - timedelta(minutes=1)
    from_log = fold_names(log, since)
    from_table = {user.id: user.name for user in log.list_users()}

    print(f"  From log:   {from_log}")
    print(f"  From table: {from_table}")

    if from_log == from_table:
        print("\n✓✓✓ SUCCESS: The log and the table agree")
    else:
        print("\n✗✗✗ FAILURE: The log and the table differ!")

    # Phase 4: Audit trail
    print_section(f"Phase 4: Audit Trail for User {bob.id}")

    for i, event in enumerate(log.list_user_events(bob.id, since=since), 1):
        described = log.describe_event(event)
        print(f"{i}. {described['kind']} ({described['version']})")
        print(f"   Time: {described['createdAt']}")
        print(f"   Data: {described['data']}")
        print()

    print("Passwords never appear in the log, only whether they changed.")

    print("\n" + "="*70)
    print("History demonstration complete")
    print("="*70 + "\n")

    print("To explore events directly:")
    print(f"  sqlite3 {db_path}")
    print("  SELECT id, kind, created_at, payload FROM events;")


if __name__ == "__main__":
    main()
