"""CLI tool for admin operations.

Usage:
    python -m alert_relay.cli parse "<alert text>"
    python -m alert_relay.cli generate-key
    python -m alert_relay.cli prune-logs
"""

import json
import sys

from alert_relay.config import settings
from alert_relay.errors import WebhookError
from alert_relay.services.encryption import generate_key
from alert_relay.services.parser import read_payload, to_signal


def parse(text: str):
    """Dry-run the normaliser on an alert line or JSON body."""
    try:
        signal = to_signal(read_payload(text))
    except WebhookError as e:
        print(f"Parse failed: {e}")
        sys.exit(1)
    print(json.dumps(signal.summary(), indent=2))


def prune_logs():
    from alert_relay.database import create_db_and_tables, engine
    from alert_relay.services.activity_log import run_prune

    create_db_and_tables()
    deleted = run_prune(engine, settings.activity_log_max_rows)
    print(f"Deleted {deleted} activity log rows (keeping {settings.activity_log_max_rows}).")


def main():
    if len(sys.argv) < 2:
        print("Usage: python -m alert_relay.cli <command>")
        print("Commands: parse <text>, generate-key, prune-logs")
        sys.exit(1)

    command = sys.argv[1]
    if command == "parse":
        if len(sys.argv) < 3:
            print('Usage: python -m alert_relay.cli parse "<alert text>"')
            sys.exit(1)
        parse(" ".join(sys.argv[2:]))
    elif command == "generate-key":
        print(generate_key())
    elif command == "prune-logs":
        prune_logs()
    else:
        print(f"Unknown command: {command}")
        sys.exit(1)


if __name__ == "__main__":
    main()
