"""Run a single appointment expiration sweep and print its summary.

Usage:
    python -m pawnder.run_expiration_sweep
"""

from pawnder.core.logging import setup_logging
from pawnder.database import SessionLocal
from pawnder.services.expiration import ExpirationSweeper
from pawnder.services.notifications import DatabaseNotifier


def main() -> None:
    setup_logging()
    sweeper = ExpirationSweeper(session_factory=SessionLocal, notifier=DatabaseNotifier(SessionLocal))
    summary = sweeper.run_once()
    print(
        f"expired={summary.expired} no_show={summary.no_show} completed={summary.completed} "
        f"notification_failures={summary.notification_failures}"
    )


if __name__ == "__main__":
    main()
