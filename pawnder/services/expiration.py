"""
Automated time-based transitions for appointments.

Handles pending -> expired once the appointment time has passed,
confirmed -> no_show and on_going -> completed 90 minutes after it.
Each sweep works on a bounded batch, commits, then notifies both parties.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy.orm import Session

from pawnder.core import clock, config
from pawnder.models.appointment import COMPLETED, CONFIRMED, EXPIRED, NO_SHOW, ON_GOING, PENDING, PetAppointment
from pawnder.services.negotiation import transition
from pawnder.services.notifications import Notifier, send_notification

logger = logging.getLogger(__name__)

AUTO_NO_SHOW_MINUTES = 90
AUTO_COMPLETE_MINUTES = 90


@dataclass(frozen=True)
class SweepRule:
    name: str
    from_status: str
    to_status: str
    grace: timedelta
    title: str
    message: str
    notification_type: str


SWEEP_RULES = (
    SweepRule(
        name='expired',
        from_status=PENDING,
        to_status=EXPIRED,
        grace=timedelta(0),
        title='Appointment expired',
        message='The appointment expired because nobody answered before the meeting time.',
        notification_type='appointment_expired',
    ),
    SweepRule(
        name='no_show',
        from_status=CONFIRMED,
        to_status=NO_SHOW,
        grace=timedelta(minutes=AUTO_NO_SHOW_MINUTES),
        title='Appointment missed',
        message='The appointment was closed because nobody checked in on time.',
        notification_type='appointment_no_show',
    ),
    SweepRule(
        name='completed',
        from_status=ON_GOING,
        to_status=COMPLETED,
        grace=timedelta(minutes=AUTO_COMPLETE_MINUTES),
        title='Appointment completed',
        message='The appointment was completed automatically. Thank you!',
        notification_type='appointment_completed',
    ),
)


@dataclass
class SweepSummary:
    expired: int = 0
    no_show: int = 0
    completed: int = 0
    notification_failures: int = 0

    @property
    def total_updated(self) -> int:
        return self.expired + self.no_show + self.completed


def _apply_rule(
    db: Session,
    rule: SweepRule,
    now: datetime,
    notifier: Notifier | None,
    batch_size: int,
) -> tuple[int, int]:
    threshold = now - rule.grace
    candidates = db.query(PetAppointment).filter(
        PetAppointment.status == rule.from_status,
        PetAppointment.appointment_datetime <= threshold,
    ).order_by(
        PetAppointment.appointment_datetime.asc(),
    ).limit(batch_size).with_for_update(skip_locked=True).all()

    if not candidates:
        return 0, 0

    for appointment in candidates:
        transition(appointment, rule.to_status, now)
        if rule.to_status == EXPIRED:
            appointment.current_decision_user_id = None

    db.commit()

    failures = 0
    for appointment in candidates:
        for user_id in (appointment.inviter_user_id, appointment.invitee_user_id):
            if not send_notification(notifier, user_id, rule.title, rule.message, rule.notification_type):
                failures += 1

    return len(candidates), failures


def sweep_expired_appointments(
    db: Session,
    now: datetime,
    notifier: Notifier | None = None,
    batch_size: int = config.EXPIRATION_SWEEP_BATCH_SIZE,
) -> SweepSummary:
    """Run the three sweeps once against `now` (canonical reference time)."""
    summary = SweepSummary()

    for rule in SWEEP_RULES:
        updated, failures = _apply_rule(db, rule, now, notifier, batch_size)
        setattr(summary, rule.name, updated)
        if notifier is not None:
            summary.notification_failures += failures

    if summary.total_updated:
        logger.info('Expiration sweep at %s: %s', now, summary)
    else:
        logger.debug('Expiration sweep at %s: nothing to update', now)

    return summary


class ExpirationSweeper:
    """
    Periodic runner for `sweep_expired_appointments`.

    Owns one asyncio task between `start()` and `stop()`. Database work runs
    in a worker thread with a fresh session per pass, so request handling on
    the event loop is never blocked by a sweep.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        notifier: Notifier | None = None,
        clock_fn: Callable[[], datetime] | None = None,
        interval_seconds: float = config.EXPIRATION_SWEEP_INTERVAL_SECONDS,
        batch_size: int = config.EXPIRATION_SWEEP_BATCH_SIZE,
    ):
        self.session_factory = session_factory
        self.notifier = notifier
        self.interval_seconds = interval_seconds
        self.batch_size = batch_size
        self._clock_fn = clock_fn
        self._stop_event: asyncio.Event | None = None
        self._task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def now(self) -> datetime:
        return (self._clock_fn or clock.now)()

    def run_once(self) -> SweepSummary:
        db = self.session_factory()
        try:
            return sweep_expired_appointments(db, self.now(), self.notifier, self.batch_size)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    async def start(self) -> None:
        if self.is_running:
            logger.warning('Expiration sweeper is already running')
            return

        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run_loop())
        logger.info('Expiration sweeper started, running every %s seconds', self.interval_seconds)

    async def stop(self) -> None:
        if not self.is_running:
            logger.warning('Expiration sweeper is not running')
            return

        self._stop_event.set()
        await self._task
        self._task = None
        logger.info('Expiration sweeper stopped')

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await asyncio.to_thread(self.run_once)
            except Exception:
                logger.exception('Expiration sweep failed')

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass
