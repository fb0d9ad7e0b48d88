import os
from dataclasses import dataclass
from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite://')
os.environ.setdefault('APPOINTMENT_TIMEZONE', 'Asia/Ho_Chi_Minh')
os.environ.setdefault('EXPIRATION_SWEEP_ENABLED', 'false')

from pawnder.database import Base  # noqa: E402
from pawnder.models.appointment import PENDING, PetAppointment  # noqa: E402
from pawnder.models.location import AppointmentLocation  # noqa: E402
from pawnder.models.match import MATCH_ACCEPTED, ChatMessage, Match  # noqa: E402
from pawnder.models.notification import Notification  # noqa: E402, F401
from pawnder.models.pet import Pet, PetPhoto  # noqa: E402
from pawnder.models.user import User  # noqa: E402

NOW = datetime(2026, 3, 2, 10, 0)
PARK_LATITUDE = 10.7769
PARK_LONGITUDE = 106.7009


class RecordingNotifier:
    def __init__(self, fail_for_users=()):
        self.sent: list[tuple[int, str, str]] = []
        self.fail_for_users = set(fail_for_users)

    def notify(self, user_id: int, title: str, message: str, notification_type: str) -> None:
        if user_id in self.fail_for_users:
            raise RuntimeError('notification gateway unavailable')
        self.sent.append((user_id, title, notification_type))

    def types_for(self, user_id: int) -> list[str]:
        return [notification_type for sent_to, _, notification_type in self.sent if sent_to == user_id]


@dataclass
class MatchedPair:
    inviter: User
    invitee: User
    inviter_pet: Pet
    invitee_pet: Pet
    match: Match


@pytest.fixture
def session_factory():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    try:
        yield testing_session_local
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def add_messages(db):
    def _add(match_id: int, user_id: int, count: int) -> None:
        for index in range(count):
            db.add(
                ChatMessage(
                    match_id=match_id,
                    from_user_id=user_id,
                    content=f'message {index}',
                    created_at=NOW - timedelta(days=1),
                )
            )
        db.commit()

    return _add


@pytest.fixture
def matched_pair(db, add_messages) -> MatchedPair:
    inviter = User(id=1, email='linh@example.com', full_name='Linh', role='user')
    invitee = User(id=2, email='minh@example.com', full_name='Minh', role='user')
    inviter_pet = Pet(id=10, user_id=1, name='Mochi', breed='Shiba Inu', is_deleted=False)
    invitee_pet = Pet(id=20, user_id=2, name='Bean', breed='Corgi', is_deleted=False)
    match = Match(match_id=100, from_user_id=1, to_user_id=2, status=MATCH_ACCEPTED)
    db.add_all([inviter, invitee, inviter_pet, invitee_pet, match])
    db.add_all([
        PetPhoto(pet_id=10, url='https://cdn.example.com/mochi.jpg', is_primary=True, is_deleted=False),
        PetPhoto(pet_id=20, url='https://cdn.example.com/bean.jpg', is_primary=True, is_deleted=False),
    ])
    db.commit()

    add_messages(100, 1, 5)
    add_messages(100, 2, 5)

    return MatchedPair(inviter, invitee, inviter_pet, invitee_pet, match)


@pytest.fixture
def park(db) -> AppointmentLocation:
    location = AppointmentLocation(
        name='Tao Dan Park',
        address='55C Nguyen Thi Minh Khai, District 1',
        latitude=PARK_LATITUDE,
        longitude=PARK_LONGITUDE,
        city='Ho Chi Minh City',
        district='District 1',
        is_pet_friendly=True,
        place_type='park',
        google_place_id='place-tao-dan',
        created_at=NOW,
        updated_at=NOW,
    )
    db.add(location)
    db.commit()
    db.refresh(location)
    return location


@pytest.fixture
def appointment_factory(db, matched_pair):
    def _create(
        appointment_datetime: datetime,
        status: str = PENDING,
        location_id: int | None = None,
        created_at: datetime = NOW,
        **overrides,
    ) -> PetAppointment:
        values = dict(
            match_id=matched_pair.match.match_id,
            inviter_pet_id=matched_pair.inviter_pet.id,
            inviter_user_id=matched_pair.inviter.id,
            invitee_pet_id=matched_pair.invitee_pet.id,
            invitee_user_id=matched_pair.invitee.id,
            appointment_datetime=appointment_datetime,
            location_id=location_id,
            activity_type='walk',
            status=status,
            current_decision_user_id=matched_pair.invitee.id if status == PENDING else None,
            counter_offer_count=0,
            inviter_checked_in=False,
            invitee_checked_in=False,
            created_at=created_at,
            updated_at=created_at,
        )
        values.update(overrides)
        appointment = PetAppointment(**values)
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    return _create
