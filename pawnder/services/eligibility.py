"""
Pre-conditions for proposing a meeting on a match.

Reads the match, chat and pet tables owned by the surrounding system;
never writes.
"""

from sqlalchemy import func
from sqlalchemy.orm import Session

from pawnder.models.appointment import CONFIRMED, PENDING, PetAppointment
from pawnder.models.match import MATCH_ACCEPTED, ChatMessage, Match
from pawnder.models.pet import Pet, PetPhoto

MIN_MESSAGES_PER_USER = 3
MIN_MESSAGES_TOTAL = 10


def get_accepted_match(db: Session, match_id: int) -> Match | None:
    return db.query(Match).filter(
        Match.match_id == match_id,
        Match.status == MATCH_ACCEPTED,
    ).first()


def count_messages_by_user(db: Session, match_id: int, user_id: int) -> int:
    return db.query(func.count(ChatMessage.id)).filter(
        ChatMessage.match_id == match_id,
        ChatMessage.from_user_id == user_id,
    ).scalar() or 0


def is_pet_profile_complete(db: Session, pet_id: int) -> bool:
    """A complete profile has a name, a breed and at least one visible photo."""
    pet = db.query(Pet).filter(Pet.id == pet_id, Pet.is_deleted.is_not(True)).first()
    if pet is None:
        return False

    if not (pet.name or '').strip() or not (pet.breed or '').strip():
        return False

    photo = db.query(PetPhoto.id).filter(
        PetPhoto.pet_id == pet_id,
        PetPhoto.is_deleted.is_not(True),
    ).first()
    return photo is not None


def validate_preconditions(
    db: Session,
    match_id: int,
    inviter_pet_id: int,
    invitee_pet_id: int,
) -> tuple[bool, str | None]:
    if inviter_pet_id == invitee_pet_id:
        return False, 'You cannot create an appointment with your own pet.'

    match = get_accepted_match(db, match_id)
    if match is None:
        return False, 'The two of you have not matched or the match is no longer valid.'

    existing = db.query(PetAppointment).filter(
        PetAppointment.match_id == match_id,
        PetAppointment.status.in_((PENDING, CONFIRMED)),
    ).first()
    if existing is not None:
        state_text = 'awaiting a response' if existing.status == PENDING else 'already confirmed'
        return False, f'There is already an appointment {state_text} with this user. Check your appointment list.'

    from_count = count_messages_by_user(db, match_id, match.from_user_id)
    to_count = count_messages_by_user(db, match_id, match.to_user_id)
    if from_count < MIN_MESSAGES_PER_USER or to_count < MIN_MESSAGES_PER_USER:
        return False, f'Each of you needs to send at least {MIN_MESSAGES_PER_USER} messages first.'

    total = from_count + to_count
    if total < MIN_MESSAGES_TOTAL:
        return False, f'At least {MIN_MESSAGES_TOTAL} messages are needed before meeting. Current: {total}.'

    if not is_pet_profile_complete(db, inviter_pet_id):
        return False, "Your pet's profile is incomplete (name, breed and a photo are required)."

    if not is_pet_profile_complete(db, invitee_pet_id):
        return False, "The other pet's profile is incomplete."

    return True, None
