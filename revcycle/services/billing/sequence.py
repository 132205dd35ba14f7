"""Atomic counters for claim numbers and EDI control numbers."""
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from revcycle.models.database import SequenceCounter

CLAIM_NUMBER_SEQUENCE = "claim_number"
INTERCHANGE_SEQUENCE = "interchange"

KNOWN_SEQUENCES = (CLAIM_NUMBER_SEQUENCE, INTERCHANGE_SEQUENCE)

# ISA13 is nine digits
MAX_CONTROL_NUMBER = 999_999_999


def ensure_sequences(db: Session) -> None:
    """Insert missing counters starting at zero. Caller commits."""
    existing = set(db.scalars(select(SequenceCounter.name)).all())
    for name in KNOWN_SEQUENCES:
        if name not in existing:
            db.add(SequenceCounter(name=name, last_value=0))
    db.flush()


class SequenceAllocator:
    """
    Hands out values from named counters.

    Each call is one ``UPDATE ... SET last_value = last_value + 1 RETURNING``,
    so concurrent transactions serialize on the counter row and never see the
    same value. The increment belongs to the caller's transaction: if that
    transaction rolls back, the value is released with it.
    """

    def __init__(self, db: Session):
        self.db = db

    def next_value(self, name: str) -> int:
        stmt = (
            update(SequenceCounter)
            .where(SequenceCounter.name == name)
            .values(last_value=SequenceCounter.last_value + 1)
            .returning(SequenceCounter.last_value)
            .execution_options(synchronize_session=False)
        )
        value = self.db.execute(stmt).scalar_one_or_none()
        if value is None:
            raise LookupError(f"Sequence {name!r} has not been created")
        return int(value)

    def next_claim_number(self, prefix: str) -> str:
        return f"{prefix}{self.next_value(CLAIM_NUMBER_SEQUENCE):09d}"

    def next_control_number(self) -> int:
        value = self.next_value(INTERCHANGE_SEQUENCE)
        # Control numbers wrap rather than overflow the nine-digit field
        return (value - 1) % MAX_CONTROL_NUMBER + 1
