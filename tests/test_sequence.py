"""Tests for claim number and control number allocation."""
import pytest

from revcycle.models.database import SequenceCounter
from revcycle.services.billing.sequence import (
    INTERCHANGE_SEQUENCE,
    MAX_CONTROL_NUMBER,
    SequenceAllocator,
)


@pytest.mark.integration
class TestSequenceAllocator:
    def test_values_increase(self, db_session):
        allocator = SequenceAllocator(db_session)

        assert allocator.next_claim_number("CLM") == "CLM000000001"
        assert allocator.next_claim_number("CLM") == "CLM000000002"
        assert allocator.next_control_number() == 1

    def test_rollback_releases_value(self, db_session):
        allocator = SequenceAllocator(db_session)
        allocator.next_value(INTERCHANGE_SEQUENCE)
        db_session.rollback()

        assert allocator.next_value(INTERCHANGE_SEQUENCE) == 1

    def test_unknown_sequence(self, db_session):
        with pytest.raises(LookupError):
            SequenceAllocator(db_session).next_value("invoice")

    def test_control_number_wraps(self, db_session):
        counter = db_session.get(SequenceCounter, INTERCHANGE_SEQUENCE)
        counter.last_value = MAX_CONTROL_NUMBER - 1
        db_session.commit()
        allocator = SequenceAllocator(db_session)

        assert allocator.next_control_number() == MAX_CONTROL_NUMBER
        assert allocator.next_control_number() == 1
