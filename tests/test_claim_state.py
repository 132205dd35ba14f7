"""Tests for claim status transitions."""
from types import SimpleNamespace

import pytest

from revcycle.models.enums import ClaimStatus
from revcycle.services.billing.state import can_transition, transition
from revcycle.utils.errors import InvalidStateTransition


@pytest.mark.unit
class TestClaimTransitions:
    @pytest.mark.parametrize(
        "current,target",
        [
            (ClaimStatus.DRAFT, ClaimStatus.SUBMITTED),
            (ClaimStatus.SUBMITTED, ClaimStatus.PAID),
            (ClaimStatus.SUBMITTED, ClaimStatus.PARTIALLY_PAID),
            (ClaimStatus.SUBMITTED, ClaimStatus.DENIED),
            (ClaimStatus.PAID, ClaimStatus.DENIED),
            (ClaimStatus.DENIED, ClaimStatus.APPEALING),
            (ClaimStatus.DENIED, ClaimStatus.SUBMITTED),
            (ClaimStatus.APPEALING, ClaimStatus.RESOLVED),
        ],
    )
    def test_allowed(self, current, target):
        assert can_transition(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (ClaimStatus.DRAFT, ClaimStatus.PAID),
            (ClaimStatus.SUBMITTED, ClaimStatus.DRAFT),
            (ClaimStatus.PAID, ClaimStatus.SUBMITTED),
            (ClaimStatus.APPEALING, ClaimStatus.DENIED),
            (ClaimStatus.RESOLVED, ClaimStatus.APPEALING),
            (ClaimStatus.DENIED, ClaimStatus.RESOLVED),
        ],
    )
    def test_refused(self, current, target):
        assert not can_transition(current, target)

    def test_direct_resolution_when_allowed(self):
        assert can_transition(ClaimStatus.DENIED, ClaimStatus.RESOLVED, allow_direct_resolution=True)
        assert not can_transition(ClaimStatus.PAID, ClaimStatus.RESOLVED, allow_direct_resolution=True)

    def test_transition_updates_claim(self):
        claim = SimpleNamespace(claim_number="CLM000000001", status=ClaimStatus.DRAFT)

        previous = transition(claim, ClaimStatus.SUBMITTED)

        assert previous == ClaimStatus.DRAFT
        assert claim.status == ClaimStatus.SUBMITTED

    def test_transition_refused(self):
        claim = SimpleNamespace(claim_number="CLM000000001", status=ClaimStatus.RESOLVED)

        with pytest.raises(InvalidStateTransition) as exc_info:
            transition(claim, ClaimStatus.SUBMITTED)

        assert exc_info.value.details == {"resource": "Claim CLM000000001", "from": "resolved", "to": "submitted"}
        assert claim.status == ClaimStatus.RESOLVED
