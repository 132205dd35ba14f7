"""
Claim status transitions.

    draft -> submitted -> {paid | partially_paid | denied} -> appealing -> resolved

plus denied -> submitted for a corrected resubmission. Once adjudicated, a
claim may move sideways between paid / partially_paid / denied as later
remittances arrive, but never back to draft or submitted except through
resubmission. denied -> resolved is only open when the practice resolves
denials without filing an appeal.
"""
from typing import Dict, FrozenSet, Optional

from revcycle.models.enums import ClaimStatus
from revcycle.utils.errors import InvalidStateTransition

ADJUDICATED: FrozenSet[ClaimStatus] = frozenset(
    {ClaimStatus.PAID, ClaimStatus.PARTIALLY_PAID, ClaimStatus.DENIED}
)

# Claims in these states keep their status when a remittance is posted
POST_ADJUDICATION: FrozenSet[ClaimStatus] = frozenset({ClaimStatus.APPEALING, ClaimStatus.RESOLVED})

TRANSITIONS: Dict[ClaimStatus, FrozenSet[ClaimStatus]] = {
    ClaimStatus.DRAFT: frozenset({ClaimStatus.SUBMITTED}),
    ClaimStatus.SUBMITTED: ADJUDICATED,
    ClaimStatus.PAID: ADJUDICATED | {ClaimStatus.APPEALING},
    ClaimStatus.PARTIALLY_PAID: ADJUDICATED | {ClaimStatus.APPEALING},
    ClaimStatus.DENIED: ADJUDICATED | {ClaimStatus.APPEALING, ClaimStatus.SUBMITTED},
    ClaimStatus.APPEALING: frozenset({ClaimStatus.APPEALING, ClaimStatus.RESOLVED}),
    ClaimStatus.RESOLVED: frozenset(),
}


def can_transition(
    current: ClaimStatus,
    target: ClaimStatus,
    allow_direct_resolution: bool = False,
) -> bool:
    if target in TRANSITIONS.get(current, frozenset()):
        return True
    return allow_direct_resolution and current == ClaimStatus.DENIED and target == ClaimStatus.RESOLVED


def transition(claim, target: ClaimStatus, allow_direct_resolution: bool = False) -> Optional[ClaimStatus]:
    """
    Move ``claim`` to ``target``, returning the previous status.

    Raises:
        InvalidStateTransition: The move is not allowed from the claim's current status
    """
    current = ClaimStatus(claim.status)
    if not can_transition(current, target, allow_direct_resolution):
        raise InvalidStateTransition(f"Claim {claim.claim_number}", current, target)
    claim.status = target
    return current
