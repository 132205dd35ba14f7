"""Enumerations shared by models, services and the API."""
import enum


class ChargeStatus(str, enum.Enum):
    """Charge lifecycle. A charge is pending until it is placed on a claim."""

    PENDING = "pending"
    SUBMITTED = "submitted"


class ClaimStatus(str, enum.Enum):
    """Claim lifecycle status."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    PAID = "paid"
    PARTIALLY_PAID = "partially_paid"
    DENIED = "denied"
    APPEALING = "appealing"
    RESOLVED = "resolved"


class DenialStatus(str, enum.Enum):
    PENDING = "pending"
    APPEALING = "appealing"
    RESOLVED = "resolved"


class MDMLevel(str, enum.Enum):
    """Medical decision making complexity, lowest to highest."""

    STRAIGHTFORWARD = "Straightforward"
    LOW = "Low"
    MODERATE = "Moderate"
    HIGH = "High"


class SubscriberRelationship(str, enum.Enum):
    SELF = "self"
    SPOUSE = "spouse"
    CHILD = "child"
    PARENT = "parent"
    OTHER = "other"


class DuplicateDenialPolicy(str, enum.Enum):
    """
    How repeated zero-pay remittances for the same claim turn into denials.

    IDEMPOTENT: one open denial per claim; a new one only after earlier
    denials were appealed or resolved.
    PER_REMITTANCE: every distinct remittance event creates its own denial.
    """

    IDEMPOTENT = "idempotent"
    PER_REMITTANCE = "per_remittance"
