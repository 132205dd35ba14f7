"""
Revenue cycle tables.

Charges, claims and their line links, payments, adjustments, denials and
appeals, the remittance idempotency ledger, sequence counters and the audit
trail. Money is ``Numeric(12, 2)`` everywhere and is handled as ``Decimal``.

Payments and adjustments are append-only: remittance posting only ever
inserts them, and a replayed remittance is stopped by the unique
``remittance_postings.event_key`` before anything is written.
"""
from sqlalchemy import (
    BigInteger,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from revcycle.config.database import Base, TimestampMixin
from revcycle.models.enums import ChargeStatus, ClaimStatus, DenialStatus


class SequenceCounter(Base):
    """
    Named monotonically increasing counter.

    Values are handed out with a single ``UPDATE ... RETURNING`` so two callers
    can never read the same ``last_value``.
    """

    __tablename__ = "sequences"

    name = Column(String(50), primary_key=True)
    last_value = Column(BigInteger, nullable=False, default=0)


class Charge(Base, TimestampMixin):
    """
    A billable line item for an encounter.

    ``diagnosis_pointers`` holds 1-based positions into the encounter's ranked
    diagnosis list, in the order the payer should read them.
    """

    __tablename__ = "charges"
    __table_args__ = (
        UniqueConstraint("encounter_id", "code", "service_date", name="uq_charge_encounter_code_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    encounter_id = Column(Integer, ForeignKey("encounters.id"), nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False)
    code = Column(String(10), nullable=False)
    description = Column(String(255))
    modifiers = Column(JSON, nullable=False, default=list)
    units = Column(Integer, nullable=False, default=1)
    amount = Column(Numeric(12, 2), nullable=False)
    diagnosis_pointers = Column(JSON, nullable=False, default=list)
    service_date = Column(Date, nullable=False)
    status = Column(SQLEnum(ChargeStatus), nullable=False, default=ChargeStatus.PENDING, index=True)

    encounter = relationship("Encounter")
    claim_link = relationship("ClaimCharge", back_populates="charge", uselist=False)


class Claim(Base, TimestampMixin):
    """
    A payer claim built from an encounter's charges.

    ``edi_content`` keeps the last 837 that was sent so a submission can be
    reproduced exactly. ``frequency_code`` is 1 for an original claim and 7
    once the claim has been resubmitted as a replacement.
    """

    __tablename__ = "claims"

    id = Column(Integer, primary_key=True, index=True)
    encounter_id = Column(Integer, ForeignKey("encounters.id"), nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    insurance_id = Column(Integer, ForeignKey("patient_insurance.id"), nullable=False)
    claim_number = Column(String(30), unique=True, nullable=False, index=True)
    total_charge_amount = Column(Numeric(12, 2), nullable=False, default=0)
    total_paid_amount = Column(Numeric(12, 2), nullable=False, default=0)
    patient_responsibility = Column(Numeric(12, 2), nullable=False, default=0)
    status = Column(SQLEnum(ClaimStatus), nullable=False, default=ClaimStatus.DRAFT, index=True)
    submission_date = Column(DateTime)
    adjudication_date = Column(Date)
    clearinghouse_claim_id = Column(String(100))
    # CLP07 from the latest remittance; referenced by REF*F8 on a replacement claim
    payer_claim_control_number = Column(String(50))
    frequency_code = Column(String(1), nullable=False, default="1")
    submission_count = Column(Integer, nullable=False, default=0)
    edi_content = Column(Text)

    encounter = relationship("Encounter")
    patient = relationship("Patient")
    insurance = relationship("PatientInsurance")
    lines = relationship(
        "ClaimCharge",
        back_populates="claim",
        order_by="ClaimCharge.line_number",
        cascade="all, delete-orphan",
    )
    payments = relationship("Payment", back_populates="claim")
    adjustments = relationship("Adjustment", back_populates="claim")
    denials = relationship("Denial", back_populates="claim", order_by="Denial.id")


class ClaimCharge(Base):
    """Service line: links a charge to exactly one claim at a fixed line number."""

    __tablename__ = "claim_charges"
    __table_args__ = (
        UniqueConstraint("charge_id", name="uq_claim_charge_charge"),
        UniqueConstraint("claim_id", "line_number", name="uq_claim_charge_line"),
    )

    id = Column(Integer, primary_key=True, index=True)
    claim_id = Column(Integer, ForeignKey("claims.id"), nullable=False, index=True)
    charge_id = Column(Integer, ForeignKey("charges.id"), nullable=False)
    line_number = Column(Integer, nullable=False)

    claim = relationship("Claim", back_populates="lines")
    charge = relationship("Charge", back_populates="claim_link")


class Payment(Base, TimestampMixin):
    """Money received against a claim. Never updated after insert."""

    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    claim_id = Column(Integer, ForeignKey("claims.id"), nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    payment_date = Column(Date, nullable=False)
    source = Column(String(20), nullable=False, default="ERA")
    trace_number = Column(String(50), index=True)
    raw_remittance = Column(Text)

    claim = relationship("Claim", back_populates="payments")


class Adjustment(Base, TimestampMixin):
    """
    A CAS adjustment from a remittance.

    ``charge_id`` is set when the adjustment came from a service line that
    matched one of the claim's charges; claim-level adjustments leave it null.
    """

    __tablename__ = "adjustments"

    id = Column(Integer, primary_key=True, index=True)
    claim_id = Column(Integer, ForeignKey("claims.id"), nullable=False, index=True)
    charge_id = Column(Integer, ForeignKey("charges.id"), nullable=True)
    group_code = Column(String(2), nullable=False)  # CO, PR, OA, PI, CR
    reason_code = Column(String(10), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    quantity = Column(Numeric(10, 2))

    claim = relationship("Claim", back_populates="adjustments")


class Denial(Base, TimestampMixin):
    """A payer denial of a claim and its appeal/resolution state."""

    __tablename__ = "denials"

    id = Column(Integer, primary_key=True, index=True)
    claim_id = Column(Integer, ForeignKey("claims.id"), nullable=False, index=True)
    code = Column(String(20), nullable=False)
    reason_description = Column(Text)
    denied_amount = Column(Numeric(12, 2), nullable=False, default=0)
    status = Column(SQLEnum(DenialStatus), nullable=False, default=DenialStatus.PENDING, index=True)
    appeal_deadline = Column(Date, index=True)
    remittance_key = Column(String(64), index=True)
    appealed_by = Column(String(100))
    resolution = Column(Text)
    resolved_by = Column(String(100))
    resolved_at = Column(DateTime)

    claim = relationship("Claim", back_populates="denials")
    appeals = relationship("DenialAppeal", back_populates="denial", order_by="DenialAppeal.id")

    @property
    def is_open(self) -> bool:
        return self.status != DenialStatus.RESOLVED


class DenialAppeal(Base):
    __tablename__ = "denial_appeals"

    id = Column(Integer, primary_key=True, index=True)
    denial_id = Column(Integer, ForeignKey("denials.id"), nullable=False, index=True)
    claim_id = Column(Integer, ForeignKey("claims.id"), nullable=False, index=True)
    reason = Column(Text, nullable=False)
    supporting_documents = Column(JSON, nullable=False, default=list)
    created_by = Column(String(100))
    created_at = Column(DateTime, default=func.now(), nullable=False)

    denial = relationship("Denial", back_populates="appeals")


class RemittancePosting(Base):
    """
    One row per remittance claim record that was posted.

    ``event_key`` is a digest of the payer, trace number, production date,
    claim number, the record's ordinal in the file and its raw segments, so
    re-uploading the same 835 cannot post twice while two genuinely different
    remittances for one claim both post.
    """

    __tablename__ = "remittance_postings"
    __table_args__ = (UniqueConstraint("event_key", name="uq_remittance_postings_event_key"),)

    id = Column(Integer, primary_key=True, index=True)
    event_key = Column(String(64), nullable=False)
    claim_id = Column(Integer, ForeignKey("claims.id"), nullable=False, index=True)
    trace_number = Column(String(50))
    payer_id = Column(String(50))
    claim_status_code = Column(String(5))
    paid_amount = Column(Numeric(12, 2), nullable=False, default=0)
    posted_by = Column(String(100))
    posted_at = Column(DateTime, default=func.now(), nullable=False)


class AuditLog(Base):
    """Who did what to which billing record. Written in the same transaction as the change."""

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(100), index=True)
    action = Column(String(50), nullable=False, index=True)
    resource = Column(String(100), nullable=False, index=True)
    detail = Column(JSON)
    created_at = Column(DateTime, default=func.now(), nullable=False, index=True)
