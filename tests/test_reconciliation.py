"""Tests for posting remittances against claims."""
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError

from revcycle.config.settings import RevenueCycleSettings
from revcycle.models.database import Adjustment, AuditLog, Denial, Payment, RemittancePosting
from revcycle.models.enums import ClaimStatus, DenialStatus
from revcycle.services.billing.ledger import ChargeRequest
from revcycle.services.edi.remittance import decode_remittance
from revcycle.services.reconciliation.denials import DenialManager
from revcycle.services.reconciliation.processor import RemittanceProcessor
from tests.conftest import TODAY
from tests.factories import build_remittance, remittance_claim

CLAIM_NUMBER = "CLM000000001"


def paid_in_full(claim_number=CLAIM_NUMBER):
    return remittance_claim(
        claim_number,
        "1",
        "275.00",
        "200.00",
        "20.00",
        adjustments=[("PR", "2", "20.00")],
        service_lines=[
            ("99214", "165.00", "120.00", [("CO", "45", "45.00")]),
            ("99213", "110.00", "80.00", [("CO", "45", "10.00")]),
        ],
    )


def denied(claim_number=CLAIM_NUMBER, adjustments=(("CO", "50", "275.00"),)):
    return remittance_claim(claim_number, "4", "275.00", "0", adjustments=adjustments)


def post(processor, *claims, **kwargs):
    return processor.process_remittance(decode_remittance(build_remittance(list(claims), **kwargs)), "biller-1")


@pytest.mark.integration
class TestRemittancePosting:
    def test_paid_claim(self, db_session, processor, submitted_claim):
        result = post(processor, paid_in_full())

        assert result.processed_count == 1
        assert result.errors == []
        outcome = result.postings[0]
        assert outcome.status == ClaimStatus.PAID
        assert outcome.balanced is True
        assert outcome.adjustment_count == 3

        claim = submitted_claim
        assert claim.status == ClaimStatus.PAID
        assert claim.total_paid_amount == Decimal("200.00")
        assert claim.patient_responsibility == Decimal("20.00")
        assert claim.adjudication_date == date(2024, 4, 1)
        assert claim.payer_claim_control_number == "PCN0001"

        payment = db_session.scalars(select(Payment)).one()
        assert payment.amount == Decimal("200.00")
        assert payment.trace_number == "TRC0001"
        assert payment.raw_remittance.startswith(f"CLP*{CLAIM_NUMBER}*1")

        charge_ids = [link.charge.id for link in sorted(claim.lines, key=lambda link: link.line_number)]
        adjustments = db_session.scalars(select(Adjustment).order_by(Adjustment.id)).all()
        assert [(a.group_code, a.reason_code, a.amount, a.charge_id) for a in adjustments] == [
            ("PR", "2", Decimal("20.00"), None),
            ("CO", "45", Decimal("45.00"), charge_ids[0]),
            ("CO", "45", Decimal("10.00"), charge_ids[1]),
        ]

        posting = db_session.scalars(select(RemittancePosting)).one()
        assert posting.posted_by == "biller-1"
        assert posting.claim_status_code == "1"
        assert db_session.scalars(select(AuditLog).where(AuditLog.action == "remittance.posted")).one()

    def test_same_remittance_posts_once(self, db_session, processor, submitted_claim):
        post(processor, paid_in_full())

        result = post(processor, paid_in_full())

        assert result.processed_count == 0
        assert [e.error_message for e in result.errors] == [f"Remittance for claim {CLAIM_NUMBER} already posted"]
        assert len(db_session.scalars(select(Payment)).all()) == 1
        assert submitted_claim.total_paid_amount == Decimal("200.00")

    def test_unknown_claim_does_not_stop_the_file(self, db_session, processor, submitted_claim):
        result = post(processor, paid_in_full("CLM999999999"), paid_in_full())

        assert result.processed_count == 1
        assert result.errors[0].to_dict() == {
            "claim_number": "CLM999999999",
            "error_message": "Claim not found (id: CLM999999999)",
        }
        assert submitted_claim.status == ClaimStatus.PAID

    def test_claims_after_a_failed_one_still_post(
        self, db_session, processor, ledger, assembler, encounter, coverage, submitted_claim
    ):
        ledger.add_charge(ChargeRequest(encounter_id=encounter.id, code="99212", diagnosis_pointers=[1])).unwrap()
        draft = assembler.create_claim(encounter.id, coverage.id).unwrap()
        second_claim = assembler.submit_claim(draft.id).unwrap()
        assert second_claim.claim_number == "CLM000000002"

        result = post(
            processor,
            paid_in_full(),
            paid_in_full("CLMNOPE"),
            remittance_claim("CLM000000002", "1", "75.00", "75.00"),
        )

        assert result.processed_count == 2
        assert [e.to_dict() for e in result.errors] == [
            {"claim_number": "CLMNOPE", "error_message": "Claim not found (id: CLMNOPE)"},
        ]
        assert submitted_claim.status == ClaimStatus.PAID
        assert second_claim.status == ClaimStatus.PAID
        payments = db_session.scalars(select(Payment).order_by(Payment.id)).all()
        assert [(p.claim_id, p.amount) for p in payments] == [
            (submitted_claim.id, Decimal("200.00")),
            (second_claim.id, Decimal("75.00")),
        ]

    def test_partial_payment(self, processor, submitted_claim):
        result = post(processor, remittance_claim(CLAIM_NUMBER, "23", "275.00", "100.00"))

        assert result.postings[0].status == ClaimStatus.PARTIALLY_PAID
        assert result.postings[0].balanced is False
        assert submitted_claim.status == ClaimStatus.PARTIALLY_PAID

    def test_draft_claim_is_not_posted(self, processor, ledger, assembler, encounter, coverage):
        ledger.add_charge(ChargeRequest(encounter_id=encounter.id, code="99213", diagnosis_pointers=[1])).unwrap()
        claim = assembler.create_claim(encounter.id, coverage.id).unwrap()

        result = post(processor, remittance_claim(claim.claim_number, "1", "110.00", "110.00"))

        assert result.processed_count == 0
        assert "cannot move from draft" in result.errors[0].error_message
        assert claim.status == ClaimStatus.DRAFT

    def test_storage_error_rolls_back_claim(self, db_session, processor, submitted_claim, monkeypatch):
        def broken_record(*args, **kwargs):
            raise OperationalError("INSERT INTO audit_logs", {}, Exception("disk I/O error"))

        monkeypatch.setattr(processor.audit, "record", broken_record)

        result = post(processor, paid_in_full())

        assert result.processed_count == 0
        assert result.errors[0].error_message == "Storage error: OperationalError"
        assert submitted_claim.status == ClaimStatus.SUBMITTED
        assert db_session.scalars(select(Payment)).all() == []
        assert db_session.scalars(select(RemittancePosting)).all() == []

    def test_concurrent_duplicate_reported_as_already_posted(self, db_session, processor, submitted_claim, monkeypatch):
        post(processor, paid_in_full())
        # Simulate a second upload that passed the lookup before the first one committed
        monkeypatch.setattr(processor, "_already_posted", lambda event_key: False)

        result = post(processor, paid_in_full())

        assert [e.error_message for e in result.errors] == [f"Remittance for claim {CLAIM_NUMBER} already posted"]
        assert len(db_session.scalars(select(Payment)).all()) == 1

    def test_other_integrity_errors_are_storage_errors(self, db_session, processor, submitted_claim, monkeypatch):
        def broken_record(*args, **kwargs):
            raise IntegrityError(
                "INSERT INTO audit_logs", {}, Exception("NOT NULL constraint failed: audit_logs.action")
            )

        monkeypatch.setattr(processor.audit, "record", broken_record)

        result = post(processor, paid_in_full())

        assert result.errors[0].error_message == "Storage error: IntegrityError"
        assert db_session.scalars(select(RemittancePosting)).all() == []

    def test_paid_after_denial(self, processor, submitted_claim):
        post(processor, denied())

        post(processor, paid_in_full(), trace_number="TRC0002")

        assert submitted_claim.status == ClaimStatus.PAID
        assert submitted_claim.total_paid_amount == Decimal("200.00")

    def test_appealing_claim_keeps_status(self, processor, denial_manager, submitted_claim):
        denial_id = post(processor, denied()).postings[0].denial_id
        denial_manager.create_appeal(denial_id, "Records attached").unwrap()

        result = post(processor, paid_in_full(), trace_number="TRC0002")

        assert result.processed_count == 1
        assert submitted_claim.status == ClaimStatus.APPEALING
        assert submitted_claim.total_paid_amount == Decimal("200.00")


@pytest.mark.integration
class TestDenialCreation:
    def test_denied_claim_opens_denial(self, db_session, processor, scheduler, submitted_claim):
        result = post(processor, denied())

        outcome = result.postings[0]
        assert outcome.status == ClaimStatus.DENIED
        assert outcome.payment_id is None
        denial = db_session.get(Denial, outcome.denial_id)
        assert denial.code == "50"
        assert denial.reason_description.startswith("These are non-covered services")
        assert denial.denied_amount == Decimal("275.00")
        assert denial.status == DenialStatus.PENDING
        assert denial.appeal_deadline == date(2024, 6, 30)
        assert scheduler.scheduled == [(denial.id, date(2024, 6, 30))]
        assert submitted_claim.status == ClaimStatus.DENIED
        assert db_session.scalars(select(Payment)).all() == []

    def test_zero_pay_without_reason(self, db_session, processor, submitted_claim):
        result = post(processor, remittance_claim(CLAIM_NUMBER, "1", "275.00", "0.00"))

        denial = db_session.get(Denial, result.postings[0].denial_id)
        assert denial.code == "UNSPECIFIED"
        assert denial.reason_description == "No adjustment reason supplied by payer"
        assert submitted_claim.status == ClaimStatus.DENIED

    def test_repeat_denial_kept_to_one_open_denial(self, db_session, processor, scheduler, submitted_claim):
        post(processor, denied())

        result = post(processor, denied(), trace_number="TRC0002")

        assert result.processed_count == 1
        assert result.postings[0].denial_id is None
        assert len(db_session.scalars(select(Denial)).all()) == 1
        assert len(scheduler.scheduled) == 1

    def test_denial_per_remittance_policy(self, db_session, audit, scheduler, submitted_claim):
        settings = RevenueCycleSettings(DUPLICATE_DENIAL_POLICY="per_remittance")
        manager = DenialManager(db_session, audit, scheduler, settings, today=lambda: TODAY)
        processor = RemittanceProcessor(db_session, audit, manager, today=lambda: TODAY)

        post(processor, denied())
        post(processor, denied(adjustments=(("CO", "16", "275.00"),)), trace_number="TRC0002")

        codes = [d.code for d in db_session.scalars(select(Denial).order_by(Denial.id))]
        assert codes == ["50", "16"]

    def test_new_denial_after_appeal(self, db_session, processor, denial_manager, submitted_claim):
        first = post(processor, denied()).postings[0].denial_id
        denial_manager.create_appeal(first, "Medical necessity letter").unwrap()

        second = post(processor, denied(), trace_number="TRC0002").postings[0].denial_id

        assert second is not None and second != first
        assert submitted_claim.status == ClaimStatus.APPEALING

    def test_replacement_claim_gets_its_own_denial(self, db_session, processor, assembler, submitted_claim):
        first = post(processor, denied()).postings[0].denial_id
        assembler.resubmit_claim(submitted_claim.id, user_id="biller").unwrap()

        original = db_session.get(Denial, first)
        assert original.status == DenialStatus.RESOLVED
        assert original.resolution == "Superseded by replacement claim"
        audit = db_session.scalars(select(AuditLog).where(AuditLog.action == "claim.resubmitted")).one()
        assert audit.detail["superseded_denials"] == [first]

        second = post(processor, denied(adjustments=(("CO", "16", "275.00"),)), trace_number="TRC0002")

        denials = db_session.scalars(select(Denial).order_by(Denial.id)).all()
        assert [(d.code, d.status) for d in denials] == [
            ("50", DenialStatus.RESOLVED),
            ("16", DenialStatus.PENDING),
        ]
        assert second.postings[0].denial_id == denials[1].id
        assert submitted_claim.status == ClaimStatus.DENIED
