"""Tests for the 837P encoder."""
from datetime import date, datetime
from decimal import Decimal

import pytest

from revcycle.models.enums import SubscriberRelationship
from revcycle.services.edi.encoder import (
    Address,
    BillingProviderInfo,
    ClaimGraph,
    EDI837Encoder,
    InterchangeEnvelope,
    PersonInfo,
    RenderingProviderInfo,
    ServiceLine,
    SubscriberInfo,
    clean,
)

NOW = datetime(2024, 3, 16, 10, 30, 5)


def make_graph(**overrides) -> ClaimGraph:
    patient = PersonInfo(
        first_name="Jane",
        last_name="Doe",
        date_of_birth=date(1980, 5, 17),
        gender="F",
        address=Address("22 Oak Ave", "Springfield", "IL", "62704"),
    )
    values = dict(
        claim_number="CLM000000042",
        billing_provider=BillingProviderInfo(
            name="Main Street Family Medicine",
            npi="1000000001",
            tax_id="12-3456789",
            address=Address("100 Main St", "Springfield", "IL", "62701"),
        ),
        rendering_provider=RenderingProviderInfo(npi="2000000001", first_name="Alice", last_name="Rivera"),
        subscriber=SubscriberInfo(
            person=patient,
            member_id="MEM000001",
            payer_name="Acme Health",
            payer_id="PAYER001",
            group_number="GRP100",
            plan_type="PPO",
        ),
        patient=patient,
        diagnoses=["E11.9", "I10"],
        lines=[
            ServiceLine(1, "99214", Decimal("165.00"), 1, [1, 2], date(2024, 3, 15), ["25"]),
            ServiceLine(2, "36415", Decimal("12.50"), 2, [1], date(2024, 3, 15)),
        ],
    )
    values.update(overrides)
    return ClaimGraph(**values)


def make_envelope(control_number: int = 7) -> InterchangeEnvelope:
    return InterchangeEnvelope(
        control_number=control_number,
        submitter_id="REVCYCLE",
        submitter_name="Revenue Cycle Engine",
        receiver_id="CLEARINGHOUSE",
        receiver_name="Clearinghouse",
        submitter_phone="5555550100",
    )


def encode_segments(graph=None, envelope=None):
    return EDI837Encoder().segments(graph or make_graph(), envelope or make_envelope(), NOW)


@pytest.mark.unit
class TestEDI837Encoder:
    def test_envelope(self):
        segments = encode_segments()

        assert len(segments[0]) == 105
        assert segments[0].startswith("ISA*00*          *00*          *ZZ*REVCYCLE       *ZZ*CLEARINGHOUSE  *")
        assert segments[0].endswith("*240316*1030*^*00501*000000007*0*P*:")
        assert segments[1] == "GS*HC*REVCYCLE*CLEARINGHOUSE*20240316*103005*7*X*005010X222A1"
        assert segments[2] == "ST*837*0007*005010X222A1"
        assert segments[3] == "BHT*0019*00*CLM000000042*20240316*103005*CH"
        assert segments[-2] == "GE*1*7"
        assert segments[-1] == "IEA*1*000000007"

    def test_transaction_segment_count(self):
        segments = encode_segments()
        start = next(i for i, s in enumerate(segments) if s.startswith("ST*"))
        end = next(i for i, s in enumerate(segments) if s.startswith("SE*"))

        assert segments[end] == f"SE*{end - start + 1}*0007"

    def test_claim_and_service_lines(self):
        segments = encode_segments()

        assert "CLM*CLM000000042*177.50***11:B:1*Y*A*Y*Y" in segments
        assert "DTP*472*D8*20240315" in segments
        assert "HI*ABK:E119:I10" in segments
        assert "NM1*82*1*RIVERA*ALICE****XX*2000000001" in segments
        assert "SV1*HC:99214:25*165.00*UN*1***1:2" in segments
        assert "SV1*HC:36415*12.50*UN*2***1" in segments
        assert [s for s in segments if s.startswith("LX*")] == ["LX*1", "LX*2"]

    def test_billing_provider_and_subscriber(self):
        segments = encode_segments()

        assert "HL*1**20*1" in segments
        assert "NM1*85*2*MAIN STREET FAMILY MEDICINE*****XX*1000000001" in segments
        assert "REF*EI*123456789" in segments
        assert "HL*2*1*22*0" in segments
        assert "SBR*P*18*GRP100******12" in segments
        assert "NM1*IL*1*DOE*JANE****MI*MEM000001" in segments
        assert "DMG*D8*19800517*F" in segments
        assert "NM1*PR*2*ACME HEALTH*****PI*PAYER001" in segments
        assert not any(s.startswith("PAT*") for s in segments)

    def test_dependent_gets_patient_loop(self):
        patient = PersonInfo(first_name="Sam", last_name="Doe", date_of_birth=date(2015, 1, 2), gender="M")
        subscriber = SubscriberInfo(
            person=PersonInfo(first_name="Jane", last_name="Doe", date_of_birth=date(1980, 5, 17), gender="F"),
            member_id="MEM000001",
            payer_name="Acme Health",
            payer_id="PAYER001",
            relationship=SubscriberRelationship.CHILD,
        )
        segments = encode_segments(make_graph(patient=patient, subscriber=subscriber))

        assert "HL*2*1*22*1" in segments
        assert "SBR*P********CI" in segments
        assert "HL*3*2*23*0" in segments
        assert "PAT*19" in segments
        assert "NM1*QC*1*DOE*SAM" in segments

    def test_date_range_across_lines(self):
        lines = [
            ServiceLine(1, "99213", Decimal("110.00"), 1, [1], date(2024, 3, 15)),
            ServiceLine(2, "99213", Decimal("110.00"), 1, [1], date(2024, 3, 18)),
        ]
        segments = encode_segments(make_graph(lines=lines))

        assert "DTP*472*RD8*20240315-20240318" in segments

    def test_replacement_claim_references_original(self):
        segments = encode_segments(make_graph(frequency_code="7", original_reference="PCN7788"))

        assert "CLM*CLM000000042*177.50***11:B:7*Y*A*Y*Y" in segments
        assert "REF*F8*PCN7788" in segments

    def test_encoding_is_deterministic(self):
        encoder = EDI837Encoder()
        first = encoder.encode(make_graph(), make_envelope(), NOW)
        second = encoder.encode(make_graph(), make_envelope(), NOW)

        assert first == second
        assert first.endswith("IEA*1*000000007~")

    def test_free_text_cannot_break_segments(self):
        assert clean("O'Brien*Jr~ Clinic:^") == "O'BRIENJR CLINIC"
        graph = make_graph(
            rendering_provider=RenderingProviderInfo(npi="2000000001", first_name="A*B", last_name="C~D")
        )
        assert "NM1*82*1*CD*AB****XX*2000000001" in encode_segments(graph)
