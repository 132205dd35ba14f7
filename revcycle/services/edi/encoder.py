"""
EDI 837P (professional claim) encoder.

:class:`EDI837Encoder` turns a :class:`ClaimGraph` into X12 text. It reads
nothing but its arguments: the same graph, control numbers and timestamp
always produce the same bytes. ``ClaimGraph.from_claim`` builds the graph
from a loaded ``Claim`` and its related records.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from revcycle.models.enums import SubscriberRelationship
from revcycle.services.edi.codes import (
    COMPONENT_SEPARATOR,
    ELEMENT_SEPARATOR,
    IMPLEMENTATION_GUIDE_837P,
    INTERCHANGE_VERSION,
    REPETITION_SEPARATOR,
    SEGMENT_TERMINATOR,
)
from revcycle.utils.decimal_utils import format_amount, sum_money

# PAT01 individual relationship codes, patient relative to subscriber
PATIENT_RELATIONSHIP_CODES = {
    SubscriberRelationship.SPOUSE: "01",
    SubscriberRelationship.CHILD: "19",
    SubscriberRelationship.PARENT: "G8",
    SubscriberRelationship.OTHER: "G8",
}

# SBR09 claim filing indicator by plan type
CLAIM_FILING_INDICATORS = {
    "medicare": "MB",
    "medicaid": "MC",
    "hmo": "HM",
    "ppo": "12",
    "tricare": "CH",
}
DEFAULT_FILING_INDICATOR = "CI"

_DELIMITERS = SEGMENT_TERMINATOR + ELEMENT_SEPARATOR + COMPONENT_SEPARATOR + REPETITION_SEPARATOR
_STRIP_DELIMITERS = str.maketrans("", "", _DELIMITERS)


def clean(value: Optional[object]) -> str:
    """Uppercase free text and remove anything that would read as a delimiter."""
    if value is None:
        return ""
    return " ".join(str(value).translate(_STRIP_DELIMITERS).upper().split())


def strip_decimal(icd10_code: str) -> str:
    return clean(icd10_code).replace(".", "")


def d8(value: date) -> str:
    return value.strftime("%Y%m%d")


@dataclass
class Address:
    line1: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None

    @property
    def present(self) -> bool:
        return bool(self.line1 and self.city and self.state and self.zip_code)


@dataclass
class BillingProviderInfo:
    name: str
    npi: str
    tax_id: Optional[str] = None
    address: Address = field(default_factory=Address)


@dataclass
class RenderingProviderInfo:
    npi: str
    first_name: str
    last_name: str


@dataclass
class PersonInfo:
    first_name: str
    last_name: str
    date_of_birth: Optional[date] = None
    gender: Optional[str] = None
    address: Address = field(default_factory=Address)


@dataclass
class SubscriberInfo:
    person: PersonInfo
    member_id: str
    payer_name: str
    payer_id: str
    relationship: SubscriberRelationship = SubscriberRelationship.SELF
    group_number: Optional[str] = None
    plan_type: Optional[str] = None

    @property
    def is_patient(self) -> bool:
        return self.relationship == SubscriberRelationship.SELF


@dataclass
class ServiceLine:
    line_number: int
    code: str
    amount: Decimal
    units: int
    diagnosis_pointers: List[int]
    service_date: date
    modifiers: List[str] = field(default_factory=list)


@dataclass
class ClaimGraph:
    claim_number: str
    billing_provider: BillingProviderInfo
    rendering_provider: RenderingProviderInfo
    subscriber: SubscriberInfo
    patient: PersonInfo
    diagnoses: List[str]
    lines: List[ServiceLine]
    place_of_service: str = "11"
    frequency_code: str = "1"
    original_reference: Optional[str] = None

    @property
    def total_charge_amount(self) -> Decimal:
        return sum_money(line.amount for line in self.lines)

    @classmethod
    def from_claim(cls, claim) -> "ClaimGraph":
        """Build the graph from a ``Claim`` with its encounter, coverage and lines loaded."""
        encounter = claim.encounter
        patient = claim.patient
        coverage = claim.insurance
        plan = coverage.plan
        clinic = encounter.clinic
        provider = encounter.provider

        patient_info = PersonInfo(
            first_name=patient.first_name,
            last_name=patient.last_name,
            date_of_birth=patient.date_of_birth,
            gender=patient.gender,
            address=Address(patient.address_line1, patient.city, patient.state, patient.zip_code),
        )
        relationship = SubscriberRelationship(coverage.subscriber_relationship or SubscriberRelationship.SELF)
        if relationship == SubscriberRelationship.SELF:
            subscriber_person = patient_info
        else:
            subscriber_person = PersonInfo(
                first_name=coverage.subscriber_first_name or "",
                last_name=coverage.subscriber_last_name or "",
                date_of_birth=coverage.subscriber_dob,
                gender=coverage.subscriber_gender,
            )

        return cls(
            claim_number=claim.claim_number,
            billing_provider=BillingProviderInfo(
                name=clinic.name,
                npi=clinic.npi,
                tax_id=clinic.tax_id,
                address=Address(clinic.address_line1, clinic.city, clinic.state, clinic.zip_code),
            ),
            rendering_provider=RenderingProviderInfo(
                npi=provider.npi,
                first_name=provider.first_name,
                last_name=provider.last_name,
            ),
            subscriber=SubscriberInfo(
                person=subscriber_person,
                member_id=coverage.member_id,
                payer_name=plan.insurance_company,
                payer_id=plan.payer_id,
                relationship=relationship,
                group_number=coverage.group_number,
                plan_type=plan.plan_type,
            ),
            patient=patient_info,
            diagnoses=[d.icd10_code for d in encounter.diagnoses],
            lines=[
                ServiceLine(
                    line_number=link.line_number,
                    code=link.charge.code,
                    amount=link.charge.amount,
                    units=link.charge.units,
                    diagnosis_pointers=list(link.charge.diagnosis_pointers or []),
                    service_date=link.charge.service_date,
                    modifiers=list(link.charge.modifiers or []),
                )
                for link in sorted(claim.lines, key=lambda link: link.line_number)
            ],
            place_of_service=encounter.place_of_service or "11",
            frequency_code=claim.frequency_code or "1",
            original_reference=claim.payer_claim_control_number if claim.frequency_code == "7" else None,
        )


@dataclass
class InterchangeEnvelope:
    """Sender, receiver and control numbers for the ISA/GS/ST envelope."""

    control_number: int
    submitter_id: str
    submitter_name: str
    receiver_id: str
    receiver_name: str
    submitter_contact: str = "BILLING OFFICE"
    submitter_phone: str = ""
    usage_indicator: str = "P"

    @classmethod
    def from_settings(cls, settings, control_number: int) -> "InterchangeEnvelope":
        return cls(
            control_number=control_number,
            submitter_id=settings.edi_submitter_id,
            submitter_name=settings.edi_submitter_name,
            receiver_id=settings.edi_receiver_id,
            receiver_name=settings.edi_receiver_name,
            submitter_contact=settings.edi_submitter_contact,
            submitter_phone=settings.edi_submitter_phone,
            usage_indicator=settings.edi_usage_indicator,
        )


class EDI837Encoder:
    """Serializes one claim into one 837P interchange."""

    def encode(self, graph: ClaimGraph, envelope: InterchangeEnvelope, now: datetime) -> str:
        return "".join(segment + SEGMENT_TERMINATOR for segment in self.segments(graph, envelope, now))

    def segments(self, graph: ClaimGraph, envelope: InterchangeEnvelope, now: datetime) -> List[str]:
        control = envelope.control_number
        transaction_control = str(control).zfill(4)

        body: List[str] = [
            self._segment("ST", "837", transaction_control, IMPLEMENTATION_GUIDE_837P),
            self._segment("BHT", "0019", "00", clean(graph.claim_number), now.strftime("%Y%m%d"), now.strftime("%H%M%S"), "CH"),
        ]
        body.extend(self._submitter_receiver(envelope))
        body.extend(self._billing_provider(graph.billing_provider))
        body.extend(self._subscriber(graph.subscriber))
        if not graph.subscriber.is_patient:
            body.extend(self._patient(graph.patient, graph.subscriber.relationship))
        body.extend(self._claim(graph))
        for line in sorted(graph.lines, key=lambda line: line.line_number):
            body.extend(self._service_line(line))
        # SE01 counts every segment from ST through SE itself
        body.append(self._segment("SE", str(len(body) + 1), transaction_control))

        return [
            self._interchange_header(envelope, now),
            self._segment(
                "GS",
                "HC",
                clean(envelope.submitter_id),
                clean(envelope.receiver_id),
                now.strftime("%Y%m%d"),
                now.strftime("%H%M%S"),
                str(control),
                "X",
                IMPLEMENTATION_GUIDE_837P,
            ),
            *body,
            self._segment("GE", "1", str(control)),
            self._segment("IEA", "1", f"{control:09d}"),
        ]

    @staticmethod
    def _segment(segment_id: str, *elements: str) -> str:
        values = list(elements)
        while values and values[-1] == "":
            values.pop()
        return ELEMENT_SEPARATOR.join([segment_id, *values])

    def _interchange_header(self, envelope: InterchangeEnvelope, now: datetime) -> str:
        # ISA is fixed width, so empty trailing elements are kept
        return ELEMENT_SEPARATOR.join(
            [
                "ISA",
                "00",
                " " * 10,
                "00",
                " " * 10,
                "ZZ",
                clean(envelope.submitter_id)[:15].ljust(15),
                "ZZ",
                clean(envelope.receiver_id)[:15].ljust(15),
                now.strftime("%y%m%d"),
                now.strftime("%H%M"),
                REPETITION_SEPARATOR,
                INTERCHANGE_VERSION,
                f"{envelope.control_number:09d}",
                "0",
                envelope.usage_indicator,
                COMPONENT_SEPARATOR,
            ]
        )

    def _submitter_receiver(self, envelope: InterchangeEnvelope) -> List[str]:
        return [
            self._segment("NM1", "41", "2", clean(envelope.submitter_name), "", "", "", "", "46", clean(envelope.submitter_id)),
            self._segment("PER", "IC", clean(envelope.submitter_contact), "TE", clean(envelope.submitter_phone)),
            self._segment("NM1", "40", "2", clean(envelope.receiver_name), "", "", "", "", "46", clean(envelope.receiver_id)),
        ]

    def _address(self, address: Address) -> List[str]:
        if not address.present:
            return []
        return [
            self._segment("N3", clean(address.line1)),
            self._segment("N4", clean(address.city), clean(address.state), clean(address.zip_code)),
        ]

    def _demographics(self, person: PersonInfo) -> List[str]:
        if person.date_of_birth is None:
            return []
        return [self._segment("DMG", "D8", d8(person.date_of_birth), clean(person.gender) or "U")]

    def _billing_provider(self, provider: BillingProviderInfo) -> List[str]:
        segments = [
            self._segment("HL", "1", "", "20", "1"),
            self._segment("NM1", "85", "2", clean(provider.name), "", "", "", "", "XX", provider.npi),
        ]
        segments.extend(self._address(provider.address))
        if provider.tax_id:
            segments.append(self._segment("REF", "EI", clean(provider.tax_id).replace("-", "")))
        return segments

    def _subscriber(self, subscriber: SubscriberInfo) -> List[str]:
        person = subscriber.person
        filing = CLAIM_FILING_INDICATORS.get((subscriber.plan_type or "").strip().lower(), DEFAULT_FILING_INDICATOR)
        segments = [
            self._segment("HL", "2", "1", "22", "0" if subscriber.is_patient else "1"),
            self._segment(
                "SBR",
                "P",
                "18" if subscriber.is_patient else "",
                clean(subscriber.group_number),
                "",
                "",
                "",
                "",
                "",
                filing,
            ),
            self._segment("NM1", "IL", "1", clean(person.last_name), clean(person.first_name), "", "", "", "MI", clean(subscriber.member_id)),
        ]
        segments.extend(self._address(person.address))
        segments.extend(self._demographics(person))
        segments.append(
            self._segment("NM1", "PR", "2", clean(subscriber.payer_name), "", "", "", "", "PI", clean(subscriber.payer_id))
        )
        return segments

    def _patient(self, patient: PersonInfo, relationship: SubscriberRelationship) -> List[str]:
        segments = [
            self._segment("HL", "3", "2", "23", "0"),
            self._segment("PAT", PATIENT_RELATIONSHIP_CODES.get(relationship, "G8")),
            self._segment("NM1", "QC", "1", clean(patient.last_name), clean(patient.first_name)),
        ]
        segments.extend(self._address(patient.address))
        segments.extend(self._demographics(patient))
        return segments

    def _claim(self, graph: ClaimGraph) -> List[str]:
        facility = COMPONENT_SEPARATOR.join([clean(graph.place_of_service), "B", graph.frequency_code])
        segments = [
            self._segment(
                "CLM",
                clean(graph.claim_number),
                format_amount(graph.total_charge_amount),
                "",
                "",
                facility,
                "Y",
                "A",
                "Y",
                "Y",
            )
        ]

        dates = sorted(line.service_date for line in graph.lines)
        if dates:
            if dates[0] == dates[-1]:
                segments.append(self._segment("DTP", "472", "D8", d8(dates[0])))
            else:
                segments.append(self._segment("DTP", "472", "RD8", f"{d8(dates[0])}-{d8(dates[-1])}"))

        if graph.frequency_code == "7" and graph.original_reference:
            segments.append(self._segment("REF", "F8", clean(graph.original_reference)))

        codes = [strip_decimal(code) for code in graph.diagnoses]
        segments.append(self._segment("HI", COMPONENT_SEPARATOR.join(["ABK", *codes])))

        rendering = graph.rendering_provider
        segments.append(
            self._segment("NM1", "82", "1", clean(rendering.last_name), clean(rendering.first_name), "", "", "", "XX", rendering.npi)
        )
        return segments

    def _service_line(self, line: ServiceLine) -> List[str]:
        procedure = COMPONENT_SEPARATOR.join(["HC", clean(line.code), *[clean(m) for m in line.modifiers]])
        pointers = COMPONENT_SEPARATOR.join(str(p) for p in line.diagnosis_pointers)
        return [
            self._segment("LX", str(line.line_number)),
            self._segment("SV1", procedure, format_amount(line.amount), "UN", str(line.units), "", "", pointers),
            self._segment("DTP", "472", "D8", d8(line.service_date)),
        ]
