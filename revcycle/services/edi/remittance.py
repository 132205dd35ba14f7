"""
EDI 835 remittance advice decoder.

The decoder walks the file one segment at a time and keeps a single open
claim and a single open service line. A ``CLP`` closes whatever claim was
open and starts the next one; an ``SVC`` does the same for service lines; a
``CAS`` belongs to the open service line if there is one, otherwise to the
open claim. ``SE`` and the end of the input close everything, so files that
omit the trailer still yield their last claim.

Anything the decoder cannot read raises :class:`RemittanceParseError` with
the offending segment id and its 1-based position, so a bad file is never
mistaken for one that simply paid nothing.
"""
import hashlib
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Iterator, List, Optional, Tuple

from revcycle.services.edi.codes import COMPONENT_SEPARATOR, ELEMENT_SEPARATOR, SEGMENT_TERMINATOR
from revcycle.utils.decimal_utils import ZERO, to_money
from revcycle.utils.errors import RemittanceParseError
from revcycle.utils.logger import get_logger

logger = get_logger(__name__)

_NEWLINE_TRANSLATION_TABLE = str.maketrans("", "", "\r\n")

# CLP01..CLP05 are required to post anything
MIN_CLP_ELEMENTS = 6


@dataclass
class RemittanceAdjustment:
    group_code: str
    reason_code: str
    amount: Decimal
    quantity: Optional[Decimal] = None


@dataclass
class RemittanceServiceLine:
    procedure_code: str
    charge_amount: Decimal
    paid_amount: Decimal
    units: int = 1
    modifiers: List[str] = field(default_factory=list)
    service_date: Optional[date] = None
    adjustments: List[RemittanceAdjustment] = field(default_factory=list)


@dataclass
class RemittanceClaim:
    claim_number: str
    status_code: str
    total_charge_amount: Decimal
    total_paid_amount: Decimal
    patient_responsibility: Decimal
    payer_claim_control_number: Optional[str] = None
    patient_first_name: Optional[str] = None
    patient_last_name: Optional[str] = None
    patient_identifier: Optional[str] = None
    service_lines: List[RemittanceServiceLine] = field(default_factory=list)
    adjustments: List[RemittanceAdjustment] = field(default_factory=list)
    # Header values in effect when the claim was read
    payer_id: Optional[str] = None
    payer_name: Optional[str] = None
    trace_number: Optional[str] = None
    production_date: Optional[date] = None
    ordinal: int = 0
    raw_segments: List[str] = field(default_factory=list)

    @property
    def all_adjustments(self) -> List[RemittanceAdjustment]:
        """Claim-level adjustments followed by each service line's, in file order."""
        adjustments = list(self.adjustments)
        for line in self.service_lines:
            adjustments.extend(line.adjustments)
        return adjustments

    @property
    def raw_text(self) -> str:
        return SEGMENT_TERMINATOR.join(self.raw_segments) + SEGMENT_TERMINATOR

    @property
    def event_key(self) -> str:
        """Digest identifying this remittance event; the same file posted twice yields the same key."""
        parts = [
            self.payer_id or "",
            self.trace_number or "",
            self.production_date.isoformat() if self.production_date else "",
            self.claim_number,
            str(self.ordinal),
            self.raw_text,
        ]
        return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()


@dataclass
class RemittanceAdvice:
    claims: List[RemittanceClaim] = field(default_factory=list)
    payer_name: Optional[str] = None
    payee_name: Optional[str] = None
    payer_id: Optional[str] = None
    trace_number: Optional[str] = None
    production_date: Optional[date] = None
    payment_amount: Optional[Decimal] = None
    payment_method: Optional[str] = None
    payment_date: Optional[date] = None

    @property
    def total_paid(self) -> Decimal:
        return sum((claim.total_paid_amount for claim in self.claims), ZERO)


def iter_segments(content: str) -> Iterator[Tuple[int, List[str], str]]:
    """
    Yield ``(position, elements, raw)`` for each non-empty segment.

    Newlines are ignored. The element separator is read from the ISA header
    when the file has one.
    """
    if "\r" in content or "\n" in content:
        content = content.translate(_NEWLINE_TRANSLATION_TABLE)
    content = content.strip()
    separator = content[3] if content.startswith("ISA") and len(content) > 3 else ELEMENT_SEPARATOR

    position = 0
    for raw in content.split(SEGMENT_TERMINATOR):
        raw = raw.strip()
        if not raw:
            continue
        position += 1
        yield position, [element.strip() for element in raw.split(separator)], raw


def _element(elements: List[str], index: int) -> str:
    return elements[index] if len(elements) > index else ""


class RemittanceDecoder:
    """Decodes 835 text into :class:`RemittanceAdvice`. One decoder instance per file."""

    def __init__(self):
        self.component_separator = COMPONENT_SEPARATOR
        self.advice = RemittanceAdvice()
        self._claim: Optional[RemittanceClaim] = None
        self._line: Optional[RemittanceServiceLine] = None
        self._segment_id = ""
        self._position = 0

    def decode(self, content: str) -> RemittanceAdvice:
        if not content or not content.strip():
            raise RemittanceParseError("Remittance file is empty")

        seen_any = False
        for position, elements, raw in iter_segments(content):
            seen_any = True
            self._segment_id = elements[0].upper()
            self._position = position
            if self._claim is not None and self._segment_id not in ("SE", "CLP"):
                self._claim.raw_segments.append(raw)
            self._handle(elements, raw)

        if not seen_any:
            raise RemittanceParseError("No segments found")

        # End of input closes the last claim even without an SE trailer
        self._flush_claim()

        if not self.advice.claims:
            raise RemittanceParseError("No claims (CLP segments) found in remittance", segment_id="CLP")

        logger.info(
            "Remittance decoded",
            claims=len(self.advice.claims),
            trace_number=self.advice.trace_number,
            payer_id=self.advice.payer_id,
        )
        return self.advice

    def _fail(self, message: str) -> RemittanceParseError:
        return RemittanceParseError(
            f"{message} ({self._segment_id} segment at position {self._position})",
            segment_id=self._segment_id,
            position=self._position,
        )

    def _amount(self, value: str, required: bool = True) -> Decimal:
        if not value:
            if required:
                raise self._fail("Missing amount")
            return ZERO
        try:
            return to_money(value)
        except ValueError:
            raise self._fail(f"Invalid amount {value!r}") from None

    def _units(self, value: str) -> int:
        try:
            quantity = Decimal(value)
            if not quantity.is_finite() or quantity != quantity.to_integral_value():
                raise ValueError(value)
            return int(quantity)
        except (InvalidOperation, ValueError, OverflowError):
            raise self._fail(f"Invalid unit count {value!r}") from None

    def _date(self, value: str) -> date:
        try:
            return datetime.strptime(value, "%Y%m%d").date()
        except ValueError:
            raise self._fail(f"Invalid date {value!r}") from None

    def _handle(self, elements: List[str], raw: str) -> None:
        segment_id = self._segment_id
        if segment_id == "ISA":
            if len(elements) > 16 and elements[16]:
                self.component_separator = elements[16][0]
        elif segment_id == "ST":
            if _element(elements, 1) != "835":
                raise self._fail(f"Expected an 835 transaction, got {_element(elements, 1) or 'none'}")
        elif segment_id == "BPR":
            self.advice.payment_amount = self._amount(_element(elements, 2), required=False)
            self.advice.payment_method = _element(elements, 4) or None
            if _element(elements, 16):
                self.advice.payment_date = self._date(elements[16])
        elif segment_id == "TRN":
            self.advice.trace_number = _element(elements, 2) or None
        elif segment_id == "DTM":
            self._handle_dtm(elements)
        elif segment_id == "N1":
            self._handle_n1(elements)
        elif segment_id == "REF":
            if _element(elements, 1) == "EV":
                self.advice.payer_id = _element(elements, 2) or None
        elif segment_id == "CLP":
            self._open_claim(elements, raw)
        elif segment_id == "NM1":
            if self._claim is not None and _element(elements, 1) == "QC":
                self._claim.patient_last_name = _element(elements, 3) or None
                self._claim.patient_first_name = _element(elements, 4) or None
                self._claim.patient_identifier = _element(elements, 9) or None
        elif segment_id == "SVC":
            self._open_line(elements)
        elif segment_id == "CAS":
            self._add_adjustments(elements)
        elif segment_id == "SE":
            self._flush_claim()

    def _handle_dtm(self, elements: List[str]) -> None:
        qualifier = _element(elements, 1)
        if qualifier == "405":
            self.advice.production_date = self._date(_element(elements, 2))
        elif qualifier == "472" and self._line is not None:
            self._line.service_date = self._date(_element(elements, 2))

    def _handle_n1(self, elements: List[str]) -> None:
        qualifier = _element(elements, 1)
        if qualifier == "PR":
            self.advice.payer_name = _element(elements, 2) or None
            if not self.advice.payer_id and _element(elements, 4):
                self.advice.payer_id = elements[4]
        elif qualifier == "PE":
            self.advice.payee_name = _element(elements, 2) or None

    def _open_claim(self, elements: List[str], raw: str) -> None:
        self._flush_claim()
        if len(elements) < MIN_CLP_ELEMENTS or not elements[1]:
            raise self._fail("CLP segment is missing required elements")

        self._claim = RemittanceClaim(
            claim_number=elements[1],
            status_code=elements[2],
            total_charge_amount=self._amount(elements[3]),
            total_paid_amount=self._amount(elements[4]),
            patient_responsibility=self._amount(elements[5], required=False),
            payer_claim_control_number=_element(elements, 7) or None,
            payer_id=self.advice.payer_id,
            payer_name=self.advice.payer_name,
            trace_number=self.advice.trace_number,
            production_date=self.advice.production_date,
            ordinal=len(self.advice.claims) + 1,
            raw_segments=[raw],
        )

    def _open_line(self, elements: List[str]) -> None:
        if self._claim is None:
            raise self._fail("Service line found outside of a claim")
        self._flush_line()

        components = _element(elements, 1).split(self.component_separator)
        procedure_code = components[1] if len(components) > 1 else components[0]
        if not procedure_code:
            raise self._fail("Service line has no procedure code")

        units = 1
        if _element(elements, 5):
            units = self._units(elements[5])

        self._line = RemittanceServiceLine(
            procedure_code=procedure_code,
            modifiers=[m for m in components[2:] if m],
            charge_amount=self._amount(_element(elements, 2)),
            paid_amount=self._amount(_element(elements, 3), required=False),
            units=units,
        )

    def _add_adjustments(self, elements: List[str]) -> None:
        if self._claim is None:
            raise self._fail("Adjustment found outside of a claim")
        group_code = _element(elements, 1)
        if not group_code:
            raise self._fail("Adjustment has no group code")

        target = self._line.adjustments if self._line is not None else self._claim.adjustments
        # Up to six reason / amount / quantity triples follow the group code
        for index in range(2, len(elements), 3):
            reason_code = elements[index]
            if not reason_code:
                continue
            quantity = _element(elements, index + 2)
            target.append(
                RemittanceAdjustment(
                    group_code=group_code,
                    reason_code=reason_code,
                    amount=self._amount(_element(elements, index + 1)),
                    quantity=self._amount(quantity) if quantity else None,
                )
            )

    def _flush_line(self) -> None:
        if self._line is not None and self._claim is not None:
            self._claim.service_lines.append(self._line)
        self._line = None

    def _flush_claim(self) -> None:
        self._flush_line()
        if self._claim is not None:
            self.advice.claims.append(self._claim)
        self._claim = None


def decode_remittance(content: str) -> RemittanceAdvice:
    return RemittanceDecoder().decode(content)
