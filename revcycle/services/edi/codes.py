"""X12 code tables used when reading and writing claims and remittances."""

# Delimiters written on outbound 837s
SEGMENT_TERMINATOR = "~"
ELEMENT_SEPARATOR = "*"
COMPONENT_SEPARATOR = ":"
REPETITION_SEPARATOR = "^"

IMPLEMENTATION_GUIDE_837P = "005010X222A1"
INTERCHANGE_VERSION = "00501"

# Status codes that mean the payer processed and paid the claim
PAID_STATUS_CODES = frozenset({"1", "2", "3", "19", "20", "21"})
DENIED_STATUS_CODES = frozenset({"4"})

# Claim adjustment reason codes (CARC) with the descriptions shown on denials
CARC_DESCRIPTIONS = {
    "1": "Deductible amount",
    "2": "Coinsurance amount",
    "3": "Copay amount",
    "4": "The procedure code is inconsistent with the modifier used",
    "11": "The diagnosis is inconsistent with the procedure",
    "16": "Claim/service lacks information or has submission/billing error(s)",
    "18": "Exact duplicate claim/service",
    "22": "This care may be covered by another payer per coordination of benefits",
    "27": "Expenses incurred after coverage terminated",
    "29": "The time limit for filing has expired",
    "31": "Patient cannot be identified as our insured",
    "45": "Charge exceeds fee schedule/maximum allowable",
    "50": "These are non-covered services because this is not deemed a medical necessity by the payer",
    "96": "Non-covered charge(s)",
    "97": "The benefit for this service is included in payment for another service",
    "109": "Claim/service not covered by this payer/contractor",
    "167": "This (these) diagnosis(es) is (are) not covered",
    "185": "The rendering provider is not eligible to perform the service billed",
    "197": "Precertification/authorization/notification absent",
    "204": "This service/equipment/drug is not covered under the patient's current benefit plan",
    "222": "Exceeds the contracted maximum number of hours/days/units by this provider for this period",
}

# Used when a denial arrives without any CAS segment to explain it
UNSPECIFIED_DENIAL_CODE = "UNSPECIFIED"


def describe_reason_code(code: str) -> str:
    """Description for a CARC; unknown codes read ``"Code {code}"``."""
    if code == UNSPECIFIED_DENIAL_CODE:
        return "No adjustment reason supplied by payer"
    return CARC_DESCRIPTIONS.get(code, f"Code {code}")


def is_paid_status(status_code: str) -> bool:
    return status_code in PAID_STATUS_CODES


def is_denied_status(status_code: str) -> bool:
    return status_code in DENIED_STATUS_CODES
