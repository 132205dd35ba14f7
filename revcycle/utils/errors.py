"""Error taxonomy for the revenue cycle and the FastAPI handlers that render it."""
from typing import Any, Optional

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from revcycle.config.sentry import add_breadcrumb, capture_exception, settings as sentry_settings
from revcycle.utils.logger import get_logger

logger = get_logger(__name__)


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        code: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.code = code or "APP_ERROR"
        self.details = details or {}
        super().__init__(self.message)


# --- 400: caller supplied bad data -------------------------------------------


class ValidationError(AppError):
    """Validation error."""

    def __init__(self, message: str, details: Optional[dict] = None, code: str = "VALIDATION_ERROR"):
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            code=code,
            details=details or {},
        )


class ClaimValidationError(ValidationError):
    """A claim is missing data the payer requires. ``field`` names what is wrong."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message, details={"field": field}, code="CLAIM_VALIDATION_ERROR")


class MissingDiagnosisLink(ValidationError):
    def __init__(self, code: str):
        super().__init__(
            f"Charge for {code} must point to at least one diagnosis",
            details={"code": code},
            code="MISSING_DIAGNOSIS_LINK",
        )


class InvalidDiagnosisPointer(ValidationError):
    def __init__(self, message: str, pointers: Optional[list] = None):
        super().__init__(message, details={"diagnosis_pointers": pointers or []}, code="INVALID_DIAGNOSIS_POINTER")


# --- 404 ---------------------------------------------------------------------


class NotFoundError(AppError):
    """Resource not found error."""

    def __init__(self, resource: str, identifier: Optional[Any] = None, code: str = "NOT_FOUND"):
        message = f"{resource} not found"
        if identifier is not None:
            message += f" (id: {identifier})"
        self.resource = resource
        self.identifier = identifier
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            code=code,
        )


class CodeNotFound(NotFoundError):
    def __init__(self, code: str):
        super().__init__("Billing code", code, code="CODE_NOT_FOUND")


class ClaimNotFound(NotFoundError):
    def __init__(self, identifier: Any):
        super().__init__("Claim", identifier, code="CLAIM_NOT_FOUND")


class DenialNotFound(NotFoundError):
    def __init__(self, identifier: Any):
        super().__init__("Denial", identifier, code="DENIAL_NOT_FOUND")


class EncounterNotFound(NotFoundError):
    def __init__(self, identifier: Any):
        super().__init__("Encounter", identifier, code="ENCOUNTER_NOT_FOUND")


class ChargeNotFound(NotFoundError):
    def __init__(self, identifier: Any):
        super().__init__("Charge", identifier, code="CHARGE_NOT_FOUND")


class InsuranceNotFound(NotFoundError):
    def __init__(self, identifier: Any):
        super().__init__("Insurance", identifier, code="INSURANCE_NOT_FOUND")


# --- 409 / 422: request conflicts with current state ---------------------------


class ConflictError(AppError):
    """The request is well formed but conflicts with stored state."""

    def __init__(self, message: str, code: str = "CONFLICT", details: Optional[dict] = None):
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            code=code,
            details=details,
        )


class DuplicateCharge(ConflictError):
    def __init__(self, encounter_id: int, code: str, service_date: Any):
        super().__init__(
            f"Charge {code} already recorded for encounter {encounter_id} on {service_date}",
            code="DUPLICATE_CHARGE",
            details={"encounter_id": encounter_id, "code": code, "service_date": str(service_date)},
        )


class ChargeLocked(ConflictError):
    def __init__(self, charge_id: int):
        super().__init__(
            f"Charge {charge_id} is already on a claim and can no longer change",
            code="CHARGE_LOCKED",
            details={"charge_id": charge_id},
        )


class ChargeConflict(ConflictError):
    def __init__(self, encounter_id: int, expected: int, updated: int):
        super().__init__(
            f"Pending charges for encounter {encounter_id} changed while the claim was being built",
            code="CHARGE_CONFLICT",
            details={"encounter_id": encounter_id, "expected": expected, "updated": updated},
        )


class InvalidStateTransition(ConflictError):
    def __init__(self, resource: str, current: Any, target: Any):
        current_value = getattr(current, "value", current)
        target_value = getattr(target, "value", target)
        super().__init__(
            f"{resource} cannot move from {current_value} to {target_value}",
            code="INVALID_STATE_TRANSITION",
            details={"resource": resource, "from": current_value, "to": target_value},
        )


class DuplicateRemittance(ConflictError):
    def __init__(self, claim_number: str):
        super().__init__(
            f"Remittance for claim {claim_number} already posted",
            code="DUPLICATE_REMITTANCE",
            details={"claim_number": claim_number},
        )


class NoChargesToBill(AppError):
    def __init__(self, encounter_id: int):
        super().__init__(
            message=f"Encounter {encounter_id} has no pending charges to bill",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            code="NO_CHARGES_TO_BILL",
            details={"encounter_id": encounter_id},
        )


class RemittanceParseError(AppError):
    """An 835 could not be read. Carries the offending segment and its position."""

    def __init__(self, message: str, segment_id: Optional[str] = None, position: Optional[int] = None):
        self.segment_id = segment_id
        self.position = position
        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            code="REMITTANCE_PARSE_ERROR",
            details={"segment_id": segment_id, "position": position},
        )


# --- 502: a downstream system failed ------------------------------------------


class ExternalServiceError(AppError):
    def __init__(self, message: str, service: str, code: str = "EXTERNAL_SERVICE_ERROR"):
        super().__init__(
            message=message,
            status_code=status.HTTP_502_BAD_GATEWAY,
            code=code,
            details={"service": service},
        )


class ClearinghouseSubmissionFailed(ExternalServiceError):
    def __init__(self, message: str):
        super().__init__(message, service="clearinghouse", code="CLEARINGHOUSE_SUBMISSION_FAILED")


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle application errors."""
    add_breadcrumb(
        message=f"Application error: {exc.code}",
        category="error",
        level="warning" if exc.status_code < 500 else "error",
        data={
            "path": request.url.path,
            "method": request.method,
            "status_code": exc.status_code,
        },
    )

    logger.warning(
        "Application error",
        error=exc.code,
        message=exc.message,
        path=request.url.path,
        status_code=exc.status_code,
    )

    # Client errors only alert when explicitly configured
    should_alert = sentry_settings.enable_alerts and (
        exc.status_code >= 500 or sentry_settings.alert_on_errors
    )
    if should_alert:
        capture_exception(
            exc,
            level="error" if exc.status_code >= 500 else "warning",
            context={"error": {"code": exc.code, "status_code": exc.status_code}},
            tags={"error_type": exc.code, "path": request.url.path},
        )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.code,
            "message": exc.message,
            "details": exc.details,
        },
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request body / query validation errors."""
    add_breadcrumb(
        message="Request validation failed",
        category="validation",
        level="warning",
        data={"path": request.url.path, "method": request.method},
    )
    logger.warning("Validation error", path=request.url.path, errors=exc.errors())

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "VALIDATION_ERROR",
            "message": "Request validation failed",
            "details": jsonable_errors(exc.errors()),
        },
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    add_breadcrumb(
        message=f"Unexpected error: {type(exc).__name__}",
        category="exception",
        level="error",
        data={"path": request.url.path, "method": request.method},
    )

    logger.error(
        "Unexpected error",
        error=str(exc),
        path=request.url.path,
        exc_info=True,
    )

    if sentry_settings.enable_alerts:
        capture_exception(
            exc,
            level="error",
            tags={"error_type": type(exc).__name__, "path": request.url.path},
        )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred",
        },
    )


def jsonable_errors(errors: list) -> list:
    """Pydantic error entries can carry exception objects in ``ctx``; keep them serializable."""
    cleaned = []
    for error in errors:
        entry = dict(error)
        if "ctx" in entry:
            entry["ctx"] = {key: str(value) for key, value in entry["ctx"].items()}
        cleaned.append(entry)
    return cleaned
