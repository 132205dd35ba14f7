"""
Remittance (835) upload endpoint.

The file is decoded and posted within the request; the response reports
which claim records posted and which did not.
"""
from typing import Optional

from fastapi import APIRouter, Depends, File, UploadFile

from revcycle.api.dependencies import get_current_user, get_remittance_processor
from revcycle.services.edi.remittance import decode_remittance
from revcycle.services.reconciliation.processor import RemittanceProcessor
from revcycle.utils.logger import get_logger

router = APIRouter()
logger = get_logger(__name__)


@router.post("/remits/upload")
async def upload_remit_file(
    file: UploadFile = File(...),
    processor: RemittanceProcessor = Depends(get_remittance_processor),
    user_id: Optional[str] = Depends(get_current_user),
):
    """
    Upload and post an 835 remittance file.

    **Response:**
    - `processed_count`: claim records posted
    - `errors`: `{claim_number, error_message}` for each record that was not
    - `postings`: per-claim outcome for the posted records

    An unreadable file answers 422 with the failing segment and position.
    """
    filename = file.filename or "unknown"
    content = (await file.read()).decode("utf-8", errors="replace")
    logger.info("Received remittance upload", filename=filename, size=len(content))

    advice = decode_remittance(content)
    result = processor.process_remittance(advice, user_id=user_id)

    response = result.to_dict()
    response.update(
        {
            "filename": filename,
            "trace_number": advice.trace_number,
            "payer_id": advice.payer_id,
            "claims_in_file": len(advice.claims),
        }
    )
    return response
