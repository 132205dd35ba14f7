"""Clearinghouse gateway: the one outbound call in claim submission."""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from revcycle.utils.errors import ClearinghouseSubmissionFailed
from revcycle.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class SubmissionReceipt:
    """What the clearinghouse returned for an accepted claim."""

    claim_id: str
    status: str


class ClearinghouseGateway(ABC):
    """
    Base gateway for clearinghouse integrations.

    Implementations raise :class:`ClearinghouseSubmissionFailed` for every
    failure (unreachable, rejected, unreadable response). They never retry;
    the caller decides whether to resubmit.
    """

    @abstractmethod
    def submit_claim(self, edi_content: str, claim_number: str, payer_id: str) -> SubmissionReceipt:
        """
        Send an encoded 837 to the clearinghouse.

        Args:
            edi_content: Full X12 interchange text
            claim_number: Our claim number, for the clearinghouse's records
            payer_id: Electronic payer id the claim is routed to

        Returns:
            SubmissionReceipt with the clearinghouse tracking id
        """


class HttpClearinghouseGateway(ClearinghouseGateway):
    """
    JSON-over-HTTPS clearinghouse client.

    ``POST {base_url}/claims/submit`` with ``{edi_content, claim_number,
    payer_id}`` and a bearer token; the response body is ``{claim_id, status}``.
    """

    def __init__(
        self,
        base_url: str,
        api_token: Optional[str],
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self.timeout = timeout
        self._client = client

    @classmethod
    def from_settings(cls, settings) -> "HttpClearinghouseGateway":
        return cls(
            base_url=settings.clearinghouse_base_url,
            api_token=settings.clearinghouse_api_token,
            timeout=settings.clearinghouse_timeout_seconds,
        )

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return headers

    def _post(self, url: str, payload: Dict[str, Any]) -> httpx.Response:
        if self._client is not None:
            return self._client.post(url, json=payload, headers=self._headers(), timeout=self.timeout)
        with httpx.Client(timeout=self.timeout) as client:
            return client.post(url, json=payload, headers=self._headers())

    def submit_claim(self, edi_content: str, claim_number: str, payer_id: str) -> SubmissionReceipt:
        url = f"{self.base_url}/claims/submit"
        payload = {"edi_content": edi_content, "claim_number": claim_number, "payer_id": payer_id}

        try:
            response = self._post(url, payload)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as e:
            logger.warning(
                "Clearinghouse rejected claim",
                claim_number=claim_number,
                status_code=e.response.status_code,
            )
            raise ClearinghouseSubmissionFailed(
                f"Clearinghouse returned HTTP {e.response.status_code}: {e.response.text[:200]}"
            ) from e
        except httpx.HTTPError as e:
            logger.warning("Clearinghouse unreachable", claim_number=claim_number, error=str(e))
            raise ClearinghouseSubmissionFailed(f"Clearinghouse request failed: {e}") from e
        except ValueError as e:
            raise ClearinghouseSubmissionFailed("Clearinghouse response was not valid JSON") from e

        if not isinstance(body, dict) or not body.get("claim_id"):
            raise ClearinghouseSubmissionFailed("Clearinghouse response did not include a claim_id")

        receipt = SubmissionReceipt(claim_id=str(body["claim_id"]), status=str(body.get("status", "accepted")))
        logger.info("Claim accepted by clearinghouse", claim_number=claim_number, tracking_id=receipt.claim_id)
        return receipt
