"""
Upstream Operations
===================

The metered operations, declared once as data, and the HTTP adapter that
calls them.

Every upstream endpoint shares one contract: POST a JSON body carrying
``req_id`` and receive ``{req_id, success, error_message?, <result>}``.
The HTTP status is not significant; the JSON body decides the outcome.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Protocol, Type

import httpx
import structlog

from docgate.config import Settings
from docgate.errors import UpstreamUnavailableError
from docgate.models.schemas import (
    DocumentRequest,
    FaceVerificationRequest,
    OperationRequest,
    QRMaskingRequest,
    SignatureVerificationRequest,
)


@dataclass(frozen=True)
class OperationDescriptor:
    """
    Billing and wire policy for one operation.

    Attributes:
        cost: Credits charged per settled call.
        charge_on_upstream_response: Charge whenever the upstream answers,
            including ``success=false``; otherwise charge only on success.
        timeout: Upstream call budget in seconds.
        result_field: Upstream field exposed as ``result`` in the envelope.
        url_setting: Settings attribute holding the upstream URL.
    """
    name: str
    cost: int
    charge_on_upstream_response: bool
    timeout: float
    request_model: Type[OperationRequest]
    result_field: str
    url_setting: str
    description: str = ""


OPERATIONS: Mapping[str, OperationDescriptor] = MappingProxyType({
    d.name: d for d in (
        OperationDescriptor(
            name="qr-masking",
            cost=2,
            charge_on_upstream_response=False,
            timeout=30.0,
            request_model=QRMaskingRequest,
            result_field="masked_base64",
            url_setting="qr_masking_api_url",
            description="Mask QR codes in an image",
        ),
        OperationDescriptor(
            name="qr-extraction",
            cost=1,
            charge_on_upstream_response=True,
            timeout=30.0,
            request_model=DocumentRequest,
            result_field="result",
            url_setting="qr_extraction_api_url",
            description="Decode QR codes from a document",
        ),
        OperationDescriptor(
            name="id-cropping",
            cost=1,
            charge_on_upstream_response=True,
            timeout=30.0,
            request_model=DocumentRequest,
            result_field="result",
            url_setting="id_cropping_api_url",
            description="Crop an ID document out of a photo",
        ),
        OperationDescriptor(
            name="signature-verification",
            cost=2,
            charge_on_upstream_response=True,
            timeout=60.0,
            request_model=SignatureVerificationRequest,
            result_field="data",
            url_setting="signature_verification_api_url",
            description="Verify signatures across up to ten images",
        ),
        OperationDescriptor(
            name="face-detect",
            cost=1,
            charge_on_upstream_response=True,
            timeout=30.0,
            request_model=DocumentRequest,
            result_field="data",
            url_setting="face_detection_api_url",
            description="Detect faces in an image",
        ),
        OperationDescriptor(
            name="face-verification",
            cost=2,
            charge_on_upstream_response=False,
            timeout=30.0,
            request_model=FaceVerificationRequest,
            result_field="data",
            url_setting="face_verification_api_url",
            description="Compare the faces in two images",
        ),
    )
})


class ExternalOperation(Protocol):
    async def invoke(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Return the upstream JSON body, or raise UpstreamUnavailableError."""
        ...


class HTTPOperation:
    """Calls one upstream endpoint over a shared httpx client."""

    def __init__(
        self,
        descriptor: OperationDescriptor,
        url: str,
        http_client: httpx.AsyncClient,
        logger=None,
    ):
        self.descriptor = descriptor
        self.url = url
        self.http = http_client
        self.logger = logger or structlog.get_logger(__name__)

    async def invoke(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        name = self.descriptor.name
        self.logger.debug("Calling upstream", operation=name, url=self.url, req_id=payload.get("req_id"))

        try:
            response = await self.http.post(self.url, json=payload, timeout=self.descriptor.timeout)
        except httpx.TimeoutException as e:
            raise UpstreamUnavailableError(f"{name} timed out") from e
        except httpx.HTTPError as e:
            self.logger.warning("Upstream transport error", operation=name, error=str(e))
            raise UpstreamUnavailableError(f"{name} is unavailable") from e

        try:
            body = response.json()
        except ValueError as e:
            self.logger.warning(
                "Upstream returned non-JSON body",
                operation=name,
                status_code=response.status_code,
            )
            raise UpstreamUnavailableError(f"{name} returned an unreadable response") from e

        if not isinstance(body, dict) or not isinstance(body.get("success"), bool):
            self.logger.warning("Upstream response missing success flag", operation=name)
            raise UpstreamUnavailableError(f"{name} returned an unexpected response")

        self.logger.debug(
            "Upstream responded",
            operation=name,
            status_code=response.status_code,
            success=body["success"],
        )
        return body


class UnconfiguredOperation:
    """Stand-in for an operation whose upstream URL is not set."""

    def __init__(self, descriptor: OperationDescriptor):
        self.descriptor = descriptor

    async def invoke(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        raise UpstreamUnavailableError(f"{self.descriptor.name} is not configured")


def build_operations(
    settings: Settings,
    http_client: httpx.AsyncClient,
    logger=None,
    descriptors: Optional[Mapping[str, OperationDescriptor]] = None,
) -> Dict[str, ExternalOperation]:
    """Create one adapter per declared operation from the configured URLs."""
    logger = logger or structlog.get_logger(__name__)
    adapters: Dict[str, ExternalOperation] = {}
    for name, descriptor in (descriptors or OPERATIONS).items():
        url = getattr(settings, descriptor.url_setting, None)
        if url:
            adapters[name] = HTTPOperation(descriptor, url, http_client, logger=logger)
        else:
            logger.warning("Upstream URL not configured", operation=name, setting=descriptor.url_setting)
            adapters[name] = UnconfiguredOperation(descriptor)
    return adapters
