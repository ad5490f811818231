"""
E-signature Service - asks the signing provider for a document the employee signs

Completion arrives later through the signature webhook, which calls
``CreditRequestService.apply_signature_completion``.
"""
from typing import Optional

import httpx

from creditflow.core.circuit_breaker import get_signature_circuit_breaker
from creditflow.core.config import settings
from creditflow.core.exceptions import DependencyException, ErrorCode, ServiceTimeoutError
from creditflow.core.logging import get_logger, mask_email

logger = get_logger(__name__)

SERVICE_NAME = "signature"


class SignatureService:
    @staticmethod
    def is_configured() -> bool:
        return bool(settings.SIGNATURE_SERVICE_URL)

    @staticmethod
    async def create_document(
        request_id: int,
        signer_email: str,
        signer_name: str,
        amount_text: str,
    ) -> str:
        """Create a signing document and return the provider's document id"""
        timeout = settings.EXTERNAL_HTTP_TIMEOUT_SECONDS
        payload = {
            "template_id": settings.SIGNATURE_TEMPLATE_ID,
            "external_id": f"credit-request-{request_id}",
            "signer": {"email": signer_email, "name": signer_name},
            "fields": {"amount": amount_text, "request_id": str(request_id)},
        }

        async def _create() -> str:
            try:
                async with httpx.AsyncClient(timeout=timeout) as client:
                    response = await client.post(
                        f"{settings.SIGNATURE_SERVICE_URL}/documents",
                        json=payload,
                        headers={"Authorization": f"Bearer {settings.SIGNATURE_API_KEY}"},
                    )
            except httpx.TimeoutException as e:
                raise ServiceTimeoutError(SERVICE_NAME, timeout) from e
            except httpx.HTTPError as e:
                raise DependencyException(
                    SERVICE_NAME, f"signature service unreachable: {e}", ErrorCode.SIGNATURE_SERVICE_ERROR
                ) from e
            if response.status_code >= 300:
                error = DependencyException.from_response(SERVICE_NAME, "create_document", response)
                error.error_code = ErrorCode.SIGNATURE_SERVICE_ERROR
                raise error
            document_id = (response.json() or {}).get("id")
            if not document_id:
                raise DependencyException(
                    SERVICE_NAME,
                    "signature service returned no document id",
                    ErrorCode.SIGNATURE_SERVICE_ERROR,
                )
            return str(document_id)

        return await get_signature_circuit_breaker().execute(_create)

    @staticmethod
    async def request_signature(
        request_id: int,
        signer_email: str,
        signer_name: str,
        amount_text: str,
    ) -> Optional[str]:
        """Best effort; None when the provider is unavailable or not configured"""
        if not SignatureService.is_configured():
            return None
        try:
            document_id = await SignatureService.create_document(
                request_id, signer_email, signer_name, amount_text
            )
        except DependencyException as e:
            logger.warning(
                "Signature document request failed",
                extra_data={
                    "credit_request_id": request_id,
                    "signer": mask_email(signer_email),
                    "error": e.message,
                },
            )
            return None
        except ValueError as e:
            # body was not JSON
            logger.warning(
                "Signature service returned an unreadable body",
                extra_data={"credit_request_id": request_id, "error": str(e)},
            )
            return None
        logger.info(
            "Signature document requested",
            extra_data={"credit_request_id": request_id, "document_id": document_id},
        )
        return document_id
