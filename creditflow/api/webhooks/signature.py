"""
E-signature Webhook Handler

The signing provider calls back once the employee has signed the document.
Payload shapes differ between provider versions, so the signer's email is
looked up in a few places.
"""
from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from creditflow.api.dependencies.webhook_auth import verify_signature_webhook_secret
from creditflow.core.exceptions import ErrorCode, ValidationException
from creditflow.core.logging import get_logger, mask_email
from creditflow.db.database import get_db
from creditflow.domain.services.credit_request_service import CreditRequestService

logger = get_logger(__name__)

router = APIRouter()


class SignatureContact(BaseModel):
    model_config = ConfigDict(extra="allow")

    email: Optional[str] = None


class SignatureWebhookPayload(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    email: Optional[str] = None
    contact: Optional[SignatureContact] = None
    contact_email: Optional[str] = Field(default=None, alias="contactEmail")
    signature_id: Optional[str] = Field(default=None, alias="signatureId")
    document_id: Optional[str] = Field(default=None, alias="documentId")
    status: Optional[str] = None

    def signer_email(self) -> Optional[str]:
        for candidate in (
            self.email,
            self.contact.email if self.contact else None,
            self.contact_email,
        ):
            if candidate and candidate.strip():
                return candidate.strip()
        return None


def _response(updated: bool, **extra: Any) -> dict[str, Any]:
    return {"ok": True, "updated": updated, **extra}


@router.post(
    "/signature",
    summary="Webhook - e-signature completed",
    description=(
        "Moves the signer's oldest policy request that is pending signature to pending approval. "
        "Repeated deliveries are harmless: nothing pending means updated=false."
    ),
)
async def signature_webhook(
    payload: SignatureWebhookPayload,
    db: AsyncSession = Depends(get_db),
    _: None = Depends(verify_signature_webhook_secret),
):
    email = payload.signer_email()
    if not email:
        raise ValidationException(
            "Signer email is missing from the payload",
            field="email",
            error_code=ErrorCode.VALIDATION_ERROR,
        )

    logger.info(
        "Signature completion received",
        extra_data={"email": mask_email(email), "status": payload.status},
    )

    service = CreditRequestService(db)
    request = await service.apply_signature_completion(
        email,
        signature_id=payload.signature_id or payload.document_id,
    )
    if request is None:
        return _response(False)
    return _response(True, credit_request_id=request.id, status=request.status.value)
