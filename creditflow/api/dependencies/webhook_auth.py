"""
Shared-secret check for the e-signature completion webhook.

The provider sends ``X-Signature-Webhook-Secret`` with every callback.

Usage:
    @router.post("/signature")
    async def signature_webhook(
        ...,
        _: None = Depends(verify_signature_webhook_secret),
    ):
        ...
"""
import hmac

from fastapi import Header, HTTPException, status

from creditflow.core.config import settings
from creditflow.core.logging import get_logger

logger = get_logger(__name__)


async def verify_signature_webhook_secret(
    x_signature_webhook_secret: str | None = Header(None),
) -> None:
    """
    - ``SIGNATURE_WEBHOOK_SECRET`` unset: no check (warned about at startup)
    - header missing or wrong: 403
    """
    expected = settings.SIGNATURE_WEBHOOK_SECRET
    if not expected:
        return

    if not x_signature_webhook_secret:
        logger.warning("Signature webhook call without X-Signature-Webhook-Secret")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Missing webhook secret",
        )

    if not hmac.compare_digest(x_signature_webhook_secret, expected):
        logger.warning("Signature webhook call with a wrong secret")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid webhook secret",
        )
