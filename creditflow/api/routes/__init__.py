"""
API Routes
"""
from fastapi import APIRouter

from creditflow.api.routes.credit_requests import router as credit_requests_router
from creditflow.api.routes.currency import router as currency_router
from creditflow.api.routes.notifications import router as notifications_router
from creditflow.api.routes.redemptions import router as redemptions_router
from creditflow.api.routes.wallet import router as wallet_router
from creditflow.api.webhooks.signature import router as signature_webhook_router

router = APIRouter()

router.include_router(credit_requests_router, prefix="/credit-requests", tags=["Credit Requests"])
router.include_router(wallet_router, prefix="/wallet", tags=["Wallet"])
router.include_router(redemptions_router, prefix="/redemptions", tags=["Redemptions"])
router.include_router(notifications_router, prefix="/notifications", tags=["Notifications"])
router.include_router(currency_router, prefix="/admin/currency", tags=["Admin"])
router.include_router(signature_webhook_router, prefix="/webhooks", tags=["Webhooks"])
