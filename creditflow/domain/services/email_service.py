"""
Email Service - outbound notices through an HTTP email gateway

``deliver`` raises DependencyException subclasses; ``send`` is the
best-effort wrapper used by the workflow services after their commit.
"""
import base64
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import httpx

from creditflow.core.circuit_breaker import get_email_circuit_breaker
from creditflow.core.config import settings
from creditflow.core.exceptions import DependencyException, ErrorCode, ServiceTimeoutError
from creditflow.core.logging import get_logger, mask_email

logger = get_logger(__name__)

SERVICE_NAME = "email"

_XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@dataclass
class EmailMessage:
    to: list[str]
    subject: str
    body: str
    attachments: list[Path] = field(default_factory=list)

    def to_payload(self) -> dict:
        payload = {
            "from": settings.EMAIL_FROM,
            "to": self.to,
            "subject": self.subject,
            "text": self.body,
        }
        if self.attachments:
            payload["attachments"] = [
                {
                    "filename": path.name,
                    "content_type": _XLSX_MIME if path.suffix == ".xlsx" else "application/octet-stream",
                    "content": base64.b64encode(path.read_bytes()).decode("ascii"),
                }
                for path in self.attachments
            ]
        return payload


def pending_approval_email(hod_email: str, employee_name: str, money: str, request_id: int) -> EmailMessage:
    return EmailMessage(
        to=[hod_email],
        subject="Credit request pending approval",
        body=(
            f"{employee_name} has a {money} credit request (#{request_id}) awaiting your approval.\n"
            "Open the approvals page to review it."
        ),
    )


def redemption_requested_email(
    recipients: list[str],
    employee_name: str,
    money: str,
    redemption_id: int,
    proof: Optional[Path] = None,
) -> EmailMessage:
    return EmailMessage(
        to=recipients,
        subject=f"New redemption request #{redemption_id}",
        body=f"{employee_name} requested a payout of {money}. The proof document is attached.",
        attachments=[proof] if proof else [],
    )


def request_rejected_email(
    initiator_email: str,
    initiator_name: str,
    employee_name: str,
    request_type: str,
    money: str,
    rejected_by: str,
    reason: str,
    request_id: int,
) -> EmailMessage:
    """Sent to the initiator when the HOD or the freelancer rejects their request"""
    label = "Policy" if request_type == "policy" else "Freelance"
    return EmailMessage(
        to=[initiator_email],
        subject=f"{label} request rejected for {employee_name}",
        body=(
            f"Dear {initiator_name},\n\n"
            f"The {label.lower()} request #{request_id} for {employee_name} ({money}) "
            f"was rejected by {rejected_by}.\n"
            f"Reason: {reason}"
        ),
    )


def redemption_processed_email(
    employee_email: str,
    employee_name: str,
    money: str,
    redemption_id: int,
    transaction_reference: str,
    processed_by: str,
    payment_notes: Optional[str] = None,
) -> EmailMessage:
    lines = [
        f"Dear {employee_name},",
        "",
        f"Your redemption #{redemption_id} of {money} has been paid.",
        f"Transaction reference: {transaction_reference}",
        f"Processed by: {processed_by}",
    ]
    if payment_notes:
        lines.append(f"Notes: {payment_notes}")
    return EmailMessage(
        to=[employee_email],
        subject="Redemption payment processed",
        body="\n".join(lines),
    )


class EmailService:
    @staticmethod
    def is_configured() -> bool:
        return bool(settings.EMAIL_GATEWAY_URL)

    @staticmethod
    async def deliver(message: EmailMessage) -> None:
        """Post one message to the gateway under the email circuit breaker"""
        timeout = settings.EXTERNAL_HTTP_TIMEOUT_SECONDS

        async def _post() -> None:
            headers = {}
            if settings.EMAIL_GATEWAY_TOKEN:
                headers["Authorization"] = f"Bearer {settings.EMAIL_GATEWAY_TOKEN}"
            try:
                async with httpx.AsyncClient(timeout=timeout) as client:
                    response = await client.post(
                        f"{settings.EMAIL_GATEWAY_URL}/send",
                        json=message.to_payload(),
                        headers=headers,
                    )
            except httpx.TimeoutException as e:
                raise ServiceTimeoutError(SERVICE_NAME, timeout) from e
            except httpx.HTTPError as e:
                raise DependencyException(
                    SERVICE_NAME, f"email gateway unreachable: {e}", ErrorCode.EMAIL_ERROR
                ) from e
            if response.status_code >= 300:
                error = DependencyException.from_response(SERVICE_NAME, "send", response)
                error.error_code = ErrorCode.EMAIL_ERROR
                raise error

        await get_email_circuit_breaker().execute(_post)

    @staticmethod
    async def send(message: EmailMessage) -> bool:
        recipients = [r for r in message.to if r]
        if not recipients:
            return False
        if not EmailService.is_configured():
            logger.debug("Email gateway not configured, skipping", extra_data={"subject": message.subject})
            return False
        message.to = recipients
        try:
            await EmailService.deliver(message)
        except DependencyException as e:
            logger.warning(
                "Email delivery failed",
                extra_data={
                    "to": [mask_email(r) for r in recipients],
                    "subject": message.subject,
                    "error": e.message,
                },
            )
            return False
        except OSError as e:
            # attachment could not be read
            logger.warning(
                "Email attachment unreadable",
                extra_data={"subject": message.subject, "error": str(e)},
            )
            return False
        logger.info(
            "Email sent",
            extra_data={"to": [mask_email(r) for r in recipients], "subject": message.subject},
        )
        return True
