"""
HTTP surface: credit requests, wallet, redemptions and currency reconciliation
"""
import pytest
from decimal import Decimal

from creditflow.core.exceptions import ErrorCode
from creditflow.db.models.user import EmployeeType, User
from creditflow.domain.roles import Actor

CREDIT_URL = "/api/credit-requests"
WALLET_URL = "/api/wallet"
REDEEM_URL = "/api/redemptions"


def policy_body(org, **overrides) -> dict:
    body = {
        "user_id": org.employee.user_id,
        "type": "policy",
        "base_amount": "100",
        "bonus": "20",
        "deductions": "5",
        "policy_id": org.policy_id,
    }
    body.update(overrides)
    return body


def freelancer_body(org, **overrides) -> dict:
    body = {
        "user_id": org.freelancer.user_id,
        "type": "freelancer",
        "base_amount": "100",
        "bonus": "20",
        "deductions": "5",
    }
    body.update(overrides)
    return body


def error_code(response) -> str:
    return response.json()["error"]["code"]


# ============================================================================
# Authentication
# ============================================================================


class TestAuthentication:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_token(self, test_client) -> None:
        response = await test_client.get(f"{WALLET_URL}/balance")
        assert response.status_code in (401, 403)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_garbage_token_is_401(self, test_client) -> None:
        response = await test_client.get(
            f"{WALLET_URL}/balance",
            headers={"Authorization": "Bearer not-a-jwt"},
        )
        assert response.status_code == 401

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_inactive_user_is_403(self, test_client, user_factory, auth_headers) -> None:
        user = await user_factory(employee_type=EmployeeType.PERMANENT_INDIA, is_active=False)
        actor = Actor(user_id=user.id, role=user.role, name=user.name, email=user.email)
        response = await test_client.get(f"{WALLET_URL}/balance", headers=auth_headers(actor))
        assert response.status_code == 403


# ============================================================================
# Credit requests
# ============================================================================


class TestCreditRequestRoutes:
    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_initiator_creates_policy_request(self, test_client, org, auth_headers) -> None:
        response = await test_client.post(
            f"{CREDIT_URL}/",
            json=policy_body(org, amount="115", calculation_breakdown={"target": 10, "achieved": 12}),
            headers=auth_headers(org.initiator),
        )

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "pending_approval"
        assert Decimal(body["amount"]) == Decimal("115")
        assert body["currency"] == "INR"
        assert body["hod_id"] == org.hod.user_id
        assert body["calculation_breakdown"] == {"target": 10, "achieved": 12}

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_supplied_amount_must_match(self, test_client, org, auth_headers) -> None:
        response = await test_client.post(
            f"{CREDIT_URL}/",
            json=policy_body(org, amount="120"),
            headers=auth_headers(org.initiator),
        )
        assert response.status_code == 400
        assert error_code(response) == ErrorCode.AMOUNT_MISMATCH.value

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_unlinked_employee_cannot_file_for_self(self, test_client, org, auth_headers) -> None:
        response = await test_client.post(
            f"{CREDIT_URL}/",
            json=policy_body(org),
            headers=auth_headers(org.employee),
        )
        assert response.status_code == 403

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_negative_component_is_422(self, test_client, org, auth_headers) -> None:
        response = await test_client.post(
            f"{CREDIT_URL}/",
            json=policy_body(org, bonus="-1"),
            headers=auth_headers(org.initiator),
        )
        assert response.status_code == 422

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_hod_approval_credits_wallet(self, test_client, org, auth_headers) -> None:
        created = await test_client.post(f"{CREDIT_URL}/", json=policy_body(org), headers=auth_headers(org.initiator))
        request_id = created.json()["id"]

        response = await test_client.post(f"{CREDIT_URL}/{request_id}/approve", headers=auth_headers(org.hod))

        assert response.status_code == 200
        body = response.json()
        assert body["request"]["status"] == "approved"
        assert Decimal(body["credit"]["amount"]) == Decimal("115")
        assert body["credit"]["credit_request_id"] == request_id

        balance = await test_client.get(f"{WALLET_URL}/balance", headers=auth_headers(org.employee))
        assert Decimal(balance.json()["available"]) == Decimal("115")

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_second_approval_is_409(self, test_client, org, auth_headers) -> None:
        created = await test_client.post(f"{CREDIT_URL}/", json=policy_body(org), headers=auth_headers(org.initiator))
        request_id = created.json()["id"]
        await test_client.post(f"{CREDIT_URL}/{request_id}/approve", headers=auth_headers(org.hod))

        response = await test_client.post(f"{CREDIT_URL}/{request_id}/approve", headers=auth_headers(org.hod))

        assert response.status_code == 409
        assert error_code(response) == ErrorCode.INVALID_STATE_TRANSITION.value
        assert response.json()["error"]["details"]["current_state"] == "approved"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_foreign_hod_cannot_approve(self, test_client, org, auth_headers) -> None:
        created = await test_client.post(f"{CREDIT_URL}/", json=policy_body(org), headers=auth_headers(org.initiator))

        response = await test_client.post(
            f"{CREDIT_URL}/{created.json()['id']}/approve",
            headers=auth_headers(org.other_hod),
        )
        assert response.status_code == 403

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_hod_rejection_requires_reason(self, test_client, org, auth_headers) -> None:
        created = await test_client.post(f"{CREDIT_URL}/", json=policy_body(org), headers=auth_headers(org.initiator))
        request_id = created.json()["id"]

        blank = await test_client.post(
            f"{CREDIT_URL}/{request_id}/reject-by-hod",
            json={"reason": "   "},
            headers=auth_headers(org.hod),
        )
        assert blank.status_code == 422

        response = await test_client.post(
            f"{CREDIT_URL}/{request_id}/reject-by-hod",
            json={"reason": "insufficient evidence"},
            headers=auth_headers(org.hod),
        )
        assert response.status_code == 200
        assert response.json()["status"] == "rejected_by_hod"
        assert response.json()["hod_rejection_reason"] == "insufficient evidence"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_sign_then_approve(self, test_client, org, auth_headers) -> None:
        created = await test_client.post(f"{CREDIT_URL}/", json=policy_body(org), headers=auth_headers(org.hod))
        request_id = created.json()["id"]
        assert created.json()["status"] == "pending_signature"

        signed = await test_client.post(
            f"{CREDIT_URL}/{request_id}/sign",
            json={"signature": "Esha Employee"},
            headers=auth_headers(org.employee),
        )
        assert signed.status_code == 200
        assert signed.json()["status"] == "pending_approval"
        assert signed.json()["user_signed_at"] is not None

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_employee_declines_to_sign(self, test_client, org, auth_headers) -> None:
        created = await test_client.post(f"{CREDIT_URL}/", json=policy_body(org), headers=auth_headers(org.hod))

        response = await test_client.post(
            f"{CREDIT_URL}/{created.json()['id']}/reject",
            json={"reason": "numbers are wrong"},
            headers=auth_headers(org.employee),
        )
        assert response.json()["status"] == "rejected_by_user"
        assert response.json()["user_rejection_reason"] == "numbers are wrong"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_freelancer_flow(self, test_client, org, auth_headers) -> None:
        created = await test_client.post(
            f"{CREDIT_URL}/", json=freelancer_body(org), headers=auth_headers(org.initiator)
        )
        request_id = created.json()["id"]
        assert created.json()["currency"] == "USD"

        hod = await test_client.post(f"{CREDIT_URL}/{request_id}/approve", headers=auth_headers(org.hod))
        assert hod.json()["request"]["status"] == "pending_employee_approval"
        assert hod.json()["credit"] is None

        accepted = await test_client.post(
            f"{CREDIT_URL}/{request_id}/approve-by-employee",
            headers=auth_headers(org.freelancer),
        )
        assert accepted.json()["request"]["status"] == "approved"
        assert Decimal(accepted.json()["credit"]["amount"]) == Decimal("115")
        assert accepted.json()["credit"]["currency"] == "USD"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_freelancer_rejects_amount(self, test_client, org, auth_headers) -> None:
        created = await test_client.post(
            f"{CREDIT_URL}/", json=freelancer_body(org), headers=auth_headers(org.initiator)
        )
        request_id = created.json()["id"]
        await test_client.post(f"{CREDIT_URL}/{request_id}/approve", headers=auth_headers(org.hod))

        response = await test_client.post(
            f"{CREDIT_URL}/{request_id}/reject-by-employee",
            json={"reason": "expected more"},
            headers=auth_headers(org.freelancer),
        )
        assert response.json()["status"] == "rejected_by_employee"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_detail_includes_timeline(self, test_client, org, auth_headers) -> None:
        created = await test_client.post(f"{CREDIT_URL}/", json=policy_body(org), headers=auth_headers(org.initiator))
        request_id = created.json()["id"]
        await test_client.post(f"{CREDIT_URL}/{request_id}/approve", headers=auth_headers(org.hod))

        response = await test_client.get(f"{CREDIT_URL}/{request_id}", headers=auth_headers(org.employee))

        assert response.status_code == 200
        steps = [entry["step"] for entry in response.json()["timeline"]]
        assert steps == ["REQUEST_INITIATED", "HOD_APPROVED", "WALLET_CREDITED"]
        sequences = [entry["sequence"] for entry in response.json()["timeline"]]
        assert sequences == sorted(sequences)

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_detail_hidden_from_unrelated_user(self, test_client, org, auth_headers) -> None:
        created = await test_client.post(f"{CREDIT_URL}/", json=policy_body(org), headers=auth_headers(org.initiator))

        response = await test_client.get(f"{CREDIT_URL}/{created.json()['id']}", headers=auth_headers(org.freelancer))
        assert response.status_code == 403

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unknown_request_is_404(self, test_client, org, auth_headers) -> None:
        response = await test_client.get(f"{CREDIT_URL}/9999", headers=auth_headers(org.admin))
        assert response.status_code == 404
        assert error_code(response) == ErrorCode.CREDIT_REQUEST_NOT_FOUND.value

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_lists(self, test_client, org, auth_headers) -> None:
        await test_client.post(f"{CREDIT_URL}/", json=policy_body(org), headers=auth_headers(org.initiator))
        await test_client.post(f"{CREDIT_URL}/", json=freelancer_body(org), headers=auth_headers(org.initiator))

        mine = await test_client.get(f"{CREDIT_URL}/my", headers=auth_headers(org.employee))
        pending = await test_client.get(f"{CREDIT_URL}/pending-approvals", headers=auth_headers(org.hod))
        foreign = await test_client.get(f"{CREDIT_URL}/pending-approvals", headers=auth_headers(org.other_hod))
        submitted = await test_client.get(f"{CREDIT_URL}/submissions", headers=auth_headers(org.initiator))

        assert len(mine.json()) == 1
        assert len(pending.json()) == 2
        assert foreign.json() == []
        assert len(submitted.json()) == 2

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_my_requests_status_filter(self, test_client, org, auth_headers) -> None:
        created = await test_client.post(f"{CREDIT_URL}/", json=policy_body(org), headers=auth_headers(org.initiator))
        await test_client.post(f"{CREDIT_URL}/{created.json()['id']}/approve", headers=auth_headers(org.hod))
        await test_client.post(f"{CREDIT_URL}/", json=policy_body(org), headers=auth_headers(org.initiator))

        response = await test_client.get(
            f"{CREDIT_URL}/my",
            params={"status_filter": "approved"},
            headers=auth_headers(org.employee),
        )
        assert [item["status"] for item in response.json()] == ["approved"]


# ============================================================================
# Wallet
# ============================================================================


class TestWalletRoutes:
    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_empty_wallet(self, test_client, org, auth_headers) -> None:
        response = await test_client.get(f"{WALLET_URL}/balance", headers=auth_headers(org.employee))

        assert response.status_code == 200
        body = response.json()
        assert body["currency"] == "INR"
        assert Decimal(body["balance"]) == 0
        assert Decimal(body["pending"]) == 0

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_summary_counts_pending_requests(self, test_client, org, auth_headers, approved_policy_credit) -> None:
        await approved_policy_credit("115")
        await test_client.post(f"{CREDIT_URL}/", json=policy_body(org), headers=auth_headers(org.initiator))

        body = (await test_client.get(f"{WALLET_URL}/balance", headers=auth_headers(org.employee))).json()

        assert Decimal(body["earned"]) == Decimal("115")
        assert Decimal(body["pending"]) == Decimal("115")
        assert Decimal(body["available"]) == Decimal("115")
        assert Decimal(body["redeemed"]) == 0

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_transactions_and_redeemable(self, test_client, org, auth_headers, approved_policy_credit) -> None:
        credit = await approved_policy_credit("115")

        history = await test_client.get(f"{WALLET_URL}/transactions", headers=auth_headers(org.employee))
        redeemable = await test_client.get(f"{WALLET_URL}/redeemable", headers=auth_headers(org.employee))

        assert [txn["id"] for txn in history.json()] == [credit.credit_id]
        assert [txn["id"] for txn in redeemable.json()] == [credit.credit_id]
        assert redeemable.json()[0]["redeemed"] is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_transactions_limit_is_validated(self, test_client, org, auth_headers) -> None:
        response = await test_client.get(
            f"{WALLET_URL}/transactions",
            params={"limit": 0},
            headers=auth_headers(org.employee),
        )
        assert response.status_code == 422


# ============================================================================
# Redemptions
# ============================================================================


class TestRedemptionRoutes:
    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_redeem_full_credit(self, test_client, org, auth_headers, approved_policy_credit) -> None:
        credit = await approved_policy_credit("115")

        response = await test_client.post(
            f"{REDEEM_URL}/",
            json={"credit_transaction_id": credit.credit_id},
            headers=auth_headers(org.employee),
        )

        assert response.status_code == 201
        body = response.json()
        assert body["redemption"]["status"] == "pending"
        assert Decimal(body["redemption"]["amount"]) == Decimal("115")
        assert body["debit"]["type"] == "debit"
        assert body["debit"]["linked_credit_txn_id"] == credit.credit_id
        assert Decimal(body["balance"]) == 0

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_second_redemption_is_409(self, test_client, org, auth_headers, approved_policy_credit) -> None:
        credit = await approved_policy_credit("115")
        payload = {"credit_transaction_id": credit.credit_id, "amount": "50"}
        await test_client.post(f"{REDEEM_URL}/", json=payload, headers=auth_headers(org.employee))

        response = await test_client.post(f"{REDEEM_URL}/", json=payload, headers=auth_headers(org.employee))

        assert response.status_code == 409
        assert error_code(response) == ErrorCode.CREDIT_ALREADY_REDEEMED.value

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_amount_above_credit_is_400(self, test_client, org, auth_headers, approved_policy_credit) -> None:
        credit = await approved_policy_credit("115")
        response = await test_client.post(
            f"{REDEEM_URL}/",
            json={"credit_transaction_id": credit.credit_id, "amount": "115.01"},
            headers=auth_headers(org.employee),
        )
        assert response.status_code == 400

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_accounts_queue_and_processing(self, test_client, org, auth_headers, approved_policy_credit) -> None:
        credit = await approved_policy_credit("115")
        created = await test_client.post(
            f"{REDEEM_URL}/",
            json={"credit_transaction_id": credit.credit_id},
            headers=auth_headers(org.employee),
        )
        redemption_id = created.json()["redemption"]["id"]

        queue = await test_client.get(f"{REDEEM_URL}/queue", headers=auth_headers(org.accounts))
        assert [item["id"] for item in queue.json()] == [redemption_id]
        employee_queue = await test_client.get(f"{REDEEM_URL}/queue", headers=auth_headers(org.employee))
        assert employee_queue.status_code == 403

        processing = await test_client.post(
            f"{REDEEM_URL}/{redemption_id}/processing", headers=auth_headers(org.accounts)
        )
        assert processing.json()["status"] == "processing"

        done = await test_client.post(
            f"{REDEEM_URL}/{redemption_id}/process",
            json={"transaction_reference": "NEFT-0042", "payment_currency": "inr"},
            headers=auth_headers(org.accounts),
        )
        assert done.status_code == 200
        assert done.json()["status"] == "completed"
        assert done.json()["payment_currency"] == "INR"
        assert done.json()["transaction_reference"] == "NEFT-0042"

        completed = await test_client.get(
            f"{REDEEM_URL}/queue", params={"status": "completed"}, headers=auth_headers(org.accounts)
        )
        assert [item["id"] for item in completed.json()] == [redemption_id]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_payment_currency_mismatch(self, test_client, org, auth_headers, approved_policy_credit) -> None:
        credit = await approved_policy_credit("115")
        created = await test_client.post(
            f"{REDEEM_URL}/",
            json={"credit_transaction_id": credit.credit_id},
            headers=auth_headers(org.employee),
        )
        redemption_id = created.json()["redemption"]["id"]

        response = await test_client.post(
            f"{REDEEM_URL}/{redemption_id}/process",
            json={"transaction_reference": "WIRE-1", "payment_currency": "USD"},
            headers=auth_headers(org.accounts),
        )

        assert response.status_code == 400
        assert error_code(response) == ErrorCode.CURRENCY_MISMATCH.value
        current = await test_client.get(f"{REDEEM_URL}/{redemption_id}", headers=auth_headers(org.employee))
        assert current.json()["status"] == "pending"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_reject_returns_funds(self, test_client, org, auth_headers, approved_policy_credit) -> None:
        credit = await approved_policy_credit("115")
        created = await test_client.post(
            f"{REDEEM_URL}/",
            json={"credit_transaction_id": credit.credit_id},
            headers=auth_headers(org.employee),
        )
        redemption_id = created.json()["redemption"]["id"]

        response = await test_client.post(
            f"{REDEEM_URL}/{redemption_id}/reject",
            json={"reason": "bank details missing"},
            headers=auth_headers(org.accounts),
        )

        assert response.json()["status"] == "rejected"
        balance = await test_client.get(f"{WALLET_URL}/balance", headers=auth_headers(org.employee))
        assert Decimal(balance.json()["available"]) == Decimal("115")

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_visibility_and_timeline(self, test_client, org, auth_headers, approved_policy_credit) -> None:
        credit = await approved_policy_credit("115")
        created = await test_client.post(
            f"{REDEEM_URL}/",
            json={"credit_transaction_id": credit.credit_id},
            headers=auth_headers(org.employee),
        )
        redemption_id = created.json()["redemption"]["id"]

        mine = await test_client.get(f"{REDEEM_URL}/my", headers=auth_headers(org.employee))
        assert [item["id"] for item in mine.json()] == [redemption_id]

        foreign = await test_client.get(f"{REDEEM_URL}/{redemption_id}", headers=auth_headers(org.freelancer))
        assert foreign.status_code == 403

        timeline = await test_client.get(f"{REDEEM_URL}/{redemption_id}/timeline", headers=auth_headers(org.employee))
        assert "REDEMPTION_REQUESTED" in [entry["step"] for entry in timeline.json()]

        missing = await test_client.get(f"{REDEEM_URL}/9999", headers=auth_headers(org.accounts))
        assert missing.status_code == 404
        assert error_code(missing) == ErrorCode.REDEMPTION_NOT_FOUND.value


# ============================================================================
# Notifications
# ============================================================================

NOTIFY_URL = "/api/notifications"


class TestNotificationRoutes:
    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_list_and_mark_all_read(self, test_client, org, auth_headers) -> None:
        await test_client.post(f"{CREDIT_URL}/", json=policy_body(org), headers=auth_headers(org.initiator))
        headers = auth_headers(org.employee)

        listed = await test_client.get(NOTIFY_URL, headers=headers)
        assert listed.status_code == 200
        notices = listed.json()
        assert [n["title"] for n in notices] == ["Credit request created"]
        assert notices[0]["is_read"] is False
        assert notices[0]["action_url"] == "/transactions"

        unread = await test_client.get(f"{NOTIFY_URL}/unread-count", headers=headers)
        assert unread.json() == {"count": 1}

        marked = await test_client.post(f"{NOTIFY_URL}/mark-read", json={}, headers=headers)
        assert marked.json() == {"updated": 1}
        unread = await test_client.get(f"{NOTIFY_URL}/unread-count", headers=headers)
        assert unread.json() == {"count": 0}

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_cannot_mark_someone_elses_notice(self, test_client, org, auth_headers) -> None:
        await test_client.post(f"{CREDIT_URL}/", json=policy_body(org), headers=auth_headers(org.initiator))
        hod_notices = (await test_client.get(NOTIFY_URL, headers=auth_headers(org.hod))).json()
        assert [n["title"] for n in hod_notices] == ["Credit request pending approval"]

        marked = await test_client.post(
            f"{NOTIFY_URL}/mark-read", json={"id": hod_notices[0]["id"]}, headers=auth_headers(org.employee)
        )

        assert marked.json() == {"updated": 0}
        unread = await test_client.get(f"{NOTIFY_URL}/unread-count", headers=auth_headers(org.hod))
        assert unread.json() == {"count": 1}

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_limit_is_bounded(self, test_client, org, auth_headers) -> None:
        response = await test_client.get(f"{NOTIFY_URL}?limit=0", headers=auth_headers(org.employee))
        assert response.status_code == 422


# ============================================================================
# Currency reconciliation
# ============================================================================


class TestCurrencyRoutes:
    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_admin_reconciles_changed_employee_type(self, test_client, db_session, org, auth_headers) -> None:
        user = await db_session.get(User, org.employee.user_id)
        user.employee_type = EmployeeType.FREELANCER_USA
        await db_session.commit()

        response = await test_client.post(
            f"/api/admin/currency/reconcile/{org.employee.user_id}",
            headers=auth_headers(org.admin),
        )

        assert response.status_code == 200
        assert response.json() == {
            "user_id": org.employee.user_id,
            "previous": "INR",
            "currency": "USD",
            "changed": True,
        }

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_reconcile_all_is_idempotent(self, test_client, org, auth_headers) -> None:
        first = await test_client.post("/api/admin/currency/reconcile", headers=auth_headers(org.admin))
        second = await test_client.post("/api/admin/currency/reconcile", headers=auth_headers(org.admin))

        assert first.status_code == 200
        body = first.json()
        assert body["users"] == len(body["results"]) == 7
        # staff accounts without an employee type get the default currency on the first pass
        assert body["changed"] == sum(1 for item in body["results"] if item["previous"] is None)
        assert second.json()["changed"] == 0

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_non_admin_is_403(self, test_client, org, auth_headers) -> None:
        response = await test_client.post("/api/admin/currency/reconcile", headers=auth_headers(org.accounts))
        assert response.status_code == 403
