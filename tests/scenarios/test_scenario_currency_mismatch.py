"""
Scenario 4: payout in the wrong currency

Covers:
- accounts pays an INR employee in USD: 400, status unchanged
- paying in the employee's currency then succeeds
- a changed employee type is reconciled before the payout is checked
"""
import pytest

from creditflow.core.exceptions import ErrorCode
from creditflow.db.models.user import Currency, EmployeeType, User
from creditflow.state_machine.states import RedemptionStatus

from tests.scenarios.conftest import assert_redemption_status, redeem


@pytest.mark.scenario
class TestCurrencyMismatch:
    @pytest.mark.asyncio
    async def test_wrong_payment_currency_changes_nothing(
        self, test_client, db_session, org, auth_headers, approved_policy_credit
    ):
        credit = await approved_policy_credit("115")
        created = await redeem(test_client, auth_headers(org.employee), credit.credit_id)
        redemption_id = created.json()["redemption"]["id"]

        response = await test_client.post(
            f"/api/redemptions/{redemption_id}/process",
            json={"transaction_reference": "WIRE-9", "payment_currency": "USD"},
            headers=auth_headers(org.accounts),
        )

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == ErrorCode.CURRENCY_MISMATCH.value
        assert error["details"]["expected"] == "INR"
        assert error["details"]["actual"] == "USD"
        redemption = await assert_redemption_status(db_session, redemption_id, RedemptionStatus.PENDING)
        assert redemption.transaction_reference is None

        paid = await test_client.post(
            f"/api/redemptions/{redemption_id}/process",
            json={"transaction_reference": "NEFT-9", "payment_currency": "₹"},
            headers=auth_headers(org.accounts),
        )
        assert paid.status_code == 200
        await assert_redemption_status(db_session, redemption_id, RedemptionStatus.COMPLETED)

    @pytest.mark.asyncio
    async def test_employee_type_change_is_reconciled_first(
        self, test_client, db_session, org, auth_headers, approved_policy_credit
    ):
        credit = await approved_policy_credit("115")
        created = await redeem(test_client, auth_headers(org.employee), credit.credit_id)
        redemption_id = created.json()["redemption"]["id"]

        user = await db_session.get(User, org.employee.user_id)
        user.employee_type = EmployeeType.PERMANENT_USA
        await db_session.commit()

        # the stored INR no longer matches the re-derived USD
        response = await test_client.post(
            f"/api/redemptions/{redemption_id}/process",
            json={"transaction_reference": "NEFT-10", "payment_currency": "INR"},
            headers=auth_headers(org.accounts),
        )

        assert response.status_code == 400
        await assert_redemption_status(db_session, redemption_id, RedemptionStatus.PENDING)
        await db_session.refresh(user)
        assert user.currency == Currency.INR
