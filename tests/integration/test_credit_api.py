"""Integration tests for credit accounts, payment confirmation and reports."""

from decimal import Decimal

import pytest
from services.orders_service.app.main import app
from tests.conftest import (
    CUSTOMER_ID,
    OTHER_SHOP_ID,
    SHOP_ID,
    make_customer_user,
    make_staff_user,
    override_auth,
)
from tests.factories import open_account

SHOP_CREDIT = f"/shops/{SHOP_ID}/credit"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_quick_sale_opens_account_and_charges(orders_client):
    """POST /shops/{shop}/credit/quick-sale: completed order, balance charged."""
    response = await orders_client.post(
        f"{SHOP_CREDIT}/quick-sale",
        json={
            "customer_id": CUSTOMER_ID,
            "customer_name": "Priya",
            "description": "Monthly groceries",
            "amount": "1250.50",
        },
    )

    assert response.status_code == 201, response.text
    order = response.json()["order"]
    assert order["order_type"] == "quick_credit_sale"
    assert order["status"] == "completed"
    assert Decimal(order["total_amount"]) == Decimal("1250.50")

    response = await orders_client.get(f"{SHOP_CREDIT}/accounts")
    accounts = response.json()
    assert [a["customer_id"] for a in accounts] == [CUSTOMER_ID]
    assert Decimal(accounts[0]["current_balance"]) == Decimal("1250.50")
    assert accounts[0]["customer_name"] == "Priya"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_payment_recorded_by_shop_confirmed_by_customer(
    orders_client, db_session
):
    await open_account(db_session, balance="600")

    response = await orders_client.post(
        f"{SHOP_CREDIT}/accounts/{CUSTOMER_ID}/payments",
        json={"amount": "200", "note": "UPI ref 4411"},
    )
    assert response.status_code == 201, response.text
    payment = response.json()
    assert payment["status"] == "pending_approval"
    assert Decimal(payment["projected_balance"]) == Decimal("400")
    assert 23.9 < payment["hours_remaining"] <= 24

    response = await orders_client.get(f"{SHOP_CREDIT}/accounts/{CUSTOMER_ID}")
    assert Decimal(response.json()["account"]["current_balance"]) == Decimal("600")

    with override_auth(app, make_customer_user()):
        response = await orders_client.get("/credit/pending-payments/me")
        assert [p["id"] for p in response.json()] == [payment["id"]]

        response = await orders_client.post(
            f"/credit/pending-payments/{payment['id']}/approve"
        )
        assert response.status_code == 200, response.text
        data = response.json()
        assert data["payment"]["status"] == "approved"
        assert Decimal(data["account"]["current_balance"]) == Decimal("400")

        response = await orders_client.get(
            f"/credit/accounts/me/{SHOP_ID}/transactions"
        )
        entries = response.json()["transactions"]
        assert [e["entry_type"] for e in entries] == ["payment"]
        assert Decimal(entries[0]["amount"]) == Decimal("-200")


@pytest.mark.asyncio
@pytest.mark.integration
async def test_disputed_payment_leaves_balance(orders_client, db_session):
    await open_account(db_session, balance="600")
    response = await orders_client.post(
        f"{SHOP_CREDIT}/accounts/{CUSTOMER_ID}/payments", json={"amount": "200"}
    )
    payment_id = response.json()["id"]

    with override_auth(app, make_customer_user()):
        response = await orders_client.post(
            f"/credit/pending-payments/{payment_id}/dispute",
            json={"reason": "Paid 100 only"},
        )
    assert response.status_code == 200, response.text
    assert response.json()["status"] == "disputed"

    response = await orders_client.get(
        f"{SHOP_CREDIT}/pending-payments", params={"status": "disputed"}
    )
    assert [p["id"] for p in response.json()] == [payment_id]
    response = await orders_client.get(f"{SHOP_CREDIT}/accounts/{CUSTOMER_ID}")
    assert Decimal(response.json()["account"]["current_balance"]) == Decimal("600")


@pytest.mark.asyncio
@pytest.mark.integration
async def test_shop_cancels_recorded_payment(orders_client, db_session):
    await open_account(db_session, balance="600")
    response = await orders_client.post(
        f"{SHOP_CREDIT}/accounts/{CUSTOMER_ID}/payments", json={"amount": "200"}
    )
    payment_id = response.json()["id"]

    response = await orders_client.post(
        f"{SHOP_CREDIT}/pending-payments/{payment_id}/cancel"
    )
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    assert response.json()["hours_remaining"] is None

    with override_auth(app, make_customer_user()):
        response = await orders_client.post(
            f"/credit/pending-payments/{payment_id}/approve"
        )
    assert response.status_code == 400


@pytest.mark.asyncio
@pytest.mark.integration
async def test_payment_larger_than_balance_is_rejected(orders_client, db_session):
    await open_account(db_session, balance="100")

    response = await orders_client.post(
        f"{SHOP_CREDIT}/accounts/{CUSTOMER_ID}/payments", json={"amount": "150"}
    )

    assert response.status_code == 400


@pytest.mark.asyncio
@pytest.mark.integration
async def test_limit_cannot_drop_below_balance(orders_client, db_session):
    await open_account(db_session, credit_limit="1000", balance="400")

    response = await orders_client.put(
        f"{SHOP_CREDIT}/accounts/{CUSTOMER_ID}/limit", json={"credit_limit": "300"}
    )
    assert response.status_code == 400

    response = await orders_client.put(
        f"{SHOP_CREDIT}/accounts/{CUSTOMER_ID}/limit", json={"credit_limit": "2500"}
    )
    assert response.status_code == 200
    assert Decimal(response.json()["credit_limit"]) == Decimal("2500")
    assert Decimal(response.json()["available_credit"]) == Decimal("2100")


@pytest.mark.asyncio
@pytest.mark.integration
async def test_credit_report_and_csv_export(orders_client, db_session):
    await open_account(
        db_session, customer_id="cust-a", credit_limit="1000", balance="500"
    )
    await open_account(
        db_session, customer_id="cust-b", credit_limit="1000", balance="0"
    )

    response = await orders_client.get(f"{SHOP_CREDIT}/report")
    assert response.status_code == 200
    report = response.json()
    assert report["account_count"] == 2
    assert Decimal(report["total_outstanding"]) == Decimal("500")
    assert report["utilization_percent"] == 25

    response = await orders_client.get(f"{SHOP_CREDIT}/report.csv")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "attachment" in response.headers["content-disposition"]
    lines = response.text.strip().splitlines()
    assert lines[0].startswith("Customer ID,")
    assert lines[-1].startswith("TOTAL,")


@pytest.mark.asyncio
@pytest.mark.integration
async def test_other_shop_staff_cannot_read_accounts(orders_client, db_session):
    await open_account(db_session)

    with override_auth(app, make_staff_user(shop_id=OTHER_SHOP_ID)):
        response = await orders_client.get(f"{SHOP_CREDIT}/accounts/{CUSTOMER_ID}")
    assert response.status_code == 403

    with override_auth(app, make_staff_user(role="service_role", shop_id=None)):
        response = await orders_client.get(f"{SHOP_CREDIT}/accounts/{CUSTOMER_ID}")
    assert response.status_code == 200
