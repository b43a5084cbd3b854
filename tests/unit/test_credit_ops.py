"""Unit tests for credit approval, limits, quick credit sales and reporting."""

import csv
import io
from decimal import Decimal

import pytest
from services.orders_service.errors import ValidationError
from services.orders_service.models import (
    CommissionRecord,
    CommissionTrigger,
    LedgerEntryType,
    ModificationType,
    OrderStatus,
    OrderType,
    PaymentMethod,
)
from services.orders_service.services import ledger
from services.orders_service.services.credit_ops import (
    CSV_HEADER,
    approve_credit,
    credit_report,
    credit_report_csv,
    list_customer_accounts,
    list_shop_accounts,
    quick_credit_sale,
    set_credit_limit,
)
from services.orders_service.services.order_ops import get_order, list_shop_orders
from sqlalchemy import select
from tests.conftest import CUSTOMER_ID, OTHER_SHOP_ID, SHOP_ID, STAFF_ID
from tests.factories import (
    FailingCommissionRecorder,
    line,
    open_account,
    place,
    save_settings,
)


async def _account(db):
    return await ledger.require_account(db, customer_id=CUSTOMER_ID, shop_id=SHOP_ID)


# ---------------------------------------------------------------------------
# approve_credit
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_approve_credit_charges_account_and_confirms(db_session):
    order = await place(
        db_session,
        [line("rice", "Rice 5kg", "500")],
        payment_method=PaymentMethod.CREDIT,
        customer_name="Priya",
    )

    order, warnings = await approve_credit(
        db_session, order_id=order.id, shop_id=SHOP_ID, actor_id=STAFF_ID
    )

    assert warnings == []
    assert order.status == OrderStatus.CONFIRMED
    assert order.credit_approved
    assert order.credit_approved_at is not None
    assert order.history[-1].entry_type == ModificationType.CREDIT_APPROVED
    assert order.history[-1].amount_delta == Decimal("500.00")

    account = await _account(db_session)
    assert account.current_balance == Decimal("500.00")
    assert account.credit_limit == Decimal("5000.00")
    assert account.customer_name == "Priya"

    entries = await ledger.list_transactions(db_session, account_id=account.id)
    assert len(entries) == 1
    assert entries[0].entry_type == LedgerEntryType.CREDIT_PURCHASE
    assert entries[0].amount == Decimal("500.00")
    assert entries[0].balance_before == Decimal("0.00")
    assert entries[0].balance_after == Decimal("500.00")
    assert entries[0].order_id == order.id


@pytest.mark.asyncio
@pytest.mark.unit
async def test_approve_credit_is_idempotent(db_session):
    order = await place(
        db_session, [line("rice", "Rice 5kg", "500")], payment_method=PaymentMethod.CREDIT
    )
    await approve_credit(db_session, order_id=order.id, shop_id=SHOP_ID, actor_id=STAFF_ID)
    history_len = len((await get_order(db_session, order.id)).history)

    order, warnings = await approve_credit(
        db_session, order_id=order.id, shop_id=SHOP_ID, actor_id=STAFF_ID
    )

    assert warnings == []
    assert len(order.history) == history_len
    account = await _account(db_session)
    assert account.current_balance == Decimal("500.00")
    assert len(await ledger.list_transactions(db_session, account_id=account.id)) == 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_approve_credit_over_limit_is_rejected_without_changes(db_session):
    await open_account(db_session, credit_limit="1000", balance="800")
    order = await place(
        db_session, [line("rice", "Rice 5kg", "500")], payment_method=PaymentMethod.CREDIT
    )
    order_id = order.id

    with pytest.raises(ValidationError) as exc_info:
        await approve_credit(
            db_session, order_id=order_id, shop_id=SHOP_ID, actor_id=STAFF_ID
        )
    assert "Credit limit exceeded" in exc_info.value.detail

    order = await get_order(db_session, order_id)
    assert order.status == OrderStatus.PENDING_APPROVAL
    assert not order.credit_approved
    account = await _account(db_session)
    assert account.current_balance == Decimal("800.00")
    assert await ledger.list_transactions(db_session, account_id=account.id) == []


@pytest.mark.asyncio
@pytest.mark.unit
async def test_approve_credit_up_to_exact_limit(db_session):
    await open_account(db_session, credit_limit="500")
    order = await place(
        db_session, [line("rice", "Rice 5kg", "500")], payment_method=PaymentMethod.CREDIT
    )

    order, _ = await approve_credit(
        db_session, order_id=order.id, shop_id=SHOP_ID, actor_id=STAFF_ID
    )

    account = await _account(db_session)
    assert account.current_balance == account.credit_limit
    assert account.available_credit == Decimal("0.00")
    assert account.utilization_percent == 100


@pytest.mark.asyncio
@pytest.mark.unit
async def test_approve_split_order_charges_only_credit_part(db_session):
    order = await place(
        db_session,
        [line("rice", "Rice 5kg", "500")],
        payment_method=PaymentMethod.SPLIT,
        credit_amount=Decimal("300"),
        cash_amount=Decimal("200"),
    )

    order, _ = await approve_credit(
        db_session, order_id=order.id, shop_id=SHOP_ID, actor_id=STAFF_ID
    )

    assert (await _account(db_session)).current_balance == Decimal("300.00")
    assert order.cash_amount == Decimal("200.00")


@pytest.mark.asyncio
@pytest.mark.unit
async def test_approve_cash_order_is_rejected(db_session):
    order = await place(db_session, [line("rice", "Rice", "100")])

    with pytest.raises(ValidationError):
        await approve_credit(
            db_session, order_id=order.id, shop_id=SHOP_ID, actor_id=STAFF_ID
        )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_approve_credit_records_commission(db_session):
    await save_settings(
        db_session, shop_name="Anand Kirana", commission_rate=Decimal("0.02")
    )
    order = await place(
        db_session, [line("rice", "Rice 5kg", "500")], payment_method=PaymentMethod.CREDIT
    )

    order, warnings = await approve_credit(
        db_session, order_id=order.id, shop_id=SHOP_ID, actor_id=STAFF_ID
    )

    assert warnings == []
    assert order.commission_recorded
    record = (
        await db_session.execute(
            select(CommissionRecord).where(CommissionRecord.order_id == order.id)
        )
    ).scalar_one()
    assert record.commission_amount == Decimal("10.00")
    assert record.trigger == CommissionTrigger.CREDIT_APPROVAL
    assert record.shop_name == "Anand Kirana"
    assert order.commission_id == record.id


@pytest.mark.asyncio
@pytest.mark.unit
async def test_commission_failure_is_a_warning_not_an_error(db_session):
    order = await place(
        db_session, [line("rice", "Rice 5kg", "500")], payment_method=PaymentMethod.CREDIT
    )
    recorder = FailingCommissionRecorder()

    order, warnings = await approve_credit(
        db_session,
        order_id=order.id,
        shop_id=SHOP_ID,
        actor_id=STAFF_ID,
        recorder=recorder,
    )

    assert recorder.calls == 1
    assert warnings == ["Commission could not be recorded: commission ledger unavailable"]
    assert order.status == OrderStatus.CONFIRMED
    assert order.credit_approved
    assert not order.commission_recorded
    assert (await _account(db_session)).current_balance == Decimal("500.00")


@pytest.mark.asyncio
@pytest.mark.unit
async def test_invalid_commission_rate_is_reported_as_warning(db_session):
    await save_settings(db_session, commission_rate=Decimal("1.5"))
    order = await place(
        db_session, [line("rice", "Rice 5kg", "500")], payment_method=PaymentMethod.CREDIT
    )

    order, warnings = await approve_credit(
        db_session, order_id=order.id, shop_id=SHOP_ID, actor_id=STAFF_ID
    )

    assert len(warnings) == 1
    assert "invalid commission rate" in warnings[0]
    assert order.credit_approved
    assert (await db_session.execute(select(CommissionRecord))).first() is None


# ---------------------------------------------------------------------------
# set_credit_limit
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_set_credit_limit_opens_account_if_needed(db_session):
    account = await set_credit_limit(
        db_session,
        shop_id=SHOP_ID,
        customer_id=CUSTOMER_ID,
        new_limit=Decimal("2000"),
        actor_id=STAFF_ID,
    )

    assert account.credit_limit == Decimal("2000.00")
    assert account.current_balance == Decimal("0.00")


@pytest.mark.asyncio
@pytest.mark.unit
async def test_set_credit_limit_below_balance_is_rejected(db_session):
    await open_account(db_session, credit_limit="1000", balance="300")

    with pytest.raises(ValidationError):
        await set_credit_limit(
            db_session,
            shop_id=SHOP_ID,
            customer_id=CUSTOMER_ID,
            new_limit=Decimal("200"),
            actor_id=STAFF_ID,
        )
    assert (await _account(db_session)).credit_limit == Decimal("1000.00")

    account = await set_credit_limit(
        db_session,
        shop_id=SHOP_ID,
        customer_id=CUSTOMER_ID,
        new_limit=Decimal("300"),
        actor_id=STAFF_ID,
    )
    assert account.credit_limit == Decimal("300.00")


# ---------------------------------------------------------------------------
# quick_credit_sale
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_quick_credit_sale_completes_in_one_step(db_session):
    order, warnings = await quick_credit_sale(
        db_session,
        shop_id=SHOP_ID,
        actor_id=STAFF_ID,
        customer_id=CUSTOMER_ID,
        customer_name="Priya",
        description="Groceries (counter)",
        amount=Decimal("275.50"),
    )

    assert warnings == []
    assert order.order_type == OrderType.QUICK_CREDIT_SALE
    assert order.status == OrderStatus.COMPLETED
    assert order.credit_approved
    assert order.total_amount == Decimal("275.50")
    assert order.credit_amount == Decimal("275.50")
    assert len(order.items) == 1
    assert order.items[0].name == "Groceries (counter)"
    assert order.commission_recorded
    assert [entry.entry_type for entry in order.history] == [
        ModificationType.CREDIT_APPROVED
    ]
    assert order.history[0].details["event"] == "quick_credit_sale"
    assert order.delivery_proof is None
    assert order.return_record is None

    account = await _account(db_session)
    assert account.current_balance == Decimal("275.50")
    entries = await ledger.list_transactions(db_session, account_id=account.id)
    assert entries[0].entry_type == LedgerEntryType.CREDIT_PURCHASE
    assert entries[0].order_id == order.id


@pytest.mark.asyncio
@pytest.mark.unit
async def test_quick_credit_sale_over_limit_creates_nothing(db_session):
    await open_account(db_session, credit_limit="100")

    with pytest.raises(ValidationError):
        await quick_credit_sale(
            db_session,
            shop_id=SHOP_ID,
            actor_id=STAFF_ID,
            customer_id=CUSTOMER_ID,
            description="Big purchase",
            amount=Decimal("150"),
        )

    assert await list_shop_orders(db_session, shop_id=SHOP_ID) == []
    assert (await _account(db_session)).current_balance == Decimal("0.00")


# ---------------------------------------------------------------------------
# Listings / reporting
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_credit_report_totals_and_csv(db_session):
    await open_account(db_session, customer_id="cust-a", credit_limit="1000", balance="250")
    await open_account(db_session, customer_id="cust-b", credit_limit="3000", balance="750")
    await open_account(
        db_session, customer_id="cust-c", shop_id=OTHER_SHOP_ID, balance="999"
    )

    accounts = await list_shop_accounts(db_session, shop_id=SHOP_ID)
    assert [a.customer_id for a in accounts] == ["cust-b", "cust-a"]

    report = await credit_report(db_session, shop_id=SHOP_ID)
    assert report.account_count == 2
    assert report.total_outstanding == Decimal("1000.00")
    assert report.total_limit == Decimal("4000.00")
    assert report.utilization_percent == 25

    rows = list(csv.reader(io.StringIO(credit_report_csv(report))))
    assert rows[0] == CSV_HEADER
    assert rows[1][0] == "cust-b"
    assert rows[-1][0] == "TOTAL"
    assert rows[-1][4] == "1000.00"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_customer_sees_accounts_across_shops(db_session):
    await open_account(db_session, shop_id=SHOP_ID)
    await open_account(db_session, shop_id=OTHER_SHOP_ID)
    await open_account(db_session, customer_id="cust-other")

    accounts = await list_customer_accounts(db_session, customer_id=CUSTOMER_ID)
    assert {a.shop_id for a in accounts} == {SHOP_ID, OTHER_SHOP_ID}
