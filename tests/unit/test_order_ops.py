"""Unit tests for order placement, the staff status machine and cancellation.

Tests call the service functions directly with the db_session fixture.
"""

from decimal import Decimal

import pytest
from fastapi import HTTPException
from services.orders_service.errors import IntegrityViolation, ValidationError
from services.orders_service.models import (
    CommissionRecord,
    CommissionTrigger,
    DeliveryType,
    LedgerEntryType,
    ModificationType,
    OrderStatus,
    PaymentMethod,
)
from services.orders_service.schemas import DeliveryAddress
from services.orders_service.services import ledger
from services.orders_service.services.order_ops import (
    advance_status,
    cancel_order,
    get_customer_order,
    get_order,
    list_customer_orders,
    list_shop_orders,
)
from services.orders_service.services.pricing import total_reconciles
from sqlalchemy import select
from tests.conftest import CUSTOMER_ID, OTHER_SHOP_ID, SHOP_ID, STAFF_ID
from tests.factories import (
    NoopCommissionRecorder,
    advance_to,
    approved_order,
    line,
    place,
    save_settings,
)

ADDRESS = DeliveryAddress(street="12 MG Road", city="Pune", phone="9876543210")


# ---------------------------------------------------------------------------
# place_order
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_cash_order_is_confirmed_immediately(db_session):
    order = await place(
        db_session,
        [line("rice", "Rice 1kg", "250", "2"), line("dal", "Toor dal", "120")],
    )

    assert order.status == OrderStatus.CONFIRMED
    assert order.confirmed_at is not None
    assert order.total_amount == Decimal("620.00")
    assert order.cash_amount == Decimal("620.00")
    assert order.credit_amount == Decimal("0.00")
    assert not order.credit_requested
    assert [item.position for item in order.items] == [0, 1]
    assert order.order_number.startswith("SC-")

    assert len(order.history) == 1
    placed = order.history[0]
    assert placed.sequence == 1
    assert placed.entry_type == ModificationType.STATUS_CHANGE
    assert placed.to_status == "confirmed"
    assert placed.details["event"] == "placed"
    assert order.delivery_proof is None
    assert order.return_record is None


@pytest.mark.asyncio
@pytest.mark.unit
async def test_credit_order_waits_for_approval_without_touching_ledger(db_session):
    order = await place(
        db_session,
        [line("rice", "Rice 5kg", "500")],
        payment_method=PaymentMethod.CREDIT,
    )

    assert order.status == OrderStatus.PENDING_APPROVAL
    assert order.credit_requested
    assert not order.credit_approved
    assert order.credit_amount == Decimal("500.00")
    assert order.cash_amount == Decimal("0.00")
    assert (
        await ledger.get_account(db_session, customer_id=CUSTOMER_ID, shop_id=SHOP_ID)
    ) is None


@pytest.mark.asyncio
@pytest.mark.unit
async def test_split_order_keeps_given_split(db_session):
    order = await place(
        db_session,
        [line("rice", "Rice 5kg", "500")],
        payment_method=PaymentMethod.SPLIT,
        credit_amount=Decimal("300"),
        cash_amount=Decimal("200"),
    )

    assert order.status == OrderStatus.PENDING_APPROVAL
    assert order.credit_amount == Decimal("300.00")
    assert order.cash_amount == Decimal("200.00")
    assert total_reconciles(order)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_split_order_not_matching_total_is_rejected(db_session):
    with pytest.raises(IntegrityViolation):
        await place(
            db_session,
            [line("rice", "Rice 5kg", "500")],
            payment_method=PaymentMethod.SPLIT,
            credit_amount=Decimal("300"),
            cash_amount=Decimal("100"),
        )
    assert await list_shop_orders(db_session, shop_id=SHOP_ID) == []


@pytest.mark.asyncio
@pytest.mark.unit
async def test_empty_order_is_rejected(db_session):
    with pytest.raises(ValidationError):
        await place(db_session, [])


@pytest.mark.asyncio
@pytest.mark.unit
async def test_delivery_fee_charged_below_free_threshold(db_session):
    await save_settings(
        db_session,
        offers_delivery=True,
        delivery_fee=Decimal("30"),
        free_delivery_threshold=Decimal("500"),
    )

    small = await place(
        db_session,
        [line("milk", "Milk 1L", "60", "2")],
        delivery_type=DeliveryType.DELIVERY,
        delivery_address=ADDRESS,
    )
    large = await place(
        db_session,
        [line("rice", "Rice 5kg", "550")],
        delivery_type=DeliveryType.DELIVERY,
        delivery_address=ADDRESS,
    )

    assert small.delivery_fee == Decimal("30.00")
    assert small.total_amount == Decimal("150.00")
    assert small.delivery_address["city"] == "Pune"
    assert large.delivery_fee == Decimal("0.00")
    assert large.total_amount == Decimal("550.00")


@pytest.mark.asyncio
@pytest.mark.unit
async def test_delivery_needs_address_and_shop_support(db_session):
    # No settings row: the shop does not deliver
    with pytest.raises(ValidationError):
        await place(
            db_session,
            [line("rice", "Rice", "100")],
            delivery_type=DeliveryType.DELIVERY,
            delivery_address=ADDRESS,
        )

    await save_settings(db_session, offers_delivery=True)
    with pytest.raises(ValidationError) as exc_info:
        await place(
            db_session, [line("rice", "Rice", "100")], delivery_type=DeliveryType.DELIVERY
        )
    assert "address" in exc_info.value.detail


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_orders_are_scoped_to_their_customer_and_shop(db_session):
    mine = await place(db_session, [line("rice", "Rice", "100")])
    await place(db_session, [line("rice", "Rice", "100")], shop_id=OTHER_SHOP_ID)
    await place(db_session, [line("rice", "Rice", "100")], customer_id="cust-other")

    assert len(await list_shop_orders(db_session, shop_id=SHOP_ID)) == 2
    assert len(await list_customer_orders(db_session, customer_id=CUSTOMER_ID)) == 2
    assert (
        len(
            await list_customer_orders(
                db_session, customer_id=CUSTOMER_ID, shop_id=SHOP_ID
            )
        )
        == 1
    )

    with pytest.raises(HTTPException) as exc_info:
        await get_customer_order(db_session, order_id=mine.id, customer_id="cust-other")
    assert exc_info.value.status_code == 404


# ---------------------------------------------------------------------------
# advance_status
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_status_moves_one_step_at_a_time(db_session, tracker):
    order = await place(db_session, [line("rice", "Rice", "100")])

    with pytest.raises(ValidationError):
        await advance_status(
            db_session,
            order_id=order.id,
            shop_id=SHOP_ID,
            target=OrderStatus.READY,
            actor_id=STAFF_ID,
            tracker=tracker,
        )

    order, warnings = await advance_status(
        db_session,
        order_id=order.id,
        shop_id=SHOP_ID,
        target=OrderStatus.PREPARING,
        actor_id=STAFF_ID,
        tracker=tracker,
    )
    assert order.status == OrderStatus.PREPARING
    assert order.preparing_at is not None
    assert warnings == []
    assert order.history[-1].from_status == "confirmed"
    assert order.history[-1].to_status == "preparing"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_repeating_current_status_is_a_noop(db_session, tracker):
    order = await place(db_session, [line("rice", "Rice", "100")])
    history_len = len(order.history)

    order, warnings = await advance_status(
        db_session,
        order_id=order.id,
        shop_id=SHOP_ID,
        target=OrderStatus.CONFIRMED,
        actor_id=STAFF_ID,
        tracker=tracker,
    )

    assert order.status == OrderStatus.CONFIRMED
    assert len(order.history) == history_len
    assert warnings == []


@pytest.mark.asyncio
@pytest.mark.unit
async def test_pending_credit_order_cannot_start_fulfilment(db_session, tracker):
    order = await place(
        db_session, [line("rice", "Rice", "100")], payment_method=PaymentMethod.CREDIT
    )

    with pytest.raises(ValidationError) as exc_info:
        await advance_status(
            db_session,
            order_id=order.id,
            shop_id=SHOP_ID,
            target=OrderStatus.PREPARING,
            actor_id=STAFF_ID,
            tracker=tracker,
        )
    assert "approved" in exc_info.value.detail


@pytest.mark.asyncio
@pytest.mark.unit
async def test_ready_requires_every_item_prepared(db_session, tracker):
    order = await place(
        db_session, [line("rice", "Rice", "100"), line("dal", "Dal", "80")]
    )
    order = await advance_to(db_session, order, OrderStatus.PREPARING, tracker=tracker)

    tracker.mark(order.id, order.items[0].id)
    with pytest.raises(ValidationError):
        await advance_status(
            db_session,
            order_id=order.id,
            shop_id=SHOP_ID,
            target=OrderStatus.READY,
            actor_id=STAFF_ID,
            tracker=tracker,
        )

    tracker.mark(order.id, order.items[1].id)
    order, _ = await advance_status(
        db_session,
        order_id=order.id,
        shop_id=SHOP_ID,
        target=OrderStatus.READY,
        actor_id=STAFF_ID,
        tracker=tracker,
    )
    assert order.status == OrderStatus.READY
    # Prepared marks are dropped once the order leaves preparing
    assert tracker.prepared(order.id) == set()


@pytest.mark.asyncio
@pytest.mark.unit
async def test_completion_records_commission_once(db_session, tracker):
    order = await place(db_session, [line("rice", "Rice 5kg", "500")])
    order = await advance_to(db_session, order, OrderStatus.READY, tracker=tracker)

    order, warnings = await advance_status(
        db_session,
        order_id=order.id,
        shop_id=SHOP_ID,
        target=OrderStatus.COMPLETED,
        actor_id=STAFF_ID,
        tracker=tracker,
    )

    assert warnings == []
    assert order.status == OrderStatus.COMPLETED
    assert order.completed_at is not None
    assert order.commission_recorded
    assert order.commission_amount == Decimal("25.00")

    records = (await db_session.execute(select(CommissionRecord))).scalars().all()
    assert len(records) == 1
    assert records[0].order_id == order.id
    assert records[0].trigger == CommissionTrigger.ORDER_COMPLETED


@pytest.mark.asyncio
@pytest.mark.unit
async def test_history_sequence_is_contiguous(db_session, tracker):
    order = await place(db_session, [line("rice", "Rice", "100")])
    order = await advance_to(db_session, order, OrderStatus.COMPLETED, tracker=tracker)

    assert [entry.sequence for entry in order.history] == [1, 2, 3, 4]


# ---------------------------------------------------------------------------
# cancel_order
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_cancel_releases_approved_credit(db_session):
    order = await approved_order(db_session, [line("rice", "Rice 5kg", "500")])

    order = await cancel_order(
        db_session,
        order_id=order.id,
        shop_id=SHOP_ID,
        actor_id=STAFF_ID,
        reason="customer_request",
    )

    assert order.status == OrderStatus.CANCELLED
    assert order.cancellation_reason == "customer_request"
    assert order.cancelled_at is not None
    # Items and totals stay as placed for the record
    assert len(order.items) == 1
    assert order.total_amount == Decimal("500.00")

    account = await ledger.require_account(
        db_session, customer_id=CUSTOMER_ID, shop_id=SHOP_ID
    )
    assert account.current_balance == Decimal("0.00")
    entries = await ledger.list_transactions(db_session, account_id=account.id)
    assert entries[0].entry_type == LedgerEntryType.CANCELLATION_REFUND
    assert entries[0].amount == Decimal("-500.00")


@pytest.mark.asyncio
@pytest.mark.unit
async def test_cancel_twice_is_a_noop(db_session):
    order = await approved_order(db_session, [line("rice", "Rice 5kg", "500")])
    await cancel_order(
        db_session, order_id=order.id, shop_id=SHOP_ID, actor_id=STAFF_ID, reason="x"
    )
    again = await cancel_order(
        db_session, order_id=order.id, shop_id=SHOP_ID, actor_id=STAFF_ID, reason="y"
    )

    assert again.cancellation_reason == "x"
    account = await ledger.require_account(
        db_session, customer_id=CUSTOMER_ID, shop_id=SHOP_ID
    )
    entries = await ledger.list_transactions(db_session, account_id=account.id)
    assert [e.entry_type for e in entries].count(
        LedgerEntryType.CANCELLATION_REFUND
    ) == 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_ready_order_cannot_be_cancelled(db_session, tracker):
    order = await place(db_session, [line("rice", "Rice", "100")])
    order = await advance_to(db_session, order, OrderStatus.READY, tracker=tracker)

    with pytest.raises(ValidationError):
        await cancel_order(
            db_session,
            order_id=order.id,
            shop_id=SHOP_ID,
            actor_id=STAFF_ID,
            reason="too late",
        )
    assert (await get_order(db_session, order.id)).status == OrderStatus.READY


@pytest.mark.asyncio
@pytest.mark.unit
async def test_cancel_pending_credit_order_writes_no_ledger_entry(db_session):
    order = await place(
        db_session, [line("rice", "Rice", "100")], payment_method=PaymentMethod.CREDIT
    )

    order = await cancel_order(
        db_session,
        order_id=order.id,
        shop_id=SHOP_ID,
        actor_id=STAFF_ID,
        reason="out of stock",
        tracker=None,
    )

    assert order.status == OrderStatus.CANCELLED
    assert order.history[-1].details["credit_released"] == "0.00"
    assert (
        await ledger.get_account(db_session, customer_id=CUSTOMER_ID, shop_id=SHOP_ID)
    ) is None


@pytest.mark.asyncio
@pytest.mark.unit
async def test_other_shop_cannot_touch_order(db_session):
    order = await place(db_session, [line("rice", "Rice", "100")])

    with pytest.raises(HTTPException) as exc_info:
        await advance_status(
            db_session,
            order_id=order.id,
            shop_id=OTHER_SHOP_ID,
            target=OrderStatus.PREPARING,
            actor_id=STAFF_ID,
            recorder=NoopCommissionRecorder(),
        )
    assert exc_info.value.status_code == 404
