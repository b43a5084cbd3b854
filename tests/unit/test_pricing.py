"""Unit tests for money primitives and order pricing helpers.

Pure functions on in-memory orders; no database involved.
"""

from decimal import Decimal

import pytest
from libs.common.currency import format_money, line_total, sum_money, to_money
from services.orders_service.errors import IntegrityViolation, ValidationError
from services.orders_service.models import DeliveryType, Order, OrderItem, PaymentMethod
from services.orders_service.services.pricing import (
    calculate_delivery_fee,
    price_item,
    rebalance_payment,
    recompute_totals,
    total_reconciles,
    validate_split,
)
from services.orders_service.services.shop_settings import DeliverySettings


def _order(payment_method=PaymentMethod.CASH, delivery_fee="0", lines=()):
    order = Order(
        payment_method=payment_method,
        delivery_fee=to_money(delivery_fee),
        subtotal=Decimal("0"),
        total_amount=Decimal("0"),
        credit_amount=Decimal("0"),
        cash_amount=Decimal("0"),
    )
    for product_id, price, quantity in lines:
        order.items.append(
            price_item(
                OrderItem(
                    product_id=product_id,
                    name=product_id,
                    unit_price=Decimal(price),
                    quantity=Decimal(quantity),
                )
            )
        )
    recompute_totals(order)
    return order


# ---------------------------------------------------------------------------
# currency
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_to_money_rounds_half_up_and_treats_none_as_zero():
    assert to_money("10.005") == Decimal("10.01")
    assert to_money(0.1) == Decimal("0.10")
    assert to_money(None) == Decimal("0.00")


@pytest.mark.unit
def test_line_total_for_loose_goods_by_weight():
    """1.25 kg of sugar at ₹48/kg is ₹60.00, with no float drift."""
    assert line_total("48", "1.25") == Decimal("60.00")
    assert line_total("33.33", "3") == Decimal("99.99")


@pytest.mark.unit
def test_sum_money_and_format():
    assert sum_money(["10.10", "20.20", Decimal("0.05")]) == Decimal("30.35")
    assert format_money("1250") == "₹1,250.00"


# ---------------------------------------------------------------------------
# totals / rebalance
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_recompute_totals_includes_delivery_fee_and_returns_delta():
    order = _order(
        delivery_fee="30", lines=[("rice", "250", "2"), ("dal", "120", "1")]
    )
    assert order.subtotal == Decimal("620.00")
    assert order.total_amount == Decimal("650.00")

    order.items.pop()
    delta = recompute_totals(order)
    assert delta == Decimal("-120.00")
    assert order.total_amount == Decimal("530.00")


@pytest.mark.unit
def test_rebalance_cash_and_credit_put_everything_on_one_side():
    cash = _order(PaymentMethod.CASH, lines=[("rice", "100", "1")])
    rebalance_payment(cash)
    assert (cash.credit_amount, cash.cash_amount) == (
        Decimal("0.00"),
        Decimal("100.00"),
    )

    credit = _order(PaymentMethod.CREDIT, lines=[("rice", "100", "1")])
    rebalance_payment(credit)
    assert (credit.credit_amount, credit.cash_amount) == (
        Decimal("100.00"),
        Decimal("0.00"),
    )
    assert total_reconciles(credit)


@pytest.mark.unit
def test_rebalance_split_clamps_credit_to_new_total():
    order = _order(PaymentMethod.SPLIT, lines=[("rice", "500", "1")])
    rebalance_payment(order, credit_portion=Decimal("300"))
    assert order.cash_amount == Decimal("200.00")

    # Total drops below the credit portion: cash goes to zero, credit is clamped
    order.items[0].quantity = Decimal("0.5")
    price_item(order.items[0])
    recompute_totals(order)
    rebalance_payment(order)
    assert order.total_amount == Decimal("250.00")
    assert order.credit_amount == Decimal("250.00")
    assert order.cash_amount == Decimal("0.00")
    assert total_reconciles(order)


# ---------------------------------------------------------------------------
# split validation
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_validate_split_accepts_exact_sum():
    assert validate_split(Decimal("500"), Decimal("300"), Decimal("200")) == (
        Decimal("300.00"),
        Decimal("200.00"),
    )


@pytest.mark.unit
@pytest.mark.parametrize(
    "credit,cash",
    [(None, "200"), ("0", "500"), ("300", "-1"), ("300", "150")],
)
def test_validate_split_rejects_bad_amounts(credit, cash):
    with pytest.raises(IntegrityViolation) as exc_info:
        validate_split(
            Decimal("500"),
            Decimal(credit) if credit is not None else None,
            Decimal(cash),
        )
    assert exc_info.value.status_code == 422


# ---------------------------------------------------------------------------
# delivery fee
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_delivery_fee_flat_below_threshold_and_free_above():
    settings = DeliverySettings(
        offers_delivery=True,
        delivery_fee=Decimal("30"),
        free_delivery_threshold=Decimal("500"),
    )
    fee = calculate_delivery_fee
    assert fee(settings, DeliveryType.DELIVERY, Decimal("499.99")) == Decimal("30.00")
    assert fee(settings, DeliveryType.DELIVERY, Decimal("500")) == Decimal("0.00")
    assert fee(settings, DeliveryType.PICKUP, Decimal("100")) == Decimal("0.00")


@pytest.mark.unit
def test_delivery_fee_zero_threshold_means_always_charged():
    settings = DeliverySettings(offers_delivery=True, delivery_fee=Decimal("25"))
    fee = calculate_delivery_fee(settings, DeliveryType.DELIVERY, Decimal("10000"))
    assert fee == Decimal("25.00")


@pytest.mark.unit
def test_delivery_and_pickup_rejected_when_shop_does_not_offer_them():
    with pytest.raises(ValidationError):
        calculate_delivery_fee(
            DeliverySettings(), DeliveryType.DELIVERY, Decimal("100")
        )
    with pytest.raises(ValidationError):
        calculate_delivery_fee(
            DeliverySettings(offers_delivery=True, allows_pickup=False),
            DeliveryType.PICKUP,
            Decimal("100"),
        )
