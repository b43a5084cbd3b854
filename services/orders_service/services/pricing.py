"""Order totals, payment-split rebalancing and delivery fee calculation.

These helpers mutate an ``Order`` in memory only; callers own the transaction.
"""

from decimal import Decimal
from typing import Optional

from libs.common.currency import ZERO, line_total, sum_money, to_money
from services.orders_service.errors import IntegrityViolation, ValidationError
from services.orders_service.models import DeliveryType, Order, OrderItem, PaymentMethod
from services.orders_service.services.shop_settings import DeliverySettings


def price_item(item: OrderItem) -> OrderItem:
    item.total = line_total(item.unit_price, item.quantity)
    return item


def recompute_totals(order: Order) -> Decimal:
    """Recompute subtotal/total from the current items; returns the change in total."""
    previous_total = to_money(order.total_amount)
    order.subtotal = sum_money(item.total for item in order.items)
    order.total_amount = to_money(order.subtotal + to_money(order.delivery_fee))
    return order.total_amount - previous_total


def rebalance_payment(order: Order, *, credit_portion: Optional[Decimal] = None) -> None:
    """Keep ``credit_amount + cash_amount == total_amount``.

    Cash and full-credit orders put the whole total on one side. Split orders
    hold the credit portion (or ``credit_portion`` when given), clamped to the
    new total, and the cash side absorbs the difference.
    """
    total = to_money(order.total_amount)
    if order.payment_method == PaymentMethod.CASH:
        order.credit_amount = ZERO
        order.cash_amount = total
    elif order.payment_method == PaymentMethod.CREDIT:
        order.credit_amount = total
        order.cash_amount = ZERO
    else:
        credit = to_money(
            order.credit_amount if credit_portion is None else credit_portion
        )
        credit = min(max(credit, ZERO), total)
        order.credit_amount = credit
        order.cash_amount = total - credit


def validate_split(
    total: Decimal, credit_amount: Optional[Decimal], cash_amount: Optional[Decimal]
) -> tuple[Decimal, Decimal]:
    """Split amounts must be a positive credit part plus cash, summing exactly to total."""
    if credit_amount is None or cash_amount is None:
        raise IntegrityViolation("Split payment requires both credit and cash amounts")
    credit = to_money(credit_amount)
    cash = to_money(cash_amount)
    if credit <= ZERO:
        raise IntegrityViolation("Split payment requires a positive credit amount")
    if cash < ZERO:
        raise IntegrityViolation("Cash amount cannot be negative")
    if credit + cash != to_money(total):
        raise IntegrityViolation(
            f"Split amounts ({credit} credit + {cash} cash) do not match "
            f"order total {to_money(total)}"
        )
    return credit, cash


def calculate_delivery_fee(
    settings: DeliverySettings, delivery_type: DeliveryType, subtotal: Decimal
) -> Decimal:
    """Fee is fixed at placement; later item changes never recompute it."""
    if delivery_type == DeliveryType.PICKUP:
        if not settings.allows_pickup:
            raise ValidationError("This shop does not offer pickup")
        return ZERO

    if not settings.offers_delivery:
        raise ValidationError("This shop does not offer delivery")
    threshold = to_money(settings.free_delivery_threshold)
    if threshold > ZERO and to_money(subtotal) >= threshold:
        return ZERO
    return to_money(settings.delivery_fee)


def total_reconciles(order: Order) -> bool:
    expected = sum_money(item.total for item in order.items) + to_money(
        order.delivery_fee
    )
    return to_money(order.total_amount) == expected and (
        to_money(order.credit_amount) + to_money(order.cash_amount)
        == to_money(order.total_amount)
    )
