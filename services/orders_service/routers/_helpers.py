"""Shared response builders and dependencies for the orders routers."""

from typing import Optional

from services.orders_service.models import Order, PendingPayment, ShopSettings
from services.orders_service.schemas import (
    DeliverySettingsResponse,
    OrderActionResponse,
    OrderResponse,
    PendingPaymentResponse,
    ReturnEligibilityResponse,
    ReturnPolicyResponse,
    ShopSettingsResponse,
)
from services.orders_service.services.commission import (
    CommissionRecorder,
    default_commission_recorder,
)
from services.orders_service.services.pending_payments import hours_remaining
from services.orders_service.services.returns import ReturnEligibility
from services.orders_service.services.shop_settings import (
    delivery_settings_from,
    return_policy_from,
)


def get_commission_recorder() -> CommissionRecorder:
    """Commission collaborator; overridden in tests."""
    return default_commission_recorder


def order_action_response(order: Order, warnings: list[str]) -> OrderActionResponse:
    return OrderActionResponse(
        order=OrderResponse.model_validate(order), warnings=warnings
    )


def pending_payment_response(payment: PendingPayment) -> PendingPaymentResponse:
    response = PendingPaymentResponse.model_validate(payment)
    response.hours_remaining = hours_remaining(payment)
    return response


def eligibility_response(
    order: Order, eligibility: ReturnEligibility
) -> ReturnEligibilityResponse:
    return ReturnEligibilityResponse(
        order_id=order.id,
        eligible=eligibility.eligible,
        reason=eligibility.reason,
        hours_elapsed=eligibility.hours_elapsed,
        hours_remaining=eligibility.hours_remaining,
        return_window_hours=eligibility.policy.return_window_hours,
        perishable_window_hours=eligibility.policy.perishable_window_hours,
        allowed_reasons=list(eligibility.policy.allowed_reasons),
    )


def shop_settings_response(
    shop_id: str, settings: Optional[ShopSettings]
) -> ShopSettingsResponse:
    policy = return_policy_from(settings)
    delivery = delivery_settings_from(settings)
    return ShopSettingsResponse(
        shop_id=shop_id,
        shop_name=settings.shop_name if settings else None,
        return_policy=ReturnPolicyResponse(
            return_window_hours=policy.return_window_hours,
            allow_returns=policy.allow_returns,
            perishable_window_hours=policy.perishable_window_hours,
            allowed_reasons=list(policy.allowed_reasons),
        ),
        delivery=DeliverySettingsResponse(
            offers_delivery=delivery.offers_delivery,
            delivery_fee=delivery.delivery_fee,
            free_delivery_threshold=delivery.free_delivery_threshold,
            allows_pickup=delivery.allows_pickup,
        ),
        commission_rate=settings.commission_rate if settings else None,
    )
