"""
One-time donations: a destination charge from a payer's card to a lab's
connected account, minus the platform fee.
"""
from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional, Tuple

import stripe
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.core.exceptions import (
    PersistenceError,
    PreconditionError,
    ProviderError,
    ValidationError,
)
from app.integrations.payments import StripeGateway, provider_message
from app.models import LabDonation
from app.schemas.funding import DonationRequest
from app.services.funding_store import adjust_goal_contribution, get_goal_name, get_lab, get_profile

logger = logging.getLogger(__name__)


def compute_platform_fee(amount: int, rate: Optional[float] = None) -> Tuple[int, int]:
    """
    Split ``amount`` (cents) into ``(fee, net)``.

    The fee rounds half up, so 10000 at 2.5% gives (250, 9750).
    """
    if rate is None:
        rate = settings.platform_fee_rate
    fee = int((Decimal(amount) * Decimal(str(rate))).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return fee, amount - fee


class DonationService:
    def __init__(self, db: Session, gateway: StripeGateway):
        self.db = db
        self.gateway = gateway

    def charge_donation(self, request: DonationRequest) -> Dict[str, Any]:
        user_id, lab_id, goal_id, amount = (
            request.user_id,
            request.lab_id,
            request.goal_id,
            request.amount,
        )
        if not user_id or not lab_id or not amount:
            raise ValidationError("Missing userId, labId or amount")

        profile = get_profile(self.db, user_id)
        if profile is None or not profile.payment_acc_id:
            logger.warning(f"Donation rejected: user {user_id} has no Stripe customer")
            raise PreconditionError("No Stripe customer/payment_acc_id found for user.")
        customer_id = profile.payment_acc_id

        lab = get_lab(self.db, lab_id)
        if lab is None or not lab.funding_id:
            logger.warning(f"Donation rejected: lab {lab_id} has no connected account")
            raise PreconditionError("Lab does not have a connected Stripe account.")

        goal_name = request.goal_name
        if goal_id:
            goal_name = get_goal_name(self.db, lab_id, goal_id) or goal_name

        try:
            payment_method_id = self.gateway.resolve_card_payment_method(customer_id)
        except stripe.StripeError as e:
            raise ProviderError(provider_message(e), status_code=400)
        if not payment_method_id:
            raise PreconditionError("No payment method found for user.")

        fee, net = compute_platform_fee(amount)
        logger.info(
            f"Charging {amount} (fee {fee}, net {net}) from user {user_id} to lab {lab_id}"
        )

        # No idempotency key: a retried request is a second charge.
        try:
            payment_intent = self.gateway.create_destination_charge(
                amount=amount,
                customer_id=customer_id,
                payment_method_id=payment_method_id,
                destination=lab.funding_id,
                application_fee_amount=fee,
                metadata={"userId": user_id, "labId": lab_id, "goalId": goal_id or ""},
            )
        except stripe.StripeError as e:
            logger.error(f"Donation charge failed for user {user_id}: {str(e)}")
            raise ProviderError(provider_message(e), status_code=400)

        major_amount = amount / 100
        donation = LabDonation(
            user_id=user_id,
            lab_id=lab_id,
            donation_amount=major_amount,
            towards_goal=goal_name,
            goal_id=goal_id,
            transaction_id=payment_intent.id,
            caption=request.caption,
            status="succeeded",
        )
        try:
            self.db.add(donation)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            # The charge has already been captured; nothing is refunded here.
            logger.error(
                f"Failed to log donation for payment intent {payment_intent.id}: {str(e)}"
            )
            raise PersistenceError("Failed to log donation")

        if goal_id:
            try:
                adjust_goal_contribution(self.db, lab_id, goal_id, major_amount)
            except PersistenceError:
                logger.error(
                    f"Donation {payment_intent.id} logged but goal {goal_id} was not incremented"
                )

        return {"success": True, "paymentIntentId": payment_intent.id}
