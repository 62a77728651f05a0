"""
Recurring lab memberships billed monthly through Stripe subscriptions.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

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
from app.models import LabSubscription
from app.schemas.funding import MembershipRequest
from app.services.funding_store import (
    adjust_goal_contribution,
    get_lab,
    get_membership_plan,
    get_profile,
)

logger = logging.getLogger(__name__)


class MembershipService:
    def __init__(self, db: Session, gateway: StripeGateway):
        self.db = db
        self.gateway = gateway

    def create_membership_subscription(self, request: MembershipRequest) -> Dict[str, Any]:
        """
        Subscribe a payer to a lab at the lab's current monthly rate.

        Stripe calls run in a fixed order: customer rename, card resolution,
        default card, product and price, subscription, first-invoice payment.
        The payment is best effort; the record keeps ``incomplete`` when it
        does not go through and the webhook updates it later.
        """
        # Trimmed only; user ids are case-sensitive.
        user_id = request.user_id.strip() if isinstance(request.user_id, str) else request.user_id
        lab_id, goal_id = request.lab_id, request.goal_id
        if not user_id or not lab_id:
            raise ValidationError("Missing userId or labId")
        logger.info(f"Membership subscription requested by {user_id} for lab {lab_id}")

        plan = get_membership_plan(self.db, lab_id)
        if plan is None or plan.monthly_amount is None:
            raise PreconditionError("Lab membership not found.")
        monthly_amount = plan.monthly_amount

        profile = get_profile(self.db, user_id)
        if profile is None or not profile.payment_acc_id:
            logger.warning(f"Membership rejected: user {user_id} has no Stripe customer")
            raise PreconditionError("No Stripe customer/payment_acc_id found for user.")
        customer_id = profile.payment_acc_id

        lab = get_lab(self.db, lab_id)
        if lab is None or not lab.funding_id:
            raise PreconditionError("Lab does not have a connected Stripe account.")

        try:
            self.gateway.rename_customer(customer_id, user_id)
            payment_method_id = self.gateway.resolve_card_payment_method(customer_id)
            if not payment_method_id:
                raise PreconditionError("No card payment method found for user.")
            self.gateway.set_default_payment_method(customer_id, payment_method_id)

            price = self.gateway.create_monthly_price(lab_id, goal_id, monthly_amount)
            subscription = self.gateway.create_subscription(
                customer_id=customer_id,
                price_id=price.id,
                destination=lab.funding_id,
                payment_method_id=payment_method_id,
                application_fee_percent=settings.platform_fee_percent,
                metadata={"labId": lab_id, "goalId": goal_id or ""},
            )
        except stripe.StripeError as e:
            logger.error(f"Membership subscription failed for user {user_id}: {str(e)}")
            raise ProviderError(provider_message(e), status_code=400)

        logger.info(
            f"Subscription {subscription.id} created with status {getattr(subscription, 'status', None)}"
        )

        payment_status = None
        try:
            payment_status = self.gateway.confirm_first_invoice(subscription)
        except stripe.StripeError as e:
            logger.error(f"Error confirming first invoice of {subscription.id}: {str(e)}")
        if payment_status is not None and payment_status != "succeeded":
            logger.error(f"First payment of {subscription.id} is {payment_status}")

        if payment_status == "succeeded":
            status = "active"
        else:
            status = getattr(subscription, "status", None) or "incomplete"

        record = LabSubscription(
            user_id=user_id,
            lab_id=lab_id,
            monthly_amount=monthly_amount,
            goal_id=goal_id,
            stripe_id=subscription.id,
            status=status,
        )
        try:
            self.db.add(record)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to store subscription {subscription.id}: {str(e)}")
            raise PersistenceError(
                "Failed to store subscription.",
                details={"stripe_id": subscription.id, "userId": user_id, "labId": lab_id},
            )

        if goal_id:
            try:
                adjust_goal_contribution(self.db, lab_id, goal_id, monthly_amount)
            except PersistenceError:
                logger.error(
                    f"Subscription {subscription.id} stored but goal {goal_id} was not incremented"
                )

        return {"success": True, "subscriptionId": subscription.id}

    def cancel_membership_subscription(self, subscription_id: Optional[str]) -> Dict[str, bool]:
        """
        Cancel at period end, then drop the local record.

        Zero matching records is not an error; the Stripe cancellation stands.
        """
        if not subscription_id:
            raise ValidationError("Missing subscriptionId")
        subscription_id = str(subscription_id).strip()
        logger.info(f"Cancelling subscription {subscription_id}")

        try:
            self.gateway.cancel_subscription_at_period_end(subscription_id)
        except stripe.StripeError as e:
            logger.error(f"Stripe error cancelling {subscription_id}: {str(e)}")
            raise ProviderError(provider_message(e))

        try:
            deleted = (
                self.db.query(LabSubscription)
                .filter(LabSubscription.stripe_id == subscription_id)
                .delete(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to delete subscription {subscription_id}: {str(e)}")
            raise PersistenceError(
                "Failed to delete subscription in database.", details={"message": str(e)}
            )
        logger.info(f"Deleted {deleted} subscription record(s) for {subscription_id}")
        return {"success": True}
