"""
Stripe webhook reconciliation.

Donations and subscriptions are written optimistically by the request
handlers; events received here confirm or correct those rows.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import PersistenceError
from app.integrations.payments import StripeGateway
from app.models import LabDonation, LabSubscription
from app.services.funding_store import adjust_goal_contribution

logger = logging.getLogger(__name__)


class WebhookService:
    def __init__(self, db: Session, gateway: StripeGateway):
        self.db = db
        self.gateway = gateway
        self._handlers: Dict[str, Callable[[Dict[str, Any]], None]] = {
            "payment_intent.succeeded": self._payment_succeeded,
            "payment_intent.payment_failed": self._payment_failed,
            "charge.succeeded": self._log_only("Charge succeeded"),
            "charge.failed": self._log_only("Charge failed"),
            "customer.subscription.created": self._log_only("Subscription created"),
            "customer.subscription.updated": self._subscription_updated,
            "customer.subscription.deleted": self._subscription_deleted,
            "account.updated": self._log_only("Account updated"),
        }

    def handle(self, payload: bytes, signature: Optional[str]) -> Dict[str, bool]:
        """Verify the signature, dispatch on event type and acknowledge."""
        event = self.gateway.construct_event(payload, signature)
        event_type = event["type"]
        handler = self._handlers.get(event_type)
        if handler is None:
            logger.info(f"Unhandled event type {event_type}")
        else:
            handler(event["data"]["object"])
        return {"received": True}

    @staticmethod
    def _log_only(label: str) -> Callable[[Dict[str, Any]], None]:
        def handler(obj: Dict[str, Any]) -> None:
            logger.info(f"{label}: {obj['id']}")

        return handler

    def _donation_for(self, payment_intent_id: str) -> Optional[LabDonation]:
        return (
            self.db.query(LabDonation)
            .filter(LabDonation.transaction_id == payment_intent_id)
            .first()
        )

    def _commit(self, what: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to reconcile {what}: {str(e)}")
            raise PersistenceError(f"Failed to reconcile {what}")

    def _payment_succeeded(self, payment_intent: Dict[str, Any]) -> None:
        payment_intent_id = payment_intent["id"]
        logger.info(f"PaymentIntent succeeded: {payment_intent_id}")
        donation = self._donation_for(payment_intent_id)
        if donation is None or donation.status == "succeeded":
            return

        was_reversed = donation.status == "failed"
        donation.status = "succeeded"
        if was_reversed and donation.goal_id:
            # Put back what the earlier failure took off the goal.
            self._shift_goal(donation, float(donation.donation_amount))
        self._commit(f"donation {payment_intent_id}")

    def _payment_failed(self, payment_intent: Dict[str, Any]) -> None:
        payment_intent_id = payment_intent["id"]
        logger.info(f"PaymentIntent failed: {payment_intent_id}")
        donation = self._donation_for(payment_intent_id)
        if donation is None or donation.status == "failed":
            return

        was_counted = donation.status == "succeeded"
        donation.status = "failed"
        if was_counted and donation.goal_id:
            self._shift_goal(donation, -float(donation.donation_amount))
        self._commit(f"donation {payment_intent_id}")

    def _shift_goal(self, donation: LabDonation, delta: float) -> None:
        """Stage a goal adjustment in the same transaction as the status change."""
        adjust_goal_contribution(
            self.db, donation.lab_id, donation.goal_id, delta, commit=False
        )
        logger.info(
            f"Adjusted goal {donation.goal_id} by {delta} for payment {donation.transaction_id}"
        )

    def _subscription_updated(self, subscription: Dict[str, Any]) -> None:
        subscription_id = subscription["id"]
        status = subscription["status"]
        logger.info(f"Subscription {subscription_id} is now {status}")
        self.db.query(LabSubscription).filter(LabSubscription.stripe_id == subscription_id).update(
            {LabSubscription.status: status}, synchronize_session=False
        )
        self._commit(f"subscription {subscription_id}")

    def _subscription_deleted(self, subscription: Dict[str, Any]) -> None:
        subscription_id = subscription["id"]
        logger.info(f"Subscription deleted: {subscription_id}")
        updated = (
            self.db.query(LabSubscription)
            .filter(LabSubscription.stripe_id == subscription_id)
            .update({LabSubscription.status: "inactive"}, synchronize_session=False)
        )
        self._commit(f"subscription {subscription_id}")
        if not updated:
            logger.info(f"No subscription record left for {subscription_id}")
