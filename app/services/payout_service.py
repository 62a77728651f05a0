"""
Grant payouts and funding-goal housekeeping.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import stripe
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.core.exceptions import (
    ForbiddenError,
    NotFoundError,
    PersistenceError,
    PreconditionError,
    ProviderError,
    ValidationError,
)
from app.integrations.payments import StripeGateway, provider_message, to_minor_units
from app.models import FundingGoal, Grant
from app.services.funding_store import get_profile

logger = logging.getLogger(__name__)

AWARDED = "AWARDED"


class PayoutService:
    def __init__(self, db: Session, gateway: StripeGateway):
        self.db = db
        self.gateway = gateway

    def send_grant_payout(self, user_id: Optional[str], grant_id: Optional[str]) -> Dict[str, Any]:
        """Charge the grant issuer's card and transfer the award to the winner."""
        if not grant_id or not user_id:
            raise ValidationError("Missing grant_id or user")

        grant = self.db.query(Grant).filter(Grant.grant_id == grant_id).first()
        if grant is None:
            raise NotFoundError("Grant not found")
        if grant.closure_status != AWARDED or grant.user_accepted != user_id:
            raise ForbiddenError("Not authorized or grant not awarded to you")

        issuer = get_profile(self.db, grant.created_by) if grant.created_by else None
        if issuer is None or not issuer.payment_acc_id:
            raise PreconditionError("Grant issuer has no payment method on file.")

        winner = get_profile(self.db, user_id)
        if winner is None or not winner.funding_id:
            raise PreconditionError("No payout bank account connected.")

        try:
            payment_method_id = self.gateway.resolve_card_payment_method(issuer.payment_acc_id)
        except stripe.StripeError as e:
            raise ProviderError(provider_message(e), status_code=400)
        if not payment_method_id:
            raise PreconditionError("No card payment method found for grant issuer.")

        amount = to_minor_units(grant.grant_amount or 0)
        final_amount = min(amount, settings.max_payout_cents)
        if final_amount < amount:
            logger.warning(f"Grant {grant_id} payout capped from {amount} to {final_amount}")

        try:
            payment_intent = self.gateway.create_transfer_charge(
                amount=final_amount,
                customer_id=issuer.payment_acc_id,
                payment_method_id=payment_method_id,
                destination=winner.funding_id,
                metadata={
                    "grant_id": grant_id,
                    "awarded_to": user_id,
                    "original_amount": amount,
                    "final_amount": final_amount,
                },
            )
        except stripe.StripeError as e:
            logger.error(f"Grant payout failed for {grant_id}: {str(e)}")
            raise ProviderError(provider_message(e), status_code=400)

        grant.stripe_id = payment_intent.id
        try:
            self.db.commit()
            self.db.refresh(grant)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(
                f"Failed to update grant with Stripe transaction ID: {str(e)}"
            )

        logger.info(f"Paid out grant {grant_id} via {payment_intent.id}")
        return {
            "success": True,
            "paymentIntentId": payment_intent.id,
            "grant": serialize_grant(grant),
        }


def delete_funding_goal(db: Session, goal_id: Optional[str]) -> Dict[str, bool]:
    if not goal_id:
        raise ValidationError("Missing goalId")
    try:
        db.query(FundingGoal).filter(FundingGoal.id == goal_id).delete(synchronize_session=False)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError("Failed to delete funding goal.", details={"message": str(e)})
    return {"success": True}


def serialize_grant(grant: Grant) -> Dict[str, Any]:
    return {
        "grant_id": grant.grant_id,
        "created_by": grant.created_by,
        "user_accepted": grant.user_accepted,
        "grant_amount": float(grant.grant_amount) if grant.grant_amount is not None else None,
        "closure_status": grant.closure_status,
        "stripe_id": grant.stripe_id,
    }
