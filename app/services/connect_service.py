"""
Connect onboarding and payout-account bookkeeping for fund recipients.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import stripe
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError, PersistenceError, ProviderError, ValidationError
from app.integrations.payments import StripeGateway, provider_message
from app.models import Profile
from app.services.funding_store import get_profile, get_user_email

logger = logging.getLogger(__name__)

def normalize_business_type(value: Any) -> str:
    """Anything other than ``company`` onboards as an individual."""
    return "company" if value == "company" else "individual"


class ConnectService:
    def __init__(self, db: Session, gateway: StripeGateway):
        self.db = db
        self.gateway = gateway

    def create_connect_link(self, user_id: str, business_type: Any, origin: str) -> Dict[str, str]:
        """Ensure the caller has an Express account and return a fresh onboarding URL."""
        profile = get_profile(self.db, user_id)
        if profile is None:
            logger.error(f"Profile lookup failed for user {user_id}")
            raise PersistenceError("Failed to fetch profile")

        account_id = profile.funding_id
        if not account_id:
            email = get_user_email(self.db, user_id)
            if not email:
                logger.error(f"Email lookup failed for user {user_id}")
                raise PersistenceError("Failed to fetch user email")
            try:
                account = self.gateway.create_connect_account(
                    email, normalize_business_type(business_type)
                )
            except stripe.StripeError as e:
                logger.error(f"Stripe error creating connected account: {str(e)}")
                raise ProviderError(provider_message(e))
            account_id = account.id
            profile.funding_id = account_id
            try:
                self.db.commit()
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Failed to save payout account {account_id} for {user_id}: {str(e)}")
                raise PersistenceError("Failed to save payout account")

        try:
            link = self.gateway.create_onboarding_link(account_id, origin)
        except stripe.StripeError as e:
            logger.error(f"Stripe error creating account link: {str(e)}")
            raise ProviderError(provider_message(e))
        logger.info(f"Created onboarding link for account {account_id}")
        return {"url": link.url}

    def save_funding_id(self, user_id: str, funding_id: Optional[str]) -> Dict[str, Any]:
        if not funding_id:
            raise ValidationError("No funding_id")

        profile = get_profile(self.db, user_id)
        try:
            if profile is None:
                logger.info(f"No profile row for {user_id}, inserting new row")
                profile = Profile(user_id=user_id, funding_id=funding_id)
                self.db.add(profile)
            else:
                profile.funding_id = funding_id
            self.db.commit()
            self.db.refresh(profile)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to save funding_id for {user_id}: {str(e)}")
            raise PersistenceError(str(e))
        return {"success": True, "data": [serialize_profile(profile)]}

    def remove_funding_id(self, user_id: str) -> Dict[str, bool]:
        try:
            self.db.query(Profile).filter(Profile.user_id == user_id).update(
                {Profile.funding_id: None}, synchronize_session=False
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(str(e))
        return {"success": True}

    def get_funding_info(self, funding_id: Optional[str]) -> Dict[str, Any]:
        if not funding_id:
            raise ValidationError("No funding_id")
        try:
            bank = self.gateway.first_bank_account(funding_id)
        except stripe.StripeError as e:
            raise ProviderError(provider_message(e))
        if bank is None:
            raise NotFoundError("No bank account found")
        return {
            "last4": getattr(bank, "last4", None),
            "bankName": getattr(bank, "bank_name", None),
            "status": getattr(bank, "status", None),
            "accountHolder": getattr(bank, "account_holder_name", None),
        }


def serialize_profile(profile: Profile) -> Dict[str, Any]:
    return {
        "user_id": profile.user_id,
        "username": profile.username,
        "payment_acc_id": profile.payment_acc_id,
        "funding_id": profile.funding_id,
    }
