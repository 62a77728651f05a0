"""
Payer-side billing identities: customer provisioning, setup intents and the
default payment method.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import stripe
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError, PersistenceError, ProviderError, ValidationError
from app.integrations.payments import StripeGateway, object_id, provider_message
from app.models import Profile
from app.services.funding_store import get_profile

logger = logging.getLogger(__name__)


class BillingService:
    def __init__(self, db: Session, gateway: StripeGateway):
        self.db = db
        self.gateway = gateway

    def setup_payment_method(self, user_id: str) -> Dict[str, str]:
        """
        Create (or reuse) the caller's customer and return a setup-intent secret.

        The attached instrument only becomes the default once the client calls
        ``finalize_setup_intent`` after confirming the intent.
        """
        profile = get_profile(self.db, user_id)
        customer_id = profile.payment_acc_id if profile else None

        try:
            if not customer_id:
                customer_id = self.gateway.create_customer(user_id).id
                self._store_customer_id(user_id, customer_id)
            setup_intent = self.gateway.create_setup_intent(customer_id)
        except stripe.StripeError as e:
            logger.error(f"Error setting up payment method: {str(e)}")
            raise ProviderError(provider_message(e))

        return {"clientSecret": setup_intent.client_secret}

    def _store_customer_id(self, user_id: str, customer_id: str) -> None:
        try:
            self.db.query(Profile).filter(Profile.user_id == user_id).update(
                {Profile.payment_acc_id: customer_id}, synchronize_session=False
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to save customer {customer_id} for {user_id}: {str(e)}")
            raise PersistenceError("Failed to save payment account")

    def finalize_setup_intent(self, setup_intent_id: Optional[str]) -> Dict[str, bool]:
        if not setup_intent_id:
            raise ValidationError("Missing setupIntentId")
        try:
            setup_intent = self.gateway.retrieve_setup_intent(setup_intent_id)
            customer_id = object_id(getattr(setup_intent, "customer", None))
            payment_method_id = object_id(getattr(setup_intent, "payment_method", None))
            if not customer_id or not payment_method_id:
                raise ValidationError("Missing customer or payment method on SetupIntent")
            self.gateway.set_default_payment_method(customer_id, payment_method_id)
        except stripe.StripeError as e:
            logger.error(f"Error finalizing setup intent: {str(e)}")
            raise ProviderError(provider_message(e))
        logger.info(f"Set {payment_method_id} as default for customer {customer_id}")
        return {"success": True}

    def set_default_payment_method(
        self, customer_id: Optional[str], payment_method_id: Optional[str]
    ) -> Dict[str, bool]:
        if not customer_id or not payment_method_id:
            raise ValidationError("Missing customerId or paymentMethodId")
        try:
            self.gateway.set_default_payment_method(customer_id, payment_method_id)
        except stripe.StripeError as e:
            logger.error(f"Error setting default payment method: {str(e)}")
            raise ProviderError(provider_message(e))
        return {"success": True}

    def _customer_for(self, user_id: str) -> Any:
        profile = get_profile(self.db, user_id)
        if profile is None or not profile.payment_acc_id:
            raise NotFoundError("No payment account found")
        customer = self.gateway.retrieve_customer(profile.payment_acc_id, expand_default=True)
        if getattr(customer, "deleted", False):
            raise NotFoundError("Customer account deleted")
        return customer

    def get_payment_info(self, user_id: str) -> Dict[str, Any]:
        try:
            customer = self._customer_for(user_id)
            method = self.gateway.find_payment_method(customer)
        except stripe.StripeError as e:
            logger.error(f"Error getting payment info: {str(e)}")
            raise ProviderError(provider_message(e))
        if method is None or isinstance(method, str):
            raise NotFoundError("No payment method found")

        card = getattr(method, "card", None)
        bank = getattr(method, "us_bank_account", None)
        return {
            "type": method.type,
            "brand": getattr(card, "brand", None),
            "last4": getattr(card, "last4", None) or getattr(bank, "last4", None),
            "exp_month": getattr(card, "exp_month", None),
            "exp_year": getattr(card, "exp_year", None),
            "bank_name": getattr(bank, "bank_name", None),
        }

    def remove_payment_method(self, user_id: str) -> Dict[str, bool]:
        try:
            customer = self._customer_for(user_id)
            payment_method_id = object_id(self.gateway.find_payment_method(customer))
            if not payment_method_id:
                raise NotFoundError("No payment method found")
            self.gateway.detach_payment_method(payment_method_id)
            self.gateway.clear_default_payment_method(customer.id)
        except stripe.StripeError as e:
            logger.error(f"Error removing payment method: {str(e)}")
            raise ProviderError(provider_message(e))

        try:
            self.db.query(Profile).filter(Profile.user_id == user_id).update(
                {Profile.payment_acc_id: None}, synchronize_session=False
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(str(e))
        logger.info(f"Removed payment method {payment_method_id} for user {user_id}")
        return {"success": True}
