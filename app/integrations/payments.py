"""Stripe adapter for Connect accounts, customers, charges and subscriptions."""
from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional

import stripe

from app.config import settings
from app.core.exceptions import ProviderError

logger = logging.getLogger(__name__)


def provider_message(exc: Exception) -> str:
    """Stripe's own error text, as shown to the payer."""
    message = getattr(exc, "user_message", None)
    return str(message) if message else str(exc)


def to_minor_units(amount: Any) -> int:
    """Convert a major-unit amount to integer cents, rounding halves up."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def object_id(value: Any) -> Optional[str]:
    """Id of a Stripe reference that may be a bare id or an expanded object."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return getattr(value, "id", None)


class StripeGateway:
    """Every Stripe call the funding flows make goes through here."""

    def __init__(self, api_key: Optional[str] = None, currency: Optional[str] = None):
        if api_key is None and settings.stripe_secret_key:
            api_key = settings.stripe_secret_key.get_secret_value()
        if api_key:
            stripe.api_key = api_key
        else:
            logger.warning("Stripe secret key not configured - provider calls will fail")
        self.currency = currency or settings.payment_currency

    # Connect accounts

    def create_connect_account(self, email: Optional[str], business_type: str) -> Any:
        account = stripe.Account.create(
            type="express",
            business_type=business_type,
            email=email,
            capabilities={
                "card_payments": {"requested": True},
                "transfers": {"requested": True},
            },
        )
        logger.info(f"Created Stripe Express account {account.id}")
        return account

    def create_onboarding_link(self, account_id: str, origin: str) -> Any:
        return stripe.AccountLink.create(
            account=account_id,
            refresh_url=f"{origin}/profile?stripe=refresh",
            return_url=f"{origin}/profile?stripe=success&account={account_id}",
            type="account_onboarding",
        )

    def first_bank_account(self, account_id: str) -> Optional[Any]:
        accounts = stripe.Account.list_external_accounts(
            account_id, object="bank_account", limit=1
        )
        data = list(getattr(accounts, "data", None) or [])
        return data[0] if data else None

    # Customers and payment methods

    def create_customer(self, user_id: str) -> Any:
        customer = stripe.Customer.create(metadata={"userId": user_id})
        logger.info(f"Created Stripe customer {customer.id} for user {user_id}")
        return customer

    def rename_customer(self, customer_id: str, name: str) -> Any:
        return stripe.Customer.modify(customer_id, name=name)

    def retrieve_customer(self, customer_id: str, expand_default: bool = False) -> Any:
        if expand_default:
            return stripe.Customer.retrieve(
                customer_id, expand=["invoice_settings.default_payment_method"]
            )
        return stripe.Customer.retrieve(customer_id)

    def create_setup_intent(self, customer_id: str) -> Any:
        return stripe.SetupIntent.create(
            customer=customer_id,
            payment_method_types=["card", "us_bank_account"],
        )

    def retrieve_setup_intent(self, setup_intent_id: str) -> Any:
        return stripe.SetupIntent.retrieve(setup_intent_id)

    def set_default_payment_method(self, customer_id: str, payment_method_id: str) -> Any:
        return stripe.Customer.modify(
            customer_id,
            invoice_settings={"default_payment_method": payment_method_id},
        )

    def clear_default_payment_method(self, customer_id: str) -> Any:
        return stripe.Customer.modify(
            customer_id,
            invoice_settings={"default_payment_method": ""},
        )

    def detach_payment_method(self, payment_method_id: str) -> Any:
        return stripe.PaymentMethod.detach(payment_method_id)

    def _first_payment_method(self, customer_id: str, method_type: str) -> Optional[Any]:
        methods = stripe.PaymentMethod.list(customer=customer_id, type=method_type, limit=1)
        data = list(getattr(methods, "data", None) or [])
        return data[0] if data else None

    def resolve_card_payment_method(self, customer_id: str) -> Optional[str]:
        """
        Pick the card to charge: the customer's default instrument when it
        is a card, otherwise the first attached card.
        """
        customer = self.retrieve_customer(customer_id, expand_default=True)
        invoice_settings = getattr(customer, "invoice_settings", None)
        default = getattr(invoice_settings, "default_payment_method", None)
        if default is not None and not isinstance(default, str):
            if getattr(default, "type", None) == "card":
                return default.id

        card = self._first_payment_method(customer_id, "card")
        return card.id if card is not None else None

    def find_payment_method(self, customer: Any) -> Optional[Any]:
        """
        Default instrument of any type, else the first card, else the first
        US bank account. Returns the expanded object or a bare id.
        """
        invoice_settings = getattr(customer, "invoice_settings", None)
        default = getattr(invoice_settings, "default_payment_method", None)
        if default:
            return default
        card = self._first_payment_method(customer.id, "card")
        if card is not None:
            return card
        return self._first_payment_method(customer.id, "us_bank_account")

    # Charges

    def create_destination_charge(
        self,
        *,
        amount: int,
        customer_id: str,
        payment_method_id: str,
        destination: str,
        application_fee_amount: int,
        metadata: Dict[str, Any],
    ) -> Any:
        return stripe.PaymentIntent.create(
            amount=amount,
            currency=self.currency,
            customer=customer_id,
            payment_method=payment_method_id,
            off_session=True,
            confirm=True,
            application_fee_amount=application_fee_amount,
            on_behalf_of=destination,
            transfer_data={"destination": destination},
            payment_method_types=["card"],
            metadata=metadata,
        )

    def create_transfer_charge(
        self,
        *,
        amount: int,
        customer_id: str,
        payment_method_id: str,
        destination: str,
        metadata: Dict[str, Any],
    ) -> Any:
        return stripe.PaymentIntent.create(
            amount=amount,
            currency=self.currency,
            customer=customer_id,
            payment_method=payment_method_id,
            off_session=True,
            confirm=True,
            transfer_data={"destination": destination},
            payment_method_types=["card"],
            metadata=metadata,
        )

    # Subscriptions

    def create_monthly_price(self, lab_id: str, goal_id: Optional[str], monthly_amount: Any) -> Any:
        # One product per subscription; products are not reused across subscribers.
        product = stripe.Product.create(
            name=f"Lab Membership for {lab_id}",
            metadata={"labId": lab_id, "goalId": goal_id or ""},
        )
        return stripe.Price.create(
            unit_amount=to_minor_units(monthly_amount),
            currency=self.currency,
            recurring={"interval": "month"},
            product=product.id,
        )

    def create_subscription(
        self,
        *,
        customer_id: str,
        price_id: str,
        destination: str,
        payment_method_id: str,
        application_fee_percent: float,
        metadata: Dict[str, Any],
    ) -> Any:
        return stripe.Subscription.create(
            customer=customer_id,
            items=[{"price": price_id}],
            application_fee_percent=application_fee_percent,
            transfer_data={"destination": destination},
            metadata=metadata,
            payment_behavior="default_incomplete",
            default_payment_method=payment_method_id,
            off_session=True,
            expand=["latest_invoice.payment_intent"],
        )

    def confirm_first_invoice(self, subscription: Any) -> Optional[str]:
        """
        Pay the first invoice of a ``default_incomplete`` subscription off-session.

        An open invoice that Stripe will not advance on its own is finalized
        first. Returns the PaymentIntent status, or None when the invoice has
        no PaymentIntent to confirm.
        """
        invoice_id = object_id(getattr(subscription, "latest_invoice", None))
        if not invoice_id:
            return None

        invoice = stripe.Invoice.retrieve(invoice_id, expand=["payment_intent"])
        if invoice.status == "open" and invoice.auto_advance is False:
            try:
                invoice = stripe.Invoice.finalize_invoice(invoice_id)
            except stripe.StripeError as e:
                logger.error(f"Error finalizing invoice {invoice_id}: {str(e)}")

        payment_intent_id = object_id(getattr(invoice, "payment_intent", None))
        if not payment_intent_id:
            logger.error(f"No payment intent to confirm on invoice {invoice_id}")
            return None

        intent = stripe.PaymentIntent.confirm(payment_intent_id, off_session=True)
        return intent.status

    def cancel_subscription_at_period_end(self, subscription_id: str) -> Any:
        return stripe.Subscription.modify(subscription_id, cancel_at_period_end=True)

    # Webhooks

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Any:
        secret = (
            settings.stripe_webhook_secret.get_secret_value()
            if settings.stripe_webhook_secret
            else None
        )
        if not signature or not secret:
            raise ProviderError("Missing stripe signature or webhook secret", status_code=400)
        try:
            return stripe.Webhook.construct_event(payload, signature, secret)
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Invalid webhook signature: {str(e)}")
            raise ProviderError(str(e), status_code=400)
        except ValueError as e:
            logger.warning(f"Invalid webhook payload: {str(e)}")
            raise ProviderError(f"Invalid webhook payload: {str(e)}", status_code=400)


_gateway: Optional[StripeGateway] = None


def get_gateway() -> StripeGateway:
    """FastAPI dependency returning the process-wide gateway."""
    global _gateway
    if _gateway is None:
        _gateway = StripeGateway()
    return _gateway
