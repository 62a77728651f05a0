"""
Stripe funding routes: Connect onboarding, payment methods, donations,
memberships, grant payouts and the webhook receiver.
"""
from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.orm import Session

from app.config import settings
from app.core.security import get_caller_id
from app.database import get_db
from app.integrations.payments import StripeGateway, get_gateway
from app.schemas.funding import (
    CancelMembershipRequest,
    ConnectLinkRequest,
    DonationRequest,
    FinalizeSetupIntentRequest,
    FundingIdRequest,
    MembershipRequest,
    PayoutRequest,
    SetDefaultPaymentMethodRequest,
)
from app.services.billing_service import BillingService
from app.services.connect_service import ConnectService
from app.services.donation_service import DonationService
from app.services.membership_service import MembershipService
from app.services.payout_service import PayoutService
from app.services.webhook_service import WebhookService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/create-connect-link")
def create_connect_link(
    request: Request,
    payload: ConnectLinkRequest,
    user_id: str = Depends(get_caller_id),
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_gateway),
) -> Dict[str, str]:
    origin = request.headers.get("origin") or settings.site_url
    return ConnectService(db, gateway).create_connect_link(user_id, payload.business_type, origin)


@router.post("/setup-payment-method")
def setup_payment_method(
    user_id: str = Depends(get_caller_id),
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_gateway),
) -> Dict[str, str]:
    return BillingService(db, gateway).setup_payment_method(user_id)


@router.post("/finalize-setup-intent")
def finalize_setup_intent(
    payload: FinalizeSetupIntentRequest,
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_gateway),
) -> Dict[str, bool]:
    return BillingService(db, gateway).finalize_setup_intent(payload.setup_intent_id)


@router.post("/set-default-payment-method")
def set_default_payment_method(
    payload: SetDefaultPaymentMethodRequest,
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_gateway),
) -> Dict[str, bool]:
    return BillingService(db, gateway).set_default_payment_method(
        payload.customer_id, payload.payment_method_id
    )


@router.post("/get-payment-info")
def get_payment_info(
    user_id: str = Depends(get_caller_id),
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_gateway),
) -> Dict[str, Any]:
    return BillingService(db, gateway).get_payment_info(user_id)


@router.post("/remove-payment-method")
def remove_payment_method(
    user_id: str = Depends(get_caller_id),
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_gateway),
) -> Dict[str, bool]:
    return BillingService(db, gateway).remove_payment_method(user_id)


@router.post("/get-funding-info")
def get_funding_info(
    payload: FundingIdRequest,
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_gateway),
) -> Dict[str, Any]:
    return ConnectService(db, gateway).get_funding_info(payload.funding_id)


@router.post("/save-funding-id")
def save_funding_id(
    payload: FundingIdRequest,
    user_id: str = Depends(get_caller_id),
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_gateway),
) -> Dict[str, Any]:
    logger.info(f"[save-funding-id] user {user_id} funding_id {payload.funding_id}")
    return ConnectService(db, gateway).save_funding_id(user_id, payload.funding_id)


@router.post("/remove-funding-id")
def remove_funding_id(
    user_id: str = Depends(get_caller_id),
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_gateway),
) -> Dict[str, bool]:
    return ConnectService(db, gateway).remove_funding_id(user_id)


@router.post("/charge-donation")
def charge_donation(
    payload: DonationRequest,
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_gateway),
) -> Dict[str, Any]:
    return DonationService(db, gateway).charge_donation(payload)


@router.post("/create-membership-subscription")
def create_membership_subscription(
    payload: MembershipRequest,
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_gateway),
) -> Dict[str, Any]:
    return MembershipService(db, gateway).create_membership_subscription(payload)


@router.post("/cancel-membership-subscription")
def cancel_membership_subscription(
    payload: CancelMembershipRequest,
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_gateway),
) -> Dict[str, bool]:
    return MembershipService(db, gateway).cancel_membership_subscription(payload.subscription_id)


@router.post("/send-payout")
def send_payout(
    payload: PayoutRequest,
    user_id: str = Depends(get_caller_id),
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_gateway),
) -> Dict[str, Any]:
    return PayoutService(db, gateway).send_grant_payout(user_id, payload.grant_id)


@router.post("/webhook")
async def webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None),
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_gateway),
) -> Dict[str, bool]:
    payload = await request.body()
    return WebhookService(db, gateway).handle(payload, stripe_signature)
