from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import call

import pytest
import stripe

from app.models import FundingGoal, Lab, LabSubscription, Profile, RecurringFunding

MEMBERSHIP = {"userId": "  user-1 ", "labId": "lab-1", "goalId": "goal-1"}


@pytest.fixture
def subscribed(gateway):
    gateway.resolve_card_payment_method.return_value = "pm_card"
    gateway.create_monthly_price.return_value = SimpleNamespace(id="price_1")
    gateway.create_subscription.return_value = SimpleNamespace(id="sub_1", status="incomplete")
    gateway.confirm_first_invoice.return_value = "succeeded"
    return gateway


def test_subscription_increments_goal_and_records_plan_amount(client, funded_lab, subscribed):
    response = client.post("/api/stripe/create-membership-subscription", json=MEMBERSHIP)

    assert response.status_code == 200
    assert response.json() == {"success": True, "subscriptionId": "sub_1"}

    record = funded_lab.query(LabSubscription).one()
    assert record.user_id == "user-1"
    assert record.monthly_amount == 25
    assert record.stripe_id == "sub_1"
    assert record.created_at is not None
    assert record.status == "active"

    goal = funded_lab.query(FundingGoal).filter_by(id="goal-1").one()
    funded_lab.refresh(goal)
    assert goal.amount_contributed == 125.0


def test_provider_calls_run_in_order(client, funded_lab, subscribed):
    client.post("/api/stripe/create-membership-subscription", json=MEMBERSHIP)

    names = [c[0] for c in subscribed.method_calls]
    assert names == [
        "rename_customer",
        "resolve_card_payment_method",
        "set_default_payment_method",
        "create_monthly_price",
        "create_subscription",
        "confirm_first_invoice",
    ]
    assert subscribed.rename_customer.call_args == call("cus_123", "user-1")
    assert subscribed.set_default_payment_method.call_args == call("cus_123", "pm_card")
    assert subscribed.create_monthly_price.call_args == call("lab-1", "goal-1", 25.0)

    kwargs = subscribed.create_subscription.call_args.kwargs
    assert kwargs["application_fee_percent"] == 2.5
    assert kwargs["destination"] == "acct_lab"
    assert kwargs["price_id"] == "price_1"
    assert kwargs["payment_method_id"] == "pm_card"
    subscribed.confirm_first_invoice.assert_called_once_with(subscribed.create_subscription.return_value)


def test_user_id_lookup_is_case_sensitive(client, funded_lab, subscribed):
    body = dict(MEMBERSHIP, userId="USER-1")

    response = client.post("/api/stripe/create-membership-subscription", json=body)

    assert response.status_code == 400
    assert response.json()["error"] == "No Stripe customer/payment_acc_id found for user."
    subscribed.create_subscription.assert_not_called()


def test_lab_without_plan(client, funded_lab, subscribed):
    funded_lab.query(RecurringFunding).delete()
    funded_lab.commit()

    response = client.post("/api/stripe/create-membership-subscription", json=MEMBERSHIP)

    assert response.status_code == 400
    assert response.json()["error"] == "Lab membership not found."
    assert subscribed.method_calls == []


def test_payer_without_customer(client, funded_lab, subscribed):
    funded_lab.query(Profile).update({"payment_acc_id": None})
    funded_lab.commit()

    response = client.post("/api/stripe/create-membership-subscription", json=MEMBERSHIP)

    assert response.status_code == 400
    assert subscribed.method_calls == []


def test_no_card_found(client, funded_lab, subscribed):
    subscribed.resolve_card_payment_method.return_value = None

    response = client.post("/api/stripe/create-membership-subscription", json=MEMBERSHIP)

    assert response.status_code == 400
    assert response.json()["error"] == "No card payment method found for user."
    subscribed.create_subscription.assert_not_called()
    assert funded_lab.query(LabSubscription).count() == 0


def test_subscription_rejected_by_stripe(client, funded_lab, subscribed):
    subscribed.create_subscription.side_effect = stripe.InvalidRequestError(
        "No such destination: 'acct_lab'", "transfer_data"
    )

    response = client.post("/api/stripe/create-membership-subscription", json=MEMBERSHIP)

    assert response.status_code == 400
    assert response.json()["error"] == "No such destination: 'acct_lab'"
    assert funded_lab.query(LabSubscription).count() == 0


def test_subscription_without_goal_leaves_goals_alone(client, funded_lab, subscribed):
    body = dict(MEMBERSHIP, goalId=None)

    response = client.post("/api/stripe/create-membership-subscription", json=body)

    assert response.status_code == 200
    goal = funded_lab.query(FundingGoal).filter_by(id="goal-1").one()
    assert goal.amount_contributed == 100.0


def test_unconfirmed_first_payment_still_records_subscription(client, funded_lab, subscribed):
    subscribed.confirm_first_invoice.side_effect = stripe.CardError(
        "Your card was declined.", "payment_method", "card_declined"
    )

    response = client.post("/api/stripe/create-membership-subscription", json=MEMBERSHIP)

    assert response.status_code == 200
    assert response.json() == {"success": True, "subscriptionId": "sub_1"}
    assert funded_lab.query(LabSubscription).one().status == "incomplete"


def test_goal_of_another_lab_is_not_incremented_by_subscription(client, funded_lab, subscribed):
    funded_lab.add_all(
        [
            Lab(lab_id="lab-2", funding_id="acct_other"),
            RecurringFunding(lab_id="lab-2", monthly_amount=30),
        ]
    )
    funded_lab.commit()

    response = client.post(
        "/api/stripe/create-membership-subscription", json=dict(MEMBERSHIP, labId="lab-2")
    )

    assert response.status_code == 200
    assert funded_lab.query(LabSubscription).one().lab_id == "lab-2"
    goal = funded_lab.query(FundingGoal).filter_by(id="goal-1").one()
    funded_lab.refresh(goal)
    assert goal.amount_contributed == 100.0


def test_cancel_removes_matching_records(client, funded_lab, gateway):
    funded_lab.add_all(
        [
            LabSubscription(user_id="user-1", lab_id="lab-1", monthly_amount=25, stripe_id="sub_1"),
            LabSubscription(user_id="user-2", lab_id="lab-1", monthly_amount=25, stripe_id="sub_2"),
        ]
    )
    funded_lab.commit()

    response = client.post(
        "/api/stripe/cancel-membership-subscription", json={"subscriptionId": " sub_1 "}
    )

    assert response.status_code == 200
    assert response.json() == {"success": True}
    gateway.cancel_subscription_at_period_end.assert_called_once_with("sub_1")
    remaining = [s.stripe_id for s in funded_lab.query(LabSubscription).all()]
    assert remaining == ["sub_2"]


def test_cancel_unknown_subscription_still_cancels_at_stripe(client, funded_lab, gateway):
    response = client.post(
        "/api/stripe/cancel-membership-subscription", json={"subscriptionId": "sub_missing"}
    )

    assert response.status_code == 200
    gateway.cancel_subscription_at_period_end.assert_called_once_with("sub_missing")


def test_cancel_requires_id(client, gateway):
    response = client.post("/api/stripe/cancel-membership-subscription", json={})

    assert response.status_code == 400
    assert response.json()["error"] == "Missing subscriptionId"
    gateway.cancel_subscription_at_period_end.assert_not_called()
