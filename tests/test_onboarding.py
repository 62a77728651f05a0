from __future__ import annotations

from types import SimpleNamespace

import pytest
import stripe

from app.models import Profile, UserEmail

IDENTITY_ROUTES = [
    "/api/stripe/create-connect-link",
    "/api/stripe/setup-payment-method",
    "/api/stripe/get-payment-info",
    "/api/stripe/remove-payment-method",
    "/api/stripe/remove-funding-id",
    "/api/stripe/save-funding-id",
    "/api/stripe/send-payout",
]


@pytest.mark.parametrize("path", IDENTITY_ROUTES)
def test_identity_routes_require_caller(client, path):
    response = client.post(path, json={})
    assert response.status_code == 401
    assert response.json() == {"error": "No user ID"}


def test_connect_link_creates_account_once(client, db, gateway):
    db.add_all([Profile(user_id="user-1"), UserEmail(user_id="user-1", email="ada@example.com")])
    db.commit()
    gateway.create_connect_account.return_value = SimpleNamespace(id="acct_new")
    gateway.create_onboarding_link.return_value = SimpleNamespace(url="https://connect.stripe.com/setup/e/acct_new")

    response = client.post(
        "/api/stripe/create-connect-link",
        json={"businessType": "nonprofit"},
        headers={"x-user-id": "user-1", "origin": "https://labs.example.org"},
    )

    assert response.status_code == 200
    assert response.json() == {"url": "https://connect.stripe.com/setup/e/acct_new"}
    gateway.create_connect_account.assert_called_once_with("ada@example.com", "individual")
    gateway.create_onboarding_link.assert_called_once_with("acct_new", "https://labs.example.org")
    assert db.query(Profile).one().funding_id == "acct_new"

    gateway.create_connect_account.reset_mock()
    client.post(
        "/api/stripe/create-connect-link",
        json={"businessType": "company"},
        headers={"x-user-id": "user-1"},
    )
    gateway.create_connect_account.assert_not_called()
    assert gateway.create_onboarding_link.call_args.args == ("acct_new", "http://localhost:3000")


def test_connect_link_company_business_type(client, db, gateway):
    db.add_all([Profile(user_id="user-1"), UserEmail(user_id="user-1", email="ada@example.com")])
    db.commit()
    gateway.create_connect_account.return_value = SimpleNamespace(id="acct_co")
    gateway.create_onboarding_link.return_value = SimpleNamespace(url="https://x")

    client.post(
        "/api/stripe/create-connect-link",
        json={"businessType": "company"},
        headers={"x-user-id": "user-1"},
    )

    gateway.create_connect_account.assert_called_once_with("ada@example.com", "company")


def test_connect_link_without_profile_or_email(client, db, gateway):
    response = client.post(
        "/api/stripe/create-connect-link", json={}, headers={"x-user-id": "ghost"}
    )
    assert response.status_code == 500
    assert response.json()["error"] == "Failed to fetch profile"

    db.add(Profile(user_id="ghost"))
    db.commit()
    response = client.post(
        "/api/stripe/create-connect-link", json={}, headers={"x-user-id": "ghost"}
    )
    assert response.status_code == 500
    assert response.json()["error"] == "Failed to fetch user email"
    gateway.create_connect_account.assert_not_called()


def test_setup_payment_method_creates_customer(client, db, gateway):
    db.add(Profile(user_id="user-1"))
    db.commit()
    gateway.create_customer.return_value = SimpleNamespace(id="cus_new")
    gateway.create_setup_intent.return_value = SimpleNamespace(client_secret="seti_secret")

    response = client.post("/api/stripe/setup-payment-method", headers={"x-user-id": "user-1"})

    assert response.status_code == 200
    assert response.json() == {"clientSecret": "seti_secret"}
    gateway.create_customer.assert_called_once_with("user-1")
    gateway.create_setup_intent.assert_called_once_with("cus_new")
    assert db.query(Profile).one().payment_acc_id == "cus_new"


def test_setup_payment_method_reuses_customer(client, db, gateway):
    db.add(Profile(user_id="user-1", payment_acc_id="cus_old"))
    db.commit()
    gateway.create_setup_intent.return_value = SimpleNamespace(client_secret="seti_secret")

    client.post("/api/stripe/setup-payment-method", headers={"x-user-id": "user-1"})

    gateway.create_customer.assert_not_called()
    gateway.create_setup_intent.assert_called_once_with("cus_old")


def test_finalize_setup_intent_sets_default(client, gateway):
    gateway.retrieve_setup_intent.return_value = SimpleNamespace(customer="cus_1", payment_method="pm_1")

    response = client.post("/api/stripe/finalize-setup-intent", json={"setupIntentId": "seti_1"})

    assert response.status_code == 200
    assert response.json() == {"success": True}
    gateway.set_default_payment_method.assert_called_once_with("cus_1", "pm_1")


def test_finalize_setup_intent_errors(client, gateway):
    assert client.post("/api/stripe/finalize-setup-intent", json={}).status_code == 400

    gateway.retrieve_setup_intent.return_value = SimpleNamespace(customer="cus_1", payment_method=None)
    response = client.post("/api/stripe/finalize-setup-intent", json={"setupIntentId": "seti_1"})
    assert response.status_code == 400
    assert response.json()["error"] == "Missing customer or payment method on SetupIntent"

    gateway.retrieve_setup_intent.side_effect = stripe.InvalidRequestError(
        "No such setupintent: 'seti_x'", "intent"
    )
    response = client.post("/api/stripe/finalize-setup-intent", json={"setupIntentId": "seti_x"})
    assert response.status_code == 500
    assert response.json()["error"] == "No such setupintent: 'seti_x'"


def test_set_default_payment_method_requires_both_ids(client, gateway):
    response = client.post("/api/stripe/set-default-payment-method", json={"customerId": "cus_1"})
    assert response.status_code == 400
    assert response.json()["error"] == "Missing customerId or paymentMethodId"

    response = client.post(
        "/api/stripe/set-default-payment-method",
        json={"customerId": "cus_1", "paymentMethodId": "pm_1"},
    )
    assert response.status_code == 200
    gateway.set_default_payment_method.assert_called_once_with("cus_1", "pm_1")


def test_payment_info_for_card(client, db, gateway):
    db.add(Profile(user_id="user-1", payment_acc_id="cus_1"))
    db.commit()
    gateway.retrieve_customer.return_value = SimpleNamespace(id="cus_1", deleted=False)
    gateway.find_payment_method.return_value = SimpleNamespace(
        id="pm_1",
        type="card",
        card=SimpleNamespace(brand="visa", last4="4242", exp_month=12, exp_year=2030),
        us_bank_account=None,
    )

    response = client.post("/api/stripe/get-payment-info", headers={"x-user-id": "user-1"})

    assert response.status_code == 200
    assert response.json() == {
        "type": "card",
        "brand": "visa",
        "last4": "4242",
        "exp_month": 12,
        "exp_year": 2030,
        "bank_name": None,
    }


def test_payment_info_not_found(client, db, gateway):
    response = client.post("/api/stripe/get-payment-info", headers={"x-user-id": "user-1"})
    assert response.status_code == 404
    assert response.json()["error"] == "No payment account found"

    db.add(Profile(user_id="user-1", payment_acc_id="cus_1"))
    db.commit()
    gateway.retrieve_customer.return_value = SimpleNamespace(id="cus_1", deleted=False)
    gateway.find_payment_method.return_value = None
    response = client.post("/api/stripe/get-payment-info", headers={"x-user-id": "user-1"})
    assert response.status_code == 404
    assert response.json()["error"] == "No payment method found"


def test_remove_payment_method(client, db, gateway):
    db.add(Profile(user_id="user-1", payment_acc_id="cus_1"))
    db.commit()
    gateway.retrieve_customer.return_value = SimpleNamespace(id="cus_1", deleted=False)
    gateway.find_payment_method.return_value = "pm_1"

    response = client.post("/api/stripe/remove-payment-method", headers={"x-user-id": "user-1"})

    assert response.status_code == 200
    gateway.detach_payment_method.assert_called_once_with("pm_1")
    gateway.clear_default_payment_method.assert_called_once_with("cus_1")
    assert db.query(Profile).one().payment_acc_id is None


def test_save_and_remove_funding_id(client, db):
    response = client.post(
        "/api/stripe/save-funding-id", json={"funding_id": "acct_9"}, headers={"x-user-id": "user-9"}
    )
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"][0]["funding_id"] == "acct_9"

    response = client.post(
        "/api/stripe/save-funding-id", json={}, headers={"x-user-id": "user-9"}
    )
    assert response.status_code == 400

    response = client.post("/api/stripe/remove-funding-id", headers={"x-user-id": "user-9"})
    assert response.status_code == 200
    db.expire_all()
    assert db.query(Profile).filter_by(user_id="user-9").one().funding_id is None


def test_funding_info(client, gateway):
    gateway.first_bank_account.return_value = SimpleNamespace(
        last4="6789", bank_name="STRIPE TEST BANK", status="new", account_holder_name="Ada Lab"
    )

    response = client.post("/api/stripe/get-funding-info", json={"funding_id": "acct_1"})

    assert response.status_code == 200
    assert response.json() == {
        "last4": "6789",
        "bankName": "STRIPE TEST BANK",
        "status": "new",
        "accountHolder": "Ada Lab",
    }

    gateway.first_bank_account.return_value = None
    response = client.post("/api/stripe/get-funding-info", json={"funding_id": "acct_1"})
    assert response.status_code == 404
