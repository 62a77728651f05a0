from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ConnectLinkRequest(CamelModel):
    business_type: Optional[str] = Field(default=None, alias="businessType")


class FinalizeSetupIntentRequest(CamelModel):
    setup_intent_id: Optional[str] = Field(default=None, alias="setupIntentId")


class SetDefaultPaymentMethodRequest(CamelModel):
    customer_id: Optional[str] = Field(default=None, alias="customerId")
    payment_method_id: Optional[str] = Field(default=None, alias="paymentMethodId")


class DonationRequest(CamelModel):
    user_id: Optional[str] = Field(default=None, alias="userId")
    lab_id: Optional[str] = Field(default=None, alias="labId")
    goal_id: Optional[str] = Field(default=None, alias="goalId")
    goal_name: Optional[str] = Field(default=None, alias="goalName")
    # Minor currency units (cents).
    amount: Optional[int] = Field(default=None, gt=0)
    caption: Optional[str] = None


class MembershipRequest(CamelModel):
    user_id: Optional[str] = Field(default=None, alias="userId")
    lab_id: Optional[str] = Field(default=None, alias="labId")
    goal_id: Optional[str] = Field(default=None, alias="goalId")


class CancelMembershipRequest(CamelModel):
    subscription_id: Optional[str] = Field(default=None, alias="subscriptionId")


class FundingIdRequest(BaseModel):
    funding_id: Optional[str] = None


class PayoutRequest(BaseModel):
    grant_id: Optional[str] = None


class DeleteGoalRequest(CamelModel):
    goal_id: Optional[str] = Field(default=None, alias="goalId")


class UserEmailsRequest(CamelModel):
    user_ids: Optional[Any] = Field(default=None, alias="userIds")
