"""
SQLAlchemy models for the Heterodox Labs funding tables.

The tables live in the hosted Supabase database and are created by the web
app's migrations; column names follow the existing schema, mixed case
included.
"""
from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, Numeric, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# Money columns are stored in major units (dollars).
Money = Numeric(12, 2, asdecimal=False)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Profile(Base):
    __tablename__ = "profiles"

    user_id = Column(Text, primary_key=True)
    username = Column(Text)
    payment_acc_id = Column(Text)
    funding_id = Column(Text)


class UserEmail(Base):
    """Read-only view joining profiles to auth.users emails."""

    __tablename__ = "user_emails"

    user_id = Column(Text, primary_key=True)
    email = Column(Text)


class Lab(Base):
    __tablename__ = "labs"

    lab_id = Column("labId", Text, primary_key=True)
    lab_name = Column("labName", Text)
    funding_id = Column(Text)


class FundingGoal(Base):
    __tablename__ = "funding_goals"

    id = Column(Text, primary_key=True)
    lab_id = Column(Text, nullable=False, index=True)
    goal_name = Column(Text)
    goal_amount = Column(Money)
    amount_contributed = Column(Money, default=0)


class RecurringFunding(Base):
    __tablename__ = "recurring_funding"

    lab_id = Column("labId", Text, primary_key=True)
    monthly_amount = Column(Money)


class LabDonation(Base):
    __tablename__ = "labDonors"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column("userId", Text, nullable=False)
    lab_id = Column("labId", Text, nullable=False)
    donation_amount = Column("donationAmount", Money, nullable=False)
    towards_goal = Column(Text)
    goal_id = Column(Text)
    transaction_id = Column(Text, index=True)
    caption = Column(Text)
    status = Column(Text, default="succeeded")
    created_at = Column(DateTime(timezone=True), default=utcnow)


class LabSubscription(Base):
    __tablename__ = "labSubscribers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column("userId", Text, nullable=False)
    lab_id = Column("labId", Text, nullable=False)
    monthly_amount = Column("monthlyAmount", Money, nullable=False)
    goal_id = Column(Text)
    stripe_id = Column(Text, index=True)
    status = Column(Text, default="active")
    created_at = Column(DateTime(timezone=True), default=utcnow)


class Grant(Base):
    __tablename__ = "grants"

    grant_id = Column(Text, primary_key=True)
    created_by = Column(Text)
    user_accepted = Column(Text)
    grant_amount = Column(Money)
    closure_status = Column(Text)
    stripe_id = Column(Text)
