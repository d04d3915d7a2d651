from sqlalchemy import Column, Integer, String, Boolean, DateTime, Float, Text
from datetime import datetime
from uuid import uuid4
from database import Base


def generate_id() -> str:
    return uuid4().hex


class User(Base):
    """
    Account keyed by email. Subscription status is driven by Stripe webhooks.
    """
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=generate_id)
    email = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=True)
    subscription_status = Column(String, nullable=False, default="free")
    stripe_customer_id = Column(String, nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False)


class Garden(Base):
    __tablename__ = "gardens"

    id = Column(String, primary_key=True, default=generate_id)
    user_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    grid_size = Column(Integer, nullable=False, default=8)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class PlacedPlant(Base):
    """
    A plant in one grid cell. (x, y) is unique per garden but the table does
    not enforce it; GardenRepository.replace_placements validates on write.
    """
    __tablename__ = "placed_plants"

    id = Column(String, primary_key=True, default=generate_id)
    garden_id = Column(String, nullable=False, index=True)
    plant_id = Column(String, nullable=False)
    x = Column(Integer, nullable=False)
    y = Column(Integer, nullable=False)
    planted_at = Column(DateTime, nullable=True)
    stage = Column(String, nullable=True)  # seedling | growing | ready


class JournalEntry(Base):
    __tablename__ = "journal_entries"

    id = Column(String, primary_key=True, default=generate_id)
    garden_id = Column(String, nullable=False, index=True)
    text = Column(Text, nullable=False)
    type = Column(String, nullable=False)  # observation | tip | harvest | problem
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Reminder(Base):
    __tablename__ = "reminders"

    id = Column(String, primary_key=True, default=generate_id)
    garden_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    notes = Column(Text, nullable=True)
    due_date = Column(DateTime, nullable=False)
    completed = Column(Boolean, nullable=False, default=False)
    recurring_days = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class SeedVaultEntry(Base):
    __tablename__ = "seed_vault"

    id = Column(String, primary_key=True, default=generate_id)
    user_id = Column(String, nullable=False, index=True)
    plant_id = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False, default=0)
    expiration_date = Column(DateTime, nullable=True)
    purchased_date = Column(DateTime, nullable=True)


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(String, primary_key=True, default=generate_id)
    garden_id = Column(String, nullable=False, index=True)
    category = Column(String, nullable=False)
    description = Column(String, nullable=False)
    amount = Column(Float, nullable=False)
    date = Column(DateTime, nullable=False)


class ProcessedWebhookEvent(Base):
    """Stripe event ids already applied, so redeliveries are acknowledged without replay."""
    __tablename__ = "processed_webhook_events"

    event_id = Column(String, primary_key=True)
    event_type = Column(String, nullable=False)
    processed_at = Column(DateTime, default=datetime.utcnow, nullable=False)
