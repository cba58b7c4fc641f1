import uuid
from sqlalchemy import (
    Column, String, Float, Integer, DateTime, Text, Boolean, JSON,
    ForeignKey, UniqueConstraint, func,
)
from dietify.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(64), unique=True, nullable=False)
    name = Column(String(64), nullable=True)
    date_of_birth = Column(String(10), nullable=True)  # YYYY-MM-DD
    gender = Column(String(32), nullable=True)
    mobile_number = Column(String(20), nullable=True)
    height = Column(String(16), nullable=True)  # value with unit, e.g. "170cm"
    weight = Column(String(16), nullable=True)
    medical_conditions = Column(JSON, nullable=False, default=list)
    activity_level = Column(String(32), nullable=True)
    dietary_preference = Column(String(32), nullable=True)
    food_liking = Column(JSON, nullable=False, default=list)
    food_disliking = Column(JSON, nullable=False, default=list)
    fitness_goal = Column(String(64), nullable=True)
    step_target = Column(Integer, nullable=True)
    calorie_target = Column(Integer, nullable=True)
    verified = Column(Boolean, default=False)
    is_new_user = Column(Boolean, default=True)
    onboarding_completed = Column(Boolean, default=False)
    onboarding_completed_at = Column(DateTime(timezone=True), nullable=True)
    refresh_token_jti = Column(String(64), nullable=True)
    last_login_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class Chat(Base):
    """One conversation thread. The id is supplied by the client."""

    __tablename__ = "chats"

    id = Column(String(64), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(128), nullable=False, default="New Chat")
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class CheckpointRecord(Base):
    """Append-only log of agent transitions. Replaying rows in step order
    rebuilds the thread's message history."""

    __tablename__ = "checkpoints"
    __table_args__ = (UniqueConstraint("thread_id", "step", name="uq_checkpoint_thread_step"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    thread_id = Column(String(64), nullable=False, index=True)
    user_id = Column(String(36), nullable=False)
    step = Column(Integer, nullable=False)
    phase = Column(String(16), nullable=False)  # invoking, dispatching, done
    messages = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class UserMemory(Base):
    __tablename__ = "user_memories"

    user_id = Column(String(36), primary_key=True)
    memory_id = Column(String(64), primary_key=True)
    content = Column(Text, nullable=False)
    context = Column(Text, nullable=False, default="")
    memory_type = Column(String(32), nullable=False, default="general")
    importance = Column(Integer, nullable=False, default=5)
    source = Column(String(32), nullable=False, default="conversation")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class CaloriesIntakeLog(Base):
    __tablename__ = "calories_intake_logs"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    food_item = Column(String(128), nullable=False)
    quantity = Column(Float, nullable=True)
    unit = Column(String(32), nullable=True)
    meal_type = Column(String(32), nullable=False, default="snack")
    # NULL means "not reported", 0 means a confirmed zero
    calories = Column(Float, nullable=True)
    carbs = Column(Float, nullable=True)
    proteins = Column(Float, nullable=True)
    fats = Column(Float, nullable=True)
    consumed_at = Column(DateTime(timezone=True), nullable=False, index=True)
    notes = Column(Text, nullable=True)
    source = Column(String(32), default="manual")
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class WaterIntakeLog(Base):
    __tablename__ = "water_intake_logs"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    amount = Column(Float, nullable=False)
    unit = Column(String(8), nullable=False, default="ml")
    consumed_at = Column(DateTime(timezone=True), nullable=False, index=True)
    notes = Column(Text, nullable=True)
    source = Column(String(32), default="manual")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
