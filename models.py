# =======================================
# SECTION: IMPORTS AND BASE
# =======================================

from datetime import datetime
from uuid import uuid4

from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    DateTime,
    ForeignKey,
    Text,
)
from sqlalchemy.orm import relationship

from db import Base


def _new_id() -> str:
    return str(uuid4())


# =======================================
# SECTION: USER MODELS
# =======================================

class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, index=True, default=_new_id)

    external_id = Column(String(100), unique=True, index=True, nullable=False)

    email = Column(String(255), index=True, nullable=True)
    name = Column(String(255), nullable=True)

    # Per user email switch, in-app notifications are always created
    email_alerts_enabled = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    tracked_flights = relationship("TrackedFlight", back_populates="user", cascade="all, delete-orphan")
    rules = relationship("Rule", back_populates="user", cascade="all, delete-orphan")


# =======================================
# SECTION: TRACKED FLIGHTS
# =======================================

class TrackedFlight(Base):
    __tablename__ = "tracked_flights"

    id = Column(String, primary_key=True, index=True, default=_new_id)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    flight_number = Column(String(20), nullable=False, index=True)
    departure_airport = Column(String(10), nullable=True)
    arrival_airport = Column(String(10), nullable=True)

    # Last known snapshot, overwritten every processing cycle that sees a change.
    # Times are naive UTC.
    departure_time = Column(DateTime, nullable=True)
    arrival_time = Column(DateTime, nullable=True)
    status = Column(String(50), nullable=True)
    gate = Column(String(20), nullable=True)
    terminal = Column(String(20), nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="tracked_flights")
    alerts = relationship("Alert", back_populates="tracked_flight", cascade="all, delete-orphan")


# =======================================
# SECTION: RULE MODELS
# =======================================

class Rule(Base):
    __tablename__ = "rules"

    id = Column(String, primary_key=True, index=True, default=_new_id)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    # AND | OR
    operator = Column(String(10), nullable=False, default="AND")
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    # Free-form cadence hint for the external scheduler, not interpreted here
    schedule = Column(String(100), nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="rules")
    conditions = relationship(
        "RuleCondition",
        back_populates="rule",
        cascade="all, delete-orphan",
        order_by="RuleCondition.position",
    )
    alerts = relationship("Alert", back_populates="rule")


class RuleCondition(Base):
    __tablename__ = "rule_conditions"

    id = Column(String, primary_key=True, index=True, default=_new_id)
    rule_id = Column(String, ForeignKey("rules.id", ondelete="CASCADE"), nullable=False, index=True)
    tracked_flight_id = Column(
        String,
        ForeignKey("tracked_flights.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    field = Column(String(50), nullable=False)
    operator = Column(String(50), nullable=False)
    # For "between" this is "min,max"
    value = Column(String(255), nullable=False)

    position = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    rule = relationship("Rule", back_populates="conditions")


# =======================================
# SECTION: ALERT MODELS
# =======================================

class Alert(Base):
    __tablename__ = "alerts"

    id = Column(String, primary_key=True, index=True, default=_new_id)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    tracked_flight_id = Column(
        String,
        ForeignKey("tracked_flights.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    # Null for direct alerts, set when the alert is gated by a rule
    rule_id = Column(String, ForeignKey("rules.id", ondelete="SET NULL"), nullable=True, index=True)

    # STATUS_CHANGE | DELAY | GATE_CHANGE | DEPARTURE | ARRIVAL
    type = Column(String(30), nullable=False)
    # Minutes, only meaningful for DELAY
    threshold = Column(Integer, nullable=True)

    is_active = Column(Boolean, nullable=False, default=True, index=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User")
    tracked_flight = relationship("TrackedFlight", back_populates="alerts")
    rule = relationship("Rule", back_populates="alerts")


# =======================================
# SECTION: NOTIFICATIONS
# =======================================

class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String, primary_key=True, index=True, default=_new_id)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    tracked_flight_id = Column(
        String,
        ForeignKey("tracked_flights.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    rule_id = Column(String, ForeignKey("rules.id", ondelete="SET NULL"), nullable=True, index=True)

    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(30), nullable=False)
    read = Column(Boolean, nullable=False, default=False, index=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
