# stockwatch/account_service/database/models.py
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _utcnow():
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    username = Column(String(50), unique=True, nullable=False)
    password = Column(String(255), nullable=False)  # bcrypt hash, never the raw password
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    tracked_stocks = relationship(
        "TrackedStock", back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )
    alerts = relationship(
        "Alert", back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )


class TrackedStock(Base):
    __tablename__ = "tracked_stocks"
    __table_args__ = (UniqueConstraint("user_id", "symbol", name="tracked_stocks_user_symbol_key"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    symbol = Column(String(10), nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    user = relationship("User", back_populates="tracked_stocks")


class Alert(Base):
    __tablename__ = "alerts"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    symbol = Column(String(10), nullable=False)
    target_price = Column(Numeric(10, 2), nullable=False)
    condition = Column(String(10), nullable=False)  # 'above' or 'below'
    # One-way flag: set by the trigger transition, never reset
    is_triggered = Column(Boolean, default=False, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    user = relationship("User", back_populates="alerts")
