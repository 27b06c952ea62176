# stockwatch/shared/contracts.py
"""
This module defines the Pydantic models that serve as the formal data contracts
for all inter-service communication in the stock watchlist backend.

These models ensure data consistency, provide automatic validation, and act as
living documentation for the data structures exchanged between services.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional, TypeAlias

from pydantic import BaseModel, ConfigDict, Field

MAX_TICKER_LEN = 10
MAX_USERNAME_LEN = 50

AlertCondition: TypeAlias = Literal["above", "below"]
ALERT_CONDITIONS = ("above", "below")

# --- Contract 1: SymbolList ---
SymbolList: TypeAlias = List[str]
"""A simple list of ticker symbols (e.g., ["AAPL", "MSFT"])."""


# --- Contract 2: ApiError ---
class ApiError(BaseModel):
    """Uniform JSON error body returned by every service."""
    error: str
    details: Optional[str] = None


# --- Contract 3: Users ---
class UserPublic(BaseModel):
    """The user projection that is safe to return to clients (no password hash)."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str


class LoginResponse(BaseModel):
    token: str
    user: UserPublic


# --- Contract 4: Alerts ---
class AlertItem(BaseModel):
    """An alert row as returned by GET /alerts and POST /alerts."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    symbol: str
    target_price: Decimal
    condition: str
    is_triggered: bool
    created_at: Optional[datetime] = None


class PendingAlert(BaseModel):
    """
    An untriggered alert joined with its owner's username.
    Served by account-service at /internal/alerts/pending and consumed by the alert loop.
    The condition is kept as a plain string so one bad row cannot fail the whole list.
    """
    id: int
    user_id: int
    symbol: str
    target_price: Decimal
    condition: str
    username: Optional[str] = None


PendingAlertList: TypeAlias = List[PendingAlert]


# --- Contract 5: Quotes ---
class Quote(BaseModel):
    """A point-in-time price snapshot for one symbol. Never persisted."""
    model_config = ConfigDict(populate_by_name=True)

    symbol: str
    price: Optional[float] = None
    currency: Optional[str] = None
    change: Optional[float] = None
    change_percent: Optional[float] = Field(None, alias="changePercent")
    time: Optional[datetime] = None


class BatchQuoteItem(BaseModel):
    """Lean quote shape returned by POST /prices."""
    model_config = ConfigDict(populate_by_name=True)

    symbol: str
    price: Optional[float] = None
    change: Optional[float] = None
    change_percent: Optional[float] = Field(None, alias="changePercent")


BatchQuoteList: TypeAlias = List[BatchQuoteItem]


# --- Contract 6: PriceBar ---
class PriceBar(BaseModel):
    """A single daily bar of a historical series."""
    date: str
    open: Optional[float] = None  # some symbols have gaps inside the period
    high: Optional[float] = None
    low: Optional[float] = None
    close: Optional[float] = None
    volume: Optional[int] = None
    adjclose: Optional[float] = None


# --- Contract 7: Alert evaluation cycle ---
class CycleSummary(BaseModel):
    """Outcome of one alert evaluation cycle."""
    pending_count: int = 0
    symbols_requested: List[str] = Field(default_factory=list)
    triggered_ids: List[int] = Field(default_factory=list)
    skipped_ids: List[int] = Field(default_factory=list)
    failed_ids: List[int] = Field(default_factory=list)
    malformed_count: int = 0
    aborted: bool = False
    cancelled: bool = False
    error: Optional[str] = None
