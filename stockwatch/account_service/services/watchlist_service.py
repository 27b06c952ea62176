# stockwatch/account_service/services/watchlist_service.py
"""
Watchlist business logic: add, list and remove tracked symbols.
Every operation is scoped to the authenticated user's id.
"""
import logging
from typing import List

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stockwatch.account_service.database.models import TrackedStock, User

logger = logging.getLogger(__name__)


class AlreadyTrackedError(Exception):
    """Raised when a user tracks a symbol that is already on their watchlist."""


class OwnerNotFoundError(Exception):
    """Raised when the token's user no longer exists."""


def _is_tracked(session: Session, user_id: int, symbol: str) -> bool:
    return session.execute(
        select(TrackedStock.id).where(TrackedStock.user_id == user_id, TrackedStock.symbol == symbol)
    ).first() is not None


def get_tracked_symbols(session: Session, user_id: int) -> List[str]:
    """Returns the user's symbols, oldest first."""
    rows = session.execute(
        select(TrackedStock.symbol)
        .where(TrackedStock.user_id == user_id)
        .order_by(TrackedStock.created_at.asc(), TrackedStock.id.asc())
    ).scalars()
    return list(rows)


def track_symbol(session: Session, user_id: int, symbol: str) -> str:
    """
    Adds an already-normalized symbol to the user's watchlist.

    Raises:
        AlreadyTrackedError: If (user_id, symbol) already exists
        OwnerNotFoundError: If user_id does not refer to an existing user
    """
    session.add(TrackedStock(user_id=user_id, symbol=symbol))
    try:
        session.flush()
    except IntegrityError as e:
        session.rollback()
        # the same error class covers the unique key and the users FK
        if _is_tracked(session, user_id, symbol):
            raise AlreadyTrackedError(symbol) from e
        if session.get(User, user_id) is None:
            raise OwnerNotFoundError(user_id) from e
        raise
    logger.info(f"User {user_id} now tracks {symbol}")
    return symbol


def untrack_symbol(session: Session, user_id: int, symbol: str) -> int:
    """Removes the symbol; returns the number of rows deleted (0 when it was not tracked)."""
    result = session.execute(
        delete(TrackedStock).where(TrackedStock.user_id == user_id, TrackedStock.symbol == symbol)
    )
    return result.rowcount or 0
