# stockwatch/account_service/services/alert_service.py
"""
Alert business logic for account-service.

User-facing operations (list/create/delete) are scoped to the owner's id.
The internal operations (pending listing and the trigger transition) serve
the alert evaluation loop. The trigger transition is one-way and idempotent.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, List

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from stockwatch.account_service.database.models import Alert, User
from stockwatch.shared.contracts import AlertItem, PendingAlert

logger = logging.getLogger(__name__)


def list_alerts(session: Session, user_id: int) -> List[Dict[str, Any]]:
    """Returns the user's alerts, newest first."""
    alerts = session.execute(
        select(Alert).where(Alert.user_id == user_id).order_by(Alert.created_at.desc(), Alert.id.desc())
    ).scalars()
    return [AlertItem.model_validate(a).model_dump(mode="json") for a in alerts]


def create_alert(session: Session, user_id: int, symbol: str, target_price: Decimal, condition: str) -> Dict[str, Any]:
    """Inserts an untriggered alert. Inputs must already be validated and normalized."""
    alert = Alert(user_id=user_id, symbol=symbol, target_price=target_price, condition=condition, is_triggered=False)
    session.add(alert)
    session.flush()
    session.refresh(alert)
    logger.info(f"User {user_id} created alert {alert.id}: {symbol} {condition} {target_price}")
    return AlertItem.model_validate(alert).model_dump(mode="json")


def delete_alert(session: Session, user_id: int, alert_id: int) -> int:
    """Deletes the alert only if it belongs to the user; returns rows deleted."""
    result = session.execute(delete(Alert).where(Alert.id == alert_id, Alert.user_id == user_id))
    return result.rowcount or 0


def list_pending_alerts(session: Session) -> List[Dict[str, Any]]:
    """All untriggered alerts joined with the owning username."""
    rows = session.execute(
        select(
            Alert.id,
            Alert.user_id,
            Alert.symbol,
            Alert.target_price,
            Alert.condition,
            User.username,
        )
        .join(User, Alert.user_id == User.id)
        .where(Alert.is_triggered.is_(False))
        .order_by(Alert.id.asc())
    ).mappings()
    return [PendingAlert.model_validate(dict(row)).model_dump(mode="json") for row in rows]


def mark_alert_triggered(session: Session, alert_id: int) -> int:
    """
    Sets is_triggered = true for the alert.
    No-op when the alert is already triggered or does not exist; returns rows changed.
    """
    result = session.execute(
        update(Alert).where(Alert.id == alert_id, Alert.is_triggered.is_(False)).values(is_triggered=True)
    )
    changed = result.rowcount or 0
    if changed:
        logger.info(f"Alert {alert_id} marked as triggered")
    else:
        logger.debug(f"Trigger for alert {alert_id} was a no-op (already triggered or absent)")
    return changed
