# stockwatch/alert_service/services/alert_evaluator.py
"""
Alert evaluation cycle.

One cycle:
1. fetch pending (untriggered) alerts from account-service; nothing pending -> done
2. collect the distinct symbols and fetch their prices in ONE batched call
3. for each alert independently: skip if no price, compare inclusively,
   and ask account-service to mark it triggered when the condition holds

A failure in step 1 or 2 aborts the cycle without writing anything. A failed
trigger call only affects that alert, which stays pending and is retried on
the next cycle. Triggering is idempotent on the account-service side.
"""
import logging
import math
import threading
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import ValidationError

from stockwatch.shared.contracts import CycleSummary, PendingAlert

logger = logging.getLogger(__name__)


def evaluate_condition(condition: str, price: Decimal, target: Decimal) -> bool:
    """Inclusive at the boundary in both directions; unknown conditions never trigger."""
    if condition == "above":
        return price >= target
    if condition == "below":
        return price <= target
    return False


def distinct_symbols(alerts: Iterable[PendingAlert]) -> List[str]:
    """Distinct symbols in first-seen order."""
    return list(dict.fromkeys(a.symbol for a in alerts))


def build_price_map(quotes: Iterable[Any]) -> Dict[str, Decimal]:
    """
    symbol -> price for every quote carrying a usable price.
    Null, non-numeric and non-finite prices are dropped, so those symbols count as missing.
    """
    prices: Dict[str, Decimal] = {}
    for q in quotes:
        if not isinstance(q, dict):
            continue
        symbol, price = q.get("symbol"), q.get("price")
        if not isinstance(symbol, str) or isinstance(price, bool) or price is None:
            continue
        try:
            as_float = float(price)
        except (TypeError, ValueError):
            continue
        if not math.isfinite(as_float):
            continue
        # str() keeps the float's shortest repr, so 95.1 compares as 95.1 and not 95.0999...
        prices[symbol] = Decimal(str(price))
    return prices


def _parse_pending(raw_alerts: List[Any]) -> Tuple[List[PendingAlert], int]:
    """Validates each item on its own so one malformed row cannot sink the cycle."""
    parsed: List[PendingAlert] = []
    malformed = 0
    for raw in raw_alerts:
        try:
            parsed.append(PendingAlert.model_validate(raw))
        except (ValidationError, InvalidOperation, TypeError) as e:
            malformed += 1
            logger.warning(f"Skipping malformed pending alert {raw!r}: {e}")
    return parsed, malformed


class AlertEvaluator:
    """
    Runs evaluation cycles against injected account and quote clients.

    account_client must provide fetch_pending_alerts() and trigger_alert(alert_id);
    quote_client must provide fetch_prices(symbols). The optional stop_event is a
    cancellation token checked between alerts.
    """

    def __init__(self, account_client, quote_client, stop_event: Optional[threading.Event] = None):
        self.account_client = account_client
        self.quote_client = quote_client
        self.stop_event = stop_event or threading.Event()

    def run_cycle(self) -> CycleSummary:
        summary = CycleSummary()

        # 1. Fetch pending alerts
        try:
            raw_alerts = self.account_client.fetch_pending_alerts()
        except Exception as e:
            logger.error(f"Error during alert check cycle (pending alerts): {e}")
            summary.aborted = True
            summary.error = str(e)
            return summary

        if not raw_alerts:
            logger.info("No pending alerts.")
            return summary

        alerts, summary.malformed_count = _parse_pending(raw_alerts)
        summary.pending_count = len(alerts)
        if not alerts:
            return summary

        # 2. Distinct symbols, one batched price request
        symbols = distinct_symbols(alerts)
        summary.symbols_requested = symbols
        try:
            quotes = self.quote_client.fetch_prices(symbols)
        except Exception as e:
            logger.error(f"Error during alert check cycle (prices for {len(symbols)} symbols): {e}")
            summary.aborted = True
            summary.error = str(e)
            return summary
        price_map = build_price_map(quotes)

        # 3. Evaluate each alert independently
        for alert in alerts:
            if self.stop_event.is_set():
                logger.info("Alert check cycle cancelled; remaining alerts stay pending.")
                summary.cancelled = True
                break

            current_price = price_map.get(alert.symbol)
            if current_price is None:
                summary.skipped_ids.append(alert.id)
                continue

            if alert.condition not in ("above", "below"):
                logger.warning(f"Alert {alert.id} has unknown condition '{alert.condition}'; not evaluated.")
                summary.skipped_ids.append(alert.id)
                continue

            if not evaluate_condition(alert.condition, current_price, alert.target_price):
                continue

            logger.info(
                f"[ALERT] User {alert.username}: {alert.symbol} is now {current_price} "
                f"(Condition: {alert.condition} {alert.target_price})"
            )
            try:
                self.account_client.trigger_alert(alert.id)
                summary.triggered_ids.append(alert.id)
            except Exception as e:
                logger.error(f"Failed to mark alert {alert.id} as triggered: {e}")
                summary.failed_ids.append(alert.id)

        logger.info(
            f"Alert check finished: pending={summary.pending_count} symbols={len(symbols)} "
            f"triggered={len(summary.triggered_ids)} skipped={len(summary.skipped_ids)} "
            f"failed={len(summary.failed_ids)}"
        )
        return summary
