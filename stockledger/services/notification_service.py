"""
Stock event notifications.

The engine talks to an InventoryNotifier; the concrete notifier is chosen
once at startup from NOTIFICATION_BACKEND (see build_notifier).
"""
import hashlib
import hmac
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import redis
import requests
from redis.exceptions import RedisError

from stockledger.exceptions import NotificationError

logger = logging.getLogger(__name__)


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class StockUpdateEvent:
    """Emitted after every committed adjustment."""
    product_id: int
    product_name: str
    previous_stock: int
    new_stock: int
    operation: str
    occurred_at: str = field(default_factory=_utcnow_iso)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['event'] = 'stock.updated'
        return data


@dataclass(frozen=True)
class LowStockEvent:
    """Emitted after a removal leaves the product at or below its reorder level."""
    product_id: int
    product_name: str
    current_stock: int
    reorder_level: int
    occurred_at: str = field(default_factory=_utcnow_iso)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['event'] = 'stock.low'
        return data


class InventoryNotifier(ABC):
    """Capability interface for stock notifications."""

    @abstractmethod
    def on_stock_update(self, event: StockUpdateEvent) -> None:
        """Called after a stock-in or stock-out commits."""

    @abstractmethod
    def on_low_stock(self, event: LowStockEvent) -> None:
        """Called after a stock-out leaves the product low on stock."""


class NullNotifier(InventoryNotifier):
    """Discards every event."""

    def on_stock_update(self, event: StockUpdateEvent) -> None:
        pass

    def on_low_stock(self, event: LowStockEvent) -> None:
        pass


class LoggingNotifier(InventoryNotifier):
    """Writes events to the application log."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self.log = log or logger

    def on_stock_update(self, event: StockUpdateEvent) -> None:
        self.log.info(
            f"STOCK UPDATE - Product: {event.product_name} (ID: {event.product_id}), "
            f"Operation: {event.operation}, Previous: {event.previous_stock}, New: {event.new_stock}"
        )

    def on_low_stock(self, event: LowStockEvent) -> None:
        self.log.warning(
            f"LOW STOCK ALERT - Product: {event.product_name} (ID: {event.product_id}), "
            f"Current Stock: {event.current_stock}, Reorder Level: {event.reorder_level}"
        )


class WebhookNotifier(InventoryNotifier):
    """POSTs events as JSON to an HTTP endpoint."""

    SIGNATURE_HEADER = 'X-Inventory-Signature'

    def __init__(self, url: str, timeout: float = 5, secret: Optional[str] = None,
                 http: Optional[requests.Session] = None):
        if not url:
            raise ValueError("NOTIFICATION_WEBHOOK_URL is required for the webhook backend")
        self.url = url
        self.timeout = timeout
        self.secret = secret
        self.http = http or requests.Session()

    def on_stock_update(self, event: StockUpdateEvent) -> None:
        self._post(event.to_dict())

    def on_low_stock(self, event: LowStockEvent) -> None:
        self._post(event.to_dict())

    def _sign(self, body: bytes) -> str:
        return hmac.new(self.secret.encode(), body, hashlib.sha256).hexdigest()

    def _post(self, payload: Dict[str, Any]) -> None:
        body = json.dumps(payload, default=str).encode('utf-8')
        headers = {'Content-Type': 'application/json'}
        if self.secret:
            headers[self.SIGNATURE_HEADER] = self._sign(body)

        try:
            response = self.http.post(self.url, data=body, headers=headers, timeout=self.timeout)
            response.raise_for_status()
        except requests.HTTPError as e:
            raise NotificationError(
                f"Webhook rejected {payload['event']}: HTTP {e.response.status_code}",
                {'url': self.url},
            ) from e
        except requests.RequestException as e:
            raise NotificationError(f"Webhook delivery failed: {e}", {'url': self.url}) from e

        logger.debug(f"[NOTIFY] {payload['event']} delivered to {self.url}")


class RedisQueueNotifier(InventoryNotifier):
    """Pushes events onto a Redis list consumed by downstream workers."""

    def __init__(self, redis_url: Optional[str] = None, queue_name: str = 'inventory:stock-events',
                 client: Optional[redis.Redis] = None):
        self.queue_name = queue_name
        self.client = client or redis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=3,
            socket_timeout=3,
            retry_on_timeout=True,
        )

    def on_stock_update(self, event: StockUpdateEvent) -> None:
        self._push(event.to_dict())

    def on_low_stock(self, event: LowStockEvent) -> None:
        self._push(event.to_dict())

    def _push(self, payload: Dict[str, Any]) -> None:
        try:
            self.client.rpush(self.queue_name, json.dumps(payload, default=str))
        except RedisError as e:
            raise NotificationError(
                f"Could not enqueue {payload['event']}: {e}",
                {'queue': self.queue_name},
            ) from e


class CompositeNotifier(InventoryNotifier):
    """Fans events out to several notifiers; one failure does not stop the rest."""

    def __init__(self, *notifiers: InventoryNotifier):
        self.notifiers = list(notifiers)

    def on_stock_update(self, event: StockUpdateEvent) -> None:
        self._dispatch('on_stock_update', event)

    def on_low_stock(self, event: LowStockEvent) -> None:
        self._dispatch('on_low_stock', event)

    def _dispatch(self, hook: str, event) -> None:
        errors = []
        for notifier in self.notifiers:
            try:
                getattr(notifier, hook)(event)
            except Exception as e:
                logger.warning(f"[NOTIFY] {type(notifier).__name__}.{hook} failed: {e}")
                errors.append(e)
        if errors:
            raise NotificationError(
                f"{len(errors)} of {len(self.notifiers)} notifiers failed for {hook}"
            )


def build_notifier(config) -> InventoryNotifier:
    """
    Select the notifier from configuration.

    Args:
        config: Mapping with NOTIFICATION_* keys (usually app.config)

    Returns:
        InventoryNotifier for the configured backend
    """
    backend = (config.get('NOTIFICATION_BACKEND') or 'log').lower()

    if backend == 'none':
        return NullNotifier()
    if backend == 'log':
        return LoggingNotifier()
    if backend == 'webhook':
        return CompositeNotifier(
            LoggingNotifier(),
            WebhookNotifier(
                config.get('NOTIFICATION_WEBHOOK_URL'),
                timeout=config.get('NOTIFICATION_WEBHOOK_TIMEOUT', 5),
                secret=config.get('NOTIFICATION_WEBHOOK_SECRET'),
            ),
        )
    if backend == 'redis':
        return CompositeNotifier(
            LoggingNotifier(),
            RedisQueueNotifier(
                config.get('REDIS_URL'),
                queue_name=config.get('NOTIFICATION_QUEUE_NAME', 'inventory:stock-events'),
            ),
        )

    raise ValueError(f"Unknown NOTIFICATION_BACKEND: {backend}")
