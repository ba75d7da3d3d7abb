"""
Unit tests for stock notifiers.
"""

import hashlib
import hmac
import json
import logging

import pytest
import requests
from redis.exceptions import ConnectionError as RedisConnectionError

from stockledger.exceptions import NotificationError
from stockledger.services.notification_service import (
    StockUpdateEvent, LowStockEvent, LoggingNotifier, NullNotifier, WebhookNotifier,
    RedisQueueNotifier, CompositeNotifier, build_notifier
)


UPDATE = StockUpdateEvent(product_id=1, product_name='Widget', previous_stock=100, new_stock=5, operation='STOCK_OUT')
LOW = LowStockEvent(product_id=1, product_name='Widget', current_stock=5, reorder_level=10)


class FakeResponse:
    def __init__(self, status_code=200):
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f'{self.status_code} error', response=self)


class FakeHttp:
    def __init__(self, status_code=200, error=None):
        self.status_code = status_code
        self.error = error
        self.calls = []

    def post(self, url, data=None, headers=None, timeout=None):
        self.calls.append({'url': url, 'data': data, 'headers': headers, 'timeout': timeout})
        if self.error:
            raise self.error
        return FakeResponse(self.status_code)


class FakeRedis:
    def __init__(self, fail=False):
        self.fail = fail
        self.lists = {}

    def rpush(self, name, value):
        if self.fail:
            raise RedisConnectionError('connection refused')
        self.lists.setdefault(name, []).append(value)
        return len(self.lists[name])


class TestEvents:

    def test_event_payloads(self):
        update = UPDATE.to_dict()
        assert update['event'] == 'stock.updated'
        assert update['previous_stock'] == 100
        assert update['new_stock'] == 5
        assert update['operation'] == 'STOCK_OUT'
        assert update['occurred_at']

        low = LOW.to_dict()
        assert low['event'] == 'stock.low'
        assert low['current_stock'] == 5
        assert low['reorder_level'] == 10


class TestLoggingNotifier:

    def test_logs_update_and_low_stock(self, caplog):
        caplog.set_level(logging.INFO, logger='stockledger.services.notification_service')
        notifier = LoggingNotifier()

        notifier.on_stock_update(UPDATE)
        notifier.on_low_stock(LOW)

        messages = [(r.levelno, r.getMessage()) for r in caplog.records]
        assert (logging.INFO,
                'STOCK UPDATE - Product: Widget (ID: 1), Operation: STOCK_OUT, Previous: 100, New: 5') in messages
        assert (logging.WARNING,
                'LOW STOCK ALERT - Product: Widget (ID: 1), Current Stock: 5, Reorder Level: 10') in messages

    def test_null_notifier_accepts_events(self):
        notifier = NullNotifier()
        notifier.on_stock_update(UPDATE)
        notifier.on_low_stock(LOW)


class TestWebhookNotifier:

    def test_posts_json(self):
        http = FakeHttp()
        notifier = WebhookNotifier('https://hooks.example.com/stock', timeout=2, http=http)

        notifier.on_low_stock(LOW)

        call = http.calls[0]
        assert call['url'] == 'https://hooks.example.com/stock'
        assert call['timeout'] == 2
        assert json.loads(call['data'])['event'] == 'stock.low'
        assert WebhookNotifier.SIGNATURE_HEADER not in call['headers']

    def test_signs_body_with_secret(self):
        http = FakeHttp()
        notifier = WebhookNotifier('https://hooks.example.com/stock', secret='s3cret', http=http)

        notifier.on_stock_update(UPDATE)

        call = http.calls[0]
        expected = hmac.new(b's3cret', call['data'], hashlib.sha256).hexdigest()
        assert call['headers'][WebhookNotifier.SIGNATURE_HEADER] == expected

    def test_http_error_raises_notification_error(self):
        notifier = WebhookNotifier('https://hooks.example.com/stock', http=FakeHttp(status_code=503))

        with pytest.raises(NotificationError) as exc_info:
            notifier.on_stock_update(UPDATE)
        assert 'HTTP 503' in exc_info.value.message

    def test_connection_error_raises_notification_error(self):
        http = FakeHttp(error=requests.ConnectionError('refused'))
        notifier = WebhookNotifier('https://hooks.example.com/stock', http=http)

        with pytest.raises(NotificationError):
            notifier.on_low_stock(LOW)

    def test_url_is_required(self):
        with pytest.raises(ValueError):
            WebhookNotifier(None)


class TestRedisQueueNotifier:

    def test_pushes_events_onto_queue(self):
        client = FakeRedis()
        notifier = RedisQueueNotifier(queue_name='stock-events', client=client)

        notifier.on_stock_update(UPDATE)
        notifier.on_low_stock(LOW)

        queued = [json.loads(item) for item in client.lists['stock-events']]
        assert [item['event'] for item in queued] == ['stock.updated', 'stock.low']

    def test_redis_error_raises_notification_error(self):
        notifier = RedisQueueNotifier(queue_name='stock-events', client=FakeRedis(fail=True))

        with pytest.raises(NotificationError):
            notifier.on_stock_update(UPDATE)


class TestCompositeNotifier:

    def test_failure_does_not_stop_other_notifiers(self):
        client = FakeRedis()
        failing = WebhookNotifier('https://hooks.example.com/stock', http=FakeHttp(status_code=500))
        composite = CompositeNotifier(failing, RedisQueueNotifier(queue_name='q', client=client))

        with pytest.raises(NotificationError):
            composite.on_low_stock(LOW)

        assert len(client.lists['q']) == 1


class TestBuildNotifier:

    def test_none_backend(self):
        assert isinstance(build_notifier({'NOTIFICATION_BACKEND': 'none'}), NullNotifier)

    def test_log_backend_is_default(self):
        assert isinstance(build_notifier({}), LoggingNotifier)

    def test_webhook_backend(self):
        notifier = build_notifier({
            'NOTIFICATION_BACKEND': 'webhook',
            'NOTIFICATION_WEBHOOK_URL': 'https://hooks.example.com/stock',
        })
        assert isinstance(notifier, CompositeNotifier)
        assert isinstance(notifier.notifiers[0], LoggingNotifier)
        assert isinstance(notifier.notifiers[1], WebhookNotifier)

    def test_redis_backend(self):
        notifier = build_notifier({
            'NOTIFICATION_BACKEND': 'redis',
            'REDIS_URL': 'redis://localhost:6379/0',
            'NOTIFICATION_QUEUE_NAME': 'stock-events',
        })
        assert isinstance(notifier.notifiers[1], RedisQueueNotifier)
        assert notifier.notifiers[1].queue_name == 'stock-events'

    def test_webhook_backend_without_url_fails(self):
        with pytest.raises(ValueError):
            build_notifier({'NOTIFICATION_BACKEND': 'webhook'})

    def test_unknown_backend_fails(self):
        with pytest.raises(ValueError):
            build_notifier({'NOTIFICATION_BACKEND': 'carrier-pigeon'})
