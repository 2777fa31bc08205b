from homeinv.models.barcode_cache import BarcodeCacheEntry
from homeinv.models.base import Base
from homeinv.models.failure_metric import FailureMetricWindow
from homeinv.models.retry_queue import RetryQueueEntry
from homeinv.models.subscriber import Subscriber
from homeinv.models.webhook_event import WebhookEvent

__all__ = ["Base", "Subscriber", "WebhookEvent", "RetryQueueEntry", "FailureMetricWindow", "BarcodeCacheEntry"]
