from .setup import setup_observability, setup_process_observability
from .metrics import (
    mkt_checkout_total,
    mkt_checkout_duration_seconds,
    mkt_webhook_total,
    mkt_settlements_created_total,
    mkt_shipment_transitions_total,
    mkt_order_status_sync_total,
    mkt_notification_failures_total,
    mkt_cache_errors_total,
)
