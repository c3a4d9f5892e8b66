from prometheus_client import Counter, Histogram

# Business Metrics
mkt_checkout_total = Counter(
    "mkt_checkout_total",
    "Total checkouts processed",
    ["status"]  # Labels: 'success', 'failed'
)

mkt_checkout_duration_seconds = Histogram(
    "mkt_checkout_duration_seconds",
    "Checkout duration in seconds"
)

mkt_webhook_total = Counter(
    "mkt_webhook_total",
    "Payment webhook deliveries by outcome",
    ["provider", "outcome"]  # outcome: 'captured', 'failed', 'duplicate', 'unmatched', 'ignored', 'rejected'
)

mkt_settlements_created_total = Counter(
    "mkt_settlements_created_total",
    "Seller settlement rows created on payment success"
)

mkt_shipment_transitions_total = Counter(
    "mkt_shipment_transitions_total",
    "Shipment status changes",
    ["status", "path"]  # path: 'seller', 'admin'
)

mkt_order_status_sync_total = Counter(
    "mkt_order_status_sync_total",
    "Order status synchronizer runs",
    ["result"]  # 'updated', 'unchanged', 'blocked'
)

mkt_notification_failures_total = Counter(
    "mkt_notification_failures_total",
    "Notifications that could not be delivered",
    ["kind"]
)

mkt_cache_errors_total = Counter(
    "mkt_cache_errors_total",
    "Cache operations that failed and were skipped",
    ["operation"]
)
