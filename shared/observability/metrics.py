from prometheus_client import Counter, Histogram

# Business Metrics
storefront_reconciliation_total = Counter(
    "storefront_reconciliation_total",
    "Payment reconciliations processed",
    ["outcome"]  # Labels: 'noop', 'transitioned', 'paid_edge', 'lost_race'
)

storefront_reconciliation_duration_seconds = Histogram(
    "storefront_reconciliation_duration_seconds",
    "Reconciliation duration in seconds"
)

storefront_side_effect_failures_total = Counter(
    "storefront_side_effect_failures_total",
    "Stock or coupon side effects that failed after a payment was confirmed",
    ["kind"]  # Labels: 'stock', 'coupon'
)

storefront_webhook_notifications_total = Counter(
    "storefront_webhook_notifications_total",
    "Gateway webhook notifications received",
    ["type"]
)

storefront_gateway_errors_total = Counter(
    "storefront_gateway_errors_total",
    "Errors returned by or while reaching the payment gateway",
    ["kind"]  # Labels: 'unavailable', 'request'
)
