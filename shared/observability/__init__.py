from .setup import setup_observability, configure_logging
from .metrics import (
    storefront_reconciliation_total,
    storefront_reconciliation_duration_seconds,
    storefront_side_effect_failures_total,
    storefront_webhook_notifications_total,
    storefront_gateway_errors_total
)
