"""Application layer module.

Contains application services (use cases) that orchestrate
domain logic and infrastructure.
"""

from bakery_api.application.business_settings import (
    BusinessSettingsService,
    get_business_settings_service,
)
from bakery_api.application.checkout_service import (
    CheckoutService,
    get_checkout_service,
)
from bakery_api.application.discount_service import (
    DiscountService,
    get_discount_service,
)
from bakery_api.application.notification_service import (
    NotificationService,
    get_notification_service,
)
from bakery_api.application.order_service import (
    OrderService,
    get_order_service,
)
from bakery_api.application.webhook_service import (
    WebhookService,
    get_webhook_service,
)

__all__ = [
    "BusinessSettingsService",
    "get_business_settings_service",
    "CheckoutService",
    "get_checkout_service",
    "DiscountService",
    "get_discount_service",
    "NotificationService",
    "get_notification_service",
    "OrderService",
    "get_order_service",
    "WebhookService",
    "get_webhook_service",
]
