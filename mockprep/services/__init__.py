"""
Services package for external integrations.
"""
from .payment_gateway import (
    GatewayCustomer,
    GatewayOrderStatus,
    PaymentGatewayClient,
    PaymentGatewayConfig,
    PaymentGatewayError,
)

__all__ = [
    "GatewayCustomer",
    "GatewayOrderStatus",
    "PaymentGatewayClient",
    "PaymentGatewayConfig",
    "PaymentGatewayError",
]
