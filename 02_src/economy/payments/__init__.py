"""Payment provider module."""

from .provider import (
    HttpPaymentProvider,
    IPaymentProvider,
    MockPaymentProvider,
    PaymentReceipt,
    WalletStatus,
    create_payment_provider,
)

__all__ = [
    "HttpPaymentProvider",
    "IPaymentProvider",
    "MockPaymentProvider",
    "PaymentReceipt",
    "WalletStatus",
    "create_payment_provider",
]
