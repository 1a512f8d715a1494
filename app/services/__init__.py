from app.services.asset_service import AssetService
from app.services.auth_service import AuthService
from app.services.booking_service import BookingService
from app.services.charge_service import ChargeService
from app.services.customer_service import CustomerService
from app.services.invoice_service import InvoiceService
from app.services.notification_service import NotificationService
from app.services.platform_service import PlatformService
from app.services.transaction_service import TransactionService
from app.services.webhook_service import WebhookService

__all__ = [
    "AssetService",
    "AuthService",
    "BookingService",
    "ChargeService",
    "CustomerService",
    "InvoiceService",
    "NotificationService",
    "PlatformService",
    "TransactionService",
    "WebhookService",
]
