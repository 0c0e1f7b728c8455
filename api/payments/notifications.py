# api/payments/notifications.py
import structlog

from core.business_context import BusinessSnapshot
from db_models.payment_invoice import PaymentInvoice


logger = structlog.get_logger(__name__)


class InvoiceNotifier:
    """
    Sends invoice reminders to a business's billing address.

    The default implementation writes the reminder to the structured log.
    """

    async def send_invoice_notification(self, invoice: PaymentInvoice, business: BusinessSnapshot) -> bool:
        if not business.email:
            logger.warning(
                "Invoice notification skipped: business has no email",
                invoice_id=invoice.id,
                business_id=business.id,
            )
            return False

        logger.info(
            "Invoice notification sent",
            invoice_id=invoice.id,
            business_id=business.id,
            recipient=business.email,
            status=invoice.status,
            total_amount=str(invoice.total_amount),
            due_date=invoice.due_date.isoformat(),
        )
        return True


def get_notifier() -> InvoiceNotifier:
    return InvoiceNotifier()
