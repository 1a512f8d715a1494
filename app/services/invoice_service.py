from datetime import date, timedelta

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from app import lifecycle
from app.errors import NotFound, ProcessorError
from app.extensions import db
from app.models import Booking, RentTransaction
from app.services.platform_service import PlatformService
from app.services.stripe_gateway import get_gateway
from app.timeline import to_minor_units

NO_TRANSACTIONS_MESSAGE = "No scheduled transactions found for this booking or they are already processed."


class InvoiceService:
    @staticmethod
    def due_transactions(booking_id, horizon):
        return (
            RentTransaction.query.filter_by(booking_id=booking_id, status=lifecycle.SCHEDULED)
            .filter(RentTransaction.stripe_invoice_id.is_(None))
            .filter(RentTransaction.due_date <= horizon)
            .order_by(RentTransaction.due_date, RentTransaction.id)
            .all()
        )

    @staticmethod
    def _invoice_transaction(transaction, customer, currency):
        gateway = get_gateway()
        invoice = gateway.create_invoice(
            customer=customer.stripe_customer_id,
            payment_method=customer.stripe_payment_method_id,
            metadata={
                "rent_transaction_id": str(transaction.id),
                "booking_id": str(transaction.booking_id),
                "customer_id": str(customer.id),
            },
            idempotency_key=f"rent-transaction-{transaction.id}-invoice",
        )
        gateway.create_invoice_item(
            customer=customer.stripe_customer_id,
            invoice_id=invoice["id"],
            amount=to_minor_units(transaction.amount),
            currency=currency,
            description=f"Rent transaction: {transaction.id} for booking: {transaction.booking_id}",
            idempotency_key=f"rent-transaction-{transaction.id}-invoice-item",
        )
        return invoice

    @staticmethod
    def schedule_invoices(booking_id, as_of=None):
        """
        Create Stripe invoices for a booking's scheduled transactions.

        Only transactions due within the configured lead time are invoiced;
        later months are picked up by later runs. Each transaction gets its
        own result entry so one failure does not stop the rest.
        """
        booking = db.session.get(Booking, booking_id)
        if not booking:
            raise NotFound(f"Booking with ID {booking_id} not found.")
        if booking.payment_collection_method != "automatic":
            return {"message": "Booking is collected manually. No invoices scheduled.", "results": []}

        horizon = (as_of or date.today()) + timedelta(days=PlatformService.invoice_lead_days())
        transactions = InvoiceService.due_transactions(booking.id, horizon)
        if not transactions:
            current_app.logger.info("Booking %s: %s", booking.id, NO_TRANSACTIONS_MESSAGE)
            return {"message": NO_TRANSACTIONS_MESSAGE, "results": []}

        customer = booking.customer
        currency = PlatformService.currency()
        results = []
        for transaction in transactions:
            if not customer.stripe_customer_id or not customer.stripe_payment_method_id:
                reason = "Missing Stripe customer ID or payment method ID on customer record."
                current_app.logger.warning("Skipping rent transaction %s: %s", transaction.id, reason)
                results.append(
                    {"transaction_id": transaction.id, "status": "skipped_missing_stripe_details", "reason": reason}
                )
                continue
            if customer.stripe_mandate_status != "active":
                reason = f"Stripe mandate is not active (status: {customer.stripe_mandate_status})."
                current_app.logger.warning("Skipping rent transaction %s: %s", transaction.id, reason)
                results.append({"transaction_id": transaction.id, "status": "skipped_inactive_mandate", "reason": reason})
                continue

            try:
                invoice = InvoiceService._invoice_transaction(transaction, customer, currency)
            except ProcessorError as exc:
                results.append({"transaction_id": transaction.id, "status": "error_stripe", "reason": exc.message})
                continue

            try:
                transaction.stripe_invoice_id = invoice["id"]
                db.session.commit()
            except SQLAlchemyError as exc:
                db.session.rollback()
                current_app.logger.error("Could not store invoice %s on rent transaction %s", invoice["id"], transaction.id)
                results.append({"transaction_id": transaction.id, "status": "error_db_update", "reason": str(exc)})
                continue
            results.append({"transaction_id": transaction.id, "status": "processed_invoice_created"})

        current_app.logger.info("Invoice scheduling for booking %s: %s", booking.id, results)
        return {"message": "Invoice scheduling process completed.", "results": results}

    @staticmethod
    def schedule_all_due(as_of=None):
        bookings = (
            Booking.query.filter_by(status="active", payment_collection_method="automatic").order_by(Booking.id).all()
        )
        summary = {}
        for booking in bookings:
            summary[booking.id] = InvoiceService.schedule_invoices(booking.id, as_of=as_of)["results"]
        return summary
