from datetime import date

import click
from flask.cli import with_appcontext

from app.services import ChargeService, InvoiceService


@click.command("schedule-invoices")
@click.option("--booking-id", type=int, default=None, help="Only schedule invoices for this booking.")
@click.option("--as-of", default=None, help="Reference date (YYYY-MM-DD), defaults to today.")
@with_appcontext
def schedule_invoices_command(booking_id, as_of):
    """Create Stripe invoices for scheduled rent transactions that are due."""
    as_of_date = date.fromisoformat(as_of) if as_of else None
    if booking_id is not None:
        summary = {booking_id: InvoiceService.schedule_invoices(booking_id, as_of=as_of_date)["results"]}
    else:
        summary = InvoiceService.schedule_all_due(as_of=as_of_date)
    for current_booking_id, results in summary.items():
        for result in results:
            click.echo(f"booking {current_booking_id} transaction {result['transaction_id']}: {result['status']}")
    click.echo(f"{len(summary)} bookings processed.")


@click.command("reconcile-charge")
@click.argument("booking_id", type=int)
@click.argument("payment_intent_id")
@with_appcontext
def reconcile_charge_command(booking_id, payment_intent_id):
    """Bring a booking in line with a PaymentIntent already created at Stripe."""
    result = ChargeService.reconcile_booking_charge(booking_id, payment_intent_id)
    click.echo(f"booking {result['booking_id']}: {result['payment_status']} ({result['stripe_payment_intent_id']})")


def register_commands(app):
    app.cli.add_command(schedule_invoices_command)
    app.cli.add_command(reconcile_charge_command)
