from flask import Blueprint, jsonify, request
from flask_login import login_required

from app.services import TransactionService

api_transaction_bp = Blueprint("api_transaction", __name__)


@api_transaction_bp.get("")
@login_required
def list_transactions():
    rows = TransactionService.list_transactions(
        status=request.args.get("status") or None,
        time_period=request.args.get("period", "month"),
        created_by=request.args.get("created_by", type=int),
        booking_id=request.args.get("booking_id", type=int),
    )
    return jsonify(
        {
            "items": [TransactionService.serialize(t) for t in rows],
            "totals": TransactionService.totals(rows),
        }
    )


@api_transaction_bp.get("/<int:transaction_id>")
@login_required
def transaction_detail(transaction_id):
    return jsonify(TransactionService.serialize(TransactionService.get_transaction(transaction_id)))
