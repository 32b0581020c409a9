from flask import Blueprint, jsonify
from flask_login import login_required, current_user

from commissions.services import CommissionService
from utils import parse_json_body, require_fields


bp = Blueprint('ledger', __name__, url_prefix="")


# ----------------------------------------------------------------------------------
# TRANSACTION HISTORY AND EARNINGS
# ----------------------------------------------------------------------------------
@bp.route("/api/transactions", methods=["GET"])
@login_required
def list_transactions():
    transactions = CommissionService.get_ledger(current_user.id)
    return jsonify([tx.to_dict() for tx in transactions]), 200


@bp.route("/api/earnings", methods=["GET"])
@login_required
def earnings_summary():
    return jsonify(CommissionService.get_earnings_summary(current_user.id)), 200


#==========================================================================
# WITHDRAWALS
#==========================================================================
@bp.route("/api/withdrawals", methods=["POST"])
@login_required
def request_withdrawal():
    """
    Expected JSON:
    {
        "amount": 50.00,
        "paymentMethod": "bank",
        "accountNumber": "0123456789"
    }
    """
    data = parse_json_body()
    require_fields(data, "amount", "paymentMethod", "accountNumber")

    transaction = CommissionService.request_withdrawal(
        current_user.id,
        data["amount"],
        data["paymentMethod"],
        data["accountNumber"],
    )
    return jsonify({
        "message": "Withdrawal request submitted",
        "transaction": transaction.to_dict(),
    }), 201
