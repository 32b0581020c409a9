from flask import Blueprint, jsonify
from flask_login import login_required, current_user

from models import Order
from commissions.services import CommissionService
from utils import parse_json_body, require_fields, parse_int


bp = Blueprint('orders', __name__, url_prefix="")


@bp.route("/api/orders", methods=["POST"])
@login_required
def create_order():
    """
    Record a confirmed purchase for the caller.
    Expected JSON:
    {
        "productId": 1,
        "referralCode": ""   (optional, credits the AFFILIATOR who owns it)
    }
    """
    data = parse_json_body()
    require_fields(data, "productId")

    order = CommissionService.purchase_product(
        current_user.id,
        parse_int(data["productId"], "productId"),
        referral_code=data.get("referralCode"),
    )
    return jsonify(order.to_dict()), 201


@bp.route("/api/orders", methods=["GET"])
@login_required
def list_orders():
    orders = (Order.query
              .filter_by(user_id=current_user.id)
              .order_by(Order.created_at.desc(), Order.id.desc())
              .all())
    return jsonify([order.to_dict() for order in orders]), 200
