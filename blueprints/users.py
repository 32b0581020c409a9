from flask import Blueprint, jsonify, current_app, abort
from flask_login import login_required, current_user

from extensions import db
from models import User
from commissions.errors import NotFoundError
from commissions.services import CommissionService
from blueprints.admin import admin_required
from utils import parse_json_body, require_fields


bp = Blueprint('users', __name__, url_prefix="")


def _base_url():
    return current_app.config.get("APP_BASE_URL")


# ----------------------------------------------------------------------------------
# USERS
# ----------------------------------------------------------------------------------
@bp.route("/api/users", methods=["GET"])
@admin_required
def list_users():
    users = User.query.order_by(User.created_at.desc(), User.id.desc()).all()
    return jsonify([user.to_dict(_base_url()) for user in users]), 200


@bp.route("/api/users/<int:user_id>", methods=["GET"])
@login_required
def get_user(user_id):
    if current_user.id != user_id and not current_user.is_admin:
        abort(403)

    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return jsonify(user.to_dict(_base_url())), 200


#=======================================================================================
#      ROLE ACTIVATION
#=======================================================================================
@bp.route("/api/users/activate", methods=["POST"])
@login_required
def activate_role():
    """
    Upgrade the caller's role once the activation fee is paid.
    Expected JSON:
    {
        "role": "ACTIVE_USER" | "AFFILIATOR",
        "referralCode": ""   (optional, used only if the caller has no referrer)
    }
    """
    data = parse_json_body()
    require_fields(data, "role")

    user = CommissionService.activate_role(
        current_user.id,
        data["role"],
        referral_code_hint=data.get("referralCode"),
    )
    return jsonify({
        "message": f"Role upgraded to {user.role}",
        "user": user.to_dict(_base_url()),
    }), 200


#=======================================================================================
#      REFERRAL NETWORK
#=======================================================================================
@bp.route("/api/referrals", methods=["GET"])
@login_required
def get_referrals():
    referrals = CommissionService.get_referrals(current_user.id)
    return jsonify([user.to_dict() for user in referrals]), 200


@bp.route("/api/referrals/upline", methods=["GET"])
@login_required
def get_upline():
    upline = CommissionService.get_upline(current_user.id)
    return jsonify([
        {"level": level, **user.to_dict()}
        for level, user in enumerate(upline, start=1)
    ]), 200


@bp.route("/api/referrals/link", methods=["GET"])
@login_required
def get_referral_link():
    user = current_user.to_dict(_base_url())
    return jsonify({
        "referralCode": user["referralCode"],
        "referralLink": user.get("referralLink"),
    }), 200
