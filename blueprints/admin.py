#======================================================================================
#
# ADMIN API
#
#=======================================================================================
from functools import wraps
import logging

from flask import Blueprint, jsonify, abort
from flask_login import current_user

from commissions.services import CommissionService

logger = logging.getLogger(__name__)


def admin_required(f):
    """
    Decorator to restrict access to admin-only routes.
    - 401 if nobody is logged in.
    - 403 if the logged-in user's current role is not ADMIN.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated:
            abort(401)

        if not current_user.is_admin:
            logger.warning(f"User {current_user.id} denied access to {f.__name__}")
            abort(403)

        return f(*args, **kwargs)

    return decorated_function


admin_bp = Blueprint('admin', __name__, url_prefix='')


@admin_bp.route("/api/admin/stats", methods=["GET"])
@admin_required
def admin_stats():
    return jsonify(CommissionService.get_admin_stats()), 200
