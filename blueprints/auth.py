from flask import Blueprint, jsonify, current_app
from flask_login import login_user, logout_user, login_required, current_user
from sqlalchemy.exc import IntegrityError
import logging

from extensions import db
from models import User
from commissions.errors import ValidationError
from commissions.referral_tree import ReferralTreeHelper
from utils import validate_email, validate_username, parse_json_body, require_fields


logger = logging.getLogger(__name__)
#==================================================================================================================

bp = Blueprint("auth", __name__, url_prefix="")


#===========================================================================
#      SIGN UP ROUTE.
#==============================================================================
@bp.route("/api/register", methods=["POST"])
def register():
    """
    Create a new user and attach them to their referrer.
    Expected JSON:
    {
        "username": "", "email": "", "fullName": "", "password": "",
        "referralCode": ""   (optional)
    }
    """
    data = parse_json_body()
    require_fields(data, "username", "email", "fullName", "password")

    username = str(data["username"]).strip()
    email = str(data["email"]).strip().lower()
    full_name = str(data["fullName"]).strip()
    password = str(data["password"])
    referral_code = str(data.get("referralCode") or "").strip().upper()

    # -----------------------------------------
    #  BASIC VALIDATION
    # -----------------------------------------
    if not validate_username(username):
        raise ValidationError("Username must be 3-80 letters, digits, '.', '_' or '-'")
    if not validate_email(email):
        raise ValidationError("Invalid email address")
    if len(password) < 6:
        raise ValidationError("Password must be at least 6 characters")

    exists = User.query.filter((User.email == email) | (User.username == username)).first()
    if exists:
        raise ValidationError("Username or email already registered")

    # -----------------------------------------
    #  HANDLE REFERRAL CODE
    # -----------------------------------------
    referrer = None
    if referral_code:
        referrer = ReferralTreeHelper.find_by_referral_code(referral_code)
        if referrer is None:
            raise ValidationError("Invalid referral code")

    new_user = User(
        username=username,
        email=email,
        full_name=full_name,
        referral_code=ReferralTreeHelper.generate_referral_code(),
        referred_by=referrer.id if referrer else None,
    )
    new_user.set_password(password)

    try:
        db.session.add(new_user)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ValidationError("Username or email already registered")

    logger.info(f"Registered user {new_user.id} ({username}), referrer={referrer.id if referrer else None}")
    login_user(new_user)

    return jsonify({
        "message": "Registration successful",
        "user": new_user.to_dict(current_app.config.get("APP_BASE_URL")),
    }), 201


# --------------------------------------------------
#      Login Route
# --------------------------------------------------
@bp.route("/api/login", methods=["POST"])
def login():
    """
    Authenticate a user.
    Expected JSON:
    {
        "username": "",   (username or email)
        "password": ""
    }
    """
    data = parse_json_body()
    identifier = str(data.get("username") or data.get("email") or "").strip()
    password = str(data.get("password") or "")

    if not identifier or not password:
        raise ValidationError("Username and password are required")

    user = User.query.filter(
        (User.username == identifier) | (User.email == identifier.lower())
    ).first()

    if not user or not user.check_password(password):
        logger.warning(f"Failed login for {identifier!r}")
        return jsonify({"error": "Invalid credentials"}), 401

    login_user(user)
    return jsonify({
        "message": "Login successful",
        "user": user.to_dict(current_app.config.get("APP_BASE_URL")),
    }), 200


#-----------------------------------------------------------------------------------------------------
@bp.route("/api/logout", methods=["POST"])
@login_required
def logout():
    """
    Destroy User session
    """
    logout_user()
    return jsonify({"message": "Logged out successfully"}), 200


# --------------------------------------------------
# Current user (for frontend auto-login)
# --------------------------------------------------
@bp.route("/api/user", methods=["GET"])
@login_required
def current_user_profile():
    return jsonify(current_user.to_dict(current_app.config.get("APP_BASE_URL"))), 200
