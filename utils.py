import re
from decimal import Decimal, InvalidOperation

from flask import request

from commissions.errors import ValidationError


def validate_email(email):
    return re.match(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$', email or "") is not None


def validate_username(username):
    return re.match(r'^[A-Za-z0-9_.-]{3,80}$', username or "") is not None


def parse_json_body():
    """Return the request's JSON object or raise ValidationError."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Invalid or missing JSON body")
    return data


def require_fields(data, *fields):
    missing = [name for name in fields if data.get(name) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


def parse_decimal(value, field_name, minimum=None, maximum=None):
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"{field_name} must be a number")

    if not amount.is_finite():
        raise ValidationError(f"{field_name} must be a number")
    if minimum is not None and amount < minimum:
        raise ValidationError(f"{field_name} must be at least {minimum}")
    if maximum is not None and amount > maximum:
        raise ValidationError(f"{field_name} must be at most {maximum}")
    return amount


def parse_int(value, field_name):
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be an integer")
    try:
        return int(value)
    except (ValueError, TypeError):
        raise ValidationError(f"{field_name} must be an integer")
