# models.py - Flask-SQLAlchemy models for the commission platform
from datetime import datetime, timezone
from enum import Enum
from sqlalchemy import Index, CheckConstraint, Numeric, event
from werkzeug.security import check_password_hash, generate_password_hash
from flask_login import UserMixin

from extensions import db
from commissions.errors import LedgerImmutableError

# ===========================================================
# ENUM DEFINITIONS
# ===========================================================

class UserRole(Enum):
    USER = "USER"
    ACTIVE_USER = "ACTIVE_USER"
    AFFILIATOR = "AFFILIATOR"
    ADMIN = "ADMIN"

    @classmethod
    def parse(cls, value):
        """Return the member named by `value`, or None if it is not a role."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            return None


# Earning tiers in upgrade order; ADMIN sits outside this ladder
ROLE_TIERS = {
    UserRole.USER: 0,
    UserRole.ACTIVE_USER: 1,
    UserRole.AFFILIATOR: 2,
}


class TransactionType(Enum):
    ACTIVATION_FEE = "ACTIVATION_FEE"
    REFERRAL_COMMISSION = "REFERRAL_COMMISSION"
    PRODUCT_COMMISSION = "PRODUCT_COMMISSION"
    WITHDRAWAL = "WITHDRAWAL"
    ROLE_ACTIVATION_COMMISSION = "ROLE_ACTIVATION_COMMISSION"
    ADMIN_COMMISSION = "ADMIN_COMMISSION"
    PRODUCT_PURCHASE = "PRODUCT_PURCHASE"
    OTHER = "OTHER"


class OrderStatus(Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


REFERRAL_CODE_LENGTH = 20


def _utcnow():
    return datetime.now(timezone.utc)


def _money(value):
    return float(value) if value is not None else 0.0


# ===========================================================
# USER MODEL
# ===========================================================

class User(db.Model, UserMixin):
    """Identity plus MLM state. `referred_by` is a parent pointer, never ownership."""
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    full_name = db.Column(db.String(150), nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), nullable=False, default=UserRole.USER.value, index=True)

    referral_code = db.Column(db.String(REFERRAL_CODE_LENGTH), unique=True, nullable=False)  # User's own referral code
    referred_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True, index=True)  # Direct upline

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        CheckConstraint('referred_by IS NULL OR referred_by <> id', name='chk_no_self_referral'),
    )

    @property
    def role_enum(self) -> UserRole:
        return UserRole(self.role)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def to_dict(self, base_url=None):
        result = {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "fullName": self.full_name,
            "role": self.role,
            "referralCode": self.referral_code,
            "referredBy": self.referred_by,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
        if base_url:
            result["referralLink"] = f"{base_url.rstrip('/')}/auth?ref={self.referral_code}"
        return result

    def __repr__(self):
        return f'<User {self.id} {self.username} {self.role}>'


# ===========================================================
# PRODUCTS & ORDERS
# ===========================================================

class Product(db.Model):
    __tablename__ = 'products'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False)
    price = db.Column(Numeric(18, 2), nullable=False)
    image_url = db.Column(db.String(500), nullable=False)
    commission = db.Column(Numeric(5, 2), nullable=False, default=0)  # percent, 0-100
    rating = db.Column(db.Float, default=0)
    review_count = db.Column(db.Integer, default=0)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        CheckConstraint('price > 0', name='chk_product_price_positive'),
        CheckConstraint('commission >= 0 AND commission <= 100', name='chk_product_commission_range'),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": _money(self.price),
            "imageUrl": self.image_url,
            "commission": _money(self.commission),
            "rating": self.rating or 0,
            "reviewCount": self.review_count or 0,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


class Order(db.Model):
    """A purchase. `amount` is captured from the product price at creation."""
    __tablename__ = 'orders'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey('products.id'), nullable=False, index=True)
    referral_code = db.Column(db.String(REFERRAL_CODE_LENGTH), nullable=True)
    amount = db.Column(Numeric(18, 2), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=OrderStatus.COMPLETED.value)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    buyer = db.relationship('User')
    product = db.relationship('Product')

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "productId": self.product_id,
            "referralCode": self.referral_code,
            "amount": _money(self.amount),
            "status": self.status,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


# ===========================================================
# LEDGER
# ===========================================================

class Transaction(db.Model):
    """Append-only ledger entry. Negative amounts are debits, positive are credits."""
    __tablename__ = 'transactions'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    type = db.Column(db.String(50), nullable=False, index=True)
    amount = db.Column(Numeric(18, 2), nullable=False)
    description = db.Column(db.String(500), nullable=False)
    related_user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True, index=True)
    related_order_id = db.Column(db.Integer, db.ForeignKey('orders.id'), nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    user = db.relationship('User', foreign_keys=[user_id])
    related_user = db.relationship('User', foreign_keys=[related_user_id])
    related_order = db.relationship('Order')

    __table_args__ = (
        Index('idx_transaction_user_created', 'user_id', 'created_at'),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "type": self.type,
            "amount": _money(self.amount),
            "description": self.description,
            "relatedUserId": self.related_user_id,
            "relatedOrderId": self.related_order_id,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f'<Transaction {self.id} {self.type} {self.amount} user={self.user_id}>'


# ===========================================================
# LEDGER IMMUTABILITY LISTENERS
# ===========================================================

def _reject_update(mapper, connection, target):
    raise LedgerImmutableError(
        f"Transaction {target.id} is immutable; post an offsetting entry instead"
    )


def _reject_delete(mapper, connection, target):
    raise LedgerImmutableError(f"Transaction {target.id} cannot be deleted")


event.listen(Transaction, 'before_update', _reject_update)
event.listen(Transaction, 'before_delete', _reject_delete)
