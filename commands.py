# commands.py
# Usage: flask init-db | flask make-admin <username> | flask seed
from decimal import Decimal
import logging

import click
from sqlalchemy.exc import IntegrityError

from extensions import db
from models import User, Product, UserRole
from commissions.referral_tree import ReferralTreeHelper


logger = logging.getLogger(__name__)

DEFAULT_ADMIN_PASSWORD = "admin123"  # only used if the admin is created here; change after creation
ADMIN_REFERRAL_CODE = "ADMIN123"

SAMPLE_PRODUCTS = [
    {
        "name": "Starter Course",
        "description": "Introductory video course on affiliate marketing.",
        "price": Decimal("49.99"),
        "image_url": "https://images.example.com/starter-course.png",
        "commission": Decimal("10"),
    },
    {
        "name": "Pro Toolkit",
        "description": "Templates and tracking tools for growing a referral network.",
        "price": Decimal("199.00"),
        "image_url": "https://images.example.com/pro-toolkit.png",
        "commission": Decimal("15"),
    },
    {
        "name": "Mentorship Session",
        "description": "One hour one-to-one coaching call.",
        "price": Decimal("120.00"),
        "image_url": "https://images.example.com/mentorship.png",
        "commission": Decimal("20"),
    },
]


def _create_user(username, full_name, password, role=UserRole.USER, referrer=None, referral_code=None):
    user = User(
        username=username,
        email=f"{username.lower()}@example.com",
        full_name=full_name,
        role=role.value,
        referral_code=referral_code or ReferralTreeHelper.generate_referral_code(),
        referred_by=referrer.id if referrer else None,
    )
    user.set_password(password)
    db.session.add(user)
    db.session.flush()
    return user


def make_admin(username, password=DEFAULT_ADMIN_PASSWORD):
    """Promote `username` to ADMIN, creating the account if it does not exist."""
    user = User.query.filter_by(username=username).first()

    if user:
        click.echo(f"Found user id={user.id}, username={user.username}. Promoting to admin...")
        user.role = UserRole.ADMIN.value
    else:
        click.echo(f"No user named {username} found, creating a new admin.")
        referral_code = ADMIN_REFERRAL_CODE
        if User.query.filter_by(referral_code=referral_code).first():
            referral_code = None
        user = _create_user(username, "Administrator", password, UserRole.ADMIN, referral_code=referral_code)

    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        raise click.ClickException(f"Could not create admin {username}: {e.orig}")

    logger.info(f"User {user.id} ({username}) is now ADMIN")
    return user


def seed_demo_data():
    """Admin, an A -> B -> C referral chain and a few products. Skips if users exist."""
    if User.query.first():
        click.echo("Database already has users; skipping seed.")
        return False

    make_admin("admin")

    alice = _create_user("alice", "Alice Affiliator", "password123", UserRole.AFFILIATOR)
    bob = _create_user("bob", "Bob Active", "password123", UserRole.ACTIVE_USER, referrer=alice)
    _create_user("carol", "Carol User", "password123", UserRole.USER, referrer=bob)

    for fields in SAMPLE_PRODUCTS:
        db.session.add(Product(rating=0, review_count=0, **fields))

    db.session.commit()
    click.echo(f"Seeded users alice -> bob -> carol (alice code {alice.referral_code}) and "
               f"{len(SAMPLE_PRODUCTS)} products.")
    return True


def register_commands(app):

    @app.cli.command("init-db")
    def init_db_command():
        """Create all tables."""
        db.create_all()
        click.echo("Database tables created.")

    @app.cli.command("make-admin")
    @click.argument("username")
    @click.option("--password", default=DEFAULT_ADMIN_PASSWORD, help="Password if the user is created.")
    def make_admin_command(username, password):
        """Create or promote an ADMIN user."""
        user = make_admin(username, password)
        click.echo(f"User (id={user.id}, username={user.username}) is now admin.")

    @app.cli.command("seed")
    def seed_command():
        """Load demo users and products."""
        db.create_all()
        seed_demo_data()
