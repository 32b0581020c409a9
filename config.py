# ==========================================================================================================
# -------------- Configuration file for the ReferEarn Flask application ------------------------------------
# ==========================================================================================================
import os
from decimal import Decimal
from dotenv import load_dotenv


if os.environ.get("FLASK_ENV") != "production":
    load_dotenv()

basedir = os.path.abspath(os.path.dirname(__file__))


def _database_url():
    url = os.getenv("DATABASE_URL")
    if not url:
        url = f"sqlite:///{os.path.join(basedir, 'instance', 'referearn.db')}"

    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+pg8000://", 1)
    elif url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+pg8000://", 1)
    return url


class Config:

    FLASK_ENV = os.getenv("FLASK_ENV", "production")
    DEBUG = os.getenv("DEBUG", "False").lower() in ("true", "1", "t")

    SECRET_KEY = os.getenv("SECRET_KEY")
    if not SECRET_KEY:
        if FLASK_ENV == "production":
            raise ValueError("SECRET_KEY must be set in production")
        SECRET_KEY = "dev_key_change_me"

    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {} if SQLALCHEMY_DATABASE_URI.startswith("sqlite") else {
        "pool_size": 10,
        "max_overflow": 20,
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    # Commission engine
    ACTIVATION_FEES = {
        "ACTIVE_USER": Decimal(os.getenv("ACTIVATION_FEE_ACTIVE_USER", "100.00")),
        "AFFILIATOR": Decimal(os.getenv("ACTIVATION_FEE_AFFILIATOR", "250.00")),
    }
    REFERRAL_COMMISSION_RATES = (Decimal("0.20"), Decimal("0.10"), Decimal("0.05"))
    CURRENCY_QUANTUM = Decimal("0.01")
    MIN_WITHDRAWAL = Decimal(os.getenv("MIN_WITHDRAWAL", "10.00"))

    # Logging
    LOG_DIR = os.getenv("LOG_DIR", "logs")
    LOG_TO_FILE = os.getenv("LOG_TO_FILE", "True").lower() in ("true", "1", "t")

    APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:5000")


class DevelopmentConfig(Config):
    DEBUG = True


class TestConfig(Config):
    TESTING = True
    DEBUG = False
    SECRET_KEY = "test-secret-key"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    LOG_TO_FILE = False
