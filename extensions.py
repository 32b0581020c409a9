#=======================================================================================================
# Extensions for the ReferEarn Flask Application
#=======================================================================================================
from flask_sqlalchemy import SQLAlchemy
from flask_login import LoginManager
from flask_migrate import Migrate
from flask_sock import Sock

from commissions.notifications import NotificationHub


db = SQLAlchemy()
login_manager = LoginManager()
migrate = Migrate()
sock = Sock()

# Per-process topic routing for live updates, keyed "user:<id>"
notification_hub = NotificationHub()


def init_extensions(app):
    """Initialize Flask extensions"""
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    login_manager.login_view = "auth.login"
    login_manager.login_message_category = "info"
    sock.init_app(app)

    return app
