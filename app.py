import os
from datetime import datetime, timezone

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from config import Config
from extensions import db, login_manager, init_extensions
from logger import configure_app_logging
from models import User
from commissions.errors import CommissionException


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)
    os.makedirs(app.instance_path, exist_ok=True)

    if not app.debug and not app.testing:
        app.config.update(
            SESSION_COOKIE_SECURE=True,
            SESSION_COOKIE_HTTPONLY=True,
            REMEMBER_COOKIE_SECURE=True,
            REMEMBER_COOKIE_HTTPONLY=True,
        )

    # ------------------------------------------------------------------------------------------
    # LOGGING
    # ------------------------------------------------------------------------------------------
    configure_app_logging(app)

    # --------------------------------------------------------------------------------------------------------------------------
    # Initialize extensions
    # ----------------------------------------------------------------------------------------------------------------------------
    init_extensions(app)

    # ------------------------------------------------------------------------------------------------------------------------
    # Register blueprints
    # -----------------------------------------------------------------------------------------------------------------------
    def register_blueprints(app):
        from blueprints.auth import bp as auth_bp
        from blueprints.users import bp as users_bp
        from blueprints.products import bp as products_bp
        from blueprints.orders import bp as orders_bp
        from blueprints.ledger import bp as ledger_bp
        from blueprints.admin import admin_bp as admin_bp
        from blueprints.realtime import bp as realtime_bp

        app.register_blueprint(auth_bp)
        app.register_blueprint(users_bp)
        app.register_blueprint(products_bp)
        app.register_blueprint(orders_bp)
        app.register_blueprint(ledger_bp)
        app.register_blueprint(admin_bp)
        app.register_blueprint(realtime_bp)

    register_blueprints(app)

    from commands import register_commands
    register_commands(app)

    # ------------------------------------------------------------------------------------------------------------------------
    # Flask-Login
    # ------------------------------------------------------------------------------------------------------------------------
    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "Unauthorized"}), 401

    # ----------------------
    # Error handlers
    # ----------------------
    @app.errorhandler(CommissionException)
    def handle_commission_error(error):
        if error.status_code >= 500:
            app.logger.error(f"{type(error).__name__}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({"error": error.description}), error.code

    # ----------------------
    # Basic routes
    # ----------------------
    @app.route("/healthz")
    def healthz():
        return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}, 200

    return app


# ----------------------
# Create app instance
# ----------------------
app = create_app()

# ----------------------
# Local development
# ----------------------
if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    debug_mode = app.config.get("DEBUG", False)
    app.run(debug=debug_mode, host="0.0.0.0", port=port)
