# backend/weaklink/__init__.py

from flask import Flask, jsonify
from flask_cors import CORS
from flask_sqlalchemy import SQLAlchemy
from flask_jwt_extended import JWTManager

from config import Config

db = SQLAlchemy()
jwt = JWTManager()


def create_app(config_class=Config, notifier=None):
    app = Flask(__name__)
    app.config.from_object(config_class)
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Init extensions
    db.init_app(app)
    jwt.init_app(app)

    # CORS: allow the RN app (and others) to call /api/*
    CORS(app, resources={r"/api/*": {"origins": "*"}})

    from .notifications import LoggingNotifier

    app.extensions["weaklink.notifier"] = notifier or LoggingNotifier()

    # -----------------------------
    # JWT error handlers
    # -----------------------------
    @jwt.unauthorized_loader
    def unauthorized_callback(reason):
        return (
            jsonify(
                {
                    "message": "Missing or invalid auth token",
                    "error": reason,
                }
            ),
            401,
        )

    @jwt.invalid_token_loader
    def invalid_token_callback(reason):
        return (
            jsonify(
                {
                    "message": "Invalid auth token",
                    "error": reason,
                }
            ),
            422,
        )

    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return jsonify({"message": "Token has expired"}), 401

    # -----------------------------
    # IMPORT BLUEPRINTS (all routes)
    # -----------------------------
    from .routes.event_routes import events_bp
    from .routes.group_routes import groups_bp
    from .routes.leaderboard_routes import leaderboard_bp

    # -----------------------------
    # REGISTER BLUEPRINTS
    # -----------------------------
    app.register_blueprint(events_bp, url_prefix="/api/events")
    app.register_blueprint(groups_bp, url_prefix="/api/groups")
    app.register_blueprint(leaderboard_bp, url_prefix="/api/groups")

    @app.route("/api/health")
    def health():
        return {"status": "ok"}

    # -----------------------------
    # DB init
    # -----------------------------
    from .models import user, group, event, stats  # noqa: F401  (register tables)

    with app.app_context():
        db.create_all()

    return app
