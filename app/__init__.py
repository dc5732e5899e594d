import os
from flask import Flask
from dotenv import load_dotenv

load_dotenv()


def _config_name_from_env():
    name = os.environ.get("FLASK_ENV")
    if name:
        return name
    # Managed platforms set PORT; never fall into debug config there
    if os.environ.get("RAILWAY_ENVIRONMENT") or os.environ.get("PORT"):
        return "production"
    return "development"


def create_app(config_name=None):
    """Build the catalog engine app: JSON API under /api, CLI, /health."""
    flask_app = Flask(__name__)

    from app.config import config_map

    config_cls = config_map.get(config_name or _config_name_from_env(), config_map["development"])
    flask_app.config.from_object(config_cls)
    if hasattr(config_cls, "init_app"):
        config_cls.init_app(flask_app)

    from app.extensions import db, migrate, init_redis

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    init_redis(flask_app)

    # Alembic autogenerate needs every table registered
    from app import models  # noqa: F401
    from app.blueprints.api import api_bp
    from app.cli import register_cli

    flask_app.register_blueprint(api_bp, url_prefix="/api")
    register_cli(flask_app)
    _register_health(flask_app)

    return flask_app


def _register_health(flask_app):
    from app.extensions import db

    def probe_db():
        db.session.execute(db.text("SELECT 1"))
        return "ok"

    def probe_redis():
        from app.extensions import redis_client

        if not redis_client:
            return "not configured"
        redis_client.ping()
        return "ok"

    @flask_app.route("/health")
    def health():
        checks = {"status": "ok"}
        for name, probe in (("db", probe_db), ("redis", probe_redis)):
            try:
                checks[name] = probe()
            except Exception:
                # Detail stays in the log, the probe reports only "error"
                flask_app.logger.exception("Health check %s probe failed", name)
                checks[name] = "error"
                checks["status"] = "degraded"
        return checks, 200 if checks["status"] == "ok" else 503
