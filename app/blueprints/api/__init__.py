from flask import Blueprint

api_bp = Blueprint("api", __name__)

from app.blueprints.api import views, errors  # noqa: F401, E402
