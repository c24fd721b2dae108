import logging
from datetime import timedelta

from flask import Flask, g, jsonify, request
from dotenv import load_dotenv
from werkzeug.exceptions import HTTPException

from app.crm.config import load_config
from app.crm.db import init_db
from app.crm.errors import CRMError
from app.crm.routes import bp as routes_bp
from app.crm.auth import bp as auth_bp, load_current_user
from app.crm.security import csrf_protect
from app.crm.modules.companies.routes import bp as companies_bp
from app.crm.modules.contacts.routes import bp as contacts_bp
from app.crm.modules.activities.routes import bp as activities_bp
from app.crm.modules.users.routes import bp as users_bp


def _check_production_config(app: Flask) -> None:
    """Fail fast with clear logs instead of serving prod from sqlite or a default key."""
    env = (app.config.get("ENV") or "").strip().lower()
    if env not in ("prod", "production"):
        return
    db_url = str(app.config.get("DATABASE_URL") or "").strip()
    if not db_url:
        raise RuntimeError("DATABASE_URL is required in production.")
    if db_url.startswith("sqlite"):
        raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
    if str(app.config.get("SECRET_KEY") or "") in ("", "change-me"):
        raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=app.config["SESSION_LIFETIME_HOURS"])
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True
    app.json.sort_keys = False

    app.logger.setLevel(app.config["LOG_LEVEL"])
    logging.getLogger("app.crm").setLevel(app.config["LOG_LEVEL"])

    _check_production_config(app)
    init_db(app)

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(companies_bp, url_prefix="/companies")
    app.register_blueprint(contacts_bp, url_prefix="/contacts")
    app.register_blueprint(activities_bp, url_prefix="/activities")
    app.register_blueprint(users_bp, url_prefix="/users")

    # Identity first so anonymous writes fail as 401, not as a CSRF error.
    app.before_request(load_current_user)
    app.before_request(csrf_protect)

    @app.after_request
    def _request_id_header(response):
        rid = getattr(g, "request_id", None)
        if rid:
            response.headers["X-Request-ID"] = rid
        return response

    @app.errorhandler(CRMError)
    def _err_domain(e: CRMError):
        if e.status_code == 403:
            app.logger.warning(
                "Forbidden: %s missing_permission=%s request_id=%s",
                request.path,
                getattr(g, "missing_permission", None),
                getattr(g, "request_id", None),
            )
        return jsonify({"error": e.message}), e.status_code

    @app.errorhandler(HTTPException)
    def _err_http(e: HTTPException):
        return jsonify({"error": e.description or e.name}), e.code

    @app.errorhandler(Exception)
    def _err_500(e: Exception):
        s = getattr(g, "db_session", None)
        if s is not None:
            s.rollback()
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return jsonify({"error": "Internal server error"}), 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
