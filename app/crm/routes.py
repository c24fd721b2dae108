from flask import Blueprint

bp = Blueprint("routes", __name__)

API_RESOURCES = ("auth", "companies", "contacts", "activities", "users")


@bp.get("/")
def index():
    return {"name": "crm", "ok": True, "resources": [f"/{r}" for r in API_RESOURCES]}


@bp.get("/health")
def health():
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """Liveness probe. No DB access."""
    return "ok", 200
