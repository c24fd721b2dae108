import secrets

from flask import Request, current_app, g, jsonify, request, session

UNSAFE_METHODS = ("POST", "PUT", "PATCH", "DELETE")


def ensure_csrf_token() -> str:
    """Ensure a CSRF token exists in the session and return it."""
    token = session.get("csrf_token")
    if not token:
        token = secrets.token_urlsafe(32)
        session["csrf_token"] = token
    return token


def validate_csrf(req: Request) -> bool:
    """Validate CSRF token from the X-CSRF-Token header or the JSON body."""
    token = req.headers.get("X-CSRF-Token")
    if not token and req.is_json:
        body = req.get_json(silent=True)
        if isinstance(body, dict):
            token = body.get("csrf_token")

    expected = session.get("csrf_token")
    return bool(token and expected and secrets.compare_digest(str(token), str(expected)))


def csrf_protect():
    """
    before_request hook. Runs after the caller is loaded: anonymous writes are left
    to the 401 gate, and /auth/* is exempt because it hands the token out.
    """
    if request.path.startswith(("/health", "/healthz")):
        return None
    ensure_csrf_token()
    session.permanent = True
    if not current_app.config.get("CSRF_ENABLED") or request.method not in UNSAFE_METHODS:
        return None
    if (request.endpoint or "").startswith("auth.") or getattr(g, "caller", None) is None:
        return None
    if not validate_csrf(request):
        return jsonify({"error": "CSRF token missing or invalid."}), 400
    return None
