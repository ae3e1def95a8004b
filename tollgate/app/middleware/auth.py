import hmac

from fastapi import HTTPException, Request

from tollgate.app.core.config import Settings, settings as default_settings


def get_bearer_token(request: Request) -> str | None:
    """Extract Bearer token from Authorization header.

    Args:
        request: The incoming request

    Returns:
        The token string if present, None otherwise
    """
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        return None
    return auth.replace("Bearer ", "", 1).strip()


def _app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or default_settings


def require_admin(request: Request) -> str:
    """Validate admin token for protected endpoints.

    An empty ADMIN_TOKEN disables the admin API: every call is rejected.

    Args:
        request: The incoming request

    Returns:
        Admin identifier if valid

    Raises:
        HTTPException: 401 if admin token is missing or invalid
    """
    expected_token = _app_settings(request).admin_token.strip()
    token = get_bearer_token(request) or ""

    # Always compare so a missing token takes as long as a wrong one
    valid = hmac.compare_digest(token.encode(), expected_token.encode())
    if not expected_token or not valid:
        raise HTTPException(status_code=401, detail="Invalid or missing admin token")

    return "admin"
