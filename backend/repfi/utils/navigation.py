# backend/repfi/utils/navigation.py
"""
"Retour" (go back) navigation.

The browser's history is not visible to the server; the Referer header is
the step back. Only same-origin referers are followed so the endpoint
cannot be used as an open redirect.
"""

from urllib.parse import urlsplit

from starlette.requests import Request
from starlette.responses import RedirectResponse

HOME_PATH = "/"


def handle_retour(request: Request | None) -> RedirectResponse | None:
    """
    Redirect one step back, or to the home page when there is no history.

    Returns None when called outside a request.
    """
    if request is None:
        return None

    return RedirectResponse(url=_previous_location(request), status_code=303)


def _previous_location(request: Request) -> str:
    referer = request.headers.get("referer")
    if not referer:
        return HOME_PATH

    parts = urlsplit(referer)
    if parts.netloc and parts.netloc != request.url.netloc:
        return HOME_PATH

    path = parts.path or HOME_PATH
    # Referer pointing at this endpoint would loop
    if path == request.url.path:
        return HOME_PATH

    return f"{path}?{parts.query}" if parts.query else path
