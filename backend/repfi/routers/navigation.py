# backend/repfi/routers/navigation.py
"""Browser navigation helpers."""

from fastapi import APIRouter, Request
from starlette.responses import RedirectResponse

from repfi.utils.navigation import handle_retour

router = APIRouter(tags=["Navigation"])


@router.get("/retour", include_in_schema=False)
def retour(request: Request) -> RedirectResponse:
    """Go back to the previous page, or to the home page."""
    return handle_retour(request)
