from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse

from docsync.api.dependencies import get_services
from docsync.database.models import StorageProvider
from docsync.services import Services

# Vendors redirect the end user's browser here, so no API key is required.
router = APIRouter(prefix="/storage", tags=["external-storage"])


@router.get("/callback/{provider}")
async def oauth_callback(
    provider: StorageProvider,
    code: str = Query(..., min_length=1),
    state: str = Query(..., min_length=1),
    services: Services = Depends(get_services),
) -> RedirectResponse:
    """Complete the authorization-code flow and send the user back to the app."""
    connection = await services.oauth.complete(provider, code, state)
    query = urlencode({"external_storage_connected": provider.value})
    frontend_url = services.settings.frontend_url.rstrip("/")
    return RedirectResponse(
        url=f"{frontend_url}/clients/{connection.client_id}/settings?{query}",
        status_code=302,
    )
