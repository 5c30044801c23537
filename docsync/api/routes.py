from uuid import UUID

from fastapi import APIRouter, Depends, Response, status

from docsync.api.dependencies import get_services, require_api_key
from docsync.api.errors import ApiError
from docsync.api.schemas import (
    AuthUrlResponse,
    ConnectionEnvelope,
    ConnectionList,
    ConnectionPublic,
    RootFolderUpdate,
)
from docsync.database.models import StorageProvider
from docsync.logging.logger import Log
from docsync.services import Services

router = APIRouter(
    prefix="/clients/{client_id}/storage",
    tags=["external-storage"],
    dependencies=[Depends(require_api_key)],
)


@router.get("/{provider}/auth-url", response_model=AuthUrlResponse)
async def get_auth_url(
    client_id: UUID,
    provider: StorageProvider,
    services: Services = Depends(get_services),
) -> AuthUrlResponse:
    """Consent URL for the vendor, carrying a signed state for this client."""
    return AuthUrlResponse(url=services.oauth.authorization_url(client_id, provider))


@router.get("", response_model=ConnectionList)
async def list_connections(
    client_id: UUID,
    services: Services = Depends(get_services),
) -> ConnectionList:
    records = await services.connection_repo.list_for_client(client_id)
    return ConnectionList(data=[ConnectionPublic.from_record(record) for record in records])


@router.patch("/{provider}", response_model=ConnectionEnvelope)
async def update_root_folder(
    client_id: UUID,
    provider: StorageProvider,
    body: RootFolderUpdate,
    services: Services = Depends(get_services),
) -> ConnectionEnvelope:
    record = await services.connection_repo.set_root_folder(
        client_id, provider, body.root_folder_id or None
    )
    if record is None:
        raise ApiError(404, "NOT_FOUND", "Connection not found")
    return ConnectionEnvelope(data=ConnectionPublic.from_record(record))


@router.delete("/{provider}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_connection(
    client_id: UUID,
    provider: StorageProvider,
    services: Services = Depends(get_services),
) -> Response:
    """Mark the connection revoked and clear its tokens. The row is kept."""
    if not await services.connection_repo.revoke(client_id, provider):
        raise ApiError(404, "NOT_FOUND", "Connection not found")
    Log.info("External storage disconnected", client_id=client_id, provider=provider)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
