import hmac

from fastapi import Depends, Header, Request

from docsync.api.errors import ApiError
from docsync.services import Services


def get_services(request: Request) -> Services:
    return request.app.state.services


async def require_api_key(
    services: Services = Depends(get_services),
    x_api_key: str | None = Header(default=None, alias="x-api-key"),
) -> None:
    """Gate client routes on the shared API key; open when none is configured."""
    expected = services.settings.api_key
    if not expected:
        return
    if not x_api_key or not hmac.compare_digest(x_api_key, expected):
        raise ApiError(401, "UNAUTHORIZED", "Invalid or missing API key")
