"""OAuth authorization and callback route handlers.

Browsers are redirected back to the dashboard settings page with a
``{platform}_connected`` or ``{platform}_error`` query flag. API clients ask
for JSON with ``format=json`` or a JSON Accept/Content-Type header.
"""

from typing import Any, Optional, Union
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse

from reviewsync.api.dependencies import get_oauth_manager, get_services, parse_platform
from reviewsync.bootstrap import Services
from reviewsync.integrations.errors import IntegrationError
from reviewsync.integrations.oauth.manager import OAuthManager, error_reason

router = APIRouter(tags=["oauth"])

SETTINGS_PATH = "/dashboard/settings"


def wants_json(request: Request, format: Optional[str]) -> bool:
    """Decide whether the caller is an API client rather than a browser."""
    if format and format.lower() == "json":
        return True
    for header in ("accept", "content-type"):
        if "application/json" in request.headers.get(header, ""):
            return True
    return False


def settings_redirect(site_url: str, params: dict[str, Any]) -> RedirectResponse:
    return RedirectResponse(url=f"{site_url}{SETTINGS_PATH}?{urlencode(params)}", status_code=302)


@router.get("/oauth/authorize/{platform}", response_model=None)
async def initiate_oauth(
    platform: str,
    request: Request,
    account_id: str = Query(..., min_length=1, description="Account to connect"),
    format: Optional[str] = Query(None, description="Set to 'json' to get the URL as JSON"),
    manager: OAuthManager = Depends(get_oauth_manager),
) -> Union[RedirectResponse, JSONResponse]:
    """Start an OAuth flow for a platform.

    Examples:
        >>> GET /oauth/authorize/meta?account_id=acct-1
        >>> # Redirects to:
        >>> https://www.facebook.com/v21.0/dialog/oauth?client_id=...&state=...
    """
    authorization_url = await manager.initiate_flow(parse_platform(platform), account_id)
    if wants_json(request, format):
        return JSONResponse({"authorizationUrl": authorization_url})
    return RedirectResponse(url=authorization_url, status_code=302)


@router.get("/oauth/callback/{platform}", response_model=None)
async def oauth_callback(
    platform: str,
    request: Request,
    code: Optional[str] = Query(None, description="OAuth authorization code"),
    state: Optional[str] = Query(None, description="OAuth state parameter"),
    error: Optional[str] = Query(None, description="Provider error, e.g. access_denied"),
    error_description: Optional[str] = Query(None),
    format: Optional[str] = Query(None, description="Set to 'json' for a JSON response"),
    services: Services = Depends(get_services),
) -> Union[RedirectResponse, JSONResponse]:
    """Complete an OAuth flow after the user authorizes (or declines).

    Examples:
        >>> GET /oauth/callback/meta?code=abc123&state=...
        >>> # Redirects to:
        >>> {site_url}/dashboard/settings?meta_connected=true
    """
    resolved = parse_platform(platform)
    json_mode = wants_json(request, format)

    try:
        result = await services.oauth_manager.complete_flow(
            resolved,
            code=code,
            state=state,
            error=error,
            error_description=error_description,
        )
    except IntegrationError as e:
        if json_mode:
            raise
        return settings_redirect(
            services.config.site_url, {f"{resolved.value}_error": error_reason(e)}
        )

    if json_mode:
        return JSONResponse(result.to_dict())
    return settings_redirect(services.config.site_url, {f"{resolved.value}_connected": "true"})
