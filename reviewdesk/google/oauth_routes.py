# reviewdesk/google/oauth_routes.py
import logging

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import RedirectResponse

from reviewdesk.errors import AuthorizationError, ValidationError
from reviewdesk.ratelimit import get_current_user_id

from .oauth import GoogleOAuthClient
from .oauth_state import OAuthStateStore
from .token_manager import TokenManager

log = logging.getLogger(__name__)

router = APIRouter(
    prefix="/google/oauth",
    tags=["Google OAuth"],
)


def get_oauth_client(request: Request) -> GoogleOAuthClient:
    return request.app.state.oauth_client


def get_oauth_states(request: Request) -> OAuthStateStore:
    return request.app.state.oauth_states


def get_token_manager(request: Request) -> TokenManager:
    return request.app.state.token_manager


@router.get("/start")
def start_auth(
    user_id: str = Depends(get_current_user_id),
    oauth: GoogleOAuthClient = Depends(get_oauth_client),
    states: OAuthStateStore = Depends(get_oauth_states),
):
    return RedirectResponse(oauth.authorization_url(state=states.issue(user_id)))


@router.get("/callback")
async def callback(
    code: str = "",
    state: str = "",
    x_user_id: str = Header(default=""),
    oauth: GoogleOAuthClient = Depends(get_oauth_client),
    states: OAuthStateStore = Depends(get_oauth_states),
    tokens: TokenManager = Depends(get_token_manager),
):
    if not code or not state:
        raise ValidationError("OAuth callback needs both code and state")

    # state is consumed before the exchange; a failed exchange needs a fresh /start
    user_id = states.consume(state)
    caller = x_user_id.strip()
    if caller and caller != user_id:
        raise AuthorizationError("OAuth state was issued to a different user")

    grant = await oauth.exchange_code(code)
    await tokens.store_grant(user_id, grant)
    return {"ok": True, "user_id": user_id}


@router.delete("/token")
async def revoke(
    user_id: str = Depends(get_current_user_id),
    tokens: TokenManager = Depends(get_token_manager),
):
    deleted = await tokens.revoke(user_id)
    log.info("Revoked Google credential for user %s (existed: %s)", user_id, deleted)
    return {"ok": True, "deleted": deleted}
