# reviewdesk/google/__init__.py
from reviewdesk.config import GOOGLE_OAUTH_SCOPES, settings

from .business import BusinessClient, GoogleBusinessClient
from .mock import MockBusinessClient
from .oauth import GoogleOAuthClient


def build_business_client() -> BusinessClient:
    """
    Pick the Business Profile implementation once, at startup.
    """
    if settings.USE_MOCK_DATA:
        return MockBusinessClient()
    return GoogleBusinessClient(timeout=settings.GOOGLE_HTTP_TIMEOUT_SECONDS)


def build_oauth_client() -> GoogleOAuthClient:
    return GoogleOAuthClient(
        client_id=settings.GOOGLE_CLIENT_ID,
        client_secret=settings.GOOGLE_CLIENT_SECRET,
        redirect_uri=settings.GOOGLE_REDIRECT_URI,
        scopes=GOOGLE_OAUTH_SCOPES,
        timeout=settings.GOOGLE_HTTP_TIMEOUT_SECONDS,
    )
