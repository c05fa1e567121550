"""
Interactive Google OAuth consent for AlwaysPickup.

Operators run this once (``run.py --authorize``) to obtain a token set; the
result is handed to ``CalendarGateway.store_credentials`` for encryption.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from google_auth_oauthlib.flow import InstalledAppFlow
from loguru import logger

from alwayspickup.core.errors import ConfigurationError


def build_client_config(client_id: Optional[str], client_secret: Optional[str]) -> Dict[str, Any]:
    """Client config in the shape of a downloaded ``client_secret.json``."""
    if not client_id or not client_secret:
        raise ConfigurationError("GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET must be set to authorize")

    return {
        "installed": {
            "client_id": client_id,
            "client_secret": client_secret,
            "auth_uri": "https://accounts.google.com/o/oauth2/auth",
            "token_uri": "https://oauth2.googleapis.com/token",
            "redirect_uris": ["http://localhost"],
        }
    }


def authorize_interactive(
    scopes: List[str],
    client_id: Optional[str] = None,
    client_secret: Optional[str] = None,
    client_secrets_file: Optional[Path] = None,
    port: int = 0,
) -> Dict[str, Any]:
    """
    Run the browser consent flow and return the token set.

    Args:
        scopes: OAuth scopes to request
        client_id: OAuth client id (ignored when a secrets file is given)
        client_secret: OAuth client secret
        client_secrets_file: Downloaded client_secret.json
        port: Local redirect port (0 picks a free one)

    Returns:
        Token set as a plain dict (token, refresh_token, expiry, ...)
    """
    if client_secrets_file:
        flow = InstalledAppFlow.from_client_secrets_file(str(client_secrets_file), scopes)
    else:
        flow = InstalledAppFlow.from_client_config(build_client_config(client_id, client_secret), scopes)

    # Offline access so Google issues a refresh token
    credentials = flow.run_local_server(port=port, access_type="offline", prompt="consent")
    logger.info("Google Calendar authorization completed")
    return json.loads(credentials.to_json())
