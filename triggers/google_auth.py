"""
GTD Consolidator — Google OAuth2
One credential set covers Gmail (read), Docs and Drive.

Prerequisites:
    1. Enable the Gmail, Google Docs and Google Drive APIs at console.cloud.google.com
    2. Create an OAuth 2.0 Client ID (Desktop app)
    3. Download credentials → save as config/google_credentials.json
    4. First run (python cli.py init) opens a browser for consent
"""
import logging
import os
from pathlib import Path

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build

from config.settings import config

logger = logging.getLogger("consolidator.google_auth")

# Are we on a headless server (Render, Docker, etc.)?
_HEADLESS = os.path.exists("/etc/secrets") or os.environ.get("RENDER")


def authenticate(google_config=None) -> Credentials:
    """
    Authenticate with Google APIs using OAuth2.
    - If token exists and is valid, use it.
    - If token is expired, refresh it and save to the writable dir.
    - On headless servers: never attempt the browser flow; fail loudly.
    """
    google_config = google_config or config.google
    creds_path = Path(google_config.credentials_path)
    token_path = Path(google_config.token_path)
    writable_dir = Path(google_config.writable_state_dir)
    writable_token_path = writable_dir / token_path.name
    scopes = google_config.scopes

    creds = None

    # Try writable copy first (refreshed token), then original
    for tp in [writable_token_path, token_path]:
        if tp.exists():
            try:
                creds = Credentials.from_authorized_user_file(str(tp), scopes)
                logger.info(f"Loaded Google token from {tp}")
                break
            except ValueError as e:
                logger.warning(f"Could not load token from {tp}: {e}")

    if creds and creds.valid:
        return creds

    if creds and creds.expired and creds.refresh_token:
        logger.info("Refreshing expired Google OAuth token...")
        creds.refresh(Request())
        writable_dir.mkdir(parents=True, exist_ok=True)
        with open(writable_token_path, "w") as f:
            f.write(creds.to_json())
        logger.info(f"Token refreshed → saved to {writable_token_path}")
        return creds

    if _HEADLESS:
        raise RuntimeError(
            "Google token invalid and the OAuth browser flow cannot run on a headless host. "
            "Run `python cli.py init` locally and upload the generated token file."
        )

    if not creds_path.exists():
        raise RuntimeError(
            f"Google credentials file not found: {creds_path}. "
            "Create an OAuth 2.0 Client ID (Desktop app) and save its JSON there."
        )

    logger.info("Starting OAuth2 consent flow (will open browser)...")
    flow = InstalledAppFlow.from_client_secrets_file(str(creds_path), scopes)
    creds = flow.run_local_server(port=0)
    token_path.parent.mkdir(parents=True, exist_ok=True)
    with open(token_path, "w") as f:
        f.write(creds.to_json())
    logger.info(f"Token saved to {token_path}")
    return creds


def build_service(name: str, version: str, creds=None):
    """Build a googleapiclient service, authenticating if no creds given."""
    creds = creds or authenticate()
    return build(name, version, credentials=creds, cache_discovery=False)
