# utils/auth.py
from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urljoin

import requests

from models import AccessToken
from utils.api import DEFAULT_API_URL, DEFAULT_TIMEOUT, USER_AGENT

TOKEN_PATH = "/oauth/token"

log = logging.getLogger(__name__)


class AuthError(RuntimeError):
    """The OAuth2 password grant did not yield a usable access token."""


def fetch_token(
    username: str,
    password: str,
    client_id: str,
    client_secret: str,
    *,
    base_url: Optional[str] = None,
    session: Optional[requests.Session] = None,
) -> AccessToken:
    """
    OAuth2 resource-owner password grant against <base_url>/oauth/token.

    Client credentials go in the form body alongside the user's. Raises AuthError on any
    transport failure, non-2xx response, or a body without an access_token.
    """
    url = urljoin((base_url or DEFAULT_API_URL).rstrip("/") + "/", TOKEN_PATH.lstrip("/"))
    http = session or requests.Session()
    data = {
        "grant_type": "password",
        "username": username,
        "password": password,
        "client_id": client_id,
        "client_secret": client_secret,
    }

    try:
        r = http.post(url, data=data, headers={"User-Agent": USER_AGENT}, timeout=DEFAULT_TIMEOUT)
        r.raise_for_status()
        payload = r.json()
    except requests.RequestException as e:
        raise AuthError(f"token request failed: {e}") from e
    except ValueError as e:
        raise AuthError("token response was not JSON") from e

    if not isinstance(payload, dict) or not payload.get("access_token"):
        raise AuthError("token response did not include an access_token")

    log.info("authenticated", extra={"token_type": payload.get("token_type")})
    return AccessToken.from_response(payload)
