"""OAuth2 refresh-token grant used to obtain an IMAP access token."""

from __future__ import annotations

import httpx
import structlog

from .config import OAuth2Config
from .errors import AuthError

logger = structlog.get_logger()


def exchange_refresh_token(config: OAuth2Config) -> str:
    """Trade the configured refresh token for a short-lived access token.

    Raises :class:`AuthError` on transport failure, a non-2xx response,
    or a response body without ``access_token``.
    """
    assert config.token_url is not None, "token_url not configured"
    assert config.client_id is not None, "client_id not configured"
    assert config.client_secret is not None, "client_secret not configured"
    assert config.refresh_token is not None, "refresh_token not configured"

    form = {
        "grant_type": "refresh_token",
        "refresh_token": config.refresh_token.get_secret_value(),
        "client_id": config.client_id,
        "client_secret": config.client_secret.get_secret_value(),
    }

    try:
        with httpx.Client(timeout=httpx.Timeout(config.timeout_seconds)) as client:
            response = client.post(
                config.token_url,
                data=form,
                headers={"Accept": "application/json"},
            )
            response.raise_for_status()
            payload = response.json()
    except httpx.HTTPStatusError as exc:
        raise AuthError(
            f"token endpoint {config.token_url} returned {exc.response.status_code}"
        ) from exc
    except httpx.HTTPError as exc:
        raise AuthError(f"token request to {config.token_url} failed: {exc}") from exc
    except ValueError as exc:
        raise AuthError(f"token endpoint {config.token_url} returned invalid JSON") from exc

    token = payload.get("access_token") if isinstance(payload, dict) else None
    if not token:
        raise AuthError(f"token endpoint {config.token_url} returned no access_token")

    logger.info("oauth2_token_obtained", token_url=config.token_url)
    return str(token)
