"""Google OAuth credential management for the tasks fetcher.

Tokens live in ``<secrets_dir>/token.json`` (directory 0700, file 0600) in
the same shape Google's token endpoint returns, plus an ``expiry_date`` in
epoch milliseconds. ``OAuthService.bootstrap()`` runs the one-time consent
flow with a temporary callback server; the running service only ever
refreshes the access token.
"""

from __future__ import annotations

import asyncio
import html
import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlencode, urlparse

import httpx
from aiohttp import web

from kiosk_lite.cache.exceptions import UpstreamUnavailable
from kiosk_lite.core.http_client import get_shared_client

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"

TOKEN_FILENAME = "token.json"
BOOTSTRAP_TIMEOUT_SECONDS = 5 * 60
DEFAULT_EXPIRES_IN_SECONDS = 3600


class OAuthError(UpstreamUnavailable):
    """Tokens are missing, or Google refused to issue or refresh them."""


def _now_ms() -> int:
    return int(time.time() * 1000)


def _safe_error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        description = payload.get("error_description") or payload.get("error")
        if isinstance(description, str) and description.strip():
            return " ".join(description.split())[:200]

    text = response.text.strip()
    return " ".join(text.split())[:200] if text else "request failed without an error payload"


class TokenStore:
    """Reads and writes the OAuth token file with owner-only permissions."""

    def __init__(self, secrets_dir: str | Path) -> None:
        self.secrets_dir = Path(secrets_dir)
        self.token_path = self.secrets_dir / TOKEN_FILENAME

    def ensure_secrets_dir(self) -> None:
        self.secrets_dir.mkdir(parents=True, exist_ok=True)
        os.chmod(self.secrets_dir, 0o700)

    def load(self) -> Optional[dict[str, Any]]:
        """Return the stored tokens, or None if there are none yet."""
        try:
            with self.token_path.open("r", encoding="utf-8") as f:
                tokens = json.load(f)
        except FileNotFoundError:
            logger.debug("No existing tokens at %s", self.token_path)
            return None
        except (OSError, ValueError) as e:
            logger.warning("Could not read tokens from %s: %s", self.token_path, e)
            return None

        if not isinstance(tokens, dict):
            logger.warning("Ignoring malformed token file %s", self.token_path)
            return None
        return tokens

    def save(self, tokens: dict[str, Any]) -> None:
        """Atomically replace the token file."""
        self.ensure_secrets_dir()
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", dir=str(self.secrets_dir), delete=False
        ) as tf:
            json.dump(tokens, tf)
            tf.flush()
            os.fsync(tf.fileno())
            tmp_name = tf.name
        os.chmod(tmp_name, 0o600)
        Path(tmp_name).replace(self.token_path)
        logger.debug("Saved OAuth tokens to %s", self.token_path)


class OAuthService:
    """Issues access tokens for the Google Tasks API."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        scopes: list[str],
        token_store: TokenStore,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.scopes = scopes
        self.token_store = token_store
        self._client = client
        self._refresh_lock = asyncio.Lock()

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        return await get_shared_client("google")

    def get_auth_url(self, state: Optional[str] = None) -> str:
        """Consent URL requesting offline access so a refresh token is issued."""
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "access_type": "offline",
            "prompt": "consent",
        }
        if state:
            params["state"] = state
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    async def _token_request(self, data: dict[str, str]) -> dict[str, Any]:
        client = await self._get_client()
        try:
            response = await client.post(
                GOOGLE_TOKEN_URL, data=data, headers={"Accept": "application/json"}
            )
        except httpx.HTTPError as e:
            raise OAuthError(f"Token request failed: {e}") from e

        if not response.is_success:
            raise OAuthError(
                f"Token endpoint returned {response.status_code}: {_safe_error_message(response)}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise OAuthError("Token endpoint returned invalid JSON") from e

        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise OAuthError("Token response is missing access_token")

        expires_in = payload.get("expires_in")
        if not isinstance(expires_in, (int, float)) or isinstance(expires_in, bool) or expires_in <= 0:
            expires_in = DEFAULT_EXPIRES_IN_SECONDS
        payload["expiry_date"] = _now_ms() + int(expires_in) * 1000
        return payload

    async def exchange_code(self, code: str) -> dict[str, Any]:
        """Trade an authorization code for tokens and persist them."""
        tokens = await self._token_request(
            {
                "code": code,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": self.redirect_uri,
                "grant_type": "authorization_code",
            }
        )
        self.token_store.save(tokens)
        return tokens

    async def refresh_tokens(self, tokens: dict[str, Any]) -> dict[str, Any]:
        """Refresh the access token and persist the result.

        Google omits refresh_token from refresh responses, so the existing one
        is carried over.
        """
        refresh_token = tokens.get("refresh_token")
        if not refresh_token:
            raise OAuthError("Stored tokens have no refresh_token; re-run the OAuth bootstrap")

        refreshed = await self._token_request(
            {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            }
        )
        refreshed.setdefault("refresh_token", refresh_token)
        self.token_store.save(refreshed)
        return refreshed

    async def get_access_token(self) -> str:
        """Return a usable access token, refreshing it first when expired.

        Raises:
            OAuthError: when no tokens are stored or the refresh fails
        """
        async with self._refresh_lock:
            tokens = self.token_store.load()
            if not tokens:
                raise OAuthError("No tokens found. Run `kiosk-lite --oauth-bootstrap` first.")

            expiry = tokens.get("expiry_date")
            if isinstance(expiry, (int, float)) and expiry < _now_ms():
                logger.info("Access token expired, refreshing...")
                try:
                    tokens = await self.refresh_tokens(tokens)
                except OAuthError as e:
                    raise OAuthError(
                        f"Failed to refresh access token ({e}); re-run the OAuth bootstrap",
                        status_code=e.status_code,
                    ) from e

            access_token = tokens.get("access_token")
            if not access_token:
                raise OAuthError("Stored tokens have no access_token; re-run the OAuth bootstrap")
            return str(access_token)

    def build_callback_app(self, path: str, done: "asyncio.Future[dict[str, Any]]") -> web.Application:
        """aiohttp app serving the OAuth redirect at ``path``.

        The first callback settles ``done`` with the saved tokens or an
        OAuthError; later callbacks only get an "already handled" page.
        """

        def _page(title: str, body: str) -> web.Response:
            return web.Response(
                text=f"<html><body><h1>{html.escape(title)}</h1><p>{html.escape(body)}</p></body></html>",
                content_type="text/html",
            )

        def _already_handled() -> web.Response:
            return _page("Already handled", "You can close this window.")

        async def _callback(request: web.Request) -> web.Response:
            if done.done():
                return _already_handled()

            error = request.query.get("error")
            if error:
                done.set_exception(OAuthError(f"OAuth error: {error}"))
                return _page("Authorization Error", f"Error: {error}. Please try again.")

            code = request.query.get("code")
            if not code:
                done.set_exception(OAuthError("No authorization code received"))
                return _page("No Authorization Code", "Please try again.")

            logger.info("Authorization code received, exchanging for tokens...")
            try:
                tokens = await self.exchange_code(code)
            except OAuthError as e:
                if done.done():
                    return _already_handled()
                done.set_exception(e)
                return _page("Token Exchange Error", f"Error: {e}. Please try again.")

            # Another callback may have settled the flow while the exchange ran
            if done.done():
                return _already_handled()
            done.set_result(tokens)
            return _page(
                "Authorization Successful",
                "Tokens have been saved. You can close this window and start the server.",
            )

        app = web.Application()
        app.router.add_get(path, _callback)
        return app

    async def bootstrap(self, timeout_seconds: float = BOOTSTRAP_TIMEOUT_SECONDS) -> dict[str, Any]:
        """Run the interactive consent flow.

        Serves the redirect URI's path on its host and port until Google
        redirects back with a code (or an error), exchanges the code and saves
        the tokens.

        Raises:
            OAuthError: on an error callback, a missing code, a failed exchange
                or when no callback arrives within ``timeout_seconds``
        """
        parsed = urlparse(self.redirect_uri)
        host = parsed.hostname or "127.0.0.1"
        port = parsed.port or 5555
        path = parsed.path or "/oauth2callback"

        done: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        app = self.build_callback_app(path, done)
        runner = web.AppRunner(app)
        await runner.setup()
        site = web.TCPSite(runner, host=host, port=port)
        await site.start()

        print("\n=== OAUTH BOOTSTRAP ===")
        print("1. Open this URL in your browser:")
        print(self.get_auth_url())
        print("2. Complete the authorization process")
        print(f"\nWaiting for the callback on http://{host}:{port}{path} ...")

        try:
            return await asyncio.wait_for(done, timeout=timeout_seconds)
        except asyncio.TimeoutError as e:
            raise OAuthError("OAuth bootstrap timed out; please try again") from e
        finally:
            try:
                await runner.cleanup()
            except Exception as e:
                logger.warning("Error stopping OAuth callback server: %s", e)
