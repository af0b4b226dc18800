"""
Authenticated HTTP client with transparent token refresh.

This module defines the asynchronous client used for every call to the
chat backend.  Each request carries the current access token from the
session store.  When the server answers ``401`` the client refreshes the
access token through the single-flight ``TokenRefreshCoordinator`` and
replays the original request exactly once.  Every other failure status
(``400``, ``403``, ``404``, ``500`` and anything unlisted) is raised to
the caller unchanged as an ``HttpStatusError``; transport errors from
aiohttp propagate as they are and are never retried.

When no refresh token is stored, or the refresh endpoint does not return
a new access token, the client signals that authentication is required
by calling the ``on_auth_required`` hook with the configured sign-in
path.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, Mapping, Optional

import aiohttp

from .. import telemetry
from ..config import ClientConfig
from ..errors import HttpResult
from ..models import (
    CredentialPair,
    RefreshTokenRequest,
    RefreshTokenResponse,
    RequestDescriptor,
    ResponseEnvelope,
    Scalar,
)
from .auth_providers import SessionTokenProvider
from .session_store import (
    ACCESS_TOKEN_KEY,
    REFRESH_TOKEN_KEY,
    SessionStore,
    build_session_store,
    load_email,
    store_email,
)
from .token_refresh import TokenRefreshCoordinator

logger = logging.getLogger(__name__)

AuthRequiredHook = Callable[[str], None]


def _log_auth_required(sign_in_path: str) -> None:
    logger.warning("Authentication required; sign in at %s", sign_in_path)


class AuthenticatedHttpClient:
    """Asynchronous JSON client for the chat backend."""

    def __init__(
        self,
        config: ClientConfig,
        store: Optional[SessionStore] = None,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        on_auth_required: Optional[AuthRequiredHook] = None,
    ) -> None:
        """Construct the HTTP client.

        Args:
            config: Client configuration; ``config.base_url`` is the root
                of every request path.
            store: Session store holding the tokens.  Defaults to the
                store described by ``config.session_store_path``.
            session: Optional aiohttp session.  When omitted one is
                created lazily and closed by ``close()``.
            on_auth_required: Called with the sign-in path when the user
                has to authenticate again.  It may raise
                ``AuthenticationRequired`` to abort the caller.
        """
        self.config = config
        self.base_url = config.base_url
        self.store = store if store is not None else build_session_store(config.session_store_path)
        self.auth_provider = SessionTokenProvider(self.store, config.auth_scheme)
        self.on_auth_required = on_auth_required or _log_auth_required
        self.refresher = TokenRefreshCoordinator(self._request_new_access_token, self.store)
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "AuthenticatedHttpClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return self._session

    # Credentials

    @property
    def access_token(self) -> str:
        return self.store.get(ACCESS_TOKEN_KEY) or ""

    def set_authorization_header(self, token: str) -> None:
        """Install ``token`` as the access token for all later requests."""
        self.store.set(ACCESS_TOKEN_KEY, token)

    def set_credentials(self, credentials: CredentialPair) -> None:
        """Store the token pair returned by a sign-in."""
        self.store.set(REFRESH_TOKEN_KEY, credentials.refresh_token)
        self.set_authorization_header(credentials.access_token)

    def set_email_cookie(self, email: str) -> None:
        store_email(self.store, email)

    def get_email(self) -> Optional[str]:
        return load_email(self.store)

    # Transport

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    @staticmethod
    def _encode_params(params: Optional[Mapping[str, Scalar]]) -> Optional[Dict[str, str]]:
        if not params:
            return None
        encoded: Dict[str, str] = {}
        for key, value in params.items():
            if isinstance(value, bool):
                encoded[key] = "true" if value else "false"
            else:
                encoded[key] = str(value)
        return encoded

    @staticmethod
    async def _read_body(resp: aiohttp.ClientResponse) -> Any:
        text = await resp.text()
        if not text:
            return None
        try:
            return json.loads(text)
        except ValueError:
            return text

    async def _send(self, descriptor: RequestDescriptor) -> HttpResult:
        """Perform one HTTP exchange without any recovery."""
        headers = dict(descriptor.headers)
        headers.update(self.auth_provider.get_headers(descriptor.method, descriptor.url))
        url = self._url(descriptor.url)
        logger.debug("HTTP %s %s", descriptor.method, url)
        session = self._get_session()
        try:
            async with session.request(
                descriptor.method,
                url,
                params=self._encode_params(descriptor.params),
                json=descriptor.body,
                headers=headers,
            ) as resp:
                body = await self._read_body(resp)
                status = resp.status
                resp_headers = dict(resp.headers)
        except Exception:
            telemetry.http_requests.labels(method=descriptor.method, status="error").inc()
            raise
        telemetry.http_requests.labels(method=descriptor.method, status=str(status)).inc()
        if status >= 400:
            logger.debug("HTTP %s %s returned %s", descriptor.method, url, status)
        return HttpResult(
            ok=200 <= status < 300,
            status=status,
            request=descriptor,
            body=body,
            headers=resp_headers,
        )

    # Requests

    async def request(self, descriptor: RequestDescriptor) -> ResponseEnvelope:
        """Issue ``descriptor`` and return the response envelope.

        Raises:
            HttpStatusError: the final response was not 2xx.
            aiohttp.ClientError: the request failed at the transport level.
        """
        sent_token = self.access_token
        result = await self._send(descriptor)
        if not result.ok and result.status == 401:
            replayed = await self._recover(result, sent_token)
            if replayed is not None:
                result = replayed
        result.raise_for_status()
        return ResponseEnvelope(status=result.status, data=result.body, headers=result.headers or {})

    async def _recover(self, failed: HttpResult, sent_token: str) -> Optional[HttpResult]:
        """Refresh the access token and replay ``failed`` once.

        Returns ``None`` when no new token could be obtained.
        """
        current = self.access_token
        if current and current != sent_token:
            # Token was replaced while this request was in flight
            logger.debug("Replaying %s %s with the current access token", failed.request.method, failed.request.url)
            token: Optional[str] = current
        else:
            token = await self.renew_access_token()
        if not token:
            return None
        telemetry.request_replays.inc()
        return await self._send(failed.request)

    async def renew_access_token(self) -> Optional[str]:
        """Run the refresh protocol and return the new access token.

        Signals authentication required and returns ``None`` when no
        refresh token is stored or no access token was obtained.
        """
        refresh_token = self.store.get(REFRESH_TOKEN_KEY)
        if not refresh_token:
            logger.warning("No refresh token stored")
            self.on_auth_required(self.config.sign_in_path)
            return None
        token = await self.refresher.refresh(refresh_token)
        if not token:
            self.on_auth_required(self.config.sign_in_path)
            return None
        return token

    async def _request_new_access_token(self, refresh_token: str) -> Optional[str]:
        body = RefreshTokenRequest(refresh_token=refresh_token).model_dump(by_alias=True)
        result = await self._send(RequestDescriptor("POST", self.config.refresh_path, body=body))
        if not result.ok:
            logger.warning("Refresh endpoint returned %s", result.status)
            return None
        payload = result.body.get("data") if isinstance(result.body, dict) else None
        parsed = RefreshTokenResponse.model_validate(payload or {})
        return parsed.access_token or None

    # Convenience verbs

    async def get(
        self,
        url: str,
        params: Optional[Mapping[str, Scalar]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> ResponseEnvelope:
        return await self.request(RequestDescriptor("GET", url, params=params or {}, headers=headers or {}))

    async def post(self, url: str, data: Any, headers: Optional[Mapping[str, str]] = None) -> ResponseEnvelope:
        return await self.request(RequestDescriptor("POST", url, body=data, headers=headers or {}))

    async def put(self, url: str, data: Any, headers: Optional[Mapping[str, str]] = None) -> ResponseEnvelope:
        return await self.request(RequestDescriptor("PUT", url, body=data, headers=headers or {}))

    async def patch(self, url: str, data: Any, headers: Optional[Mapping[str, str]] = None) -> ResponseEnvelope:
        return await self.request(RequestDescriptor("PATCH", url, body=data, headers=headers or {}))

    async def delete(self, url: str, headers: Optional[Mapping[str, str]] = None) -> ResponseEnvelope:
        return await self.request(RequestDescriptor("DELETE", url, body={}, headers=headers or {}))
