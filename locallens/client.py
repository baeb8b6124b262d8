"""Synchronous API client that renews expired access tokens transparently.

A request rejected with ``TOKEN_EXPIRED`` or ``INVALID_TOKEN`` triggers one call
to ``/api/auth/refresh`` followed by a single replay. Refresh state lives on
the client instance, so independent clients in one process never share it.
"""
import logging
import threading
from typing import Callable, Optional

import httpx

logger = logging.getLogger(__name__)

REFRESHABLE_CODES = ("TOKEN_EXPIRED", "INVALID_TOKEN")


class ApiError(Exception):
    def __init__(self, status_code: int, code: Optional[str], message: str):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message

    @classmethod
    def from_response(cls, response: httpx.Response) -> "ApiError":
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        return cls(response.status_code, body.get("error"), body.get("message") or response.reason_phrase)


class RefreshCoordinator:
    """Serializes refreshes for one client.

    Callers that saw the same stale token wait for the refresh already in
    flight and get its result instead of starting another one.
    """

    def __init__(self, token: Optional[str] = None):
        self._lock = threading.Lock()
        self.token = token
        self.refresh_count = 0

    def refresh(self, stale_token: Optional[str], do_refresh: Callable[[], str]) -> str:
        with self._lock:
            if self.token is not None and self.token != stale_token:
                return self.token
            self.token = do_refresh()
            self.refresh_count += 1
            return self.token


class LocalLensClient:
    def __init__(self, http: httpx.Client, access_token: str = None, refresh_token: str = None):
        self.http = http
        self.refresh_token = refresh_token
        self.coordinator = RefreshCoordinator(access_token)

    @property
    def access_token(self) -> Optional[str]:
        return self.coordinator.token

    def clear_tokens(self) -> None:
        self.coordinator.token = None
        self.refresh_token = None

    # ---------------------------
    # Auth
    # ---------------------------
    def _store_session(self, body: dict) -> dict:
        self.coordinator.token = body["token"]
        self.refresh_token = body["refreshToken"]
        return body["user"]

    def register(self, name: str, email: str, password: str, **profile) -> dict:
        payload = {"name": name, "email": email, "password": password, **profile}
        return self._store_session(self._send("POST", "/api/auth/register", json=payload).json())

    def login(self, email: str, password: str) -> dict:
        body = self._send("POST", "/api/auth/login", json={"email": email, "password": password}).json()
        return self._store_session(body)

    def logout(self) -> None:
        try:
            self.request("POST", "/api/auth/logout")
        finally:
            self.clear_tokens()

    def _refresh_access_token(self) -> str:
        if not self.refresh_token:
            self.clear_tokens()
            raise ApiError(401, "MISSING_REFRESH_TOKEN", "No refresh token available")
        response = self.http.post("/api/auth/refresh", json={"refreshToken": self.refresh_token})
        if response.status_code != 200:
            logger.warning("Token refresh failed with %s", response.status_code)
            self.clear_tokens()
            raise ApiError.from_response(response)
        return response.json()["token"]

    # ---------------------------
    # Requests
    # ---------------------------
    def _send(self, method: str, path: str, token: Optional[str] = None, **kwargs) -> httpx.Response:
        headers = dict(kwargs.pop("headers", None) or {})
        if token:
            headers["Authorization"] = f"Bearer {token}"
        response = self.http.request(method, path, headers=headers, **kwargs)
        if response.status_code >= 400:
            raise ApiError.from_response(response)
        return response

    def request(self, method: str, path: str, **kwargs) -> dict:
        """Send an authenticated request and return the decoded JSON body."""
        token = self.access_token
        try:
            return self._send(method, path, token=token, **kwargs).json()
        except ApiError as e:
            if e.status_code != 401 or e.code not in REFRESHABLE_CODES:
                raise
        token = self.coordinator.refresh(token, self._refresh_access_token)
        return self._send(method, path, token=token, **kwargs).json()

    def get(self, path: str, **kwargs) -> dict:
        return self.request("GET", path, **kwargs)

    def post(self, path: str, **kwargs) -> dict:
        return self.request("POST", path, **kwargs)

    def put(self, path: str, **kwargs) -> dict:
        return self.request("PUT", path, **kwargs)

    def delete(self, path: str, **kwargs) -> dict:
        return self.request("DELETE", path, **kwargs)
