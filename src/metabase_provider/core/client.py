"""
MetabaseClient: JSON HTTP client for the Metabase REST API.

This module provides the transport used by every reconciler:
  * One `requests.Session` per client, authenticated once at construction
    (API key header, or username/password exchanged for a session token)
  * Typed resource helpers for databases, permissions groups and users
  * Errors raised as `NotFoundError` (HTTP 404) or `TransportError`
    (any other non-2xx status, network failure or malformed JSON)

No retries are performed: each call either succeeds or raises immediately.

Example:
    client = MetabaseClient("https://metabase.local", username="admin", password="...")
    db = client.get_database(3)
"""

from __future__ import annotations

import json
import logging
import os
import warnings
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests
import urllib3

from .errors import NotFoundError, TransportError
from .models import (
    Database,
    DatabaseRequest,
    PermissionsGroup,
    PermissionsGroupRequest,
    User,
    UserCreateRequest,
    UserUpdateRequest,
)

log = logging.getLogger(__name__)

SESSION_HEADER = "X-Metabase-Session"
API_KEY_HEADER = "X-API-KEY"

_LOG_PREVIEW = int(os.getenv("MBPROV_HTTP_PREVIEW", "600"))
_REDACT_KEYS = {"password", "id_token", "x-api-key", "x-metabase-session", "service-account-json"}


def _short_json(obj: Any, limit: int = _LOG_PREVIEW) -> str:
    try:
        if isinstance(obj, (dict, list)):
            s = json.dumps(obj, ensure_ascii=False)
        else:
            s = str(obj)
        return s[:limit]
    except (TypeError, ValueError):
        return f"<unserializable:{type(obj).__name__}>"


def _redact(obj: Any) -> Any:
    if isinstance(obj, dict):
        out = {}
        for k, v in obj.items():
            if str(k).lower() in _REDACT_KEYS:
                out[k] = "***REDACTED***"
            else:
                out[k] = _redact(v)
        return out
    if isinstance(obj, list):
        return [_redact(x) for x in obj]
    return obj


@dataclass
class ClientOptions:
    """Runtime options for :class:`MetabaseClient`.

    Attributes:
        verify: If False, TLS certificate verification is disabled.
        timeout_sec: Per-request timeout (seconds).
        headers: Extra headers sent with every request (e.g. for a proxy).
        suppress_insecure_warning: Silence urllib3 warnings when ``verify`` is False.
    """
    verify: bool = True
    timeout_sec: float = 10.0
    headers: Dict[str, str] = field(default_factory=dict)
    suppress_insecure_warning: bool = True


class MetabaseClient:
    """High-level HTTP client for the Metabase API.

    Args:
        host: Base URL of the Metabase instance (``/api`` is appended).
        api_key: API key; when set, no session is opened.
        username: Login used to open a session when no API key is given.
        password: Password used to open a session when no API key is given.
        options: Optional :class:`ClientOptions`.
        session: Optional pre-built ``requests.Session`` (tests).
    """

    def __init__(
        self,
        host: str,
        *,
        api_key: str = "",
        username: str = "",
        password: str = "",
        options: Optional[ClientOptions] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not host:
            raise ValueError("must provide a valid host URL")
        if not api_key and not (username and password):
            raise ValueError("must provide either an API key or a username and password")

        self.base_url = host.rstrip("/")
        self.options = options or ClientOptions()
        self.session = session or requests.Session()
        self.session.headers.update({
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": "metabase-provider/HTTPClient",
        })
        self.session.headers.update(self.options.headers)

        if not self.options.verify and self.options.suppress_insecure_warning:
            warnings.filterwarnings("ignore", category=urllib3.exceptions.InsecureRequestWarning)
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

        if api_key:
            self.session.headers[API_KEY_HEADER] = api_key
            log.debug("Using API key authentication against %s", self.base_url)
        else:
            self._sign_in(username, password)

    # ---------------- low-level ----------------

    def _url(self, path: str) -> str:
        return f"{self.base_url}/api/{path.lstrip('/')}"

    def _req(self, method: str, path: str, *, json_body: Optional[Dict[str, Any]] = None) -> Any:
        """Perform a request and return the decoded JSON body (``{}`` when empty).

        Raises:
            NotFoundError: On HTTP 404.
            TransportError: On any other failure.
        """
        url = self._url(path)
        if json_body is not None:
            log.debug("%s %s payload=%s", method, path, _short_json(_redact(json_body)))
        try:
            resp = self.session.request(
                method=method,
                url=url,
                json=json_body,
                timeout=self.options.timeout_sec,
                verify=self.options.verify,
            )
        except requests.RequestException as exc:
            log.error("HTTP %s %s failed: %s", method, url, exc)
            raise TransportError(status=0, url=url, message=str(exc)) from exc

        if resp.status_code == 404:
            log.debug("HTTP %s %s -> 404", method, url)
            raise NotFoundError(status=404, url=url, body=resp.text[:_LOG_PREVIEW], message="not found")
        if resp.status_code < 200 or resp.status_code >= 300:
            snippet = resp.text[:200]
            log.warning("HTTP %s %s -> %s: %s", method, url, resp.status_code, snippet)
            raise TransportError(status=resp.status_code, url=url, body=resp.text, message=resp.reason or "")

        log.debug("HTTP %s %s -> %s", method, path, resp.status_code)
        if not resp.text:
            return {}
        try:
            return resp.json()
        except ValueError as exc:
            raise TransportError(
                status=resp.status_code, url=url, body=resp.text[:_LOG_PREVIEW], message=f"invalid JSON: {exc}"
            ) from exc

    def get_json(self, path: str) -> Any:
        return self._req("GET", path)

    def post_json(self, path: str, data: Dict[str, Any]) -> Any:
        return self._req("POST", path, json_body=data)

    def put_json(self, path: str, data: Optional[Dict[str, Any]] = None) -> Any:
        return self._req("PUT", path, json_body=data)

    def delete_json(self, path: str) -> Any:
        return self._req("DELETE", path)

    def _sign_in(self, username: str, password: str) -> None:
        self.session.headers.pop(SESSION_HEADER, None)
        res = self.post_json("/session", {"username": username, "password": password})
        token = res.get("id") if isinstance(res, dict) else None
        if not token:
            raise TransportError(status=0, url=self._url("/session"), message="no session id in response")
        self.session.headers[SESSION_HEADER] = str(token)
        log.info("Opened Metabase session for %s", username)

    @staticmethod
    def _created_id(res: Any, url: str) -> int:
        if not isinstance(res, dict) or "id" not in res:
            raise TransportError(status=0, url=url, body=_short_json(res), message="response has no 'id'")
        return int(res["id"])

    # ---------------- databases ----------------

    def get_database(self, database_id: int) -> Database:
        return Database.from_api(self.get_json(f"/database/{database_id}"))

    def create_database(self, request: DatabaseRequest) -> int:
        res = self.post_json("/database", request.to_payload())
        return self._created_id(res, self._url("/database"))

    def update_database(self, database_id: int, request: DatabaseRequest) -> None:
        self.put_json(f"/database/{database_id}", request.to_payload())

    def delete_database(self, database_id: int) -> None:
        self.delete_json(f"/database/{database_id}")

    # ---------------- permissions groups ----------------

    def get_permissions_group(self, group_id: int) -> PermissionsGroup:
        return PermissionsGroup.from_api(self.get_json(f"/permissions/group/{group_id}"))

    def create_permissions_group(self, request: PermissionsGroupRequest) -> int:
        res = self.post_json("/permissions/group", request.to_payload())
        return self._created_id(res, self._url("/permissions/group"))

    def update_permissions_group(self, group_id: int, request: PermissionsGroupRequest) -> None:
        self.put_json(f"/permissions/group/{group_id}", request.to_payload())

    def delete_permissions_group(self, group_id: int) -> None:
        self.delete_json(f"/permissions/group/{group_id}")

    # ---------------- users ----------------

    def get_user(self, user_id: int) -> User:
        return User.from_api(self.get_json(f"/user/{user_id}"))

    def get_current_user(self) -> User:
        return User.from_api(self.get_json("/user/current"))

    def create_user(self, request: UserCreateRequest) -> int:
        res = self.post_json("/user", request.to_payload())
        return self._created_id(res, self._url("/user"))

    def update_user(self, user_id: int, request: UserUpdateRequest) -> None:
        self.put_json(f"/user/{user_id}", request.to_payload())

    def disable_user(self, user_id: int) -> None:
        self.delete_json(f"/user/{user_id}")

    def reactivate_user(self, user_id: int) -> None:
        """Reactivate a deactivated user; already-active users are left untouched."""
        try:
            self.put_json(f"/user/{user_id}/reactivate")
        except NotFoundError:
            raise
        except TransportError as err:
            if err.status == 400 and "active user" in (err.body or "").lower():
                log.debug("User %s is already active", user_id)
                return
            raise
