"""Microsoft Graph client for the Entra ID ``/users`` resource."""

from __future__ import annotations

import logging
import time
from typing import Any, Iterator, Optional, Sequence

import requests

from scripts.directory_sync.config import GraphConfig
from scripts.directory_sync.models import TargetAccount

logger = logging.getLogger("directory_sync.directory")

GRAPH_SCOPE = "https://graph.microsoft.com/.default"

# Renew this long before the token endpoint says it expires
TOKEN_EXPIRY_MARGIN_SECONDS = 300


class DirectoryError(Exception):
    """A Graph call failed. ``status_code`` is None for transport errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code

    @property
    def is_conflict(self) -> bool:
        return self.status_code == 409


class DirectoryAuthError(DirectoryError):
    """Token acquisition failed."""


def _error_from_response(resp: requests.Response, context: str) -> DirectoryError:
    code = None
    message = resp.text[:500]
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        code = body["error"].get("code")
        message = body["error"].get("message") or message
    return DirectoryError(
        f"{context}: HTTP {resp.status_code} {code or ''} {message}".strip(),
        status_code=resp.status_code,
        code=code,
    )


class GraphDirectoryClient:
    """Paginated read, create and partial update of Entra ID users.

    Every request carries ``config.timeout_seconds``. Nothing is retried;
    failures, including 2xx bodies that are not a JSON object, surface as
    ``DirectoryError``. When the token response carries ``expires_in`` the
    token is renewed before a request that would otherwise go out with an
    expired one.
    """

    def __init__(
        self,
        config: GraphConfig,
        affiliation_attribute: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._config = config
        self._base = config.api_base_url.rstrip("/")
        self._timeout = config.timeout_seconds
        self.affiliation_attribute = affiliation_attribute
        self._session = session or requests.Session()
        self._token_expires_at: Optional[float] = None
        self._session.headers.update({
            "Accept": "application/json",
            "Content-Type": "application/json",
        })

    def authenticate(self) -> None:
        """Exchange client credentials for a bearer token."""
        url = (
            f"{self._config.authority_url.rstrip('/')}/"
            f"{self._config.tenant_id}/oauth2/v2.0/token"
        )
        data = {
            "client_id": self._config.client_id,
            "client_secret": self._config.client_secret,
            "grant_type": "client_credentials",
            "scope": GRAPH_SCOPE,
        }
        try:
            resp = self._session.post(url, data=data, timeout=self._timeout)
        except requests.RequestException as exc:
            raise DirectoryAuthError(f"Token request failed: {exc}") from exc
        if not resp.ok:
            err = _error_from_response(resp, "Token request")
            raise DirectoryAuthError(str(err), status_code=err.status_code, code=err.code)
        try:
            body = resp.json()
        except ValueError as exc:
            raise DirectoryAuthError(
                f"Token response is not JSON: {exc}", status_code=resp.status_code
            ) from exc
        token = body.get("access_token") if isinstance(body, dict) else None
        if not token:
            raise DirectoryAuthError("Token response missing access_token")
        self._session.headers["Authorization"] = f"Bearer {token}"
        self._token_expires_at = None
        expires_in = body.get("expires_in")
        if expires_in is not None:
            try:
                self._token_expires_at = time.monotonic() + float(expires_in)
            except (TypeError, ValueError):
                logger.warning("Ignoring unparsable expires_in %r", expires_in)
        logger.info("Obtained Graph access token for tenant %s", self._config.tenant_id)

    def _token_expiring(self) -> bool:
        if self._token_expires_at is None:
            return False
        return time.monotonic() >= self._token_expires_at - TOKEN_EXPIRY_MARGIN_SECONDS

    def close(self) -> None:
        self._session.close()

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    def _request(
        self,
        method: str,
        url: str,
        context: str,
        params: Optional[dict] = None,
        json_body: Optional[dict] = None,
    ) -> requests.Response:
        if self._token_expiring():
            logger.info("Graph access token is about to expire, renewing")
            self.authenticate()
        try:
            resp = self._session.request(
                method, url, params=params, json=json_body, timeout=self._timeout
            )
        except requests.RequestException as exc:
            raise DirectoryError(f"{context}: {exc}") from exc
        if not resp.ok:
            raise _error_from_response(resp, context)
        return resp

    def _request_json(
        self,
        method: str,
        url: str,
        context: str,
        params: Optional[dict] = None,
        json_body: Optional[dict] = None,
    ) -> dict[str, Any]:
        """Like ``_request`` but decode the body, which must be a JSON object."""
        resp = self._request(method, url, context, params=params, json_body=json_body)
        try:
            body = resp.json()
        except ValueError as exc:
            raise DirectoryError(
                f"{context}: response is not JSON: {exc}", status_code=resp.status_code
            ) from exc
        if not isinstance(body, dict):
            raise DirectoryError(
                f"{context}: expected a JSON object, got {type(body).__name__}",
                status_code=resp.status_code,
            )
        return body

    def _select(self, fields: Sequence[str]) -> str:
        return ",".join(dict.fromkeys(fields))

    def _account(self, data: dict[str, Any]) -> TargetAccount:
        return TargetAccount.from_graph(data, self.affiliation_attribute)

    # ------------------------------------------------------------------
    # Users resource
    # ------------------------------------------------------------------

    def find_by_principal_name(
        self, name: str, fields: Sequence[str]
    ) -> Optional[TargetAccount]:
        """Return the first user whose UPN equals ``name``, or None."""
        escaped = name.replace("'", "''")
        data = self._request_json(
            "GET",
            f"{self._base}/users",
            context=f"Lookup {name}",
            params={
                "$filter": f"userPrincipalName eq '{escaped}'",
                "$select": self._select(fields),
            },
        )
        users = data.get("value") or []
        if len(users) > 1:
            logger.warning(
                "Multiple users match %s, using the first", name,
                extra={"principal_name": name},
            )
        return self._account(users[0]) if users else None

    def create(self, payload: dict[str, Any]) -> TargetAccount:
        data = self._request_json(
            "POST",
            f"{self._base}/users",
            context=f"Create {payload.get('userPrincipalName', '')}",
            json_body=payload,
        )
        return self._account(data)

    def update(self, account_id: str, payload: dict[str, Any]) -> None:
        self._request(
            "PATCH",
            f"{self._base}/users/{account_id}",
            context=f"Update {account_id}",
            json_body=payload,
        )

    def iter_pages(self, fields: Sequence[str]) -> Iterator[list[TargetAccount]]:
        """Yield one list of accounts per page, following @odata.nextLink.

        A fresh call starts again from the first page.
        """
        url: Optional[str] = f"{self._base}/users"
        params: Optional[dict] = {"$select": self._select(fields)}
        page = 0
        while url:
            page += 1
            if page > 1:
                logger.debug("Fetching users page %d", page)
            data = self._request_json(
                "GET", url, context=f"List users page {page}", params=params
            )
            yield [self._account(u) for u in data.get("value") or []]
            # nextLink already carries the query string
            url = data.get("@odata.nextLink")
            params = None

    def list_all(self, fields: Sequence[str]) -> list[TargetAccount]:
        accounts: list[TargetAccount] = []
        for page in self.iter_pages(fields):
            accounts.extend(page)
        return accounts
