"""Microsoft Entra ID provider: licensed member users via Microsoft Graph."""

from __future__ import annotations

import logging
from typing import Any, Iterator, Optional

import msal
import requests

from scripts.directory_ingestion.base_provider import BaseProvider
from scripts.directory_ingestion.config import GraphConfig
from scripts.directory_ingestion.errors import (
    AuthenticationError,
    ConfigurationError,
    ExtractionError,
)
from scripts.directory_ingestion.models import GRAPH_SELECT_FIELDS

logger = logging.getLogger("ingestion.entra_users")

SCOPES = ["https://graph.microsoft.com/.default"]
MAX_THROTTLE_RETRIES = 5


class EntraUserProvider(BaseProvider):
    PROVIDER_NAME = "entra_users"

    def __init__(
        self,
        config: GraphConfig,
        mapping_error_policy: str = "skip",
        session: Optional[requests.Session] = None,
        app: Optional[Any] = None,
    ) -> None:
        super().__init__(mapping_error_policy)
        self._config = config
        self._base = config.api_base_url.rstrip("/")
        self._session = session or requests.Session()
        self._app = app

    def _build_app(self) -> Any:
        try:
            with open(self._config.cert_key_file, encoding="utf-8") as fh:
                private_key = fh.read()
        except OSError as exc:
            raise ConfigurationError(
                f"Cannot read certificate key file {self._config.cert_key_file}: {exc}"
            ) from exc

        # Construction runs authority discovery against login.microsoftonline.com
        try:
            return msal.ConfidentialClientApplication(
                self._config.client_id,
                authority=f"https://login.microsoftonline.com/{self._config.tenant_id}",
                client_credential={
                    "thumbprint": self._config.cert_thumbprint,
                    "private_key": private_key,
                },
            )
        except requests.RequestException as exc:
            raise AuthenticationError(f"Identity provider unreachable: {exc}") from exc
        except ValueError as exc:
            raise AuthenticationError(f"Invalid client certificate: {exc}") from exc

    def authenticate(self) -> None:
        if self._app is None:
            self._app = self._build_app()
        self._access_token()
        logger.info("Authenticated to Microsoft Graph as app %s", self._config.client_id)

    def _access_token(self) -> str:
        # msal serves cached tokens until they near expiry
        try:
            result = self._app.acquire_token_for_client(scopes=SCOPES)
        except requests.RequestException as exc:
            raise AuthenticationError(f"Identity provider unreachable: {exc}") from exc
        token = result.get("access_token") if isinstance(result, dict) else None
        if not token:
            description = "unknown"
            if isinstance(result, dict):
                description = result.get("error_description") or result.get("error") or description
            raise AuthenticationError(f"Unable to acquire Graph token: {description}")
        return token

    def _get_page(self, url: str, params: Optional[dict]) -> dict:
        attempt = 0
        while True:
            headers = {
                "Authorization": f"Bearer {self._access_token()}",
                "ConsistencyLevel": "eventual",
            }
            try:
                resp = self._session.get(
                    url, params=params, headers=headers,
                    timeout=self._config.request_timeout,
                )
            except requests.RequestException as exc:
                raise ExtractionError(f"Graph request failed: {exc}") from exc

            if resp.status_code in (429, 503):
                attempt += 1
                if attempt > MAX_THROTTLE_RETRIES:
                    raise ExtractionError("Graph throttling persisted after retries")
                retry_after = resp.headers.get("Retry-After")
                self._rate_limit_sleep(
                    attempt - 1,
                    retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None,
                )
                continue
            if resp.status_code in (401, 403):
                raise AuthenticationError(
                    f"Graph rejected the request (HTTP {resp.status_code}): {resp.text[:300]}"
                )
            if resp.status_code != 200:
                raise ExtractionError(
                    f"Graph returned HTTP {resp.status_code}: {resp.text[:300]}"
                )
            try:
                page = resp.json()
            except ValueError as exc:
                raise ExtractionError("Graph returned a non-JSON page") from exc
            if not isinstance(page, dict):
                raise ExtractionError(
                    f"Graph returned a {type(page).__name__} instead of a page object"
                )
            return page

    def iter_raw_users(self) -> Iterator[Any]:
        if self._app is None:
            self.authenticate()

        url = f"{self._base}/users"
        params: Optional[dict] = {
            "$filter": self._config.user_filter,
            "$count": "true",
            "$select": ",".join(GRAPH_SELECT_FIELDS),
            "$top": str(self._config.page_size),
        }
        page_no = 0
        while url:
            page = self._get_page(url, params)
            page_no += 1
            if self.expected_total is None and "@odata.count" in page:
                try:
                    self.expected_total = int(page["@odata.count"])
                except (TypeError, ValueError) as exc:
                    raise ExtractionError(
                        f"Graph returned a non-integer @odata.count: {page['@odata.count']!r}"
                    ) from exc
                logger.info(
                    "Graph reports approximately %d matching users",
                    self.expected_total,
                    extra={"records": self.expected_total},
                )
            users = page.get("value", [])
            if not isinstance(users, list):
                raise ExtractionError("Graph page 'value' is not a list")
            logger.debug("Fetched page %d with %d users", page_no, len(users))
            yield from users

            # nextLink already carries the query string
            url = page.get("@odata.nextLink") or ""
            params = None
