"""HTTP remote store.

JSON-over-HTTP adapter using httpx. Records are scoped to a workspace on the
server:

    GET  /account/status                            -> {"status": "available"}
    PUT  /workspaces/{ws}                           create workspace if missing
    PUT  /workspaces/{ws}/subscriptions/{kind}_changes
    PUT  /workspaces/{ws}/records/{kind}/{id}       upsert one record
    GET  /workspaces/{ws}/records/{kind}            -> {"records": [...]}

Append-only kinds are written with ``If-None-Match: *`` so the server keeps
the first copy; a 412 answer means the record already exists and counts as
success.
"""

import logging
from typing import Any, Iterable, List, Optional
from urllib.parse import quote

import httpx

from news_sync.errors import RecordDecodeError, RemoteError, RemoteUnavailableError
from news_sync.models.schemas import RecordKind
from news_sync.remote.base import APPEND_ONLY_KINDS, Availability, RemoteStore

logger = logging.getLogger(__name__)


class HttpRemoteStore(RemoteStore):
    """Remote store backed by a JSON HTTP API."""

    def __init__(
        self,
        base_url: str,
        workspace: str = "NewsSyncZone",
        token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the adapter.

        Args:
            base_url: Root URL of the sync API
            workspace: Workspace (zone) name records are scoped to
            token: Optional bearer token
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport, used by tests
        """
        headers = {"User-Agent": "NewsSync/1.0 (Sync Client)"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self.workspace = workspace
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers=headers,
            transport=transport,
        )

    @property
    def _workspace_path(self) -> str:
        return f"/workspaces/{quote(self.workspace, safe='')}"

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            raise RemoteUnavailableError(f"{method} {url} failed: {e}") from e

        if response.status_code >= 500:
            raise RemoteUnavailableError(
                f"{method} {url} returned {response.status_code}"
            )
        return response

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise RemoteError(str(e)) from e

    async def check_availability(self) -> Availability:
        try:
            response = await self._request("GET", "/account/status")
        except RemoteUnavailableError as e:
            logger.warning(f"Availability check failed: {e}")
            return Availability.UNKNOWN

        if response.status_code in (401, 403):
            return Availability.UNAVAILABLE
        if response.is_error:
            return Availability.UNKNOWN

        try:
            status = response.json().get("status", "")
        except (ValueError, AttributeError):
            return Availability.UNKNOWN

        try:
            return Availability(status)
        except ValueError:
            return Availability.UNKNOWN

    async def ensure_workspace(self) -> None:
        response = await self._request("PUT", self._workspace_path)
        self._raise_for_status(response)

    async def subscribe_to_changes(self, kinds: Iterable[RecordKind]) -> None:
        for kind in kinds:
            response = await self._request(
                "PUT",
                f"{self._workspace_path}/subscriptions/{kind.value}_changes",
                json={"record_kind": kind.value},
            )
            self._raise_for_status(response)

    async def upsert(self, record: Any) -> None:
        kind = RecordKind.of(record)
        url = f"{self._workspace_path}/records/{kind.value}/{quote(record.record_id, safe='')}"
        headers = {"If-None-Match": "*"} if kind in APPEND_ONLY_KINDS else None

        response = await self._request("PUT", url, json=record.to_dict(), headers=headers)
        if response.status_code == 412 and kind in APPEND_ONLY_KINDS:
            # Already created by another write
            return
        self._raise_for_status(response)

    async def query_all(self, kind: RecordKind) -> List[Any]:
        response = await self._request("GET", f"{self._workspace_path}/records/{kind.value}")
        self._raise_for_status(response)

        try:
            items = response.json()["records"]
        except (ValueError, KeyError, TypeError) as e:
            raise RemoteError(f"Malformed {kind.value} query response") from e

        records = []
        for item in items:
            try:
                records.append(kind.record_class.from_dict(item))
            except RecordDecodeError as e:
                logger.warning(f"Skipping malformed remote {kind.value} record: {e}")
        return records

    async def close(self) -> None:
        await self._client.aclose()
