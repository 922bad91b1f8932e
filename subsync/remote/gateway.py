# Subsync Remote Gateway
# Async client for the remote subscription API and its connectivity probe

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx

from subsync.errors import AuthenticationError, NetworkError, RemoteError, RemoteHTTPError
from subsync.sync.entity import LAST_MODIFIED, UPDATED_AT, Entity, entity_timestamp
from subsync.sync.operation import OperationType, SyncOperation
from subsync.utils.timestamps import now_iso

logger = logging.getLogger(__name__)

# Local (camelCase) field name -> remote (snake_case) column name
FIELD_MAP = {
    "billingCycle": "billing_cycle",
    "startDate": "start_date",
    "renewalDate": "renewal_date",
    "paymentMethod": "payment_method",
    "accountEmail": "account",
    "cancellationInfo": "cancellation_info",
    "updatedAt": "updated_at",
    "createdAt": "created_at",
    "syncedAt": "synced_at",
}
REVERSE_FIELD_MAP = {remote: local for local, remote in FIELD_MAP.items()}

# Fields that only exist in the local replica
LOCAL_ONLY_FIELDS = (LAST_MODIFIED,)


def to_remote(entity: dict[str, Any]) -> dict[str, Any]:
    """Translate a local-shape entity (or partial entity) to remote field names."""
    return {FIELD_MAP.get(key, key): value for key, value in entity.items() if key not in LOCAL_ONLY_FIELDS}


def to_local(record: dict[str, Any]) -> Entity:
    """
    Translate a remote record to local shape.

    ``lastModified`` is derived from the remote ``updated_at`` so pulled
    entities carry the same timestamp pair as locally written ones.
    """
    entity = {REVERSE_FIELD_MAP.get(key, key): value for key, value in record.items()}
    if "id" in entity:
        entity["id"] = str(entity["id"])
    entity[LAST_MODIFIED] = entity_timestamp(entity) if entity.get(UPDATED_AT) else 0
    return entity


class RemoteGateway(ABC):
    """
    Boundary to the remote authoritative store.

    ``apply`` and the fetch methods raise ``RemoteError`` on any
    non-success; callers must treat a raised error as "did not take
    effect remotely". All entities crossing this boundary are in local shape.
    """

    @abstractmethod
    async def check_reachable(self) -> bool:
        """Lightweight connectivity probe. Never raises."""

    @abstractmethod
    async def fetch_all(self) -> list[Entity]:
        """Fetch the full remote subscription collection."""

    @abstractmethod
    async def fetch_one(self, entity_id: str) -> Entity:
        """Fetch a single remote subscription."""

    @abstractmethod
    async def apply(self, operation: SyncOperation) -> Optional[Entity]:
        """Apply a queued operation remotely. Returns the resulting entity if any."""

    async def aclose(self) -> None:
        """Release network resources."""


class HttpRemoteGateway(RemoteGateway):
    """
    REST implementation of the remote gateway.

    Endpoints are relative to ``base_url``: ``/subscriptions``,
    ``/subscriptions/{id}`` and ``/health``. Every call except the health
    probe carries the bearer token.
    """

    USER_AGENT = "subsync/1.0"

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        *,
        timeout: Optional[float] = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the gateway.

        Args:
            base_url: API base URL, e.g. ``http://localhost:3000/api``.
            token: Bearer token for authenticated calls.
            timeout: Per-request timeout in seconds, None for no timeout.
            transport: Optional transport override (used by tests).
        """
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                headers={"User-Agent": self.USER_AGENT},
                transport=self._transport,
            )
        return self._http_client

    async def aclose(self) -> None:
        """Close the HTTP client."""
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    def _auth_headers(self) -> dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """
        Make an authenticated API request.

        Raises:
            NetworkError: The request could not be sent or answered.
            AuthenticationError: The API answered 401 or 403.
            RemoteHTTPError: The API answered with another non-2xx status.
        """
        client = self._get_http_client()
        headers = {**kwargs.pop("headers", {}), **self._auth_headers()}

        try:
            response = await client.request(method, path, headers=headers, **kwargs)
        except httpx.RequestError as e:
            raise NetworkError(f"Network error during {method} {path}: {e}") from e

        if response.status_code in (401, 403):
            raise AuthenticationError(f"{method} {path} rejected: {response.status_code} {response.reason_phrase}")

        if not response.is_success:
            raise RemoteHTTPError(
                f"{method} {path} failed: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )

        return response

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise RemoteError(f"Invalid JSON from {response.request.url}: {e}") from e

    def _decode_entity(self, response: httpx.Response) -> Entity:
        payload = self._decode(response)
        if not isinstance(payload, dict):
            raise RemoteError(f"Expected an object from {response.request.url}, got {type(payload).__name__}")
        return to_local(payload)

    async def check_reachable(self) -> bool:
        try:
            response = await self._get_http_client().head(
                "/health",
                headers={"Cache-Control": "no-cache", "Pragma": "no-cache"},
            )
        except Exception as e:
            logger.debug("Health probe failed: %s", e)
            return False
        return response.is_success

    async def fetch_all(self) -> list[Entity]:
        response = await self._request("GET", "/subscriptions")
        payload = self._decode(response)
        if not isinstance(payload, list):
            raise RemoteError(f"Expected a list of subscriptions, got {type(payload).__name__}")
        return [to_local(record) for record in payload if isinstance(record, dict)]

    async def fetch_one(self, entity_id: str) -> Entity:
        response = await self._request("GET", f"/subscriptions/{entity_id}")
        return self._decode_entity(response)

    async def create(self, entity_id: str, data: dict[str, Any]) -> Entity:
        """POST a new subscription; the client-generated id is sent along."""
        payload = to_remote(data)
        payload.setdefault("id", entity_id)
        response = await self._request("POST", "/subscriptions", json=payload)
        return self._decode_entity(response)

    async def update(self, entity_id: str, changes: dict[str, Any]) -> Entity:
        """PATCH a subscription with a refreshed update timestamp."""
        payload = to_remote({k: v for k, v in changes.items() if k != "id"})
        payload["updated_at"] = now_iso()
        response = await self._request("PATCH", f"/subscriptions/{entity_id}", json=payload)
        return self._decode_entity(response)

    async def delete(self, entity_id: str) -> None:
        """DELETE a subscription."""
        await self._request("DELETE", f"/subscriptions/{entity_id}")

    async def apply(self, operation: SyncOperation) -> Optional[Entity]:
        if operation.type == OperationType.CREATE:
            return await self.create(operation.entity_id, operation.data or {})
        if operation.type == OperationType.UPDATE:
            return await self.update(operation.entity_id, operation.data or {})
        if operation.type == OperationType.DELETE:
            await self.delete(operation.entity_id)
            return None
        raise RemoteError(f"Unknown operation type: {operation.type}")
