"""Document store clients.

The planner only needs one write primitive: an atomic create that fails
instead of overwriting when the id (or a unique key) is already taken.

Status mapping used by every implementation:
- conflict (409)      -> DocumentConflictError
- throttled (429)     -> DocumentThrottledError
- unavailable (5xx)   -> DocumentStoreUnavailableError
"""

import asyncio
import base64
import binascii
import copy
import hashlib
import hmac
import json
import logging
import time
import uuid
from abc import ABC, abstractmethod
from email.utils import formatdate
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import quote

import httpx

from repair_planner.clients.base import BaseServiceClient
from repair_planner.exceptions import (
    ConfigurationError,
    DocumentConflictError,
    DocumentStoreError,
    DocumentStoreUnavailableError,
    DocumentThrottledError,
)

logger = logging.getLogger(__name__)


class DocumentStore(ABC):
    """Contract of the document store used to persist work orders"""

    @abstractmethod
    async def create_item(
        self, container: str, document: Dict[str, Any], partition_key: str
    ) -> Dict[str, Any]:
        """
        Atomically create a document.

        Args:
            container: Container (collection) name
            document: JSON-compatible document with an "id" field
            partition_key: Partition key value

        Returns:
            The stored document including store metadata (e.g. "_etag")

        Raises:
            DocumentConflictError: If the id or a unique key already exists
            DocumentThrottledError: If the store is rate limiting
            DocumentStoreUnavailableError: If the store cannot be reached
        """
        pass

    @abstractmethod
    async def read_item(
        self, container: str, item_id: str, partition_key: str
    ) -> Optional[Dict[str, Any]]:
        """Read a document by id, or None if it does not exist."""
        pass


class InMemoryDocumentStore(DocumentStore):
    """Process-local document store.

    Used when no remote store is configured and in tests. Unique keys are
    enforced across the whole container, not per partition.
    """

    def __init__(self, unique_keys: Optional[Dict[str, Iterable[str]]] = None):
        """
        Args:
            unique_keys: container -> document fields that must be unique
        """
        self._containers: Dict[str, Dict[Tuple[str, str], Dict[str, Any]]] = {}
        self._unique_keys = {name: tuple(fields) for name, fields in (unique_keys or {}).items()}
        self._lock = asyncio.Lock()

    async def create_item(
        self, container: str, document: Dict[str, Any], partition_key: str
    ) -> Dict[str, Any]:
        if "id" not in document:
            raise DocumentStoreError("document has no id", status_code=400)

        async with self._lock:
            items = self._containers.setdefault(container, {})
            key = (partition_key, document["id"])
            if key in items:
                raise DocumentConflictError(
                    f"Item {document['id']} already exists in {container}", status_code=409
                )
            for field_name in self._unique_keys.get(container, ()):
                value = document.get(field_name)
                if value is not None and any(
                    existing.get(field_name) == value for existing in items.values()
                ):
                    raise DocumentConflictError(
                        f"Unique key {field_name}={value!r} already exists in {container}",
                        status_code=409,
                    )

            stored = copy.deepcopy(document)
            stored["_etag"] = f'"{uuid.uuid4().hex}"'
            stored["_ts"] = int(time.time())
            items[key] = stored
            return copy.deepcopy(stored)

    async def read_item(
        self, container: str, item_id: str, partition_key: str
    ) -> Optional[Dict[str, Any]]:
        item = self._containers.get(container, {}).get((partition_key, item_id))
        return copy.deepcopy(item) if item is not None else None

    def list_items(self, container: str) -> List[Dict[str, Any]]:
        """All documents in a container (inspection helper)."""
        return [copy.deepcopy(item) for item in self._containers.get(container, {}).values()]


COSMOS_API_VERSION = "2018-12-31"


def cosmos_master_key_token(
    master_key: bytes, verb: str, resource_type: str, resource_link: str, date: str
) -> str:
    """
    Build the master-key authorization header value of the Cosmos REST API.

    Args:
        master_key: Decoded (raw bytes) account key
        verb: HTTP method
        resource_type: "docs" for documents
        resource_link: Resource path without leading slash; for a create this
            is the parent collection (dbs/{db}/colls/{coll})
        date: The exact x-ms-date header value sent with the request
    """
    payload = f"{verb.lower()}\n{resource_type.lower()}\n{resource_link}\n{date.lower()}\n\n"
    digest = hmac.new(master_key, payload.encode("utf-8"), hashlib.sha256).digest()
    signature = base64.b64encode(digest).decode("utf-8")
    return quote(f"type=master&ver=1.0&sig={signature}", safe="")


class HttpDocumentStore(BaseServiceClient, DocumentStore):
    """Async client for the Cosmos DB document REST API.

    Documents live at {base_url}/dbs/{database}/colls/{container}/docs and the
    partition key travels in the x-ms-documentdb-partitionkey header. Every
    request is signed with the account master key (COSMOS_KEY).
    """

    def __init__(
        self,
        base_url: str,
        database: str,
        master_key: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: Account endpoint, e.g. https://factory.documents.azure.com:443
            database: Database name
            master_key: Base64 account key; None sends unsigned requests
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests)

        Raises:
            ConfigurationError: If the master key is not valid base64
        """
        # The master key signs requests; it is never sent as a bearer token
        super().__init__(base_url=base_url, api_key=None, timeout=timeout, transport=transport)
        self.database = database
        self._master_key: Optional[bytes] = None
        if master_key:
            try:
                self._master_key = base64.b64decode(master_key, validate=True)
            except (binascii.Error, ValueError):
                raise ConfigurationError("COSMOS_KEY is not a valid base64 account key")

    def _collection_link(self, container: str) -> str:
        return f"dbs/{self.database}/colls/{container}"

    def _docs_url(self, container: str) -> str:
        return f"{self.base_url}/{self._collection_link(container)}/docs"

    def _request_headers(self, verb: str, resource_link: str, partition_key: str) -> Dict[str, str]:
        date = formatdate(usegmt=True)
        extra = {
            "x-ms-date": date,
            "x-ms-version": COSMOS_API_VERSION,
            "x-ms-documentdb-partitionkey": json.dumps([partition_key]),
        }
        if self._master_key is not None:
            extra["Authorization"] = cosmos_master_key_token(
                self._master_key, verb, "docs", resource_link, date
            )
        return self._headers(extra=extra)

    @staticmethod
    def _raise_for_status(response: httpx.Response, operation: str) -> None:
        status = response.status_code
        if status == 409:
            raise DocumentConflictError(f"{operation}: conflict", status_code=status)
        if status == 429:
            raise DocumentThrottledError(f"{operation}: throttled", status_code=status)
        if status >= 500:
            raise DocumentStoreUnavailableError(
                f"{operation}: store returned {status}", status_code=status
            )
        if status >= 400:
            raise DocumentStoreError(
                f"{operation}: store returned {status}: {response.text}", status_code=status
            )

    async def create_item(
        self, container: str, document: Dict[str, Any], partition_key: str
    ) -> Dict[str, Any]:
        try:
            async with self._get_client() as client:
                response = await client.post(
                    self._docs_url(container),
                    json=document,
                    headers=self._request_headers(
                        "post", self._collection_link(container), partition_key
                    ),
                )
        except httpx.TransportError as e:
            raise DocumentStoreUnavailableError(f"create_item({container}): {e}")

        self._raise_for_status(response, f"create_item({container})")
        return response.json()

    async def read_item(
        self, container: str, item_id: str, partition_key: str
    ) -> Optional[Dict[str, Any]]:
        try:
            async with self._get_client() as client:
                response = await client.get(
                    f"{self._docs_url(container)}/{item_id}",
                    headers=self._request_headers(
                        "get", f"{self._collection_link(container)}/docs/{item_id}", partition_key
                    ),
                )
        except httpx.TransportError as e:
            raise DocumentStoreUnavailableError(f"read_item({container}, {item_id}): {e}")

        if response.status_code == 404:
            return None
        self._raise_for_status(response, f"read_item({container}, {item_id})")
        return response.json()
