"""
Indexer client for discovering domains owned by an address.

This module queries subgraph (GraphQL) indexers for the domains an address
owns, one endpoint per namespace. Responses are loosely typed, so only the
fields we need are extracted and anything unrecognized is treated as no data.

A failing indexer never raises out of fetch_owned_domains: it logs the
failure and returns an empty list, so one namespace being down cannot
block results from the other. No retries happen at this layer.
"""

from typing import Any, Optional

import httpx

from .audit_logger import AuditLogger
from .config import IndexerConfig
from .enums import IndexerErrorCode, LogLevel, Namespace
from .exceptions import IndexerError
from .models import DomainRecord


class IndexerClient:
    """
    Async GraphQL client for the ENS and Basenames subgraphs.

    The HTTP client may be injected so one connection pool is shared for the
    life of the process; otherwise one is created on first use and closed
    by close() or the async context manager.
    """

    DOMAINS_QUERY = """
    query GetDomains($owner: String!) {
      domains(where: { owner: $owner }) {
        id
        name
        labelName
        expiryDate
        owner {
          id
        }
      }
    }
    """

    def __init__(
        self,
        config: IndexerConfig,
        http_client: Optional[httpx.AsyncClient] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Initialize the indexer client.

        Args:
            config: Indexer endpoints and timeout
            http_client: Optional shared HTTP client (not closed by us)
            logger: Optional audit logger
        """
        self._config = config
        self._client = http_client
        self._owns_client = http_client is None
        self._logger = logger

    async def __aenter__(self) -> "IndexerClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def get_endpoint(self, namespace: Namespace) -> str:
        """Get the subgraph URL serving a namespace."""
        if namespace is Namespace.L2:
            return self._config.l2_endpoint
        return self._config.primary_endpoint

    def belongs_to_namespace(self, name: str, namespace: Namespace) -> bool:
        """
        Namespace filter predicate on the name suffix.

        L2 names end in the configured suffix ('.base.eth'); everything else
        served by the primary subgraph is a primary name.
        """
        is_l2_name = name.lower().endswith(self._config.l2_name_suffix)
        return is_l2_name if namespace is Namespace.L2 else not is_l2_name

    async def fetch_owned_domains(
        self, owner_address: str, namespace: Namespace
    ) -> list[DomainRecord]:
        """
        Fetch the domains an address owns within one namespace.

        Args:
            owner_address: Wallet address in any case
            namespace: Which naming system to query

        Returns:
            Parsed domain records; empty on any failure
        """
        endpoint = self.get_endpoint(namespace)
        owner = owner_address.strip().lower()

        try:
            payload = await self._query(endpoint, owner)
            records = self._parse_domains(payload, namespace)
        except IndexerError as e:
            self._log(
                LogLevel.WARN,
                f"Indexer query failed for {namespace.value} namespace",
                {
                    "namespace": namespace.value,
                    "endpoint": endpoint,
                    "owner": owner,
                    "error_code": e.code,
                    "error": e.message,
                },
            )
            return []

        self._log(
            LogLevel.DEBUG,
            f"Indexer returned {len(records)} {namespace.value} domain(s)",
            {"namespace": namespace.value, "owner": owner, "count": len(records)},
        )
        return records

    async def _query(self, endpoint: str, owner: str) -> dict:
        """
        POST the domains query and return the decoded JSON body.

        Raises:
            IndexerError: On transport, HTTP, GraphQL or decoding failures
        """
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._config.timeout_seconds),
                follow_redirects=True,
            )

        try:
            response = await self._client.post(
                endpoint,
                json={"query": self.DOMAINS_QUERY, "variables": {"owner": owner}},
                headers={"Accept": "application/json"},
            )
        except httpx.TimeoutException:
            raise IndexerError(
                code=IndexerErrorCode.TIMEOUT.value,
                message=f"Indexer request timed out after {self._config.timeout_seconds}s",
                details={"endpoint": endpoint},
            )
        except httpx.HTTPError as e:
            raise IndexerError(
                code=IndexerErrorCode.NETWORK_ERROR.value,
                message=f"Connection error: {e}",
                details={"endpoint": endpoint},
            )

        if response.status_code != 200:
            raise IndexerError(
                code=IndexerErrorCode.HTTP_ERROR.value,
                message=f"Unexpected HTTP status: {response.status_code}",
                details={"endpoint": endpoint, "status_code": response.status_code},
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise IndexerError(
                code=IndexerErrorCode.PARSE_ERROR.value,
                message=f"Indexer returned invalid JSON: {e}",
                details={"endpoint": endpoint},
            )

        if not isinstance(payload, dict):
            raise IndexerError(
                code=IndexerErrorCode.PARSE_ERROR.value,
                message="Indexer response is not a JSON object",
                details={"endpoint": endpoint},
            )

        if payload.get("errors"):
            raise IndexerError(
                code=IndexerErrorCode.GRAPHQL_ERROR.value,
                message="Indexer returned GraphQL errors",
                details={"endpoint": endpoint, "errors": payload["errors"]},
            )

        return payload

    def _parse_domains(self, payload: dict, namespace: Namespace) -> list[DomainRecord]:
        """
        Extract domain records from a GraphQL payload.

        Raises:
            IndexerError: If the payload has no domains list at all
        """
        data = payload.get("data")
        domains = data.get("domains") if isinstance(data, dict) else None
        if domains is None and isinstance(data, dict) and "domains" in data:
            return []
        if not isinstance(domains, list):
            raise IndexerError(
                code=IndexerErrorCode.PARSE_ERROR.value,
                message="Indexer response has no domains list",
            )

        records = []
        for item in domains:
            record = self._parse_domain(item, namespace)
            if record is not None:
                records.append(record)
        return records

    def _parse_domain(self, item: Any, namespace: Namespace) -> Optional[DomainRecord]:
        """Parse one domain entry, or None if it is unusable or out of namespace."""
        if not isinstance(item, dict):
            return None

        name = item.get("name")
        if not isinstance(name, str) or not name:
            return None
        if not self.belongs_to_namespace(name, namespace):
            return None

        external_id = item.get("id")
        if not isinstance(external_id, str) or not external_id:
            external_id = None

        label = item.get("labelName")
        if not isinstance(label, str):
            label = ""

        owner = item.get("owner")
        owner_address = owner.get("id") if isinstance(owner, dict) else owner
        if not isinstance(owner_address, str):
            owner_address = ""

        return DomainRecord(
            external_id=external_id,
            full_name=name,
            label=label,
            raw_expiry=parse_raw_expiry(item.get("expiryDate")),
            owner_address=owner_address,
            namespace=namespace,
        )

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "IndexerClient", message, data)

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


def parse_raw_expiry(value: Any) -> Optional[int]:
    """
    Parse an indexer expiry (decimal string or int) into seconds.

    Returns:
        The non-negative integer, or None when absent or unparseable
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, str):
        text = value.strip()
        if text.isascii() and text.isdigit():
            return int(text)
    return None
