"""
Connected-address resolution for social identities.

Maps a Farcaster id (fid) to the wallet addresses the user has verified,
using the Neynar API. This is best-effort enrichment: every failure
(missing API key, bad fid, network, unknown user, odd payload) yields an
empty list so the plain wallet-connection flow is never blocked.

Address extraction is an ordered list of strategies over the user payload,
because the API has shipped several shapes over time. The first strategy
returning a non-empty result wins.
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional

import httpx

from .address import normalize_address
from .audit_logger import AuditLogger, preview_secret
from .config import IdentityConfig
from .enums import IdentityErrorCode, LogLevel
from .exceptions import IdentityLookupError


class NeynarClient:
    """Async client for the Neynar user lookup endpoint."""

    BULK_USERS_PATH = "/v2/farcaster/user/bulk"

    def __init__(
        self,
        config: IdentityConfig,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._config = config
        self._api_key = config.api_key.strip()
        self._client = http_client
        self._owns_client = http_client is None

    @property
    def configured(self) -> bool:
        """Whether an API key is available."""
        return bool(self._api_key)

    @property
    def api_key_preview(self) -> str:
        return preview_secret(self._api_key)

    async def fetch_user(self, fid: int) -> dict:
        """
        Fetch one user object by fid.

        Raises:
            IdentityLookupError: On any failure, including an unknown fid
        """
        if not self._api_key:
            raise IdentityLookupError(
                code=IdentityErrorCode.MISSING_API_KEY.value,
                message="Neynar API key not configured",
            )

        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._config.timeout_seconds),
            )

        url = f"{self._config.base_url.rstrip('/')}{self.BULK_USERS_PATH}"
        try:
            response = await self._client.get(
                url,
                params={"fids": str(fid)},
                headers={"x-api-key": self._api_key, "Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            raise IdentityLookupError(
                code=IdentityErrorCode.NETWORK_ERROR.value,
                message=f"Connection error: {e}",
                details={"fid": fid},
            )

        if response.status_code in (401, 403):
            raise IdentityLookupError(
                code=IdentityErrorCode.AUTH_ERROR.value,
                message=f"Neynar rejected the API key (HTTP {response.status_code})",
                details={"fid": fid, "response": _safe_json(response)},
            )
        if response.status_code == 404:
            raise IdentityLookupError(
                code=IdentityErrorCode.NOT_FOUND.value,
                message=f"No user found for fid {fid}",
                details={"fid": fid},
            )
        if response.status_code != 200:
            raise IdentityLookupError(
                code=IdentityErrorCode.HTTP_ERROR.value,
                message=f"Unexpected HTTP status: {response.status_code}",
                details={"fid": fid, "response": _safe_json(response)},
            )

        payload = _safe_json(response)
        users = payload.get("users") if isinstance(payload, dict) else None
        if not isinstance(users, list):
            raise IdentityLookupError(
                code=IdentityErrorCode.PARSE_ERROR.value,
                message="Neynar response has no users list",
                details={"fid": fid},
            )
        if not users or not isinstance(users[0], dict):
            raise IdentityLookupError(
                code=IdentityErrorCode.NOT_FOUND.value,
                message=f"No user found for fid {fid}",
                details={"fid": fid},
            )
        return users[0]

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


def _safe_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _clean_addresses(values: Any) -> list[str]:
    """Lowercase, validate and de-duplicate, preserving first-seen order."""
    if isinstance(values, str):
        values = [values]
    if not isinstance(values, list):
        return []
    normalized = (normalize_address(v) for v in values if isinstance(v, str))
    return list(dict.fromkeys(a for a in normalized if a))


def verified_eth_addresses(user: dict) -> Optional[list[str]]:
    """Current shape: user.verified_addresses.eth_addresses."""
    verified = user.get("verified_addresses")
    if not isinstance(verified, dict):
        return None
    return _clean_addresses(verified.get("eth_addresses")) or None


def primary_eth_address(user: dict) -> Optional[list[str]]:
    """user.verified_addresses.primary.eth_address."""
    verified = user.get("verified_addresses")
    primary = verified.get("primary") if isinstance(verified, dict) else None
    if not isinstance(primary, dict):
        return None
    return _clean_addresses(primary.get("eth_address")) or None


def legacy_verifications(user: dict) -> Optional[list[str]]:
    """Older shape: a flat user.verifications list."""
    return _clean_addresses(user.get("verifications")) or None


@dataclass(frozen=True)
class AddressStrategy:
    """A named way of pulling addresses out of a user payload."""

    name: str
    extract: Callable[[dict], Optional[list[str]]]


DEFAULT_STRATEGIES = (
    AddressStrategy("verified_addresses", verified_eth_addresses),
    AddressStrategy("primary_address", primary_eth_address),
    AddressStrategy("legacy_verifications", legacy_verifications),
)


class ConnectedAddressResolver:
    """Resolves a social id to its verified wallet addresses; never raises."""

    def __init__(
        self,
        lookup: NeynarClient,
        strategies: tuple[AddressStrategy, ...] = DEFAULT_STRATEGIES,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._lookup = lookup
        self._strategies = strategies
        self._logger = logger

    async def resolve_addresses_for_identity(self, social_id: str) -> list[str]:
        """
        Resolve verified wallet addresses for a Farcaster id.

        Args:
            social_id: Numeric fid as a string (an int is accepted too)

        Returns:
            Lowercase, de-duplicated addresses; empty on any failure
        """
        try:
            fid = _parse_fid(social_id)
            user = await self._lookup.fetch_user(fid)
        except IdentityLookupError as e:
            level = LogLevel.WARN
            data = {"social_id": str(social_id), "error_code": e.code, "error": e.message}
            if e.code == IdentityErrorCode.AUTH_ERROR.value:
                level = LogLevel.ERROR
                data["key_preview"] = self._lookup.api_key_preview
            self._log(level, "Identity lookup failed", data)
            return []

        for strategy in self._strategies:
            try:
                addresses = strategy.extract(user)
            except Exception as e:
                self._log(
                    LogLevel.WARN,
                    f"Address strategy '{strategy.name}' failed",
                    {"fid": fid, "strategy": strategy.name, "error": str(e)},
                )
                continue
            if addresses:
                self._log(
                    LogLevel.INFO,
                    f"Resolved {len(addresses)} address(es) via '{strategy.name}'",
                    {"fid": fid, "strategy": strategy.name, "addresses": addresses},
                )
                return addresses

        self._log(LogLevel.INFO, "User has no verified addresses", {"fid": fid})
        return []

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "ConnectedAddressResolver", message, data)


def _parse_fid(social_id: Any) -> int:
    text = str(social_id).strip()
    if not (text.isascii() and text.isdigit()):
        raise IdentityLookupError(
            code=IdentityErrorCode.INVALID_ID.value,
            message=f"Invalid fid: {social_id!r}",
        )
    return int(text)
