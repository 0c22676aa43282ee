"""
Chain reader for authoritative domain expiry.

Reads expiry timestamps straight from registrar contracts with JSON-RPC
eth_call. Three read paths exist, keyed by namespace and wrapping:

- l2: the Basenames registrar's nameExpires(uint256)
- primary, unwrapped: the ENS base registrar's nameExpires(uint256)
- primary, wrapped: the name wrapper's getData(uint256), which returns
  (owner, fuses, expiry); only expiry is used

Every failure surfaces as ChainReadError so callers can apply their own
fallback policy.
"""

import itertools
from dataclasses import dataclass
from typing import Any, Optional, Sequence

import httpx
from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import decode_hex, function_signature_to_4byte_selector

from .audit_logger import AuditLogger
from .config import ChainConfig
from .enums import ChainReadErrorCode, LogLevel, Namespace
from .exceptions import ChainReadError
from .label_hasher import identifier_to_token_id


@dataclass(frozen=True)
class ContractFunction:
    """A read-only contract function and the output field we care about."""

    signature: str
    output_types: tuple[str, ...]
    result_index: int = 0

    @property
    def input_types(self) -> list[str]:
        args = self.signature[self.signature.index("(") + 1:-1]
        return [t for t in args.split(",") if t]

    @property
    def selector(self) -> bytes:
        return function_signature_to_4byte_selector(self.signature)


NAME_EXPIRES = ContractFunction("nameExpires(uint256)", ("uint256",))
WRAPPER_GET_DATA = ContractFunction(
    "getData(uint256)", ("address", "uint32", "uint64"), result_index=2
)


class ChainReader:
    """
    Async JSON-RPC reader for registrar contracts.

    One HTTP client is shared across both chains; reads are side-effect
    free, so concurrent use needs no locking.
    """

    def __init__(
        self,
        config: ChainConfig,
        http_client: Optional[httpx.AsyncClient] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Initialize the chain reader.

        Args:
            config: RPC URLs and contract addresses
            http_client: Optional shared HTTP client (not closed by us)
            logger: Optional audit logger
        """
        self._config = config
        self._client = http_client
        self._owns_client = http_client is None
        self._logger = logger
        self._request_ids = itertools.count(1)

    async def __aenter__(self) -> "ChainReader":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def get_read_path(
        self, namespace: Namespace, is_wrapped: bool
    ) -> tuple[str, str, ContractFunction]:
        """
        Pick the RPC URL, contract and function for a domain.

        Wrapping only exists on the primary chain; is_wrapped is ignored
        for l2 names.

        Returns:
            Tuple of (rpc_url, contract_address, function)
        """
        if namespace is Namespace.L2:
            return (
                self._config.l2_rpc_url,
                self._config.l2_registrar_address,
                NAME_EXPIRES,
            )
        if is_wrapped:
            return (
                self._config.primary_rpc_url,
                self._config.name_wrapper_address,
                WRAPPER_GET_DATA,
            )
        return (
            self._config.primary_rpc_url,
            self._config.base_registrar_address,
            NAME_EXPIRES,
        )

    async def get_authoritative_expiry(
        self, identifier: str, namespace: Namespace, is_wrapped: bool
    ) -> int:
        """
        Read a domain's expiry timestamp from chain.

        Args:
            identifier: Labelhash from label_to_identifier()
            namespace: Which chain and registrar to read
            is_wrapped: Whether the name wrapper holds the name

        Returns:
            Expiry in seconds since epoch

        Raises:
            ChainReadError: On revert, transport or decoding failure
        """
        token_id = identifier_to_token_id(identifier)
        rpc_url, contract, function = self.get_read_path(namespace, is_wrapped)

        values = await self.call_contract(rpc_url, contract, function, [token_id])
        expiry = values[function.result_index]

        if not isinstance(expiry, int) or expiry < 0:
            raise ChainReadError(
                code=ChainReadErrorCode.DECODE_ERROR.value,
                message=f"Unexpected expiry value: {expiry!r}",
                details={"contract": contract, "function": function.signature},
            )
        return expiry

    async def call_contract(
        self,
        rpc_url: str,
        contract_address: str,
        function: ContractFunction,
        args: Sequence[Any],
    ) -> tuple:
        """
        Perform one eth_call and decode the return data.

        Raises:
            ChainReadError: On any failure
        """
        calldata = function.selector + encode(function.input_types, list(args))
        result = await self._rpc(
            rpc_url,
            "eth_call",
            [{"to": contract_address, "data": "0x" + calldata.hex()}, "latest"],
        )

        details = {"contract": contract_address, "function": function.signature}
        if not isinstance(result, str) or result in ("0x", ""):
            # Empty return data: no contract at the address, or a bare revert
            raise ChainReadError(
                code=ChainReadErrorCode.REVERTED.value,
                message="Contract call returned no data",
                details=details,
            )

        try:
            return decode(list(function.output_types), decode_hex(result))
        except (DecodingError, ValueError, TypeError) as e:
            raise ChainReadError(
                code=ChainReadErrorCode.DECODE_ERROR.value,
                message=f"Failed to decode contract response: {e}",
                details=details,
            )

    async def _rpc(self, rpc_url: str, method: str, params: list) -> Any:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._config.timeout_seconds),
            )

        request = {
            "jsonrpc": "2.0",
            "id": next(self._request_ids),
            "method": method,
            "params": params,
        }

        try:
            response = await self._client.post(rpc_url, json=request)
        except httpx.TimeoutException:
            raise ChainReadError(
                code=ChainReadErrorCode.TIMEOUT.value,
                message=f"RPC request timed out after {self._config.timeout_seconds}s",
                details={"rpc_url": rpc_url},
            )
        except httpx.HTTPError as e:
            raise ChainReadError(
                code=ChainReadErrorCode.NETWORK_ERROR.value,
                message=f"Connection error: {e}",
                details={"rpc_url": rpc_url},
            )

        if response.status_code != 200:
            raise ChainReadError(
                code=ChainReadErrorCode.HTTP_ERROR.value,
                message=f"Unexpected HTTP status: {response.status_code}",
                details={"rpc_url": rpc_url, "status_code": response.status_code},
            )

        try:
            body = response.json()
        except ValueError as e:
            raise ChainReadError(
                code=ChainReadErrorCode.DECODE_ERROR.value,
                message=f"RPC returned invalid JSON: {e}",
                details={"rpc_url": rpc_url},
            )

        if not isinstance(body, dict):
            raise ChainReadError(
                code=ChainReadErrorCode.DECODE_ERROR.value,
                message="RPC response is not a JSON object",
                details={"rpc_url": rpc_url},
            )

        if body.get("error") is not None:
            error = body["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise ChainReadError(
                code=ChainReadErrorCode.REVERTED.value,
                message=f"RPC error: {message}",
                details={"rpc_url": rpc_url, "error": error},
            )

        self._log(LogLevel.DEBUG, f"{method} succeeded", {"rpc_url": rpc_url})
        return body.get("result")

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "ChainReader", message, data)

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
