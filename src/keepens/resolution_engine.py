"""
Domain Resolution Engine for the KeepENS system.

This module combines indexer discovery across both namespaces with
authoritative on-chain expiry reads and produces one ordered view of
everything an address owns:

1. Query the indexer for both namespaces concurrently
2. Drop records without a label or owner
3. Read each domain's expiry from chain, falling back to the indexer value
4. Derive days left and urgency
5. Enforce unique ids and sort by expiry (stable)
"""

import asyncio
import time
from typing import Callable, Optional, Protocol

from .address import addresses_equal
from .audit_logger import AuditLogger
from .enums import LogLevel, Namespace, Urgency
from .exceptions import ChainReadError
from .label_hasher import label_to_identifier
from .models import DomainRecord, ResolvedDomain


SECONDS_PER_DAY = 86400
VERY_SOON_DAYS = 7
SOON_DAYS = 30


class DomainIndexer(Protocol):
    """What the engine needs from an indexer client."""

    async def fetch_owned_domains(
        self, owner_address: str, namespace: Namespace
    ) -> list[DomainRecord]:
        ...


class ExpiryReader(Protocol):
    """What the engine needs from a chain reader."""

    async def get_authoritative_expiry(
        self, identifier: str, namespace: Namespace, is_wrapped: bool
    ) -> int:
        ...


def compute_days_left(expiry_timestamp: int, now_seconds: int) -> int:
    """Whole days until expiry, floored; negative once expired."""
    return (expiry_timestamp - now_seconds) // SECONDS_PER_DAY


def classify_urgency(days_left: int) -> Urgency:
    """
    Map days left to an urgency level.

    Boundaries: below 0 expired, 0-7 very soon, 8-30 soon, above 30 active.
    """
    if days_left < 0:
        return Urgency.EXPIRED
    if days_left <= VERY_SOON_DAYS:
        return Urgency.EXPIRING_VERY_SOON
    if days_left <= SOON_DAYS:
        return Urgency.EXPIRING_SOON
    return Urgency.ACTIVE


def synthesize_id(label: str, namespace: Namespace) -> str:
    """Id used when the indexer supplies none."""
    return f"{label}-{namespace.value}"


class DomainResolutionEngine:
    """
    Resolves every domain an address owns into ResolvedDomain objects.

    Collaborators are injected and owned by the caller. Expiry of 0 in the
    output means neither chain nor indexer could supply a value; it is
    classified as expired like a genuinely lapsed name.
    """

    NAMESPACES = (Namespace.PRIMARY, Namespace.L2)

    def __init__(
        self,
        indexer: DomainIndexer,
        chain_reader: ExpiryReader,
        wrapper_address: str,
        logger: Optional[AuditLogger] = None,
        clock: Callable[[], float] = time.time,
        max_concurrent_reads: int = 10,
    ) -> None:
        """
        Initialize the engine.

        Args:
            indexer: Source of DomainRecords per namespace
            chain_reader: Source of authoritative expiry
            wrapper_address: Name wrapper contract address on the primary chain
            logger: Optional audit logger
            clock: Returns current time in seconds
            max_concurrent_reads: Upper bound on in-flight chain reads
        """
        if max_concurrent_reads < 1:
            raise ValueError("max_concurrent_reads must be at least 1")
        self._indexer = indexer
        self._chain_reader = chain_reader
        self._wrapper_address = wrapper_address
        self._logger = logger
        self._clock = clock
        self._max_concurrent_reads = max_concurrent_reads

    async def resolve(self, owner_address: str) -> list[ResolvedDomain]:
        """
        Discover and resolve all domains owned by an address.

        Indexer failures degrade to fewer results; only an unexpected
        exception from the indexer layer propagates.

        Args:
            owner_address: Wallet address, any case

        Returns:
            Resolved domains sorted by expiry ascending; empty if none
        """
        batches = await asyncio.gather(
            *(
                self._indexer.fetch_owned_domains(owner_address, namespace)
                for namespace in self.NAMESPACES
            )
        )
        records = [record for batch in batches for record in batch]

        candidates = [r for r in records if r.label and r.owner_address]
        dropped = len(records) - len(candidates)
        if dropped:
            self._log(
                LogLevel.DEBUG,
                f"Dropped {dropped} record(s) without label or owner",
                {"owner": owner_address.lower(), "dropped": dropped},
            )

        now = int(self._clock())
        semaphore = asyncio.Semaphore(self._max_concurrent_reads)
        resolved = await asyncio.gather(
            *(self._resolve_record(record, now, semaphore) for record in candidates)
        )

        by_id: dict[str, ResolvedDomain] = {}
        for domain in resolved:
            if domain.id in by_id:
                self._log(
                    LogLevel.WARN,
                    f"Duplicate domain id {domain.id}; keeping the later record",
                    {
                        "id": domain.id,
                        "replaced_name": by_id[domain.id].name,
                        "name": domain.name,
                    },
                )
                del by_id[domain.id]
            by_id[domain.id] = domain

        result = sorted(by_id.values(), key=lambda d: d.expiry_timestamp)

        self._log(
            LogLevel.INFO,
            f"Resolved {len(result)} domain(s)",
            {
                "owner": owner_address.lower(),
                "discovered": len(records),
                "resolved": len(result),
            },
        )
        return result

    async def _resolve_record(
        self,
        record: DomainRecord,
        now: int,
        semaphore: asyncio.Semaphore,
    ) -> ResolvedDomain:
        is_wrapped = record.namespace is Namespace.PRIMARY and addresses_equal(
            record.owner_address, self._wrapper_address
        )
        identifier = label_to_identifier(record.label)

        try:
            async with semaphore:
                expiry = await self._chain_reader.get_authoritative_expiry(
                    identifier, record.namespace, is_wrapped
                )
        except ChainReadError as e:
            expiry = record.raw_expiry if record.raw_expiry is not None else 0
            self._log(
                LogLevel.WARN,
                f"Chain read failed for {record.full_name}, using fallback expiry",
                {
                    "name": record.full_name,
                    "namespace": record.namespace.value,
                    "is_wrapped": is_wrapped,
                    "error_code": e.code,
                    "error": e.message,
                    "fallback_expiry": expiry,
                },
            )

        days_left = compute_days_left(expiry, now)

        return ResolvedDomain(
            id=record.external_id or synthesize_id(record.label, record.namespace),
            name=record.full_name,
            label=record.label,
            expiry_timestamp=expiry,
            owner_address=record.owner_address.lower(),
            days_left=days_left,
            urgency=classify_urgency(days_left),
            is_wrapped=is_wrapped,
            namespace=record.namespace,
        )

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "DomainResolutionEngine", message, data)
