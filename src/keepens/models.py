"""
Data models for the KeepENS system.

This module defines the transient domain structures produced during
resolution and the records kept by the subscription store.
"""

from dataclasses import dataclass, field
from typing import Optional

from .enums import Namespace, Urgency


@dataclass
class DomainRecord:
    """A domain as reported by an indexer, before on-chain resolution."""

    external_id: Optional[str]  # Indexer id, namespace-scoped
    full_name: str  # e.g. "alice.eth", "alice.base.eth"
    label: str  # Leftmost segment
    raw_expiry: Optional[int]  # Indexer-reported expiry, fallback only
    owner_address: str  # As reported, any case
    namespace: Namespace


@dataclass
class ResolvedDomain:
    """A domain with authoritative expiry and derived urgency."""

    id: str
    name: str
    label: str
    expiry_timestamp: int  # 0 means unknown
    owner_address: str
    days_left: int
    urgency: Urgency
    is_wrapped: bool
    namespace: Namespace

    def to_dict(self) -> dict:
        """Convert to a JSON-serializable dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "label": self.label,
            "expiry_timestamp": self.expiry_timestamp,
            "owner_address": self.owner_address,
            "days_left": self.days_left,
            "urgency": self.urgency.value,
            "is_wrapped": self.is_wrapped,
            "namespace": self.namespace.value,
        }


@dataclass
class Subscriber:
    """A wallet owner who can receive expiry emails."""

    id: str
    wallet_address: str  # Lowercase
    email: Optional[str]
    fid: Optional[str]
    created_at: str
    updated_at: str


@dataclass
class Subscription:
    """A subscriber's request to be notified about one domain."""

    id: str
    subscriber_id: str
    name: str
    expiry_date: int  # Seconds since epoch
    namespace: str = Namespace.PRIMARY.value
    notified: bool = False
    last_notified_at: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""


@dataclass
class StoredState:
    """Complete stored subscription state with HMAC protection."""

    version: int
    subscribers: dict[str, Subscriber] = field(default_factory=dict)
    subscriptions: dict[str, Subscription] = field(default_factory=dict)
    last_updated: str = ""
    hmac: str = ""
