"""
Subscription Store module for expiry notification subscriptions.

Keeps subscribers (wallet owners with an email) and their per-domain
subscriptions in an HMAC-protected JSON file. Subscriptions are keyed by
(wallet address, domain name).
"""

import hashlib
import hmac
import json
import time
import uuid
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .exceptions import PersistenceError, TamperingError
from .models import StoredState, Subscriber, Subscription


SECONDS_PER_DAY = 86400


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SubscriptionStore:
    """
    Persistent subscription storage with HMAC protection.

    Call load() before use when a file may already exist; save() writes
    the whole state atomically enough for a single-process job.
    """

    VERSION = 1

    def __init__(self, file_path: Path, hmac_secret: str) -> None:
        """
        Initialize the subscription store.

        Args:
            file_path: Path to the state file (JSON format)
            hmac_secret: Secret key for HMAC computation
        """
        self._file_path = file_path
        self._hmac_secret = hmac_secret.encode("utf-8")
        self._state = StoredState(version=self.VERSION)

    def load(self) -> Optional[StoredState]:
        """
        Load state from file and validate HMAC.

        Returns:
            StoredState if the file exists and is valid, None if it doesn't exist

        Raises:
            TamperingError: If HMAC validation fails
            PersistenceError: If the file cannot be read or parsed
        """
        if not self._file_path.exists():
            return None

        try:
            with open(self._file_path, "r", encoding="utf-8") as f:
                raw_data = json.load(f)
        except json.JSONDecodeError as e:
            raise PersistenceError(
                code="parse_error",
                message=f"Failed to parse state file: {e}",
                details={"file_path": str(self._file_path)},
            )
        except OSError as e:
            raise PersistenceError(
                code="io_error",
                message=f"Failed to read state file: {e}",
                details={"file_path": str(self._file_path)},
            )

        if not isinstance(raw_data, dict):
            raise PersistenceError(
                code="parse_error",
                message="State file does not contain a JSON object",
                details={"file_path": str(self._file_path)},
            )

        stored_hmac = raw_data.get("hmac", "")
        data_for_hmac = {
            "version": raw_data.get("version"),
            "subscribers": raw_data.get("subscribers", {}),
            "subscriptions": raw_data.get("subscriptions", {}),
            "last_updated": raw_data.get("last_updated"),
        }
        computed_hmac = self.compute_hmac(data_for_hmac)

        if not self.validate_hmac(stored_hmac, computed_hmac):
            raise TamperingError(
                code="hmac_mismatch",
                message="HMAC validation failed - data may have been tampered with",
                details={"file_path": str(self._file_path)},
            )

        try:
            subscribers = {
                key: Subscriber(**value)
                for key, value in data_for_hmac["subscribers"].items()
            }
            subscriptions = {
                key: Subscription(**value)
                for key, value in data_for_hmac["subscriptions"].items()
            }
        except (TypeError, AttributeError) as e:
            raise PersistenceError(
                code="parse_error",
                message=f"State file has unexpected structure: {e}",
                details={"file_path": str(self._file_path)},
            )

        self._state = StoredState(
            version=raw_data.get("version", self.VERSION),
            subscribers=subscribers,
            subscriptions=subscriptions,
            last_updated=raw_data.get("last_updated", ""),
            hmac=stored_hmac,
        )
        return self._state

    def save(self) -> None:
        """
        Save state to file with HMAC protection.

        Raises:
            PersistenceError: If the file cannot be written
        """
        now = _now_iso()
        data_for_hmac = {
            "version": self._state.version,
            "subscribers": {k: asdict(v) for k, v in self._state.subscribers.items()},
            "subscriptions": {k: asdict(v) for k, v in self._state.subscriptions.items()},
            "last_updated": now,
        }
        computed_hmac = self.compute_hmac(data_for_hmac)
        output_data = dict(data_for_hmac, hmac=computed_hmac)

        try:
            self._file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._file_path, "w", encoding="utf-8") as f:
                json.dump(output_data, f, indent=2, sort_keys=True)
        except OSError as e:
            raise PersistenceError(
                code="io_error",
                message=f"Failed to write state file: {e}",
                details={"file_path": str(self._file_path)},
            )

        self._state.last_updated = now
        self._state.hmac = computed_hmac

    # Subscribers

    def get_subscriber(self, wallet_address: str) -> Optional[Subscriber]:
        """Find a subscriber by wallet address (any case)."""
        wallet = wallet_address.strip().lower()
        for subscriber in self._state.subscribers.values():
            if subscriber.wallet_address == wallet:
                return subscriber
        return None

    def find_or_create_subscriber(
        self,
        wallet_address: str,
        email: Optional[str] = None,
        fid: Optional[str] = None,
    ) -> Subscriber:
        """
        Return the subscriber for a wallet, creating it if needed.

        A provided email or fid overwrites the stored value.
        """
        subscriber = self.get_subscriber(wallet_address)
        now = _now_iso()

        if subscriber is None:
            subscriber = Subscriber(
                id=str(uuid.uuid4()),
                wallet_address=wallet_address.strip().lower(),
                email=email,
                fid=fid,
                created_at=now,
                updated_at=now,
            )
            self._state.subscribers[subscriber.id] = subscriber
        elif email or fid:
            if email:
                subscriber.email = email
            if fid:
                subscriber.fid = fid
            subscriber.updated_at = now

        return subscriber

    # Subscriptions

    def _find_subscription(self, subscriber_id: str, name: str) -> Optional[Subscription]:
        for subscription in self._state.subscriptions.values():
            if subscription.subscriber_id == subscriber_id and subscription.name == name:
                return subscription
        return None

    def subscribe(
        self,
        wallet_address: str,
        name: str,
        expiry_date: int,
        namespace: str = "primary",
        email: Optional[str] = None,
        fid: Optional[str] = None,
    ) -> Subscription:
        """
        Create or update a subscription; updating resets the notified flag.
        """
        subscriber = self.find_or_create_subscriber(wallet_address, email, fid)
        now = _now_iso()

        subscription = self._find_subscription(subscriber.id, name)
        if subscription is None:
            subscription = Subscription(
                id=str(uuid.uuid4()),
                subscriber_id=subscriber.id,
                name=name,
                expiry_date=expiry_date,
                namespace=namespace,
                created_at=now,
                updated_at=now,
            )
            self._state.subscriptions[subscription.id] = subscription
        else:
            subscription.expiry_date = expiry_date
            subscription.namespace = namespace
            subscription.notified = False
            subscription.updated_at = now

        return subscription

    def unsubscribe(self, wallet_address: str, name: str) -> None:
        """
        Remove a subscription.

        Raises:
            PersistenceError: If no such subscription exists
        """
        subscriber = self.get_subscriber(wallet_address)
        subscription = (
            self._find_subscription(subscriber.id, name) if subscriber else None
        )
        if subscription is None:
            raise PersistenceError(
                code="not_found",
                message=f"No subscription for {name}",
                details={"wallet_address": wallet_address.lower(), "name": name},
            )
        del self._state.subscriptions[subscription.id]

    def list_subscriptions(self, wallet_address: str) -> list[Subscription]:
        """A wallet's subscriptions ordered by expiry ascending."""
        subscriber = self.get_subscriber(wallet_address)
        if subscriber is None:
            return []
        return sorted(
            (
                s for s in self._state.subscriptions.values()
                if s.subscriber_id == subscriber.id
            ),
            key=lambda s: s.expiry_date,
        )

    def is_subscribed(self, wallet_address: str, name: str) -> bool:
        subscriber = self.get_subscriber(wallet_address)
        return bool(subscriber and self._find_subscription(subscriber.id, name))

    def get_expiring(
        self, days_threshold: int = 30, now: Optional[float] = None
    ) -> list[tuple[Subscription, Subscriber]]:
        """
        Un-notified subscriptions expiring within the threshold.

        Already expired subscriptions are included. Ordered by expiry.
        """
        current = time.time() if now is None else now
        cutoff = current + days_threshold * SECONDS_PER_DAY

        expiring = [
            (subscription, self._state.subscribers[subscription.subscriber_id])
            for subscription in self._state.subscriptions.values()
            if not subscription.notified
            and subscription.expiry_date <= cutoff
            and subscription.subscriber_id in self._state.subscribers
        ]
        expiring.sort(key=lambda pair: pair[0].expiry_date)
        return expiring

    def mark_notified(self, subscription_id: str, timestamp: Optional[str] = None) -> None:
        """Flag a subscription as notified; unknown ids are ignored."""
        subscription = self._state.subscriptions.get(subscription_id)
        if subscription is None:
            return
        subscription.notified = True
        subscription.last_notified_at = timestamp or _now_iso()
        subscription.updated_at = subscription.last_notified_at

    def reset_notification(self, subscription_id: str) -> None:
        """Clear the notified flag so the next job run notifies again."""
        subscription = self._state.subscriptions.get(subscription_id)
        if subscription is None:
            return
        subscription.notified = False
        subscription.last_notified_at = None
        subscription.updated_at = _now_iso()

    def get_subscriber_stats(
        self, wallet_address: str, now: Optional[float] = None
    ) -> dict:
        """Counts of all, soon-expiring (30 days) and expired subscriptions."""
        current = time.time() if now is None else now
        soon = current + 30 * SECONDS_PER_DAY
        subscriptions = self.list_subscriptions(wallet_address)
        return {
            "total": len(subscriptions),
            "expiring_soon": sum(
                1 for s in subscriptions if current <= s.expiry_date <= soon
            ),
            "expired": sum(1 for s in subscriptions if s.expiry_date < current),
        }

    def compute_hmac(self, data: dict) -> str:
        """Compute HMAC-SHA256 over canonically serialized data."""
        serialized = json.dumps(data, sort_keys=True, separators=(",", ":"))
        return hmac.new(
            self._hmac_secret,
            serialized.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

    def validate_hmac(self, stored_hmac: str, computed_hmac: str) -> bool:
        """Validate HMAC using constant-time comparison."""
        return hmac.compare_digest(str(stored_hmac), computed_hmac)

    @property
    def state(self) -> StoredState:
        return self._state

    @property
    def file_path(self) -> Path:
        return self._file_path
