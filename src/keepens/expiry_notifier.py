"""
Expiry notification job.

Finds subscriptions expiring within a threshold, groups them per
recipient email, sends one notice per recipient and marks the grouped
subscriptions as notified when delivery succeeds.
"""

import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from .audit_logger import AuditLogger
from .enums import LogLevel
from .exceptions import ValidationError
from .notifications import (
    ExpiryNotice,
    NoticeDomain,
    NotificationResult,
    NotificationRouter,
    format_expiry_date,
)
from .resolution_engine import compute_days_left
from .subscription_store import SubscriptionStore


EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def validate_email(email: str) -> str:
    """
    Check an email address has the shape local@domain.tld.

    Raises:
        ValidationError: If it does not
    """
    candidate = (email or "").strip()
    if not EMAIL_PATTERN.match(candidate):
        raise ValidationError(
            code="invalid_email",
            message=f"Invalid email format: {email!r}",
        )
    return candidate


@dataclass
class NotificationSummary:
    """Outcome of one job run."""

    sent: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "sent": self.sent,
            "failed": self.failed,
            "skipped": self.skipped,
            "errors": list(self.errors),
        }


class ExpiryNotifier:
    """Runs the expiry check over the subscription store."""

    def __init__(
        self,
        store: SubscriptionStore,
        router: NotificationRouter,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._store = store
        self._router = router
        self._logger = logger

    async def run(
        self, days_threshold: int = 30, now: Optional[float] = None
    ) -> NotificationSummary:
        """
        Notify every subscriber with domains expiring within the threshold.

        Args:
            days_threshold: Look-ahead window in days
            now: Current time in seconds (defaults to the wall clock)

        Returns:
            Counts of sent, failed and skipped recipients
        """
        current = int(time.time() if now is None else now)
        summary = NotificationSummary()
        expiring = self._store.get_expiring(days_threshold, now=current)

        if not expiring:
            self._log(LogLevel.INFO, "No expiring domains found", {})
            return summary

        self._log(
            LogLevel.INFO,
            f"Found {len(expiring)} expiring subscription(s)",
            {"days_threshold": days_threshold},
        )

        # email -> [(subscription_id, NoticeDomain)]
        groups: dict[str, list[tuple[str, NoticeDomain]]] = {}
        for subscription, subscriber in expiring:
            if not subscriber.email:
                summary.skipped += 1
                self._log(
                    LogLevel.WARN,
                    f"No email for subscription {subscription.id}",
                    {"name": subscription.name, "wallet": subscriber.wallet_address},
                )
                continue
            groups.setdefault(subscriber.email, []).append((
                subscription.id,
                NoticeDomain(
                    name=subscription.name,
                    expiry_date=format_expiry_date(subscription.expiry_date),
                    days_left=compute_days_left(subscription.expiry_date, current),
                    namespace=subscription.namespace,
                ),
            ))

        for email, entries in groups.items():
            domains = [domain for _, domain in entries]
            notice = ExpiryNotice(
                to=email,
                domains=domains,
                user_name=domains[0].name.split(".")[0],
            )
            results = await self._router.notify(notice)

            if any(r.success for r in results):
                stamp = datetime.fromtimestamp(current, tz=timezone.utc).isoformat()
                for subscription_id, _ in entries:
                    self._store.mark_notified(subscription_id, stamp)
                summary.sent += 1
                self._log(
                    LogLevel.INFO,
                    f"Notice sent for {len(domains)} domain(s)",
                    {"to": email, "domains": [d.name for d in domains]},
                )
            else:
                summary.failed += 1
                summary.errors.append(
                    f"Failed to send to {email}: {self._describe_failure(results)}"
                )

        if summary.sent:
            self._store.save()

        self._log(LogLevel.INFO, "Expiry check completed", summary.to_dict())
        return summary

    @staticmethod
    def _describe_failure(results: list[NotificationResult]) -> str:
        if not results:
            return "no notification channels configured"
        return "; ".join(f"{r.channel}: {r.error}" for r in results)

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "ExpiryNotifier", message, data)


async def send_test_email(
    router: NotificationRouter, to: str
) -> list[NotificationResult]:
    """
    Send a sample notice for a fixture domain.

    Raises:
        ValidationError: If the address is malformed
    """
    notice = ExpiryNotice(
        to=validate_email(to),
        domains=[NoticeDomain(name="test.eth", expiry_date="January 15, 2025", days_left=7)],
        user_name="Test User",
    )
    return await router.notify(notice)
