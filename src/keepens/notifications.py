"""
Notification Router module for the KeepENS system.

Provides email channels (Resend HTTPS API and SMTP) and a router that
delivers expiry notices with retry and exponential backoff, logging every
attempt when delivery finally fails.
"""

import asyncio
import smtplib
import ssl
from abc import abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional, Protocol, runtime_checkable

import httpx

from .audit_logger import AuditLogger
from .config import EmailConfig, ResendConfig, RetryConfig
from .enums import LogLevel, Namespace
from .retry_manager import RetryManager


ENS_RENEW_URL = "https://app.ens.domains/name/{name}/register"
BASENAME_RENEW_URL = "https://www.base.org/names/{label}"


def format_expiry_date(timestamp: int) -> str:
    """Format an epoch timestamp like 'January 15, 2026' (UTC)."""
    dt = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    return f"{dt.strftime('%B')} {dt.day}, {dt.year}"


@dataclass
class NoticeDomain:
    """One domain listed in an expiry notice."""

    name: str
    expiry_date: str
    days_left: int
    namespace: str = Namespace.PRIMARY.value

    @property
    def renew_url(self) -> str:
        if self.namespace == Namespace.L2.value:
            return BASENAME_RENEW_URL.format(label=self.name.split(".")[0])
        return ENS_RENEW_URL.format(name=self.name)


@dataclass
class ExpiryNotice:
    """An email telling one recipient which of their domains expire soon."""

    to: str
    domains: list[NoticeDomain] = field(default_factory=list)
    user_name: Optional[str] = None

    def subject(self) -> str:
        if len(self.domains) == 1:
            return "⚠️ Your ENS domain is expiring soon"
        return "⚠️ Your ENS domains are expiring soon"

    def body(self) -> str:
        greeting = f"Hello {self.user_name or 'there'},"
        if len(self.domains) == 1:
            intro = "Your ENS domain is expiring soon and may need your attention."
        else:
            intro = "Some of your ENS domains are expiring soon and may need your attention."

        lines = [greeting, "", intro, ""]
        for domain in self.domains:
            lines.extend([
                domain.name,
                f"  Expires: {domain.expiry_date}",
                f"  Days left: {domain.days_left}",
                f"  Renew: {domain.renew_url}",
                "",
            ])
        lines.append(
            "To stop receiving these notifications, unsubscribe from the domain."
        )
        return "\n".join(lines)


@dataclass
class NotificationResult:
    """Result of a notification delivery attempt."""

    channel: str
    success: bool
    error: Optional[str] = None
    attempts: int = 1


@runtime_checkable
class NotificationChannel(Protocol):
    """Protocol defining the interface for notification channels."""

    @abstractmethod
    async def send(self, notice: ExpiryNotice) -> bool:
        """
        Send a notice.

        Returns:
            True if delivery was successful, False otherwise
        """
        ...

    @abstractmethod
    def get_name(self) -> str:
        """Get the channel name."""
        ...


class ResendChannel:
    """Email channel using the Resend HTTPS API."""

    def __init__(
        self,
        config: ResendConfig,
        simulation_mode: bool = False,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Initialize Resend channel.

        Args:
            config: API key, sender and endpoint
            simulation_mode: If True, no real network requests are made
            http_client: Optional shared HTTP client
        """
        self._config = config
        self._simulation_mode = simulation_mode
        self._http_client = http_client

    async def send(self, notice: ExpiryNotice) -> bool:
        """Send the notice via Resend."""
        if self._simulation_mode:
            return True

        request = {
            "from": self._config.from_address,
            "to": [notice.to],
            "subject": notice.subject(),
            "text": notice.body(),
        }
        headers = {"Authorization": f"Bearer {self._config.api_key}"}

        if self._http_client is not None:
            response = await self._http_client.post(
                self._config.api_url, json=request, headers=headers, timeout=30.0
            )
        else:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    self._config.api_url, json=request, headers=headers, timeout=30.0
                )
        return 200 <= response.status_code < 300

    def get_name(self) -> str:
        return "resend"


class EmailChannel:
    """Email channel using SMTP with STARTTLS."""

    def __init__(
        self, config: EmailConfig, simulation_mode: bool = False
    ) -> None:
        """
        Initialize Email channel.

        Args:
            config: Email configuration with SMTP settings
            simulation_mode: If True, no real network requests are made
        """
        self._config = config
        self._simulation_mode = simulation_mode

    async def send(self, notice: ExpiryNotice) -> bool:
        """Send the notice via SMTP."""
        if self._simulation_mode:
            return True

        # smtplib blocks; keep it off the event loop
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._send_sync, notice)

    def _send_sync(self, notice: ExpiryNotice) -> bool:
        msg = self.format_email(notice)
        context = ssl.create_default_context()
        with smtplib.SMTP(self._config.smtp_host, self._config.smtp_port) as server:
            server.starttls(context=context)
            if self._config.username:
                server.login(self._config.username, self._config.password)
            server.sendmail(self._config.from_address, [notice.to], msg.as_string())
        return True

    def get_name(self) -> str:
        return "email"

    def format_email(self, notice: ExpiryNotice) -> MIMEMultipart:
        """Build the MIME message for a notice."""
        msg = MIMEMultipart()
        msg["From"] = self._config.from_address
        msg["To"] = notice.to
        msg["Subject"] = notice.subject()
        msg.attach(MIMEText(notice.body(), "plain", "utf-8"))
        return msg


class NotificationRouter:
    """
    Routes notices to registered channels with retry logic.

    A channel that returns False or raises is retried with exponential
    backoff; once retries are exhausted the failure is logged with every
    attempt's error.
    """

    def __init__(
        self,
        retry_config: RetryConfig,
        logger: Optional[AuditLogger] = None,
        retry_manager: Optional[RetryManager] = None,
    ) -> None:
        """
        Initialize the notification router.

        Args:
            retry_config: Configuration for retry behavior
            logger: Optional audit logger for error logging
            retry_manager: Optional pre-built retry manager
        """
        self._channels: list[NotificationChannel] = []
        self._retry = retry_manager or RetryManager(retry_config)
        self._logger = logger

    def register_channel(self, channel: NotificationChannel) -> None:
        self._channels.append(channel)

    @property
    def channels(self) -> list[NotificationChannel]:
        """Get list of registered channels."""
        return self._channels.copy()

    async def notify(self, notice: ExpiryNotice) -> list[NotificationResult]:
        """
        Send a notice to every registered channel.

        Returns:
            One NotificationResult per channel
        """
        results = []
        for channel in self._channels:
            results.append(await self._send_with_retry(channel, notice))
        return results

    async def _send_with_retry(
        self,
        channel: NotificationChannel,
        notice: ExpiryNotice,
    ) -> NotificationResult:
        channel_name = channel.get_name()
        outcome = await self._retry.execute_with_retry(
            lambda: channel.send(notice),
            is_success=bool,
        )

        if outcome.success:
            return NotificationResult(
                channel=channel_name,
                success=True,
                attempts=outcome.attempts,
            )

        last_error = outcome.errors[-1] if outcome.errors else "Channel returned failure"
        if self._logger:
            self._logger.log(
                LogLevel.ERROR,
                "NotificationRouter",
                f"All notification retries failed for channel '{channel_name}'",
                {
                    "channel": channel_name,
                    "to": notice.to,
                    "domains": [d.name for d in notice.domains],
                    "total_attempts": outcome.attempts,
                    "attempts": [
                        {"attempt": i + 1, "error": error}
                        for i, error in enumerate(outcome.errors)
                    ],
                },
            )

        return NotificationResult(
            channel=channel_name,
            success=False,
            error=last_error,
            attempts=outcome.attempts,
        )
