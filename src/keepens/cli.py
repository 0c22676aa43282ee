"""
Command-line interface for the KeepENS system.

This module provides the main CLI entry point with commands for:
- resolve: List the ENS names and Basenames an address owns, by expiry
- identity: Show wallets verified by a Farcaster account
- subscribe / unsubscribe / subscriptions: Manage expiry email subscriptions
- check-expiry: Email owners whose subscribed domains expire soon
- test-email: Send a sample notice
- config: Configuration management
"""

import argparse
import asyncio
import json
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import httpx
from dotenv import load_dotenv

from . import __version__
from .address import normalize_address
from .audit_logger import AuditLogger
from .chain_reader import ChainReader
from .config import (
    ChainConfig,
    EmailConfig,
    IdentityConfig,
    IndexerConfig,
    LoggingConfig,
    NotificationConfig,
    PersistenceConfig,
    ResendConfig,
    RetryConfig,
    SystemConfig,
)
from .enums import LogLevel, Namespace
from .exceptions import KeepENSError, PersistenceError, ValidationError
from .expiry_notifier import ExpiryNotifier, send_test_email
from .identity_resolver import ConnectedAddressResolver, NeynarClient
from .indexer_client import IndexerClient
from .models import ResolvedDomain
from .notifications import (
    EmailChannel,
    NotificationRouter,
    ResendChannel,
    format_expiry_date,
)
from .resolution_engine import DomainResolutionEngine
from .subscription_store import SubscriptionStore


DEFAULT_HOME = Path.home() / ".keepens"
DEFAULT_HMAC_SECRET = "default-secret-change-me"


def create_default_config(
    simulation_mode: bool = False,
    state_file: Optional[Path] = None,
    hmac_secret: str = DEFAULT_HMAC_SECRET,
) -> SystemConfig:
    """
    Create a default system configuration.

    Args:
        simulation_mode: Enable simulation mode (no real emails)
        state_file: Path to the subscription store
        hmac_secret: Secret for HMAC protection

    Returns:
        SystemConfig with default settings
    """
    if state_file is None:
        state_file = DEFAULT_HOME / "subscriptions.json"

    return SystemConfig(
        indexer=IndexerConfig(),
        chain=ChainConfig(),
        identity=IdentityConfig(),
        retry=RetryConfig(
            max_retries=3,
            base_delay_seconds=1.0,
            max_delay_seconds=60.0,
        ),
        notifications=NotificationConfig(),
        persistence=PersistenceConfig(
            state_file_path=state_file,
            hmac_secret=hmac_secret,
        ),
        logging=LoggingConfig(level="info", output_format="text"),
        simulation_mode=simulation_mode,
    )


def load_config_from_file(config_path: Path) -> Optional[SystemConfig]:
    """
    Load configuration from a JSON file.

    Missing sections fall back to defaults.

    Args:
        config_path: Path to the configuration file

    Returns:
        SystemConfig if successful, None otherwise
    """
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)

        defaults = create_default_config()

        indexer = IndexerConfig(**data.get("indexer", {}))
        chain = ChainConfig(**data.get("chain", {}))
        identity = IdentityConfig(**data.get("identity", {}))
        retry = RetryConfig(**data.get("retry", {}))

        persistence_data = data.get("persistence", {})
        state_file_path = persistence_data.get("state_file_path")
        persistence = PersistenceConfig(
            state_file_path=(
                Path(state_file_path) if state_file_path
                else defaults.persistence.state_file_path
            ),
            hmac_secret=persistence_data.get("hmac_secret", DEFAULT_HMAC_SECRET),
        )

        logging_config = LoggingConfig(**data.get("logging", {}))

        notifications_data = data.get("notifications", {})
        notifications = NotificationConfig()

        resend_data = notifications_data.get("resend", {})
        if resend_data.get("enabled") and resend_data.get("api_key"):
            notifications.resend = ResendConfig(
                api_key=resend_data["api_key"],
                from_address=resend_data.get(
                    "from_address", ResendConfig.from_address
                ),
            )

        email_data = notifications_data.get("email", {})
        if email_data.get("enabled") and email_data.get("smtp_host"):
            notifications.email = EmailConfig(
                smtp_host=email_data["smtp_host"],
                smtp_port=email_data.get("smtp_port", 587),
                username=email_data.get("username", ""),
                password=email_data.get("password", ""),
                from_address=email_data.get("from_address", ""),
            )

        return SystemConfig(
            indexer=indexer,
            chain=chain,
            identity=identity,
            retry=retry,
            notifications=notifications,
            persistence=persistence,
            logging=logging_config,
            notify_days_threshold=data.get("notify_days_threshold", 30),
            simulation_mode=data.get("simulation_mode", False),
        )

    except (json.JSONDecodeError, KeyError, TypeError, AttributeError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return None
    except FileNotFoundError:
        return None


def save_config_to_file(config: SystemConfig, config_path: Path) -> bool:
    """
    Save configuration to a JSON file.

    Returns:
        True if successful, False otherwise
    """
    notifications: dict = {}
    if config.notifications.resend:
        notifications["resend"] = {
            "enabled": True,
            "api_key": config.notifications.resend.api_key,
            "from_address": config.notifications.resend.from_address,
        }
    if config.notifications.email:
        email = config.notifications.email
        notifications["email"] = {
            "enabled": True,
            "smtp_host": email.smtp_host,
            "smtp_port": email.smtp_port,
            "username": email.username,
            "password": email.password,
            "from_address": email.from_address,
        }

    data = {
        "indexer": vars(config.indexer),
        "chain": vars(config.chain),
        "identity": vars(config.identity),
        "retry": vars(config.retry),
        "notifications": notifications,
        "persistence": {
            "state_file_path": str(config.persistence.state_file_path),
            "hmac_secret": config.persistence.hmac_secret,
        },
        "logging": vars(config.logging),
        "notify_days_threshold": config.notify_days_threshold,
        "simulation_mode": config.simulation_mode,
    }

    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        return True
    except (OSError, TypeError) as e:
        print(f"Error saving config: {e}", file=sys.stderr)
        return False


def apply_env_overrides(config: SystemConfig) -> SystemConfig:
    """
    Overlay secrets and endpoints from the environment (and a .env file).
    """
    load_dotenv()

    if os.getenv("NEYNAR_API_KEY"):
        config.identity.api_key = os.environ["NEYNAR_API_KEY"].strip()
    if os.getenv("ETH_RPC_URL"):
        config.chain.primary_rpc_url = os.environ["ETH_RPC_URL"]
    if os.getenv("BASE_RPC_URL"):
        config.chain.l2_rpc_url = os.environ["BASE_RPC_URL"]
    if os.getenv("KEEPENS_STATE_FILE"):
        config.persistence.state_file_path = Path(os.environ["KEEPENS_STATE_FILE"])
    if os.getenv("KEEPENS_HMAC_SECRET"):
        config.persistence.hmac_secret = os.environ["KEEPENS_HMAC_SECRET"]

    resend_key = os.getenv("RESEND_API_KEY", "").strip()
    if resend_key and resend_key != "your_resend_api_key_here":
        config.notifications.resend = ResendConfig(
            api_key=resend_key,
            from_address=os.getenv("RESEND_FROM") or ResendConfig.from_address,
        )

    return config


def create_notification_router(
    config: SystemConfig,
    logger: Optional[AuditLogger] = None,
) -> NotificationRouter:
    """
    Create a notification router from configuration.

    Without any configured channel, a simulated Resend channel is
    registered so runs still complete.
    """
    router = NotificationRouter(retry_config=config.retry, logger=logger)
    notifications = config.notifications

    if notifications.resend:
        router.register_channel(ResendChannel(
            config=notifications.resend,
            simulation_mode=config.simulation_mode,
        ))

    if notifications.email:
        router.register_channel(EmailChannel(
            config=notifications.email,
            simulation_mode=config.simulation_mode,
        ))

    if not router.channels:
        if logger:
            logger.log(
                LogLevel.WARN, "cli",
                "No email channel configured - simulating email send",
            )
        router.register_channel(ResendChannel(
            config=ResendConfig(api_key=""),
            simulation_mode=True,
        ))

    return router


def build_engine(
    config: SystemConfig,
    http_client: httpx.AsyncClient,
    logger: Optional[AuditLogger] = None,
) -> DomainResolutionEngine:
    """Wire the engine with clients sharing one HTTP connection pool."""
    return DomainResolutionEngine(
        indexer=IndexerClient(config.indexer, http_client=http_client, logger=logger),
        chain_reader=ChainReader(config.chain, http_client=http_client, logger=logger),
        wrapper_address=config.chain.name_wrapper_address,
        logger=logger,
    )


def _create_http_client(config: SystemConfig) -> httpx.AsyncClient:
    timeout = max(config.indexer.timeout_seconds, config.chain.timeout_seconds)
    return httpx.AsyncClient(timeout=httpx.Timeout(timeout), follow_redirects=True)


def _open_store(config: SystemConfig) -> SubscriptionStore:
    store = SubscriptionStore(
        file_path=config.persistence.state_file_path,
        hmac_secret=config.persistence.hmac_secret,
    )
    store.load()
    return store


def _format_domain_row(domain: ResolvedDomain) -> str:
    expiry = (
        format_expiry_date(domain.expiry_timestamp)
        if domain.expiry_timestamp else "unknown"
    )
    return (
        f"{domain.name:<32} {domain.namespace.display_name:<9} "
        f"{expiry:<20} {domain.days_left:>8} {domain.urgency.value}"
    )


def parse_expiry(value: str) -> int:
    """
    Parse an expiry given as epoch seconds or an ISO date/datetime.

    Raises:
        ValidationError: If the value is neither
    """
    text = value.strip()
    if text.isdigit():
        return int(text)
    try:
        dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(
            code="invalid_expiry",
            message=f"Expiry must be epoch seconds or an ISO date: {value!r}",
        )
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())


async def resolve_address(
    address: str,
    config: SystemConfig,
    as_json: bool = False,
    logger: Optional[AuditLogger] = None,
) -> int:
    """
    Print every domain an address owns, soonest expiry first.

    Returns:
        Exit code (0 on success, 2 for an invalid address)
    """
    normalized = normalize_address(address)
    if normalized is None:
        print(f"Error: Invalid address: {address}", file=sys.stderr)
        return 2

    async with _create_http_client(config) as http_client:
        domains = await build_engine(config, http_client, logger).resolve(normalized)

    if as_json:
        print(json.dumps({
            "address": normalized,
            "domains": [d.to_dict() for d in domains],
            "count": len(domains),
        }, indent=2))
        return 0

    if not domains:
        print(f"0 domains found for {normalized}")
        return 0

    print(f"{'NAME':<32} {'TYPE':<9} {'EXPIRES':<20} {'DAYS':>8} STATUS")
    for domain in domains:
        print(_format_domain_row(domain))
    print(f"\n{len(domains)} domain(s) found for {normalized}")
    return 0


async def show_identity(
    fid: str,
    config: SystemConfig,
    logger: Optional[AuditLogger] = None,
) -> int:
    """Print the verified addresses of a Farcaster account."""
    async with httpx.AsyncClient() as http_client:
        lookup = NeynarClient(config.identity, http_client=http_client)
        if not lookup.configured:
            print("Warning: NEYNAR_API_KEY is not configured", file=sys.stderr)
        resolver = ConnectedAddressResolver(lookup, logger=logger)
        addresses = await resolver.resolve_addresses_for_identity(fid)

    print(json.dumps({"fid": fid, "addresses": addresses, "count": len(addresses)}, indent=2))
    return 0


async def subscribe_domain(
    args: argparse.Namespace,
    config: SystemConfig,
    logger: Optional[AuditLogger] = None,
) -> int:
    """Subscribe to a domain, looking up its expiry when not given."""
    wallet = normalize_address(args.address)
    if wallet is None:
        print(f"Error: Invalid address: {args.address}", file=sys.stderr)
        return 2

    namespace = args.namespace
    if args.expiry:
        expiry = parse_expiry(args.expiry)
    else:
        async with _create_http_client(config) as http_client:
            domains = await build_engine(config, http_client, logger).resolve(wallet)
        match = next((d for d in domains if d.name == args.name), None)
        if match is None:
            print(f"Error: {args.name} is not owned by {wallet}", file=sys.stderr)
            return 1
        expiry = match.expiry_timestamp
        namespace = match.namespace.value

    if namespace is None:
        namespace = (
            Namespace.L2.value
            if args.name.endswith(config.indexer.l2_name_suffix)
            else Namespace.PRIMARY.value
        )

    store = _open_store(config)
    subscription = store.subscribe(
        wallet, args.name, expiry, namespace=namespace, email=args.email, fid=args.fid
    )
    store.save()

    label = Namespace(namespace).display_name
    print(f"Subscribed to {label} {subscription.name} (expires {format_expiry_date(expiry)})")
    return 0


def cmd_resolve(args: argparse.Namespace, config: SystemConfig) -> int:
    return asyncio.run(resolve_address(
        args.address, config, as_json=args.json, logger=_make_logger(args, config)
    ))


def cmd_identity(args: argparse.Namespace, config: SystemConfig) -> int:
    return asyncio.run(show_identity(args.fid, config, _make_logger(args, config)))


def cmd_subscribe(args: argparse.Namespace, config: SystemConfig) -> int:
    return asyncio.run(subscribe_domain(args, config, _make_logger(args, config)))


def cmd_unsubscribe(args: argparse.Namespace, config: SystemConfig) -> int:
    store = _open_store(config)
    store.unsubscribe(args.address, args.name)
    store.save()
    print(f"Unsubscribed from {args.name}")
    return 0


def cmd_subscriptions(args: argparse.Namespace, config: SystemConfig) -> int:
    store = _open_store(config)
    subscriptions = store.list_subscriptions(args.address)
    if not subscriptions:
        print(f"No subscriptions for {args.address.lower()}")
        return 0

    for s in subscriptions:
        flag = "notified" if s.notified else "pending"
        print(f"{s.name:<32} {format_expiry_date(s.expiry_date):<20} {flag}")

    stats = store.get_subscriber_stats(args.address)
    print(
        f"\n{stats['total']} subscription(s), "
        f"{stats['expiring_soon']} expiring soon, {stats['expired']} expired"
    )
    return 0


def cmd_check_expiry(args: argparse.Namespace, config: SystemConfig) -> int:
    # Scheduled runs always log
    logger = _make_logger(args, config, force=True)
    store = _open_store(config)
    router = create_notification_router(config, logger)
    notifier = ExpiryNotifier(store, router, logger)

    days = args.days if args.days is not None else config.notify_days_threshold
    summary = asyncio.run(notifier.run(days_threshold=days))
    print(json.dumps(summary.to_dict(), indent=2))
    return 0 if summary.failed == 0 else 1


def cmd_test_email(args: argparse.Namespace, config: SystemConfig) -> int:
    logger = _make_logger(args, config)
    router = create_notification_router(config, logger)
    results = asyncio.run(send_test_email(router, args.email))

    if any(r.success for r in results):
        print(f"Test email sent to {args.email}")
        return 0
    for r in results:
        print(f"Failed via {r.channel}: {r.error}", file=sys.stderr)
    return 1


def cmd_config(args: argparse.Namespace, config: SystemConfig) -> int:
    config_path = Path(args.path) if args.path else DEFAULT_HOME / "config.json"

    if args.action == "show":
        loaded = load_config_from_file(config_path)
        if loaded is None:
            print(f"No configuration found at: {config_path}")
            print("Use 'config init' to create a default configuration.")
            return 1

        channels = [
            name for name, value in (
                ("resend", loaded.notifications.resend),
                ("email", loaded.notifications.email),
            ) if value
        ]
        print(f"Configuration from: {config_path}")
        print(f"  ENS indexer: {loaded.indexer.primary_endpoint}")
        print(f"  Basenames indexer: {loaded.indexer.l2_endpoint}")
        print(f"  Mainnet RPC: {loaded.chain.primary_rpc_url}")
        print(f"  Base RPC: {loaded.chain.l2_rpc_url}")
        print(f"  Neynar API key: {'set' if loaded.identity.api_key else 'not set'}")
        print(f"  Email channels: {', '.join(channels) or 'none'}")
        print(f"  State file: {loaded.persistence.state_file_path}")
        print(f"  Notify threshold: {loaded.notify_days_threshold} days")
        print(f"  Simulation mode: {loaded.simulation_mode}")
        return 0

    elif args.action == "init":
        if config_path.exists() and not args.force:
            print(f"Configuration already exists at: {config_path}")
            print("Use --force to overwrite.")
            return 1

        if save_config_to_file(create_default_config(), config_path):
            print(f"Configuration created at: {config_path}")
            return 0
        return 1

    elif args.action == "validate":
        if load_config_from_file(config_path) is None:
            print(f"Error: Could not load config from {config_path}", file=sys.stderr)
            return 1
        print(f"Configuration at {config_path} is valid.")
        return 0

    return 1


def _make_logger(
    args: argparse.Namespace, config: SystemConfig, force: bool = False
) -> Optional[AuditLogger]:
    if not (args.verbose or force):
        return None
    level = "debug" if args.verbose else config.logging.level
    return AuditLogger.from_level_name(level, config.logging.output_format)


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="keepens",
        description="Track ENS names and Basenames and email owners before they expire",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--config", "-c",
        help="Path to configuration file",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Simulation mode - no real emails are sent",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    resolve_parser = subparsers.add_parser(
        "resolve",
        help="List domains owned by an address, soonest expiry first",
    )
    resolve_parser.add_argument("address", help="Wallet address (0x...)")
    resolve_parser.add_argument(
        "--json",
        action="store_true",
        help="Print JSON instead of a table",
    )
    resolve_parser.set_defaults(func=cmd_resolve)

    identity_parser = subparsers.add_parser(
        "identity",
        help="Show wallets verified by a Farcaster account",
    )
    identity_parser.add_argument("fid", help="Farcaster id")
    identity_parser.set_defaults(func=cmd_identity)

    subscribe_parser = subparsers.add_parser(
        "subscribe",
        help="Get emailed before a domain expires",
    )
    subscribe_parser.add_argument("address", help="Owner wallet address")
    subscribe_parser.add_argument("name", help="Domain name, e.g. alice.eth")
    subscribe_parser.add_argument(
        "--expiry",
        help="Expiry as epoch seconds or ISO date (looked up on-chain if omitted)",
    )
    subscribe_parser.add_argument("--email", help="Where to send notices")
    subscribe_parser.add_argument("--fid", help="Farcaster id of the owner")
    subscribe_parser.add_argument(
        "--namespace",
        choices=[n.value for n in Namespace],
        help="Naming system (inferred from the name if omitted)",
    )
    subscribe_parser.set_defaults(func=cmd_subscribe)

    unsubscribe_parser = subparsers.add_parser(
        "unsubscribe",
        help="Stop notices for a domain",
    )
    unsubscribe_parser.add_argument("address", help="Owner wallet address")
    unsubscribe_parser.add_argument("name", help="Domain name")
    unsubscribe_parser.set_defaults(func=cmd_unsubscribe)

    subscriptions_parser = subparsers.add_parser(
        "subscriptions",
        help="List an address's subscriptions",
    )
    subscriptions_parser.add_argument("address", help="Owner wallet address")
    subscriptions_parser.set_defaults(func=cmd_subscriptions)

    check_parser = subparsers.add_parser(
        "check-expiry",
        help="Email owners of subscribed domains that expire soon",
    )
    check_parser.add_argument(
        "--days",
        type=int,
        help="Look-ahead window in days (default: from config, 30)",
    )
    check_parser.set_defaults(func=cmd_check_expiry)

    test_email_parser = subparsers.add_parser(
        "test-email",
        help="Send a sample expiry notice",
    )
    test_email_parser.add_argument("email", help="Recipient address")
    test_email_parser.set_defaults(func=cmd_test_email)

    config_parser = subparsers.add_parser(
        "config",
        help="Configuration management",
    )
    config_parser.add_argument(
        "action",
        choices=["show", "init", "validate"],
        help="Configuration action",
    )
    config_parser.add_argument(
        "--path", "-p",
        help="Path to configuration file",
    )
    config_parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Force overwrite existing configuration",
    )
    config_parser.set_defaults(func=cmd_config)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    config = None
    if args.config:
        config = load_config_from_file(Path(args.config))
        if config is None:
            print(f"Error: Could not load config from {args.config}", file=sys.stderr)
            return 1
    if config is None:
        config = create_default_config()

    config = apply_env_overrides(config)
    if args.dry_run:
        config.simulation_mode = True

    try:
        return args.func(args, config)
    except (ValidationError, PersistenceError) as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    except KeepENSError as e:
        print(f"Error [{e.code}]: {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
