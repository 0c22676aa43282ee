"""
Property-based tests for configuration handling.

Uses Hypothesis to verify that configuration files round-trip through the
CLI's save/load helpers and that environment overrides apply.
"""

import json
import tempfile
from pathlib import Path

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from keepens.cli import (
    apply_env_overrides,
    create_default_config,
    load_config_from_file,
    save_config_to_file,
)
from keepens.config import (
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


ENV_KEYS = (
    "NEYNAR_API_KEY", "RESEND_API_KEY", "RESEND_FROM", "ETH_RPC_URL",
    "BASE_RPC_URL", "KEEPENS_STATE_FILE", "KEEPENS_HMAC_SECRET",
)


# Strategies for generating valid configuration objects

@st.composite
def url_strategy(draw) -> str:
    host = draw(st.text(alphabet=st.sampled_from("abcdefghijklmnopqrstuvwxyz"), min_size=3, max_size=12))
    return f"https://{host}.example/rpc"


@st.composite
def retry_config_strategy(draw) -> RetryConfig:
    """Generate valid RetryConfig objects."""
    return RetryConfig(
        max_retries=draw(st.integers(min_value=0, max_value=10)),
        base_delay_seconds=draw(st.floats(min_value=0.1, max_value=10.0)),
        max_delay_seconds=draw(st.floats(min_value=10.0, max_value=300.0)),
    )


@st.composite
def notification_config_strategy(draw) -> NotificationConfig:
    """Generate valid NotificationConfig objects."""
    resend = None
    if draw(st.booleans()):
        resend = ResendConfig(
            api_key="re_" + draw(st.text(alphabet="abcdef0123456789", min_size=8, max_size=32)),
            from_address=draw(st.emails()),
        )

    email = None
    if draw(st.booleans()):
        email = EmailConfig(
            smtp_host=draw(st.text(alphabet="abcdefghijklmnopqrstuvwxyz.", min_size=5, max_size=30)),
            smtp_port=draw(st.integers(min_value=1, max_value=65535)),
            username=draw(st.text(min_size=1, max_size=30)),
            password=draw(st.text(min_size=1, max_size=30)),
            from_address=draw(st.emails()),
        )

    return NotificationConfig(resend=resend, email=email)


@st.composite
def system_config_strategy(draw) -> SystemConfig:
    """Generate valid SystemConfig objects."""
    return SystemConfig(
        indexer=IndexerConfig(
            primary_endpoint=draw(url_strategy()),
            l2_endpoint=draw(url_strategy()),
            timeout_seconds=draw(st.floats(min_value=1.0, max_value=60.0)),
        ),
        chain=ChainConfig(
            primary_rpc_url=draw(url_strategy()),
            l2_rpc_url=draw(url_strategy()),
        ),
        identity=IdentityConfig(api_key=draw(st.text(alphabet="ABCDEF0123456789-", max_size=36))),
        retry=draw(retry_config_strategy()),
        notifications=draw(notification_config_strategy()),
        persistence=PersistenceConfig(
            state_file_path=Path(draw(st.text(
                alphabet=st.sampled_from("abcdefghijklmnopqrstuvwxyz_"), min_size=1, max_size=30
            ).map(lambda s: f"/tmp/{s}.json"))),
            hmac_secret=draw(st.text(min_size=16, max_size=64)),
        ),
        logging=LoggingConfig(
            level=draw(st.sampled_from(["debug", "info", "warn", "error"])),
            output_format=draw(st.sampled_from(["json", "text", "both"])),
        ),
        notify_days_threshold=draw(st.integers(min_value=1, max_value=90)),
        simulation_mode=draw(st.booleans()),
    )


class TestConfigurationRoundTrip:
    """Configuration files round-trip without data loss."""

    @given(config=system_config_strategy())
    @settings(max_examples=100)
    def test_config_round_trip_preserves_data(self, config: SystemConfig) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.json"
            assert save_config_to_file(config, path)

            reconstructed = load_config_from_file(path)

        assert reconstructed == config

    @given(config=system_config_strategy())
    @settings(max_examples=50)
    def test_saved_config_is_valid_json(self, config: SystemConfig) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "nested" / "config.json"
            save_config_to_file(config, path)
            parsed = json.loads(path.read_text(encoding="utf-8"))

        assert {
            "indexer", "chain", "identity", "retry", "notifications",
            "persistence", "logging", "notify_days_threshold", "simulation_mode",
        } == set(parsed.keys())

    def test_partial_file_uses_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"chain": {"l2_rpc_url": "https://base.example"}}), encoding="utf-8")

        config = load_config_from_file(path)

        assert config.chain.l2_rpc_url == "https://base.example"
        assert config.chain.primary_rpc_url == ChainConfig().primary_rpc_url
        assert config.indexer == IndexerConfig()
        assert config.notify_days_threshold == 30

    def test_disabled_channels_ignored(self, tmp_path: Path) -> None:
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "notifications": {"resend": {"enabled": False, "api_key": "re_x"}},
        }), encoding="utf-8")

        assert load_config_from_file(path).notifications.resend is None

    @pytest.mark.parametrize("content", ["{broken", json.dumps({"retry": {"bogus": 1}})])
    def test_invalid_file_returns_none(self, tmp_path: Path, content: str) -> None:
        path = tmp_path / "config.json"
        path.write_text(content, encoding="utf-8")
        assert load_config_from_file(path) is None

    def test_missing_file_returns_none(self, tmp_path: Path) -> None:
        assert load_config_from_file(tmp_path / "nope.json") is None


class TestEnvironmentOverrides:
    """Secrets and endpoints can come from the environment."""

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch):
        for key in ENV_KEYS:
            monkeypatch.delenv(key, raising=False)

    def test_no_env_leaves_defaults(self) -> None:
        config = apply_env_overrides(create_default_config())
        assert config.identity.api_key == ""
        assert config.notifications.resend is None

    def test_env_values_applied(self, monkeypatch, tmp_path: Path) -> None:
        monkeypatch.setenv("NEYNAR_API_KEY", " neynar-key ")
        monkeypatch.setenv("RESEND_API_KEY", "re_live")
        monkeypatch.setenv("RESEND_FROM", "Alerts <alerts@example.com>")
        monkeypatch.setenv("ETH_RPC_URL", "https://eth.example")
        monkeypatch.setenv("BASE_RPC_URL", "https://base.example")
        monkeypatch.setenv("KEEPENS_STATE_FILE", str(tmp_path / "s.json"))
        monkeypatch.setenv("KEEPENS_HMAC_SECRET", "s3cret")

        config = apply_env_overrides(create_default_config())

        assert config.identity.api_key == "neynar-key"
        assert config.notifications.resend == ResendConfig(
            api_key="re_live", from_address="Alerts <alerts@example.com>"
        )
        assert config.chain.primary_rpc_url == "https://eth.example"
        assert config.chain.l2_rpc_url == "https://base.example"
        assert config.persistence.state_file_path == tmp_path / "s.json"
        assert config.persistence.hmac_secret == "s3cret"

    def test_placeholder_resend_key_ignored(self, monkeypatch) -> None:
        monkeypatch.setenv("RESEND_API_KEY", "your_resend_api_key_here")
        assert apply_env_overrides(create_default_config()).notifications.resend is None
