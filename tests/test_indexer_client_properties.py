"""
Property-based tests for the Indexer Client module.

Uses httpx.MockTransport in place of the subgraph endpoints to verify
parsing, namespace filtering and failure degradation.
"""

import asyncio
import json
from io import StringIO

import httpx
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from keepens.audit_logger import AuditLogger
from keepens.config import IndexerConfig
from keepens.enums import LogLevel, Namespace
from keepens.indexer_client import IndexerClient, parse_raw_expiry


OWNER = "0x2222222222222222222222222222222222222222"


def run_async(coro):
    """Helper to run async code in tests."""
    return asyncio.new_event_loop().run_until_complete(coro)


def make_client(handler, logger=None) -> IndexerClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return IndexerClient(IndexerConfig(), http_client=http_client, logger=logger)


def domains_response(domains) -> httpx.Response:
    return httpx.Response(200, json={"data": {"domains": domains}})


def domain_item(name, label=None, expiry="1800000000", owner=OWNER, id_="0xid"):
    return {
        "id": id_,
        "name": name,
        "labelName": label if label is not None else name.split(".")[0],
        "expiryDate": expiry,
        "owner": {"id": owner},
    }


@st.composite
def label_strategy(draw) -> str:
    return draw(st.text(
        alphabet=st.sampled_from("abcdefghijklmnopqrstuvwxyz0123456789-"),
        min_size=1,
        max_size=16,
    ))


class TestParseRawExpiry:
    """Indexer expiry values are decimal strings or ints."""

    @given(value=st.integers(min_value=0, max_value=2 ** 64))
    @settings(max_examples=100)
    def test_decimal_strings_and_ints_parse(self, value: int) -> None:
        assert parse_raw_expiry(str(value)) == value
        assert parse_raw_expiry(value) == value

    @pytest.mark.parametrize(
        "value", [None, "", "abc", "-5", -5, "1.5", 1.5, True, {}, "١٢٣"]
    )
    def test_unparseable_values_are_none(self, value) -> None:
        assert parse_raw_expiry(value) is None


class TestFetchOwnedDomains:
    """Query construction and response parsing."""

    def test_query_uses_lowercased_owner_and_namespace_endpoint(self) -> None:
        captured = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append((str(request.url), json.loads(request.content)))
            return domains_response([])

        client = make_client(handler)
        run_async(client.fetch_owned_domains(OWNER.upper().replace("0X", "0x"), Namespace.L2))

        url, body = captured[0]
        assert url == IndexerConfig().l2_endpoint
        assert body["variables"] == {"owner": OWNER}
        assert "domains" in body["query"]

    def test_parses_primary_records(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return domains_response([
                domain_item("alice.eth", id_="0xaaa"),
                domain_item("bob.base.eth"),
            ])

        records = run_async(make_client(handler).fetch_owned_domains(OWNER, Namespace.PRIMARY))

        assert len(records) == 1
        assert records[0].full_name == "alice.eth"
        assert records[0].label == "alice"
        assert records[0].external_id == "0xaaa"
        assert records[0].raw_expiry == 1800000000
        assert records[0].owner_address == OWNER
        assert records[0].namespace is Namespace.PRIMARY

    @given(labels=st.lists(label_strategy(), min_size=0, max_size=10))
    @settings(max_examples=50, deadline=None)
    def test_l2_filter_keeps_only_suffix_names(self, labels) -> None:
        """
        *For any* mix of names, the l2 fetch keeps exactly the names that
        end in '.base.eth'.
        """
        items = []
        for i, label in enumerate(labels):
            name = f"{label}.base.eth" if i % 2 == 0 else f"{label}.eth"
            items.append(domain_item(name))

        def handler(request: httpx.Request) -> httpx.Response:
            return domains_response(items)

        records = run_async(make_client(handler).fetch_owned_domains(OWNER, Namespace.L2))

        expected = [item["name"] for item in items if item["name"].endswith(".base.eth")]
        assert [r.full_name for r in records] == expected
        assert all(r.namespace is Namespace.L2 for r in records)

    def test_missing_fields_tolerated(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return domains_response([
                {"name": "nolabel.eth", "labelName": None, "owner": None, "expiryDate": None},
                {"id": "x"},
                "garbage",
            ])

        records = run_async(make_client(handler).fetch_owned_domains(OWNER, Namespace.PRIMARY))

        assert len(records) == 1
        assert records[0].label == ""
        assert records[0].owner_address == ""
        assert records[0].raw_expiry is None
        assert records[0].external_id is None

    def test_null_domains_is_empty(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"data": {"domains": None}})

        assert run_async(make_client(handler).fetch_owned_domains(OWNER, Namespace.PRIMARY)) == []


class TestIndexerDegradation:
    """Failures are logged and produce an empty list."""

    @pytest.mark.parametrize(
        "response, code",
        [
            (httpx.Response(500, text="boom"), "http_error"),
            (httpx.Response(200, text="not json"), "parse_error"),
            (httpx.Response(200, json=[1, 2]), "parse_error"),
            (httpx.Response(200, json={"errors": [{"message": "bad"}]}), "graphql_error"),
            (httpx.Response(200, json={"data": {}}), "parse_error"),
        ],
    )
    def test_bad_responses_degrade(self, response: httpx.Response, code: str) -> None:
        logger = AuditLogger(output_stream=StringIO())

        def handler(request: httpx.Request) -> httpx.Response:
            return response

        records = run_async(
            make_client(handler, logger).fetch_owned_domains(OWNER, Namespace.PRIMARY)
        )

        assert records == []
        warnings = [e for e in logger.entries if e.level is LogLevel.WARN]
        assert len(warnings) == 1
        assert warnings[0].data["error_code"] == code

    def test_connection_error_degrades(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        logger = AuditLogger(output_stream=StringIO())
        records = run_async(
            make_client(handler, logger).fetch_owned_domains(OWNER, Namespace.L2)
        )

        assert records == []
        assert logger.entries[-1].data["error_code"] == "network_error"

    def test_timeout_degrades(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        logger = AuditLogger(output_stream=StringIO())
        records = run_async(
            make_client(handler, logger).fetch_owned_domains(OWNER, Namespace.PRIMARY)
        )

        assert records == []
        assert logger.entries[-1].data["error_code"] == "timeout"


class TestClientLifecycle:
    """Injected clients belong to the caller."""

    def test_close_leaves_injected_client_open(self) -> None:
        async def scenario():
            http_client = httpx.AsyncClient(
                transport=httpx.MockTransport(lambda r: domains_response([]))
            )
            async with IndexerClient(IndexerConfig(), http_client=http_client):
                pass
            closed = http_client.is_closed
            await http_client.aclose()
            return closed

        assert run_async(scenario()) is False
