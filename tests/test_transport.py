from __future__ import annotations

import json
import logging

import httpx
import pytest

from hermes.context import ConnectionContext, build_context
from hermes.observability import Observability, ObservabilityConfig
from hermes.results import Empty, Err, ErrorKind, Ok
from hermes.tokens import TokenGenerator, generate_token
from hermes.transport import MAX_LOGGED_BODY, TransportClient, classify_response
from tests.support import InstanceServer, make_instance
from tests.telemetry import Telemetry, install_telemetry

HEADER = "X-Console-Key"


def _context(**options: object) -> ConnectionContext:
    return build_context(make_instance(), header_name=HEADER, tokens=TokenGenerator(), options=options)


def _client(server: InstanceServer) -> TransportClient:
    return TransportClient(
        transport=server.transport(),
        observability=Observability(ObservabilityConfig(enabled=False)),
    )


@pytest.mark.asyncio
async def test_call_injects_auth_header_and_merges_caller_headers() -> None:
    server = InstanceServer()
    server.add("GET", "environment", json={"platform": {}})
    context = _context()

    result = await _client(server).call(
        context,
        "environment",
        options={"headers": {"X-Trace": "abc", HEADER: "spoofed"}},
        method="GET",
    )

    assert isinstance(result, Ok)
    request = server.requests[0]
    assert request.headers[HEADER] == generate_token(["cluster-east", "acme"])
    assert request.headers["X-Trace"] == "abc"
    assert str(request.url) == "https://acme.example.com/api/v2/environment"


@pytest.mark.asyncio
async def test_non_scalar_payload_is_sent_as_json() -> None:
    server = InstanceServer()
    server.add("POST", "admin", json={"resource": [{"id": 1}]})

    result = await _client(server).call(_context(), "/admin", {"email": "ops@example.com"}, method="POST")

    assert isinstance(result, Ok)
    request = server.requests[0]
    assert request.headers["content-type"] == "application/json"
    assert json.loads(request.content) == {"email": "ops@example.com"}


@pytest.mark.asyncio
async def test_scalar_payload_is_sent_verbatim() -> None:
    server = InstanceServer()
    server.add("PUT", "script", json={"ok": True})

    await _client(server).call(_context(), "script", "print('hi')", options={"headers": {"Content-Type": "text/plain"}}, method="PUT")

    request = server.requests[0]
    assert request.content == b"print('hi')"
    assert request.headers["content-type"] == "text/plain"


@pytest.mark.asyncio
async def test_no_payload_sends_no_body() -> None:
    server = InstanceServer()
    server.add("DELETE", "instance/clear-limits-cache", json={"success": True})

    result = await _client(server).call(_context(), "/instance/clear-limits-cache", method="DELETE")

    assert result == Ok({"success": True})
    assert server.requests[0].content == b""


@pytest.mark.asyncio
async def test_unencodable_payload_is_a_transport_failure() -> None:
    server = InstanceServer()
    result = await _client(server).call(_context(), "admin", {"when": object()}, method="POST")

    assert isinstance(result, Err)
    assert result.error.kind is ErrorKind.TRANSPORT
    assert server.requests == []


@pytest.mark.asyncio
async def test_passthrough_options_reach_the_request() -> None:
    server = InstanceServer()
    server.add("GET", "", json={"resource": []})

    await _client(server).call(_context(timeout=3.0), "/", options={"params": {"as_list": "true"}, "bogus": 1}, method="GET")

    request = server.requests[0]
    assert request.url.params["as_list"] == "true"
    assert request.extensions["timeout"]["connect"] == 3.0


@pytest.mark.asyncio
async def test_network_exception_is_a_logged_transport_failure(caplog: pytest.LogCaptureFixture) -> None:
    server = InstanceServer()
    server.fail("GET", "environment")

    with caplog.at_level(logging.ERROR, logger="hermes.transport"):
        result = await _client(server).call(_context(), "environment", method="GET")

    assert isinstance(result, Err)
    assert result.error.kind is ErrorKind.TRANSPORT
    assert "connection refused" in result.error.message
    record = caplog.records[-1]
    assert "GET" in record.getMessage()
    assert "instance=acme" in record.getMessage()
    assert "cluster=cluster-east" in record.getMessage()


@pytest.mark.asyncio
async def test_structured_error_is_logged_with_code_and_message(caplog: pytest.LogCaptureFixture) -> None:
    server = InstanceServer()
    server.add("GET", "environment", status=500, json={"error": {"code": 500, "message": "Database offline"}})

    with caplog.at_level(logging.ERROR, logger="hermes.transport"):
        result = await _client(server).call(_context(), "environment", method="GET")

    assert result == Err.of(ErrorKind.APPLICATION, "Database offline", status=500, code="500")
    assert "(500) Database offline" in caplog.records[-1].getMessage()


@pytest.mark.asyncio
async def test_unstructured_error_logs_raw_body(caplog: pytest.LogCaptureFixture) -> None:
    server = InstanceServer()
    server.add("GET", "environment", status=502, content=b"Bad gateway" * 100, headers={"content-type": "text/plain"})

    with caplog.at_level(logging.ERROR, logger="hermes.transport"):
        result = await _client(server).call(_context(), "environment", method="GET")

    assert isinstance(result, Err)
    assert result.error.status == 502
    assert result.error.code is None
    assert len(result.error.message) == MAX_LOGGED_BODY + 3
    assert "Bad gateway" in caplog.records[-1].getMessage()


def test_classification_matrix() -> None:
    ready = classify_response(httpx.Response(200, json={"platform": {"version_current": "2.1"}}))
    assert ready == Ok({"platform": {"version_current": "2.1"}})

    html = classify_response(httpx.Response(200, content=b"<html></html>", headers={"content-type": "text/html; charset=utf-8"}))
    assert isinstance(html, Err)
    assert html.error.kind is ErrorKind.APPLICATION
    assert html.error.status == 200

    failed = classify_response(httpx.Response(500, json={"error": {"code": "E42", "message": "boom"}}))
    assert failed == Err.of(ErrorKind.APPLICATION, "boom", status=500, code="E42")

    not_found = classify_response(httpx.Response(404, content=b""))
    assert isinstance(not_found, Err)
    assert not_found.error.status == 404


def test_classification_separates_empty_from_failure() -> None:
    assert classify_response(httpx.Response(200)) == Empty(status=200)
    assert classify_response(httpx.Response(200, json=[])) == Ok([])
    assert isinstance(classify_response(httpx.Response(204)), Err)


def test_classification_of_non_json_bodies() -> None:
    malformed = classify_response(httpx.Response(200, content=b"{not json", headers={"content-type": "application/json"}))
    assert isinstance(malformed, Err)
    assert malformed.error.message == "malformed response body"

    text = classify_response(httpx.Response(200, content=b"pong", headers={"content-type": "text/plain"}))
    assert text == Ok("pong")


def _traced_client(server: InstanceServer, monkeypatch: pytest.MonkeyPatch) -> tuple[TransportClient, Telemetry]:
    telemetry = install_telemetry(monkeypatch)
    return TransportClient(transport=server.transport(), observability=Observability()), telemetry


@pytest.mark.asyncio
@pytest.mark.parametrize("method", ["", "   "])
async def test_blank_method_is_a_transport_failure(method: str, monkeypatch: pytest.MonkeyPatch) -> None:
    server = InstanceServer()
    server.add("GET", "environment", json={"platform": {}})
    client, telemetry = _traced_client(server, monkeypatch)

    result = await client.call(_context(), "environment", method=method)

    assert isinstance(result, Err)
    assert result.error.kind is ErrorKind.TRANSPORT
    assert "method" in result.error.message
    assert server.requests == []
    assert telemetry.spans == []


@pytest.mark.asyncio
async def test_malformed_headers_option_is_a_transport_failure() -> None:
    server = InstanceServer()

    result = await _client(server).call(_context(), "environment", options={"headers": ["bogus"]}, method="GET")

    assert isinstance(result, Err)
    assert result.error.kind is ErrorKind.TRANSPORT
    assert server.requests == []


@pytest.mark.asyncio
async def test_unexpected_transport_exception_is_contained(
    monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    server = InstanceServer()
    failure = RuntimeError("transport exploded")

    def explode(request: httpx.Request) -> httpx.Response:
        raise failure

    server.routes[("GET", "/api/v2/environment")] = explode
    client, telemetry = _traced_client(server, monkeypatch)

    with caplog.at_level(logging.ERROR, logger="hermes.transport"):
        result = await client.call(_context(), "environment", method="GET")

    assert isinstance(result, Err)
    assert result.error.kind is ErrorKind.TRANSPORT
    assert result.error.message == "transport exploded"
    [span] = telemetry.call_spans()
    assert telemetry.open_spans() == []
    assert telemetry.captured == [failure]
    assert span.exceptions == [failure]
    assert span.attributes["hermes.error.kind"] == "transport"
    assert "instance=acme" in caplog.records[-1].getMessage()
