"""Tests for the sanity-listen command line interface."""

import json
import logging

import pytest
import structlog
from typer.testing import CliRunner

from sanity_listen import cli
from sanity_listen.listen.stream import EventStream
from sanity_listen.utils.errors import TransportError
from stream_fakes import FakeResponse

runner = CliRunner()

WELCOME = b'event: welcome\ndata: {"listenerName":"l1"}\n\n'
MUTATION = b'event: mutation\nid: m1\ndata: {"documentId":"D","transition":"update"}\n\n'


@pytest.fixture(autouse=True)
def _reset_logging(monkeypatch):
    for key in ("SANITY_PROJECT_ID", "SANITY_DATASET", "SANITY_TOKEN", "SANITY_LISTEN_TIMEOUT"):
        monkeypatch.delenv(key, raising=False)
    yield
    structlog.reset_defaults()
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.setLevel(logging.WARNING)


def _fake_open(response, calls):
    async def fake_open_event_stream(query, options, *, timeout):
        calls.append({"query": query, "options": options, "timeout": timeout})
        return EventStream(response)

    return fake_open_event_stream


def test_events_prints_json_and_passes_options(monkeypatch):
    response = FakeResponse([WELCOME, MUTATION])
    calls = []
    monkeypatch.setattr(cli, "open_event_stream", _fake_open(response, calls))

    result = runner.invoke(
        cli.app,
        [
            "--project-id", "abc123",
            "--dataset", "production",
            "--timeout", "5",
            "events", "*[_type == $type]",
            "--var", 'type="post"',
            "--var", "slug=hello",
            "--param", "includeResult=true",
        ],
    )

    assert result.exit_code == 0, result.output
    assert '"welcome"' in result.stdout
    assert '"mutation"' in result.stdout
    assert '"m1"' in result.stdout

    options = calls[0]["options"]
    assert calls[0]["query"] == "*[_type == $type]"
    assert calls[0]["timeout"] == 5.0
    assert options.project_id == "abc123"
    assert options.variables == {"type": "post", "slug": "hello"}
    assert options.query_params == (("includeResult", "true"),)
    assert response.close_count == 1


def test_events_limit_stops_early_and_closes(monkeypatch):
    response = FakeResponse([WELCOME, MUTATION, MUTATION, MUTATION])
    monkeypatch.setattr(cli, "open_event_stream", _fake_open(response, []))

    result = runner.invoke(
        cli.app,
        ["-p", "abc123", "-d", "production", "events", "*", "--no-include-welcome", "-n", "1"],
    )

    assert result.exit_code == 0, result.output
    assert '"welcome"' not in result.stdout
    assert result.stdout.count('"mutation"') == 1
    assert response.close_count == 1
    assert response.chunks_pulled == 2


def test_missing_project_id_reports_configuration_error():
    result = runner.invoke(cli.app, ["--dataset", "production", "events", "*"])

    assert result.exit_code == 1
    assert "project id" in result.output
    assert "SANITY_" in result.output


def test_transport_error_exits_nonzero(monkeypatch):
    async def failing_open(query, options, *, timeout):
        raise TransportError("response error status 401", http_status=401)

    monkeypatch.setattr(cli, "open_event_stream", failing_open)

    result = runner.invoke(cli.app, ["-p", "abc123", "-d", "production", "events", "*"])

    assert result.exit_code == 1
    assert "401" in result.output


def test_bad_var_is_a_usage_error():
    result = runner.invoke(
        cli.app, ["-p", "abc123", "-d", "production", "events", "*", "--var", "novalue"]
    )
    assert result.exit_code == 2


def test_document_prints_each_snapshot(monkeypatch):
    seen = {}

    async def fake_follow(document_id, options, *, timeout):
        seen["document_id"] = document_id
        yield {"_id": "D", "title": "A"}
        yield None
        yield {"_id": "D", "title": "B"}

    monkeypatch.setattr(cli, "follow_document", fake_follow)

    result = runner.invoke(cli.app, ["-p", "abc123", "-d", "production", "document", "D", "-n", "2"])

    assert result.exit_code == 0, result.output
    assert seen["document_id"] == "D"
    lines = result.stdout
    assert '"A"' in lines
    assert "null" in lines
    assert '"B"' not in lines
