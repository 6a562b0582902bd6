"""Tests for the /data HTTP handler."""

import json
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from health_ingester.config import HTTPSettings
from health_ingester.http_handler import FORBIDDEN_MESSAGE, HTTPHandler
from health_ingester.transcoder import Transcoder

AUTH = {"Authorization": "test-token"}


def _make_settings(auth_token: str = "test-token") -> HTTPSettings:
    """Create HTTPSettings isolated from env vars."""
    return HTTPSettings(_env_file=None, listen="127.0.0.1:8082", auth_token=auth_token)


def _make_handler(writer, payload_dump_path=None, auth_token="test-token") -> HTTPHandler:
    return HTTPHandler(
        settings=_make_settings(auth_token),
        transcoder=Transcoder(writer),
        payload_dump_path=payload_dump_path,
    )


async def _client_for(handler: HTTPHandler) -> AsyncClient:
    transport = ASGITransport(app=handler.app)
    return AsyncClient(transport=transport, base_url="http://test")


class TestDataEndpoint:
    """Tests for POST /data."""

    async def test_valid_payload_returns_200_empty_body(self, writer, sample_payload):
        handler = _make_handler(writer)
        async with await _client_for(handler) as client:
            resp = await client.post("/data", json=sample_payload, headers=AUTH)

        assert resp.status_code == 200
        assert resp.content == b""
        assert [p._name for p in writer.points] == [
            "apple_health_heart_rate",
            "apple_health_heart_rate",
            "apple_health_sleep_analysis",
        ]

    async def test_heart_rate_round_trip(self, writer):
        payload = {
            "data": {
                "metrics": [
                    {
                        "name": "heart_rate",
                        "units": "count/min",
                        "data": [{"date": "2024-01-01 08:00:00 +0000", "value": 72}],
                    }
                ]
            }
        }
        handler = _make_handler(writer)
        async with await _client_for(handler) as client:
            resp = await client.post("/data", json=payload, headers=AUTH)

        assert resp.status_code == 200
        assert [p.to_line_protocol() for p in writer.points] == [
            "apple_health_heart_rate,units=count/min value=72 1704096000000000000"
        ]

    @pytest.mark.parametrize(
        "method", ["GET", "HEAD", "PUT", "DELETE", "PATCH", "OPTIONS", "TRACE", "PROPFIND"]
    )
    async def test_other_methods_return_405(self, writer, method):
        handler = _make_handler(writer)
        async with await _client_for(handler) as client:
            resp = await client.request(method, "/data", headers=AUTH)

        assert resp.status_code == 405
        assert resp.content == b""

    async def test_missing_auth_returns_403(self, writer, sample_payload):
        handler = _make_handler(writer)
        async with await _client_for(handler) as client:
            resp = await client.post("/data", json=sample_payload)

        assert resp.status_code == 403
        assert resp.text == FORBIDDEN_MESSAGE
        assert writer.points == []

    @pytest.mark.parametrize(
        "header",
        ["wrong-token", "Bearer test-token", "TEST-TOKEN", "", "tëst-token"],
    )
    async def test_wrong_auth_returns_403(self, writer, sample_payload, header):
        handler = _make_handler(writer)
        async with await _client_for(handler) as client:
            resp = await client.post(
                "/data",
                content=json.dumps(sample_payload).encode(),
                headers={"Authorization": header.encode("utf-8")},
            )

        assert resp.status_code == 403
        assert resp.text == "missing or invalid Authorization header"
        assert writer.points == []

    async def test_non_ascii_secret_matches_raw_header_bytes(self, writer, sample_payload):
        handler = _make_handler(writer, auth_token="tëst")
        async with await _client_for(handler) as client:
            resp = await client.post(
                "/data",
                content=json.dumps(sample_payload).encode(),
                headers={"Authorization": "tëst".encode("utf-8")},
            )
            latin1 = await client.post(
                "/data",
                content=json.dumps(sample_payload).encode(),
                headers={"Authorization": "tëst".encode("latin-1")},
            )

        assert resp.status_code == 200
        assert latin1.status_code == 403

    async def test_unknown_path_still_404(self, writer):
        handler = _make_handler(writer)
        async with await _client_for(handler) as client:
            resp = await client.get("/nope")

        assert resp.status_code == 404

    async def test_auth_checked_before_body(self, writer):
        handler = _make_handler(writer)
        async with await _client_for(handler) as client:
            resp = await client.post("/data", content=b"not json {")

        assert resp.status_code == 403

    async def test_invalid_json_returns_400(self, writer):
        handler = _make_handler(writer)
        async with await _client_for(handler) as client:
            resp = await client.post("/data", content=b"not valid json {", headers=AUTH)

        assert resp.status_code == 400
        assert resp.content == b""

    @pytest.mark.parametrize(
        "body",
        [
            [],
            {"data": {"metrics": {"name": "heart_rate"}}},
            {"data": {"metrics": [{"name": 5}]}},
            {"data": {"metrics": [{"name": "heart_rate", "data": ["2024-01-01"]}]}},
        ],
    )
    async def test_wrong_shape_returns_400(self, writer, body):
        handler = _make_handler(writer)
        async with await _client_for(handler) as client:
            resp = await client.post("/data", json=body, headers=AUTH)

        assert resp.status_code == 400

    async def test_missing_sections_are_empty(self, writer):
        handler = _make_handler(writer)
        async with await _client_for(handler) as client:
            for body in ({}, {"data": {}}, {"data": None}, {"data": {"metrics": None}}):
                resp = await client.post("/data", json=body, headers=AUTH)
                assert resp.status_code == 200

        assert writer.points == []

    async def test_workouts_are_ignored(self, writer):
        body = {"data": {"workouts": [{"name": "Running", "start": "x"}], "metrics": []}}
        handler = _make_handler(writer)
        async with await _client_for(handler) as client:
            resp = await client.post("/data", json=body, headers=AUTH)

        assert resp.status_code == 200
        assert writer.points == []

    async def test_failing_metric_does_not_stop_others(self, make_writer):
        writer = make_writer(fail_measurements={"apple_health_step_count"})
        body = {
            "data": {
                "metrics": [
                    {
                        "name": "step_count",
                        "units": "count",
                        "data": [{"date": "2024-01-01 08:00:00 +0000", "qty": 10}],
                    },
                    {
                        "name": "heart_rate",
                        "units": "count/min",
                        "data": [{"date": "2024-01-01 08:00:00 +0000", "qty": 72}],
                    },
                ]
            }
        }
        handler = _make_handler(writer)
        async with await _client_for(handler) as client:
            resp = await client.post("/data", json=body, headers=AUTH)

        assert resp.status_code == 500
        assert resp.content == b""
        assert [p._name for p in writer.points] == ["apple_health_heart_rate"]

    async def test_bad_date_in_one_metric_returns_500(self, writer):
        body = {
            "data": {
                "metrics": [
                    {
                        "name": "heart_rate",
                        "units": "count/min",
                        "data": [{"date": 1704096000, "qty": 72}],
                    },
                    {
                        "name": "step_count",
                        "units": "count",
                        "data": [
                            {"qty": 5},
                            {"date": "2024-01-01 08:00:00 +0000", "qty": 10},
                        ],
                    },
                ]
            }
        }
        handler = _make_handler(writer)
        async with await _client_for(handler) as client:
            resp = await client.post("/data", json=body, headers=AUTH)

        assert resp.status_code == 500
        assert [p._fields for p in writer.points] == [{"qty": 10.0}]

    async def test_body_read_failure_returns_500(self, writer, monkeypatch):
        from starlette.requests import Request

        monkeypatch.setattr(Request, "body", AsyncMock(side_effect=OSError("connection reset")))
        handler = _make_handler(writer)
        async with await _client_for(handler) as client:
            resp = await client.post("/data", content=b"{}", headers=AUTH)

        assert resp.status_code == 500
        assert writer.points == []


class TestPayloadDump:
    """Tests for the last-payload debug file."""

    async def test_raw_body_written(self, writer, tmp_path):
        dump = tmp_path / "payload.json"
        handler = _make_handler(writer, payload_dump_path=dump)
        raw = b'{"data": {"metrics": []}}'
        async with await _client_for(handler) as client:
            resp = await client.post("/data", content=raw, headers=AUTH)

        assert resp.status_code == 200
        assert dump.read_bytes() == raw

    async def test_dump_overwritten_each_request(self, writer, tmp_path):
        dump = tmp_path / "payload.json"
        handler = _make_handler(writer, payload_dump_path=dump)
        async with await _client_for(handler) as client:
            await client.post("/data", content=b'{"data": {"metrics": []}}', headers=AUTH)
            await client.post("/data", content=b"{}", headers=AUTH)

        assert dump.read_bytes() == b"{}"

    async def test_not_written_for_rejected_requests(self, writer, tmp_path):
        dump = tmp_path / "payload.json"
        handler = _make_handler(writer, payload_dump_path=dump)
        async with await _client_for(handler) as client:
            await client.post("/data", content=b"{}")
            await client.post("/data", content=b"not json", headers=AUTH)

        assert not dump.exists()

    async def test_dump_failure_does_not_fail_request(self, writer, tmp_path):
        dump = tmp_path / "missing-dir" / "payload.json"
        handler = _make_handler(writer, payload_dump_path=dump)
        async with await _client_for(handler) as client:
            resp = await client.post("/data", content=b"{}", headers=AUTH)

        assert resp.status_code == 200
