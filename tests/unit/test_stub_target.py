from __future__ import annotations

import httpx
import pytest

from chessload.testing.stub_target import ChessApiStub


def _client(stub: ChessApiStub) -> httpx.Client:
    return httpx.Client(base_url="http://chess.test", transport=stub.transport())


class TestChessApiStub:
    def test_health(self, stub):
        with _client(stub) as client:
            response = client.get("/api/v1/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}
        assert stub.hits["/api/v1/health"] == 1

    def test_unhealthy(self):
        with _client(ChessApiStub(healthy=False)) as client:
            assert client.get("/api/v1/health").status_code == 503

    @pytest.mark.parametrize("body", [{"fen": "x"}, {"pgn": "1. e4"}, {"uci": "e2e4"}, {"san": "e4"}])
    def test_analyze_accepts_exactly_one_position(self, stub, body):
        with _client(stub) as client:
            assert client.post("/api/v1/analyze", json=body).status_code == 200

    @pytest.mark.parametrize("body", [{}, {"fen": "x", "uci": "e2e4"}, {"fen": "   "}, [1, 2]])
    def test_analyze_rejects_bad_bodies(self, stub, body):
        with _client(stub) as client:
            assert client.post("/api/v1/analyze", json=body).status_code == 400

    def test_analyze_rejects_invalid_json(self, stub):
        with _client(stub) as client:
            response = client.post("/api/v1/analyze", content=b"{not json")
        assert response.status_code == 400

    def test_unknown_route(self, stub):
        with _client(stub) as client:
            assert client.get("/nope").status_code == 404

    def test_full_error_rate(self):
        with _client(ChessApiStub(error_rate=1.0)) as client:
            response = client.get("/api/v1/health")
        assert response.status_code == 500
        assert response.json()["error"]["code"] == "CHAOS_FAULT"

    def test_connect_error(self):
        with _client(ChessApiStub(connect_error=True)) as client:
            with pytest.raises(httpx.ConnectError):
                client.get("/api/v1/health")
