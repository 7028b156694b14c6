"""Tests for the request pipeline: health, fallbacks, CORS and static files."""

from __future__ import annotations

from datetime import datetime

FRONTEND = "http://localhost:5173"


def _add_failing_route(app, calls=None):
    @app.get("/api/boom")
    async def boom():
        if calls is not None:
            calls.append(1)
        raise RuntimeError("database password is hunter2")


class TestHealth:
    def test_health_returns_ok_and_iso_timestamp(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        parsed = datetime.fromisoformat(body["timestamp"].replace("Z", "+00:00"))
        assert parsed.tzinfo is not None

    def test_health_sets_request_id(self, client):
        resp = client.get("/health", headers={"X-Request-ID": "abc123"})
        assert resp.headers["X-Request-ID"] == "abc123"


class TestFallbacks:
    def test_unknown_path_is_404(self, client):
        resp = client.get("/definitely/not/here")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Route not found"}

    def test_unknown_api_path_is_404(self, client):
        resp = client.post("/api/nothing", json={})
        assert resp.status_code == 404
        assert resp.json() == {"error": "Route not found"}

    def test_wrong_method_is_route_not_found(self, client):
        resp = client.delete("/health")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Route not found"}

    def test_handler_failure_is_generic_500(self, app, client):
        _add_failing_route(app)
        resp = client.get("/api/boom")
        assert resp.status_code == 500
        assert resp.json() == {"error": "Internal server error"}
        assert "hunter2" not in resp.text
        assert "RuntimeError" not in resp.text

    def test_handler_failure_is_logged(self, app, client, caplog):
        _add_failing_route(app)
        with caplog.at_level("ERROR", logger="habit_tracker.app"):
            client.get("/api/boom")
        assert any("Server error on GET /api/boom" in r.getMessage() for r in caplog.records)

    def test_malformed_json_is_generic_500(self, client):
        resp = client.post(
            "/api/auth/login",
            content=b'{"login": "alice", "password": ',
            headers={"Content-Type": "application/json"},
        )
        assert resp.status_code == 500
        assert resp.json() == {"error": "Internal server error"}

    def test_malformed_json_fails_route_without_body_model(self, client):
        resp = client.post(
            "/api/auth/logout",
            content=b'{"x": ',
            headers={"Content-Type": "application/json"},
        )
        assert resp.status_code == 500
        assert resp.json() == {"error": "Internal server error"}

    def test_malformed_json_fails_before_not_found(self, client):
        resp = client.post(
            "/api/nowhere",
            content=b'{"x": ',
            headers={"Content-Type": "application/json"},
        )
        assert resp.status_code == 500
        assert resp.json() == {"error": "Internal server error"}

    def test_malformed_urlencoded_is_generic_500(self, client):
        resp = client.post(
            "/api/auth/login",
            content=b"login=alice&&&=",
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        assert resp.status_code == 500
        assert resp.json() == {"error": "Internal server error"}

    def test_non_object_json_is_400(self, client):
        resp = client.post("/api/auth/login", json=[1, 2])
        assert resp.status_code == 400
        assert resp.json() == {"error": "Request body must be a JSON object"}

    def test_invalid_query_param_is_400(self, client, register_user):
        _, headers = register_user()
        resp = client.get("/api/habits/1/logs?days=0", headers=headers)
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid request"


class TestCors:
    def test_frontend_origin_gets_credentialed_cors_headers(self, client):
        resp = client.get("/health", headers={"Origin": FRONTEND})
        assert resp.status_code == 200
        assert resp.headers["access-control-allow-origin"] == FRONTEND
        assert resp.headers["access-control-allow-credentials"] == "true"

    def test_preflight_from_frontend_origin(self, client):
        resp = client.options(
            "/api/habits",
            headers={
                "Origin": FRONTEND,
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "content-type",
            },
        )
        assert resp.status_code == 200
        assert resp.headers["access-control-allow-origin"] == FRONTEND

    def test_other_origin_rejected_before_route(self, app, client):
        calls = []
        _add_failing_route(app, calls)
        resp = client.get("/api/boom", headers={"Origin": "http://evil.example"})
        assert resp.status_code == 403
        assert resp.json() == {"error": "Origin not allowed"}
        assert "access-control-allow-origin" not in resp.headers
        assert calls == []

    def test_preflight_from_other_origin_rejected(self, client):
        resp = client.options(
            "/api/habits",
            headers={"Origin": "http://evil.example", "Access-Control-Request-Method": "POST"},
        )
        assert resp.status_code == 400


class TestStaticFiles:
    def test_serves_upload(self, client, settings):
        with open(f"{settings.upload_dir}/hello.txt", "w") as fh:
            fh.write("hi there")
        resp = client.get("/uploads/hello.txt")
        assert resp.status_code == 200
        assert resp.text == "hi there"

    def test_serves_music(self, client, settings):
        with open(f"{settings.music_dir}/rain.mp3", "wb") as fh:
            fh.write(b"ID3fake")
        resp = client.get("/music/rain.mp3")
        assert resp.status_code == 200
        assert resp.content == b"ID3fake"

    def test_missing_static_file_is_404(self, client):
        resp = client.get("/uploads/nope.png")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Route not found"}

    def test_path_traversal_is_rejected(self, client, tmp_path):
        (tmp_path / "secret.txt").write_text("top secret")
        resp = client.get("/uploads/%2e%2e/secret.txt")
        assert resp.status_code == 404
        assert "top secret" not in resp.text

    def test_static_roots_are_created(self, app, settings):
        import os
        assert os.path.isdir(settings.upload_dir)
        assert os.path.isdir(settings.music_dir)


class TestAppState:
    def test_gateway_exposed_on_app_state(self, app):
        from habit_tracker.realtime import RealtimeGateway
        assert isinstance(app.state.gateway, RealtimeGateway)

    def test_route_groups_mounted(self, client):
        # Every group answers an unauthenticated call with 401, not the 404 fallback.
        for path in ("/api/auth/me", "/api/habits", "/api/friends", "/api/music"):
            resp = client.get(path)
            assert resp.status_code == 401, path
            assert resp.json() == {"error": "Not authenticated"}
        assert client.get("/health").status_code == 200
