"""Tests for the application shell: health, headers, error rendering, rate limits and CLI."""

import secrets

import httpx
from click.testing import CliRunner

from wishmaker_auth import __version__
from wishmaker_auth.cli import main
from wishmaker_auth.main import create_app
from wishmaker_auth.security.entropy import validate_high_entropy_secret

from helpers import make_settings


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {
        "status": "healthy",
        "service": "wishmaker-auth",
        "version": __version__,
        "environment": "test",
    }

    auth_health = await client.get("/api/auth/health")
    assert auth_health.json()["success"] is True


async def test_security_headers(client):
    response = await client.get("/health")

    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["Referrer-Policy"] == "strict-origin-when-cross-origin"
    assert response.headers["X-WishMaker-Auth-Version"] == __version__
    assert float(response.headers["X-Process-Time"]) >= 0
    # http origin: no HSTS
    assert "Strict-Transport-Security" not in response.headers


async def test_hsts_for_https_origin(tmp_path):
    app = create_app(make_settings(tmp_path, origin="https://wishmaker.example", rp_id="wishmaker.example"))

    async with app.router.lifespan_context(app):
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
            response = await client.get("/health")

    assert response.headers["Strict-Transport-Security"].startswith("max-age=")


async def test_unexpected_errors_are_opaque(app, client):
    @app.get("/boom")
    async def boom():
        raise RuntimeError("database password is hunter2")

    response = await client.get("/boom")

    assert response.status_code == 500
    assert response.json() == {
        "success": False,
        "message": "Internal server error",
        "code": "INTERNAL_ERROR",
    }
    assert "hunter2" not in response.text


async def test_docs_hidden_outside_debug(client):
    assert (await client.get("/docs")).status_code == 404


async def test_register_rate_limit(tmp_path):
    settings = make_settings(tmp_path, enable_rate_limiting=True, register_rate_limit="2/hour")
    app = create_app(settings)
    headers = {"X-Forwarded-For": f"198.51.100.{secrets.randbelow(250) + 1}, 10.0.0.1"}

    async with app.router.lifespan_context(app):
        transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
            statuses = [
                (await client.post("/api/auth/register", json={}, headers=headers)).status_code
                for _ in range(2)
            ]
            limited = await client.post("/api/auth/register", json={}, headers=headers)

    assert statuses == [400, 400]
    assert limited.status_code == 429
    assert limited.json()["code"] == "RATE_LIMITED"
    assert limited.headers["Retry-After"] == "60"


class TestCli:
    def test_generate_secret_passes_validation(self):
        result = CliRunner().invoke(main, ["generate-secret"])

        assert result.exit_code == 0
        secret = result.output.strip()
        assert validate_high_entropy_secret(secret) == secret

    def test_check_secret(self):
        runner = CliRunner()

        good = runner.invoke(main, ["check-secret"], env={"JWT_SECRET": secrets.token_hex(32)})
        weak = runner.invoke(main, ["check-secret"], env={"JWT_SECRET": "aaaaaaaaaaaaaaaaaaaa"})

        assert good.exit_code == 0
        assert "JWT_SECRET is valid" in good.output
        assert weak.exit_code == 1
        assert "insufficient entropy" in weak.output

    def test_db_init_and_unlock_unknown_user(self, tmp_path):
        runner = CliRunner()
        database_url = f"sqlite:///{tmp_path / 'cli.db'}"

        init = runner.invoke(main, ["db", "init", "--database-url", database_url])
        unlock = runner.invoke(
            main, ["unlock-user", "nobody@x.com", "--database-url", database_url]
        )

        assert init.exit_code == 0
        assert "Database initialized" in init.output
        assert unlock.exit_code == 1
        assert "No user with email nobody@x.com" in unlock.output

    def test_config_hides_secret(self):
        secret = secrets.token_hex(32)
        result = CliRunner().invoke(main, ["config"], env={"JWT_SECRET": secret})

        assert result.exit_code == 0
        assert "WebAuthn RP ID" in result.output
        assert secret not in result.output
