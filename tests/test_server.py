async def test_health_checks_database(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "database": "ok"}


async def test_client_config_passthrough(client):
    response = await client.get("/api/config")

    assert response.json() == {
        "supabaseUrl": "https://project.supabase.co",
        "supabaseAnonKey": "anon-key",
    }


async def test_unknown_route_uses_error_body(client):
    response = await client.get("/api/does-not-exist")

    assert response.status_code == 404
    assert response.json() == {"error": "Not Found"}


async def test_validation_errors_are_400_with_message(client, make_account, auth):
    account = await make_account()

    response = await client.post("/api/generate-try-on", json={}, headers=auth(account))

    assert response.status_code == 400
    assert response.json()["code"] == "invalid_input"
    assert response.json()["error"]


async def test_postgres_urls_use_asyncpg():
    from db import async_database_url

    assert async_database_url("postgres://u:p@db:5432/app") == "postgresql+asyncpg://u:p@db:5432/app"
    assert async_database_url("postgresql://u:p@db/app") == "postgresql+asyncpg://u:p@db/app"
    assert async_database_url("sqlite+aiosqlite:///./dev.db") == "sqlite+aiosqlite:///./dev.db"
