import sys
from pathlib import Path
import pytest
from fastapi import FastAPI
from httpx import AsyncClient, ASGITransport

# Ensure the project root is importable so `app.*` modules resolve
_ROOT_DIR = Path(__file__).resolve().parents[1]
if str(_ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(_ROOT_DIR))

from app.main import create_app  # noqa: E402


@pytest.fixture()
def settings_override(monkeypatch):
    monkeypatch.setenv("DEBUG", "true")
    monkeypatch.setenv("POSTGRES_HOST", "localhost")
    monkeypatch.setenv("DB_ECHO", "false")
    yield


@pytest.fixture()
def app(settings_override) -> FastAPI:
    return create_app()


@pytest.fixture()
async def async_client(app: FastAPI):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
