import httpx
import pytest

from flashdrop.core.config import get_settings
from flashdrop.main import create_app


@pytest.fixture
def app(settings, session_factory, notifier):
    app = create_app(settings, session_factory)
    app.dependency_overrides[get_settings] = lambda: settings
    # ASGITransport does not run the lifespan, so wire the notifier directly
    app.state.notifier = notifier
    return app


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
