"""
Shared fixtures.

The database and upload directory are pointed at a throwaway directory
before anything from ``pal`` is imported, because settings and the engine
are created at import time.
"""
import os
import shutil
import tempfile

_TEST_ROOT = tempfile.mkdtemp(prefix="pal-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_ROOT}/pal-test.db"
os.environ["UPLOAD_DIR"] = os.path.join(_TEST_ROOT, "uploads")
os.environ["LLM_PROVIDER"] = "openai"
os.environ["EMBEDDINGS_PROVIDER"] = "local"
os.environ["OPENAI_API_KEY"] = ""
os.environ["GEMINI_API_KEY"] = ""
os.environ["SERPAPI_KEY"] = ""
os.environ["BING_SEARCH_KEY"] = ""
os.environ["ENVIRONMENT"] = "development"

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from pal.core.config import get_settings  # noqa: E402
from pal.core.database import Base, engine, async_session_maker  # noqa: E402
from pal.core.errors import GenerationError  # noqa: E402
from pal.main import app  # noqa: E402
from pal.services.container import build_services  # noqa: E402
from pal.services.providers import GenerationParams, GenerationResult, LLMProvider  # noqa: E402
from pal.services.search import WebSearchService  # noqa: E402


class FakeProvider(LLMProvider):
    """Records what it was asked and answers with a canned reply."""

    name = "fake"
    model = "fake-model"

    def __init__(self, reply: str = "Happy to help with that!"):
        self.reply = reply
        self.fail = False
        self.calls: list[tuple[list[dict[str, str]], GenerationParams]] = []

    @property
    def configured(self) -> bool:
        return True

    async def generate(self, messages, params):
        self.calls.append((messages, params))
        if self.fail:
            raise GenerationError("fake provider is down")
        return GenerationResult(
            content=self.reply,
            model=self.model,
            provider=self.name,
            usage={"prompt_tokens": 12, "completion_tokens": 8, "total_tokens": 20},
        )

    async def embed(self, text):
        raise NotImplementedError

    async def aclose(self):
        pass


def pytest_sessionfinish(session, exitstatus):
    shutil.rmtree(_TEST_ROOT, ignore_errors=True)


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
async def db_setup():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    # Pooled aiosqlite connections are bound to this test's event loop.
    await engine.dispose()


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
async def services(db_setup, settings, fake_provider):
    container = build_services(
        settings,
        async_session_maker,
        providers={"openai": fake_provider, "gemini": fake_provider},
        web_search=WebSearchService(),
    )
    await container.startup()
    app.state.services = container
    yield container
    await container.shutdown()


@pytest.fixture
async def client(services):
    app.state.rate_limiter.reset()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
