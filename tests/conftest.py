import pytest
import requests

from meetlogger.services.artifacts import LocalArtifactWriter
from meetlogger.services.history import HistoryManager
from meetlogger.services.kv_store import MemoryKeyValueStore
from meetlogger.services.llm import GeminiProvider
from meetlogger.services.model_discovery import ModelDiscovery
from meetlogger.services.session_log_store import SessionLogStore
from meetlogger.services.settings import PipelineSettings
from meetlogger.services.summarization import CREDENTIAL_KEY, SummarizationService

MODELS_PAYLOAD = {
    "models": [
        {"name": "models/gemini-pro", "supportedGenerationMethods": ["generateContent"]},
        {"name": "models/embedding-001", "supportedGenerationMethods": ["embedContent"]},
        {
            "name": "models/gemini-2.0-flash",
            "supportedGenerationMethods": ["generateContent", "countTokens"],
        },
    ]
}


def gemini_reply(*texts):
    return {"candidates": [{"content": {"parts": [{"text": t} for t in texts]}}]}


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload

    def raise_for_status(self):
        if self.status_code // 100 != 2:
            raise requests.HTTPError(f"HTTP {self.status_code}")


class FakeSession:
    """Stand-in for ``requests``: routes by HTTP method and URL substring.

    A route value is a FakeResponse, an exception to raise, or a list of
    those consumed one per call (the last one repeats).
    """

    def __init__(self, get=None, post=None):
        self.routes = {"GET": dict(get or {}), "POST": dict(post or {})}
        self.calls = []

    def _dispatch(self, method, url, kwargs):
        self.calls.append((method, url, kwargs))
        for fragment, result in self.routes[method].items():
            if fragment not in url:
                continue
            if isinstance(result, list):
                result = result.pop(0) if len(result) > 1 else result[0]
            if isinstance(result, Exception):
                raise result
            return result
        return FakeResponse(404, {"error": {"message": f"no route for {url}"}})

    def get(self, url, **kwargs):
        return self._dispatch("GET", url, kwargs)

    def post(self, url, **kwargs):
        return self._dispatch("POST", url, kwargs)

    def urls(self, method):
        return [url for m, url, _ in self.calls if m == method]


def gemini_session(summary_text="# Overview\nWe decided X"):
    return FakeSession(
        get={"/v1/models": FakeResponse(200, MODELS_PAYLOAD)},
        post={":generateContent": FakeResponse(200, gemini_reply(summary_text))},
    )


def session_provider_factory(session):
    def factory(api_key, model):
        return GeminiProvider(api_key, model.name, model.api_variant, session=session)

    return factory


@pytest.fixture
def kv_store():
    return MemoryKeyValueStore()


@pytest.fixture
def settings():
    return PipelineSettings(flush_delay_seconds=0.01, discovery_retries=1)


@pytest.fixture
def session_logs(kv_store, settings):
    store = SessionLogStore(
        kv_store, max_logs=settings.max_logs, flush_delay=settings.flush_delay_seconds
    )
    store.rehydrate()
    yield store
    store.close()


@pytest.fixture
def artifacts_dir(tmp_path):
    return tmp_path / "artifacts"


@pytest.fixture
def history(kv_store, artifacts_dir, settings):
    return HistoryManager(
        kv_store, LocalArtifactWriter(str(artifacts_dir)), max_history=settings.max_history
    )


@pytest.fixture
def http_session():
    return gemini_session()


@pytest.fixture
def make_service(kv_store, session_logs, history, settings, http_session):
    def _make(credential="test-key", session=None, history_manager=None):
        session = session or http_session
        if credential:
            kv_store.set({CREDENTIAL_KEY: credential})
        return SummarizationService(
            kv_store,
            session_logs,
            history_manager or history,
            settings,
            discovery=ModelDiscovery(api_variants=settings.api_variants, retries=1, session=session),
            provider_factory=session_provider_factory(session),
        )

    return _make
