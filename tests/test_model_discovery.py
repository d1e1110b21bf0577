import pytest
import requests
from conftest import MODELS_PAYLOAD, FakeResponse, FakeSession

from meetlogger.services.errors import DiscoveryUnavailable, NoCredential
from meetlogger.services.model_discovery import ModelDescriptor, ModelDiscovery, pick


def _models(*names, variant="v1"):
    return [ModelDescriptor(name=n, api_variant=variant) for n in names]


def test_discover_keeps_generation_models_from_first_variant():
    session = FakeSession(get={"/v1/models": FakeResponse(200, MODELS_PAYLOAD)})
    models = ModelDiscovery(session=session).discover("key")
    assert [m.name for m in models] == ["models/gemini-pro", "models/gemini-2.0-flash"]
    assert all(m.api_variant == "v1" for m in models)
    assert session.urls("GET") == ["https://generativelanguage.googleapis.com/v1/models"]
    assert session.calls[0][2]["params"] == {"key": "key"}


def test_discover_falls_back_to_beta_variant():
    session = FakeSession(
        get={
            "/v1/models": FakeResponse(200, {"models": []}),
            "/v1beta/models": FakeResponse(200, MODELS_PAYLOAD),
        }
    )
    models = ModelDiscovery(session=session).discover("key")
    assert models[0].api_variant == "v1beta"


def test_discover_retries_transport_errors_per_variant():
    session = FakeSession(
        get={
            "/v1/models": [
                requests.ConnectionError("reset"),
                FakeResponse(200, MODELS_PAYLOAD),
            ]
        }
    )
    models = ModelDiscovery(session=session, retries=2).discover("key")
    assert len(models) == 2
    assert len(session.urls("GET")) == 2


def test_discover_without_credential():
    with pytest.raises(NoCredential):
        ModelDiscovery(session=FakeSession()).discover("")


def test_discover_unavailable_when_all_variants_fail():
    session = FakeSession(
        get={
            "/v1/models": FakeResponse(400, {"error": {"message": "API key not valid"}}),
            "/v1beta/models": requests.Timeout("slow"),
        }
    )
    with pytest.raises(DiscoveryUnavailable) as excinfo:
        ModelDiscovery(session=session, retries=1).discover("bad")
    assert "API key not valid" in str(excinfo.value)


def test_pick_prefers_ranked_exact_match():
    models = _models("models/gemini-pro", "models/gemini-1.5-flash", "models/gemini-2.0-flash")
    chosen = pick(models, ["models/gemini-2.0-flash", "models/gemini-1.5-flash"])
    assert chosen.name == "models/gemini-2.0-flash"


def test_pick_matches_without_models_prefix():
    models = _models("models/gemini-pro", "models/gemini-1.5-flash")
    assert pick(models, ["gemini-1.5-flash"]).name == "models/gemini-1.5-flash"


def test_pick_falls_back_to_fast_marker_then_first():
    models = _models("models/gemini-pro", "models/gemini-3-flash-preview")
    assert pick(models, ["models/unknown"]).name == "models/gemini-3-flash-preview"
    assert pick(_models("models/a", "models/b"), ["models/c"]).name == "models/a"


def test_pick_is_deterministic():
    models = _models("models/gemini-pro", "models/gemini-2.0-flash", "models/gemini-1.5-flash")
    results = {pick(models, ("models/none",), "flash").name for _ in range(5)}
    assert results == {"models/gemini-2.0-flash"}


def test_pick_requires_models():
    with pytest.raises(DiscoveryUnavailable):
        pick([])
