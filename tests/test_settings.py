from meetlogger.services.settings import DEFAULT_PREFERRED_MODELS, PipelineSettings


def test_defaults_without_pipeline_section():
    settings = PipelineSettings.from_config({})
    assert settings.max_logs == 300
    assert settings.clip_utterances == 120
    assert settings.preferred_models == DEFAULT_PREFERRED_MODELS
    assert settings.api_variants == ("v1", "v1beta")


def test_values_are_read_and_coerced():
    settings = PipelineSettings.from_config(
        {
            "pipeline": {
                "max_logs": 50,
                "flush_delay_seconds": 2,
                "preferred_models": ["models/gemini-2.5-flash"],
                "artifact_target": "google_docs",
                "unknown_key": True,
            }
        }
    )
    assert settings.max_logs == 50
    assert settings.flush_delay_seconds == 2.0
    assert isinstance(settings.flush_delay_seconds, float)
    assert settings.preferred_models == ("models/gemini-2.5-flash",)
    assert settings.artifact_target == "google_docs"


def test_bad_values_fall_back_to_defaults(caplog):
    settings = PipelineSettings.from_config(
        {"pipeline": {"max_logs": -1, "clip_utterances": "many", "api_variants": "v1", "temperature": True}}
    )
    assert settings.max_logs == 300
    assert settings.clip_utterances == 120
    assert settings.api_variants == ("v1", "v1beta")
    assert settings.temperature == 0.3
    assert "pipeline.max_logs" in caplog.text


def test_non_object_section_is_ignored():
    assert PipelineSettings.from_config({"pipeline": []}) == PipelineSettings()


def test_token_is_not_in_repr():
    assert "secret" not in repr(PipelineSettings(google_docs_token="secret"))
