from settings import load_settings


def test_defaults(monkeypatch):
    for name in ("POLL_DELAY_MS", "CLASSIFIER_MODEL_URL", "DETECTOR_MAX_DIM", "DETECTOR_TRACKING", "GAP_RETRIES"):
        monkeypatch.delenv(name, raising=False)
    settings = load_settings(dotenv=False)
    assert settings.poll_delay == 0.8
    assert settings.min_score == 0.3
    assert settings.gap_retries == 0
    assert (settings.frame_width, settings.frame_height) == (1280, 720)
    assert settings.detector.max_internal_dimension == 128
    assert settings.detector.enable_tracking is True
    assert settings.detector.tracker_type == "bounding_box"
    assert settings.classifier_assets is None
    assert settings.classifier_options.input_size == 34
    assert settings.classifier_options.output_size == 5


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("POLL_DELAY_MS", "500")
    monkeypatch.setenv("DETECTOR_TRACKING", "false")
    monkeypatch.setenv("GAP_RETRIES", "2")
    monkeypatch.setenv("CLASSIFIER_MODEL_URL", "https://models.example.com/model.pkl")
    monkeypatch.setenv("CLASSIFIER_METADATA_URL", "https://models.example.com/model_meta.json")
    settings = load_settings(dotenv=False)
    assert settings.poll_delay == 0.5
    assert settings.detector.enable_tracking is False
    assert settings.gap_retries == 2
    assert settings.classifier_assets.model_url == "https://models.example.com/model.pkl"
    assert settings.classifier_assets.metadata_url.endswith("model_meta.json")
    assert settings.classifier_assets.weights_url is None
