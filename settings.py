from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from classifier import ClassifierAssets, ClassifierOptions
from detector import DetectorConfig


def _env_bool(name, default):
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_str(name) -> Optional[str]:
    value = os.getenv(name, "").strip()
    return value or None


@dataclass(frozen=True)
class Settings:
    camera_index: int = 0
    frame_width: int = 1280
    frame_height: int = 720
    # Delay between detector polls, well below the camera frame rate.
    poll_delay_ms: int = 800
    min_score: float = 0.3
    gap_retries: int = 0
    detector: DetectorConfig = field(default_factory=DetectorConfig)
    classifier_options: ClassifierOptions = field(default_factory=ClassifierOptions)
    # None disables classification.
    classifier_assets: Optional[ClassifierAssets] = None
    log_level: str = "INFO"

    @property
    def poll_delay(self):
        return self.poll_delay_ms / 1000.0


def load_settings(dotenv=True) -> Settings:
    """Read settings from the environment (and a .env file when present)."""
    if dotenv:
        load_dotenv()

    detector = DetectorConfig(
        model_variant=os.getenv("DETECTOR_MODEL", "multipose_lightning"),
        enable_tracking=_env_bool("DETECTOR_TRACKING", True),
        tracker_type=os.getenv("DETECTOR_TRACKER", "bounding_box"),
        max_internal_dimension=int(os.getenv("DETECTOR_MAX_DIM", "128")),
        preprocess=_env_bool("DETECTOR_PREPROCESS", False),
    )

    model_url = _env_str("CLASSIFIER_MODEL_URL")
    assets = None
    if model_url:
        assets = ClassifierAssets(
            model_url=model_url,
            metadata_url=_env_str("CLASSIFIER_METADATA_URL"),
            weights_url=_env_str("CLASSIFIER_WEIGHTS_URL"),
        )

    return Settings(
        camera_index=int(os.getenv("CAMERA_INDEX", "0")),
        frame_width=int(os.getenv("FRAME_WIDTH", "1280")),
        frame_height=int(os.getenv("FRAME_HEIGHT", "720")),
        poll_delay_ms=int(os.getenv("POLL_DELAY_MS", "800")),
        min_score=float(os.getenv("MIN_SCORE", "0.3")),
        gap_retries=int(os.getenv("GAP_RETRIES", "0")),
        detector=detector,
        classifier_options=ClassifierOptions(
            input_size=int(os.getenv("CLASSIFIER_INPUT_SIZE", "34")),
            output_size=int(os.getenv("CLASSIFIER_OUTPUT_SIZE", "5")),
        ),
        classifier_assets=assets,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
