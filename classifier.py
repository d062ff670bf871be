from __future__ import annotations

import json
import logging
import pickle
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional

import httpx
import numpy as np

from keypoints import FEATURE_SIZE

logger = logging.getLogger(__name__)


class ClassifierError(RuntimeError):
    """Raised when the pose classifier cannot load or classify."""


@dataclass(frozen=True)
class ClassifierOptions:
    input_size: int = FEATURE_SIZE
    output_size: int = 5
    task: str = "classification"


@dataclass(frozen=True)
class ClassifierAssets:
    """
    Where the pretrained classifier lives. Each entry is a local path or an
    http(s) URL.

    - model_url: pickled estimator exposing predict_proba and classes_.
    - metadata_url: JSON with optional "labels", "input_size", "output_size".
    - weights_url: pickled dict of fitted attributes set onto the model.
    """

    model_url: str
    metadata_url: Optional[str] = None
    weights_url: Optional[str] = None


@dataclass(frozen=True)
class ClassificationResult:
    label: str
    confidence: float

    def to_dict(self):
        return {"label": self.label, "confidence": self.confidence}


def fetch_asset(location, timeout=30.0):
    """Return the bytes at a local path or http(s) URL."""
    if location.startswith(("http://", "https://")):
        response = httpx.get(location, timeout=timeout, follow_redirects=True)
        response.raise_for_status()
        return response.content
    with open(location, "rb") as f:
        return f.read()


class PoseClassifier:
    """
    Pretrained pose classifier with a callback interface.

    load() fetches and validates the model on a background thread and calls
    on_ready once it can classify. classify() reports through
    on_result(error, results) and never raises.
    """

    def __init__(self, options: ClassifierOptions = ClassifierOptions()):
        if options.task != "classification":
            raise ClassifierError(f"Unsupported task: {options.task!r}")
        self.options = options
        self.labels: List[str] = []
        self.error: Optional[Exception] = None
        self._model = None

    @property
    def loaded(self):
        return self._model is not None

    def load(self, assets: ClassifierAssets, on_ready: Callable[[], None]) -> threading.Thread:
        thread = threading.Thread(target=self._load, args=(assets, on_ready), daemon=True)
        thread.start()
        return thread

    def _load(self, assets, on_ready):
        try:
            model, labels = self._read_assets(assets)
        except Exception as e:
            self.error = e
            logger.error("Pose classifier failed to load from %s: %s", assets.model_url, e)
            return
        self.labels = labels
        self._model = model
        logger.info("Pose classifier loaded: %s", ", ".join(labels))
        on_ready()

    def _read_assets(self, assets):
        model = pickle.loads(fetch_asset(assets.model_url))
        if not hasattr(model, "predict_proba"):
            raise ClassifierError("Model does not provide predict_proba")

        if assets.weights_url:
            state = pickle.loads(fetch_asset(assets.weights_url))
            if not isinstance(state, dict):
                raise ClassifierError("Weights asset must be a dict of fitted attributes")
            for attr, value in state.items():
                setattr(model, attr, value)

        metadata = {}
        if assets.metadata_url:
            metadata = json.loads(fetch_asset(assets.metadata_url).decode("utf-8"))

        input_size = int(metadata.get("input_size", self.options.input_size))
        n_features = getattr(model, "n_features_in_", input_size)
        if input_size != self.options.input_size or n_features != self.options.input_size:
            raise ClassifierError(
                f"Model expects {n_features} inputs, classifier is set up for {self.options.input_size}"
            )

        labels = metadata.get("labels") or [str(c) for c in getattr(model, "classes_", [])]
        output_size = int(metadata.get("output_size", len(labels)))
        if len(labels) != self.options.output_size or output_size != self.options.output_size:
            raise ClassifierError(
                f"Model has {len(labels)} classes, classifier is set up for {self.options.output_size}"
            )
        return model, [str(label) for label in labels]

    def classify(self, vector, on_result):
        try:
            if self._model is None:
                raise ClassifierError("Classifier is not loaded")
            features = np.asarray(vector, dtype=float).reshape(1, -1)
            if features.shape[1] != self.options.input_size:
                raise ClassifierError(
                    f"Expected {self.options.input_size} features, got {features.shape[1]}"
                )
            probabilities = self._model.predict_proba(features)[0]
        except Exception as e:
            on_result(e if isinstance(e, ClassifierError) else ClassifierError(str(e)), None)
            return
        results = [
            ClassificationResult(label=label, confidence=float(p))
            for label, p in zip(self.labels, probabilities)
        ]
        results.sort(key=lambda r: r.confidence, reverse=True)
        on_result(None, results)


class ClassificationBridge:
    """
    Forwards each frame's raw keypoint vector to the classifier once it is
    ready and keeps the latest ranked result for display.

    The classifier is created lazily on the first ensure_created() call and
    never again. Without assets the bridge stays disabled.
    """

    def __init__(self, assets: Optional[ClassifierAssets], classifier_factory=PoseClassifier):
        self.assets = assets
        self.classifier_factory = classifier_factory
        self.classifier = None
        self.ready = False
        self.results: List[ClassificationResult] = []
        self._load_thread = None
        self._created = False
        self._create_error = None

    @property
    def enabled(self):
        return self.assets is not None and bool(self.assets.model_url)

    def ensure_created(self):
        if not self.enabled or self._created:
            return
        self._created = True
        try:
            self.classifier = self.classifier_factory()
            self._load_thread = self.classifier.load(self.assets, self._on_ready)
        except Exception as e:
            self._create_error = e
            logger.exception("Could not create pose classifier")

    def wait_ready(self, timeout=None):
        """Block until the background load finishes. Returns readiness."""
        if self._load_thread is not None:
            self._load_thread.join(timeout)
        return self.ready

    def _on_ready(self):
        self.ready = True

    def on_frame(self, flattened_keypoints):
        if not self.ready:
            return
        self.classifier.classify(flattened_keypoints, self._on_result)

    def _on_result(self, error, results):
        if error is not None:
            logger.warning("Pose classification failed: %s", error)
            return
        self.results = list(results)

    @property
    def error(self) -> Optional[str]:
        """Why the classifier is unavailable, if creation or loading failed."""
        if self._create_error is not None:
            return f"Pose classifier failed to load: {self._create_error}"
        failure = getattr(self.classifier, "error", None)
        if failure is not None:
            return f"Pose classifier failed to load: {failure}"
        return None

    @property
    def top(self) -> Optional[ClassificationResult]:
        return self.results[0] if self.results else None
