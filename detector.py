from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List

import cv2
import numpy as np

from keypoints import COCO17_NAMES, Keypoint, Pose

logger = logging.getLogger(__name__)

# MoveNet-style variant names mapped to MediaPipe model complexity.
MODEL_VARIANTS = {
    "multipose_lightning": 0,
    "singlepose_lightning": 0,
    "singlepose_thunder": 1,
    "heavy": 2,
}
TRACKER_TYPES = ("bounding_box",)
# Side of the square image the MediaPipe pose landmark model runs on.
MEDIAPIPE_INPUT_SIZE = 256

# Precompute CLAHE and gamma correction table.
CLAHE = cv2.createCLAHE(clipLimit=3.0, tileGridSize=(8, 8))
GAMMA = 1.2
invGamma = 1.0 / GAMMA
gamma_table = np.array([((i / 255.0) ** invGamma) * 255 for i in np.arange(256)]).astype("uint8")


class DetectorError(RuntimeError):
    """Raised when a pose detector cannot be built or configured."""


@dataclass(frozen=True)
class DetectorConfig:
    model_variant: str = "multipose_lightning"
    enable_tracking: bool = True
    tracker_type: str = "bounding_box"
    # Longer side of the frame handed to the model, in pixels. MediaPipe never
    # gets less than MEDIAPIPE_INPUT_SIZE; falsy disables the bound.
    max_internal_dimension: int = 128
    preprocess: bool = False


def preprocess_frame(frame):
    """Enhance the frame using CLAHE and gamma correction."""
    lab = cv2.cvtColor(frame, cv2.COLOR_BGR2LAB)
    l, a, b = cv2.split(lab)
    cl = CLAHE.apply(l)
    lab = cv2.merge((cl, a, b))
    enhanced = cv2.cvtColor(lab, cv2.COLOR_LAB2BGR)
    final = cv2.LUT(enhanced, gamma_table)
    return final


def fit_to_dimension(frame, max_dim):
    """Downscale frame so its longer side is at most max_dim pixels."""
    h, w = frame.shape[:2]
    longest = max(h, w)
    if not max_dim or longest <= max_dim:
        return frame
    scale = float(max_dim) / float(longest)
    size = (max(1, int(round(w * scale))), max(1, int(round(h * scale))))
    return cv2.resize(frame, size, interpolation=cv2.INTER_AREA)


class PoseDetector(ABC):
    """
    Pose model adapter.

    Implementations take a BGR frame (H,W,3 uint8) and return zero or more
    poses with COCO-17 keypoints in the frame's pixel space.
    """

    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    def estimate_poses(self, frame) -> List[Pose]: ...

    @abstractmethod
    def close(self) -> None: ...


class MediaPipePoseDetector(PoseDetector):
    """
    MediaPipe Pose detector producing COCO-17 keypoints.

    Notes:
    - MediaPipe uses normalized coordinates; they are scaled to the size of the
      frame passed in, not of the downscaled model input.
    - `visibility` is used as score.
    - Video mode tracks the subject's region of interest between frames, which
      is the bounding-box tracking the config asks for.
    - At most one pose is returned.
    """

    def __init__(self, config: DetectorConfig) -> None:
        if config.model_variant not in MODEL_VARIANTS:
            raise DetectorError(f"Unknown model variant: {config.model_variant!r}")
        if config.tracker_type not in TRACKER_TYPES:
            raise DetectorError(f"Unsupported tracker type: {config.tracker_type!r}")
        try:
            import mediapipe as mp  # type: ignore
        except ImportError as e:
            raise DetectorError("MediaPipe is not installed. Install it with: pip install mediapipe") from e

        self.config = config
        self._mp = mp
        self._pose = mp.solutions.pose.Pose(
            static_image_mode=not config.enable_tracking,
            model_complexity=MODEL_VARIANTS[config.model_variant],
            enable_segmentation=False,
            smooth_landmarks=config.enable_tracking,
            min_detection_confidence=0.5,
            min_tracking_confidence=0.5,
        )
        PL = mp.solutions.pose.PoseLandmark
        self._landmark_index = [int(getattr(PL, name.upper())) for name in COCO17_NAMES]

    def name(self) -> str:
        return "mediapipe_pose"

    def estimate_poses(self, frame) -> List[Pose]:
        h, w = int(frame.shape[0]), int(frame.shape[1])
        limit = self.config.max_internal_dimension
        if limit:
            limit = max(limit, MEDIAPIPE_INPUT_SIZE)
        small = fit_to_dimension(frame, limit)
        if self.config.preprocess:
            small = preprocess_frame(small)
        rgb = cv2.cvtColor(small, cv2.COLOR_BGR2RGB)
        rgb.flags.writeable = False

        res = self._pose.process(rgb)
        if not res or not getattr(res, "pose_landmarks", None):
            return []

        lm = res.pose_landmarks.landmark
        keypoints = []
        for name, idx in zip(COCO17_NAMES, self._landmark_index):
            p = lm[idx]
            keypoints.append(
                Keypoint(
                    name=name,
                    x=float(p.x) * w,
                    y=float(p.y) * h,
                    score=float(getattr(p, "visibility", 0.0) or 0.0),
                )
            )
        score = sum(kp.score for kp in keypoints) / len(keypoints)
        return [Pose(keypoints=keypoints, score=score)]

    def close(self) -> None:
        if self._pose is not None:
            self._pose.close()
            self._pose = None


def create_detector(config: DetectorConfig) -> PoseDetector:
    """Build the pose detector; any failure is raised as DetectorError."""
    try:
        detector = MediaPipePoseDetector(config)
    except DetectorError:
        raise
    except Exception as e:
        raise DetectorError(f"Could not create pose detector: {e}") from e
    logger.info("Pose detector loaded (%s, %s)", detector.name(), config.model_variant)
    return detector
