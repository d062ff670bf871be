from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, List, Optional, Sequence, Tuple

# Minimum confidence for a keypoint to be stored and rendered.
ACCEPTANCE_THRESHOLD = 0.3

# Detector-native keypoint order.
COCO17_NAMES = [
    "nose",
    "left_eye",
    "right_eye",
    "left_ear",
    "right_ear",
    "left_shoulder",
    "right_shoulder",
    "left_elbow",
    "right_elbow",
    "left_wrist",
    "right_wrist",
    "left_hip",
    "right_hip",
    "left_knee",
    "right_knee",
    "left_ankle",
    "right_ankle",
]

FEATURE_SIZE = 2 * len(COCO17_NAMES)


class Joint(IntEnum):
    """Tracked skeleton joints, valued by their index in the detector output."""

    LEFT_SHOULDER = 5
    RIGHT_SHOULDER = 6
    LEFT_ELBOW = 7
    RIGHT_ELBOW = 8
    LEFT_WRIST = 9
    RIGHT_WRIST = 10
    LEFT_HIP = 11
    RIGHT_HIP = 12
    LEFT_KNEE = 13
    RIGHT_KNEE = 14
    LEFT_ANKLE = 15
    RIGHT_ANKLE = 16

    @property
    def key(self) -> str:
        return self.name.lower()


@dataclass(frozen=True)
class Keypoint:
    """
    A single 2D keypoint in pixel coordinates.
    """

    name: str
    x: float
    y: float
    score: float  # confidence [0..1]


@dataclass(frozen=True)
class Pose:
    """
    One detected subject for one frame, keypoints in COCO-17 order.
    """

    keypoints: List[Keypoint] = field(default_factory=list)
    score: float = 0.0


class KeypointStore:
    """
    Latest accepted position of each tracked joint.

    Rebuilt from scratch on every update: a joint whose keypoint is missing or
    not above the acceptance threshold is absent, whatever the previous frame
    held.
    """

    def __init__(self, threshold: float = ACCEPTANCE_THRESHOLD) -> None:
        self.threshold = threshold
        self._points: Dict[str, Tuple[float, float]] = {}

    def update(self, raw_keypoints: Sequence[Keypoint]) -> None:
        points = {}
        for joint in Joint:
            if joint.value >= len(raw_keypoints):
                continue
            kp = raw_keypoints[joint.value]
            if kp is None or kp.score is None:
                continue
            if kp.score > self.threshold:
                points[joint.key] = (kp.x, kp.y)
        self._points = points

    def get(self, name: str) -> Optional[Tuple[float, float]]:
        return self._points.get(name)

    def as_dict(self) -> Dict[str, Tuple[float, float]]:
        return dict(self._points)

    def __contains__(self, name: str) -> bool:
        return name in self._points

    def __len__(self) -> int:
        return len(self._points)


def flatten_keypoints(raw_keypoints: Sequence[Keypoint]) -> List[float]:
    """
    Flatten raw detector keypoints to [x0, y0, x1, y1, ...] for the classifier.

    Not filtered by score. Missing keypoints are zero-filled so the vector is
    always FEATURE_SIZE long.
    """
    row: List[float] = []
    for kp in list(raw_keypoints)[: len(COCO17_NAMES)]:
        row.extend([float(kp.x), float(kp.y)])
    row.extend([0.0] * (FEATURE_SIZE - len(row)))
    return row
