import numpy as np
import pytest

from keypoints import COCO17_NAMES, Keypoint, Pose


def make_keypoints(scores=None, **overrides):
    """17 keypoints at (10*i, 20*i); scores default to 0. overrides: index -> (x, y, score)."""
    scores = scores if scores is not None else [0.0] * len(COCO17_NAMES)
    keypoints = [
        Keypoint(name=name, x=10.0 * i, y=20.0 * i, score=scores[i])
        for i, name in enumerate(COCO17_NAMES)
    ]
    for key, (x, y, score) in overrides.items():
        i = int(key.lstrip("_"))
        keypoints[i] = Keypoint(name=COCO17_NAMES[i], x=x, y=y, score=score)
    return keypoints


class RecordingSurface:
    """Drawing surface that records calls instead of drawing."""

    def __init__(self, width=1280, height=720):
        self.width = width
        self.height = height
        self.lines = []
        self.circles = []
        self.clears = 0

    def clear(self):
        self.clears += 1
        self.lines = []
        self.circles = []

    def draw_line(self, p1, p2, color, thickness):
        self.lines.append((p1, p2))

    def draw_circle(self, center, radius, color):
        self.circles.append(center)

    def snapshot(self):
        return {"lines": list(self.lines), "circles": list(self.circles)}


class StaticFrameSource:
    def __init__(self, frame=None):
        self.frame = frame if frame is not None else np.zeros((720, 1280, 3), dtype=np.uint8)

    def read(self):
        return self.frame


class ScriptedDetector:
    """Returns queued responses in order; the last one repeats."""

    def __init__(self, responses, events):
        self.responses = list(responses)
        self.events = events
        self.closed = False

    def name(self):
        return "scripted"

    def estimate_poses(self, frame):
        self.events.append("poll")
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response

    def close(self):
        self.closed = True


class DetectorFactory:
    """Builds a ScriptedDetector per call, each with its own script."""

    def __init__(self, *scripts, fail=False):
        self.scripts = list(scripts)
        self.fail = fail
        self.events = []
        self.created = []

    def __call__(self):
        self.events.append("create")
        if self.fail:
            raise RuntimeError("model download failed")
        script = self.scripts.pop(0) if len(self.scripts) > 1 else self.scripts[0]
        detector = ScriptedDetector(script, self.events)
        self.created.append(detector)
        return detector


@pytest.fixture
def surface():
    return RecordingSurface()


@pytest.fixture
def frame_source():
    return StaticFrameSource()


@pytest.fixture
def shoulders_pose():
    keypoints = make_keypoints(_5=(100.0, 200.0, 0.9), _6=(300.0, 200.0, 0.9))
    return Pose(keypoints=keypoints, score=0.1)
