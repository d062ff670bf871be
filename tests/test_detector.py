from types import SimpleNamespace

import numpy as np
import pytest

from detector import (
    DetectorConfig,
    DetectorError,
    MEDIAPIPE_INPUT_SIZE,
    MediaPipePoseDetector,
    create_detector,
    fit_to_dimension,
    preprocess_frame,
)


class FakePoseSolution:
    def __init__(self, landmarks):
        self.landmarks = landmarks
        self.inputs = []
        self.closed = False

    def process(self, rgb):
        self.inputs.append(rgb)
        if self.landmarks is None:
            return SimpleNamespace(pose_landmarks=None)
        return SimpleNamespace(pose_landmarks=SimpleNamespace(landmark=self.landmarks))

    def close(self):
        self.closed = True


def detector_with(landmarks, config=DetectorConfig()):
    # Bypass model construction; exercise the landmark mapping only.
    detector = MediaPipePoseDetector.__new__(MediaPipePoseDetector)
    detector.config = config
    detector._pose = FakePoseSolution(landmarks)
    detector._landmark_index = list(range(17))
    return detector


def landmark(x, y, visibility):
    return SimpleNamespace(x=x, y=y, visibility=visibility)


def test_fit_to_dimension_bounds_longer_side():
    frame = np.zeros((720, 1280, 3), dtype=np.uint8)
    small = fit_to_dimension(frame, 128)
    assert small.shape == (72, 128, 3)
    assert fit_to_dimension(frame, 2000) is frame


def test_preprocess_keeps_shape_and_dtype():
    frame = np.random.default_rng(0).integers(0, 255, size=(48, 64, 3), dtype=np.uint8)
    out = preprocess_frame(frame)
    assert out.shape == frame.shape
    assert out.dtype == np.uint8


def test_keypoints_are_scaled_to_the_full_frame():
    landmarks = [landmark(0.5, 0.25, 0.9) for _ in range(17)]
    detector = detector_with(landmarks)
    frame = np.zeros((720, 1280, 3), dtype=np.uint8)

    poses = detector.estimate_poses(frame)

    assert len(poses) == 1
    kp = poses[0].keypoints[5]
    assert kp.name == "left_shoulder"
    assert (kp.x, kp.y, kp.score) == (640.0, 180.0, 0.9)
    assert len(poses[0].keypoints) == 17
    assert poses[0].score == pytest.approx(0.9)
    assert max(detector._pose.inputs[0].shape[:2]) == MEDIAPIPE_INPUT_SIZE


def test_no_landmarks_means_no_poses():
    detector = detector_with(None)
    assert detector.estimate_poses(np.zeros((720, 1280, 3), dtype=np.uint8)) == []


def test_close_releases_model():
    detector = detector_with(None)
    solution = detector._pose
    detector.close()
    detector.close()
    assert solution.closed


@pytest.mark.parametrize(
    "config",
    [DetectorConfig(model_variant="ultra"), DetectorConfig(tracker_type="keypoint")],
)
def test_invalid_config_raises_detector_error(config):
    with pytest.raises(DetectorError):
        create_detector(config)


def test_model_input_is_never_smaller_than_mediapipe_input():
    frame = np.zeros((720, 1280, 3), dtype=np.uint8)

    tiny = detector_with(None, DetectorConfig(max_internal_dimension=64))
    tiny.estimate_poses(frame)
    assert tiny._pose.inputs[0].shape[:2] == (144, 256)

    large = detector_with(None, DetectorConfig(max_internal_dimension=640))
    large.estimate_poses(frame)
    assert large._pose.inputs[0].shape[:2] == (360, 640)

    unbounded = detector_with(None, DetectorConfig(max_internal_dimension=None))
    unbounded.estimate_poses(frame)
    assert unbounded._pose.inputs[0].shape[:2] == (720, 1280)
