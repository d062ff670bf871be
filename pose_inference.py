from __future__ import annotations

import logging
import threading
from enum import Enum

from classifier import ClassificationBridge
from keypoints import ACCEPTANCE_THRESHOLD, KeypointStore, flatten_keypoints
from renderer import FrameRenderer

logger = logging.getLogger(__name__)

POLL_DELAY_SECONDS = 0.8


class LoopState(Enum):
    UNINITIALIZED = "uninitialized"
    DETECTOR_READY = "detector_ready"
    POLLING = "polling"
    RECOVERABLE_GAP = "recoverable_gap"
    STOPPED = "stopped"


class CancellationToken:
    """Stop signal shared by the loop and its owner."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self):
        return self._event.is_set()

    def wait(self, seconds):
        """Sleep up to `seconds`; returns True if cancelled meanwhile."""
        return self._event.wait(seconds)


class PoseAcquisitionLoop:
    """
    Polls the detector for the current video frame, redraws the overlay and
    feeds the classifier, one cycle at a time.

    State machine:
        UNINITIALIZED -> DETECTOR_READY -> POLLING -> (RECOVERABLE_GAP -> DETECTOR_READY)*
    and STOPPED once cancelled. A detector that cannot be built leaves the
    loop UNINITIALIZED with `last_error` set; it is not retried.

    An empty detection is a gap. Up to `gap_retries` consecutive gaps re-poll
    the same detector; past that the detector is discarded and rebuilt.
    """

    def __init__(
        self,
        frame_source,
        detector_factory,
        surface,
        store=None,
        renderer=None,
        bridge=None,
        poll_delay=POLL_DELAY_SECONDS,
        min_score=ACCEPTANCE_THRESHOLD,
        gap_retries=0,
        token=None,
    ):
        self.frame_source = frame_source
        self.detector_factory = detector_factory
        self.surface = surface
        self.store = store if store is not None else KeypointStore(min_score)
        self.renderer = renderer if renderer is not None else FrameRenderer()
        self.bridge = bridge if bridge is not None else ClassificationBridge(None)
        self.poll_delay = poll_delay
        self.min_score = min_score
        self.gap_retries = gap_retries
        self.token = token if token is not None else CancellationToken()

        self.state = LoopState.UNINITIALIZED
        self.detector = None
        self.overlay = None
        self.cycles = 0
        self.rebuilds = 0
        self.gaps = 0
        self.last_error = None
        self._thread = None

    # ---------------------------
    # Lifecycle
    # ---------------------------
    def start(self):
        if self._thread is not None and self._thread.is_alive():
            return self._thread
        self._thread = threading.Thread(target=self.run, name="pose-acquisition", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self, timeout=2.0):
        self.token.cancel()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        # A loop still inside a request closes its own detector on exit.
        if thread is None or not thread.is_alive():
            self._close_detector()
        self.state = LoopState.STOPPED

    def run(self):
        while not self.token.cancelled:
            if not self.step():
                break
        if self.token.cancelled:
            self._close_detector()
            self.state = LoopState.STOPPED

    def status(self):
        return {
            "state": self.state.value,
            "cycles": self.cycles,
            "rebuilds": self.rebuilds,
            "last_error": self.last_error,
        }

    # ---------------------------
    # State transitions
    # ---------------------------
    def step(self):
        """Run one transition. Returns False when the loop cannot continue."""
        if self.token.cancelled:
            self.state = LoopState.STOPPED
            return False
        if self.state == LoopState.UNINITIALIZED:
            return self._initialize()
        if self.state in (LoopState.DETECTOR_READY, LoopState.POLLING):
            self._poll()
            return True
        if self.state == LoopState.RECOVERABLE_GAP:
            return self._recover()
        return False

    def _initialize(self):
        try:
            detector = self.detector_factory()
        except Exception as e:
            self.last_error = f"Pose detector failed to load: {e}"
            logger.error(self.last_error)
            return False
        if self.token.cancelled:
            detector.close()
            return False
        self.detector = detector
        self.gaps = 0
        self.last_error = None
        self.state = LoopState.DETECTOR_READY
        self.bridge.ensure_created()
        return True

    def _recover(self):
        if self.gaps <= self.gap_retries:
            logger.debug("Empty detection %d/%d, polling again", self.gaps, self.gap_retries)
            self.state = LoopState.POLLING
            return True
        logger.info("No pose detected, rebuilding pose detector")
        self._close_detector()
        self.state = LoopState.UNINITIALIZED
        self.rebuilds += 1
        return self._initialize()

    def _poll(self):
        frame = self.frame_source.read()
        if frame is None:
            self.token.wait(self.poll_delay)
            return

        detector = self.detector
        try:
            poses = detector.estimate_poses(frame)
        except Exception as e:
            logger.warning("Pose estimation failed: %s", e)
            poses = []

        # Drop responses that arrive after teardown or from a replaced detector.
        if self.token.cancelled or detector is not self.detector:
            return

        keypoints = poses[0].keypoints if poses else None
        if not keypoints:
            self.gaps += 1
            self.state = LoopState.RECOVERABLE_GAP
            # Gaps are throttled like detections so an empty scene cannot spin rebuilds.
            self.token.wait(self.poll_delay)
            return

        self.gaps = 0
        self.state = LoopState.POLLING
        try:
            self._render(keypoints)
        except Exception:
            logger.exception("Overlay rendering failed")
        try:
            self.bridge.on_frame(flatten_keypoints(keypoints))
        except Exception:
            logger.exception("Pose classification failed")
        self.cycles += 1
        self.token.wait(self.poll_delay)

    def _render(self, keypoints):
        self.store.update(keypoints)
        self.surface.clear()
        self.renderer.draw_points(keypoints, self.min_score, self.surface)
        self.renderer.draw_skeleton(self.store, self.surface)
        self.overlay = self.surface.snapshot()

    def _close_detector(self):
        detector, self.detector = self.detector, None
        if detector is None:
            return
        try:
            detector.close()
        except Exception as e:
            logger.warning("Pose detector did not close cleanly: %s", e)
