from __future__ import annotations

import logging
import threading
import time
import cv2

logger = logging.getLogger(__name__)


class CameraStream:
    """
    Background webcam reader that always holds the most recent frame.

    Frames are resized to (width, height) so detector coordinates, the overlay
    canvas and the preview share one pixel space.
    """

    def __init__(self, index=0, width=1280, height=720, capture_factory=cv2.VideoCapture):
        self.index = index
        self.width = int(width)
        self.height = int(height)
        self.capture_factory = capture_factory
        self.capture = None
        self.lock = threading.Lock()
        self._frame = None
        self._running = threading.Event()
        self._thread = None

    @property
    def running(self):
        return self._running.is_set()

    def start(self):
        """Ensure the camera is initialized and opened."""
        if self.running:
            return
        self.capture = self.capture_factory(self.index)
        if not self.capture.isOpened():
            raise RuntimeError(f"Could not open camera {self.index}")
        self.capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        self.capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        self._running.set()
        self._thread = threading.Thread(target=self._reader, name="camera-reader", daemon=True)
        self._thread.start()
        logger.info("Camera %s opened at %dx%d", self.index, self.width, self.height)

    def _reader(self):
        while self._running.is_set():
            ret, frame = self.capture.read()
            if not ret:
                time.sleep(0.01)
                continue
            if frame.shape[1] != self.width or frame.shape[0] != self.height:
                frame = cv2.resize(frame, (self.width, self.height))
            with self.lock:
                self._frame = frame

    def read(self):
        """Return a copy of the latest frame, or None before the first one."""
        with self.lock:
            if self._frame is None:
                return None
            return self._frame.copy()

    def stop(self):
        """Stop reading and release the camera."""
        self._running.clear()
        if self._thread is not None:
            self._thread.join(timeout=1)
            self._thread = None
        if self.capture is not None and self.capture.isOpened():
            self.capture.release()
        self.capture = None
        with self.lock:
            self._frame = None
