from flask import Flask, render_template, Response, jsonify, current_app
import cv2
import time
import logging
import threading
import atexit
from functools import partial

from camera import CameraStream
from classifier import ClassificationBridge, PoseClassifier
from detector import create_detector
from pose_inference import PoseAcquisitionLoop
from renderer import Canvas, composite
from settings import load_settings

settings = load_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = Flask(__name__)

# Preview frame rate of the MJPEG stream; detection runs on its own, slower loop.
STREAM_FPS = 30


# ---------------------------
# Live session
# ---------------------------
class LiveSession:
    """
    Owns the camera, the overlay canvas, the acquisition loop and the
    classification bridge for one view. The bridge outlives stop/start so the
    classifier is only ever built once.
    """

    def __init__(self, settings, camera=None, detector_factory=None):
        self.settings = settings
        self.camera = camera or CameraStream(
            settings.camera_index, settings.frame_width, settings.frame_height
        )
        self.detector_factory = detector_factory or partial(create_detector, settings.detector)
        self.canvas = Canvas(settings.frame_width, settings.frame_height)
        self.bridge = ClassificationBridge(
            settings.classifier_assets,
            classifier_factory=partial(PoseClassifier, settings.classifier_options),
        )
        self.loop = None
        self.error = None
        self.fps = 0.0
        self.lock = threading.Lock()

    @property
    def active(self):
        return self.loop is not None and not self.loop.token.cancelled

    @property
    def overlay(self):
        return self.loop.overlay if self.loop is not None else None

    def start(self):
        with self.lock:
            if self.active:
                return True
            try:
                self.camera.start()
            except Exception as e:
                self.error = str(e)
                logger.error("Camera failed to start: %s", e)
                return False
            self.error = None
            self.canvas.clear()
            self.loop = PoseAcquisitionLoop(
                frame_source=self.camera,
                detector_factory=self.detector_factory,
                surface=self.canvas,
                bridge=self.bridge,
                poll_delay=self.settings.poll_delay,
                min_score=self.settings.min_score,
                gap_retries=self.settings.gap_retries,
            )
            self.loop.start()
            return True

    def stop(self):
        with self.lock:
            if self.loop is not None:
                self.loop.stop()
            self.camera.stop()
            self.canvas.clear()
            self.fps = 0.0

    def info(self):
        status = self.loop.status() if self.loop is not None else {"state": "stopped", "last_error": None}
        classifier_error = self.bridge.error
        results = self.bridge.results
        top = self.bridge.top
        if top is not None:
            pose_text = top.label
            accuracy_text = f"Accuracy: {top.confidence * 100:.1f}%"
        elif self.loop is not None and self.loop.cycles:
            pose_text = "Pose Detected"
            accuracy_text = ""
        else:
            pose_text = "No Pose Detected"
            accuracy_text = ""
        return {
            "status": status["state"],
            "error": self.error or status["last_error"] or classifier_error,
            "classifier_error": classifier_error,
            "classification": [r.to_dict() for r in results],
            "classifier_ready": self.bridge.ready,
            "pose_text": pose_text,
            "accuracy_text": accuracy_text,
            "fps": self.fps,
            "cycles": status.get("cycles", 0),
            "rebuilds": status.get("rebuilds", 0),
        }


def get_session():
    if "live_session" not in current_app.extensions:
        current_app.extensions["live_session"] = LiveSession(settings)
    return current_app.extensions["live_session"]


def cleanup_session():
    """Stops the acquisition loop and releases the camera before exit."""
    session = app.extensions.get("live_session")
    if session is not None:
        session.stop()

atexit.register(cleanup_session)


# ---------------------------
# Frame Generator Function
# ---------------------------
def gen_frames(session):
    """
    Generator that yields the mirrored camera preview with the latest skeleton
    overlay on top, JPEG-encoded for a multipart stream.
    """
    prev_time = 0
    loop = session.loop
    while session.active and session.loop is loop:
        frame = session.camera.read()
        if frame is None:
            if loop.token.wait(0.05):
                break
            continue

        display_frame = cv2.flip(frame, 1)
        display_frame = composite(display_frame, session.overlay)

        curr_time = time.time()
        session.fps = 1 / (curr_time - prev_time) if prev_time else 0.0
        prev_time = curr_time

        info = session.info()
        cv2.putText(display_frame, f"FPS: {session.fps:.1f}", (10, 60), cv2.FONT_HERSHEY_SIMPLEX,
                    1, (0, 255, 0), 2, cv2.LINE_AA)
        cv2.putText(display_frame, info["pose_text"], (10, 30), cv2.FONT_HERSHEY_SIMPLEX,
                    1, (0, 0, 255), 2, cv2.LINE_AA)
        if info["accuracy_text"]:
            cv2.putText(display_frame, info["accuracy_text"], (10, 90), cv2.FONT_HERSHEY_SIMPLEX,
                        1, (0, 255, 0), 2, cv2.LINE_AA)

        ret, buffer = cv2.imencode('.jpg', display_frame)
        if ret:
            yield (b'--frame\r\n'
                   b'Content-Type: image/jpeg\r\n\r\n' + buffer.tobytes() + b'\r\n')
        if loop.token.wait(1.0 / STREAM_FPS):
            break


# ---------------------------
# Endpoints
# ---------------------------
@app.route('/')
def index():
    """Live view page."""
    return render_template('index.html')

@app.route('/video_feed')
def video_feed():
    """Video stream endpoint."""
    session = get_session()
    if not session.start():
        return jsonify({"status": "error", "message": session.error}), 503
    return Response(gen_frames(session), mimetype='multipart/x-mixed-replace; boundary=frame')

@app.route('/stop_stream', methods=['POST'])
def stop_stream():
    """Stop the acquisition loop and release the camera."""
    get_session().stop()
    return jsonify({"status": "stopped"})

@app.route('/pose_info')
def get_pose_info():
    """Return the loop status and latest classification as JSON."""
    return jsonify(get_session().info())


if __name__ == '__main__':
    app.run(debug=True, threaded=True, use_reloader=False)
