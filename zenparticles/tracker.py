"""
Webcam hand tracking with MediaPipe Hands.
"""
import logging
import time
from typing import Optional

import cv2
import mediapipe as mp
import numpy as np

from .config import Cfg
from .landmarks import make_frame
from .types import HandLandmarkFrame

logger = logging.getLogger(__name__)


class HandsTracker:
    """
    Camera plus MediaPipe Hands, exposed as a LandmarkSource.

    ``current_time_ms`` grabs the next camera frame without decoding it; if the
    grab fails the timestamp does not move, so a stalled camera never causes
    repeated detections. ``detect`` decodes the grabbed frame and runs the model.
    """

    def __init__(self, cfg: Cfg):
        """Open the camera and build the MediaPipe Hands model."""
        self.mp_hands = mp.solutions.hands
        self.hands = self.mp_hands.Hands(
            static_image_mode=False,
            max_num_hands=cfg.mediapipe.max_num_hands,
            model_complexity=cfg.mediapipe.model_complexity,
            min_detection_confidence=cfg.mediapipe.min_detection_confidence,
            min_tracking_confidence=cfg.mediapipe.min_tracking_confidence
        )

        self.cap = cv2.VideoCapture(cfg.camera.index)
        self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, cfg.camera.width)
        self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, cfg.camera.height)
        self.cap.set(cv2.CAP_PROP_FPS, cfg.camera.fps)

        if not self.cap.isOpened():
            raise RuntimeError(f"Failed to open camera {cfg.camera.index}")

        self._t0 = time.monotonic()
        self._last_ms = 0.0
        self.last_frame: Optional[np.ndarray] = None
        self.last_detection: Optional[HandLandmarkFrame] = None

    def current_time_ms(self) -> float:
        if self.cap.grab():
            self._last_ms = (time.monotonic() - self._t0) * 1000.0
        return self._last_ms

    def detect(self, timestamp_ms: float) -> Optional[HandLandmarkFrame]:
        """
        Decode the last grabbed frame and detect hands.

        Returns:
            A validated HandLandmarkFrame, or None if no frame could be decoded
        """
        ok, frame_bgr = self.cap.retrieve()
        if not ok:
            return None
        self.last_frame = frame_bgr

        frame_rgb = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)
        results = self.hands.process(frame_rgb)

        if not results.multi_hand_landmarks:
            self.last_detection = HandLandmarkFrame()
            return self.last_detection

        labels = []
        if results.multi_handedness:
            labels = [h.classification[0].label for h in results.multi_handedness]
        self.last_detection = make_frame(
            [hand.landmark for hand in results.multi_hand_landmarks], labels
        )
        return self.last_detection

    def draw_landmarks(self, frame: np.ndarray, detection: HandLandmarkFrame) -> np.ndarray:
        """
        Draw wrists and fingertips of every detected hand.

        Args:
            frame: BGR camera frame
            detection: Hands detected on that frame

        Returns:
            Frame with landmarks drawn
        """
        height, width = frame.shape[:2]
        for hand in detection.hands:
            for i, (x, y) in enumerate(hand[:, :2]):
                px, py = int(x * width), int(y * height)
                radius = 6 if i == 0 else 3
                cv2.circle(frame, (px, py), radius, (0, 255, 0), -1)
        return frame

    def close(self) -> None:
        """Release the camera and the model."""
        if self.cap.isOpened():
            self.cap.release()
        self.hands.close()
