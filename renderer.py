from __future__ import annotations

import cv2
import numpy as np

from skeleton import bones

SKELETON_COLOR = (0, 0, 255)  # BGR red
LINE_WIDTH = 8
POINT_RADIUS = 3


class Canvas:
    """
    Overlay drawing surface backed by a BGR image.

    Black pixels are treated as transparent when compositing onto a frame.
    """

    def __init__(self, width=1280, height=720):
        self.image = np.zeros((int(height), int(width), 3), dtype=np.uint8)

    @property
    def width(self):
        return self.image.shape[1]

    @property
    def height(self):
        return self.image.shape[0]

    def clear(self):
        self.image[:] = 0

    def draw_line(self, p1, p2, color, thickness):
        cv2.line(self.image, _px(p1), _px(p2), color, thickness, cv2.LINE_AA)

    def draw_circle(self, center, radius, color):
        cv2.circle(self.image, _px(center), radius, color, -1, cv2.LINE_AA)

    def snapshot(self):
        return self.image.copy()


def _px(point):
    return int(round(point[0])), int(round(point[1]))


def composite(frame, overlay, alpha=1.0):
    """Paste the non-black overlay pixels onto a copy of frame."""
    if overlay is None:
        return frame
    if overlay.shape[:2] != frame.shape[:2]:
        overlay = cv2.resize(overlay, (frame.shape[1], frame.shape[0]), interpolation=cv2.INTER_NEAREST)
    mask = overlay.any(axis=2)
    out = frame.copy()
    if alpha >= 1.0:
        out[mask] = overlay[mask]
    else:
        blended = cv2.addWeighted(overlay, alpha, frame, 1 - alpha, 0)
        out[mask] = blended[mask]
    return out


class FrameRenderer:
    """
    Draws keypoints and the skeleton onto a drawing surface.

    Every coordinate is flipped about the surface's vertical centerline so the
    overlay lines up with the mirrored camera preview. Nothing here clears the
    surface; the caller does that once per cycle.
    """

    def __init__(self, color=SKELETON_COLOR, line_width=LINE_WIDTH, point_radius=POINT_RADIUS, bone_table=None):
        self.color = color
        self.line_width = line_width
        self.point_radius = point_radius
        self.bones = bone_table if bone_table is not None else bones()

    @staticmethod
    def mirror(surface, x, y):
        # Same mapping as cv2.flip(frame, 1) on the preview.
        return surface.width - 1 - x, y

    def draw_skeleton(self, store, surface):
        """Draw every bone whose two endpoints are in the store. Returns the count drawn."""
        drawn = 0
        for start, end in self.bones:
            p1 = store.get(start)
            p2 = store.get(end)
            if p1 is None or p2 is None:
                continue
            surface.draw_line(
                self.mirror(surface, *p1),
                self.mirror(surface, *p2),
                self.color,
                self.line_width,
            )
            drawn += 1
        return drawn

    def draw_points(self, raw_keypoints, min_score, surface, scale=1.0):
        """Draw a dot at each keypoint scoring above min_score. Returns the count drawn."""
        drawn = 0
        for kp in raw_keypoints:
            if kp.score is None or kp.score <= min_score:
                continue
            center = self.mirror(surface, kp.x * scale, kp.y * scale)
            surface.draw_circle(center, self.point_radius, self.color)
            drawn += 1
        return drawn
