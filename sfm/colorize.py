"""
colorize.py

Best-effort landmark colorization from the source images.

Each landmark takes the color of the pixel under its first observation
(lowest view id) whose image can be read and sampled. A landmark that can
not be sampled in any observing view keeps its current color.
"""

import logging

import cv2
import numpy as np

from sfm.data import Scene

_log = logging.getLogger("FUSECUT::colorize")


def _sample(image: np.ndarray, x: np.ndarray):
    col, row = int(round(float(x[0]))), int(round(float(x[1])))
    if row < 0 or col < 0 or row >= image.shape[0] or col >= image.shape[1]:
        return None
    b, g, r = image[row, col][:3]
    return int(r), int(g), int(b)


def _next_view(landmark, after: int):
    later = [view_id for view_id in landmark.observations if view_id > after]
    return min(later) if later else None


def colorize_tracks(scene: Scene, logger=None) -> int:
    """Assign rgb to every landmark in place. Returns the number of colorized landmarks."""
    logger = logger or _log

    # Landmarks waiting on a view; views are visited in ascending id order and
    # each image is decoded once. A failed landmark moves on to its next view.
    pending = {}
    for landmark_id in sorted(scene.landmarks):
        landmark = scene.landmarks[landmark_id]
        if landmark.observations:
            pending.setdefault(min(landmark.observations), []).append(landmark_id)

    colorized = 0
    while pending:
        view_id = min(pending)
        landmark_ids = pending.pop(view_id)

        view = scene.views.get(view_id)
        image = cv2.imread(view.image_path, cv2.IMREAD_COLOR) if view and view.image_path else None
        if image is None:
            logger.warning(f"[colorize] Cannot read image for view {view_id}, trying next observations")

        for landmark_id in landmark_ids:
            landmark = scene.landmarks[landmark_id]
            rgb = None
            if image is not None:
                try:
                    rgb = _sample(image, landmark.observations[view_id].x)
                except (IndexError, ValueError, OverflowError) as exc:
                    logger.debug(f"[colorize] Landmark {landmark_id}: {exc}")

            if rgb is not None:
                landmark.rgb = rgb
                colorized += 1
                continue

            next_view = _next_view(landmark, view_id)
            if next_view is not None:
                pending.setdefault(next_view, []).append(landmark_id)

    logger.info(f"[colorize] {colorized:,}/{len(scene.landmarks):,} landmarks colorized")
    return colorized
