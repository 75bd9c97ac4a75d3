import os
import math
import threading
import time
from dataclasses import dataclass

import cv2
import numpy as np

RASTER_W, RASTER_H = 120, 120
PHOTO_SPACING = 0.5
ALPHA_THRESHOLD = 20
GRID_EXTENT = 60.0
GRID_COLOR = (1.0, 0.85, 0.9)
IMAGE_LOAD_TIMEOUT = 5.0


class ImageLoadError(Exception):
    pass


@dataclass
class TargetPoints:
    positions: np.ndarray  # (N, 3) float32
    colors: np.ndarray     # (N, 3) float32, index-aligned with positions

    def __len__(self):
        return len(self.positions)


def build_grid_targets(count, extent=(GRID_EXTENT, GRID_EXTENT), color=GRID_COLOR):
    """Lay `count` points on a flat lattice centered at the origin."""
    if count < 0:
        raise ValueError(f"count must be >= 0, got {count}")
    if count == 0:
        return TargetPoints(np.empty((0, 3), np.float32), np.empty((0, 3), np.float32))

    w, h = extent
    cols = max(1, int(math.ceil(math.sqrt(count * w / h))))
    rows = int(math.ceil(count / cols))
    spacing = min(w / cols, h / rows)

    idx = np.arange(count)
    col = (idx % cols).astype(np.float32)
    row = (idx // cols).astype(np.float32)

    positions = np.zeros((count, 3), dtype=np.float32)
    positions[:, 0] = (col - (cols - 1) / 2.0) * spacing
    positions[:, 1] = -(row - (rows - 1) / 2.0) * spacing

    colors = np.empty((count, 3), dtype=np.float32)
    colors[:] = np.asarray(color, dtype=np.float32)
    return TargetPoints(positions, colors)


def build_image_targets(rgba, spacing=PHOTO_SPACING, alpha_threshold=ALPHA_THRESHOLD):
    """One point per qualifying raster cell, colored from that cell.

    `rgba` is an (H, W, 4) uint8 raster. Cells whose alpha is below
    `alpha_threshold` contribute nothing, so the result can hold fewer than
    W * H points.
    """
    rgba = np.asarray(rgba)
    if rgba.ndim != 3 or rgba.shape[2] != 4:
        raise ValueError(f"expected an (H, W, 4) raster, got shape {rgba.shape}")

    height, width = rgba.shape[:2]
    keep = rgba[:, :, 3] >= alpha_threshold

    # Row-major scan, same order the raster is stored in
    gy, gx = np.nonzero(keep)

    positions = np.zeros((len(gy), 3), dtype=np.float32)
    positions[:, 0] = (gx - width / 2.0) * spacing
    # Raster rows run top-down, scene y runs bottom-up
    positions[:, 1] = -(gy - height / 2.0) * spacing

    colors = rgba[gy, gx, :3].astype(np.float32) / 255.0
    return TargetPoints(positions, colors)


def load_raster(path, width=RASTER_W, height=RASTER_H):
    """Read an image file and squash it to a (height, width, 4) RGBA raster."""
    if not os.path.isfile(path):
        raise ImageLoadError(f"'{path}' does not exist")

    img = cv2.imread(path, cv2.IMREAD_UNCHANGED)
    if img is None or img.size == 0:
        raise ImageLoadError(f"'{path}' could not be decoded")

    if img.dtype == np.uint16:
        img = (img // 257).astype(np.uint8)
    elif img.dtype != np.uint8:
        raise ImageLoadError(f"'{path}' has unsupported pixel type {img.dtype}")

    if img.ndim == 2:
        rgba = cv2.cvtColor(img, cv2.COLOR_GRAY2RGBA)
    elif img.shape[2] == 3:
        rgba = cv2.cvtColor(img, cv2.COLOR_BGR2RGBA)
    elif img.shape[2] == 4:
        rgba = cv2.cvtColor(img, cv2.COLOR_BGRA2RGBA)
    else:
        raise ImageLoadError(f"'{path}' has {img.shape[2]} channels")

    return cv2.resize(rgba, (width, height), interpolation=cv2.INTER_AREA)


class ImageLoader:
    """Loads a raster on a background thread; poll() from the frame loop."""

    def __init__(self, path, width=RASTER_W, height=RASTER_H,
                 timeout=IMAGE_LOAD_TIMEOUT, clock=time.monotonic):
        self.path = path
        self.timeout = timeout
        self.error = None
        self._clock = clock
        self._started = clock()
        self._lock = threading.Lock()
        self._done = False
        self._raster = None

        self._thread = threading.Thread(
            target=self._load, args=(path, width, height), daemon=True)
        self._thread.start()

    def _load(self, path, width, height):
        raster = None
        error = None
        try:
            raster = load_raster(path, width, height)
        except ImageLoadError as e:
            error = e
        except cv2.error as e:
            error = ImageLoadError(f"'{path}': {e}")

        with self._lock:
            self._raster = raster
            self.error = error
            self._done = True

    @property
    def done(self):
        with self._lock:
            return self._done

    def poll(self):
        """Return the raster once loaded, else None (also None on failure)."""
        with self._lock:
            if not self._done:
                return None
            return self._raster

    def timed_out(self, now=None):
        if now is None:
            now = self._clock()
        return not self.done and now - self._started >= self.timeout

    def join(self, timeout=None):
        self._thread.join(timeout)
