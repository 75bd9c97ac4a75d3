import math
import time
from dataclasses import dataclass

from image_source import (
    ImageLoader, build_grid_targets, build_image_targets,
    GRID_EXTENT, PHOTO_SPACING, RASTER_W, RASTER_H, IMAGE_LOAD_TIMEOUT,
)
from morph import MorphAnimator, TRANSITION_DURATION
from particles import CountMismatchError, FieldTooLargeError, build_field

PARTICLE_COUNT = 120 * 120
HEART_COLOR = (1.0, 0.0, 0.2)  # #ff0033

# Engine lifecycle
STATE_UNINITIALIZED = 0
STATE_LOADING = 1
STATE_READY = 2
STATE_FAILED = 3
STATE_NAMES = ["Uninitialized", "Loading", "Ready", "Failed"]

# Idle motion
ROTATION_SPEED = 0.5
ROTATION_AMPLITUDE = 0.2
ROTATION_SMOOTHING = 0.05  # fraction closed per 1/60 s frame
PULSE_SPEED = 4.0
PULSE_AMPLITUDE = 0.03


@dataclass(frozen=True)
class FrameInputs:
    """Everything the renderer needs for one frame besides the static field."""
    elapsed: float
    morph_value: float
    rotation_angle: float
    pulse_scale: float


class FrameUpdater:
    def __init__(self, rotation_speed=ROTATION_SPEED, rotation_amplitude=ROTATION_AMPLITUDE,
                 rotation_smoothing=ROTATION_SMOOTHING, pulse_speed=PULSE_SPEED,
                 pulse_amplitude=PULSE_AMPLITUDE):
        self.rotation_speed = rotation_speed
        self.rotation_amplitude = rotation_amplitude
        self.rotation_smoothing = rotation_smoothing
        self.pulse_speed = pulse_speed
        self.pulse_amplitude = pulse_amplitude
        self.rotation_angle = 0.0

    def update(self, elapsed, value, dt=1.0 / 60.0):
        if value < 0.5:
            # Heart: gentle sway plus heartbeat
            self.rotation_angle = math.sin(elapsed * self.rotation_speed) * self.rotation_amplitude
            pulse = 1.0 + math.sin(elapsed * self.pulse_speed) * self.pulse_amplitude
        else:
            # Photo: settle back to face the camera, no beat
            k = 1.0 - (1.0 - self.rotation_smoothing) ** (max(dt, 0.0) * 60.0)
            self.rotation_angle += (0.0 - self.rotation_angle) * k
            pulse = 1.0

        return FrameInputs(elapsed, value, self.rotation_angle, pulse)


class HeartEngine:
    """Builds the particle field (maybe from a photo) and drives the morph.

    Lifecycle: Uninitialized -> Loading -> Ready, or Failed when the photo
    could not be used. Failed still carries the grid fallback field unless
    the field itself could not be assembled.
    """

    def __init__(self, image_path=None, particle_count=PARTICLE_COUNT,
                 heart_color=HEART_COLOR, duration=TRANSITION_DURATION,
                 grid_extent=(GRID_EXTENT, GRID_EXTENT), photo_spacing=PHOTO_SPACING,
                 raster_size=(RASTER_W, RASTER_H), load_timeout=IMAGE_LOAD_TIMEOUT,
                 rng=None, clock=time.monotonic):
        self.image_path = image_path
        self.particle_count = particle_count
        self.heart_color = heart_color
        self.grid_extent = grid_extent
        self.photo_spacing = photo_spacing
        self.raster_size = raster_size
        self.load_timeout = load_timeout

        self.state = STATE_UNINITIALIZED
        self.field = None
        self.source_kind = None
        self.animator = MorphAnimator(duration)
        self.updater = FrameUpdater()

        self._rng = rng
        self._clock = clock
        self._loader = None
        self._start_time = None
        self._last_tick = None

    @property
    def ready(self):
        return self.field is not None

    @property
    def morph_value(self):
        return self.animator.value

    def start(self, now=None):
        if now is None:
            now = self._clock()
        self._start_time = now
        self._last_tick = now

        if self.image_path is None:
            self._build_grid(STATE_READY)
            return

        w, h = self.raster_size
        self.state = STATE_LOADING
        self._loader = ImageLoader(self.image_path, w, h, timeout=self.load_timeout,
                                   clock=self._clock)
        print(f"[Engine] Loading image '{self.image_path}'")

    def wait_for_image(self, timeout=None):
        """Block until the background image load (if any) has finished."""
        if self._loader is not None:
            self._loader.join(timeout)

    def toggle(self, now=None):
        if self.field is None:
            return False
        if now is None:
            now = self._clock()
        self.animator.toggle(now)
        return True

    def tick(self, now=None):
        """Advance one frame; returns FrameInputs or None when nothing to draw."""
        if now is None:
            now = self._clock()
        if self._start_time is None:
            return None

        if self.state == STATE_LOADING:
            self._poll_loader(now)

        if self.field is None:
            return None

        dt = now - self._last_tick
        self._last_tick = now
        value = self.animator.update(now)
        return self.updater.update(now - self._start_time, value, dt)

    def _poll_loader(self, now):
        loader = self._loader
        if not loader.done:
            if loader.timed_out(now):
                self._loader = None
                print(f"[ImageSource] Timed out after {self.load_timeout:.1f}s "
                      f"loading '{self.image_path}'")
                self._build_grid(STATE_FAILED)
            return

        self._loader = None
        raster = loader.poll()
        if raster is None:
            print(f"[ImageSource] Could not load image: {loader.error}")
            self._build_grid(STATE_FAILED)
            return

        targets = build_image_targets(raster, spacing=self.photo_spacing)
        if len(targets) == 0:
            print(f"[Engine] '{self.image_path}' has no opaque pixels, using grid")
            self._build_grid(STATE_FAILED)
            return
        if not self._assemble(targets, "image", STATE_READY):
            print("[Engine] Falling back to grid")
            self._build_grid(STATE_FAILED)

    def _build_grid(self, state):
        targets = build_grid_targets(self.particle_count, self.grid_extent)
        self._assemble(targets, "grid", state)

    def _assemble(self, targets, kind, state):
        try:
            self.field = build_field(targets, rng=self._rng)
        except (CountMismatchError, FieldTooLargeError) as e:
            print(f"[Engine] Refusing to animate: {e}")
            self.field = None
            self.state = STATE_FAILED
            return False
        self.source_kind = kind
        self.state = state
        print(f"[Engine] Field ready: {self.field.count} particles ({kind})")
        return True
