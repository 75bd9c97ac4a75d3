from dataclasses import dataclass
from typing import Callable

TRANSITION_DURATION = 1.5

STATE_HEART = 0
STATE_PHOTO = 1
STATE_TRANSITIONING = 2
STATE_NAMES = ["Heart", "Photo", "Transitioning"]


def ease_in_out(elapsed, duration):
    """Quadratic ease-in-out progress in [0, 1]: slow start, fast middle, slow end."""
    if duration <= 0:
        return 1.0
    p = min(max(elapsed / duration, 0.0), 1.0)
    if p < 0.5:
        return 2.0 * p * p
    return 1.0 - (-2.0 * p + 2.0) ** 2 / 2.0


@dataclass
class Animation:
    start_value: float
    end_value: float
    start_time: float
    duration: float
    easing: Callable[[float, float], float] = ease_in_out

    def value_at(self, now):
        k = self.easing(now - self.start_time, self.duration)
        return self.start_value + (self.end_value - self.start_value) * k

    def finished(self, now):
        return now - self.start_time >= self.duration


class MorphAnimator:
    """Owns the morph value (0 = heart, 1 = photo) and the heart/photo flag."""

    def __init__(self, duration=TRANSITION_DURATION, easing=ease_in_out):
        self.duration = duration
        self.easing = easing
        self.value = 0.0
        self.is_heart = True
        self._anim = None

    @property
    def target(self):
        return 0.0 if self.is_heart else 1.0

    @property
    def animating(self):
        return self._anim is not None

    @property
    def state(self):
        if self._anim is not None:
            return STATE_TRANSITIONING
        return STATE_HEART if self.is_heart else STATE_PHOTO

    def toggle(self, now):
        # Restart from wherever the value is right now, never from the old target
        self.update(now)
        self.is_heart = not self.is_heart
        self._anim = Animation(self.value, self.target, now, self.duration, self.easing)

    def update(self, now):
        anim = self._anim
        if anim is None:
            return self.value

        if anim.finished(now):
            self.value = anim.end_value
            self._anim = None
        else:
            self.value = min(max(anim.value_at(now), 0.0), 1.0)
        return self.value
