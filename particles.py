import numpy as np

MAX_PARTICLES = 100000

# Heart curve spans x in [-16, 16] before scaling
HEART_HALF_WIDTH = 16.0
HEART_SCALE = 1.5
HEART_THICKNESS = 4.0
HEART_JITTER = 0.3

FLOATS_PER_PARTICLE = 9


class CountMismatchError(ValueError):
    """Source and target point sets disagree on the particle count."""


class FieldTooLargeError(ValueError):
    """More particles than MAX_PARTICLES."""


def lerp(a, b, t):
    # Returns a at t=0 and b at t=1 exactly
    return a * (1.0 - t) + b * t


def sample_heart(count, scale=HEART_SCALE, thickness=HEART_THICKNESS,
                 jitter=HEART_JITTER, rng=None):
    """Sample `count` points along the parametric heart curve.

    The outline is given volume by a random z offset (and a smaller x/y
    jitter), then everything is scaled uniformly by `scale`.
    """
    if count < 0:
        raise ValueError(f"count must be >= 0, got {count}")
    if rng is None:
        rng = np.random.default_rng()

    t = rng.uniform(0.0, 2.0 * np.pi, count)
    hx = 16.0 * np.sin(t) ** 3
    hy = 13.0 * np.cos(t) - 5.0 * np.cos(2 * t) - 2.0 * np.cos(3 * t) - np.cos(4 * t)
    hz = (rng.uniform(0.0, 1.0, count) - 0.5) * thickness

    if jitter > 0:
        hx = hx + rng.uniform(-0.5, 0.5, count) * jitter
        hy = hy + rng.uniform(-0.5, 0.5, count) * jitter

    out = np.empty((count, 3), dtype=np.float32)
    out[:, 0] = hx * scale
    out[:, 1] = hy * scale
    out[:, 2] = hz * scale
    return out


def heart_scale_for(target_positions):
    """Scale that makes the heart as wide as the target configuration."""
    if len(target_positions) == 0:
        return HEART_SCALE
    xs = target_positions[:, 0]
    half_width = (float(xs.max()) - float(xs.min())) * 0.5
    if half_width <= 0.0:
        return HEART_SCALE
    return half_width / HEART_HALF_WIDTH


def _as_points(values, name):
    arr = np.array(values, dtype=np.float32)
    if arr.size == 0:
        return arr.reshape(0, 3)
    if arr.ndim != 2 or arr.shape[1] != 3:
        raise ValueError(f"{name} must have shape (N, 3), got {arr.shape}")
    return arr


class ParticleField:
    """Index-aligned source/target/color arrays, read-only after construction."""

    def __init__(self, source, target, color):
        source = _as_points(source, "source")
        target = _as_points(target, "target")
        color = _as_points(color, "color")

        n = len(source)
        if len(target) != n or len(color) != n:
            raise CountMismatchError(
                f"source={n}, target={len(target)}, color={len(color)}")
        if n > MAX_PARTICLES:
            raise FieldTooLargeError(f"{n} particles exceeds MAX_PARTICLES={MAX_PARTICLES}")

        for arr in (source, target, color):
            arr.flags.writeable = False

        self.source = source
        self.target = target
        self.color = color

    @property
    def count(self):
        return len(self.source)

    def __len__(self):
        return self.count

    def positions_at(self, value):
        return lerp(self.source, self.target, np.float32(value))

    def colors_at(self, heart_color, value):
        heart = np.asarray(heart_color, dtype=np.float32).reshape(1, 3)
        return lerp(heart, self.color, np.float32(value))

    def final_positions(self, value, pulse_scale=1.0, rotation_angle=0.0):
        """Positions as the renderer places them: morph, pulse, then spin about y."""
        pos = self.positions_at(value) * np.float32(pulse_scale)
        c = np.float32(np.cos(rotation_angle))
        s = np.float32(np.sin(rotation_angle))
        out = np.empty_like(pos)
        out[:, 0] = pos[:, 0] * c + pos[:, 2] * s
        out[:, 1] = pos[:, 1]
        out[:, 2] = -pos[:, 0] * s + pos[:, 2] * c
        return out

    def pack_gpu(self):
        n = self.count
        if n == 0:
            return np.empty(0, dtype=np.float32)

        buf = np.empty(n * FLOATS_PER_PARTICLE, dtype=np.float32)
        for k in range(3):
            buf[k::FLOATS_PER_PARTICLE] = self.source[:, k]
            buf[3 + k::FLOATS_PER_PARTICLE] = self.target[:, k]
            buf[6 + k::FLOATS_PER_PARTICLE] = self.color[:, k]
        return buf


def assemble_field(source, targets):
    """Zip sampler output with a TargetPoints result into a ParticleField."""
    if len(source) != len(targets.positions):
        raise CountMismatchError(
            f"heart sampler produced {len(source)} points, "
            f"target builder produced {len(targets.positions)}")
    return ParticleField(source, targets.positions, targets.colors)


def build_field(targets, rng=None):
    # The target builder decides N; the heart is sampled to match it.
    n = len(targets.positions)
    source = sample_heart(n, scale=heart_scale_for(targets.positions), rng=rng)
    return assemble_field(source, targets)
