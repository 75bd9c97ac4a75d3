import os
import sys
import math
import numpy as np
import pyglet
from pyglet.window import key
import moderngl

from engine import HeartEngine, HEART_COLOR, STATE_NAMES
from gui import StartOverlay
from morph import STATE_NAMES as MORPH_STATE_NAMES

WIDTH, HEIGHT = 1280, 720
BASE_DIR = os.path.dirname(os.path.abspath(__file__))
IMAGE_PATH = os.path.join(BASE_DIR, "image", "image.jpg")
AUDIO_DIR = os.path.join(BASE_DIR, "audio")

AUDIO_MUSIC = "music.mp3"
MUSIC_VOLUME = 0.6

POINT_SIZE = 2.0
MAX_PIXEL_RATIO = 2.0

CAMERA_Z = 60.0
CAMERA_FOV = 75.0
CAMERA_NEAR, CAMERA_FAR = 0.1, 1000.0

PARTICLE_VERT = """
#version 330 core
uniform mat4 u_proj;
uniform float u_camera_z;
uniform float u_morph;
uniform float u_pulse;
uniform float u_rotation;
uniform float u_point_size;
uniform vec3 u_heart_color;

in vec3 in_source;
in vec3 in_target;
in vec3 in_color;
out vec3 v_color;

void main() {
    vec3 p = mix(in_source, in_target, u_morph) * u_pulse;

    // Spin about the vertical axis
    float c = cos(u_rotation);
    float s = sin(u_rotation);
    p = vec3(p.x * c + p.z * s, p.y, -p.x * s + p.z * c);

    vec4 mv = vec4(p.x, p.y, p.z - u_camera_z, 1.0);
    gl_PointSize = u_point_size * (60.0 / -mv.z);
    gl_Position = u_proj * mv;

    v_color = mix(u_heart_color, in_color, u_morph);
}
"""

PARTICLE_FRAG = """
#version 330 core
in vec3 v_color;
out vec4 frag_color;
void main() {
    // Round dots
    if (distance(gl_PointCoord, vec2(0.5)) > 0.5) discard;
    frag_color = vec4(v_color, 1.0);
}
"""


def perspective(fov_deg, aspect, near, far):
    f = 1.0 / math.tan(math.radians(fov_deg) / 2.0)
    m = np.zeros((4, 4), dtype="f4")
    m[0, 0] = f / aspect
    m[1, 1] = f
    m[2, 2] = (far + near) / (near - far)
    m[2, 3] = 2.0 * far * near / (near - far)
    m[3, 2] = -1.0
    return m


# --- Sound Manager ---

class SoundManager:
    """Background music, started by the overlay's start button."""

    def __init__(self):
        self._player = None
        self._source = self._load_source(AUDIO_MUSIC)

    def _load_source(self, filename):
        try:
            path = os.path.join(AUDIO_DIR, filename)
            source = pyglet.media.load(path, streaming=False)
            print(f"[SoundManager] Loaded: {filename} ({source.duration or 0.0:.1f}s)")
            return source
        except Exception as e:
            print(f"[SoundManager] Could not load '{filename}': {e}")
            return None

    def start_music(self):
        if self._player is not None or self._source is None:
            return
        try:
            player = pyglet.media.Player()
            player.queue(self._source)
            player.loop = True
            player.volume = MUSIC_VOLUME
            player.play()
            self._player = player
        except Exception as e:
            print(f"[SoundManager] Music blocked: {e}")

    def cleanup(self):
        if self._player is not None:
            self._player.pause()
            self._player = None


# --- Main Application ---

class HeartApp(pyglet.window.Window):
    def __init__(self, image_path=IMAGE_PATH):
        super().__init__(WIDTH, HEIGHT, caption="Heart", resizable=True,
                         config=pyglet.gl.Config(
                             major_version=3, minor_version=3,
                             double_buffer=True,
                         ))
        self._is_fullscreen = False
        self._debug = False

        self.ctx = moderngl.create_context()
        self.ctx.enable(moderngl.PROGRAM_POINT_SIZE)
        self.ctx.enable(moderngl.BLEND)
        self.ctx.blend_func = (moderngl.SRC_ALPHA, moderngl.ONE_MINUS_SRC_ALPHA)

        self._prog = self.ctx.program(vertex_shader=PARTICLE_VERT, fragment_shader=PARTICLE_FRAG)
        self._prog["u_camera_z"].value = CAMERA_Z
        self._prog["u_heart_color"].value = tuple(HEART_COLOR)
        self._update_projection(WIDTH, HEIGHT)

        # Created once the engine has a field
        self._vbo = None
        self._vao = None

        self.sound = SoundManager()
        self.overlay = StartOverlay(WIDTH, HEIGHT, on_start=self.sound.start_music)

        # A missing photo falls back to the grid once the loader reports it
        self.engine = HeartEngine(image_path)
        self.engine.start()

        self._debug_label = pyglet.text.Label(
            "", font_name="Consolas", font_size=12,
            x=10, y=HEIGHT - 20, color=(180, 180, 180, 200),
        )

    def _update_projection(self, width, height):
        aspect = width / max(height, 1)
        proj = perspective(CAMERA_FOV, aspect, CAMERA_NEAR, CAMERA_FAR)
        # numpy is row-major, GLSL wants column-major
        self._prog["u_proj"].write(proj.T.copy().tobytes())

    def _upload_field(self):
        data = self.engine.field.pack_gpu()
        self._vbo = self.ctx.buffer(data.tobytes())
        self._vao = self.ctx.vertex_array(
            self._prog,
            [(self._vbo, "3f 3f 3f", "in_source", "in_target", "in_color")],
        )

    def _point_size(self):
        ratio = min(self.get_pixel_ratio(), MAX_PIXEL_RATIO)
        return POINT_SIZE * ratio

    def on_key_press(self, symbol, modifiers):
        if symbol == key.D:
            self._debug = not self._debug
        elif symbol == key.F11:
            self._is_fullscreen = not self._is_fullscreen
            self.set_fullscreen(self._is_fullscreen)
        else:
            super().on_key_press(symbol, modifiers)

    def on_mouse_motion(self, x, y, dx, dy):
        self.overlay.on_mouse_motion(x, y)

    def on_mouse_press(self, x, y, button, modifiers):
        if self.overlay.on_mouse_press(x, y):
            return
        # Ignored until the field exists
        self.engine.toggle()

    def on_mouse_release(self, x, y, button, modifiers):
        self.overlay.on_mouse_release(x, y)

    def on_resize(self, width, height):
        super().on_resize(width, height)
        fb_w, fb_h = self.get_framebuffer_size()
        self.ctx.viewport = (0, 0, fb_w, fb_h)
        self._update_projection(width, height)
        self.overlay.resize(width, height)
        self._debug_label.y = height - 20

    def on_draw(self):
        self.ctx.clear(0.0, 0.0, 0.0, 0.0)

        dt = 1.0 / 60.0
        frame = self.engine.tick()

        if frame is not None:
            if self._vao is None:
                self._upload_field()
            self._prog["u_morph"].value = frame.morph_value
            self._prog["u_pulse"].value = frame.pulse_scale
            self._prog["u_rotation"].value = frame.rotation_angle
            self._prog["u_point_size"].value = self._point_size()
            self._vao.render(moderngl.POINTS, vertices=self.engine.field.count)

        if self._debug:
            n = self.engine.field.count if self.engine.field is not None else 0
            self._debug_label.text = (
                f"Engine: {STATE_NAMES[self.engine.state]} | "
                f"Morph: {MORPH_STATE_NAMES[self.engine.animator.state]} "
                f"{self.engine.morph_value:.3f} | Particles: {n}"
            )
            self._debug_label.draw()

        self.overlay.update(dt)
        self.overlay.draw()

    def on_close(self):
        self.sound.cleanup()
        super().on_close()


def main():
    image_path = sys.argv[1] if len(sys.argv) > 1 else IMAGE_PATH
    app = HeartApp(image_path)
    pyglet.clock.schedule_interval(lambda dt: None, 1 / 60)
    pyglet.app.run()


if __name__ == "__main__":
    main()
