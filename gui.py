"""
Start overlay shown before the heart appears.

Pure pyglet shapes + labels. The overlay holds a single "start" button;
clicking it fades the overlay out and unlocks the morph toggle.
"""

import pyglet

# ── Theme colors ──────────────────────────────────────────────
COL_OVERLAY_BG   = (10, 0, 5)
COL_BORDER       = (255, 105, 140, 255)    # soft rose
COL_BORDER_HOT   = (255, 160, 190, 255)
COL_TEXT         = (255, 235, 240, 255)
COL_BTN_BG       = (60, 10, 25, 220)
COL_BTN_BG_HOT   = (90, 20, 40, 230)
COL_BTN_BG_PRESS = (120, 30, 55, 240)

OVERLAY_OPACITY = 220
FADE_DURATION = 1.0


def _hit(x, y, bx, by, bw, bh):
    """Point-in-rect test."""
    return bx <= x <= bx + bw and by <= y <= by + bh


class StartButton:
    """Clickable rectangle with hover/press states."""

    def __init__(self, x, y, w, h, text, callback=None):
        self.x, self.y, self.w, self.h = x, y, w, h
        self.text = text
        self.callback = callback
        self.hovered = False
        self.pressed = False

        self._border = pyglet.shapes.BorderedRectangle(
            x, y, w, h, border=2,
            color=COL_BTN_BG[:3],
            border_color=COL_BORDER[:3],
        )
        self._border.opacity = COL_BTN_BG[3]

        self._label = pyglet.text.Label(
            text, font_name="Georgia", font_size=18,
            x=x + w // 2, y=y + h // 2,
            anchor_x="center", anchor_y="center",
            color=COL_TEXT,
        )

    def move_to(self, x, y):
        self.x, self.y = x, y
        self._border.x, self._border.y = x, y
        self._label.x = x + self.w // 2
        self._label.y = y + self.h // 2

    def hit_test(self, mx, my):
        return _hit(mx, my, self.x, self.y, self.w, self.h)

    def on_hover(self, inside):
        self.hovered = inside

    def on_press(self):
        self.pressed = True
        if self.callback:
            self.callback()

    def on_release(self):
        self.pressed = False

    def draw(self, alpha=1.0):
        if self.pressed:
            bg = COL_BTN_BG_PRESS
        elif self.hovered:
            bg = COL_BTN_BG_HOT
        else:
            bg = COL_BTN_BG

        border_col = COL_BORDER_HOT[:3] if self.hovered else COL_BORDER[:3]

        self._border.color = bg[:3]
        self._border.opacity = int(bg[3] * alpha)
        self._border.border_color = border_col
        self._label.color = (*COL_TEXT[:3], int(COL_TEXT[3] * alpha))
        self._border.draw()
        self._label.draw()


class StartOverlay:
    """Full-window veil with a title and the start button.

    States: visible -> fading (FADE_DURATION) -> hidden. `blocking` stays
    True until the fade has finished, so clicks during the fade never
    reach the morph toggle.
    """

    BTN_W, BTN_H = 200, 56

    def __init__(self, win_w, win_h, title="For You", on_start=None):
        self._on_start = on_start
        self.visible = True
        self._fading = False
        self._fade_timer = 0.0

        self._veil = pyglet.shapes.Rectangle(0, 0, win_w, win_h, color=COL_OVERLAY_BG)
        self._veil.opacity = OVERLAY_OPACITY

        self._title = pyglet.text.Label(
            title, font_name="Georgia", font_size=40,
            x=win_w // 2, y=win_h // 2 + 70,
            anchor_x="center", anchor_y="center",
            color=COL_TEXT,
        )
        self.button = StartButton(
            win_w // 2 - self.BTN_W // 2, win_h // 2 - self.BTN_H // 2,
            self.BTN_W, self.BTN_H, "Start", callback=self._start,
        )

    @property
    def blocking(self):
        return self.visible

    def resize(self, win_w, win_h):
        """Update positions for new window dimensions."""
        self._veil.width = win_w
        self._veil.height = win_h
        self._title.x = win_w // 2
        self._title.y = win_h // 2 + 70
        self.button.move_to(win_w // 2 - self.BTN_W // 2, win_h // 2 - self.BTN_H // 2)

    def _start(self):
        if self._fading:
            return
        self._fading = True
        self._fade_timer = 0.0
        if self._on_start:
            self._on_start()

    def on_mouse_motion(self, x, y):
        if self.visible:
            self.button.on_hover(self.button.hit_test(x, y))

    def on_mouse_press(self, x, y):
        """Returns True when the click was consumed by the overlay."""
        if not self.visible:
            return False
        if self.button.hit_test(x, y):
            self.button.on_press()
        return True

    def on_mouse_release(self, x, y):
        self.button.on_release()

    def update(self, dt):
        if not self._fading:
            return
        self._fade_timer += dt
        if self._fade_timer >= FADE_DURATION:
            self._fading = False
            self.visible = False

    def draw(self):
        if not self.visible:
            return
        alpha = 1.0
        if self._fading:
            alpha = max(0.0, 1.0 - self._fade_timer / FADE_DURATION)

        self._veil.opacity = int(OVERLAY_OPACITY * alpha)
        self._veil.draw()
        r, g, b, a = COL_TEXT
        self._title.color = (r, g, b, int(a * alpha))
        self._title.draw()
        self.button.draw(alpha)
