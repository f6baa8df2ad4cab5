"""Double-buffered raster surface backed by Pillow.

Drawing calls take graph-space coordinates; the surface applies the camera
transform ``(x, y, k)`` and the device pixel ratio, the way a 2D canvas
context does after ``translate``/``scale``. Frames are painted into a back
buffer and become visible on ``present()``.
"""

from __future__ import annotations

import io
import logging
import math
from pathlib import Path

from PIL import Image, ImageDraw, ImageFont

from orgnet.errors import RenderPreconditionError
from orgnet.visualization.palette import RGB, to_rgb

logger = logging.getLogger(__name__)

_FONT_CANDIDATES = {
    False: ("DejaVuSans.ttf", "Arial.ttf", "LiberationSans-Regular.ttf"),
    True: ("DejaVuSans-Bold.ttf", "Arial Bold.ttf", "LiberationSans-Bold.ttf"),
}


class Canvas:
    """Double-buffered Pillow surface in CSS pixels, scaled by the device pixel ratio."""
    def __init__(
        self,
        width: int = 800,
        height: int = 600,
        device_pixel_ratio: float = 1.0,
        background: str = "#ffffff",
        font_path: str | None = None,
    ):
        self.background = to_rgb(background)
        self.font_path = font_path
        self.width = 0
        self.height = 0
        self.device_pixel_ratio = device_pixel_ratio
        self._front: Image.Image | None = None
        self._back: Image.Image | None = None
        self._draw: ImageDraw.ImageDraw | None = None
        self._fonts: dict[tuple[int, bool], ImageFont.ImageFont] = {}
        self.tx = 0.0
        self.ty = 0.0
        self.k = 1.0
        self.frames = 0
        self.resize(width, height, device_pixel_ratio)

    # ------------------------------------------------------------ buffers

    @property
    def is_visible(self) -> bool:
        """A zero-sized surface (hidden container) cannot be painted."""
        return self.width > 0 and self.height > 0

    @property
    def pixel_size(self) -> tuple[int, int]:
        return (
            int(round(self.width * self.device_pixel_ratio)),
            int(round(self.height * self.device_pixel_ratio)),
        )

    def resize(self, width: int, height: int, device_pixel_ratio: float | None = None) -> bool:
        """Re-provision both buffers. Returns True if the pixel size changed."""
        if device_pixel_ratio is not None:
            self.device_pixel_ratio = device_pixel_ratio
        old = self.pixel_size if self._back is not None else None
        self.width, self.height = max(0, int(width)), max(0, int(height))
        if not self.is_visible:
            return False
        size = self.pixel_size
        if size == old:
            return False
        self._front = Image.new("RGB", size, self.background)
        self._back = Image.new("RGB", size, self.background)
        self._draw = None
        return True

    def begin_frame(self):
        """Clear the back buffer. Raises RenderPreconditionError when there is nothing to paint on."""
        if not self.is_visible or self._back is None:
            raise RenderPreconditionError("surface is zero-sized")
        self._back.paste(self.background, (0, 0, *self._back.size))
        self._draw = ImageDraw.Draw(self._back, "RGBA")

    def present(self):
        """Swap buffers so the finished frame becomes visible."""
        if self._back is None:
            return
        self._front, self._back = self._back, self._front
        self._draw = None
        self.frames += 1

    @property
    def image(self) -> Image.Image | None:
        """Last presented frame, or None before the first one."""
        return self._front

    def save(self, path: Path | str):
        """Write the last presented frame to disk."""
        if self._front is None:
            raise RenderPreconditionError("nothing has been rendered")
        self._front.save(path)

    def to_png_bytes(self) -> bytes:
        """Encode the last presented frame as PNG."""
        if self._front is None:
            raise RenderPreconditionError("nothing has been rendered")
        buf = io.BytesIO()
        self._front.save(buf, format="PNG")
        return buf.getvalue()

    # --------------------------------------------------------- transform

    def set_transform(self, x: float, y: float, k: float):
        """Camera pan (x, y) and zoom (k) applied to every draw call."""
        self.tx, self.ty, self.k = x, y, k

    def _pt(self, x: float, y: float) -> tuple[float, float]:
        dpr = self.device_pixel_ratio
        return ((x * self.k + self.tx) * dpr, (y * self.k + self.ty) * dpr)

    def _len(self, value: float) -> float:
        return value * self.k * self.device_pixel_ratio

    @staticmethod
    def _rgba(color: str | RGB, alpha: float) -> tuple[int, int, int, int]:
        r, g, b = to_rgb(color)
        return (r, g, b, max(0, min(255, int(round(alpha * 255)))))

    def _stroke_width(self, width: float) -> int:
        return max(1, int(round(self._len(width))))

    # ----------------------------------------------------------- drawing

    def _require_draw(self) -> ImageDraw.ImageDraw:
        if self._draw is None:
            raise RenderPreconditionError("begin_frame() has not been called")
        return self._draw

    def line(self, x1, y1, x2, y2, color, width: float = 1.0, alpha: float = 1.0, dash: tuple[float, float] | None = None):
        """Straight segment in graph coordinates, optionally dashed as (on, off)."""
        draw = self._require_draw()
        p1, p2 = self._pt(x1, y1), self._pt(x2, y2)
        fill = self._rgba(color, alpha)
        w = self._stroke_width(width)
        if not dash:
            draw.line([p1, p2], fill=fill, width=w)
            return
        on, off = self._len(dash[0]), self._len(dash[1])
        dx, dy = p2[0] - p1[0], p2[1] - p1[1]
        total = math.hypot(dx, dy)
        if total == 0 or on <= 0:
            return
        ux, uy = dx / total, dy / total
        pos = 0.0
        while pos < total:
            end = min(pos + on, total)
            draw.line(
                [(p1[0] + ux * pos, p1[1] + uy * pos), (p1[0] + ux * end, p1[1] + uy * end)],
                fill=fill,
                width=w,
            )
            pos = end + off

    def circle(self, cx, cy, r, fill=None, stroke=None, stroke_width: float = 1.0, alpha: float = 1.0,
               fill_alpha: float | None = None):
        """Filled and/or stroked disc of radius ``r``."""
        draw = self._require_draw()
        x, y = self._pt(cx, cy)
        rad = self._len(r)
        if fill is not None:
            fa = alpha if fill_alpha is None else fill_alpha * alpha
            draw.ellipse([x - rad, y - rad, x + rad, y + rad], fill=self._rgba(fill, fa))
        if stroke is not None:
            self.ring(cx, cy, r, stroke, stroke_width, alpha)

    def ring(self, cx, cy, r, color, width: float = 1.0, alpha: float = 1.0):
        """Stroke a circle outline centered on radius ``r``."""
        draw = self._require_draw()
        x, y = self._pt(cx, cy)
        w = self._stroke_width(width)
        outer = self._len(r) + w / 2
        draw.ellipse([x - outer, y - outer, x + outer, y + outer], outline=self._rgba(color, alpha), width=w)

    def rect(self, x, y, w, h, fill, alpha: float = 1.0):
        """Filled axis-aligned rectangle."""
        draw = self._require_draw()
        x0, y0 = self._pt(x, y)
        x1, y1 = self._pt(x + w, y + h)
        draw.rectangle([x0, y0, x1, y1], fill=self._rgba(fill, alpha))

    def pill(self, x, y, w, h, fill, stroke=None, stroke_width: float = 1.0, alpha: float = 1.0, fill_alpha: float = 1.0):
        """Rounded label box with fully rounded ends."""
        draw = self._require_draw()
        x0, y0 = self._pt(x, y)
        x1, y1 = self._pt(x + w, y + h)
        draw.rounded_rectangle(
            [x0, y0, x1, y1],
            radius=(y1 - y0) / 2,
            fill=self._rgba(fill, fill_alpha * alpha),
            outline=self._rgba(stroke, alpha) if stroke is not None else None,
            width=self._stroke_width(stroke_width) if stroke is not None else 0,
        )

    def _font(self, size_px: float, bold: bool):
        key = (max(1, int(round(size_px))), bold)
        font = self._fonts.get(key)
        if font is not None:
            return font
        candidates = ((self.font_path,) if self.font_path else ()) + _FONT_CANDIDATES[bold]
        for name in candidates:
            try:
                font = ImageFont.truetype(name, key[0])
                break
            except OSError:
                continue
        else:
            font = ImageFont.load_default(size=key[0])
        self._fonts[key] = font
        return font

    def measure_text(self, text: str, size: float, bold: bool = False) -> float:
        """Width of ``text`` in graph units at ``size`` graph pixels."""
        if not text:
            return 0.0
        font = self._font(size, bold)
        left, _, right, _ = font.getbbox(text)
        return float(right - left)

    def text(self, x, y, text: str, color, size: float = 12, bold: bool = False, alpha: float = 1.0):
        """Draw ``text`` centered on ``(x, y)``."""
        if not text:
            return
        draw = self._require_draw()
        font = self._font(self._len(size), bold)
        cx, cy = self._pt(x, y)
        left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
        draw.text(
            (cx - left - (right - left) / 2, cy - top - (bottom - top) / 2),
            text,
            fill=self._rgba(color, alpha),
            font=font,
        )
