"""
Pointer-driven selection state machine.

Turns pointer gestures into brush strokes, rectangle drags and polygon
selections, and maps device coordinates into the raster's intrinsic space.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple, Union

from .config import EditMode, EffectType, SelectionConfig
from .effects import Brush, EffectEngine
from .geometry import Point, Rect
from .logger import LoggerMixin


class SelectionState(Enum):
    """States of the selection state machine."""
    IDLE = "idle"
    BRUSH_PAINTING = "brush_painting"
    RECT_DRAGGING = "rect_dragging"
    POLYGON_BUILDING = "polygon_building"
    SELECTION_PENDING = "selection_pending"


@dataclass(frozen=True)
class PendingRect:
    """A committed rectangle awaiting apply or cancel."""
    rect: Rect


@dataclass(frozen=True)
class PendingPolygon:
    """A finalized polygon awaiting apply or cancel."""
    points: Tuple[Point, ...]


Selection = Optional[Union[PendingRect, PendingPolygon]]


@dataclass
class Viewport:
    """
    Where and how large the raster is currently displayed.

    ``origin_x``/``origin_y`` are the device coordinates of the displayed
    raster's top-left corner; ``display_width``/``display_height`` its
    displayed size in device pixels.
    """
    intrinsic_width: int
    intrinsic_height: int
    display_width: float
    display_height: float
    origin_x: float = 0.0
    origin_y: float = 0.0

    @classmethod
    def identity(cls, width: int, height: int) -> "Viewport":
        """Viewport showing the raster at 1:1 with its origin at (0, 0)."""
        return cls(width, height, float(width), float(height))

    @property
    def is_visible(self) -> bool:
        return self.display_width > 0 and self.display_height > 0

    @property
    def scale(self) -> float:
        """Intrinsic pixels per displayed pixel along x."""
        if self.display_width <= 0:
            return 0.0
        return self.intrinsic_width / self.display_width

    def to_intrinsic(self, device: Point) -> Point:
        """
        Convert device coordinates to clamped intrinsic coordinates.

        A zero-sized display maps every point to the origin.
        """
        if not self.is_visible:
            return Point(0.0, 0.0)
        scale_x = self.intrinsic_width / self.display_width
        scale_y = self.intrinsic_height / self.display_height
        raw = Point(
            (device.x - self.origin_x) * scale_x,
            (device.y - self.origin_y) * scale_y,
        )
        return raw.clamped(self.intrinsic_width, self.intrinsic_height)

    def to_display(self, point: Point) -> Point:
        """Convert intrinsic coordinates back to device coordinates."""
        if self.intrinsic_width == 0 or self.intrinsic_height == 0:
            return Point(self.origin_x, self.origin_y)
        return Point(
            point.x * self.display_width / self.intrinsic_width + self.origin_x,
            point.y * self.display_height / self.intrinsic_height + self.origin_y,
        )


class SelectionStateMachine(LoggerMixin):
    """
    Interprets pointer input for the current editing mode.

    Pointer handlers take device coordinates and return True when they
    completed an undoable edit (a finished brush stroke, or a selection
    applied straight away when ``auto_apply`` is configured). The caller is
    responsible for recording history in that case.
    """

    def __init__(
        self,
        engine: EffectEngine,
        brush: Brush,
        config: Optional[SelectionConfig] = None,
        viewport: Optional[Viewport] = None,
        mode: EditMode = EditMode.BRUSH_MOSAIC
    ):
        """
        Initialize state machine.

        Args:
            engine: Engine used for brush dabs and selection effects
            brush: Shared brush settings
            config: Selection configuration
            viewport: Initial display geometry (1:1 when omitted)
            mode: Initial editing mode
        """
        self.engine = engine
        self.brush = brush
        self.config = config or SelectionConfig()
        self.viewport = viewport or Viewport.identity(
            engine.buffer.width, engine.buffer.height
        )

        self._mode = mode
        self._state = SelectionState.IDLE
        self._anchor: Optional[Point] = None
        self._drag_rect: Optional[Rect] = None
        self._points: List[Point] = []
        self._hover: Optional[Point] = None
        self._pending: Selection = None

        if mode.is_brush:
            self.brush.effect = mode.effect

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------

    @property
    def mode(self) -> EditMode:
        return self._mode

    @property
    def state(self) -> SelectionState:
        return self._state

    @property
    def pending(self) -> Selection:
        return self._pending

    @property
    def drag_rect(self) -> Optional[Rect]:
        """Live rectangle while dragging."""
        return self._drag_rect

    @property
    def polygon_points(self) -> Tuple[Point, ...]:
        """Vertices recorded so far while building a polygon."""
        return tuple(self._points)

    @property
    def hover_point(self) -> Optional[Point]:
        """Last pointer position while building a polygon."""
        return self._hover

    @property
    def has_selection_in_progress(self) -> bool:
        return self._state in (
            SelectionState.RECT_DRAGGING,
            SelectionState.POLYGON_BUILDING,
            SelectionState.SELECTION_PENDING,
        )

    # ------------------------------------------------------------------
    # Mode and viewport
    # ------------------------------------------------------------------

    def set_mode(self, mode: EditMode) -> None:
        """Switch mode, discarding any in-progress or pending selection."""
        self.reset()
        self._mode = mode
        if mode.is_brush:
            self.brush.effect = mode.effect
        self.log_debug(f"Mode set to {mode.value}")

    def set_viewport(self, viewport: Viewport) -> None:
        """Update the display geometry used to map pointer coordinates."""
        self.viewport = viewport

    def to_intrinsic(self, device: Point) -> Point:
        return self.viewport.to_intrinsic(device)

    def reset(self) -> None:
        """Return to idle, dropping drag, polygon and pending data."""
        self._state = SelectionState.IDLE
        self._anchor = None
        self._drag_rect = None
        self._points = []
        self._hover = None
        self._pending = None

    def cancel(self) -> bool:
        """
        Cancel an in-progress drag, polygon or pending selection.

        Returns:
            True if something was cancelled
        """
        if not self.has_selection_in_progress:
            return False
        self.log_debug(f"Cancelled selection in state {self._state.value}")
        self.reset()
        return True

    # ------------------------------------------------------------------
    # Pointer input
    # ------------------------------------------------------------------

    def pointer_down(self, device: Point) -> bool:
        point = self.to_intrinsic(device)

        if self._state is SelectionState.SELECTION_PENDING:
            # Pending selections end only through apply or cancel
            return False

        if self._mode.is_brush:
            self._state = SelectionState.BRUSH_PAINTING
            self.engine.apply_brush(self.brush, point)
            return False

        if self._mode.is_rect:
            self._anchor = point
            self._drag_rect = Rect(point.x, point.y, 0.0, 0.0)
            self._state = SelectionState.RECT_DRAGGING
            return False

        if self._mode.is_polygon:
            return self._polygon_click(point)

        raise ValueError(f"Unhandled mode: {self._mode}")

    def pointer_move(self, device: Point) -> bool:
        point = self.to_intrinsic(device)

        if self._state is SelectionState.BRUSH_PAINTING:
            self.engine.apply_brush(self.brush, point)
        elif self._state is SelectionState.RECT_DRAGGING:
            self._drag_rect = Rect.from_corners(self._anchor, point)
        elif self._state is SelectionState.POLYGON_BUILDING:
            self._hover = point
        return False

    def pointer_up(self, device: Point) -> bool:
        if self._state is SelectionState.BRUSH_PAINTING:
            self._state = SelectionState.IDLE
            return True

        if self._state is SelectionState.RECT_DRAGGING:
            point = self.to_intrinsic(device)
            rect = Rect.from_corners(self._anchor, point)
            if not rect.is_larger_than(self.config.min_rect_size):
                self.log_debug(f"Ignored rectangle {rect.width:.1f}x{rect.height:.1f}")
                self.reset()
                return False
            self.reset()
            return self._set_pending(PendingRect(rect))

        return False

    def double_click(self, device: Point) -> bool:
        """Finalize the polygon being built, regardless of pointer position."""
        if not self._mode.is_polygon or self._state is not SelectionState.POLYGON_BUILDING:
            return False
        return self.finalize_polygon()

    def _polygon_click(self, point: Point) -> bool:
        if self._state is SelectionState.IDLE:
            self._points = [point]
            self._hover = None
            self._state = SelectionState.POLYGON_BUILDING
            return False

        if len(self._points) >= self.config.min_polygon_vertices and self._near_first_vertex(point):
            return self.finalize_polygon()

        self._points.append(point)
        return False

    def _near_first_vertex(self, point: Point) -> bool:
        if not self._points or not self.viewport.is_visible:
            return False
        threshold = self.config.close_threshold * self.viewport.scale
        return point.distance_to(self._points[0]) <= threshold

    def finalize_polygon(self) -> bool:
        """
        Turn the polygon being built into a pending selection.

        Polygons with fewer than the minimum number of vertices are left
        as they are.
        """
        if self._state is not SelectionState.POLYGON_BUILDING:
            return False
        if len(self._points) < self.config.min_polygon_vertices:
            return False
        points = tuple(self._points)
        self.reset()
        return self._set_pending(PendingPolygon(points))

    def _make_pending(self, selection: Union[PendingRect, PendingPolygon]) -> None:
        self._pending = selection
        self._state = SelectionState.SELECTION_PENDING
        self.log_debug(f"Selection pending: {type(selection).__name__}")

    def _set_pending(self, selection: Union[PendingRect, PendingPolygon]) -> bool:
        self._make_pending(selection)
        if self.config.auto_apply:
            return self.apply_pending()
        return False

    # ------------------------------------------------------------------
    # Programmatic selection
    # ------------------------------------------------------------------

    def select_rect(self, rect: Rect) -> bool:
        """
        Make ``rect`` (intrinsic coordinates) the pending selection.

        Corners are clamped to the raster and the same minimum size as a
        drag applies. ``auto_apply`` is not honoured; the caller applies.

        Returns:
            True if the rectangle became pending
        """
        self.reset()
        width, height = self.engine.buffer.width, self.engine.buffer.height
        rect = Rect.from_corners(
            Point(rect.x, rect.y).clamped(width, height),
            Point(rect.right, rect.bottom).clamped(width, height),
        )
        if not rect.is_larger_than(self.config.min_rect_size):
            self.log_warning(f"Rectangle {rect.width:.1f}x{rect.height:.1f} is too small to select")
            return False
        self._make_pending(PendingRect(rect))
        return True

    def select_polygon(self, points: Sequence[Point]) -> bool:
        """
        Make the polygon through ``points`` (intrinsic coordinates) the pending selection.

        Every vertex is kept; no proximity closing applies. ``auto_apply`` is
        not honoured; the caller applies.

        Returns:
            True if the polygon became pending
        """
        self.reset()
        if len(points) < self.config.min_polygon_vertices:
            self.log_warning(
                f"Polygon needs at least {self.config.min_polygon_vertices} vertices, "
                f"got {len(points)}"
            )
            return False
        width, height = self.engine.buffer.width, self.engine.buffer.height
        self._make_pending(PendingPolygon(tuple(p.clamped(width, height) for p in points)))
        return True

    # ------------------------------------------------------------------
    # Pending selection
    # ------------------------------------------------------------------

    def apply_pending(
        self,
        inverse: Optional[bool] = None,
        effect: EffectType = EffectType.MOSAIC
    ) -> bool:
        """
        Apply the pending selection and return to idle.

        Args:
            inverse: Apply outside the selection; defaults to the mode's flag
            effect: Effect to apply

        Returns:
            True if a selection was applied
        """
        selection = self._pending
        if selection is None:
            return False
        if inverse is None:
            inverse = self._mode.is_inverse

        block_size = self.brush.block_size
        intensity = self.brush.blur_intensity
        engine = self.engine

        if isinstance(selection, PendingRect):
            if effect is EffectType.MOSAIC:
                if inverse:
                    engine.apply_mosaic_to_rect_inverse(selection.rect, block_size)
                else:
                    engine.apply_mosaic_to_rect(selection.rect, block_size)
            else:
                if inverse:
                    engine.apply_blur_to_rect_inverse(selection.rect, intensity)
                else:
                    engine.apply_blur_to_rect(selection.rect, intensity)
        else:
            if effect is EffectType.MOSAIC:
                if inverse:
                    engine.apply_mosaic_to_polygon_inverse(selection.points, block_size)
                else:
                    engine.apply_mosaic_to_polygon(selection.points, block_size)
            else:
                if inverse:
                    engine.apply_blur_to_polygon_inverse(selection.points, intensity)
                else:
                    engine.apply_blur_to_polygon(selection.points, intensity)

        self.log_info(
            f"Applied {effect.value} to {'outside' if inverse else 'inside'} of "
            f"{type(selection).__name__}"
        )
        self.reset()
        return True
