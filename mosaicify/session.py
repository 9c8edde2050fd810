"""
Editing session: the public API hosts drive.

A session owns the raster, the effect engine, the selection state machine
and the undo history for one opened image. Hosts forward user intents to it
and subscribe to :class:`SessionState` notifications to render controls.
"""

from datetime import datetime
from typing import Callable, List, Optional, Sequence, Union

from .config import EditMode, EffectType, ExportFormat, MosaicifyConfig, SessionState
from .effects import Brush, EffectEngine
from .errors import ExportError
from .geometry import Point, Rect
from .history import HistoryManager
from .io_utils import (
    DownloadSink,
    ImageSource,
    base_name_for_source,
    build_export_filename,
    encode_raster,
    parse_export_format,
)
from .logger import LoggerMixin, get_logger
from .raster import RasterBuffer
from .selection import Selection, SelectionState, SelectionStateMachine, Viewport

StateListener = Callable[[SessionState], None]

logger = get_logger(__name__)


class ConfirmationPrompt:
    """Asks the user whether unsaved edits may be discarded."""

    def ask_discard(self) -> bool:
        raise NotImplementedError("Subclasses must implement ask_discard")


class CallbackConfirmation(ConfirmationPrompt):
    """Adapts a plain ``() -> bool`` callable to :class:`ConfirmationPrompt`."""

    def __init__(self, callback: Callable[[], bool]):
        self.callback = callback

    def ask_discard(self) -> bool:
        return bool(self.callback())


class EditingSession(LoggerMixin):
    """
    Top-level orchestrator for one editing session.
    """

    def __init__(
        self,
        buffer: RasterBuffer,
        config: Optional[MosaicifyConfig] = None,
        confirm: Optional[ConfirmationPrompt] = None,
        viewport: Optional[Viewport] = None,
        base_name: str = "",
        export_sink: Optional[DownloadSink] = None
    ):
        """
        Initialize session around an already decoded raster.

        Args:
            buffer: Decoded source image; owned by the session from now on
            config: Session configuration
            confirm: Prompt consulted before discarding edits on close
            viewport: Initial display geometry (1:1 when omitted)
            base_name: Base used for export filenames
            export_sink: Default destination for :meth:`export`
        """
        self.config = config or MosaicifyConfig()
        self.confirm = confirm
        self.base_name = base_name
        self.export_sink = export_sink

        self._buffer = buffer
        self.brush = Brush(config=self.config.brush)
        self.brush.size = self.brush.clamp_size(self.config.brush.default_size)

        self.engine = EffectEngine(buffer)
        self.selection = SelectionStateMachine(
            self.engine, self.brush, self.config.selection, viewport
        )
        self.history = HistoryManager(buffer, self.config.history)
        # Pristine image is the first history entry
        self.history.push()

        self._listeners: List[StateListener] = []
        self._last_state: Optional[SessionState] = None
        self._closed = False

        self.log_info(f"Session opened on {buffer.width}x{buffer.height} raster")

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def buffer(self) -> RasterBuffer:
        return self._buffer

    @property
    def mode(self) -> EditMode:
        return self.selection.mode

    @property
    def brush_size(self) -> int:
        return self.brush.size

    @property
    def state(self) -> SelectionState:
        return self.selection.state

    @property
    def pending_selection(self) -> Selection:
        return self.selection.pending

    @property
    def closed(self) -> bool:
        return self._closed

    def has_edits(self) -> bool:
        """True when at least one edit beyond the pristine image is current."""
        return self.history.index > 0

    def get_state(self) -> SessionState:
        return SessionState(
            mode=self.mode,
            brush_size=self.brush.size,
            state=self.selection.state.value,
            selection_pending=self.selection.pending is not None,
            can_undo=self.history.can_undo,
            can_redo=self.history.can_redo,
            closed=self._closed,
        )

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """
        Register a state-change listener.

        The listener is called immediately with the current state and then
        whenever a published field changes.

        Returns:
            Callable that removes the listener
        """
        self._listeners.append(listener)
        state = self.get_state()
        self._last_state = state
        listener(state)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        state = self.get_state()
        if state == self._last_state:
            return
        self._last_state = state
        for listener in list(self._listeners):
            listener(state)

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("Editing session is closed")

    def _commit(self) -> None:
        """Record the live buffer as a new undo step."""
        self.history.push()
        self.log_debug(f"Committed edit, history index {self.history.index}")

    # ------------------------------------------------------------------
    # Mode, brush and display
    # ------------------------------------------------------------------

    def set_mode(self, mode: EditMode) -> None:
        """Switch editing mode, discarding any selection in progress."""
        self._ensure_open()
        mode = EditMode(mode)
        if self.selection.state is SelectionState.BRUSH_PAINTING:
            # Keep the partial stroke as its own undo step
            self._commit()
        self.selection.set_mode(mode)
        self._notify()

    def set_brush_size(self, size: float) -> int:
        """
        Set the brush diameter, clamped to the configured range.

        Returns:
            The size actually applied
        """
        self._ensure_open()
        self.brush.size = self.brush.clamp_size(size)
        self._notify()
        return self.brush.size

    def apply_brush_preset(self, key: str) -> Optional[int]:
        """Apply a configured brush size preset ("1", "2", "3" by default)."""
        size = self.config.brush.presets.get(str(key))
        if size is None:
            return None
        return self.set_brush_size(size)

    def set_display_geometry(
        self,
        display_width: float,
        display_height: float,
        origin_x: float = 0.0,
        origin_y: float = 0.0
    ) -> None:
        """Record where and how large the raster is displayed (e.g. after a resize)."""
        self._ensure_open()
        self.selection.set_viewport(Viewport(
            intrinsic_width=self._buffer.width,
            intrinsic_height=self._buffer.height,
            display_width=display_width,
            display_height=display_height,
            origin_x=origin_x,
            origin_y=origin_y,
        ))

    def brush_display_size(self) -> float:
        """Brush diameter in displayed pixels, for sizing a cursor preview."""
        viewport = self.selection.viewport
        if not viewport.is_visible:
            return 0.0
        return self.brush.size * viewport.display_width / viewport.intrinsic_width

    # ------------------------------------------------------------------
    # Pointer input
    # ------------------------------------------------------------------

    def handle_pointer_down(self, point: Point) -> None:
        self._ensure_open()
        if self.selection.pointer_down(point):
            self._commit()
        self._notify()

    def handle_pointer_move(self, point: Point) -> None:
        self._ensure_open()
        if self.selection.pointer_move(point):
            self._commit()
        self._notify()

    def handle_pointer_up(self, point: Point) -> None:
        self._ensure_open()
        if self.selection.pointer_up(point):
            self._commit()
        self._notify()

    def handle_double_click(self, point: Point) -> None:
        self._ensure_open()
        if self.selection.double_click(point):
            self._commit()
        self._notify()

    def handle_escape(self) -> bool:
        """
        Cancel the selection in progress, or ask to close when there is none.

        Returns:
            True if the session closed
        """
        self._ensure_open()
        if self.selection.cancel():
            self._notify()
            return False
        return self.request_close()

    # ------------------------------------------------------------------
    # Selections
    # ------------------------------------------------------------------

    def select_rect(self, rect: Rect) -> bool:
        """
        Make a rectangle given in intrinsic coordinates the pending selection.

        Nothing is applied until :meth:`apply_pending_selection`.
        """
        self._ensure_open()
        selected = self.selection.select_rect(rect)
        self._notify()
        return selected

    def select_polygon(self, points: Sequence[Point]) -> bool:
        """
        Make a polygon given in intrinsic coordinates the pending selection.

        All vertices are kept. Nothing is applied until :meth:`apply_pending_selection`.
        """
        self._ensure_open()
        selected = self.selection.select_polygon(points)
        self._notify()
        return selected

    def apply_pending_selection(
        self,
        inverse: Optional[bool] = None,
        effect: EffectType = EffectType.MOSAIC
    ) -> bool:
        """
        Apply the pending selection and record one undo step.

        Args:
            inverse: Apply outside the selection; defaults to the mode's flag
            effect: Effect to apply (mosaic by default)

        Returns:
            False if no selection was pending
        """
        self._ensure_open()
        applied = self.selection.apply_pending(inverse, EffectType(effect))
        if applied:
            self._commit()
        self._notify()
        return applied

    def cancel_pending_selection(self) -> bool:
        """Drop the pending selection without touching the raster."""
        self._ensure_open()
        if self.selection.pending is None:
            return False
        self.selection.reset()
        self._notify()
        return True

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def undo(self) -> bool:
        self._ensure_open()
        changed = self.history.undo()
        self._notify()
        return changed

    def redo(self) -> bool:
        self._ensure_open()
        changed = self.history.redo()
        self._notify()
        return changed

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export_raster(
        self,
        fmt: Union[ExportFormat, str, None] = None,
        quality: Optional[float] = None
    ) -> bytes:
        """
        Encode the current raster.

        Args:
            fmt: PNG (lossless) or JPEG (lossy); configured default when omitted
            quality: JPEG quality in [0, 1]; configured default when omitted

        Raises:
            ExportError: If encoding fails. The session is left unchanged.
        """
        self._ensure_open()
        fmt = parse_export_format(fmt or self.config.export.default_format)
        if quality is None:
            quality = self.config.export.jpeg_quality
        data = encode_raster(self._buffer, fmt, quality)
        self.log_debug(f"Encoded {fmt.value}: {len(data)} bytes")
        return data

    def export(
        self,
        sink: Optional[DownloadSink] = None,
        fmt: Union[ExportFormat, str, None] = None,
        now: Optional[datetime] = None
    ) -> str:
        """
        Encode the raster and hand it to a download sink.

        Returns:
            The filename passed to the sink

        Raises:
            ExportError: If no sink is available, or encoding or saving fails
        """
        sink = sink or self.export_sink
        if sink is None:
            raise ExportError("No download sink configured")

        fmt = parse_export_format(fmt or self.config.export.default_format)
        data = self.export_raster(fmt)
        filename = build_export_filename(
            self.base_name,
            fmt,
            now=now,
            suffix=self.config.export.filename_suffix,
            max_length=self.config.export.max_basename_length,
        )
        sink.save(data, filename, fmt.mime_type)
        self.log_info(f"Exported {filename}")
        return filename

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def request_close(self) -> bool:
        """
        Close the session, asking for confirmation first if there are edits.

        Returns:
            True if the session closed, False if the user declined
        """
        if self._closed:
            return True
        if self.has_edits() and self.confirm is not None:
            if not self.confirm.ask_discard():
                self.log_debug("Close declined")
                return False
        self.close()
        return True

    def close(self) -> None:
        """Tear the session down unconditionally."""
        if self._closed:
            return
        self._closed = True
        self.selection.reset()
        self._notify()
        self.history.clear()
        self._listeners.clear()
        self.log_info("Session closed")


async def open_session(
    source: ImageSource,
    target,
    config: Optional[MosaicifyConfig] = None,
    confirm: Optional[ConfirmationPrompt] = None,
    viewport: Optional[Viewport] = None,
    alt_text: Optional[str] = None,
    export_sink: Optional[DownloadSink] = None
) -> EditingSession:
    """
    Acquire an image and open an editing session on it.

    Raises:
        LoadError: If the image cannot be acquired; no session is created
    """
    buffer = await source.acquire(target)
    logger.debug(f"Acquired {target} for editing")
    return EditingSession(
        buffer,
        config=config,
        confirm=confirm,
        viewport=viewport,
        base_name=base_name_for_source(target, alt_text),
        export_sink=export_sink,
    )
