"""
Tests for the editing session.
"""

import asyncio
import io
from datetime import datetime

import numpy as np
import pytest
from PIL import Image

from mosaicify.config import EditMode, EffectType, MosaicifyConfig, SelectionConfig
from mosaicify.errors import ExportError, LoadError
from mosaicify.effects import EffectEngine
from mosaicify.geometry import Point, Rect
from mosaicify.io_utils import BytesImageSource, MemoryDownloadSink
from mosaicify.raster import RasterBuffer
from mosaicify.selection import PendingRect, SelectionState
from mosaicify.session import CallbackConfirmation, EditingSession, open_session


@pytest.fixture
def pixels():
    rng = np.random.default_rng(21)
    return rng.integers(0, 256, size=(120, 160, 4), dtype=np.uint8)


@pytest.fixture
def session(pixels):
    return EditingSession(RasterBuffer(pixels), base_name="holiday")


def stroke(session, *points):
    session.handle_pointer_down(points[0])
    for point in points[1:]:
        session.handle_pointer_move(point)
    session.handle_pointer_up(points[-1])


def select_rect(session, start, end, mode=EditMode.RECT_SELECT):
    session.set_mode(mode)
    session.handle_pointer_down(start)
    session.handle_pointer_move(end)
    session.handle_pointer_up(end)


def png_bytes(width=16, height=12, color=(10, 200, 30, 255)):
    output = io.BytesIO()
    Image.new('RGBA', (width, height), color).save(output, format='PNG')
    return output.getvalue()


class TestInitialState:
    """Test a freshly opened session."""

    def test_defaults(self, session):
        state = session.get_state()
        assert state.mode is EditMode.BRUSH_MOSAIC
        assert state.brush_size == 50
        assert state.state == "idle"
        assert not state.selection_pending
        assert not state.can_undo
        assert not state.can_redo
        assert not state.closed
        assert not session.has_edits()

    def test_pristine_history_entry(self, session):
        assert len(session.history) == 1


class TestBrushSettings:
    """Test brush size handling."""

    @pytest.mark.parametrize("requested,applied", [(5, 10), (500, 200), (77, 77)])
    def test_size_clamped(self, session, requested, applied):
        assert session.set_brush_size(requested) == applied
        assert session.brush_size == applied

    def test_presets(self, session):
        assert session.apply_brush_preset("1") == 20
        assert session.apply_brush_preset("3") == 100
        assert session.apply_brush_preset("9") is None
        assert session.brush_size == 100

    def test_brush_display_size(self, session):
        session.set_display_geometry(80, 60)
        assert session.brush_display_size() == 25.0
        session.set_display_geometry(0, 0)
        assert session.brush_display_size() == 0.0


class TestStrokes:
    """Test brush strokes and their history."""

    def test_stroke_is_one_undo_step(self, session, pixels):
        stroke(session, Point(30, 30), Point(60, 40), Point(90, 50), Point(120, 60))

        assert session.has_edits()
        assert len(session.history) == 2
        assert not np.array_equal(session.buffer.pixels, pixels)

        assert session.undo()
        assert np.array_equal(session.buffer.pixels, pixels)
        assert not session.undo()

    def test_redo_restores_stroke(self, session):
        stroke(session, Point(30, 30), Point(60, 40))
        edited = session.buffer.snapshot()
        session.undo()
        assert session.redo()
        assert np.array_equal(session.buffer.pixels, edited)

    def test_blur_brush(self, session, pixels):
        session.set_mode(EditMode.BRUSH_BLUR)
        stroke(session, Point(80, 60))
        assert not np.array_equal(session.buffer.pixels, pixels)
        assert np.array_equal(session.buffer.pixels[:20], pixels[:20])

    def test_mode_switch_mid_stroke_commits(self, session, pixels):
        session.handle_pointer_down(Point(30, 30))
        session.set_mode(EditMode.RECT_SELECT)

        assert session.state is SelectionState.IDLE
        assert len(session.history) == 2
        session.undo()
        assert np.array_equal(session.buffer.pixels, pixels)

    def test_same_result_at_any_display_scale(self, pixels):
        full = EditingSession(RasterBuffer(pixels))
        half = EditingSession(RasterBuffer(pixels))
        half.set_display_geometry(80, 60, origin_x=5, origin_y=7)

        stroke(full, Point(40, 50), Point(100, 70))
        stroke(half, Point(25, 32), Point(55, 42))

        assert np.array_equal(full.buffer.pixels, half.buffer.pixels)


class TestSelections:
    """Test selection workflow through the session."""

    def test_pending_then_apply(self, session, pixels):
        select_rect(session, Point(20, 20), Point(80, 70))

        assert session.pending_selection is not None
        assert session.get_state().selection_pending
        assert np.array_equal(session.buffer.pixels, pixels)
        assert not session.history.can_undo

        assert session.apply_pending_selection()
        assert session.pending_selection is None
        assert session.history.can_undo
        assert not np.array_equal(session.buffer.pixels[20:70, 20:80], pixels[20:70, 20:80])

        session.undo()
        assert np.array_equal(session.buffer.pixels, pixels)

    def test_apply_without_pending(self, session):
        assert not session.apply_pending_selection()
        assert len(session.history) == 1

    def test_cancel_pending(self, session, pixels):
        select_rect(session, Point(20, 20), Point(80, 70))
        assert session.cancel_pending_selection()
        assert session.pending_selection is None
        assert not session.cancel_pending_selection()
        assert np.array_equal(session.buffer.pixels, pixels)
        assert len(session.history) == 1

    def test_inverse_blur(self, session, pixels):
        select_rect(session, Point(20, 20), Point(80, 70))
        session.apply_pending_selection(inverse=True, effect=EffectType.BLUR)
        assert np.array_equal(session.buffer.pixels[20:70, 20:80], pixels[20:70, 20:80])
        assert not np.array_equal(session.buffer.pixels[:, 100:], pixels[:, 100:])

    def test_polygon_double_click(self, session, pixels):
        session.set_mode(EditMode.POLYGON_SELECT)
        for point in (Point(20, 20), Point(90, 20), Point(90, 90)):
            session.handle_pointer_down(point)
        session.handle_double_click(Point(90, 90))

        assert session.get_state().selection_pending
        session.apply_pending_selection()
        assert session.has_edits()

    def test_auto_apply_commits(self, pixels):
        config = MosaicifyConfig(selection=SelectionConfig(auto_apply=True))
        session = EditingSession(RasterBuffer(pixels), config=config)
        select_rect(session, Point(20, 20), Point(80, 70))
        assert session.pending_selection is None
        assert session.history.can_undo

    def test_mode_accepts_string_value(self, session):
        session.set_mode("select-poly-mosaic-inv")
        assert session.mode is EditMode.POLYGON_SELECT_INVERSE


class TestEscapeAndClose:
    """Test cancel, close and confirmation."""

    def test_escape_cancels_selection_first(self, session):
        select_rect(session, Point(20, 20), Point(80, 70))
        assert not session.handle_escape()
        assert not session.closed
        assert session.pending_selection is None

    def test_escape_closes_without_edits(self, session):
        assert session.handle_escape()
        assert session.closed

    def test_close_asks_when_edited(self, pixels):
        answers = []

        def decline():
            answers.append("asked")
            return False

        session = EditingSession(RasterBuffer(pixels), confirm=CallbackConfirmation(decline))
        stroke(session, Point(40, 40))

        assert not session.request_close()
        assert answers == ["asked"]
        assert not session.closed

    def test_close_confirmed(self, pixels):
        session = EditingSession(RasterBuffer(pixels), confirm=CallbackConfirmation(lambda: True))
        stroke(session, Point(40, 40))
        assert session.request_close()
        assert session.closed

    def test_no_prompt_without_edits(self, pixels):
        def fail():
            raise AssertionError("should not ask")

        session = EditingSession(RasterBuffer(pixels), confirm=CallbackConfirmation(fail))
        assert session.request_close()

    def test_closed_session_rejects_input(self, session):
        session.close()
        with pytest.raises(RuntimeError):
            session.handle_pointer_down(Point(10, 10))
        with pytest.raises(RuntimeError):
            session.undo()
        assert session.request_close()


class TestObservers:
    """Test state notifications."""

    def test_subscribe_emits_current_state(self, session):
        states = []
        session.subscribe(states.append)
        assert len(states) == 1
        assert states[0].mode is EditMode.BRUSH_MOSAIC

    def test_emits_on_change_only(self, session):
        states = []
        session.subscribe(states.append)

        session.set_brush_size(80)
        session.set_brush_size(80)
        assert [s.brush_size for s in states] == [50, 80]

        stroke(session, Point(40, 40))
        assert states[-1].can_undo
        assert states[-1].state == "idle"

    def test_unsubscribe(self, session):
        states = []
        unsubscribe = session.subscribe(states.append)
        unsubscribe()
        session.set_mode(EditMode.RECT_SELECT)
        assert len(states) == 1

    def test_close_notifies(self, session):
        states = []
        session.subscribe(states.append)
        session.close()
        assert states[-1].closed


class TestExport:
    """Test encoding and download."""

    def test_png_is_lossless(self, session, pixels):
        data = session.export_raster()
        assert data[:8] == b"\x89PNG\r\n\x1a\n"
        decoded = np.array(Image.open(io.BytesIO(data)).convert('RGBA'))
        assert np.array_equal(decoded, pixels)

    def test_jpeg(self, session):
        data = session.export_raster("jpeg")
        assert data[:2] == b"\xff\xd8"
        assert Image.open(io.BytesIO(data)).mode == 'RGB'

    def test_export_to_sink(self, session):
        sink = MemoryDownloadSink()
        filename = session.export(sink, fmt="jpg", now=datetime(2024, 3, 5, 14, 7, 9))
        assert filename == "holiday_mosaic_20240305_140709.jpg"
        assert sink.downloads[0][0] == filename
        assert sink.downloads[0][1] == "image/jpeg"

    def test_export_without_sink(self, session):
        with pytest.raises(ExportError):
            session.export()

    def test_encode_failure_leaves_session_intact(self, session, monkeypatch):
        stroke(session, Point(40, 40))
        before = session.buffer.snapshot()

        def broken_save(self, *args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr(Image.Image, "save", broken_save)
        with pytest.raises(ExportError):
            session.export_raster()

        assert np.array_equal(session.buffer.pixels, before)
        assert session.history.can_undo
        assert not session.closed


class TestOpenSession:
    """Test acquiring an image and opening a session."""

    def test_open_from_source(self):
        source = BytesImageSource({"https://example.com/img/cat.png": png_bytes()})
        session = asyncio.run(open_session(source, "https://example.com/img/cat.png"))
        assert session.buffer.size == (16, 12)
        assert session.base_name == "cat"
        assert (session.buffer.pixels == (10, 200, 30, 255)).all()

    def test_alt_text_names_export(self):
        source = BytesImageSource({"a": png_bytes()})
        session = asyncio.run(open_session(source, "a", alt_text="Beach day"))
        assert session.base_name == "Beach day"

    def test_load_failure(self):
        source = BytesImageSource({"bad": b"not an image"})
        with pytest.raises(LoadError):
            asyncio.run(open_session(source, "bad"))
        with pytest.raises(LoadError):
            asyncio.run(open_session(source, "missing"))

    def test_pending_rect_type(self, session):
        select_rect(session, Point(20, 20), Point(80, 70))
        assert isinstance(session.pending_selection, PendingRect)


class TestProgrammaticSelection:
    """Test selections given in intrinsic coordinates."""

    def test_select_and_apply_polygon(self, session, pixels):
        points = [
            Point(10, 10), Point(90, 10), Point(90, 50),
            Point(14, 12), Point(50, 90), Point(10, 90),
        ]
        states = []
        session.subscribe(states.append)

        assert session.select_polygon(points)
        assert states[-1].selection_pending
        assert session.apply_pending_selection()

        expected = RasterBuffer(pixels)
        EffectEngine(expected).apply_mosaic_to_polygon(points, session.brush.block_size)
        assert np.array_equal(session.buffer.pixels, expected.pixels)
        assert session.history.can_undo

    def test_select_rect_too_small(self, session):
        assert not session.select_rect(Rect(10, 10, 4, 40))
        assert session.pending_selection is None
