"""Tests for the editing session: hit-testing, gestures and keyboard."""

import pytest

from app.domain.frames import FrameList
from app.domain.interaction import (
    EditorSession,
    GestureState,
    InteractionMode,
    resize_geometry,
    rotation_towards,
)
from tests.conftest import make_frame


class TestHitTest:
    def test_body_hit(self, session):
        hit = session.hit_test((150, 150))
        assert hit.frame.id == "f1"
        assert hit.target == "body"

    def test_miss(self, session):
        assert session.hit_test((1000, 700)) is None
        assert session.hit_test((float("nan"), 0)) is None

    def test_corner_handle(self, session):
        assert session.hit_test((303, 298)).target == "se"

    def test_rotate_handle_only_on_selected_frame(self, session):
        assert session.hit_test((200, 70)) is None
        session.select("f1")
        assert session.hit_test((200, 70)).target == "rotate"

    def test_rotated_frame_uses_local_space(self, design):
        frames = FrameList([make_frame(x=100, y=100, width=200, height=100, rotation=90)], design=design)
        s = EditorSession(frames=frames)
        # inside the rotated box, outside the unrotated one
        assert s.hit_test((200, 70)).target == "body"
        # inside the unrotated box, outside the rotated one
        assert s.hit_test((120, 150)) is None

    def test_topmost_frame_wins(self, design):
        frames = FrameList([make_frame(id="under"), make_frame(id="over", x=150, y=150)], design=design)
        s = EditorSession(frames=frames)
        assert s.hit_test((200, 200)).frame.id == "over"

    @pytest.mark.parametrize("flags", [{"visible": False}, {"locked": True}])
    def test_hidden_and_locked_frames_are_skipped(self, design, flags):
        frames = FrameList([make_frame(**flags)], design=design)
        assert EditorSession(frames=frames).hit_test((150, 150)) is None


class TestDrag:
    def test_drag_snaps_to_grid(self, session):
        assert session.pointer_down(150, 150) == GestureState.DRAGGING
        moved = session.pointer_move(183, 150)
        assert (moved.x, moved.y) == (130, 100)

    def test_alt_disables_grid(self, session):
        session.pointer_down(150, 150)
        moved = session.pointer_move(183, 154, alt=True)
        assert (moved.x, moved.y) == (133, 104)

    def test_moves_are_computed_from_gesture_start(self, session):
        session.pointer_down(150, 150)
        for x in range(151, 200):
            session.pointer_move(x, 150, alt=True)
        session.pointer_move(160, 150, alt=True)
        assert session.frames.get("f1").x == 110

    def test_drag_is_clamped_to_canvas(self, session):
        session.pointer_down(150, 150)
        moved = session.pointer_move(-500, 5000)
        assert (moved.x, moved.y) == (0, 600)

    def test_clamped_axis_drops_its_guide(self, design, session):
        frames = FrameList([make_frame(id="m", width=150, height=100),
                            make_frame(id="o", x=1100, y=100, width=50, height=100)], design=design)
        s = EditorSession(frames=frames, snapper=session.snapper)
        s.pointer_down(150, 150)
        moved = s.pointer_move(1148, 150)
        # the left edge snapped onto x=1100, then the canvas pushed it back
        assert (moved.x, moved.y) == (1050, 100)
        assert [(g.orientation, g.position) for g in s.guide_lines] == [("horizontal", 100)]

    def test_alignment_guides_clear_on_release(self, design):
        frames = FrameList([make_frame(id="a"), make_frame(id="b", x=600, y=500)], design=design)
        s = EditorSession(frames=frames)
        s.pointer_down(150, 150)
        s.pointer_move(647, 150, ctrl=False)
        assert s.frames.get("a").x == 600
        assert s.guide_lines
        s.pointer_up()
        assert s.guide_lines == []
        assert s.state == GestureState.IDLE

    def test_ctrl_disables_snapping(self, session):
        session.pointer_down(150, 150)
        moved = session.pointer_move(183, 154, ctrl=True)
        assert (moved.x, moved.y) == (133, 104)
        assert session.guide_lines == []

    def test_gesture_records_one_history_entry(self, session):
        session.pointer_down(150, 150)
        for x in range(160, 260, 10):
            session.pointer_move(x, 150)
        session.pointer_up()
        assert session.undo()
        assert session.frames.get("f1").x == 100
        assert not session.frames.history.can_undo

    def test_click_on_empty_space_clears_selection(self, session):
        session.select("f1")
        session.pointer_down(1000, 700)
        assert session.selected_id is None
        assert session.state == GestureState.IDLE


class TestResize:
    def test_resize_respects_minimum(self, session):
        assert session.pointer_down(300, 300) == GestureState.RESIZING
        resized = session.pointer_move(100, 100)
        assert (resized.x, resized.y, resized.width, resized.height) == (100, 100, 30, 30)

    def test_west_handle_keeps_east_edge(self, session):
        session.pointer_down(100, 200)
        resized = session.pointer_move(400, 200)
        assert resized.width == 30
        assert resized.x + resized.width == 300

    @pytest.mark.parametrize("handle,dx,dy,expected", [
        ("e", 50, 0, (100, 100, 250, 200)),
        ("n", 0, 50, (100, 150, 200, 150)),
        ("nw", -20, -10, (80, 90, 220, 210)),
        ("s", 999, -500, (100, 100, 200, 30)),
    ])
    def test_resize_geometry(self, handle, dx, dy, expected):
        g = resize_geometry(make_frame(), handle, dx, dy, 30)
        assert (g["x"], g["y"], g["width"], g["height"]) == expected


class TestRotate:
    def test_rotate_gesture(self, session):
        session.select("f1")
        assert session.pointer_down(200, 70) == GestureState.ROTATING
        assert session.pointer_move(200, 300).rotation == pytest.approx(90)
        assert session.pointer_move(100, 200).rotation == pytest.approx(180)
        assert session.pointer_move(200, 100).rotation == pytest.approx(270)

    @pytest.mark.parametrize("pointer", [(300, 200), (300, 300), (100, 100), (200, 0), (150, 260)])
    def test_rotation_is_normalized(self, pointer):
        angle = rotation_towards((200, 200), pointer)
        assert 0 <= angle < 360


class TestPan:
    def test_pan_mode(self, session):
        assert session.key_down("h")
        assert session.mode == InteractionMode.PAN
        assert session.pointer_down(0, 0) == GestureState.PANNING
        session.pointer_move(50, 20)
        assert (session.viewport.pan_x, session.viewport.pan_y) == (50, 20)
        session.pointer_up()
        assert session.key_down("v")
        assert session.mode == InteractionMode.SELECT

    def test_middle_button_pans(self, session):
        assert session.pointer_down(10, 10, button=1) == GestureState.PANNING

    def test_pan_changes_hit_mapping(self, session):
        session.viewport.pan_x = 100
        assert session.hit_test(session.viewport.to_design((260, 150))).frame.id == "f1"


class TestKeyboard:
    def test_nudge(self, session):
        session.select("f1")
        session.key_down("ArrowRight")
        assert session.frames.get("f1").x == 101
        session.key_down("ArrowDown", shift=True)
        assert session.frames.get("f1").y == 110

    def test_nudge_stays_on_canvas(self, session):
        session.select("f1")
        session.frames.update("f1", x=0)
        session.key_down("ArrowLeft", shift=True)
        assert session.frames.get("f1").x == 0

    def test_rotate_shortcuts(self, session):
        session.select("f1")
        session.key_down("r", ctrl=True)
        assert session.frames.get("f1").rotation == 5
        session.key_down("R", shift=True, ctrl=True)
        assert session.frames.get("f1").rotation == 350
        session.key_down("0", ctrl=True)
        assert session.frames.get("f1").rotation == 0

    def test_delete_and_escape(self, session):
        session.select("f1")
        session.key_down("Escape")
        assert session.selected_id is None
        session.select("f1")
        session.key_down("Delete")
        assert len(session.frames) == 0
        assert session.selected_id is None

    def test_without_selection(self, session):
        assert not session.key_down("ArrowLeft")

    def test_read_only(self, frame_list):
        s = EditorSession(frames=frame_list, read_only=True)
        s.select("f1")
        assert not s.key_down("Delete")
        assert s.pointer_down(150, 150) == GestureState.IDLE
        assert len(s.frames) == 1


class TestActions:
    def test_duplicate_selects_clone(self, session):
        session.select("f1")
        clone = session.duplicate_selected()
        assert session.selected_id == clone.id

    def test_create_selects_new_frame(self, session):
        frame = session.create_frame("text")
        assert session.selected_id == frame.id

    def test_undo_drops_missing_selection(self, session):
        frame = session.create_frame("image")
        session.undo()
        assert frame.id not in session.frames
        assert session.selected_id is None

    def test_rotate_selected_normalizes(self, session):
        session.select("f1")
        assert session.rotate_selected(-30).rotation == 330

    def test_render_uses_session_state(self, session):
        session.select("f1")
        image = session.render()
        assert image.size == (1200, 800)
