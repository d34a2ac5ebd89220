"""Tests for the pure buffer edit functions."""

from lanonasis.textinput.base import Cursor
from lanonasis.textinput.editing import (
    backspace,
    delete_forward,
    insert_newline,
    insert_text,
    kill_to_line_start,
    move_down,
    move_end,
    move_home,
    move_left,
    move_right,
    move_up,
)


def _valid(lines, cursor):
    return 0 <= cursor.line < len(lines) and 0 <= cursor.column <= len(lines[cursor.line])


class TestInsert:
    def test_insert_mid_line(self):
        lines, cursor = insert_text(["helo"], Cursor(0, 3), "l")
        assert lines == ("hello",)
        assert cursor == Cursor(0, 4)

    def test_newline_splits(self):
        lines, cursor = insert_newline(["hello world"], Cursor(0, 5))
        assert lines == ("hello", " world")
        assert cursor == Cursor(1, 0)

    def test_newline_respects_max_lines(self):
        lines, cursor = insert_newline(["a", "b"], Cursor(1, 1), max_lines=2)
        assert lines == ("a", "b")
        assert cursor == Cursor(1, 1)

    def test_inputs_not_mutated(self):
        original = ["abc"]
        insert_text(original, Cursor(0, 1), "x")
        assert original == ["abc"]


class TestDelete:
    def test_backspace_in_line(self):
        lines, cursor = backspace(["abc"], Cursor(0, 2))
        assert lines == ("ac",)
        assert cursor == Cursor(0, 1)

    def test_backspace_merges_lines(self):
        lines, cursor = backspace(["ab", "cd"], Cursor(1, 0))
        assert lines == ("abcd",)
        assert cursor == Cursor(0, 2)

    def test_backspace_at_origin_is_noop(self):
        lines, cursor = backspace(["ab"], Cursor(0, 0))
        assert lines == ("ab",)
        assert cursor == Cursor(0, 0)

    def test_delete_forward_in_line(self):
        lines, cursor = delete_forward(["abc"], Cursor(0, 1))
        assert lines == ("ac",)
        assert cursor == Cursor(0, 1)

    def test_delete_forward_joins_next(self):
        lines, cursor = delete_forward(["ab", "cd"], Cursor(0, 2))
        assert lines == ("abcd",)
        assert cursor == Cursor(0, 2)

    def test_delete_forward_at_end_is_noop(self):
        lines, _ = delete_forward(["ab"], Cursor(0, 2))
        assert lines == ("ab",)

    def test_kill_to_line_start(self):
        lines, cursor = kill_to_line_start(["one", "hello world"], Cursor(1, 6))
        assert lines == ("one", "world")
        assert cursor == Cursor(1, 0)


class TestMovement:
    def test_left_wraps_to_previous_line(self):
        _, cursor = move_left(["abc", "d"], Cursor(1, 0))
        assert cursor == Cursor(0, 3)

    def test_left_at_origin_stays(self):
        _, cursor = move_left(["abc"], Cursor(0, 0))
        assert cursor == Cursor(0, 0)

    def test_right_wraps_to_next_line(self):
        _, cursor = move_right(["abc", "d"], Cursor(0, 3))
        assert cursor == Cursor(1, 0)

    def test_right_at_end_stays(self):
        _, cursor = move_right(["abc"], Cursor(0, 3))
        assert cursor == Cursor(0, 3)

    def test_up_clamps_column(self):
        _, cursor = move_up(["ab", "hello"], Cursor(1, 5))
        assert cursor == Cursor(0, 2)

    def test_down_clamps_column(self):
        _, cursor = move_down(["hello", "ab"], Cursor(0, 4))
        assert cursor == Cursor(1, 2)

    def test_up_on_first_and_down_on_last(self):
        assert move_up(["a", "b"], Cursor(0, 1))[1] == Cursor(0, 1)
        assert move_down(["a", "b"], Cursor(1, 0))[1] == Cursor(1, 0)

    def test_home_end(self):
        assert move_home(["hello"], Cursor(0, 3))[1] == Cursor(0, 0)
        assert move_end(["hello"], Cursor(0, 1))[1] == Cursor(0, 5)

    def test_cursor_stays_valid_through_sequence(self):
        lines, cursor = ("",), Cursor()
        steps = [
            lambda l, c: insert_text(l, c, "first"),
            insert_newline,
            lambda l, c: insert_text(l, c, "xy"),
            move_up,
            move_end,
            move_down,
            backspace,
            backspace,
            backspace,
            move_right,
            delete_forward,
            move_left,
        ]
        for step in steps:
            lines, cursor = step(lines, cursor)
            assert _valid(lines, cursor)
