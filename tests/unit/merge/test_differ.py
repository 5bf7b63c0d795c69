"""Tests for the Myers line differencer."""

import pytest

from mergeloom.merge.differ import Change, EditOp, apply, changes, diff


def _lines(text):
    return list(text)


CASES = [
    ([], []),
    ([], ["a\n"]),
    (["a\n"], []),
    (["a\n", "b\n", "c\n"], ["a\n", "b\n", "c\n"]),
    (["a\n", "b\n", "c\n"], ["a\n", "x\n", "c\n"]),
    (_lines("ABCABBA"), _lines("CBABAC")),
    (["x\n"] * 5, ["x\n"] * 3),
    (["a\n", "b\n"], ["b\n", "a\n"]),
]


@pytest.mark.parametrize("a,b", CASES)
def test_script_replays_to_target(a, b):
    assert apply(a, diff(a, b)) == b


def test_identical_inputs_are_one_keep():
    script = diff(["a\n", "b\n"], ["a\n", "b\n"])
    assert [edit.op for edit in script] == [EditOp.KEEP]


def test_edit_distance_is_minimal():
    script = diff(_lines("ABCABBA"), _lines("CBABAC"))
    edited = sum(len(e.lines) for e in script if e.op is not EditOp.KEEP)
    assert edited == 5


def test_replacement_deletes_before_inserting():
    script = diff(["a\n", "b\n", "c\n"], ["a\n", "x\n", "y\n", "c\n"])
    assert [(e.op, e.lines) for e in script] == [
        (EditOp.KEEP, ["a\n"]),
        (EditOp.DELETE, ["b\n"]),
        (EditOp.INSERT, ["x\n", "y\n"]),
        (EditOp.KEEP, ["c\n"]),
    ]


def test_repeated_runs_are_identical():
    a = _lines("the quick brown fox jumps")
    b = _lines("a quick brown cat leaps")
    assert diff(a, b) == diff(a, b)


def test_changes_are_in_source_coordinates():
    a = ["a\n", "b\n", "c\n", "d\n"]
    b = ["a\n", "B\n", "c\n", "d\n", "e\n"]
    assert changes(diff(a, b)) == [
        Change(1, 2, ["B\n"]),
        Change(4, 4, ["e\n"]),
    ]
    assert changes(diff(a, b))[1].is_insertion


def test_apply_rejects_mismatched_script():
    script = diff(["a\n"], ["b\n"])
    with pytest.raises(ValueError):
        apply(["z\n"], script)
