"""Tests for resolutions files and bulk strategies."""

import pytest

from mergeloom.core.errors import MalformedResolution
from mergeloom.merge.plan import apply_plan, apply_strategy, load_plan
from mergeloom.merge.session import MergeSession
from mergeloom.merge.three_way import merge_file


@pytest.fixture
def session():
    session = MergeSession(
        base_branch="main",
        head_branch="feature",
        ours_sha="1" * 40,
        theirs_sha="2" * 40,
        merge_base_sha="3" * 40,
    )
    session.add_file(merge_file(
        "two.txt",
        b"a\nb\nc\nd\ne\n",
        b"a\nB1\nc\nd\nE1\n",
        b"a\nB2\nc\nd\nE2\n",
        "base",
    ))
    session.add_file(merge_file("one.txt", b"x\n", b"ours\n", b"theirs\n", "base"))
    return session


def test_per_conflict_choices(session, tmp_path):
    plan_file = tmp_path / "resolutions.yaml"
    plan_file.write_text(
        "two.txt:\n"
        "  1: theirs\n"
        "  2:\n"
        "    custom: |\n"
        "      merged\n"
        "one.txt: both\n"
    )

    touched = apply_plan(session, load_plan(plan_file))

    assert touched == 3
    assert session.all_resolved
    assert session.final_content("two.txt") == b"a\nB2\nc\nd\nmerged\n"
    assert session.final_content("one.txt") == b"ours\ntheirs\n"


def test_strategy_only_fills_pending(session):
    session.accept_theirs("one.txt", 0)

    assert apply_strategy(session, "ours") == 2
    assert session.final_content("one.txt") == b"theirs\n"
    assert session.final_content("two.txt") == b"a\nB1\nc\nd\nE1\n"


def test_strategy_none_is_a_no_op(session):
    assert apply_strategy(session, "none") == 0
    assert not session.all_resolved


def test_conflict_number_out_of_range(session, tmp_path):
    plan_file = tmp_path / "resolutions.yaml"
    plan_file.write_text("one.txt:\n  2: ours\n")

    with pytest.raises(MalformedResolution):
        apply_plan(session, load_plan(plan_file))


def test_invalid_choice_is_rejected(tmp_path):
    plan_file = tmp_path / "resolutions.yaml"
    plan_file.write_text("one.txt: mine\n")

    with pytest.raises(MalformedResolution):
        load_plan(plan_file)
