import random

import pytest

from deep_research.jobs import BadgeState, ManualScheduler, StatusProjector
from deep_research.jobs.status import DEFAULT_PHRASES


class RecordingView:
    def __init__(self):
        self.calls = []

    def show(self, label):
        self.calls.append(("show", label))

    def hide(self):
        self.calls.append(("hide", None))


def make_projector(view=None):
    scheduler = ManualScheduler()
    view = view or RecordingView()
    return StatusProjector(view, scheduler, rng=random.Random(7)), view, scheduler


def test_render_starts_rotation_and_shows_immediately():
    projector, view, scheduler = make_projector()

    projector.render(2)

    assert projector.rotating
    assert len(view.calls) == 1
    kind, label = view.calls[0]
    assert kind == "show"
    phrase, _, suffix = label.partition("... ")
    assert phrase in DEFAULT_PHRASES
    assert suffix == "(2) Active Screens"
    assert [t.interval for t in scheduler.pending()] == [2.0]


def test_rotation_ticks_every_two_seconds_with_current_length():
    projector, view, scheduler = make_projector()
    projector.render(1)

    scheduler.advance(6)

    assert len(view.calls) == 4
    assert all(label.endswith("(1) Active Screens") for _, label in view.calls)


def test_changed_length_renders_without_second_timer():
    projector, view, scheduler = make_projector()
    projector.render(1)
    projector.render(1)
    projector.render(3)

    assert len(view.calls) == 2
    assert view.calls[-1][1].endswith("(3) Active Screens")
    assert len(scheduler.pending()) == 1


def test_zero_hides_and_stops_rotation():
    projector, view, scheduler = make_projector()
    projector.render(2)

    projector.render(0)
    scheduler.advance(10)

    assert view.calls[-1] == ("hide", None)
    assert not projector.rotating
    assert scheduler.pending() == []


def test_badge_state_tracks_last_label():
    badge = BadgeState()
    projector, _, _ = make_projector(view=badge)

    projector.render(4)
    assert badge.visible and badge.label.endswith("(4) Active Screens")

    projector.render(0)
    assert not badge.visible and badge.label == ""


def test_empty_phrase_set_is_rejected():
    with pytest.raises(ValueError):
        StatusProjector(RecordingView(), ManualScheduler(), phrases=())


def test_format_label():
    assert StatusProjector.format_label("Researching", 3) == "Researching... (3) Active Screens"
