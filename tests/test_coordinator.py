import pytest

from novelist.coordinator import TaskCoordinator
from novelist.models import TaskKind


@pytest.fixture
def tasks():
    return TaskCoordinator()


def test_begin_is_single_flight(tasks):
    assert tasks.begin(TaskKind.WRITING)
    assert not tasks.begin(TaskKind.WRITING)
    tasks.finish(TaskKind.WRITING)
    assert tasks.begin(TaskKind.WRITING)


def test_per_chapter_kinds_are_independent(tasks):
    assert tasks.begin(TaskKind.CHECKING, 0)
    assert tasks.begin(TaskKind.CHECKING, 1)
    assert tasks.begin(TaskKind.REVISING, 0)
    assert not tasks.begin(TaskKind.CHECKING, 0)
    assert tasks.active.checking_chapter == {0: True, 1: True}


def test_finish_removes_key(tasks):
    tasks.begin(TaskKind.SYNCING, 2)
    tasks.finish(TaskKind.SYNCING, 2)
    assert tasks.active.syncing_plan == {}
    assert not tasks.any_active


def test_per_chapter_kind_needs_index(tasks):
    with pytest.raises(ValueError):
        tasks.begin(TaskKind.REVISING)


def test_track_releases_on_error(tasks):
    tasks.begin(TaskKind.AGENT)
    with pytest.raises(RuntimeError):
        with tasks.track(TaskKind.AGENT):
            assert tasks.any_active
            raise RuntimeError("boom")
    assert not tasks.is_busy(TaskKind.AGENT)


def test_reset(tasks):
    tasks.begin(TaskKind.WRITING)
    tasks.begin(TaskKind.REVISING, 3)
    tasks.reset()
    assert not tasks.any_active
