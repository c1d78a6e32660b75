"""Due-soon reminder: threshold arithmetic and the once-per-login gate."""

from datetime import datetime

from compliance.models.task import TaskStatus
from compliance.services.due_soon import DueSoonGate, days_left, evaluate, fire
from compliance.services.status_resolver import local_timezone

NOW = datetime(2024, 1, 5, 10, 0, tzinfo=local_timezone())


def _uids(tasks):
    return [t.uid for t in tasks]


def test_six_days_out_is_due_soon_seven_is_not(task_factory, viewer_factory):
    tasks = [
        task_factory("six", deadline="2024-01-11"),
        task_factory("seven", deadline="2024-01-12"),
    ]
    assert _uids(evaluate(tasks, viewer_factory("ALL"), NOW)) == ["six"]


def test_days_left_counts_from_local_midnight_to_end_of_deadline_day(task_factory):
    left = days_left(task_factory(deadline="2024-01-05"), NOW)
    assert 0.99 < left < 1.0


def test_overdue_tasks_are_included(task_factory, viewer_factory):
    tasks = [task_factory("late", deadline="2023-12-01", status=TaskStatus.IN_PROGRESS)]
    assert _uids(evaluate(tasks, viewer_factory("ALL"), NOW)) == ["late"]


def test_completed_and_unparseable_are_excluded(task_factory, viewer_factory):
    tasks = [
        task_factory("done", deadline="2024-01-06", status=TaskStatus.COMPLETED),
        task_factory("junk", deadline="whenever"),
    ]
    assert evaluate(tasks, viewer_factory("ALL"), NOW) == []


def test_out_of_scope_tasks_are_excluded(task_factory, viewer_factory):
    tasks = [task_factory("b", "BAIFU", "2024-01-06"), task_factory("c", "CHENG", "2024-01-06")]
    assert _uids(evaluate(tasks, viewer_factory("CHENG"), NOW)) == ["c"]


def test_threshold_is_configurable(task_factory, viewer_factory):
    tasks = [task_factory("seven", deadline="2024-01-12")]
    assert _uids(evaluate(tasks, viewer_factory("ALL"), NOW, threshold_days=10)) == ["seven"]


# ── Gate ─────────────────────────────────────────────────────────────────


def test_gate_waits_until_tasks_are_loaded(viewer_factory):
    gate, shown = fire(DueSoonGate.PENDING, [], viewer_factory("ALL"), NOW)
    assert gate == DueSoonGate.PENDING
    assert shown is None


def test_gate_fires_once(task_factory, viewer_factory):
    tasks = [task_factory("soon", deadline="2024-01-06")]
    viewer = viewer_factory("ALL")

    gate, shown = fire(DueSoonGate.PENDING, tasks, viewer, NOW)
    assert gate == DueSoonGate.FIRED
    assert _uids(shown) == ["soon"]

    tasks.append(task_factory("another", deadline="2024-01-07"))
    gate, shown = fire(gate, tasks, viewer, NOW)
    assert gate == DueSoonGate.FIRED
    assert shown is None


def test_gate_fires_even_when_nothing_is_due(task_factory, viewer_factory):
    tasks = [task_factory("far", deadline="2024-06-01")]
    gate, shown = fire(DueSoonGate.PENDING, tasks, viewer_factory("ALL"), NOW)
    assert gate == DueSoonGate.FIRED
    assert shown == []
