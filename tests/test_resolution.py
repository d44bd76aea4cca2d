# tests/test_resolution.py

from __future__ import annotations

from datetime import date

import pytest

from taskcal.errors import ValidationError
from taskcal.tasks.task_models import TaskMode
from taskcal.workdays.resolution import (
    ConflictResolutionCoordinator,
    Resolution,
    ResolutionPhase,
    ResultKind,
    plan_workday_changes,
)
from taskcal.workdays.workday_models import WorkdayChange, WorkMode

from .fakes import FakeTaskRepo, FakeWorkdayRepo, make_task

D10 = date(2024, 6, 10)
D11 = date(2024, 6, 11)
D12 = date(2024, 6, 12)
D13 = date(2024, 6, 13)


def _coordinator(tasks, workdays: FakeWorkdayRepo, **kwargs) -> ConflictResolutionCoordinator:
    return ConflictResolutionCoordinator(
        user_id="u1",
        task_repo=FakeTaskRepo(tasks),
        workday_repo=workdays,
        **kwargs,
    )


def _three_changes_two_conflicting():
    tasks = [
        make_task("t1", due=D10, mode=TaskMode.ON_SITE),
        make_task("t2", due=D12, mode=TaskMode.REMOTE),
    ]
    original = {D10: WorkMode.ON_SITE, D11: WorkMode.ON_SITE, D12: WorkMode.REMOTE}
    changes = [
        WorkdayChange(D10, WorkMode.REMOTE),
        WorkdayChange(D11, WorkMode.REMOTE),
        WorkdayChange(D12, WorkMode.ON_SITE),
    ]
    return tasks, original, changes


@pytest.mark.asyncio
async def test_start_commits_clear_changes_and_presents_conflicts_in_order() -> None:
    tasks, original, changes = _three_changes_two_conflicting()
    workdays = FakeWorkdayRepo(modes=dict(original))
    coord = _coordinator(tasks, workdays)

    result = await coord.start(changes, original)

    assert result.kind == ResultKind.CONFLICT
    assert workdays.batches == [[WorkdayChange(D11, WorkMode.REMOTE)]]
    session = result.session
    assert session.phase == ResolutionPhase.PRESENTING
    assert session.total == 2
    assert session.index == 0
    assert session.committed_before_conflicts
    assert [c.task_id for c in result.conflicts] == ["t1", "t2"]

    result = await coord.confirm_anyway(session)
    assert result.kind == ResultKind.CONFLICT
    assert result.session.index == 1
    assert result.session.current_conflict.task_id == "t2"

    result = await coord.confirm_anyway(result.session)
    assert result.kind == ResultKind.OK
    assert result.session.phase == ResolutionPhase.ALL_RESOLVED
    assert result.session.reload_required
    assert workdays.batches[-1] == [
        WorkdayChange(D10, WorkMode.REMOTE),
        WorkdayChange(D12, WorkMode.ON_SITE),
    ]


@pytest.mark.asyncio
async def test_start_without_conflicts_is_resolved_at_once() -> None:
    workdays = FakeWorkdayRepo()
    coord = _coordinator([], workdays)

    result = await coord.start([WorkdayChange(D10, WorkMode.OFF)], {})

    assert result.kind == ResultKind.OK
    assert result.session.phase == ResolutionPhase.ALL_RESOLVED
    assert workdays.batches == [[WorkdayChange(D10, WorkMode.OFF)]]


@pytest.mark.asyncio
async def test_start_with_no_changes_writes_nothing() -> None:
    workdays = FakeWorkdayRepo()
    result = await _coordinator([], workdays).start([], {})

    assert result.kind == ResultKind.OK
    assert workdays.batches == []


@pytest.mark.asyncio
async def test_cancel_reverts_pending_edits_and_requests_reload() -> None:
    tasks, original, changes = _three_changes_two_conflicting()
    workdays = FakeWorkdayRepo(modes=dict(original))
    coord = _coordinator(tasks, workdays)

    started = await coord.start(changes, original)
    assert started.session.local_modes[D10] == WorkMode.REMOTE

    confirmed = await coord.confirm_anyway(started.session)
    result = coord.cancel(confirmed.session)

    session = result.session
    assert session.phase == ResolutionPhase.CANCELLED
    assert session.local_modes[D10] == WorkMode.ON_SITE
    assert session.local_modes[D12] == WorkMode.REMOTE
    # committed before the conflicts, stays
    assert session.local_modes[D11] == WorkMode.REMOTE
    assert workdays.modes[D11] == WorkMode.REMOTE
    assert session.reload_required
    # the confirmed conflict was never written
    assert len(workdays.batches) == 1
    assert workdays.modes[D10] == WorkMode.ON_SITE


@pytest.mark.asyncio
async def test_cancel_drops_edit_of_date_without_original_mode() -> None:
    workdays = FakeWorkdayRepo()
    coord = _coordinator([make_task("t1", due=D10, mode=TaskMode.REMOTE)], workdays)

    started = await coord.start([WorkdayChange(D10, WorkMode.OFF)], {})
    result = coord.cancel(started.session)

    assert D10 not in result.session.local_modes
    # nothing was written at all
    assert not result.session.reload_required


@pytest.mark.asyncio
async def test_confirm_all_issues_one_batch_with_one_write_per_conflict() -> None:
    days = [D10, D11, D12]
    tasks = [make_task(f"t{i}", due=d, mode=TaskMode.ON_SITE) for i, d in enumerate(days)]
    workdays = FakeWorkdayRepo()
    coord = _coordinator(tasks, workdays)

    result = await coord.start([WorkdayChange(d, WorkMode.OFF) for d in days], {})
    assert workdays.batches == []

    while result.kind == ResultKind.CONFLICT:
        result = await coord.confirm_anyway(result.session)

    assert result.session.phase == ResolutionPhase.ALL_RESOLVED
    assert len(workdays.batches) == 1
    assert len(workdays.batches[0]) == 3
    assert result.session.confirmed == frozenset({0, 1, 2})


@pytest.mark.asyncio
async def test_change_workday_mode_uses_task_mode() -> None:
    tasks = [
        make_task("any", due=D10, mode=TaskMode.ANY),
        make_task("remote", due=D11, mode=TaskMode.REMOTE),
    ]
    workdays = FakeWorkdayRepo()
    coord = _coordinator(tasks, workdays)

    result = await coord.start(
        [WorkdayChange(D10, WorkMode.OFF), WorkdayChange(D11, WorkMode.OFF)], {}
    )
    result = await coord.change_workday_mode(result.session)
    result = await coord.change_workday_mode(result.session)

    assert workdays.single_writes == [(D10, WorkMode.ON_SITE), (D11, WorkMode.REMOTE)]
    assert result.session.phase == ResolutionPhase.ALL_RESOLVED
    assert result.session.resolutions == (Resolution.MODE_CHANGED, Resolution.MODE_CHANGED)
    # dates settled by a mode change are not rewritten with the requested mode
    assert workdays.batches == []


@pytest.mark.asyncio
async def test_propose_and_accept_moves_task_then_writes_requested_mode() -> None:
    workdays = FakeWorkdayRepo(modes={D11: WorkMode.OFF})
    task_repo = FakeTaskRepo([make_task("t1", due=D10, mode=TaskMode.ON_SITE)])
    coord = ConflictResolutionCoordinator(user_id="u1", task_repo=task_repo, workday_repo=workdays)

    started = await coord.start([WorkdayChange(D10, WorkMode.REMOTE)], {D10: WorkMode.ON_SITE})
    proposed = await coord.propose_date(started.session)

    assert proposed.kind == ResultKind.OK
    assert proposed.proposed_date == D12
    assert proposed.task_id == "t1"
    assert workdays.queried == [D11, D12]

    result = await coord.accept_proposed_date(proposed.session)

    assert task_repo.due_date_updates == [("t1", D12)]
    assert result.session.phase == ResolutionPhase.ALL_RESOLVED
    assert workdays.batches == [[WorkdayChange(D10, WorkMode.REMOTE)]]


@pytest.mark.asyncio
async def test_propose_sees_pending_local_edits() -> None:
    workdays = FakeWorkdayRepo(default=WorkMode.OFF)
    coord = _coordinator([make_task("t1", due=D10, mode=TaskMode.REMOTE)], workdays)

    local = {D10: WorkMode.OFF, D12: WorkMode.REMOTE}
    started = await coord.start([WorkdayChange(D10, WorkMode.OFF)], {D10: WorkMode.REMOTE}, local)
    proposed = await coord.propose_date(started.session)

    assert proposed.proposed_date == D12
    assert workdays.queried == [D11]


@pytest.mark.asyncio
async def test_propose_without_candidate_is_a_notice() -> None:
    workdays = FakeWorkdayRepo(default=WorkMode.OFF)
    coord = _coordinator([make_task("t1", due=D10, mode=TaskMode.ON_SITE)], workdays, max_lookahead=4)

    started = await coord.start([WorkdayChange(D10, WorkMode.OFF)], {})
    result = await coord.propose_date(started.session)

    assert result.kind == ResultKind.NOTICE
    assert result.session is started.session
    assert result.proposed_date is None
    assert len(workdays.queried) == 4


@pytest.mark.asyncio
async def test_accept_without_proposal_is_rejected() -> None:
    coord = _coordinator([make_task("t1", due=D10, mode=TaskMode.ON_SITE)], FakeWorkdayRepo())
    started = await coord.start([WorkdayChange(D10, WorkMode.OFF)], {})

    with pytest.raises(ValidationError):
        await coord.accept_proposed_date(started.session)


@pytest.mark.asyncio
async def test_final_commit_failure_keeps_session_and_can_be_retried() -> None:
    workdays = FakeWorkdayRepo()
    coord = _coordinator(
        [make_task("t1", due=D10, mode=TaskMode.ON_SITE), make_task("t2", due=D13, mode=TaskMode.REMOTE)],
        workdays,
    )
    started = await coord.start([WorkdayChange(D10, WorkMode.OFF), WorkdayChange(D13, WorkMode.OFF)], {})
    second = await coord.confirm_anyway(started.session)

    workdays.fail_batches = 1
    failed = await coord.confirm_anyway(second.session)

    assert failed.kind == ResultKind.ERROR
    assert failed.session is second.session
    assert failed.session.phase == ResolutionPhase.PRESENTING
    assert failed.error is not None
    assert workdays.batches == []

    retried = await coord.confirm_anyway(failed.session)
    assert retried.kind == ResultKind.OK
    assert retried.session.phase == ResolutionPhase.ALL_RESOLVED
    assert workdays.batches == [[WorkdayChange(D10, WorkMode.OFF), WorkdayChange(D13, WorkMode.OFF)]]


@pytest.mark.asyncio
async def test_mode_change_failure_stays_on_same_conflict() -> None:
    workdays = FakeWorkdayRepo(fail_single=1)
    coord = _coordinator([make_task("t1", due=D10, mode=TaskMode.REMOTE)], workdays)
    started = await coord.start([WorkdayChange(D10, WorkMode.ON_SITE)], {})

    failed = await coord.change_workday_mode(started.session)
    assert failed.kind == ResultKind.ERROR
    assert failed.session is started.session

    ok = await coord.change_workday_mode(failed.session)
    assert ok.kind == ResultKind.OK
    assert workdays.single_writes == [(D10, WorkMode.REMOTE)]


@pytest.mark.asyncio
async def test_clear_batch_failure_at_start_is_an_error() -> None:
    workdays = FakeWorkdayRepo(fail_batches=1)
    result = await _coordinator([], workdays).start([WorkdayChange(D10, WorkMode.OFF)], {})

    assert result.kind == ResultKind.ERROR
    assert result.session.phase == ResolutionPhase.IDLE


@pytest.mark.asyncio
async def test_choose_date_manually_leaves_flow_with_task_reference() -> None:
    coord = _coordinator([make_task("t1", due=D10, mode=TaskMode.ON_SITE)], FakeWorkdayRepo())
    started = await coord.start([WorkdayChange(D10, WorkMode.OFF)], {D10: WorkMode.ON_SITE})

    result = coord.choose_date_manually(started.session)

    assert result.session.phase == ResolutionPhase.CANCELLED
    assert result.task_id == "t1"
    assert result.session.local_modes[D10] == WorkMode.ON_SITE


@pytest.mark.asyncio
async def test_actions_outside_presenting_are_rejected() -> None:
    coord = _coordinator([], FakeWorkdayRepo())
    done = await coord.start([WorkdayChange(D10, WorkMode.OFF)], {})

    with pytest.raises(ValidationError):
        await coord.confirm_anyway(done.session)
    with pytest.raises(ValidationError):
        coord.cancel(done.session)


def test_plan_workday_changes() -> None:
    persisted = {D10: WorkMode.ON_SITE, D11: WorkMode.REMOTE}
    local = {D12: WorkMode.ON_SITE, D11: WorkMode.OFF, D10: WorkMode.ON_SITE, D13: WorkMode.REMOTE}

    changes = plan_workday_changes(persisted, local)

    # D12 missing from persisted counts as ON_SITE: no change
    assert changes == [WorkdayChange(D11, WorkMode.OFF), WorkdayChange(D13, WorkMode.REMOTE)]
    assert plan_workday_changes(persisted, local, [D13]) == [WorkdayChange(D13, WorkMode.REMOTE)]


@pytest.mark.asyncio
async def test_mode_change_rechecks_other_conflicts_on_same_day() -> None:
    workdays = FakeWorkdayRepo()
    coord = _coordinator(
        [make_task("a", due=D10, mode=TaskMode.ON_SITE), make_task("b", due=D10, mode=TaskMode.REMOTE)],
        workdays,
    )
    started = await coord.start([WorkdayChange(D10, WorkMode.OFF)], {D10: WorkMode.ON_SITE})

    result = await coord.change_workday_mode(started.session)

    assert result.kind == ResultKind.CONFLICT
    current = result.session.current_conflict
    assert current is not None
    assert current.task_id == "b"
    # b is now shown against the mode the day actually has
    assert current.work_mode == WorkMode.ON_SITE
    assert [c.work_mode for c in result.conflicts] == [WorkMode.ON_SITE]

    # switching the day again would break a, which was settled by the first change
    refused = await coord.change_workday_mode(result.session)
    assert refused.kind == ResultKind.NOTICE
    assert refused.session is result.session
    assert workdays.single_writes == [(D10, WorkMode.ON_SITE)]

    done = await coord.confirm_anyway(refused.session)
    assert done.session.phase == ResolutionPhase.ALL_RESOLVED
    assert workdays.modes[D10] == WorkMode.ON_SITE
    # the day was written by the mode change, not rewritten with the requested OFF
    assert workdays.batches == []


@pytest.mark.asyncio
async def test_mode_change_settles_compatible_conflicts_on_same_day() -> None:
    workdays = FakeWorkdayRepo()
    coord = _coordinator(
        [
            make_task("a", due=D10, mode=TaskMode.ANY),
            make_task("b", due=D10, mode=TaskMode.ON_SITE),
            make_task("c", due=D11, mode=TaskMode.ON_SITE),
        ],
        workdays,
    )
    started = await coord.start(
        [WorkdayChange(D10, WorkMode.OFF), WorkdayChange(D11, WorkMode.OFF)], {}
    )
    assert started.session.total == 3

    result = await coord.change_workday_mode(started.session)

    # b is suited by the new on-site day, so c is next
    assert result.kind == ResultKind.CONFLICT
    assert result.session.current_conflict.task_id == "c"
    assert result.session.resolutions[1] == Resolution.MODE_CHANGED

    done = await coord.confirm_anyway(result.session)
    assert done.session.phase == ResolutionPhase.ALL_RESOLVED
    assert workdays.single_writes == [(D10, WorkMode.ON_SITE)]
    assert workdays.batches == [[WorkdayChange(D11, WorkMode.OFF)]]


@pytest.mark.asyncio
async def test_confirmed_conflicts_write_one_entry_per_date() -> None:
    tasks = [
        make_task("a", due=D10, mode=TaskMode.ON_SITE),
        make_task("b", due=D10, mode=TaskMode.REMOTE),
        make_task("c", due=D11, mode=TaskMode.ANY),
    ]
    workdays = FakeWorkdayRepo()
    coord = _coordinator(tasks, workdays)

    result = await coord.start([WorkdayChange(D10, WorkMode.OFF), WorkdayChange(D11, WorkMode.OFF)], {})
    assert result.session.total == 3

    while result.kind == ResultKind.CONFLICT:
        result = await coord.confirm_anyway(result.session)

    assert result.session.phase == ResolutionPhase.ALL_RESOLVED
    assert workdays.batches == [[WorkdayChange(D10, WorkMode.OFF), WorkdayChange(D11, WorkMode.OFF)]]
