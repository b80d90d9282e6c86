"""Tests for domain/services/scaffold_tracker.py"""

import asyncio
import gc

import pytest
from sqlalchemy.exc import SQLAlchemyError

from domain.errors import (
    NotFound,
    ScaffoldGenerationFailed,
    ScaffoldNotReady,
    ScaffoldRejected,
    ValidationError,
)
from domain.schemas import ScaffoldStatus
from domain.services.audition_scaffold_builder import AuditionScaffoldBuilder
from domain.services.scaffold_tracker import ScaffoldTracker
from infra.repositories.projects_repository import ProjectsRepository
from infra.repositories.role_definitions_repository import RoleDefinitionsRepository
from infra.repositories.scaffolds_repository import ScaffoldsRepository

LABELS = ["Communication", "Emotional Intelligence", "Execution", "Judgment"]


@pytest.fixture
def tracker(fake_generation, clock, spawner):
    builder = AuditionScaffoldBuilder(fake_generation, questions_per_dimension=1,
                                      min_quality_score=2, max_retries_per_question=1)
    return ScaffoldTracker(builder, estimate_minutes=3, timeout_minutes=15,
                           clock=clock, spawn=spawner)


@pytest.fixture
def project_id():
    return ProjectsRepository().create("Account executive for mid-market")


@pytest.mark.asyncio
async def test_cold_start_reports_generating(tracker, spawner, project_id,
                                             sales_definition, sales_flags):
    snap = await tracker.get_or_start(project_id, sales_definition, sales_flags)
    assert snap.status == ScaffoldStatus.GENERATING
    assert snap.elapsed_minutes == 0
    assert snap.estimated_remaining_minutes == 3
    assert snap.cache_hit is False
    assert snap.chosen_dimensions == LABELS
    assert len(spawner.pending) == 1


@pytest.mark.asyncio
async def test_elapsed_and_remaining_follow_the_clock(tracker, clock, project_id,
                                                      sales_definition, sales_flags):
    await tracker.get_or_start(project_id, sales_definition, sales_flags)
    clock.advance(2)
    snap = await tracker.status(project_id)
    assert (snap.elapsed_minutes, snap.estimated_remaining_minutes) == (2, 1)
    clock.advance(5)
    snap = await tracker.status(project_id)
    assert (snap.elapsed_minutes, snap.estimated_remaining_minutes) == (7, 0)


@pytest.mark.asyncio
async def test_repeat_requests_while_generating_do_not_respawn(tracker, spawner, project_id,
                                                              sales_definition, sales_flags):
    first, second = await asyncio.gather(
        tracker.get_or_start(project_id, sales_definition, sales_flags),
        tracker.get_or_start(project_id, sales_definition, sales_flags),
    )
    assert first.bank_id == second.bank_id
    assert second.status == ScaffoldStatus.GENERATING
    assert len(spawner.pending) == 1


@pytest.mark.asyncio
async def test_ready_scaffold_is_served_from_cache(tracker, spawner, fake_generation, project_id,
                                                   sales_definition, sales_flags):
    started = await tracker.get_or_start(project_id, sales_definition, sales_flags)
    await spawner.run_all()

    ready = await tracker.status(project_id)
    assert ready.status == ScaffoldStatus.READY
    assert ready.cache_hit is True
    assert len(ready.questions) == 4
    assert ready.scaffold_data["chosen_dimensions"] == LABELS

    again = await tracker.get_or_start(project_id, sales_definition, sales_flags)
    assert again.status == ScaffoldStatus.READY
    assert again.cache_hit is True
    assert again.bank_id == started.bank_id
    assert fake_generation.calls["scaffold"] == 1
    assert spawner.pending == []


@pytest.mark.asyncio
async def test_changed_definition_starts_new_cycle(tracker, spawner, project_id,
                                                   sales_definition, sales_flags):
    first = await tracker.get_or_start(project_id, sales_definition, sales_flags)
    await spawner.run_all()

    changed = dict(sales_definition, kpis="Net revenue retention")
    snap = await tracker.get_or_start(project_id, changed, sales_flags)
    assert snap.status == ScaffoldStatus.GENERATING
    assert snap.bank_id != first.bank_id
    assert snap.attempt == 2
    assert len(spawner.pending) == 1


@pytest.mark.asyncio
async def test_empty_clarifier_answer_keeps_fingerprint(tracker, project_id,
                                                        sales_definition, sales_flags):
    plain = await tracker.get_or_start(project_id, sales_definition, sales_flags)
    other = ProjectsRepository().create()
    with_blank = await tracker.get_or_start(other, sales_definition, sales_flags, {"goals": "  "})
    assert with_blank.bank_id == plain.bank_id


@pytest.mark.asyncio
async def test_failure_is_reported_and_restart_is_explicit(tracker, spawner, fake_generation,
                                                          project_id, sales_definition, sales_flags):
    fake_generation.scaffold_error = ScaffoldRejected(raw="not json")
    await tracker.get_or_start(project_id, sales_definition, sales_flags)
    await spawner.run_all()

    failed = await tracker.status(project_id)
    assert failed.status == ScaffoldStatus.FAILED
    assert failed.error == ScaffoldRejected.message

    still_failed = await tracker.get_or_start(project_id, sales_definition, sales_flags)
    assert still_failed.status == ScaffoldStatus.FAILED
    assert spawner.pending == []

    fake_generation.scaffold_error = None
    retried = await tracker.get_or_start(project_id, sales_definition, sales_flags, restart=True)
    assert retried.status == ScaffoldStatus.GENERATING
    assert retried.attempt == 2
    await spawner.run_all()
    assert (await tracker.status(project_id)).status == ScaffoldStatus.READY


@pytest.mark.asyncio
async def test_stuck_generation_times_out(tracker, spawner, clock, project_id,
                                          sales_definition, sales_flags):
    await tracker.get_or_start(project_id, sales_definition, sales_flags)
    clock.advance(15)
    snap = await tracker.status(project_id)
    assert snap.status == ScaffoldStatus.FAILED
    assert "timed out" in snap.error

    # a late result from the expired cycle is discarded
    await spawner.run_all()
    assert (await tracker.status(project_id)).status == ScaffoldStatus.FAILED


@pytest.mark.asyncio
async def test_ready_bank_is_reused_across_projects(tracker, spawner, fake_generation, project_id,
                                                    sales_definition, sales_flags):
    first = await tracker.get_or_start(project_id, sales_definition, sales_flags)
    await spawner.run_all()

    other = ProjectsRepository().create()
    snap = await tracker.get_or_start(other, sales_definition, sales_flags)
    assert snap.status == ScaffoldStatus.READY
    assert snap.cache_hit is True
    assert snap.bank_id == first.bank_id
    assert len(snap.questions) == 4
    assert spawner.pending == []
    assert fake_generation.calls["scaffold"] == 1


@pytest.mark.asyncio
async def test_stored_definition_is_used_when_none_is_sent(tracker, project_id,
                                                           sales_definition, sales_flags):
    RoleDefinitionsRepository().upsert_for_project(project_id, sales_definition, sales_flags)
    snap = await tracker.get_or_start(project_id)
    assert snap.status == ScaffoldStatus.GENERATING
    assert snap.chosen_dimensions == LABELS


@pytest.mark.asyncio
async def test_approve_requires_ready(tracker, spawner, project_id, sales_definition, sales_flags):
    await tracker.get_or_start(project_id, sales_definition, sales_flags)
    with pytest.raises(ScaffoldNotReady):
        await tracker.approve(project_id)

    await spawner.run_all()
    result = await tracker.approve(project_id)
    assert result == {"project_id": project_id, "status": "awaiting_deployment"}
    assert ProjectsRepository().get(project_id)["status"] == "awaiting_deployment"
    assert (await tracker.status(project_id)).approved is True


@pytest.mark.asyncio
async def test_failed_save_is_retried_on_next_read(tracker, spawner, mocker, project_id,
                                                   sales_definition, sales_flags):
    real_complete = tracker.scaffolds.complete
    attempts = {"n": 0}

    def flaky_complete(*args, **kwargs):
        attempts["n"] += 1
        if attempts["n"] == 1:
            raise SQLAlchemyError("database is locked")
        return real_complete(*args, **kwargs)

    mocker.patch.object(tracker.scaffolds, "complete", side_effect=flaky_complete)
    await tracker.get_or_start(project_id, sales_definition, sales_flags)
    await spawner.run_all()

    snap = await tracker.status(project_id)
    assert snap.status == ScaffoldStatus.READY
    assert attempts["n"] == 2
    assert tracker._pending == {}


@pytest.mark.asyncio
async def test_unknown_project_is_not_found(tracker, sales_definition, sales_flags):
    with pytest.raises(NotFound):
        await tracker.get_or_start("proj_missing", sales_definition, sales_flags)


@pytest.mark.asyncio
async def test_project_without_definition_is_not_found(tracker, project_id):
    with pytest.raises(NotFound):
        await tracker.get_or_start(project_id)
    with pytest.raises(NotFound):
        await tracker.status(project_id)


@pytest.mark.asyncio
@pytest.mark.parametrize("definition", ["Account Executive", ["role_title"], 7])
async def test_non_object_definition_is_rejected(tracker, spawner, project_id, definition):
    with pytest.raises(ValidationError):
        await tracker.get_or_start(project_id, definition)
    assert spawner.pending == []


@pytest.mark.asyncio
async def test_list_valued_fields_are_flattened_before_generation(tracker, spawner, project_id,
                                                                  sales_flags):
    definition = {
        "role_title": "Account Executive",
        "job_summary": "Sell to mid-market accounts.",
        "kpis": ["Quota", "Pipeline"],
        "stakeholders": ["Prospects", "Sales Engineering"],
    }
    await tracker.get_or_start(project_id, definition, sales_flags)
    await spawner.run_all()

    snap = await tracker.status(project_id)
    assert snap.status == ScaffoldStatus.READY
    stored = RoleDefinitionsRepository().get_for_project(project_id)["definition_data"]
    assert stored["kpis"] == "Quota, Pipeline"
    assert stored["stakeholders"] == "Prospects, Sales Engineering"
    assert stored["goals"] == "Not specified"


@pytest.mark.asyncio
async def test_list_valued_clarifier_answers_are_flattened(tracker, spawner, project_id,
                                                           sales_definition, sales_flags):
    await tracker.get_or_start(project_id, sales_definition, sales_flags,
                               {"stakeholders": ["CFO", "CRO"], "tools": []})
    await spawner.run_all()

    snap = await tracker.status(project_id)
    assert snap.status == ScaffoldStatus.READY
    brief = next(q for q in snap.questions if q.archetype_id == "COM_BRIEF")
    assert brief.context_used["audience"] == "CFO, CRO"


@pytest.mark.asyncio
@pytest.mark.parametrize("definition", [
    {"job_summary": "Sell to mid-market accounts."},
    {"role_title": "Account Executive", "job_summary": "   "},
])
async def test_definition_without_title_or_summary_is_rejected(tracker, spawner, project_id,
                                                               sales_flags, definition):
    with pytest.raises(ValidationError) as exc_info:
        await tracker.get_or_start(project_id, definition, sales_flags)
    assert exc_info.value.status_code == 400
    assert spawner.pending == []
    assert RoleDefinitionsRepository().get_for_project(project_id) is None


@pytest.mark.asyncio
async def test_unexpected_error_shows_generic_message(tracker, spawner, mocker, project_id,
                                                      sales_definition, sales_flags):
    mocker.patch.object(tracker.builder, "generate",
                        side_effect=AttributeError("'list' object has no attribute 'strip'"))
    await tracker.get_or_start(project_id, sales_definition, sales_flags)
    await spawner.run_all()

    snap = await tracker.status(project_id)
    assert snap.status == ScaffoldStatus.FAILED
    assert snap.error == ScaffoldGenerationFailed.message
    assert "strip" not in snap.error


@pytest.mark.asyncio
async def test_project_lock_is_released_after_request(tracker, project_id,
                                                      sales_definition, sales_flags):
    await tracker.get_or_start(project_id, sales_definition, sales_flags)
    gc.collect()
    assert project_id not in tracker._locks
    assert len(tracker._locks) == 0


def test_approval_is_all_or_nothing(sales_definition, sales_flags, clock):
    # role definition whose project row is gone
    rd = RoleDefinitionsRepository().upsert_for_project("proj_ghost", sales_definition, sales_flags)
    scaffolds = ScaffoldsRepository()
    scaffolds.start_cycle(rd["id"], "bank_x", ["Cognitive"], "why", clock())
    assert scaffolds.complete(rd["id"], "bank_x", 1, {"objective": "x"}, "", [], clock())

    with pytest.raises(KeyError):
        scaffolds.approve(rd["id"], "proj_ghost", "awaiting_deployment", clock())
    assert scaffolds.get_by_role_definition(rd["id"])["approved_at"] is None
