"""Lifecycle, caching and status reporting for audition scaffolds.

A scaffold moves GENERATING -> READY or GENERATING -> FAILED. Each role
definition owns one scaffold row; a changed fingerprint (bank_id) or an
explicit restart after FAILED begins a new cycle on that row. Generation
runs in a background task while clients poll ``status``.
"""
import asyncio
import logging
import weakref
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError

from app.settings import settings
from domain.errors import (
    NotFound,
    PersistenceError,
    PipelineError,
    ScaffoldGenerationFailed,
    ScaffoldNotReady,
    ValidationError,
)
from domain.schemas import AuditionScaffold, Question, RoleDefinitionData, ScaffoldStatus
from domain.services.audition_scaffold_builder import AuditionScaffoldBuilder, PreparedRole, ScaffoldResult
from infra.repositories.projects_repository import ProjectsRepository
from infra.repositories.role_definitions_repository import RoleDefinitionsRepository
from infra.repositories.scaffolds_repository import GENERATING, READY, ScaffoldsRepository

logger = logging.getLogger(__name__)

APPROVED_PROJECT_STATUS = "awaiting_deployment"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ScaffoldTracker:
    def __init__(
        self,
        builder: AuditionScaffoldBuilder,
        projects: Optional[ProjectsRepository] = None,
        role_definitions: Optional[RoleDefinitionsRepository] = None,
        scaffolds: Optional[ScaffoldsRepository] = None,
        estimate_minutes: Optional[int] = None,
        timeout_minutes: Optional[int] = None,
        clock: Callable[[], datetime] = _utcnow,
        spawn: Optional[Callable[[Awaitable[None]], Any]] = None,
    ):
        self.builder = builder
        self.projects = projects or ProjectsRepository()
        self.role_definitions = role_definitions or RoleDefinitionsRepository()
        self.scaffolds = scaffolds or ScaffoldsRepository()
        self.estimate_minutes = (settings.SCAFFOLD_ESTIMATE_MINUTES
                                 if estimate_minutes is None else estimate_minutes)
        self.timeout_minutes = (settings.SCAFFOLD_TIMEOUT_MINUTES
                                if timeout_minutes is None else timeout_minutes)
        self.clock = clock
        self._spawn_fn = spawn
        self._tasks = set()
        # a lock lives only while some request for that project holds it
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()
        self._pending: Dict[str, Tuple[str, int, ScaffoldResult]] = {}

    # -- public API ---------------------------------------------------------

    async def get_or_start(
        self,
        project_id: str,
        definition_data: Any = None,
        context_flags: Optional[Mapping[str, Any]] = None,
        clarifier_answers: Optional[Mapping[str, Any]] = None,
        restart: bool = False,
    ) -> AuditionScaffold:
        if definition_data is not None and not isinstance(definition_data, Mapping):
            raise ValidationError("definition_data must be an object")

        lock = self._locks.get(project_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[project_id] = lock
        async with lock:
            role_def = self._confirm_role_definition(
                project_id, definition_data, context_flags, clarifier_answers)
            rd_id = role_def["id"]
            self._flush_pending(rd_id)

            prepared = self.builder.prepare(
                role_def["definition_data"], role_def["context_flags"],
                role_def["clarifier_answers"])

            record = self._expire_if_stale(self.scaffolds.get_by_role_definition(rd_id))
            if record and record["bank_id"] == prepared.bank_id:
                if record["status"] == READY:
                    logger.info("Cache hit for %s (project %s)", prepared.bank_id, project_id)
                    return self._snapshot(record, cache_hit=True)
                if record["status"] == GENERATING:
                    return self._snapshot(record)
                if not restart:
                    return self._snapshot(record)
            else:
                reusable = self.scaffolds.find_ready_by_bank(prepared.bank_id, rd_id)
                if reusable:
                    logger.info("Reusing READY bank %s for project %s", prepared.bank_id, project_id)
                    adopted = self._write(self.scaffolds.adopt, rd_id, reusable, self.clock())
                    return self._snapshot(adopted, cache_hit=True)

            return self._start(project_id, rd_id, prepared, restart)

    async def status(self, project_id: str) -> AuditionScaffold:
        role_def = self.role_definitions.get_for_project(project_id)
        if not role_def:
            raise NotFound("No role definition for this project")
        self._flush_pending(role_def["id"])
        record = self._expire_if_stale(self.scaffolds.get_by_role_definition(role_def["id"]))
        if not record:
            raise NotFound("No audition scaffold for this project")
        return self._snapshot(record, cache_hit=record["status"] == READY)

    async def approve(self, project_id: str) -> Dict[str, str]:
        role_def = self.role_definitions.get_for_project(project_id)
        if not role_def:
            raise NotFound("No role definition for this project")
        record = self.scaffolds.get_by_role_definition(role_def["id"])
        if not record or record["status"] != READY:
            raise ScaffoldNotReady()
        try:
            self.scaffolds.approve(role_def["id"], project_id, APPROVED_PROJECT_STATUS, self.clock())
        except (SQLAlchemyError, KeyError) as exc:
            logger.exception("Failed to approve scaffold for project %s", project_id)
            raise PersistenceError() from exc
        logger.info("Approved scaffold %s for project %s", record["bank_id"], project_id)
        return {"project_id": project_id, "status": APPROVED_PROJECT_STATUS}

    # -- cycle management ---------------------------------------------------

    def _start(self, project_id: str, rd_id: str, prepared: PreparedRole,
               restart: bool) -> AuditionScaffold:
        record, started = self._write(
            self.scaffolds.start_cycle,
            rd_id,
            prepared.bank_id,
            prepared.selection.labels,
            prepared.selection.justification,
            self.clock(),
            restart=restart,
        )
        if started:
            logger.info("Starting generation cycle %s for bank %s (project %s)",
                        record["attempt"], prepared.bank_id, project_id)
            self._spawn(self._run(rd_id, record["attempt"], prepared))
        return self._snapshot(record, cache_hit=started is False and record["status"] == READY)

    async def _run(self, rd_id: str, attempt: int, prepared: PreparedRole) -> None:
        try:
            result = await self.builder.generate(prepared)
        except Exception as exc:
            message = exc.message if isinstance(exc, PipelineError) else ScaffoldGenerationFailed.message
            logger.exception("Scaffold generation failed for %s", prepared.bank_id)
            try:
                self.scaffolds.fail(rd_id, prepared.bank_id, attempt, message, self.clock())
            except SQLAlchemyError:
                logger.exception("Could not mark %s as FAILED", prepared.bank_id)
            return
        self._persist(rd_id, prepared.bank_id, attempt, result)

    def _persist(self, rd_id: str, bank_id: str, attempt: int, result: ScaffoldResult) -> bool:
        try:
            stored = self.scaffolds.complete(
                rd_id,
                bank_id,
                attempt,
                result.scaffold_data,
                result.scaffold_preview_html,
                [q.model_dump() for q in result.questions],
                self.clock(),
            )
        except SQLAlchemyError:
            logger.exception("Saving scaffold %s failed; keeping result for retry", bank_id)
            self._pending[rd_id] = (bank_id, attempt, result)
            return False
        self._pending.pop(rd_id, None)
        if stored:
            logger.info("Scaffold %s is READY with %s questions", bank_id, len(result.questions))
        else:
            logger.info("Discarding result for superseded cycle %s/%s", bank_id, attempt)
        return True

    def _flush_pending(self, rd_id: str) -> None:
        pending = self._pending.get(rd_id)
        if pending:
            bank_id, attempt, result = pending
            self._persist(rd_id, bank_id, attempt, result)

    def _spawn(self, coro: Awaitable[None]) -> None:
        if self._spawn_fn is not None:
            self._spawn_fn(coro)
            return
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # -- helpers --------------------------------------------------------------

    def _confirm_role_definition(self, project_id, definition_data, context_flags,
                                 clarifier_answers) -> Dict:
        if not self.projects.exists(project_id):
            raise NotFound("Project not found")
        stored = self.role_definitions.get_for_project(project_id)
        if definition_data is None:
            if not stored:
                raise NotFound("No role definition for this project")
            if context_flags is None and clarifier_answers is None:
                return stored
            definition_data = stored["definition_data"]
        if context_flags is None:
            context_flags = stored["context_flags"] if stored else {}
        if clarifier_answers is None:
            clarifier_answers = stored["clarifier_answers"] if stored else {}
        try:
            definition = RoleDefinitionData.model_validate(dict(definition_data)).model_dump()
        except PydanticValidationError as exc:
            missing = ", ".join(str(err["loc"][0]) for err in exc.errors() if err.get("loc"))
            raise ValidationError(f"definition_data is invalid: {missing}") from exc
        return self._write(
            self.role_definitions.upsert_for_project,
            project_id,
            definition,
            dict(context_flags),
            clarifier_answers=dict(clarifier_answers),
        )

    def _write(self, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except SQLAlchemyError as exc:
            logger.exception("Database write failed in %s", fn.__name__)
            raise PersistenceError() from exc

    def _elapsed_minutes(self, record: Dict) -> int:
        started = record.get("started_at")
        if not started:
            return 0
        return max(0, int((self.clock() - started).total_seconds() // 60))

    def _expire_if_stale(self, record: Optional[Dict]) -> Optional[Dict]:
        if not record or record["status"] != GENERATING:
            return record
        if self._elapsed_minutes(record) < self.timeout_minutes:
            return record
        logger.warning("Generation for %s exceeded %s minutes; marking FAILED",
                       record["bank_id"], self.timeout_minutes)
        self._write(
            self.scaffolds.fail,
            record["role_definition_id"],
            record["bank_id"],
            record["attempt"],
            f"Generation timed out after {self.timeout_minutes} minutes",
            self.clock(),
        )
        return self.scaffolds.get_by_role_definition(record["role_definition_id"])

    def _snapshot(self, record: Dict, cache_hit: bool = False) -> AuditionScaffold:
        status = ScaffoldStatus(record["status"])
        snapshot = AuditionScaffold(
            bank_id=record["bank_id"],
            status=status,
            attempt=record.get("attempt") or 1,
            chosen_dimensions=record.get("chosen_dimensions") or [],
            dimension_justification=record.get("dimension_justification"),
        )
        if status == ScaffoldStatus.GENERATING:
            elapsed = self._elapsed_minutes(record)
            snapshot.elapsed_minutes = elapsed
            snapshot.estimated_remaining_minutes = max(0, self.estimate_minutes - elapsed)
        elif status == ScaffoldStatus.READY:
            snapshot.cache_hit = cache_hit
            snapshot.questions = [Question.model_validate(q) for q in record.get("questions") or []]
            snapshot.scaffold_data = record.get("scaffold_data")
            snapshot.scaffold_preview_html = record.get("scaffold_preview_html") or ""
            snapshot.approved = record.get("approved_at") is not None
        else:
            snapshot.error = record.get("error") or "Scaffold generation failed"
        return snapshot
