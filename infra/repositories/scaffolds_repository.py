import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from infra.db.session import SessionLocal
from infra.db.models import AuditionScaffoldRecord, ProjectRecord

GENERATING = "GENERATING"
READY = "READY"
FAILED = "FAILED"


def _to_dict(rec: AuditionScaffoldRecord) -> Dict:
    return {
        "id": rec.id,
        "role_definition_id": rec.role_definition_id,
        "bank_id": rec.bank_id,
        "status": rec.status,
        "attempt": rec.attempt,
        "chosen_dimensions": list(rec.chosen_dimensions or []),
        "dimension_justification": rec.dimension_justification,
        "scaffold_data": rec.scaffold_data,
        "scaffold_preview_html": rec.scaffold_preview_html,
        "questions": list(rec.questions or []),
        "error": rec.error,
        "started_at": rec.started_at,
        "completed_at": rec.completed_at,
        "approved_at": rec.approved_at,
    }


def _by_role_definition(role_definition_id: str):
    return select(AuditionScaffoldRecord).where(
        AuditionScaffoldRecord.role_definition_id == role_definition_id)


class ScaffoldsRepository:
    """One scaffold row per role definition; a new cycle resets the row."""

    def get_by_role_definition(self, role_definition_id: str) -> Optional[Dict]:
        with SessionLocal() as s:
            rec = s.scalars(_by_role_definition(role_definition_id)).one_or_none()
            return _to_dict(rec) if rec else None

    def find_ready_by_bank(self, bank_id: str, exclude_role_definition_id: str) -> Optional[Dict]:
        with SessionLocal() as s:
            rec = s.scalars(
                select(AuditionScaffoldRecord)
                .where(AuditionScaffoldRecord.bank_id == bank_id)
                .where(AuditionScaffoldRecord.status == READY)
                .where(AuditionScaffoldRecord.role_definition_id != exclude_role_definition_id)
                .order_by(AuditionScaffoldRecord.completed_at.desc())
                .limit(1)
            ).first()
            return _to_dict(rec) if rec else None

    def start_cycle(
        self,
        role_definition_id: str,
        bank_id: str,
        chosen_dimensions: List[str],
        justification: str,
        now: datetime,
        *,
        restart: bool = False,
    ) -> Tuple[Dict, bool]:
        """Upsert a GENERATING row. Returns (row, started) where started is
        False when an existing cycle for the same bank_id was kept."""
        with SessionLocal() as s:
            rec = s.scalars(_by_role_definition(role_definition_id)).one_or_none()
            if rec is not None and rec.bank_id == bank_id:
                if rec.status != FAILED or not restart:
                    return _to_dict(rec), False
            if rec is None:
                rec = AuditionScaffoldRecord(
                    id=f"scf_{uuid.uuid4().hex}", role_definition_id=role_definition_id, attempt=1)
                s.add(rec)
            else:
                rec.attempt = (rec.attempt or 0) + 1
            rec.bank_id = bank_id
            rec.status = GENERATING
            rec.chosen_dimensions = list(chosen_dimensions)
            rec.dimension_justification = justification
            rec.scaffold_data = None
            rec.scaffold_preview_html = None
            rec.questions = []
            rec.error = None
            rec.started_at = now
            rec.completed_at = None
            rec.approved_at = None
            try:
                s.commit()
            except IntegrityError:
                s.rollback()
                existing = s.scalars(_by_role_definition(role_definition_id)).one()
                return _to_dict(existing), False
            return _to_dict(rec), True

    def adopt(self, role_definition_id: str, source: Dict, now: datetime) -> Dict:
        """Store a copy of another role definition's READY scaffold."""
        with SessionLocal() as s:
            rec = s.scalars(_by_role_definition(role_definition_id)).one_or_none()
            if rec is None:
                rec = AuditionScaffoldRecord(
                    id=f"scf_{uuid.uuid4().hex}", role_definition_id=role_definition_id, attempt=1)
                s.add(rec)
            else:
                rec.attempt = (rec.attempt or 0) + 1
            rec.bank_id = source["bank_id"]
            rec.status = READY
            rec.chosen_dimensions = source["chosen_dimensions"]
            rec.dimension_justification = source["dimension_justification"]
            rec.scaffold_data = source["scaffold_data"]
            rec.scaffold_preview_html = source["scaffold_preview_html"]
            rec.questions = source["questions"]
            rec.error = None
            rec.started_at = now
            rec.completed_at = now
            rec.approved_at = None
            s.commit()
            return _to_dict(rec)

    def _current_cycle(self, s, role_definition_id: str, bank_id: str,
                       attempt: int) -> Optional[AuditionScaffoldRecord]:
        rec = s.scalars(_by_role_definition(role_definition_id)).one_or_none()
        if rec is None or rec.bank_id != bank_id or rec.attempt != attempt:
            return None
        if rec.status != GENERATING:
            return None
        return rec

    def complete(
        self,
        role_definition_id: str,
        bank_id: str,
        attempt: int,
        scaffold_data: Dict[str, Any],
        scaffold_preview_html: str,
        questions: List[Dict[str, Any]],
        now: datetime,
    ) -> bool:
        with SessionLocal() as s:
            rec = self._current_cycle(s, role_definition_id, bank_id, attempt)
            if rec is None:
                return False
            rec.status = READY
            rec.scaffold_data = scaffold_data
            rec.scaffold_preview_html = scaffold_preview_html
            rec.questions = questions
            rec.completed_at = now
            s.commit()
            return True

    def fail(self, role_definition_id: str, bank_id: str, attempt: int,
             error: str, now: datetime) -> bool:
        with SessionLocal() as s:
            rec = self._current_cycle(s, role_definition_id, bank_id, attempt)
            if rec is None:
                return False
            rec.status = FAILED
            rec.error = error
            rec.completed_at = now
            s.commit()
            return True

    def approve(self, role_definition_id: str, project_id: str, project_status: str,
                now: datetime) -> None:
        """Stamp the scaffold approved and advance its project in one commit."""
        with SessionLocal() as s:
            rec = s.scalars(_by_role_definition(role_definition_id)).one_or_none()
            if rec is None:
                raise KeyError("scaffold not found")
            project = s.get(ProjectRecord, project_id)
            if project is None:
                raise KeyError("project not found")
            rec.approved_at = now
            project.status = project_status
            s.commit()
