import uuid
from typing import Any, Dict, List, Optional
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from infra.db.session import SessionLocal
from infra.db.models import RoleDefinitionRecord


def _to_dict(rec: RoleDefinitionRecord) -> Dict:
    return {
        "id": rec.id,
        "project_id": rec.project_id,
        "definition_data": dict(rec.definition_data or {}),
        "context_flags": dict(rec.context_flags or {}),
        "clarifier_questions": list(rec.clarifier_questions or []),
        "clarifier_answers": dict(rec.clarifier_answers or {}),
    }


class RoleDefinitionsRepository:
    def upsert_for_project(
        self,
        project_id: str,
        definition_data: Dict[str, Any],
        context_flags: Dict[str, Any],
        clarifier_questions: Optional[List[str]] = None,
        clarifier_answers: Optional[Dict[str, Any]] = None,
    ) -> Dict:
        with SessionLocal() as s:
            rec = s.scalars(select(RoleDefinitionRecord).where(
                RoleDefinitionRecord.project_id == project_id)).one_or_none()
            if rec is None:
                rec = RoleDefinitionRecord(id=f"rd_{uuid.uuid4().hex}", project_id=project_id)
                s.add(rec)
            rec.definition_data = definition_data
            rec.context_flags = context_flags
            if clarifier_questions is not None:
                rec.clarifier_questions = clarifier_questions
            if clarifier_answers is not None:
                rec.clarifier_answers = clarifier_answers
            try:
                s.commit()
            except IntegrityError:
                # another writer created the row first; overwrite theirs
                s.rollback()
                rec = s.scalars(select(RoleDefinitionRecord).where(
                    RoleDefinitionRecord.project_id == project_id)).one()
                rec.definition_data = definition_data
                rec.context_flags = context_flags
                s.commit()
            return _to_dict(rec)

    def get_for_project(self, project_id: str) -> Optional[Dict]:
        with SessionLocal() as s:
            rec = s.scalars(select(RoleDefinitionRecord).where(
                RoleDefinitionRecord.project_id == project_id)).one_or_none()
            return _to_dict(rec) if rec else None
