import uuid
from typing import Optional, Dict
from infra.db.session import SessionLocal
from infra.db.models import ProjectRecord


class ProjectsRepository:
    def create(self, job_description: Optional[str] = None) -> str:
        pid = f"proj_{uuid.uuid4().hex}"
        with SessionLocal() as s:
            s.add(ProjectRecord(id=pid, status="draft", job_description=job_description))
            s.commit()
        return pid

    def exists(self, project_id: str) -> bool:
        with SessionLocal() as s:
            return s.get(ProjectRecord, project_id) is not None

    def get(self, project_id: str) -> Optional[Dict]:
        with SessionLocal() as s:
            rec = s.get(ProjectRecord, project_id)
            if not rec:
                return None
            return {"id": rec.id, "status": rec.status,
                    "job_description": rec.job_description}
