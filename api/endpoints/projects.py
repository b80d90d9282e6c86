from typing import Dict
from fastapi import APIRouter, Depends
from domain.schemas import CreateProjectRequest, ProjectResponse
from infra.repositories.projects_repository import ProjectsRepository
from api.deps import get_projects_repo, require_user

router = APIRouter()


@router.post("/projects", response_model=ProjectResponse, status_code=201)
async def create_project(
    body: CreateProjectRequest,
    user: Dict = Depends(require_user),
    projects: ProjectsRepository = Depends(get_projects_repo),
) -> ProjectResponse:
    project_id = projects.create(body.job_description)
    return ProjectResponse(id=project_id, status="draft")
