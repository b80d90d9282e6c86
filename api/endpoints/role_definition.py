from typing import Dict
from fastapi import APIRouter, Depends
from domain.errors import NotFound
from domain.schemas import ExtractRequest, ExtractionResponse
from domain.services.role_definition_extractor import RoleDefinitionExtractor
from infra.repositories.projects_repository import ProjectsRepository
from infra.repositories.role_definitions_repository import RoleDefinitionsRepository
from api.deps import get_extractor, get_projects_repo, get_role_definitions_repo, require_user

router = APIRouter()


@router.post("/role-definition/extract", response_model=ExtractionResponse)
async def extract_role_definition(
    body: ExtractRequest,
    user: Dict = Depends(require_user),
    extractor: RoleDefinitionExtractor = Depends(get_extractor),
    projects: ProjectsRepository = Depends(get_projects_repo),
    role_definitions: RoleDefinitionsRepository = Depends(get_role_definitions_repo),
) -> ExtractionResponse:
    if body.project_id and not projects.exists(body.project_id):
        raise NotFound("Project not found")
    result = await extractor.extract(body.jd_text)
    if body.project_id:
        role_definitions.upsert_for_project(
            body.project_id,
            result.definition_data,
            result.context_flags.model_dump(),
            clarifier_questions=result.clarifier_questions,
        )
    return ExtractionResponse(
        definition_data=result.definition_data,
        context_flags=result.context_flags,
        clarifier_questions=result.clarifier_questions,
    )
