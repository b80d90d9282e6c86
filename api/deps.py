from typing import Dict, Optional
from fastapi import Header
from domain.services.audition_scaffold_builder import AuditionScaffoldBuilder
from domain.services.role_definition_extractor import RoleDefinitionExtractor
from domain.services.scaffold_tracker import ScaffoldTracker
from infra.auth.identity import IdentityVerifier
from infra.llm.client import GenerationClient
from infra.repositories.projects_repository import ProjectsRepository
from infra.repositories.role_definitions_repository import RoleDefinitionsRepository

generation_client = GenerationClient()
identity = IdentityVerifier()
projects_repo = ProjectsRepository()
role_definitions_repo = RoleDefinitionsRepository()
extractor = RoleDefinitionExtractor(generation_client)
tracker = ScaffoldTracker(AuditionScaffoldBuilder(generation_client),
                          projects=projects_repo, role_definitions=role_definitions_repo)


async def require_user(authorization: Optional[str] = Header(default=None)) -> Dict:
    return await identity.verify(authorization)


def get_extractor() -> RoleDefinitionExtractor:
    return extractor


def get_tracker() -> ScaffoldTracker:
    return tracker


def get_projects_repo() -> ProjectsRepository:
    return projects_repo


def get_role_definitions_repo() -> RoleDefinitionsRepository:
    return role_definitions_repo
