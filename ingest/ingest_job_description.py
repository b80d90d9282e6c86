import os
import json
import asyncio
import logging
from infra.db.session import init_db
from infra.llm.client import GenerationClient
from infra.pdf.parser import read_job_description
from infra.repositories.projects_repository import ProjectsRepository
from infra.repositories.role_definitions_repository import RoleDefinitionsRepository
from domain.services.role_definition_extractor import RoleDefinitionExtractor
from domain.errors import PipelineError

log = logging.getLogger("ingest_job_description")
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
)
for noisy_logger in ("httpx", "httpcore"):
    logging.getLogger(noisy_logger).setLevel(logging.WARNING)


async def ingest(jd_path: str, project_id: str | None = None,
                 extractor: RoleDefinitionExtractor | None = None) -> dict:
    """Create (or reuse) a project from a JD file and store its extracted role definition."""
    if not os.path.isfile(jd_path):
        raise FileNotFoundError(f"Missing job description file: {jd_path}")
    jd_text = read_job_description(jd_path)
    log.info(f"Read {len(jd_text)} chars from {jd_path}")

    projects = ProjectsRepository()
    if project_id is None:
        project_id = projects.create(job_description=jd_text)
        log.info(f"Created project {project_id}")
    elif not projects.exists(project_id):
        raise KeyError(f"Unknown project: {project_id}")

    extractor = extractor or RoleDefinitionExtractor(GenerationClient())
    result = await extractor.extract(jd_text)
    stored = RoleDefinitionsRepository().upsert_for_project(
        project_id,
        result.definition_data,
        result.context_flags.model_dump(),
        clarifier_questions=result.clarifier_questions,
    )
    log.info(
        f"Stored role definition {stored['id']} for project {project_id} "
        f"(family={result.context_flags.role_family}, clarifiers={len(result.clarifier_questions)})")
    return {
        "project_id": project_id,
        "role_definition_id": stored["id"],
        "definition_data": result.definition_data,
        "context_flags": result.context_flags.model_dump(),
        "clarifier_questions": result.clarifier_questions,
    }


if __name__ == "__main__":
    import argparse
    parser = argparse.ArgumentParser(
        description="Extract a role definition from a job description file")
    parser.add_argument("--jd", required=True,
                        help="Path to the job description (.pdf, .txt or .md)")
    parser.add_argument("--project-id", default=None,
                        help="Existing project to attach the role definition to")
    args = parser.parse_args()
    init_db()
    try:
        out = asyncio.run(ingest(args.jd, args.project_id))
    except PipelineError as exc:
        log.error(f"{exc.kind}: {exc.message}")
        raise SystemExit(1)
    print(json.dumps(out, indent=2, ensure_ascii=False))
