# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Project Service

Manages project definitions (parameters plus block graph) stored as JSON files.
"""

from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError

from release_wizard.core.errors import NotFoundError, ValidationError
from release_wizard.core.logging import get_service_logger
from release_wizard.graph import ValidationIssue, ValidationResult, validate_block_graph
from release_wizard.models.common import utc_now
from release_wizard.models.project import Project

logger = get_service_logger("projects")


class ProjectService:
    """
    Manages project definitions.

    Responsibilities:
    - CRUD operations for projects
    - Block graph validation before anything is saved
    """

    def __init__(self, projects_dir: Path):
        self.projects_dir = projects_dir
        self.projects_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"ProjectService initialized with directory: {projects_dir}")

    def _path(self, project_id: str) -> Path:
        return self.projects_dir / f"{project_id}.json"

    def validate_project(self, project: Project) -> ValidationResult:
        """Check the name, the parameter declarations and the block graph"""
        issues: List[ValidationIssue] = []
        if not project.name or not project.name.strip():
            issues.append(ValidationIssue(field="name", message="Project name must not be blank", code="REQUIRED"))

        names = [p.name for p in project.parameters]
        for name in sorted({n for n in names if names.count(n) > 1}):
            issues.append(ValidationIssue(
                field=f"parameters.{name}",
                message=f"Duplicate project parameter '{name}'",
                code="DUPLICATE_PARAMETER"
            ))

        graph_result = validate_block_graph(project.block_graph, names)
        issues.extend(graph_result.errors)
        return ValidationResult(
            is_valid=not issues,
            errors=issues,
            order=graph_result.order if not issues else []
        )

    def _check(self, project: Project) -> None:
        result = self.validate_project(project)
        if not result.is_valid:
            raise ValidationError(
                "; ".join(issue.message for issue in result.errors),
                field=result.errors[0].field,
                details={"issues": [issue.model_dump() for issue in result.errors]}
            )

    async def list_projects(self, search: Optional[str] = None) -> List[Project]:
        """List all projects, optionally filtered by a name substring"""
        projects = []

        for file in self.projects_dir.glob("*.json"):
            try:
                project = Project.model_validate_json(file.read_text())
            except (OSError, PydanticValidationError) as e:
                logger.warning(f"Skipping invalid project file {file.name}: {e}")
                continue
            if search and search.lower() not in project.name.lower():
                continue
            projects.append(project)

        projects.sort(key=lambda p: p.name.lower())
        logger.info(f"Listed {len(projects)} projects")
        return projects

    async def get_project(self, project_id: str) -> Project:
        """Get a specific project"""
        file_path = self._path(project_id)

        if not file_path.exists():
            raise NotFoundError("Project", project_id)

        project = Project.model_validate_json(file_path.read_text())
        logger.info(f"Retrieved project: {project_id}")
        return project

    async def create_project(self, project: Project) -> Project:
        """Create a new project"""
        file_path = self._path(project.id)

        if file_path.exists():
            raise ValidationError(f"Project '{project.id}' already exists", field="id")

        self._check(project)

        now = utc_now()
        project = project.model_copy(update={"created_at": now, "updated_at": now, "version": 1})
        file_path.write_text(project.model_dump_json(indent=2))

        logger.info(f"Created project: {project.id}")
        return project

    async def update_project(self, project_id: str, project: Project) -> Project:
        """
        Replace an existing project.

        Releases already created keep their own snapshot, so an update only
        affects future releases.
        """
        current = await self.get_project(project_id)

        self._check(project)

        project = project.model_copy(update={
            "id": project_id,
            "created_at": current.created_at,
            "updated_at": utc_now(),
            "version": current.version + 1,
        })
        self._path(project_id).write_text(project.model_dump_json(indent=2))

        logger.info(f"Updated project: {project_id} (version {project.version})")
        return project

    async def delete_project(self, project_id: str) -> None:
        """Delete a project definition"""
        file_path = self._path(project_id)

        if not file_path.exists():
            raise NotFoundError("Project", project_id)

        file_path.unlink()
        logger.info(f"Deleted project: {project_id}")
