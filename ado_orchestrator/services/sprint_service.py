"""
Sprint/Iteration service for Azure DevOps operations
Lists projects, teams and team iterations
"""
import logging
from typing import List, Optional

from azure.devops.v7_1.work.models import TeamContext

from ..cache import Cache, CachedService
from ..constants import QueryLimits
from ..decorators import wrap_operation_errors
from ..errors import NotFoundError
from ..iteration import resolve_iteration_path
from ..models import Project, Sprint, Team
from ..transport import Transport
from ..validation import require

logger = logging.getLogger(__name__)


class SprintService(CachedService):
    """Service for project, team and sprint listings with caching support"""

    def __init__(
        self,
        transport: Transport,
        cache: Optional[Cache] = None,
        cache_ttl: Optional[int] = None
    ):
        """
        Initialize sprint service

        Args:
            transport: Shared Azure DevOps transport
            cache: Optional cache (None disables caching)
            cache_ttl: TTL override for listings
        """
        super().__init__(cache, cache_namespace="sprints", cache_ttl=cache_ttl)
        self.transport = transport

    @property
    def project(self) -> str:
        return self.transport.config.project

    @property
    def core_client(self):
        return self.transport.core_client

    @property
    def work_client(self):
        return self.transport.work_client

    @wrap_operation_errors("Failed to get projects")
    async def get_projects(self) -> List[Project]:
        """List the projects of the organization."""
        cached = self._get_cached("projects")
        if cached is not None:
            return list(cached)

        payload = await self.transport.call_paged(self.core_client.get_projects)
        projects = [Project.from_sdk(p) for p in payload]
        self._set_cached(tuple(projects), "projects")
        return projects

    @wrap_operation_errors("Failed to get teams")
    async def get_teams(self, project: Optional[str] = None) -> List[Team]:
        """
        List the teams of a project.

        Args:
            project: Project name, or None for the configured project
        """
        project = project or self.project
        cached = self._get_cached("teams", project)
        if cached is not None:
            return list(cached)

        teams: List[Team] = []
        skip = 0
        while True:
            page = await self.transport.call(
                self.core_client.get_teams,
                project_id=project,
                top=QueryLimits.TEAM_PAGE_SIZE,
                skip=skip
            )
            page = page or []
            teams.extend(Team.from_sdk(t) for t in page)
            if len(page) < QueryLimits.TEAM_PAGE_SIZE:
                break
            skip += QueryLimits.TEAM_PAGE_SIZE

        self._set_cached(tuple(teams), "teams", project)
        return teams

    @wrap_operation_errors("Failed to get sprints")
    async def get_sprints(
        self,
        project: Optional[str] = None,
        team: Optional[str] = None,
        timeframe: Optional[str] = None
    ) -> List[Sprint]:
        """
        List a team's iterations

        Args:
            project: Project name, or None for the configured project
            team: Team name, or None for the configured (or default) team
            timeframe: "current" to return only the active sprint

        Returns:
            List of sprints
        """
        return await self._list_sprints(project, team, timeframe)

    @wrap_operation_errors("Failed to get current sprint")
    async def get_current_sprint(
        self,
        project: Optional[str] = None,
        team: Optional[str] = None
    ) -> Sprint:
        sprints = await self._list_sprints(project, team, "current")
        if not sprints:
            raise NotFoundError("No current sprint found")
        return sprints[0]

    async def _list_sprints(
        self,
        project: Optional[str],
        team: Optional[str],
        timeframe: Optional[str]
    ) -> List[Sprint]:
        project = project or self.project
        team = team or self.transport.config.team

        cached = self._get_cached("iterations", project, team, timeframe)
        if cached is not None:
            return list(cached)

        # Without a team Azure DevOps uses the project's default team
        iterations = await self.transport.call(
            self.work_client.get_team_iterations,
            team_context=TeamContext(project=project, team=team),
            timeframe=timeframe
        )
        sprints = [Sprint.from_sdk(s) for s in iterations or []]
        logger.debug(f"Found {len(sprints)} sprints for {project}/{team or '<default team>'}")

        self._set_cached(tuple(sprints), "iterations", project, team, timeframe)
        return sprints

    def resolve_iteration_path(self, sprint: str, team: Optional[str] = None) -> str:
        """Full iteration path of a sprint label in the configured project."""
        require(sprint, "sprint")
        return resolve_iteration_path(sprint, self.project, team)
