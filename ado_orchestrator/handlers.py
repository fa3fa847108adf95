"""
Request handlers for the orchestration operations.

Each handler validates its required arguments, calls one service
operation and returns a response envelope:

    {"success": True,  "status_code": 200, "data": ...}
    {"success": False, "status_code": 400|500, "error": {"code": ..., "message": ...}}

Validation failures map to 400 INVALID_REQUEST; every other failure maps
to 500 with the operation's error code and the wrapped message.
"""
import logging
from collections.abc import Mapping
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .errors import describe_error
from .log_sanitizer import safe_log_error
from .service_manager import ServiceManager
from .validation import ValidationError

logger = logging.getLogger(__name__)

Envelope = Dict[str, Any]

INVALID_REQUEST = "INVALID_REQUEST"


class ErrorCodes:
    """Error codes returned per operation."""

    QUERY = "QUERY_FAILED"
    GET = "GET_FAILED"
    UPDATE = "UPDATE_FAILED"
    CREATE = "CREATE_FAILED"
    BULK_UPDATE = "BULK_UPDATE_FAILED"
    CREATE_LINK = "CREATE_LINK_FAILED"
    GET_PROJECTS = "GET_PROJECTS_FAILED"
    GET_TEAMS = "GET_TEAMS_FAILED"
    GET_SPRINTS = "GET_SPRINTS_FAILED"
    GET_TEST_PLANS = "GET_TEST_PLANS_FAILED"
    GET_TEST_PLAN = "GET_TEST_PLAN_FAILED"
    CREATE_TEST_PLAN = "CREATE_TEST_PLAN_FAILED"
    GET_TEST_SUITES = "GET_TEST_SUITES_FAILED"
    CREATE_TEST_SUITE = "CREATE_TEST_SUITE_FAILED"
    ADD_TEST_CASES = "ADD_TEST_CASES_FAILED"
    CREATE_TEST_CASES_IN_PLAN = "CREATE_TEST_CASES_IN_PLAN_FAILED"


def success(data: Any) -> Envelope:
    return {"success": True, "status_code": 200, "data": data}


def failure(status_code: int, code: str, message: str) -> Envelope:
    return {
        "success": False,
        "status_code": status_code,
        "error": {"code": code, "message": message},
    }


def invalid_request(message: str) -> Envelope:
    return failure(400, INVALID_REQUEST, message)


def to_serializable(value: Any) -> Any:
    """Convert models (and containers of models) to plain data."""
    if hasattr(value, 'to_dict'):
        return value.to_dict()
    if isinstance(value, Mapping):
        return {k: to_serializable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_serializable(v) for v in value]
    return value


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def _is_empty_list(value: Any) -> bool:
    return not isinstance(value, (list, tuple)) or len(value) == 0


class AdoHandlers:
    """One async handler per orchestration operation."""

    def __init__(self, manager: ServiceManager):
        self.manager = manager

    async def _run(self, code: str, operation: Callable[[], Awaitable[Any]]) -> Envelope:
        try:
            result = await operation()
        except ValidationError as e:
            logger.info(f"Rejected request ({code}): {e}")
            return invalid_request(str(e))
        except Exception as e:
            logger.error(safe_log_error(e, code))
            return failure(500, code, describe_error(e))
        return success(to_serializable(result))

    # ------------------------------------------------------------------
    # Work items
    # ------------------------------------------------------------------

    async def query(self, request: Optional[Mapping[str, Any]]) -> Envelope:
        if not isinstance(request, Mapping):
            return invalid_request("query request body is required")
        return await self._run(ErrorCodes.QUERY, lambda: self.manager.workitems.query(request))

    async def get(self, ids: Optional[List[int]], expand: Optional[str] = None) -> Envelope:
        if _is_empty_list(ids):
            return invalid_request("ids array is required")
        return await self._run(ErrorCodes.GET, lambda: self.manager.workitems.get_by_ids(ids, expand))

    async def update(
        self,
        id: Optional[int],
        fields: Optional[Mapping[str, Any]],
        comment: Optional[str] = None
    ) -> Envelope:
        if not id or not fields:
            return invalid_request("id and fields are required")
        return await self._run(
            ErrorCodes.UPDATE,
            lambda: self.manager.workitems.update(id, fields, comment)
        )

    async def create_test_cases(self, test_cases: Optional[List[Any]]) -> Envelope:
        if not isinstance(test_cases, (list, tuple)):
            return invalid_request("test_cases array is required")
        return await self._run(
            ErrorCodes.CREATE,
            lambda: self.manager.test_plans.create_test_cases(test_cases)
        )

    async def bulk_update(
        self,
        story_id: Optional[int],
        test_cases: Optional[List[Any]] = None,
        automation_reqs: Optional[Any] = None
    ) -> Envelope:
        if not story_id:
            return invalid_request("story_id is required")
        return await self._run(
            ErrorCodes.BULK_UPDATE,
            lambda: self.manager.bulk_updates.bulk_update(story_id, test_cases, automation_reqs)
        )

    async def create_link(
        self,
        source_id: Optional[int],
        target_id: Optional[int],
        link_type: Optional[str],
        comment: Optional[str] = None
    ) -> Envelope:
        if not source_id or not target_id or _is_missing(link_type):
            return invalid_request("source_id, target_id and link_type are required")
        return await self._run(
            ErrorCodes.CREATE_LINK,
            lambda: self.manager.links.create(source_id, target_id, link_type, comment)
        )

    # ------------------------------------------------------------------
    # Projects, teams, sprints
    # ------------------------------------------------------------------

    async def get_projects(self) -> Envelope:
        return await self._run(ErrorCodes.GET_PROJECTS, self.manager.sprints.get_projects)

    async def get_teams(self, project: Optional[str]) -> Envelope:
        if _is_missing(project):
            return invalid_request("project is required")
        return await self._run(ErrorCodes.GET_TEAMS, lambda: self.manager.sprints.get_teams(project))

    async def get_sprints(
        self,
        project: Optional[str],
        team: Optional[str],
        timeframe: Optional[str] = None
    ) -> Envelope:
        if _is_missing(project) or _is_missing(team):
            return invalid_request("project and team are required")
        return await self._run(
            ErrorCodes.GET_SPRINTS,
            lambda: self.manager.sprints.get_sprints(project, team, timeframe)
        )

    # ------------------------------------------------------------------
    # Test plans
    # ------------------------------------------------------------------

    async def get_test_plans(self) -> Envelope:
        return await self._run(ErrorCodes.GET_TEST_PLANS, self.manager.test_plans.get_plans)

    async def get_test_plan(self, plan_id: Optional[int]) -> Envelope:
        if not plan_id:
            return invalid_request("plan_id is required")
        return await self._run(
            ErrorCodes.GET_TEST_PLAN,
            lambda: self.manager.test_plans.get_plan(plan_id)
        )

    async def create_test_plan(
        self,
        name: Optional[str],
        iteration: Optional[str],
        area_path: Optional[str] = None,
        description: Optional[str] = None
    ) -> Envelope:
        if _is_missing(name) or _is_missing(iteration):
            return invalid_request("name and iteration are required")
        return await self._run(
            ErrorCodes.CREATE_TEST_PLAN,
            lambda: self.manager.test_plans.create_plan(name, iteration, area_path, description)
        )

    async def get_test_suites(self, plan_id: Optional[int]) -> Envelope:
        if not plan_id:
            return invalid_request("plan_id is required")
        return await self._run(
            ErrorCodes.GET_TEST_SUITES,
            lambda: self.manager.test_plans.get_suites(plan_id)
        )

    async def create_test_suite(
        self,
        plan_id: Optional[int],
        name: Optional[str],
        suite_type: Optional[str],
        parent_suite_id: Optional[int],
        requirement_id: Optional[int] = None,
        query_string: Optional[str] = None
    ) -> Envelope:
        if not plan_id or _is_missing(name) or _is_missing(suite_type) or not parent_suite_id:
            return invalid_request("plan_id, name, suite_type and parent_suite_id are required")
        return await self._run(
            ErrorCodes.CREATE_TEST_SUITE,
            lambda: self.manager.test_plans.create_suite(
                plan_id, name, suite_type, parent_suite_id, requirement_id, query_string
            )
        )

    async def add_test_cases_to_suite(
        self,
        plan_id: Optional[int],
        suite_id: Optional[int],
        test_case_ids: Optional[List[int]]
    ) -> Envelope:
        if not plan_id or not suite_id or _is_empty_list(test_case_ids):
            return invalid_request("plan_id, suite_id and test_case_ids are required")
        return await self._run(
            ErrorCodes.ADD_TEST_CASES,
            lambda: self.manager.test_plans.add_test_cases_to_suite(plan_id, suite_id, test_case_ids)
        )

    async def create_test_cases_in_plan(
        self,
        plan_id: Optional[int],
        story_id: Optional[int],
        story_title: Optional[str],
        test_cases: Optional[List[Any]],
        feature_id: Optional[int] = None,
        feature_title: Optional[str] = None
    ) -> Envelope:
        if not plan_id or not story_id or _is_missing(story_title):
            return invalid_request("plan_id, story_id and story_title are required")
        if not isinstance(test_cases, (list, tuple)):
            return invalid_request("test_cases array is required")
        return await self._run(
            ErrorCodes.CREATE_TEST_CASES_IN_PLAN,
            lambda: self.manager.test_plans.create_test_cases_in_plan(
                plan_id, story_id, story_title, test_cases, feature_id, feature_title
            )
        )
