"""
Azure DevOps Orchestration MCP Server
Exposes work item, sprint and test plan operations as MCP tools
"""
import logging
import os
import sys
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from fastmcp import Context, FastMCP

from .config import AdoConfig
from .handlers import AdoHandlers
from .service_manager import ServiceManager

logger = logging.getLogger(__name__)

# Initialized during lifespan startup
_service_manager: Optional[ServiceManager] = None
_handlers: Optional[AdoHandlers] = None


@asynccontextmanager
async def lifespan(app):
    """Build the service manager on startup and close it on shutdown"""
    global _service_manager, _handlers

    # Load environment variables from .env file
    load_dotenv()

    config = AdoConfig.from_env()
    _service_manager = ServiceManager(config)
    await _service_manager.open()
    _handlers = AdoHandlers(_service_manager)

    try:
        yield  # Server runs
    finally:
        await _service_manager.close()
        _service_manager = None
        _handlers = None


mcp = FastMCP(
    name="Azure DevOps Orchestrator",
    lifespan=lifespan
)


async def _info(ctx: Optional[Context], message: str):
    if ctx is not None:
        await ctx.info(message)


# ============================================================================
# WORK ITEMS
# ============================================================================

@mcp.tool()
async def query_work_items(
    sprint: Optional[str] = None,
    team: Optional[str] = None,
    work_item_ids: Optional[List[int]] = None,
    work_item_type: Optional[str] = None,
    state: Optional[str] = None,
    assigned_to: Optional[str] = None,
    tags: Optional[List[str]] = None,
    raw_query: Optional[str] = None,
    ctx: Context = None
) -> Dict[str, Any]:
    """
    Query work items by sprint and filters, by raw WIQL, or by ids.

    Args:
        sprint: Sprint label ("25.Q4.07", "Sprint 1") or full iteration path
        team: Team name used to build the iteration path
        work_item_ids: Fetch these ids directly (no WIQL)
        work_item_type: Filter by type (e.g. "User Story", "Bug")
        state: Filter by state (e.g. "Active")
        assigned_to: Filter by assignee
        tags: Items must carry every tag
        raw_query: WIQL text, used verbatim

    Returns:
        Response envelope with the matching work items
    """
    await _info(ctx, "Querying work items...")
    request = {
        "sprint": sprint,
        "team": team,
        "work_item_ids": work_item_ids,
        "work_item_type": work_item_type,
        "state": state,
        "assigned_to": assigned_to,
        "tags": tags,
        "raw_query": raw_query,
    }
    return await _handlers.query({k: v for k, v in request.items() if v is not None})


@mcp.tool()
async def get_work_items(
    ids: List[int],
    expand: Optional[str] = None,
    ctx: Context = None
) -> Dict[str, Any]:
    """
    Get work items by id.

    Args:
        ids: Work item ids
        expand: Expand option ("Relations", "Fields", "Links", "All")
    """
    await _info(ctx, f"Fetching {len(ids or [])} work items...")
    return await _handlers.get(ids, expand)


@mcp.tool()
async def update_work_item(
    work_item_id: int,
    fields: Dict[str, Any],
    comment: Optional[str] = None,
    ctx: Context = None
) -> Dict[str, Any]:
    """
    Update fields on a work item.

    Args:
        work_item_id: Work item to update
        fields: Field values keyed by reference name (e.g. {"System.State": "Resolved"})
        comment: Optional history comment
    """
    await _info(ctx, f"Updating work item {work_item_id}...")
    return await _handlers.update(work_item_id, fields, comment)


@mcp.tool()
async def create_test_cases(
    test_cases: List[Dict[str, Any]],
    ctx: Context = None
) -> Dict[str, Any]:
    """
    Create test case work items.

    Args:
        test_cases: Items of {"title": ..., "steps": [{"action": ..., "expected_result": ...}]}
    """
    await _info(ctx, f"Creating {len(test_cases or [])} test cases...")
    return await _handlers.create_test_cases(test_cases)


@mcp.tool()
async def bulk_update_story(
    story_id: int,
    test_cases: Optional[List[Any]] = None,
    automation_reqs: Optional[Any] = None,
    ctx: Context = None
) -> Dict[str, Any]:
    """
    Write test-case and automation summaries back to a story.

    Args:
        story_id: Story to update
        test_cases: Generated test cases (their count is recorded)
        automation_reqs: Automation requirements; a "summary" key is used when present
    """
    await _info(ctx, f"Updating story {story_id}...")
    return await _handlers.bulk_update(story_id, test_cases, automation_reqs)


@mcp.tool()
async def create_link(
    source_id: int,
    target_id: int,
    link_type: str,
    comment: Optional[str] = None,
    ctx: Context = None
) -> Dict[str, Any]:
    """
    Link two work items.

    Args:
        source_id: Work item receiving the link
        target_id: Work item the link points to
        link_type: "child", "parent", "related", "tested-by", "tests" or a reference name
        comment: Optional link comment
    """
    await _info(ctx, f"Linking {source_id} -> {target_id} ({link_type})...")
    return await _handlers.create_link(source_id, target_id, link_type, comment)


# ============================================================================
# PROJECTS, TEAMS, SPRINTS
# ============================================================================

@mcp.tool()
async def get_projects(ctx: Context = None) -> Dict[str, Any]:
    """List the projects of the organization."""
    return await _handlers.get_projects()


@mcp.tool()
async def get_teams(project: Optional[str] = None, ctx: Context = None) -> Dict[str, Any]:
    """
    List the teams of a project.

    Args:
        project: Project name. If None, uses the configured project.
    """
    return await _handlers.get_teams(project or _service_manager.config.project)


@mcp.tool()
async def get_sprints(
    project: Optional[str] = None,
    team: Optional[str] = None,
    current_only: bool = False,
    ctx: Context = None
) -> Dict[str, Any]:
    """
    List a team's sprints.

    Args:
        project: Project name. If None, uses the configured project.
        team: Team name. If None, uses the configured team.
        current_only: Only return the active sprint
    """
    config = _service_manager.config
    return await _handlers.get_sprints(
        project or config.project,
        team or config.team,
        "current" if current_only else None
    )


# ============================================================================
# TEST PLANS
# ============================================================================

@mcp.tool()
async def get_test_plans(ctx: Context = None) -> Dict[str, Any]:
    """List the test plans of the configured project."""
    return await _handlers.get_test_plans()


@mcp.tool()
async def get_test_plan(plan_id: int, ctx: Context = None) -> Dict[str, Any]:
    """Get one test plan."""
    return await _handlers.get_test_plan(plan_id)


@mcp.tool()
async def create_test_plan(
    name: str,
    iteration: str,
    area_path: Optional[str] = None,
    description: Optional[str] = None,
    ctx: Context = None
) -> Dict[str, Any]:
    """
    Create a test plan.

    Args:
        name: Plan name
        iteration: Iteration path of the plan
        area_path: Optional area path
        description: Optional description
    """
    await _info(ctx, f"Creating test plan '{name}'...")
    return await _handlers.create_test_plan(name, iteration, area_path, description)


@mcp.tool()
async def get_test_suites(plan_id: int, ctx: Context = None) -> Dict[str, Any]:
    """List every suite of a test plan."""
    return await _handlers.get_test_suites(plan_id)


@mcp.tool()
async def create_test_suite(
    plan_id: int,
    name: str,
    suite_type: str,
    parent_suite_id: int,
    requirement_id: Optional[int] = None,
    query_string: Optional[str] = None,
    ctx: Context = None
) -> Dict[str, Any]:
    """
    Create a test suite.

    Args:
        plan_id: Test plan id
        name: Suite name
        suite_type: "Static", "Requirement" or "Dynamic"
        parent_suite_id: Parent suite id
        requirement_id: Requirement work item (requirement suites only)
        query_string: WIQL query (dynamic suites only)
    """
    return await _handlers.create_test_suite(
        plan_id, name, suite_type, parent_suite_id, requirement_id, query_string
    )


@mcp.tool()
async def add_test_cases_to_suite(
    plan_id: int,
    suite_id: int,
    test_case_ids: List[int],
    ctx: Context = None
) -> Dict[str, Any]:
    """Attach existing test cases to a suite."""
    return await _handlers.add_test_cases_to_suite(plan_id, suite_id, test_case_ids)


@mcp.tool()
async def create_test_cases_in_plan(
    plan_id: int,
    story_id: int,
    story_title: str,
    test_cases: List[Dict[str, Any]],
    feature_id: Optional[int] = None,
    feature_title: Optional[str] = None,
    ctx: Context = None
) -> Dict[str, Any]:
    """
    Create test cases for a story and file them under the test plan.

    Hierarchy: root suite > feature suite (optional) > story requirement
    suite > test cases. Existing suites are reused.

    Args:
        plan_id: Test plan id
        story_id: Story work item id
        story_title: Story title
        test_cases: Items of {"title": ..., "steps": [...]}
        feature_id: Optional parent feature id
        feature_title: Feature title (required with feature_id)
    """
    await _info(ctx, f"Creating {len(test_cases or [])} test cases for story {story_id} in plan {plan_id}...")
    return await _handlers.create_test_cases_in_plan(
        plan_id, story_id, story_title, test_cases, feature_id, feature_title
    )


# ============================================================================
# DIAGNOSTICS
# ============================================================================

@mcp.tool()
async def get_service_statistics(ctx: Context = None) -> Dict[str, Any]:
    """Connection and cache statistics of the running server."""
    if not _service_manager:
        return {"error": "Service manager not initialized"}
    return _service_manager.get_statistics()


def main():
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    # Support both STDIO and HTTP transports via configuration
    transport_mode = os.getenv("MCP_TRANSPORT", "http").lower()

    if transport_mode == "stdio":
        logger.info("Starting MCP server in STDIO mode")
        mcp.run()
    else:
        port = int(os.getenv("PORT", 8000))
        logger.info(f"Starting MCP server with HTTP streaming on port {port}")
        mcp.run(transport="streamable-http", port=port, host="0.0.0.0")


if __name__ == "__main__":
    main()
