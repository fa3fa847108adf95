"""
WIQL query builder.

Translates a structured WorkItemQuery into WIQL text. Predicates are
ANDed; values are single-quoted literals and are not escaped, so callers
must not pass values containing quotes.
"""
from typing import Any, Mapping, Optional, Union

from .constants import FieldNames, QUERY_FIELDS, format_wiql_fields
from .iteration import resolve_iteration_path
from .models import WorkItemQuery


def _equals(field: str, value: str) -> str:
    return f"[{field}] = '{value}'"


def build_wiql(
    query: Union[WorkItemQuery, Mapping[str, Any]],
    default_project: str
) -> Optional[str]:
    """
    Build the WIQL text for a query.

    Args:
        query: Structured query (or its dict form)
        default_project: Project used when the query names none

    Returns:
        raw_query verbatim when given; None when the query lists
        work_item_ids (fetch by id, no WIQL); generated WIQL otherwise
    """
    if not isinstance(query, WorkItemQuery):
        query = WorkItemQuery.from_dict(query)

    if query.raw_query:
        return query.raw_query

    if query.work_item_ids is not None:
        return None

    project = query.project or default_project
    conditions = [_equals(FieldNames.TEAM_PROJECT, project)]

    if query.sprint:
        iteration_path = resolve_iteration_path(query.sprint, project, query.team)
        conditions.append(_equals(FieldNames.ITERATION_PATH, iteration_path))

    if query.work_item_type:
        conditions.append(_equals(FieldNames.WORK_ITEM_TYPE, query.work_item_type))

    if query.state:
        conditions.append(_equals(FieldNames.STATE, query.state))

    if query.assigned_to:
        conditions.append(_equals(FieldNames.ASSIGNED_TO, query.assigned_to))

    for tag in query.tags or []:
        conditions.append(f"[{FieldNames.TAGS}] CONTAINS '{tag}'")

    # Note: FROM WorkItems is case-sensitive in Azure DevOps WIQL
    return (
        f"SELECT {format_wiql_fields(QUERY_FIELDS)} "
        f"FROM WorkItems "
        f"WHERE {' AND '.join(conditions)} "
        f"ORDER BY [{FieldNames.ID}] DESC"
    )
