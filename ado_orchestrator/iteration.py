"""
Iteration path resolution.

Turns a short sprint label such as "25.Q4.07" into the full iteration
path Azure DevOps expects, e.g. "MyProject\\MyTeam\\2025\\Q4\\25.Q4.07".
"""
import re
from typing import Optional

from .validation import ValidationError

# Sprint labels of the form YY.Qn.SS
SPRINT_LABEL_PATTERN = re.compile(r'^(\d{2})\.Q(\d)\.(\d{2})$')

PATH_SEPARATOR = '\\'


def resolve_iteration_path(sprint: str, project: str, team: Optional[str] = None) -> str:
    """
    Resolve a sprint identifier to a full iteration path.

    Args:
        sprint: Sprint label ("25.Q4.07", "Sprint 1") or a full path
        project: Project name, the first path segment
        team: Optional team name, the second path segment

    Returns:
        The identifier unchanged when it already contains a backslash,
        otherwise "project[\\team]\\20YY\\Qn\\<label>" for YY.Qn.SS labels
        and "project[\\team]\\<label>" for anything else

    Raises:
        ValidationError: If sprint or project is empty
    """
    if not sprint or not str(sprint).strip():
        raise ValidationError("sprint is required")
    if not project or not str(project).strip():
        raise ValidationError("project is required")

    if PATH_SEPARATOR in sprint:
        return sprint

    segments = [project]
    if team:
        segments.append(team)

    match = SPRINT_LABEL_PATTERN.match(sprint)
    if match:
        year, quarter, _ = match.groups()
        segments.extend([f"20{year}", f"Q{quarter}"])

    segments.append(sprint)
    return PATH_SEPARATOR.join(segments)
