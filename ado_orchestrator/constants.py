"""
Constants and field definitions for Azure DevOps operations.

Defines field reference names, the closed link/suite vocabularies, and
limits used by the query and transport layers.
"""

from enum import Enum
from typing import List, Union


# ============================================================================
# Field Reference Names
# ============================================================================

class FieldNames:
    """Azure DevOps field reference names."""

    # System fields
    ID = "System.Id"
    AREA_PATH = "System.AreaPath"
    TEAM_PROJECT = "System.TeamProject"
    ITERATION_PATH = "System.IterationPath"
    WORK_ITEM_TYPE = "System.WorkItemType"
    STATE = "System.State"
    ASSIGNED_TO = "System.AssignedTo"
    TITLE = "System.Title"
    DESCRIPTION = "System.Description"
    TAGS = "System.Tags"
    HISTORY = "System.History"

    # Microsoft.VSTS.TCM (Test Case Management) fields
    STEPS = "Microsoft.VSTS.TCM.Steps"

    # Process-specific story annotations written by the bulk update
    CUSTOM_TEST_CASES = "Custom.TestCases"
    CUSTOM_AUTOMATION_REQUIREMENTS = "Custom.AutomationRequirements"


# Field namespaces shipped with every process template; anything else is
# a project-specific extension field
STANDARD_FIELD_PREFIXES = ("System.", "Microsoft.VSTS.")


# ============================================================================
# Field Sets
# ============================================================================

# Fields selected by generated WIQL queries
QUERY_FIELDS: List[str] = [
    FieldNames.ID,
    FieldNames.TITLE,
    FieldNames.STATE,
    FieldNames.ITERATION_PATH,
    FieldNames.WORK_ITEM_TYPE,
    FieldNames.ASSIGNED_TO,
    FieldNames.TAGS,
]


# ============================================================================
# Query Limits
# ============================================================================

class QueryLimits:
    """Limits enforced by the Azure DevOps API."""

    # Maximum ids accepted by one get_work_items call
    BATCH_SIZE = 200

    # Teams requested per get_teams page
    TEAM_PAGE_SIZE = 100


# ============================================================================
# Expand Options
# ============================================================================

class ExpandOptions:
    """Work item expand options for Azure DevOps API."""

    NONE = "None"
    RELATIONS = "Relations"
    FIELDS = "Fields"
    LINKS = "Links"
    ALL = "All"


# ============================================================================
# Work Item Types
# ============================================================================

class WorkItemTypes:
    """Work item types this layer creates itself."""

    TEST_CASE = "Test Case"


# ============================================================================
# Link Types
# ============================================================================

class LinkType(str, Enum):
    """Closed vocabulary of relationships this layer creates."""

    HIERARCHY_FORWARD = "System.LinkTypes.Hierarchy-Forward"
    HIERARCHY_REVERSE = "System.LinkTypes.Hierarchy-Reverse"
    RELATED = "System.LinkTypes.Related"
    TESTED_BY_FORWARD = "Microsoft.VSTS.Common.TestedBy-Forward"
    TESTED_BY_REVERSE = "Microsoft.VSTS.Common.TestedBy-Reverse"

    @classmethod
    def parse(cls, value: Union["LinkType", str]) -> "LinkType":
        """
        Resolve a link type from its enum value, reference name or alias.

        Aliases describe the target relative to the source item:
        "child" (target is a child), "parent", "related",
        "tested-by" (target tests the source) and "tests".

        Raises:
            ValueError: If the value is not in the vocabulary
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip()
            for member in cls:
                if member.value.lower() == key.lower() or member.name.lower() == key.lower().replace('-', '_'):
                    return member
            alias = _LINK_TYPE_ALIASES.get(key.lower())
            if alias is not None:
                return alias
        allowed = ', '.join(m.value for m in cls)
        raise ValueError(f"Invalid link type: {value!r}. Allowed link types: {allowed}")


_LINK_TYPE_ALIASES = {
    "child": LinkType.HIERARCHY_FORWARD,
    "parent": LinkType.HIERARCHY_REVERSE,
    "related": LinkType.RELATED,
    "tested-by": LinkType.TESTED_BY_FORWARD,
    "tested by": LinkType.TESTED_BY_FORWARD,
    "tests": LinkType.TESTED_BY_REVERSE,
}


# ============================================================================
# Test Suite Types
# ============================================================================

class SuiteType(str, Enum):
    """Test suite variants, with their wire values."""

    STATIC = "staticTestSuite"
    REQUIREMENT = "requirementTestSuite"
    DYNAMIC = "dynamicTestSuite"

    @classmethod
    def parse(cls, value: Union["SuiteType", str]) -> "SuiteType":
        """
        Resolve a suite type, case-insensitively.

        Accepts the wire value ("requirementTestSuite"), its PascalCase
        form ("RequirementTestSuite") or the short name ("Requirement").

        Raises:
            ValueError: If the value is not a known suite type
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().lower()
            for member in cls:
                if key in (member.value.lower(), member.name.lower()):
                    return member
        allowed = ', '.join(m.name.title() for m in cls)
        raise ValueError(f"Invalid suite type: {value!r}. Allowed suite types: {allowed}")


# ============================================================================
# Helper Functions
# ============================================================================

def format_wiql_fields(fields: List[str]) -> str:
    """
    Format field list for WIQL SELECT clause.

    Returns:
        Formatted field list for WIQL (e.g., "[System.Id], [System.Title]")
    """
    return ', '.join(f'[{field}]' for field in fields)
