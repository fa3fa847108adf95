"""
Data models for the Azure DevOps orchestration layer

Models are built from azure-devops SDK objects with `from_sdk` and are
immutable: cached work items are handed to every caller, so relations
are tuples and field values are read-only views.
"""
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Optional, List, Dict, Any, Iterator, Tuple

from .cache import make_cache_key
from .constants import FieldNames, LinkType, STANDARD_FIELD_PREFIXES, SuiteType
from .validation import ValidationError


def _freeze(value: Any) -> Any:
    """Read-only copy of a JSON value: mappings become proxies, lists tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({key: _freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    return value


def _thaw(value: Any) -> Any:
    """Plain dict/list copy of a frozen value."""
    if isinstance(value, Mapping):
        return {key: _thaw(item) for key, item in value.items()}
    if isinstance(value, tuple):
        return [_thaw(item) for item in value]
    return value


def _parse_date(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp as returned by Azure DevOps."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    text = str(value)
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def _format_date(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _format_identity(identity: Any) -> Optional[str]:
    """Display name of an identity field value."""
    if not identity:
        return None
    if isinstance(identity, Mapping):
        return identity.get('displayName') or identity.get('uniqueName')
    return str(identity)


class WorkItemFields(Mapping):
    """
    Read-only view over a work item's field bag.

    Exposes typed accessors for well-known fields while keeping every
    other key, including project-specific custom fields, available
    through the mapping interface and `extensions`.
    """

    def __init__(self, values: Optional[Mapping[str, Any]] = None):
        values = dict(values or {})
        for key in values:
            if not isinstance(key, str) or not key:
                raise ValidationError(f"Invalid field name: {key!r}")
        self._values = {key: _freeze(value) for key, value in values.items()}

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, WorkItemFields):
            return self._values == other._values
        if isinstance(other, Mapping):
            return self.to_dict() == _thaw(other)
        return NotImplemented

    def __repr__(self) -> str:
        return f"WorkItemFields({self._values!r})"

    @property
    def title(self) -> Optional[str]:
        return self._values.get(FieldNames.TITLE)

    @property
    def state(self) -> Optional[str]:
        return self._values.get(FieldNames.STATE)

    @property
    def work_item_type(self) -> Optional[str]:
        return self._values.get(FieldNames.WORK_ITEM_TYPE)

    @property
    def iteration_path(self) -> Optional[str]:
        return self._values.get(FieldNames.ITERATION_PATH)

    @property
    def area_path(self) -> Optional[str]:
        return self._values.get(FieldNames.AREA_PATH)

    @property
    def assigned_to(self) -> Optional[str]:
        return _format_identity(self._values.get(FieldNames.ASSIGNED_TO))

    @property
    def description(self) -> Optional[str]:
        return self._values.get(FieldNames.DESCRIPTION)

    @property
    def steps(self) -> Optional[str]:
        return self._values.get(FieldNames.STEPS)

    @property
    def tags(self) -> List[str]:
        """Tags as a list; Azure DevOps stores them as '; '-separated text."""
        raw = self._values.get(FieldNames.TAGS)
        if not raw:
            return []
        return [tag.strip() for tag in str(raw).split(';') if tag.strip()]

    @property
    def extensions(self) -> Dict[str, Any]:
        """Fields outside the standard System/Microsoft.VSTS namespaces."""
        return {
            key: _thaw(value) for key, value in self._values.items()
            if not key.startswith(STANDARD_FIELD_PREFIXES)
        }

    def to_dict(self) -> Dict[str, Any]:
        return {key: _thaw(value) for key, value in self._values.items()}


_WORK_ITEM_URL_ID = re.compile(r'/workItems/(\d+)$', re.IGNORECASE)


@dataclass(frozen=True)
class Relation:
    """A link from one work item to another resource"""
    rel: str
    url: str
    attributes: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, 'attributes', _freeze(self.attributes or {}))

    @property
    def link_type(self) -> Optional[LinkType]:
        """The closed-vocabulary link type, or None for other relations."""
        try:
            return LinkType(self.rel)
        except ValueError:
            return None

    @property
    def target_id(self) -> Optional[int]:
        match = _WORK_ITEM_URL_ID.search(self.url or '')
        return int(match.group(1)) if match else None

    @classmethod
    def from_sdk(cls, relation: Any) -> "Relation":
        """Build from an SDK WorkItemRelation"""
        return cls(
            rel=relation.rel or '',
            url=relation.url or '',
            attributes=relation.attributes or {}
        )

    def to_dict(self) -> Dict[str, Any]:
        return {'rel': self.rel, 'url': self.url, 'attributes': _thaw(self.attributes)}


@dataclass(frozen=True)
class WorkItem:
    """Represents an Azure DevOps work item"""
    id: int
    rev: Optional[int] = None
    fields: WorkItemFields = field(default_factory=WorkItemFields)
    relations: Tuple[Relation, ...] = ()
    url: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'relations', tuple(self.relations or ()))

    @property
    def type(self) -> Optional[str]:
        return self.fields.work_item_type

    @property
    def title(self) -> Optional[str]:
        return self.fields.title

    @classmethod
    def from_sdk(cls, work_item: Any) -> "WorkItem":
        """Build from an SDK work_item_tracking WorkItem"""
        return cls(
            id=work_item.id,
            rev=work_item.rev,
            fields=WorkItemFields(work_item.fields),
            relations=tuple(Relation.from_sdk(r) for r in work_item.relations or []),
            url=work_item.url
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'rev': self.rev,
            'type': self.type,
            'fields': self.fields.to_dict(),
            'relations': [r.to_dict() for r in self.relations],
            'url': self.url
        }


@dataclass(frozen=True)
class Project:
    """Represents an Azure DevOps project"""
    id: str
    name: str

    @classmethod
    def from_sdk(cls, project: Any) -> "Project":
        """Build from an SDK TeamProjectReference"""
        return cls(id=project.id, name=project.name)

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'name': self.name}


@dataclass(frozen=True)
class Team:
    """Represents a team inside a project"""
    id: str
    name: str

    @classmethod
    def from_sdk(cls, team: Any) -> "Team":
        """Build from an SDK WebApiTeam"""
        return cls(id=team.id, name=team.name)

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'name': self.name}


@dataclass(frozen=True)
class Sprint:
    """Represents a sprint/iteration"""
    id: str
    name: str
    path: str
    start_date: Optional[datetime] = None
    finish_date: Optional[datetime] = None
    time_frame: Optional[str] = None

    @classmethod
    def from_sdk(cls, iteration: Any) -> "Sprint":
        """Build from an SDK TeamSettingsIteration"""
        attributes = iteration.attributes
        return cls(
            id=iteration.id,
            name=iteration.name,
            path=iteration.path,
            start_date=_parse_date(attributes.start_date) if attributes else None,
            finish_date=_parse_date(attributes.finish_date) if attributes else None,
            time_frame=attributes.time_frame if attributes else None
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'path': self.path,
            'start_date': _format_date(self.start_date),
            'finish_date': _format_date(self.finish_date),
            'time_frame': self.time_frame
        }


@dataclass(frozen=True)
class TestPlan:
    """Represents a test plan"""
    __test__ = False

    id: int
    name: str
    state: Optional[str] = None
    iteration: Optional[str] = None
    root_suite_id: Optional[int] = None
    area_path: Optional[str] = None

    @classmethod
    def from_sdk(cls, plan: Any) -> "TestPlan":
        """Build from an SDK test_plan TestPlan"""
        return cls(
            id=plan.id,
            name=plan.name,
            state=plan.state,
            iteration=plan.iteration,
            root_suite_id=plan.root_suite.id if plan.root_suite else None,
            area_path=plan.area_path
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'state': self.state,
            'iteration': self.iteration,
            'root_suite_id': self.root_suite_id,
            'area_path': self.area_path
        }


@dataclass(frozen=True)
class TestSuite:
    """Represents a test suite inside a plan"""
    __test__ = False

    id: int
    name: str
    suite_type: Optional[SuiteType] = None
    parent_suite_id: Optional[int] = None
    requirement_id: Optional[int] = None
    plan_id: Optional[int] = None
    query_string: Optional[str] = None

    @property
    def is_root(self) -> bool:
        return self.parent_suite_id is None

    @classmethod
    def from_sdk(cls, suite: Any) -> "TestSuite":
        """Build from an SDK test_plan TestSuite"""
        try:
            suite_type = SuiteType.parse(suite.suite_type) if suite.suite_type else None
        except ValueError:
            suite_type = None
        return cls(
            id=suite.id,
            name=suite.name,
            suite_type=suite_type,
            parent_suite_id=suite.parent_suite.id if suite.parent_suite else None,
            requirement_id=suite.requirement_id,
            plan_id=suite.plan.id if suite.plan else None,
            query_string=suite.query_string
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'suite_type': self.suite_type.value if self.suite_type else None,
            'parent_suite_id': self.parent_suite_id,
            'requirement_id': self.requirement_id,
            'plan_id': self.plan_id,
            'query_string': self.query_string
        }


@dataclass(frozen=True)
class TestStep:
    """One step of a test case"""
    __test__ = False

    step_number: int
    action: str
    expected_result: str = ""

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any], default_number: int = 1) -> "TestStep":
        expected = payload.get('expected_result', payload.get('expectedResult'))
        number = payload.get('step_number', payload.get('stepNumber'))
        return cls(
            step_number=int(number) if number is not None else default_number,
            action=payload.get('action') or '',
            expected_result=expected or ''
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'step_number': self.step_number,
            'action': self.action,
            'expected_result': self.expected_result
        }


@dataclass(frozen=True)
class TestCase:
    """A test case to be created as a work item"""
    __test__ = False

    title: str
    steps: List[TestStep] = field(default_factory=list)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "TestCase":
        title = payload.get('title')
        if not title:
            raise ValidationError("Each test case requires a title")
        steps = []
        for index, step in enumerate(payload.get('steps') or [], start=1):
            if isinstance(step, TestStep):
                steps.append(step)
            elif isinstance(step, str):
                steps.append(TestStep(step_number=index, action=step))
            else:
                steps.append(TestStep.from_dict(step, default_number=index))
        return cls(title=title, steps=steps)

    def to_dict(self) -> Dict[str, Any]:
        return {'title': self.title, 'steps': [s.to_dict() for s in self.steps]}


@dataclass(frozen=True)
class WorkItemQuery:
    """Structured filter request for work item queries"""
    sprint: Optional[str] = None
    project: Optional[str] = None
    team: Optional[str] = None
    work_item_ids: Optional[List[int]] = None
    work_item_type: Optional[str] = None
    state: Optional[str] = None
    assigned_to: Optional[str] = None
    tags: Optional[List[str]] = None
    raw_query: Optional[str] = None
    expand: Optional[str] = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "WorkItemQuery":
        """Build a query from a request body (snake_case or camelCase keys)."""
        def pick(*keys):
            for key in keys:
                if payload.get(key) is not None:
                    return payload[key]
            return None

        tags = pick('tags')
        if isinstance(tags, str):
            tags = [tag.strip() for tag in tags.split(';') if tag.strip()]

        ids = pick('work_item_ids', 'workItemIds')
        return cls(
            sprint=pick('sprint'),
            project=pick('project'),
            team=pick('team'),
            work_item_ids=list(ids) if ids is not None else None,
            work_item_type=pick('work_item_type', 'workItemType', 'type'),
            state=pick('state'),
            assigned_to=pick('assigned_to', 'assignedTo'),
            tags=list(tags) if tags is not None else None,
            raw_query=pick('raw_query', 'rawQuery', 'query'),
            expand=pick('expand')
        )

    def signature(self) -> str:
        """Stable hash of the filter, used as a cache key."""
        return make_cache_key(
            sprint=self.sprint,
            project=self.project,
            team=self.team,
            work_item_ids=self.work_item_ids,
            work_item_type=self.work_item_type,
            state=self.state,
            assigned_to=self.assigned_to,
            tags=self.tags,
            raw_query=self.raw_query,
            expand=self.expand
        )


@dataclass(frozen=True)
class BulkUpdateEntry:
    """One applied sub-update of a bulk update"""
    type: str
    data: WorkItem

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.type, 'data': self.data.to_dict()}


@dataclass
class BulkUpdateResult:
    """Log of which independent sub-updates were applied"""
    updates: List[BulkUpdateEntry] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {'updates': [u.to_dict() for u in self.updates]}


@dataclass(frozen=True)
class TestCasesInPlanResult:
    """Outcome of creating test cases under a story's requirement suite"""
    __test__ = False

    test_cases: List[WorkItem]
    suite: TestSuite

    def to_dict(self) -> Dict[str, Any]:
        return {
            'test_cases': [tc.to_dict() for tc in self.test_cases],
            'suite': self.suite.to_dict()
        }
