"""
Unit tests for TestPlanManager.

Suites live in an in-memory store behind the mocked TestPlanClient, so a
suite created by one call is visible to the next.
"""

import pytest
from azure.devops.v7_1.test_plan import models as test_plan_models

from ado_orchestrator.constants import SuiteType
from ado_orchestrator.errors import NotFoundError, OperationError
from ado_orchestrator.models import TestCase, TestStep
from ado_orchestrator.services.test_plan_service import TestPlanManager
from ado_orchestrator.services.workitem_service import WorkItemRepository
from ado_orchestrator.validation import ValidationError

from conftest import sdk_work_item


def sdk_suite(suite_id, name, suite_type="staticTestSuite", parent_id=None, requirement_id=None):
    return test_plan_models.TestSuite(
        id=suite_id,
        name=name,
        suite_type=suite_type,
        parent_suite=test_plan_models.TestSuiteReference(id=parent_id) if parent_id else None,
        requirement_id=requirement_id,
        plan=test_plan_models.TestPlanReference(id=1),
    )


def sdk_plan(plan_id, name, root_suite_id=None, iteration=None):
    root_suite = test_plan_models.TestSuiteReference(id=root_suite_id) if root_suite_id else None
    return test_plan_models.TestPlan(
        id=plan_id, name=name, root_suite=root_suite, iteration=iteration
    )


def added_test_cases(suite_test_case_create_update_parameters, project, plan_id, suite_id):
    return [
        test_plan_models.TestCase(
            work_item=test_plan_models.WorkItemDetails(id=params.work_item.id)
        )
        for params in suite_test_case_create_update_parameters
    ]


def added_ids(client, call_index=0):
    kwargs = client.add_test_cases_to_suite.call_args_list[call_index].kwargs
    return [p.work_item.id for p in kwargs["suite_test_case_create_update_parameters"]]


class SuiteStore:
    """Suites of plan 1, served and extended through the mocked client."""

    def __init__(self, client, suites=None):
        self.client = client
        self.suites = list(suites or [])
        self.next_id = 100
        client.get_test_suites_for_plan.side_effect = self.list
        client.create_test_suite.side_effect = self.create
        client.add_test_cases_to_suite.side_effect = added_test_cases

    def list(self, project, plan_id):
        return list(self.suites)

    def create(self, test_suite_create_params, project, plan_id):
        params = test_suite_create_params
        suite = sdk_suite(
            self.next_id,
            params.name,
            params.suite_type,
            parent_id=params.parent_suite.id,
            requirement_id=params.requirement_id,
        )
        self.next_id += 1
        self.suites.append(suite)
        return suite


def root_suite(suite_id=10):
    return sdk_suite(suite_id, "Plan 1")


def route_test_case_creation(transport):
    counter = {"next": 500}

    def create_work_item(document, project, **kwargs):
        title = next(op.value for op in document if op.path == "/fields/System.Title")
        counter["next"] += 1
        return sdk_work_item(counter["next"], kwargs["type"], title)

    transport.wit_client.create_work_item.side_effect = create_work_item


@pytest.fixture
def client(transport):
    return transport.test_plan_client


@pytest.fixture
def manager(transport):
    return TestPlanManager(transport, WorkItemRepository(transport))


class TestPlans:
    """Test plan operations."""

    @pytest.mark.asyncio
    async def test_get_plans(self, client, manager):
        client.get_test_plans.return_value = [
            sdk_plan(1, "Release 1", root_suite_id=10, iteration="MyProject\\S1"),
        ]

        plans = await manager.get_plans()

        assert plans[0].root_suite_id == 10
        assert plans[0].iteration == "MyProject\\S1"
        client.get_test_plans.assert_called_once_with(project="MyProject")

    @pytest.mark.asyncio
    async def test_get_plan_not_found(self, client, manager):
        client.get_test_plan_by_id.return_value = None

        with pytest.raises(OperationError) as exc_info:
            await manager.get_plan(9)
        assert str(exc_info.value) == "Failed to get test plan: Test plan 9 not found"

    @pytest.mark.asyncio
    async def test_create_plan(self, client, manager):
        client.create_test_plan.return_value = sdk_plan(2, "Regression", root_suite_id=20)

        plan = await manager.create_plan("Regression", "MyProject\\S1", area_path="MyProject\\QA")

        kwargs = client.create_test_plan.call_args.kwargs
        params = kwargs["test_plan_create_params"]
        assert (params.name, params.iteration, params.area_path) == (
            "Regression", "MyProject\\S1", "MyProject\\QA"
        )
        assert params.description is None
        assert kwargs["project"] == "MyProject"
        assert plan.id == 2

    @pytest.mark.asyncio
    async def test_create_plan_requires_iteration(self, client, manager):
        with pytest.raises(ValidationError):
            await manager.create_plan("Regression", "")
        client.create_test_plan.assert_not_called()


class TestSuites:
    """Test suite creation rules."""

    @pytest.mark.asyncio
    async def test_requirement_suite_params(self, client, manager):
        SuiteStore(client, [root_suite()])

        suite = await manager.create_suite(1, "42: Login", "Requirement", 10, requirement_id=42)

        kwargs = client.create_test_suite.call_args.kwargs
        params = kwargs["test_suite_create_params"]
        assert params.name == "42: Login"
        assert params.suite_type == "requirementTestSuite"
        assert params.parent_suite.id == 10
        assert params.requirement_id == 42
        assert params.query_string is None
        assert (kwargs["project"], kwargs["plan_id"]) == ("MyProject", 1)
        assert suite.suite_type is SuiteType.REQUIREMENT
        assert suite.requirement_id == 42

    @pytest.mark.asyncio
    async def test_dynamic_suite_sends_query(self, client, manager):
        SuiteStore(client, [root_suite()])

        await manager.create_suite(1, "Bugs", "Dynamic", 10, query_string="SELECT ...")

        params = client.create_test_suite.call_args.kwargs["test_suite_create_params"]
        assert params.suite_type == "dynamicTestSuite"
        assert params.query_string == "SELECT ..."

    @pytest.mark.asyncio
    async def test_requirement_suite_needs_requirement_id(self, client, manager):
        with pytest.raises(ValidationError):
            await manager.create_suite(1, "x", SuiteType.REQUIREMENT, 10)
        client.create_test_suite.assert_not_called()

    @pytest.mark.asyncio
    async def test_static_suite_rejects_requirement_id(self, manager):
        with pytest.raises(ValidationError):
            await manager.create_suite(1, "x", "static", 10, requirement_id=42)

    @pytest.mark.asyncio
    async def test_dynamic_suite_needs_query(self, manager):
        with pytest.raises(ValidationError):
            await manager.create_suite(1, "x", "dynamicTestSuite", 10)

    @pytest.mark.asyncio
    async def test_unknown_suite_type(self, manager):
        with pytest.raises(ValidationError) as exc_info:
            await manager.create_suite(1, "x", "smart", 10)
        assert "Invalid suite type" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_get_suites(self, client, manager):
        SuiteStore(client, [root_suite(), sdk_suite(11, "Smoke", parent_id=10)])

        suites = await manager.get_suites(1)

        assert [s.id for s in suites] == [10, 11]
        assert suites[0].is_root
        client.get_test_suites_for_plan.assert_called_once_with(project="MyProject", plan_id=1)

    @pytest.mark.asyncio
    async def test_find_or_create_static_suite_reuses(self, client, manager):
        store = SuiteStore(client, [root_suite()])

        first = await manager.find_or_create_static_suite(1, "Smoke", 10)
        second = await manager.find_or_create_static_suite(1, "Smoke", 10)

        assert first.id == second.id
        assert len(store.suites) == 2

    @pytest.mark.asyncio
    async def test_requirement_suite_matched_by_name(self, client, manager):
        """Test a suite named after the story is reused when it lacks a requirement id."""
        legacy = sdk_suite(55, "42: Login", parent_id=10)
        store = SuiteStore(client, [root_suite(), legacy])

        suite = await manager.find_or_create_requirement_suite(1, 42, "Login", 10)

        assert suite.id == 55
        assert len(store.suites) == 2


class TestAddTestCases:
    """Test add_test_cases_to_suite."""

    @pytest.mark.asyncio
    async def test_single_request(self, client, manager):
        client.add_test_cases_to_suite.side_effect = added_test_cases

        result = await manager.add_test_cases_to_suite(1, 7, [1, 2])

        client.add_test_cases_to_suite.assert_called_once()
        kwargs = client.add_test_cases_to_suite.call_args.kwargs
        assert (kwargs["project"], kwargs["plan_id"], kwargs["suite_id"]) == ("MyProject", 1, 7)
        assert added_ids(client) == [1, 2]
        assert result == [
            {"work_item_id": 1, "suite_id": 7, "plan_id": 1},
            {"work_item_id": 2, "suite_id": 7, "plan_id": 1},
        ]

    @pytest.mark.asyncio
    async def test_empty_ids_rejected(self, client, manager):
        with pytest.raises(ValidationError):
            await manager.add_test_cases_to_suite(1, 7, [])
        client.add_test_cases_to_suite.assert_not_called()


class TestCreateTestCases:
    """Test create_test_cases."""

    @pytest.mark.asyncio
    async def test_steps_serialized(self, transport, manager):
        route_test_case_creation(transport)

        created = await manager.create_test_cases([
            {"title": "Login works", "steps": [{"action": "Open", "expectedResult": "Shown"}]},
            TestCase("No steps"),
        ])

        calls = transport.wit_client.create_work_item.call_args_list
        documents = [c.kwargs["document"] for c in calls]
        steps_path = "/fields/Microsoft.VSTS.TCM.Steps"
        steps_ops = [op for op in documents[0] if op.path == steps_path]
        assert len(steps_ops) == 1
        assert steps_ops[0].value.startswith("<steps")
        assert not any(op.path == steps_path for op in documents[1])
        assert all(c.kwargs["type"] == "Test Case" for c in calls)
        assert [tc.title for tc in created] == ["Login works", "No steps"]

    @pytest.mark.asyncio
    async def test_missing_title(self, manager):
        with pytest.raises(ValidationError):
            await manager.create_test_cases([{"steps": ["x"]}])


class TestCreateTestCasesInPlan:
    """Test the plan > feature > requirement > test case flow."""

    @pytest.mark.asyncio
    async def test_creates_requirement_suite_and_cases(self, transport, client, manager):
        store = SuiteStore(client, [root_suite()])
        route_test_case_creation(transport)

        result = await manager.create_test_cases_in_plan(
            1, 42, "Login", [TestCase("A", [TestStep(1, "go")]), {"title": "B"}]
        )

        assert result.suite.id == 100
        assert result.suite.name == "42: Login"
        assert result.suite.parent_suite_id == 10
        assert [tc.title for tc in result.test_cases] == ["A", "B"]
        assert client.add_test_cases_to_suite.call_args.kwargs["suite_id"] == 100
        assert added_ids(client) == [501, 502]
        assert len(store.suites) == 2

    @pytest.mark.asyncio
    async def test_second_call_reuses_suite(self, transport, client, manager):
        """Test running twice for one story yields exactly one requirement suite."""
        store = SuiteStore(client, [root_suite()])
        route_test_case_creation(transport)

        first = await manager.create_test_cases_in_plan(1, 42, "Login", [{"title": "A"}])
        second = await manager.create_test_cases_in_plan(1, 42, "Login renamed", [{"title": "B"}])

        requirement_suites = [s for s in store.suites if s.requirement_id == 42]
        assert len(requirement_suites) == 1
        assert first.suite.id == second.suite.id

    @pytest.mark.asyncio
    async def test_feature_suite_between_root_and_story(self, transport, client, manager):
        store = SuiteStore(client, [root_suite()])
        route_test_case_creation(transport)

        result = await manager.create_test_cases_in_plan(
            1, 42, "Login", [{"title": "A"}], feature_id=7, feature_title="Auth"
        )

        feature = store.suites[1]
        assert feature.name == "7: Auth"
        assert feature.suite_type == "staticTestSuite"
        assert feature.parent_suite.id == 10
        assert result.suite.parent_suite_id == feature.id

    @pytest.mark.asyncio
    async def test_existing_feature_suite_matched_by_prefix(self, transport, client, manager):
        legacy_feature = sdk_suite(30, "Feature 7: Old title", parent_id=10)
        store = SuiteStore(client, [root_suite(), legacy_feature])
        route_test_case_creation(transport)

        result = await manager.create_test_cases_in_plan(
            1, 42, "Login", [{"title": "A"}], feature_id=7, feature_title="Auth"
        )

        assert result.suite.parent_suite_id == 30
        assert len(store.suites) == 3

    @pytest.mark.asyncio
    async def test_root_suite_from_plan(self, client, manager):
        """Test the plan's root suite is used when the listing has no root."""
        SuiteStore(client, [])
        client.get_test_plan_by_id.return_value = sdk_plan(1, "P", root_suite_id=10)

        result = await manager.create_test_cases_in_plan(1, 42, "Login", [])

        assert result.suite.parent_suite_id == 10
        assert result.test_cases == []
        client.get_test_plan_by_id.assert_called_once_with(project="MyProject", plan_id=1)
        client.add_test_cases_to_suite.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_root_suite(self, client, manager):
        SuiteStore(client, [])
        client.get_test_plan_by_id.return_value = sdk_plan(1, "P")

        with pytest.raises(OperationError) as exc_info:
            await manager.create_test_cases_in_plan(1, 42, "Login", [])
        assert isinstance(exc_info.value.cause, NotFoundError)
        assert str(exc_info.value).startswith("Failed to create test cases in plan: ")

    @pytest.mark.asyncio
    async def test_feature_title_required(self, client, manager):
        with pytest.raises(ValidationError):
            await manager.create_test_cases_in_plan(1, 42, "Login", [], feature_id=7)
        client.get_test_suites_for_plan.assert_not_called()

    @pytest.mark.asyncio
    async def test_story_title_required(self, manager):
        with pytest.raises(ValidationError):
            await manager.create_test_cases_in_plan(1, 42, "", [])
