"""
Unit tests for JSON-Patch document construction.
"""
import xml.etree.ElementTree as ET

import pytest
from azure.devops.v7_1.work_item_tracking.models import JsonPatchOperation

from ado_orchestrator.constants import LinkType
from ado_orchestrator.models import TestStep
from ado_orchestrator.patch import (
    add_operation,
    build_create_document,
    build_field_operations,
    build_relation_document,
    build_update_document,
    field_path,
    serialize_test_steps,
)


def as_tuples(document):
    return [(op.op, op.path, op.value) for op in document]


class TestFieldOperations:
    """Test field-level helpers."""

    def test_add_operation(self):
        operation = add_operation("/fields/System.Title", "x")
        assert isinstance(operation, JsonPatchOperation)
        assert (operation.op, operation.path, operation.value) == (
            "add", "/fields/System.Title", "x"
        )
        assert operation.from_ is None

    def test_field_path(self):
        assert field_path("System.State") == "/fields/System.State"

    def test_one_operation_per_field(self):
        """Each field becomes one add operation, in order."""
        ops = build_field_operations({"System.State": "Active", "Custom.Risk": 3})
        assert as_tuples(ops) == [
            ("add", "/fields/System.State", "Active"),
            ("add", "/fields/Custom.Risk", 3),
        ]

    def test_empty_fields(self):
        assert build_field_operations(None) == []


class TestCreateDocument:
    """Test build_create_document."""

    def test_title_then_type_then_fields(self):
        """Title and type lead; extra fields follow."""
        doc = build_create_document("Task", "Write docs", {"System.Description": "d"})
        assert [op.path for op in doc] == [
            "/fields/System.Title",
            "/fields/System.WorkItemType",
            "/fields/System.Description",
        ]
        assert doc[0].value == "Write docs"
        assert doc[1].value == "Task"

    def test_duplicate_title_in_fields_ignored(self):
        """A title inside fields does not produce a second title op."""
        doc = build_create_document("Task", "Real", {"System.Title": "Other"})
        titles = [op for op in doc if op.path == "/fields/System.Title"]
        assert as_tuples(titles) == [("add", "/fields/System.Title", "Real")]


class TestUpdateDocument:
    """Test build_update_document."""

    def test_single_field(self):
        """One field yields exactly one add operation."""
        assert as_tuples(build_update_document({"State": "Resolved"})) == [
            ("add", "/fields/State", "Resolved")
        ]

    def test_comment_adds_history(self):
        """A comment is written to System.History."""
        doc = build_update_document({"System.State": "Closed"}, comment="Done")
        assert as_tuples(doc)[-1] == ("add", "/fields/System.History", "Done")
        assert len(doc) == 2


class TestRelationDocument:
    """Test build_relation_document."""

    def test_relation_operation(self):
        """A single add to the end of the relations list."""
        doc = build_relation_document(LinkType.RELATED, "https://x/_apis/wit/workItems/2")
        assert as_tuples(doc) == [(
            "add",
            "/relations/-",
            {"rel": "System.LinkTypes.Related", "url": "https://x/_apis/wit/workItems/2"},
        )]

    def test_alias_and_comment(self):
        """Aliases resolve to reference names; comments become attributes."""
        doc = build_relation_document("child", "u", comment="split")
        assert doc[0].value["rel"] == "System.LinkTypes.Hierarchy-Forward"
        assert doc[0].value["attributes"] == {"comment": "split"}

    def test_unknown_link_type(self):
        with pytest.raises(ValueError):
            build_relation_document("duplicate-of", "u")


class TestSerializeTestSteps:
    """Test serialize_test_steps."""

    def test_steps_xml_structure(self):
        """Steps are numbered from 2 and carry two parameterized strings."""
        xml = serialize_test_steps([
            TestStep(1, "Open page", "Page loads"),
            TestStep(2, "Click save"),
        ])
        root = ET.fromstring(xml)

        assert root.tag == "steps"
        assert root.get("id") == "0"
        assert root.get("last") == "3"

        steps = root.findall("step")
        assert [s.get("id") for s in steps] == ["2", "3"]
        assert steps[0].get("type") == "ValidateStep"
        assert steps[1].get("type") == "ActionStep"

        strings = steps[0].findall("parameterizedString")
        assert len(strings) == 2
        assert strings[0].text == "Open page"
        assert strings[1].text == "Page loads"
        assert strings[0].get("isformatted") == "true"
        assert len(steps[1].findall("parameterizedString")) == 2

    def test_steps_ordered_by_number(self):
        """Steps are written in step_number order."""
        xml = serialize_test_steps([
            {"stepNumber": 2, "action": "second"},
            {"step_number": 1, "action": "first", "expected_result": "ok"},
        ])
        actions = [s.find("parameterizedString").text for s in ET.fromstring(xml).findall("step")]
        assert actions == ["first", "second"]

    def test_special_characters_escaped(self):
        """Markup in step text is escaped, not interpreted."""
        xml = serialize_test_steps([TestStep(1, "Enter <b> & submit", "")])
        step = ET.fromstring(xml).find("step")
        assert step.find("parameterizedString").text == "Enter <b> & submit"
