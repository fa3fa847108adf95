"""
JSON-Patch document construction for work item writes.

Azure DevOps creates and updates work items from JSON-Patch documents;
these helpers build them as SDK JsonPatchOperation lists without
touching the network.
"""
import xml.etree.ElementTree as ET
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from azure.devops.v7_1.work_item_tracking.models import JsonPatchOperation

from .constants import FieldNames, LinkType
from .models import TestStep

PatchDocument = List[JsonPatchOperation]


def add_operation(path: str, value: Any) -> JsonPatchOperation:
    return JsonPatchOperation(op="add", path=path, value=value)


def field_path(name: str) -> str:
    """JSON-Patch path of a work item field."""
    return f"/fields/{name}"


def build_field_operations(fields: Optional[Mapping[str, Any]]) -> PatchDocument:
    """One 'add' operation per field, in mapping order."""
    return [add_operation(field_path(name), value) for name, value in (fields or {}).items()]


def build_create_document(
    work_item_type: str,
    title: str,
    fields: Optional[Mapping[str, Any]] = None
) -> PatchDocument:
    """
    Patch document for creating a work item.

    Title and type come first; any additional fields follow. Entries in
    `fields` for the title or type are ignored.
    """
    document = [
        add_operation(field_path(FieldNames.TITLE), title),
        add_operation(field_path(FieldNames.WORK_ITEM_TYPE), work_item_type),
    ]
    extra = {
        name: value for name, value in (fields or {}).items()
        if name not in (FieldNames.TITLE, FieldNames.WORK_ITEM_TYPE)
    }
    document.extend(build_field_operations(extra))
    return document


def build_update_document(
    fields: Mapping[str, Any],
    comment: Optional[str] = None
) -> PatchDocument:
    """Patch document for updating fields, with an optional history comment."""
    document = build_field_operations(fields)
    if comment:
        document.append(add_operation(field_path(FieldNames.HISTORY), comment))
    return document


def build_relation_document(
    link_type: Union[LinkType, str],
    target_url: str,
    comment: Optional[str] = None
) -> PatchDocument:
    """Patch document adding one relation to the end of the relations list."""
    relation: Dict[str, Any] = {
        "rel": LinkType.parse(link_type).value,
        "url": target_url,
    }
    if comment:
        relation["attributes"] = {"comment": comment}
    return [add_operation("/relations/-", relation)]


def serialize_test_steps(steps: Sequence[Union[TestStep, Mapping[str, Any]]]) -> str:
    """
    Build the XML blob that ADO stores in Microsoft.VSTS.TCM.Steps.

    Steps are written in step_number order with ids starting at 2.
    A step with an expected result is a ValidateStep, otherwise an
    ActionStep.
    """
    normalized = [
        step if isinstance(step, TestStep) else TestStep.from_dict(step, default_number=index)
        for index, step in enumerate(steps, start=1)
    ]
    normalized.sort(key=lambda step: step.step_number)

    root = ET.Element("steps", id="0", last=str(len(normalized) + 1))
    for idx, step in enumerate(normalized, start=2):
        step_type = "ValidateStep" if step.expected_result else "ActionStep"
        el = ET.SubElement(root, "step", id=str(idx), type=step_type)
        action = ET.SubElement(el, "parameterizedString", isformatted="true")
        action.text = step.action
        expected = ET.SubElement(el, "parameterizedString", isformatted="true")
        expected.text = step.expected_result or ""
    return ET.tostring(root, encoding="unicode")
