"""
Shared fixtures: a configuration and a Transport over a mocked SDK connection.

Every SDK client handed out by the transport is a MagicMock; tests set
return values on its methods and assert on the calls it received.
"""
import dataclasses
from unittest.mock import MagicMock

import pytest
from azure.devops.v7_1.work_item_tracking.models import WorkItem as SdkWorkItem
from azure.devops.v7_1.work_item_tracking.models import WorkItemRelation

from ado_orchestrator.cache import Cache
from ado_orchestrator.config import AdoConfig
from ado_orchestrator.transport import Transport


def sdk_work_item(work_item_id, work_item_type="User Story", title=None, relations=None, **fields):
    """Work item as returned by WorkItemTrackingClient."""
    item_fields = {
        "System.Id": work_item_id,
        "System.WorkItemType": work_item_type,
        "System.Title": title or f"Item {work_item_id}",
        "System.State": "New",
    }
    item_fields.update(fields)
    sdk_relations = None
    if relations is not None:
        sdk_relations = [
            WorkItemRelation(rel=r["rel"], url=r["url"], attributes=r.get("attributes"))
            for r in relations
        ]
    return SdkWorkItem(
        id=work_item_id,
        rev=1,
        fields=item_fields,
        relations=sdk_relations,
        url=f"https://dev.azure.com/org/_apis/wit/workItems/{work_item_id}",
    )


def items_by_id(ids, expand=None, **kwargs):
    """get_work_items side effect answering with one item per requested id."""
    return [sdk_work_item(i) for i in ids]


@pytest.fixture
def config():
    return AdoConfig(
        organization_url="https://dev.azure.com/org",
        project="MyProject",
        pat="test-pat",
        team="MyTeam",
    )


@pytest.fixture
def transport(config):
    fast = dataclasses.replace(config, retry_base_delay=0.0, retry_max_delay=0.0)
    return Transport(fast, connection=MagicMock())


@pytest.fixture
def cache():
    return Cache(default_ttl_seconds=300, max_size=100)


@pytest.fixture
def make_work_item():
    return sdk_work_item
