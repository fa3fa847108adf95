"""
Bulk update of story annotations
Writes test-case and automation summaries back to a story
"""
import json
import logging
from collections.abc import Mapping
from typing import Any, Optional, Sequence

from ..config import AdoConfig
from ..decorators import wrap_operation_errors
from ..models import BulkUpdateEntry, BulkUpdateResult
from ..validation import validate_work_item_id
from .workitem_service import WorkItemRepository

logger = logging.getLogger(__name__)

STORY_UPDATE = "story-update"
AUTOMATION_UPDATE = "automation-update"


def summarize_automation(automation_reqs: Any) -> str:
    """Text stored in the automation field: the summary when present, else JSON."""
    if isinstance(automation_reqs, str):
        return automation_reqs
    if isinstance(automation_reqs, Mapping) and automation_reqs.get('summary'):
        return str(automation_reqs['summary'])
    return json.dumps(automation_reqs, default=str)


class BulkUpdateOrchestrator:
    """Applies independent, optional updates to one story in order"""

    def __init__(self, repository: WorkItemRepository, config: AdoConfig):
        self.repository = repository
        self.config = config

    @wrap_operation_errors("Failed to bulk update")
    async def bulk_update(
        self,
        story_id: int,
        test_cases: Optional[Sequence[Any]] = None,
        automation_reqs: Optional[Any] = None
    ) -> BulkUpdateResult:
        """
        Annotate a story with generated test cases and automation requirements.

        Each requested annotation is its own update. The first failure
        aborts the rest; updates already applied are kept.

        Args:
            story_id: Story to update
            test_cases: Generated test cases; only their count is written
            automation_reqs: Automation requirements (mapping, text or any JSON value)

        Returns:
            Log of the updates that were applied
        """
        story_id = validate_work_item_id(story_id, "story_id")
        result = BulkUpdateResult()

        if test_cases is not None:
            item = await self.repository.update(
                story_id,
                {self.config.test_cases_field: f"Generated {len(test_cases)} test cases"}
            )
            result.updates.append(BulkUpdateEntry(type=STORY_UPDATE, data=item))

        if automation_reqs is not None:
            item = await self.repository.update(
                story_id,
                {self.config.automation_field: summarize_automation(automation_reqs)}
            )
            result.updates.append(BulkUpdateEntry(type=AUTOMATION_UPDATE, data=item))

        logger.info(f"Bulk update of story {story_id} applied {len(result.updates)} updates")
        return result
