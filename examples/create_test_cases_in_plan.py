#!/usr/bin/env python
"""Create test cases for a story and file them under a test plan"""
import asyncio
import sys

from dotenv import load_dotenv

from ado_orchestrator.config import AdoConfig
from ado_orchestrator.models import TestCase, TestStep
from ado_orchestrator.service_manager import ServiceManager


async def main(plan_id: int, story_id: int):
    load_dotenv()
    config = AdoConfig.from_env()

    async with ServiceManager(config) as manager:
        story = await manager.workitems.get(story_id)
        print(f"📋 Story {story.id}: {story.title}\n")

        test_cases = [
            TestCase(
                title=f"{story.title} - happy path",
                steps=[
                    TestStep(1, "Open the application", "Home page is shown"),
                    TestStep(2, "Run the feature with valid input", "Result is saved"),
                ],
            ),
            TestCase(
                title=f"{story.title} - invalid input",
                steps=[TestStep(1, "Submit an empty form", "A validation message is shown")],
            ),
        ]

        result = await manager.test_plans.create_test_cases_in_plan(
            plan_id, story.id, story.title, test_cases
        )
        print(f"🗂  Suite {result.suite.id}: {result.suite.name}")
        for tc in result.test_cases:
            print(f"   ✅ Test case {tc.id}: {tc.title}")

        await manager.bulk_updates.bulk_update(story.id, test_cases=result.test_cases)
        for tc in result.test_cases:
            await manager.links.create(story.id, tc.id, "tested-by")
        print(f"\n🔗 Linked {len(result.test_cases)} test cases to story {story.id}")


if __name__ == '__main__':
    if len(sys.argv) != 3:
        print("Usage: create_test_cases_in_plan.py <plan_id> <story_id>")
        sys.exit(1)
    asyncio.run(main(int(sys.argv[1]), int(sys.argv[2])))
