#!/usr/bin/env python
"""Query the current sprint and its work items"""
import asyncio

from dotenv import load_dotenv

from ado_orchestrator.config import AdoConfig
from ado_orchestrator.constants import LinkType
from ado_orchestrator.service_manager import ServiceManager


async def main():
    load_dotenv()
    config = AdoConfig.from_env()

    print(f"🔗 Organization: {config.organization_url}")
    print(f"📁 Project: {config.project}\n")

    async with ServiceManager(config) as manager:
        print("=" * 70)
        print("📊 CURRENT SPRINT")
        print("=" * 70)

        sprint = await manager.sprints.get_current_sprint()
        print(f"\n🏃 Sprint: {sprint.name}")
        print(f"📂 Path: {sprint.path}")
        print(f"📅 Start: {sprint.start_date or 'Not set'}")
        print(f"📅 End: {sprint.finish_date or 'Not set'}")

        print(f"\n{'=' * 70}")
        print("📋 WORK ITEMS")
        print("=" * 70)

        items = await manager.workitems.query({"sprint": sprint.path})
        if not items:
            print("\n  No work items found in current sprint")

        for idx, item in enumerate(items, 1):
            print(f"\n{idx}. [{item.type}] {item.title}")
            print(f"   ID: {item.id}")
            print(f"   State: {item.fields.state}")
            print(f"   Assigned To: {item.fields.assigned_to or 'Unassigned'}")
            children = [r.target_id for r in item.relations if r.link_type is LinkType.HIERARCHY_FORWARD]
            if children:
                print(f"   Children: {', '.join(str(c) for c in children)}")

    print(f"\n{'=' * 70}")
    print("✓ Query completed successfully!")
    print("=" * 70)


if __name__ == '__main__':
    asyncio.run(main())
