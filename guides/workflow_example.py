"""Running a stored workflow end to end with in-memory storage."""

import asyncio
import json
from pathlib import Path

import yaml

from aiflow import Actions
from aiflow.persistence import InMemoryStorage

SALES = [
    {"date": "2024-01-04", "amount": 120, "region": "north"},
    {"date": "2024-01-19", "amount": 80, "region": "south"},
    {"date": "2024-02-02", "amount": 150, "region": "north"},
    {"date": "2024-03-07", "amount": 170, "region": "north"},
    {"date": "2024-03-21", "amount": 95, "region": "south"},
]


async def main():
    """Create the sales report workflow and run it once per region."""
    print("📊 aiflow workflow example\n")

    storage = InMemoryStorage()
    await storage.insert("sales", SALES)
    actions = Actions(storage=storage)

    definition = yaml.safe_load((Path(__file__).parent / "sales_report.yaml").read_text())
    created = await actions.create_workflow(definition, user_id="demo")
    if not created["success"]:
        print(f"❌ {created['error']}")
        return
    workflow_id = created["data"]["id"]
    print(f"✅ Created workflow {workflow_id}")

    for region in ("north", "south"):
        result = await actions.execute_workflow(workflow_id, "demo", {"region": region})
        data = result["data"]
        print(f"\n🔁 {region}: {data['status']} in {data['execution_time']} ms")
        amount = data["results"]["summary"]["fields"]["amount"]
        print(f"   total {amount['sum']} over {amount['count']} sales")
        print(f"   forecast {json.dumps(data['results']['forecast']['forecasts'])}")

    runs = await actions.list_workflow_runs(workflow_id, "demo")
    print(f"\n🎉 {len(runs['data'])} runs recorded")


if __name__ == "__main__":
    asyncio.run(main())
