"""Running a tool-using agent against a real provider.

Requires OPENAI_API_KEY. Set AIFLOW_GATEWAY=pydantic_ai to route the same
calls through pydantic-ai instead of the raw HTTP gateway.
"""

import asyncio
import os

from aiflow import Actions, AgentStore
from aiflow.agent import AgentDefinition, AIModel
from aiflow.persistence import InMemoryStorage

ORDERS = [
    {"id": "o-1", "customer": "Acme", "status": "open", "weight": 12},
    {"id": "o-2", "customer": "Globex", "status": "shipped", "weight": 4},
    {"id": "o-3", "customer": "Acme", "status": "open", "weight": 30},
]


async def main():
    print("🤖 aiflow agent example\n")
    if not os.getenv("OPENAI_API_KEY"):
        print("❌ Set OPENAI_API_KEY to run this example")
        return

    storage = InMemoryStorage()
    await storage.insert("orders", ORDERS)
    await AgentStore(storage).save_agent(
        AgentDefinition(
            id="dispatcher",
            name="Dispatcher",
            system_prompt="You help a warehouse team plan shipments. Use the tools for facts.",
            tools=["query_database", "estimate_shipping_cost"],
            model=AIModel(id="gpt-4o-mini", provider="openai", model_id="gpt-4o-mini"),
        )
    )

    actions = Actions(storage=storage)
    try:
        result = await actions.execute_agent(
            "dispatcher",
            "Which Acme orders are still open, and what would shipping the heaviest one "
            "from zip 10001 to 94105 cost?",
            max_iterations=4,
        )
    finally:
        await actions.gateways.aclose()

    if not result["success"]:
        print(f"❌ {result['error']}")
        return
    data = result["data"]
    for call in data["tool_calls"]:
        print(f"🔧 {call['tool']}({call['params']})")
    print(f"\n💬 {result['response']}")
    print(f"\n🎉 {data['iterations']} iterations, {data['tokens']['total']} tokens")


if __name__ == "__main__":
    asyncio.run(main())
