"""Packing and routing a shipment without any model provider."""

import asyncio

from aiflow import Actions
from aiflow.persistence import InMemoryStorage

ITEMS = [
    {"id": "kettle", "length": 25, "width": 20, "height": 30, "weight": 1.8, "quantity": 3},
    {"id": "toaster", "length": 30, "width": 20, "height": 20, "weight": 2.5},
]
PACKAGES = [
    {"id": "medium", "length": 40, "width": 40, "height": 40, "weight_capacity": 10, "cost": 3.5},
    {"id": "large", "length": 60, "width": 50, "height": 50, "weight_capacity": 25, "cost": 6},
]
CARRIERS = [
    {"name": "RoadCo", "service_levels": ["standard", "express"], "rates": {"standard": 1.0, "express": 1.8}},
    {"name": "RailFreight", "service_levels": ["standard"], "rates": {"standard": 0.8}},
]
ORIGIN = {"latitude": 52.52, "longitude": 13.405, "address": "Berlin"}
DESTINATION = {"latitude": 48.1351, "longitude": 11.582, "address": "Munich"}


async def main():
    print("🚚 aiflow supply chain example\n")
    actions = Actions(storage=InMemoryStorage())

    result = await actions.optimize_supply_chain(ITEMS, PACKAGES, ORIGIN, DESTINATION, CARRIERS)
    if not result["success"]:
        print(f"❌ {result['error']}")
        return

    data = result["data"]
    packing = data["packing_solution"]
    print(f"📦 {packing['total_packages']} packages, cost {packing['total_cost']:.2f}")
    for package in packing["packages"]:
        print(f"   {package['package_id']}: {[item['item_id'] for item in package['items']]}")

    route = data["route"]
    print(f"🛣️  {route['carrier']} {route['service_level']}: {route['distance']:.0f} km, {route['cost']:.2f}")
    print(f"📅 Delivery by {data['delivery_date']}")
    for recommendation in data["recommendations"]:
        print(f"💡 {recommendation}")


if __name__ == "__main__":
    asyncio.run(main())
