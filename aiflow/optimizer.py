"""Packaging and shipping-route optimization.

Pure and synchronous: every method takes value objects (or plain dicts that
validate into them) and returns immutable results. Problems such as items
that fit nowhere are reported in the result rather than raised.
"""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

Rotation = Literal["xyz", "xzy", "yxz", "yzx", "zxy", "zyx"]
ROTATIONS: Tuple[Rotation, ...] = ("xyz", "xzy", "yxz", "yzx", "zxy", "zyx")

EARTH_RADIUS_KM = 6371
KM_PER_DAY = 800
SERVICE_TIME_MULTIPLIERS = {"express": 0.7, "economy": 1.5}


def _new_id() -> str:
    return str(uuid.uuid4())


class Item(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    id: str = Field(default_factory=_new_id)
    length: float
    width: float
    height: float
    weight: float
    quantity: int = 1
    value: Optional[float] = None
    fragile: Optional[bool] = None
    stackable: Optional[bool] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def volume(self) -> float:
        return self.length * self.width * self.height


class Package(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    id: str = Field(default_factory=_new_id)
    length: float
    width: float
    height: float
    weight_capacity: float
    cost: Optional[float] = None
    reusable: Optional[bool] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def volume(self) -> float:
        return self.length * self.width * self.height

    def holds(self, length: float, width: float, height: float) -> bool:
        return length <= self.length and width <= self.width and height <= self.height


class Position(BaseModel):
    model_config = ConfigDict(frozen=True)

    x: float = 0
    y: float = 0
    z: float = 0


class PackedItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    item_id: str
    position: Position = Field(default_factory=Position)
    rotation: Rotation = "xyz"


class PackageSolution(BaseModel):
    model_config = ConfigDict(frozen=True)

    package_id: str
    items: Tuple[PackedItem, ...]
    volume_utilization: float
    weight_utilization: float
    remaining_capacity: float


class PackingSolution(BaseModel):
    model_config = ConfigDict(frozen=True)

    packages: Tuple[PackageSolution, ...] = ()
    unassigned_items: Tuple[str, ...] = ()
    total_packages: int = 0
    total_volume_utilization: float = 0
    total_weight_utilization: float = 0
    total_cost: float = 0


class Location(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    latitude: float
    longitude: float
    address: str = ""


class Carrier(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    service_levels: Tuple[str, ...] = ()
    rates: Dict[str, float] = Field(default_factory=dict)


class ShippingRoute(BaseModel):
    model_config = ConfigDict(frozen=True)

    origin: Location
    destination: Location
    distance: float
    estimated_time: float
    cost: float
    carrier: str
    service_level: str
    carbon_footprint: float


class ShippingOptimizationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    packing_solution: PackingSolution
    route: Optional[ShippingRoute] = None
    total_cost: float
    delivery_date: Optional[datetime] = None
    carbon_footprint: float = 0
    recommendations: Tuple[str, ...] = ()


@dataclass
class _OpenPackage:
    package: Package
    items: List[PackedItem] = field(default_factory=list)
    volume_utilization: float = 0.0
    remaining_capacity: float = 0.0

    def add(self, item: Item, rotation: Rotation = "xyz") -> None:
        self.items.append(PackedItem(item_id=item.id, rotation=rotation))
        used_volume = self.volume_utilization * self.package.volume + item.volume
        self.volume_utilization = used_volume / self.package.volume if self.package.volume else 0.0
        self.remaining_capacity -= item.weight

    def freeze(self) -> PackageSolution:
        capacity = self.package.weight_capacity
        return PackageSolution(
            package_id=self.package.id,
            items=tuple(self.items),
            volume_utilization=self.volume_utilization,
            weight_utilization=(capacity - self.remaining_capacity) / capacity if capacity else 0.0,
            remaining_capacity=self.remaining_capacity,
        )


def rotated_dimensions(item: Item, rotation: Rotation) -> Tuple[float, float, float]:
    l, w, h = item.length, item.width, item.height
    return {
        "xyz": (l, w, h),
        "xzy": (l, h, w),
        "yxz": (w, l, h),
        "yzx": (w, h, l),
        "zxy": (h, l, w),
        "zyx": (h, w, l),
    }[rotation]


def haversine_km(origin: Location, destination: Location) -> float:
    """Great-circle distance between two coordinates in kilometres."""
    d_lat = math.radians(destination.latitude - origin.latitude)
    d_lon = math.radians(destination.longitude - origin.longitude)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(origin.latitude))
        * math.cos(math.radians(destination.latitude))
        * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def _coerce(model: type[BaseModel], values: Iterable[Any]) -> list:
    return [v if isinstance(v, model) else model.model_validate(v) for v in values or []]


class SupplyChainOptimizer:
    """First-fit-decreasing packing plus carrier route scoring."""

    def optimize_packaging(self, items: Iterable[Any], available_packages: Iterable[Any]) -> PackingSolution:
        """Pack every unit of every item into the fewest, smallest packages.

        Fit is checked by remaining weight capacity and raw dimensions only;
        the spatial footprint of already placed items is ignored.
        """
        sorted_items = sorted(_coerce(Item, items), key=lambda i: i.volume, reverse=True)
        sorted_packages = sorted(_coerce(Package, available_packages), key=lambda p: p.volume)

        opened: List[_OpenPackage] = []
        unassigned: List[str] = []
        total_cost = 0.0

        for item in sorted_items:
            for _ in range(item.quantity):
                if self._place_in_open(item, opened):
                    continue
                new_package = next(
                    (
                        pkg
                        for pkg in sorted_packages
                        if pkg.holds(item.length, item.width, item.height)
                        and item.weight <= pkg.weight_capacity
                    ),
                    None,
                )
                if new_package is None:
                    unassigned.append(item.id)
                    continue
                box = _OpenPackage(package=new_package, remaining_capacity=new_package.weight_capacity)
                box.add(item)
                opened.append(box)
                total_cost += new_package.cost or 0

        total_volume = sum(box.package.volume for box in opened)
        used_volume = sum(box.package.volume * box.volume_utilization for box in opened)
        total_weight = sum(box.package.weight_capacity for box in opened)
        used_weight = sum(box.package.weight_capacity - box.remaining_capacity for box in opened)

        if unassigned:
            logger.debug(f"{len(unassigned)} item units could not be packed")

        return PackingSolution(
            packages=tuple(box.freeze() for box in opened),
            unassigned_items=tuple(unassigned),
            total_packages=len(opened),
            total_volume_utilization=used_volume / total_volume if total_volume > 0 else 0,
            total_weight_utilization=used_weight / total_weight if total_weight > 0 else 0,
            total_cost=total_cost,
        )

    def _place_in_open(self, item: Item, opened: List[_OpenPackage]) -> bool:
        for box in opened:
            if item.weight > box.remaining_capacity:
                continue
            if not box.package.holds(item.length, item.width, item.height):
                continue
            for rotation in ROTATIONS:
                if box.package.holds(*rotated_dimensions(item, rotation)):
                    box.add(item, rotation)
                    return True
        return False

    def optimize_shipping_routes(
        self,
        origin: Any,
        destination: Any,
        packages: Iterable[Any],
        carriers: Iterable[Any],
    ) -> List[ShippingRoute]:
        """Score every carrier service level; cheapest first."""
        origin = origin if isinstance(origin, Location) else Location.model_validate(origin)
        destination = (
            destination if isinstance(destination, Location) else Location.model_validate(destination)
        )
        package_list = _coerce(Package, packages)
        total_weight = sum(pkg.weight_capacity for pkg in package_list)
        total_volume = sum(pkg.volume for pkg in package_list)
        distance = haversine_km(origin, destination)

        routes: List[ShippingRoute] = []
        for carrier in _coerce(Carrier, carriers):
            for service_level in carrier.service_levels:
                rate = carrier.rates.get(service_level) or 1.0
                routes.append(
                    ShippingRoute(
                        origin=origin,
                        destination=destination,
                        distance=distance,
                        estimated_time=distance
                        / KM_PER_DAY
                        * SERVICE_TIME_MULTIPLIERS.get(service_level, 1.0),
                        cost=(total_weight * 0.5 + total_volume * 0.001 + distance * 0.1) * rate,
                        carrier=carrier.name,
                        service_level=service_level,
                        carbon_footprint=distance * total_weight * 0.1,
                    )
                )
        return sorted(routes, key=lambda route: route.cost)

    def optimize_supply_chain(
        self,
        items: Iterable[Any],
        available_packages: Iterable[Any],
        origin: Any,
        destination: Any,
        carriers: Iterable[Any],
        now: Optional[datetime] = None,
    ) -> ShippingOptimizationResult:
        """Pack, route and annotate the result with recommendations."""
        packages = _coerce(Package, available_packages)
        packing = self.optimize_packaging(items, packages)
        by_id = {pkg.id: pkg for pkg in packages}
        used_packages = [by_id[solution.package_id] for solution in packing.packages]
        routes = self.optimize_shipping_routes(origin, destination, used_packages, carriers)

        recommendations = self._packing_recommendations(packing)

        if not routes:
            logger.warning("No shipping routes available for supply chain optimization")
            recommendations.append(
                "No shipping routes are available. Check the carrier configuration and service levels."
            )
            return ShippingOptimizationResult(
                packing_solution=packing,
                total_cost=packing.total_cost,
                recommendations=tuple(recommendations),
            )

        best = routes[0]
        now = now or datetime.now(timezone.utc)

        if len(routes) > 1 and routes[1].cost < best.cost * 0.9:
            recommendations.append(
                f"Consider using {routes[1].carrier} {routes[1].service_level} service to save "
                f"{best.cost - routes[1].cost:.2f} in shipping costs."
            )

        low_carbon = next(
            (r for r in routes if r.carbon_footprint < best.carbon_footprint * 0.8), None
        )
        if low_carbon is not None:
            reduction = (best.carbon_footprint - low_carbon.carbon_footprint) / best.carbon_footprint * 100
            recommendations.append(
                f"Consider using {low_carbon.carrier} {low_carbon.service_level} service to reduce "
                f"carbon footprint by {reduction:.1f}%."
            )

        return ShippingOptimizationResult(
            packing_solution=packing,
            route=best,
            total_cost=packing.total_cost + best.cost,
            delivery_date=now + timedelta(days=best.estimated_time),
            carbon_footprint=best.carbon_footprint,
            recommendations=tuple(recommendations),
        )

    @staticmethod
    def _packing_recommendations(packing: PackingSolution) -> List[str]:
        recommendations: List[str] = []
        if packing.unassigned_items:
            recommendations.append(
                f"{len(packing.unassigned_items)} items could not be packed. "
                "Consider using larger packages or splitting the shipment."
            )
        if packing.total_volume_utilization < 0.7:
            recommendations.append(
                f"Low volume utilization ({packing.total_volume_utilization * 100:.1f}%). "
                "Consider using smaller packages or consolidating shipments."
            )
        if packing.total_weight_utilization < 0.5:
            recommendations.append(
                f"Low weight utilization ({packing.total_weight_utilization * 100:.1f}%). "
                "Consider using packages with lower weight capacity."
            )
        return recommendations
