"""Resource discovery: search the inventory, pick an item, reserve it."""

from __future__ import annotations

from typing import Any, Mapping

from ..contracts import ValidationResult, WorkflowInstance
from ..errors import ServiceError
from ..registry import WorkflowDefinition, definition
from ..services import InventoryService, NotificationService, ServiceBundle
from ..utils.tasks import fire_and_forget
from ._common import choices, describe, find_item

WORKFLOW_TYPE = "find_resource"


class SearchResources:
    name = "search"

    def __init__(self, inventory: InventoryService) -> None:
        self._inventory = inventory

    async def validate(
        self, data: Mapping[str, Any], instance: WorkflowInstance
    ) -> ValidationResult:
        if not (data.get("query") or data.get("category")):
            return ValidationResult.invalid("What kind of resource do you need?")
        return ValidationResult.ok()

    async def execute(
        self, data: Mapping[str, Any], instance: WorkflowInstance
    ) -> Mapping[str, Any]:
        found = await self._inventory.search(
            query=data.get("query"), category=data.get("category")
        )
        return {
            "search_criteria": {
                "query": data.get("query"),
                "category": data.get("category"),
            },
            "available_resources": [
                r.model_dump(mode="json") for r in found if r.quantity_available > 0
            ],
        }

    def prompt(self, instance: WorkflowInstance) -> str:
        return "What are you looking for? Give a name or a category such as hardware or space."


class SelectResource:
    name = "select"

    def __init__(self, inventory: InventoryService) -> None:
        self._inventory = inventory

    async def validate(
        self, data: Mapping[str, Any], instance: WorkflowInstance
    ) -> ValidationResult:
        candidates = instance.step_data.get("available_resources", [])
        if not candidates:
            return ValidationResult.invalid(
                "Nothing in stock matched your search; cancel and search again."
            )
        resource_id = data.get("resource_id")
        chosen = find_item(candidates, resource_id)
        if chosen is None:
            return ValidationResult.invalid(
                f"{resource_id!r} is not one of the resources I found.",
                suggestions=choices(candidates),
            )
        live = await self._inventory.get(resource_id)
        if live is None or live.quantity_available < 1:
            in_stock = []
            for candidate in candidates:
                if candidate["id"] == resource_id:
                    continue
                other = await self._inventory.get(candidate["id"])
                if other is not None and other.quantity_available > 0:
                    in_stock.append(candidate)
            return ValidationResult.invalid(
                f"{chosen['name']} is out of stock.", suggestions=choices(in_stock)
            )
        return ValidationResult.ok()

    async def execute(
        self, data: Mapping[str, Any], instance: WorkflowInstance
    ) -> Mapping[str, Any]:
        resource = await self._inventory.get(data["resource_id"])
        if resource is None:
            raise ServiceError(f"Resource {data['resource_id']} could not be loaded")
        return {"selected_resource": resource.model_dump(mode="json")}

    def prompt(self, instance: WorkflowInstance) -> str:
        candidates = instance.step_data.get("available_resources", [])
        if not candidates:
            return "Nothing matching is in stock right now."
        return f"Available: {describe(candidates)}. Which one do you want?"


class ReserveResource:
    name = "reserve"

    def __init__(
        self, inventory: InventoryService, notifications: NotificationService
    ) -> None:
        self._inventory = inventory
        self._notifications = notifications

    async def validate(
        self, data: Mapping[str, Any], instance: WorkflowInstance
    ) -> ValidationResult:
        selected = instance.step_data.get("selected_resource", {})
        live = await self._inventory.get(selected.get("id"))
        limit = live.quantity_available if live is not None else 0
        if limit < 1:
            return ValidationResult.invalid(
                f"{selected.get('name')} is out of stock; cancel and search again."
            )
        quantity = data.get("quantity", 1)
        if not isinstance(quantity, int) or isinstance(quantity, bool) or not 1 <= quantity <= limit:
            return ValidationResult.invalid(
                f"Choose a quantity between 1 and {limit}.",
                suggestions=list(range(1, limit + 1)),
            )
        return ValidationResult.ok()

    async def execute(
        self, data: Mapping[str, Any], instance: WorkflowInstance
    ) -> Mapping[str, Any]:
        selected = instance.step_data["selected_resource"]
        reservation = await self._inventory.reserve(
            instance.owner_id, selected["id"], data.get("quantity", 1)
        )
        fire_and_forget(
            self._notifications.notify(
                instance.owner_id,
                f"Reserved {reservation.quantity} x {selected['name']}.",
            ),
            "reservation confirmation",
        )
        return {"reservation": reservation.model_dump(mode="json")}

    def prompt(self, instance: WorkflowInstance) -> str:
        selected = instance.step_data.get("selected_resource", {})
        return (
            f"How many {selected.get('name')} do you need? "
            f"{selected.get('quantity_available')} available."
        )


def _completed(instance: WorkflowInstance) -> str:
    reservation = instance.step_data["reservation"]
    selected = instance.step_data["selected_resource"]
    location = selected.get("location") or "the front desk"
    return (
        f"Reserved {reservation['quantity']} x {selected['name']} "
        f"(reservation {reservation['id']}); pick up at {location}."
    )


def build_definition(services: ServiceBundle) -> WorkflowDefinition:
    return definition(
        WORKFLOW_TYPE,
        [
            SearchResources(services.inventory),
            SelectResource(services.inventory),
            ReserveResource(services.inventory, services.notifications),
        ],
        description="Find and reserve campus equipment or space",
        completion_prompt=_completed,
    )
