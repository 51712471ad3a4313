"""Copy service details into a booking or appointment at creation time.

Snapshots are plain JSON values. Later edits to the service never reach
records that were created from it.
"""

import copy

from app.core.exceptions import NotFound
from app.models.service import Service


def _category_fields(service) -> dict:
    if isinstance(service, Service):
        return {"category": service.category}
    return {"categories": list(service.categories or [])}


def booking_snapshot(service) -> dict:
    snapshot = {
        "service_name": service.headline,
        "service_photo": service.service_photo,
        "base_price": float(service.base_price or 0),
    }
    snapshot.update(_category_fields(service))
    return snapshot


def appointment_snapshot(service) -> dict:
    snapshot = {
        "service_name": service.headline,
        "service_photo": service.service_photo,
    }
    snapshot.update(_category_fields(service))
    return snapshot


def selected_slot_snapshot(service, slot_id: str) -> dict:
    slot = service.find_slot(slot_id)
    if slot is None:
        raise NotFound("Selected slot not found for this service")
    slot = copy.deepcopy(slot)
    return {
        "slot_id": str(slot.get("slot_id")),
        "duration": slot.get("duration"),
        "duration_unit": slot.get("duration_unit"),
        "price": float(slot.get("price") or 0),
    }
