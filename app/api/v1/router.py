from fastapi import APIRouter
from app.api.v1.endpoints import admin, appointments, bookings, events, owner_orders
from app.core.deps import get_current_business_owner, get_current_provider
from app.services.channels import BUSINESS_OWNER, PROVIDER

api_router = APIRouter()

# Customer side
api_router.include_router(bookings.build_router(PROVIDER), prefix="/bookings", tags=["bookings"])
api_router.include_router(appointments.build_router(PROVIDER), prefix="/appointments", tags=["appointments"])
api_router.include_router(
    bookings.build_router(BUSINESS_OWNER), prefix="/business-owner-bookings", tags=["business-owner-bookings"]
)
api_router.include_router(
    appointments.build_router(BUSINESS_OWNER), prefix="/business-owner-appointments", tags=["business-owner-appointments"]
)
api_router.include_router(events.router, prefix="/events", tags=["events"])

# Owner side
api_router.include_router(
    owner_orders.build_router(PROVIDER, get_current_provider), prefix="/providers", tags=["providers"]
)
api_router.include_router(
    owner_orders.build_router(BUSINESS_OWNER, get_current_business_owner), prefix="/business-owners", tags=["business-owners"]
)

api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
