from fastapi import APIRouter

from cashplan.api.routes import health, journal, orders

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(orders.router)
api_router.include_router(journal.router)
