from fastapi import APIRouter

from docdesk.api.v1.endpoints import admin_tickets, tickets

api_router = APIRouter()
api_router.include_router(tickets.router)
api_router.include_router(admin_tickets.router)
