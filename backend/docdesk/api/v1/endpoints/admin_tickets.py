from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request

from docdesk.api.deps import get_current_staff, get_ticket_service
from docdesk.core.enums import TicketStatus
from docdesk.core.responses import success_response
from docdesk.schemas.ticket import TicketStatusUpdate, serialize_ticket
from docdesk.services.authorizer import Principal
from docdesk.services.tickets import TicketService

router = APIRouter(prefix="/admin/tickets", tags=["Admin Tickets"])


@router.get("")
async def admin_list_tickets(
    request: Request,
    _staff: Principal = Depends(get_current_staff),
    service: TicketService = Depends(get_ticket_service),
    q: str | None = Query(default=None),
    status: TicketStatus | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
):
    items, total = await service.list_tickets(q=q, status=status, limit=limit, offset=offset)
    data = [serialize_ticket(item) for item in items]
    return success_response(data=data, request=request, pagination={"total": total, "limit": limit, "offset": offset})


@router.patch("/{ticket_id}/status")
async def admin_update_ticket_status(
    ticket_id: UUID,
    payload: TicketStatusUpdate,
    request: Request,
    _staff: Principal = Depends(get_current_staff),
    service: TicketService = Depends(get_ticket_service),
):
    ticket = await service.update_status(ticket_id, payload.status)
    return success_response(data=serialize_ticket(ticket, include_messages=True), request=request)
