from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from pydantic import ValidationError
from starlette.datastructures import UploadFile as StarletteUploadFile

from docdesk.api.deps import get_authorizer, get_bearer_token, get_ticket_service
from docdesk.core.exceptions import UnsupportedMediaTypeError, ValidationAppError
from docdesk.core.responses import format_validation_errors, success_response
from docdesk.schemas.ticket import (
    TicketCreated,
    TicketIntake,
    TicketTokenVerifyRequest,
    TicketTokenVerifyResponse,
    serialize_ticket,
)
from docdesk.services.authorizer import TicketAuthorizer
from docdesk.services.tickets import TicketService
from docdesk.services.uploads import UploadItem, read_upload_files

router = APIRouter(prefix="/tickets", tags=["Tickets"])


async def _parse_message_body(request: Request) -> tuple[str, list[UploadItem]]:
    content_type = (request.headers.get("content-type") or "").lower()

    if content_type.startswith("multipart/form-data"):
        form = await request.form()
        raw_content = form.get("content")
        content = raw_content if isinstance(raw_content, str) else ""
        uploads = [item for item in form.getlist("files") if isinstance(item, StarletteUploadFile)]
        return content, await read_upload_files(uploads)

    if content_type.startswith("application/json"):
        try:
            payload = await request.json()
        except ValueError as exc:
            raise ValidationAppError("Malformed JSON body") from exc
        if not isinstance(payload, dict):
            raise ValidationAppError("JSON body must be an object")
        raw_content = payload.get("content")
        return (str(raw_content) if raw_content is not None else ""), []

    raise UnsupportedMediaTypeError("Unsupported request format", details={"content_type": content_type or None})


@router.post("/anonymous", status_code=201)
async def create_anonymous_ticket(
    request: Request,
    title: str = Form(default=""),
    user_name: str = Form(default="", alias="userName"),
    email: str = Form(default=""),
    project_id: str | None = Form(default=None, alias="projectId"),
    project_name: str = Form(default="", alias="projectName"),
    description: str = Form(default=""),
    files: list[UploadFile] = File(default=[]),
    service: TicketService = Depends(get_ticket_service),
):
    required = {
        "title": title,
        "userName": user_name,
        "email": email,
        "projectName": project_name,
        "description": description,
    }
    missing = [name for name, value in required.items() if not value.strip()]
    if missing:
        raise ValidationAppError("Missing required fields", details={"missing": missing})

    try:
        intake = TicketIntake(
            title=title.strip(),
            user_name=user_name.strip(),
            email=email.strip(),
            project_id=project_id,
            project_name=project_name.strip(),
            description=description.strip(),
        )
    except ValidationError as exc:
        raise ValidationAppError("Invalid ticket fields", details={"errors": format_validation_errors(exc.errors())}) from exc

    ticket = await service.create_anonymous_ticket(intake, await read_upload_files(files))
    return success_response(data=TicketCreated(ticket_id=str(ticket.id)), request=request)


@router.post("/verify")
async def verify_ticket_token(
    payload: TicketTokenVerifyRequest,
    request: Request,
    authorizer: TicketAuthorizer = Depends(get_authorizer),
):
    ticket_id, email = authorizer.verify_ticket_link(payload.token)
    return success_response(data=TicketTokenVerifyResponse(ticket_id=ticket_id, email=email), request=request)


@router.get("/{ticket_id}")
async def get_ticket(
    ticket_id: UUID,
    request: Request,
    token: str | None = Depends(get_bearer_token),
    authorizer: TicketAuthorizer = Depends(get_authorizer),
    service: TicketService = Depends(get_ticket_service),
):
    principal = await authorizer.authorize(token, ticket_id)
    ticket = await service.get_ticket(principal, ticket_id)
    return success_response(data=serialize_ticket(ticket, include_messages=True), request=request)


@router.post("/{ticket_id}/messages")
async def post_ticket_message(
    ticket_id: UUID,
    request: Request,
    token: str | None = Depends(get_bearer_token),
    authorizer: TicketAuthorizer = Depends(get_authorizer),
    service: TicketService = Depends(get_ticket_service),
):
    principal = await authorizer.authorize(token, ticket_id)
    content, files = await _parse_message_body(request)
    ticket = await service.post_message(principal, ticket_id, content, files)
    return success_response(data=serialize_ticket(ticket, include_messages=True), request=request)
