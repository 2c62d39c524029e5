"""
api/routes/v1/contact.py -- Contact form and admin inbox REST endpoints.

Routes:
  POST   /api/contact/submit        -- public submission (rate-limited, 201)
  GET    /api/contact               -- paginated inbox, newest first (admin)
  GET    /api/contact/{id}          -- one message (admin)
  PUT    /api/contact/{id}/status   -- set status (admin)
  DELETE /api/contact/{id}          -- delete (admin)
  POST   /api/contact/{id}/reply    -- email the submitter and record the reply (admin)

Emails: the admin notification and the auto-reply run after the response
and never fail a submission. The admin reply is sent inline; if it cannot
be delivered nothing is recorded and the caller gets a 500.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from fastapi.responses import JSONResponse

from api.limiter import SUBMIT_LIMIT, limiter
from api.models import (
    ApiResponse,
    ContactListData,
    ContactOut,
    ContactPagination,
    ContactReceipt,
    ContactReplyRequest,
    ContactStatusRequest,
    ContactSubmitRequest,
)
from api.responses import respond
from auth.dependencies import require_admin
from auth.models import UserAccount
from core.db import format_timestamp
from core.errors import NotFoundError, UpstreamFailureError
from core.mailer import MailDeliveryError, send_best_effort
from directory.models import AdminResponse, ContactMessage, ContactStatus
from directory.notifications import ContactNotifier
from directory.store import DirectoryStore

logger = logging.getLogger("gatehouse.directory")

# Auth policy:
# - POST /api/contact/submit: public, rate-limited
# - every other route:        requires admin (require_admin)
router = APIRouter()


def _load(request: Request, contact_id: int) -> ContactMessage:
    contact = request.app.state.directory_store.get_contact(contact_id)
    if contact is None:
        raise NotFoundError("Contact message not found")
    return contact


@limiter.limit(SUBMIT_LIMIT)  # spam mitigation -- must be ABOVE @router
@router.post("/contact/submit", response_model=ApiResponse[ContactReceipt], status_code=201)
def submit_contact(request: Request, body: ContactSubmitRequest, background_tasks: BackgroundTasks) -> JSONResponse:
    directory_store: DirectoryStore = request.app.state.directory_store
    notifier: ContactNotifier = request.app.state.contact_notifier
    contact = ContactMessage(
        name=body.name,
        email=str(body.email),
        phone=body.phone,
        subject=body.subject,
        message=body.message,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    directory_store.create_contact(contact)
    logger.info("Contact message %d received", contact.id)
    background_tasks.add_task(send_best_effort, notifier.notify_admin, contact)
    background_tasks.add_task(send_best_effort, notifier.auto_reply, contact)
    receipt = ContactReceipt(id=contact.id, name=contact.name, email=contact.email)
    return respond(receipt, "Thank you for your message. We will get back to you soon.", status_code=201)


@router.get("/contact", response_model=ApiResponse[ContactListData])
def list_contacts(
    request: Request,
    status: Optional[ContactStatus] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    _admin: UserAccount = Depends(require_admin),
) -> JSONResponse:
    directory_store: DirectoryStore = request.app.state.directory_store
    contacts = directory_store.list_contacts(status, page=page, limit=limit)
    total = directory_store.count_contacts(status)
    data = ContactListData(
        contacts=[ContactOut.from_contact(c) for c in contacts],
        pagination=ContactPagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit)),
    )
    return respond(data)


@router.get("/contact/{contact_id}", response_model=ApiResponse[ContactOut])
def get_contact(request: Request, contact_id: int, _admin: UserAccount = Depends(require_admin)) -> JSONResponse:
    return respond(ContactOut.from_contact(_load(request, contact_id)))


@router.put("/contact/{contact_id}/status", response_model=ApiResponse[ContactOut])
def update_contact_status(
    request: Request,
    contact_id: int,
    body: ContactStatusRequest,
    _admin: UserAccount = Depends(require_admin),
) -> JSONResponse:
    directory_store: DirectoryStore = request.app.state.directory_store
    if not directory_store.update_contact_status(contact_id, body.status):
        raise NotFoundError("Contact message not found")
    return respond(ContactOut.from_contact(_load(request, contact_id)), "Status updated successfully")


@router.delete("/contact/{contact_id}")
def delete_contact(request: Request, contact_id: int, _admin: UserAccount = Depends(require_admin)) -> JSONResponse:
    directory_store: DirectoryStore = request.app.state.directory_store
    if not directory_store.delete_contact(contact_id):
        raise NotFoundError("Contact message not found")
    return respond(message="Contact message deleted successfully")


@router.post("/contact/{contact_id}/reply", response_model=ApiResponse[ContactOut])
def reply_to_contact(
    request: Request,
    contact_id: int,
    body: ContactReplyRequest,
    admin: UserAccount = Depends(require_admin),
) -> JSONResponse:
    """Send the reply first; record it only once it has been delivered."""
    contact = _load(request, contact_id)
    notifier: ContactNotifier = request.app.state.contact_notifier
    try:
        notifier.send_reply(contact, body.message, admin.full_name, admin.email)
    except MailDeliveryError as exc:
        logger.exception("Reply to contact message %d failed", contact_id)
        raise UpstreamFailureError("Failed to send reply email. Please try again later.") from exc
    response = AdminResponse(
        message=body.message,
        admin_name=admin.full_name,
        admin_email=admin.email,
        responded_at=format_timestamp(datetime.now(timezone.utc)),
    )
    directory_store: DirectoryStore = request.app.state.directory_store
    directory_store.record_reply(contact_id, response)
    return respond(ContactOut.from_contact(_load(request, contact_id)), "Reply sent successfully")
