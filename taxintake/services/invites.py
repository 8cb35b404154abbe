from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.orm import Session

from taxintake.core.config import settings
from taxintake.models.client_invite import (
    INVITE_STATUS_OPENED,
    INVITE_STATUS_PENDING,
    INVITE_STATUS_REVOKED,
    ClientInvite,
)
from taxintake.models.common import as_utc, utcnow
from taxintake.models.filing import Filing
from taxintake.services.email_service import EmailDeliveryError, send_invite_email

_LOG = logging.getLogger("taxintake.invites")


class InviteError(Exception):
    status_code = 400


class InviteNotFoundError(InviteError):
    status_code = 404


class InviteRevokedError(InviteError):
    status_code = 403


class InviteExpiredError(InviteError):
    status_code = 410


def invite_link(token: str) -> str:
    base_url = str(settings.PUBLIC_SITE_URL or "").strip().rstrip("/")
    return f"{base_url}/intake/{token}"


def create_invite(
    db: Session,
    filing: Filing,
    *,
    email: str | None = None,
    created_by: str | None = None,
    now: datetime | None = None,
) -> ClientInvite:
    issued_at = now or utcnow()
    invite = ClientInvite(
        filing_id=filing.id,
        email=str(email or "").strip().lower() or None,
        token=str(uuid.uuid4()),
        expires_at=issued_at + timedelta(days=int(settings.INVITE_TTL_DAYS)),
        status=INVITE_STATUS_PENDING,
        created_by=created_by,
    )
    db.add(invite)
    db.commit()
    db.refresh(invite)
    _LOG.info("invite created filing_id=%s invite_id=%s", filing.id, invite.id)
    return invite


def deliver_invite(invite: ClientInvite, filing: Filing) -> dict[str, Any] | None:
    """E-mail the link when the invite has an address. Delivery failure is reported, not raised."""
    if not invite.email:
        return None
    try:
        return send_invite_email(
            email=invite.email,
            link=invite_link(invite.token),
            form_code=filing.form_code,
            tax_year=filing.tax_year,
            expires_at=as_utc(invite.expires_at).date().isoformat(),
        )
    except EmailDeliveryError as exc:
        _LOG.warning("invite email failed invite_id=%s: %s", invite.id, exc)
        return {"status": "failed", "sent": False, "message": str(exc)}


def resolve_invite(db: Session, token: str, *, now: datetime | None = None) -> ClientInvite:
    """Look up a live invite by token; the first successful lookup marks it opened."""
    invite = (
        db.query(ClientInvite).filter(ClientInvite.token == str(token or "").strip()).first()
        if token
        else None
    )
    if invite is None:
        raise InviteNotFoundError("Invite not found")
    if invite.status == INVITE_STATUS_REVOKED:
        raise InviteRevokedError("Invite has been revoked")
    if as_utc(invite.expires_at) <= (now or utcnow()):
        raise InviteExpiredError("Invite has expired")
    if invite.status == INVITE_STATUS_PENDING:
        invite.status = INVITE_STATUS_OPENED
        db.add(invite)
        db.commit()
        db.refresh(invite)
    return invite


def revoke_invite(db: Session, invite: ClientInvite) -> ClientInvite:
    invite.status = INVITE_STATUS_REVOKED
    db.add(invite)
    db.commit()
    db.refresh(invite)
    _LOG.info("invite revoked invite_id=%s", invite.id)
    return invite
