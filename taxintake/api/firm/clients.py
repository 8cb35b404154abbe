from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from taxintake.api.errors import iso_or_none
from taxintake.core.deps import firm_member
from taxintake.db.session import get_db
from taxintake.models.client import Client
from taxintake.models.firm import Firm
from taxintake.schemas.filings import ClientCreate, ClientRead

router = APIRouter()


def ensure_firm(db: Session, member: dict) -> Firm:
    """Firms are provisioned by the auth provider; mirror the tenant row on first use."""
    firm_id: uuid.UUID = member["firm_id"]
    firm = db.get(Firm, firm_id)
    if firm is None:
        firm = Firm(id=firm_id, name=str(member.get("firm_name") or "").strip() or "Firm")
        db.add(firm)
        db.flush()
    return firm


def serialize_client(row: Client) -> ClientRead:
    return ClientRead(
        id=row.id,
        full_name=row.full_name,
        email=row.email,
        phone=row.phone,
        created_at=iso_or_none(row.created_at),
    )


@router.post("", response_model=ClientRead, status_code=201)
def create_client(
    payload: ClientCreate,
    db: Session = Depends(get_db),
    member: dict = Depends(firm_member),
):
    firm = ensure_firm(db, member)
    row = Client(
        firm_id=firm.id,
        full_name=payload.full_name.strip(),
        email=str(payload.email or "").strip().lower() or None,
        phone=str(payload.phone or "").strip() or None,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return serialize_client(row)


@router.get("", response_model=list[ClientRead])
def list_clients(
    db: Session = Depends(get_db),
    member: dict = Depends(firm_member),
):
    rows = (
        db.query(Client)
        .filter(Client.firm_id == member["firm_id"])
        .order_by(Client.full_name.asc(), Client.created_at.asc())
        .all()
    )
    return [serialize_client(row) for row in rows]
