from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.db.database import get_db
from app.routers.cards import card_out, tag_out
from app.schemas.flash import TagOut
from app.services import tags as tag_service

router = APIRouter(prefix="/tags", tags=["tags"])


@router.get("")
def list_tags(
    sort_by: Optional[str] = Query(default=None, alias="sortBy", description="ex: usageCount desc"),
    starts_with: Optional[str] = Query(default=None, alias="startsWith"),
    db: Session = Depends(get_db),
):
    tags = tag_service.list_tags(db, sort_by=sort_by, starts_with=starts_with)
    return {"items": [tag_out(t) for t in tags]}


# déclaré avant /{tag_id} pour ne pas être pris pour un id
@router.get("/cards")
def cards_with_all_tags(
    ids: List[int] = Query(default=[], alias="id"),
    names: List[str] = Query(default=[], alias="name"),
    db: Session = Depends(get_db),
):
    cards = tag_service.cards_with_all_tags(db, ids, names)
    return {"items": [card_out(c) for c in cards]}


@router.get("/{tag_id}", response_model=TagOut)
def get_tag(tag_id: int, db: Session = Depends(get_db)):
    return tag_out(tag_service.get_tag(db, tag_id))


@router.get("/{tag_id}/cards")
def get_attached_cards(tag_id: int, db: Session = Depends(get_db)):
    return {"items": [card_out(c) for c in tag_service.get_attached_cards(db, tag_id)]}
