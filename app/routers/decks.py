from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from starlette.status import HTTP_201_CREATED

from app.core.errors import status_payload
from app.core.security import get_current_user
from app.db.database import get_db
from app.db.models import CardDeck, User
from app.routers.cards import card_out
from app.schemas.flash import DeckCreateIn, DeckOut, DeckUpdateIn
from app.services import decks as deck_service

router = APIRouter(prefix="/decks", tags=["decks"])


def deck_out(d: CardDeck) -> DeckOut:
    return DeckOut(
        id=d.id,
        name=d.name,
        description=d.description,
        group_id=d.group_id,
        category_id=d.category_id,
        card_ids=[c.id for c in d.cards],
        cards_count=len(d.cards),
    )


@router.post("", response_model=DeckOut, status_code=HTTP_201_CREATED)
def create_deck(
    payload: DeckCreateIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return deck_out(deck_service.create_deck(db, payload, author=user))


@router.get("")
def list_decks(db: Session = Depends(get_db)):
    return {"items": [deck_out(d) for d in deck_service.list_decks(db)]}


@router.get("/{deck_id}", response_model=DeckOut)
def get_deck(deck_id: int, db: Session = Depends(get_db)):
    return deck_out(deck_service.get_deck(db, deck_id))


@router.get("/{deck_id}/cards")
def list_deck_cards(
    deck_id: int,
    start: Optional[int] = Query(default=None),
    size: Optional[int] = Query(default=None),
    db: Session = Depends(get_db),
):
    cards = deck_service.get_deck_cards(db, deck_id, start=start, size=size)
    return {"items": [card_out(c) for c in cards]}


@router.put("/{deck_id}", response_model=DeckOut)
def replace_deck(
    deck_id: int,
    payload: DeckUpdateIn,
    append: bool = False,
    redirect: bool = False,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    d = deck_service.update_deck(db, deck_id, payload, method="PUT", append=append, redirect=redirect, author=user)
    return deck_out(d)


@router.patch("/{deck_id}", response_model=DeckOut)
def patch_deck(
    deck_id: int,
    payload: DeckUpdateIn,
    append: bool = False,
    redirect: bool = False,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    d = deck_service.update_deck(db, deck_id, payload, method="PATCH", append=append, redirect=redirect, author=user)
    return deck_out(d)


@router.delete("/{deck_id}")
def delete_deck(
    deck_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    deck_service.delete_deck(db, deck_id)
    return status_payload(200, "Deck has been deleted, its cards were detached.", deck_id)
