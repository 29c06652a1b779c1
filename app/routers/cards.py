from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from starlette.status import HTTP_201_CREATED

from app.core.errors import status_payload
from app.core.security import get_current_user
from app.db.database import get_db
from app.db.models import FlashCard, Tag, User
from app.schemas.flash import (
    AnswerOut, CardCreateIn, CardOut, CardUpdateIn,
    StatisticsIn, StatisticsOut, TagOut,
)
from app.services import cards as card_service

router = APIRouter(prefix="/cards", tags=["cards"])


def tag_out(t: Tag) -> TagOut:
    return TagOut(id=t.id, name=t.name, usage_count=t.usage_count)


def card_out(c: FlashCard) -> CardOut:
    return CardOut(
        id=c.id,
        question=c.question,
        multiple_choice=c.multiple_choice,
        deck_id=c.deck_id,
        answers=[AnswerOut(id=a.id, text=a.text, hint=a.hint, is_correct=a.is_correct) for a in c.answers],
        tags=[tag_out(t) for t in c.tags],
    )


@router.post("", response_model=CardOut, status_code=HTTP_201_CREATED)
def create_card(
    payload: CardCreateIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return card_out(card_service.create_card(db, payload, author=user))


@router.get("")
def list_cards(db: Session = Depends(get_db)):
    return {"items": [card_out(c) for c in card_service.list_cards(db)]}


@router.get("/{card_id}", response_model=CardOut)
def get_card(card_id: int, db: Session = Depends(get_db)):
    return card_out(card_service.get_card(db, card_id))


@router.put("/{card_id}", response_model=CardOut)
def replace_card(
    card_id: int,
    payload: CardUpdateIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return card_out(card_service.update_card(db, card_id, payload, method="PUT"))


@router.patch("/{card_id}", response_model=CardOut)
def patch_card(
    card_id: int,
    payload: CardUpdateIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return card_out(card_service.update_card(db, card_id, payload, method="PATCH"))


@router.delete("/{card_id}")
def delete_card(
    card_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    card_service.delete_card(db, card_id)
    return status_payload(200, "Card has been deleted.", card_id)


@router.post("/{card_id}/statistics", response_model=StatisticsOut)
def record_statistics(
    card_id: int,
    payload: StatisticsIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    s = card_service.record_statistics(db, card_id, user, payload)
    return StatisticsOut(
        id=s.id, user_id=s.user_id, card_id=s.card_id, deck_id=s.deck_id,
        known=s.known, unknown=s.unknown,
    )
