from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.errors import InvalidInputError, ObjectNotFoundError
from app.db.database import atomic
from app.db.models import Answer, CardDeck, CardStatistics, FlashCard, User
from app.schemas.flash import AnswerIn, CardCreateIn, CardUpdateIn, StatisticsIn, TagRefIn
from app.services.tags import resolve_or_create_tags, sync_usage_counts

logger = logging.getLogger(__name__)

CARD_PUT_FIELDS = {"question", "answers", "tags"}


def build_card(
    db: Session,
    *,
    question: str,
    answers: Iterable[AnswerIn] = (),
    multiple_choice: bool = False,
    tags: Iterable[TagRefIn] = (),
    author: Optional[User] = None,
) -> FlashCard:
    """Nouvelle carte sans deck, ajoutée à la session (non validée)."""
    card = FlashCard(
        question=question,
        multiple_choice=multiple_choice,
        author_id=author.id if author else None,
        answers=[Answer(text=a.text, hint=a.hint, is_correct=a.is_correct) for a in answers],
        tags=resolve_or_create_tags(db, tags),
    )
    db.add(card)
    sync_usage_counts(db, card.tags)
    return card


def create_card(db: Session, payload: CardCreateIn, author: Optional[User] = None) -> FlashCard:
    with atomic(db):
        card = build_card(
            db,
            question=payload.question,
            answers=payload.answers,
            multiple_choice=payload.multiple_choice,
            tags=payload.tags,
            author=author,
        )
        if payload.deck is not None and payload.deck.id > 0:
            deck = db.get(CardDeck, payload.deck.id)
            if deck is None:
                raise ObjectNotFoundError("Deck introuvable.", payload.deck.id)
            deck.cards.append(card)
    return card


def get_card(db: Session, card_id: int) -> FlashCard:
    card = db.get(FlashCard, card_id)
    if card is None:
        raise ObjectNotFoundError("Carte introuvable.", card_id)
    return card


def list_cards(db: Session) -> List[FlashCard]:
    return list(db.execute(select(FlashCard).order_by(FlashCard.id)).scalars().all())


def update_card(db: Session, card_id: int, payload: CardUpdateIn, method: str = "PATCH") -> FlashCard:
    fields = payload.model_fields_set
    if method == "PUT" and not CARD_PUT_FIELDS <= fields:
        raise InvalidInputError(
            "The Update method needs all details of the card: %s" % sorted(CARD_PUT_FIELDS)
        )

    with atomic(db):
        card = get_card(db, card_id)
        if payload.question is not None:
            card.question = payload.question
        if payload.multiple_choice is not None:
            card.multiple_choice = payload.multiple_choice
        if payload.answers is not None:
            card.answers = [Answer(text=a.text, hint=a.hint, is_correct=a.is_correct) for a in payload.answers]
        if payload.tags is not None:
            previous = list(card.tags)
            card.tags = resolve_or_create_tags(db, payload.tags)
            sync_usage_counts(db, previous + card.tags)
    return card


def delete_card(db: Session, card_id: int) -> FlashCard:
    """Supprime la carte: liens de tags retirés, réponses et statistiques supprimées."""
    with atomic(db):
        card = get_card(db, card_id)
        previous = list(card.tags)
        logger.debug("Unlinking card=%s from tags=%s", card.id, [t.id for t in previous])
        card.tags = []
        if card.deck is not None:
            card.deck.cards.remove(card)
        db.delete(card)
        sync_usage_counts(db, previous)
    return card


def record_statistics(db: Session, card_id: int, user: User, payload: StatisticsIn) -> CardStatistics:
    with atomic(db):
        card = get_card(db, card_id)
        if payload.deck_id is not None and db.get(CardDeck, payload.deck_id) is None:
            raise ObjectNotFoundError("Deck introuvable.", payload.deck_id)

        stats = db.execute(
            select(CardStatistics).where(
                CardStatistics.user_id == user.id,
                CardStatistics.card_id == card.id,
                CardStatistics.deck_id.is_(None) if payload.deck_id is None
                else CardStatistics.deck_id == payload.deck_id,
            )
        ).scalar_one_or_none()
        if stats is None:
            stats = CardStatistics(user_id=user.id, card_id=card.id, deck_id=payload.deck_id, known=0, unknown=0)
            db.add(stats)

        if payload.known:
            stats.known += 1
        else:
            stats.unknown += 1
    return stats
