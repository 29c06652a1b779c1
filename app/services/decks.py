from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence, TypeVar

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.core.errors import DuplicateKeyError, InvalidInputError, ObjectNotFoundError
from app.db.database import atomic
from app.db.models import CardDeck, CardStatistics, FlashCard, User, UserGroup
from app.schemas.flash import CardRefIn, DeckCreateIn, DeckUpdateIn
from app.services.cards import build_card

logger = logging.getLogger(__name__)

T = TypeVar("T")

DECK_PUT_FIELDS = {"name", "description", "cards", "group"}


# =========================================================
# Helpers
# =========================================================
def window(items: Sequence[T], start: Optional[int] = None, size: Optional[int] = None) -> List[T]:
    """
    Vue fenêtrée d'une liste (lecture seule).
    ex. [1][2][3][4] avec size=2, start=1 -> [2][3]
    - start hors de [0, N) avec size -> liste vide
    - size=0 -> liste vide
    """
    items = list(items)
    n = len(items)

    if size is None:
        if start is None:
            return items
        return items[min(max(start, 0), n):]

    size = max(size, 0)
    if start is None:
        return items[:min(size, n)]
    if 0 <= start < n:
        return items[start:min(start + size, n)]
    return []


def _resolve_cards(db: Session, refs: Iterable[CardRefIn], author: Optional[User] = None) -> List[FlashCard]:
    """
    Id existant (> 0) -> carte en base (ObjectNotFound sinon).
    Sinon données inline -> nouvelle carte sans deck.
    Une même carte citée deux fois n'est gardée qu'une fois.
    """
    cards: List[FlashCard] = []
    for ref in refs:
        if ref.id > 0:
            card = db.get(FlashCard, ref.id)
            if card is None:
                raise ObjectNotFoundError("Card with the id=%s does not exist." % ref.id, ref.id)
        else:
            if not ref.question:
                raise InvalidInputError("Une carte inline doit avoir une question.")
            card = build_card(
                db,
                question=ref.question,
                answers=ref.answers,
                multiple_choice=ref.multiple_choice,
                tags=ref.tags,
                author=author,
            )
        if all(c is not card for c in cards):
            cards.append(card)
    return cards


def _resolve_group(db: Session, group_id: int) -> UserGroup:
    group = db.get(UserGroup, group_id)
    if group is None:
        raise ObjectNotFoundError("Request contained a group id that does not exist.", group_id)
    return group


def _set_cards(deck: CardDeck, cards: List[FlashCard]) -> None:
    for card in deck.cards:
        if all(c is not card for c in cards):
            card.deck_position = None
    deck.cards = list(cards)
    deck.cards.reorder()


# =========================================================
# Decks
# =========================================================
def list_decks(db: Session) -> List[CardDeck]:
    return list(db.execute(select(CardDeck).order_by(CardDeck.id)).scalars().all())


def get_deck(db: Session, deck_id: int) -> CardDeck:
    deck = db.get(CardDeck, deck_id)
    if deck is None:
        raise ObjectNotFoundError("Deck introuvable.", deck_id)
    return deck


def get_deck_cards(db: Session, deck_id: int, start: Optional[int] = None, size: Optional[int] = None) -> List[FlashCard]:
    return window(get_deck(db, deck_id).cards, start, size)


def create_deck(db: Session, payload: DeckCreateIn, author: Optional[User] = None) -> CardDeck:
    """
    Crée un deck et lui attribue les cartes demandées.
    Tout ou rien: si une seule carte a déjà un deck, rien n'est créé.
    """
    if payload.group is None or payload.group.id <= 0:
        raise InvalidInputError("Could not create deck without specifying the group it belongs to.")

    with atomic(db):
        group = _resolve_group(db, payload.group.id)
        cards = _resolve_cards(db, payload.cards, author)

        owned = [c.id for c in cards if c.deck_id is not None]
        if owned:
            logger.info("Deck creation refused, cards already in a deck: %s", owned)
            raise DuplicateKeyError(
                "Could not create deck with given cards, some of them already are in a deck.",
                owned,
            )

        deck = CardDeck(name=payload.name, description=payload.description or "", group=group)
        db.add(deck)
        _set_cards(deck, cards)

    logger.debug("Saved deck=%s with cards=%s", deck.id, [c.id for c in deck.cards])
    return deck


def update_deck(
    db: Session,
    deck_id: int,
    payload: DeckUpdateIn,
    *,
    method: str = "PATCH",
    append: bool = False,
    redirect: bool = False,
    author: Optional[User] = None,
) -> CardDeck:
    """
    Fusionne la requête dans le deck existant.

    append   : les cartes reçues s'ajoutent à celles du deck au lieu de les remplacer
    redirect : une carte d'un autre deck y est déplacée au lieu de faire échouer l'appel
    """
    fields = payload.model_fields_set
    if method == "PUT" and not DECK_PUT_FIELDS <= fields:
        raise InvalidInputError(
            "The Update method needs all details of the carddeck: %s" % sorted(DECK_PUT_FIELDS)
        )
    logger.debug("Update deck=%s append=%s redirect=%s", deck_id, append, redirect)

    with atomic(db):
        deck = get_deck(db, deck_id)

        if payload.name is not None:
            deck.name = payload.name
        if payload.description is not None:
            deck.description = payload.description
        if payload.group is not None:
            deck.group = _resolve_group(db, payload.group.id)

        if "cards" in fields:
            incoming = _resolve_cards(db, payload.cards or [], author)
            if append:
                cards = list(deck.cards) + [c for c in incoming if all(c is not d for d in deck.cards)]
            else:
                cards = incoming

            conflicts = [c.id for c in cards if c.deck_id is not None and c.deck_id != deck.id]
            if conflicts and not redirect:
                logger.info("Deck %s update refused, cards already in another deck: %s", deck.id, conflicts)
                raise DuplicateKeyError(
                    "Could not update deck with given cards, some of them already are in a deck.",
                    conflicts,
                )
            if conflicts:
                logger.info("Redirecting cards %s to deck %s", conflicts, deck.id)

            _set_cards(deck, cards)

    return deck


def delete_deck(db: Session, deck_id: int) -> CardDeck:
    """Supprime le deck: ses cartes sont détachées (pas supprimées), ses statistiques supprimées."""
    with atomic(db):
        deck = get_deck(db, deck_id)
        _set_cards(deck, [])
        db.execute(delete(CardStatistics).where(CardStatistics.deck_id == deck.id))
        db.delete(deck)
    return deck
