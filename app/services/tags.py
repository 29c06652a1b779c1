from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import InvalidInputError, ObjectNotFoundError
from app.db.database import atomic
from app.db.models import FlashCard, Tag, card_tags
from app.schemas.flash import TagRefIn

logger = logging.getLogger(__name__)

SORT_USAGE_COUNT = "usagecount"
SORT_DESC = "desc"


def list_tags(
    db: Session,
    *,
    sort_by: Optional[str] = None,
    starts_with: Optional[str] = None,
) -> List[Tag]:
    """
    Trois modes exclusifs, choisis par la présence du paramètre:
    - sortBy=usageCount [asc|desc] : usage recalculé puis tri
    - startsWith=he : tags dont le nom commence littéralement par "he"
    - sinon tous les tags
    """
    if sort_by is not None:
        tags = list(db.execute(select(Tag).order_by(Tag.id)).scalars().all())
        key = sort_by.replace("_", "").lower()
        if SORT_USAGE_COUNT in key:
            logger.debug("sortBy=%s", sort_by)
            with atomic(db):
                sync_usage_counts(db, tags)
            tags.sort(key=lambda t: t.usage_count)
            if SORT_DESC in key:
                tags.reverse()
        return tags

    if starts_with is not None:
        return list(
            db.execute(
                select(Tag)
                .where(Tag.name.startswith(starts_with, autoescape=True))
                .order_by(Tag.id)
            ).scalars().all()
        )

    return list(db.execute(select(Tag).order_by(Tag.id)).scalars().all())


def get_tag(db: Session, tag_id: int) -> Tag:
    tag = db.get(Tag, tag_id)
    if tag is None:
        raise ObjectNotFoundError("Tag introuvable.", tag_id)
    return tag


def find_tag_by_name(db: Session, name: str) -> Tag | None:
    return db.execute(select(Tag).where(Tag.name == name)).scalar_one_or_none()


def get_attached_cards(db: Session, tag_id: int) -> List[FlashCard]:
    return list(get_tag(db, tag_id).cards)


def _get_or_create(db: Session, name: str) -> Tag:
    tag = find_tag_by_name(db, name)
    if tag is not None:
        return tag

    try:
        with db.begin_nested():
            tag = Tag(name=name)
            db.add(tag)
    except IntegrityError:
        # créé entre-temps par une autre requête: la contrainte UNIQUE a tranché
        logger.info("Tag %r created concurrently, reusing it", name)
        tag = find_tag_by_name(db, name)
        if tag is None:
            raise
    return tag


def resolve_or_create_tags(db: Session, entries: Iterable[TagRefIn | dict]) -> List[Tag]:
    """
    Résout une liste de références de tags peu structurée.

    Chaque entrée porte soit un ``id`` (tag existant), soit un ``name``
    (tag réutilisé s'il existe, créé sinon). L'ordre d'entrée est conservé,
    les doublons (même tag) sont retirés. Un id inconnu fait échouer tout le
    lot, avant toute création.

    Ne valide pas la transaction: c'est l'opération appelante qui le fait.
    """
    refs = [TagRefIn.model_validate(e) if isinstance(e, dict) else e for e in entries]

    for ref in refs:
        if ref.id is None and not (ref.name or "").strip():
            raise InvalidInputError("Un tag doit avoir un id ou un nom.")

    by_id = {}
    missing = []
    for ref in refs:
        if ref.id is not None and ref.id not in by_id:
            found = db.get(Tag, ref.id)
            if found is None:
                missing.append(ref.id)
            by_id[ref.id] = found
    if missing:
        raise ObjectNotFoundError("Tag(s) introuvable(s): %s" % missing, missing)

    tags: List[Tag] = []
    for ref in refs:
        tag = by_id[ref.id] if ref.id is not None else _get_or_create(db, ref.name.strip())
        if all(t is not tag for t in tags):
            tags.append(tag)

    logger.debug("Resolved tags=%s", [t.name for t in tags])
    return tags


def sync_usage_counts(db: Session, tags: Iterable[Tag]) -> None:
    """
    Recalcule ``usage_count`` (nombre de cartes liées) pour les tags donnés.
    À appeler après toute écriture qui change les liens carte/tag, dans la
    même transaction.
    """
    unique = list({id(t): t for t in tags}.values())
    if not unique:
        return

    db.flush()
    counts = dict(
        db.execute(
            select(card_tags.c.tag_id, func.count())
            .where(card_tags.c.tag_id.in_([t.id for t in unique]))
            .group_by(card_tags.c.tag_id)
        ).all()
    )
    for tag in unique:
        tag.usage_count = counts.get(tag.id, 0)


def retrieve_tags(db: Session, ids: Iterable[int], names: Iterable[str]) -> List[Tag]:
    """Tags trouvés pour les ids puis les noms donnés; les inconnus sont ignorés."""
    tags: List[Tag] = []
    for tag_id in ids:
        tag = db.get(Tag, tag_id)
        if tag is not None:
            tags.append(tag)
    for name in names:
        tag = find_tag_by_name(db, name)
        if tag is not None:
            tags.append(tag)
    return tags


def cards_with_all_tags(db: Session, ids: Iterable[int], names: Iterable[str]) -> List[FlashCard]:
    """
    Cartes portant *tous* les tags demandés (intersection).
    Aucun tag résolu -> liste vide.
    """
    tags = retrieve_tags(db, ids, names)
    logger.debug("Tags found=%s", [t.id for t in tags])
    if not tags:
        return []

    cards = list(tags[0].cards)
    for tag in tags[1:]:
        keep = {c.id for c in tag.cards}
        cards = [c for c in cards if c.id in keep]
    return cards
