from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified

from app.core.errors import (
    DuplicateKeyError,
    InvalidInputError,
    ModifyResult,
    NotAuthorizedError,
    ObjectNotFoundError,
)
from app.db.database import atomic
from app.db.models import CardDeck, Category, User
from app.schemas.categories import CategoryCreateIn, CategoryUpdateIn
from app.schemas.flash import IdRef
from app.services.permissions import can_edit_category

logger = logging.getLogger(__name__)

CATEGORY_PUT_FIELDS = {"name", "decks", "parent"}


# =========================================================
# Arbre
# =========================================================
def would_create_cycle(db: Session, child_id: int, parent_id: Optional[int]) -> bool:
    """
    Vrai si rattacher ``child_id`` sous ``parent_id`` créerait une boucle.

    On remonte la chaîne des parents depuis le futur parent: rencontrer
    l'enfant signifie qu'il est déjà un ancêtre. ex. 1<-2<-3<-4, mettre 1
    sous 4 donnerait 1<-2<-3<-4<-1.

    La remontée est bornée par le nombre de catégories: une chaîne plus
    longue ne peut venir que d'une boucle déjà présente en base.
    """
    if not parent_id or parent_id <= 0:
        return False
    if parent_id == child_id:
        return True

    limit = db.execute(select(func.count(Category.id))).scalar_one()
    current = db.get(Category, parent_id)
    steps = 0
    while current is not None:
        if current.id == child_id:
            return True
        steps += 1
        if steps > limit:
            logger.warning("Parent chain above category %s never reaches a root", parent_id)
            return True
        current = db.get(Category, current.parent_id) if current.parent_id else None
    return False


def _claim_ancestors(db: Session, parent: Category | None) -> None:
    """
    Nouvelle version pour le futur parent et chacun de ses ancêtres.
    Un rattachement concurrent qui a lu la même chaîne échoue au flush
    (StaleDataError, rendu en 409).

    Appelé après ``would_create_cycle``: la chaîne finit sur une racine.
    """
    current = parent
    while current is not None:
        flag_modified(current, "name")
        current = db.get(Category, current.parent_id) if current.parent_id else None


def _resolve_parent(db: Session, ref: Optional[IdRef]) -> Category | None:
    if ref is None or ref.id <= 0:
        return None
    parent = db.get(Category, ref.id)
    if parent is None:
        raise ObjectNotFoundError("Parent does not exist with the id=%s" % ref.id, ref.id)
    return parent


def _resolve_decks(db: Session, refs: Iterable[IdRef]) -> List[CardDeck]:
    # doublons conservés: ils donnent lieu à un avertissement, pas à un échec
    decks = []
    for ref in refs:
        deck = db.get(CardDeck, ref.id)
        if deck is None:
            raise ObjectNotFoundError("One cardDeck could not be found.", ref.id)
        decks.append(deck)
    return decks


def _attach_decks(category: Category, decks: Iterable[CardDeck]) -> List[str]:
    warnings = []
    attached: List[CardDeck] = []
    for deck in decks:
        if any(d is deck for d in attached):
            warnings.append("Error adding cardDeck %s, it was sent more than once." % deck.id)
        elif deck.category is not None:
            warnings.append("Error adding cardDeck %s, it already has a parent." % deck.id)
        else:
            deck.category = category
            attached.append(deck)
    return warnings


# =========================================================
# Lecture
# =========================================================
def list_categories(db: Session, root_only: bool = False) -> List[Category]:
    stmt = select(Category).order_by(Category.id)
    if root_only:
        stmt = stmt.where(Category.parent_id.is_(None))
    return list(db.execute(stmt).scalars().all())


def get_category(db: Session, category_id: int) -> Category:
    category = db.get(Category, category_id)
    if category is None:
        raise ObjectNotFoundError("Catégorie introuvable.", category_id)
    return category


def get_category_decks(db: Session, category_id: int) -> List[CardDeck]:
    return list(get_category(db, category_id).decks)


def get_children(db: Session, category_id: int) -> List[Category]:
    if db.get(Category, category_id) is None:
        return []
    return list(
        db.execute(
            select(Category).where(Category.parent_id == category_id).order_by(Category.id)
        ).scalars().all()
    )


def find_category_by_name(db: Session, name: str) -> Category | None:
    return db.execute(select(Category).where(Category.name == name)).scalars().first()


# =========================================================
# Écriture
# =========================================================
def create_category(db: Session, payload: CategoryCreateIn, author: Optional[User] = None) -> ModifyResult[Category]:
    """
    Crée une catégorie (racine si pas de parent) et y range les decks donnés.
    Un deck en double ou déjà rangé ailleurs est ignoré avec un avertissement;
    un deck inexistant fait échouer la création.
    """
    with atomic(db):
        parent = _resolve_parent(db, payload.parent)
        decks = _resolve_decks(db, payload.decks)

        category = Category(name=payload.name, parent=parent, author=author)
        db.add(category)
        warnings = _attach_decks(category, decks)

    if warnings:
        logger.info("Category %s created with skipped decks: %s", category.id, warnings)
    return ModifyResult(category, warnings)


def update_category(
    db: Session,
    category_id: int,
    payload: CategoryUpdateIn,
    *,
    method: str = "PATCH",
    append: bool = False,
    actor: Optional[User] = None,
) -> ModifyResult[Category]:
    """
    Fusionne la requête dans la catégorie.

    Sans droit d'édition, seul un PATCH ``append`` est accepté. Un parent qui
    créerait une boucle est refusé (DuplicateKey) mais le nom déjà fusionné
    reste enregistré.
    """
    fields = payload.model_fields_set

    with atomic(db):
        category = get_category(db, category_id)

        # un PATCH en mode append est accepté sans droit d'édition
        if (method == "PUT" or not append) and not can_edit_category(actor, category):
            raise NotAuthorizedError("This user is not authorized to modify the category with this id.", category_id)

        if method == "PUT" and not CATEGORY_PUT_FIELDS <= fields:
            raise InvalidInputError(
                "The Update method needs all details of the category, such as name, "
                "an array of carddeck (ids) and a parent (null or id of another category)."
            )

        decks = _resolve_decks(db, payload.decks or []) if "decks" in fields else None

        if payload.name is not None:
            category.name = payload.name

        if "parent" in fields:
            parent_id = payload.parent.id if payload.parent else 0
            if would_create_cycle(db, category.id, parent_id):
                logger.info("Parent %s refused for category %s: loop", parent_id, category.id)
                db.commit()
                raise DuplicateKeyError("This parent is not allowed as it would create an endless loop.", [parent_id])
            category.parent = _resolve_parent(db, payload.parent)
            _claim_ancestors(db, category.parent)

        warnings: List[str] = []
        if decks is not None:
            if not append:
                for deck in list(category.decks):
                    deck.category = None
            warnings = _attach_decks(category, decks)

    if warnings:
        logger.info("Category %s partially modified: %s", category.id, warnings)
    return ModifyResult(category, warnings)


def delete_category(db: Session, category_id: int) -> Category:
    """Supprime la catégorie: ses decks sont détachés, ses enfants deviennent racines."""
    with atomic(db):
        category = get_category(db, category_id)
        for deck in list(category.decks):
            deck.category = None
        for child in get_children(db, category.id):
            child.parent = None
        db.delete(category)
    return category
