import pytest
from sqlalchemy import func, select
from sqlalchemy.orm.exc import StaleDataError

from app.core.errors import (
    DuplicateKeyError,
    InvalidInputError,
    NotAuthorizedError,
    ObjectNotFoundError,
)
from app.db.models import CardDeck, Category
from app.schemas.categories import CategoryCreateIn, CategoryUpdateIn
from app.schemas.flash import DeckCreateIn
from app.services import categories as category_service
from app.services import decks as deck_service
from app.services.categories import would_create_cycle


def _category(db, name, parent=None, decks=(), author=None):
    payload = CategoryCreateIn(
        name=name,
        parent={"id": parent.id} if parent else None,
        decks=[{"id": d.id} for d in decks],
    )
    return category_service.create_category(db, payload, author=author).entity


def _deck(db, group, name="Deck"):
    return deck_service.create_deck(db, DeckCreateIn(name=name, group={"id": group.id}))


@pytest.fixture()
def chain(db, seed):
    """1 <- 2 <- 3 <- 4 (4 a pour parent 3, etc.)"""
    c1 = _category(db, "Droit", author=seed.author)
    c2 = _category(db, "Droit privé", parent=c1, author=seed.author)
    c3 = _category(db, "Obligations", parent=c2, author=seed.author)
    c4 = _category(db, "Contrats", parent=c3, author=seed.author)
    return c1, c2, c3, c4


# =========================================================
# Détection de boucles
# =========================================================
def test_cycle_detected_for_any_ancestor(db, chain):
    c1, c2, c3, c4 = chain
    assert would_create_cycle(db, c1.id, c4.id)
    assert would_create_cycle(db, c2.id, c3.id)
    assert would_create_cycle(db, c3.id, c3.id)


def test_no_cycle_for_unrelated_or_root(db, chain):
    c1, c2, c3, c4 = chain
    assert not would_create_cycle(db, c4.id, c1.id)
    assert not would_create_cycle(db, c2.id, 0)
    assert not would_create_cycle(db, c2.id, None)


def test_cycle_walk_terminates_on_corrupt_tree(db, chain):
    c1, c2, c3, c4 = chain
    # boucle déjà présente en base (écrite sans passer par le service)
    c1.parent_id = c2.id
    db.commit()

    assert would_create_cycle(db, 999, c3.id)


# =========================================================
# Création
# =========================================================
def test_create_root_when_parent_absent_or_zero(db, seed):
    a = _category(db, "A")
    b = category_service.create_category(db, CategoryCreateIn(name="B", parent={"id": 0})).entity
    assert a.parent_id is None
    assert b.parent_id is None


def test_create_unknown_parent(db, seed):
    with pytest.raises(ObjectNotFoundError):
        category_service.create_category(db, CategoryCreateIn(name="A", parent={"id": 99}))


def test_create_with_unknown_deck_fails_without_writing(db, seed):
    with pytest.raises(ObjectNotFoundError) as exc:
        category_service.create_category(db, CategoryCreateIn(name="A", decks=[{"id": 404}]))
    assert exc.value.obj_id == 404
    assert db.execute(select(func.count(Category.id))).scalar_one() == 0


def test_create_skips_duplicate_and_owned_decks_with_warnings(db, seed):
    d1 = _deck(db, seed.group, "D1")
    d2 = _deck(db, seed.group, "D2")
    owner = _category(db, "Propriétaire", decks=[d2])

    result = category_service.create_category(
        db, CategoryCreateIn(name="Nouvelle", decks=[{"id": d1.id}, {"id": d1.id}, {"id": d2.id}])
    )

    assert result.partially_modified
    assert len(result.warnings) == 2
    assert "sent more than once" in result.warnings[0]
    assert "already has a parent" in result.warnings[1]

    db.expire_all()
    assert db.get(CardDeck, d1.id).category_id == result.entity.id
    assert db.get(CardDeck, d2.id).category_id == owner.id


def test_create_without_warnings_is_plain_success(db, seed):
    d1 = _deck(db, seed.group)
    result = category_service.create_category(db, CategoryCreateIn(name="A", decks=[{"id": d1.id}]))
    assert not result.partially_modified
    assert [d.id for d in result.entity.decks] == [d1.id]


# =========================================================
# Mise à jour
# =========================================================
def test_reparent_to_descendant_rejected_but_name_kept(db, seed, chain):
    c1, c2, c3, c4 = chain
    with pytest.raises(DuplicateKeyError) as exc:
        category_service.update_category(
            db, c1.id, CategoryUpdateIn(name="Droit (L1)", parent={"id": c4.id}), actor=seed.author
        )
    assert exc.value.ids == [c4.id]

    db.expire_all()
    c1 = db.get(Category, c1.id)
    assert c1.name == "Droit (L1)"
    assert c1.parent_id is None


def test_crossed_reparenting_cannot_close_a_loop(db, session_factory, seed):
    a = _category(db, "A", author=seed.author)
    b = _category(db, "B", author=seed.author)

    # les deux requêtes ont lu l'arbre avant que l'une d'elles n'écrive
    other = session_factory()
    try:
        other.get(Category, a.id)
        other.get(Category, b.id)

        category_service.update_category(db, b.id, CategoryUpdateIn(parent={"id": a.id}), actor=seed.author)

        with pytest.raises(StaleDataError):
            category_service.update_category(other, a.id, CategoryUpdateIn(parent={"id": b.id}), actor=seed.author)
    finally:
        other.close()

    db.expire_all()
    assert db.get(Category, b.id).parent_id == a.id
    assert db.get(Category, a.id).parent_id is None


def test_self_parent_rejected(db, seed, chain):
    c1 = chain[0]
    with pytest.raises(DuplicateKeyError):
        category_service.update_category(db, c1.id, CategoryUpdateIn(parent={"id": c1.id}), actor=seed.author)


def test_reparent_valid(db, seed, chain):
    c1, c2, c3, c4 = chain
    category_service.update_category(db, c4.id, CategoryUpdateIn(parent={"id": c1.id}), actor=seed.author)
    db.expire_all()
    assert db.get(Category, c4.id).parent_id == c1.id


def test_parent_null_makes_root(db, seed, chain):
    c2 = chain[1]
    category_service.update_category(db, c2.id, CategoryUpdateIn(parent=None), actor=seed.author)
    db.expire_all()
    assert db.get(Category, c2.id).parent_id is None


def test_name_only_patch_leaves_decks_and_parent(db, seed, chain):
    c1, c2 = chain[0], chain[1]
    d1 = _deck(db, seed.group)
    category_service.update_category(db, c2.id, CategoryUpdateIn(decks=[{"id": d1.id}]), actor=seed.author)

    category_service.update_category(db, c2.id, CategoryUpdateIn(name="Privé"), actor=seed.author)

    db.expire_all()
    c2 = db.get(Category, c2.id)
    assert c2.name == "Privé"
    assert c2.parent_id == c1.id
    assert [d.id for d in c2.decks] == [d1.id]


def test_put_requires_name_decks_and_parent(db, seed, chain):
    with pytest.raises(InvalidInputError):
        category_service.update_category(
            db, chain[0].id, CategoryUpdateIn(name="X"), method="PUT", actor=seed.author
        )


def test_replace_detaches_previous_decks(db, seed):
    d1 = _deck(db, seed.group, "D1")
    d2 = _deck(db, seed.group, "D2")
    cat = _category(db, "A", decks=[d1], author=seed.author)

    result = category_service.update_category(db, cat.id, CategoryUpdateIn(decks=[{"id": d2.id}]), actor=seed.author)
    assert not result.partially_modified

    db.expire_all()
    assert db.get(CardDeck, d1.id).category_id is None
    assert db.get(CardDeck, d2.id).category_id == cat.id


def test_append_reports_partial_modification(db, seed):
    d1 = _deck(db, seed.group, "D1")
    d2 = _deck(db, seed.group, "D2")
    cat = _category(db, "A", decks=[d1], author=seed.author)

    result = category_service.update_category(
        db, cat.id, CategoryUpdateIn(decks=[{"id": d2.id}, {"id": d1.id}]), append=True, actor=seed.author
    )
    assert result.partially_modified
    assert "cardDeck %s" % d1.id in result.information()

    db.expire_all()
    assert sorted(d.id for d in db.get(Category, cat.id).decks) == [d1.id, d2.id]


def test_update_unknown_deck_changes_nothing(db, seed):
    d1 = _deck(db, seed.group, "D1")
    cat = _category(db, "A", decks=[d1], author=seed.author)

    with pytest.raises(ObjectNotFoundError):
        category_service.update_category(
            db, cat.id, CategoryUpdateIn(name="B", decks=[{"id": 555}]), actor=seed.author
        )
    db.expire_all()
    cat = db.get(Category, cat.id)
    assert cat.name == "A"
    assert [d.id for d in cat.decks] == [d1.id]


# =========================================================
# Autorisations
# =========================================================
def test_other_user_cannot_rename(db, seed, chain):
    with pytest.raises(NotAuthorizedError):
        category_service.update_category(db, chain[0].id, CategoryUpdateIn(name="Pirate"), actor=seed.other)


def test_other_user_can_append_decks(db, seed, chain):
    d1 = _deck(db, seed.group)
    result = category_service.update_category(
        db, chain[0].id, CategoryUpdateIn(decks=[{"id": d1.id}]), append=True, actor=seed.other
    )
    assert [d.id for d in result.entity.decks] == [d1.id]


def test_append_patch_merges_every_field_without_permission(db, seed, chain):
    d1 = _deck(db, seed.group)
    result = category_service.update_category(
        db, chain[0].id, CategoryUpdateIn(name="Renommée", decks=[{"id": d1.id}]), append=True, actor=seed.other
    )
    db.expire_all()
    category = db.get(Category, result.entity.id)
    assert category.name == "Renommée"
    assert [d.id for d in category.decks] == [d1.id]


def test_put_with_append_still_needs_permission(db, seed, chain):
    with pytest.raises(NotAuthorizedError):
        category_service.update_category(
            db, chain[0].id, CategoryUpdateIn(name="X", decks=[], parent=None),
            method="PUT", append=True, actor=seed.other,
        )


def test_admin_can_edit_any_category(db, seed, chain):
    result = category_service.update_category(db, chain[0].id, CategoryUpdateIn(name="Admin"), actor=seed.admin)
    assert result.entity.name == "Admin"


# =========================================================
# Lecture / suppression
# =========================================================
def test_list_roots_and_children(db, seed, chain):
    c1, c2, c3, c4 = chain
    other_root = _category(db, "Histoire")

    assert [c.id for c in category_service.list_categories(db)] == [c1.id, c2.id, c3.id, c4.id, other_root.id]
    assert [c.id for c in category_service.list_categories(db, root_only=True)] == [c1.id, other_root.id]
    assert [c.id for c in category_service.get_children(db, c2.id)] == [c3.id]
    assert category_service.get_children(db, 999) == []


def test_delete_category_detaches_decks_and_reroots_children(db, seed, chain):
    c1, c2, c3, c4 = chain
    d1 = _deck(db, seed.group)
    category_service.update_category(db, c2.id, CategoryUpdateIn(decks=[{"id": d1.id}]), actor=seed.author)

    category_service.delete_category(db, c2.id)

    db.expire_all()
    assert db.get(Category, c2.id) is None
    deck = db.get(CardDeck, d1.id)
    assert deck is not None and deck.category_id is None
    assert db.get(Category, c3.id).parent_id is None
    assert db.get(Category, c1.id) is not None
