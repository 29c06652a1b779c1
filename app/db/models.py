from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    func,
)
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.database import Base


# ============================================================
# USERS / GROUPS
# ============================================================

class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    email: Mapped[str] = mapped_column(String(320), unique=True, index=True, nullable=False)
    username: Mapped[str] = mapped_column(String(64), nullable=False)

    is_admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), nullable=False)


class UserGroup(Base):
    __tablename__ = "user_groups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)

    decks: Mapped[list["CardDeck"]] = relationship("CardDeck", back_populates="group")


# ============================================================
# CATEGORIES
# ============================================================

class Category(Base):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)

    # arbre: seul le lien vers le parent est stocké, les enfants se calculent
    parent_id: Mapped[int | None] = mapped_column(
        ForeignKey("categories.id", ondelete="SET NULL"),
        index=True,
        nullable=True,
    )
    author_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    # incrémentée aussi sur chaque ancêtre lors d'un rattachement (voir services.categories)
    version_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), nullable=False)

    parent: Mapped["Category | None"] = relationship("Category", remote_side=[id])
    author: Mapped["User | None"] = relationship("User")
    decks: Mapped[list["CardDeck"]] = relationship(
        "CardDeck",
        back_populates="category",
        order_by="CardDeck.id",
    )

    __mapper_args__ = {"version_id_col": version_id}


# ============================================================
# DECKS / CARDS
# ============================================================

class CardDeck(Base):
    __tablename__ = "card_decks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)

    group_id: Mapped[int] = mapped_column(
        ForeignKey("user_groups.id"),
        index=True,
        nullable=False,
    )
    category_id: Mapped[int | None] = mapped_column(
        ForeignKey("categories.id", ondelete="SET NULL"),
        index=True,
        nullable=True,
    )

    # verrou optimiste: deux requêtes qui déplacent le même deck ne passent pas toutes les deux
    version_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    group: Mapped["UserGroup"] = relationship("UserGroup", back_populates="decks")
    category: Mapped["Category | None"] = relationship("Category", back_populates="decks")
    cards: Mapped[list["FlashCard"]] = relationship(
        "FlashCard",
        back_populates="deck",
        order_by="FlashCard.deck_position",
        collection_class=ordering_list("deck_position"),
    )

    __mapper_args__ = {"version_id_col": version_id}


card_tags = Table(
    "card_tags",
    Base.metadata,
    Column("card_id", ForeignKey("flash_cards.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)


class FlashCard(Base):
    __tablename__ = "flash_cards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    question: Mapped[str] = mapped_column(Text, nullable=False)
    multiple_choice: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    author_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    # une carte appartient à au plus un deck (source de vérité de l'appartenance)
    deck_id: Mapped[int | None] = mapped_column(
        ForeignKey("card_decks.id", ondelete="SET NULL"),
        index=True,
        nullable=True,
    )
    deck_position: Mapped[int | None] = mapped_column(Integer, nullable=True)

    version_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    deck: Mapped["CardDeck | None"] = relationship("CardDeck", back_populates="cards")
    answers: Mapped[list["Answer"]] = relationship(
        "Answer",
        back_populates="card",
        cascade="all, delete-orphan",
        order_by="Answer.id",
    )
    tags: Mapped[list["Tag"]] = relationship(
        "Tag",
        secondary=card_tags,
        back_populates="cards",
    )
    statistics: Mapped[list["CardStatistics"]] = relationship(
        "CardStatistics",
        back_populates="card",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version_id}


class Answer(Base):
    __tablename__ = "answers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    card_id: Mapped[int] = mapped_column(
        ForeignKey("flash_cards.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )

    text: Mapped[str] = mapped_column(Text, nullable=False)
    hint: Mapped[str] = mapped_column(Text, default="", nullable=False)
    is_correct: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    card: Mapped["FlashCard"] = relationship("FlashCard", back_populates="answers")


class Tag(Base):
    __tablename__ = "tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # unicité garantie par la base (deux créations concurrentes du même nom)
    name: Mapped[str] = mapped_column(String(120), unique=True, index=True, nullable=False)

    # nombre de cartes liées, tenu à jour à chaque écriture carte/tag
    usage_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    cards: Mapped[list["FlashCard"]] = relationship(
        "FlashCard",
        secondary=card_tags,
        back_populates="tags",
        order_by="FlashCard.id",
    )


# ============================================================
# STATISTICS
# ============================================================

class CardStatistics(Base):
    __tablename__ = "card_statistics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    card_id: Mapped[int] = mapped_column(ForeignKey("flash_cards.id", ondelete="CASCADE"), index=True, nullable=False)
    # statistiques prises dans le contexte d'un deck (supprimées avec lui)
    deck_id: Mapped[int | None] = mapped_column(ForeignKey("card_decks.id", ondelete="CASCADE"), index=True, nullable=True)

    known: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    unknown: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    card: Mapped["FlashCard"] = relationship("FlashCard", back_populates="statistics")
