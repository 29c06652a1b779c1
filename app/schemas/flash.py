from pydantic import BaseModel, Field
from typing import Optional, List


class IdRef(BaseModel):
    id: int = Field(default=0, ge=0)


# -------------------
# Tags
# -------------------
class TagRefIn(BaseModel):
    # soit un id existant, soit un nom (réutilisé ou créé)
    id: Optional[int] = Field(default=None, ge=1)
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)


class TagOut(BaseModel):
    id: int
    name: str
    usage_count: int


# -------------------
# Cards
# -------------------
class AnswerIn(BaseModel):
    text: str = Field(min_length=1, max_length=8000)
    hint: str = Field(default="", max_length=2000)
    is_correct: bool = False


class AnswerOut(BaseModel):
    id: int
    text: str
    hint: str
    is_correct: bool


class CardCreateIn(BaseModel):
    question: str = Field(min_length=1, max_length=8000)
    answers: List[AnswerIn] = Field(default_factory=list)
    multiple_choice: bool = False
    tags: List[TagRefIn] = Field(default_factory=list)
    deck: Optional[IdRef] = None


class CardUpdateIn(BaseModel):
    question: Optional[str] = Field(default=None, min_length=1, max_length=8000)
    answers: Optional[List[AnswerIn]] = None
    multiple_choice: Optional[bool] = None
    tags: Optional[List[TagRefIn]] = None


class CardRefIn(BaseModel):
    """Référence de carte dans un deck: id existant (> 0) ou données inline."""
    id: int = Field(default=0, ge=0)
    question: Optional[str] = Field(default=None, max_length=8000)
    answers: List[AnswerIn] = Field(default_factory=list)
    multiple_choice: bool = False
    tags: List[TagRefIn] = Field(default_factory=list)


class CardOut(BaseModel):
    id: int
    question: str
    multiple_choice: bool
    deck_id: Optional[int] = None
    answers: List[AnswerOut] = Field(default_factory=list)
    tags: List[TagOut] = Field(default_factory=list)


class StatisticsIn(BaseModel):
    known: bool
    deck_id: Optional[int] = None


class StatisticsOut(BaseModel):
    id: int
    user_id: int
    card_id: int
    deck_id: Optional[int] = None
    known: int
    unknown: int


# -------------------
# Decks
# -------------------
class DeckCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    description: str = Field(default="", max_length=2000)
    group: Optional[IdRef] = None
    cards: List[CardRefIn] = Field(default_factory=list)


class DeckUpdateIn(BaseModel):
    # PUT exige les quatre champs, PATCH fusionne ceux présents
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    description: Optional[str] = Field(default=None, max_length=2000)
    group: Optional[IdRef] = None
    cards: Optional[List[CardRefIn]] = None


class DeckOut(BaseModel):
    id: int
    name: str
    description: str
    group_id: int
    category_id: Optional[int] = None
    card_ids: List[int] = Field(default_factory=list)
    cards_count: int


# -------------------
# Groups
# -------------------
class GroupCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    description: str = Field(default="", max_length=2000)


class GroupOut(BaseModel):
    id: int
    name: str
    description: str
