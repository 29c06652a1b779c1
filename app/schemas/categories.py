from pydantic import BaseModel, Field
from typing import Optional, List

from app.schemas.flash import IdRef


class CategoryCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    parent: Optional[IdRef] = None  # absent / null / id=0 -> racine
    decks: List[IdRef] = Field(default_factory=list)


class CategoryUpdateIn(BaseModel):
    # PUT exige name, decks et parent (parent peut valoir null)
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    parent: Optional[IdRef] = None
    decks: Optional[List[IdRef]] = None


class CategoryOut(BaseModel):
    id: int
    name: str
    parent_id: Optional[int] = None
    author_id: Optional[int] = None
    deck_ids: List[int] = Field(default_factory=list)


class CategoryModifyOut(BaseModel):
    # partially_modified: succès, mais certains decks ont été ignorés (voir warnings)
    statuscode: int
    description: str
    id: int
    partially_modified: bool = False
    warnings: List[str] = Field(default_factory=list)
    category: CategoryOut
