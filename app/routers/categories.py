from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from starlette.status import HTTP_200_OK, HTTP_201_CREATED

from app.core.errors import ModifyResult, NotAuthorizedError, status_payload
from app.core.security import get_current_user
from app.db.database import get_db
from app.db.models import Category, User
from app.routers.decks import deck_out
from app.schemas.categories import (
    CategoryCreateIn, CategoryModifyOut, CategoryOut, CategoryUpdateIn,
)
from app.services import categories as category_service
from app.services.permissions import can_edit_category

router = APIRouter(prefix="/categories", tags=["categories"])


def category_out(c: Category) -> CategoryOut:
    return CategoryOut(
        id=c.id,
        name=c.name,
        parent_id=c.parent_id,
        author_id=c.author_id,
        deck_ids=[d.id for d in c.decks],
    )


def modify_out(result: ModifyResult[Category], statuscode: int, message: str) -> CategoryModifyOut:
    description = message
    if result.partially_modified:
        description = "%s Additional information: %s" % (message, result.information())
    return CategoryModifyOut(
        statuscode=statuscode,
        description=description,
        id=result.entity.id,
        partially_modified=result.partially_modified,
        warnings=result.warnings,
        category=category_out(result.entity),
    )


@router.post("", response_model=CategoryModifyOut, status_code=HTTP_201_CREATED)
def create_category(
    payload: CategoryCreateIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    result = category_service.create_category(db, payload, author=user)
    return modify_out(result, HTTP_201_CREATED, "Category has been created!")


@router.get("")
def list_categories(root: bool = False, db: Session = Depends(get_db)):
    return {"items": [category_out(c) for c in category_service.list_categories(db, root_only=root)]}


@router.get("/{category_id}", response_model=CategoryOut)
def get_category(category_id: int, db: Session = Depends(get_db)):
    return category_out(category_service.get_category(db, category_id))


@router.get("/{category_id}/decks")
def get_category_decks(category_id: int, db: Session = Depends(get_db)):
    return {"items": [deck_out(d) for d in category_service.get_category_decks(db, category_id)]}


@router.get("/{category_id}/children")
def get_children(category_id: int, db: Session = Depends(get_db)):
    return {"items": [category_out(c) for c in category_service.get_children(db, category_id)]}


@router.put("/{category_id}", response_model=CategoryModifyOut)
def replace_category(
    category_id: int,
    payload: CategoryUpdateIn,
    append: bool = False,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    result = category_service.update_category(db, category_id, payload, method="PUT", append=append, actor=user)
    return modify_out(result, HTTP_200_OK, "Category has been updated!")


@router.patch("/{category_id}", response_model=CategoryModifyOut)
def patch_category(
    category_id: int,
    payload: CategoryUpdateIn,
    append: bool = False,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    result = category_service.update_category(db, category_id, payload, method="PATCH", append=append, actor=user)
    return modify_out(result, HTTP_200_OK, "Category has been updated!")


@router.delete("/{category_id}")
def delete_category(
    category_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    category = category_service.get_category(db, category_id)
    if not can_edit_category(user, category):
        raise NotAuthorizedError("This user is not authorized to delete the category with this id.", category_id)
    category_service.delete_category(db, category_id)
    return status_payload(200, "Category has been deleted, its decks were detached.", category_id)
