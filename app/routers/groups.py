from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session
from starlette.status import HTTP_201_CREATED

from app.core.security import get_current_user
from app.db.database import get_db
from app.db.models import User, UserGroup
from app.schemas.flash import GroupCreateIn, GroupOut

router = APIRouter(prefix="/groups", tags=["groups"])


@router.post("", response_model=GroupOut, status_code=HTTP_201_CREATED)
def create_group(
    payload: GroupCreateIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    g = UserGroup(name=payload.name, description=payload.description or "")
    db.add(g)
    db.commit()
    db.refresh(g)
    return GroupOut(id=g.id, name=g.name, description=g.description)


@router.get("")
def list_groups(db: Session = Depends(get_db)):
    groups = db.execute(select(UserGroup).order_by(UserGroup.id)).scalars().all()
    return {"items": [GroupOut(id=g.id, name=g.name, description=g.description) for g in groups]}


@router.get("/{group_id}", response_model=GroupOut)
def get_group(group_id: int, db: Session = Depends(get_db)):
    g = db.execute(select(UserGroup).where(UserGroup.id == group_id)).scalar_one_or_none()
    if not g:
        raise HTTPException(404, detail="Groupe introuvable.")
    return GroupOut(id=g.id, name=g.name, description=g.description)
