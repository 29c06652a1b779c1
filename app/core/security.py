from fastapi import Depends, HTTPException, Security
from fastapi.security.api_key import APIKeyHeader
from sqlalchemy import select
from sqlalchemy.orm import Session
from starlette.status import HTTP_401_UNAUTHORIZED

from app.core.config import get_settings
from app.db.database import get_db
from app.db.models import User

api_key_header = APIKeyHeader(name="x-api-key", auto_error=False)
user_email_header = APIKeyHeader(name="x-user-email", auto_error=False)


def get_api_key(api_key: str = Security(api_key_header)) -> str:
    """
    Vérifie que la clé API envoyée dans l'en-tête est correcte.
    """
    if api_key == get_settings().API_KEY:
        return api_key
    raise HTTPException(
        status_code=HTTP_401_UNAUTHORIZED,
        detail="API Key invalide",
    )


def get_current_user(
    email: str | None = Security(user_email_header),
    _: str = Depends(get_api_key),
    db: Session = Depends(get_db),
) -> User:
    """
    Identité de l'appelant. L'authentification elle-même est faite en amont
    (passerelle), on ne fait que retrouver l'utilisateur par son email.
    """
    if not email:
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Utilisateur manquant.")

    user = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Utilisateur introuvable.")
    return user
