from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Generic, List, Optional, TypeVar

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm.exc import StaleDataError

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ============================================================
# Taxonomie
# ============================================================

class ContentError(Exception):
    """Échec typé et récupérable d'une opération du moteur."""

    status_code = 400

    def __init__(self, message: str, obj_id: Any = None):
        super().__init__(message)
        self.message = message
        self.obj_id = obj_id

    def payload(self) -> dict:
        body = {"statuscode": self.status_code, "description": self.message}
        if self.obj_id is not None:
            body["id"] = self.obj_id
        return body


class InvalidInputError(ContentError):
    status_code = 400


class ObjectNotFoundError(ContentError):
    status_code = 404


class NotAuthorizedError(ContentError):
    status_code = 401


class DuplicateKeyError(ContentError):
    """L'opération principale est refusée: elle violerait une exclusivité."""

    status_code = 400

    def __init__(self, message: str, ids: Optional[List[Any]] = None):
        super().__init__(message)
        self.ids = list(ids or [])

    def payload(self) -> dict:
        body = super().payload()
        body["ids"] = self.ids
        return body


@dataclass
class ModifyResult(Generic[T]):
    """
    Succès, éventuellement avec avertissements (éléments secondaires ignorés).
    Ce n'est pas une erreur: l'entité a bien été créée / modifiée.
    """

    entity: T
    warnings: List[str] = field(default_factory=list)

    @property
    def partially_modified(self) -> bool:
        return bool(self.warnings)

    def information(self) -> str:
        return " ".join(self.warnings)


# ============================================================
# Rendu HTTP
# ============================================================

def status_payload(statuscode: int, description: str, obj_id: Any = None) -> dict:
    body = {"statuscode": statuscode, "description": description}
    if obj_id is not None:
        body["id"] = obj_id
    return body


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ContentError)
    async def _content_error(_request: Request, exc: ContentError):
        logger.info("%s: %s", type(exc).__name__, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.payload())

    @app.exception_handler(StaleDataError)
    async def _stale(_request: Request, exc: StaleDataError):
        # une autre requête a modifié les mêmes lignes entre lecture et écriture
        logger.warning("Concurrent modification rejected: %s", exc)
        return JSONResponse(
            status_code=409,
            content=status_payload(409, "Modification concurrente, réessayez."),
        )
