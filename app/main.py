from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse

from app.core.config import get_settings
from app.core.errors import register_exception_handlers
from app.core.logging import setup_logging
from app.db.database import init_db
from app.routers import system, groups, cards, decks, categories, tags


def create_app(create_tables: bool = True) -> FastAPI:
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)

    if create_tables:
        init_db()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="API de contenu pédagogique (cartes, decks, catégories, tags)",
    )

    # Middleware CORS
    origins = [o.strip() for o in (settings.CORS_ORIGINS or "").split(",") if o.strip()]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["*"],  # fallback si mal configuré
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # Routers
    app.include_router(system.router)
    app.include_router(groups.router)
    app.include_router(cards.router)
    app.include_router(decks.router)
    app.include_router(categories.router)
    app.include_router(tags.router)

    # Redirect root → docs
    @app.get("/", include_in_schema=False)
    async def root():
        return RedirectResponse(url="/docs")

    return app


app = create_app()
