# freshmarket/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from freshmarket import __version__
from freshmarket.config import settings
from freshmarket.database import init_db, close_db
from freshmarket.errors import register_error_handlers

from freshmarket.routes.auth import router as auth_router
from freshmarket.routes.products import router as products_router
from freshmarket.routes.orders import router as orders_router
from freshmarket.routes.payments import router as payments_router
from freshmarket.routes.webhooks import router as webhooks_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info("Fresh Market API started")
    yield
    close_db()


def create_app() -> FastAPI:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(title="Fresh Market API", version=__version__, lifespan=lifespan)

    # One CORS policy: the deployed frontend plus local dev servers
    origins = ["http://localhost:3000", "http://127.0.0.1:3000"]
    if settings.FRONTEND_URL and settings.FRONTEND_URL not in origins:
        origins.append(settings.FRONTEND_URL)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)

    app.include_router(auth_router)
    app.include_router(products_router)
    app.include_router(orders_router)
    app.include_router(payments_router)
    app.include_router(webhooks_router)

    @app.get("/")
    def read_root():
        return {"message": "Bienvenue sur l'API Fresh Market"}

    return app


app = create_app()
