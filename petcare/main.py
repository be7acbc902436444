from contextlib import asynccontextmanager
from typing import Any, Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.staticfiles import StaticFiles
from slowapi import Limiter
from slowapi.util import get_remote_address
import logging

from .config import Settings, get_settings
from .db import Database
from .errors import register_exception_handlers
from .routers import auth, bookings, pets, services
from .storage import MediaStore

# Configurar logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def _cors_options(settings: Settings) -> dict:
    if settings.env == "dev":
        # Desarrollo: más permisivo
        return {
            "allow_origins": ["http://localhost:5173", "http://127.0.0.1:5173"],
            "allow_origin_regex": r"https?://(localhost|127\.0\.0\.1)(:\d+)?",
            "allow_headers": ["Authorization", "Content-Type", "Accept", "Origin", "X-Requested-With"],
        }
    # Producción: solo el frontend configurado
    frontend_url = settings.frontend_base_url
    return {
        "allow_origins": [frontend_url] if frontend_url else [],
        "allow_origin_regex": None,
        "allow_headers": ["Authorization", "Content-Type", "Accept"],
    }


def create_app(settings: Optional[Settings] = None, mongo_client: Any = None) -> FastAPI:
    """
    Crea la aplicación. En tests se pasa un cliente mongomock y unos
    Settings con media_dir temporal.
    """
    settings = settings or get_settings()
    database = Database(settings.mongodb_uri, settings.db_name, client=mongo_client)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        database.close()
        logger.info("Conexión a la base de datos cerrada")

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.settings = settings
    app.state.database = database
    app.state.media = MediaStore(settings.media_dir, settings.max_upload_bytes, settings.max_upload_files)
    app.state.limiter = Limiter(key_func=get_remote_address)

    register_exception_handlers(app)
    app.mount("/media", StaticFiles(directory=settings.media_dir), name="media")

    app.add_middleware(
        CORSMiddleware,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        expose_headers=["Content-Type"],
        **_cors_options(settings),
    )

    @app.get("/health")
    async def health():
        return {"status": "ok", "env": settings.env}

    app.include_router(auth.router, prefix="/auth", tags=["auth"])
    app.include_router(pets.router, prefix="/pets", tags=["pets"])
    app.include_router(services.router, prefix="/services", tags=["services"])
    app.include_router(bookings.router, prefix="/bookings", tags=["bookings"])
    return app


app = create_app()
