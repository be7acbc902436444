from typing import Any, Dict, Optional
from fastapi import Request
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
import logging

logger = logging.getLogger(__name__)


class Database:
    """
    Conexión a MongoDB creada una vez por aplicación (ver main.create_app).
    El cliente se puede inyectar (p.ej. mongomock en tests); si no, se crea
    un AsyncIOMotorClient en la primera petición.
    """

    def __init__(self, uri: str, name: str, client: Any = None):
        self._uri = uri
        self._name = name
        self._client = client
        self._owns_client = client is None
        self._db: Optional[AsyncIOMotorDatabase] = None

    async def get(self) -> AsyncIOMotorDatabase:
        if self._db is None:
            if self._client is None:
                self._client = AsyncIOMotorClient(self._uri)
            db = self._client[self._name]
            await db.users.create_index("email", unique=True)
            await db.pets.create_index([("owner_id", 1), ("is_active", 1)])
            await db.services.create_index([("sitter_id", 1)])
            await db.services.create_index([("service_type", 1), ("is_active", 1)])
            await db.bookings.create_index([("owner_id", 1), ("status", 1)])
            await db.bookings.create_index([("sitter_id", 1), ("status", 1)])
            await db.bookings.create_index([("start_date", 1), ("end_date", 1)])
            self._db = db
            logger.info("Conectado a la base de datos %s", self._name)
        return self._db

    def close(self) -> None:
        if self._owns_client and self._client is not None:
            self._client.close()
        self._client = None
        self._db = None


async def get_db(request: Request) -> AsyncIOMotorDatabase:
    return await request.app.state.database.get()


def active(query: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Predicado común de borrado lógico: sólo documentos con is_active."""
    q = dict(query or {})
    q["is_active"] = True
    return q
