"""
CRUD común para recursos con propietario y lista de fotos (mascotas y
servicios).

Todas las consultas van acotadas al propietario: un recurso de otro usuario
se trata exactamente igual que uno inexistente (404), para no revelar que
existe. El borrado es lógico (is_active=False).
"""
from typing import Any, Dict, List, Optional, Tuple, Type
from bson import ObjectId
from fastapi import UploadFile
from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pydantic import BaseModel, ValidationError
from pymongo.errors import PyMongoError
import logging

from ..db import active
from ..errors import IndexOutOfRange, NotFound, ValidationFailed
from ..storage import MediaStore
from ..utils import to_object_id, utcnow

logger = logging.getLogger(__name__)


class OwnedRegistry:
    collection_name: str
    owner_field: str
    photo_field: str
    replace_flags: tuple = ("replace_photos",)
    resource_name: str
    create_schema: Type[BaseModel]
    update_schema: Type[BaseModel]

    def __init__(self, db: AsyncIOMotorDatabase, media: MediaStore):
        self.db = db
        self.media = media

    def initial_fields(self) -> Dict[str, Any]:
        """Valores iniciales que no vienen del cliente."""
        return {}

    @property
    def collection(self) -> AsyncIOMotorCollection:
        return self.db[self.collection_name]

    def _not_found(self) -> NotFound:
        return NotFound(f"No {self.resource_name} found with that ID")

    def _oid(self, resource_id: str) -> ObjectId:
        return to_object_id(resource_id, self.resource_name)

    def _validate(self, schema: Type[BaseModel], fields: Dict[str, Any]) -> BaseModel:
        try:
            return schema.model_validate(fields)
        except ValidationError as exc:
            raise ValidationFailed.from_pydantic(exc)

    def _pop_replace_flag(self, fields: Dict[str, Any]) -> bool:
        flag = False
        for name in self.replace_flags:
            flag = bool(fields.pop(name, False)) or flag
        return flag

    async def list(self, owner_id: str, page: int = 1, limit: int = 20) -> Tuple[List[Dict[str, Any]], int]:
        q = active({self.owner_field: owner_id})
        docs = await self.collection.find(
            q, sort=[("created_at", -1)], skip=(page - 1) * limit, limit=limit
        ).to_list(limit)
        return docs, await self.collection.count_documents(q)

    async def get(self, resource_id: str, owner_id: str) -> Dict[str, Any]:
        doc = await self.collection.find_one(
            active({"_id": self._oid(resource_id), self.owner_field: owner_id})
        )
        if not doc:
            raise self._not_found()
        return doc

    async def create(self, owner_id: str, fields: Dict[str, Any], uploads: Optional[List[UploadFile]] = None) -> Dict[str, Any]:
        self._pop_replace_flag(fields)
        data = self._validate(self.create_schema, fields).model_dump(mode="json")

        photos = await self.media.save_many(uploads or [], self.collection_name)
        now = utcnow()
        doc = {
            **self.initial_fields(),
            **data,
            self.owner_field: owner_id,
            self.photo_field: photos,
            "is_active": True,
            "created_at": now,
            "updated_at": now,
        }
        try:
            res = await self.collection.insert_one(doc)
        except PyMongoError:
            await self.media.evict_many(photos)
            raise
        logger.info("%s creado: %s (propietario %s)", self.resource_name, res.inserted_id, owner_id)
        return await self.collection.find_one({"_id": res.inserted_id})

    async def update(
        self,
        resource_id: str,
        owner_id: str,
        fields: Dict[str, Any],
        uploads: Optional[List[UploadFile]] = None,
        replace_photos: Optional[bool] = None,
    ) -> Dict[str, Any]:
        doc = await self.get(resource_id, owner_id)
        flag = self._pop_replace_flag(fields)
        replace = flag if replace_photos is None else replace_photos
        changes = self._validate(self.update_schema, fields).model_dump(mode="json", exclude_unset=True)

        evicted: List[str] = []
        new_photos = await self.media.save_many(uploads or [], self.collection_name)
        if new_photos:
            current = list(doc.get(self.photo_field) or [])
            if replace:
                evicted = current
                changes[self.photo_field] = new_photos
            else:
                changes[self.photo_field] = current + new_photos

        changes["updated_at"] = utcnow()
        try:
            await self.collection.update_one({"_id": doc["_id"]}, {"$set": changes})
        except PyMongoError:
            await self.media.evict_many(new_photos)
            raise
        await self.media.evict_many(evicted)
        return await self.collection.find_one({"_id": doc["_id"]})

    async def soft_delete(self, resource_id: str, owner_id: str) -> None:
        """Idempotente: borrar un recurso ya inactivo no es un error."""
        doc = await self.collection.find_one({"_id": self._oid(resource_id), self.owner_field: owner_id})
        if not doc:
            raise self._not_found()
        if doc.get("is_active", True):
            await self.collection.update_one(
                {"_id": doc["_id"]},
                {"$set": {"is_active": False, "updated_at": utcnow()}},
            )
            logger.info("%s desactivado: %s", self.resource_name, doc["_id"])

    async def delete_photo_at(self, resource_id: str, owner_id: str, index: int) -> Dict[str, Any]:
        doc = await self.get(resource_id, owner_id)
        photos = list(doc.get(self.photo_field) or [])
        if not 0 <= index < len(photos):
            raise IndexOutOfRange(f"Invalid {self.photo_label} index")

        url = photos.pop(index)
        await self.collection.update_one(
            {"_id": doc["_id"]},
            {"$set": {self.photo_field: photos, "updated_at": utcnow()}},
        )
        await self.media.evict(url)
        return await self.collection.find_one({"_id": doc["_id"]})

    @property
    def photo_label(self) -> str:
        return self.photo_field.rstrip("s")
