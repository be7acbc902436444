"""
Catálogo de servicios de los cuidadores: CRUD del propio cuidador (heredado
de OwnedRegistry) más el listado y la búsqueda públicos.
"""
from collections import defaultdict
from typing import Any, Dict, List, Optional, Tuple
from bson import ObjectId
from pydantic import BaseModel
import re

from ..db import active
from ..errors import NotFound
from ..schemas.service import ServiceCreate, ServiceUpdate
from ..utils import to_id
from .registry import OwnedRegistry

SORTABLE = {"price", "rating.average", "created_at", "total_bookings", "title", "featured"}
SORT_ALIASES = {"createdAt": "created_at", "totalBookings": "total_bookings", "rating": "rating.average"}
DEFAULT_SORT = [("featured", -1), ("rating.average", -1), ("created_at", -1)]

SITTER_FIELDS = ("name", "avatar", "bio", "experience")


class ServiceFilters(BaseModel):
    query: Optional[str] = None
    service_type: Optional[str] = None
    pet_type: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    rating: Optional[float] = None
    instant_booking: Optional[bool] = None


def _icontains(value: str) -> Dict[str, str]:
    return {"$regex": re.escape(value.strip()), "$options": "i"}


def build_query(filters: ServiceFilters) -> Dict[str, Any]:
    q: Dict[str, Any] = active()
    if filters.query:
        q["$or"] = [
            {"title": _icontains(filters.query)},
            {"description": _icontains(filters.query)},
            {"location.city": _icontains(filters.query)},
            {"location.state": _icontains(filters.query)},
        ]
    if filters.service_type:
        q["service_type"] = filters.service_type
    if filters.pet_type:
        q["pet_types"] = filters.pet_type
    if filters.city:
        q["location.city"] = _icontains(filters.city)
    if filters.state:
        q["location.state"] = _icontains(filters.state)
    if filters.instant_booking:
        q["instant_booking"] = True
    if filters.min_price is not None or filters.max_price is not None:
        q["price"] = {}
        if filters.min_price is not None:
            q["price"]["$gte"] = filters.min_price
        if filters.max_price is not None:
            q["price"]["$lte"] = filters.max_price
    if filters.rating is not None:
        q["rating.average"] = {"$gte": filters.rating}
    return q


def parse_sort(sort: Optional[str], default: List[Tuple[str, int]] = DEFAULT_SORT) -> List[Tuple[str, int]]:
    """'-price,title' -> [('price', -1), ('title', 1)]; campos desconocidos se ignoran."""
    if not sort:
        return list(default)
    keys = []
    for raw in sort.split(","):
        field = raw.strip()
        direction = 1
        if field.startswith("-"):
            direction, field = -1, field[1:]
        field = SORT_ALIASES.get(field, field)
        if field in SORTABLE:
            keys.append((field, direction))
    return keys or list(default)


class ServiceCatalog(OwnedRegistry):
    collection_name = "services"
    owner_field = "sitter_id"
    photo_field = "images"
    replace_flags = ("replace_images", "replace_photos")
    resource_name = "service"
    create_schema = ServiceCreate
    update_schema = ServiceUpdate

    def initial_fields(self) -> Dict[str, Any]:
        return {"rating": {"average": 0.0, "count": 0}, "total_bookings": 0, "featured": False}

    async def get_public(self, service_id: str) -> Dict[str, Any]:
        doc = await self.collection.find_one(active({"_id": self._oid(service_id)}))
        if not doc:
            raise NotFound("No service found with that ID")
        return doc

    async def browse(
        self,
        filters: ServiceFilters,
        page: int = 1,
        limit: int = 10,
        sort: Optional[str] = None,
        default_sort: List[Tuple[str, int]] = DEFAULT_SORT,
    ) -> Tuple[List[Dict[str, Any]], int]:
        q = build_query(filters)
        docs = await self.collection.find(
            q,
            sort=parse_sort(sort, default_sort),
            skip=(page - 1) * limit,
            limit=limit,
        ).to_list(limit)
        total = await self.collection.count_documents(q)
        return docs, total

    async def with_sitters(self, docs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Serializa los servicios añadiendo un resumen público del cuidador."""
        ids = {d.get("sitter_id") for d in docs if ObjectId.is_valid(str(d.get("sitter_id")))}
        sitters: Dict[str, Dict[str, Any]] = {}
        if ids:
            projection = {f: 1 for f in SITTER_FIELDS}
            async for user in self.db.users.find({"_id": {"$in": [ObjectId(i) for i in ids]}}, projection):
                sitters[str(user["_id"])] = to_id(user)

        out = []
        for doc in docs:
            item = to_id(doc)
            item["sitter"] = sitters.get(str(doc.get("sitter_id")))
            out.append(item)
        return out

    async def stats(self, sitter_id: str) -> Dict[str, Any]:
        groups: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        async for svc in self.collection.find(active({"sitter_id": sitter_id})):
            groups[svc.get("service_type", "other")].append(svc)

        breakdown = []
        for service_type, items in groups.items():
            breakdown.append({
                "service_type": service_type,
                "count": len(items),
                "avg_price": round(sum(s.get("price", 0) for s in items) / len(items), 2),
                "avg_rating": round(sum((s.get("rating") or {}).get("average", 0) for s in items) / len(items), 2),
                "total_bookings": sum(s.get("total_bookings", 0) for s in items),
            })
        breakdown.sort(key=lambda s: s["count"], reverse=True)
        return {"total_services": sum(s["count"] for s in breakdown), "service_breakdown": breakdown}
