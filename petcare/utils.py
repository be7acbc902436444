# petcare/utils.py
from typing import Any, Dict, Optional
import math
from bson import ObjectId
from datetime import datetime, timezone

from .errors import NotFound

def to_id(doc: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Convierte _id -> id (str) y todos los ObjectIds a strings.
    También convierte datetime a ISO format strings.
    Si doc es None, devuelve {}.
    """
    if doc is None:
        return {}
    d = dict(doc)

    if "_id" in d:
        d["id"] = str(d.pop("_id"))

    for key, value in d.items():
        if isinstance(value, ObjectId):
            d[key] = str(value)
        elif isinstance(value, datetime):
            d[key] = value.isoformat()
        elif isinstance(value, dict):
            d[key] = to_id(value)
        elif isinstance(value, list):
            d[key] = [
                str(item) if isinstance(item, ObjectId)
                else item.isoformat() if isinstance(item, datetime)
                else to_id(item) if isinstance(item, dict)
                else item
                for item in value
            ]

    return d

def public_user(doc: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Usuario serializable: nunca expone el hash de la contraseña."""
    d = to_id(doc)
    d.pop("password_hash", None)
    return d

def success(data: Any = None, **extra: Any) -> Dict[str, Any]:
    return {"status": "success", **extra, "data": data}

def pagination(page: int, limit: int, total: int) -> Dict[str, int]:
    return {
        "page": page,
        "limit": limit,
        "pages": math.ceil(total / limit) if limit else 0,
        "total": total,
    }

# ==================== Fechas ====================

def utcnow() -> datetime:
    """UTC 'naive', como lo devuelve MongoDB."""
    return datetime.now(timezone.utc).replace(tzinfo=None)

def as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value

# ==================== Utilidades de Base de Datos ====================

def to_object_id(value: str, resource: str = "resource") -> ObjectId:
    """
    Convierte un string a ObjectId. Un id mal formado se trata como
    recurso inexistente (404), igual que uno que no existe.
    """
    if not ObjectId.is_valid(value):
        raise NotFound(f"No {resource} found with that ID")
    return ObjectId(value)
