"""
Decodificación de los campos entrantes de mascotas y servicios.

Los formularios multipart llegan como texto ("3", "true", '["dog"]',
location[city]=...). decode_fields hace todas las conversiones en una sola
pasada, antes de la validación con pydantic:

- numéricos: texto -> int/float; vacío o no parseable -> campo ausente
- booleanos: "true"/"false" -> bool
- listas: claves repetidas, JSON o "a,b" -> list
- objetos: JSON o claves anidadas (location[city], location.city) -> dict
"""
import json
import math
import re
from typing import Any, Dict, Iterable, List, Tuple

from fastapi import Request
from starlette.datastructures import UploadFile

from ..errors import ValidationFailed

INT_FIELDS = {"age", "duration", "max_pets"}
FLOAT_FIELDS = {"weight", "price", "hourly_rate", "lat", "lng"}
BOOL_FIELDS = {
    "vaccinated", "microchipped", "spayed_neutered",
    "instant_booking", "replace_photos", "replace_images",
}
LIST_FIELDS = {"medications", "allergies", "pet_types", "pet_sizes", "amenities", "availability"}
OBJECT_FIELDS = {"vet_info", "location", "coordinates", "emergency_contact", "address"}

UPLOAD_FIELDS = ("photos", "images")

_ABSENT = object()
_BRACKETS = re.compile(r"\[([^\]]*)\]")


def _split_key(key: str) -> List[str]:
    head = key.split("[", 1)[0]
    parts = [head] + [p for p in _BRACKETS.findall(key) if p]
    path: List[str] = []
    for part in parts:
        path.extend(p for p in part.split(".") if p)
    return path


def _maybe_json(value: str, opening: str) -> Any:
    text = value.strip()
    if not text.startswith(opening):
        return value
    try:
        return json.loads(text)
    except ValueError:
        raise ValidationFailed(f"Malformed JSON value: {text[:50]}")


def _coerce(name: str, value: Any) -> Any:
    if value is None:
        return _ABSENT
    if isinstance(value, str):
        value = value.strip()
        if value == "":
            return _ABSENT

    if name in INT_FIELDS or name in FLOAT_FIELDS:
        if isinstance(value, bool):
            return _ABSENT
        try:
            number = float(value)
        except (TypeError, ValueError, OverflowError):
            return _ABSENT
        if not math.isfinite(number):
            return _ABSENT
        return int(number) if name in INT_FIELDS else number

    if name in BOOL_FIELDS:
        if isinstance(value, str):
            return value.lower() in ("true", "1", "on", "yes")
        return bool(value)

    if name in LIST_FIELDS:
        if isinstance(value, str):
            value = _maybe_json(value, "[")
            if isinstance(value, str):
                value = [v.strip() for v in value.split(",") if v.strip()]
        if not isinstance(value, list):
            value = [value]
        items = [_maybe_json(v, "{") if isinstance(v, str) else v for v in value]
        return [_coerce_nested(v) if isinstance(v, dict) else v for v in items]

    if name in OBJECT_FIELDS:
        if isinstance(value, str):
            value = _maybe_json(value, "{")
        if isinstance(value, dict):
            return _coerce_nested(value)
        return value

    return value


def _coerce_nested(obj: Dict[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key, value in obj.items():
        coerced = _coerce(key, value)
        if coerced is not _ABSENT:
            out[key] = coerced
    return out


def decode_fields(items: Iterable[Tuple[str, Any]]) -> Dict[str, Any]:
    """Convierte pares (clave, valor) crudos en un dict tipado."""
    raw: Dict[str, Any] = {}
    for key, value in items:
        if isinstance(value, UploadFile):
            continue
        path = _split_key(key)
        if not path:
            continue
        target = raw
        for part in path[:-1]:
            nested = target.setdefault(part, {})
            if not isinstance(nested, dict):
                raise ValidationFailed(f"Conflicting values for field {key}")
            target = nested
        leaf = path[-1]
        if leaf in target:
            prev = target[leaf]
            target[leaf] = (prev if isinstance(prev, list) else [prev]) + [value]
        elif key.endswith("[]"):
            target[leaf] = [value]
        else:
            target[leaf] = value
    return _coerce_nested(raw)


async def read_submission(request: Request) -> Tuple[Dict[str, Any], List[UploadFile]]:
    """
    Lee el cuerpo de una petición de alta/edición, sea multipart o JSON.
    Devuelve (campos decodificados, ficheros subidos).
    """
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(("multipart/form-data", "application/x-www-form-urlencoded")):
        form = await request.form()
        uploads = [
            value
            for field in UPLOAD_FIELDS
            for value in form.getlist(field)
            if isinstance(value, UploadFile)
        ]
        return decode_fields(form.multi_items()), uploads

    body = await request.body()
    if not body:
        return {}, []
    try:
        payload = json.loads(body)
    except ValueError:
        raise ValidationFailed("Malformed JSON body")
    if not isinstance(payload, dict):
        raise ValidationFailed("Request body must be a JSON object")
    return decode_fields(payload.items()), []
