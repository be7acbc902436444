"""
Capa de control de acceso: autenticación por token Bearer (JWT) y
autorización por rol y por propiedad del recurso.

Todas las comparaciones de rol del proyecto pasan por authorize().
"""
from datetime import timedelta
from typing import Any, Dict, Iterable, Optional
from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError, ExpiredSignatureError
from passlib.context import CryptContext
from motor.motor_asyncio import AsyncIOMotorDatabase
from bson import ObjectId

from .config import Settings
from .db import get_db
from .errors import Forbidden, Unauthenticated
from .schemas.user import Role
from .utils import public_user, utcnow

ALGO = "HS256"
pwd = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)

Identity = Dict[str, Any]


def hash_password(plain: str) -> str:
    return pwd.hash(plain)


def verify_password(plain: str, hashed: str) -> bool:
    if not hashed:
        return False
    return pwd.verify(plain, hashed)


def create_access_token(user: Dict[str, Any], settings: Settings, expires_hours: Optional[int] = None) -> str:
    user_id = str(user.get("_id") or user.get("id"))
    expire = utcnow() + timedelta(hours=expires_hours or settings.jwt_expires_hours)
    payload = {"sub": user_id, "email": user.get("email"), "role": user.get("role"), "exp": expire}
    return jwt.encode(payload, settings.jwt_secret, algorithm=ALGO)


async def authenticate(token: Optional[str], db: AsyncIOMotorDatabase, settings: Settings) -> Identity:
    """Resuelve un token Bearer a un usuario activo o lanza Unauthenticated."""
    if not token:
        raise Unauthenticated()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[ALGO])
    except ExpiredSignatureError:
        raise Unauthenticated("Your token has expired! Please log in again.")
    except JWTError:
        raise Unauthenticated("Invalid token. Please log in again!")

    sub = payload.get("sub")
    if not sub or not ObjectId.is_valid(str(sub)):
        raise Unauthenticated("Invalid token. Please log in again!")

    doc = await db.users.find_one({"_id": ObjectId(str(sub))})
    if not doc:
        raise Unauthenticated("The user belonging to this token no longer exists.")
    if not doc.get("is_active", True):
        raise Unauthenticated("Your account has been deactivated. Please reactivate it to continue.")
    return public_user(doc)


async def get_current_user(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db: AsyncIOMotorDatabase = Depends(get_db),
) -> Identity:
    return await authenticate(token, db, request.app.state.settings)


async def get_optional_user(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db: AsyncIOMotorDatabase = Depends(get_db),
) -> Optional[Identity]:
    """Igual que get_current_user pero devuelve None si no hay sesión válida."""
    try:
        return await authenticate(token, db, request.app.state.settings)
    except Unauthenticated:
        return None


def has_role(identity: Optional[Identity], role: Role) -> bool:
    return bool(identity) and identity.get("role") == role.value


def authorize(identity: Identity, required_roles: Iterable[Role]) -> None:
    roles = {Role(r) for r in required_roles}
    role = identity.get("role")
    if role in {r.value for r in roles}:
        return

    message = "You do not have permission to perform this action"
    if Role.sitter in roles and role == Role.owner.value:
        message = "Only pet sitters can perform this action. Pet owners cannot create or manage services."
    elif Role.owner in roles and role == Role.sitter.value:
        message = "Only pet owners can perform this action. Sitters cannot manage pets."
    raise Forbidden(message, user_role=role, required_roles=sorted(r.value for r in roles))


def require_roles(*roles: Role):
    """Dependencia: usuario autenticado con alguno de los roles indicados."""
    async def role_checker(current: Identity = Depends(get_current_user)) -> Identity:
        authorize(current, roles)
        return current
    return role_checker


def authorize_ownership(identity: Identity, resource: Dict[str, Any], field: str = "owner_id") -> None:
    if str(resource.get(field)) != identity["id"]:
        raise Forbidden("You do not have access to this resource")


require_owner = require_roles(Role.owner)
require_sitter = require_roles(Role.sitter)
