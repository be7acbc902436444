from typing import Any, Dict
from bson import ObjectId
from fastapi import APIRouter, Body, Depends, Request, Response, status
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import ValidationError
from pymongo.errors import DuplicateKeyError
import logging

from ..db import active, get_db
from ..errors import EmailAlreadyRegistered, NotFound, Unauthenticated, ValidationFailed
from ..middleware.rate_limit import apply_rate_limit
from ..schemas.user import Login, PasswordUpdate, Reactivate, Register, Role, UpdateMe
from ..security import create_access_token, get_current_user, hash_password, verify_password
from ..utils import public_user, success, utcnow

logger = logging.getLogger(__name__)

router = APIRouter()


def _with_token(request: Request, user: Dict[str, Any], message: str | None = None) -> Dict[str, Any]:
    token = create_access_token(user, request.app.state.settings)
    extra = {"message": message} if message else {}
    return success({"user": public_user(user)}, token=token, **extra)


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(request: Request, payload: Register, db: AsyncIOMotorDatabase = Depends(get_db)):
    # Máximo 5 registros por minuto por IP
    apply_rate_limit(request, "5/minute")

    if await db.users.find_one({"email": payload.email}):
        raise EmailAlreadyRegistered()

    now = utcnow()
    doc = payload.model_dump(mode="json", exclude={"password"})
    doc.update({
        "password_hash": hash_password(payload.password),
        "is_active": True,
        "is_verified": False,
        "avatar": None,
        "last_login": None,
        "created_at": now,
        "updated_at": now,
    })
    try:
        res = await db.users.insert_one(doc)
    except DuplicateKeyError:
        raise EmailAlreadyRegistered()
    logger.info("Usuario registrado: %s (%s)", res.inserted_id, payload.role.value)

    user = await db.users.find_one({"_id": res.inserted_id})
    return _with_token(request, user)


@router.post("/login")
async def login(request: Request, payload: Login, db: AsyncIOMotorDatabase = Depends(get_db)):
    # Máximo 10 intentos por minuto por IP
    apply_rate_limit(request, "10/minute")

    user = await db.users.find_one({"email": payload.email})
    if not user or not verify_password(payload.password, user.get("password_hash", "")):
        raise Unauthenticated("Incorrect email or password")
    if not user.get("is_active", True):
        raise Unauthenticated("Your account has been deactivated. Please reactivate it to continue.")

    now = utcnow()
    await db.users.update_one({"_id": user["_id"]}, {"$set": {"last_login": now}})
    user["last_login"] = now
    return _with_token(request, user)


@router.get("/me")
async def me(current=Depends(get_current_user), db: AsyncIOMotorDatabase = Depends(get_db)):
    data: Dict[str, Any] = {"user": current}
    if current.get("role") == Role.owner.value:
        data["pet_count"] = await db.pets.count_documents(active({"owner_id": current["id"]}))
    else:
        data["service_count"] = await db.services.count_documents(active({"sitter_id": current["id"]}))
    return success(data)


@router.put("/me")
async def update_me(
    payload: Dict[str, Any] = Body(...),
    current=Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    if "password" in payload or "password_confirm" in payload:
        raise ValidationFailed("This route is not for password updates. Please use /auth/updatePassword.")
    try:
        changes = UpdateMe.model_validate(payload).model_dump(mode="json", exclude_unset=True)
    except ValidationError as exc:
        raise ValidationFailed.from_pydantic(exc)

    user_id = ObjectId(current["id"])
    if changes:
        changes["updated_at"] = utcnow()
        await db.users.update_one({"_id": user_id}, {"$set": changes})
    return success({"user": public_user(await db.users.find_one({"_id": user_id}))})


@router.delete("/me", status_code=status.HTTP_204_NO_CONTENT)
async def deactivate_me(current=Depends(get_current_user), db: AsyncIOMotorDatabase = Depends(get_db)):
    await db.users.update_one(
        {"_id": ObjectId(current["id"])},
        {"$set": {"is_active": False, "updated_at": utcnow()}},
    )
    logger.info("Cuenta desactivada: %s", current["id"])
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/updatePassword")
async def update_password(
    request: Request,
    payload: PasswordUpdate,
    current=Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    user = await db.users.find_one({"_id": ObjectId(current["id"])})
    if not verify_password(payload.current_password, user.get("password_hash", "")):
        raise Unauthenticated("Your current password is wrong")

    await db.users.update_one(
        {"_id": user["_id"]},
        {"$set": {"password_hash": hash_password(payload.new_password), "updated_at": utcnow()}},
    )
    return _with_token(request, user, "Password updated successfully")


@router.put("/reactivate")
async def reactivate(request: Request, payload: Reactivate, db: AsyncIOMotorDatabase = Depends(get_db)):
    apply_rate_limit(request, "5/minute")

    user = await db.users.find_one({"email": payload.email, "is_active": False})
    if not user:
        raise NotFound("No deactivated account found with that email")
    if not verify_password(payload.password, user.get("password_hash", "")):
        raise Unauthenticated("Incorrect password")

    now = utcnow()
    await db.users.update_one(
        {"_id": user["_id"]},
        {"$set": {"is_active": True, "last_login": now, "updated_at": now}},
    )
    user.update(is_active=True, last_login=now)
    logger.info("Cuenta reactivada: %s", user["_id"])
    return _with_token(request, user, "Account reactivated successfully")


@router.post("/forgotPassword")
async def forgot_password():
    # TODO: enviar email con token de recuperación cuando haya proveedor de correo
    return {"status": "success", "message": "Password reset is not yet available. Please contact support."}


@router.post("/logout")
async def logout():
    return {"status": "success", "message": "Logged out successfully"}
