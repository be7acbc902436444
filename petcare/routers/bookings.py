from datetime import datetime
from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends, Query, Request, status
from motor.motor_asyncio import AsyncIOMotorDatabase
from bson import ObjectId

from ..db import get_db
from ..middleware.rate_limit import apply_rate_limit
from ..schemas.booking import BookingCreate, BookingStatus, BookingUpdateIn, CheckInOut, StatusPatch
from ..security import get_current_user, require_owner, require_sitter
from ..services.booking_engine import BookingEngine
from ..utils import pagination, success, to_id

router = APIRouter()

SERVICE_SUMMARY = {"title": 1, "service_type": 1, "price": 1, "price_type": 1}
PET_SUMMARY = {"name": 1, "species": 1, "breed": 1, "photos": 1}


def get_engine(request: Request, db: AsyncIOMotorDatabase = Depends(get_db)) -> BookingEngine:
    return BookingEngine(db, request.app.state.settings.service_fee_rate)


async def _summary(db: AsyncIOMotorDatabase, collection: str, ref: Any, projection: Dict[str, int]):
    if not ObjectId.is_valid(str(ref)):
        return None
    doc = await db[collection].find_one({"_id": ObjectId(str(ref))}, projection)
    return to_id(doc) if doc else None


@router.get("")
async def list_bookings(
    status_: Optional[BookingStatus] = Query(None, alias="status"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current=Depends(get_current_user),
    engine: BookingEngine = Depends(get_engine),
):
    docs, total = await engine.list_bookings(current, status_, start_date, end_date, page, limit)
    return success(
        {"bookings": [to_id(d) for d in docs]},
        results=len(docs),
        pagination=pagination(page, limit, total),
    )


@router.get("/stats")
async def booking_stats(current=Depends(get_current_user), engine: BookingEngine = Depends(get_engine)):
    return success(await engine.booking_stats(current))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_booking(
    request: Request,
    payload: BookingCreate,
    current=Depends(require_owner),
    engine: BookingEngine = Depends(get_engine),
):
    # Máximo 15 reservas por minuto por IP
    apply_rate_limit(request, "15/minute")
    contact = payload.emergency_contact.model_dump() if payload.emergency_contact else None
    doc = await engine.create_booking(
        current,
        payload.service_id,
        payload.pet_id,
        payload.start_date,
        payload.end_date,
        notes=payload.notes,
        emergency_contact=contact,
    )
    return success({"booking": to_id(doc)})


@router.get("/{booking_id}")
async def get_booking(
    booking_id: str,
    current=Depends(get_current_user),
    engine: BookingEngine = Depends(get_engine),
):
    doc = await engine.get_booking(current, booking_id)
    item = to_id(doc)
    item["service"] = await _summary(engine.db, "services", doc.get("service_id"), SERVICE_SUMMARY)
    item["pet"] = await _summary(engine.db, "pets", doc.get("pet_id"), PET_SUMMARY)
    return success({"booking": item})


@router.patch("/{booking_id}/status")
async def patch_status(
    booking_id: str,
    body: StatusPatch,
    current=Depends(get_current_user),
    engine: BookingEngine = Depends(get_engine),
):
    doc = await engine.update_status(current, booking_id, body.status, body.notes)
    return success({"booking": to_id(doc)}, message=f"Booking {doc['status']} successfully")


@router.post("/{booking_id}/updates", status_code=status.HTTP_201_CREATED)
async def add_update(
    booking_id: str,
    body: BookingUpdateIn,
    current=Depends(require_sitter),
    engine: BookingEngine = Depends(get_engine),
):
    doc, update = await engine.add_update(current, booking_id, body.message, body.photos)
    return success({"booking": to_id(doc), "update": to_id(update)})


@router.post("/{booking_id}/checkin")
async def check_in(
    booking_id: str,
    body: Optional[CheckInOut] = None,
    current=Depends(require_sitter),
    engine: BookingEngine = Depends(get_engine),
):
    body = body or CheckInOut()
    doc = await engine.check_in(current, booking_id, body.notes, body.photos)
    return success({"booking": to_id(doc)}, message="Checked in successfully")


@router.post("/{booking_id}/checkout")
async def check_out(
    booking_id: str,
    body: Optional[CheckInOut] = None,
    current=Depends(require_sitter),
    engine: BookingEngine = Depends(get_engine),
):
    body = body or CheckInOut()
    doc = await engine.check_out(current, booking_id, body.notes, body.photos)
    return success({"booking": to_id(doc)}, message="Checked out successfully")
