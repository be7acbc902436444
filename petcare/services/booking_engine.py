"""
Motor de reservas: creación con detección de solapes y cálculo de precio,
y ciclo de vida de estados con política de cancelación y reembolso.

Estados y transiciones permitidas:

    pending     -> confirmed | declined | cancelled
    confirmed   -> in_progress | cancelled
    in_progress -> completed | cancelled
    completed, cancelled, declined -> (terminales)

La comprobación de solapes es lectura-y-escritura sin bloqueo: dos peticiones
simultáneas sobre el mismo hueco pueden pasar ambas (ver DESIGN.md).
"""
from collections import Counter
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
import logging
import math

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from ..db import active
from ..errors import (
    Conflict,
    Forbidden,
    InvalidTransition,
    NotFound,
    SlotUnavailable,
    UnsupportedPetType,
    ValidationFailed,
)
from ..schemas.booking import BookingStatus
from ..schemas.service import PriceType
from ..schemas.user import Role
from ..security import Identity, authorize, authorize_ownership, has_role
from ..utils import as_naive_utc, to_object_id, utcnow

logger = logging.getLogger(__name__)

SERVICE_FEE_RATE = 0.05

ALLOWED: Dict[BookingStatus, set] = {
    BookingStatus.pending: {BookingStatus.confirmed, BookingStatus.declined, BookingStatus.cancelled},
    BookingStatus.confirmed: {BookingStatus.in_progress, BookingStatus.cancelled},
    BookingStatus.in_progress: {BookingStatus.completed, BookingStatus.cancelled},
    BookingStatus.completed: set(),
    BookingStatus.cancelled: set(),
    BookingStatus.declined: set(),
}

# Estados que ocupan la agenda del cuidador
BLOCKING = (BookingStatus.pending, BookingStatus.confirmed, BookingStatus.in_progress)

OWNER_REQUESTABLE = {BookingStatus.cancelled}
SITTER_REQUESTABLE = {
    BookingStatus.confirmed,
    BookingStatus.declined,
    BookingStatus.in_progress,
    BookingStatus.completed,
}

# ---------- Política (funciones puras) ----------

def compute_price(
    price: float,
    price_type: str,
    start: datetime,
    end: datetime,
    fee_rate: float = SERVICE_FEE_RATE,
) -> Tuple[float, float]:
    """Devuelve (total_price, service_fee). El total ya incluye la comisión."""
    seconds = abs((end - start).total_seconds())
    price_type = PriceType(price_type)
    if price_type == PriceType.hourly:
        units = math.ceil(seconds / 3600)
    elif price_type == PriceType.daily:
        units = math.ceil(seconds / 86400)
    elif price_type == PriceType.weekly:
        units = math.ceil(seconds / (86400 * 7))
    else:
        units = 1
    subtotal = float(price) * units
    fee = round(subtotal * fee_rate, 2)
    return round(subtotal + fee, 2), fee


def hours_until_start(start: datetime, now: Optional[datetime] = None) -> float:
    now = now or utcnow()
    return (start - now).total_seconds() / 3600


def can_be_cancelled(booking: Dict[str, Any], now: Optional[datetime] = None) -> bool:
    if booking.get("status") in (BookingStatus.completed.value, BookingStatus.cancelled.value):
        return False
    return hours_until_start(booking["start_date"], now) > 24


def calculate_refund(booking: Dict[str, Any], now: Optional[datetime] = None) -> float:
    hours = hours_until_start(booking["start_date"], now)
    total = float(booking.get("total_price", 0))
    if hours > 48:
        return total
    if hours > 24:
        return round(total * 0.5, 2)
    return 0.0


def check_transition(current: str, requested: str) -> None:
    try:
        old = BookingStatus(current)
        new = BookingStatus(requested)
    except ValueError:
        raise InvalidTransition(str(current), str(requested))
    if new not in ALLOWED[old]:
        raise InvalidTransition(old.value, new.value)


def check_requestable(identity: Identity, requested: BookingStatus) -> None:
    """Qué estados puede pedir cada rol, independientemente del estado actual."""
    if has_role(identity, Role.owner):
        if requested not in OWNER_REQUESTABLE:
            raise Forbidden("Pet owners can only cancel bookings")
    elif has_role(identity, Role.sitter):
        if requested not in SITTER_REQUESTABLE:
            raise Forbidden("Invalid status update for sitter")
    else:
        authorize(identity, (Role.owner, Role.sitter))


def party_field(identity: Identity) -> str:
    return "owner_id" if has_role(identity, Role.owner) else "sitter_id"


# ---------- Motor ----------

class BookingEngine:
    def __init__(self, db: AsyncIOMotorDatabase, fee_rate: float = SERVICE_FEE_RATE):
        self.db = db
        self.fee_rate = fee_rate

    async def _load(self, identity: Identity, booking_id: str, **extra: Any) -> Dict[str, Any]:
        """Reserva visible para el usuario (como dueño o como cuidador), si no 404."""
        q = {"_id": to_object_id(booking_id, "booking"), party_field(identity): identity["id"], **extra}
        doc = await self.db.bookings.find_one(q)
        if not doc:
            raise NotFound("No booking found with that ID")
        return doc

    async def find_conflicts(
        self,
        sitter_id: str,
        start: datetime,
        end: datetime,
        exclude_id: Optional[ObjectId] = None,
    ) -> List[Dict[str, Any]]:
        q: Dict[str, Any] = {
            "sitter_id": sitter_id,
            "status": {"$in": [s.value for s in BLOCKING]},
            "start_date": {"$lte": end},
            "end_date": {"$gte": start},
        }
        if exclude_id is not None:
            q["_id"] = {"$ne": exclude_id}
        return await self.db.bookings.find(q).to_list(100)

    async def create_booking(
        self,
        owner: Identity,
        service_id: str,
        pet_id: str,
        start_date: datetime,
        end_date: datetime,
        notes: Optional[str] = None,
        emergency_contact: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        authorize(owner, (Role.owner,))
        now = now or utcnow()
        start = as_naive_utc(start_date)
        end = as_naive_utc(end_date)
        if end <= start:
            raise ValidationFailed("End date must be after start date")
        if start < now:
            raise ValidationFailed("Start date cannot be in the past")

        service = await self.db.services.find_one(active({"_id": to_object_id(service_id, "service")}))
        if not service:
            raise NotFound("Service not found or not available")

        pet = await self.db.pets.find_one(
            active({"_id": to_object_id(pet_id, "pet"), "owner_id": owner["id"]})
        )
        if not pet:
            raise NotFound("Pet not found or does not belong to you")

        if pet.get("species") not in (service.get("pet_types") or []):
            raise UnsupportedPetType(pet.get("species"))

        sitter_id = service["sitter_id"]
        if await self.find_conflicts(sitter_id, start, end):
            raise SlotUnavailable()

        total_price, service_fee = compute_price(
            service.get("price", 0),
            service.get("price_type", PriceType.hourly.value),
            start,
            end,
            self.fee_rate,
        )
        status = BookingStatus.confirmed if service.get("instant_booking") else BookingStatus.pending

        doc = {
            "owner_id": owner["id"],
            "sitter_id": sitter_id,
            "service_id": str(service["_id"]),
            "pet_id": str(pet["_id"]),
            "start_date": start,
            "end_date": end,
            "status": status.value,
            "total_price": total_price,
            "service_fee": service_fee,
            "notes": notes,
            "emergency_contact": emergency_contact,
            "check_in": {},
            "check_out": {},
            "updates": [],
            "created_at": now,
            "updated_at": now,
        }
        res = await self.db.bookings.insert_one(doc)
        logger.info("Reserva %s creada (%s) para el cuidador %s", res.inserted_id, status.value, sitter_id)
        return await self.db.bookings.find_one({"_id": res.inserted_id})

    async def update_status(
        self,
        identity: Identity,
        booking_id: str,
        requested: BookingStatus,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        requested = BookingStatus(requested)
        check_requestable(identity, requested)
        doc = await self._load(identity, booking_id)
        authorize_ownership(identity, doc, party_field(identity))

        current = doc.get("status")
        check_transition(current, requested.value)

        now = now or utcnow()
        changes: Dict[str, Any] = {"status": requested.value, "updated_at": now}

        if requested == BookingStatus.cancelled:
            if not can_be_cancelled(doc, now):
                raise InvalidTransition(
                    current, requested.value, "Booking cannot be cancelled less than 24 hours before it starts"
                )
            changes["cancellation"] = {
                "cancelled_by": identity["id"],
                "cancelled_at": now,
                "reason": notes,
                "refund_amount": calculate_refund(doc, now),
            }

        if notes:
            changes["owner_notes" if has_role(identity, Role.owner) else "sitter_notes"] = notes

        # Escritura condicionada al estado leído: si otra petición lo cambió, no se pisa.
        res = await self.db.bookings.update_one({"_id": doc["_id"], "status": current}, {"$set": changes})
        if res.matched_count == 0:
            raise Conflict("Booking status changed while processing the request, please retry")
        logger.info("Reserva %s: %s -> %s por %s", doc["_id"], current, requested.value, identity["id"])

        if requested == BookingStatus.confirmed:
            await self._count_confirmation(doc.get("service_id"))
        return await self.db.bookings.find_one({"_id": doc["_id"]})

    async def _count_confirmation(self, service_id: Any) -> None:
        if not ObjectId.is_valid(str(service_id)):
            return
        try:
            await self.db.services.update_one({"_id": ObjectId(str(service_id))}, {"$inc": {"total_bookings": 1}})
        except PyMongoError:
            logger.exception("No se pudo incrementar total_bookings del servicio %s", service_id)

    async def add_update(
        self,
        sitter: Identity,
        booking_id: str,
        message: str,
        photos: Optional[List[str]] = None,
    ) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        authorize(sitter, (Role.sitter,))
        q = {
            "_id": to_object_id(booking_id, "booking"),
            "sitter_id": sitter["id"],
            "status": BookingStatus.in_progress.value,
        }
        doc = await self.db.bookings.find_one(q)
        if not doc:
            raise NotFound("No active booking found with that ID")

        update = {"time": utcnow(), "message": message, "photos": photos or [], "author_id": sitter["id"]}
        await self.db.bookings.update_one({"_id": doc["_id"]}, {"$push": {"updates": update}})
        return await self.db.bookings.find_one({"_id": doc["_id"]}), update

    async def check_in(
        self,
        sitter: Identity,
        booking_id: str,
        notes: Optional[str] = None,
        photos: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        authorize(sitter, (Role.sitter,))
        doc = await self._load(sitter, booking_id)
        if (doc.get("check_in") or {}).get("time"):
            raise ValidationFailed("Already checked in for this booking")
        check_transition(doc.get("status"), BookingStatus.in_progress.value)
        return await self._record_check(doc, "check_in", BookingStatus.in_progress, notes, photos)

    async def check_out(
        self,
        sitter: Identity,
        booking_id: str,
        notes: Optional[str] = None,
        photos: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        authorize(sitter, (Role.sitter,))
        doc = await self._load(sitter, booking_id)
        if not (doc.get("check_in") or {}).get("time"):
            raise ValidationFailed("Must check in before checking out")
        if (doc.get("check_out") or {}).get("time"):
            raise ValidationFailed("Already checked out for this booking")
        check_transition(doc.get("status"), BookingStatus.completed.value)
        return await self._record_check(doc, "check_out", BookingStatus.completed, notes, photos)

    async def _record_check(
        self,
        doc: Dict[str, Any],
        field: str,
        status: BookingStatus,
        notes: Optional[str],
        photos: Optional[List[str]],
    ) -> Dict[str, Any]:
        now = utcnow()
        record = {"time": now, "notes": notes, "photos": photos or []}
        res = await self.db.bookings.update_one(
            {"_id": doc["_id"], "status": doc.get("status")},
            {"$set": {field: record, "status": status.value, "updated_at": now}},
        )
        if res.matched_count == 0:
            raise Conflict("Booking status changed while processing the request, please retry")
        logger.info("Reserva %s: %s registrado", doc["_id"], field)
        return await self.db.bookings.find_one({"_id": doc["_id"]})

    # ---------- Consultas ----------

    async def get_booking(self, identity: Identity, booking_id: str) -> Dict[str, Any]:
        return await self._load(identity, booking_id)

    async def list_bookings(
        self,
        identity: Identity,
        status: Optional[BookingStatus] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[Dict[str, Any]], int]:
        q: Dict[str, Any] = {party_field(identity): identity["id"]}
        if status:
            q["status"] = BookingStatus(status).value
        if start_date or end_date:
            q["start_date"] = {}
            if start_date:
                q["start_date"]["$gte"] = as_naive_utc(start_date)
            if end_date:
                q["start_date"]["$lte"] = as_naive_utc(end_date)

        docs = await self.db.bookings.find(
            q, sort=[("start_date", -1)], skip=(page - 1) * limit, limit=limit
        ).to_list(limit)
        total = await self.db.bookings.count_documents(q)
        return docs, total

    async def booking_stats(self, identity: Identity, now: Optional[datetime] = None) -> Dict[str, Any]:
        field = party_field(identity)
        counts: Counter = Counter()
        revenue: Counter = Counter()
        async for b in self.db.bookings.find({field: identity["id"]}, {"status": 1, "total_price": 1}):
            counts[b.get("status")] += 1
            revenue[b.get("status")] += float(b.get("total_price") or 0)

        upcoming = await self.db.bookings.count_documents({
            field: identity["id"],
            "status": {"$in": [BookingStatus.pending.value, BookingStatus.confirmed.value]},
            "start_date": {"$gte": now or utcnow()},
        })
        breakdown = [
            {"status": status, "count": count, "total_revenue": round(revenue[status], 2)}
            for status, count in counts.most_common()
        ]
        return {
            "total_bookings": sum(counts.values()),
            "total_revenue": round(sum(revenue.values()), 2),
            "upcoming_bookings": upcoming,
            "status_breakdown": breakdown,
        }
