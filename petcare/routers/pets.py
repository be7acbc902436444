from fastapi import APIRouter, Depends, Query, Request, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from ..db import get_db
from ..schemas.forms import read_submission
from ..security import require_owner
from ..services.pets import PetRegistry
from ..storage import MediaStore, get_media
from ..utils import pagination, success, to_id

router = APIRouter()


def get_registry(
    db: AsyncIOMotorDatabase = Depends(get_db),
    media: MediaStore = Depends(get_media),
) -> PetRegistry:
    return PetRegistry(db, media)


@router.get("")
async def list_pets(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current=Depends(require_owner),
    pets: PetRegistry = Depends(get_registry),
):
    docs, total = await pets.list(current["id"], page, limit)
    return success(
        {"pets": [to_id(d) for d in docs]},
        results=len(docs),
        pagination=pagination(page, limit, total),
    )


@router.get("/stats")
async def pet_stats(current=Depends(require_owner), pets: PetRegistry = Depends(get_registry)):
    return success(await pets.stats(current["id"]))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_pet(
    request: Request,
    current=Depends(require_owner),
    pets: PetRegistry = Depends(get_registry),
):
    fields, uploads = await read_submission(request)
    doc = await pets.create(current["id"], fields, uploads)
    return success({"pet": to_id(doc)})


@router.get("/{pet_id}")
async def get_pet(pet_id: str, current=Depends(require_owner), pets: PetRegistry = Depends(get_registry)):
    return success({"pet": to_id(await pets.get(pet_id, current["id"]))})


@router.put("/{pet_id}")
async def update_pet(
    pet_id: str,
    request: Request,
    current=Depends(require_owner),
    pets: PetRegistry = Depends(get_registry),
):
    fields, uploads = await read_submission(request)
    doc = await pets.update(pet_id, current["id"], fields, uploads)
    return success({"pet": to_id(doc)})


@router.delete("/{pet_id}")
async def delete_pet(pet_id: str, current=Depends(require_owner), pets: PetRegistry = Depends(get_registry)):
    await pets.soft_delete(pet_id, current["id"])
    return {"status": "success", "message": "Pet deleted successfully", "data": None}


@router.delete("/{pet_id}/photos/{index}")
async def delete_pet_photo(
    pet_id: str,
    index: int,
    current=Depends(require_owner),
    pets: PetRegistry = Depends(get_registry),
):
    doc = await pets.delete_photo_at(pet_id, current["id"], index)
    return success({"pet": to_id(doc)}, message="Photo deleted successfully")
