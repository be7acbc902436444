from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, Query, Request, Response, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from ..db import get_db
from ..schemas.forms import read_submission
from ..security import get_optional_user, require_sitter
from ..services.catalog import ServiceCatalog, ServiceFilters
from ..storage import MediaStore, get_media
from ..utils import pagination, success, to_id

router = APIRouter()

SEARCH_SORT = [("rating.average", -1)]


def get_catalog(
    db: AsyncIOMotorDatabase = Depends(get_db),
    media: MediaStore = Depends(get_media),
) -> ServiceCatalog:
    return ServiceCatalog(db, media)


def _mark_mine(items: List[Dict[str, Any]], current: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    for item in items:
        item["is_mine"] = bool(current) and item.get("sitter_id") == current["id"]
    return items


async def _page(catalog, filters, page, limit, sort, current, default_sort=None):
    kwargs = {"default_sort": default_sort} if default_sort else {}
    docs, total = await catalog.browse(filters, page=page, limit=limit, sort=sort, **kwargs)
    items = _mark_mine(await catalog.with_sitters(docs), current)
    return success(
        {"services": items},
        results=len(items),
        pagination=pagination(page, limit, total),
    )


# ---------- Públicos ----------

@router.get("")
async def list_services(
    service_type: Optional[str] = Query(None, alias="serviceType"),
    pet_type: Optional[str] = Query(None, alias="petType"),
    city: Optional[str] = None,
    state: Optional[str] = None,
    min_price: Optional[float] = Query(None, alias="minPrice", ge=0),
    max_price: Optional[float] = Query(None, alias="maxPrice", ge=0),
    sort: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current=Depends(get_optional_user),
    catalog: ServiceCatalog = Depends(get_catalog),
):
    filters = ServiceFilters(
        service_type=service_type,
        pet_type=pet_type,
        city=city,
        state=state,
        min_price=min_price,
        max_price=max_price,
    )
    return await _page(catalog, filters, page, limit, sort, current)


@router.get("/search")
async def search_services(
    query: Optional[str] = None,
    service_type: Optional[str] = Query(None, alias="serviceType"),
    pet_type: Optional[str] = Query(None, alias="petType"),
    city: Optional[str] = None,
    state: Optional[str] = None,
    min_price: Optional[float] = Query(None, alias="minPrice", ge=0),
    max_price: Optional[float] = Query(None, alias="maxPrice", ge=0),
    rating: Optional[float] = Query(None, ge=0, le=5),
    instant_booking: Optional[bool] = Query(None, alias="instantBooking"),
    sort: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current=Depends(get_optional_user),
    catalog: ServiceCatalog = Depends(get_catalog),
):
    filters = ServiceFilters(
        query=query,
        service_type=service_type,
        pet_type=pet_type,
        city=city,
        state=state,
        min_price=min_price,
        max_price=max_price,
        rating=rating,
        instant_booking=instant_booking,
    )
    return await _page(catalog, filters, page, limit, sort, current, default_sort=SEARCH_SORT)


# ---------- Cuidador ----------
# Van antes de /{service_id} para que "my" no se tome por un id.

@router.get("/my/services")
async def my_services(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current=Depends(require_sitter),
    catalog: ServiceCatalog = Depends(get_catalog),
):
    docs, total = await catalog.list(current["id"], page, limit)
    return success(
        {"services": [to_id(d) for d in docs]},
        results=len(docs),
        pagination=pagination(page, limit, total),
    )


@router.get("/my/stats")
async def my_stats(current=Depends(require_sitter), catalog: ServiceCatalog = Depends(get_catalog)):
    return success(await catalog.stats(current["id"]))


@router.post("/my", status_code=status.HTTP_201_CREATED)
async def create_service(
    request: Request,
    current=Depends(require_sitter),
    catalog: ServiceCatalog = Depends(get_catalog),
):
    fields, uploads = await read_submission(request)
    doc = await catalog.create(current["id"], fields, uploads)
    return success({"service": to_id(doc)})


@router.put("/{service_id}/manage")
async def update_service(
    service_id: str,
    request: Request,
    current=Depends(require_sitter),
    catalog: ServiceCatalog = Depends(get_catalog),
):
    fields, uploads = await read_submission(request)
    doc = await catalog.update(service_id, current["id"], fields, uploads)
    return success({"service": to_id(doc)})


@router.delete("/{service_id}/manage", status_code=status.HTTP_204_NO_CONTENT)
async def delete_service(
    service_id: str,
    current=Depends(require_sitter),
    catalog: ServiceCatalog = Depends(get_catalog),
):
    await catalog.soft_delete(service_id, current["id"])
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/{service_id}/images/{index}")
async def delete_service_image(
    service_id: str,
    index: int,
    current=Depends(require_sitter),
    catalog: ServiceCatalog = Depends(get_catalog),
):
    doc = await catalog.delete_photo_at(service_id, current["id"], index)
    return success({"service": to_id(doc)}, message="Image deleted successfully")


@router.get("/{service_id}")
async def get_service(
    service_id: str,
    current=Depends(get_optional_user),
    catalog: ServiceCatalog = Depends(get_catalog),
):
    doc = await catalog.get_public(service_id)
    item = _mark_mine(await catalog.with_sitters([doc]), current)[0]
    return success({"service": item})
