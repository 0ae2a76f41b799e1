from __future__ import annotations

from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import Response
from pydantic import ValidationError as SchemaError

from app.api.deps import get_ads_service, get_gallery_service, require_actor_id, require_writable
from app.api.routes.admin_catalog import to_image_files
from app.core.config import settings
from app.core.errors import ValidationError
from app.domain.catalog.schema import AdOut, AdPage, AdUpdate, GalleryOut
from app.services.ads_service import AdsService, GalleryService

router = APIRouter()


@router.get("/ads", response_model=AdPage)
async def list_ads(
    response: Response,
    svc: Annotated[AdsService, Depends(get_ads_service)],
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1, le=100),
    search: Optional[str] = Query(None, max_length=100),
):
    out = await svc.list(page, int(page_size or settings.ADS_PAGE_SIZE), search)
    response.headers["X-Total-Count"] = str(out.total)
    return out


@router.post("/ads", response_model=AdOut, dependencies=[Depends(require_writable), Depends(require_actor_id)])
async def create_ad(
    svc: Annotated[AdsService, Depends(get_ads_service)],
    title_ar: str = Form(..., min_length=1),
    title_en: str = Form(..., min_length=1),
    link: str = Form(""),
    image: UploadFile = File(...),
):
    files = await to_image_files([image])
    return await svc.create(title_ar, title_en, files[0], link=link or None)


@router.patch(
    "/ads/{ad_id}", response_model=AdOut, dependencies=[Depends(require_writable), Depends(require_actor_id)]
)
async def update_ad(
    ad_id: int,
    svc: Annotated[AdsService, Depends(get_ads_service)],
    title_ar: Optional[str] = Form(None),
    title_en: Optional[str] = Form(None),
    link: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
):
    fields = {k: v for k, v in {"title_ar": title_ar, "title_en": title_en, "link": link}.items() if v is not None}
    try:
        data = AdUpdate.model_validate(fields)
    except SchemaError as e:
        err = e.errors()[0]
        raise ValidationError(err.get("msg") or "invalid value", code="invalid_field", field=str(err["loc"][0]))
    files = await to_image_files([image] if image is not None else [])
    return await svc.update(ad_id, data, files[0] if files else None)


@router.delete("/ads/{ad_id}", dependencies=[Depends(require_writable), Depends(require_actor_id)])
async def delete_ad(ad_id: int, svc: Annotated[AdsService, Depends(get_ads_service)]):
    await svc.delete(ad_id)
    return {"deleted": True}


@router.get("/galleries", response_model=List[GalleryOut])
async def list_galleries(svc: Annotated[GalleryService, Depends(get_gallery_service)]):
    return await svc.list()
