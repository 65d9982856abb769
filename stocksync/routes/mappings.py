# stocksync/routes/mappings.py
import logging
from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from stocksync.dependencies import get_mapping_service
from stocksync.schemas import MappingCreate, MappingUpdate
from stocksync.services.mapping_service import MappingService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/mappings", tags=["mappings"])


class AutoDiscoverRequest(BaseModel):
    skus: List[str] = Field(..., min_length=1, max_length=500)


@router.post("", status_code=201)
async def create_mapping(body: MappingCreate, service: MappingService = Depends(get_mapping_service)):
    mapping = await service.create_mapping(body)
    return mapping.model_dump(mode="json")


@router.post("/auto-discover")
async def auto_discover(body: AutoDiscoverRequest, service: MappingService = Depends(get_mapping_service)):
    """Search both platforms for each SKU and map exact matches."""
    return await service.auto_discover(body.skus)


@router.get("/{sku}")
async def get_mapping(sku: str, service: MappingService = Depends(get_mapping_service)):
    mapping = await service.get_mapping(sku)
    return mapping.model_dump(mode="json")


@router.patch("/{sku}")
async def update_mapping(
    sku: str,
    body: MappingUpdate,
    service: MappingService = Depends(get_mapping_service),
):
    mapping = await service.update_mapping(sku, body)
    return mapping.model_dump(mode="json")


@router.delete("/{sku}")
async def delete_mapping(sku: str, service: MappingService = Depends(get_mapping_service)):
    mapping = await service.soft_delete(sku)
    return {"sku": mapping.sku, "status": mapping.status.value, "deleted_at": mapping.deleted_at.isoformat()}
