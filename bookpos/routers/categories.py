from fastapi import APIRouter, Depends

from ..deps import get_services, require_admin
from ..models import CategoryIn, CategoryUpdate
from ..services import PosServices

router = APIRouter(prefix="/api/categories", tags=["categories"])


@router.get("")
def list_categories(services: PosServices = Depends(get_services)):
    return {"categories": [c.to_wire() for c in services.categories.list_categories()]}


@router.post("", dependencies=[Depends(require_admin)])
def create_category(data: CategoryIn, services: PosServices = Depends(get_services)):
    return {"category": services.categories.create_category(data).to_wire()}


@router.patch("/{category_id}", dependencies=[Depends(require_admin)])
def update_category(category_id: str, data: CategoryUpdate, services: PosServices = Depends(get_services)):
    return {"category": services.categories.update_category(category_id, data).to_wire()}


@router.delete("/{category_id}", dependencies=[Depends(require_admin)])
def delete_category(category_id: str, services: PosServices = Depends(get_services)):
    services.categories.delete_category(category_id)
    return {"ok": True}
