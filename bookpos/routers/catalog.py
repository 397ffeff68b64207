from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..deps import get_services, require_admin
from ..models import ProductIn, ProductUpdate
from ..services import PosServices

router = APIRouter(prefix="/api/products", tags=["products"])


class StockAdjustIn(BaseModel):
    delta: int


@router.get("")
def list_products(q: str = "", category: str = "", services: PosServices = Depends(get_services)):
    products = services.products.list_products()
    if q or category:
        products = services.products.search(q, category)
    return {"products": [p.to_wire() for p in products]}


@router.get("/barcode/{code}")
def get_by_barcode(code: str, services: PosServices = Depends(get_services)):
    return {"product": services.products.find_by_barcode(code).to_wire()}


@router.get("/{product_id}")
def get_product(product_id: str, services: PosServices = Depends(get_services)):
    return {"product": services.products.get_product(product_id).to_wire()}


@router.post("", dependencies=[Depends(require_admin)])
def create_product(data: ProductIn, services: PosServices = Depends(get_services)):
    return {"product": services.products.create_product(data).to_wire()}


@router.patch("/{product_id}", dependencies=[Depends(require_admin)])
def update_product(product_id: str, data: ProductUpdate, services: PosServices = Depends(get_services)):
    return {"product": services.products.update_product(product_id, data).to_wire()}


@router.post("/{product_id}/stock", dependencies=[Depends(require_admin)])
def adjust_stock(product_id: str, data: StockAdjustIn, services: PosServices = Depends(get_services)):
    return {"product": services.products.adjust_stock(product_id, data.delta).to_wire()}
