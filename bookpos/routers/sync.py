from fastapi import APIRouter, Depends

from ..deps import get_services
from ..services import PosServices

router = APIRouter(prefix="/api/sync", tags=["sync"])


@router.get("/status")
def sync_status(services: PosServices = Depends(get_services)):
    return services.sync.status()


@router.post("")
def sync_now(services: PosServices = Depends(get_services)):
    return services.sync.sync_now()


# The cashier UI forwards the browser's online/offline events here.
@router.post("/online")
def went_online(services: PosServices = Depends(get_services)):
    changed = services.connectivity.went_online()
    return {"online": True, "changed": changed}


@router.post("/offline")
def went_offline(services: PosServices = Depends(get_services)):
    changed = services.connectivity.went_offline()
    return {"online": False, "changed": changed}
