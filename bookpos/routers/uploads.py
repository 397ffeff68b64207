from fastapi import APIRouter, Depends, Query, Request
from fastapi.concurrency import run_in_threadpool

from ..deps import get_services, require_admin
from ..services import PosServices

router = APIRouter(prefix="/api/uploads", tags=["uploads"])


@router.post("", dependencies=[Depends(require_admin)])
async def upload_image(
    request: Request,
    filename: str = Query(..., min_length=1),
    services: PosServices = Depends(get_services),
):
    # Raw body: the cashier UI posts the file bytes as-is.
    data = await request.body()
    content_type = request.headers.get("content-type") or ""
    # The uploader does blocking network I/O.
    return await run_in_threadpool(services.uploads.upload_image, filename, content_type, data)
