import mimetypes

from fastapi import APIRouter, Depends, HTTPException, Path
from fastapi.responses import FileResponse

from app.api.deps import get_services
from app.core.exceptions import BlobStoreError
from app.services.container import Services
from app.services.storage_service import LocalBlobStore

router = APIRouter()


@router.get("/{file_path:path}")
async def get_local_file(
    file_path: str = Path(..., title="Blob path"),
    services: Services = Depends(get_services),
):
    """
    Serve images stored by the local blob backend.
    Image URLs are handed out to anyone who can see the report, so this is public.
    """
    blobs = services.blobs
    if not isinstance(blobs, LocalBlobStore):
        raise HTTPException(status_code=404, detail="File not found")

    try:
        target = blobs.local_path(file_path)
    except BlobStoreError:
        raise HTTPException(status_code=404, detail="File not found")

    if not target.is_file():
        raise HTTPException(status_code=404, detail="File not found")

    media_type = mimetypes.guess_type(target.name)[0] or "application/octet-stream"
    return FileResponse(target, media_type=media_type)
