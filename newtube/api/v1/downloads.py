"""Manual download routes.

Operators queue the acquisition of one video, or of the whole channel a
video belongs to, and poll the job until it finishes.
"""

from fastapi import APIRouter, Depends, HTTPException

from newtube.api.dependencies import get_downloads
from newtube.api.schemas import DownloadRequest, DownloadStartedResponse, DownloadStatusResponse
from newtube.models import VideoKind
from newtube.services.downloads import DownloadJobManager

router = APIRouter(prefix="/downloads", tags=["downloads"])

_KIND_NAMES: dict[str, VideoKind] = {
    "video": VideoKind.STANDARD,
    "videos": VideoKind.STANDARD,
    "standard": VideoKind.STANDARD,
    "short": VideoKind.SHORT,
    "shorts": VideoKind.SHORT,
}


def parse_media_kind(value: str | None) -> VideoKind:
    """Map the optional ``mediaKind`` field to a kind (videos by default).

    Raises:
        HTTPException: 422 for an unknown kind
    """
    if value is None or not value.strip():
        return VideoKind.STANDARD
    kind = _KIND_NAMES.get(value.strip().lower())
    if kind is None:
        raise HTTPException(status_code=422, detail="mediaKind must be 'video' or 'short'")
    return kind


@router.post(
    "/video",
    status_code=202,
    response_model=DownloadStartedResponse,
    response_model_by_alias=True,
)
async def start_video_download(
    request: DownloadRequest,
    downloads: DownloadJobManager = Depends(get_downloads),
) -> DownloadStartedResponse:
    job = downloads.start_video(request.video_id.strip(), parse_media_kind(request.media_kind))
    return DownloadStartedResponse(id=job.id)


@router.post(
    "/channel",
    status_code=202,
    response_model=DownloadStartedResponse,
    response_model_by_alias=True,
)
async def start_channel_download(
    request: DownloadRequest,
    downloads: DownloadJobManager = Depends(get_downloads),
) -> DownloadStartedResponse:
    job = downloads.start_channel(request.video_id.strip(), parse_media_kind(request.media_kind))
    return DownloadStartedResponse(id=job.id)


@router.get("/{job_id}", response_model=DownloadStatusResponse, response_model_by_alias=True)
async def get_download_status(
    job_id: str,
    downloads: DownloadJobManager = Depends(get_downloads),
) -> DownloadStatusResponse:
    job = downloads.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Download job not found")
    return DownloadStatusResponse.from_job(job)
