"""Video and short routes.

Both families share one implementation; ``build_media_router`` binds it
to a kind and URL segment. A request for a missing item goes through the
acquisition gate; while an acquisition is running the answer is 202 with
``Retry-After``.
"""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import FileResponse, JSONResponse

from newtube.api.dependencies import get_library
from newtube.api.schemas import (
    KIND_SEGMENTS,
    CommentResponse,
    PendingResponse,
    SubtitleResponse,
    VideoDetailResponse,
    VideoSummaryResponse,
    subtitle_response,
)
from newtube.models import AssetKind, VideoKind
from newtube.services.acquisition.gate import Pending
from newtube.services.library import LibraryService


def pending_response(pending: Pending) -> JSONResponse:
    """202 answer for an item whose acquisition is still running."""
    body = PendingResponse(video_id=pending.video_id, retry_after=pending.retry_after_seconds)
    return JSONResponse(
        status_code=202,
        content=body.model_dump(by_alias=True),
        headers={"Retry-After": str(pending.retry_after_seconds)},
    )


def build_media_router(kind: VideoKind) -> APIRouter:
    """Create the route family for one kind (``/api/videos`` or ``/api/shorts``)."""
    segment = KIND_SEGMENTS[kind]
    router = APIRouter(prefix=f"/{segment}", tags=[segment])

    @router.get("", response_model=list[VideoSummaryResponse], response_model_by_alias=True)
    async def list_items(
        limit: int | None = Query(None, ge=1, le=1000),
        offset: int = Query(0, ge=0),
        library: LibraryService = Depends(get_library),
    ) -> list[VideoSummaryResponse]:
        videos = await library.list_videos(kind, limit=limit, offset=offset)
        return [VideoSummaryResponse.from_snapshot(v) for v in videos]

    @router.get(
        "/{video_id}",
        response_model=VideoDetailResponse,
        response_model_by_alias=True,
        responses={202: {"model": PendingResponse}},
    )
    async def get_item(
        video_id: str,
        library: LibraryService = Depends(get_library),
    ) -> VideoDetailResponse | JSONResponse:
        video = await library.get_video(video_id, kind)
        if isinstance(video, Pending):
            return pending_response(video)
        return VideoDetailResponse.from_snapshot(video)

    @router.get(
        "/{video_id}/comments",
        response_model=list[CommentResponse],
        response_model_by_alias=True,
    )
    async def get_comments(
        video_id: str,
        library: LibraryService = Depends(get_library),
    ) -> list[CommentResponse]:
        comments = await library.get_comments(video_id, kind)
        return [CommentResponse.from_snapshot(c) for c in comments]

    @router.get(
        "/{video_id}/subtitles",
        response_model=list[SubtitleResponse],
        response_model_by_alias=True,
    )
    async def list_subtitles(
        video_id: str,
        library: LibraryService = Depends(get_library),
    ) -> list[SubtitleResponse]:
        tracks = await library.list_subtitles(video_id, kind)
        return [subtitle_response(kind, video_id, track) for track in tracks]

    @router.get("/{video_id}/subtitles/{code}")
    async def get_subtitle(
        video_id: str,
        code: str,
        library: LibraryService = Depends(get_library),
    ) -> FileResponse:
        path, _ = await library.asset_file(video_id, kind, AssetKind.SUBTITLE_TRACK, code)
        return FileResponse(path, media_type="text/vtt; charset=utf-8")

    @router.get("/{video_id}/thumbnail")
    async def get_thumbnail(
        video_id: str,
        library: LibraryService = Depends(get_library),
    ) -> FileResponse:
        path, asset = await library.asset_file(video_id, kind, AssetKind.THUMBNAIL)
        return FileResponse(path, media_type=asset.mime_type)

    @router.get("/{video_id}/thumbnails/{key}")
    async def get_thumbnail_by_key(
        video_id: str,
        key: str,
        library: LibraryService = Depends(get_library),
    ) -> FileResponse:
        path, asset = await library.asset_file(video_id, kind, AssetKind.THUMBNAIL, key)
        return FileResponse(path, media_type=asset.mime_type)

    @router.get(
        "/{video_id}/streams/{format_id}",
        response_model=None,
        responses={202: {"model": PendingResponse}},
    )
    async def stream(
        video_id: str,
        format_id: str,
        library: LibraryService = Depends(get_library),
    ) -> FileResponse | JSONResponse:
        resolved = await library.stream_file(video_id, kind, format_id)
        if isinstance(resolved, Pending):
            return pending_response(resolved)
        path, asset = resolved
        # FileResponse answers Range requests itself
        return FileResponse(path, media_type=asset.mime_type or "application/octet-stream")

    return router


videos_router = build_media_router(VideoKind.STANDARD)
shorts_router = build_media_router(VideoKind.SHORT)

__all__ = ["build_media_router", "pending_response", "shorts_router", "videos_router"]
