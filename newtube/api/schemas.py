"""HTTP response and request models.

Field names are camelCase on the wire; the snapshots returned by the
library service are converted here so the catalog's internal shape
(locations on disk, failure reasons) never leaks to clients.
"""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from newtube.models import AcquisitionStatus, AssetKind, VideoKind
from newtube.services.acquisition.catalog import AssetSnapshot, CommentSnapshot, VideoSnapshot
from newtube.services.downloads import DownloadJob
from newtube.services.library import LibrarySnapshot

# URL segment per kind
KIND_SEGMENTS: dict[VideoKind, str] = {
    VideoKind.STANDARD: "videos",
    VideoKind.SHORT: "shorts",
}


class CamelModel(BaseModel):
    """Base for wire models (camelCase aliases, snake_case in Python)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FormatResponse(CamelModel):
    format_id: str
    label: str | None = None
    mime_type: str | None = None
    size_bytes: int | None = None
    url: str


class SubtitleResponse(CamelModel):
    code: str
    name: str
    url: str


class VideoSummaryResponse(CamelModel):
    id: str
    kind: VideoKind
    title: str
    author: str | None = None
    channel_url: str | None = None
    upload_date: date | None = None
    duration: int | None = None
    views: int | None = None
    thumbnail_url: str | None = None
    status: AcquisitionStatus

    @classmethod
    def from_snapshot(cls, video: VideoSnapshot) -> "VideoSummaryResponse":
        return cls(
            id=video.id,
            kind=video.kind,
            title=video.title,
            author=video.author,
            channel_url=video.channel_url,
            upload_date=video.upload_date,
            duration=video.duration,
            views=video.view_count,
            thumbnail_url=_thumbnail_url(video),
            status=video.status,
        )


class VideoDetailResponse(VideoSummaryResponse):
    description: str = ""
    likes: int | None = None
    tags: list[str] = Field(default_factory=list)
    formats: list[FormatResponse] = Field(default_factory=list)
    subtitles: list[SubtitleResponse] = Field(default_factory=list)

    @classmethod
    def from_snapshot(cls, video: VideoSnapshot) -> "VideoDetailResponse":
        summary = VideoSummaryResponse.from_snapshot(video)
        base = _base_url(video)
        return cls(
            **summary.model_dump(),
            description=video.description,
            likes=video.like_count,
            tags=video.tags,
            formats=[
                FormatResponse(
                    format_id=asset.key,
                    label=asset.label,
                    mime_type=asset.mime_type,
                    size_bytes=asset.size_bytes,
                    url=f"{base}/streams/{asset.key}",
                )
                for asset in video.present_assets(AssetKind.VIDEO_FORMAT)
            ],
            subtitles=[
                subtitle_response(video.kind, video.id, asset)
                for asset in video.present_assets(AssetKind.SUBTITLE_TRACK)
            ],
        )


class CommentResponse(CamelModel):
    id: str
    author: str = ""
    text: str = ""
    likes: int | None = None
    time_posted: datetime | None = None
    parent_comment_id: str | None = None
    liked_by_creator: bool = False
    reply_count: int = 0
    replies: list["CommentResponse"] = Field(default_factory=list)

    @classmethod
    def from_snapshot(cls, comment: CommentSnapshot) -> "CommentResponse":
        return cls(
            id=comment.id,
            author=comment.author,
            text=comment.text,
            likes=comment.like_count,
            time_posted=comment.posted_at,
            parent_comment_id=comment.parent_id,
            liked_by_creator=comment.liked_by_creator,
            reply_count=comment.reply_count,
            replies=[cls.from_snapshot(reply) for reply in comment.replies],
        )


CommentResponse.model_rebuild()


class SubtitleCollectionResponse(CamelModel):
    video_id: str
    subtitles: list[SubtitleResponse] = Field(default_factory=list)


class CommentCollectionResponse(CamelModel):
    video_id: str
    comments: list[CommentResponse] = Field(default_factory=list)


class BootstrapResponse(CamelModel):
    videos: list[VideoDetailResponse] = Field(default_factory=list)
    shorts: list[VideoDetailResponse] = Field(default_factory=list)
    subtitles: list[SubtitleCollectionResponse] = Field(default_factory=list)
    comments: list[CommentCollectionResponse] = Field(default_factory=list)

    @classmethod
    def from_snapshot(cls, snapshot: LibrarySnapshot) -> "BootstrapResponse":
        every = [*snapshot.videos, *snapshot.shorts]
        return cls(
            videos=[VideoDetailResponse.from_snapshot(v) for v in snapshot.videos],
            shorts=[VideoDetailResponse.from_snapshot(v) for v in snapshot.shorts],
            subtitles=[
                SubtitleCollectionResponse(
                    video_id=video.id,
                    subtitles=[
                        subtitle_response(video.kind, video.id, asset)
                        for asset in video.present_assets(AssetKind.SUBTITLE_TRACK)
                    ],
                )
                for video in every
                if video.present_assets(AssetKind.SUBTITLE_TRACK)
            ],
            comments=[
                CommentCollectionResponse(
                    video_id=video_id,
                    comments=[CommentResponse.from_snapshot(c) for c in tree],
                )
                for video_id, tree in snapshot.comments.items()
            ],
        )


class PendingResponse(CamelModel):
    status: str = "pending"
    video_id: str
    retry_after: int


class DownloadRequest(CamelModel):
    video_id: str = Field(min_length=1, max_length=64)
    media_kind: str | None = None


class DownloadStartedResponse(CamelModel):
    id: str


class DownloadStatusResponse(CamelModel):
    id: str
    status: str
    progress: int
    message: str

    @classmethod
    def from_job(cls, job: DownloadJob) -> "DownloadStatusResponse":
        return cls(id=job.id, status=job.status.value, progress=job.progress, message=job.message)


def _base_url(video: VideoSnapshot) -> str:
    return _item_url(video.kind, video.id)


def _item_url(kind: VideoKind, video_id: str) -> str:
    return f"/api/{KIND_SEGMENTS[kind]}/{video_id}"


def _thumbnail_url(video: VideoSnapshot) -> str | None:
    if video.present_assets(AssetKind.THUMBNAIL):
        return f"{_base_url(video)}/thumbnail"
    return video.thumbnail_url


def subtitle_response(kind: VideoKind, video_id: str, asset: AssetSnapshot) -> SubtitleResponse:
    return SubtitleResponse(
        code=asset.key,
        name=asset.label or asset.key,
        url=f"{_item_url(kind, video_id)}/subtitles/{asset.key}",
    )


__all__ = [
    "KIND_SEGMENTS",
    "BootstrapResponse",
    "CommentCollectionResponse",
    "CommentResponse",
    "DownloadRequest",
    "DownloadStartedResponse",
    "DownloadStatusResponse",
    "FormatResponse",
    "PendingResponse",
    "SubtitleCollectionResponse",
    "SubtitleResponse",
    "VideoDetailResponse",
    "VideoSummaryResponse",
    "subtitle_response",
]
