"""
Typed schemas for upstream provider payloads.

Every field is optional: a value missing upstream stays None and is treated as
"unknown" by the resolvers. Extra fields are ignored.
"""

from typing import List, Optional, Union

from pydantic import BaseModel, Field


class _Upstream(BaseModel):
    class Config:
        extra = "ignore"
        populate_by_name = True


class UpstreamStream(_Upstream):
    """A single stream entry (Invidious formatStreams/adaptiveFormats, Piped video/audioStreams)"""
    url: Optional[str] = None
    itag: Optional[Union[int, str]] = None
    type: Optional[str] = None
    mime_type: Optional[str] = Field(None, alias="mimeType")
    container: Optional[str] = None
    video_only: Optional[bool] = Field(None, alias="videoOnly")

    def matches(self, itag: int) -> bool:
        return self.itag is not None and str(self.itag).strip() == str(itag)


class InvidiousThumbnail(_Upstream):
    url: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    quality: Optional[str] = None


class InvidiousVideo(_Upstream):
    """GET /api/v1/videos/{id}"""
    title: Optional[str] = None
    author: Optional[str] = None
    length_seconds: Optional[int] = Field(None, alias="lengthSeconds")
    view_count: Optional[int] = Field(None, alias="viewCount")
    video_thumbnails: List[InvidiousThumbnail] = Field(default_factory=list, alias="videoThumbnails")
    format_streams: List[UpstreamStream] = Field(default_factory=list, alias="formatStreams")
    adaptive_formats: List[UpstreamStream] = Field(default_factory=list, alias="adaptiveFormats")
    error: Optional[str] = None

    def best_thumbnail(self) -> Optional[str]:
        candidates = [t for t in self.video_thumbnails if t.url]
        if not candidates:
            return None
        return max(candidates, key=lambda t: t.width or 0).url


class PipedStreams(_Upstream):
    """GET /streams/{id}"""
    title: Optional[str] = None
    uploader: Optional[str] = None
    duration: Optional[int] = None
    views: Optional[int] = None
    thumbnail_url: Optional[str] = Field(None, alias="thumbnailUrl")
    video_streams: List[UpstreamStream] = Field(default_factory=list, alias="videoStreams")
    audio_streams: List[UpstreamStream] = Field(default_factory=list, alias="audioStreams")
    error: Optional[str] = None


class OEmbedResponse(_Upstream):
    """GET https://www.youtube.com/oembed"""
    title: Optional[str] = None
    author_name: Optional[str] = None
    thumbnail_url: Optional[str] = None


class CobaltPickerItem(_Upstream):
    url: Optional[str] = None


class CobaltResponse(_Upstream):
    """POST {cobalt api}"""
    status: Optional[str] = None
    url: Optional[str] = None
    picker: List[CobaltPickerItem] = Field(default_factory=list)
    error: Optional[Union[dict, str]] = None

    def stream_url(self) -> Optional[str]:
        if self.status == "picker":
            return self.picker[0].url if self.picker else None
        return self.url


class ProviderMetadata(BaseModel):
    """Partial metadata normalised from any provider; None means not supplied"""
    title: Optional[str] = None
    author: Optional[str] = None
    duration_seconds: Optional[int] = None
    view_count: Optional[int] = None
    thumbnail: Optional[str] = None
