"""
Pydantic models for request/response schemas
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from enum import Enum


UNKNOWN = "Unknown"


class ErrorCode(str, Enum):
    """Error code classifications"""
    INVALID_URL = "INVALID_URL"
    MISSING_FIELD = "MISSING_FIELD"
    INVALID_MEDIA_KIND = "INVALID_MEDIA_KIND"
    INVALID_REQUEST = "INVALID_REQUEST"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    SERVER_ERROR = "SERVER_ERROR"


class MediaKind(str, Enum):
    VIDEO = "video"
    AUDIO = "audio"


class ProviderKind(str, Enum):
    METADATA = "metadata"
    MEDIA = "media"


class DeliveryMode(str, Enum):
    """How a resolved stream reaches the caller"""
    DIRECT = "stream"  # bytes relayed through this service
    INDIRECTION = "url"  # JSON pointer to the provider-hosted URL


class ErrorDetail(BaseModel):
    """Error details"""
    code: ErrorCode
    message: str
    is_transient: bool = Field(..., description="True if retry might succeed, False if permanent")
    retry_after_seconds: Optional[int] = None


class ErrorResponse(BaseModel):
    """Error response for failed requests"""
    success: bool = False
    error: ErrorDetail


class ProviderEndpoint(BaseModel):
    """One entry of the static, priority-ordered provider table"""
    name: str
    backend: str = Field(..., description="invidious, piped, ytdlp, cobalt or oembed")
    base_url: str
    kind: ProviderKind
    priority: int

    class Config:
        frozen = True


class StreamSelector(BaseModel):
    """A concrete encoded stream variant (quality tier + container + kind)"""
    itag: int
    quality: str
    media_kind: MediaKind
    container: str
    height: Optional[int] = None

    class Config:
        frozen = True


class MediaRequest(BaseModel):
    """Validated input to media resolution"""
    video_id: str
    media_kind: MediaKind
    quality_hint: Optional[str] = None

    class Config:
        frozen = True


class ResolvedLocation(BaseModel):
    """A provider-hosted, time-limited stream URL for one selector"""
    url: str
    provider: str
    selector: StreamSelector
    filename: str
    mime_type: str


class FormatOption(BaseModel):
    quality: str
    format: str
    type: MediaKind
    itag: int
    container: str


class VideoMetadata(BaseModel):
    """Display metadata; unresolved text fields hold the UNKNOWN sentinel"""
    video_id: str
    title: str = UNKNOWN
    author: str = UNKNOWN
    thumbnail: str
    duration: str = UNKNOWN
    views: str = UNKNOWN
    duration_seconds: Optional[int] = Field(None, ge=0)
    view_count: Optional[int] = Field(None, ge=0)
    formats: List[FormatOption] = Field(default_factory=list)


class MetadataRequest(BaseModel):
    """Request schema for /api/v1/metadata"""
    url: Optional[str] = Field(None, description="YouTube video URL")

    class Config:
        json_schema_extra = {
            "example": {
                "url": "https://youtube.com/watch?v=dQw4w9WgXcQ",
            }
        }


class MetadataResponse(BaseModel):
    """Response schema for /api/v1/metadata"""
    success: bool = True
    data: VideoMetadata
    incomplete: bool = Field(False, description="True if no provider could supply a title")


class MediaLocationRequest(BaseModel):
    """Request schema for /api/v1/media"""
    url: Optional[str] = Field(None, description="YouTube video URL")
    media_kind: Optional[str] = Field(None, description="video or audio")
    quality: Optional[str] = Field(None, description="Quality hint for video: 360p, 720p, best")
    mode: Optional[str] = Field(None, description="'stream' to relay bytes, 'url' for a provider link")

    class Config:
        json_schema_extra = {
            "example": {
                "url": "https://youtube.com/watch?v=dQw4w9WgXcQ",
                "media_kind": "video",
                "quality": "720p",
                "mode": "stream",
            }
        }


class MediaLocation(BaseModel):
    download_url: str
    filename: str
    mime_type: str
    quality: str
    provider: str


class MediaLocationResponse(BaseModel):
    """Response schema for /api/v1/media in indirection mode"""
    success: bool = True
    data: MediaLocation


class HealthResponse(BaseModel):
    """Response schema for /api/v1/health"""
    status: str
    version: str
    uptime_seconds: float
    metadata_providers: int
    media_providers: int
    yt_dlp_version: str
