"""Schemas for content handed to the notification core and for stream health."""
from datetime import datetime
from typing import Optional, List, Literal
from pydantic import BaseModel, Field


class PostNotification(BaseModel):
    """A post that may be broadcast and pushed."""
    id: str
    title: str
    body: str = ""
    relevance: float
    categories: List[str] = Field(default_factory=list)
    published_at: datetime
    url: Optional[str] = None


class EventNotification(BaseModel):
    """A created or updated event (cluster of posts)."""
    id: str
    title: str
    summary: str = ""
    status: Literal["created", "updated"]
    posts_count: int = 0
    url: Optional[str] = None


class Category(BaseModel):
    """Category attached to an ingested post."""
    slug: str
    name: Optional[str] = None


class IngestedPost(BaseModel):
    """A freshly ingested post with the metadata the live feed UI renders."""
    id: str
    content: str = ""
    source: Optional[str] = None
    uri: Optional[str] = None
    relevance: float
    lang: Optional[str] = None
    hash: Optional[str] = None
    author: Optional[str] = None
    author_id: Optional[str] = None
    author_name: Optional[str] = None
    author_handle: Optional[str] = None
    author_avatar: Optional[str] = None
    media: List[str] = Field(default_factory=list)
    link_preview: Optional[str] = None
    original: Optional[str] = None
    posted_at: datetime
    received_at: datetime


class StreamHealth(BaseModel):
    """Response of the stream health endpoint."""
    healthy: bool
    clientCount: int
    clientIds: List[str]
    timestamp: str
