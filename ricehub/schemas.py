"""
Pydantic schemas for the RiceHub API.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from ricehub.cursor import format_timestamp
from ricehub.db import DotfilesRecord, PreviewRecord, RiceDetail, UserRecord
from ricehub.ranking import PartialRice


class PartialRiceResponse(BaseModel):
    id: uuid.UUID
    title: str
    slug: str
    authorDisplayName: str
    authorUsername: str
    thumbnailUrl: str
    starCount: int
    downloadCount: int
    isStarred: bool
    # Emitted in the cursor format so clients can send it back as lastCreatedAt.
    createdAt: str

    @classmethod
    def from_partial(cls, rice: PartialRice, cdn_url: str) -> "PartialRiceResponse":
        return cls(
            id=rice.id,
            title=rice.title,
            slug=rice.slug,
            authorDisplayName=rice.author_display_name,
            authorUsername=rice.author_username,
            thumbnailUrl=cdn_url + rice.thumbnail,
            starCount=rice.star_count,
            downloadCount=rice.download_count,
            isStarred=rice.is_starred,
            createdAt=format_timestamp(rice.created_at),
        )


class AuthorResponse(BaseModel):
    id: uuid.UUID
    username: str
    displayName: str

    @classmethod
    def from_record(cls, user: UserRecord) -> "AuthorResponse":
        return cls(id=user.id, username=user.username, displayName=user.display_name)


class DotfilesResponse(BaseModel):
    fileUrl: str
    fileSize: int
    downloads: int
    createdAt: datetime
    updatedAt: datetime

    @classmethod
    def from_record(cls, dotfiles: DotfilesRecord, cdn_url: str) -> "DotfilesResponse":
        return cls(
            fileUrl=cdn_url + dotfiles.file_path,
            fileSize=dotfiles.file_size,
            downloads=dotfiles.download_count,
            createdAt=dotfiles.created_at,
            updatedAt=dotfiles.updated_at,
        )


class PreviewResponse(BaseModel):
    id: uuid.UUID
    url: str

    @classmethod
    def from_record(cls, preview: PreviewRecord, cdn_url: str) -> "PreviewResponse":
        return cls(id=preview.id, url=cdn_url + preview.file_path)


class RiceResponse(BaseModel):
    id: uuid.UUID
    title: str
    slug: str
    description: str
    downloads: int
    stars: int
    isStarred: bool
    previews: list[PreviewResponse]
    dotfiles: DotfilesResponse
    author: AuthorResponse
    createdAt: datetime
    updatedAt: datetime

    @classmethod
    def from_detail(cls, detail: RiceDetail, cdn_url: str) -> "RiceResponse":
        return cls(
            id=detail.rice.id,
            title=detail.rice.title,
            slug=detail.rice.slug,
            description=detail.rice.description,
            downloads=detail.dotfiles.download_count,
            stars=detail.star_count,
            isStarred=detail.is_starred,
            previews=[PreviewResponse.from_record(p, cdn_url) for p in detail.previews],
            dotfiles=DotfilesResponse.from_record(detail.dotfiles, cdn_url),
            author=AuthorResponse.from_record(detail.author),
            createdAt=detail.rice.created_at,
            updatedAt=detail.rice.updated_at,
        )


class UpdateRiceRequest(BaseModel):
    title: Optional[str] = Field(default=None, min_length=4, max_length=32)
    description: Optional[str] = Field(default=None, min_length=4, max_length=10240)


class HealthResponse(BaseModel):
    status: Literal["ok"]
