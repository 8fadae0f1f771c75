"""
HTTP routes for the RiceHub API.
"""

from __future__ import annotations

import logging
import os
import uuid
from typing import Optional

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    Query,
    Response,
    UploadFile,
)
from fastapi.responses import RedirectResponse

from ricehub.config import get_settings
from ricehub.db import (
    DuplicateRiceError,
    RiceNotFoundError,
    RiceStore,
    UserNotFoundError,
)
from ricehub.dependencies import (
    get_feed_service,
    get_rice_store,
    get_storage_client,
    get_viewer_id,
    path_rate_limit,
    require_token,
    require_writable,
)
from ricehub.errors import (
    MissingFile,
    NoAccess,
    RiceNotFound,
    TitleInUse,
    UserError,
    UserNotFound,
)
from ricehub.feed import FeedService
from ricehub.identity import AccessToken
from ricehub.schemas import (
    DotfilesResponse,
    HealthResponse,
    PartialRiceResponse,
    PreviewResponse,
    RiceResponse,
    UpdateRiceRequest,
)
from ricehub.storage import StorageClient

logger = logging.getLogger(__name__)

router = APIRouter()

HOUR = 3600
DAY = 24 * HOUR


def _check_blacklist(title: Optional[str], description: Optional[str]) -> None:
    for word in get_settings().blacklisted_words:
        word = word.lower()
        if title is not None and word in title.lower():
            raise UserError("Title contains blacklisted words!", 422)
        if description is not None and word in description.lower():
            raise UserError("Description contains blacklisted words!", 422)


def _ensure_can_modify(store: RiceStore, token: AccessToken, rice_id: uuid.UUID) -> None:
    if token.is_admin:
        return
    if not store.is_rice_author(rice_id, token.subject_id):
        raise NoAccess()


def _blob_path(folder: str, upload: UploadFile) -> str:
    _, ext = os.path.splitext(upload.filename or "")
    return f"/{folder}/{uuid.uuid4()}{ext.lower()}"


def _store_upload(
    storage: StorageClient, folder: str, upload: UploadFile
) -> tuple[str, int]:
    data = upload.file.read()
    path = _blob_path(folder, upload)
    storage.upload_bytes(path, data, content_type=upload.content_type)
    return path, len(data)


def _detail_response(
    store: RiceStore, rice_id: uuid.UUID, viewer_id: Optional[uuid.UUID] = None
) -> RiceResponse:
    detail = store.get_rice(rice_id, viewer_id)
    if not detail:
        raise RiceNotFound()
    return RiceResponse.from_detail(detail, get_settings().cdn_url)


@router.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(status="ok")


@router.get("/rices", response_model=list[PartialRiceResponse])
def fetch_rices(
    sort: Optional[str] = Query(None),
    last_id: Optional[str] = Query(None, alias="lastId"),
    last_created_at: Optional[str] = Query(None, alias="lastCreatedAt"),
    last_downloads: Optional[str] = Query(None, alias="lastDownloads"),
    viewer_id: Optional[uuid.UUID] = Depends(get_viewer_id),
    feed: FeedService = Depends(get_feed_service),
):
    """
    List rices for one sort mode, 20 per page.

    To fetch the next page, send back the last row's ``id``, ``createdAt`` and
    ``downloadCount`` as ``lastId``, ``lastCreatedAt`` and ``lastDownloads``.
    """
    return feed.fetch_rices(
        sort,
        last_id=last_id,
        last_created_at=last_created_at,
        last_downloads=last_downloads,
        viewer_id=viewer_id,
    )


@router.get("/rices/{rice_id}", response_model=RiceResponse)
def get_rice(
    rice_id: uuid.UUID,
    viewer_id: Optional[uuid.UUID] = Depends(get_viewer_id),
    store: RiceStore = Depends(get_rice_store),
):
    return _detail_response(store, rice_id, viewer_id)


@router.get("/users/{user_id}/rices", response_model=list[PartialRiceResponse])
def fetch_user_rices(
    user_id: uuid.UUID,
    viewer_id: Optional[uuid.UUID] = Depends(get_viewer_id),
    store: RiceStore = Depends(get_rice_store),
):
    cdn_url = get_settings().cdn_url
    return [
        PartialRiceResponse.from_partial(rice, cdn_url)
        for rice in store.fetch_user_rices(user_id, viewer_id)
    ]


@router.get("/users/{username}/rices/{slug}", response_model=RiceResponse)
def get_user_rice_by_slug(
    username: str,
    slug: str,
    viewer_id: Optional[uuid.UUID] = Depends(get_viewer_id),
    store: RiceStore = Depends(get_rice_store),
):
    if not store.find_user_by_username(username):
        raise UserNotFound()
    detail = store.get_rice_by_slug(username, slug, viewer_id)
    if not detail:
        raise RiceNotFound()
    return RiceResponse.from_detail(detail, get_settings().cdn_url)


@router.get("/rices/{rice_id}/dotfiles")
def download_dotfiles(rice_id: uuid.UUID, store: RiceStore = Depends(get_rice_store)):
    path = store.increment_downloads(rice_id)
    if path is None:
        raise RiceNotFound()
    return RedirectResponse(get_settings().cdn_url + path, status_code=302)


@router.post(
    "/rices",
    response_model=RiceResponse,
    status_code=201,
    dependencies=[Depends(require_writable), Depends(path_rate_limit(5, DAY))],
)
def create_rice(
    title: str = Form(..., min_length=4, max_length=32),
    description: str = Form(..., min_length=4, max_length=10240),
    previews: list[UploadFile] = File(default=[]),
    dotfiles: Optional[UploadFile] = File(default=None),
    token: AccessToken = Depends(require_token),
    store: RiceStore = Depends(get_rice_store),
    storage: StorageClient = Depends(get_storage_client),
):
    settings = get_settings()
    if not previews:
        raise UserError("At least one preview image is required", 400)
    if len(previews) > settings.max_previews_per_rice:
        raise UserError(
            f"You cannot add more than {settings.max_previews_per_rice} previews",
            413,
        )
    if dotfiles is None:
        raise UserError("Dotfiles are required", 400)
    _check_blacklist(title, description)

    preview_paths = []
    for preview in previews:
        path, _ = _store_upload(storage, "previews", preview)
        preview_paths.append(path)
    dotfiles_path, dotfiles_size = _store_upload(storage, "dotfiles", dotfiles)

    try:
        rice = store.create_rice(
            token.subject_id,
            title,
            description,
            dotfiles_path=dotfiles_path,
            dotfiles_size=dotfiles_size,
            preview_paths=preview_paths,
        )
    except (DuplicateRiceError, UserNotFoundError) as exc:
        for path in [*preview_paths, dotfiles_path]:
            storage.delete(path)
        if isinstance(exc, UserNotFoundError):
            raise UserNotFound()
        raise TitleInUse()

    logger.info("Rice %s created by %s", rice.id, token.subject_id)
    return _detail_response(store, rice.id, token.subject_id)


@router.patch(
    "/rices/{rice_id}",
    response_model=RiceResponse,
    dependencies=[Depends(require_writable), Depends(path_rate_limit(5, HOUR))],
)
def update_rice(
    rice_id: uuid.UUID,
    payload: UpdateRiceRequest,
    token: AccessToken = Depends(require_token),
    store: RiceStore = Depends(get_rice_store),
):
    _ensure_can_modify(store, token, rice_id)
    if payload.title is None and payload.description is None:
        raise UserError("No field to update provided", 400)
    _check_blacklist(payload.title, payload.description)

    try:
        store.update_rice(
            rice_id, title=payload.title, description=payload.description
        )
    except RiceNotFoundError:
        raise RiceNotFound()
    except DuplicateRiceError:
        raise TitleInUse()
    return _detail_response(store, rice_id, token.subject_id)


@router.post(
    "/rices/{rice_id}/dotfiles",
    response_model=DotfilesResponse,
    dependencies=[Depends(require_writable), Depends(path_rate_limit(5, HOUR))],
)
def update_dotfiles(
    rice_id: uuid.UUID,
    file: Optional[UploadFile] = File(default=None),
    token: AccessToken = Depends(require_token),
    store: RiceStore = Depends(get_rice_store),
    storage: StorageClient = Depends(get_storage_client),
):
    _ensure_can_modify(store, token, rice_id)
    if file is None:
        raise MissingFile()

    path, size = _store_upload(storage, "dotfiles", file)
    try:
        dotfiles, old_path = store.replace_dotfiles(rice_id, path, size)
    except RiceNotFoundError:
        storage.delete(path)
        raise RiceNotFound()

    try:
        storage.delete(old_path)
    except Exception:
        logger.warning("Failed to remove old dotfiles %s", old_path, exc_info=True)
    return DotfilesResponse.from_record(dotfiles, get_settings().cdn_url)


@router.post(
    "/rices/{rice_id}/previews",
    response_model=PreviewResponse,
    status_code=201,
    dependencies=[Depends(require_writable), Depends(path_rate_limit(25, HOUR))],
)
def add_preview(
    rice_id: uuid.UUID,
    file: Optional[UploadFile] = File(default=None),
    token: AccessToken = Depends(require_token),
    store: RiceStore = Depends(get_rice_store),
    storage: StorageClient = Depends(get_storage_client),
):
    _ensure_can_modify(store, token, rice_id)
    if file is None:
        raise MissingFile()

    max_previews = get_settings().max_previews_per_rice
    if store.preview_count(rice_id) >= max_previews:
        raise UserError(
            "You have already reached the maximum amount of previews for this rice",
            413,
        )

    path, _ = _store_upload(storage, "previews", file)
    try:
        preview = store.add_preview(rice_id, path)
    except RiceNotFoundError:
        storage.delete(path)
        raise RiceNotFound()
    return PreviewResponse.from_record(preview, get_settings().cdn_url)


@router.delete(
    "/rices/{rice_id}/previews/{preview_id}",
    status_code=204,
    dependencies=[Depends(require_writable)],
)
def delete_preview(
    rice_id: uuid.UUID,
    preview_id: uuid.UUID,
    token: AccessToken = Depends(require_token),
    store: RiceStore = Depends(get_rice_store),
    storage: StorageClient = Depends(get_storage_client),
):
    _ensure_can_modify(store, token, rice_id)
    if store.preview_count(rice_id) <= 1:
        raise UserError(
            "You cannot delete this preview! At least one preview is required for a rice.",
            422,
        )

    path = store.delete_preview(rice_id, preview_id)
    if path is None:
        raise UserError("Rice preview with provided ID not found", 404)
    try:
        storage.delete(path)
    except Exception:
        logger.warning("Failed to remove preview %s", path, exc_info=True)
    return Response(status_code=204)


@router.post(
    "/rices/{rice_id}/star", status_code=201, dependencies=[Depends(require_writable)]
)
def star_rice(
    rice_id: uuid.UUID,
    token: AccessToken = Depends(require_token),
    store: RiceStore = Depends(get_rice_store),
):
    try:
        store.add_star(rice_id, token.subject_id)
    except RiceNotFoundError:
        raise RiceNotFound()
    except UserNotFoundError:
        raise UserNotFound()
    return Response(status_code=201)


@router.delete(
    "/rices/{rice_id}/star", status_code=204, dependencies=[Depends(require_writable)]
)
def unstar_rice(
    rice_id: uuid.UUID,
    token: AccessToken = Depends(require_token),
    store: RiceStore = Depends(get_rice_store),
):
    store.remove_star(rice_id, token.subject_id)
    return Response(status_code=204)


@router.delete(
    "/rices/{rice_id}", status_code=204, dependencies=[Depends(require_writable)]
)
def delete_rice(
    rice_id: uuid.UUID,
    token: AccessToken = Depends(require_token),
    store: RiceStore = Depends(get_rice_store),
):
    _ensure_can_modify(store, token, rice_id)
    if not store.delete_rice(rice_id):
        raise RiceNotFound()
    logger.info("Rice %s deleted by %s", rice_id, token.subject_id)
    return Response(status_code=204)
