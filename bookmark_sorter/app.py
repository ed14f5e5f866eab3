"""FastAPI application for the Smart Bookmark Sorter service."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query, WebSocket
from fastapi import WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from bookmark_sorter.bookmark_store import BookmarkStore
from bookmark_sorter.classifier_settings import (
    FolderPolicy,
    ProviderId,
    load_preferences,
    load_provider_config,
    persist_classifier_settings,
)
from bookmark_sorter.database import init_db
from bookmark_sorter.errors import ConfigurationError
from bookmark_sorter.extractor import ContentExtractor, HttpPageProbe, LiveViewProbe
from bookmark_sorter.history import HistoryEntry, HistoryRecorder
from bookmark_sorter.notifier import NotificationHub
from bookmark_sorter.orchestrator import Orchestrator
from bookmark_sorter.placement import PlacementEngine
from bookmark_sorter.settings import S


logging.basicConfig(level=getattr(logging, str(S.LOG_LEVEL).upper(), logging.INFO))


store = BookmarkStore()
live_views = LiveViewProbe()
extractor = ContentExtractor([live_views, HttpPageProbe()])
placement = PlacementEngine(store)
history = HistoryRecorder()
notifier = NotificationHub()
orchestrator = Orchestrator(extractor, placement, history, notifier)
store.add_created_listener(orchestrator.on_bookmark_created)


class ClassifyRequest(BaseModel):
    url: str = Field(..., min_length=1)
    title: str = ""
    surface: Optional[str] = None
    extract: bool = True


class ClassifyResponse(BaseModel):
    success: bool
    category: Optional[str] = None
    title: Optional[str] = None
    bookmark_id: Optional[int] = None
    folder_id: Optional[int] = None
    created: Optional[bool] = None
    error: Optional[str] = None
    timeout: bool = False
    skipped: bool = False


class BookmarkCreateRequest(BaseModel):
    url: str = Field(..., min_length=1)
    title: str = ""
    parent_id: Optional[int] = None


class BookmarkUpdateRequest(BaseModel):
    title: Optional[str] = None
    url: Optional[str] = None


class BookmarkMoveRequest(BaseModel):
    parent_id: int


class BookmarkResponse(BaseModel):
    id: int
    parent_id: Optional[int] = None
    title: str
    url: Optional[str] = None


class FolderListResponse(BaseModel):
    root_id: int
    folders: List[BookmarkResponse] = Field(default_factory=list)


class PageSnapshotRequest(BaseModel):
    url: str = Field(..., min_length=1)
    description: str = ""
    keywords: str = ""
    body: str = ""


class PageSnapshotResponse(BaseModel):
    url: str
    description: str
    keywords: str
    body_excerpt: str


class ConfigResponse(BaseModel):
    llm_provider: ProviderId
    model: Optional[str] = None
    endpoint_override: Optional[str] = None
    has_api_key: bool
    folder_policy: FolderPolicy
    enable_smart_rename: bool
    language: str
    disabled_domains: List[str] = Field(default_factory=list)


class ConfigUpdateRequest(BaseModel):
    llm_provider: ProviderId = ProviderId.DEFAULT
    model: Optional[str] = None
    base_url: Optional[str] = None
    ollama_host: Optional[str] = None
    folder_policy: FolderPolicy = FolderPolicy.WEAK
    enable_smart_rename: bool = False
    language: str = "zh_CN"
    disabled_domains: List[str] = Field(default_factory=list)
    api_key: Optional[str] = None
    clear_api_key: bool = False


app = FastAPI(title="Smart Bookmark Sorter")
app.add_middleware(
    CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"]
)

logger = logging.getLogger(__name__)


@app.on_event("startup")
async def _startup() -> None:
    init_db()


@app.get("/healthz")
def healthcheck() -> Dict[str, str]:
    return {"status": "ok"}


def _bookmark_response(node: Any) -> BookmarkResponse:
    return BookmarkResponse(id=node.id, parent_id=node.parent_id, title=node.title, url=node.url)


@app.post("/api/classify", response_model=ClassifyResponse)
async def api_classify(payload: ClassifyRequest) -> ClassifyResponse:
    url = payload.url.strip()
    result = await orchestrator.process(
        url,
        payload.title.strip() or url,
        page_ref=url if payload.extract else None,
        is_manual=True,
        surface=payload.surface,
    )
    return ClassifyResponse(**result)


@app.post("/api/bookmarks", response_model=BookmarkResponse)
async def api_create_bookmark(payload: BookmarkCreateRequest) -> BookmarkResponse:
    parent_id = payload.parent_id if payload.parent_id is not None else await store.root_id()
    try:
        node = await store.create_bookmark(parent_id, payload.title.strip(), payload.url.strip())
    except LookupError as exc:
        raise HTTPException(404, str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(400, str(exc)) from exc
    return _bookmark_response(node)


@app.get("/api/bookmarks/tree")
async def api_bookmark_tree(node_id: Optional[int] = Query(default=None)) -> Dict[str, Any]:
    try:
        return await store.get_tree(node_id)
    except LookupError as exc:
        raise HTTPException(404, str(exc)) from exc


@app.get("/api/folders", response_model=FolderListResponse)
async def api_folders() -> FolderListResponse:
    root_id = await store.root_id()
    children = await store.get_children(root_id)
    return FolderListResponse(
        root_id=root_id,
        folders=[_bookmark_response(child) for child in children if child.is_folder],
    )


@app.patch("/api/bookmarks/{node_id}", response_model=BookmarkResponse)
async def api_update_bookmark(node_id: int, payload: BookmarkUpdateRequest) -> BookmarkResponse:
    if payload.title is None and payload.url is None:
        raise HTTPException(400, "nothing to update")
    try:
        node = await store.update(node_id, title=payload.title, url=payload.url)
    except LookupError as exc:
        raise HTTPException(404, str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(400, str(exc)) from exc
    return _bookmark_response(node)


@app.post("/api/bookmarks/{node_id}/move", response_model=BookmarkResponse)
async def api_move_bookmark(node_id: int, payload: BookmarkMoveRequest) -> BookmarkResponse:
    try:
        node = await store.move(node_id, payload.parent_id)
    except LookupError as exc:
        raise HTTPException(404, str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(400, str(exc)) from exc
    return _bookmark_response(node)


@app.delete("/api/bookmarks/{node_id}")
async def api_remove_bookmark(node_id: int) -> Dict[str, Any]:
    try:
        await store.remove(node_id)
    except LookupError as exc:
        raise HTTPException(404, str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(400, str(exc)) from exc
    return {"ok": True}


@app.delete("/api/folders/{node_id}")
async def api_remove_folder(node_id: int) -> Dict[str, Any]:
    try:
        removed = await store.remove_tree(node_id)
    except LookupError as exc:
        raise HTTPException(404, str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(400, str(exc)) from exc
    return {"ok": True, "removed": removed}


@app.get("/api/history", response_model=List[HistoryEntry])
async def api_history() -> List[HistoryEntry]:
    return await history.list_entries()


@app.delete("/api/history")
async def api_clear_history() -> Dict[str, Any]:
    removed = await history.clear()
    return {"ok": True, "removed": removed}


def _config_response() -> ConfigResponse:
    try:
        config = load_provider_config()
    except ConfigurationError as exc:
        raise HTTPException(500, str(exc)) from exc
    preferences = load_preferences()
    return ConfigResponse(
        llm_provider=config.provider_id,
        model=config.model,
        endpoint_override=config.endpoint_override,
        has_api_key=bool(config.api_key),
        folder_policy=preferences.folder_policy,
        enable_smart_rename=preferences.rename_enabled,
        language=preferences.language,
        disabled_domains=list(preferences.disabled_domains),
    )


@app.get("/api/config", response_model=ConfigResponse)
def api_get_config() -> ConfigResponse:
    return _config_response()


@app.put("/api/config", response_model=ConfigResponse)
def api_update_config(payload: ConfigUpdateRequest) -> ConfigResponse:
    try:
        persist_classifier_settings(
            llm_provider=payload.llm_provider.value,
            model=payload.model,
            base_url=payload.base_url,
            ollama_host=payload.ollama_host,
            folder_policy=payload.folder_policy.value,
            enable_smart_rename=payload.enable_smart_rename,
            language=payload.language,
            disabled_domains=payload.disabled_domains,
            api_key=payload.api_key,
            clear_api_key=payload.clear_api_key,
        )
    except ValueError as exc:
        raise HTTPException(400, str(exc)) from exc
    return _config_response()


@app.post("/api/pages", response_model=PageSnapshotResponse)
def api_page_snapshot(payload: PageSnapshotRequest) -> PageSnapshotResponse:
    digest = live_views.register(
        payload.url.strip(), payload.description, payload.keywords, payload.body
    )
    return PageSnapshotResponse(
        url=payload.url.strip(),
        description=digest.description,
        keywords=digest.keywords,
        body_excerpt=digest.body_excerpt,
    )


@app.websocket("/ws/notifications")
async def ws_notifications(ws: WebSocket, surface: str = Query(default="default")) -> None:
    await ws.accept()
    queue = notifier.subscribe(surface)

    async def _forward() -> None:
        while True:
            event = await queue.get()
            await ws.send_json(event)

    await ws.send_json({"type": "hello", "surface": surface})
    forwarder = asyncio.create_task(_forward())
    try:
        while True:
            await ws.receive_text()
    except WebSocketDisconnect:
        logger.debug("Notification client %s disconnected", surface)
    finally:
        forwarder.cancel()
        notifier.unsubscribe(surface, queue)
