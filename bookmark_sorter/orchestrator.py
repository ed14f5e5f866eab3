"""Request gate and pipeline coordinator for one bookmark classification."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from bookmark_sorter import providers
from bookmark_sorter.classifier_settings import (
    ClassifierPreferences,
    ProviderConfig,
    is_domain_disabled,
    load_preferences,
    load_provider_config,
)
from bookmark_sorter.errors import PlacementFailure, ProviderError, ProviderTimeout
from bookmark_sorter.extractor import ContentDigest, ContentExtractor
from bookmark_sorter.history import HistoryRecorder
from bookmark_sorter.models import BookmarkNode
from bookmark_sorter.notifier import NotificationHub
from bookmark_sorter.parser import ClassificationResult, parse
from bookmark_sorter.placement import PlacementEngine
from bookmark_sorter.prompts import ClassificationRequest, build_prompt, default_category


logger = logging.getLogger(__name__)


ClassifyFn = Callable[[str, ProviderConfig], Awaitable[str]]


_MESSAGES = {
    "en": {
        "success": "Bookmarked to {category}",
        "timeout": "Failed: the AI provider did not answer in time ({reason})",
        "failed": "Failed: {reason}",
    },
    "zh_CN": {
        "success": "已收藏到 {category}",
        "timeout": "失败：AI 服务响应超时（{reason}）",
        "failed": "失败：{reason}",
    },
}


def _message(language: str, key: str, **values: Any) -> str:
    catalog = _MESSAGES.get(language) or _MESSAGES["zh_CN"]
    return catalog[key].format(**values)


class Orchestrator:
    """Run extract, classify, place, record and notify for one resource at a time.

    Automatic triggers for a resource that is already being processed are
    dropped silently; manual triggers always run.
    """

    def __init__(
        self,
        extractor: ContentExtractor,
        placement: PlacementEngine,
        history: HistoryRecorder,
        notifier: NotificationHub,
        classify: ClassifyFn = providers.classify,
        load_config: Callable[[], ProviderConfig] = load_provider_config,
        load_prefs: Callable[[], ClassifierPreferences] = load_preferences,
    ) -> None:
        self.extractor = extractor
        self.placement = placement
        self.history = history
        self.notifier = notifier
        self._classify = classify
        self._load_config = load_config
        self._load_prefs = load_prefs
        self._in_flight: Dict[str, int] = {}

    @property
    def in_flight(self) -> Set[str]:
        return set(self._in_flight)

    def _acquire(self, resource_key: str) -> None:
        self._in_flight[resource_key] = self._in_flight.get(resource_key, 0) + 1

    def _release(self, resource_key: str) -> None:
        remaining = self._in_flight.get(resource_key, 0) - 1
        if remaining > 0:
            self._in_flight[resource_key] = remaining
        else:
            self._in_flight.pop(resource_key, None)

    async def process(
        self,
        resource_key: str,
        title: str,
        page_ref: Optional[str] = None,
        is_manual: bool = False,
        surface: Optional[str] = None,
        existing_bookmark_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        if resource_key in self._in_flight and not is_manual:
            logger.debug("Skipping duplicate automatic trigger for %s", resource_key)
            return {"success": False, "skipped": True}

        self._acquire(resource_key)
        try:
            return await self._run(resource_key, title, page_ref, surface, existing_bookmark_id)
        finally:
            self._release(resource_key)

    async def _run(
        self,
        resource_key: str,
        title: str,
        page_ref: Optional[str],
        surface: Optional[str],
        existing_bookmark_id: Optional[int],
    ) -> Dict[str, Any]:
        language = "zh_CN"
        try:
            digest = await self.extractor.extract(page_ref)
            preferences = await asyncio.to_thread(self._load_prefs)
            language = preferences.language
            result = await self._classify_resource(resource_key, title, digest, preferences)
            outcome = await self.placement.place(
                result.category, resource_key, result.title or title, existing_bookmark_id
            )
        except ProviderTimeout as exc:
            logger.warning("Classification of %s timed out: %s", resource_key, exc)
            return await self._fail(resource_key, title, surface, language, exc, timeout=True)
        except PlacementFailure as exc:
            return await self._fail(resource_key, title, surface, language, exc)
        except Exception as exc:
            logger.exception("Processing %s failed", resource_key)
            return await self._fail(resource_key, title, surface, language, exc)

        final_title = result.title or title
        await self.history.record(final_title, resource_key, result.category)
        self.notifier.notify(surface, _message(language, "success", category=result.category), "success")
        logger.info(
            "Placed %s in %s (%s)", resource_key, result.category, "created" if outcome.created else "moved"
        )
        return {
            "success": True,
            "category": result.category,
            "title": final_title,
            "folder_id": outcome.folder_id,
            "bookmark_id": outcome.bookmark_id,
            "created": outcome.created,
        }

    async def _classify_resource(
        self,
        resource_key: str,
        title: str,
        digest: ContentDigest,
        preferences: ClassifierPreferences,
    ) -> ClassificationResult:
        fallback = default_category(preferences.language)
        folders = await self.placement.existing_folder_names()
        request = ClassificationRequest(
            resource_key=resource_key,
            title=title,
            digest=digest,
            existing_categories=tuple(folders),
            folder_policy=preferences.folder_policy,
            rename_enabled=preferences.rename_enabled,
        )
        prompt = build_prompt(request, preferences.language)
        try:
            config = await asyncio.to_thread(self._load_config)
            raw = await self._classify(prompt, config)
        except ProviderTimeout:
            raise
        except ProviderError as exc:
            logger.warning("Classification failed (%s), using default category: %s", exc.kind, exc)
            return ClassificationResult(category=fallback, title=title)
        logger.debug("Model answer for %s: %s", resource_key, raw)
        return parse(raw, title, request.rename_enabled, fallback)

    async def _fail(
        self,
        resource_key: str,
        title: str,
        surface: Optional[str],
        language: str,
        exc: Exception,
        timeout: bool = False,
    ) -> Dict[str, Any]:
        reason = str(exc) or exc.__class__.__name__
        await self.history.record(title, resource_key, "", status="error")
        key = "timeout" if timeout else "failed"
        self.notifier.notify(surface, _message(language, key, reason=reason), "error")
        payload: Dict[str, Any] = {"success": False, "error": reason}
        if timeout:
            payload["timeout"] = True
        return payload

    async def handle_bookmark_created(
        self,
        bookmark_id: int,
        url: Optional[str],
        title: str,
        surface: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Classify a bookmark the user created natively."""

        if not url:
            return {"success": False, "skipped": True, "reason": "folder"}
        if self.placement.self_created.consume(url):
            logger.debug("Ignoring creation event for self-created bookmark %s", url)
            return {"success": False, "skipped": True, "reason": "self_created"}
        preferences = await asyncio.to_thread(self._load_prefs)
        if is_domain_disabled(url, preferences.disabled_domains):
            logger.info("Auto classification disabled for %s", url)
            return {"success": False, "skipped": True, "reason": "disabled_domain"}
        return await self.process(
            url,
            title,
            page_ref=url,
            is_manual=False,
            surface=surface,
            existing_bookmark_id=bookmark_id,
        )

    async def on_bookmark_created(self, node: BookmarkNode) -> None:
        await self.handle_bookmark_created(int(node.id), node.url, node.title)
