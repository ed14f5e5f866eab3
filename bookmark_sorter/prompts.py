"""Prompt rendering for the single-shot classification call."""

from __future__ import annotations

import textwrap
from dataclasses import dataclass
from typing import Tuple

from bookmark_sorter.classifier_settings import FolderPolicy
from bookmark_sorter.extractor import ContentDigest
from bookmark_sorter.settings import S


@dataclass(frozen=True)
class ClassificationRequest:
    resource_key: str
    title: str
    digest: ContentDigest
    existing_categories: Tuple[str, ...] = ()
    folder_policy: FolderPolicy = FolderPolicy.WEAK
    rename_enabled: bool = False


def default_category(language: str | None = None) -> str:
    return "Default" if (language or S.LANGUAGE) == "en" else "默认收藏"


_POLICY_RULES_EN = {
    FolderPolicy.OFF: (
        "Creating new folders is NOT allowed. Choose the closest folder from the existing list; "
        'if nothing relates at all, return "Default".'
    ),
    FolderPolicy.WEAK: (
        "Strongly prefer an existing folder, even when the match is only approximate. "
        "Create a new short (1-3 words) English folder name only when no existing folder is related."
    ),
    FolderPolicy.MEDIUM: (
        "Prefer an existing folder. If none fits well, return a new short (1-3 words) English "
        "folder name (e.g. Tech Docs, News)."
    ),
    FolderPolicy.STRONG: (
        "Use an existing folder only when it is a precise fit. Otherwise return a new, specific "
        "short (1-3 words) English folder name."
    ),
}

_POLICY_RULES_ZH = {
    FolderPolicy.OFF: "不允许创建新文件夹：请强制从现有列表中选一个最接近的；如果实在无法关联，返回“默认收藏”。",
    FolderPolicy.WEAK: "尽量使用现有文件夹，即使只是大致相关；只有完全无关时才返回一个新的、简短的（2-4字）中文分类名称。",
    FolderPolicy.MEDIUM: "优先使用现有文件夹；如果都不匹配，请返回一个新的、简短的（2-4字）中文分类名称（如：技术文档、新闻资讯）。",
    FolderPolicy.STRONG: "只有现有文件夹非常贴切时才使用；否则请返回一个新的、更具体的简短（2-4字）中文分类名称。",
}


def _build_english(request: ClassificationRequest, folders: str) -> str:
    digest = request.digest
    allow = "No" if request.folder_policy == FolderPolicy.OFF else f"Yes ({request.folder_policy.value})"
    prompt = textwrap.dedent(
        """\
        Please analyze the following web page information and return a suitable bookmark folder name according to the rules.

        Existing folders: {folders}
        Allow new folders: {allow}

        Page Info:
        Title: {title}
        URL: {url}
        Description: {description}
        Keywords: {keywords}
        Content: {body}

        Rules:
        1. Prioritize choosing the best match from the "Existing folders" list.
        2. {rules}"""
    ).format(
        folders=folders,
        allow=allow,
        title=request.title,
        url=request.resource_key,
        description=digest.description,
        keywords=digest.keywords,
        body=digest.body_excerpt,
        rules=_POLICY_RULES_EN[request.folder_policy],
    )
    if request.rename_enabled:
        prompt += textwrap.dedent(
            """
            3. Also generate a simplified page title (remove irrelevant suffixes, keep core content).
            4. Must return JSON format:
            {"category": "Category Name", "title": "Simplified Title"}
            Do not include markdown blocks, just raw JSON string."""
        )
    else:
        prompt += "\n3. Return only the folder name, no explanations or other text."
    return prompt


def _build_chinese(request: ClassificationRequest, folders: str) -> str:
    digest = request.digest
    allow = "否" if request.folder_policy == FolderPolicy.OFF else f"是（{request.folder_policy.value}）"
    prompt = textwrap.dedent(
        """\
        请分析以下网页信息，并根据规则返回一个合适的书签分类文件夹名称。

        现有文件夹列表：{folders}
        允许创建新文件夹：{allow}

        网页信息：
        标题: {title}
        URL: {url}
        内容摘要: {description}
        关键词: {keywords}
        正文片段: {body}

        规则：
        1. 优先从“现有文件夹列表”中选择最匹配的名称。
        2. {rules}"""
    ).format(
        folders=folders,
        allow=allow,
        title=request.title,
        url=request.resource_key,
        description=digest.description,
        keywords=digest.keywords,
        body=digest.body_excerpt,
        rules=_POLICY_RULES_ZH[request.folder_policy],
    )
    if request.rename_enabled:
        prompt += textwrap.dedent(
            """
            3. 请同时生成一个简化的网页标题（去除无关后缀，保留核心内容）。
            4. 请务必返回 JSON 格式，格式如下：
            {"category": "分类名称", "title": "简化后的标题"}
            不要包含 markdown 代码块标记，只返回纯 JSON 字符串。"""
        )
    else:
        prompt += "\n3. 只返回文件夹名称，不要包含任何解释或其他文字。"
    return prompt


def build_prompt(request: ClassificationRequest, language: str) -> str:
    if language == "en":
        folders = "、".join(request.existing_categories) if request.existing_categories else "None"
        return _build_english(request, folders)
    folders = "、".join(request.existing_categories) if request.existing_categories else "无"
    return _build_chinese(request, folders)
