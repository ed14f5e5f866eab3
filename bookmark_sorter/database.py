from __future__ import annotations

import json
import logging
import os
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from sqlmodel import Session, SQLModel, create_engine, select

from bookmark_sorter.models import AppConfig, BookmarkNode, HistoryRecord
from bookmark_sorter.settings import S


os.makedirs("data", exist_ok=True)


logger = logging.getLogger(__name__)


def _make_engine():
    connect_args = {"check_same_thread": False} if S.DATABASE_URL.startswith("sqlite") else {}
    return create_engine(S.DATABASE_URL, echo=False, connect_args=connect_args)


engine = _make_engine()


_schema_lock = threading.Lock()
_schema_ready = False


def _ensure_schema() -> None:
    global _schema_ready
    if _schema_ready:
        return
    with _schema_lock:
        if _schema_ready:
            return
        SQLModel.metadata.create_all(engine)
        _schema_ready = True


def _ensure_root_folder() -> int:
    with Session(engine) as ses:
        root = ses.exec(
            select(BookmarkNode).where(BookmarkNode.parent_id.is_(None)).order_by(BookmarkNode.id)
        ).first()
        if root:
            return int(root.id)
        root = BookmarkNode(parent_id=None, title=S.ROOT_FOLDER_TITLE, url=None, position=0)
        ses.add(root)
        ses.commit()
        ses.refresh(root)
        logger.info("Created root bookmark container %s", root.title)
        return int(root.id)


def init_db() -> None:
    global _schema_ready
    with _schema_lock:
        if S.INIT_RUN:
            logger.info("INIT_RUN active, resetting database")
            SQLModel.metadata.drop_all(engine)
            _schema_ready = False
        SQLModel.metadata.create_all(engine)
        _schema_ready = True
    _ensure_root_folder()


@contextmanager
def get_session() -> Iterator[Session]:
    _ensure_schema()
    with Session(engine) as session:
        yield session


def root_folder_id() -> int:
    _ensure_schema()
    return _ensure_root_folder()


def _set_config_value(key: str, value: str) -> None:
    with get_session() as ses:
        entry = ses.exec(select(AppConfig).where(AppConfig.key == key)).first()
        if not entry:
            entry = AppConfig(key=key, value=value)
        else:
            entry.value = value
        ses.add(entry)
        ses.commit()


def _get_config_value(key: str) -> Optional[str]:
    with get_session() as ses:
        entry = ses.exec(select(AppConfig).where(AppConfig.key == key)).first()
        return entry.value if entry else None


def get_classifier_settings_entry() -> Dict[str, Any]:
    raw = _get_config_value("CLASSIFIER_SETTINGS")
    if not isinstance(raw, str) or not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Persisted classifier settings could not be parsed.")
        return {}
    if not isinstance(data, dict):
        return {}
    return data


def set_classifier_settings_entry(values: Dict[str, Any]) -> None:
    payload = json.dumps(values, ensure_ascii=False)
    _set_config_value("CLASSIFIER_SETTINGS", payload)


def add_history_record(record: HistoryRecord, limit: int) -> None:
    with get_session() as ses:
        ses.add(record)
        ses.flush()
        stale = ses.exec(
            select(HistoryRecord)
            .order_by(HistoryRecord.timestamp.desc(), HistoryRecord.id.desc())
            .offset(max(limit, 0))
        ).all()
        for row in stale:
            ses.delete(row)
        ses.commit()


def list_history_records(limit: int | None = None) -> List[HistoryRecord]:
    with get_session() as ses:
        stmt = select(HistoryRecord).order_by(HistoryRecord.timestamp.desc(), HistoryRecord.id.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        return ses.exec(stmt).all()


def clear_history_records() -> int:
    with get_session() as ses:
        rows = ses.exec(select(HistoryRecord)).all()
        for row in rows:
            ses.delete(row)
        ses.commit()
        return len(rows)
