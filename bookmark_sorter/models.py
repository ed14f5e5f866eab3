
from typing import Optional
from datetime import datetime
from sqlmodel import SQLModel, Field

class AppConfig(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    key: str
    value: str

class BookmarkNode(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    parent_id: Optional[int] = Field(default=None, index=True)
    title: str = ""
    url: Optional[str] = Field(default=None, index=True)
    position: int = 0
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_folder(self) -> bool:
        return self.url is None

class HistoryRecord(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    entry_id: str
    timestamp: int
    title: str = ""
    url: str = ""
    category: str = ""
    status: str = "success"
