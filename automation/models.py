from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional
from enum import Enum
import uuid
from urllib.parse import urlparse

class StopwatchPosition(str, Enum):
    TOP_LEFT = "top-left"
    TOP_RIGHT = "top-right"
    BOTTOM_LEFT = "bottom-left"
    BOTTOM_RIGHT = "bottom-right"


class CamelModel(BaseModel):
    """Base for records persisted with the extension's camelCase keys."""
    model_config = ConfigDict(populate_by_name=True)


class BookmarkEntry(CamelModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    title: str = "Untitled"
    url: Optional[str] = None
    delay_after: int = Field(default=0, alias="delayAfter")
    is_custom_code: bool = Field(default=False, alias="isCustomCode")
    is_editor_bookmarklet: bool = Field(default=False, alias="isEditorBookmarklet")
    editor_bookmarklet_id: Optional[str] = Field(default=None, alias="editorBookmarkletId")

    @property
    def is_bookmarklet(self) -> bool:
        return self.is_editor_bookmarklet or bool(self.url and self.url.startswith("javascript:"))


class DomAction(BaseModel):
    type: str
    selector: Optional[str] = None
    value: Optional[str] = None
    all: bool = False

    def dedup_key(self) -> tuple:
        return (self.type, self.selector, self.all, self.value or "")


class ActionResult(CamelModel):
    success: bool
    error: Optional[str] = None
    elements_found: Optional[int] = Field(default=None, alias="elementsFound")
    elements_modified: Optional[int] = Field(default=None, alias="elementsModified")
    elements_clicked: Optional[int] = Field(default=None, alias="elementsClicked")
    text: Optional[str] = None
    found: Optional[bool] = None
    search_text: Optional[str] = Field(default=None, alias="searchText")


class EngineResult(BaseModel):
    success: bool
    method: Optional[str] = None
    error: Optional[str] = None


class BatchResult(BaseModel):
    total: int = 0
    executed: int = 0
    failed: int = 0
    errors: List[str] = []


class ScriptItem(BaseModel):
    """A decoded bookmarklet ready for execution."""
    code: str
    title: str = "Untitled"
    delay_after: int = 0


class RandomTimeRange(CamelModel):
    enabled: bool = False
    min_seconds: int = Field(default=0, alias="minSeconds")
    max_seconds: int = Field(default=0, alias="maxSeconds")


class DomainSchedule(BaseModel):
    type: str = "none"
    config: Dict[str, Any] = {}


class EditorBookmarklet(CamelModel):
    id: str
    name: str = "Untitled"
    code: str = ""
    enabled: bool = True
    description: Optional[str] = None
    auto_run: bool = Field(default=False, alias="autoRun")
    schedule: DomainSchedule = Field(default_factory=DomainSchedule)
    last_executed: Optional[int] = Field(default=None, alias="lastExecuted")
    execution_count: int = Field(default=0, alias="executionCount")


class StopwatchSettings(CamelModel):
    """
    Snapshot of every stopwatch-related settings key.
    Frozen: changes produce a new snapshot (see stopwatch.settings_reducer).
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    enabled: bool = Field(default=False, alias="stopwatchEnabled")
    position: StopwatchPosition = Field(default=StopwatchPosition.BOTTOM_RIGHT, alias="stopwatchPosition")
    minimized_by_default: bool = Field(default=False, alias="stopwatchMinimizedByDefault")
    included_domains: str = Field(default="", alias="stopwatchIncludedDomains")
    notification_enabled: bool = Field(default=False, alias="stopwatchNotificationEnabled")
    notification_minutes: float = Field(default=30, alias="stopwatchNotificationMinutes")
    notification_time_by_domain: Dict[str, float] = Field(default_factory=dict, alias="stopwatchNotificationTimeByDomain")
    notification_silent: bool = Field(default=False, alias="stopwatchNotificationSilent")
    silent_mode_by_domain: Dict[str, bool] = Field(default_factory=dict, alias="stopwatchSilentModeByDomain")
    open_bookmarks_on_notification: bool = Field(default=False, alias="stopwatchOpenBookmarksOnNotification")
    bookmarks_by_domain: Dict[str, List[BookmarkEntry]] = Field(default_factory=dict, alias="stopwatchBookmarksByDomain")
    global_bookmarklets: List[str] = Field(default_factory=list, alias="stopwatchGlobalBookmarklets")
    bookmarklet_delay: int = Field(default=0, alias="stopwatchBookmarkletDelay")
    delay_by_domain: Dict[str, int] = Field(default_factory=dict, alias="stopwatchDelayByDomain")
    use_random_time: bool = Field(default=False, alias="stopwatchUseRandomTime")
    random_time_min_minutes: float = Field(default=10, alias="stopwatchRandomTimeMinMinutes")
    random_time_max_minutes: float = Field(default=30, alias="stopwatchRandomTimeMaxMinutes")
    random_time_range_by_domain: Dict[str, RandomTimeRange] = Field(default_factory=dict, alias="stopwatchRandomTimeRangeByDomain")


class SessionState(BaseModel):
    start_time: Optional[float] = None
    notification_sent: bool = False
    generated_random_seconds: Optional[int] = None
    is_minimized: bool = False


class PageLocation(BaseModel):
    """Hostname and full URL of the page, both lower-cased."""
    hostname: str
    url: str

    @classmethod
    def from_url(cls, url: str) -> "PageLocation":
        parsed = urlparse(url or "")
        return cls(hostname=(parsed.hostname or "").lower(), url=(url or "").lower())
