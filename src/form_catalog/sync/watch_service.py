"""Watch service for form-catalog."""

import os
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Set, Tuple

from loguru import logger
from pydantic import BaseModel, Field
from watchfiles import Change, awatch

from form_catalog.config import CatalogConfig
from form_catalog.services.file_service import FORM_SUFFIX, MEDIA_DIR_SUFFIX
from form_catalog.sync.task_coordinator import (
    CompletionListener,
    ReconciliationTaskHandle,
    TaskCoordinator,
    TaskKind,
)


class WatchEvent(BaseModel):
    timestamp: datetime
    path: str
    action: str  # added, modified, deleted


class WatchServiceState(BaseModel):
    # Service status
    running: bool = False
    start_time: datetime = Field(default_factory=datetime.now)
    pid: int = Field(default_factory=os.getpid)

    # Stats
    scans_started: int = 0
    last_scan: Optional[datetime] = None

    # Recent activity
    recent_events: List[WatchEvent] = Field(default_factory=list)

    def add_event(self, path: str, action: str) -> WatchEvent:
        event = WatchEvent(timestamp=datetime.now(), path=path, action=action)
        self.recent_events.insert(0, event)
        self.recent_events = self.recent_events[:100]  # Keep last 100
        return event


class WatchService:
    """Starts a disk scan whenever form files change under the forms directory."""

    def __init__(
        self,
        coordinator: TaskCoordinator,
        config: CatalogConfig,
        listener: Optional[CompletionListener] = None,
    ):
        self.coordinator = coordinator
        self.config = config
        self.listener = listener
        self.state = WatchServiceState()
        self.status_path = config.home / "watch-status.json"

    async def run(self):
        """Watch for file changes and scan them"""
        self.state.running = True
        self.state.start_time = datetime.now()
        self.write_status()

        logger.info(f"Watching {self.config.forms_dir} for changes")
        try:
            async for changes in awatch(
                self.config.forms_dir,
                watch_filter=self.filter_changes,
                debounce=self.config.sync_delay,
                recursive=True,
            ):
                self.handle_changes(changes)
        finally:
            self.state.running = False
            self.write_status()

    def write_status(self):
        """Write current state to status file"""
        self.status_path.write_text(self.state.model_dump_json(indent=2))

    def filter_changes(self, change: Change, path: str) -> bool:
        """Only watch form files outside media directories"""
        p = Path(path)
        if p.name.startswith(".") or not p.name.endswith(FORM_SUFFIX):
            return False
        return not any(part.endswith(MEDIA_DIR_SUFFIX) for part in p.parent.parts)

    def handle_changes(self, changes: Set[Tuple[Change, str]]) -> ReconciliationTaskHandle:
        """Record a batch of changes and start (or join) a disk scan"""
        for change, path in sorted(changes, key=lambda c: c[1]):
            event = self.state.add_event(path=path, action=change.name)
            logger.debug(f"{event.action}: {event.path}")

        handle = self.coordinator.start(TaskKind.DISK_SCAN)
        if self.listener is not None:
            self.coordinator.attach_listener(handle, self.listener)

        self.state.scans_started += 1
        self.state.last_scan = datetime.now()
        self.write_status()
        return handle
