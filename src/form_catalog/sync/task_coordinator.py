"""Single-flight coordination of background reconciliation tasks.

A task outlives whoever started it. The host attaches a listener to hear
about completion and may detach and reattach at any time (for example when
a view is torn down and rebuilt); a result that finishes while nobody is
listening is buffered on the handle and handed to the next listener once.
"""

import asyncio
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Protocol, Union

from loguru import logger

from form_catalog.schemas.catalog import Credentials
from form_catalog.sync.catalog_synchronizer import CatalogSynchronizer
from form_catalog.sync.disk_reconciler import DiskReconciler
from form_catalog.sync.utils import ScanReport, SyncResult


class TaskKind(str, Enum):
    DISK_SCAN = "disk-scan"
    CATALOG_SYNC = "catalog-sync"


class TaskStatus(str, Enum):
    RUNNING = "running"
    FINISHED = "finished"


class CompletionListener(Protocol):
    def task_complete(self, summary: str) -> None: ...


@dataclass(frozen=True)
class TaskOutcome:
    summary: str
    result: Union[ScanReport, SyncResult, None] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ReconciliationTaskHandle:
    """One in-flight or finished background task."""

    def __init__(self, kind: TaskKind):
        self.kind = kind
        self.status = TaskStatus.RUNNING
        self.outcome: Optional[TaskOutcome] = None
        self._buffered: Optional[TaskOutcome] = None
        self._listener: Optional[CompletionListener] = None
        self._lock = threading.Lock()
        self._done = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def buffered_result(self) -> Optional[TaskOutcome]:
        return self._buffered

    @property
    def listener(self) -> Optional[CompletionListener]:
        return self._listener

    @property
    def consumed(self) -> bool:
        return self.status == TaskStatus.FINISHED and self._buffered is None

    async def wait(self) -> TaskOutcome:
        """Wait for the task to finish. Does not consume the buffered result."""
        await self._done.wait()
        return self.outcome  # set before _done

    def finish(self, outcome: TaskOutcome) -> bool:
        """Record the outcome; returns True if a listener received it."""
        with self._lock:
            self.status = TaskStatus.FINISHED
            self.outcome = outcome
            listener = self._listener
            if listener is None:
                self._buffered = outcome
        self._done.set()

        if listener is None:
            logger.debug(f"{self.kind.value} finished with no listener, buffering result")
            return False
        _deliver(listener, outcome)
        return True

    def attach(self, listener: CompletionListener) -> bool:
        """Register a listener; returns True if a buffered result was delivered."""
        with self._lock:
            self._listener = listener
            outcome, self._buffered = self._buffered, None
        if outcome is None:
            return False
        _deliver(listener, outcome)
        return True

    def detach(self) -> None:
        with self._lock:
            self._listener = None

    def __repr__(self) -> str:
        return f"ReconciliationTaskHandle(kind={self.kind.value}, status={self.status.value})"


def _deliver(listener: CompletionListener, outcome: TaskOutcome) -> None:
    try:
        listener.task_complete(outcome.summary)
    except Exception:
        logger.exception("Completion listener raised")


class TaskCoordinator:
    """
    Runs disk scans and catalog syncs as asyncio tasks.

    At most one task per kind runs at a time; a second start() of the same
    kind joins the running one. The two kinds are independent and may run
    concurrently. There is no cancellation: detaching only stops delivery.
    """

    def __init__(
        self,
        disk_reconciler: DiskReconciler,
        catalog_synchronizer: CatalogSynchronizer,
        server_url: str = "",
        list_path: str = "/formList",
        credentials: Optional[Credentials] = None,
    ):
        self.disk_reconciler = disk_reconciler
        self.catalog_synchronizer = catalog_synchronizer
        self.server_url = server_url
        self.list_path = list_path
        self.credentials = credentials
        self._handles: Dict[TaskKind, ReconciliationTaskHandle] = {}
        self._lock = threading.Lock()

    def start(self, kind: TaskKind) -> ReconciliationTaskHandle:
        """Start a task of this kind, or return the one already running.

        Must be called from within a running event loop.
        """
        kind = TaskKind(kind)
        with self._lock:
            handle = self._handles.get(kind)
            if handle is not None and handle.status == TaskStatus.RUNNING:
                logger.debug(f"{kind.value} already running, joining it")
                return handle
            handle = ReconciliationTaskHandle(kind)
            self._handles[kind] = handle

        logger.info(f"Starting {kind.value}")
        handle._task = asyncio.create_task(self._run(handle), name=kind.value)
        return handle

    def get_handle(self, kind: TaskKind) -> Optional[ReconciliationTaskHandle]:
        """The latest handle of this kind that has not been consumed yet."""
        with self._lock:
            return self._handles.get(TaskKind(kind))

    def attach_listener(
        self, handle: ReconciliationTaskHandle, listener: CompletionListener
    ) -> None:
        if handle.attach(listener):
            self._release(handle)

    def detach_listener(self, handle: ReconciliationTaskHandle) -> None:
        handle.detach()

    async def _run(self, handle: ReconciliationTaskHandle) -> None:
        try:
            result = await self._work(handle.kind)
            outcome = TaskOutcome(summary=result.summary_message, result=result)
        except Exception as e:
            logger.error(f"{handle.kind.value} failed: {type(e).__name__}: {e}")
            outcome = TaskOutcome(
                summary=f"{handle.kind.value} failed: {type(e).__name__}: {e}", error=e
            )

        if handle.finish(outcome):
            self._release(handle)

    async def _work(self, kind: TaskKind) -> Union[ScanReport, SyncResult]:
        if kind == TaskKind.DISK_SCAN:
            return await self.disk_reconciler.run()
        return await self.catalog_synchronizer.synchronize(
            self.server_url, self.list_path, self.credentials
        )

    def _release(self, handle: ReconciliationTaskHandle) -> None:
        with self._lock:
            if self._handles.get(handle.kind) is handle:
                del self._handles[handle.kind]
