"""utility functions for commands"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

from rich.console import Console

from form_catalog import db
from form_catalog.clients import RemoteCatalogClient
from form_catalog.config import CatalogConfig
from form_catalog.forms import FormParser
from form_catalog.repository import FormRepository
from form_catalog.services import FileService
from form_catalog.sync import CatalogSynchronizer, DiskReconciler, TaskCoordinator, TaskKind
from form_catalog.sync.task_coordinator import TaskOutcome

console = Console()


@dataclass
class Services:
    config: CatalogConfig
    form_repository: FormRepository
    file_service: FileService
    coordinator: TaskCoordinator


class ConsoleListener:
    """Prints task summaries as they arrive."""

    def __init__(self, console: Console):
        self.console = console

    def task_complete(self, summary: str) -> None:
        self.console.print(summary)


@asynccontextmanager
async def get_services(config: CatalogConfig) -> AsyncIterator[Services]:
    """Wire up the index, storage and reconcilers for one CLI invocation."""
    config.forms_dir.mkdir(parents=True, exist_ok=True)

    async with db.engine_session_factory(db_path=config.database_path) as (engine, session_maker):
        form_repository = FormRepository(session_maker)
        file_service = FileService(config.forms_dir, settle_seconds=config.scan_settle_seconds)
        form_parser = FormParser()
        client = RemoteCatalogClient(
            timeout=config.request_timeout,
            attempts=config.download_attempts,
            backoff_max=config.download_backoff_max,
            parser=form_parser,
        )

        disk_reconciler = DiskReconciler(file_service, form_repository, form_parser)
        catalog_synchronizer = CatalogSynchronizer(
            client,
            file_service,
            form_repository,
            max_concurrent_downloads=config.max_concurrent_downloads,
        )
        coordinator = TaskCoordinator(
            disk_reconciler,
            catalog_synchronizer,
            server_url=config.server_url,
            list_path=config.form_list_path,
            credentials=config.credentials,
        )

        yield Services(
            config=config,
            form_repository=form_repository,
            file_service=file_service,
            coordinator=coordinator,
        )


async def run_task(services: Services, kind: TaskKind, console: Console = console) -> TaskOutcome:
    """Start a task, listen for its summary and wait for it to finish."""
    handle = services.coordinator.start(kind)
    services.coordinator.attach_listener(handle, ConsoleListener(console))
    return await handle.wait()
