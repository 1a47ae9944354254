"""Common test fixtures."""

import hashlib
from collections import Counter
from pathlib import Path
from typing import AsyncGenerator, Callable, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from form_catalog import db
from form_catalog.clients import RemoteCatalogClient
from form_catalog.config import CatalogConfig
from form_catalog.forms import FormParser
from form_catalog.repository import FormRepository
from form_catalog.services import FileService
from form_catalog.sync import CatalogSynchronizer, DiskReconciler, TaskCoordinator

SERVER_URL = "https://forms.test"
LIST_PATH = "/formList"


def md5_hash(content: bytes) -> str:
    return f"md5:{hashlib.md5(content).hexdigest()}"


def build_xform(form_id: str, version: Optional[str] = None, title: Optional[str] = None) -> bytes:
    """Minimal XForm with the given identity."""
    version_attr = f' version="{version}"' if version is not None else ""
    return f"""<?xml version="1.0"?>
<h:html xmlns="http://www.w3.org/2002/xforms" xmlns:h="http://www.w3.org/1999/xhtml">
  <h:head>
    <h:title>{title or form_id}</h:title>
    <model>
      <instance>
        <data id="{form_id}"{version_attr}><name/></data>
      </instance>
      <bind nodeset="/data/name" type="string"/>
    </model>
  </h:head>
  <h:body>
    <input ref="/data/name"><label>Name</label></input>
  </h:body>
</h:html>
""".encode()


class FakeCatalogServer:
    """In-process OpenRosa server for httpx.MockTransport.

    Each path serves a queue of responses; the last one repeats. A queued
    exception type is raised as a transport error.
    """

    def __init__(self):
        self.published: List[Dict[str, str]] = []
        self.routes: Dict[str, list] = {}
        self.calls: Counter = Counter()

    def add(self, path: str, status: int = 200, content: bytes = b"", headers=None):
        self.routes.setdefault(path, []).append((status, content, headers or {}))

    def fail(self, path: str, exc_type=httpx.ConnectError):
        self.routes.setdefault(path, []).append(exc_type)

    def publish(
        self,
        form_id: str,
        version: Optional[str] = None,
        title: Optional[str] = None,
        content: Optional[bytes] = None,
        media: Optional[Dict[str, bytes]] = None,
    ) -> str:
        """List a form in the catalog and serve its definition; returns the download path."""
        path = f"/forms/{form_id}/{version or 'current'}.xml"
        body = content if content is not None else build_xform(form_id, version, title)
        item = {
            "formID": form_id,
            "name": title or form_id,
            "version": version or "",
            "downloadUrl": f"{SERVER_URL}{path}",
            "hash": md5_hash(body),
        }
        if content is not None or path not in self.routes:
            self.add(path, content=body)
        if media:
            manifest_path = f"/manifests/{form_id}/{version or 'current'}.xml"
            item["manifestUrl"] = f"{SERVER_URL}{manifest_path}"
            files = "".join(
                f"<mediaFile><filename>{name}</filename><hash>{md5_hash(data)}</hash>"
                f"<downloadUrl>/media/{form_id}/{name}</downloadUrl></mediaFile>"
                for name, data in media.items()
            )
            self.add(
                manifest_path,
                content=f'<manifest xmlns="http://openrosa.org/xforms/xformsManifest">{files}</manifest>'.encode(),
            )
            for name, data in media.items():
                self.add(f"/media/{form_id}/{name}", content=data)
        self.published.append(item)
        return path

    def form_list(self) -> bytes:
        forms = "".join(
            "<xform>" + "".join(f"<{k}>{v}</{k}>" for k, v in item.items()) + "</xform>"
            for item in self.published
        )
        return f'<xforms xmlns="http://openrosa.org/xforms/xformsList">{forms}</xforms>'.encode()

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls[path] += 1

        queue = self.routes.get(path)
        if not queue:
            if path == LIST_PATH:
                return httpx.Response(200, content=self.form_list(), headers={"content-type": "text/xml"})
            return httpx.Response(404)

        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, type):
            raise item("simulated failure", request=request)
        status, content, headers = item
        return httpx.Response(status, content=content, headers=headers)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def config_home(tmp_path, monkeypatch) -> Path:
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("FORM_CATALOG_HOME", str(tmp_path / "form-catalog"))
    return tmp_path / "form-catalog"


@pytest.fixture
def test_config(config_home) -> CatalogConfig:
    """Create test configuration."""
    config = CatalogConfig(home=config_home, server_url=SERVER_URL, form_list_path=LIST_PATH)
    config.forms_dir.mkdir(parents=True, exist_ok=True)
    return config


@pytest.fixture
def forms_dir(test_config) -> Path:
    return test_config.forms_dir


@pytest_asyncio.fixture(scope="function")
async def engine_factory(
    test_config,
) -> AsyncGenerator[tuple[AsyncEngine, async_sessionmaker[AsyncSession]], None]:
    """Create a file-backed SQLite engine for each test."""
    async with db.engine_session_factory(db_path=test_config.database_path) as (engine, session_maker):
        yield engine, session_maker


@pytest_asyncio.fixture
async def session_maker(engine_factory) -> async_sessionmaker[AsyncSession]:
    """Get session maker for tests."""
    _, session_maker = engine_factory
    return session_maker


## Repositories


@pytest_asyncio.fixture(scope="function")
async def form_repository(session_maker: async_sessionmaker[AsyncSession]) -> FormRepository:
    return FormRepository(session_maker)


## Services


@pytest.fixture
def file_service(forms_dir: Path) -> FileService:
    return FileService(forms_dir)


@pytest.fixture
def form_parser() -> FormParser:
    return FormParser()


@pytest.fixture
def catalog_server() -> FakeCatalogServer:
    return FakeCatalogServer()


@pytest.fixture
def catalog_client(catalog_server: FakeCatalogServer, form_parser: FormParser) -> RemoteCatalogClient:
    return RemoteCatalogClient(
        timeout=5.0,
        attempts=3,
        backoff_min=0,
        backoff_max=0,
        parser=form_parser,
        transport=httpx.MockTransport(catalog_server.handler),
    )


@pytest.fixture
def disk_reconciler(
    file_service: FileService, form_repository: FormRepository, form_parser: FormParser
) -> DiskReconciler:
    return DiskReconciler(file_service, form_repository, form_parser)


@pytest.fixture
def catalog_synchronizer(
    catalog_client: RemoteCatalogClient, file_service: FileService, form_repository: FormRepository
) -> CatalogSynchronizer:
    return CatalogSynchronizer(catalog_client, file_service, form_repository)


@pytest.fixture
def task_coordinator(
    disk_reconciler: DiskReconciler, catalog_synchronizer: CatalogSynchronizer
) -> TaskCoordinator:
    return TaskCoordinator(
        disk_reconciler, catalog_synchronizer, server_url=SERVER_URL, list_path=LIST_PATH
    )


@pytest.fixture
def write_form(forms_dir: Path) -> Callable[..., Path]:
    """Copy a form file into the forms directory, as a user would."""

    def _write(name: str, form_id: str, version: Optional[str] = None, title: Optional[str] = None) -> Path:
        path = forms_dir / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(build_xform(form_id, version, title))
        return path

    return _write


@pytest.fixture
def xform() -> Callable[..., bytes]:
    return build_xform
