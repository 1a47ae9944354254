"""Client for OpenRosa-style remote form catalogs.

The server publishes a form list (``GET <server><list path>``) whose entries
link to the form definition and, optionally, a manifest of media files.
Both the OpenRosa ``xforms`` XML list and a JSON list are understood.
"""

import hashlib
import json
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Any, List, Optional

import httpx
from loguru import logger
from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from form_catalog.forms.parser import FormHeader, FormParser, local_name
from form_catalog.schemas.catalog import Credentials, MediaFile, RemoteCatalogEntry
from form_catalog.services.exceptions import AuthError, NetworkError, ParseError

OPENROSA_HEADERS = {"X-OpenRosa-Version": "1.0", "Accept": "text/xml, application/json"}


@dataclass
class DownloadedForm:
    """A verified form definition fetched from the catalog."""

    entry: RemoteCatalogEntry
    content: bytes
    header: FormHeader
    media: List[MediaFile] = field(default_factory=list)


def join_url(server_url: str, path: str) -> str:
    return f"{server_url.rstrip('/')}/{path.lstrip('/')}"


def is_transient(exc: BaseException) -> bool:
    return isinstance(exc, NetworkError) and exc.transient


def verify_hash(content: bytes, expected: Optional[str], source: str) -> None:
    """Check downloaded bytes against a catalog hash such as ``md5:<hex>``.

    A missing hash, or one in an algorithm hashlib does not offer, is not checked.

    Raises:
        ParseError: If the digest does not match
    """
    if not expected:
        return
    algorithm, _, digest = expected.strip().rpartition(":")
    if not digest:
        return
    algorithm = algorithm.lower() or "md5"
    if algorithm not in hashlib.algorithms_available:
        logger.debug(f"Not verifying {source}: unsupported hash {expected}")
        return
    actual = hashlib.new(algorithm, content).hexdigest()
    if actual != digest.lower():
        raise ParseError(f"{source} failed verification: expected {expected}, got {algorithm}:{actual}")


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(f"Attempt {retry_state.attempt_number} failed ({exc}); retrying")


class RemoteCatalogClient:
    """Fetches the remote form list and downloads individual forms.

    Each request carries its own timeout. Downloads retry transient network
    failures with exponential backoff; the list fetch does not retry and
    authentication failures are never retried.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        attempts: int = 3,
        backoff_min: float = 0.5,
        backoff_max: float = 8.0,
        parser: Optional[FormParser] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = httpx.Timeout(timeout)
        self.attempts = attempts
        self.backoff_min = backoff_min
        self.backoff_max = backoff_max
        self.parser = parser or FormParser()
        self.transport = transport

    def _auth(self, credentials: Optional[Credentials]) -> Optional[httpx.Auth]:
        if credentials is None:
            return None
        password = credentials.password.get_secret_value()
        if credentials.scheme == "digest":
            return httpx.DigestAuth(credentials.username, password)
        return httpx.BasicAuth(credentials.username, password)

    async def _get(self, url: str, credentials: Optional[Credentials]) -> httpx.Response:
        async with httpx.AsyncClient(
            timeout=self.timeout,
            auth=self._auth(credentials),
            headers=OPENROSA_HEADERS,
            follow_redirects=True,
            transport=self.transport,
        ) as client:
            try:
                logger.debug(f"GET {url}")
                response = await client.get(url)
            except httpx.TimeoutException as e:
                raise NetworkError(f"Timed out requesting {url}") from e
            except httpx.TransportError as e:
                raise NetworkError(f"Could not reach {url}: {e}") from e

        status = response.status_code
        if status in (401, 403):
            raise AuthError(f"Server rejected credentials for {url} ({status})")
        if status == 429 or status >= 500:
            raise NetworkError(f"Server error {status} for {url}")
        if status >= 400:
            raise NetworkError(f"Unexpected status {status} for {url}", transient=False)
        return response

    async def _get_with_retry(self, url: str, credentials: Optional[Credentials]) -> httpx.Response:
        retrying = AsyncRetrying(
            retry=retry_if_exception(is_transient),
            stop=stop_after_attempt(self.attempts),
            wait=wait_exponential(multiplier=self.backoff_min, max=self.backoff_max),
            before_sleep=_log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                response = await self._get(url, credentials)
        return response

    async def fetch_catalog(
        self,
        server_url: str,
        list_path: str,
        credentials: Optional[Credentials] = None,
    ) -> List[RemoteCatalogEntry]:
        """
        Fetch the remote form list.

        Args:
            server_url: Base URL of the server
            list_path: Path of the form list on the server
            credentials: Optional basic or digest credentials

        Returns:
            Entries in server order

        Raises:
            NetworkError: Connection failure, timeout or unexpected status
            AuthError: Credentials rejected
            ParseError: Malformed list
        """
        url = join_url(server_url, list_path)
        response = await self._get(url, credentials)
        entries = self.parse_catalog(response.content, response.headers.get("content-type", ""), url)
        logger.info(f"Catalog at {url} lists {len(entries)} forms")
        return entries

    def parse_catalog(self, content: bytes, content_type: str, base_url: str) -> List[RemoteCatalogEntry]:
        if "json" in content_type:
            raw = self._parse_json_list(content)
        else:
            raw = self._parse_xml_list(content)

        entries = []
        for item in raw:
            try:
                entry = RemoteCatalogEntry.model_validate(item)
            except ValidationError as e:
                raise ParseError(f"Invalid catalog entry {item!r}: {e}") from e
            entries.append(
                entry.model_copy(
                    update={
                        "download_url": str(httpx.URL(base_url).join(entry.download_url)),
                        "manifest_url": (
                            str(httpx.URL(base_url).join(entry.manifest_url))
                            if entry.manifest_url
                            else None
                        ),
                    }
                )
            )
        return entries

    @staticmethod
    def _parse_json_list(content: bytes) -> List[Any]:
        try:
            data = json.loads(content)
        except ValueError as e:
            raise ParseError(f"Catalog is not valid JSON: {e}") from e
        if isinstance(data, dict):
            data = data.get("forms")
        if not isinstance(data, list):
            raise ParseError("Catalog JSON must be a list of forms or an object with 'forms'")
        return data

    @staticmethod
    def _parse_xml_list(content: bytes) -> List[dict]:
        try:
            root = ET.fromstring(content)
        except ET.ParseError as e:
            raise ParseError(f"Catalog is not well-formed XML: {e}") from e
        if local_name(root.tag) != "xforms":
            raise ParseError(f"Unexpected catalog root element <{local_name(root.tag)}>")
        return [
            {local_name(child.tag): (child.text or "").strip() for child in xform}
            for xform in root
            if local_name(xform.tag) == "xform"
        ]

    async def download_artifact(
        self,
        entry: RemoteCatalogEntry,
        credentials: Optional[Credentials] = None,
    ) -> DownloadedForm:
        """
        Download and verify one form, plus its media manifest when it has one.

        Raises:
            NetworkError: Retries exhausted or non-transient failure
            AuthError: Credentials rejected
            ParseError: The body is not a form matching the entry, or does not
                match the catalog hash
        """
        response = await self._get_with_retry(entry.download_url, credentials)
        verify_hash(response.content, entry.hash, entry.download_url)
        header = self.parser.parse(response.content, source=entry.download_url)

        if header.form_id != entry.form_id or header.version != entry.version:
            raise ParseError(
                f"Downloaded form is {header.form_id} version {header.version}, "
                f"catalog advertised {entry.form_id} version {entry.version}"
            )

        media: List[MediaFile] = []
        if entry.manifest_url:
            manifest = await self._get_with_retry(entry.manifest_url, credentials)
            media = self.parse_manifest(manifest.content, entry.manifest_url)

        return DownloadedForm(entry=entry, content=response.content, header=header, media=media)

    def parse_manifest(self, content: bytes, base_url: str) -> List[MediaFile]:
        try:
            root = ET.fromstring(content)
        except ET.ParseError as e:
            raise ParseError(f"Manifest is not well-formed XML: {e}") from e

        media = []
        for element in root:
            if local_name(element.tag) != "mediaFile":
                continue
            fields = {local_name(child.tag): (child.text or "").strip() for child in element}
            try:
                item = MediaFile.model_validate(fields)
            except ValidationError as e:
                raise ParseError(f"Invalid manifest entry {fields!r}: {e}") from e
            media.append(
                item.model_copy(update={"download_url": str(httpx.URL(base_url).join(item.download_url))})
            )
        return media

    async def download_media(
        self,
        media: MediaFile,
        credentials: Optional[Credentials] = None,
    ) -> bytes:
        response = await self._get_with_retry(media.download_url, credentials)
        verify_hash(response.content, media.hash, media.download_url)
        return response.content
