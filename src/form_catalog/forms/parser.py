"""Parser for XForm header metadata.

Only the header is read: the form title from ``<h:head><h:title>`` and the
identity from the primary instance's root element:

    <h:html xmlns:h="http://www.w3.org/1999/xhtml" xmlns="http://www.w3.org/2002/xforms">
      <h:head>
        <h:title>Household survey</h:title>
        <model>
          <instance>
            <data id="household" version="2024061201">...</data>
          </instance>
        </model>
      </h:head>
      ...
    </h:html>
"""

import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from loguru import logger

from form_catalog.schemas.catalog import normalize_version
from form_catalog.utils.file_utils import ParseError


def local_name(tag: str) -> str:
    """Strip the ``{namespace}`` prefix ElementTree puts on tags."""
    return tag.rsplit("}", 1)[-1]


@dataclass(frozen=True)
class FormHeader:
    form_id: str
    version: Optional[str]
    title: str


class FormParser:
    """Reads identity and title from form definition bytes."""

    def parse(self, content: bytes, source: str = "<bytes>") -> FormHeader:
        """
        Parse the header of a form definition.

        Args:
            content: Raw XForm bytes
            source: Name used in error messages

        Returns:
            FormHeader with form id, version and title

        Raises:
            ParseError: If the content is not a well-formed XForm
        """
        try:
            root = ET.fromstring(content)
        except ET.ParseError as e:
            raise ParseError(f"{source} is not well-formed XML: {e}") from e

        head = self._child(root, "head")
        if head is None:
            raise ParseError(f"{source} has no <head> element")

        model = self._child(head, "model")
        if model is None:
            raise ParseError(f"{source} has no <model> element")

        instance = next(
            (
                el
                for el in model
                if local_name(el.tag) == "instance" and "id" not in el.attrib
            ),
            None,
        )
        if instance is None or len(instance) == 0:
            raise ParseError(f"{source} has no primary instance")

        data = instance[0]
        form_id = (data.get("id") or "").strip()
        if not form_id:
            raise ParseError(f"{source} primary instance has no id attribute")

        title_el = self._child(head, "title")
        title = (title_el.text or "").strip() if title_el is not None else ""
        if not title:
            logger.debug(f"{source} has no title, using form id {form_id}")
            title = form_id

        return FormHeader(form_id=form_id, version=normalize_version(data.get("version")), title=title)

    def parse_file(self, path: Path) -> FormHeader:
        """Parse the header of a form definition on disk."""
        try:
            content = path.read_bytes()
        except OSError as e:
            raise ParseError(f"Failed to read {path}: {e}") from e
        return self.parse(content, source=str(path))

    @staticmethod
    def _child(element: ET.Element, name: str) -> Optional[ET.Element]:
        return next((el for el in element if local_name(el.tag) == name), None)
