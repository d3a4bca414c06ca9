"""
ATS XML Renderer and Packager
Serializes the typed ATS document with lxml and writes the XML file and its
ZIP archive under the storage folder of the taxpayer.

File: src/generators/xml_renderer.py
"""

import io
import logging
import os
import zipfile
from dataclasses import dataclass, fields, is_dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional

from lxml import etree

from config.ats_config import AtsConstants, SystemConfig
from src.exceptions import AtsStorageError
from src.models.ats_document import AtsDocument

logger = logging.getLogger(__name__)

# Floats above this magnitude would otherwise render in exponential notation
FLOAT_LITERAL_THRESHOLD = 1e15

# ========================================
# XML RENDERER
# ========================================

class AtsXmlRenderer:
    """
    Renders an AtsDocument as UTF-8 bytes
    Fields set to None are omitted, empty strings become empty elements.
    """

    def __init__(self, prologue: str = AtsConstants.XML_PROLOGUE):
        self.prologue = prologue.encode('utf-8')

    @staticmethod
    def _text(value) -> Optional[str]:
        if isinstance(value, Enum):
            value = value.value
        if isinstance(value, int):
            return str(value)
        if isinstance(value, Decimal):
            return format(value, 'f')
        if isinstance(value, float):
            if abs(value) > FLOAT_LITERAL_THRESHOLD:
                return format(value, '.0f')
            return repr(value)
        text = str(value)
        return text or None

    def _append_fields(self, parent: etree._Element, section) -> None:
        for section_field in fields(section):
            value = getattr(section, section_field.name)
            if value is None:
                continue

            tag = section_field.metadata['tag']
            item_tag = section_field.metadata.get('item_tag')

            if isinstance(value, list):
                container = etree.SubElement(parent, tag)
                for item in value:
                    self._append_value(container, item_tag, item)
            else:
                self._append_value(parent, tag, value)

    def _append_value(self, parent: etree._Element, tag: str, value) -> None:
        element = etree.SubElement(parent, tag)
        if is_dataclass(value):
            self._append_fields(element, value)
        else:
            element.text = self._text(value)

    def build_tree(self, document: AtsDocument) -> etree._Element:
        root = etree.Element(AtsConstants.ROOT_TAG)
        self._append_fields(root, document)
        return root

    def render(self, document: AtsDocument) -> bytes:
        """Prologue immediately followed by the <iva> element"""
        root = self.build_tree(document)
        body = etree.tostring(root, encoding='UTF-8', xml_declaration=False)
        xml_bytes = self.prologue + body

        logger.info(f"ATS XML rendered ({len(xml_bytes)} bytes)")
        return xml_bytes

# ========================================
# PACKAGER
# ========================================

@dataclass
class PackagedArtifacts:
    """Files written for one generation"""
    xml_file_name: str
    archive_file_name: str
    xml_path: str
    archive_path: str
    archive_bytes: bytes


def artifact_names(month: str, year: str):
    """ATS<MM><YYYY>.xml and AT<MM><YYYY>.zip"""
    suffix = f"{str(month).zfill(2)}{year}"
    return (
        f"{AtsConstants.XML_FILE_PREFIX}{suffix}.xml",
        f"{AtsConstants.ARCHIVE_FILE_PREFIX}{suffix}.zip",
    )


class AtsPackager:
    """
    Writes the XML and a single-entry ZIP archive to <storage>/<ruc>/
    Regenerating a period overwrites both files.
    """

    def __init__(self, storage_dir: Optional[str] = None):
        self.storage_dir = storage_dir or SystemConfig.STORAGE_DIR

    @staticmethod
    def build_archive(xml_file_name: str, xml_bytes: bytes) -> bytes:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, 'w', zipfile.ZIP_DEFLATED, compresslevel=9) as archive:
            archive.writestr(xml_file_name, xml_bytes)
        return buffer.getvalue()

    def package(self, ruc: str, month: str, year: str, xml_bytes: bytes) -> PackagedArtifacts:
        xml_file_name, archive_file_name = artifact_names(month, year)
        target_dir = os.path.join(self.storage_dir, str(ruc))
        xml_path = os.path.join(target_dir, xml_file_name)
        archive_path = os.path.join(target_dir, archive_file_name)

        try:
            os.makedirs(target_dir, exist_ok=True)

            with open(xml_path, 'wb') as f:
                f.write(xml_bytes)

            archive_bytes = self.build_archive(xml_file_name, xml_bytes)
            with open(archive_path, 'wb') as f:
                f.write(archive_bytes)

        except OSError as e:
            logger.error(f"Failed to write ATS artifacts in {target_dir}: {e}")
            raise AtsStorageError(details=[{"path": target_dir}]) from e

        logger.info(f"ATS artifacts written: {xml_path}, {archive_path}")
        return PackagedArtifacts(
            xml_file_name=xml_file_name,
            archive_file_name=archive_file_name,
            xml_path=xml_path,
            archive_path=archive_path,
            archive_bytes=archive_bytes,
        )
