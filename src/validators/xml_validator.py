"""
ATS XML Schema Validator
Validates generated ATS XML documents against the SRI XSD schema

Validation never blocks generation: findings are returned as data and the
caller stores them next to the generated files. Two implementations share
one interface and the factory picks one at startup:

- XsdSchemaValidator: full XSD validation with xmlschema
- StructuralSchemaValidator: mandatory field and format checks with lxml,
  used when no XSD file can be loaded

File: src/validators/xml_validator.py
"""

import os
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple, Union
from dataclasses import dataclass, field
from enum import Enum
import requests
from lxml import etree
from lxml.etree import XMLSyntaxError
from xmlschema import XMLSchema, XMLSchemaException
from datetime import datetime, timedelta
import hashlib
import json

from config.ats_config import SystemConfig, AtsConstants, ValidationRules

logger = logging.getLogger(__name__)

# ========================================
# VALIDATION RESULT CLASSES
# ========================================

class ValidationLevel(Enum):
    """Validation severity levels"""
    ERROR = "ERROR"
    WARNING = "ADVERTENCIA"
    INFO = "INFO"


class IssueType:
    """Categories reported to the user"""
    SYNTAX = "SINTAXIS"
    XSD = "XSD_VALIDATION"
    STRUCTURE = "ESTRUCTURA"
    MANDATORY_FIELD = "CAMPO_OBLIGATORIO"
    FORMAT = "FORMATO"
    DATA_TYPE = "TIPO_DATO"
    INFO = "INFO"
    WARNING = "ADVERTENCIA"


@dataclass
class ValidationIssue:
    """Individual validation finding"""
    type: str
    message: str
    level: ValidationLevel = ValidationLevel.ERROR
    location: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None
    value: Optional[str] = None
    detail: Optional[str] = None

    def to_dict(self) -> Dict:
        data = {
            'tipo': self.type,
            'mensaje': self.message,
            'nivel': self.level.value,
        }
        for key, value in (
            ('ruta', self.location), ('linea', self.line), ('columna', self.column),
            ('valor', self.value), ('detalle', self.detail),
        ):
            if value is not None:
                data[key] = value
        return data


@dataclass
class ValidationOutcome:
    """Complete validation result"""
    valid: bool
    errors: List[ValidationIssue]
    warnings: List[ValidationIssue]
    method: str
    validation_time: datetime = field(default_factory=datetime.now)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def warning_count(self) -> int:
        return len(self.warnings)

    @property
    def message(self) -> str:
        base = "XML válido" if self.valid else "XML con errores de validación"
        return f"{base} (método: {self.method})"

    def to_dict(self) -> Dict:
        return {
            'valido': self.valid,
            'metodo': self.method,
            'mensaje': self.message,
            'errores': [error.to_dict() for error in self.errors],
            'advertencias': [warning.to_dict() for warning in self.warnings],
        }


def cap_errors(
    errors: List[ValidationIssue],
    warnings: List[ValidationIssue],
    limit: int = SystemConfig.MAX_REPORTED_ERRORS
) -> Tuple[List[ValidationIssue], List[ValidationIssue]]:
    """Keep the first `limit` errors and note how many were left out"""
    if len(errors) <= limit:
        return errors, warnings

    omitted = len(errors) - limit
    warnings = warnings + [ValidationIssue(
        type=IssueType.INFO,
        message=f"Se omitieron {omitted} errores adicionales de validación",
        level=ValidationLevel.INFO,
    )]
    return errors[:limit], warnings

# ========================================
# SCHEMA MANAGER
# ========================================

class SchemaManager:
    """
    Locates and loads the ATS XSD schema
    Uses a local file when present, otherwise downloads it once and caches it
    """

    def __init__(self, cache_dir: Optional[str] = None, cache_duration_hours: Optional[int] = None):
        self.cache_dir = cache_dir or SystemConfig.SCHEMA_CACHE_DIR
        self.cache_duration = timedelta(hours=cache_duration_hours or SystemConfig.SCHEMA_CACHE_HOURS)
        self.schemas: Dict[str, XMLSchema] = {}

        logger.info(f"SchemaManager initialized with cache directory: {self.cache_dir}")

    def _get_cache_path(self, schema_name: str) -> str:
        """Get the local cache path for a schema file"""
        return os.path.join(self.cache_dir, schema_name)

    def _get_cache_info_path(self, schema_name: str) -> str:
        """Get the cache info file path"""
        return os.path.join(self.cache_dir, f"{schema_name}.info")

    def _is_cache_valid(self, schema_name: str) -> bool:
        """Check if cached schema is still valid"""
        cache_info_path = self._get_cache_info_path(schema_name)

        if not os.path.exists(cache_info_path):
            return False

        try:
            with open(cache_info_path, 'r') as f:
                cache_info = json.load(f)

            cached_time = datetime.fromisoformat(cache_info['cached_at'])
            return datetime.now() - cached_time < self.cache_duration
        except (json.JSONDecodeError, KeyError, ValueError):
            return False

    def _download_schema(self, schema_name: str, url: str) -> bool:
        """Download the schema file into the cache directory"""
        try:
            logger.info(f"Downloading schema: {schema_name} from {url}")

            response = requests.get(url, timeout=30)
            response.raise_for_status()

            os.makedirs(self.cache_dir, exist_ok=True)
            with open(self._get_cache_path(schema_name), 'wb') as f:
                f.write(response.content)

            cache_info = {
                'cached_at': datetime.now().isoformat(),
                'url': url,
                'size': len(response.content),
                'hash': hashlib.md5(response.content).hexdigest()
            }
            with open(self._get_cache_info_path(schema_name), 'w') as f:
                json.dump(cache_info, f)

            logger.info(f"Schema cached successfully: {schema_name}")
            return True

        except requests.RequestException as e:
            logger.error(f"Failed to download schema {schema_name}: {e}")
            return False
        except OSError as e:
            logger.error(f"Failed to save schema {schema_name}: {e}")
            return False

    def resolve_schema_path(self, xsd_path: Optional[str] = None, url: Optional[str] = None) -> Optional[str]:
        """Local schema file, or the cached copy of the remote one"""
        if xsd_path and os.path.exists(xsd_path):
            return xsd_path

        if not url:
            logger.warning(f"ATS schema not found at {xsd_path} and no download URL configured")
            return None

        schema_name = os.path.basename(url.split('?')[0]) or "ats.xsd"
        cache_path = self._get_cache_path(schema_name)
        if os.path.exists(cache_path) and self._is_cache_valid(schema_name):
            return cache_path

        if self._download_schema(schema_name, url):
            return cache_path
        return cache_path if os.path.exists(cache_path) else None

    def load_schema(self, schema_path: str) -> Optional[XMLSchema]:
        """Load and parse the XSD schema"""
        if schema_path in self.schemas:
            return self.schemas[schema_path]

        try:
            logger.info(f"Loading schema: {schema_path}")
            schema = XMLSchema(schema_path)
            self.schemas[schema_path] = schema

            logger.info(f"Schema loaded successfully: {schema_path}")
            return schema

        except XMLSchemaException as e:
            logger.error(f"Failed to parse schema {schema_path}: {e}")
            return None
        except (OSError, SyntaxError) as e:
            logger.error(f"Could not read schema {schema_path}: {e}")
            return None

# ========================================
# SCHEMA VALIDATORS
# ========================================

def parse_xml(xml_content: Union[bytes, str]) -> Tuple[Optional[etree._Element], List[ValidationIssue]]:
    """Parse XML content and report syntax errors"""
    if isinstance(xml_content, str):
        xml_content = xml_content.encode('utf-8')

    try:
        parser = etree.XMLParser(remove_blank_text=False, recover=False, resolve_entities=False)
        return etree.fromstring(xml_content, parser), []

    except XMLSyntaxError as e:
        return None, [ValidationIssue(
            type=IssueType.SYNTAX,
            message="XML mal formado",
            detail=e.msg,
            line=e.lineno,
            column=e.offset,
        )]


class SchemaValidator(ABC):
    """Capability interface injected into the generator"""

    method = ""

    def validate(self, xml_content: Union[bytes, str]) -> ValidationOutcome:
        """Validate a rendered ATS document; never raises on bad XML"""
        root, errors = parse_xml(xml_content)
        warnings: List[ValidationIssue] = []

        if root is not None:
            errors, warnings = self._check(root)
            errors, warnings = cap_errors(errors, warnings)

        outcome = ValidationOutcome(
            valid=len(errors) == 0,
            errors=errors,
            warnings=warnings,
            method=self.method,
        )

        logger.info(
            f"XML validation completed ({self.method}). Valid: {outcome.valid}, "
            f"Errors: {outcome.error_count}, Warnings: {outcome.warning_count}"
        )
        return outcome

    @abstractmethod
    def _check(self, root: etree._Element) -> Tuple[List[ValidationIssue], List[ValidationIssue]]:
        """Return (errors, warnings) for a well formed document"""


class StructuralSchemaValidator(SchemaValidator):
    """Mandatory fields and formats of the ATS, without the XSD"""

    method = "básica"

    SECTIONS = (
        # container, detail tag, label, mandatory fields
        ('compras', 'detalleCompras', 'Compra', AtsConstants.PURCHASE_MANDATORY_FIELDS),
        ('ventas', 'detalleVentas', 'Venta', AtsConstants.SALE_MANDATORY_FIELDS),
        ('exportaciones', 'detalleExportaciones', 'Exportación', AtsConstants.EXPORT_MANDATORY_FIELDS),
    )

    @staticmethod
    def _text(element: etree._Element, tag: str) -> str:
        return (element.findtext(tag) or "").strip()

    def _check(self, root: etree._Element) -> Tuple[List[ValidationIssue], List[ValidationIssue]]:
        errors: List[ValidationIssue] = []
        warnings: List[ValidationIssue] = []

        if root.tag != AtsConstants.ROOT_TAG:
            errors.append(ValidationIssue(
                type=IssueType.STRUCTURE,
                message=f"Falta nodo raíz <{AtsConstants.ROOT_TAG}>",
                location="/",
            ))
            return errors, warnings

        for tag in AtsConstants.HEADER_FIELDS:
            if not self._text(root, tag):
                errors.append(ValidationIssue(
                    type=IssueType.MANDATORY_FIELD,
                    message=f"Falta campo obligatorio: {tag}",
                    location=f"/iva/{tag}",
                ))

        for container_tag, detail_tag, label, mandatory in self.SECTIONS:
            container = root.find(container_tag)
            if container is None:
                continue
            self._check_section(container, container_tag, detail_tag, label, mandatory, errors, warnings)

        errors.extend(self._check_data_types(root))
        return errors, warnings

    def _check_section(self, container, container_tag, detail_tag, label, mandatory, errors, warnings) -> None:
        details = container.findall(detail_tag)
        if not details:
            warnings.append(ValidationIssue(
                type=IssueType.STRUCTURE,
                message=f"Sección {container_tag} sin {detail_tag}",
                level=ValidationLevel.WARNING,
                location=f"/iva/{container_tag}",
            ))
            return

        for index, detail in enumerate(details):
            path = f"/iva/{container_tag}/{detail_tag}[{index}]"
            for tag in mandatory:
                if not self._text(detail, tag):
                    errors.append(ValidationIssue(
                        type=IssueType.MANDATORY_FIELD,
                        message=f"{label} {index + 1}: Falta campo {tag}",
                        location=f"{path}/{tag}",
                    ))

            if detail_tag == 'detalleCompras':
                emission_date = self._text(detail, 'fechaEmision')
                if emission_date and not ValidationRules.DATE_PATTERN.match(emission_date):
                    errors.append(ValidationIssue(
                        type=IssueType.FORMAT,
                        message=f"{label} {index + 1}: Formato de fecha inválido (debe ser DD/MM/YYYY)",
                        location=f"{path}/fechaEmision",
                        value=emission_date,
                    ))

    def _check_data_types(self, root: etree._Element) -> List[ValidationIssue]:
        errors = []

        ruc = self._text(root, 'IdInformante')
        if ruc and not (ValidationRules.INFORMANT_RUC_PATTERN.match(ruc) and ruc.endswith('001')):
            errors.append(ValidationIssue(
                type=IssueType.DATA_TYPE,
                message="RUC del informante inválido (debe tener 13 dígitos y terminar en 001)",
                location="/iva/IdInformante",
                value=ruc,
            ))

        year = self._text(root, 'Anio')
        if year and not (
            year.isdigit() and len(year) == 4
            and ValidationRules.MIN_YEAR <= int(year) <= ValidationRules.MAX_YEAR
        ):
            errors.append(ValidationIssue(
                type=IssueType.DATA_TYPE,
                message="Año inválido (debe estar entre 2000 y 9999)",
                location="/iva/Anio",
                value=year,
            ))

        month = self._text(root, 'Mes')
        if month and not ValidationRules.MONTH_PATTERN.match(month):
            errors.append(ValidationIssue(
                type=IssueType.DATA_TYPE,
                message="Mes inválido (debe estar entre 01 y 12)",
                location="/iva/Mes",
                value=month,
            ))

        return errors


class XsdSchemaValidator(StructuralSchemaValidator):
    """
    Full validation against the ATS XSD
    Documents that pass the schema also go through the structural checks.
    """

    method = "XSD completa (xmlschema)"

    def __init__(self, schema: XMLSchema):
        self.schema = schema

    def _check(self, root: etree._Element) -> Tuple[List[ValidationIssue], List[ValidationIssue]]:
        errors: List[ValidationIssue] = []
        warnings: List[ValidationIssue] = []

        try:
            for error in self.schema.iter_errors(root):
                errors.append(ValidationIssue(
                    type=IssueType.XSD,
                    message=error.reason or error.message,
                    location=error.path,
                    line=getattr(error, 'sourceline', None),
                ))
        except XMLSchemaException as e:
            logger.error(f"XSD validation failed unexpectedly: {e}")
            warnings.append(ValidationIssue(
                type=IssueType.WARNING,
                message="Error al validar contra XSD, usando validación básica",
                level=ValidationLevel.WARNING,
                detail=str(e),
            ))

        if errors:
            return errors, warnings

        structural_errors, structural_warnings = super()._check(root)
        return structural_errors, warnings + structural_warnings

# ========================================
# VALIDATION UTILITIES
# ========================================

class ValidationUtils:
    """Utility functions for validation outcomes"""

    @staticmethod
    def format_validation_report(outcome: ValidationOutcome) -> str:
        """Format validation outcome for display"""
        lines = ["=== REPORTE DE VALIDACIÓN XML ATS ===", ""]
        lines.append(f"Estado: {'VÁLIDO' if outcome.valid else 'INVÁLIDO'}")
        lines.append(f"Método: {outcome.method}")
        lines.append(f"Mensaje: {outcome.message}")

        if outcome.errors:
            lines.append(f"\nERRORES ({len(outcome.errors)}):")
            for i, error in enumerate(outcome.errors, 1):
                lines.append(f"  {i}. [{error.type}] {error.message}")
                if error.line:
                    lines.append(f"     Línea: {error.line}")
                if error.location:
                    lines.append(f"     Ruta: {error.location}")
                if error.detail:
                    lines.append(f"     Detalle: {error.detail}")

        if outcome.warnings:
            lines.append(f"\nADVERTENCIAS ({len(outcome.warnings)}):")
            for i, warning in enumerate(outcome.warnings, 1):
                lines.append(f"  {i}. [{warning.type}] {warning.message}")

        return "\n".join(lines)

    @staticmethod
    def export_issues_json(issues: List[ValidationIssue]) -> str:
        """Serialize findings for storage"""
        return json.dumps([issue.to_dict() for issue in issues], ensure_ascii=False)

# ========================================
# VALIDATOR FACTORY
# ========================================

def create_schema_validator(
    xsd_path: Optional[str] = None,
    xsd_url: Optional[str] = None,
    cache_dir: Optional[str] = None
) -> SchemaValidator:
    """
    Pick the validator once at startup
    XSD validation when the schema loads, structural checks otherwise
    """
    schema_manager = SchemaManager(cache_dir=cache_dir)
    schema_path = schema_manager.resolve_schema_path(
        xsd_path or SystemConfig.XSD_PATH,
        xsd_url if xsd_url is not None else SystemConfig.XSD_URL,
    )

    schema = schema_manager.load_schema(schema_path) if schema_path else None
    if schema is not None:
        logger.info("Using XSD schema validation")
        return XsdSchemaValidator(schema)

    logger.warning("ATS XSD schema unavailable, using structural validation")
    return StructuralSchemaValidator()
