"""
ATS (Anexo Transaccional Simplificado) System Configuration
Core constants, validation rules, and system configuration for SRI compliance

Based on:
- Ficha Técnica del Anexo Transaccional Simplificado (SRI Ecuador)
- Esquema XSD del ATS publicado por el SRI
"""

from enum import Enum
from decimal import Decimal
import os
import re

# ========================================
# SYSTEM CONFIGURATION
# ========================================

def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "si")


class SystemConfig:
    # Storage for generated artifacts (one folder per taxpayer RUC)
    STORAGE_DIR = os.getenv("ATS_STORAGE_DIR", os.path.join("storage", "ats"))

    # XSD Schema (local file, optionally downloaded once from ATS_XSD_URL)
    XSD_PATH = os.getenv("ATS_XSD_PATH", os.path.join("schemas", "ats.xsd"))
    XSD_URL = os.getenv("ATS_XSD_URL")
    SCHEMA_CACHE_DIR = os.getenv("ATS_SCHEMA_CACHE_DIR", "./schemas")
    SCHEMA_CACHE_HOURS = 24 * 30

    # Database used by the period gateway and the generation history
    DATABASE_URL = os.getenv("ATS_DATABASE_URL", "sqlite:///ats.db")

    # Reject periods whose records do not reconcile
    ENFORCE_RECONCILIATION = _env_flag("ATS_ENFORCE_RECONCILIATION", True)

    # Concurrent period reads
    GATEWAY_MAX_WORKERS = 5

    # Validation Tolerances (each one belongs to its own record type)
    PURCHASE_TOTAL_TOLERANCE = Decimal('0.50')
    PURCHASE_TOTAL_WARNING = Decimal('0.01')
    SALE_TOTAL_TOLERANCE = Decimal('0.05')
    WITHHOLDING_TOLERANCE = Decimal('0.02')

    # Schema validation report
    MAX_REPORTED_ERRORS = 20

# ========================================
# DOCUMENT LIFECYCLE AND CODES
# ========================================

class RecordState(Enum):
    """Lifecycle of purchases, sales, exports and withholdings"""
    DRAFT = "BORRADOR"
    VALIDATED = "VALIDADO"
    INCLUDED_IN_ATS = "INCLUIDO_ATS"
    VOIDED = "ANULADO"


# States that take part in an ATS declaration
DECLARABLE_STATES = (RecordState.VALIDATED, RecordState.INCLUDED_IN_ATS)


class TaxKind(Enum):
    """Withholding tax kinds"""
    IVA = "IVA"             # Retención de IVA
    INCOME = "RENTA"        # Retención en la fuente de Impuesto a la Renta


class EmissionType(Enum):
    """Emission channel of a sales document"""
    ELECTRONIC = "E"        # Comprobante electrónico
    PHYSICAL = "F"          # Comprobante físico (preimpreso)


class GenerationStatus(Enum):
    """Status of a generation history entry"""
    GENERATED = "GENERADO"
    GENERATED_WITH_WARNINGS = "GENERADO_CON_ADVERTENCIAS"
    DOWNLOADED = "DESCARGADO"
    FILED = "PRESENTADO"
    ERROR = "ERROR"


class DocumentType:
    """SRI document type codes (Tabla 4 de la ficha técnica)"""
    INVOICE = "01"
    SALES_NOTE = "02"
    PURCHASE_SETTLEMENT = "03"
    CREDIT_NOTE = "04"
    DEBIT_NOTE = "05"
    WITHHOLDING = "07"
    DECLARED_SALES_INVOICE = "18"


# Codes rewritten when declared in the sales and exports sections
SALES_DOCUMENT_TYPE_REMAP = {
    DocumentType.INVOICE: DocumentType.DECLARED_SALES_INVOICE,
}

# IVA withholding brackets fixed by the regulator (percent)
IVA_WITHHOLDING_BRACKETS = (Decimal('10'), Decimal('20'), Decimal('50'), Decimal('100'))

# ========================================
# ATS DOCUMENT CONSTANTS
# ========================================

class AtsConstants:
    """Fixed values of the ATS XML document"""

    XML_PROLOGUE = '<?xml version="1.0" encoding="UTF-8" standalone="no"?>'
    ROOT_TAG = "iva"
    OPERATIVE_CODE = "IVA"

    XML_FILE_PREFIX = "ATS"
    ARCHIVE_FILE_PREFIX = "AT"

    NOT_APPLICABLE = "NA"
    RELATED_PARTY = "NO"
    DEFAULT_SUPPORT_CODE = "01"
    DEFAULT_SUPPLIER_ID_TYPE = "01"
    DEFAULT_FISCAL_REGIME = "01"
    DEFAULT_ESTABLISHMENT = "001"
    EXPORT_OF_GOODS = "01"
    LOCAL_PAYMENT = "01"
    FOREIGN_PAYMENT = "02"
    TREATY_APPLIES = "SI"
    REIMBURSEMENT_BASE = "0.00"

    LEGAL_NAME_MIN_LENGTH = 5
    LEGAL_NAME_MAX_LENGTH = 500

    DATE_FORMAT = "%d/%m/%Y"

    # Informant identification type by identifier length
    INFORMANT_ID_TYPES = {13: "R", 10: "C"}
    PASSPORT_ID_TYPE = "P"

    # Mandatory header fields of <iva>
    HEADER_FIELDS = (
        "TipoIDInformante", "IdInformante", "razonSocial", "Anio", "Mes",
        "numEstabRuc", "totalVentas", "codigoOperativo",
    )

    PURCHASE_MANDATORY_FIELDS = (
        "codSustento", "tpIdProv", "idProv", "tipoComprobante",
        "fechaRegistro", "establecimiento", "puntoEmision",
        "secuencial", "fechaEmision", "autorizacion",
    )

    SALE_MANDATORY_FIELDS = (
        "tpIdCliente", "idCliente", "tipoComprobante", "numeroComprobantes",
    )

    EXPORT_MANDATORY_FIELDS = (
        "tpIdClienteEx", "idClienteEx", "tipoComprobante",
        "valorFOB", "establecimiento", "puntoEmision",
        "secuencial", "fechaEmision",
    )

# ========================================
# VALIDATION RULES
# ========================================

class ValidationRules:
    """Core validation rules for ATS generation"""

    # Fiscal period MM/YYYY
    PERIOD_PATTERN = re.compile(r'(0[1-9]|1[0-2])/[0-9]{4}')

    # Establishment / point of emission
    SERIES_PATTERN = re.compile(r'^\d{3}$')

    # DD/MM/YYYY as accepted by the ATS schema
    DATE_PATTERN = re.compile(r'^(0[1-9]|[12][0-9]|3[01])/(0[1-9]|1[012])/(19|20)\d\d$')

    MONTH_PATTERN = re.compile(r'^(0[1-9]|1[012])$')

    # Informant RUC (no check digit) for the structural schema check
    INFORMANT_RUC_PATTERN = re.compile(r'^\d{13}$')

    # Exponential notation, e.g. 1.2345E+48
    EXPONENT_PATTERN = re.compile(r'^[+-]?\d+(\.\d+)?[eE][+-]?\d+$')

    MIN_YEAR = 2000
    MAX_YEAR = 9999

    # Province codes 01-24 and 30 (Ecuadorians abroad)
    VALID_PROVINCES = set(range(1, 25)) | {30}

    @staticmethod
    def validate_period(period: str) -> bool:
        """Validate a fiscal period in MM/YYYY format"""
        return bool(period) and bool(ValidationRules.PERIOD_PATTERN.fullmatch(period))

    @staticmethod
    def validate_cedula(cedula: str) -> bool:
        """Validate a 10-digit cédula (modulo 10 check digit)"""
        if not cedula or len(cedula) != 10 or not cedula.isdigit():
            return False

        if int(cedula[:2]) not in ValidationRules.VALID_PROVINCES or int(cedula[2]) >= 6:
            return False

        total = 0
        for i, digit in enumerate(cedula[:9]):
            value = int(digit) * (2 if i % 2 == 0 else 1)
            if value >= 10:
                value -= 9
            total += value

        remainder = total % 10
        expected_digit = 0 if remainder == 0 else 10 - remainder
        return expected_digit == int(cedula[9])

    @staticmethod
    def validate_ruc(ruc: str) -> bool:
        """Validate RUC format and check digit"""
        if not ruc:
            return False
        ruc = ruc.strip()
        if not ruc.isdigit() or len(ruc) < 10 or len(ruc) > 13:
            return False

        if int(ruc[:2]) not in ValidationRules.VALID_PROVINCES:
            return False

        third_digit = int(ruc[2])

        # Natural person: cédula-based RUC
        if third_digit < 6:
            if len(ruc) == 13:
                return ruc[10:] == "001" and ValidationRules.validate_cedula(ruc[:10])
            return ValidationRules.validate_cedula(ruc)

        if len(ruc) != 13 or ruc[10:] != "001":
            return False

        # Private company
        if third_digit == 9:
            coefficients = [4, 3, 2, 7, 6, 5, 4, 3, 2]
            check_position = 9
        # Public entity
        elif third_digit == 6:
            coefficients = [3, 2, 7, 6, 5, 4, 3, 2]
            check_position = 8
        else:
            return False

        total = sum(int(d) * c for d, c in zip(ruc, coefficients))
        remainder = total % 11
        expected_digit = 0 if remainder == 0 else 11 - remainder
        return expected_digit == int(ruc[check_position])

# ========================================
# ERROR CODES AND MESSAGES
# ========================================

class ErrorCodes:
    """Standard error codes for the ATS engine"""

    # Request errors
    INVALID_PERIOD = "ERR_101"
    TENANT_NOT_FOUND = "ERR_102"

    # Business rule errors
    RECONCILIATION_MISMATCH = "ERR_201"
    FOB_OFFSET_EXCEEDED = "ERR_202"
    INVALID_DOCUMENT_FIELD = "ERR_203"

    # Schema validation findings
    SCHEMA_VALIDATION_ERROR = "ERR_301"
    INVALID_XML_FORMAT = "ERR_302"

    # System errors
    STORAGE_ERROR = "ERR_401"
    GENERATION_ERROR = "ERR_402"

# Error messages in Spanish
ERROR_MESSAGES = {
    ErrorCodes.INVALID_PERIOD: "Formato de periodo inválido. Use MM/AAAA",
    ErrorCodes.TENANT_NOT_FOUND: "Empresa no encontrada",
    ErrorCodes.RECONCILIATION_MISMATCH: "Los totales de los comprobantes no cuadran",
    ErrorCodes.FOB_OFFSET_EXCEEDED: "El valor FOB de compensación no puede ser mayor al valor FOB del comprobante",
    ErrorCodes.INVALID_DOCUMENT_FIELD: "Campo inválido en el documento ATS",
    ErrorCodes.SCHEMA_VALIDATION_ERROR: "El XML generado no cumple con el esquema XSD del ATS",
    ErrorCodes.INVALID_XML_FORMAT: "Formato XML inválido",
    ErrorCodes.STORAGE_ERROR: "Error al escribir los archivos del ATS",
    ErrorCodes.GENERATION_ERROR: "Error al generar ATS",
}

# ========================================
# LOGGING CONFIGURATION
# ========================================

LOGGING_CONFIG = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'standard': {
            'format': '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
        },
        'detailed': {
            'format': '%(asctime)s [%(levelname)s] %(name)s:%(lineno)d: %(message)s'
        }
    },
    'handlers': {
        'default': {
            'level': 'INFO',
            'formatter': 'standard',
            'class': 'logging.StreamHandler',
        },
        'file': {
            'level': 'DEBUG',
            'formatter': 'detailed',
            'class': 'logging.handlers.RotatingFileHandler',
            'filename': os.getenv('ATS_LOG_FILE', 'ats_system.log'),
            'maxBytes': 10485760,  # 10MB
            'backupCount': 5,
        }
    },
    'loggers': {
        '': {
            'handlers': ['default', 'file'],
            'level': 'DEBUG',
            'propagate': False
        }
    }
}


def configure_logging(config: dict = None) -> None:
    """Apply the logging configuration (call once at process startup)"""
    import logging.config
    logging.config.dictConfig(config or LOGGING_CONFIG)

# ========================================
# SYSTEM CONSTANTS
# ========================================

class Constants:
    """System-wide constants"""

    SYSTEM_VERSION = "1.0.0"
    DEFAULT_CURRENCY = "USD"
    DEFAULT_TIMEZONE = "America/Guayaquil"

if __name__ == "__main__":
    print(f"ATS System Configuration Loaded")
    print(f"System Version: {Constants.SYSTEM_VERSION}")
    print(f"Storage: {SystemConfig.STORAGE_DIR}")
    print(f"XSD: {SystemConfig.XSD_PATH}")

    test_rucs = ["1790011674001", "1710034065", "0999999999"]
    for ruc in test_rucs:
        print(f"RUC {ruc}: {'Valid' if ValidationRules.validate_ruc(ruc) else 'Invalid'}")
