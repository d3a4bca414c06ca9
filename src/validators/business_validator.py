"""
ATS Business Rules Validator
Numeric reconciliation of the period records before the ATS is built

Each record type keeps its own tolerance band:
- purchases: bases + IVA + ICE against the declared total, 0.50
  (differences above 0.01 are logged as warnings)
- sales: same formula against the declared sale total, 0.05
- withholdings: base x percentage / 100 against the withheld amount, 0.02
- exports: the FOB offset value can never exceed the FOB value

File: src/validators/business_validator.py
"""

import logging
from typing import Dict, List, Optional, Tuple, Any
from dataclasses import dataclass, field
from enum import Enum
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from config.ats_config import ValidationRules, ErrorCodes, ERROR_MESSAGES, SystemConfig
from src.exceptions import ReconciliationError
from src.models.records import (
    ZERO, ExportRecord, PeriodData, PurchaseRecord, SaleRecord, TenantProfile, WithholdingRecord
)

logger = logging.getLogger(__name__)

CENTS = Decimal('0.01')

# ========================================
# BUSINESS VALIDATION RESULT
# ========================================

class ReconciliationCategory(Enum):
    """Business rules applied to the period records"""
    PURCHASE_TOTAL = "COMPRA_TOTAL"
    SALE_TOTAL = "VENTA_TOTAL"
    WITHHOLDING_AMOUNT = "RETENCION_VALOR"
    EXPORT_FOB_OFFSET = "EXPORTACION_FOB"
    TAXPAYER_ID = "RUC_INFORMANTE"


@dataclass
class ReconciliationViolation:
    """One record whose figures do not add up"""
    category: ReconciliationCategory
    record_kind: str
    record_id: Any
    rule_code: str
    message: str
    expected: Optional[Decimal] = None
    declared: Optional[Decimal] = None

    @property
    def difference(self) -> Optional[Decimal]:
        if self.expected is None or self.declared is None:
            return None
        return abs(self.expected - self.declared).quantize(CENTS, rounding=ROUND_HALF_UP)

    def to_dict(self) -> Dict[str, Any]:
        def money(value):
            return None if value is None else format(value.quantize(CENTS, rounding=ROUND_HALF_UP), 'f')

        return {
            'tipo_registro': self.record_kind,
            'id': self.record_id,
            'regla': self.category.value,
            'codigo': self.rule_code,
            'mensaje': self.message,
            'esperado': money(self.expected),
            'declarado': money(self.declared),
            'diferencia': money(self.difference),
        }


@dataclass
class BusinessValidationResult:
    """Complete business validation result"""
    is_valid: bool
    errors: List[ReconciliationViolation]
    warnings: List[ReconciliationViolation]
    validation_time: datetime = field(default_factory=datetime.now)
    rules_applied: List[str] = field(default_factory=list)

# ========================================
# BUSINESS VALIDATOR
# ========================================

class BusinessValidator:
    """
    Reconciliation checks over the records of one period
    Violations are collected, never raised one by one
    """

    def __init__(
        self,
        purchase_tolerance: Decimal = SystemConfig.PURCHASE_TOTAL_TOLERANCE,
        purchase_warning: Decimal = SystemConfig.PURCHASE_TOTAL_WARNING,
        sale_tolerance: Decimal = SystemConfig.SALE_TOTAL_TOLERANCE,
        withholding_tolerance: Decimal = SystemConfig.WITHHOLDING_TOLERANCE
    ):
        self.purchase_tolerance = purchase_tolerance
        self.purchase_warning = purchase_warning
        self.sale_tolerance = sale_tolerance
        self.withholding_tolerance = withholding_tolerance

        logger.info("BusinessValidator initialized")

    @staticmethod
    def _sum(*values) -> Decimal:
        return sum((value or ZERO for value in values), ZERO)

    def validate_purchase(
        self, purchase: PurchaseRecord
    ) -> Tuple[List[ReconciliationViolation], List[ReconciliationViolation]]:
        computed = self._sum(
            purchase.zero_rated_base, purchase.iva_base, purchase.non_object_base,
            purchase.exempt_base, purchase.iva_amount, purchase.ice_amount,
        )
        declared = purchase.total or ZERO
        difference = abs(computed - declared)

        violation = ReconciliationViolation(
            category=ReconciliationCategory.PURCHASE_TOTAL,
            record_kind='compra',
            record_id=purchase.id,
            rule_code=ErrorCodes.RECONCILIATION_MISMATCH,
            message="El total de la compra no coincide con la suma de bases e impuestos",
            expected=computed,
            declared=declared,
        )

        if difference > self.purchase_tolerance:
            return [violation], []
        if difference > self.purchase_warning:
            logger.warning(f"Purchase {purchase.id}: total differs by {difference} (within tolerance)")
            return [], [violation]
        return [], []

    def validate_sale(self, sale: SaleRecord) -> List[ReconciliationViolation]:
        computed = self._sum(
            sale.zero_rated_base, sale.iva_base, sale.non_object_base,
            sale.exempt_base, sale.iva_amount, sale.ice_amount,
        )
        declared = sale.total or ZERO

        if abs(computed - declared) > self.sale_tolerance:
            return [ReconciliationViolation(
                category=ReconciliationCategory.SALE_TOTAL,
                record_kind='venta',
                record_id=sale.id,
                rule_code=ErrorCodes.RECONCILIATION_MISMATCH,
                message="El total de la venta no coincide con la suma de bases e impuestos",
                expected=computed,
                declared=declared,
            )]
        return []

    def validate_withholding(self, withholding: WithholdingRecord) -> List[ReconciliationViolation]:
        expected = (withholding.base_amount or ZERO) * (withholding.percentage or ZERO) / Decimal('100')
        declared = withholding.withheld_amount or ZERO

        if abs(expected - declared) > self.withholding_tolerance:
            return [ReconciliationViolation(
                category=ReconciliationCategory.WITHHOLDING_AMOUNT,
                record_kind='retencion',
                record_id=withholding.id,
                rule_code=ErrorCodes.RECONCILIATION_MISMATCH,
                message="El valor retenido no coincide con base imponible por porcentaje",
                expected=expected,
                declared=declared,
            )]
        return []

    def validate_export(self, export: ExportRecord) -> List[ReconciliationViolation]:
        fob_value = export.fob_value or ZERO
        offset = export.fob_offset_value or ZERO

        if offset > fob_value:
            return [ReconciliationViolation(
                category=ReconciliationCategory.EXPORT_FOB_OFFSET,
                record_kind='exportacion',
                record_id=export.id,
                rule_code=ErrorCodes.FOB_OFFSET_EXCEEDED,
                message=ERROR_MESSAGES[ErrorCodes.FOB_OFFSET_EXCEEDED],
                expected=fob_value,
                declared=offset,
            )]
        return []

    def validate_tenant(self, tenant: TenantProfile) -> List[ReconciliationViolation]:
        """RUC check digit; a failure is only a warning"""
        if ValidationRules.validate_ruc(tenant.ruc):
            return []

        logger.warning(f"Tenant {tenant.id}: RUC does not pass the check digit validation")
        return [ReconciliationViolation(
            category=ReconciliationCategory.TAXPAYER_ID,
            record_kind='empresa',
            record_id=tenant.id,
            rule_code=ErrorCodes.INVALID_DOCUMENT_FIELD,
            message="El RUC del informante no supera la validación del dígito verificador",
        )]

    def validate_period_data(self, data: PeriodData) -> BusinessValidationResult:
        """Run every rule over the period and collect all violations"""
        errors: List[ReconciliationViolation] = []
        warnings: List[ReconciliationViolation] = self.validate_tenant(data.tenant)

        for purchase in data.purchases:
            purchase_errors, purchase_warnings = self.validate_purchase(purchase)
            errors.extend(purchase_errors)
            warnings.extend(purchase_warnings)

        for sale in data.sales:
            errors.extend(self.validate_sale(sale))

        for withholding in data.withholdings:
            errors.extend(self.validate_withholding(withholding))

        for export in data.exports:
            errors.extend(self.validate_export(export))

        result = BusinessValidationResult(
            is_valid=len(errors) == 0,
            errors=errors,
            warnings=warnings,
            rules_applied=[category.value for category in ReconciliationCategory],
        )

        logger.info(
            f"Business validation completed. Valid: {result.is_valid}, "
            f"Errors: {len(errors)}, Warnings: {len(warnings)}"
        )
        return result

    def enforce(self, data: PeriodData) -> BusinessValidationResult:
        """Validate and raise ReconciliationError when any rule fails"""
        result = self.validate_period_data(data)
        if result.is_valid:
            return result

        codes = {violation.rule_code for violation in result.errors}
        error_code = codes.pop() if len(codes) == 1 else ErrorCodes.RECONCILIATION_MISMATCH
        raise ReconciliationError(
            error_code=error_code,
            details=[violation.to_dict() for violation in result.errors],
        )

# ========================================
# VALIDATION UTILITIES
# ========================================

class BusinessValidationUtils:
    """Utility functions for business validation"""

    @staticmethod
    def format_business_result(result: BusinessValidationResult) -> str:
        """Format business validation result for display"""
        lines = [f"Business Validation: {'VALID' if result.is_valid else 'INVALID'}"]
        lines.append(f"Rules Applied: {', '.join(result.rules_applied)}")

        if result.errors:
            lines.append(f"\nErrors ({len(result.errors)}):")
            for error in result.errors:
                lines.append(f"  - {error.record_kind} {error.record_id}: {error.message}")
                if error.difference is not None:
                    lines.append(f"    Diferencia: {error.difference}")

        if result.warnings:
            lines.append(f"\nWarnings ({len(result.warnings)}):")
            for warning in result.warnings:
                lines.append(f"  - {warning.record_kind} {warning.record_id}: {warning.message}")

        return "\n".join(lines)

# ========================================
# VALIDATOR FACTORY
# ========================================

def create_business_validator() -> BusinessValidator:
    """Factory function to create BusinessValidator instance"""
    return BusinessValidator()
