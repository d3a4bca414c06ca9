"""
ATS Record Snapshots
Read-only views of the transactions that take part in one generation run,
plus the entities derived from them while the run lasts.

File: src/models/records.py
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from config.ats_config import EmissionType, RecordState, TaxKind, ValidationRules
from src.exceptions import InvalidPeriodError

ZERO = Decimal('0')

# ========================================
# PERIOD AND TENANT
# ========================================

@dataclass(frozen=True)
class PeriodSelection:
    """A tenant and a fiscal period in MM/YYYY format"""
    tenant_id: int
    period: str

    @classmethod
    def parse(cls, tenant_id: int, period: str) -> "PeriodSelection":
        if not isinstance(period, str) or not ValidationRules.validate_period(period):
            raise InvalidPeriodError(details=[{"field": "periodo", "value": period}])
        return cls(tenant_id=tenant_id, period=period)

    @property
    def month(self) -> str:
        return self.period.split('/')[0]

    @property
    def year(self) -> str:
        return self.period.split('/')[1]


@dataclass(frozen=True)
class TenantProfile:
    """Declaring company"""
    id: int
    ruc: str
    legal_name: str

# ========================================
# SOURCE RECORDS
# ========================================

@dataclass
class WithholdingRecord:
    """Withholding voucher line, optionally linked to a purchase"""
    id: int
    tax_kind: TaxKind
    code: str
    percentage: Decimal
    base_amount: Decimal
    withheld_amount: Decimal
    purchase_id: Optional[int] = None
    establishment: str = ""
    point_of_emission: str = ""
    sequential: str = ""
    authorization: str = ""
    emission_date: Optional[date] = None
    state: RecordState = RecordState.VALIDATED


@dataclass
class PurchaseRecord:
    id: int
    supplier_id: str
    document_type: str
    establishment: str
    point_of_emission: str
    sequential: str
    authorization: str
    emission_date: Optional[date] = None
    registration_date: Optional[date] = None
    support_code: str = ""
    supplier_id_type: str = ""
    zero_rated_base: Decimal = ZERO
    iva_base: Decimal = ZERO
    non_object_base: Decimal = ZERO
    exempt_base: Decimal = ZERO
    iva_amount: Decimal = ZERO
    ice_amount: Decimal = ZERO
    total: Decimal = ZERO
    payment_method: Optional[str] = None
    foreign_payment_country: Optional[str] = None
    double_taxation_treaty: bool = False
    state: RecordState = RecordState.VALIDATED
    withholdings: List[WithholdingRecord] = field(default_factory=list)


@dataclass
class SaleRecord:
    id: int
    customer_id: str
    document_type: str
    establishment: str
    point_of_emission: str
    sequential: str
    authorization: str = ""
    emission_date: Optional[date] = None
    customer_id_type: str = ""
    zero_rated_base: Decimal = ZERO
    iva_base: Decimal = ZERO
    non_object_base: Decimal = ZERO
    exempt_base: Decimal = ZERO
    iva_amount: Decimal = ZERO
    ice_amount: Decimal = ZERO
    withheld_iva: Decimal = ZERO
    withheld_income_tax: Decimal = ZERO
    total: Decimal = ZERO
    payment_method: Optional[str] = None
    emission_type: EmissionType = EmissionType.ELECTRONIC
    state: RecordState = RecordState.VALIDATED

    @property
    def is_electronic(self) -> bool:
        return self.emission_type == EmissionType.ELECTRONIC


@dataclass
class ExportRecord:
    id: int
    buyer_id: str
    document_type: str
    destination_country: str
    fob_value: Decimal
    establishment: str
    point_of_emission: str
    sequential: str
    authorization: str = ""
    emission_date: Optional[date] = None
    buyer_id_type: str = ""
    fob_offset_value: Decimal = ZERO
    payment_country: Optional[str] = None
    fiscal_regime_type: Optional[str] = None
    emission_type: EmissionType = EmissionType.ELECTRONIC
    state: RecordState = RecordState.VALIDATED

    @property
    def is_electronic(self) -> bool:
        return self.emission_type == EmissionType.ELECTRONIC


@dataclass(frozen=True)
class VoidedDocumentStub:
    """Identifiers of a voided purchase or sale"""
    document_type: str
    establishment: str
    point_of_emission: str
    sequential: str
    authorization: str = ""


@dataclass
class PeriodData:
    """Snapshot returned by the period gateway"""
    tenant: TenantProfile
    purchases: List[PurchaseRecord] = field(default_factory=list)
    sales: List[SaleRecord] = field(default_factory=list)
    exports: List[ExportRecord] = field(default_factory=list)
    withholdings: List[WithholdingRecord] = field(default_factory=list)
    voided: List[VoidedDocumentStub] = field(default_factory=list)

# ========================================
# DERIVED ENTITIES
# ========================================

@dataclass
class AggregatedSaleGroup:
    """Sales sharing (customer, document type)"""
    customer_id: str
    document_type: str
    customer_id_type: str = ""
    payment_method: Optional[str] = None
    emission_type: EmissionType = EmissionType.ELECTRONIC
    document_count: int = 0
    zero_rated_base: Decimal = ZERO
    iva_base: Decimal = ZERO
    iva_amount: Decimal = ZERO
    ice_amount: Decimal = ZERO
    withheld_iva: Decimal = ZERO
    withheld_income_tax: Decimal = ZERO
    total: Decimal = ZERO


@dataclass(frozen=True)
class VoidedRange:
    """Contiguous run of voided sequentials for one document series"""
    document_type: str
    establishment: str
    point_of_emission: str
    start: int
    end: int
    authorization: str = ""


@dataclass(frozen=True)
class IncomeWithholdingLine:
    """Income tax withholding detail (detalleAir source)"""
    code: str
    base_amount: Decimal
    percentage: Decimal
    withheld_amount: Decimal


@dataclass(frozen=True)
class WithholdingReference:
    """Withholding voucher associated with a purchase"""
    establishment: str
    point_of_emission: str
    sequential: str
    authorization: str
    emission_date: Optional[date]


@dataclass
class PurchaseWithholdings:
    """Reconciled withholdings of one purchase"""
    bracket_10: Decimal = ZERO
    bracket_20: Decimal = ZERO
    bracket_50: Decimal = ZERO
    bracket_100: Decimal = ZERO
    unbracketed: Decimal = ZERO
    income_lines: List[IncomeWithholdingLine] = field(default_factory=list)
    reference: Optional[WithholdingReference] = None

    @property
    def goods_total(self) -> Decimal:
        return self.bracket_10

    @property
    def services_total(self) -> Decimal:
        return self.bracket_20 + self.bracket_50

# ========================================
# RESULTS
# ========================================

@dataclass
class GenerationStatistics:
    total_purchases: int = 0
    total_sales: int = 0
    total_sale_groups: int = 0
    total_exports: int = 0
    total_withholdings: int = 0
    total_voided_ranges: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            'total_compras': self.total_purchases,
            'total_ventas': self.total_sales,
            'total_ventas_agrupadas': self.total_sale_groups,
            'total_exportaciones': self.total_exports,
            'total_retenciones': self.total_withholdings,
            'total_anulados': self.total_voided_ranges,
        }


@dataclass
class GenerationResult:
    """Outcome of one ATS generation"""
    xml_bytes: bytes
    archive_bytes: bytes
    statistics: GenerationStatistics
    validation: Any  # ValidationOutcome
    xml_file_name: str
    archive_file_name: str
    xml_path: str
    archive_path: str
    history_id: Optional[Any] = None
    generated_at: datetime = field(default_factory=datetime.now)

    @property
    def message(self) -> str:
        if self.validation is not None and not self.validation.valid:
            return "ATS generado con advertencias de validación XSD"
        return "ATS generado exitosamente"


@dataclass
class PeriodSummary:
    """Preview of a period without rendering the XML"""
    period: str
    tenant: TenantProfile
    total_purchases: int
    total_sales: int
    total_sale_groups: int
    total_exports: int
    purchases_value: Decimal
    sales_value: Decimal
    exports_value: Decimal
    purchases_iva: Decimal
    sales_iva: Decimal
    withheld_iva_received: Decimal
    withheld_income_received: Decimal
    sale_groups: List[AggregatedSaleGroup] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        def money(value: Decimal) -> str:
            return format(value.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP), 'f')

        return {
            'periodo': self.period,
            'empresa': {'ruc': self.tenant.ruc, 'razon_social': self.tenant.legal_name},
            'resumen': {
                'total_compras': self.total_purchases,
                'total_ventas': self.total_sales,
                'total_ventas_agrupadas': self.total_sale_groups,
                'total_exportaciones': self.total_exports,
                'valor_total_compras': money(self.purchases_value),
                'valor_total_ventas': money(self.sales_value),
                'valor_total_exportaciones': money(self.exports_value),
                'iva_compras': money(self.purchases_iva),
                'iva_ventas': money(self.sales_iva),
                'retenciones_iva_recibidas': money(self.withheld_iva_received),
                'retenciones_renta_recibidas': money(self.withheld_income_received),
            },
            'ventas_agrupadas': [
                {
                    'identificacion_cliente': group.customer_id,
                    'tipo_comprobante': group.document_type,
                    'numero_comprobantes': group.document_count,
                    'total': money(group.total),
                }
                for group in self.sale_groups
            ],
        }
