"""
ATS Document Mapper
Turns aggregated and reconciled records into the typed ATS document tree

Formatting rules applied to every section:
- establishment and point of emission are zero padded to 3 digits
- sequentials render as plain integers
- money renders with exactly 2 decimals, dates as DD/MM/YYYY
- authorization numbers never render in exponential notation
- document type "01" renders as "18" in the sales and exports sections

File: src/generators/document_mapper.py
"""

import logging
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, List, Optional, Sequence, Tuple

from config.ats_config import AtsConstants, SALES_DOCUMENT_TYPE_REMAP, ValidationRules
from src.models.ats_document import (
    AtsDocument, ExportDetail, ForeignPayment, IncomeWithholdingDetail,
    PurchaseDetail, SaleDetail, SalesByLocationEntry, VoidedDetail
)
from src.models.records import (
    AggregatedSaleGroup, ExportRecord, PeriodSelection, PurchaseRecord,
    PurchaseWithholdings, TenantProfile, VoidedRange
)

logger = logging.getLogger(__name__)

CENTS = Decimal('0.01')
LEGAL_NAME_FORBIDDEN = re.compile(r'[^a-zA-Z0-9\s]')
WHITESPACE_RUN = re.compile(r'\s+')

# ========================================
# FORMATTING RULES
# ========================================

def format_decimal(value) -> str:
    """Money with exactly two decimals; missing or unparseable values become 0.00"""
    if value is None or value == "":
        return "0.00"
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
        amount = amount.quantize(CENTS, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError):
        logger.debug("Unparseable amount rendered as 0.00")
        return "0.00"

    if amount.is_zero():
        amount = abs(amount)
    return format(amount, 'f')


def format_date(value) -> str:
    """DD/MM/YYYY, empty string when the date is missing"""
    if not value:
        return ""
    if isinstance(value, str):
        try:
            value = datetime.strptime(value[:10], "%Y-%m-%d").date()
        except ValueError:
            return ""
    if isinstance(value, (date, datetime)):
        return value.strftime(AtsConstants.DATE_FORMAT)
    return ""


def format_authorization(value) -> str:
    """
    Authorization number as a plain digit string
    Values stored in exponential notation are reparsed and rendered without decimals
    """
    if value is None:
        return ""
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        value = Decimal(repr(value))
    if isinstance(value, Decimal):
        return format(value, '.0f')

    text = str(value).strip()
    if ValidationRules.EXPONENT_PATTERN.match(text):
        return format(Decimal(text), '.0f')
    if 'e' in text.lower():
        logger.debug("Unparseable authorization number rendered empty")
        return ""
    return text


def pad_series(value) -> str:
    """Establishment / point of emission, zero padded to 3 digits"""
    return str(value if value is not None else "").strip().zfill(3)


def parse_sequential(value) -> int:
    """Stored zero-padded sequential as an integer (0 when unparseable)"""
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return 0


def format_legal_name(name: Optional[str]) -> str:
    """Strip symbols, collapse whitespace and fit the name into 5..500 characters"""
    formatted = LEGAL_NAME_FORBIDDEN.sub('', str(name or ''))
    formatted = WHITESPACE_RUN.sub(' ', formatted).strip()
    formatted = formatted.ljust(AtsConstants.LEGAL_NAME_MIN_LENGTH)
    return formatted[:AtsConstants.LEGAL_NAME_MAX_LENGTH]


def informant_id_type(identifier: str) -> str:
    """R for a 13 digit RUC, C for a 10 digit cédula, P otherwise"""
    return AtsConstants.INFORMANT_ID_TYPES.get(len(identifier or ""), AtsConstants.PASSPORT_ID_TYPE)


def remap_document_type(code: str) -> str:
    """Document type code as declared in the sales and exports sections"""
    code = str(code or "")
    return SALES_DOCUMENT_TYPE_REMAP.get(code, code)


def _enum_value(value) -> str:
    return getattr(value, 'value', value)

# ========================================
# SECTION MAPPERS
# ========================================

def map_foreign_payment(purchase: PurchaseRecord) -> ForeignPayment:
    country = purchase.foreign_payment_country
    return ForeignPayment(
        payment_locality=AtsConstants.FOREIGN_PAYMENT if country else AtsConstants.LOCAL_PAYMENT,
        payment_country=str(country) if country else AtsConstants.NOT_APPLICABLE,
        treaty_applies=(
            AtsConstants.TREATY_APPLIES if purchase.double_taxation_treaty else AtsConstants.NOT_APPLICABLE
        ),
        subject_to_withholding=AtsConstants.NOT_APPLICABLE,
    )


def map_purchase(purchase: PurchaseRecord, withholdings: PurchaseWithholdings) -> PurchaseDetail:
    """detalleCompras for one purchase and its reconciled withholdings"""
    income_lines = [
        IncomeWithholdingDetail(
            code=str(line.code),
            base_amount=format_decimal(line.base_amount),
            percentage=format_decimal(line.percentage),
            withheld_amount=format_decimal(line.withheld_amount),
        )
        for line in withholdings.income_lines
    ]

    reference = withholdings.reference
    return PurchaseDetail(
        support_code=str(purchase.support_code or AtsConstants.DEFAULT_SUPPORT_CODE),
        supplier_id_type=str(purchase.supplier_id_type or AtsConstants.DEFAULT_SUPPLIER_ID_TYPE),
        supplier_id=str(purchase.supplier_id or ""),
        document_type=str(purchase.document_type or "01"),
        related_party=AtsConstants.RELATED_PARTY,
        registration_date=format_date(purchase.registration_date),
        establishment=pad_series(purchase.establishment),
        point_of_emission=pad_series(purchase.point_of_emission),
        sequential=parse_sequential(purchase.sequential),
        emission_date=format_date(purchase.emission_date),
        authorization=format_authorization(purchase.authorization),
        zero_rated_base=format_decimal(purchase.zero_rated_base),
        non_object_base=format_decimal(purchase.non_object_base),
        iva_base=format_decimal(purchase.iva_base),
        exempt_base=format_decimal(purchase.exempt_base),
        ice_amount=format_decimal(purchase.ice_amount),
        iva_amount=format_decimal(purchase.iva_amount),
        withheld_goods_10=format_decimal(withholdings.bracket_10),
        withheld_services_20=format_decimal(withholdings.bracket_20),
        withheld_goods=format_decimal(withholdings.goods_total),
        withheld_services_50=format_decimal(withholdings.bracket_50),
        withheld_services=format_decimal(withholdings.services_total),
        withheld_services_100=format_decimal(withholdings.bracket_100),
        reimbursement_base=AtsConstants.REIMBURSEMENT_BASE,
        foreign_payment=map_foreign_payment(purchase),
        payment_methods=[str(purchase.payment_method)] if purchase.payment_method else None,
        income_withholdings=income_lines or None,
        withholding_establishment=pad_series(reference.establishment) if reference else None,
        withholding_point_of_emission=pad_series(reference.point_of_emission) if reference else None,
        withholding_sequential=parse_sequential(reference.sequential) if reference else None,
        withholding_authorization=format_authorization(reference.authorization) if reference else None,
        withholding_emission_date=format_date(reference.emission_date) if reference else None,
    )


def map_sale_group(group: AggregatedSaleGroup) -> SaleDetail:
    """detalleVentas for one (customer, document type) group"""
    return SaleDetail(
        customer_id_type=str(group.customer_id_type or ""),
        customer_id=str(group.customer_id or ""),
        related_party=AtsConstants.RELATED_PARTY,
        document_type=remap_document_type(group.document_type),
        emission_type=_enum_value(group.emission_type),
        document_count=group.document_count or 1,
        zero_rated_base=format_decimal(group.zero_rated_base),
        taxable_base=format_decimal(group.iva_base),
        iva_base=format_decimal(group.iva_base),
        iva_amount=format_decimal(group.iva_amount),
        ice_amount=format_decimal(group.ice_amount),
        withheld_iva=format_decimal(group.withheld_iva),
        withheld_income_tax=format_decimal(group.withheld_income_tax),
        payment_methods=[str(group.payment_method)] if group.payment_method else None,
    )


def map_export(export: ExportRecord) -> ExportDetail:
    """detalleExportaciones for one export document"""
    fob = format_decimal(export.fob_value)
    return ExportDetail(
        buyer_id_type=str(export.buyer_id_type or ""),
        buyer_id=str(export.buyer_id or ""),
        related_party=AtsConstants.RELATED_PARTY,
        document_type=remap_document_type(export.document_type),
        emission_type=_enum_value(export.emission_type),
        fiscal_regime_type=str(export.fiscal_regime_type or AtsConstants.DEFAULT_FISCAL_REGIME),
        destination_country=str(export.destination_country or ""),
        export_of=AtsConstants.EXPORT_OF_GOODS,
        fob_value=fob,
        fob_document_value=fob,
        establishment=pad_series(export.establishment),
        point_of_emission=pad_series(export.point_of_emission),
        sequential=parse_sequential(export.sequential),
        authorization=format_authorization(export.authorization),
        emission_date=format_date(export.emission_date),
        payment_country=str(export.payment_country) if export.payment_country else None,
    )


def map_sales_by_location(totals: Iterable[Tuple[str, Decimal]]) -> List[SalesByLocationEntry]:
    return [
        SalesByLocationEntry(establishment=pad_series(code), total=format_decimal(amount))
        for code, amount in totals
    ]


def map_voided_range(voided: VoidedRange) -> VoidedDetail:
    return VoidedDetail(
        document_type=str(voided.document_type),
        establishment=pad_series(voided.establishment),
        point_of_emission=pad_series(voided.point_of_emission),
        sequential_start=voided.start,
        sequential_end=voided.end,
        authorization=format_authorization(voided.authorization),
    )

# ========================================
# DOCUMENT ASSEMBLY
# ========================================

def build_ats_document(
    tenant: TenantProfile,
    selection: PeriodSelection,
    establishment_count: str,
    total_sales: Decimal,
    purchases: Sequence[Tuple[PurchaseRecord, PurchaseWithholdings]] = (),
    sale_groups: Sequence[AggregatedSaleGroup] = (),
    sales_by_location: Iterable[Tuple[str, Decimal]] = (),
    exports: Sequence[ExportRecord] = (),
    voided: Sequence[VoidedRange] = ()
) -> AtsDocument:
    """Assemble the <iva> tree; sections without entries are left out"""
    ruc = str(tenant.ruc or "")

    document = AtsDocument(
        informant_id_type=informant_id_type(ruc),
        informant_id=ruc,
        legal_name=format_legal_name(tenant.legal_name),
        year=selection.year,
        month=selection.month.zfill(2),
        establishment_count=establishment_count,
        total_sales=format_decimal(total_sales),
        operative_code=AtsConstants.OPERATIVE_CODE,
        purchases=[map_purchase(purchase, reconciled) for purchase, reconciled in purchases],
        sales=[map_sale_group(group) for group in sale_groups],
        sales_by_location=map_sales_by_location(sales_by_location) if sale_groups else [],
        exports=[map_export(export) for export in exports],
        voided=[map_voided_range(voided_range) for voided_range in voided],
    )

    logger.debug(
        f"ATS document mapped for {selection.period}: "
        f"{len(document.purchases or [])} purchases, {len(document.sales or [])} sale groups, "
        f"{len(document.exports or [])} exports, {len(document.voided or [])} voided ranges"
    )
    return document
