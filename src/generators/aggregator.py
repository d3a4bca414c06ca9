"""
ATS Aggregator
Grouping rules applied to the period records before mapping:
sales grouped per (customer, document type), sales per establishment,
voided sequentials compacted into ranges, and the header totals.

File: src/generators/aggregator.py
"""

import logging
from decimal import Decimal
from itertools import groupby
from typing import Dict, Iterable, List, Sequence, Tuple

from config.ats_config import AtsConstants
from src.generators.document_mapper import parse_sequential
from src.models.records import (
    ZERO, AggregatedSaleGroup, ExportRecord, SaleRecord, VoidedDocumentStub, VoidedRange
)

logger = logging.getLogger(__name__)

# ========================================
# SALES GROUPING
# ========================================

def _start_group(sale: SaleRecord) -> AggregatedSaleGroup:
    """First record of a key fixes the descriptive fields of its group"""
    return AggregatedSaleGroup(
        customer_id=sale.customer_id,
        document_type=sale.document_type,
        customer_id_type=sale.customer_id_type,
        payment_method=sale.payment_method,
        emission_type=sale.emission_type,
    )


def _accumulate(group: AggregatedSaleGroup, sale: SaleRecord) -> None:
    group.document_count += 1
    group.zero_rated_base += sale.zero_rated_base or ZERO
    group.iva_base += sale.iva_base or ZERO
    group.iva_amount += sale.iva_amount or ZERO
    group.ice_amount += sale.ice_amount or ZERO
    group.withheld_iva += sale.withheld_iva or ZERO
    group.withheld_income_tax += sale.withheld_income_tax or ZERO
    group.total += sale.total or ZERO


def group_sales(sales: Iterable[SaleRecord]) -> List[AggregatedSaleGroup]:
    """
    Group sales by (customer id, document type)

    Sums do not depend on input order. Payment method, emission type and
    customer id type are taken from the first record of each key and later
    records never overwrite them. Groups keep first-seen order.
    """
    groups: Dict[Tuple[str, str], AggregatedSaleGroup] = {}

    for sale in sales:
        key = (sale.customer_id, sale.document_type)
        group = groups.get(key)
        if group is None:
            group = groups[key] = _start_group(sale)
        _accumulate(group, sale)

    logger.debug(f"Grouped sales into {len(groups)} groups")
    return list(groups.values())

# ========================================
# ESTABLISHMENTS
# ========================================

def establishment_code(sale: SaleRecord) -> str:
    return str(sale.establishment or AtsConstants.DEFAULT_ESTABLISHMENT).strip().zfill(3)


def build_sales_by_location(sales: Sequence[SaleRecord]) -> List[Tuple[str, Decimal]]:
    """
    Sales total per establishment

    Every establishment seen in any sale gets an entry, but only sales that
    were not issued electronically add to its total.
    """
    totals: Dict[str, Decimal] = {}
    for sale in sales:
        totals.setdefault(establishment_code(sale), ZERO)

    for sale in sales:
        if not sale.is_electronic:
            code = establishment_code(sale)
            totals[code] += sale.total or ZERO

    return list(totals.items())


def count_unique_establishments(sales: Sequence[SaleRecord]) -> str:
    """numEstabRuc: distinct establishments over all sales, 3 digits"""
    return str(len({establishment_code(sale) for sale in sales})).zfill(3)


def total_sales_figure(sales: Sequence[SaleRecord], exports: Sequence[ExportRecord]) -> Decimal:
    """totalVentas: non electronic sales plus non electronic export FOB"""
    sales_total = sum(
        (sale.total or ZERO for sale in sales if not sale.is_electronic), ZERO
    )
    exports_total = sum(
        (export.fob_value or ZERO for export in exports if not export.is_electronic), ZERO
    )
    return sales_total + exports_total

# ========================================
# VOIDED DOCUMENTS
# ========================================

def _series_key(stub: VoidedDocumentStub) -> Tuple[str, str, str]:
    return (
        str(stub.document_type),
        str(stub.establishment or "").zfill(3),
        str(stub.point_of_emission or "").zfill(3),
    )


def compact_voided_documents(stubs: Iterable[VoidedDocumentStub]) -> List[VoidedRange]:
    """
    Compact voided documents into contiguous sequential ranges

    Stubs are sorted by (document type, establishment, point of emission,
    sequential as integer). A range ends when the series changes or the next
    sequential is not end + 1, so a repeated sequential opens a new range. Each
    range keeps the authorization of its first stub.
    """
    ordered = sorted(stubs, key=lambda stub: _series_key(stub) + (parse_sequential(stub.sequential),))
    ranges: List[VoidedRange] = []

    for (document_type, establishment, point_of_emission), series in groupby(ordered, key=_series_key):
        start = end = None
        authorization = ""

        for stub in series:
            sequential = parse_sequential(stub.sequential)
            if start is not None and sequential == end + 1:
                end = sequential
                continue

            if start is not None:
                ranges.append(VoidedRange(document_type, establishment, point_of_emission, start, end, authorization))
            start = end = sequential
            authorization = stub.authorization or ""

        if start is not None:
            ranges.append(VoidedRange(document_type, establishment, point_of_emission, start, end, authorization))

    logger.debug(f"Compacted voided documents into {len(ranges)} ranges")
    return ranges
