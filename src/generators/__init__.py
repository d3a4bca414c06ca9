"""
ATS Generators Package
"""
from .aggregator import (
    group_sales, build_sales_by_location, compact_voided_documents,
    count_unique_establishments, total_sales_figure
)
from .tax_reconciler import reconcile_withholdings, reconcile_purchases
from .document_mapper import build_ats_document
from .xml_renderer import AtsXmlRenderer, AtsPackager

__all__ = [
    'group_sales', 'build_sales_by_location', 'compact_voided_documents',
    'count_unique_establishments', 'total_sales_figure',
    'reconcile_withholdings', 'reconcile_purchases',
    'build_ats_document', 'AtsXmlRenderer', 'AtsPackager'
]
