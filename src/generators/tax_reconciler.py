"""
ATS Tax Reconciler
Folds the withholdings linked to a purchase back onto it: IVA amounts per
regulator percentage bracket, income tax withholdings as detail lines.

File: src/generators/tax_reconciler.py
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Iterable, List, Tuple

from config.ats_config import IVA_WITHHOLDING_BRACKETS, TaxKind
from src.models.records import (
    ZERO, IncomeWithholdingLine, PurchaseRecord, PurchaseWithholdings, WithholdingReference
)

logger = logging.getLogger(__name__)

BRACKET_FIELDS = dict(zip(
    IVA_WITHHOLDING_BRACKETS, ('bracket_10', 'bracket_20', 'bracket_50', 'bracket_100')
))


def _as_decimal(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return ZERO


def reconcile_withholdings(purchase: PurchaseRecord) -> PurchaseWithholdings:
    """
    Reconcile the withholdings linked to one purchase

    IVA withholdings at 10/20/50/100 percent add to their bracket. Other
    percentages go to ``unbracketed``, which no ATS field declares.
    The first income tax withholding supplies the withholding voucher
    reference of the purchase.
    """
    result = PurchaseWithholdings()

    for withholding in purchase.withholdings:
        if withholding.tax_kind == TaxKind.IVA:
            amount = _as_decimal(withholding.withheld_amount)
            field_name = BRACKET_FIELDS.get(_as_decimal(withholding.percentage))
            if field_name is None:
                result.unbracketed += amount
                logger.debug(
                    f"Purchase {purchase.id}: IVA withholding at {withholding.percentage}% "
                    f"outside the declared brackets"
                )
                continue
            setattr(result, field_name, getattr(result, field_name) + amount)

        elif withholding.tax_kind == TaxKind.INCOME:
            result.income_lines.append(IncomeWithholdingLine(
                code=str(withholding.code),
                base_amount=_as_decimal(withholding.base_amount),
                percentage=_as_decimal(withholding.percentage),
                withheld_amount=_as_decimal(withholding.withheld_amount),
            ))
            if result.reference is None:
                result.reference = WithholdingReference(
                    establishment=withholding.establishment,
                    point_of_emission=withholding.point_of_emission,
                    sequential=withholding.sequential,
                    authorization=withholding.authorization,
                    emission_date=withholding.emission_date,
                )

    return result


def reconcile_purchases(
    purchases: Iterable[PurchaseRecord]
) -> List[Tuple[PurchaseRecord, PurchaseWithholdings]]:
    """Pair every purchase with its reconciled withholdings"""
    return [(purchase, reconcile_withholdings(purchase)) for purchase in purchases]
