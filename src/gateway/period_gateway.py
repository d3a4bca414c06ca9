"""
ATS Period Data Gateway
Read-only access to the validated transactions of a tenant and fiscal period

The five period reads (purchases, sales, exports, withholdings and voided
documents) have no ordering dependency and run concurrently, each one on its
own database session.

File: src/gateway/period_gateway.py
"""

import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from config.ats_config import DECLARABLE_STATES, RecordState, SystemConfig
from src.exceptions import TenantNotFoundError
from src.models.database_models import Company, Export, Purchase, Sale, Withholding
from src.models.records import (
    ExportRecord, PeriodData, PurchaseRecord, SaleRecord, TenantProfile,
    VoidedDocumentStub, WithholdingRecord
)

logger = logging.getLogger(__name__)

# ========================================
# GATEWAY INTERFACE
# ========================================

class PeriodDataGateway(ABC):
    """Query side consumed by the ATS generator"""

    @abstractmethod
    def get_tenant(self, tenant_id: int) -> TenantProfile:
        """Return the tenant or raise TenantNotFoundError"""

    @abstractmethod
    def fetch_period_data(self, tenant_id: int, period: str) -> PeriodData:
        """Return every record of the period the declaration is built from"""


def link_withholdings(
    purchases: List[PurchaseRecord],
    withholdings: List[WithholdingRecord]
) -> List[PurchaseRecord]:
    """Attach withholdings to their purchase without touching the inputs"""
    by_purchase: Dict[int, List[WithholdingRecord]] = defaultdict(list)
    for withholding in withholdings:
        if withholding.purchase_id is not None:
            by_purchase[withholding.purchase_id].append(withholding)

    return [replace(purchase, withholdings=list(by_purchase.get(purchase.id, ()))) for purchase in purchases]


def _to_decimal(value) -> Decimal:
    if value is None:
        return Decimal('0')
    return value if isinstance(value, Decimal) else Decimal(str(value))

# ========================================
# SQLALCHEMY GATEWAY
# ========================================

class SQLAlchemyPeriodGateway(PeriodDataGateway):
    """
    Gateway backed by the ORM tables
    Opens one session per read so the reads can run in parallel
    """

    def __init__(self, session_factory: Callable[[], Session], max_workers: Optional[int] = None):
        self.session_factory = session_factory
        self.max_workers = max_workers or SystemConfig.GATEWAY_MAX_WORKERS

        logger.info("SQLAlchemyPeriodGateway initialized")

    def get_tenant(self, tenant_id: int) -> TenantProfile:
        with self.session_factory() as session:
            company = session.get(Company, tenant_id)
            if company is None:
                raise TenantNotFoundError(details=[{"tenant_id": tenant_id}])
            return TenantProfile(id=company.id, ruc=company.ruc, legal_name=company.legal_name)

    def fetch_period_data(self, tenant_id: int, period: str) -> PeriodData:
        tenant = self.get_tenant(tenant_id)

        queries = {
            'purchases': self._fetch_purchases,
            'sales': self._fetch_sales,
            'exports': self._fetch_exports,
            'withholdings': self._fetch_withholdings,
            'voided': self._fetch_voided,
        }

        results = {}
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            future_map = {
                executor.submit(query, tenant_id, period): name
                for name, query in queries.items()
            }
            for future in as_completed(future_map):
                results[future_map[future]] = future.result()

        logger.info(
            f"Period data fetched for tenant {tenant_id} ({period}): "
            f"{len(results['purchases'])} purchases, {len(results['sales'])} sales, "
            f"{len(results['exports'])} exports, {len(results['withholdings'])} withholdings, "
            f"{len(results['voided'])} voided"
        )

        return PeriodData(
            tenant=tenant,
            purchases=link_withholdings(results['purchases'], results['withholdings']),
            sales=results['sales'],
            exports=results['exports'],
            withholdings=results['withholdings'],
            voided=results['voided'],
        )

    def _declarable(self, model, tenant_id: int, period: str):
        return (
            select(model)
            .where(
                model.company_id == tenant_id,
                model.period == period,
                model.state.in_(DECLARABLE_STATES),
            )
            .order_by(model.emission_date.asc(), model.id.asc())
        )

    def _fetch_purchases(self, tenant_id: int, period: str) -> List[PurchaseRecord]:
        with self.session_factory() as session:
            rows = session.scalars(self._declarable(Purchase, tenant_id, period)).all()
            return [
                PurchaseRecord(
                    id=row.id,
                    supplier_id=row.supplier_id,
                    document_type=row.document_type,
                    establishment=row.establishment,
                    point_of_emission=row.point_of_emission,
                    sequential=row.sequential,
                    authorization=row.authorization,
                    emission_date=row.emission_date,
                    registration_date=row.registration_date,
                    support_code=row.support_code,
                    supplier_id_type=row.supplier_id_type,
                    zero_rated_base=_to_decimal(row.zero_rated_base),
                    iva_base=_to_decimal(row.iva_base),
                    non_object_base=_to_decimal(row.non_object_base),
                    exempt_base=_to_decimal(row.exempt_base),
                    iva_amount=_to_decimal(row.iva_amount),
                    ice_amount=_to_decimal(row.ice_amount),
                    total=_to_decimal(row.total),
                    payment_method=row.payment_method,
                    foreign_payment_country=row.foreign_payment_country,
                    double_taxation_treaty=bool(row.double_taxation_treaty),
                    state=row.state,
                )
                for row in rows
            ]

    def _fetch_sales(self, tenant_id: int, period: str) -> List[SaleRecord]:
        with self.session_factory() as session:
            rows = session.scalars(self._declarable(Sale, tenant_id, period)).all()
            return [
                SaleRecord(
                    id=row.id,
                    customer_id=row.customer_id,
                    document_type=row.document_type,
                    establishment=row.establishment,
                    point_of_emission=row.point_of_emission,
                    sequential=row.sequential,
                    authorization=row.authorization or "",
                    emission_date=row.emission_date,
                    customer_id_type=row.customer_id_type,
                    zero_rated_base=_to_decimal(row.zero_rated_base),
                    iva_base=_to_decimal(row.iva_base),
                    non_object_base=_to_decimal(row.non_object_base),
                    exempt_base=_to_decimal(row.exempt_base),
                    iva_amount=_to_decimal(row.iva_amount),
                    ice_amount=_to_decimal(row.ice_amount),
                    withheld_iva=_to_decimal(row.withheld_iva),
                    withheld_income_tax=_to_decimal(row.withheld_income_tax),
                    total=_to_decimal(row.total),
                    payment_method=row.payment_method,
                    emission_type=row.emission_type,
                    state=row.state,
                )
                for row in rows
            ]

    def _fetch_exports(self, tenant_id: int, period: str) -> List[ExportRecord]:
        with self.session_factory() as session:
            rows = session.scalars(self._declarable(Export, tenant_id, period)).all()
            return [
                ExportRecord(
                    id=row.id,
                    buyer_id=row.buyer_id,
                    document_type=row.document_type,
                    destination_country=row.destination_country,
                    fob_value=_to_decimal(row.fob_value),
                    establishment=row.establishment,
                    point_of_emission=row.point_of_emission,
                    sequential=row.sequential,
                    authorization=row.authorization or "",
                    emission_date=row.emission_date,
                    buyer_id_type=row.buyer_id_type,
                    fob_offset_value=_to_decimal(row.fob_offset_value),
                    payment_country=row.payment_country,
                    fiscal_regime_type=row.fiscal_regime_type,
                    emission_type=row.emission_type,
                    state=row.state,
                )
                for row in rows
            ]

    def _fetch_withholdings(self, tenant_id: int, period: str) -> List[WithholdingRecord]:
        with self.session_factory() as session:
            rows = session.scalars(self._declarable(Withholding, tenant_id, period)).all()
            return [
                WithholdingRecord(
                    id=row.id,
                    tax_kind=row.tax_kind,
                    code=row.code,
                    percentage=_to_decimal(row.percentage),
                    base_amount=_to_decimal(row.base_amount),
                    withheld_amount=_to_decimal(row.withheld_amount),
                    purchase_id=row.purchase_id,
                    establishment=row.establishment,
                    point_of_emission=row.point_of_emission,
                    sequential=row.sequential,
                    authorization=row.authorization,
                    emission_date=row.emission_date,
                    state=row.state,
                )
                for row in rows
            ]

    def _fetch_voided(self, tenant_id: int, period: str) -> List[VoidedDocumentStub]:
        stubs = []
        with self.session_factory() as session:
            for model in (Purchase, Sale):
                query = (
                    select(model)
                    .where(
                        model.company_id == tenant_id,
                        model.period == period,
                        model.state == RecordState.VOIDED,
                    )
                    .order_by(model.document_type, model.establishment, model.sequential)
                )
                for row in session.scalars(query).all():
                    stubs.append(VoidedDocumentStub(
                        document_type=row.document_type,
                        establishment=row.establishment,
                        point_of_emission=row.point_of_emission,
                        sequential=row.sequential,
                        authorization=row.authorization or "",
                    ))
        return stubs

# ========================================
# IN-MEMORY GATEWAY
# ========================================

def _by_emission_date(record) -> Tuple[date, int]:
    return (record.emission_date or date.min, record.id)


class InMemoryPeriodGateway(PeriodDataGateway):
    """Gateway over records kept in memory, with the same selection rules"""

    def __init__(self):
        self.tenants: Dict[int, TenantProfile] = {}
        self.records: Dict[Tuple[int, str], Dict[str, list]] = defaultdict(
            lambda: {'purchases': [], 'sales': [], 'exports': [], 'withholdings': []}
        )

    def add_tenant(self, tenant: TenantProfile) -> None:
        self.tenants[tenant.id] = tenant

    def add_records(
        self,
        tenant_id: int,
        period: str,
        purchases: Iterable[PurchaseRecord] = (),
        sales: Iterable[SaleRecord] = (),
        exports: Iterable[ExportRecord] = (),
        withholdings: Iterable[WithholdingRecord] = ()
    ) -> None:
        bucket = self.records[(tenant_id, period)]
        bucket['purchases'].extend(purchases)
        bucket['sales'].extend(sales)
        bucket['exports'].extend(exports)
        bucket['withholdings'].extend(withholdings)

    def get_tenant(self, tenant_id: int) -> TenantProfile:
        tenant = self.tenants.get(tenant_id)
        if tenant is None:
            raise TenantNotFoundError(details=[{"tenant_id": tenant_id}])
        return tenant

    def fetch_period_data(self, tenant_id: int, period: str) -> PeriodData:
        tenant = self.get_tenant(tenant_id)
        bucket = self.records.get((tenant_id, period)) or {
            'purchases': [], 'sales': [], 'exports': [], 'withholdings': []
        }

        def declarable(records):
            return sorted((r for r in records if r.state in DECLARABLE_STATES), key=_by_emission_date)

        withholdings = declarable(bucket['withholdings'])
        voided = [
            VoidedDocumentStub(
                document_type=r.document_type,
                establishment=r.establishment,
                point_of_emission=r.point_of_emission,
                sequential=r.sequential,
                authorization=r.authorization or "",
            )
            for r in bucket['purchases'] + bucket['sales']
            if r.state == RecordState.VOIDED
        ]

        return PeriodData(
            tenant=tenant,
            purchases=link_withholdings(declarable(bucket['purchases']), withholdings),
            sales=declarable(bucket['sales']),
            exports=declarable(bucket['exports']),
            withholdings=withholdings,
            voided=voided,
        )
