"""
ATS Generator Service
Orchestrates one ATS generation for a company and fiscal period:

fetch -> business checks -> aggregate + reconcile -> map -> render ->
package -> schema validation (soft) -> history

File: src/services/ats_generator.py
"""

import logging
from decimal import Decimal
from typing import Optional, Tuple

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from config.ats_config import GenerationStatus, SystemConfig
from src.exceptions import AtsError
from src.gateway.period_gateway import PeriodDataGateway, SQLAlchemyPeriodGateway
from src.generators.aggregator import (
    build_sales_by_location, compact_voided_documents, count_unique_establishments,
    group_sales, total_sales_figure
)
from src.generators.document_mapper import build_ats_document
from src.generators.tax_reconciler import reconcile_purchases
from src.generators.xml_renderer import AtsPackager, AtsXmlRenderer
from src.models.records import (
    ZERO, GenerationResult, GenerationStatistics, PeriodData, PeriodSelection, PeriodSummary
)
from src.services.history import HistoryEntry, HistoryRecorder, SQLAlchemyHistoryRecorder
from src.validators.business_validator import BusinessValidator
from src.validators.xml_validator import SchemaValidator, ValidationUtils, create_schema_validator

logger = logging.getLogger(__name__)


def _total(values) -> Decimal:
    return sum((value or ZERO for value in values), ZERO)


class AtsGenerator:
    """
    Entry point used by callers such as an HTTP layer or the CLI

    The schema validator is chosen once when the generator is built.
    Concurrent generations of the same company and period are not
    serialized here and may overwrite each other's files.
    """

    def __init__(
        self,
        gateway: PeriodDataGateway,
        schema_validator: Optional[SchemaValidator] = None,
        history_recorder: Optional[HistoryRecorder] = None,
        renderer: Optional[AtsXmlRenderer] = None,
        packager: Optional[AtsPackager] = None,
        business_validator: Optional[BusinessValidator] = None,
        enforce_reconciliation: Optional[bool] = None
    ):
        self.gateway = gateway
        self.schema_validator = schema_validator or create_schema_validator()
        self.history_recorder = history_recorder
        self.renderer = renderer or AtsXmlRenderer()
        self.packager = packager or AtsPackager()
        self.business_validator = business_validator or BusinessValidator()
        self.enforce_reconciliation = (
            SystemConfig.ENFORCE_RECONCILIATION if enforce_reconciliation is None else enforce_reconciliation
        )

        logger.info(f"AtsGenerator initialized (schema validation: {self.schema_validator.method})")

    # ========================================
    # SHARED STEPS
    # ========================================

    def _load_period(self, tenant_id: int, period: str) -> Tuple[PeriodSelection, PeriodData]:
        selection = PeriodSelection.parse(tenant_id, period)
        data = self.gateway.fetch_period_data(tenant_id, period)

        if self.enforce_reconciliation:
            self.business_validator.enforce(data)
        else:
            result = self.business_validator.validate_period_data(data)
            if not result.is_valid:
                logger.warning(
                    f"Period {period} of tenant {tenant_id} has {len(result.errors)} "
                    f"reconciliation differences (not enforced)"
                )

        return selection, data

    # ========================================
    # GENERATE
    # ========================================

    def generate(self, tenant_id: int, period: str, requested_by: int) -> GenerationResult:
        """Build, write and validate the ATS of a period"""
        try:
            return self._generate(tenant_id, period, requested_by)
        except AtsError:
            raise
        except Exception as e:
            logger.exception(f"Unexpected error generating ATS for tenant {tenant_id} ({period})")
            raise AtsError() from e

    def _generate(self, tenant_id: int, period: str, requested_by: int) -> GenerationResult:
        logger.info(f"Generating ATS for tenant {tenant_id}, period {period}")
        selection, data = self._load_period(tenant_id, period)
        tenant = data.tenant

        sale_groups = group_sales(data.sales)
        voided_ranges = compact_voided_documents(data.voided)
        reconciled = reconcile_purchases(data.purchases)
        logger.info(
            f"Aggregated {len(data.sales)} sales into {len(sale_groups)} groups, "
            f"{len(voided_ranges)} voided ranges"
        )

        document = build_ats_document(
            tenant=tenant,
            selection=selection,
            establishment_count=count_unique_establishments(data.sales),
            total_sales=total_sales_figure(data.sales, data.exports),
            purchases=reconciled,
            sale_groups=sale_groups,
            sales_by_location=build_sales_by_location(data.sales),
            exports=data.exports,
            voided=voided_ranges,
        )

        xml_bytes = self.renderer.render(document)
        artifacts = self.packager.package(tenant.ruc, selection.month, selection.year, xml_bytes)

        validation = self.schema_validator.validate(xml_bytes)
        if not validation.valid:
            logger.warning(
                f"ATS for tenant {tenant_id} ({period}) generated with validation errors\n"
                f"{ValidationUtils.format_validation_report(validation)}"
            )

        statistics = GenerationStatistics(
            total_purchases=len(data.purchases),
            total_sales=len(data.sales),
            total_sale_groups=len(sale_groups),
            total_exports=len(data.exports),
            total_withholdings=len(data.withholdings),
            total_voided_ranges=len(voided_ranges),
        )

        history_id = None
        if self.history_recorder is not None:
            history_id = self.history_recorder.record(HistoryEntry(
                tenant_id=tenant.id,
                requested_by=requested_by,
                period=period,
                file_name=artifacts.xml_file_name,
                xml_path=artifacts.xml_path,
                archive_path=artifacts.archive_path,
                total_purchases=statistics.total_purchases,
                total_sales=statistics.total_sales,
                total_exports=statistics.total_exports,
                total_withholdings=statistics.total_withholdings,
                xsd_valid=validation.valid,
                validation_errors=[error.to_dict() for error in validation.errors],
                status=(
                    GenerationStatus.GENERATED if validation.valid
                    else GenerationStatus.GENERATED_WITH_WARNINGS
                ),
            ))

        logger.info(f"ATS generated for tenant {tenant_id} ({period}): {artifacts.xml_file_name}")
        return GenerationResult(
            xml_bytes=xml_bytes,
            archive_bytes=artifacts.archive_bytes,
            statistics=statistics,
            validation=validation,
            xml_file_name=artifacts.xml_file_name,
            archive_file_name=artifacts.archive_file_name,
            xml_path=artifacts.xml_path,
            archive_path=artifacts.archive_path,
            history_id=history_id,
        )

    # ========================================
    # PREVIEW
    # ========================================

    def preview(self, tenant_id: int, period: str) -> PeriodSummary:
        """Counts and totals of a period without writing any file"""
        try:
            return self._preview(tenant_id, period)
        except AtsError:
            raise
        except Exception as e:
            logger.exception(f"Unexpected error building ATS preview for tenant {tenant_id} ({period})")
            raise AtsError("Error al obtener vista previa") from e

    def _preview(self, tenant_id: int, period: str) -> PeriodSummary:
        selection, data = self._load_period(tenant_id, period)
        sale_groups = group_sales(data.sales)

        return PeriodSummary(
            period=selection.period,
            tenant=data.tenant,
            total_purchases=len(data.purchases),
            total_sales=len(data.sales),
            total_sale_groups=len(sale_groups),
            total_exports=len(data.exports),
            purchases_value=_total(purchase.total for purchase in data.purchases),
            sales_value=_total(sale.total for sale in data.sales),
            exports_value=_total(export.fob_value for export in data.exports),
            purchases_iva=_total(purchase.iva_amount for purchase in data.purchases),
            sales_iva=_total(sale.iva_amount for sale in data.sales),
            withheld_iva_received=_total(sale.withheld_iva for sale in data.sales),
            withheld_income_received=_total(sale.withheld_income_tax for sale in data.sales),
            sale_groups=sale_groups,
        )

# ========================================
# GENERATOR FACTORY
# ========================================

def create_ats_generator(
    database_url: Optional[str] = None,
    storage_dir: Optional[str] = None,
    schema_validator: Optional[SchemaValidator] = None
) -> AtsGenerator:
    """Generator wired to the database at `database_url`"""
    engine = create_engine(database_url or SystemConfig.DATABASE_URL)
    session_factory = sessionmaker(bind=engine)

    return AtsGenerator(
        gateway=SQLAlchemyPeriodGateway(session_factory),
        schema_validator=schema_validator,
        history_recorder=SQLAlchemyHistoryRecorder(session_factory),
        packager=AtsPackager(storage_dir),
    )
