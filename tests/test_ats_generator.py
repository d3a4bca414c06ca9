"""
End-to-end tests for the ATS generator service

Covers:
- Generation over the in-memory gateway (XML content, files, history)
- Reconciliation enforcement
- Error mapping (invalid period, unknown tenant, unexpected failures)
- Period preview
"""

import os
import zipfile
from decimal import Decimal

import pytest
from lxml import etree

from config.ats_config import EmissionType, GenerationStatus, RecordState, TaxKind
from src.exceptions import AtsError, InvalidPeriodError, ReconciliationError, TenantNotFoundError
from src.gateway.period_gateway import InMemoryPeriodGateway
from src.generators.xml_renderer import AtsPackager
from src.services.ats_generator import AtsGenerator
from src.services.history import InMemoryHistoryRecorder
from src.validators.xml_validator import StructuralSchemaValidator

from tests.builders import (
    PERIOD, TENANT_RUC, make_export, make_purchase, make_sale, make_tenant, make_withholding
)

AUTHORIZATION_49 = "1234567890123456789012345678901234567890123456789"


def parse(result):
    return etree.fromstring(result.xml_bytes)


class TestGenerate:
    """Happy path generation"""

    def test_empty_period_yields_header_only(self, generator):
        result = generator.generate(1, PERIOD, 7)

        root = parse(result)
        assert result.validation.valid is True
        assert root.findtext("numEstabRuc") == "000"
        assert root.findtext("totalVentas") == "0.00"
        assert root.findtext("Anio") == "2024"
        assert root.findtext("Mes") == "01"
        for section in ("compras", "ventas", "ventasEstablecimiento", "exportaciones", "anulados"):
            assert root.find(section) is None

    def test_sales_of_one_customer_are_grouped(self, generator, gateway):
        gateway.add_records(1, PERIOD, sales=[
            make_sale(1, iva_base=Decimal("43.48"), iva_amount=Decimal("6.52"), total=Decimal("50.00")),
            make_sale(2, iva_base=Decimal("65.22"), iva_amount=Decimal("9.78"), total=Decimal("75.00")),
        ])

        root = parse(generator.generate(1, PERIOD, 7))

        details = root.findall("ventas/detalleVentas")
        assert len(details) == 1
        assert details[0].findtext("tipoComprobante") == "18"
        assert details[0].findtext("numeroComprobantes") == "2"
        assert details[0].findtext("baseImpGrav") == "108.70"
        assert root.findtext("numEstabRuc") == "001"
        assert root.findtext("ventasEstablecimiento/ventaEst/ventasEstab") == "0.00"

    def test_physical_sales_and_exports_make_total_sales(self, generator, gateway):
        gateway.add_records(
            1, PERIOD,
            sales=[make_sale(1, establishment="002", emission_type=EmissionType.PHYSICAL)],
            exports=[make_export(1, emission_type=EmissionType.PHYSICAL, fob_value=Decimal("1000.00"))],
        )

        root = parse(generator.generate(1, PERIOD, 7))

        assert root.findtext("totalVentas") == "1115.00"
        assert root.findtext("ventasEstablecimiento/ventaEst/codEstab") == "002"
        assert root.findtext("ventasEstablecimiento/ventaEst/ventasEstab") == "115.00"
        assert root.findtext("exportaciones/detalleExportaciones/valorFOB") == "1000.00"

    def test_purchase_identifiers_round_trip(self, generator, gateway):
        gateway.add_records(1, PERIOD, purchases=[make_purchase(authorization=AUTHORIZATION_49)])

        detail = parse(generator.generate(1, PERIOD, 7)).find("compras/detalleCompras")

        assert detail.findtext("establecimiento") == "001"
        assert detail.findtext("puntoEmision") == "002"
        assert detail.findtext("secuencial") == "123"
        assert detail.findtext("autorizacion") == AUTHORIZATION_49
        assert detail.findtext("fechaEmision") == "15/01/2024"

    def test_authorizations_never_in_exponential_notation(self, generator, gateway):
        gateway.add_records(1, PERIOD, purchases=[
            make_purchase(authorization="1.234567890123456789012345678901234567890123456789E+48"),
        ])

        root = parse(generator.generate(1, PERIOD, 7))

        for authorization in root.iter("autorizacion"):
            assert "e" not in (authorization.text or "").lower()
        assert root.findtext("compras/detalleCompras/autorizacion") == AUTHORIZATION_49

    def test_linked_withholdings_are_reconciled(self, generator, gateway):
        gateway.add_records(
            1, PERIOD,
            purchases=[make_purchase(1)],
            withholdings=[
                make_withholding(1),
                make_withholding(2, tax_kind=TaxKind.IVA, code="721", percentage=Decimal("10"),
                                 base_amount=Decimal("15.00"), withheld_amount=Decimal("1.50")),
            ],
        )

        detail = parse(generator.generate(1, PERIOD, 7)).find("compras/detalleCompras")

        assert detail.findtext("valRetBien10") == "1.50"
        assert detail.findtext("air/detalleAir/codRetAir") == "312"
        assert detail.findtext("secRetencion1") == "77"

    def test_voided_sales_are_compacted(self, generator, gateway):
        gateway.add_records(1, PERIOD, sales=[
            make_sale(n, state=RecordState.VOIDED, authorization="1234567890") for n in (5, 6, 7)
        ])

        root = parse(generator.generate(1, PERIOD, 7))

        assert root.find("ventas") is None
        assert root.findtext("anulados/detalleAnulados/secuencialInicio") == "5"
        assert root.findtext("anulados/detalleAnulados/secuencialFin") == "7"

    def test_drafts_are_left_out(self, generator, gateway):
        gateway.add_records(1, PERIOD, purchases=[make_purchase(state=RecordState.DRAFT)])

        result = generator.generate(1, PERIOD, 7)

        assert parse(result).find("compras") is None
        assert result.statistics.total_purchases == 0

    def test_same_data_same_bytes(self, generator, gateway):
        gateway.add_records(1, PERIOD, purchases=[make_purchase()], sales=[make_sale()], exports=[make_export()])

        first = generator.generate(1, PERIOD, 7)
        second = generator.generate(1, PERIOD, 7)

        assert first.xml_bytes == second.xml_bytes

    def test_files_written(self, generator, storage_dir):
        result = generator.generate(1, PERIOD, 7)

        assert result.xml_file_name == "ATS012024.xml"
        assert result.archive_file_name == "AT012024.zip"
        assert result.xml_path == os.path.join(storage_dir, TENANT_RUC, "ATS012024.xml")
        with zipfile.ZipFile(result.archive_path) as archive:
            assert archive.read("ATS012024.xml") == result.xml_bytes

    def test_history_recorded(self, generator, gateway, history_recorder):
        gateway.add_records(1, PERIOD, sales=[make_sale(1), make_sale(2)])

        result = generator.generate(1, PERIOD, 7)

        assert result.history_id == 1
        entry = history_recorder.list_history(1)[0]
        assert entry.status == GenerationStatus.GENERATED
        assert entry.requested_by == 7
        assert entry.total_sales == 2
        assert entry.file_name == "ATS012024.xml"
        assert result.statistics.total_sale_groups == 1
        assert result.message == "ATS generado exitosamente"


class TestSchemaFindings:
    """Schema findings never block generation"""

    def test_invalid_xml_still_generated(self, storage_dir):
        gateway = InMemoryPeriodGateway()
        gateway.add_tenant(make_tenant(ruc="1790011674009"))
        history = InMemoryHistoryRecorder()
        generator = AtsGenerator(
            gateway=gateway,
            schema_validator=StructuralSchemaValidator(),
            history_recorder=history,
            packager=AtsPackager(storage_dir),
        )

        result = generator.generate(1, PERIOD, 7)

        assert result.validation.valid is False
        assert os.path.exists(result.xml_path)
        assert result.message == "ATS generado con advertencias de validación XSD"
        entry = history.entries[0]
        assert entry.status == GenerationStatus.GENERATED_WITH_WARNINGS
        assert entry.xsd_valid is False
        assert entry.validation_errors[0]["ruta"] == "/iva/IdInformante"


class TestReconciliation:
    """Records that do not add up"""

    def test_mismatch_rejects_generation(self, generator, gateway, history_recorder, storage_dir):
        gateway.add_records(1, PERIOD, purchases=[make_purchase(total=Decimal("120.00"))])

        with pytest.raises(ReconciliationError) as exc_info:
            generator.generate(1, PERIOD, 7)

        assert exc_info.value.status_code == 400
        assert exc_info.value.details[0]["diferencia"] == "5.00"
        assert history_recorder.entries == []
        assert not os.path.exists(os.path.join(storage_dir, TENANT_RUC))

    def test_mismatch_tolerated_when_not_enforced(self, gateway, storage_dir):
        gateway.add_records(1, PERIOD, purchases=[make_purchase(total=Decimal("120.00"))])
        generator = AtsGenerator(
            gateway=gateway,
            schema_validator=StructuralSchemaValidator(),
            packager=AtsPackager(storage_dir),
            enforce_reconciliation=False,
        )

        result = generator.generate(1, PERIOD, 7)

        assert result.statistics.total_purchases == 1
        assert result.history_id is None


class FailingGateway(InMemoryPeriodGateway):
    def fetch_period_data(self, tenant_id, period):
        raise RuntimeError("connection reset")


class TestErrors:
    """Error mapping"""

    @pytest.mark.parametrize("period", ["13/2024", "2024-01", "1/2024", "", "01/2024\n", "01/２０２４"])
    def test_invalid_period(self, generator, period):
        with pytest.raises(InvalidPeriodError) as exc_info:
            generator.generate(1, period, 7)

        assert exc_info.value.status_code == 400

    def test_unknown_tenant(self, generator):
        with pytest.raises(TenantNotFoundError) as exc_info:
            generator.generate(99, PERIOD, 7)

        assert exc_info.value.status_code == 404

    def test_unexpected_failure_is_wrapped(self, storage_dir):
        generator = AtsGenerator(
            gateway=FailingGateway(),
            schema_validator=StructuralSchemaValidator(),
            packager=AtsPackager(storage_dir),
        )

        with pytest.raises(AtsError) as exc_info:
            generator.generate(1, PERIOD, 7)

        assert type(exc_info.value) is AtsError
        assert exc_info.value.status_code == 500
        assert exc_info.value.message == "Error al generar ATS"
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    def test_unexpected_preview_failure_is_wrapped(self, storage_dir):
        generator = AtsGenerator(
            gateway=FailingGateway(),
            schema_validator=StructuralSchemaValidator(),
            packager=AtsPackager(storage_dir),
        )

        with pytest.raises(AtsError) as exc_info:
            generator.preview(1, PERIOD)

        assert exc_info.value.message == "Error al obtener vista previa"


class TestPreview:
    """Period summary without files"""

    def test_preview_totals(self, generator, gateway, storage_dir):
        gateway.add_records(
            1, PERIOD,
            purchases=[make_purchase(1), make_purchase(2)],
            sales=[
                make_sale(1, withheld_iva=Decimal("4.50")),
                make_sale(2, customer_id="1710034065", withheld_income_tax=Decimal("1.00")),
            ],
            exports=[make_export()],
        )

        summary = generator.preview(1, PERIOD)

        assert summary.total_purchases == 2
        assert summary.total_sales == 2
        assert summary.total_sale_groups == 2
        assert summary.purchases_value == Decimal("230.00")
        assert summary.sales_iva == Decimal("30.00")
        assert summary.exports_value == Decimal("2500.00")
        assert not os.path.exists(storage_dir)

        data = summary.to_dict()
        assert data["empresa"]["ruc"] == TENANT_RUC
        assert data["resumen"]["retenciones_iva_recibidas"] == "4.50"
        assert data["resumen"]["retenciones_renta_recibidas"] == "1.00"
        assert [group["identificacion_cliente"] for group in data["ventas_agrupadas"]] == [
            "0912345678", "1710034065"
        ]

    def test_preview_checks_period(self, generator):
        with pytest.raises(InvalidPeriodError):
            generator.preview(1, "00/2024")
