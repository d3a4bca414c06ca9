"""
Tests for the ATS XML schema validators

Covers:
- Structural checks (mandatory fields, RUC, year, month, dates)
- XSD validation with xmlschema
- Validator selection at startup
- Schema download and cache
"""

import json
import os
from decimal import Decimal

import pytest

from src.generators.aggregator import group_sales
from src.generators.document_mapper import build_ats_document
from src.generators.tax_reconciler import reconcile_purchases
from src.generators.xml_renderer import AtsXmlRenderer
from src.models.records import PeriodSelection
from src.validators import xml_validator
from src.validators.xml_validator import (
    IssueType,
    SchemaManager,
    StructuralSchemaValidator,
    ValidationIssue,
    ValidationLevel,
    ValidationOutcome,
    ValidationUtils,
    XsdSchemaValidator,
    cap_errors,
    create_schema_validator,
    parse_xml,
)

from tests.builders import PERIOD, make_purchase, make_sale, make_tenant
from tests.conftest import MINIMAL_ATS_XSD

HEADER = (
    "<TipoIDInformante>R</TipoIDInformante>"
    "<IdInformante>{ruc}</IdInformante>"
    "<razonSocial>Comercial Andina SA</razonSocial>"
    "<Anio>{year}</Anio>"
    "<Mes>{month}</Mes>"
    "<numEstabRuc>001</numEstabRuc>"
    "<totalVentas>0.00</totalVentas>"
    "<codigoOperativo>IVA</codigoOperativo>"
)


def ats_xml(body="", ruc="1790011674001", year="2024", month="01"):
    header = HEADER.format(ruc=ruc, year=year, month=month)
    return f'<?xml version="1.0" encoding="UTF-8"?><iva>{header}{body}</iva>'.encode("utf-8")


def rendered_period():
    document = build_ats_document(
        tenant=make_tenant(),
        selection=PeriodSelection.parse(1, PERIOD),
        establishment_count="001",
        total_sales=Decimal("0"),
        purchases=reconcile_purchases([make_purchase()]),
        sale_groups=group_sales([make_sale()]),
        sales_by_location=[("001", Decimal("0"))],
    )
    return AtsXmlRenderer().render(document)


class TestStructuralSchemaValidator:
    """Checks run when no XSD is available"""

    def setup_method(self):
        self.validator = StructuralSchemaValidator()

    def test_rendered_document_is_valid(self):
        outcome = self.validator.validate(rendered_period())

        assert outcome.valid is True
        assert outcome.errors == []
        assert outcome.method == "básica"

    def test_missing_header_field(self):
        xml = ats_xml().replace(b"<codigoOperativo>IVA</codigoOperativo>", b"")

        outcome = self.validator.validate(xml)

        assert outcome.valid is False
        assert outcome.errors[0].type == IssueType.MANDATORY_FIELD
        assert outcome.errors[0].location == "/iva/codigoOperativo"

    def test_wrong_root(self):
        outcome = self.validator.validate(b"<ats><Mes>01</Mes></ats>")

        assert [error.type for error in outcome.errors] == [IssueType.STRUCTURE]

    @pytest.mark.parametrize("ruc", ["179001167400", "1790011674002", "17900116740AB"])
    def test_invalid_informant_ruc(self, ruc):
        outcome = self.validator.validate(ats_xml(ruc=ruc))

        assert [error.location for error in outcome.errors] == ["/iva/IdInformante"]

    @pytest.mark.parametrize("year", ["1999", "24", "20X4"])
    def test_invalid_year(self, year):
        outcome = self.validator.validate(ats_xml(year=year))

        assert [error.location for error in outcome.errors] == ["/iva/Anio"]

    @pytest.mark.parametrize("month", ["13", "1", "00"])
    def test_invalid_month(self, month):
        outcome = self.validator.validate(ats_xml(month=month))

        assert [error.location for error in outcome.errors] == ["/iva/Mes"]

    def test_purchase_date_format(self):
        purchase = (
            "<compras><detalleCompras>"
            "<codSustento>01</codSustento><tpIdProv>01</tpIdProv><idProv>0992345678001</idProv>"
            "<tipoComprobante>01</tipoComprobante><fechaRegistro>16/01/2024</fechaRegistro>"
            "<establecimiento>001</establecimiento><puntoEmision>002</puntoEmision>"
            "<secuencial>123</secuencial><fechaEmision>2024-01-15</fechaEmision>"
            "<autorizacion>1234567890</autorizacion>"
            "</detalleCompras></compras>"
        )

        outcome = self.validator.validate(ats_xml(body=purchase))

        assert len(outcome.errors) == 1
        assert outcome.errors[0].type == IssueType.FORMAT
        assert outcome.errors[0].value == "2024-01-15"

    def test_missing_purchase_fields(self):
        outcome = self.validator.validate(ats_xml(body="<compras><detalleCompras/></compras>"))

        assert len(outcome.errors) == 10
        assert outcome.errors[0].message == "Compra 1: Falta campo codSustento"

    def test_section_without_details_is_a_warning(self):
        outcome = self.validator.validate(ats_xml(body="<ventas/>"))

        assert outcome.valid is True
        assert outcome.warnings[0].level == ValidationLevel.WARNING

    def test_malformed_xml_is_reported_not_raised(self):
        outcome = self.validator.validate(b"<iva><Mes>01</iva>")

        assert outcome.valid is False
        assert outcome.errors[0].type == IssueType.SYNTAX
        assert outcome.errors[0].line == 1

    def test_accepts_text_input(self):
        assert self.validator.validate(ats_xml().decode("utf-8")).valid is True


class TestParseXml:
    """Well-formedness parsing"""

    def test_well_formed_document_keeps_whitespace(self):
        root, issues = parse_xml(b"<iva>\n  <Anio>2024</Anio>\n</iva>")

        assert issues == []
        assert root.tag == "iva"
        assert root.text == "\n  "
        assert root.findtext("Anio") == "2024"

    def test_syntax_error_reported(self):
        root, issues = parse_xml("<iva><Anio></iva>")

        assert root is None
        assert issues[0].type == IssueType.SYNTAX


class TestCapErrors:
    """Error report truncation"""

    def test_errors_capped_with_info_warning(self):
        errors = [ValidationIssue(type=IssueType.XSD, message=f"error {i}") for i in range(25)]

        capped, warnings = cap_errors(errors, [])

        assert len(capped) == 20
        assert capped[-1].message == "error 19"
        assert warnings[-1].level == ValidationLevel.INFO
        assert warnings[-1].message == "Se omitieron 5 errores adicionales de validación"

    def test_short_list_untouched(self):
        errors = [ValidationIssue(type=IssueType.XSD, message="error")]

        assert cap_errors(errors, []) == (errors, [])


class TestXsdSchemaValidator:
    """Full XSD validation"""

    @pytest.fixture
    def validator(self, xsd_path):
        return XsdSchemaValidator(SchemaManager().load_schema(xsd_path))

    def test_valid_document(self, validator):
        outcome = validator.validate(rendered_period())

        assert outcome.valid is True
        assert outcome.method == "XSD completa (xmlschema)"

    def test_schema_violation_is_reported(self, validator):
        outcome = validator.validate(ats_xml(ruc="ABC"))

        assert outcome.valid is False
        assert all(error.type == IssueType.XSD for error in outcome.errors)

    def test_structural_checks_run_after_schema(self, validator):
        outcome = validator.validate(ats_xml(month="13"))

        assert [error.location for error in outcome.errors] == ["/iva/Mes"]
        assert outcome.errors[0].type == IssueType.DATA_TYPE


class TestValidatorFactory:
    """Validator selection"""

    def test_xsd_validator_when_schema_loads(self, xsd_path, tmp_path):
        validator = create_schema_validator(xsd_path=xsd_path, xsd_url="", cache_dir=str(tmp_path))

        assert isinstance(validator, XsdSchemaValidator)

    def test_structural_validator_without_schema(self, tmp_path):
        validator = create_schema_validator(
            xsd_path=str(tmp_path / "missing.xsd"), xsd_url="", cache_dir=str(tmp_path)
        )

        assert type(validator) is StructuralSchemaValidator

    def test_structural_validator_when_schema_is_broken(self, tmp_path):
        broken = tmp_path / "broken.xsd"
        broken.write_text("<xs:schema")

        validator = create_schema_validator(xsd_path=str(broken), xsd_url="", cache_dir=str(tmp_path))

        assert type(validator) is StructuralSchemaValidator


class FakeResponse:
    def __init__(self, content):
        self.content = content

    def raise_for_status(self):
        pass


class TestSchemaManager:
    """Schema download and cache"""

    def test_downloads_once_and_caches(self, tmp_path, monkeypatch):
        calls = []

        def fake_get(url, timeout):
            calls.append(url)
            return FakeResponse(MINIMAL_ATS_XSD.encode("utf-8"))

        monkeypatch.setattr(xml_validator.requests, "get", fake_get)
        manager = SchemaManager(cache_dir=str(tmp_path / "cache"))
        url = "https://example.invalid/ats/ats.xsd?v=2"

        first = manager.resolve_schema_path(str(tmp_path / "missing.xsd"), url)
        second = manager.resolve_schema_path(str(tmp_path / "missing.xsd"), url)

        assert first == second == os.path.join(str(tmp_path / "cache"), "ats.xsd")
        assert calls == [url]
        with open(first + ".info") as f:
            assert json.load(f)["url"] == url

    def test_failed_download_without_cache(self, tmp_path, monkeypatch):
        def fake_get(url, timeout):
            raise xml_validator.requests.ConnectionError("offline")

        monkeypatch.setattr(xml_validator.requests, "get", fake_get)
        manager = SchemaManager(cache_dir=str(tmp_path / "cache"))

        assert manager.resolve_schema_path(None, "https://example.invalid/ats.xsd") is None

    def test_local_file_wins(self, xsd_path, tmp_path):
        manager = SchemaManager(cache_dir=str(tmp_path))

        assert manager.resolve_schema_path(xsd_path, "https://example.invalid/ats.xsd") == xsd_path


class TestValidationUtils:
    def test_report_lists_errors_and_warnings(self):
        outcome = ValidationOutcome(
            valid=False,
            errors=[ValidationIssue(type=IssueType.FORMAT, message="Fecha inválida", location="/iva/Mes", line=3)],
            warnings=[ValidationIssue(type=IssueType.STRUCTURE, message="Sección vacía",
                                      level=ValidationLevel.WARNING)],
            method="básica",
        )

        report = ValidationUtils.format_validation_report(outcome)

        assert "Estado: INVÁLIDO" in report
        assert "1. [FORMATO] Fecha inválida" in report
        assert "Línea: 3" in report
        assert "ADVERTENCIAS (1):" in report

    def test_issue_dict_leaves_out_empty_keys(self):
        issue = ValidationIssue(type=IssueType.XSD, message="bad", location="/iva")

        assert issue.to_dict() == {"tipo": "XSD_VALIDATION", "mensaje": "bad", "nivel": "ERROR", "ruta": "/iva"}

    def test_export_issues_json(self):
        data = json.loads(ValidationUtils.export_issues_json([ValidationIssue(type=IssueType.INFO, message="ñ")]))

        assert data == [{"tipo": "INFO", "mensaje": "ñ", "nivel": "ERROR"}]
