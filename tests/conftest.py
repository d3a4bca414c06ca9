"""
Shared fixtures for the ATS engine tests
"""

import pytest

from src.gateway.period_gateway import InMemoryPeriodGateway
from src.generators.xml_renderer import AtsPackager
from src.services.ats_generator import AtsGenerator
from src.services.history import InMemoryHistoryRecorder
from src.validators.xml_validator import StructuralSchemaValidator

from tests.builders import make_tenant

MINIMAL_ATS_XSD = """<?xml version="1.0" encoding="UTF-8"?>
<xs:schema xmlns:xs="http://www.w3.org/2001/XMLSchema">
  <xs:element name="iva">
    <xs:complexType>
      <xs:sequence>
        <xs:element name="TipoIDInformante" type="xs:string"/>
        <xs:element name="IdInformante">
          <xs:simpleType>
            <xs:restriction base="xs:string">
              <xs:pattern value="[0-9]{13}"/>
            </xs:restriction>
          </xs:simpleType>
        </xs:element>
        <xs:element name="razonSocial" type="xs:string"/>
        <xs:element name="Anio" type="xs:string"/>
        <xs:element name="Mes" type="xs:string"/>
        <xs:element name="numEstabRuc" type="xs:string"/>
        <xs:element name="totalVentas" type="xs:decimal"/>
        <xs:element name="codigoOperativo" type="xs:string"/>
        <xs:any minOccurs="0" maxOccurs="unbounded" processContents="skip"/>
      </xs:sequence>
    </xs:complexType>
  </xs:element>
</xs:schema>
"""


@pytest.fixture
def tenant():
    return make_tenant()


@pytest.fixture
def gateway(tenant):
    gateway = InMemoryPeriodGateway()
    gateway.add_tenant(tenant)
    return gateway


@pytest.fixture
def history_recorder():
    return InMemoryHistoryRecorder()


@pytest.fixture
def storage_dir(tmp_path):
    return str(tmp_path / "storage")


@pytest.fixture
def generator(gateway, history_recorder, storage_dir):
    return AtsGenerator(
        gateway=gateway,
        schema_validator=StructuralSchemaValidator(),
        history_recorder=history_recorder,
        packager=AtsPackager(storage_dir),
        enforce_reconciliation=True,
    )


@pytest.fixture
def xsd_path(tmp_path):
    path = tmp_path / "ats.xsd"
    path.write_text(MINIMAL_ATS_XSD, encoding="utf-8")
    return str(path)
