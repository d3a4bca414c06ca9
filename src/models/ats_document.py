"""
ATS Document Schema
Typed in-memory tree mirroring the SRI ATS XML schema. One dataclass per XML
section; every field carries its XML tag and fields are declared in schema
order. Optional fields left as None are not rendered.

File: src/models/ats_document.py
"""

from dataclasses import dataclass, field
from typing import List, Optional
import re

from config.ats_config import ValidationRules
from src.exceptions import DocumentMappingError

MONEY_PATTERN = re.compile(r'^-?\d+\.\d{2}$')


def xml_field(tag: str, item_tag: Optional[str] = None, **kwargs):
    """Dataclass field bound to an XML tag (item_tag for repeated children)"""
    return field(metadata={'tag': tag, 'item_tag': item_tag}, **kwargs)


def _require_series(section: str, name: str, value: str) -> None:
    if not ValidationRules.SERIES_PATTERN.match(value or ""):
        raise DocumentMappingError(
            f"{section}: {name} debe tener 3 dígitos",
            details=[{"section": section, "field": name, "value": value}]
        )


def _require_money(section: str, *pairs) -> None:
    for name, value in pairs:
        if value is not None and not MONEY_PATTERN.match(value):
            raise DocumentMappingError(
                f"{section}: {name} debe tener 2 decimales",
                details=[{"section": section, "field": name, "value": value}]
            )


def _require_sequential(section: str, name: str, value: int) -> None:
    if not isinstance(value, int) or value < 0:
        raise DocumentMappingError(
            f"{section}: {name} debe ser un entero no negativo",
            details=[{"section": section, "field": name, "value": value}]
        )

# ========================================
# PURCHASES
# ========================================

@dataclass
class ForeignPayment:
    payment_locality: str = xml_field('pagoLocExt')
    payment_country: str = xml_field('paisEfecPago')
    treaty_applies: str = xml_field('aplicConvDobTrib')
    subject_to_withholding: str = xml_field('pagExtSujRetNorLeg')


@dataclass
class IncomeWithholdingDetail:
    code: str = xml_field('codRetAir')
    base_amount: str = xml_field('baseImpAir')
    percentage: str = xml_field('porcentajeAir')
    withheld_amount: str = xml_field('valRetAir')

    def __post_init__(self):
        _require_money(
            'detalleAir',
            ('baseImpAir', self.base_amount),
            ('porcentajeAir', self.percentage),
            ('valRetAir', self.withheld_amount),
        )


@dataclass
class PurchaseDetail:
    support_code: str = xml_field('codSustento')
    supplier_id_type: str = xml_field('tpIdProv')
    supplier_id: str = xml_field('idProv')
    document_type: str = xml_field('tipoComprobante')
    related_party: str = xml_field('parteRel')
    registration_date: str = xml_field('fechaRegistro')
    establishment: str = xml_field('establecimiento')
    point_of_emission: str = xml_field('puntoEmision')
    sequential: int = xml_field('secuencial')
    emission_date: str = xml_field('fechaEmision')
    authorization: str = xml_field('autorizacion')
    zero_rated_base: str = xml_field('baseNoGraIva')
    non_object_base: str = xml_field('baseImponible')
    iva_base: str = xml_field('baseImpGrav')
    exempt_base: str = xml_field('baseImpExe')
    ice_amount: str = xml_field('montoIce')
    iva_amount: str = xml_field('montoIva')
    withheld_goods_10: str = xml_field('valRetBien10')
    withheld_services_20: str = xml_field('valRetServ20')
    withheld_goods: str = xml_field('valorRetBienes')
    withheld_services_50: str = xml_field('valRetServ50')
    withheld_services: str = xml_field('valorRetServicios')
    withheld_services_100: str = xml_field('valRetServ100')
    reimbursement_base: str = xml_field('totbasesImpReemb')
    foreign_payment: ForeignPayment = xml_field('pagoExterior')
    payment_methods: Optional[List[str]] = xml_field('formasDePago', item_tag='formaPago', default=None)
    income_withholdings: Optional[List[IncomeWithholdingDetail]] = xml_field('air', item_tag='detalleAir', default=None)
    withholding_establishment: Optional[str] = xml_field('estabRetencion1', default=None)
    withholding_point_of_emission: Optional[str] = xml_field('ptoEmiRetencion1', default=None)
    withholding_sequential: Optional[int] = xml_field('secRetencion1', default=None)
    withholding_authorization: Optional[str] = xml_field('autRetencion1', default=None)
    withholding_emission_date: Optional[str] = xml_field('fechaEmiRet1', default=None)

    def __post_init__(self):
        _require_series('detalleCompras', 'establecimiento', self.establishment)
        _require_series('detalleCompras', 'puntoEmision', self.point_of_emission)
        _require_sequential('detalleCompras', 'secuencial', self.sequential)
        _require_money(
            'detalleCompras',
            ('baseNoGraIva', self.zero_rated_base),
            ('baseImponible', self.non_object_base),
            ('baseImpGrav', self.iva_base),
            ('baseImpExe', self.exempt_base),
            ('montoIce', self.ice_amount),
            ('montoIva', self.iva_amount),
            ('valRetBien10', self.withheld_goods_10),
            ('valRetServ20', self.withheld_services_20),
            ('valorRetBienes', self.withheld_goods),
            ('valRetServ50', self.withheld_services_50),
            ('valorRetServicios', self.withheld_services),
            ('valRetServ100', self.withheld_services_100),
        )
        if self.withholding_sequential is not None:
            _require_series('detalleCompras', 'estabRetencion1', self.withholding_establishment)
            _require_series('detalleCompras', 'ptoEmiRetencion1', self.withholding_point_of_emission)
            _require_sequential('detalleCompras', 'secRetencion1', self.withholding_sequential)

# ========================================
# SALES
# ========================================

@dataclass
class SaleDetail:
    customer_id_type: str = xml_field('tpIdCliente')
    customer_id: str = xml_field('idCliente')
    related_party: str = xml_field('parteRelVtas')
    document_type: str = xml_field('tipoComprobante')
    emission_type: str = xml_field('tipoEmision')
    document_count: int = xml_field('numeroComprobantes')
    zero_rated_base: str = xml_field('baseNoGraIva')
    taxable_base: str = xml_field('baseImponible')
    iva_base: str = xml_field('baseImpGrav')
    iva_amount: str = xml_field('montoIva')
    ice_amount: str = xml_field('montoIce')
    withheld_iva: str = xml_field('valorRetIva')
    withheld_income_tax: str = xml_field('valorRetRenta')
    payment_methods: Optional[List[str]] = xml_field('formasDePago', item_tag='formaPago', default=None)

    def __post_init__(self):
        if not isinstance(self.document_count, int) or self.document_count < 1:
            raise DocumentMappingError(
                "detalleVentas: numeroComprobantes debe ser mayor a cero",
                details=[{"section": "detalleVentas", "field": "numeroComprobantes"}]
            )
        _require_money(
            'detalleVentas',
            ('baseNoGraIva', self.zero_rated_base),
            ('baseImponible', self.taxable_base),
            ('baseImpGrav', self.iva_base),
            ('montoIva', self.iva_amount),
            ('montoIce', self.ice_amount),
            ('valorRetIva', self.withheld_iva),
            ('valorRetRenta', self.withheld_income_tax),
        )


@dataclass
class SalesByLocationEntry:
    establishment: str = xml_field('codEstab')
    total: str = xml_field('ventasEstab')

    def __post_init__(self):
        _require_series('ventaEst', 'codEstab', self.establishment)
        _require_money('ventaEst', ('ventasEstab', self.total))

# ========================================
# EXPORTS
# ========================================

@dataclass
class ExportDetail:
    buyer_id_type: str = xml_field('tpIdClienteEx')
    buyer_id: str = xml_field('idClienteEx')
    related_party: str = xml_field('parteRelExp')
    document_type: str = xml_field('tipoComprobante')
    emission_type: str = xml_field('tipoEmision')
    fiscal_regime_type: str = xml_field('tipoRegi')
    destination_country: str = xml_field('paisEfecExp')
    export_of: str = xml_field('exportacionDe')
    fob_value: str = xml_field('valorFOB')
    fob_document_value: str = xml_field('valorFOBComprobante')
    establishment: str = xml_field('establecimiento')
    point_of_emission: str = xml_field('puntoEmision')
    sequential: int = xml_field('secuencial')
    authorization: str = xml_field('autorizacion')
    emission_date: str = xml_field('fechaEmision')
    payment_country: Optional[str] = xml_field('paisEfecPagoParFis', default=None)

    def __post_init__(self):
        _require_series('detalleExportaciones', 'establecimiento', self.establishment)
        _require_series('detalleExportaciones', 'puntoEmision', self.point_of_emission)
        _require_sequential('detalleExportaciones', 'secuencial', self.sequential)
        _require_money(
            'detalleExportaciones',
            ('valorFOB', self.fob_value),
            ('valorFOBComprobante', self.fob_document_value),
        )

# ========================================
# VOIDED DOCUMENTS
# ========================================

@dataclass
class VoidedDetail:
    document_type: str = xml_field('tipoComprobante')
    establishment: str = xml_field('establecimiento')
    point_of_emission: str = xml_field('puntoEmision')
    sequential_start: int = xml_field('secuencialInicio')
    sequential_end: int = xml_field('secuencialFin')
    authorization: str = xml_field('autorizacion')

    def __post_init__(self):
        _require_series('detalleAnulados', 'establecimiento', self.establishment)
        _require_series('detalleAnulados', 'puntoEmision', self.point_of_emission)
        _require_sequential('detalleAnulados', 'secuencialInicio', self.sequential_start)
        _require_sequential('detalleAnulados', 'secuencialFin', self.sequential_end)
        if self.sequential_end < self.sequential_start:
            raise DocumentMappingError(
                "detalleAnulados: secuencialFin menor que secuencialInicio",
                details=[{"section": "detalleAnulados", "field": "secuencialFin"}]
            )

# ========================================
# ROOT
# ========================================

@dataclass
class AtsDocument:
    """<iva> root: informant header plus optional sections"""
    informant_id_type: str = xml_field('TipoIDInformante')
    informant_id: str = xml_field('IdInformante')
    legal_name: str = xml_field('razonSocial')
    year: str = xml_field('Anio')
    month: str = xml_field('Mes')
    establishment_count: str = xml_field('numEstabRuc')
    total_sales: str = xml_field('totalVentas')
    operative_code: str = xml_field('codigoOperativo')
    purchases: Optional[List[PurchaseDetail]] = xml_field('compras', item_tag='detalleCompras', default=None)
    sales: Optional[List[SaleDetail]] = xml_field('ventas', item_tag='detalleVentas', default=None)
    sales_by_location: Optional[List[SalesByLocationEntry]] = xml_field(
        'ventasEstablecimiento', item_tag='ventaEst', default=None
    )
    exports: Optional[List[ExportDetail]] = xml_field(
        'exportaciones', item_tag='detalleExportaciones', default=None
    )
    voided: Optional[List[VoidedDetail]] = xml_field('anulados', item_tag='detalleAnulados', default=None)

    def __post_init__(self):
        if self.informant_id_type not in ('R', 'C', 'P'):
            raise DocumentMappingError(
                "TipoIDInformante inválido",
                details=[{"field": "TipoIDInformante", "value": self.informant_id_type}]
            )
        if not ValidationRules.MONTH_PATTERN.match(self.month or ""):
            raise DocumentMappingError("Mes inválido", details=[{"field": "Mes", "value": self.month}])
        if not (self.year or "").isdigit() or len(self.year) != 4:
            raise DocumentMappingError("Anio inválido", details=[{"field": "Anio", "value": self.year}])
        _require_money('iva', ('totalVentas', self.total_sales))

        # Empty sections are never emitted
        for name in ('purchases', 'sales', 'sales_by_location', 'exports', 'voided'):
            if getattr(self, name) == []:
                setattr(self, name, None)
