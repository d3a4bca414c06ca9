"""
ATS Database Models
SQLAlchemy ORM models for the tables the ATS engine reads from and the
generation history it writes to.

Purchases, sales, exports and withholdings are maintained by the CRUD
services; the engine only reads them.

File: src/models/database_models.py
"""

from sqlalchemy import (
    Column, Integer, String, Text, Date, DateTime, Numeric, Boolean,
    ForeignKey, Index, CheckConstraint, Enum as SQLEnum
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

from config.ats_config import RecordState, TaxKind, EmissionType, GenerationStatus

Base = declarative_base()

# ========================================
# TAXPAYER MODELS
# ========================================

class Company(Base):
    """
    Declaring company (Empresa)
    Each company is an isolated tenant
    """
    __tablename__ = 'empresas'

    id = Column(Integer, primary_key=True)
    ruc = Column(String(13), unique=True, nullable=False, index=True)
    legal_name = Column(String(300), nullable=False)
    commercial_name = Column(String(300))
    tax_regime = Column(String(10), default='GENERAL')  # RISE, GENERAL, RIMPE
    status = Column(String(20), default='ACTIVO')

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    # Relationships
    purchases = relationship("Purchase", back_populates="company")
    sales = relationship("Sale", back_populates="company")
    exports = relationship("Export", back_populates="company")
    withholdings = relationship("Withholding", back_populates="company")
    generation_history = relationship("GenerationHistory", back_populates="company")

# ========================================
# TRANSACTION MODELS
# ========================================

class Purchase(Base):
    """
    Purchase documents (Compras)
    """
    __tablename__ = 'compras'

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey('empresas.id'), nullable=False)
    period = Column(String(7), nullable=False)  # MM/YYYY

    # Document identification
    support_code = Column(String(2), nullable=False)
    document_type = Column(String(2), nullable=False)
    supplier_id_type = Column(String(2), nullable=False)
    supplier_id = Column(String(20), nullable=False)
    supplier_name = Column(String(300), nullable=False)
    emission_date = Column(Date, nullable=False)
    registration_date = Column(Date, nullable=False)
    establishment = Column(String(3), nullable=False)
    point_of_emission = Column(String(3), nullable=False)
    sequential = Column(String(9), nullable=False)
    authorization = Column(String(49), nullable=False)

    # Amounts
    zero_rated_base = Column(Numeric(12, 2), default=0)
    iva_base = Column(Numeric(12, 2), default=0)
    non_object_base = Column(Numeric(12, 2), default=0)
    exempt_base = Column(Numeric(12, 2), default=0)
    iva_amount = Column(Numeric(12, 2), default=0)
    ice_amount = Column(Numeric(12, 2), default=0)
    total = Column(Numeric(12, 2), nullable=False)

    # Payment
    payment_method = Column(String(2))
    foreign_payment_country = Column(String(3))
    double_taxation_treaty = Column(Boolean, default=False)

    state = Column(SQLEnum(RecordState), default=RecordState.DRAFT, nullable=False)
    created_at = Column(DateTime, default=func.now())

    # Relationships
    company = relationship("Company", back_populates="purchases")
    withholdings = relationship("Withholding", back_populates="purchase")

    __table_args__ = (
        Index('idx_compra_empresa_periodo', 'company_id', 'period'),
        Index('idx_compra_estado', 'state'),
        CheckConstraint('total >= 0', name='check_compra_total'),
    )


class Sale(Base):
    """
    Sales documents (Ventas)
    """
    __tablename__ = 'ventas'

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey('empresas.id'), nullable=False)
    period = Column(String(7), nullable=False)

    document_type = Column(String(2), nullable=False)
    customer_id_type = Column(String(2), nullable=False)
    customer_id = Column(String(20), nullable=False)
    customer_name = Column(String(300), nullable=False)
    emission_date = Column(Date, nullable=False)
    establishment = Column(String(3), nullable=False)
    point_of_emission = Column(String(3), nullable=False)
    sequential = Column(String(9), nullable=False)
    authorization = Column(String(49))

    zero_rated_base = Column(Numeric(12, 2), default=0)
    iva_base = Column(Numeric(12, 2), default=0)
    non_object_base = Column(Numeric(12, 2), default=0)
    exempt_base = Column(Numeric(12, 2), default=0)
    iva_amount = Column(Numeric(12, 2), default=0)
    ice_amount = Column(Numeric(12, 2), default=0)
    withheld_iva = Column(Numeric(12, 2), default=0)
    withheld_income_tax = Column(Numeric(12, 2), default=0)
    total = Column(Numeric(12, 2), nullable=False)

    payment_method = Column(String(2))
    emission_type = Column(SQLEnum(EmissionType), default=EmissionType.ELECTRONIC, nullable=False)

    state = Column(SQLEnum(RecordState), default=RecordState.DRAFT, nullable=False)
    created_at = Column(DateTime, default=func.now())

    company = relationship("Company", back_populates="sales")

    __table_args__ = (
        Index('idx_venta_empresa_periodo', 'company_id', 'period'),
        Index('idx_venta_cliente', 'customer_id'),
        CheckConstraint('total >= 0', name='check_venta_total'),
    )


class Export(Base):
    """
    Export documents (Exportaciones)
    """
    __tablename__ = 'exportaciones'

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey('empresas.id'), nullable=False)
    period = Column(String(7), nullable=False)

    document_type = Column(String(2), nullable=False)
    emission_date = Column(Date, nullable=False)
    establishment = Column(String(3), nullable=False)
    point_of_emission = Column(String(3), nullable=False)
    sequential = Column(String(9), nullable=False)
    authorization = Column(String(49))

    buyer_id_type = Column(String(2), nullable=False)
    buyer_id = Column(String(20), nullable=False)
    buyer_name = Column(String(300), nullable=False)
    destination_country = Column(String(3), nullable=False)
    payment_country = Column(String(3))
    fiscal_regime_type = Column(String(2))

    fob_value = Column(Numeric(12, 2), nullable=False)
    fob_offset_value = Column(Numeric(12, 2), default=0)
    emission_type = Column(SQLEnum(EmissionType), default=EmissionType.ELECTRONIC, nullable=False)

    state = Column(SQLEnum(RecordState), default=RecordState.DRAFT, nullable=False)
    created_at = Column(DateTime, default=func.now())

    company = relationship("Company", back_populates="exports")

    __table_args__ = (
        Index('idx_exportacion_empresa_periodo', 'company_id', 'period'),
        CheckConstraint('fob_value >= 0', name='check_exportacion_fob'),
    )


class Withholding(Base):
    """
    Withholding vouchers issued to suppliers (Retenciones)
    """
    __tablename__ = 'retenciones'

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey('empresas.id'), nullable=False)
    purchase_id = Column(Integer, ForeignKey('compras.id'))
    period = Column(String(7), nullable=False)

    establishment = Column(String(3), nullable=False)
    point_of_emission = Column(String(3), nullable=False)
    sequential = Column(String(9), nullable=False)
    authorization = Column(String(49), nullable=False)
    emission_date = Column(Date, nullable=False)

    tax_kind = Column(SQLEnum(TaxKind), nullable=False)
    code = Column(String(10), nullable=False)
    base_amount = Column(Numeric(12, 2), nullable=False)
    percentage = Column(Numeric(5, 2), nullable=False)
    withheld_amount = Column(Numeric(12, 2), nullable=False)

    state = Column(SQLEnum(RecordState), default=RecordState.DRAFT, nullable=False)
    created_at = Column(DateTime, default=func.now())

    company = relationship("Company", back_populates="withholdings")
    purchase = relationship("Purchase", back_populates="withholdings")

    __table_args__ = (
        Index('idx_retencion_empresa_periodo', 'company_id', 'period'),
        Index('idx_retencion_compra', 'purchase_id'),
    )

# ========================================
# GENERATION HISTORY
# ========================================

class GenerationHistory(Base):
    """
    One row per successful ATS generation (Historial ATS)
    """
    __tablename__ = 'historial_ats'

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey('empresas.id'), nullable=False)
    requested_by = Column(Integer, nullable=False)
    period = Column(String(7), nullable=False)

    file_name = Column(String(100), nullable=False)
    xml_path = Column(String(500), nullable=False)
    archive_path = Column(String(500), nullable=False)

    total_purchases = Column(Integer, default=0)
    total_sales = Column(Integer, default=0)
    total_exports = Column(Integer, default=0)
    total_withholdings = Column(Integer, default=0)

    xsd_valid = Column(Boolean, nullable=False, default=False)
    validation_errors = Column(Text)  # JSON encoded error list

    generated_at = Column(DateTime, nullable=False, default=func.now())
    status = Column(SQLEnum(GenerationStatus), nullable=False, default=GenerationStatus.GENERATED)

    company = relationship("Company", back_populates="generation_history")

    __table_args__ = (
        Index('idx_historial_empresa_periodo', 'company_id', 'period'),
        Index('idx_historial_fecha', 'generated_at'),
        CheckConstraint('total_purchases >= 0', name='check_historial_compras'),
        CheckConstraint('total_sales >= 0', name='check_historial_ventas'),
    )

# ========================================
# UTILITY FUNCTIONS
# ========================================

def create_all_tables(engine):
    """
    Create all database tables
    """
    Base.metadata.create_all(engine)
