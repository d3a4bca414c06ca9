"""
ATS Generation History
Records one entry per successful generation and lists them per company

File: src/services/history.py
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from config.ats_config import GenerationStatus
from src.models.database_models import GenerationHistory

logger = logging.getLogger(__name__)


@dataclass
class HistoryEntry:
    """Metadata of one generation"""
    tenant_id: int
    requested_by: int
    period: str
    file_name: str
    xml_path: str
    archive_path: str
    total_purchases: int = 0
    total_sales: int = 0
    total_exports: int = 0
    total_withholdings: int = 0
    xsd_valid: bool = False
    validation_errors: List[Dict] = field(default_factory=list)
    status: GenerationStatus = GenerationStatus.GENERATED
    generated_at: datetime = field(default_factory=datetime.now)
    id: Optional[int] = None

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'empresa_id': self.tenant_id,
            'usuario_id': self.requested_by,
            'periodo': self.period,
            'nombre_archivo': self.file_name,
            'ruta_archivo_xml': self.xml_path,
            'ruta_archivo_zip': self.archive_path,
            'total_compras': self.total_purchases,
            'total_ventas': self.total_sales,
            'total_exportaciones': self.total_exports,
            'total_retenciones': self.total_withholdings,
            'validacion_xsd': self.xsd_valid,
            'estado': self.status.value,
            'fecha_generacion': self.generated_at.isoformat(),
        }

# ========================================
# HISTORY RECORDERS
# ========================================

class HistoryRecorder(ABC):
    """Command side invoked once per successful generation"""

    @abstractmethod
    def record(self, entry: HistoryEntry) -> int:
        """Persist the entry and return its id"""

    @abstractmethod
    def list_history(
        self, tenant_id: int, period: Optional[str] = None, limit: int = 20, offset: int = 0
    ) -> List[HistoryEntry]:
        """Entries of a company, newest first"""


class SQLAlchemyHistoryRecorder(HistoryRecorder):
    """History stored in the historial_ats table"""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def record(self, entry: HistoryEntry) -> int:
        row = GenerationHistory(
            company_id=entry.tenant_id,
            requested_by=entry.requested_by,
            period=entry.period,
            file_name=entry.file_name,
            xml_path=entry.xml_path,
            archive_path=entry.archive_path,
            total_purchases=entry.total_purchases,
            total_sales=entry.total_sales,
            total_exports=entry.total_exports,
            total_withholdings=entry.total_withholdings,
            xsd_valid=entry.xsd_valid,
            validation_errors=json.dumps(entry.validation_errors, ensure_ascii=False),
            generated_at=entry.generated_at,
            status=entry.status,
        )

        with self.session_factory() as session:
            session.add(row)
            session.commit()
            history_id = row.id

        logger.info(f"Generation history recorded: {history_id} ({entry.period}, {entry.status.value})")
        return history_id

    def list_history(
        self, tenant_id: int, period: Optional[str] = None, limit: int = 20, offset: int = 0
    ) -> List[HistoryEntry]:
        query = select(GenerationHistory).where(GenerationHistory.company_id == tenant_id)
        if period:
            query = query.where(GenerationHistory.period == period)
        query = (
            query.order_by(GenerationHistory.generated_at.desc(), GenerationHistory.id.desc())
            .limit(limit)
            .offset(offset)
        )

        with self.session_factory() as session:
            return [self._to_entry(row) for row in session.scalars(query).all()]

    @staticmethod
    def _to_entry(row: GenerationHistory) -> HistoryEntry:
        return HistoryEntry(
            id=row.id,
            tenant_id=row.company_id,
            requested_by=row.requested_by,
            period=row.period,
            file_name=row.file_name,
            xml_path=row.xml_path,
            archive_path=row.archive_path,
            total_purchases=row.total_purchases or 0,
            total_sales=row.total_sales or 0,
            total_exports=row.total_exports or 0,
            total_withholdings=row.total_withholdings or 0,
            xsd_valid=bool(row.xsd_valid),
            validation_errors=json.loads(row.validation_errors) if row.validation_errors else [],
            status=row.status,
            generated_at=row.generated_at,
        )


class InMemoryHistoryRecorder(HistoryRecorder):
    """History kept in a list"""

    def __init__(self):
        self.entries: List[HistoryEntry] = []

    def record(self, entry: HistoryEntry) -> int:
        stored = replace(entry, id=len(self.entries) + 1)
        self.entries.append(stored)
        return stored.id

    def list_history(
        self, tenant_id: int, period: Optional[str] = None, limit: int = 20, offset: int = 0
    ) -> List[HistoryEntry]:
        entries = [
            entry for entry in self.entries
            if entry.tenant_id == tenant_id and (not period or entry.period == period)
        ]
        entries.sort(key=lambda entry: (entry.generated_at, entry.id), reverse=True)
        return entries[offset:offset + limit]
