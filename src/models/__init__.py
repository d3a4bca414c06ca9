"""
ATS Models Package
"""
from .database_models import *

__all__ = [
    'Base', 'Company', 'Purchase', 'Sale', 'Export', 'Withholding',
    'GenerationHistory', 'create_all_tables'
]
