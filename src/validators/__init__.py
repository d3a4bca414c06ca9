"""
ATS Validators Package
"""
from .xml_validator import (
    SchemaManager, SchemaValidator, XsdSchemaValidator, StructuralSchemaValidator,
    ValidationIssue, ValidationOutcome, ValidationUtils, create_schema_validator
)
from .business_validator import BusinessValidator, BusinessValidationResult, create_business_validator

__all__ = [
    'SchemaManager', 'SchemaValidator', 'XsdSchemaValidator', 'StructuralSchemaValidator',
    'ValidationIssue', 'ValidationOutcome', 'ValidationUtils', 'create_schema_validator',
    'BusinessValidator', 'BusinessValidationResult', 'create_business_validator'
]
