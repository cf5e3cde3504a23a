"""
app/validators package marker.
"""

from app.validators.case_row_validator import CaseRowValidator
from app.validators.fix_helpers import FIX_HELPERS, get_fix_helper
from app.validators.mapping_validator import MappingErrorDetail, MappingValidator, SchemaMappingError

__all__ = [
    "CaseRowValidator",
    "FIX_HELPERS",
    "get_fix_helper",
    "MappingErrorDetail",
    "MappingValidator",
    "SchemaMappingError",
]
