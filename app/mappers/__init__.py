"""
app/mappers package marker.
"""

from app.mappers.column_mapper import AUTO_MAP_THRESHOLD, ColumnMapper, normalize_header
from app.mappers.similarity import levenshtein_distance, similarity

__all__ = [
    "AUTO_MAP_THRESHOLD",
    "ColumnMapper",
    "levenshtein_distance",
    "normalize_header",
    "similarity",
]
