"""
Generic CRUD over dynamic tables: conditions, enrichment, executor.
"""

from .conditions import ConditionBuilder, MatchMode, SearchCondition, as_date
from .enrichment import EnrichmentPlan, ForeignKeyEnricher, find_matricula_column
from .executor import MutationResult, ReadResult, TableExecutor, annotate

__all__ = [
    "ConditionBuilder",
    "MatchMode",
    "SearchCondition",
    "as_date",
    "EnrichmentPlan",
    "ForeignKeyEnricher",
    "find_matricula_column",
    "MutationResult",
    "ReadResult",
    "TableExecutor",
    "annotate",
]
