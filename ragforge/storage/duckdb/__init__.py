"""
DuckDB Query Layer

Predicate compilation and SQL queries over the Parquet datasets.
"""

from ragforge.storage.duckdb.queries import DuckDBQueries, PredicateCompiler

__all__ = ["DuckDBQueries", "PredicateCompiler"]
