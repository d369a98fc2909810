"""SQLite-backed index, queries and graph export for interconnected Org notes."""

__version__ = "0.2.0"
__all__ = ["database", "graph", "link_queries", "models", "node_queries", "rows", "schema", "writer"]