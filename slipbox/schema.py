"""Creation and versioning of the index database schema."""

from __future__ import annotations

import sqlite3

SCHEMA_VERSION = 12


class SchemaError(RuntimeError):
    """The database schema cannot be used by this version of the store."""


_PRAGMAS = (
    ("journal_mode", "WAL"),
    ("foreign_keys", "ON"),
    ("synchronous", "NORMAL"),
)

# Tables that depend on others come first so they are removed before them.
_DROP_ORDER = (
    "links",
    "aliases",
    "tags",
    "refs",
    "occurrence_document_fts",
    "occurrence_documents",
    "node_fts",
    "nodes",
    "files",
)

# Each entry is (name, column definitions, fts5 options or None for a plain table).
_TABLES: tuple[tuple[str, tuple[str, ...], tuple[str, ...] | None], ...] = (
    (
        "files",
        ("path TEXT PRIMARY KEY", "title TEXT NOT NULL", "mtime_ns INTEGER NOT NULL"),
        None,
    ),
    (
        "nodes",
        (
            "id INTEGER PRIMARY KEY",
            "node_key TEXT NOT NULL UNIQUE",
            "explicit_id TEXT UNIQUE",
            *(f"{name} TEXT NOT NULL" for name in (
                "file_path", "title", "outline_path",
                "aliases_json", "tags_json", "refs_json",
            )),
            *(f"{name} TEXT" for name in (
                "todo_keyword", "scheduled_for", "deadline_for", "closed_at",
            )),
            "level INTEGER NOT NULL",
            "line INTEGER NOT NULL",
            "kind TEXT NOT NULL",
        ),
        None,
    ),
    (
        "node_fts",
        ("title", "outline_path", "file_path", "alias_text", "ref_text", "tag_text"),
        (),
    ),
    (
        "occurrence_documents",
        (
            "id INTEGER PRIMARY KEY",
            "file_path TEXT NOT NULL UNIQUE",
            "search_text TEXT NOT NULL",
            "line_rows_json TEXT NOT NULL",
        ),
        None,
    ),
    (
        "occurrence_document_fts",
        ("search_text",),
        (
            "content='occurrence_documents'",
            "content_rowid='id'",
            "tokenize='trigram'",
        ),
    ),
    ("refs", ("node_key TEXT NOT NULL", "ref TEXT NOT NULL"), None),
    ("aliases", ("node_key TEXT NOT NULL", "alias TEXT NOT NULL"), None),
    ("tags", ("node_key TEXT NOT NULL", "tag TEXT NOT NULL"), None),
    (
        "links",
        (
            "source_node_key TEXT NOT NULL",
            "destination_explicit_id TEXT NOT NULL",
            "line INTEGER NOT NULL",
            "column INTEGER NOT NULL",
            "preview TEXT NOT NULL",
        ),
        None,
    ),
)

# Each entry is (index name, table, indexed expression, partial-index condition).
_INDEXES: tuple[tuple[str, str, str, str | None], ...] = (
    ("idx_nodes_file_path", "nodes", "file_path", None),
    ("idx_nodes_title", "nodes", "title", None),
    ("idx_nodes_title_nocase", "nodes", "title COLLATE NOCASE", None),
    ("idx_occurrence_documents_file_path", "occurrence_documents", "file_path", None),
    ("idx_nodes_explicit_id", "nodes", "explicit_id", "explicit_id IS NOT NULL"),
    ("idx_links_source_node_key", "links", "source_node_key", None),
    ("idx_links_destination_explicit_id", "links", "destination_explicit_id", None),
    ("idx_refs_ref", "refs", "ref", None),
    ("idx_aliases_alias", "aliases", "alias", None),
    ("idx_aliases_alias_nocase", "aliases", "alias COLLATE NOCASE", None),
    ("idx_tags_tag", "tags", "tag", None),
    ("idx_nodes_scheduled_for", "nodes", "scheduled_for", "scheduled_for IS NOT NULL"),
    ("idx_nodes_deadline_for", "nodes", "deadline_for", "deadline_for IS NOT NULL"),
)


def _table_statement(name: str, columns: tuple[str, ...], fts: tuple[str, ...] | None) -> str:
    body = ", ".join((*columns, *(fts or ())))
    if fts is None:
        return f"CREATE TABLE IF NOT EXISTS {name} ({body});"
    return f"CREATE VIRTUAL TABLE IF NOT EXISTS {name} USING fts5({body});"


def _index_statement(name: str, table: str, expression: str, condition: str | None) -> str:
    statement = f"CREATE INDEX IF NOT EXISTS {name} ON {table} ({expression})"
    if condition:
        statement += f" WHERE {condition}"
    return statement + ";"


def _schema_script() -> str:
    statements = [f"PRAGMA {key} = {value};" for key, value in _PRAGMAS]
    statements += [f"DROP TABLE IF EXISTS {name};" for name in _DROP_ORDER]
    statements += [_table_statement(*table) for table in _TABLES]
    statements += [_index_statement(*index) for index in _INDEXES]
    statements.append(f"PRAGMA user_version = {SCHEMA_VERSION};")
    return "\n".join(statements)


def _user_version(connection: sqlite3.Connection) -> int:
    return connection.execute("PRAGMA user_version").fetchone()[0]


def migrate(connection: sqlite3.Connection) -> None:
    """Bring the schema up to date, rebuilding it when it is older."""
    version = _user_version(connection)
    if version > SCHEMA_VERSION:
        raise SchemaError(
            f"database schema version {version} is newer than "
            f"supported version {SCHEMA_VERSION}"
        )
    if version < SCHEMA_VERSION:
        rebuild_schema(connection)


def rebuild_schema(connection: sqlite3.Connection) -> None:
    """Drop every index table and create the current schema from scratch."""
    connection.executescript(_schema_script())