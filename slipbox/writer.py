"""Writing scanned files into the index, and removing them from it."""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterable, Iterator
from contextlib import contextmanager

from slipbox.models import IndexedFile, IndexStats


def _to_json(values: list) -> str:
    return json.dumps(values, ensure_ascii=False, separators=(",", ":"))


@contextmanager
def _transaction(connection: sqlite3.Connection) -> Iterator[None]:
    """Run a block in a transaction, unless one is already open."""
    began = not connection.in_transaction
    if began:
        connection.execute("BEGIN")
    try:
        yield
    except BaseException:
        if began:
            connection.rollback()
        raise
    if began:
        connection.commit()


_DELETE_STATEMENTS = (
    """DELETE FROM aliases
        WHERE node_key IN (SELECT node_key FROM nodes WHERE file_path = ?1)""",
    """DELETE FROM tags
        WHERE node_key IN (SELECT node_key FROM nodes WHERE file_path = ?1)""",
    """DELETE FROM refs
        WHERE node_key IN (SELECT node_key FROM nodes WHERE file_path = ?1)""",
    """DELETE FROM links
        WHERE source_node_key IN (SELECT node_key FROM nodes WHERE file_path = ?1)""",
    """DELETE FROM occurrence_document_fts
        WHERE rowid IN (SELECT id FROM occurrence_documents WHERE file_path = ?1)""",
    "DELETE FROM occurrence_documents WHERE file_path = ?1",
    """DELETE FROM node_fts
        WHERE rowid IN (SELECT id FROM nodes WHERE file_path = ?1)""",
    "DELETE FROM nodes WHERE file_path = ?1",
    "DELETE FROM files WHERE path = ?1",
)


def delete_file_rows(connection: sqlite3.Connection, file_path: str) -> None:
    """Remove every indexed row that belongs to one file."""
    with _transaction(connection):
        for statement in _DELETE_STATEMENTS:
            connection.execute(statement, (file_path,))


def _insert_nodes(connection: sqlite3.Connection, indexed_file: IndexedFile) -> None:
    for node in indexed_file.nodes:
        cursor = connection.execute(
            """INSERT INTO nodes (
                 node_key, explicit_id, file_path, title, outline_path,
                 aliases_json, tags_json, refs_json, todo_keyword,
                 scheduled_for, deadline_for, closed_at, level, line, kind
               )
               VALUES (?1, ?2, ?3, ?4, ?5, ?6, ?7, ?8, ?9, ?10, ?11, ?12, ?13, ?14, ?15)""",
            (
                node.node_key,
                node.explicit_id,
                node.file_path,
                node.title,
                node.outline_path,
                _to_json(node.aliases),
                _to_json(node.tags),
                _to_json(node.refs),
                node.todo_keyword,
                node.scheduled_for,
                node.deadline_for,
                node.closed_at,
                node.level,
                node.line,
                node.kind.value,
            ),
        )
        connection.execute(
            """INSERT INTO node_fts
                 (rowid, title, outline_path, file_path, alias_text, ref_text, tag_text)
               VALUES (?1, ?2, ?3, ?4, ?5, ?6, ?7)""",
            (
                cursor.lastrowid,
                node.title,
                node.outline_path,
                node.file_path,
                " ".join(node.aliases),
                " ".join(node.refs),
                " ".join(node.tags),
            ),
        )
        connection.executemany(
            "INSERT INTO refs (node_key, ref) VALUES (?1, ?2)",
            [(node.node_key, reference) for reference in node.refs],
        )
        connection.executemany(
            "INSERT INTO aliases (node_key, alias) VALUES (?1, ?2)",
            [(node.node_key, alias) for alias in node.aliases],
        )
        connection.executemany(
            "INSERT INTO tags (node_key, tag) VALUES (?1, ?2)",
            [(node.node_key, tag) for tag in node.tags],
        )


def replace_file_index(
    connection: sqlite3.Connection, indexed_file: IndexedFile
) -> IndexStats:
    """Replace everything indexed for one file with the given scan result."""
    with _transaction(connection):
        delete_file_rows(connection, indexed_file.file_path)
        connection.execute(
            "INSERT INTO files (path, title, mtime_ns) VALUES (?1, ?2, ?3)",
            (indexed_file.file_path, indexed_file.title, indexed_file.mtime_ns),
        )
        _insert_nodes(connection, indexed_file)
        connection.executemany(
            """INSERT INTO links
                 (source_node_key, destination_explicit_id, line, column, preview)
               VALUES (?1, ?2, ?3, ?4, ?5)""",
            [
                (
                    link.source_node_key,
                    link.destination_explicit_id,
                    link.line,
                    link.column,
                    link.preview,
                )
                for link in indexed_file.links
            ],
        )
        document = indexed_file.occurrence_document
        if document is not None:
            cursor = connection.execute(
                """INSERT INTO occurrence_documents (file_path, search_text, line_rows_json)
                   VALUES (?1, ?2, ?3)""",
                (document.file_path, document.search_text, _to_json(document.line_rows)),
            )
            connection.execute(
                "INSERT INTO occurrence_document_fts (rowid, search_text) VALUES (?1, ?2)",
                (cursor.lastrowid, document.search_text),
            )

    return IndexStats(
        files_indexed=1,
        nodes_indexed=len(indexed_file.nodes),
        links_indexed=len(indexed_file.links),
    )


def prune_missing_files(
    connection: sqlite3.Connection, present_paths: Iterable[str]
) -> None:
    """Remove every indexed file whose path is not among the present ones."""
    present = set(present_paths)
    indexed_paths = [path for (path,) in connection.execute("SELECT path FROM files")]
    for path in indexed_paths:
        if path not in present:
            delete_file_rows(connection, path)