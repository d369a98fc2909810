"""Read queries over indexed links and occurrence documents."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable, Iterator
from itertools import islice

from slipbox.models import (
    BacklinkRecord,
    ForwardLinkRecord,
    IndexedLink,
    OccurrenceDocumentRecord,
)
from slipbox.rows import (
    NODE_SELECT_COLUMN_COUNT,
    build_occurrence_fts_query,
    node_select_columns,
    parse_line_rows,
    row_to_node,
)

_LINK_LIMIT = 1_000


def _clamp(limit: int, upper: int) -> int:
    return min(max(limit, 1), upper)


def _first_per_node(rows: Iterable[tuple]) -> Iterator[tuple]:
    """Keep only the first row seen for each node key (the first selected column)."""
    seen: set[str] = set()
    for row in rows:
        if row[0] not in seen:
            seen.add(row[0])
            yield row


def _link_parts(row: tuple) -> tuple:
    base = NODE_SELECT_COLUMN_COUNT
    return row_to_node(row), row[base], row[base + 1], row[base + 2]


class LinkQueries:
    """Link and text occurrence lookups on an index connection."""

    def __init__(self, connection: sqlite3.Connection) -> None:
        self.connection = connection

    def _linked_nodes(
        self,
        alias: str,
        join_on: str,
        match_column: str,
        value: str,
        order_by: str,
        limit: int,
        unique: bool,
    ) -> list[tuple]:
        """Rows of node columns plus link position and preview.

        With ``unique`` the first link for each joined node is kept; the
        ordering already puts each node's earliest link first.
        """
        sql = (
            f"SELECT {node_select_columns(alias)}, l.line, l.column, l.preview"
            f" FROM links AS l JOIN nodes AS {alias} ON {join_on}"
            f" WHERE l.{match_column} = ? ORDER BY {order_by}"
        )
        limit = _clamp(limit, _LINK_LIMIT)
        if unique:
            return list(islice(_first_per_node(self.connection.execute(sql, (value,))), limit))
        return self.connection.execute(f"{sql} LIMIT ?", (value, limit)).fetchall()

    def backlinks(self, node_key: str, limit: int, unique: bool = False) -> list[BacklinkRecord]:
        """Links pointing at a node; with unique, the first one of each source."""
        found = self.connection.execute(
            "SELECT explicit_id FROM nodes WHERE node_key = ?", (node_key,)
        ).fetchone()
        explicit_id = found[0] if found else None
        if explicit_id is None:
            return []

        rows = self._linked_nodes(
            alias="n",
            join_on="n.node_key = l.source_node_key",
            match_column="destination_explicit_id",
            value=explicit_id,
            order_by="n.file_path, l.line, l.column",
            limit=limit,
            unique=unique,
        )
        records = []
        for row in rows:
            node, line, column, preview = _link_parts(row)
            records.append(BacklinkRecord(source_node=node, row=line, col=column, preview=preview))
        return records

    def forward_links(
        self, node_key: str, limit: int, unique: bool = False
    ) -> list[ForwardLinkRecord]:
        """Links out of a node to indexed nodes; with unique, one per destination."""
        rows = self._linked_nodes(
            alias="dest",
            join_on="dest.explicit_id = l.destination_explicit_id",
            match_column="source_node_key",
            value=node_key,
            order_by="l.line, l.column, dest.file_path, dest.line",
            limit=limit,
            unique=unique,
        )
        records = []
        for row in rows:
            node, line, column, preview = _link_parts(row)
            records.append(
                ForwardLinkRecord(destination_node=node, row=line, col=column, preview=preview)
            )
        return records

    def links_to_destination_in_file(
        self, file_path: str, destination_explicit_id: str
    ) -> list[IndexedLink]:
        """Links from nodes of one file to the given explicit ID."""
        link_columns = ", ".join(
            f"l.{name}"
            for name in (
                "source_node_key",
                "destination_explicit_id",
                "line",
                "column",
                "preview",
            )
        )
        sql = (
            f"SELECT {link_columns} FROM links AS l"
            " JOIN nodes AS n ON n.node_key = l.source_node_key"
            " WHERE n.file_path = ? AND l.destination_explicit_id = ?"
            " ORDER BY l.line, l.column"
        )
        return [
            IndexedLink(*row)
            for row in self.connection.execute(sql, (file_path, destination_explicit_id))
        ]

    def search_occurrence_document_paths(
        self, query: str, limit: int, offset: int = 0
    ) -> list[str]:
        """Paths of files whose text contains the query, one page at a time."""
        fts_query = build_occurrence_fts_query(query)
        if fts_query is None:
            return []
        sql = (
            "SELECT od.file_path FROM occurrence_document_fts"
            " JOIN occurrence_documents AS od ON od.id = occurrence_document_fts.rowid"
            " WHERE occurrence_document_fts MATCH ?"
            " ORDER BY od.file_path COLLATE NOCASE, od.file_path"
            " LIMIT ? OFFSET ?"
        )
        cursor = self.connection.execute(sql, (fts_query, _clamp(limit, _LINK_LIMIT), offset))
        return [path for (path,) in cursor]

    def occurrence_document(self, file_path: str) -> OccurrenceDocumentRecord | None:
        """The stored occurrence document of one file."""
        found = self.connection.execute(
            "SELECT file_path, search_text, line_rows_json"
            " FROM occurrence_documents WHERE file_path = ? LIMIT 1",
            (file_path,),
        ).fetchone()
        if found is None:
            return None
        path, search_text, line_rows_json = found
        return OccurrenceDocumentRecord(
            file_path=path,
            search_text=search_text,
            line_rows=parse_line_rows(line_rows_json),
        )