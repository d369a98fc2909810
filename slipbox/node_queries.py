"""Read queries over indexed nodes, files, tags and agenda entries."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable, Sequence
from typing import Any

from slipbox.models import FileRecord, IndexStats, NodeRecord, SearchNodesSort
from slipbox.rows import (
    build_fts_query,
    escape_like_pattern,
    node_select_columns,
    row_to_node,
    search_nodes_order_by,
)


def _clamp(limit: int, upper: int) -> int:
    return min(max(limit, 1), upper)


class NodeQueries:
    """Node, file, tag and agenda lookups on an index connection."""

    def __init__(self, connection: sqlite3.Connection) -> None:
        self.connection = connection

    def _nodes(self, sql: str, params: Sequence[Any] = ()) -> list[NodeRecord]:
        return [row_to_node(row) for row in self.connection.execute(sql, params)]

    def _first_node(self, sql: str, params: Sequence[Any] = ()) -> NodeRecord | None:
        row = self.connection.execute(sql, params).fetchone()
        return None if row is None else row_to_node(row)

    def _count(self, table: str) -> int:
        return self.connection.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]

    def stats(self) -> IndexStats:
        """Counts of indexed files, nodes and links."""
        return IndexStats(
            files_indexed=self._count("files"),
            nodes_indexed=self._count("nodes"),
            links_indexed=self._count("links"),
        )

    def indexed_files(self) -> list[str]:
        """Paths of every indexed file, sorted."""
        return [path for (path,) in self.connection.execute("SELECT path FROM files ORDER BY path")]

    def agenda_nodes(self, start: str, end: str, limit: int) -> list[NodeRecord]:
        """Nodes scheduled or due between two timestamps, inclusive."""
        sql = f"""SELECT {node_select_columns("n")}
                    FROM nodes AS n
                   WHERE (n.scheduled_for IS NOT NULL
                          AND n.scheduled_for >= ?1 AND n.scheduled_for <= ?2)
                      OR (n.deadline_for IS NOT NULL
                          AND n.deadline_for >= ?1 AND n.deadline_for <= ?2)
                   ORDER BY COALESCE(n.scheduled_for, n.deadline_for), n.file_path, n.line
                   LIMIT ?3"""
        return self._nodes(sql, (start, end, _clamp(limit, 500)))

    def search_files(self, query: str, limit: int) -> list[FileRecord]:
        """Indexed files whose path or title contains the query, ignoring case."""
        rows = self.connection.execute(
            """SELECT f.path,
                      f.title,
                      f.mtime_ns,
                      COALESCE(
                        (SELECT COUNT(*)
                           FROM nodes AS count_nodes
                          WHERE count_nodes.file_path = f.path),
                        0
                      ) AS node_count
                 FROM files AS f
                WHERE (?1 = ''
                       OR instr(lower(f.path), lower(?1)) > 0
                       OR instr(lower(f.title), lower(?1)) > 0)
                ORDER BY f.path COLLATE NOCASE, f.path
                LIMIT ?2""",
            (query.strip(), _clamp(limit, 200)),
        )
        return [
            FileRecord(file_path=path, title=title, mtime_ns=mtime_ns, node_count=count)
            for path, title, mtime_ns, count in rows
        ]

    def search_nodes(
        self, query: str, limit: int, sort: SearchNodesSort | None = None
    ) -> list[NodeRecord]:
        """Nodes matching the words of the query as prefixes, or all nodes."""
        limit = _clamp(limit, 200)
        fts_query = build_fts_query(query)
        if fts_query is not None:
            sql = f"""SELECT {node_select_columns("n")}
                        FROM node_fts
                        JOIN nodes AS n ON n.id = node_fts.rowid
                       WHERE node_fts MATCH ?1
                       ORDER BY {search_nodes_order_by(sort, True)}
                       LIMIT ?2"""
            return self._nodes(sql, (fts_query, limit))
        sql = f"""SELECT {node_select_columns("n")}
                    FROM nodes AS n
                   ORDER BY {search_nodes_order_by(sort, False)}
                   LIMIT ?1"""
        return self._nodes(sql, (limit,))

    def random_node(self) -> NodeRecord | None:
        """A randomly chosen node, or None if the index is empty."""
        min_id, max_id = self.connection.execute(
            "SELECT MIN(id), MAX(id) FROM nodes"
        ).fetchone()
        if min_id is None or max_id is None:
            return None
        sql = f"""SELECT {node_select_columns("n")}
                    FROM nodes AS n
                   WHERE n.id >= ((ABS(random()) % (?2 - ?1 + 1)) + ?1)
                   ORDER BY n.id
                   LIMIT 1"""
        return self._first_node(sql, (min_id, max_id))

    def search_tags(self, query: str, limit: int) -> list[str]:
        """Distinct tags, all of them or those starting with the query."""
        limit = _clamp(limit, 1_000)
        query = query.strip()
        if not query:
            rows = self.connection.execute(
                "SELECT DISTINCT tag FROM tags ORDER BY tag LIMIT ?1", (limit,)
            )
        else:
            rows = self.connection.execute(
                """SELECT DISTINCT tag
                     FROM tags
                    WHERE tag LIKE ?1 ESCAPE '\\' COLLATE NOCASE
                    ORDER BY tag
                    LIMIT ?2""",
                (f"{escape_like_pattern(query)}%", limit),
            )
        return [tag for (tag,) in rows]

    def node_from_id(self, explicit_id: str) -> NodeRecord | None:
        """The node carrying the given explicit ID."""
        sql = f"""SELECT {node_select_columns("n")}
                    FROM nodes AS n
                   WHERE n.explicit_id = ?1
                   LIMIT 1"""
        return self._first_node(sql, (explicit_id,))

    def node_from_title_or_alias(
        self, title_or_alias: str, nocase: bool = False
    ) -> list[NodeRecord]:
        """Up to two nodes whose title or an alias equals the text."""
        collate = " COLLATE NOCASE" if nocase else ""
        sql = f"""SELECT DISTINCT {node_select_columns("n")}
                    FROM nodes AS n
                    LEFT JOIN aliases AS a ON a.node_key = n.node_key
                   WHERE n.title = ?1{collate}
                      OR a.alias = ?1{collate}
                   ORDER BY n.file_path, n.line
                   LIMIT 2"""
        return self._nodes(sql, (title_or_alias,))

    def node_at_point(self, file_path: str, line: int) -> NodeRecord | None:
        """The innermost node starting at or before a line of a file."""
        sql = f"""SELECT {node_select_columns("n")}
                    FROM nodes AS n
                   WHERE n.file_path = ?1
                     AND n.line <= ?2
                   ORDER BY n.line DESC, n.level DESC
                   LIMIT 1"""
        return self._first_node(sql, (file_path, line))

    def node_by_key(self, node_key: str) -> NodeRecord | None:
        """The node with the given key."""
        sql = f"""SELECT {node_select_columns("n")}
                    FROM nodes AS n
                   WHERE n.node_key = ?1"""
        return self._first_node(sql, (node_key,))

    def nodes_in_file(self, file_path: str) -> list[NodeRecord]:
        """Every node of one file, in document order."""
        sql = f"""SELECT {node_select_columns("n")}
                    FROM nodes AS n
                   WHERE n.file_path = ?1
                   ORDER BY n.line, n.level"""
        return self._nodes(sql, (file_path,))

    def nodes_in_files(self, file_paths: Iterable[str]) -> dict[str, list[NodeRecord]]:
        """Nodes of several files, grouped by file path."""
        paths = list(file_paths)
        if not paths:
            return {}
        placeholders = ", ".join(f"?{index}" for index in range(1, len(paths) + 1))
        sql = f"""SELECT {node_select_columns("n")}
                    FROM nodes AS n
                   WHERE n.file_path IN ({placeholders})
                   ORDER BY n.file_path COLLATE NOCASE, n.file_path, n.line, n.level"""
        grouped: dict[str, list[NodeRecord]] = {}
        for node in self._nodes(sql, paths):
            grouped.setdefault(node.file_path, []).append(node)
        return grouped