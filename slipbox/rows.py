"""SQL fragments and row decoding shared by the index queries."""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

from slipbox.models import NodeKind, NodeRecord, SearchNodesSort

NODE_SELECT_COLUMN_COUNT = 18


def node_select_columns(alias: str) -> str:
    """The column list that `row_to_node` decodes, for the given table alias."""
    return f"""{alias}.node_key,
         {alias}.explicit_id,
         {alias}.file_path,
         {alias}.title,
         {alias}.outline_path,
         {alias}.aliases_json,
         {alias}.tags_json,
         {alias}.refs_json,
         {alias}.todo_keyword,
         {alias}.scheduled_for,
         {alias}.deadline_for,
         {alias}.closed_at,
         {alias}.level,
         {alias}.line,
         {alias}.kind,
         COALESCE((SELECT f.mtime_ns
                     FROM files AS f
                    WHERE f.path = {alias}.file_path), 0) AS file_mtime_ns,
         COALESCE((SELECT COUNT(*)
                     FROM links AS incoming
                    WHERE incoming.destination_explicit_id = {alias}.explicit_id), 0) AS backlink_count,
         COALESCE((SELECT COUNT(*)
                     FROM links AS outgoing
                     JOIN nodes AS dest ON dest.explicit_id = outgoing.destination_explicit_id
                    WHERE outgoing.source_node_key = {alias}.node_key), 0) AS forward_link_count"""


def search_nodes_order_by(sort: SearchNodesSort | None, using_fts: bool) -> str:
    """The ORDER BY clause for a node search."""
    if sort is None or sort is SearchNodesSort.RELEVANCE:
        if using_fts:
            return "bm25(node_fts, 1.0, 0.3, 0.2, 0.7, 0.8, 0.4), n.file_path, n.line"
        return "n.file_path, n.line"
    return {
        SearchNodesSort.TITLE: "n.title COLLATE NOCASE, n.file_path, n.line",
        SearchNodesSort.FILE: "n.file_path, n.line",
        SearchNodesSort.FILE_MTIME: "file_mtime_ns DESC, n.file_path, n.line",
        SearchNodesSort.BACKLINK_COUNT: "backlink_count DESC, n.file_path, n.line",
        SearchNodesSort.FORWARD_LINK_COUNT: "forward_link_count DESC, n.file_path, n.line",
    }[sort]


def _parse_kind(text: str) -> NodeKind:
    try:
        return NodeKind.parse(text)
    except ValueError:
        return NodeKind.HEADING


def row_to_node(row: Sequence[Any], offset: int = 0) -> NodeRecord:
    """Decode the node columns of a row, starting at the given column."""
    (
        node_key,
        explicit_id,
        file_path,
        title,
        outline_path,
        aliases_json,
        tags_json,
        refs_json,
        todo_keyword,
        scheduled_for,
        deadline_for,
        closed_at,
        level,
        line,
        kind_text,
        file_mtime_ns,
        backlink_count,
        forward_link_count,
    ) = tuple(row[offset : offset + NODE_SELECT_COLUMN_COUNT])
    return NodeRecord(
        node_key=node_key,
        explicit_id=explicit_id,
        file_path=file_path,
        title=title,
        outline_path=outline_path,
        aliases=parse_string_list(aliases_json),
        tags=parse_string_list(tags_json),
        refs=parse_string_list(refs_json),
        todo_keyword=todo_keyword,
        scheduled_for=scheduled_for,
        deadline_for=deadline_for,
        closed_at=closed_at,
        level=level,
        line=line,
        kind=_parse_kind(kind_text),
        file_mtime_ns=file_mtime_ns,
        backlink_count=backlink_count,
        forward_link_count=forward_link_count,
    )


def parse_string_list(value: str) -> list[str]:
    """Non-empty strings of a JSON array; anything else gives an empty list."""
    try:
        items = json.loads(value)
    except (TypeError, ValueError):
        return []
    if not isinstance(items, list):
        return []
    return [item for item in items if isinstance(item, str) and item]


def build_fts_query(text: str) -> str | None:
    """A prefix FTS5 query from the words of the input, or None if none remain."""
    tokens = []
    for word in text.split():
        cleaned = "".join(ch for ch in word if ch.isalnum() or ch in "_-")
        if cleaned:
            tokens.append(f"{cleaned}*")
    return " ".join(tokens) if tokens else None


def escape_like_pattern(text: str) -> str:
    """Escape LIKE wildcards with a backslash."""
    return "".join(f"\\{ch}" if ch in "\\%_" else ch for ch in text)


def build_occurrence_fts_query(text: str) -> str | None:
    """A quoted trigram phrase query, or None for input under three characters."""
    trimmed = text.strip()
    if len(trimmed) < 3:
        return None
    escaped = trimmed.replace('"', '""')
    return f'"{escaped}"'


def parse_line_rows(text: str) -> list[int]:
    """Decode the stored JSON list of line rows."""
    try:
        rows = json.loads(text)
    except ValueError as error:
        raise ValueError(f"invalid line rows: {error}") from error
    if not isinstance(rows, list) or not all(
        isinstance(row, int) and not isinstance(row, bool) and 0 <= row <= 0xFFFFFFFF
        for row in rows
    ):
        raise ValueError("line rows must be a list of unsigned integers")
    return rows