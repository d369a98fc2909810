"""Rendering the note link graph in Graphviz DOT form."""

from __future__ import annotations

import sqlite3
from collections import deque
from dataclasses import dataclass

from slipbox.models import GraphParams, GraphTitleShortening, NodeKind, NodeRecord
from slipbox.rows import node_select_columns, row_to_node

_UNRESERVED = frozenset(
    b"ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_.~"
)


class GraphError(ValueError):
    """The graph request cannot be satisfied."""


@dataclass(frozen=True)
class GraphEdge:
    """A directed link between two nodes."""

    source_node_key: str
    destination_node_key: str


def graph_dot(connection: sqlite3.Connection, params: GraphParams) -> str:
    """Render the indexed link graph, or a neighbourhood of it, as DOT."""
    hidden_link_types = params.normalized_hidden_link_types()
    unsupported = next((kind for kind in hidden_link_types if kind != "id"), None)
    if unsupported is not None:
        raise GraphError(f"unsupported graph link type filter: {unsupported}")

    nodes = load_graph_nodes(connection)
    root_node_key = params.root_node_key
    if root_node_key is not None and not any(
        node.node_key == root_node_key for node in nodes
    ):
        raise GraphError(f"unknown graph root node: {root_node_key}")

    edges = [] if "id" in hidden_link_types else load_graph_edges(connection)
    selected_nodes, selected_edges = select_graph_scope(
        nodes, edges, root_node_key, params.max_distance, params.include_orphans
    )
    return format_graph_dot(selected_nodes, selected_edges, params)


def load_graph_nodes(connection: sqlite3.Connection) -> list[NodeRecord]:
    """Every indexed node, ordered by file and line."""
    sql = f"""SELECT {node_select_columns("n")}
                FROM nodes AS n
               ORDER BY n.file_path, n.line"""
    return [row_to_node(row) for row in connection.execute(sql)]


def load_graph_edges(connection: sqlite3.Connection) -> list[GraphEdge]:
    """Distinct links whose destination is an indexed node."""
    rows = connection.execute(
        """SELECT DISTINCT l.source_node_key, dest.node_key
             FROM links AS l
             JOIN nodes AS dest ON dest.explicit_id = l.destination_explicit_id
            ORDER BY l.source_node_key, dest.node_key"""
    )
    return [GraphEdge(source, destination) for source, destination in rows]


def select_graph_scope(
    nodes: list[NodeRecord],
    edges: list[GraphEdge],
    root_node_key: str | None,
    max_distance: int | None,
    include_orphans: bool,
) -> tuple[list[NodeRecord], list[GraphEdge]]:
    """The nodes and edges to draw for the requested scope."""
    if root_node_key is not None:
        visited = neighborhood_node_keys(edges, root_node_key, max_distance)
        return (
            [node for node in nodes if node.node_key in visited],
            [
                edge
                for edge in edges
                if edge.source_node_key in visited and edge.destination_node_key in visited
            ],
        )

    if include_orphans:
        return list(nodes), list(edges)

    connected = {edge.source_node_key for edge in edges}
    connected.update(edge.destination_node_key for edge in edges)
    return [node for node in nodes if node.node_key in connected], list(edges)


def neighborhood_node_keys(
    edges: list[GraphEdge], root_node_key: str, max_distance: int | None
) -> set[str]:
    """Keys of nodes within the given link distance of the root, ignoring direction."""
    adjacency: dict[str, list[str]] = {}
    for edge in edges:
        adjacency.setdefault(edge.source_node_key, []).append(edge.destination_node_key)
        adjacency.setdefault(edge.destination_node_key, []).append(edge.source_node_key)

    visited = {root_node_key}
    queue = deque([(root_node_key, 0)])
    while queue:
        node_key, distance = queue.popleft()
        if max_distance is not None and distance >= max_distance:
            continue
        for neighbor in adjacency.get(node_key, ()):
            if neighbor not in visited:
                visited.add(neighbor)
                queue.append((neighbor, distance + 1))
    return visited


def format_graph_dot(
    nodes: list[NodeRecord], edges: list[GraphEdge], params: GraphParams
) -> str:
    """The DOT document for the given nodes and edges."""
    parts = [
        'digraph "org-slipbox" {\n',
        "  graph [overlap=false];\n",
        '  node [shape=box, style="rounded"];\n',
    ]
    parts.extend(format_graph_node(node, params) for node in nodes)
    parts.extend(
        f'  "{dot_escape(edge.source_node_key)}" -> '
        f'"{dot_escape(edge.destination_node_key)}";\n'
        for edge in edges
    )
    parts.append("}\n")
    return "".join(parts)


def format_graph_node(node: NodeRecord, params: GraphParams) -> str:
    """The DOT statement for one node."""
    title = shorten_title(
        node.title, params.shorten_titles, params.normalized_max_title_length()
    )
    if node.kind is NodeKind.FILE:
        tooltip = node.file_path
    else:
        tooltip = f"{node.file_path}:{node.line} {node.title}"
    attributes = [f'label="{dot_escape(title)}"', f'tooltip="{dot_escape(tooltip)}"']
    url = graph_node_url(node, params)
    if url is not None:
        attributes.append(f'URL="{dot_escape(url)}"')
    return f'  "{dot_escape(node.node_key)}" [{", ".join(attributes)}];\n'


def graph_node_url(node: NodeRecord, params: GraphParams) -> str | None:
    """The link target of a node, when a prefix is set and the node has an ID."""
    prefix = (params.node_url_prefix or "").strip()
    explicit_id = (node.explicit_id or "").strip()
    if not prefix or not explicit_id:
        return None
    return f"{prefix}{percent_encode_query_value(explicit_id)}"


def shorten_title(
    title: str, mode: GraphTitleShortening | None, max_title_length: int
) -> str:
    """Shorten a title with the given mode, or leave it as it is."""
    if mode is GraphTitleShortening.TRUNCATE:
        return truncate_title(title, max_title_length)
    if mode is GraphTitleShortening.WRAP:
        return wrap_title(title, max_title_length)
    return title


def truncate_title(title: str, max_title_length: int) -> str:
    """Cut a long title and mark the cut with an ellipsis."""
    if len(title) <= max_title_length:
        return title
    return title[: max(max_title_length - 3, 0)] + "..."


def wrap_title(title: str, max_title_length: int) -> str:
    """Break a long title into lines of at most the given length."""
    if len(title) <= max_title_length:
        return title

    lines: list[str] = []
    current = ""
    for word in title.split():
        separator = 1 if current else 0
        if len(current) + separator + len(word) <= max_title_length:
            current = f"{current} {word}" if current else word
            continue

        if current:
            lines.append(current)
            current = ""

        if len(word) <= max_title_length:
            current = word
            continue

        chunk = ""
        for character in word:
            chunk += character
            if len(chunk) >= max_title_length:
                lines.append(chunk)
                chunk = ""
        if chunk:
            current = chunk

    if current:
        lines.append(current)
    return "\n".join(lines)


def dot_escape(value: str) -> str:
    """Escape a value for use inside a double-quoted DOT string."""
    return (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "")
    )


def percent_encode_query_value(value: str) -> str:
    """Percent-encode every UTF-8 byte outside the unreserved URL characters."""
    return "".join(
        chr(byte) if byte in _UNRESERVED else f"%{byte:02X}"
        for byte in value.encode("utf-8")
    )