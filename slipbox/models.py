"""Records exchanged between the index scanner, the store and its callers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class NodeKind(str, Enum):
    """Whether a node is a whole file or a heading inside one."""

    FILE = "file"
    HEADING = "heading"

    @classmethod
    def parse(cls, text: str) -> NodeKind:
        """Parse the stored text form of a node kind."""
        for kind in cls:
            if kind.value == text:
                return kind
        raise ValueError(f"unknown node kind: {text!r}")

    def __str__(self) -> str:
        return self.value


class SearchNodesSort(str, Enum):
    """Orderings available for node search results."""

    RELEVANCE = "relevance"
    TITLE = "title"
    FILE = "file"
    FILE_MTIME = "file_mtime"
    BACKLINK_COUNT = "backlink_count"
    FORWARD_LINK_COUNT = "forward_link_count"


class GraphTitleShortening(str, Enum):
    """How long node titles are shortened in graph labels."""

    TRUNCATE = "truncate"
    WRAP = "wrap"


@dataclass(kw_only=True)
class NodeRecord:
    """A file or heading node together with its indexed metadata."""

    node_key: str
    file_path: str
    title: str
    explicit_id: str | None = None
    outline_path: str = ""
    aliases: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    refs: list[str] = field(default_factory=list)
    todo_keyword: str | None = None
    scheduled_for: str | None = None
    deadline_for: str | None = None
    closed_at: str | None = None
    level: int = 0
    line: int = 1
    kind: NodeKind = NodeKind.HEADING
    file_mtime_ns: int = 0
    backlink_count: int = 0
    forward_link_count: int = 0


@dataclass
class IndexedLink:
    """An ID link found inside a node's text."""

    source_node_key: str
    destination_explicit_id: str
    line: int
    column: int
    preview: str


@dataclass
class OccurrenceDocument:
    """Searchable text of one file with the source row of every text line."""

    file_path: str
    search_text: str
    line_rows: list[int] = field(default_factory=list)


@dataclass
class IndexedFile:
    """Everything the scanner extracted from one file."""

    file_path: str
    title: str
    mtime_ns: int
    nodes: list[NodeRecord] = field(default_factory=list)
    links: list[IndexedLink] = field(default_factory=list)
    occurrence_document: OccurrenceDocument | None = None


@dataclass
class IndexStats:
    """Counts of indexed files, nodes and links."""

    files_indexed: int = 0
    nodes_indexed: int = 0
    links_indexed: int = 0

    def accumulate(self, other: IndexStats) -> None:
        """Add the counts of another stats record to this one."""
        self.files_indexed += other.files_indexed
        self.nodes_indexed += other.nodes_indexed
        self.links_indexed += other.links_indexed


@dataclass
class FileRecord:
    """An indexed file with its node count."""

    file_path: str
    title: str
    mtime_ns: int
    node_count: int


@dataclass
class BacklinkRecord:
    """A link into a node, seen from the linking node."""

    source_node: NodeRecord
    row: int
    col: int
    preview: str


@dataclass
class ForwardLinkRecord:
    """A link out of a node, seen from the linked node."""

    destination_node: NodeRecord
    row: int
    col: int
    preview: str


@dataclass
class OccurrenceDocumentRecord:
    """A stored occurrence document read back from the index."""

    file_path: str
    search_text: str
    line_rows: list[int] = field(default_factory=list)


@dataclass(kw_only=True)
class GraphParams:
    """Options for rendering the link graph."""

    root_node_key: str | None = None
    max_distance: int | None = None
    include_orphans: bool = False
    hidden_link_types: list[str] = field(default_factory=list)
    max_title_length: int = 100
    shorten_titles: GraphTitleShortening | None = None
    node_url_prefix: str | None = None

    def normalized_hidden_link_types(self) -> list[str]:
        """Trimmed, non-empty, de-duplicated link types in their given order."""
        seen: dict[str, None] = {}
        for link_type in self.hidden_link_types:
            trimmed = link_type.strip()
            if trimmed:
                seen.setdefault(trimmed, None)
        return list(seen)

    def normalized_max_title_length(self) -> int:
        """The title length limit, never below one character."""
        return max(self.max_title_length, 1)