"""The note index: an SQLite database of files, nodes, links and text."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable
from os import PathLike
from pathlib import Path

from slipbox.graph import graph_dot
from slipbox.link_queries import LinkQueries
from slipbox.models import GraphParams, IndexedFile, IndexStats
from slipbox.node_queries import NodeQueries
from slipbox.schema import migrate
from slipbox.writer import delete_file_rows, prune_missing_files, replace_file_index


class Database(NodeQueries, LinkQueries):
    """An open index database with its read queries and index updates."""

    def __init__(self, connection: sqlite3.Connection) -> None:
        super().__init__(connection)

    @classmethod
    def open(cls, path: str | PathLike[str]) -> Database:
        """Open or create the index at a path, bringing its schema up to date."""
        path = Path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as error:
            raise OSError(
                f"failed to create database directory {path.parent}: {error}"
            ) from error

        try:
            connection = sqlite3.connect(path, isolation_level=None)
        except sqlite3.Error as error:
            raise sqlite3.OperationalError(
                f"failed to open database {path}: {error}"
            ) from error

        try:
            migrate(connection)
        except BaseException:
            connection.close()
            raise
        return cls(connection)

    def close(self) -> None:
        """Close the underlying connection."""
        self.connection.close()

    def __enter__(self) -> Database:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def graph_dot(self, params: GraphParams) -> str:
        """Render the link graph described by the parameters as DOT."""
        return graph_dot(self.connection, params)

    def sync_index(self, files: Iterable[IndexedFile]) -> IndexStats:
        """Index every given file and drop files that are no longer present."""
        files = list(files)
        stats = IndexStats()
        for indexed_file in files:
            stats.accumulate(replace_file_index(self.connection, indexed_file))
        prune_missing_files(self.connection, {f.file_path for f in files})
        return stats

    def sync_file_index(self, indexed_file: IndexedFile) -> IndexStats:
        """Replace the index of one file, leaving other files untouched."""
        return replace_file_index(self.connection, indexed_file)

    def remove_file_index(self, file_path: str) -> None:
        """Remove everything indexed for one file."""
        delete_file_rows(self.connection, file_path)