# slipbox

`slipbox` keeps an index of Org notes in an SQLite database and answers queries
against it. You supply files that have already been parsed into nodes, links and
occurrence documents, and the package stores them in a single database file. You
can then search nodes, follow backlinks and forward links, list agenda entries and
render the link graph as Graphviz DOT.

The package needs only the Python standard library. Its `sqlite3` module must have
FTS5 and the trigram tokenizer (SQLite 3.34 or later), which current CPython builds
provide.

## Installing

```
pip install .
```

To run the tests, install the `test` extra and run `pytest`:

```
pip install ".[test]"
pytest
```

## Opening a database

```python
from slipbox.database import Database

with Database.open("index/slipbox.sqlite") as db:
    print(db.stats())
```

`Database.open` creates the parent directory when it does not exist. When the
database has no schema or an older one, it drops the index tables and creates the
current schema. When the database was written with a newer schema version, it
raises `slipbox.schema.SchemaError`. Leaving the `with` block closes the
connection. You can also call `db.close()` yourself.

## Indexing

The records you index are dataclasses defined in `slipbox.models`:

```python
from slipbox.models import IndexedFile, IndexedLink, NodeKind, NodeRecord

alpha = IndexedFile(
    file_path="alpha.org",
    title="Alpha",
    mtime_ns=1,
    nodes=[
        NodeRecord(
            node_key="file:alpha.org",
            file_path="alpha.org",
            title="Alpha",
            explicit_id="alpha-id",
            kind=NodeKind.FILE,
            level=0,
            line=1,
        ),
    ],
    links=[IndexedLink("file:alpha.org", "beta-id", 2, 5, "See [[id:beta-id][Beta]].")],
)
```

- `db.sync_index(files)` indexes every file you pass. It removes any indexed file
  whose path is not among them.
- `db.sync_file_index(indexed_file)` replaces one file's index and leaves the other
  files as they are.
- `db.remove_file_index("alpha.org")` removes everything indexed for one file.

`sync_index` and `sync_file_index` return an `IndexStats` holding the number of
files, nodes and links they wrote. Each file is written in its own transaction.

## Querying

`Database` provides the queries of `slipbox.node_queries.NodeQueries` and
`slipbox.link_queries.LinkQueries`.

- Nodes:
  - `search_nodes(query, limit, sort=None)` matches each word of the query as a
    prefix in full-text search. An empty query lists all nodes. To change the
    order, pass a `SearchNodesSort` value: `RELEVANCE`, `TITLE`, `FILE`,
    `FILE_MTIME`, `BACKLINK_COUNT` or `FORWARD_LINK_COUNT`.
  - `random_node()` returns `None` when the index is empty.
  - `node_from_id(explicit_id)` and `node_by_key(node_key)` look up one node.
  - `node_from_title_or_alias(text, nocase=False)` returns up to two matching nodes.
  - `node_at_point(file_path, line)` returns the innermost node that starts at or
    before the given line.
  - `nodes_in_file(file_path)` and `nodes_in_files(paths)` return the nodes of
    files. `nodes_in_files` returns a dict keyed by path.
- Tags and files:
  - `search_tags(query, limit)` returns distinct tags that start with the query,
    ignoring case.
  - `search_files(query, limit)` matches a substring of the path or the title,
    ignoring case.
- Agenda:
  - `agenda_nodes(start, end, limit)` returns nodes whose scheduled or deadline
    timestamp lies within the inclusive range. Timestamps look like
    `2024-07-17T00:00:00`.
- Links:
  - `backlinks(node_key, limit, unique=False)` returns `BacklinkRecord` values.
  - `forward_links(node_key, limit, unique=False)` returns `ForwardLinkRecord`
    values. It skips links whose target is not indexed.
  - With `unique=True`, both keep only the earliest link for each linked node.
  - `links_to_destination_in_file(file_path, destination_explicit_id)` returns the
    raw `IndexedLink` rows.
- Occurrences:
  - `search_occurrence_document_paths(query, limit, offset=0)` runs a substring
    search over file text. The trimmed query needs at least three characters;
    shorter queries return nothing.
  - `occurrence_document(file_path)` returns the stored document.
- Administration:
  - `stats()` returns the database-wide `IndexStats`.
  - `indexed_files()` returns the sorted list of indexed paths.

Every limit is raised to at least 1 and capped at a per-query maximum:

| Maximum | Queries |
|---------|---------|
| 200 | nodes, files |
| 500 | agenda |
| 1000 | tags, links, occurrences |

The helpers that build SQL fragments, full-text queries and decoded rows live in
`slipbox.rows`.

## Graph export

```python
from slipbox.models import GraphParams, GraphTitleShortening

dot = db.graph_dot(GraphParams(
    root_node_key="file:alpha.org",
    max_distance=1,
    max_title_length=40,
    shorten_titles=GraphTitleShortening.WRAP,
    node_url_prefix="org-protocol://roam-node?node=",
))
```

- `root_node_key` limits the graph to nodes within `max_distance` links of the
  root, following links in both directions.
- Without a root, the graph includes only nodes that have links. Set
  `include_orphans=True` to include every node.
- `hidden_link_types` accepts only `"id"`, which removes all edges. Any other value
  raises `slipbox.graph.GraphError`. A root key that is not in the index raises it
  too.
- Nodes with an explicit ID get a `URL` attribute: the prefix followed by the
  percent-encoded ID.

## What this package does not do

- It does not read or parse Org files. You must build the `IndexedFile` records
  yourself.
- It does not change notes on disk.
- It has no command-line tool.
- It stores node references in the index, but it has no queries that search or
  resolve them.