import json
import sqlite3

import pytest

from slipbox.models import NodeKind, SearchNodesSort
from slipbox.rows import (
    NODE_SELECT_COLUMN_COUNT,
    build_fts_query,
    build_occurrence_fts_query,
    escape_like_pattern,
    node_select_columns,
    parse_line_rows,
    parse_string_list,
    row_to_node,
    search_nodes_order_by,
)
from slipbox.schema import rebuild_schema


@pytest.fixture
def connection(tmp_path):
    conn = sqlite3.connect(tmp_path / "slipbox.sqlite")
    rebuild_schema(conn)
    yield conn
    conn.close()


def _insert_node(
    conn,
    *,
    node_key,
    file_path,
    title,
    explicit_id=None,
    aliases=(),
    tags=(),
    refs=(),
    level=1,
    line=1,
    kind="heading",
    todo_keyword=None,
):
    cursor = conn.execute(
        """INSERT INTO nodes (node_key, explicit_id, file_path, title, outline_path,
                              aliases_json, tags_json, refs_json, todo_keyword,
                              scheduled_for, deadline_for, closed_at, level, line, kind)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, NULL, NULL, NULL, ?, ?, ?)""",
        (
            node_key,
            explicit_id,
            file_path,
            title,
            title,
            json.dumps(list(aliases)),
            json.dumps(list(tags)),
            json.dumps(list(refs)),
            todo_keyword,
            level,
            line,
            kind,
        ),
    )
    conn.execute(
        """INSERT INTO node_fts (rowid, title, outline_path, file_path,
                                 alias_text, ref_text, tag_text)
           VALUES (?, ?, ?, ?, ?, ?, ?)""",
        (cursor.lastrowid, title, title, file_path, " ".join(aliases), " ".join(refs), " ".join(tags)),
    )


def _select_nodes(conn, where="", params=()):
    sql = f"SELECT {node_select_columns('n')} FROM nodes AS n {where} ORDER BY n.line"
    return [row_to_node(row) for row in conn.execute(sql, params)]


def test_select_columns_width(connection):
    _insert_node(connection, node_key="file:a.org", file_path="a.org", title="A", kind="file")
    row = connection.execute(f"SELECT {node_select_columns('n')} FROM nodes AS n").fetchone()
    assert len(row) == NODE_SELECT_COLUMN_COUNT


def test_row_to_node_round_trips_inserted_values(connection):
    connection.execute("INSERT INTO files (path, title, mtime_ns) VALUES ('a.org', 'A', 12345)")
    _insert_node(
        connection,
        node_key="heading:a.org:3",
        file_path="a.org",
        title="Patrol Log",
        explicit_id="patrol-id",
        aliases=["Batman"],
        tags=["night", "city"],
        refs=["@smith2024"],
        level=2,
        line=3,
        todo_keyword="DONE",
    )
    [node] = _select_nodes(connection)
    assert node.node_key == "heading:a.org:3"
    assert node.explicit_id == "patrol-id"
    assert node.title == "Patrol Log"
    assert node.aliases == ["Batman"]
    assert node.tags == ["night", "city"]
    assert node.refs == ["@smith2024"]
    assert node.todo_keyword == "DONE"
    assert (node.level, node.line) == (2, 3)
    assert node.kind is NodeKind.HEADING
    assert node.file_mtime_ns == 12345


def test_missing_file_row_gives_zero_mtime(connection):
    _insert_node(connection, node_key="file:b.org", file_path="b.org", title="B", kind="file")
    [node] = _select_nodes(connection)
    assert node.file_mtime_ns == 0
    assert node.kind is NodeKind.FILE


def test_link_counts_follow_links_table(connection):
    _insert_node(connection, node_key="file:a.org", file_path="a.org", title="A", explicit_id="a-id", line=1)
    _insert_node(connection, node_key="file:b.org", file_path="b.org", title="B", line=2)
    links = [("file:b.org", "a-id", 4, 5, "See A"), ("file:b.org", "a-id", 6, 1, "Again A")]
    connection.executemany(
        "INSERT INTO links (source_node_key, destination_explicit_id, line, column, preview) "
        "VALUES (?, ?, ?, ?, ?)",
        links,
    )
    connection.execute(
        "INSERT INTO links (source_node_key, destination_explicit_id, line, column, preview) "
        "VALUES ('file:a.org', 'missing-id', 2, 1, 'gone')"
    )
    target, source = _select_nodes(connection)
    assert target.backlink_count == len(links)
    assert source.forward_link_count == len(links)
    assert target.forward_link_count == source.backlink_count


def test_row_to_node_honours_offset(connection):
    _insert_node(connection, node_key="file:a.org", file_path="a.org", title="A", tags=["x"])
    plain = connection.execute(f"SELECT {node_select_columns('n')} FROM nodes AS n").fetchone()
    prefixed = connection.execute(
        f"SELECT 'lead', {node_select_columns('n')} FROM nodes AS n"
    ).fetchone()
    assert row_to_node(prefixed, 1) == row_to_node(plain)


def test_unknown_kind_falls_back_to_heading(connection):
    _insert_node(connection, node_key="odd", file_path="a.org", title="A", kind="strange")
    [node] = _select_nodes(connection)
    assert node.kind is NodeKind.HEADING


def test_parse_string_list_keeps_only_non_empty_strings():
    assert parse_string_list('["a", "", 3, null, "b"]') == ["a", "b"]
    assert parse_string_list("not json") == []
    assert parse_string_list('{"a": "b"}') == []


def test_build_fts_query_drops_punctuation_only_input():
    assert build_fts_query("") is None
    assert build_fts_query("  !!! ?? ") is None


def test_build_fts_query_makes_prefix_tokens():
    query = build_fts_query("target, hea-d_x!")
    tokens = query.split(" ")
    assert all(token.endswith("*") for token in tokens)
    assert [token.rstrip("*") for token in tokens] == ["target", "hea-d_x"]


def test_build_fts_query_matches_prefixes(connection):
    _insert_node(connection, node_key="h1", file_path="a.org", title="Target heading", line=1)
    _insert_node(connection, node_key="h2", file_path="a.org", title="Other note", line=2)
    rows = connection.execute(
        "SELECT n.title FROM node_fts JOIN nodes AS n ON n.id = node_fts.rowid "
        "WHERE node_fts MATCH ?",
        (build_fts_query("head targ"),),
    ).fetchall()
    assert rows == [("Target heading",)]


@pytest.mark.parametrize("literal", ["50%", "a_b", "back\\slash", "plain"])
def test_escape_like_pattern_matches_only_literal(connection, literal):
    pattern = escape_like_pattern(literal) + "%"
    like = "SELECT ? LIKE ? ESCAPE '\\'"
    assert connection.execute(like, (literal + "tail", pattern)).fetchone()[0] == 1
    mangled = literal.replace("%", "x").replace("_", "y").replace("\\", "z") + "!"
    if mangled[:-1] != literal:
        assert connection.execute(like, (mangled, pattern)).fetchone()[0] == 0


def test_search_nodes_order_by_clauses():
    fts_clause = "bm25(node_fts, 1.0, 0.3, 0.2, 0.7, 0.8, 0.4), n.file_path, n.line"
    assert search_nodes_order_by(None, True) == fts_clause
    assert search_nodes_order_by(SearchNodesSort.RELEVANCE, True) == fts_clause
    assert search_nodes_order_by(None, False) == "n.file_path, n.line"
    assert search_nodes_order_by(SearchNodesSort.TITLE, False) == (
        "n.title COLLATE NOCASE, n.file_path, n.line"
    )


def test_title_order_is_case_insensitive(connection):
    titles = ["beta", "Alpha", "gamma", "Delta"]
    for index, title in enumerate(titles, start=1):
        _insert_node(connection, node_key=f"h{index}", file_path="a.org", title=title, line=index)
    sql = (
        f"SELECT {node_select_columns('n')} FROM nodes AS n "
        f"ORDER BY {search_nodes_order_by(SearchNodesSort.TITLE, False)}"
    )
    result = [row_to_node(row).title for row in connection.execute(sql)]
    assert result == sorted(titles, key=str.lower)


@pytest.mark.parametrize("sort", list(SearchNodesSort))
def test_every_sort_clause_runs_with_fts(connection, sort):
    _insert_node(connection, node_key="h1", file_path="a.org", title="Common one", line=1)
    _insert_node(connection, node_key="h2", file_path="b.org", title="Common two", line=2)
    sql = (
        f"SELECT {node_select_columns('n')} FROM node_fts "
        "JOIN nodes AS n ON n.id = node_fts.rowid WHERE node_fts MATCH ? "
        f"ORDER BY {search_nodes_order_by(sort, True)}"
    )
    rows = connection.execute(sql, (build_fts_query("common"),)).fetchall()
    assert {row_to_node(row).node_key for row in rows} == {"h1", "h2"}


def test_occurrence_query_needs_three_characters():
    assert build_occurrence_fts_query("   ") is None
    assert build_occurrence_fts_query(" ne ") is None


def test_occurrence_query_quotes_and_escapes():
    query = build_occurrence_fts_query('  say "hi"  ')
    assert query.startswith('"') and query.endswith('"')
    assert query[1:-1].replace('""', '"') == 'say "hi"'


def test_occurrence_query_matches_infix_text(connection):
    cursor = connection.execute(
        "INSERT INTO occurrence_documents (file_path, search_text, line_rows_json) "
        "VALUES ('alpha.org', 'Needle in preamble.', '[6]')"
    )
    connection.execute(
        "INSERT INTO occurrence_document_fts (rowid, search_text) VALUES (?, 'Needle in preamble.')",
        (cursor.lastrowid,),
    )
    match = (
        "SELECT od.file_path FROM occurrence_document_fts "
        "JOIN occurrence_documents AS od ON od.id = occurrence_document_fts.rowid "
        "WHERE occurrence_document_fts MATCH ?"
    )
    assert connection.execute(match, (build_occurrence_fts_query("eedl"),)).fetchall() == [
        ("alpha.org",)
    ]
    assert connection.execute(match, (build_occurrence_fts_query("haystack"),)).fetchall() == []


def test_parse_line_rows_round_trip():
    rows = [1, 2, 7, 40]
    assert parse_line_rows(json.dumps(rows)) == rows


@pytest.mark.parametrize("text", ["not json", '{"a": 1}', "[1, -2]", '["x"]', "[1.5]"])
def test_parse_line_rows_rejects_invalid(text):
    with pytest.raises(ValueError):
        parse_line_rows(text)