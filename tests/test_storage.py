"""
Tests for GraphStore implementations

The same read contract is checked against MemoryGraphStore and
ParquetGraphStore (Parquet + DuckDB + LanceDB under tmp_path).
"""

from pathlib import Path

import pytest
from filelock import FileLock

from ragforge.config.settings import RFConfig
from ragforge.errors import IndexMissingError, StoreUnavailableError
from ragforge.storage import GraphStore, MemoryGraphStore, ParquetGraphStore
from ragforge.storage.duckdb.queries import PredicateCompiler
from ragforge.types.predicates import (
    AllOf,
    FieldPredicate,
    RelationshipPredicate,
    where,
)

INDEX = "scopeEmbeddingsSignature"

SCOPES = [
    {"uuid": "a", "name": "parseFile", "type": "function", "file": "src/parse.ts",
     "startLine": 1, "language": "ts"},
    {"uuid": "b", "name": "readFile", "type": "function", "file": "src/io.ts", "startLine": 20},
    {"uuid": "c", "name": "Parser", "type": "class", "file": "src/parse.ts", "startLine": 40},
    {"uuid": "d", "name": "discount_50%", "type": "function", "file": "src/O'Brien.ts",
     "startLine": 60},
]
FILES = [{"uuid": "f1", "name": "parse.ts", "type": "file"}]
EDGES = [
    ("a", "b", "CONSUMES"),
    ("b", "c", "CONSUMES"),
    ("a", "f1", "DEFINED_IN"),
    ("c", "f1", "DEFINED_IN"),
]
VECTORS = {
    "a": [1.0, 0.0, 0.0],
    "b": [0.8, 0.6, 0.0],
    "c": [0.0, 1.0, 0.0],
    "d": [0.0, 0.0, 1.0],
}


async def _make_store(kind: str, tmp_path: Path) -> GraphStore:
    """Build the same small graph in either backend."""
    if kind == "memory":
        memory = MemoryGraphStore()
        memory.add_nodes("Scope", SCOPES)
        memory.add_nodes("File", FILES)
        for from_id, to_id, rel in EDGES:
            memory.add_relationship(from_id, to_id, rel)
        memory.add_embeddings(INDEX, VECTORS)
        return memory

    store = ParquetGraphStore(tmp_path / "kb", RFConfig(openai_api_key=None))
    await store.initialize()
    await store.write_nodes("Scope", SCOPES[:2])
    await store.write_nodes("Scope", SCOPES[2:])
    await store.write_nodes("File", FILES)
    await store.write_relationships(
        [{"from_id": f, "to_id": t, "rel_type": r} for f, t, r in EDGES]
    )
    await store.write_embeddings(INDEX, list(VECTORS), list(VECTORS.values()))
    return store


BACKENDS = pytest.mark.parametrize("kind", ["memory", "parquet"])


# -----------------------------------------------------------------------------
# Read contract (both backends)
# -----------------------------------------------------------------------------


class TestStructuralQueries:
    """query_ids / count / get_entities."""

    @BACKENDS
    @pytest.mark.asyncio
    async def test_query_ids_sorted_and_typed(self, kind: str, tmp_path: Path) -> None:
        store = await _make_store(kind, tmp_path)

        assert await store.query_ids("Scope") == ["a", "b", "c", "d"]
        assert await store.query_ids("File") == ["f1"]
        assert await store.query_ids("Scope", where(type="function")) == ["a", "b", "d"]
        await store.close()

    @BACKENDS
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "predicate, expected",
        [
            (FieldPredicate(field="name", op="contains", value="File"), ["a", "b"]),
            (FieldPredicate(field="name", op="starts_with", value="Pars"), ["c"]),
            (FieldPredicate(field="file", op="ends_with", value="parse.ts"), ["a", "c"]),
            (FieldPredicate(field="startLine", op="gte", value=20), ["b", "c", "d"]),
            (FieldPredicate(field="startLine", op="lt", value=20), ["a"]),
            (FieldPredicate(field="uuid", op="in", value=["a", "d", "zz"]), ["a", "d"]),
            (FieldPredicate(field="type", op="ne", value="function"), ["c"]),
            (FieldPredicate(field="name", op="contains", value="50%"), ["d"]),
            (FieldPredicate(field="name", op="contains", value="_"), ["d"]),
            (FieldPredicate(field="file", op="contains", value="O'Brien"), ["d"]),
            (where(type="function", startLine={"gte": 10}), ["b", "d"]),
        ],
    )
    async def test_field_operators(
        self, kind: str, tmp_path: Path, predicate, expected: list[str]
    ) -> None:
        store = await _make_store(kind, tmp_path)

        assert await store.query_ids("Scope", predicate) == expected
        await store.close()

    @BACKENDS
    @pytest.mark.asyncio
    async def test_missing_property_never_matches(self, kind: str, tmp_path: Path) -> None:
        store = await _make_store(kind, tmp_path)

        assert await store.query_ids("Scope", where(language="ts")) == ["a"]
        assert await store.query_ids("Scope", where(language={"ne": "py"})) == ["a"]
        assert await store.query_ids("Scope", where(colour="red")) == []
        await store.close()

    @BACKENDS
    @pytest.mark.asyncio
    async def test_relationship_predicates(self, kind: str, tmp_path: Path) -> None:
        store = await _make_store(kind, tmp_path)

        outgoing = RelationshipPredicate(relationship_type="CONSUMES")
        incoming = RelationshipPredicate(relationship_type="CONSUMES", direction="incoming")
        both = RelationshipPredicate(relationship_type="CONSUMES", direction="both")
        to_parser = RelationshipPredicate(
            relationship_type="CONSUMES",
            target=FieldPredicate(field="name", op="eq", value="Parser"),
        )
        in_parse_ts = RelationshipPredicate(
            relationship_type="DEFINED_IN",
            target=FieldPredicate(field="name", op="eq", value="parse.ts"),
        )

        assert await store.query_ids("Scope", outgoing) == ["a", "b"]
        assert await store.query_ids("Scope", incoming) == ["b", "c"]
        assert await store.query_ids("Scope", both) == ["a", "b", "c"]
        assert await store.query_ids("Scope", to_parser) == ["b"]
        assert await store.query_ids(
            "Scope", AllOf(predicates=[in_parse_ts, where(type="function")])
        ) == ["a"]
        await store.close()

    @BACKENDS
    @pytest.mark.asyncio
    async def test_restrict_ids(self, kind: str, tmp_path: Path) -> None:
        store = await _make_store(kind, tmp_path)

        restricted = await store.query_ids(
            "Scope", where(type="function"), restrict_ids=["d", "c", "b"]
        )

        assert restricted == ["b", "d"]
        assert await store.query_ids("Scope", restrict_ids=[]) == []
        await store.close()

    @BACKENDS
    @pytest.mark.asyncio
    async def test_count(self, kind: str, tmp_path: Path) -> None:
        store = await _make_store(kind, tmp_path)

        assert await store.count("Scope") == 4
        assert await store.count("Scope", where(type="function")) == 3
        assert await store.count("Product") == 0
        await store.close()

    @BACKENDS
    @pytest.mark.asyncio
    async def test_get_entities(self, kind: str, tmp_path: Path) -> None:
        store = await _make_store(kind, tmp_path)

        records = await store.get_entities(["b", "a", "f1", "missing"], "Scope")
        untyped = await store.get_entities(["f1", "a"])

        assert set(records) == {"a", "b"}
        assert records["a"]["name"] == "parseFile"
        assert records["a"]["startLine"] == 1
        assert "language" not in records["b"]
        assert "_entity_type" not in records["a"]
        assert set(untyped) == {"a", "f1"}
        assert untyped["f1"]["name"] == "parse.ts"
        await store.close()


class TestTraversal:
    """Batched one-hop neighbour lookups."""

    @BACKENDS
    @pytest.mark.asyncio
    async def test_neighbors_by_direction(self, kind: str, tmp_path: Path) -> None:
        store = await _make_store(kind, tmp_path)

        out = await store.neighbors(["a", "b", "d"], "CONSUMES")
        inc = await store.neighbors(["b", "c"], "CONSUMES", "incoming")
        both = await store.neighbors(["b"], "CONSUMES", "both")
        defined = await store.neighbors(["f1"], "DEFINED_IN", "incoming")

        assert out == {"a": ["b"], "b": ["c"], "d": []}
        assert inc == {"b": ["a"], "c": ["b"]}
        assert both == {"b": ["a", "c"]}
        assert defined == {"f1": ["a", "c"]}
        await store.close()


class TestVectorSearch:
    """Named index similarity search."""

    @BACKENDS
    @pytest.mark.asyncio
    async def test_ranked_by_similarity(self, kind: str, tmp_path: Path) -> None:
        store = await _make_store(kind, tmp_path)

        hits = await store.vector_search(INDEX, [1.0, 0.0, 0.0], 2)

        assert [node_id for node_id, _ in hits] == ["a", "b"]
        assert hits[0][1] == pytest.approx(1.0, abs=1e-5)
        assert hits[1][1] == pytest.approx(0.8, abs=1e-5)
        await store.close()

    @BACKENDS
    @pytest.mark.asyncio
    async def test_min_score_and_restriction(self, kind: str, tmp_path: Path) -> None:
        store = await _make_store(kind, tmp_path)

        floored = await store.vector_search(INDEX, [1.0, 0.0, 0.0], 10, min_score=0.5)
        restricted = await store.vector_search(
            INDEX, [1.0, 0.1, 0.0], 10, restrict_ids=["c", "b", "zz"]
        )

        assert [node_id for node_id, _ in floored] == ["a", "b"]
        assert [node_id for node_id, _ in restricted] == ["b", "c"]
        await store.close()

    @BACKENDS
    @pytest.mark.asyncio
    async def test_missing_index(self, kind: str, tmp_path: Path) -> None:
        store = await _make_store(kind, tmp_path)

        assert await store.has_index(INDEX) is True
        assert await store.has_index("scopeEmbeddingsSource") is False
        with pytest.raises(IndexMissingError) as exc_info:
            await store.vector_search("scopeEmbeddingsSource", [1.0, 0.0, 0.0], 5)
        assert exc_info.value.index_name == "scopeEmbeddingsSource"
        await store.close()


# -----------------------------------------------------------------------------
# ParquetGraphStore specifics
# -----------------------------------------------------------------------------


class TestParquetGraphStore:
    """Part files, supersession, locking."""

    @pytest.mark.asyncio
    async def test_layout_and_metadata(self, tmp_path: Path) -> None:
        store = await _make_store("parquet", tmp_path)
        kb = tmp_path / "kb"

        assert (kb / "metadata.json").is_file()
        assert len(list((kb / "nodes").glob("part-*.parquet"))) == 3
        assert len(list((kb / "relationships").glob("part-*.parquet"))) == 1
        assert await store.entity_types() == ["File", "Scope"]
        await store.close()

    @pytest.mark.asyncio
    async def test_rewrite_supersedes_earlier_row(self, tmp_path: Path) -> None:
        store = await _make_store("parquet", tmp_path)

        await store.write_nodes("Scope", [{**SCOPES[0], "name": "parseFileV2"}])

        records = await store.get_entities(["a"])
        assert records["a"]["name"] == "parseFileV2"
        assert await store.count("Scope") == 4
        await store.close()

    @pytest.mark.asyncio
    async def test_embedding_upsert(self, tmp_path: Path) -> None:
        store = await _make_store("parquet", tmp_path)

        await store.write_embeddings(INDEX, ["d"], [[1.0, 0.0, 0.0]])

        hits = await store.vector_search(INDEX, [1.0, 0.0, 0.0], 2)
        assert {node_id for node_id, _ in hits} == {"a", "d"}
        await store.close()

    @pytest.mark.asyncio
    async def test_list_property_contains(self, tmp_path: Path) -> None:
        store = ParquetGraphStore(tmp_path / "kb", RFConfig(openai_api_key=None))
        await store.initialize()
        await store.write_nodes(
            "Scope",
            [
                {"uuid": "x", "name": "x", "tags": ["io", "net"]},
                {"uuid": "y", "name": "y", "tags": ["cli"]},
            ],
        )

        ids = await store.query_ids(
            "Scope", FieldPredicate(field="tags", op="contains", value="io")
        )

        assert ids == ["x"]
        await store.close()

    @pytest.mark.asyncio
    async def test_empty_store_reads(self, tmp_path: Path) -> None:
        store = ParquetGraphStore(tmp_path / "kb", RFConfig(openai_api_key=None))
        await store.initialize()

        assert await store.query_ids("Scope") == []
        assert await store.count("Scope") == 0
        assert await store.get_entities(["a"]) == {}
        assert await store.neighbors(["a"], "CONSUMES") == {"a": []}
        await store.close()

    @pytest.mark.asyncio
    async def test_node_without_id_rejected(self, tmp_path: Path) -> None:
        store = ParquetGraphStore(tmp_path / "kb", RFConfig(openai_api_key=None))
        await store.initialize()

        with pytest.raises(ValueError, match="uuid"):
            await store.write_nodes("Scope", [{"name": "anonymous"}])
        await store.close()

    @pytest.mark.asyncio
    async def test_locked_store_is_unavailable(self, tmp_path: Path) -> None:
        config = RFConfig(openai_api_key=None, store_lock_timeout=0.05)
        store = ParquetGraphStore(tmp_path / "kb", config)
        await store.initialize()

        with FileLock(tmp_path / "kb" / ".kb.lock"):
            with pytest.raises(StoreUnavailableError):
                await store.write_nodes("Scope", SCOPES[:1])
        await store.close()


class TestPredicateCompiler:
    """SQL generation keeps values out of the query text."""

    def test_values_are_parameters(self) -> None:
        compiler = PredicateCompiler({"name": "VARCHAR", "uuid": "VARCHAR"}, "uuid", True)

        sql, params = compiler.compile(where(name="x'; DROP TABLE nodes; --"))

        assert "DROP" not in sql
        assert params == ["x'; DROP TABLE nodes; --"]

    def test_unknown_column_compiles_false(self) -> None:
        compiler = PredicateCompiler({"name": "VARCHAR"}, "uuid", False)

        assert compiler.compile(where(colour="red")) == ("FALSE", [])
        assert compiler.compile(RelationshipPredicate(relationship_type="X")) == ("FALSE", [])
