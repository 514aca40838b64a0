"""
Tests for QueryBuilder

Immutable chaining and the static validation pass run by build().
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from ragforge.api.client import RagClient
from ragforge.config.settings import RFConfig
from ragforge.errors import PipelineValidationError
from ragforge.query.builder import QueryBuilder
from ragforge.query.pipeline import QueryPipeline
from ragforge.types.predicates import FieldPredicate, RelationshipPredicate
from ragforge.types.stages import ExpandStage, FilterStage, RerankStage, SemanticStage

# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def io_store() -> MagicMock:
    """A store that records every call, to prove validation does no I/O."""
    store = MagicMock()
    store.id_field = "uuid"
    for method in (
        "initialize", "query_ids", "count", "get_entities", "neighbors", "has_index",
        "vector_search",
    ):
        setattr(store, method, AsyncMock())
    return store


@pytest.fixture
def io_client(io_store: MagicMock, embeddings: MagicMock, judge: MagicMock,
              config: RFConfig) -> RagClient:
    return RagClient(io_store, embeddings, judge, config=config)


def _assert_no_io(store: MagicMock) -> None:
    for method in (
        "initialize", "query_ids", "count", "get_entities", "neighbors", "has_index",
        "vector_search",
    ):
        getattr(store, method).assert_not_awaited()


# -----------------------------------------------------------------------------
# Chaining
# -----------------------------------------------------------------------------


class TestChaining:
    """Each chain method returns a new builder; the original is untouched."""

    def test_append_returns_new_builder(self, io_client: RagClient) -> None:
        base = io_client.query("Scope").where(type="function")
        branch_a = base.semantic_search("signature", "parse file", top_k=20)
        branch_b = base.semantic_search("source", "parse file", top_k=20)

        assert isinstance(base, QueryBuilder)
        assert base is not branch_a
        assert len(base.stages) == 1
        assert len(branch_a.stages) == 2
        assert len(branch_b.stages) == 2
        assert branch_a.stages[1].field == "signature"
        assert branch_b.stages[1].field == "source"

    def test_stage_variants_recorded_in_order(self, io_client: RagClient) -> None:
        builder = (
            io_client.query("Scope")
            .where(type="function")
            .semantic_search("signature", "parse file")
            .expand("CONSUMES", depth=2)
            .rerank("Which scope parses files?")
        )

        kinds = [type(stage) for stage in builder.stages]
        assert kinds == [FilterStage, SemanticStage, ExpandStage, RerankStage]

    def test_semantic_defaults_come_from_config(self, io_client: RagClient) -> None:
        stage = io_client.query("Scope").semantic_search("source", "x").stages[0]

        assert stage.top_k == io_client.config.query_default_top_k
        assert stage.min_score == io_client.config.query_default_min_score

    def test_rerank_defaults_come_from_config(
        self, io_client: RagClient, judge: MagicMock
    ) -> None:
        stage = io_client.query("Scope").where(type="function").rerank("q?").stages[1]

        assert stage.provider is judge
        assert stage.batch_size == 5
        assert stage.parallelism == 2
        assert stage.score_merging == "weighted"
        assert stage.weights is None

    def test_semantic_by_binds_field(self, io_client: RagClient) -> None:
        by_source = io_client.query("Scope").semantic_by("source")
        builder = by_source("validate syntax", top_k=7)

        stage = builder.stages[0]
        assert stage.field == "source"
        assert stage.query_text == "validate syntax"
        assert stage.top_k == 7

    def test_where_with_operators(self, io_client: RagClient) -> None:
        builder = io_client.query("Scope").where(file={"contains": "ingest"})

        predicate = builder.stages[0].predicate
        assert isinstance(predicate, FieldPredicate)
        assert predicate.op == "contains"

    def test_where_unknown_operator_raises(self, io_client: RagClient) -> None:
        with pytest.raises(PipelineValidationError, match="Unknown operator"):
            io_client.query("Scope").where(name={"like": "x"})

    def test_related_to_builds_relationship_predicate(self, io_client: RagClient) -> None:
        builder = io_client.query("Scope").related_to("Neo4jClient", "CONSUMES")

        predicate = builder.stages[0].predicate
        assert isinstance(predicate, RelationshipPredicate)
        assert predicate.relationship_type == "CONSUMES"
        assert predicate.target == FieldPredicate(field="name", op="eq", value="Neo4jClient")

    def test_limit_and_offset_are_copied(self, io_client: RagClient) -> None:
        base = io_client.query("Scope").where(type="function")
        paged = base.limit(5).offset(10)

        assert base._limit is None and base._offset == 0
        assert paged._limit == 5 and paged._offset == 10

    def test_negative_limit_raises(self, io_client: RagClient) -> None:
        with pytest.raises(PipelineValidationError):
            io_client.query("Scope").limit(-1)

    def test_unknown_entity_type_raises(self, io_client: RagClient) -> None:
        with pytest.raises(PipelineValidationError, match="unknown entity type"):
            io_client.query("Product")


# -----------------------------------------------------------------------------
# Validation
# -----------------------------------------------------------------------------


class TestValidation:
    """build() rejects bad pipelines before touching the store."""

    def test_valid_pipeline_builds(self, io_client: RagClient, io_store: MagicMock) -> None:
        pipeline = (
            io_client.query("Scope")
            .where(type="function")
            .semantic_search("signature", "parse file", top_k=50)
            .semantic_search("source", "validate syntax", top_k=10)
            .expand("CONSUMES")
            .rerank("Which scope validates syntax?", top_k=3)
            .build()
        )

        assert isinstance(pipeline, QueryPipeline)
        assert pipeline.labels == (
            "filter", "vector:signature", "vector:source", None, "llm",
        )
        _assert_no_io(io_store)

    def test_semantic_first_is_legal(self, io_client: RagClient) -> None:
        pipeline = io_client.query("Scope").semantic_search("source", "x").build()

        assert pipeline.labels == ("vector:source",)

    def test_empty_pipeline_raises(self, io_client: RagClient) -> None:
        with pytest.raises(PipelineValidationError, match="no stages"):
            io_client.query("Scope").build()

    @pytest.mark.parametrize("first", ["expand", "rerank"])
    def test_expand_or_rerank_first_raises(
        self, io_client: RagClient, io_store: MagicMock, first: str
    ) -> None:
        builder = io_client.query("Scope")
        builder = builder.expand("CONSUMES") if first == "expand" else builder.rerank("q?")

        with pytest.raises(PipelineValidationError) as exc_info:
            builder.build()

        assert exc_info.value.stage_index == 0
        _assert_no_io(io_store)

    def test_unknown_filter_field_raises(
        self, io_client: RagClient, io_store: MagicMock
    ) -> None:
        with pytest.raises(PipelineValidationError, match="colour"):
            io_client.query("Scope").where(colour="red").build()
        _assert_no_io(io_store)

    def test_unknown_relationship_in_filter_raises(self, io_client: RagClient) -> None:
        with pytest.raises(PipelineValidationError, match="IMPORTS"):
            io_client.query("Scope").related_to("x", "IMPORTS").build()

    def test_unknown_embedding_field_raises(self, io_client: RagClient) -> None:
        with pytest.raises(PipelineValidationError, match="embedding field"):
            io_client.query("Scope").semantic_search("docstring", "x").build()

    def test_non_positive_top_k_raises(self, io_client: RagClient) -> None:
        with pytest.raises(PipelineValidationError, match="top_k"):
            io_client.query("Scope").semantic_search("source", "x", top_k=0).build()

    def test_semantic_without_embeddings_raises(
        self, io_store: MagicMock, config: RFConfig
    ) -> None:
        client = RagClient(io_store, config=config)

        with pytest.raises(PipelineValidationError, match="embedding provider"):
            client.query("Scope").semantic_search("source", "x").build()

    def test_unknown_expand_relationship_raises(self, io_client: RagClient) -> None:
        with pytest.raises(PipelineValidationError) as exc_info:
            io_client.query("Scope").where(type="function").expand("IMPORTS").build()

        assert exc_info.value.stage_index == 1

    @pytest.mark.parametrize("depth", [0, 6])
    def test_expand_depth_out_of_bounds_raises(self, io_client: RagClient, depth: int) -> None:
        with pytest.raises(PipelineValidationError, match="depth"):
            io_client.query("Scope").where(type="function").expand(
                "CONSUMES", depth=depth
            ).build()

    @pytest.mark.parametrize(
        "kwargs, message",
        [
            ({"batch_size": 0}, "batch_size"),
            ({"parallelism": 0}, "parallelism"),
            ({"top_k": 0}, "top_k"),
            ({"score_merging": "geometric"}, "unknown score merging"),
            ({"weights": {"vector": 0.5, "bm25": 0.5}}, "Unknown weight keys"),
            ({"weights": {"vector": -0.5, "llm": 1.5}}, "non-negative"),
            ({"weights": {"vector": 0.0, "llm": 0.0}}, "zero"),
        ],
    )
    def test_bad_rerank_configuration_raises(
        self, io_client: RagClient, io_store: MagicMock, kwargs: dict, message: str
    ) -> None:
        builder = io_client.query("Scope").where(type="function").rerank("q?", **kwargs)

        with pytest.raises(PipelineValidationError, match=message) as exc_info:
            builder.build()

        assert exc_info.value.stage_index == 1
        _assert_no_io(io_store)

    def test_rerank_without_judge_raises(
        self, io_store: MagicMock, embeddings: MagicMock, config: RFConfig
    ) -> None:
        client = RagClient(io_store, embeddings, config=config)

        with pytest.raises(PipelineValidationError, match="LLM provider"):
            client.query("Scope").where(type="function").rerank("q?").build()

    @pytest.mark.asyncio
    async def test_execute_validates_before_io(
        self, io_client: RagClient, io_store: MagicMock
    ) -> None:
        builder = io_client.query("Scope").where(type="function").rerank("q?", batch_size=0)

        with pytest.raises(PipelineValidationError):
            await builder.execute()
        _assert_no_io(io_store)

    def test_repeated_labels_are_suffixed(self, io_client: RagClient) -> None:
        pipeline = (
            io_client.query("Scope")
            .semantic_search("source", "a")
            .semantic_search("source", "b")
            .rerank("q1?")
            .rerank("q2?")
            .build()
        )

        assert pipeline.labels == ("vector:source", "vector:source#2", "llm", "llm#2")

    def test_later_filters_record_no_label(self, io_client: RagClient) -> None:
        pipeline = (
            io_client.query("Scope")
            .semantic_search("source", "a")
            .where(type="function")
            .build()
        )

        assert pipeline.labels == ("vector:source", None)
