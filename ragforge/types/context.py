"""
Entity Context Types

Static, per-domain description of an entity type. An EntityContext tells
the pipeline which fields exist, which are shown to the reranking judge
(and how they are truncated), which vector spaces the type carries, and
which graph relationships are surfaced as labelled enrichment lists.

The same reranking code serves any domain:
    - Code analysis: Scope entities with CONSUMES relationships
    - E-commerce: Product entities with PURCHASED_WITH relationships
    - Social: User entities with FOLLOWS relationships

Models:
    - EntityField: A raw entity property shown to the judge
    - EnrichmentField: A relationship-derived list shown to the judge
    - EmbeddingField: A named vector space bound to an entity field
    - EntityContext: The complete description of one entity type
    - ContextRegistry: Entity type -> EntityContext lookup
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

Direction = Literal["outgoing", "incoming", "both"]


class EntityField(BaseModel):
    """
    Entity field configuration for judge prompt rendering.

    Attributes:
        name: Property name in the entity record (e.g. "name", "price")
        required: Always rendered in the entity header
        label: Display label in the prompt (defaults to the field name)
        max_length: Truncate longer string values to this many characters
    """

    name: str
    required: bool = False
    label: str | None = None
    max_length: int | None = Field(default=None, gt=3)

    model_config = ConfigDict(frozen=True)

    @property
    def display_label(self) -> str:
        return self.label or self.name


class EnrichmentField(BaseModel):
    """
    Enrichment list configuration for judge prompt rendering.

    When relationship_type is set, the list is the target_field of every
    neighbour reached along that relationship. Otherwise the list is read
    from the record's own field_name property.

    Attributes:
        field_name: Key of the enrichment (e.g. "consumes", "frequentlyBoughtWith")
        label: Display label (e.g. "Uses", "Often bought with")
        max_items: Maximum number of list items rendered
        relationship_type: Graph relationship the list is derived from
        direction: Traversal direction for the derivation
        target_field: Neighbour property rendered for each item
    """

    field_name: str
    label: str
    max_items: int = Field(default=10, ge=1)
    relationship_type: str | None = None
    direction: Direction = "outgoing"
    target_field: str = "name"

    model_config = ConfigDict(frozen=True)


class EmbeddingField(BaseModel):
    """
    A named vector space of an entity type.

    An entity type may carry several independent spaces, e.g. a
    "signature" space and a "source" space for code scopes.
    """

    field: str
    index_name: str

    model_config = ConfigDict(frozen=True)


class EntityContext(BaseModel):
    """
    Entity context configuration.

    Attributes:
        type: Entity type identifier (e.g. "Scope", "Product")
        display_name: Plural label used in judge prompts (e.g. "code scopes")
        fields: Fields rendered for the judge
        enrichments: Relationship-derived lists rendered for the judge
        embeddings: Vector spaces available to semantic search
        relationships: Relationship types legal in expand/related_to
        properties: Extra filterable properties never shown to the judge
        id_field: Property holding the stable entity key
    """

    type: str
    display_name: str
    fields: list[EntityField]
    enrichments: list[EnrichmentField] = []
    embeddings: list[EmbeddingField] = []
    relationships: list[str] = []
    properties: list[str] = []
    id_field: str = "uuid"

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_schema(self) -> "EntityContext":
        names = [f.name for f in self.fields]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate field names in EntityContext {self.type!r}")

        enrichment_names = [e.field_name for e in self.enrichments]
        if len(enrichment_names) != len(set(enrichment_names)):
            raise ValueError(f"Duplicate enrichment names in EntityContext {self.type!r}")

        embedded = [e.field for e in self.embeddings]
        if len(embedded) != len(set(embedded)):
            raise ValueError(f"Duplicate embedding fields in EntityContext {self.type!r}")

        for enrichment in self.enrichments:
            rel = enrichment.relationship_type
            if rel is not None and rel not in self.relationships:
                raise ValueError(
                    f"Enrichment {enrichment.field_name!r} uses undeclared "
                    f"relationship {rel!r}"
                )
        return self

    # -------------------------------------------------------------------------
    # Lookups used by the validation pass
    # -------------------------------------------------------------------------

    def filterable_fields(self) -> set[str]:
        """Every property a structural predicate may reference."""
        return {self.id_field, *(f.name for f in self.fields), *self.properties}

    def has_field(self, name: str) -> bool:
        return name in self.filterable_fields()

    def has_relationship(self, relationship_type: str) -> bool:
        return relationship_type in self.relationships

    def index_for(self, field: str) -> str | None:
        """Return the vector index bound to an embedding field, if any."""
        for embedding in self.embeddings:
            if embedding.field == field:
                return embedding.index_name
        return None

    def embedding_fields(self) -> list[str]:
        return [e.field for e in self.embeddings]


class ContextRegistry:
    """
    Registry of EntityContexts keyed by entity type.

    Example:
        >>> registry = ContextRegistry([DEFAULT_SCOPE_CONTEXT])
        >>> registry.get("Scope").display_name
        'code scopes'
    """

    def __init__(self, contexts: list[EntityContext] | None = None) -> None:
        self._contexts: dict[str, EntityContext] = {}
        for context in contexts or []:
            self.register(context)

    def register(self, context: EntityContext) -> None:
        """Add or replace the context for context.type."""
        self._contexts[context.type] = context

    def get(self, entity_type: str) -> EntityContext:
        try:
            return self._contexts[entity_type]
        except KeyError:
            raise KeyError(f"No EntityContext registered for entity type {entity_type!r}") from None

    def __contains__(self, entity_type: object) -> bool:
        return entity_type in self._contexts

    def types(self) -> list[str]:
        return sorted(self._contexts)


# -----------------------------------------------------------------------------
# Built-in contexts
# -----------------------------------------------------------------------------


DEFAULT_SCOPE_CONTEXT = EntityContext(
    type="Scope",
    display_name="code scopes",
    fields=[
        EntityField(name="name", required=True),
        EntityField(name="type", required=True),
        EntityField(name="file", required=True),
        EntityField(name="signature", max_length=200),
        EntityField(name="source", label="Code", max_length=300),
    ],
    enrichments=[
        EnrichmentField(
            field_name="consumes",
            label="Uses",
            max_items=10,
            relationship_type="CONSUMES",
        ),
    ],
    embeddings=[
        EmbeddingField(field="signature", index_name="scopeEmbeddingsSignature"),
        EmbeddingField(field="source", index_name="scopeEmbeddingsSource"),
    ],
    relationships=["CONSUMES", "CONSUMED_BY", "DEFINED_IN", "USES_LIBRARY"],
    properties=["startLine", "endLine", "language"],
)
"""Code scopes with dual (signature + source) embeddings."""
