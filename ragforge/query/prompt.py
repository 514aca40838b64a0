"""
Judge Prompt Synthesis

Builds rerank prompts purely from an EntityContext: no per-domain code.

Prompt layout:
    ## Question
    ## <display name> to Evaluate (N total)
        [Item 0]
        <label>: <value>          required fields (always), optional fields if present
        <enrichment label>: a, b, c (+N more)
    ## Required Output Format

Truncation:
    - Strings longer than max_length become text[:max_length - 3] + "..."
    - Enrichment lists longer than max_items show the first max_items
      followed by "(+N more)"
"""

import json
from typing import Any

from ragforge.types.context import EnrichmentField, EntityContext

RERANK_SYSTEM_PROMPT = """You are a precise relevance judge for a retrieval system.

You receive a question and a numbered list of items from a knowledge graph.
Score every item independently for how well it answers the question:
- 1.0: exactly what the question asks for
- 0.5: related, partially useful
- 0.0: irrelevant

Judge only from the information shown. Never skip an item."""

MISSING_VALUE = "(missing)"


def truncate(text: str, max_length: int | None) -> str:
    """Truncate to max_length characters, ending with "..." when cut."""
    if max_length is None or len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def format_value(value: Any) -> str:
    """Render a property value as prompt text."""
    if isinstance(value, str):
        return value
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    if isinstance(value, dict):
        return json.dumps(value, sort_keys=True, default=str)
    return str(value)


def format_enrichment(enrichment: EnrichmentField, values: list[Any]) -> str | None:
    """Render an enrichment list, or None when it is empty."""
    if not values:
        return None
    shown = [str(v) for v in values[: enrichment.max_items]]
    line = f"{enrichment.label}: {', '.join(shown)}"
    hidden = len(values) - len(shown)
    if hidden > 0:
        line += f" (+{hidden} more)"
    return line


def render_item(
    index: int,
    record: dict[str, Any],
    context: EntityContext,
    enrichments: dict[str, list[Any]] | None = None,
) -> str:
    """
    Render one candidate as an [Item N] block.

    Args:
        index: Batch-local position used as the evaluation id
        record: Full entity record
        context: EntityContext of the record's type
        enrichments: Enrichment field_name -> resolved values
    """
    lines = [f"[Item {index}]"]

    for field in context.fields:
        value = record.get(field.name)
        if value is None or value == "":
            if field.required:
                lines.append(f"{field.display_label}: {MISSING_VALUE}")
            continue
        text = format_value(value)
        if isinstance(value, str):
            text = truncate(text, field.max_length)
        lines.append(f"{field.display_label}: {text}")

    resolved = enrichments or {}
    for enrichment in context.enrichments:
        if enrichment.field_name in resolved:
            values = resolved[enrichment.field_name]
        else:
            raw = record.get(enrichment.field_name)
            values = list(raw) if isinstance(raw, (list, tuple)) else []
        line = format_enrichment(enrichment, values)
        if line is not None:
            lines.append(line)

    return "\n".join(lines)


def output_instructions() -> str:
    return "\n".join([
        "Return one evaluation per item with:",
        '- id: the item number shown in brackets, as a string (e.g. "0")',
        "- score: a number from 0.0 to 1.0",
        "- reasoning: one short sentence",
    ])


def build_rerank_prompt(
    question: str,
    context: EntityContext,
    records: list[dict[str, Any]],
    enrichments: list[dict[str, list[Any]]] | None = None,
) -> str:
    """
    Build the user prompt for one rerank batch.

    Args:
        question: The judge question
        context: EntityContext of the candidates
        records: Entity records in batch order
        enrichments: Per-record resolved enrichment lists (same order)
    """
    per_item = enrichments or [{} for _ in records]
    items = "\n\n".join(
        render_item(i, record, context, per_item[i])
        for i, record in enumerate(records)
    )

    parts = [
        "## Question",
        question,
        "",
        f"## {context.display_name[:1].upper()}{context.display_name[1:]} to Evaluate "
        f"({len(records)} total)",
        "",
        items,
        "",
        "## Required Output Format",
        output_instructions(),
    ]
    return "\n".join(parts)
