"""Input preparation for E5-family embedding models.

Plain E5 models expect ``query: `` or ``passage: `` in front of every
input. Instruct variants expect an ``Instruct: {task}\nQuery: `` block on
queries only; passages are embedded unchanged. Both rules are idempotent.
"""

from __future__ import annotations

from hybridrag.embeddings.catalog import EmbeddingModelDescriptor

QUERY_PREFIX = "query: "
PASSAGE_PREFIX = "passage: "
INSTRUCT_MARKER = "Instruct:"


def instruct_block(task: str) -> str:
    return f"{INSTRUCT_MARKER} {task}\nQuery: "


def prepare_e5_text(
    text: str,
    is_query: bool,
    model: EmbeddingModelDescriptor,
    task: str | None = None,
) -> str:
    """Return ``text`` with the prefix ``model`` expects.

    Args:
        text: Raw query or passage.
        is_query: ``True`` for search queries, ``False`` for stored passages.
        model: Catalog entry of the active model.
        task: Instruction override for instruct models.
    """
    if model.is_instruct:
        if not is_query or text.startswith(INSTRUCT_MARKER):
            return text
        instruction = task or model.default_task_instruction or ""
        return instruct_block(instruction) + text

    if not model.is_e5:
        return text

    prefix = QUERY_PREFIX if is_query else PASSAGE_PREFIX
    if text.startswith(prefix):
        return text
    return prefix + text
