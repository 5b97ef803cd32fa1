"""Render retrieved evidence as one text block for the language model.

Sections appear in a fixed order (entities, relationships, source documents)
and empty sections are left out. Pure function of its inputs.
"""

from collections.abc import Sequence

from kgrag.entities import ScoredEntity, ScoredPassage, ScoredRelation

ENTITIES_HEADER = "### Relevant Entities"
RELATIONS_HEADER = "### Relationships"
PASSAGES_HEADER = "### Source Documents"


def _entity_line(item: ScoredEntity) -> str:
    entity = item.entity
    entity_type = entity.entity_type or "Unknown type"
    description = entity.description or "No description"
    return f"- **{entity.entity_name}** ({entity_type}): {description}"


def _relation_line(item: ScoredRelation, names: dict[str, str]) -> str:
    relation = item.relation
    source = names.get(relation.source_entity_id, relation.source_entity_id)
    target = names.get(relation.target_entity_id, relation.target_entity_id)
    line = f"- {source} → {relation.relation_type} → {target}"
    if relation.description:
        line += f": {relation.description}"
    return line


def _passage_block(index: int, item: ScoredPassage) -> str:
    return f"[Source {index}] (similarity: {item.similarity:.3f})\n{item.passage.content}"


def build_context(
    passages: Sequence[ScoredPassage],
    entities: Sequence[ScoredEntity],
    relations: Sequence[ScoredRelation],
) -> str:
    """Assemble the context string.

    Relation endpoints are shown by entity name when the entity list contains
    them, otherwise by ID. Passages are labelled ``[Source N]`` (1-based) in
    the order given, which is the order citations refer to.
    """
    sections: list[str] = []

    if entities:
        lines = [ENTITIES_HEADER]
        lines.extend(_entity_line(item) for item in entities)
        sections.append("\n".join(lines))

    if relations:
        names = {item.entity.id: item.entity.entity_name for item in entities}
        lines = [RELATIONS_HEADER]
        lines.extend(_relation_line(item, names) for item in relations)
        sections.append("\n".join(lines))

    if passages:
        blocks = [PASSAGES_HEADER]
        blocks.extend(_passage_block(i, item) for i, item in enumerate(passages, start=1))
        sections.append("\n\n".join(blocks))

    return "\n\n".join(sections)
