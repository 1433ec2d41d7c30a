"""Knowledge-graph schema facts the retrieval core depends on.

Entity labels, their vector indexes, and the node property that holds the
stored embedding.  Index creation itself is handled outside this package.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

# ---------------------------------------------------------------------------
# Entity labels
# ---------------------------------------------------------------------------


class EntityType(StrEnum):
    DRUG = "Drug"
    DISEASE = "Disease"
    CLINICAL_DISEASE = "ClinicalDisease"
    PROTEIN = "Protein"


# Node property holding the embedding; never copied into Entity.properties.
EMBEDDING_PROPERTY = "embedding"

# Label reported for nodes that carry no label at all.
UNKNOWN_ENTITY_TYPE = "Unknown"

# ---------------------------------------------------------------------------
# Vector indexes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class VectorIndexSpec:
    name: str
    entity_type: EntityType
    property: str = EMBEDDING_PROPERTY


VECTOR_INDEXES: dict[EntityType, VectorIndexSpec] = {
    EntityType.DRUG: VectorIndexSpec("drug_embeddings", EntityType.DRUG),
    EntityType.DISEASE: VectorIndexSpec("disease_embeddings", EntityType.DISEASE),
    EntityType.CLINICAL_DISEASE: VectorIndexSpec("clinical_disease_embeddings", EntityType.CLINICAL_DISEASE),
    EntityType.PROTEIN: VectorIndexSpec("protein_embeddings", EntityType.PROTEIN),
}


def index_name_for(entity_type: EntityType) -> str:
    """Return the vector index name for *entity_type*."""
    return VECTOR_INDEXES[entity_type].name


def infer_entity_type(labels: list[str] | tuple[str, ...]) -> str:
    """Pick the entity type from a node's labels.

    Known labels win in ``EntityType`` declaration order; otherwise the first
    label is used as-is so unfamiliar node kinds (Pathway, Gene...) keep a
    meaningful type.
    """
    label_set = set(labels)
    for et in EntityType:
        if et.value in label_set:
            return et
    return labels[0] if labels else UNKNOWN_ENTITY_TYPE


def _validate_index_registry() -> None:
    """Every EntityType must have exactly one vector index."""
    missing = set(EntityType) - set(VECTOR_INDEXES)
    if missing:
        raise RuntimeError(f"EntityTypes missing a vector index: {missing}")
    names = [spec.name for spec in VECTOR_INDEXES.values()]
    if len(names) != len(set(names)):
        raise RuntimeError(f"Duplicate vector index names: {names}")


_validate_index_registry()
