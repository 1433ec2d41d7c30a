"""Token-bounded context composition for the answer generator.

Renders an :class:`AssembledResult` into a compact text block made of entity
lines and relationship lines.  Token cost is measured with tiktoken, and the
rendered payload never exceeds the requested budget.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from typing import TYPE_CHECKING, Any

import tiktoken
from loguru import logger

from bio_atlas.errors import InvalidInputError
from bio_atlas.search.models import Direction

if TYPE_CHECKING:
    from collections.abc import Sequence

    from bio_atlas.search.models import AssembledResult, Entity, QueryType, RelationEdge, SimilarityHit


@dataclass(frozen=True)
class ContextItem:
    """A single piece of composed context with its token cost."""

    role: str  # entity | relation
    text: str
    tokens: int
    ref_id: str = ""
    truncated: bool = False


@dataclass(frozen=True)
class ContextEntity:
    id: str
    name: str
    entity_type: str
    score: float
    properties: dict[str, str] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class ContextRelation:
    id: str
    type: str
    source: str
    target: str
    direction: Direction


@dataclass(frozen=True)
class ContextPayload:
    """Budget-aware context ready for LLM consumption."""

    query_type: QueryType
    items: tuple[ContextItem, ...]
    entities: tuple[ContextEntity, ...]
    relations: tuple[ContextRelation, ...]
    total_tokens: int
    budget: int
    confidence: float
    excluded_counts: dict[str, int] = field(default_factory=dict)

    def render(self) -> str:
        """Render all items as a single text block, one section per role."""
        sections: list[str] = []
        for role, header in _ROLE_HEADERS.items():
            lines = [item.text for item in self.items if item.role == role]
            if lines:
                sections.append(f"{header}\n" + "\n".join(lines))
        return "\n\n".join(sections)


# ---------------------------------------------------------------------------
# Token counting
# ---------------------------------------------------------------------------


@lru_cache(maxsize=4)
def _get_encoding(name: str) -> tiktoken.Encoding:
    """Get a cached tiktoken encoding by name."""
    return tiktoken.get_encoding(name)


def count_tokens(text: str, encoding_name: str = "cl100k_base") -> int:
    """Count tokens in *text* using a tiktoken encoding."""
    if not text:
        return 0
    return len(_get_encoding(encoding_name).encode(text))


def _truncate_to_budget(text: str, max_tokens: int, encoding_name: str) -> str:
    """Truncate *text* to at most *max_tokens*, cutting at line boundaries when possible."""
    enc = _get_encoding(encoding_name)
    while text and max_tokens > 0:
        tokens = enc.encode(text)
        if len(tokens) <= max_tokens:
            return text
        truncated = enc.decode(tokens[:max_tokens])
        last_nl = truncated.rfind("\n")
        if last_nl > 0:
            truncated = truncated[:last_nl]
        # Decoding a partial multibyte sequence can re-encode longer; shrink until it fits.
        excess = len(enc.encode(truncated)) - max_tokens
        if excess <= 0:
            return truncated
        text = truncated
        max_tokens -= excess
    return ""


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

_ROLE_HEADERS: dict[str, str] = {
    "entity": "## Relevant Entities",
    "relation": "## Relationships",
}

_MIN_USEFUL_TOKENS = 20
MIN_BUDGET = 2 * _MIN_USEFUL_TOKENS

# (label, candidate property keys); the first non-empty key wins.
_KEY_PROPERTIES: dict[str, tuple[tuple[str, tuple[str, ...]], ...]] = {
    "Drug": (
        ("Indication", ("indication",)),
        ("Mechanism", ("mechanism_of_action",)),
        ("Description", ("description",)),
    ),
    "Disease": (
        ("Definition", ("mondo_definition", "description")),
        ("Symptoms", ("mayo_symptoms",)),
    ),
    "ClinicalDisease": (
        ("Definition", ("mondo_definition", "description")),
        ("Symptoms", ("mayo_symptoms",)),
    ),
    "Protein": (("Synonyms", ("synonyms",)),),
}
_DEFAULT_PROPERTIES: tuple[tuple[str, tuple[str, ...]], ...] = (("Description", ("description",)),)


def _format_value(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value if v not in (None, ""))
    return str(value).strip()


def key_properties(entity: Entity) -> dict[str, str]:
    """Pick the first non-empty value for each key property of the entity's type, keyed by label."""
    selected: dict[str, str] = {}
    for label, keys in _KEY_PROPERTIES.get(entity.entity_type, _DEFAULT_PROPERTIES):
        for key in keys:
            value = entity.properties.get(key)
            text = _format_value(value) if value is not None else ""
            if text:
                selected[label] = text
                break
    return selected


def render_entity(hit: SimilarityHit) -> str:
    """Render a hit as a bullet line plus indented key properties."""
    entity = hit.entity
    lines = [f"- {entity.display_name} ({entity.entity_type}, score {hit.score:.3f})"]
    lines.extend(f"  {label}: {text}" for label, text in key_properties(entity).items())
    return "\n".join(lines)


def render_relation(relation: ContextRelation) -> str:
    return f"- {relation.source} -[{relation.type}]-> {relation.target} ({relation.direction})"


def _context_relation(edge: RelationEdge, assembled: AssembledResult) -> ContextRelation:
    def _name(entity_id: str) -> str:
        entity = assembled.graph_data.get(entity_id)
        return entity.display_name if entity is not None else entity_id

    return ContextRelation(
        id=edge.id,
        type=edge.type,
        source=_name(edge.from_entity_id),
        target=_name(edge.to_entity_id),
        direction=assembled.relation_directions.get(edge.id, Direction.DISTAL),
    )


def _ordered_edges(assembled: AssembledResult) -> list[RelationEdge]:
    """Edges nearest the seeds first; ties keep subgraph order."""
    far = len(assembled.graph_data.entities) + 1
    hops = assembled.hop_distances

    def _distance(edge: RelationEdge) -> int:
        return min(hops.get(edge.from_entity_id, far), hops.get(edge.to_entity_id, far))

    return sorted(assembled.graph_data.edges, key=_distance)


def confidence_score(hits: Sequence[SimilarityHit], *, has_relations: bool) -> float:
    """Heuristic answer confidence in [0, 1] from hit scores and relation evidence."""
    if not hits:
        return 0.0
    top = max(hit.score for hit in hits)
    strong = sum(1 for hit in hits if hit.score > 0.7)
    score = top + min(strong * 0.05, 0.2)
    if has_relations:
        score += 0.1
    return round(min(score, 1.0), 2)


# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------


class _Composer:
    """Accumulates items while charging headers and separators against the budget."""

    def __init__(self, budget: int, tokenizer: str) -> None:
        self.budget = budget
        self.tokenizer = tokenizer
        self.used = 0
        self.items: list[ContextItem] = []
        self._opened: set[str] = set()
        self._line_sep = count_tokens("\n", tokenizer)

    @property
    def remaining(self) -> int:
        return self.budget - self.used

    def _overhead(self, role: str) -> int:
        if role in self._opened:
            return self._line_sep
        return count_tokens(f"\n\n{_ROLE_HEADERS[role]}\n", self.tokenizer)

    def add(self, role: str, text: str, ref_id: str, *, limit: int, force: bool = False) -> bool:
        """Add *text* within *limit* tokens (overhead included), truncating when useful.

        A forced item is truncated to whatever room is left; otherwise
        truncation only happens with at least ``_MIN_USEFUL_TOKENS`` to spare.
        """
        overhead = self._overhead(role)
        room = min(limit, self.remaining) - overhead
        if room <= 0:
            return False
        tokens = count_tokens(text, self.tokenizer)
        truncated = False
        if tokens > room:
            if not force and room < _MIN_USEFUL_TOKENS:
                return False
            text = _truncate_to_budget(text, room, self.tokenizer)
            if not text:
                return False
            tokens = count_tokens(text, self.tokenizer)
            truncated = True
        self.items.append(ContextItem(role=role, text=text, tokens=tokens, ref_id=ref_id, truncated=truncated))
        self._opened.add(role)
        self.used += tokens + overhead
        return True


def compose(
    assembled: AssembledResult,
    *,
    query_type: QueryType,
    budget: int = 4000,
    tokenizer: str = "cl100k_base",
    entity_share: float = 0.7,
) -> ContextPayload:
    """Compose a token-bounded context payload from *assembled*.

    Entities go first, up to ``entity_share`` of the budget, then relations
    nearest the seeds, then any entities that did not fit back-fill the
    remainder in hit order.  When both hits and relations exist, at least
    one of each is emitted (truncated if necessary).
    """
    if isinstance(budget, bool) or not isinstance(budget, int) or budget < MIN_BUDGET:
        raise InvalidInputError(f"Token budget must be an integer >= {MIN_BUDGET}, got {budget!r}")
    if not 0.0 < entity_share <= 1.0:
        raise InvalidInputError(f"entity_share must be in (0, 1], got {entity_share!r}")

    hits = list(assembled.entities)
    edges = _ordered_edges(assembled)
    composer = _Composer(budget, tokenizer)

    entity_cap = budget
    first_limit = budget
    if edges:
        entity_cap = min(int(budget * entity_share), budget - _MIN_USEFUL_TOKENS)
        first_limit = min(max(entity_cap, _MIN_USEFUL_TOKENS), budget - _MIN_USEFUL_TOKENS)

    # Pass 1: entities within their share
    included_hits: set[int] = set()
    for idx, hit in enumerate(hits):
        forced = idx == 0
        limit = first_limit if forced else entity_cap - composer.used
        if not composer.add("entity", render_entity(hit), hit.entity.id, limit=limit, force=forced):
            break
        included_hits.add(idx)

    # Pass 2: relations, nearest hop first
    relations: list[ContextRelation] = []
    seen_lines: set[str] = set()
    duplicates = 0
    for idx, edge in enumerate(edges):
        if composer.remaining < _MIN_USEFUL_TOKENS and not (idx == 0 and hits):
            break
        relation = _context_relation(edge, assembled)
        line = render_relation(relation)
        # Parallel edges with the same type and endpoints render identically.
        if line in seen_lines:
            duplicates += 1
            continue
        forced = idx == 0 and bool(hits)
        if composer.add("relation", line, edge.id, limit=composer.remaining, force=forced):
            relations.append(relation)
            seen_lines.add(line)

    # Pass 3: back-fill remaining entities
    for idx, hit in enumerate(hits):
        if idx in included_hits:
            continue
        if composer.remaining < _MIN_USEFUL_TOKENS:
            break
        if composer.add("entity", render_entity(hit), hit.entity.id, limit=composer.remaining):
            included_hits.add(idx)

    excluded: dict[str, int] = {}
    if len(included_hits) < len(hits):
        excluded["entity"] = len(hits) - len(included_hits)
    if len(relations) + duplicates < len(edges):
        excluded["relation"] = len(edges) - len(relations) - duplicates
    if excluded:
        logger.debug("Context composition excluded: {}", excluded)

    # Items are grouped by role when rendered; keep entity items in hit order.
    order = {hit.entity.id: i for i, hit in enumerate(hits)}
    entity_items = sorted((i for i in composer.items if i.role == "entity"), key=lambda i: order[i.ref_id])
    relation_items = [i for i in composer.items if i.role == "relation"]

    return ContextPayload(
        query_type=query_type,
        items=(*entity_items, *relation_items),
        entities=tuple(
            ContextEntity(
                id=hits[i].entity.id,
                name=hits[i].entity.display_name,
                entity_type=hits[i].entity.entity_type,
                score=hits[i].score,
                properties=key_properties(hits[i].entity),
            )
            for i in sorted(included_hits)
        ),
        relations=tuple(relations),
        total_tokens=composer.used,
        budget=budget,
        confidence=confidence_score(hits, has_relations=bool(edges)),
        excluded_counts=excluded,
    )
