"""Turn question text into a typed QueryPlan."""

from __future__ import annotations

import logging

from exchangeql.errors import ClassificationFailure
from exchangeql.planning.extractors import ExtractionPipeline, has_name_cue
from exchangeql.planning.intent import (
    QueryPlan,
    QueryShape,
    detect_entity,
    detect_group_dimension,
    detect_shape,
    is_overview_question,
    is_recent_question,
    wants_all_rows,
)

logger = logging.getLogger(__name__)


class QueryPlanner:
    """Combine the extraction cascade with shape and entity detection.

    The plan is the single typed description of a question. It feeds the
    synthesizer and, unchanged, the degraded execution path.
    """

    def __init__(self, pipeline: ExtractionPipeline | None = None):
        self.pipeline = pipeline or ExtractionPipeline.from_order()

    def plan(self, text: str) -> QueryPlan:
        cleaned = " ".join((text or "").split())
        if not cleaned:
            raise ClassificationFailure("Empty question")

        match = self.pipeline.extract(cleaned)
        if match is None and has_name_cue(cleaned):
            # Names are only recognized when capitalized or quoted.
            raise ClassificationFailure(f"Name in {cleaned!r} not recognized; capitalize or quote it")
        entity = detect_entity(cleaned)
        if entity is None and match is not None:
            entity = match.target_entity

        shape = detect_shape(cleaned)
        notes: list[str] = []

        if entity is None:
            if match is None and is_overview_question(cleaned):
                return QueryPlan(
                    text=cleaned,
                    entity=None,
                    shape=QueryShape.AGGREGATE,
                    overview=True,
                    notes=["system overview"],
                )
            raise ClassificationFailure(f"No entity or filter recognized in: {cleaned!r}")

        group_by = None
        if shape is QueryShape.AGGREGATE:
            group_by = detect_group_dimension(cleaned, entity)
            if group_by is None:
                notes.append("grouping not supported for this entity; listing instead")
                shape = QueryShape.LIST

        plan = QueryPlan(
            text=cleaned,
            entity=entity,
            shape=shape,
            match=match,
            group_by=group_by,
            wants_all=wants_all_rows(cleaned),
            recent=match is None and is_recent_question(cleaned),
            notes=notes,
        )
        logger.debug(
            "Planned %r: entity=%s shape=%s match=%s",
            cleaned,
            plan.entity,
            plan.shape.value,
            plan.match_kind,
        )
        return plan
