"""
kalends.stage_graph
===================

Stage transition graph built on NetworkX.

Each workflow type becomes a DiGraph whose nodes are the sequenced
stages and whose edges are either

* ``advance``: stage *n* -> stage *n + 1*, or
* ``rework``: stage -> an earlier stage that allows regression.

:func:`validate_transition` classifies a requested change against that
graph.  A skip is reported, never raised; the caller decides whether to
ask the user for confirmation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, List, Optional, Union

import networkx as nx

from .models import WorkflowType
from .stages import (
    StageLike,
    WorkflowDefinition,
    WorkflowStage,
    definition_for,
    parse_stage,
    parse_workflow_type,
    selectable_stages,
)

ADVANCE = "advance"
REWORK = "rework"


class StageGraph:
    """
    Lightweight wrapper around a DiGraph of one workflow's stages.

    Example
    -------
    >>> sg = StageGraph(definition_for("VAT"))
    >>> [s.name for s in sg.next_stages(VATStage.PAPERWORK_RECEIVED)]
    ['PAPERWORK_PENDING_CHASE', 'PAPERWORK_CHASED', 'WORK_IN_PROGRESS']
    """

    def __init__(self, definition: WorkflowDefinition) -> None:
        self.definition = definition
        self.g = nx.DiGraph()
        sequence = definition.sequence
        for order, stage in enumerate(sequence):
            self.g.add_node(
                stage,
                order=order,
                label=stage.label,
                auto_set=stage in definition.auto_set,
            )
        for current, following in zip(sequence, sequence[1:]):
            self.g.add_edge(current, following, kind=ADVANCE)
        for order, stage in enumerate(sequence):
            for target in sequence[:order]:
                if target in definition.regression_allowed:
                    self.g.add_edge(stage, target, kind=REWORK)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def order(self, stage: WorkflowStage) -> int:
        return self.g.nodes[stage]["order"]

    def next_stages(self, stage: WorkflowStage) -> List[WorkflowStage]:
        """Advance and rework targets of *stage*, in sequence order."""
        return sorted(self.g.successors(stage), key=self.order)

    def rework_targets(self, stage: WorkflowStage) -> List[WorkflowStage]:
        return [s for s in self.next_stages(stage) if self.g.edges[stage, s]["kind"] == REWORK]

    def between(self, from_stage: WorkflowStage, to_stage: WorkflowStage) -> List[WorkflowStage]:
        """Stages strictly between two sequenced stages, in order."""
        lo, hi = sorted((self.order(from_stage), self.order(to_stage)))
        return list(self.definition.sequence[lo + 1:hi])

    def to_json(self) -> Dict[str, Any]:
        """Nodes and links arrays for a front-end graph widget."""
        nodes = [
            {"id": s.name, "label": data["label"], "order": data["order"], "autoSet": data["auto_set"]}
            for s, data in self.g.nodes(data=True)
        ]
        links = [
            {"source": a.name, "target": b.name, "kind": data["kind"]}
            for a, b, data in self.g.edges(data=True)
        ]
        return {"nodes": nodes, "links": links}


@lru_cache(maxsize=None)
def _stage_graph(workflow_type: WorkflowType) -> StageGraph:
    return StageGraph(definition_for(workflow_type))


def stage_graph(workflow_type: Union[WorkflowType, str]) -> StageGraph:
    """Shared, cached :class:`StageGraph` for *workflow_type*."""
    return _stage_graph(parse_workflow_type(workflow_type))


def transition_graph(workflow_type: Union[WorkflowType, str]) -> nx.DiGraph:
    """The raw DiGraph with ``advance`` and ``rework`` edges."""
    return stage_graph(workflow_type).g


# ---------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------
@dataclass
class TransitionResult:
    """Outcome of :func:`validate_transition`."""
    valid: bool
    message: str
    is_skipping: bool = False
    skipped_stages: List[WorkflowStage] = field(default_factory=list)
    allowed_next_stages: List[WorkflowStage] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "isSkipping": self.is_skipping,
            "skippedStages": [s.name for s in self.skipped_stages],
            "message": self.message,
            "allowedNextStages": [s.name for s in self.allowed_next_stages],
        }


def get_allowed_next_stages(
    current_stage: Optional[StageLike], workflow_type: Union[WorkflowType, str]
) -> List[WorkflowStage]:
    """
    Stages a period at *current_stage* may move to.

    The next stage in sequence (unless terminal) plus every earlier
    rework stage.  With no current stage every user-selectable stage is
    a valid starting point.
    """
    if current_stage is None:
        return selectable_stages(workflow_type)
    stage = parse_stage(workflow_type, current_stage)
    graph = stage_graph(workflow_type)
    if stage not in graph.g:
        return []
    return graph.next_stages(stage)


def validate_transition(
    from_stage: Optional[StageLike],
    to_stage: StageLike,
    workflow_type: Union[WorkflowType, str],
) -> TransitionResult:
    """
    Classify a requested stage change.

    Returns a :class:`TransitionResult`; only unknown stage names raise
    (:class:`~kalends.exceptions.UnknownStageError`).

    Examples
    --------
    >>> r = validate_transition("PAPERWORK_CHASED", "WORK_IN_PROGRESS", "VAT")
    >>> r.valid, r.is_skipping, [s.name for s in r.skipped_stages]
    (False, True, ['PAPERWORK_RECEIVED'])
    """
    graph = stage_graph(workflow_type)
    target = parse_stage(workflow_type, to_stage)
    source = parse_stage(workflow_type, from_stage) if from_stage is not None else None
    allowed = get_allowed_next_stages(source, workflow_type)

    def _result(valid: bool, message: str, **kw) -> TransitionResult:
        return TransitionResult(valid=valid, message=message, allowed_next_stages=allowed, **kw)

    if source is None:
        return _result(True, "Valid initial stage selection")
    if target not in graph.g:
        return _result(False, f"{target.label} is outside the normal stage sequence")
    if source not in graph.g:
        return _result(False, f"{source.label} is outside the normal stage sequence")
    if source is target:
        return _result(True, "No stage change")

    from_index, to_index = graph.order(source), graph.order(target)
    if to_index < from_index:
        if target in graph.definition.regression_allowed:
            return _result(True, "Valid regression for rework")
        return _result(False, "Regression not allowed to this stage")
    if to_index == from_index + 1:
        return _result(True, "Valid stage progression")

    skipped = graph.between(source, target)
    return _result(
        False,
        "Cannot skip stages: " + ", ".join(s.label for s in skipped),
        is_skipping=True,
        skipped_stages=skipped,
    )
