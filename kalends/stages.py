"""
kalends.stages
==============

Stage vocabularies for the three production workflows.

Each workflow type owns one ``Enum`` whose member *names* are the stored
stage keys and whose *values* are the display labels, so the stage
picker and the transition validator read the same definition.  The
ordering, system-only stages, rework targets and milestone hooks live
in a :class:`WorkflowDefinition` per type.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Mapping, Optional, Tuple, Type, Union

from .exceptions import UnknownStageError
from .models import Milestone, WorkflowType


class WorkflowStage(Enum):
    """Base for the per-workflow stage enums; ``str()`` gives the stored key."""

    def __init__(self, label: str) -> None:
        self.label = label

    def __str__(self) -> str:
        return self.name


class VATStage(WorkflowStage):
    PAPERWORK_PENDING_CHASE = "Pending to chase"
    PAPERWORK_CHASED = "Paperwork chased"
    PAPERWORK_RECEIVED = "Paperwork received"
    WORK_IN_PROGRESS = "Work in progress"
    QUERIES_PENDING = "Queries pending"
    REVIEW_PENDING_MANAGER = "Review pending by manager"
    REVIEWED_BY_MANAGER = "Reviewed by manager"
    REVIEW_PENDING_PARTNER = "Review pending by partner"
    REVIEWED_BY_PARTNER = "Reviewed by partner"
    EMAILED_TO_PARTNER = "Emailed to partner"
    EMAILED_TO_CLIENT = "Emailed to client"
    CLIENT_APPROVED = "Client approved"
    FILED_TO_HMRC = "Filed to HMRC"


class LtdStage(WorkflowStage):
    WAITING_FOR_YEAR_END = "Waiting for Year End"
    PAPERWORK_PENDING_CHASE = "Pending to Chase Paperwork"
    PAPERWORK_CHASED = "Paperwork Chased"
    PAPERWORK_RECEIVED = "Paperwork Received"
    WORK_IN_PROGRESS = "Work in Progress"
    DISCUSS_WITH_MANAGER = "To Discuss with Manager"
    REVIEWED_BY_MANAGER = "Reviewed by Manager"
    REVIEW_BY_PARTNER = "To Review by Partner"
    REVIEWED_BY_PARTNER = "Reviewed by Partner"
    REVIEW_DONE_HELLO_SIGN = "Review Done - Hello Sign to Client"
    SENT_TO_CLIENT_HELLO_SIGN = "Sent to client on Hello Sign"
    APPROVED_BY_CLIENT = "Approved by Client"
    SUBMISSION_APPROVED_PARTNER = "Submission Approved by Partner"
    FILED_TO_COMPANIES_HOUSE = "Filed to Companies House"
    FILED_TO_HMRC = "Filed to HMRC"
    CLIENT_SELF_FILING = "Client Self-Filing"


class NonLtdStage(WorkflowStage):
    WAITING_FOR_YEAR_END = "Waiting for Year End"
    PAPERWORK_PENDING_CHASE = "Pending to Chase Paperwork"
    PAPERWORK_CHASED = "Paperwork Chased"
    PAPERWORK_RECEIVED = "Paperwork Received"
    WORK_IN_PROGRESS = "Work in Progress"
    DISCUSS_WITH_MANAGER = "To Discuss with Manager"
    REVIEWED_BY_MANAGER = "Reviewed by Manager"
    REVIEW_BY_PARTNER = "To Review by Partner"
    REVIEWED_BY_PARTNER = "Reviewed by Partner"
    REVIEW_DONE_HELLO_SIGN = "Review Done - Hello Sign to Client"
    SENT_TO_CLIENT_HELLO_SIGN = "Sent to client on Hello Sign"
    APPROVED_BY_CLIENT = "Approved by Client"
    SUBMISSION_APPROVED_PARTNER = "Submission Approved by Partner"
    FILED_TO_HMRC = "Filed to HMRC"
    CLIENT_SELF_FILING = "Client Self-Filing"


StageLike = Union[WorkflowStage, str]

# Stage names shared by every workflow; resolved against each enum below.
AUTO_SET = frozenset({"REVIEWED_BY_MANAGER", "REVIEWED_BY_PARTNER"})
REGRESSION_ALLOWED = frozenset(
    {"PAPERWORK_PENDING_CHASE", "PAPERWORK_CHASED", "PAPERWORK_RECEIVED", "WORK_IN_PROGRESS"}
)
OUT_OF_SEQUENCE = frozenset({"CLIENT_SELF_FILING"})

MILESTONE_BY_STAGE: Dict[str, Milestone] = {
    "PAPERWORK_PENDING_CHASE": Milestone.CHASE_STARTED,
    "PAPERWORK_RECEIVED": Milestone.PAPERWORK_RECEIVED,
    "WORK_IN_PROGRESS": Milestone.WORK_STARTED,
    "REVIEW_PENDING_MANAGER": Milestone.MANAGER_REVIEW,
    "DISCUSS_WITH_MANAGER": Milestone.MANAGER_REVIEW,
    "REVIEW_PENDING_PARTNER": Milestone.PARTNER_REVIEW,
    "REVIEW_BY_PARTNER": Milestone.PARTNER_REVIEW,
    "EMAILED_TO_CLIENT": Milestone.SENT_TO_CLIENT,
    "SENT_TO_CLIENT_HELLO_SIGN": Milestone.SENT_TO_CLIENT,
    "CLIENT_APPROVED": Milestone.CLIENT_APPROVED,
    "APPROVED_BY_CLIENT": Milestone.CLIENT_APPROVED,
    "FILED_TO_COMPANIES_HOUSE": Milestone.FILED_TO_COMPANIES_HOUSE,
    "FILED_TO_HMRC": Milestone.FILED,
}


@dataclass(frozen=True)
class WorkflowDefinition:
    """
    Everything the engine knows about one workflow type.

    Parameters
    ----------
    workflow_type : WorkflowType
    stage_enum : type
        The ``WorkflowStage`` subclass for this type.
    sequence : tuple
        Totally ordered production stages.
    auto_set : frozenset
        Stages only the system may set; hidden from the picker.
    regression_allowed : frozenset
        Earlier stages a period may be sent back to for rework.
    terminal : frozenset
        Stages that complete the period.
    out_of_sequence : frozenset
        Terminal stages outside the ordered sequence (client self-filing).
    idle_stage : WorkflowStage | None
        The "not started yet" stage, if the workflow has one.
    milestones : mapping
        Stage -> milestone stamped the first time the stage is entered.
    """
    workflow_type: WorkflowType
    stage_enum: Type[WorkflowStage]
    sequence: Tuple[WorkflowStage, ...]
    auto_set: FrozenSet[WorkflowStage]
    regression_allowed: FrozenSet[WorkflowStage]
    terminal: FrozenSet[WorkflowStage]
    out_of_sequence: FrozenSet[WorkflowStage] = frozenset()
    idle_stage: Optional[WorkflowStage] = None
    milestones: Mapping[WorkflowStage, Milestone] = field(default_factory=dict)

    def index(self, stage: WorkflowStage) -> int:
        """Position of *stage* in the sequence (``ValueError`` if out of sequence)."""
        return self.sequence.index(stage)


def _define(workflow_type: WorkflowType, stage_enum, idle: Optional[str] = None) -> WorkflowDefinition:
    members = list(stage_enum)
    sequence = tuple(s for s in members if s.name not in OUT_OF_SEQUENCE)
    extra = frozenset(s for s in members if s.name in OUT_OF_SEQUENCE)
    return WorkflowDefinition(
        workflow_type=workflow_type,
        stage_enum=stage_enum,
        sequence=sequence,
        auto_set=frozenset(s for s in sequence if s.name in AUTO_SET),
        regression_allowed=frozenset(s for s in sequence if s.name in REGRESSION_ALLOWED),
        terminal=frozenset({sequence[-1]}) | extra,
        out_of_sequence=extra,
        idle_stage=stage_enum[idle] if idle else None,
        milestones={s: MILESTONE_BY_STAGE[s.name] for s in members if s.name in MILESTONE_BY_STAGE},
    )


DEFINITIONS: Dict[WorkflowType, WorkflowDefinition] = {
    WorkflowType.VAT: _define(WorkflowType.VAT, VATStage),
    WorkflowType.LTD: _define(WorkflowType.LTD, LtdStage, idle="WAITING_FOR_YEAR_END"),
    WorkflowType.NON_LTD: _define(WorkflowType.NON_LTD, NonLtdStage, idle="WAITING_FOR_YEAR_END"),
}

_TYPE_BY_ENUM = {d.stage_enum: t for t, d in DEFINITIONS.items()}


# ---------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------
def parse_workflow_type(value: Union[WorkflowType, str]) -> WorkflowType:
    """Resolve ``"VAT"``, ``"LTD"`` or ``"NON_LTD"`` (any case)."""
    if isinstance(value, WorkflowType):
        return value
    try:
        return WorkflowType[str(value).strip().upper().replace("-", "_")]
    except KeyError:
        raise UnknownStageError(f"Unknown workflow type: {value!r}") from None


def definition_for(workflow_type: Union[WorkflowType, str]) -> WorkflowDefinition:
    return DEFINITIONS[parse_workflow_type(workflow_type)]


def workflow_type_of(stage: WorkflowStage) -> WorkflowType:
    """The workflow type whose enum *stage* belongs to."""
    try:
        return _TYPE_BY_ENUM[type(stage)]
    except KeyError:
        raise UnknownStageError(f"Not a workflow stage: {stage!r}") from None


def parse_stage(workflow_type: Union[WorkflowType, str], value: StageLike) -> WorkflowStage:
    """
    Resolve *value* to a member of the workflow type's stage enum.

    Accepts the member itself, its stored key (``"WORK_IN_PROGRESS"``) or
    its display label.  Members of another workflow's enum and unknown
    names raise :class:`UnknownStageError`.
    """
    definition = definition_for(workflow_type)
    enum = definition.stage_enum
    if isinstance(value, enum):
        return value
    if isinstance(value, str):
        key = value.strip()
        if key in enum.__members__:
            return enum[key]
        for stage in enum:
            if stage.label == key:
                return stage
    raise UnknownStageError(f"Unknown {definition.workflow_type} stage: {value!r}")


def stages_for(workflow_type: Union[WorkflowType, str]) -> List[WorkflowStage]:
    """The ordered production sequence for *workflow_type*."""
    return list(definition_for(workflow_type).sequence)


def get_stage_display_name(stage: WorkflowStage) -> str:
    return stage.label


def is_user_selectable(stage: WorkflowStage) -> bool:
    """False for stages only the system sets (reviewed by manager / partner)."""
    return stage not in DEFINITIONS[workflow_type_of(stage)].auto_set


def selectable_stages(workflow_type: Union[WorkflowType, str]) -> List[WorkflowStage]:
    """Stage-picker options, in sequence order."""
    return [s for s in definition_for(workflow_type).sequence if is_user_selectable(s)]


def is_terminal(stage: WorkflowStage) -> bool:
    return stage in DEFINITIONS[workflow_type_of(stage)].terminal


def stage_progress(stage: Optional[WorkflowStage]) -> Dict[str, float]:
    """
    Position of *stage* as ``{"index", "total", "percentage"}``.

    ``index`` is 1-based; no stage yet is 0 %, and out-of-sequence
    terminal stages count as complete.
    """
    if stage is None:
        return {"index": 0, "total": 0, "percentage": 0.0}
    definition = DEFINITIONS[workflow_type_of(stage)]
    total = len(definition.sequence)
    if stage in definition.out_of_sequence:
        return {"index": total, "total": total, "percentage": 100.0}
    index = definition.index(stage) + 1
    return {"index": index, "total": total, "percentage": round(100.0 * index / total, 1)}
