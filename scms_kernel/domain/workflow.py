"""
Canonical workflow types (``scms_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for submission publication workflows: states, the two
transition variants, and the workflow graph with its read-only queries.
Workflows are configuration; they are built once (from YAML or code) and
never mutated.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, or outer layers.

Invariants enforced
-------------------
* A transition is either a ``SimpleTransition`` (applied in the caller's
  transaction) or a ``JobTransition`` (deferred to a job); nothing else.
* ``can_transition(a, b)`` is True iff a declared transition goes from
  ``a`` to ``b``.  No implicit self loops.
* ``validate_workflow`` reports every structural problem at once.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union


@dataclass(frozen=True)
class WorkflowState:
    """A named status a submission version can be in.

    ``published`` marks states where the work is live; ``visible`` marks
    states readers can see; ``author_only`` states are hidden from editors;
    ``inbox`` states show up in the editor inbox.
    """
    name: str
    label: str
    visible: bool = False
    published: bool = False
    author_only: bool = False
    inbox: bool = False
    tags: tuple[str, ...] = ()


@dataclass(frozen=True, kw_only=True)
class SimpleTransition:
    """A transition applied immediately, inside one transaction.

    Contract: frozen.  ``required_scopes`` must ALL be held by the actor.
    """
    name: str
    source_state: str
    target_state: str
    required_scopes: tuple[str, ...] = ()
    sets_published_date: bool = False
    updates_slug: bool = False
    user_triggered: bool = True
    help: str = ""

    @property
    def requires_job(self) -> bool:
        return False

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "source_state": self.source_state,
            "target_state": self.target_state,
            "required_scopes": list(self.required_scopes),
            "requires_job": False,
            "sets_published_date": self.sets_published_date,
            "updates_slug": self.updates_slug,
        }


@dataclass(frozen=True, kw_only=True)
class JobTransition:
    """A transition completed later by an external job.

    Contract: frozen.  Starting it records the transition as pending and
    leaves the status untouched; the job result finishes it.
    """
    name: str
    source_state: str
    target_state: str
    job_type: str
    job_options: dict[str, Any] = field(default_factory=dict, hash=False)
    required_scopes: tuple[str, ...] = ()
    sets_published_date: bool = False
    updates_slug: bool = False
    user_triggered: bool = True
    help: str = ""

    @property
    def requires_job(self) -> bool:
        return True

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "source_state": self.source_state,
            "target_state": self.target_state,
            "required_scopes": list(self.required_scopes),
            "requires_job": True,
            "job_type": self.job_type,
            "job_options": dict(self.job_options),
            "sets_published_date": self.sets_published_date,
            "updates_slug": self.updates_slug,
        }


Transition = Union[SimpleTransition, JobTransition]


def transition_from_dict(data: dict[str, Any]) -> Transition:
    """Rebuild a transition serialized with ``to_dict`` (pending transitions)."""
    common = {
        "name": data["name"],
        "source_state": data["source_state"],
        "target_state": data["target_state"],
        "required_scopes": tuple(data.get("required_scopes", ())),
        "sets_published_date": bool(data.get("sets_published_date", False)),
        "updates_slug": bool(data.get("updates_slug", False)),
    }
    if data.get("requires_job"):
        return JobTransition(
            job_type=data["job_type"],
            job_options=dict(data.get("job_options") or {}),
            **common,
        )
    return SimpleTransition(**common)


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for the submission publication lifecycle.

    Contract: frozen; transitions should reference only declared states
    (checked by ``validate_workflow``, not at construction).
    """
    name: str
    label: str
    initial_state: str
    states: dict[str, WorkflowState] = field(hash=False)
    transitions: tuple[Transition, ...]

    def get_transition(self, source: str, target: str) -> Transition | None:
        for t in self.transitions:
            if t.source_state == source and t.target_state == target:
                return t
        return None

    def can_transition(self, source: str, target: str) -> bool:
        return self.get_transition(source, target) is not None

    def transitions_from(self, state: str) -> tuple[Transition, ...]:
        return tuple(t for t in self.transitions if t.source_state == state)

    def transitions_to(self, state: str) -> tuple[Transition, ...]:
        return tuple(t for t in self.transitions if t.target_state == state)

    def is_terminal(self, state: str) -> bool:
        """True for states with no outgoing transitions."""
        return not self.transitions_from(state)

    def is_published(self, state: str) -> bool:
        s = self.states.get(state)
        return bool(s and s.published)

    def is_visible(self, state: str) -> bool:
        s = self.states.get(state)
        return bool(s and s.visible)


def job_type_of(transition: Transition) -> str | None:
    if isinstance(transition, JobTransition):
        return transition.job_type
    return None


def validate_workflow(workflow: Workflow) -> list[str]:
    """
    Validate a workflow definition.

    Returns:
        Every problem found, as human-readable strings.  Empty if valid.
    """
    errors: list[str] = []

    if not workflow.name:
        errors.append("Workflow must have a name")
    if not workflow.label:
        errors.append("Workflow must have a label")
    if not workflow.initial_state:
        errors.append("Workflow must have an initial state")
    if not workflow.states:
        errors.append("Workflow must have states")

    for key, state in workflow.states.items():
        if not state.name:
            errors.append(f"State {key}: State must have a name")
        elif state.name != key:
            errors.append(f"State {key}: name {state.name} does not match its key")
        if not state.label:
            errors.append(f"State {key}: State must have a label")

    seen_edges: set[tuple[str, str]] = set()
    for index, t in enumerate(workflow.transitions):
        prefix = f"Transition {index}"
        if not t.name:
            errors.append(f"{prefix}: Transition must have a name")
        if not t.source_state:
            errors.append(f"{prefix}: Transition must have a source state")
        elif t.source_state not in workflow.states:
            errors.append(f"{prefix}: Unknown source state {t.source_state}")
        if not t.target_state:
            errors.append(f"{prefix}: Transition must have a target state")
        elif t.target_state not in workflow.states:
            errors.append(f"{prefix}: Unknown target state {t.target_state}")
        if isinstance(t, JobTransition) and not t.job_type:
            errors.append(f"{prefix}: Job transition must have a job type")
        edge = (t.source_state, t.target_state)
        if edge in seen_edges:
            errors.append(
                f"{prefix}: Duplicate transition from {t.source_state} to {t.target_state}"
            )
        seen_edges.add(edge)

    if workflow.initial_state and workflow.initial_state not in workflow.states:
        errors.append(
            f"Initial state {workflow.initial_state} does not exist in states"
        )

    return errors
