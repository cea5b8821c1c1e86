"""
Workflow Loader (``scms_config.loader``).

Responsibility
--------------
Loads workflow YAML files and parses them into the frozen
``scms_kernel.domain.workflow`` value objects.  Each parsed workflow is
checked with ``validate_workflow`` before it is returned, so nothing
structurally broken ever reaches the registry or the engine.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  Depends on the kernel's
domain types and exceptions only.  The kernel MUST NEVER import from
``scms_config``.

File format
-----------
::

    name: SIMPLE
    label: Simple Public Workflow
    initial_state: PENDING
    states:
      PENDING: {label: Pending, inbox: true, tags: [ok]}
      ...
    transitions:
      - name: publish
        source: PENDING
        target: PUBLISHED
        required_scopes: ["site:submissions:update"]
        sets_published_date: true
        updates_slug: true
        job: {type: PUBLISH, options: {}}

A transition with a ``job`` block becomes a ``JobTransition``; any other
becomes a ``SimpleTransition``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Structurally invalid workflow  -> ``InvalidWorkflowError`` listing
  every problem found.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from scms_kernel.domain.workflow import (
    JobTransition,
    SimpleTransition,
    Transition,
    Workflow,
    WorkflowState,
    validate_workflow,
)
from scms_kernel.exceptions import InvalidWorkflowError
from scms_kernel.logging_config import get_logger

logger = get_logger("config.loader")

BUILTIN_WORKFLOW_DIR = Path(__file__).parent / "workflows"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Postconditions:
        - Returns a ``dict`` (empty if the YAML document is empty).
    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_state(name: str, data: dict[str, Any] | None) -> WorkflowState:
    """Parse one entry of the ``states`` mapping."""
    data = data or {}
    return WorkflowState(
        name=name,
        label=data.get("label", ""),
        visible=bool(data.get("visible", False)),
        published=bool(data.get("published", False)),
        author_only=bool(data.get("author_only", False)),
        inbox=bool(data.get("inbox", False)),
        tags=tuple(data.get("tags") or ()),
    )


def parse_transition(data: dict[str, Any]) -> Transition:
    """
    Parse one entry of the ``transitions`` list.

    Raises:
        KeyError: if ``name``, ``source`` or ``target`` is missing.
    """
    common: dict[str, Any] = {
        "name": data["name"],
        "source_state": data["source"],
        "target_state": data["target"],
        "required_scopes": tuple(str(s) for s in data.get("required_scopes") or ()),
        "sets_published_date": bool(data.get("sets_published_date", False)),
        "updates_slug": bool(data.get("updates_slug", False)),
        "user_triggered": bool(data.get("user_triggered", True)),
        "help": data.get("help", ""),
    }
    job = data.get("job")
    if job is not None:
        return JobTransition(
            job_type=str(job.get("type", "")),
            job_options=dict(job.get("options") or {}),
            **common,
        )
    return SimpleTransition(**common)


def parse_workflow(data: dict[str, Any]) -> Workflow:
    """
    Parse and validate a workflow from a dict.

    Raises:
        KeyError: if a transition lacks a required key.
        InvalidWorkflowError: if the parsed workflow fails validation.
    """
    states = {
        name: parse_state(name, state)
        for name, state in (data.get("states") or {}).items()
    }
    workflow = Workflow(
        name=data.get("name", ""),
        label=data.get("label", ""),
        initial_state=data.get("initial_state", ""),
        states=states,
        transitions=tuple(parse_transition(t) for t in data.get("transitions") or ()),
    )
    errors = validate_workflow(workflow)
    if errors:
        raise InvalidWorkflowError(workflow.name, errors)
    return workflow


def load_workflow(path: Path) -> Workflow:
    """Load, parse and validate one workflow YAML file."""
    workflow = parse_workflow(load_yaml_file(path))
    logger.debug(
        "workflow_loaded",
        extra={
            "workflow_name": workflow.name,
            "path": str(path),
            "transition_count": len(workflow.transitions),
        },
    )
    return workflow


def load_workflow_dir(directory: Path) -> list[Workflow]:
    """Load every ``*.yaml`` file in ``directory``, in file name order."""
    return [load_workflow(path) for path in sorted(directory.glob("*.yaml"))]


def load_builtin_workflows() -> list[Workflow]:
    """The workflows shipped with the package (SIMPLE, PRIVATE, CLOSED_REVIEW)."""
    return load_workflow_dir(BUILTIN_WORKFLOW_DIR)
