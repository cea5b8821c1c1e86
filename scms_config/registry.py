"""
Workflow registry.

Lookup of workflow definitions by name.  The built-in workflows shipped
in ``scms_config/workflows`` are loaded on first use; sites with custom
workflows register them with ``register_workflow``.

Usage:
    workflow = get_workflow("SIMPLE")
    register_workflow(load_workflow(Path("my_site.yaml")))
"""

import threading
from typing import ClassVar

from scms_config.loader import load_builtin_workflows
from scms_kernel.domain.workflow import Workflow
from scms_kernel.exceptions import WorkflowNotFoundError
from scms_kernel.logging_config import get_logger

logger = get_logger("config.workflow_registry")


class WorkflowRegistry:
    """
    Process-wide registry of workflows, keyed by ``Workflow.name``.

    Registering a name that already exists replaces the old definition
    and logs a warning.  ``clear`` drops everything, including the
    built-ins, which are loaded again on next use.
    """

    _workflows: ClassVar[dict[str, Workflow]] = {}
    _builtins_loaded: ClassVar[bool] = False
    _lock: ClassVar[threading.Lock] = threading.Lock()

    @classmethod
    def _ensure_builtins(cls) -> None:
        with cls._lock:
            if cls._builtins_loaded:
                return
            for workflow in load_builtin_workflows():
                # Explicit registrations made before first use win.
                cls._workflows.setdefault(workflow.name, workflow)
            cls._builtins_loaded = True
        logger.info(
            "builtin_workflows_loaded",
            extra={"workflow_names": sorted(cls._workflows)},
        )

    @classmethod
    def register(cls, workflow: Workflow) -> None:
        with cls._lock:
            replaced = workflow.name in cls._workflows
            cls._workflows[workflow.name] = workflow
        if replaced:
            logger.warning(
                "workflow_replaced",
                extra={"workflow_name": workflow.name},
            )
        else:
            logger.info(
                "workflow_registered",
                extra={
                    "workflow_name": workflow.name,
                    "transition_count": len(workflow.transitions),
                },
            )

    @classmethod
    def get(cls, name: str) -> Workflow:
        """
        Raises:
            WorkflowNotFoundError: no workflow is registered under ``name``.
        """
        cls._ensure_builtins()
        workflow = cls._workflows.get(name)
        if workflow is None:
            logger.warning("workflow_not_found", extra={"workflow_name": name})
            raise WorkflowNotFoundError(name)
        return workflow

    @classmethod
    def names(cls) -> list[str]:
        cls._ensure_builtins()
        return sorted(cls._workflows)

    @classmethod
    def clear(cls) -> None:
        with cls._lock:
            cls._workflows.clear()
            cls._builtins_loaded = False


def register_workflow(workflow: Workflow) -> None:
    WorkflowRegistry.register(workflow)


def get_workflow(name: str) -> Workflow:
    return WorkflowRegistry.get(name)


def list_workflow_names() -> list[str]:
    return WorkflowRegistry.names()


def clear_workflows() -> None:
    """Test helper: forget every registration."""
    WorkflowRegistry.clear()
