"""
scms_config -- settings and workflow definitions.

Responsibility:
    Reads runtime settings from the environment and loads workflow
    definitions from YAML.  The kernel never imports from this package;
    callers pass the loaded ``Workflow`` objects and settings values into
    kernel and service constructors.
"""

from scms_config.loader import (
    load_builtin_workflows,
    load_workflow,
    load_workflow_dir,
    parse_workflow,
)
from scms_config.registry import (
    clear_workflows,
    get_workflow,
    list_workflow_names,
    register_workflow,
)
from scms_config.settings import Settings

__all__ = [
    "Settings",
    "clear_workflows",
    "get_workflow",
    "list_workflow_names",
    "load_builtin_workflows",
    "load_workflow",
    "load_workflow_dir",
    "parse_workflow",
    "register_workflow",
]
