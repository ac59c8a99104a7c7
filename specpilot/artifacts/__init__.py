"""Workflow artifacts: spec directories, YAML loading and stage validators.

Key Components:
    - load_tasks_document: Parse tasks.yaml into Task/Phase models
    - detect_current_spec: Find the newest NNN-name spec directory
    - validators: Callables checking a stage's output

Example:
    >>> from specpilot.artifacts import detect_current_spec, load_tasks_document
    >>> spec = detect_current_spec(Path("specs"))
    >>> document = load_tasks_document(spec.directory / "tasks.yaml")
"""

from specpilot.artifacts.loader import get_tasks_file_path, load_tasks_document
from specpilot.artifacts.specs import detect_current_spec, get_spec_metadata, list_specs

__all__ = [
    "detect_current_spec",
    "get_spec_metadata",
    "get_tasks_file_path",
    "list_specs",
    "load_tasks_document",
]
