"""Discovery of numbered spec directories (``NNN-short-name``)."""

import re
from pathlib import Path

from specpilot.exceptions import UnitNotFoundError, WorkflowError
from specpilot.models.domain import SpecMetadata

SPEC_DIR_PATTERN = re.compile(r"^(\d{3,})-([a-z0-9][a-z0-9-]*)$", re.IGNORECASE)


def list_specs(specs_dir: Path) -> list[SpecMetadata]:
    """List spec directories ordered by their numeric prefix.

    Args:
        specs_dir: Directory that holds the spec directories

    Returns:
        Spec metadata sorted by number, then name. Empty when the directory
        does not exist.
    """
    if not specs_dir.is_dir():
        return []

    specs = []
    for entry in specs_dir.iterdir():
        match = SPEC_DIR_PATTERN.match(entry.name)
        if entry.is_dir() and match:
            specs.append(SpecMetadata(number=match.group(1), short_name=match.group(2), directory=entry))
    return sorted(specs, key=lambda spec: (int(spec.number), spec.short_name))


def detect_current_spec(specs_dir: Path) -> SpecMetadata:
    """Return the highest-numbered spec directory.

    Args:
        specs_dir: Directory that holds the spec directories

    Returns:
        Metadata of the newest spec

    Raises:
        WorkflowError: If no spec directory exists
    """
    specs = list_specs(specs_dir)
    if not specs:
        raise WorkflowError(f"no spec directories found in {specs_dir}")
    return specs[-1]


def get_spec_metadata(specs_dir: Path, spec_name: str) -> SpecMetadata:
    """Look up a spec directory by full name (``003-login``) or number (``003``).

    Raises:
        UnitNotFoundError: If no spec matches
    """
    specs = list_specs(specs_dir)
    for spec in specs:
        if spec_name in (spec.name, spec.number):
            return spec
    raise UnitNotFoundError(spec_name, [spec.name for spec in specs])
