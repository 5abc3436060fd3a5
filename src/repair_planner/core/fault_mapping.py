"""Fault Mapping

Translates a DiagnosedFault into a RepairContext by looking the fault type up
in a fault taxonomy table. The mapping is pure: no I/O happens here once the
taxonomy has been loaded.

Unknown fault types still produce a context (empty candidate procedures,
severity-derived priority) so the planner can work with degraded guidance.
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import ValidationError

from repair_planner.core.taxonomy import DEFAULT_FAULT_TAXONOMY
from repair_planner.exceptions import ConfigurationError, InvalidFaultError
from repair_planner.models import (
    DiagnosedFault,
    FaultTaxonomyEntry,
    PriorityLevel,
    RepairContext,
    priority_for_severity,
)

logger = logging.getLogger(__name__)

FaultTaxonomy = Dict[str, FaultTaxonomyEntry]


def normalize_fault_type(fault_type: str) -> str:
    return fault_type.strip().lower()


def build_fault_taxonomy(raw: Mapping[str, Any]) -> FaultTaxonomy:
    """Validate a raw mapping of fault type -> entry data.

    Raises:
        ConfigurationError: If an entry does not match FaultTaxonomyEntry
    """
    taxonomy: FaultTaxonomy = {}
    for fault_type, entry in raw.items():
        key = normalize_fault_type(fault_type)
        if not key:
            raise ConfigurationError("Fault taxonomy contains an empty fault type key")
        try:
            taxonomy[key] = FaultTaxonomyEntry.model_validate(entry)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid taxonomy entry for {fault_type!r}: {e}",
                context={"fault_type": fault_type},
            )
    return taxonomy


def load_fault_taxonomy(path: Optional[Union[str, Path]] = None) -> FaultTaxonomy:
    """Load the fault taxonomy from a JSON file, or the built-in table.

    Args:
        path: JSON file with {fault_type: entry}; None selects the default table

    Returns:
        Validated taxonomy keyed by normalized fault type
    """
    if path is None:
        return build_fault_taxonomy(DEFAULT_FAULT_TAXONOMY)

    path = Path(path)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(
            f"Could not read fault taxonomy from {path}: {e}", context={"path": str(path)}
        )
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Fault taxonomy in {path} must be a JSON object")

    taxonomy = build_fault_taxonomy(raw)
    logger.info(f"Loaded fault taxonomy with {len(taxonomy)} entries from {path}")
    return taxonomy


class FaultMapper(ABC):
    """Strategy interface for turning a fault into repair guidance"""

    @abstractmethod
    def map(self, fault: DiagnosedFault) -> RepairContext:
        """
        Build the repair context for a fault.

        Raises:
            InvalidFaultError: If the fault has no fault type
        """
        pass


class TableLookupMapper(FaultMapper):
    """FaultMapper backed by a static fault taxonomy table"""

    def __init__(self, taxonomy: Optional[FaultTaxonomy] = None):
        self.taxonomy = taxonomy if taxonomy is not None else load_fault_taxonomy()

    def known_fault_types(self):
        return sorted(self.taxonomy.keys())

    def map(self, fault: DiagnosedFault) -> RepairContext:
        if not fault.fault_type or not fault.fault_type.strip():
            raise InvalidFaultError(
                "Diagnosed fault has no fault type", context={"machine_id": fault.machine_id}
            )

        key = normalize_fault_type(fault.fault_type)
        severity_priority = priority_for_severity(fault.severity)
        entry = self.taxonomy.get(key)

        if entry is None:
            logger.warning(
                f"Unknown fault type '{fault.fault_type}' for machine {fault.machine_id}; "
                f"planning without taxonomy guidance"
            )
            return RepairContext(fault_type=key, priority_hint=severity_priority)

        priority = severity_priority
        if entry.minimum_priority is not None:
            priority = PriorityLevel.highest(severity_priority, entry.minimum_priority)

        return RepairContext(
            fault_type=key,
            candidate_procedures=list(entry.candidate_procedures),
            required_tools=set(entry.required_tools),
            required_skills=set(entry.required_skills),
            required_parts=set(entry.required_parts),
            priority_hint=priority,
        )
