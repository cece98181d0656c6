"""Module to provide a dry-run backend.

The dry-run backend walks a manifest exactly as a real backend would, checks
that every relationship only references resources materialized before it,
and returns a Plan describing what would be created. It is safe to run on
the same manifest before handing it to the CDK backend.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

import structlog

from cdk_compose.context import StackManifest
from cdk_compose.errors import DuplicateNameError, UnresolvedNameError
from cdk_compose.registry import Handle
from cdk_compose.units import RelationshipDeclaration, ResourceDeclaration

logger = structlog.get_logger()


@dataclass(frozen=True)
class PlanStep:
    """One materialization step of a plan."""

    action: str  # "create" or "link"
    kind: str
    target: Tuple[str, ...]
    details: Tuple[Tuple[str, Any], ...] = ()

    def describe(self) -> str:
        if self.action == "create":
            return f"create {self.kind} {self.target[0]}"
        return f"link {self.kind} {' -> '.join(self.target)}"


@dataclass
class Plan:
    """Ordered steps that provisioning a stack would perform."""

    stack_name: str
    steps: List[PlanStep] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "stack": self.stack_name,
            "steps": [
                {
                    "action": step.action,
                    "kind": step.kind,
                    "target": list(step.target),
                    "details": dict(step.details),
                }
                for step in self.steps
            ],
        }

    def describe(self) -> List[str]:
        return [step.describe() for step in self.steps]


class DryRunBackend:
    """Validate and describe manifests without creating anything."""

    def provision(self, manifest: StackManifest) -> Plan:
        plan = Plan(manifest.stack_name)
        materialized: Dict[str, Handle] = {}

        for unit in manifest.units:
            if isinstance(unit, ResourceDeclaration):
                if unit.name in materialized:
                    raise DuplicateNameError(unit.name, materialized[unit.name].kind)
                materialized[unit.name] = unit.handle
                plan.steps.append(
                    PlanStep(
                        "create",
                        unit.kind,
                        (unit.name,),
                        unit.configuration.values,
                    )
                )
            elif isinstance(unit, RelationshipDeclaration):
                for handle in unit.handles:
                    if materialized.get(handle.name) != handle:
                        raise UnresolvedNameError(handle.name)
                plan.steps.append(
                    PlanStep("link", unit.kind, unit.names, unit.attributes)
                )
            else:
                raise TypeError(f"Not a materialization unit: {unit!r}")
            logger.debug("unit_planned", stack=manifest.stack_name, step=plan.steps[-1].describe())

        logger.info(
            "stack_planned",
            stack=manifest.stack_name,
            resources=len(materialized),
            relationships=len(plan.steps) - len(materialized),
        )
        return plan
