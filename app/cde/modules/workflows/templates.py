"""
Static workflow template catalog.

The catalog is fixed at import time. Workflows copy their step definitions
when they start, so a later catalog edit never changes an in-flight workflow.
Bump CATALOG_VERSION whenever a template changes.
"""
from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType

CATALOG_VERSION = 1


@dataclass(frozen=True)
class StepTemplate:
    step_number: int
    step_name: str
    role_hint: str  # suggested role for assignment


@dataclass(frozen=True)
class WorkflowTemplate:
    type: str
    label: str
    description: str
    steps: tuple[StepTemplate, ...]

    @property
    def step_count(self) -> int:
        return len(self.steps)


def _steps(*pairs: tuple[str, str]) -> tuple[StepTemplate, ...]:
    return tuple(StepTemplate(step_number=i, step_name=name, role_hint=role) for i, (name, role) in enumerate(pairs, start=1))


WORKFLOW_TEMPLATES = MappingProxyType(
    {
        t.type: t
        for t in (
            WorkflowTemplate(
                type="STANDARD_APPROVAL",
                label="Standard 4-Step Approval",
                description="Standard document approval: Review → Check → Approve → Publish",
                steps=_steps(
                    ("Technical Review", "Surveyor"),
                    ("Quality Check", "QA Manager"),
                    ("Approval", "Project Lead"),
                    ("Publish", "Document Controller"),
                ),
            ),
            WorkflowTemplate(
                type="BSR_APPROVAL",
                label="5-Step BSR Approval",
                description="Building Safety Regulator submission: Review → Internal → BSR Prep → BSR Submit → Publish",
                steps=_steps(
                    ("Technical Review", "Surveyor"),
                    ("Internal Approval", "Project Lead"),
                    ("BSR Pack Preparation", "Document Controller"),
                    ("BSR Submission", "Responsible Person"),
                    ("Publish & Archive", "Document Controller"),
                ),
            ),
        )
    }
)


def get_template(template_type: str) -> WorkflowTemplate | None:
    return WORKFLOW_TEMPLATES.get((template_type or "").strip().upper())
