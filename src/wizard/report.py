"""Report snapshot sealed at completion.

The downstream report generator reads this snapshot instead of the raw
step records: every catalog step is present, in catalog order, with its
payload parsed and filtered to the keys the catalog declares.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from .errors import ParseFailure
from .models import Session, StepResponse, parse_step_payload, responses_by_step, utcnow
from .step_catalog import StepCatalog

logger = logging.getLogger(__name__)


class ReportStep(BaseModel):
    """One step's answers as handed to report generation."""

    step_id: str
    title: str
    data: Dict[str, Any] = Field(default_factory=dict)
    is_completed: bool = False
    updated_at: Optional[datetime] = None


class ReportSnapshot(BaseModel):
    """Complete, validated view of a finished session."""

    session_id: int
    client_name: str
    project_name: Optional[str] = None
    catalog_version: str
    generated_at: datetime = Field(default_factory=utcnow)
    steps: List[ReportStep]

    def step(self, step_id: str) -> Optional[ReportStep]:
        for entry in self.steps:
            if entry.step_id == step_id:
                return entry
        return None


def build_report_snapshot(
    session: Session,
    responses: Iterable[StepResponse],
    catalog: StepCatalog,
    generated_at: Optional[datetime] = None,
) -> ReportSnapshot:
    """
    Assemble the report snapshot for a session.

    Args:
        session: The session being completed
        responses: Every stored step response for the session
        catalog: Step catalog the session was answered against

    Returns:
        ReportSnapshot with one entry per catalog step
    """
    indexed = responses_by_step(responses)
    entries: List[ReportStep] = []

    for step in catalog:
        response = indexed.get(step.id)
        data: Dict[str, Any] = {}
        if response is not None:
            try:
                parsed = parse_step_payload(step.id, response.data)
            except ParseFailure as e:
                logger.warning(f"Report for session {session.id}: {e}")
                parsed = {}
            data = {key: value for key, value in parsed.items() if step.has_field(key)}

        entries.append(ReportStep(
            step_id=step.id,
            title=step.title,
            data=data,
            is_completed=response.is_completed if response is not None else False,
            updated_at=response.updated_at if response is not None else None,
        ))

    unknown = sorted(set(indexed) - set(catalog.step_ids))
    if unknown:
        logger.warning(f"Report for session {session.id} ignores unknown steps: {unknown}")

    return ReportSnapshot(
        session_id=session.id,
        client_name=session.client_name,
        project_name=session.project_name,
        catalog_version=catalog.version,
        generated_at=generated_at or utcnow(),
        steps=entries,
    )
