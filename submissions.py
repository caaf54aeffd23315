"""
Submission workflow: validate, resolve against the owner's records, persist.
Also builds the owner and department views used by the API.
"""

import logging
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Tuple, Union

from errors import DuplicateEntry
from export import columns_for, export_filename, project_rows, write_workbook
from filters import apply_filters
from identity import require_role
from repository import SubmissionRepository
from resolver import Outcome, candidate_fields, resolve
from schemas import FilterConfig, Principal, SubmissionIn, SubmissionRecord
from subscriptions import Subscription

logger = logging.getLogger(__name__)

CREATED_MESSAGE = "Submission successful! It is now pending for review."
OVERWRITTEN_MESSAGE = "Entry updated successfully (overwritten)."


@dataclass
class SubmitResult:
    outcome: Outcome
    submission: SubmissionRecord
    message: str


class SubmissionService:

    def __init__(self, repository: SubmissionRepository):
        self.repository = repository

    async def submit(self, principal: Principal,
                     submission: Union[SubmissionIn, Mapping[str, Any]]) -> SubmitResult:
        require_role(principal, "student")
        if not isinstance(submission, SubmissionIn):
            submission = SubmissionIn.parse(submission)

        candidate = candidate_fields(principal, submission)
        existing = await self.repository.list_by_owner(principal.id)
        resolution = resolve(candidate, existing)

        if resolution.outcome is Outcome.DUPLICATE:
            logger.info(f"Duplicate submission '{submission.event_name}' from {principal.email}")
            raise DuplicateEntry(resolution.existing.id, submission.event_name)

        if resolution.outcome is Outcome.OVERWRITE:
            record = await self.repository.overwrite(resolution.existing.id, candidate)
            logger.info(
                f"Submission {record.id} overwritten by {principal.email}; "
                f"changed: {', '.join(resolution.changed)}"
            )
            return SubmitResult(Outcome.OVERWRITE, record, OVERWRITTEN_MESSAGE)

        new_id = await self.repository.create({**candidate, "status": "pending"})
        record = await self.repository.get(new_id)
        return SubmitResult(Outcome.CREATE, record, CREATED_MESSAGE)

    async def records_for(self, principal: Principal) -> List[SubmissionRecord]:
        """Owner records for students, department records for staff."""
        require_role(principal, "student", "staff")
        if principal.role == "staff":
            return await self.repository.list_by_department(principal.department)
        return await self.repository.list_by_owner(principal.id)

    async def view_for(self, principal: Principal,
                       filters: Optional[FilterConfig] = None) -> List[SubmissionRecord]:
        return apply_filters(await self.records_for(principal), filters or FilterConfig())

    def subscribe_for(self, principal: Principal) -> Subscription:
        require_role(principal, "student", "staff")
        if principal.role == "staff":
            return self.repository.subscribe_by_department(principal.department)
        return self.repository.subscribe_by_owner(principal.id)

    async def export(self, principal: Principal,
                     filters: Optional[FilterConfig] = None) -> Tuple[str, bytes, int]:
        """Filename, workbook bytes and row count for the principal's filtered view."""
        records = await self.view_for(principal, filters)
        columns = columns_for(principal.role)
        rows = project_rows(records, columns)
        return export_filename(principal.department), write_workbook(rows, columns), len(rows)
