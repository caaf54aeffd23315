"""
Review workflow for submissions.

pending -> approved | rejected. By default any state may be set to either
decision again (re-review); with ALLOW_REREVIEW=false only pending
submissions can be reviewed. Only the current status and last_modified are
kept; no transition history.
"""

import logging
from typing import Optional

import config
from errors import InvalidTransition, TrackademicError, Unauthorized, ValidationError
from repository import SubmissionRepository
from schemas import Principal, StatusPatch, SubmissionRecord

logger = logging.getLogger(__name__)

INITIAL_STATUS = "pending"
REVIEW_DECISIONS = ("approved", "rejected")


def ensure_can_review(principal: Principal, record: SubmissionRecord):
    """Access boundary: onboarded staff of the record's department only."""
    if principal.role != "staff":
        raise Unauthorized("Only staff can review submissions")
    if not principal.onboarding_complete:
        raise Unauthorized("Complete onboarding before reviewing submissions")
    if principal.department != record.department:
        raise Unauthorized(
            "Submission belongs to another department",
            submission_id=record.id,
            department=principal.department,
        )


class ReviewStateMachine:

    def __init__(self, repository: SubmissionRepository, allow_rereview: Optional[bool] = None):
        self.repository = repository
        self.allow_rereview = config.ALLOW_REREVIEW if allow_rereview is None else allow_rereview

    def can_transition(self, current: str, target: str) -> bool:
        if target not in REVIEW_DECISIONS:
            return False
        return self.allow_rereview or (current or INITIAL_STATUS) == INITIAL_STATUS

    async def review(self, principal: Principal, submission_id: str, decision: str) -> SubmissionRecord:
        """Apply a staff decision; the record is untouched when anything fails."""
        if decision not in REVIEW_DECISIONS:
            raise ValidationError(
                "Invalid review decision",
                fields={"decision": f"must be one of {', '.join(REVIEW_DECISIONS)}"},
            )

        record = await self.repository.get(submission_id)
        ensure_can_review(principal, record)
        if not self.can_transition(record.status, decision):
            raise InvalidTransition(record.id, record.status, decision)

        try:
            updated = await self.repository.update_status(
                StatusPatch(id=submission_id, status=decision),
                department=principal.department,
            )
        except TrackademicError as e:
            logger.error(f"Review of {submission_id} by {principal.email} failed: {e.message}")
            raise

        logger.info(f"Submission {submission_id} {record.status} -> {decision} by {principal.email}")
        return updated
