"""
Duplicate/conflict resolution for incoming submissions.

A candidate matches an existing record when owner_id and event_name are both
equal; event date and type are not part of the key. A match
whose compared fields are all equal is a duplicate; any difference turns the
submission into an in-place overwrite of the matched record.
"""

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from repository import IMMUTABLE_FIELDS
from schemas import Principal, SubmissionIn, SubmissionRecord


class Outcome(str, enum.Enum):
    CREATE = "create"
    DUPLICATE = "duplicate"
    OVERWRITE = "overwrite"


@dataclass
class Resolution:
    outcome: Outcome
    fields: Dict[str, Any]
    existing: Optional[SubmissionRecord] = None
    changed: List[str] = field(default_factory=list)


def candidate_fields(principal: Principal, submission: SubmissionIn) -> Dict[str, Any]:
    """Full stored shape of a submission, owner fields taken from the principal."""
    fields = submission.model_dump(mode="json")
    fields.update(
        owner_id=principal.id,
        email=principal.email,
        display_name=principal.display_name or principal.email.split("@")[0],
        department=principal.department,
        batch=principal.batch,
    )
    return fields


def find_match(candidate: Dict[str, Any], existing: Iterable[SubmissionRecord]) -> Optional[SubmissionRecord]:
    for record in existing:
        if record.owner_id == candidate["owner_id"] and record.event_name == candidate["event_name"]:
            return record
    return None


def differing_fields(candidate: Dict[str, Any], record: SubmissionRecord) -> List[str]:
    stored = record.model_dump(mode="json")
    return [
        name for name, value in candidate.items()
        if name not in IMMUTABLE_FIELDS and stored.get(name) != value
    ]


def resolve(candidate: Dict[str, Any], existing: Iterable[SubmissionRecord]) -> Resolution:
    match = find_match(candidate, existing)
    if match is None:
        return Resolution(Outcome.CREATE, candidate)

    changed = differing_fields(candidate, match)
    if not changed:
        return Resolution(Outcome.DUPLICATE, candidate, existing=match)
    return Resolution(Outcome.OVERWRITE, candidate, existing=match, changed=changed)
