"""
Duplicate/conflict resolver tests.
"""

import pytest

from errors import DuplicateEntry, StoreUnavailable, Unauthorized, ValidationError
from resolver import Outcome, candidate_fields, differing_fields, resolve
from schemas import StatusPatch, SubmissionIn
from submissions import SubmissionService


@pytest.fixture
def service(repository):
    return SubmissionService(repository)


class TestResolve:
    """Pure decision logic over an owner's existing records."""

    def test_no_match_creates(self, student, make_payload):
        candidate = candidate_fields(student, SubmissionIn(**make_payload()))
        resolution = resolve(candidate, [])
        assert resolution.outcome is Outcome.CREATE
        assert resolution.existing is None

    def test_identical_is_duplicate(self, student, make_payload, make_record):
        existing = make_record()
        candidate = candidate_fields(student, SubmissionIn(**make_payload()))
        resolution = resolve(candidate, [existing])
        assert resolution.outcome is Outcome.DUPLICATE
        assert resolution.existing.id == existing.id

    def test_one_changed_field_overwrites(self, student, make_payload, make_record):
        existing = make_record()
        candidate = candidate_fields(student, SubmissionIn(**make_payload(event_date="2024-03-20")))
        resolution = resolve(candidate, [existing])
        assert resolution.outcome is Outcome.OVERWRITE
        assert resolution.changed == ["event_date"]

    def test_match_key_ignores_date_and_type(self, student, make_payload, make_record):
        existing = make_record(event_type="Seminar", event_date="2023-01-01")
        candidate = candidate_fields(student, SubmissionIn(**make_payload()))
        resolution = resolve(candidate, [existing])
        assert resolution.outcome is Outcome.OVERWRITE
        assert set(resolution.changed) == {"event_type", "event_date"}

    def test_same_event_name_other_owner_creates(self, student, make_payload, make_record):
        existing = make_record(owner_id="stu-9", email="someone@cit.edu.in")
        candidate = candidate_fields(student, SubmissionIn(**make_payload()))
        assert resolve(candidate, [existing]).outcome is Outcome.CREATE

    def test_other_event_name_creates(self, student, make_payload, make_record):
        existing = make_record(event_name="Electronics Seminar")
        candidate = candidate_fields(student, SubmissionIn(**make_payload()))
        assert resolve(candidate, [existing]).outcome is Outcome.CREATE

    def test_status_and_stamps_are_not_compared(self, student, make_payload, make_record):
        existing = make_record(status="approved", id="abc")
        candidate = candidate_fields(student, SubmissionIn(**make_payload()))
        assert differing_fields(candidate, existing) == []

    def test_display_name_derived_from_email(self, student, make_payload):
        anonymous = student.model_copy(update={"display_name": None})
        candidate = candidate_fields(anonymous, SubmissionIn(**make_payload()))
        assert candidate["display_name"] == "student1"
        assert candidate["owner_id"] == "stu-1"
        assert candidate["department"] == "CSE"
        assert candidate["batch"] == "2022-2027"


class TestSubmit:
    """Resolver outcomes applied through the submission service."""

    async def test_create_starts_pending(self, service, repository, student, make_payload):
        result = await service.submit(student, make_payload())
        assert result.outcome is Outcome.CREATE
        assert result.submission.status == "pending"
        assert result.submission.last_modified is not None
        assert await repository.list_by_owner(student.id) == [result.submission]

    async def test_identical_resubmission_is_rejected(self, service, repository, student, make_payload):
        first = await service.submit(student, make_payload())
        before = (await repository.get(first.submission.id)).model_dump()

        with pytest.raises(DuplicateEntry) as exc_info:
            await service.submit(student, make_payload())

        assert exc_info.value.details["submission_id"] == first.submission.id
        after = (await repository.get(first.submission.id)).model_dump()
        assert after == before
        assert len(await repository.list_by_owner(student.id)) == 1

    async def test_changed_field_silently_overwrites(self, service, repository, student, make_payload):
        first = await service.submit(student, make_payload())

        result = await service.submit(student, make_payload(event_date="2024-03-22"))

        assert result.outcome is Outcome.OVERWRITE
        assert result.submission.id == first.submission.id
        assert result.submission.event_date == "2024-03-22"
        assert result.submission.last_modified > first.submission.last_modified
        records = await repository.list_by_owner(student.id)
        assert [r.id for r in records] == [first.submission.id]

    async def test_overwrite_keeps_review_status(self, service, repository, student, make_payload):
        first = await service.submit(student, make_payload())
        await repository.update_status(StatusPatch(id=first.submission.id, status="approved"))

        result = await service.submit(student, make_payload(organizer="IEEE Student Branch"))

        assert result.submission.status == "approved"
        assert result.submission.organizer == "IEEE Student Branch"

    async def test_invalid_payload_reports_each_field(self, service, student, make_payload):
        with pytest.raises(ValidationError) as exc_info:
            await service.submit(student, make_payload(event_name="  ", certificate_link="not a url"))
        assert set(exc_info.value.fields) == {"event_name", "certificate_link"}

    async def test_staff_cannot_submit(self, service, staff, make_payload):
        with pytest.raises(Unauthorized):
            await service.submit(staff, make_payload())

    async def test_store_failure_surfaces(self, service, repository, student, make_payload):
        repository.available = False
        with pytest.raises(StoreUnavailable):
            await service.submit(student, make_payload())
