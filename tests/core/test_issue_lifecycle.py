"""Tests for the issue lifecycle: creation, status transitions, edits, deletion and tag membership."""

from __future__ import annotations

import logging

import pytest

from civicalert.core import CivicDB, Issue, Tag
from civicalert.db_issues import new_issue_message, status_change_message
from civicalert.errors import NotFoundError, ValidationError
from civicalert.scope import UNSCOPED
from tests.conftest import Directory


class TestCreateIssue:
    def test_reported_with_tags_and_admin_fanout(self, directory: Directory, tags: dict[str, Tag]) -> None:
        db = directory.db
        issue = db.create_issue(
            "Broken streetlight",
            category="Lighting",
            location_id=directory.village.id,
            reporter_id=directory.resident.id,
            tag_ids=[tags["pothole"].id, tags["lighting"].id],
        )
        assert issue.status == "REPORTED"
        assert issue.date_reported
        assert issue.date_resolved is None
        assert sorted(issue.tag_ids) == sorted([tags["pothole"].id, tags["lighting"].id])
        assert issue.reporter_name == "Rita Resident"
        assert issue.location_name == "Kibagabaga"

        sent = db.get_notifications_for_issue(issue.id)
        assert sorted(n.recipient_id for n in sent) == sorted([directory.admin.id, directory.second_admin.id])
        assert {n.message for n in sent} == {
            "New issue reported: 'Broken streetlight' by Rita Resident at Kibagabaga",
        }

    def test_reporter_without_name_uses_email(self, directory: Directory) -> None:
        issue = directory.db.create_issue("Flooding", reporter_id=directory.nameless_resident.id)
        messages = {n.message for n in directory.db.get_notifications_for_issue(issue.id)}
        assert messages == {"New issue reported: 'Flooding' by noname@home.example at Unknown location"}

    def test_anonymous_without_reporter(self, directory: Directory) -> None:
        issue = directory.db.create_issue("Fallen tree")
        assert issue.reported_by is None
        assert issue.reporter_name is None
        messages = {n.message for n in directory.db.get_notifications_for_issue(issue.id)}
        assert messages == {"New issue reported: 'Fallen tree' by Anonymous at Unknown location"}

    def test_no_admins_means_no_notifications(self, db: CivicDB) -> None:
        issue = db.create_issue("Quiet town")
        assert db.get_notifications_for_issue(issue.id) == []

    def test_empty_title_rejected(self, directory: Directory) -> None:
        with pytest.raises(ValidationError):
            directory.db.create_issue("   ")

    @pytest.mark.parametrize("field", ["location_id", "reporter_id"])
    def test_unknown_reference_aborts(self, directory: Directory, field: str) -> None:
        db = directory.db
        with pytest.raises(NotFoundError):
            db.create_issue("Ghost", **{field: "test-missing"})
        assert db.count_issues() == 0

    def test_inactive_tag_rejected(self, directory: Directory, tags: dict[str, Tag]) -> None:
        db = directory.db
        with pytest.raises(ValidationError):
            db.create_issue("Retired tag", tag_ids=[tags["pothole"].id, tags["retired"].id])
        assert db.count_issues() == 0
        assert db.list_notifications_scoped(UNSCOPED)["total"] == 0

    def test_unknown_tag_rejected(self, directory: Directory, tags: dict[str, Tag]) -> None:
        db = directory.db
        with pytest.raises(ValidationError) as exc_info:
            db.create_issue("Unknown tag", tag_ids=[tags["pothole"].id, "test-tag-missing", "test-tag-gone"])
        assert exc_info.value.details == {"unknown": ["test-tag-missing", "test-tag-gone"]}
        assert not isinstance(exc_info.value, NotFoundError)
        assert db.count_issues() == 0

    def test_fanout_failure_keeps_issue(
        self, directory: Directory, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
    ) -> None:
        db = directory.db

        def boom(*args: object, **kwargs: object) -> None:
            raise RuntimeError("mail relay down")

        monkeypatch.setattr(db, "create_notification", boom)
        with caplog.at_level(logging.WARNING, logger="civicalert"):
            issue = db.create_issue("Leaking pipe", reporter_id=directory.resident.id)

        assert db.get_issue(issue.id).status == "REPORTED"
        monkeypatch.undo()
        assert db.get_notifications_for_issue(issue.id) == []
        failures = [r for r in caplog.records if getattr(r, "event", None) == "admin_fanout"]
        assert len(failures) == 1
        assert failures[0].issue_id == issue.id
        assert failures[0].exc_info is not None

    def test_partial_fanout_rolls_back_all_messages(self, directory: Directory, monkeypatch: pytest.MonkeyPatch) -> None:
        db = directory.db
        original = db.create_notification
        calls: list[str] = []

        def second_fails(recipient_id: str, message: str, *, issue_id: str | None = None) -> object:
            calls.append(recipient_id)
            if len(calls) == 2:
                raise RuntimeError("disk full")
            return original(recipient_id, message, issue_id=issue_id)

        monkeypatch.setattr(db, "create_notification", second_fails)
        issue = db.create_issue("Blocked drain")
        monkeypatch.undo()
        assert len(calls) == 2
        assert db.get_notifications_for_issue(issue.id) == []


class TestUpdateStatus:
    def test_in_progress_then_resolved(self, reported_issue: Issue, directory: Directory) -> None:
        db = directory.db
        db.update_status(reported_issue.id, "IN_PROGRESS")
        final = db.update_status(reported_issue.id, "RESOLVED")
        assert final.status == "RESOLVED"
        assert final.date_resolved is not None

        to_reporter = db.get_notifications_for_recipient(directory.resident.id)
        assert len(to_reporter) == 2
        assert {n.message for n in to_reporter} == {
            "Your issue 'Pothole on main road' is now being processed.",
            "Your issue 'Pothole on main road' has been resolved.",
        }
        assert all(n.issue_id == reported_issue.id for n in to_reporter)

    def test_same_status_sends_nothing(self, reported_issue: Issue, directory: Directory) -> None:
        db = directory.db
        db.update_status(reported_issue.id, "REPORTED")
        assert db.get_notifications_for_recipient(directory.resident.id) == []

    def test_any_transition_allowed(self, reported_issue: Issue, directory: Directory) -> None:
        db = directory.db
        db.update_status(reported_issue.id, "RESOLVED")
        back = db.update_status(reported_issue.id, "REPORTED")
        assert back.status == "REPORTED"
        messages = [n.message for n in db.get_notifications_for_recipient(directory.resident.id)]
        assert "The status of your issue 'Pothole on main road' has been updated to Reported." in messages

    def test_date_resolved_kept_after_reopen(self, reported_issue: Issue, directory: Directory) -> None:
        db = directory.db
        resolved_at = db.update_status(reported_issue.id, "RESOLVED").date_resolved
        reopened = db.update_status(reported_issue.id, "IN_PROGRESS")
        assert reopened.date_resolved == resolved_at

    def test_lowercase_status_accepted(self, reported_issue: Issue, directory: Directory) -> None:
        assert directory.db.update_status(reported_issue.id, "in_progress").status == "IN_PROGRESS"

    def test_unknown_status(self, reported_issue: Issue, directory: Directory) -> None:
        with pytest.raises(ValidationError):
            directory.db.update_status(reported_issue.id, "ARCHIVED")

    def test_missing_issue(self, directory: Directory) -> None:
        with pytest.raises(NotFoundError):
            directory.db.update_status("test-missing", "RESOLVED")

    def test_anonymous_issue_changes_silently(self, directory: Directory) -> None:
        db = directory.db
        issue = db.create_issue("Anonymous report")
        before = len(db.get_notifications_for_issue(issue.id))
        db.update_status(issue.id, "RESOLVED")
        assert len(db.get_notifications_for_issue(issue.id)) == before

    def test_notification_failure_keeps_status(self, reported_issue: Issue, directory: Directory, monkeypatch: pytest.MonkeyPatch) -> None:
        db = directory.db

        def boom(*args: object, **kwargs: object) -> None:
            raise RuntimeError("unavailable")

        monkeypatch.setattr(db, "create_notification", boom)
        updated = db.update_status(reported_issue.id, "RESOLVED")
        monkeypatch.undo()
        assert updated.status == "RESOLVED"
        assert db.get_issue(reported_issue.id).status == "RESOLVED"
        assert db.get_notifications_for_recipient(directory.resident.id) == []


class TestMessages:
    def test_generic_template(self) -> None:
        assert status_change_message("Leak", "REPORTED", "ESCALATED") == (
            "Your issue 'Leak' status was updated from REPORTED to ESCALATED."
        )

    def test_new_issue_message_blank_location_name(self, directory: Directory) -> None:
        village = directory.village
        village.name = ""
        assert new_issue_message("Leak", directory.admin, village) == "New issue reported: 'Leak' by Ana Admin at Unknown location"


class TestUpdateIssue:
    def test_replaces_editable_fields_only(self, reported_issue: Issue, directory: Directory) -> None:
        db = directory.db
        db.update_status(reported_issue.id, "IN_PROGRESS")
        updated = db.update_issue(
            reported_issue.id,
            title="Crater on main road",
            description="Bigger than before",
            category="Roads",
            location_id=directory.district.id,
        )
        assert updated.title == "Crater on main road"
        assert updated.location_id == directory.district.id
        assert updated.status == "IN_PROGRESS"
        assert updated.reported_by == directory.resident.id
        assert updated.date_reported == reported_issue.date_reported
        assert updated.tag_ids == reported_issue.tag_ids

    def test_missing_location(self, reported_issue: Issue, directory: Directory) -> None:
        with pytest.raises(NotFoundError):
            directory.db.update_issue(reported_issue.id, title="x", location_id="test-loc-missing")

    def test_missing_issue(self, directory: Directory) -> None:
        with pytest.raises(NotFoundError):
            directory.db.update_issue("test-missing", title="x")


class TestDeleteIssue:
    def test_delete_orphans_notifications(self, reported_issue: Issue, directory: Directory, tags: dict[str, Tag]) -> None:
        db = directory.db
        before = db.get_notifications_for_recipient(directory.admin.id)
        assert [n.issue_id for n in before] == [reported_issue.id]

        db.delete_issue(reported_issue.id)

        with pytest.raises(NotFoundError):
            db.get_issue(reported_issue.id)
        after = db.get_notifications_for_recipient(directory.admin.id)
        assert [n.id for n in after] == [before[0].id]
        assert after[0].issue_id is None
        assert db.get_tag(tags["pothole"].id).issue_ids == []

    def test_delete_missing(self, directory: Directory) -> None:
        with pytest.raises(NotFoundError):
            directory.db.delete_issue("test-missing")


class TestTagMembership:
    def test_membership_is_bidirectional(self, reported_issue: Issue, directory: Directory, tags: dict[str, Tag]) -> None:
        db = directory.db
        pothole, lighting = tags["pothole"], tags["lighting"]

        db.add_tag(reported_issue.id, lighting.id)
        db.remove_tag(reported_issue.id, pothole.id)
        db.add_tag(reported_issue.id, pothole.id)
        db.remove_tag(reported_issue.id, lighting.id)

        issue = db.get_issue(reported_issue.id)
        for tag in db.list_tags():
            assert (tag.id in issue.tag_ids) == (issue.id in tag.issue_ids)

    def test_add_is_idempotent(self, reported_issue: Issue, directory: Directory, tags: dict[str, Tag]) -> None:
        db = directory.db
        db.add_tag(reported_issue.id, tags["pothole"].id)
        assert db.get_issue(reported_issue.id).tag_ids == [tags["pothole"].id]

    def test_inactive_tag_can_be_attached(self, reported_issue: Issue, directory: Directory, tags: dict[str, Tag]) -> None:
        issue = directory.db.add_tag(reported_issue.id, tags["retired"].id)
        assert tags["retired"].id in issue.tag_ids
        assert any(t["id"] == tags["retired"].id and t["active"] is False for t in issue.tags)

    def test_missing_side(self, reported_issue: Issue, directory: Directory, tags: dict[str, Tag]) -> None:
        db = directory.db
        with pytest.raises(NotFoundError):
            db.add_tag(reported_issue.id, "test-tag-missing")
        with pytest.raises(NotFoundError):
            db.remove_tag("test-missing", tags["pothole"].id)

    def test_get_issue_tags(self, reported_issue: Issue, directory: Directory, tags: dict[str, Tag]) -> None:
        assert [t.name for t in directory.db.get_issue_tags(reported_issue.id)] == ["pothole"]

    def test_deactivated_tag_blocks_creation_not_attach(self, reported_issue: Issue, directory: Directory, tags: dict[str, Tag]) -> None:
        db = directory.db
        db.deactivate_tag(tags["lighting"].id)
        with pytest.raises(ValidationError):
            db.create_issue("Dark street", tag_ids=[tags["lighting"].id])
        assert tags["lighting"].id in db.add_tag(reported_issue.id, tags["lighting"].id).tag_ids

    def test_deleting_tag_detaches_everywhere(self, directory: Directory, tags: dict[str, Tag]) -> None:
        db = directory.db
        pothole = tags["pothole"]
        issues = [db.create_issue(f"Hole {n}", tag_ids=[pothole.id]) for n in range(3)]

        detached = db.delete_tag(pothole.id)

        assert sorted(detached) == sorted(i.id for i in issues)
        for issue in issues:
            assert pothole.id not in db.get_issue(issue.id).tag_ids
        with pytest.raises(NotFoundError):
            db.get_tag(pothole.id)


class TestListByReporter:
    def test_only_reporters_issues(self, reported_issue: Issue, directory: Directory) -> None:
        db = directory.db
        db.create_issue("Someone else's", reporter_id=directory.other_resident.id)
        assert [i.id for i in db.list_issues_by_reporter(directory.resident.id)] == [reported_issue.id]
