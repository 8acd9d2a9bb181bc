# tests/test_permissions.py

from io import StringIO

import pytest
from django.contrib.auth import get_user_model
from django.core.exceptions import PermissionDenied
from django.core.management import CommandError, call_command

from accounts.authz import ActorContext, require
from accounts.permission_defaults import ROLE_DEFAULTS, all_permission_codes
from accounting import chart
from accounting.models import Exercise

User = get_user_model()


@pytest.mark.django_db
class TestRoleDefaults:
    def test_viewer_cannot_write(self, viewer_actor):
        assert viewer_actor.has("journal.view")
        assert not viewer_actor.has("journal.create")
        assert not viewer_actor.has("periods.close")

    def test_accountant_prepares_but_does_not_post(self, accountant_actor):
        assert accountant_actor.has("journal.validate")
        assert accountant_actor.has("journal.letter")
        assert not accountant_actor.has("journal.post")

    def test_admin_cannot_reopen_or_close_exercise(self):
        admin = User.objects.create_user(email="admin@test.com", password="pass12345", role=User.Role.ADMIN)
        actor = ActorContext.for_user(admin)

        assert actor.has("periods.close")
        assert not actor.has("periods.reopen")
        assert not actor.has("exercise.close")

    def test_owner_is_implicit_allow(self, actor):
        assert actor.has("anything.at_all")

    def test_superuser_acts_as_owner(self):
        root = User.objects.create_superuser(email="root@test.com", password="pass12345", name="Root")
        root.role = User.Role.VIEWER

        assert ActorContext.for_user(root).is_owner

    def test_inactive_user_has_nothing(self, owner):
        owner.is_active = False

        assert not ActorContext.for_user(owner).has("journal.view")

    def test_require_raises(self, viewer_actor):
        with pytest.raises(PermissionDenied, match="journal.post"):
            require(viewer_actor, "journal.post")

    def test_every_role_code_is_known(self):
        codes = all_permission_codes()
        assert all(role_codes <= codes for role_codes in ROLE_DEFAULTS.values())
        assert set(ROLE_DEFAULTS) == set(User.Role.values)


@pytest.mark.django_db
class TestOpenExerciseCommand:
    def test_opens_and_seeds(self, owner):
        out = StringIO()

        call_command("open_exercise", "2026", "2026-01-01", "2026-12-31", "--as", owner.email, stdout=out)

        exercise = Exercise.objects.get(code="2026")
        assert exercise.accounts.count() == len(chart.DEFAULT_CHART)
        assert "Exercise 2026 opened" in out.getvalue()

    def test_refusal_becomes_command_error(self, owner, exercise):
        with pytest.raises(CommandError, match="INVALID_EXERCISE"):
            call_command("open_exercise", "2024", "2024-01-01", "2024-12-31", "--as", owner.email)

    def test_viewer_is_refused(self, viewer):
        with pytest.raises(PermissionDenied):
            call_command("open_exercise", "2026", "2026-01-01", "2026-12-31", "--as", viewer.email)
