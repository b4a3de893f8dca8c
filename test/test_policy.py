"""
Role store and access policy.
"""
import pytest

from auth.policy import Action, Collection, PolicyEngine, policy
from core.exceptions import AuthenticationRequired, AuthorizationDenied, NotFound, ValidationFailure
from database.models import AppRole, Profile, Resource, RoleAssignment
from services.role_service import RoleService, parse_role


class TestRoleStore:

    def test_has_role_matches_assignments(self, db, make_user):
        teacher = make_user(AppRole.TEACHER)
        assert RoleService.has_role(db, teacher.id, AppRole.TEACHER)
        assert not RoleService.has_role(db, teacher.id, AppRole.ADMIN)
        assert not RoleService.has_role(db, teacher.id, AppRole.STUDENT)

    def test_has_role_unknown_principal(self, db):
        assert not RoleService.has_role(db, "00000000-0000-0000-0000-000000000000", AppRole.ADMIN)
        assert not RoleService.has_role(db, None, AppRole.ADMIN)

    def test_grant_is_idempotent(self, db, make_user):
        user = make_user()
        first = RoleService.grant(db, user.id, AppRole.TEACHER)
        second = RoleService.grant(db, user.id, AppRole.TEACHER)
        assert first.id == second.id
        assert RoleService.get_roles(db, user.id) == {AppRole.STUDENT, AppRole.TEACHER}

    def test_grant_to_missing_user(self, db):
        with pytest.raises(NotFound):
            RoleService.grant(db, "missing", AppRole.TEACHER)

    def test_revoke(self, db, make_user):
        user = make_user(AppRole.TEACHER)
        assert RoleService.revoke(db, user.id, AppRole.TEACHER)
        assert not RoleService.revoke(db, user.id, AppRole.TEACHER)
        assert not RoleService.has_role(db, user.id, AppRole.TEACHER)

    def test_deleting_user_cascades_assignments(self, db, make_user):
        user = make_user(AppRole.TEACHER, AppRole.ADMIN)
        user_id = user.id
        db.delete(user)
        db.commit()
        assert db.query(RoleAssignment).filter(RoleAssignment.user_id == user_id).count() == 0
        assert db.query(Profile).filter(Profile.user_id == user_id).count() == 0

    def test_parse_role(self):
        assert parse_role(" Teacher ") == AppRole.TEACHER
        with pytest.raises(ValidationFailure):
            parse_role("superuser")


class TestPolicyTable:

    @pytest.fixture
    def principals(self, make_user):
        return {
            "student": make_user(AppRole.STUDENT).id,
            "teacher": make_user(AppRole.TEACHER).id,
            "admin": make_user(AppRole.ADMIN).id,
        }

    def test_resource_create_needs_teacher_or_admin(self, db, principals):
        assert not policy.authorize(db, principals["student"], Collection.RESOURCE, Action.INSERT)
        assert policy.authorize(db, principals["teacher"], Collection.RESOURCE, Action.INSERT)
        assert policy.authorize(db, principals["admin"], Collection.RESOURCE, Action.INSERT)

    def test_resource_update_owner_or_admin(self, db, principals):
        row = Resource(uploaded_by=principals["teacher"])
        assert policy.authorize(db, principals["teacher"], Collection.RESOURCE, Action.UPDATE, row)
        assert policy.authorize(db, principals["admin"], Collection.RESOURCE, Action.DELETE, row)
        assert not policy.authorize(db, principals["student"], Collection.RESOURCE, Action.UPDATE, row)

    def test_other_teacher_cannot_edit(self, db, principals, make_user):
        other = make_user(AppRole.TEACHER).id
        row = Resource(uploaded_by=principals["teacher"])
        assert not policy.authorize(db, other, Collection.RESOURCE, Action.UPDATE, row)

    def test_view_events_readable_by_teacher_and_admin_only(self, db, principals):
        assert not policy.authorize(db, principals["student"], Collection.VIEW_EVENT, Action.SELECT)
        assert policy.authorize(db, principals["teacher"], Collection.VIEW_EVENT, Action.SELECT)
        assert policy.authorize(db, principals["admin"], Collection.VIEW_EVENT, Action.SELECT)

    def test_role_assignments_own_rows_or_admin(self, db, principals):
        own = RoleAssignment(user_id=principals["student"])
        assert policy.authorize(db, principals["student"], Collection.ROLE_ASSIGNMENT, Action.SELECT, own)
        assert not policy.authorize(db, principals["teacher"], Collection.ROLE_ASSIGNMENT, Action.SELECT, own)
        assert policy.authorize(db, principals["admin"], Collection.ROLE_ASSIGNMENT, Action.SELECT, own)
        assert not policy.authorize(db, principals["teacher"], Collection.ROLE_ASSIGNMENT, Action.INSERT)

    def test_profile_writes_owner_only(self, db, principals):
        profile = Profile(user_id=principals["student"])
        assert policy.authorize(db, principals["student"], Collection.PROFILE, Action.UPDATE, profile)
        assert not policy.authorize(db, principals["admin"], Collection.PROFILE, Action.UPDATE, profile)
        assert not policy.authorize(db, principals["admin"], Collection.PROFILE, Action.DELETE, profile)

    def test_file_objects(self, db, principals):
        assert policy.authorize(db, None, Collection.FILE_OBJECT, Action.SELECT)
        assert not policy.authorize(db, principals["student"], Collection.FILE_OBJECT, Action.INSERT)
        assert policy.authorize(db, principals["student"], Collection.FILE_OBJECT, Action.UPDATE)
        assert not policy.authorize(db, None, Collection.FILE_OBJECT, Action.DELETE)

    def test_enforce_distinguishes_anonymous_from_denied(self, db, principals):
        with pytest.raises(AuthenticationRequired):
            policy.enforce(db, None, Collection.RESOURCE, Action.SELECT)
        with pytest.raises(AuthorizationDenied):
            policy.enforce(db, principals["student"], Collection.CATEGORY, Action.INSERT)

    def test_unlisted_action_is_denied(self, db, principals):
        engine = PolicyEngine(rules={})
        assert not engine.authorize(db, principals["admin"], Collection.RESOURCE, Action.SELECT)
