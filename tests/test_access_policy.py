import uuid

import pytest

from municipal_feedback.errors import BadRequest, Forbidden
from municipal_feedback.models.models import Feedback, FeedbackCategory, UserRole
from municipal_feedback.services.access import (
    Decision,
    Identity,
    authorize,
    can_modify,
    require_municipality_access,
    resolve_target_municipality,
    scope_feedback_query,
)


TOWN_A = uuid.uuid4()
TOWN_B = uuid.uuid4()


def ident(role: UserRole, municipality_id=None) -> Identity:
    return Identity(id=uuid.uuid4(), role=role.value, municipality_id=municipality_id)


class TestAuthorize:
    def test_admin_is_allowed_everywhere(self):
        admin = ident(UserRole.ADMIN)
        assert authorize(admin, TOWN_A) is Decision.ALLOW
        assert authorize(admin, TOWN_B) is Decision.ALLOW
        assert authorize(admin, None) is Decision.ALLOW

    @pytest.mark.parametrize("role", [UserRole.MUNICIPALITY_ADMIN, UserRole.USER])
    def test_scoped_roles_only_reach_their_own_municipality(self, role):
        who = ident(role, TOWN_A)
        assert authorize(who, TOWN_A) is Decision.ALLOW
        assert authorize(who, TOWN_B) is Decision.DENY

    @pytest.mark.parametrize("role", [UserRole.MUNICIPALITY_ADMIN, UserRole.USER])
    def test_identity_without_municipality_is_denied(self, role):
        assert authorize(ident(role), TOWN_A) is Decision.DENY

    def test_string_ids_are_accepted(self):
        assert authorize(ident(UserRole.USER, TOWN_A), str(TOWN_A)) is Decision.ALLOW

    def test_malformed_id_is_a_bad_request(self):
        with pytest.raises(BadRequest):
            authorize(ident(UserRole.USER, TOWN_A), "not-a-uuid")


class TestResolveTarget:
    def test_path_wins_over_body(self):
        who = ident(UserRole.MUNICIPALITY_ADMIN, TOWN_A)
        assert resolve_target_municipality(who, path_id=TOWN_A, body_id=TOWN_B) == TOWN_A

    def test_body_used_when_no_path(self):
        who = ident(UserRole.USER, TOWN_A)
        assert resolve_target_municipality(who, body_id=TOWN_B) == TOWN_B

    def test_missing_target_rejected_for_non_admin(self):
        with pytest.raises(BadRequest) as exc:
            resolve_target_municipality(ident(UserRole.USER, TOWN_A))
        assert exc.value.detail == "MunicipalityRequired"

    def test_missing_target_allowed_for_admin(self):
        assert resolve_target_municipality(ident(UserRole.ADMIN)) is None

    def test_require_access_raises_forbidden_across_tenants(self):
        with pytest.raises(Forbidden):
            require_municipality_access(ident(UserRole.MUNICIPALITY_ADMIN, TOWN_A), path_id=TOWN_B)


class TestCanModify:
    def test_author_may_modify_own_record(self):
        who = ident(UserRole.USER, TOWN_A)
        assert can_modify(who, TOWN_A, who.id) is True

    def test_user_may_not_modify_someone_elses_record(self):
        assert can_modify(ident(UserRole.USER, TOWN_A), TOWN_A, uuid.uuid4()) is False

    def test_staff_may_modify_any_record_in_scope(self):
        staff = ident(UserRole.MUNICIPALITY_ADMIN, TOWN_A)
        assert can_modify(staff, TOWN_A, uuid.uuid4()) is True
        assert can_modify(staff, TOWN_B, uuid.uuid4()) is False

    def test_author_loses_access_after_leaving_municipality(self):
        who = ident(UserRole.USER, TOWN_B)
        assert can_modify(who, TOWN_A, who.id) is False

    def test_admin_may_modify_anything(self):
        assert can_modify(ident(UserRole.ADMIN), TOWN_B, uuid.uuid4()) is True


class TestScopeFeedbackQuery:
    @pytest.fixture
    def reports(self, db, town_a, town_b, citizen_a, neighbour_a, citizen_b):
        rows = []
        for author, town in ((citizen_a, town_a), (neighbour_a, town_a), (citizen_b, town_b)):
            f = Feedback(
                description="Broken streetlight",
                category=FeedbackCategory.SAFETY.value,
                latitude=1.0,
                longitude=2.0,
                user_id=author.id,
                municipality_id=town.id,
            )
            db.add(f)
            rows.append(f)
        db.commit()
        return rows

    def _ids(self, db, identity):
        return {f.id for f in scope_feedback_query(db.query(Feedback), identity).all()}

    def test_admin_sees_everything(self, db, reports, admin):
        assert self._ids(db, Identity(admin.id, admin.role)) == {f.id for f in reports}

    def test_staff_sees_their_municipality(self, db, reports, staff_a, town_a):
        identity = Identity(staff_a.id, staff_a.role, town_a.id)
        assert self._ids(db, identity) == {reports[0].id, reports[1].id}

    def test_user_sees_only_own_reports(self, db, reports, citizen_a, town_a):
        identity = Identity(citizen_a.id, citizen_a.role, town_a.id)
        assert self._ids(db, identity) == {reports[0].id}

    def test_staff_without_municipality_sees_nothing(self, db, reports):
        assert self._ids(db, ident(UserRole.MUNICIPALITY_ADMIN)) == set()
