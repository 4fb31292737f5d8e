from __future__ import annotations

import pytest
from fastapi import HTTPException

from mmstock.apps.accounts import models as account_models
from mmstock.apps.accounts import schemas as account_schemas
from mmstock.apps.accounts import services as account_services
from mmstock.apps.audit import models as audit_models


def _new_user(**overrides):
    data = {
        "email": "novo@multimarmore.pt",
        "full_name": "Novo Operador",
        "password": "segredo123",
    }
    data.update(overrides)
    return account_schemas.UserCreate(**data)


def test_admin_creates_user_in_own_company(db_session, company, admin, parques):
    user = account_services.create_user(
        db_session,
        actor=admin,
        payload=_new_user(email="Novo@MultiMarmore.pt", location_id=parques["MM003"].id),
    )
    db_session.commit()

    assert user.company_id == company.id
    assert user.email == "novo@multimarmore.pt"
    assert user.role == account_models.AppRole.OPERATOR
    assert user.hashed_password != "segredo123"
    event = db_session.query(audit_models.AuditEvent).filter_by(entity_id=user.id).one()
    assert event.action == "criar"


def test_duplicate_email_is_a_conflict(db_session, admin, operator):
    with pytest.raises(HTTPException) as exc:
        account_services.create_user(db_session, actor=admin, payload=_new_user(email=operator.email))
    assert exc.value.status_code == 409


def test_unknown_parque_is_rejected(db_session, admin):
    with pytest.raises(HTTPException) as exc:
        account_services.create_user(db_session, actor=admin, payload=_new_user(location_id="nope"))
    assert exc.value.status_code == 404


def test_only_superadmin_creates_superadmins(db_session, admin, superadmin):
    with pytest.raises(HTTPException) as exc:
        account_services.create_user(
            db_session, actor=admin, payload=_new_user(role=account_models.AppRole.SUPERADMIN)
        )
    assert exc.value.status_code == 403

    user = account_services.create_user(
        db_session, actor=superadmin, payload=_new_user(role=account_models.AppRole.SUPERADMIN)
    )
    assert user.is_superadmin


def test_short_password_fails_validation():
    with pytest.raises(ValueError):
        _new_user(password="curta")


def test_set_role_guards_superadmin(db_session, admin, superadmin, operator):
    promoted = account_services.set_user_role(
        db_session, actor=admin, user=operator, role=account_models.AppRole.ADMIN
    )
    assert promoted.role == account_models.AppRole.ADMIN

    with pytest.raises(HTTPException) as exc:
        account_services.set_user_role(
            db_session, actor=admin, user=operator, role=account_models.AppRole.SUPERADMIN
        )
    assert exc.value.status_code == 403

    with pytest.raises(HTTPException):
        account_services.set_user_role(
            db_session, actor=admin, user=superadmin, role=account_models.AppRole.OPERATOR
        )


def test_toggle_active_but_never_yourself(db_session, admin, operator):
    toggled = account_services.toggle_user_active(db_session, actor=admin, user=operator)
    assert toggled.is_active is False

    with pytest.raises(HTTPException) as exc:
        account_services.toggle_user_active(db_session, actor=admin, user=admin)
    assert exc.value.status_code == 400


def test_users_of_other_companies_are_invisible(db_session, other_company, operator):
    with pytest.raises(HTTPException) as exc:
        account_services.get_user(db_session, company_id=other_company.id, user_id=operator.id)
    assert exc.value.status_code == 404


def test_own_profile_update(db_session, operator):
    user = account_services.update_own_profile(
        db_session,
        user=operator,
        payload=account_schemas.ProfileUpdate(full_name="  Rui Silva ", phone="912000000"),
    )
    assert user.full_name == "Rui Silva"
    assert user.phone == "912000000"


def test_ensure_default_companies_is_idempotent(db_session):
    first = account_services.ensure_default_companies(db_session)
    second = account_services.ensure_default_companies(db_session)

    assert [c.slug for c in first] == ["multimarmore", "magratex"]
    assert [c.id for c in first] == [c.id for c in second]
    assert first[1].id_prefix == "IDMTX"


def test_idempotency_key_registration(db_session):
    record, created = account_services.register_idempotency_key(
        db_session, scope="movement-create:c1", key="k1", payload={"a": 1}
    )
    again, created_again = account_services.register_idempotency_key(
        db_session, scope="movement-create:c1", key="k1", payload={"a": 1}
    )
    assert created is True
    assert created_again is False
    assert again.id == record.id

    with pytest.raises(account_services.IdempotencyError):
        account_services.register_idempotency_key(
            db_session, scope="movement-create:c1", key="k1", payload={"a": 2}
        )
