import pytest

from auth import AdminGate, make_password_context
from errors import AuthError, ForbiddenError, ValidationError
from schemas import Role


def test_login_returns_token_without_password_hash(gate, super_admin):
    result = gate.login("ROOT@example.com ", "secret123")
    assert result["email"] == "root@example.com"
    assert result["role"] == "super-admin"
    assert "password_hash" not in result
    assert gate.authenticate(result["token"])["_id"] == super_admin["_id"]


def test_password_is_stored_hashed(gate, mongo_db, super_admin):
    doc = mongo_db["admin"].find_one({"email": "root@example.com"})
    assert doc["password_hash"] != "secret123"
    assert doc["password_hash"].startswith("$2")
    assert "password_hash" not in super_admin


def test_scenario_c_failures_share_one_message(gate, mongo_db, super_admin):
    with pytest.raises(AuthError) as wrong_password:
        gate.login("root@example.com", "not-the-password")

    mongo_db["admin"].update_one({"email": "root@example.com"}, {"$set": {"is_active": False}})
    with pytest.raises(AuthError) as inactive:
        gate.login("root@example.com", "secret123")

    with pytest.raises(AuthError) as unknown:
        gate.login("nobody@example.com", "secret123")

    assert str(wrong_password.value) == str(inactive.value) == str(unknown.value) == "Invalid credentials"


def test_deactivation_revokes_issued_tokens(gate, mongo_db, super_admin):
    token = gate.login("root@example.com", "secret123")["token"]
    mongo_db["admin"].update_one({"email": "root@example.com"}, {"$set": {"is_active": False}})
    with pytest.raises(AuthError) as exc:
        gate.authenticate(token)
    assert "inactive" in str(exc.value)


def test_expired_and_foreign_tokens_are_rejected(gate, mongo_db, super_admin):
    expired = gate.create_access_token(super_admin["_id"], expires_minutes=-1)
    with pytest.raises(AuthError):
        gate.authenticate(expired)

    forged = AdminGate(mongo_db, secret="someone-else").create_access_token(super_admin["_id"])
    with pytest.raises(AuthError):
        gate.authenticate(forged)

    with pytest.raises(AuthError):
        gate.authenticate("not-a-jwt")
    with pytest.raises(AuthError):
        gate.authenticate(None)


def test_token_for_deleted_admin_is_rejected(gate, mongo_db, super_admin):
    token = gate.create_access_token(super_admin["_id"])
    mongo_db["admin"].delete_many({})
    with pytest.raises(AuthError):
        gate.authenticate(token)


def test_authorize_checks_role(gate, super_admin):
    manager = gate.register_admin("Mona", "mona@example.com", "secret123", Role.MANAGER)
    assert AdminGate.authorize(super_admin, [Role.SUPER_ADMIN]) is super_admin
    with pytest.raises(ForbiddenError) as exc:
        AdminGate.authorize(manager, [Role.SUPER_ADMIN])
    assert "super-admin" in str(exc.value)
    assert AdminGate.authorize(manager, [Role.ADMIN, Role.MANAGER])["role"] == "manager"


def test_register_rejects_duplicate_email_and_short_password(gate, super_admin):
    with pytest.raises(ValidationError):
        gate.register_admin("Again", "Root@Example.com", "secret123")
    with pytest.raises(ValidationError):
        gate.register_admin("Short", "short@example.com", "123")


def test_list_admins_hides_hashes(gate, super_admin):
    gate.register_admin("Amit", "amit@example.com", "secret123")
    admins = gate.list_admins()
    assert {a["email"] for a in admins} == {"root@example.com", "amit@example.com"}
    assert all("password_hash" not in a for a in admins)


def test_ensure_super_admin_runs_once(gate, mongo_db):
    assert gate.ensure_super_admin("Boss", None, None) is None
    created = gate.ensure_super_admin("Boss", "boss@example.com", "secret123")
    assert created["role"] == "super-admin"
    assert gate.ensure_super_admin("Boss", "other@example.com", "secret123") is None
    assert mongo_db["admin"].count_documents({}) == 1


def test_unknown_email_costs_the_same_as_a_wrong_password(mongo_db, monkeypatch):
    context = make_password_context(4)
    AdminGate(mongo_db, password_context=context).register_admin(
        "Root", "root@example.com", "secret123", Role.SUPER_ADMIN
    )
    calls = {"hash": 0, "verify": 0}
    hash_, verify = context.hash, context.verify

    def counting_hash(*args, **kwargs):
        calls["hash"] += 1
        return hash_(*args, **kwargs)

    def counting_verify(*args, **kwargs):
        calls["verify"] += 1
        return verify(*args, **kwargs)

    monkeypatch.setattr(context, "hash", counting_hash)
    monkeypatch.setattr(context, "verify", counting_verify)

    def work_for(email):
        calls.update(hash=0, verify=0)
        # a fresh gate per login, as the request dependency builds one
        with pytest.raises(AuthError):
            AdminGate(mongo_db, password_context=context).login(email, "wrong-password")
        return dict(calls)

    assert work_for("root@example.com") == {"hash": 0, "verify": 1}
    assert work_for("nobody@example.com") == {"hash": 0, "verify": 1}
