"""Unit tests for auth/accounts.py -- identity administration.

Covers:
- list order (admin > manager > viewer, then username) and password masking
- list pages past the store row cap
- create: required fields, role validation, duplicate username, hashed storage
- create/update with an identity provider configured
- update: partial changes, empty password clears the credential, conflicts
- delete
"""

import pytest

from auth.accounts import PASSWORD_MASK, create_account, delete_account, list_accounts, update_account
from auth.store import UserStore
from auth.vault import is_hashed, verify_password
from core.errors import Conflict, NotFound, UpstreamError, ValidationError


@pytest.fixture
def users():
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


class TestListAccounts:
    def test_order_and_mask(self, users) -> None:
        create_account(users, "zed", "viewer", password="pw")
        create_account(users, "amy", "viewer")
        create_account(users, "max", "manager", password="pw")
        create_account(users, "ana", "admin", password="pw")

        rows = list_accounts(users)
        assert [r["username"] for r in rows] == ["ana", "max", "amy", "zed"]
        assert rows[0]["password"] == PASSWORD_MASK
        assert rows[2]["password"] is None

    def test_lists_past_store_cap(self) -> None:
        capped = UserStore("sqlite:///:memory:", max_rows=2)
        for name in ("eve", "dan", "cat", "bea", "abe"):
            create_account(capped, name, "viewer")
        rows = list_accounts(capped)
        capped.close()
        assert [r["username"] for r in rows] == ["abe", "bea", "cat", "dan", "eve"]


class TestCreateAccount:
    def test_password_hashed(self, users) -> None:
        uid = create_account(users, " bob ", "Viewer", number=" 9000000003 ", password="hunter2")
        bob = users.get_by_id(uid)
        assert bob.username == "bob"
        assert bob.role == "viewer"
        assert bob.display_number == "9000000003"
        assert is_hashed(bob.password)
        assert verify_password("hunter2", bob.password)

    @pytest.mark.parametrize("username,role", [("", "viewer"), ("bob", ""), ("bob", "owner")])
    def test_invalid(self, users, username, role) -> None:
        with pytest.raises(ValidationError):
            create_account(users, username, role)

    def test_duplicate_username(self, users) -> None:
        create_account(users, "bob", "viewer")
        with pytest.raises(Conflict):
            create_account(users, "bob", "manager")

    def test_provider_account_created(self, users, fake_provider) -> None:
        uid = create_account(
            users, "bob", "viewer", number="9000000003", password="hunter2",
            provider=fake_provider, email_domain="lotdesk.local",
        )
        bob = users.get_by_id(uid)
        assert bob.auth_user_id == "prov-1"
        assert bob.auth_email.startswith("9000000003+")
        assert bob.auth_email.endswith("@lotdesk.local")
        assert fake_provider.sign_in(bob.auth_email, "hunter2")

    def test_provider_failure_stores_nothing(self, users, fake_provider) -> None:
        fake_provider.fail_emails = ("9000000003",)
        with pytest.raises(UpstreamError):
            create_account(users, "bob", "viewer", number="9000000003", password="pw", provider=fake_provider)
        assert users.get_by_username("bob") is None

    def test_no_provider_call_without_password(self, users, fake_provider) -> None:
        create_account(users, "bob", "viewer", provider=fake_provider)
        assert fake_provider.created == []


class TestUpdateAccount:
    def test_partial_update(self, users) -> None:
        uid = create_account(users, "bob", "viewer", number="1", password="pw")
        update_account(users, uid, {"role": "manager", "display_number": "2"})
        bob = users.get_by_id(uid)
        assert bob.role == "manager"
        assert bob.display_number == "2"
        assert verify_password("pw", bob.password)

    def test_empty_password_clears_credential(self, users) -> None:
        uid = create_account(users, "bob", "viewer", password="pw")
        update_account(users, uid, {"password": ""})
        assert users.get_by_id(uid).password in ("", None)

    def test_none_values_ignored(self, users) -> None:
        uid = create_account(users, "bob", "viewer")
        with pytest.raises(ValidationError):
            update_account(users, uid, {"username": None, "password": None, "role": None})

    def test_unknown_user(self, users) -> None:
        with pytest.raises(NotFound):
            update_account(users, 999, {"role": "viewer"})

    def test_username_conflict(self, users) -> None:
        create_account(users, "ana", "admin")
        uid = create_account(users, "bob", "viewer")
        with pytest.raises(Conflict):
            update_account(users, uid, {"username": "ana"})

    def test_rename_to_self_allowed(self, users) -> None:
        uid = create_account(users, "bob", "viewer")
        update_account(users, uid, {"username": "bob"})

    def test_password_updates_existing_provider_account(self, users, fake_provider) -> None:
        uid = create_account(users, "bob", "viewer", number="3", password="old", provider=fake_provider)
        update_account(users, uid, {"password": "new"}, provider=fake_provider)
        bob = users.get_by_id(uid)
        assert fake_provider.sign_in(bob.auth_email, "new")
        assert len(fake_provider.created) == 1

    def test_password_provisions_provider_account(self, users, fake_provider) -> None:
        uid = create_account(users, "bob", "viewer", number="3")
        update_account(users, uid, {"password": "fresh"}, provider=fake_provider)
        bob = users.get_by_id(uid)
        assert bob.auth_user_id == "prov-1"
        assert fake_provider.sign_in(bob.auth_email, "fresh")


class TestDeleteAccount:
    def test_delete(self, users) -> None:
        uid = create_account(users, "bob", "viewer")
        delete_account(users, uid)
        assert users.get_by_id(uid) is None

    def test_delete_unknown(self, users) -> None:
        with pytest.raises(NotFound):
            delete_account(users, 999)
