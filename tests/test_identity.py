"""Tests for partner accounts, customer sessions and tokens."""

import jwt
import pytest

from foodrun.errors import (
    AuthenticationError,
    InvalidCredentialsError,
    InvalidPartnerError,
    PartnerExistsError,
    PartnerNotFoundError,
    UnauthorizedError,
)
from foodrun.identity import (
    PARTNERS_COLLECTION,
    Identity,
    PartnerDirectory,
    TokenIdentityProvider,
    customer_session,
    hash_password,
    verify_password,
)
from foodrun.models import Admin, Customer, Driver, Restaurant, Role

SECRET = "test-secret"


@pytest.fixture
def directory(store):
    return PartnerDirectory(
        store,
        admin_password_hash=hash_password("admin-pass", rounds=4),
        bcrypt_rounds=4,
    )


class TestPasswords:
    def test_hash_is_not_plaintext(self):
        hashed = hash_password("secret", rounds=4)
        assert hashed != "secret"
        assert hashed.startswith("$2")

    def test_verify(self):
        hashed = hash_password("secret", rounds=4)
        assert verify_password("secret", hashed)
        assert not verify_password("Secret", hashed)

    def test_verify_malformed_hash(self):
        assert not verify_password("secret", "not-a-hash")

    def test_verify_overlong_password(self):
        hashed = hash_password("secret", rounds=4)
        assert not verify_password("x" * 100, hashed)


class TestPartnerDirectory:
    def test_create_stores_hash_only(self, directory, store):
        partner = directory.create_partner("burger", "pw123", Role.RESTAURANT, "Burger King", "1")

        doc = store.get(PARTNERS_COLLECTION, partner.id)
        assert doc["username"] == "burger"
        assert doc["restaurantId"] == "1"
        assert "pw123" not in doc.values()
        assert verify_password("pw123", doc["passwordHash"])

    def test_driver_has_no_restaurant(self, directory):
        partner = directory.create_partner("ravi", "pw", Role.DRIVER, "Ravi", restaurant_id="1")
        assert partner.restaurant_id is None

    def test_name_defaults_to_username(self, directory):
        assert directory.create_partner("ravi", "pw", Role.DRIVER, "").name == "ravi"

    def test_duplicate_username(self, directory):
        directory.create_partner("ravi", "pw", Role.DRIVER, "Ravi")
        with pytest.raises(PartnerExistsError):
            directory.create_partner("ravi", "pw2", Role.RESTAURANT, "Other")

    def test_admin_username_reserved(self, directory):
        with pytest.raises(PartnerExistsError):
            directory.create_partner("admin", "pw", Role.DRIVER, "Nope")

    @pytest.mark.parametrize(
        "username,password,role",
        [
            ("", "pw", Role.DRIVER),
            ("   ", "pw", Role.DRIVER),
            ("ravi", "", Role.DRIVER),
            ("ravi", "pw", Role.CUSTOMER),
            ("ravi", "pw", Role.ADMIN),
            ("ravi", "x" * 73, Role.DRIVER),
        ],
    )
    def test_invalid_partner(self, directory, username, password, role):
        with pytest.raises(InvalidPartnerError):
            directory.create_partner(username, password, role, "Name")

    def test_list_and_filter(self, directory):
        directory.create_partner("burger", "pw", Role.RESTAURANT, "Burger King")
        directory.create_partner("ravi", "pw", Role.DRIVER, "Ravi")

        assert [p.username for p in directory.list_partners()] == ["burger", "ravi"]
        assert [p.username for p in directory.list_partners(Role.DRIVER)] == ["ravi"]

    def test_get_unknown_partner(self, directory):
        with pytest.raises(PartnerNotFoundError):
            directory.get_partner("nobody")


class TestAuthenticate:
    def test_partner_login(self, directory):
        partner = directory.create_partner("burger", "pw", Role.RESTAURANT, "Burger King", "1")
        identity = directory.authenticate("burger", "pw", Role.RESTAURANT)

        assert identity.uid == partner.id
        assert identity.display_name == "Burger King"
        assert identity.role == Role.RESTAURANT
        assert identity.restaurant_id == "1"

    def test_wrong_password(self, directory):
        directory.create_partner("ravi", "pw", Role.DRIVER, "Ravi")
        with pytest.raises(InvalidCredentialsError):
            directory.authenticate("ravi", "wrong", Role.DRIVER)

    def test_unknown_user(self, directory):
        with pytest.raises(InvalidCredentialsError):
            directory.authenticate("nobody", "pw", Role.DRIVER)

    def test_wrong_portal(self, directory):
        directory.create_partner("ravi", "pw", Role.DRIVER, "Ravi")
        with pytest.raises(UnauthorizedError, match="wrong portal") as exc_info:
            directory.authenticate("ravi", "pw", Role.RESTAURANT)
        assert not isinstance(exc_info.value, AuthenticationError)

    def test_admin_login(self, directory):
        identity = directory.authenticate("admin", "admin-pass", Role.ADMIN)
        assert identity.role == Role.ADMIN

    def test_admin_wrong_password(self, directory):
        with pytest.raises(InvalidCredentialsError):
            directory.authenticate("admin", "nope", Role.ADMIN)

    def test_admin_login_disabled_without_hash(self, store):
        directory = PartnerDirectory(store, bcrypt_rounds=4)
        with pytest.raises(InvalidCredentialsError):
            directory.authenticate("admin", "", Role.ADMIN)


class TestTokens:
    def test_round_trip(self):
        provider = TokenIdentityProvider(SECRET)
        identity = Identity(uid="p1", display_name="Burger King", role=Role.RESTAURANT, restaurant_id="1")
        assert provider.resolve(provider.issue(identity)) == identity

    def test_round_trip_without_restaurant(self):
        provider = TokenIdentityProvider(SECRET)
        identity = Identity(uid="d1", display_name="Ravi", role=Role.DRIVER)
        assert provider.resolve(provider.issue(identity)) == identity

    def test_expired_token(self):
        provider = TokenIdentityProvider(SECRET)
        token = provider.issue(Identity(uid="d1", display_name="Ravi", role=Role.DRIVER), ttl_seconds=-10)
        with pytest.raises(AuthenticationError, match="expired"):
            provider.resolve(token)

    def test_wrong_secret(self):
        token = TokenIdentityProvider("other").issue(Identity(uid="d1", display_name="", role=Role.DRIVER))
        with pytest.raises(AuthenticationError, match="invalid token"):
            TokenIdentityProvider(SECRET).resolve(token)

    def test_missing_token(self):
        with pytest.raises(AuthenticationError, match="missing"):
            TokenIdentityProvider(SECRET).resolve("")

    def test_unknown_role_in_token(self):
        token = jwt.encode({"sub": "x", "role": "superuser", "exp": 9999999999}, SECRET, algorithm="HS256")
        with pytest.raises(AuthenticationError):
            TokenIdentityProvider(SECRET).resolve(token)


class TestIdentity:
    def test_customer_session(self):
        a = customer_session("  Asha ")
        b = customer_session("Asha")
        assert a.display_name == "Asha"
        assert a.role == Role.CUSTOMER
        assert a.uid != b.uid

    @pytest.mark.parametrize(
        "role,actor_type",
        [
            (Role.CUSTOMER, Customer),
            (Role.RESTAURANT, Restaurant),
            (Role.DRIVER, Driver),
            (Role.ADMIN, Admin),
        ],
    )
    def test_to_actor(self, role, actor_type):
        actor = Identity(uid="u1", display_name="Name", role=role).to_actor()
        assert isinstance(actor, actor_type)
        assert actor.uid == "u1"

    def test_restaurant_actor_keeps_binding(self):
        actor = Identity(uid="u1", display_name="BK", role=Role.RESTAURANT, restaurant_id="7").to_actor()
        assert actor.restaurant_id == "7"

    def test_unknown_role(self):
        with pytest.raises(UnauthorizedError):
            Identity(uid="u1", display_name="", role="superuser").to_actor()
