from itertools import chain, combinations

import pytest

from errors import PERMISSION_DENIED, UNAUTHENTICATED, ServiceError
from roles import (
    REQUIRE_ADMIN,
    REQUIRE_OWNER_OR_ADMIN,
    ensure_authorized,
    is_authorized,
    normalize_roles,
)

ALL_ROLES = ("USER", "ADMIN", "EDITOR")
ROLE_SETS = list(chain.from_iterable(combinations(ALL_ROLES, n) for n in range(len(ALL_ROLES) + 1)))


@pytest.mark.parametrize("roles", ROLE_SETS)
def test_admin_requirement_matches_membership(roles):
    assert is_authorized({"roles": list(roles)}, REQUIRE_ADMIN) == ("ADMIN" in roles)


def test_no_profile_is_never_authorized():
    assert not is_authorized(None, REQUIRE_ADMIN)
    assert not is_authorized(None, REQUIRE_OWNER_OR_ADMIN, owner_id="u1", requester_id="u1")


def test_owner_or_admin():
    user = {"id": "u1", "roles": ["USER"]}
    admin = {"id": "a1", "roles": ["USER", "ADMIN"]}
    assert is_authorized(user, REQUIRE_OWNER_OR_ADMIN, owner_id="u1", requester_id="u1")
    assert not is_authorized(user, REQUIRE_OWNER_OR_ADMIN, owner_id="u2", requester_id="u1")
    assert is_authorized(admin, REQUIRE_OWNER_OR_ADMIN, owner_id="u2", requester_id="a1")


def test_missing_ids_do_not_match():
    user = {"id": "u1", "roles": ["USER"]}
    assert not is_authorized(user, REQUIRE_OWNER_OR_ADMIN, owner_id=None, requester_id=None)


def test_unknown_requirement():
    with pytest.raises(ValueError):
        is_authorized({"roles": []}, "SUPERUSER")


def test_ensure_authorized_error_codes():
    with pytest.raises(ServiceError) as exc:
        ensure_authorized(None, REQUIRE_ADMIN)
    assert exc.value.code == UNAUTHENTICATED

    with pytest.raises(ServiceError) as exc:
        ensure_authorized({"id": "u1", "roles": ["USER"]}, REQUIRE_ADMIN)
    assert exc.value.code == PERMISSION_DENIED
    assert exc.value.status_code == 403

    ensure_authorized({"id": "u1", "roles": ["USER"]}, REQUIRE_OWNER_OR_ADMIN, owner_id="u1")


def test_normalize_roles():
    assert normalize_roles({"roles": ["ADMIN"]}) == ["USER", "ADMIN"]
    assert normalize_roles({"role": "admin"}) == ["USER", "ADMIN"]
    assert normalize_roles({}) == ["USER"]
