from uuid import uuid4

import pytest

from authstarter.models.user import Role
from scripts.set_role import parse_args, set_role


def test_parse_args_normalizes_role():
    args = parse_args(["--email", "user@example.com", "--role", "admin"])
    assert args.email == "user@example.com"
    assert args.user_id is None
    assert args.role is Role.ADMIN


def test_parse_args_requires_exactly_one_target():
    with pytest.raises(SystemExit):
        parse_args(["--role", "ADMIN"])
    with pytest.raises(SystemExit):
        parse_args(["--email", "a@example.com", "--id", str(uuid4()), "--role", "ADMIN"])
    with pytest.raises(SystemExit):
        parse_args(["--email", "a@example.com", "--role", "ROOT"])


async def test_set_role_by_email_and_id(service, database):
    result = await service.register("user@example.com", "Passw0rd!")
    principal = await service.authenticate(result.access_token)

    user = await set_role(database.sessions, Role.ADMIN, email="USER@example.com")
    assert user.role is Role.ADMIN
    assert (await service.authenticate(result.access_token)).role is Role.ADMIN

    user = await set_role(database.sessions, Role.USER, user_id=principal.user_id)
    assert user.role is Role.USER


async def test_set_role_unknown_user(database):
    assert await set_role(database.sessions, Role.ADMIN, email="ghost@example.com") is None
    assert await set_role(database.sessions, Role.ADMIN, user_id=uuid4()) is None
