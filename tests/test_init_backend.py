from init_backend import promote_admin
from models import User


async def test_promote_admin_by_email(session, make_account):
    account = await make_account(email="owner@estiloplus.test")

    assert await promote_admin(session, "owner@estiloplus.test") is True

    refreshed = await session.get(User, account.id)
    assert refreshed.role == "admin"


async def test_promote_unknown_email(session):
    assert await promote_admin(session, "nobody@estiloplus.test") is False
