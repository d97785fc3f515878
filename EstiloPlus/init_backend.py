import asyncio
import os
import sys

from dotenv import load_dotenv
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession


async def promote_admin(db: AsyncSession, email: str) -> bool:
    """Grants ADMIN to the registered account with `email`. Returns False if there is none."""
    from models import Role, User

    result = await db.execute(select(User).where(User.email == email))
    account = result.scalar_one_or_none()
    if account is None:
        return False
    account.role = Role.ADMIN.value
    await db.commit()
    return True


async def main():
    # Load .env if present (the host may also provide env vars directly)
    load_dotenv()

    from db import async_session_maker, create_tables, engine

    print("📦 Creating tables...")
    await create_tables()

    # Administrators cannot self-register; the first one is promoted here.
    admin_email = os.getenv("ADMIN_EMAIL")
    if admin_email:
        async with async_session_maker() as db:
            if await promote_admin(db, admin_email):
                print(f"👤 {admin_email} is now an administrator.")
            else:
                print(f"⚠️  No registered account with email {admin_email}; register it first.")

    await engine.dispose()
    print("🎉 Backend initialization complete.")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except Exception as e:
        print("❌ Error:", e)
        sys.exit(1)
