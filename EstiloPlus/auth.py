# auth.py
import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import field_validator
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from db import get_db
from errors import AccountNotFound, InvalidInput, Unauthenticated, Unauthorized, UpstreamFailure
from models import Role, User
from schemas import AccountOut, CamelModel, require_name
from settings import settings

log = logging.getLogger(__name__)

# ===================================================================
# Pydantic Schemas (Data Validation)
# ===================================================================

class RegisterIn(CamelModel):
    """Profile data sent right after signing up with the identity provider."""
    name: str
    role: Role = Role.CLIENT

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        return require_name(v)


class ProfileUpdateIn(CamelModel):
    name: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _name(cls, v: Optional[str]) -> Optional[str]:
        return require_name(v) if v is not None else None


class TokenClaims(CamelModel):
    """The subset of the identity provider's JWT claims the service uses."""
    sub: uuid.UUID
    email: Optional[str] = None


# ===================================================================
# Configuration
# ===================================================================

router = APIRouter(tags=["Auth & Users"])
bearer_scheme = HTTPBearer(auto_error=False)


# ===================================================================
# Token Verification
# ===================================================================

def decode_token(token: str) -> TokenClaims:
    """Verifies an identity-provider access token and returns its claims."""
    if not settings.SUPABASE_JWT_SECRET:
        log.error("SUPABASE_JWT_SECRET is not set; cannot verify bearer tokens.")
        raise UpstreamFailure.not_configured("Authentication")
    try:
        payload = jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
        )
        return TokenClaims(sub=payload.get("sub"), email=payload.get("email"))
    except (JWTError, ValueError) as e:
        log.warning(f"Invalid JWT decode attempt: {e}")
        raise Unauthenticated("Invalid or expired token.")


async def get_token_claims(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> TokenClaims:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise Unauthenticated("Authentication token not provided.")
    return decode_token(credentials.credentials)


async def get_current_account(
    claims: TokenClaims = Depends(get_token_claims),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Dependency to get the authenticated account from a bearer token."""
    account = await db.get(User, claims.sub)
    if account is None:
        raise AccountNotFound()
    return account


# ===================================================================
# Role Checks
# ===================================================================

def require_role(*roles: Role):
    """
    Builds the dependency that guards a route by role.

    Every protected route goes through this check before its handler runs.
    ADMIN passes every check.
    """
    allowed = {Role(r).value for r in roles} | {Role.ADMIN.value}

    async def dependency(account: User = Depends(get_current_account)) -> User:
        if account.role not in allowed:
            log.warning(f"User {account.id} with role '{account.role}' denied; requires {sorted(allowed)}")
            raise Unauthorized()
        return account

    return dependency


any_account = require_role(Role.CLIENT, Role.STORE)
store_or_admin = require_role(Role.STORE)
admin_only = require_role(Role.ADMIN)


def is_admin(account: User) -> bool:
    return account.role == Role.ADMIN.value


def ensure_self_or_admin(account: User, user_id: Optional[uuid.UUID]) -> uuid.UUID:
    """
    Resolves the account a request acts on.

    Requests may name a `userId`; only administrators may name someone else.
    """
    if user_id is None or user_id == account.id:
        return account.id
    if not is_admin(account):
        raise Unauthorized()
    return user_id


# ===================================================================
# API Endpoints
# ===================================================================

@router.post("/auth/register", status_code=status.HTTP_201_CREATED, response_model=AccountOut)
async def register(
    payload: RegisterIn,
    claims: TokenClaims = Depends(get_token_claims),
    db: AsyncSession = Depends(get_db),
):
    """
    Creates the account row for a freshly signed-up identity.

    - Starts the balance at `SIGNUP_CREDITS`.
    - Administrators are never self-assigned.
    - Calling it again returns the existing account unchanged.
    """
    existing = await db.get(User, claims.sub)
    if existing:
        return existing

    if payload.role == Role.ADMIN:
        raise Unauthorized("Administrator accounts cannot be self-registered.")
    if not claims.email:
        raise Unauthenticated("Token carries no email claim.")

    account = User(
        id=claims.sub,
        email=claims.email,
        name=payload.name,
        role=payload.role.value,
        credits=settings.SIGNUP_CREDITS,
    )
    db.add(account)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        log.warning(f"Registration for {claims.sub} rejected: email {claims.email} already in use")
        raise InvalidInput("Email already registered.")
    log.info(f"Registered {account.role} account {account.id} with {account.credits} credits")
    return account


@router.get("/me", response_model=AccountOut)
async def read_me(current_account: User = Depends(any_account)):
    """Fetches the profile of the currently authenticated account."""
    return current_account


@router.patch("/me", response_model=AccountOut)
async def update_me(
    payload: ProfileUpdateIn,
    current_account: User = Depends(any_account),
    db: AsyncSession = Depends(get_db),
):
    """
    Self-service profile update.

    Credits and role are not editable here; the profile photo goes through
    the paid `/upload-profile-photo` endpoint.
    """
    if payload.name is not None:
        current_account.name = payload.name
    await db.commit()
    return current_account
