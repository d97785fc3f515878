# prompts.py
"""
Prompt configuration for try-on generation.

Exactly one template is active at a time: activating a template deactivates
every other one in the same transaction. Selection still picks the newest
active row, and falls back to `DEFAULT_PROMPT` when none is active.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import field_validator
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from auth import admin_only
from db import get_db
from errors import PromptNotFound
from models import Prompt
from schemas import CamelModel, PromptOut, SuccessOut, require_name

log = logging.getLogger(__name__)
router = APIRouter(prefix="/prompts", tags=["Prompts"], dependencies=[Depends(admin_only)])

USER_IMAGE_PLACEHOLDER = "{user_image}"
CLOTHING_IMAGE_PLACEHOLDER = "{clothing_image}"
USER_IMAGE_REFERENCE = "the person in the first image"
CLOTHING_IMAGE_REFERENCE = "the clothing in the second image"

DEFAULT_PROMPT = """Generate a realistic image of the person in the first image wearing the clothing shown in the second image.
Keep the person's face, body shape, and pose consistent.
The clothing should fit naturally on the person's body.
Maintain the same background and lighting from the original photo.
The result should look like a real photograph, not a composite."""


# --- Pydantic Schemas ---

def _check_content(v: str) -> str:
    v = (v or "").strip()
    if len(v) < 10:
        raise ValueError("Content must have at least 10 characters")
    return v


class PromptIn(CamelModel):
    name: str
    content: str
    is_active: bool = False

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        return require_name(v, "Prompt name")

    @field_validator("content")
    @classmethod
    def _content(cls, v: str) -> str:
        return _check_content(v)


class PromptUpdate(CamelModel):
    name: Optional[str] = None
    content: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("name")
    @classmethod
    def _name(cls, v: Optional[str]) -> Optional[str]:
        return require_name(v, "Prompt name") if v is not None else None

    @field_validator("content")
    @classmethod
    def _content(cls, v: Optional[str]) -> Optional[str]:
        return _check_content(v) if v is not None else None


# --- Core Logic ---

async def resolve_active_prompt(db: AsyncSession) -> str:
    """Returns the template in effect: the newest active one, else the built-in."""
    result = await db.execute(
        select(Prompt.content)
        .where(Prompt.is_active.is_(True))
        .order_by(Prompt.created_at.desc())
        .limit(1)
    )
    content = result.scalar_one_or_none()
    return content or DEFAULT_PROMPT


def render_prompt(template: str) -> str:
    """Replaces the image placeholders with references to the attached images."""
    return (
        template
        .replace(USER_IMAGE_PLACEHOLDER, USER_IMAGE_REFERENCE)
        .replace(CLOTHING_IMAGE_PLACEHOLDER, CLOTHING_IMAGE_REFERENCE)
    )


async def _deactivate_others(db: AsyncSession, keep_id: uuid.UUID):
    await db.execute(
        update(Prompt)
        .where(Prompt.id != keep_id, Prompt.is_active.is_(True))
        .values(is_active=False)
        .execution_options(synchronize_session="fetch")
    )


async def _get_prompt(db: AsyncSession, prompt_id: uuid.UUID) -> Prompt:
    prompt = await db.get(Prompt, prompt_id)
    if not prompt:
        raise PromptNotFound()
    return prompt


# --- API Endpoints ---

@router.get("", response_model=List[PromptOut])
async def list_prompts(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(Prompt).order_by(Prompt.created_at.desc()))
    return result.scalars().all()


@router.post("", response_model=PromptOut, status_code=status.HTTP_201_CREATED)
async def create_prompt(payload: PromptIn, db: AsyncSession = Depends(get_db)):
    prompt = Prompt(name=payload.name, content=payload.content, is_active=payload.is_active)
    db.add(prompt)
    await db.flush()
    if prompt.is_active:
        await _deactivate_others(db, prompt.id)
    await db.commit()
    log.info(f"Created prompt {prompt.id} (active={prompt.is_active})")
    return prompt


@router.patch("/{prompt_id}", response_model=PromptOut)
async def update_prompt(prompt_id: uuid.UUID, payload: PromptUpdate, db: AsyncSession = Depends(get_db)):
    prompt = await _get_prompt(db, prompt_id)
    if payload.name is not None:
        prompt.name = payload.name
    if payload.content is not None:
        prompt.content = payload.content
    if payload.is_active is not None:
        prompt.is_active = payload.is_active
        if payload.is_active:
            await _deactivate_others(db, prompt.id)
    prompt.updated_at = datetime.now(timezone.utc)
    await db.commit()
    return prompt


@router.delete("/{prompt_id}", response_model=SuccessOut)
async def delete_prompt(prompt_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    await _get_prompt(db, prompt_id)
    await db.execute(delete(Prompt).where(Prompt.id == prompt_id))
    await db.commit()
    log.info(f"Deleted prompt {prompt_id}")
    return SuccessOut()
