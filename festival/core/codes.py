from __future__ import annotations
import secrets
import uuid
from typing import Callable, Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .errors import GenerationExhausted

CODE_LENGTH = 5
CODE_CHARACTERS = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
MAX_ATTEMPTS = 200


def generate_login_code() -> str:
    return "".join(secrets.choice(CODE_CHARACTERS) for _ in range(CODE_LENGTH))


def generate_qr_token() -> str:
    return str(uuid.uuid4())


class UniqueCodeFactory:
    """Draws values not yet in ``existing``; every accepted value joins the set."""

    def __init__(
        self,
        existing: Iterable[str] = (),
        generator: Callable[[], str] = generate_login_code,
        max_attempts: int = MAX_ATTEMPTS,
    ):
        self.existing = set(existing)
        self.generator = generator
        self.max_attempts = max_attempts

    def __call__(self) -> str:
        for _ in range(self.max_attempts):
            candidate = self.generator()
            if candidate not in self.existing:
                self.existing.add(candidate)
                return candidate
        raise GenerationExhausted()


async def create_unique_code_factory(db: AsyncSession, seed: Iterable[str] | None = None) -> UniqueCodeFactory:
    from ..models import User

    if seed is not None:
        return UniqueCodeFactory(seed)
    codes = (await db.execute(select(User.code))).scalars().all()
    return UniqueCodeFactory(codes)


async def create_qr_token_factory(db: AsyncSession, model) -> UniqueCodeFactory:
    """``model`` is any mapped class with a unique ``qr_token`` column."""
    tokens = (await db.execute(select(model.qr_token))).scalars().all()
    return UniqueCodeFactory(tokens, generator=generate_qr_token)


async def unique_qr_token(db: AsyncSession, model) -> str:
    # single draw: look the token up instead of loading every token
    for _ in range(MAX_ATTEMPTS):
        candidate = generate_qr_token()
        taken = (await db.execute(select(model.id).where(model.qr_token == candidate))).first()
        if taken is None:
            return candidate
    raise GenerationExhausted()
