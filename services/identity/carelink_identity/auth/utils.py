import asyncio
from functools import lru_cache

from passlib.context import CryptContext


@lru_cache
def get_password_context(time_cost: int, memory_kib: int) -> CryptContext:
    """Argon2 context for the configured cost; one instance per cost pair."""
    return CryptContext(
        schemes=["argon2"],
        deprecated="auto",
        argon2__time_cost=time_cost,
        argon2__memory_cost=memory_kib,
    )


# Argon2 is deliberately slow: keep it off the event loop.

async def hash_password(context: CryptContext, password: str) -> str:
    return await asyncio.to_thread(context.hash, password)


async def verify_password(context: CryptContext, plain: str, hashed: str) -> bool:
    return await asyncio.to_thread(context.verify, plain, hashed)


async def dummy_verify(context: CryptContext) -> None:
    """Spend the same time as a real verification (unknown-email path)."""
    await asyncio.to_thread(context.dummy_verify)
