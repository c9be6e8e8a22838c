"""bcrypt hashing for passwords and refresh tokens."""

from passlib.context import CryptContext
from starlette.concurrency import run_in_threadpool


class PasswordHasher:
    """
    Salted bcrypt hashing via passlib.

    Passwords and refresh tokens use separate contexts so their cost factors
    can differ. All hashing runs in the threadpool to keep the event loop
    responsive.
    """

    def __init__(self, password_rounds: int = 12, refresh_token_rounds: int = 10):
        self._password_context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=password_rounds,
        )
        self._refresh_context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=refresh_token_rounds,
        )

    async def hash_password(self, password: str) -> str:
        return await run_in_threadpool(self._password_context.hash, password)

    async def verify_password(self, password: str, password_hash: str) -> bool:
        """Constant-time comparison of a password against its stored hash."""
        if not password or not password_hash:
            return False
        try:
            return await run_in_threadpool(
                self._password_context.verify, password, password_hash
            )
        except ValueError:
            # Unrecognised or corrupt hash
            return False

    async def dummy_verify(self) -> None:
        """Burn one verification's worth of time for unknown accounts."""
        await run_in_threadpool(self._password_context.dummy_verify)

    async def hash_refresh_token(self, refresh_token: str) -> str:
        return await run_in_threadpool(self._refresh_context.hash, refresh_token)

    async def verify_refresh_token(self, refresh_token: str, token_hash: str) -> bool:
        if not refresh_token or not token_hash:
            return False
        try:
            return await run_in_threadpool(
                self._refresh_context.verify, refresh_token, token_hash
            )
        except ValueError:
            return False
