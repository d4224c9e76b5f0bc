"""
Privilege Stack

Lets rule evaluation read persisted data through intercepted access paths
without re-triggering the policy it is evaluating.

Frames live in a ContextVar: every asyncio task works on its own copy of the
context, so a privileged section in one request is never visible to another
request running concurrently. Each push keeps the ContextVar token and the
matching pop resets it, which restores the previous frame (not simply
"unprivileged") when sections nest.

This module is part of MDB_POLICY - MongoDB Policy Engine.
"""

import contextvars
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from typing import Any, Tuple, TypeVar

T = TypeVar("T")


class PrivilegeStack:
    """
    Execution-scoped stack of privilege frames.

    `is_privileged()` reads the top frame; an empty stack is unprivileged.
    """

    __slots__ = ("_frames",)

    def __init__(self, name: str = "policy_privilege_frames") -> None:
        self._frames: contextvars.ContextVar[Tuple[bool, ...]] = contextvars.ContextVar(
            name, default=()
        )

    def _push(self, privileged: bool) -> contextvars.Token:
        return self._frames.set(self._frames.get() + (privileged,))

    def _pop(self, token: contextvars.Token) -> None:
        self._frames.reset(token)

    @property
    def depth(self) -> int:
        """Number of frames on the stack of the current execution."""
        return len(self._frames.get())

    def is_privileged(self) -> bool:
        """Return the top frame, or False when no frame was pushed."""
        frames = self._frames.get()
        return frames[-1] if frames else False

    def run_privileged(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """
        Call `fn` with permission checks disabled.

        The frame is popped when `fn` returns or raises. If `fn` returns an
        awaitable, only its creation is privileged: await it through
        `run_privileged_async`.
        """
        token = self._push(True)
        try:
            return fn(*args, **kwargs)
        finally:
            self._pop(token)

    async def run_privileged_async(self, awaitable: Awaitable[T]) -> T:
        """
        Await `awaitable` with permission checks disabled.

        The frame is popped once the awaitable settles, whether it succeeds or
        fails. Pass a coroutine: an already-scheduled Task runs in its own
        context and does not see the frame.
        """
        token = self._push(True)
        try:
            return await awaitable
        finally:
            self._pop(token)

    def run_unprivileged(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Call `fn` with permission checks enabled, even inside a privileged section."""
        token = self._push(False)
        try:
            return fn(*args, **kwargs)
        finally:
            self._pop(token)

    async def run_unprivileged_async(self, awaitable: Awaitable[T]) -> T:
        """Await `awaitable` with permission checks enabled."""
        token = self._push(False)
        try:
            return await awaitable
        finally:
            self._pop(token)

    @contextmanager
    def privileged(self) -> Iterator[None]:
        """
        Block form of `run_privileged`. Usable around `await` expressions as
        long as the block starts and ends in the same task.

        Usage:
            with engine.privileged():
                owner = await db.users.find_one({"_id": user_id})
        """
        token = self._push(True)
        try:
            yield
        finally:
            self._pop(token)

    @contextmanager
    def unprivileged(self) -> Iterator[None]:
        """Block form of `run_unprivileged`."""
        token = self._push(False)
        try:
            yield
        finally:
            self._pop(token)

    def snapshot(self) -> Tuple[bool, ...]:
        """Frames of the current execution, bottom first."""
        return self._frames.get()

    def __repr__(self) -> str:
        return f"PrivilegeStack(frames={self._frames.get()!r})"
