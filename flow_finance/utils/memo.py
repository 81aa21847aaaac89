"""
Async memoization.

functools.lru_cache can't hold coroutine results, so lookups that go
through async storage use this instead.
"""

from typing import Awaitable, Callable, Generic, Hashable, TypeVar


K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class Memoizer(Generic[K, V]):
    """Caches the result of an async compute function per key."""

    def __init__(self, compute: Callable[[K], Awaitable[V]]):
        self._compute = compute
        self._values: dict[K, V] = {}

    async def get(self, key: K) -> V:
        if key not in self._values:
            self._values[key] = await self._compute(key)
        return self._values[key]

    def invalidate(self, key: K = None) -> None:
        """Forget one key, or everything when key is None."""
        if key is None:
            self._values.clear()
        else:
            self._values.pop(key, None)

    def __contains__(self, key: K) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)
