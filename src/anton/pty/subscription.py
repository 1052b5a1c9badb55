"""Disposable subscription handles."""

from __future__ import annotations

from typing import Callable, Generic, TypeVar

T = TypeVar("T")


class Subscription:
    """Returned by every ``on_*`` registration.

    ``dispose()`` is the only way to stop receiving events. It is safe to
    call more than once.
    """

    def __init__(self, on_dispose: Callable[[], None]) -> None:
        self._on_dispose = on_dispose
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self._on_dispose()


class CallbackList(Generic[T]):
    """Ordered list of callbacks, each removable through its Subscription."""

    def __init__(self) -> None:
        self._callbacks: list[Callable[[T], None]] = []

    def add(self, callback: Callable[[T], None]) -> Subscription:
        self._callbacks.append(callback)

        def _remove() -> None:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass

        return Subscription(_remove)

    def snapshot(self) -> list[Callable[[T], None]]:
        return list(self._callbacks)

    def __len__(self) -> int:
        return len(self._callbacks)
