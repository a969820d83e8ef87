"""
Hooks into the tensor lifecycle

A callback subclasses one or more hook classes below and is installed with
`Configuration(callback)`; `with Configuration(callback)` removes it again on exit.
"""

from __future__ import annotations

import abc
import collections
from typing import TYPE_CHECKING, Any, Iterable, TypeVar

if TYPE_CHECKING:
    from dundergrad import autograd

HookType = TypeVar("HookType", bound="Callback")


class Callback(abc.ABC): ...


class OnTensorInitCallBack(Callback, abc.ABC):
    def on_tensor_creation(self, tensor: autograd.AutoDiffable) -> None: ...


class OnBackwardCallBack(Callback, abc.ABC):
    def on_backward_step(self, tensor: autograd.AutoDiffable) -> None: ...


HOOKS: tuple[type[Callback], ...] = (OnTensorInitCallBack, OnBackwardCallBack)


class CallbackStack:
    """Installed callbacks per hook, most recently installed first"""

    def __init__(self, callbacks: Iterable[Callback | Any] = ()) -> None:
        self._by_hook = {hook: collections.deque[Callback]() for hook in HOOKS}
        self.insert_callbacks(*callbacks)

    def __getitem__(self, hook: type[HookType]) -> collections.deque[HookType]:
        return self._by_hook[hook]  # type: ignore

    def _hooks_of(self, callback: Any) -> Iterable[collections.deque[Callback]]:
        return (stack for hook, stack in self._by_hook.items() if isinstance(callback, hook))

    def insert_callbacks(self, *callbacks: Callback | Any) -> None:
        for callback in callbacks:
            for stack in self._hooks_of(callback):
                stack.appendleft(callback)

    def drop_callbacks(self, *callbacks: Callback | Any) -> None:
        for callback in callbacks:
            for stack in self._hooks_of(callback):
                stack.remove(callback)
