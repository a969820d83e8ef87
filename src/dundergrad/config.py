"""
# Global configuration for the dundergrad package.

User can modify this configuration in 2 ways:

## Permanent change
```python
from dundergrad import config
config.Configuration(reset_gradients=True)
```

## Temporary change
```python
from dundergrad import config
with config.Configuration(engine=engine):
    ...
```

Keys:
    engine:             `runtime.Engine` executing the low level ops
    reset_gradients:    clear gradients of the whole graph at the start of each `backward()`
"""

from __future__ import annotations

import collections
from typing import TYPE_CHECKING, Any, ClassVar, Type

from dundergrad import callbacks

if TYPE_CHECKING:
    from dundergrad import autograd, runtime


class _StackedConfigMeta(type):
    __singletons__: ClassVar[dict[Type, Any]] = {}
    __context_stack__: collections.ChainMap[str, Any]  # stack of contexts that hold all attrs
    __callback_stack__: callbacks.CallbackStack  # stack of callbacks
    __callback_frames__: list[tuple[callbacks.Callback, ...]]  # callbacks per context, same order as the maps

    def __call__(cls, *callback: callbacks.Callback, **config_dict: Any) -> type[Configuration]:
        assert not (kwargs := {k: v for k, v in config_dict.items() if v is None}), f"{kwargs=}"
        if cls not in cls.__singletons__:  # initialize:=set class vars for the first time
            cls.__context_stack__ = collections.ChainMap(config_dict)
            cls.__callback_stack__ = callbacks.CallbackStack(callback)
            cls.__callback_frames__ = [callback]
            cls.__singletons__[cls] = cls
        else:  # update the stacks with new contexts
            cls.__callback_stack__.insert_callbacks(*callback)
            cls.__context_stack__.maps.insert(0, config_dict)
            cls.__callback_frames__.insert(0, callback)
        return cls.__singletons__[cls]

    def __getattr__(cls, key: str) -> Any:
        if key.startswith("__") or cls not in cls.__singletons__:
            raise AttributeError(key)
        try:
            return cls.__context_stack__[key]
        except KeyError:
            raise AttributeError(f"{cls.__name__} has no setting {key!r}") from None

    def __enter__(cls) -> None: ...

    def __exit__(cls, *_: Any) -> None:
        cls.__context_stack__.maps.pop(0)
        cls.__callback_stack__.drop_callbacks(*cls.__callback_frames__.pop(0))


class Configuration(metaclass=_StackedConfigMeta):
    """Configuration for the dundergrad package."""

    engine: runtime.Engine
    reset_gradients: bool

    def __init__(
        self,
        *callback: callbacks.Callback,
        engine: runtime.Engine | None = None,
        reset_gradients: bool | None = None,
        **context: Any,
    ) -> None: ...

    @classmethod
    def on_tensor_creation(cls, tensor: autograd.AutoDiffable) -> None:
        for callback in cls.__callback_stack__[callbacks.OnTensorInitCallBack]:
            callback.on_tensor_creation(tensor)

    @classmethod
    def on_backward_step(cls, tensor: autograd.AutoDiffable) -> None:
        for callback in cls.__callback_stack__[callbacks.OnBackwardCallBack]:
            callback.on_backward_step(tensor)
