"""同步监听器注册表。

订阅返回一个 disposer，调用即可取消订阅；通知按订阅顺序同步执行。
"""

from typing import Callable, Dict, Generic, TypeVar
from uuid import uuid4


T = TypeVar("T")
Listener = Callable[[T], None]


class ListenerRegistry(Generic[T]):
    """handle -> callback 的有序映射。"""

    def __init__(self) -> None:
        self._listeners: Dict[str, Listener] = {}

    def __len__(self) -> int:
        return len(self._listeners)

    def add(self, listener: Listener) -> Callable[[], None]:
        handle = uuid4().hex
        self._listeners[handle] = listener

        def dispose() -> None:
            self._listeners.pop(handle, None)

        return dispose

    def remove(self, listener: Listener) -> None:
        """移除所有注册为该函数的订阅。"""

        for handle in [h for h, cb in self._listeners.items() if cb == listener]:
            del self._listeners[handle]

    def notify(self, value: T) -> None:
        # 复制一份，允许回调在执行过程中取消自身订阅
        for listener in list(self._listeners.values()):
            listener(value)
