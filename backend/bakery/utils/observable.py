from typing import Callable, List


class Observable:
    """Minimal observer list: listeners get called with the payload after each change."""

    def __init__(self):
        self._listeners: List[Callable] = []

    def subscribe(self, listener: Callable) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, payload) -> None:
        for listener in list(self._listeners):
            listener(payload)
