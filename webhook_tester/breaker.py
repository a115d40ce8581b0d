"""Subscription to operating-system signals with cancellation support."""

from __future__ import annotations

import signal
import threading
from typing import Any, Callable


class OSSignals:
    """Calls a callback once, on the first of the subscribed signals.

    ``done`` plays the role of a cancellation token: once it is set, incoming
    signals are swallowed without calling the callback.
    """

    def __init__(self, done: threading.Event | None = None) -> None:
        self._done = done if done is not None else threading.Event()
        self._previous: dict[signal.Signals, Any] = {}
        self._fired = False

    def subscribe(self, on_signal: Callable[[signal.Signals], None], *args: signal.Signals) -> None:
        """Listen for the given signals (SIGINT and SIGTERM by default)."""
        signals = list(dict.fromkeys(args or (signal.SIGINT, signal.SIGTERM)))

        def handler(signum: int, _frame: Any) -> None:
            if self._fired or self._done.is_set():
                return
            self._fired = True
            on_signal(signal.Signals(signum))

        for sig in signals:
            previous = signal.signal(sig, handler)
            self._previous.setdefault(sig, previous)

    def stop(self) -> None:
        """Stop listening and restore the previous signal handlers."""
        self._fired = True
        for sig, previous in self._previous.items():
            signal.signal(sig, previous if previous is not None else signal.SIG_DFL)
        self._previous.clear()

    def __enter__(self) -> OSSignals:
        return self

    def __exit__(self, *exc: object) -> None:
        self.stop()