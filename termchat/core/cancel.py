# Copyright 2024 termchat contributors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Cancellation of an in-flight generation turn."""

import logging
import signal
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class RequestCancelled(Exception):
    """Raised by the transport when the turn's token was cancelled."""


class CancelToken:
    """One-shot cancellation flag shared by a turn and its interrupt listener."""

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> bool:
        """Cancel the token.

        Returns:
            True if this call cancelled it, False if it was already cancelled
        """
        with self._lock:
            if self._event.is_set():
                return False
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []

        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.debug(f"Cancel callback raised: {e}")
        return True

    def add_callback(self, callback: Callable[[], None]):
        """Run callback once on cancellation (immediately if already cancelled)."""
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)


class InterruptBridge:
    """Turns an interactive interrupt into cancellation of one token.

    Armed for the duration of a single turn:

        with InterruptBridge(token):
            run_turn(...)

    The previous handler is restored on exit, so interrupts are never
    queued or carried over into the next turn.
    """

    def __init__(self, token: CancelToken, signum: int = signal.SIGINT):
        self.token = token
        self.signum = signum
        self._previous = None
        self._armed = False

    def _handle(self, signum, frame):
        if self.token.cancel():
            logger.info("Interrupt received, cancelling turn")

    def __enter__(self) -> CancelToken:
        # Signal handlers can only be installed from the main thread
        if threading.current_thread() is threading.main_thread():
            self._previous = signal.signal(self.signum, self._handle)
            self._armed = True
        else:
            logger.debug("Not in main thread; interrupt bridge not armed")
        return self.token

    def __exit__(self, exc_type, exc, tb):
        if self._armed:
            previous = self._previous if self._previous is not None else signal.SIG_DFL
            signal.signal(self.signum, previous)
            self._armed = False
        return False
