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

"""Line input for the interactive session using prompt_toolkit."""

import logging
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.history import FileHistory
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.keys import Keys

if TYPE_CHECKING:
    from prompt_toolkit.input import Input
    from prompt_toolkit.output import Output

logger = logging.getLogger(__name__)

PROMPT = ">>> "
ALT_PROMPT = "... "
PLACEHOLDER = "Send a message (/? for help)"
ALT_PLACEHOLDER = 'Use """ to end multi-line input'


@dataclass(frozen=True)
class InputLine:
    """One physical line of input."""
    text: str
    pasting: bool = False  # line arrived inside a bracketed paste


def split_input(text: str, pasted: bool) -> list[InputLine]:
    """Split accepted input into physical lines.

    Every line of a paste except the last is marked as pasting; the last
    line is the one the user finished with Enter.
    """
    lines = text.replace('\r\n', '\n').replace('\r', '\n').split('\n')
    if not pasted:
        return [InputLine(line) for line in lines]
    return [InputLine(line, pasting=i < len(lines) - 1) for i, line in enumerate(lines)]


class ToggleHistory(FileHistory):
    """File-backed recall history that only records while enabled."""

    def __init__(self, filename: Path, enabled: Callable[[], bool]):
        filename.parent.mkdir(parents=True, exist_ok=True)
        super().__init__(str(filename))
        self._enabled = enabled

    def store_string(self, string: str) -> None:
        if self._enabled():
            super().store_string(string)


class PromptReader:
    """Reads lines from the terminal.

    Raises KeyboardInterrupt on Ctrl-C and EOFError on Ctrl-D, like
    PromptSession.prompt().
    """

    def __init__(
        self,
        history_file: Optional[Path] = None,
        history_enabled: Callable[[], bool] = lambda: True,
        input: 'Input | None' = None,
        output: 'Output | None' = None,
    ):
        self._pending: deque[InputLine] = deque()
        self._pasted = False

        kb = KeyBindings()

        @kb.add(Keys.BracketedPaste)
        def handle_paste(event):
            """Insert pasted text and remember that a paste happened."""
            self._pasted = True
            data = event.data.replace('\r\n', '\n').replace('\r', '\n')
            event.current_buffer.insert_text(data)

        history = ToggleHistory(history_file, history_enabled) if history_file else None
        session_kwargs = {'key_bindings': kb}
        if history is not None:
            session_kwargs['history'] = history
        if input is not None:
            session_kwargs['input'] = input
        if output is not None:
            session_kwargs['output'] = output
        self.session = PromptSession(**session_kwargs)

    def read_line(self, continuing: bool = False) -> InputLine:
        """Return the next physical line.

        Args:
            continuing: Show the alternate prompt for multi-line input
        """
        if self._pending:
            return self._pending.popleft()

        self._pasted = False
        placeholder = ALT_PLACEHOLDER if continuing else PLACEHOLDER
        text = self.session.prompt(
            ALT_PROMPT if continuing else PROMPT,
            placeholder=HTML('<style fg="ansibrightblack">{}</style>').format(placeholder),
        )
        if self._pasted:
            logger.debug("Received pasted input (%d chars)", len(text))
        self._pending.extend(split_input(text, self._pasted))
        return self._pending.popleft()

    def discard_pending(self):
        self._pending.clear()
