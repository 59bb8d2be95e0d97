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

"""Line classification for the interactive prompt.

Each physical input line is fed through transition(), a pure function of
(state, line) that returns the next state and exactly one event. The REPL
keeps the current state in a MultilineLexer and acts on the events.
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Union

DELIMITER = '"""'


class Mode(Enum):
    """What the lexer is currently accumulating."""
    IDLE = auto()
    PROMPT = auto()
    SYSTEM = auto()
    TEMPLATE = auto()


@dataclass(frozen=True)
class LexerState:
    mode: Mode = Mode.IDLE
    buffer: str = ""


INITIAL_STATE = LexerState()


@dataclass(frozen=True)
class Command:
    """A slash-command; name excludes the leading slash."""
    name: str
    args: tuple[str, ...] = ()
    line: str = ""


@dataclass(frozen=True)
class PromptReady:
    text: str


@dataclass(frozen=True)
class PromptContinuing:
    pass


@dataclass(frozen=True)
class Ignore:
    pass


@dataclass(frozen=True)
class BlockCaptured:
    """A /set system or /set template block has been read in full."""
    target: str  # "system" or "template"
    text: str


Event = Union[Command, PromptReady, PromptContinuing, Ignore, BlockCaptured]

_BLOCK_MODES = {'system': Mode.SYSTEM, 'template': Mode.TEMPLATE}
_BLOCK_TARGETS = {Mode.SYSTEM: 'system', Mode.TEMPLATE: 'template'}


def _append(buffer: str, line: str) -> str:
    return f"{buffer}\n{line}" if buffer else line


def _strip_opening(text: str) -> str:
    text = text[len(DELIMITER):] if text.startswith(DELIMITER) else text
    # A bare opener line contributes no text of its own
    if text.startswith('\n'):
        text = text[1:]
    return text


def _ready(text: str) -> Event:
    return PromptReady(text) if text else Ignore()


def _parse_command(line: str) -> Command:
    fields = line.split()
    return Command(name=fields[0][1:], args=tuple(fields[1:]), line=line)


def _open_block(command: Command) -> tuple[LexerState, Event] | None:
    """Handle `/set system \"\"\"...` and `/set template \"\"\"...`.

    Returns None when the command is not a block opener.
    """
    if command.name != 'set' or len(command.args) < 2:
        return None
    target = command.args[0]
    if target not in _BLOCK_MODES or not command.args[1].startswith(DELIMITER):
        return None

    text = " ".join(command.args[1:])[len(DELIMITER):]
    if text.endswith(DELIMITER):
        return INITIAL_STATE, BlockCaptured(target, text[:-len(DELIMITER)])
    return LexerState(_BLOCK_MODES[target], DELIMITER + text), PromptContinuing()


def transition(state: LexerState, line: str, pasting: bool = False) -> tuple[LexerState, Event]:
    """Classify one input line.

    Args:
        state: Current lexer state
        line: One physical line, without its trailing newline
        pasting: Whether the terminal reports an active bracketed paste

    Returns:
        (new_state, event)
    """
    # Pasted text never counts as a command or delimiter
    if pasting:
        return LexerState(state.mode, _append(state.buffer, line)), PromptContinuing()

    if state.buffer.startswith(DELIMITER):
        closed = line.endswith(DELIMITER)
        if closed:
            line = line[:-len(DELIMITER)]
        buffer = _append(state.buffer, line) if line or not closed else state.buffer
        if not closed:
            return LexerState(state.mode, buffer), PromptContinuing()

        text = _strip_opening(buffer)
        if state.mode in _BLOCK_TARGETS:
            return INITIAL_STATE, BlockCaptured(_BLOCK_TARGETS[state.mode], text)
        return INITIAL_STATE, _ready(text)

    if state.mode is Mode.IDLE and not state.buffer:
        if line.startswith(DELIMITER):
            rest = line[len(DELIMITER):]
            if rest.endswith(DELIMITER):
                return INITIAL_STATE, _ready(rest[:-len(DELIMITER)])
            return LexerState(Mode.PROMPT, line), PromptContinuing()

        if line.startswith('/'):
            command = _parse_command(line)
            opened = _open_block(command)
            if opened is not None:
                return opened
            return state, command

        if not line.strip():
            return state, Ignore()

    buffer = _append(state.buffer, line)
    if state.mode is Mode.IDLE:
        return INITIAL_STATE, _ready(buffer)
    return LexerState(state.mode, buffer), PromptContinuing()


class MultilineLexer:
    """Holds the lexer state between lines for the REPL."""

    def __init__(self):
        self.state = INITIAL_STATE

    @property
    def continuing(self) -> bool:
        """True while a multi-line block or paste is still being read."""
        return bool(self.state.buffer) or self.state.mode is not Mode.IDLE

    def feed(self, line: str, pasting: bool = False) -> Event:
        self.state, event = transition(self.state, line, pasting)
        return event

    def reset(self):
        self.state = INITIAL_STATE
