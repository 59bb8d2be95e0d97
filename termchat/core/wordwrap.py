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

"""Word wrapping for streamed text.

Fragments arrive with arbitrary boundaries, so wrapping is decided one
character at a time. When a word would overflow the line it has already
been printed, so it is erased with a cursor move and reprinted on the next
line.
"""

from dataclasses import dataclass

# Columns kept free at the right edge of the terminal
MARGIN = 5

CURSOR_BACK = "\x1b[{}D"
CLEAR_TO_EOL = "\x1b[K"


@dataclass(frozen=True)
class WrapState:
    """Column accounting carried across the fragments of one turn."""
    line_length: int = 0
    word: str = ""


def line_limit(width: int) -> int:
    return width - MARGIN


def _advance(line_length: int, word: str, ch: str) -> tuple[int, str]:
    if ch == '\n':
        return 0, ""
    if ch == ' ':
        return line_length, ""
    return line_length, word + ch


def wrap(state: WrapState, text: str, width: int) -> tuple[WrapState, str]:
    """Wrap a fragment of streamed text.

    Args:
        state: Accounting left by the previous fragment
        text: The new fragment
        width: Terminal width in columns

    Returns:
        (new_state, output) where output is the text to write, including
        the cursor-control sequences for words moved to the next line
    """
    limit = line_limit(width)
    line_length, word = state.line_length, state.word
    out = []

    for ch in text:
        if ch != '\n' and line_length + 1 > limit:
            if word and len(word) + 1 <= limit:
                out.append(CURSOR_BACK.format(len(word)) + CLEAR_TO_EOL + "\n" + word + ch)
                line_length = len(word) + 1
            else:
                # The word cannot fit on a line of its own; break it here
                out.append("\n" + ch)
                line_length = 1
                word = ""
        else:
            out.append(ch)
            line_length += 1
        line_length, word = _advance(line_length, word, ch)

    return WrapState(line_length, word), "".join(out)
