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

"""Consuming a streamed chat response and rendering it to the terminal."""

import logging
import shutil
import sys
import uuid
from dataclasses import dataclass, field
from typing import Optional, TextIO

from .cancel import CancelToken, RequestCancelled
from .ollama_client import ChatResponse
from .session import Message, Session
from .wordwrap import WrapState, line_limit, wrap

logger = logging.getLogger(__name__)


def terminal_width(stream: TextIO) -> Optional[int]:
    """Width of the terminal behind stream, or None if there isn't one."""
    try:
        if not stream.isatty():
            return None
    except (AttributeError, ValueError):
        return None
    columns = shutil.get_terminal_size(fallback=(0, 0)).columns
    return columns if columns > 0 else None


@dataclass
class TurnAccumulator:
    """Everything that is remembered while one turn is streaming."""
    turn_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    full_text: list[str] = field(default_factory=list)
    role: str = "assistant"
    latest: Optional[ChatResponse] = None
    wrap: WrapState = field(default_factory=WrapState)

    @property
    def text(self) -> str:
        return "".join(self.full_text)


class StreamConsumer:
    """Renders the events of one turn as they arrive."""

    def __init__(self, out: TextIO, width: Optional[int] = None):
        """
        Args:
            out: Where response text is written
            width: Terminal width for word wrapping (None disables wrapping)
        """
        self.out = out
        self.width = width if width and line_limit(width) > 0 else None
        self.turn = TurnAccumulator()

    def on_event(self, event: ChatResponse):
        turn = self.turn
        turn.latest = event
        if event.message is None:
            # warm-up or bare done event
            return

        turn.role = event.message.role
        content = event.message.content
        if not content:
            return
        turn.full_text.append(content)

        if self.width is not None:
            turn.wrap, rendered = wrap(turn.wrap, content, self.width)
        else:
            rendered = content
        self.out.write(rendered)
        self.out.flush()


def run_turn(
    session: Session,
    client,
    out: Optional[TextIO] = None,
    token: Optional[CancelToken] = None,
    width: Optional[int] = None,
    err: Optional[TextIO] = None,
) -> Optional[Message]:
    """Issue one generation turn and render the reply as it streams.

    Args:
        session: Session to build the request from (not modified)
        client: Generation client exposing chat(token, request, on_event)
        out: Output stream for the reply (default: stdout)
        token: Cancellation token for this turn; a fresh one if omitted
        width: Terminal width; wrapping is off when None or when the
            session has word wrap disabled
        err: Stream for the verbose timing summary (default: stderr)

    Returns:
        The assistant message, or None if the turn was cancelled

    Raises:
        Any transport or backend error from the client
    """
    out = out or sys.stdout
    err = err or sys.stderr
    token = token or CancelToken()
    request = session.request()

    consumer = StreamConsumer(out, width if session.word_wrap else None)
    turn = consumer.turn
    logger.info(
        "Turn %s started: model=%s messages=%d wrap=%s",
        turn.turn_id, request.model, len(request.messages), consumer.width,
    )

    try:
        client.chat(token, request, consumer.on_event)
    except RequestCancelled:
        logger.info("Turn %s cancelled after %d chars", turn.turn_id, len(turn.text))
        if turn.full_text:
            out.write("\n\n")
            out.flush()
        return None
    except Exception as e:
        logger.error(f"Turn {turn.turn_id} failed: {e}")
        raise

    if request.messages:
        out.write("\n\n")
        out.flush()

    if turn.latest is None or not turn.latest.done:
        return None

    if session.verbose:
        summary = turn.latest.summary()
        if summary:
            err.write(summary + "\n")
            err.flush()

    logger.info("Turn %s complete: %d chars", turn.turn_id, len(turn.text))
    return Message(role=turn.role, content=turn.text)


def load_model(session: Session, client, token: Optional[CancelToken] = None) -> None:
    """Ask the backend to load the session's model before the first prompt."""
    warmup = Session(model=session.model, word_wrap=False)
    run_turn(warmup, client, token=token)
