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

"""Interactive read-eval-print loop for termchat."""

import logging
import sys
from typing import Callable, Optional, TextIO

from ..core.cancel import CancelToken, InterruptBridge
from ..core.commands import AppState, handle_command, set_system_or_template
from ..core.lexer import BlockCaptured, Command, MultilineLexer, PromptReady
from ..core.session import Message
from ..core.stream import run_turn, terminal_width

logger = logging.getLogger(__name__)


class Repl:
    """Reads lines, dispatches commands and runs generation turns."""

    def __init__(
        self,
        state: AppState,
        reader,
        client,
        out: Optional[TextIO] = None,
        err: Optional[TextIO] = None,
        width: Optional[Callable[[], Optional[int]]] = None,
    ):
        """Initialize the loop.

        Args:
            state: Application state (session and model-management client)
            reader: Line source exposing read_line(continuing) -> InputLine
            client: Generation client exposing chat(token, request, on_event)
            out: Stream for replies and command output (default: stdout)
            err: Stream for usage and timing output (default: stderr)
            width: Returns the current terminal width, or None if unknown
        """
        self.state = state
        self.reader = reader
        self.client = client
        self.out = out or sys.stdout
        self.err = err or sys.stderr
        self.width = width or (lambda: terminal_width(self.out))
        self.lexer = MultilineLexer()

    def _print(self, text: str, stream: Optional[TextIO] = None):
        stream = stream or self.out
        stream.write(text if text.endswith("\n") else text + "\n")
        stream.flush()

    def run(self) -> None:
        """Run until /bye, /exit or end of input.

        Errors from the backend end the session and propagate to the caller.
        """
        logger.info("Interactive session started: model=%s", self.state.session.model)
        while True:
            try:
                line = self.reader.read_line(self.lexer.continuing)
            except EOFError:
                self._print("")
                break
            except KeyboardInterrupt:
                if not self.lexer.continuing:
                    self._print("\nUse Ctrl-D or /bye to exit.")
                self._reset_input()
                continue

            event = self.lexer.feed(line.text, line.pasting)

            if isinstance(event, Command):
                result = handle_command(event, self.state)
                if result.message:
                    to_err = result.is_error or result.is_usage
                    self._print(result.message, self.err if to_err else self.out)
                if result.should_exit:
                    break

            elif isinstance(event, BlockCaptured):
                result = set_system_or_template(self.state.session, event.target, event.text)
                self._print(result.message)

            elif isinstance(event, PromptReady):
                self.send(event.text)

        logger.info("Interactive session ended")

    def _reset_input(self):
        self.lexer.reset()
        discard = getattr(self.reader, "discard_pending", None)
        if discard is not None:
            discard()

    def send(self, text: str) -> Optional[Message]:
        """Run one turn for a completed prompt.

        The user message is committed before the turn; the assistant reply is
        appended only when the turn completes.
        """
        session = self.state.session
        session.commit_system()
        session.add_message('user', text)

        token = CancelToken()
        with InterruptBridge(token):
            reply = run_turn(session, self.client, out=self.out, token=token, width=self.width(), err=self.err)

        if reply is not None:
            session.add_message(reply.role, reply.content)
        return reply
