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

"""Session state for an interactive termchat run."""

from dataclasses import dataclass, field
from typing import Any

ROLES = ('system', 'user', 'assistant')


@dataclass(frozen=True)
class Message:
    """A single message in the conversation."""
    role: str  # "system", "user", or "assistant"
    content: str

    def to_dict(self) -> dict:
        return {'role': self.role, 'content': self.content}


@dataclass
class ChatRequest:
    """Everything needed to issue one generation turn."""
    model: str
    messages: list[Message] = field(default_factory=list)
    format: str = ""
    template: str = ""
    options: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict:
        """Build the JSON body for the chat endpoint.

        Empty format/template/options are left out so the backend falls
        back to the model's own defaults.
        """
        payload = {
            'model': self.model,
            'messages': [m.to_dict() for m in self.messages],
            'stream': True,
        }
        if self.format:
            payload['format'] = self.format
        if self.template:
            payload['template'] = self.template
        if self.options:
            payload['options'] = dict(self.options)
        return payload


@dataclass
class Session:
    """Mutable record of model, history and options for one session.

    Owned by the REPL loop; the response consumer only ever sees the
    snapshot returned by request().
    """
    model: str
    messages: list[Message] = field(default_factory=list)
    word_wrap: bool = True
    format: str = ""  # response format hint, "" = none
    template: str = ""  # prompt template override, "" = model default
    system: str = ""  # system prompt override, "" = model default
    options: dict[str, Any] = field(default_factory=dict)
    verbose: bool = False
    history: bool = True

    def add_message(self, role: str, content: str) -> Message:
        if role not in ROLES:
            raise ValueError(f"Invalid message role: {role}")
        message = Message(role=role, content=content)
        self.messages.append(message)
        return message

    def last_system_message(self) -> Message | None:
        for msg in reversed(self.messages):
            if msg.role == 'system':
                return msg
        return None

    def commit_system(self) -> bool:
        """Append the system prompt if it changed since it was last sent.

        Returns:
            True if a system message was appended
        """
        if not self.system:
            return False
        last = self.last_system_message()
        if last is not None and last.content == self.system:
            return False
        self.add_message('system', self.system)
        return True

    def request(self) -> ChatRequest:
        """Snapshot the session into a request for a single turn."""
        return ChatRequest(
            model=self.model,
            messages=list(self.messages),
            format=self.format,
            template=self.template,
            options=dict(self.options),
        )
