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

"""Ollama API client for termchat."""

import json
import logging
import queue
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

import requests

from .cancel import CancelToken, RequestCancelled
from .formatting import parse_timestamp
from .session import ChatRequest, Message

logger = logging.getLogger(__name__)

# How often the waiting thread re-checks the cancel token
POLL_INTERVAL = 0.1


class StatusError(RuntimeError):
    """The backend answered with an HTTP error status."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code


class ResponseError(RuntimeError):
    """The backend sent something that isn't a valid response."""


@dataclass
class Metrics:
    """Timing information carried by the final chat event (durations in ns)."""
    total_duration: int = 0
    load_duration: int = 0
    prompt_eval_count: int = 0
    prompt_eval_duration: int = 0
    eval_count: int = 0
    eval_duration: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> 'Metrics':
        return cls(**{name: int(data.get(name) or 0) for name in cls.__dataclass_fields__})

    def summary(self) -> str:
        lines = []
        if self.total_duration > 0:
            lines.append(f"total duration:       {_duration(self.total_duration)}")
        if self.load_duration > 0:
            lines.append(f"load duration:        {_duration(self.load_duration)}")
        if self.prompt_eval_count > 0:
            lines.append(f"prompt eval count:    {self.prompt_eval_count} token(s)")
        if self.prompt_eval_duration > 0:
            lines.append(f"prompt eval duration: {_duration(self.prompt_eval_duration)}")
            rate = self.prompt_eval_count / (self.prompt_eval_duration / 1e9)
            lines.append(f"prompt eval rate:     {rate:.2f} tokens/s")
        if self.eval_count > 0:
            lines.append(f"eval count:           {self.eval_count} token(s)")
        if self.eval_duration > 0:
            lines.append(f"eval duration:        {_duration(self.eval_duration)}")
            rate = self.eval_count / (self.eval_duration / 1e9)
            lines.append(f"eval rate:            {rate:.2f} tokens/s")
        return "\n".join(lines)


def _duration(nanoseconds: int) -> str:
    seconds = nanoseconds / 1e9
    if seconds >= 1:
        return f"{seconds:.6g}s"
    millis = nanoseconds / 1e6
    if millis >= 1:
        return f"{millis:.6g}ms"
    return f"{nanoseconds / 1e3:.6g}µs"


@dataclass
class ChatResponse:
    """One partial result of a chat request."""
    model: str = ""
    created_at: str = ""
    message: Optional[Message] = None  # None for warm-up events
    done: bool = False
    metrics: Metrics = field(default_factory=Metrics)

    @classmethod
    def from_dict(cls, data: dict) -> 'ChatResponse':
        if not isinstance(data, dict):
            raise ResponseError(f"Unexpected chat event: {data!r}")
        if data.get('error'):
            raise ResponseError(str(data['error']))

        message = None
        raw_message = data.get('message')
        if raw_message is not None:
            if not isinstance(raw_message, dict):
                raise ResponseError(f"Unexpected message in chat event: {raw_message!r}")
            message = Message(
                role=raw_message.get('role') or 'assistant',
                content=raw_message.get('content') or '',
            )

        return cls(
            model=data.get('model', ''),
            created_at=data.get('created_at', ''),
            message=message,
            done=bool(data.get('done', False)),
            metrics=Metrics.from_dict(data),
        )

    @classmethod
    def from_line(cls, line: str) -> 'ChatResponse':
        try:
            data = json.loads(line)
        except json.JSONDecodeError as e:
            raise ResponseError(f"Malformed chat event: {e}")
        return cls.from_dict(data)

    def summary(self) -> str:
        return self.metrics.summary()


@dataclass
class ModelInfo:
    """A locally available model as returned by the tags endpoint."""
    name: str
    digest: str = ""
    size: int = 0
    modified_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: dict) -> 'ModelInfo':
        return cls(
            name=data.get('name', ''),
            digest=data.get('digest', ''),
            size=int(data.get('size') or 0),
            modified_at=parse_timestamp(data.get('modified_at', '')),
        )


@dataclass
class ShowResponse:
    """Model metadata."""
    license: str = ""
    modelfile: str = ""
    parameters: str = ""
    system: str = ""
    template: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> 'ShowResponse':
        license_value = data.get('license') or ''
        if isinstance(license_value, list):
            license_value = "\n".join(license_value)
        return cls(
            license=license_value,
            modelfile=data.get('modelfile') or '',
            parameters=data.get('parameters') or '',
            system=data.get('system') or '',
            template=data.get('template') or '',
        )


_DONE = object()


class OllamaClient:
    """Client for the Ollama REST API."""

    def __init__(self, base_url: str, timeout: Optional[float] = None, session=None):
        """Initialize the client.

        Args:
            base_url: Backend base URL, e.g. http://127.0.0.1:11434
            timeout: Request timeout in seconds (None = no timeout)
            session: Optional requests.Session replacement (for tests)
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _request(self, method: str, path: str, payload: Optional[dict] = None, stream: bool = False):
        url = self._url(path)
        logger.debug("%s %s", method.upper(), url)
        response = None
        try:
            response = getattr(self.session, method)(url, json=payload, timeout=self.timeout, stream=stream)
            response.raise_for_status()
        except requests.exceptions.ConnectionError as e:
            logger.error(f"Connection error to Ollama API at {url}: {e}")
            raise ConnectionError(
                f"Failed to connect to Ollama API at {self.base_url}. "
                "Please check that Ollama is running (ollama serve)."
            )
        except requests.exceptions.Timeout as e:
            logger.error(f"Timeout error after {self.timeout} seconds: {e}")
            raise TimeoutError(
                f"Request to Ollama API timed out after {self.timeout} seconds."
            )
        except requests.exceptions.HTTPError as e:
            self._raise_http_error(e, response, url)
        return response

    def _raise_http_error(self, exc, response, url):
        """Raise StatusError carrying the backend's own error text."""
        status_code = getattr(response, 'status_code', 0)
        detail = ''
        try:
            body = response.json()
            if isinstance(body, dict):
                detail = str(body.get('error') or '')
        except Exception:
            detail = getattr(response, 'text', '') or ''

        logger.error(f"HTTP error from Ollama API at {url}: {exc} {detail}")

        message = detail or f"Ollama API returned an error: {exc}"
        raise StatusError(status_code, message)

    def heartbeat(self) -> None:
        """Check the backend is reachable; raises ConnectionError if not."""
        self._request('head', '/')

    def list_models(self) -> list[ModelInfo]:
        response = self._request('get', '/api/tags')
        data = response.json()
        return [ModelInfo.from_dict(m) for m in data.get('models') or []]

    def show(self, name: str) -> ShowResponse:
        response = self._request('post', '/api/show', {'name': name})
        return ShowResponse.from_dict(response.json())

    def chat(
        self,
        token: CancelToken,
        request: ChatRequest,
        on_event: Callable[[ChatResponse], None],
    ) -> None:
        """Stream a chat request.

        The HTTP exchange runs on a reader thread; events are handed to
        on_event on the calling thread, one at a time and in order. Returns
        once the final event (done=true) was delivered.

        Raises:
            RequestCancelled: If the token was cancelled before completion
            ConnectionError: If Ollama is not reachable
            TimeoutError: If the request times out
            StatusError: If the backend returned an HTTP error
            ResponseError: If the stream is malformed or ends early
        """
        payload = request.to_payload()
        logger.debug(
            "POST /api/chat model=%s messages=%s format=%r template=%s options=%s",
            request.model, len(request.messages), request.format,
            bool(request.template), request.options,
        )

        lines: queue.Queue = queue.Queue()
        holder = {}

        def close_response():
            response = holder.get('response')
            if response is not None:
                try:
                    response.close()
                except Exception as e:
                    logger.debug(f"Error closing response: {e}")

        def pump():
            try:
                response = self._request('post', '/api/chat', payload, stream=True)
                holder['response'] = response
                if token.cancelled:
                    close_response()
                    return
                for line in response.iter_lines(decode_unicode=True):
                    if token.cancelled:
                        break
                    if line:
                        lines.put(line)
            except Exception as e:
                lines.put(e)
            finally:
                lines.put(_DONE)

        token.add_callback(close_response)
        reader = threading.Thread(target=pump, name="chat-reader", daemon=True)
        reader.start()

        try:
            while True:
                if token.cancelled:
                    raise RequestCancelled()
                try:
                    item = lines.get(timeout=POLL_INTERVAL)
                except queue.Empty:
                    continue

                if token.cancelled:
                    raise RequestCancelled()
                if item is _DONE:
                    raise ResponseError("Stream ended before the response was complete")
                if isinstance(item, Exception):
                    if isinstance(item, requests.exceptions.RequestException):
                        raise ConnectionError(f"Lost connection to Ollama API: {item}")
                    raise item

                event = ChatResponse.from_line(item)
                on_event(event)
                if event.done:
                    return
        finally:
            close_response()
            reader.join(timeout=POLL_INTERVAL)
            if reader.is_alive():
                logger.debug("Chat reader still busy after the turn ended")
