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

"""Slash-command handling for termchat."""

import logging
from dataclasses import dataclass
from typing import Optional

from .formatting import format_table, human_bytes, human_time
from .lexer import Command
from .parameters import COMMON_PARAMETERS, format_params, format_value
from .session import Session

logger = logging.getLogger(__name__)


# Top-level commands, in the order help lists them
COMMAND_REGISTRY = {
    "set": {
        "usage": "/set",
        "description": "Set session variables",
    },
    "show": {
        "usage": "/show",
        "description": "Show model information",
    },
    "list": {
        "usage": "/list [prefix]",
        "description": "List available models",
    },
    "bye": {
        "usage": "/bye",
        "description": "Exit",
    },
    "help": {
        "usage": "/?, /help",
        "description": "Help for a command",
    },
}

ALIASES = {"?": "help", "exit": "bye"}

SET_USAGE = [
    ("/set parameter ...", "Set a parameter"),
    ("/set system <string>", "Set system message"),
    ("/set template <string>", "Set prompt template"),
    ("/set history", "Enable history"),
    ("/set nohistory", "Disable history"),
    ("/set wordwrap", "Enable wordwrap"),
    ("/set nowordwrap", "Disable wordwrap"),
    ("/set format json", "Enable JSON mode"),
    ("/set noformat", "Disable formatting"),
    ("/set verbose", "Show LLM stats"),
    ("/set quiet", "Disable LLM stats"),
]

SHOW_USAGE = [
    ("/show license", "Show model license"),
    ("/show modelfile", "Show Modelfile for this model"),
    ("/show parameters", "Show parameters for this model"),
    ("/show system", "Show system message"),
    ("/show template", "Show prompt template"),
]

# /set toggles: sub-command -> (Session field, value, confirmation)
SET_TOGGLES = {
    "history": ("history", True, "Enabled history."),
    "nohistory": ("history", False, "Disabled history."),
    "wordwrap": ("word_wrap", True, "Set 'wordwrap' mode."),
    "nowordwrap": ("word_wrap", False, "Set 'nowordwrap' mode."),
    "verbose": ("verbose", True, "Set 'verbose' mode."),
    "quiet": ("verbose", False, "Set 'quiet' mode."),
    "noformat": ("format", "", "Disabled format."),
}

SUPPORTED_FORMATS = ("json",)

# /show sub-command -> text printed when the model has nothing to show
SHOW_FIELDS = {
    "license": "No license was specified for this model.",
    "modelfile": "No modelfile was specified for this model.",
    "parameters": "No parameters were specified for this model.",
    "system": "No system message was specified for this model.",
    "template": "No prompt template was specified for this model.",
}


@dataclass
class AppState:
    """State shared by the REPL and the command handlers."""
    session: Session
    client: object  # model-management client: list_models(), show(name)


@dataclass
class CommandResult:
    """Result of a command execution."""
    message: Optional[str] = None
    should_exit: bool = False
    is_error: bool = False  # malformed command or invalid value; nothing changed
    is_usage: bool = False  # help text, printed on stderr like other usage output


def _usage(title: str, rows: list[tuple[str, str]], footer: Optional[str] = None) -> str:
    width = max(len(usage) for usage, _ in rows)
    lines = [title]
    for usage, description in rows:
        lines.append(f"  {usage:<{width}}   {description}")
    if footer:
        lines.append("")
        lines.append(footer)
    return "\n".join(lines) + "\n"


def format_help_all() -> str:
    rows = [(info["usage"], info["description"]) for info in COMMAND_REGISTRY.values()]
    return _usage("Available Commands:", rows, 'Use """ to begin a multi-line message.')


def format_help_set() -> str:
    return _usage("Available Commands:", SET_USAGE)


def format_help_show() -> str:
    return _usage("Available Commands:", SHOW_USAGE)


def format_help_parameters() -> str:
    rows = [(f"/set parameter {usage}", description) for usage, description in COMMON_PARAMETERS]
    return _usage("Available Parameters:", rows)


def _unknown(line: str) -> CommandResult:
    return CommandResult(message=f"Unknown command '{line}'. Type /? for help", is_error=True)


def handle_help(args: tuple[str, ...]) -> CommandResult:
    topic = args[0].lstrip('/') if args else ""
    if topic == "set":
        return CommandResult(message=format_help_set(), is_usage=True)
    if topic == "show":
        return CommandResult(message=format_help_show(), is_usage=True)
    if topic in ("parameter", "parameters"):
        return CommandResult(message=format_help_parameters(), is_usage=True)
    return CommandResult(message=format_help_all(), is_usage=True)


def set_parameter(session: Session, name: str, values: list[str]) -> CommandResult:
    """Validate and store one generation option; options are untouched on error."""
    try:
        coerced = format_params({name: values})
    except ValueError as e:
        return CommandResult(message=f"Couldn't set parameter: {e}", is_error=True)

    session.options[name] = coerced[name]
    logger.info(f"Parameter set: {name}={coerced[name]!r}")
    return CommandResult(message=f"Set parameter '{name}' to '{', '.join(values)}'")


def set_system_or_template(session: Session, target: str, text: str) -> CommandResult:
    if target == "system":
        session.system = text
        return CommandResult(message="Set system message.")
    session.template = text
    return CommandResult(message="Set prompt template.")


def handle_set(args: tuple[str, ...], state: AppState) -> CommandResult:
    session = state.session
    if not args:
        return CommandResult(message=format_help_set(), is_usage=True)

    sub = args[0]
    if sub in SET_TOGGLES:
        field_name, value, message = SET_TOGGLES[sub]
        setattr(session, field_name, value)
        return CommandResult(message=message)

    if sub == "format":
        if len(args) < 2 or args[1] not in SUPPORTED_FORMATS:
            return CommandResult(
                message="Invalid or missing format. For 'json' mode use '/set format json'",
                is_error=True,
            )
        session.format = args[1]
        return CommandResult(message=f"Set format to '{args[1]}' mode.")

    if sub == "parameter":
        if len(args) < 3:
            return CommandResult(message=format_help_parameters(), is_error=True)
        return set_parameter(session, args[1], list(args[2:]))

    if sub in ("system", "template"):
        if len(args) < 2:
            return CommandResult(message=format_help_set(), is_error=True)
        return set_system_or_template(session, sub, " ".join(args[1:]))

    return _unknown(f"/set {sub}")


def _show_parameters(session: Session, model_parameters: str) -> str:
    lines = []
    if session.options:
        lines.append("User defined parameters:")
        for name, value in session.options.items():
            lines.append(f"{name}: {format_value(value)}")
        lines.append("")
    if model_parameters:
        lines.append("Model defined parameters:")
        lines.append(model_parameters)
    else:
        lines.append(SHOW_FIELDS["parameters"])
    return "\n".join(lines) + "\n"


def handle_show(args: tuple[str, ...], state: AppState) -> CommandResult:
    if not args:
        return CommandResult(message=format_help_show(), is_usage=True)

    sub = args[0]
    if sub not in SHOW_FIELDS:
        return _unknown(f"/show {sub}")

    session = state.session
    info = state.client.show(session.model)

    if sub == "parameters":
        return CommandResult(message=_show_parameters(session, info.parameters))

    # Session-level overrides win over what the model ships with
    value = getattr(info, sub)
    if sub == "system" and session.system:
        value = session.system
    elif sub == "template" and session.template:
        value = session.template

    if not value:
        return CommandResult(message=SHOW_FIELDS[sub] + "\n")
    return CommandResult(message=value.rstrip("\n") + "\n")


def list_models(client, prefix: str = "") -> str:
    """Render the models whose name starts with prefix as a table."""
    rows = []
    for model in client.list_models():
        if prefix and not model.name.startswith(prefix):
            continue
        rows.append([
            model.name,
            model.digest[:12],
            human_bytes(model.size),
            human_time(model.modified_at, "Never"),
        ])
    return format_table(["NAME", "ID", "SIZE", "MODIFIED"], rows)


def handle_command(command: Command, state: AppState) -> CommandResult:
    """Execute a slash-command.

    User mistakes come back as a CommandResult with is_error set and leave
    the session untouched. Errors talking to the backend propagate.

    Args:
        command: Command classified by the lexer
        state: Application state

    Returns:
        CommandResult with execution result
    """
    name = ALIASES.get(command.name, command.name)
    logger.debug(f"Command: /{command.name} {' '.join(command.args)}")

    if name == "bye":
        if command.args:
            return _unknown(f"/{command.name} {' '.join(command.args)}")
        return CommandResult(should_exit=True)

    elif name == "help":
        return handle_help(command.args)

    elif name == "set":
        return handle_set(command.args, state)

    elif name == "show":
        return handle_show(command.args, state)

    elif name == "list":
        prefix = command.args[0] if command.args else ""
        return CommandResult(message=list_models(state.client, prefix))

    return _unknown(f"/{command.name}")
