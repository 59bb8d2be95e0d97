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

"""Generation parameters accepted by /set parameter."""

from typing import Any

# Backend option names and the type each expects
PARAMETER_TYPES: dict[str, type] = {
    # Runtime
    'numa': bool,
    'num_ctx': int,
    'num_batch': int,
    'num_gqa': int,
    'num_gpu': int,
    'main_gpu': int,
    'low_vram': bool,
    'f16_kv': bool,
    'logits_all': bool,
    'vocab_only': bool,
    'use_mmap': bool,
    'use_mlock': bool,
    'embedding_only': bool,
    'rope_frequency_base': float,
    'rope_frequency_scale': float,
    'num_thread': int,
    # Sampling
    'num_keep': int,
    'seed': int,
    'num_predict': int,
    'top_k': int,
    'top_p': float,
    'tfs_z': float,
    'typical_p': float,
    'repeat_last_n': int,
    'temperature': float,
    'repeat_penalty': float,
    'presence_penalty': float,
    'frequency_penalty': float,
    'mirostat': int,
    'mirostat_tau': float,
    'mirostat_eta': float,
    'penalize_newline': bool,
    'stop': list,
}

# Shown by /set parameter with no arguments
COMMON_PARAMETERS = [
    ("seed <int>", "Random number seed"),
    ("num_predict <int>", "Max number of tokens to predict"),
    ("top_k <int>", "Pick from top k num of tokens"),
    ("top_p <float>", "Pick token based on sum of probabilities"),
    ("num_ctx <int>", "Set the context size"),
    ("temperature <float>", "Set creativity level"),
    ("repeat_penalty <float>", "How strongly to penalize repetitions"),
    ("repeat_last_n <int>", "Set how far back to look for repetitions"),
    ("num_gpu <int>", "The number of layers to send to the GPU"),
    ('stop "<string>", ...', "Set the stop parameters"),
]

_TRUE = {'1', 't', 'true', 'yes', 'on'}
_FALSE = {'0', 'f', 'false', 'no', 'off'}


def _parse_bool(value: str) -> bool:
    lowered = value.lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValueError(value)


def _unquote(value: str) -> str:
    value = value.rstrip(',')
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
        return value[1:-1]
    return value


def coerce_parameter(name: str, values: list[str]) -> Any:
    """Convert the raw values of one parameter to its expected type.

    Args:
        name: Parameter name
        values: Whitespace-separated values as typed by the user

    Returns:
        The coerced value

    Raises:
        ValueError: If the parameter is unknown or a value doesn't convert
    """
    expected = PARAMETER_TYPES.get(name)
    if expected is None:
        raise ValueError(f"unknown parameter '{name}'")
    if not values:
        raise ValueError(f"missing value for parameter '{name}'")

    if expected is list:
        return [_unquote(v) for v in values]

    if len(values) > 1:
        raise ValueError(f"parameter '{name}' takes a single value, got {len(values)}")

    raw = values[0]
    try:
        if expected is bool:
            return _parse_bool(raw)
        if expected is int:
            return int(raw)
        return float(raw)
    except ValueError:
        raise ValueError(f"invalid {expected.__name__} value '{raw}' for parameter '{name}'")


def format_params(params: dict[str, list[str]]) -> dict[str, Any]:
    """Coerce a mapping of parameter name -> raw values.

    Either every parameter converts or ValueError is raised and nothing
    is returned.
    """
    return {name: coerce_parameter(name, values) for name, values in params.items()}


def format_value(value: Any) -> str:
    """Render a parameter value the way /show parameters prints it."""
    if isinstance(value, list):
        return ", ".join(str(v) for v in value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
