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

"""Main entry point for termchat."""

import argparse
import logging
import sys
from typing import Optional

from .core.cancel import CancelToken, InterruptBridge
from .core.commands import AppState, SHOW_FIELDS, list_models
from .core.config import load_config, setup_logging
from .core.ollama_client import OllamaClient, StatusError
from .core.session import Session
from .core.stream import load_model, run_turn, terminal_width
from .ui.repl import Repl
from .ui.terminal import PromptReader

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="termchat: chat with a local language model from the terminal",
        prog="termchat"
    )
    subparsers = parser.add_subparsers(dest='command', metavar='COMMAND')
    subparsers.required = True

    run_parser = subparsers.add_parser('run', help='Run a model')
    run_parser.add_argument('model', metavar='MODEL')
    run_parser.add_argument('prompt', metavar='PROMPT', nargs='*')
    run_parser.add_argument(
        '--nowordwrap',
        action='store_true',
        help="Don't wrap words to the next line automatically"
    )
    run_parser.add_argument('--format', default='', help='Response format (e.g. json)')
    run_parser.add_argument('--verbose', action='store_true', help='Show timings for response')

    list_parser = subparsers.add_parser('list', aliases=['ls'], help='List models')
    list_parser.add_argument('prefix', metavar='PREFIX', nargs='?', default='')

    show_parser = subparsers.add_parser('show', help='Show information for a model')
    show_parser.add_argument('model', metavar='MODEL')
    for field_name in SHOW_FIELDS:
        show_parser.add_argument(
            f'--{field_name}',
            dest='show_fields',
            action='append_const',
            const=field_name,
            help=f'Show {field_name} of a model'
        )
    return parser


def parse_args(parser: argparse.ArgumentParser, argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse the command line, allowing prompt words after the run flags.

    `run MODEL --verbose why is the sky blue` leaves the words after the
    flag unparsed; they are appended to the prompt. Any other leftover is
    a usage error.
    """
    args, extra = parser.parse_known_args(argv)
    if extra:
        if args.command != 'run' or any(word.startswith('-') for word in extra):
            parser.error(f"unrecognized arguments: {' '.join(extra)}")
        args.prompt = list(args.prompt) + extra
    return args


def check_model(client: OllamaClient, model: str) -> None:
    """Fail early with a clear message if the model isn't available."""
    try:
        client.show(model)
    except StatusError as e:
        if e.status_code == 404:
            raise ValueError(f"model '{model}' not found, try pulling it first")
        raise


def run_command(args, client: OllamaClient, config, stdin=None, stdout=None, reader=None) -> int:
    """Run a model once for the given prompt, or start an interactive session."""
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout

    check_model(client, args.model)

    session = Session(
        model=args.model,
        word_wrap=config.word_wrap and not args.nowordwrap,
        format=args.format,
        verbose=args.verbose,
    )

    prompts = list(args.prompt)
    interactive = True
    if not stdin.isatty():
        # Piped input becomes the (first part of the) prompt
        prompts.insert(0, stdin.read())
        session.word_wrap = False
        interactive = False
    if prompts:
        interactive = False

    if not interactive:
        session.add_message('user', " ".join(prompts))
        token = CancelToken()
        with InterruptBridge(token):
            run_turn(session, client, out=stdout, token=token, width=terminal_width(stdout))
        return 0

    token = CancelToken()
    with InterruptBridge(token):
        load_model(session, client, token=token)

    state = AppState(session=session, client=client)
    if reader is None:
        reader = PromptReader(history_file=config.history_file, history_enabled=lambda: session.history)
    Repl(state, reader, client, out=stdout).run()
    return 0


def show_command(args, client: OllamaClient, stdout=None) -> int:
    stdout = stdout or sys.stdout
    fields = args.show_fields or []
    if len(fields) != 1:
        options = ", ".join(f"'--{name}'" for name in SHOW_FIELDS)
        if fields:
            raise ValueError(f"only one of {options} can be specified")
        raise ValueError(f"one of {options} must be specified")

    info = client.show(args.model)
    print(getattr(info, fields[0]), file=stdout)
    return 0


def main(argv: Optional[list[str]] = None):
    """Main entry point for the application."""
    parser = build_parser()
    args = parse_args(parser, argv)

    try:
        config = load_config()
        setup_logging(config)
        logger.info("=== termchat starting ===")
        logger.info(f"Configuration loaded: host={config.host}, timeout={config.timeout}")

        client = OllamaClient(config.host, timeout=config.timeout)
        client.heartbeat()

        if args.command == 'run':
            exit_code = run_command(args, client, config)
        elif args.command in ('list', 'ls'):
            print(list_models(client, args.prefix))
            exit_code = 0
        else:
            exit_code = show_command(args, client)
        sys.exit(exit_code)

    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        logger.error(f"Error: {e}")
        sys.exit(1)

    except (ConnectionError, TimeoutError, RuntimeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        logger.error(f"Backend error: {e}")
        sys.exit(1)

    except KeyboardInterrupt:
        print()
        logger.info("Application terminated by user (Ctrl+C)")
        sys.exit(0)


if __name__ == '__main__':
    main()
