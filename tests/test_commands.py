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

import copy
import unittest
from datetime import datetime, timezone

from termchat.core.commands import AppState, handle_command, list_models
from termchat.core.lexer import INITIAL_STATE, MultilineLexer
from termchat.core.ollama_client import ModelInfo, ShowResponse, StatusError
from termchat.core.session import Message, Session


class FakeModelClient:
    def __init__(self, info=None, models=None, error=None):
        self.info = info or ShowResponse()
        self.models = models or []
        self.error = error
        self.shown = []

    def show(self, name):
        self.shown.append(name)
        if self.error is not None:
            raise self.error
        return self.info

    def list_models(self):
        return self.models


class CommandTestCase(unittest.TestCase):
    def setUp(self):
        self.session = Session(model="llama3", messages=[Message("user", "hi"), Message("assistant", "hello")])
        self.client = FakeModelClient()
        self.state = AppState(session=self.session, client=self.client)
        self.lexer = MultilineLexer()

    def run_command(self, line):
        return handle_command(self.lexer.feed(line), self.state)


class ExitAndHelpTests(CommandTestCase):
    def test_bye_and_exit(self):
        self.assertTrue(self.run_command("/bye").should_exit)
        self.assertTrue(self.run_command("/exit").should_exit)

    def test_exit_with_arguments_is_unknown(self):
        for line, shown in (("/bye now", "/bye now"), ("/exit foo", "/exit foo")):
            result = self.run_command(line)
            self.assertFalse(result.should_exit, line)
            self.assertTrue(result.is_error, line)
            self.assertEqual(result.message, f"Unknown command '{shown}'. Type /? for help")

    def test_help_lists_commands(self):
        for line in ("/help", "/?"):
            result = self.run_command(line)
            self.assertFalse(result.is_error)
            self.assertTrue(result.is_usage)
            self.assertIn("/set", result.message)
            self.assertIn("/bye", result.message)
            self.assertIn('Use """ to begin a multi-line message.', result.message)

    def test_help_topics(self):
        self.assertIn("/set nohistory", self.run_command("/help set").message)
        self.assertIn("/show modelfile", self.run_command("/? show").message)
        self.assertIn("temperature <float>", self.run_command("/help parameters").message)

    def test_set_and_show_without_args_print_usage(self):
        for line, expected in (("/set", "/set wordwrap"), ("/show", "/show license")):
            result = self.run_command(line)
            self.assertIn(expected, result.message)
            self.assertTrue(result.is_usage, line)

    def test_confirmations_are_not_usage(self):
        self.assertFalse(self.run_command("/set verbose").is_usage)


class SetCommandTests(CommandTestCase):
    def test_toggles(self):
        cases = [
            ("/set nowordwrap", "word_wrap", False),
            ("/set wordwrap", "word_wrap", True),
            ("/set verbose", "verbose", True),
            ("/set quiet", "verbose", False),
            ("/set nohistory", "history", False),
            ("/set history", "history", True),
        ]
        for line, field_name, expected in cases:
            result = self.run_command(line)
            self.assertFalse(result.is_error, line)
            self.assertEqual(getattr(self.session, field_name), expected, line)

    def test_format(self):
        self.assertEqual(self.run_command("/set format json").message, "Set format to 'json' mode.")
        self.assertEqual(self.session.format, "json")
        self.run_command("/set noformat")
        self.assertEqual(self.session.format, "")

    def test_invalid_format(self):
        result = self.run_command("/set format yaml")
        self.assertTrue(result.is_error)
        self.assertEqual(self.session.format, "")

    def test_parameter(self):
        result = self.run_command("/set parameter temperature 0.7")
        self.assertFalse(result.is_error)
        self.assertEqual(result.message, "Set parameter 'temperature' to '0.7'")
        self.assertEqual(self.session.options, {"temperature": 0.7})

    def test_stop_parameter_collects_values(self):
        self.run_command('/set parameter stop "<|end|>" "User:"')
        self.assertEqual(self.session.options["stop"], ["<|end|>", "User:"])

    def test_invalid_parameter_leaves_options(self):
        self.run_command("/set parameter top_k 40")
        for line in ("/set parameter top_k lots", "/set parameter warmth 1", "/set parameter top_k"):
            result = self.run_command(line)
            self.assertTrue(result.is_error, line)
        self.assertEqual(self.session.options, {"top_k": 40})

    def test_system_and_template(self):
        self.assertEqual(self.run_command("/set system Be brief.").message, "Set system message.")
        self.assertEqual(self.session.system, "Be brief.")
        self.assertEqual(self.run_command("/set template {{ .Prompt }}").message, "Set prompt template.")
        self.assertEqual(self.session.template, "{{ .Prompt }}")
        self.assertEqual(self.session.system, "Be brief.")

    def test_unknown_set_option(self):
        result = self.run_command("/set colour blue")
        self.assertTrue(result.is_error)
        self.assertIn("Unknown command '/set colour'", result.message)


class ShowCommandTests(CommandTestCase):
    def test_parameters_lists_session_values_first(self):
        self.client.info = ShowResponse(parameters='stop "<|eot_id|>"')
        self.run_command("/set parameter temperature 0.7")

        message = self.run_command("/show parameters").message
        self.assertIn("temperature: 0.7", message)
        self.assertLess(message.index("User defined parameters:"), message.index("Model defined parameters:"))
        self.assertLess(message.index("temperature: 0.7"), message.index('stop "<|eot_id|>"'))

    def test_parameters_when_model_has_none(self):
        message = self.run_command("/show parameters").message
        self.assertEqual(message, "No parameters were specified for this model.\n")

    def test_system_prefers_session_value(self):
        self.client.info = ShowResponse(system="You are a model.")
        self.assertEqual(self.run_command("/show system").message, "You are a model.\n")
        self.session.system = "Be brief."
        self.assertEqual(self.run_command("/show system").message, "Be brief.\n")

    def test_missing_fields(self):
        self.assertEqual(self.run_command("/show license").message, "No license was specified for this model.\n")
        self.assertEqual(self.run_command("/show template").message, "No prompt template was specified for this model.\n")

    def test_show_asks_for_session_model(self):
        self.client.info = ShowResponse(modelfile="FROM llama3\n")
        self.assertEqual(self.run_command("/show modelfile").message, "FROM llama3\n")
        self.assertEqual(self.client.shown, ["llama3"])

    def test_backend_error_propagates(self):
        self.client.error = StatusError(404, "model 'llama3' not found")
        with self.assertRaises(StatusError):
            self.run_command("/show license")

    def test_unknown_show_option(self):
        result = self.run_command("/show weights")
        self.assertTrue(result.is_error)
        self.assertEqual(self.client.shown, [])


class UnknownCommandTests(CommandTestCase):
    def test_unknown_command_changes_nothing(self):
        before = copy.deepcopy(self.session)
        result = self.run_command("/frobnicate now")

        self.assertTrue(result.is_error)
        self.assertFalse(result.should_exit)
        self.assertEqual(result.message, "Unknown command '/frobnicate'. Type /? for help")
        self.assertEqual(self.session, before)
        self.assertEqual(self.lexer.state, INITIAL_STATE)


class ListModelsTests(unittest.TestCase):
    def test_table_filtered_by_prefix(self):
        now = datetime.now(timezone.utc)
        client = FakeModelClient(models=[
            ModelInfo("llama3:latest", "365c0bd3c000a25d28ddbf732fe1c6add414de72", 4661224676, now),
            ModelInfo("phi3:mini", "4f2222927938aaaa", 2176178913, None),
        ])

        table = list_models(client)
        lines = table.splitlines()
        self.assertTrue(lines[0].startswith("NAME"))
        self.assertIn("365c0bd3c000", lines[1])
        self.assertIn("4.7 GB", lines[1])
        self.assertIn("Never", lines[2])

        filtered = list_models(client, "phi").splitlines()
        self.assertEqual(len(filtered), 2)
        self.assertTrue(filtered[1].startswith("phi3:mini"))

    def test_list_command(self):
        session = Session(model="llama3")
        client = FakeModelClient(models=[ModelInfo("llama3:latest", "abc", 10, None)])
        result = handle_command(MultilineLexer().feed("/list"), AppState(session, client))
        self.assertIn("llama3:latest", result.message)


if __name__ == "__main__":
    unittest.main()
