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

import unittest

from termchat.core.session import ChatRequest, Message, Session


class SessionTests(unittest.TestCase):
    def test_add_message_validates_role(self):
        session = Session(model="llama3")
        session.add_message("user", "hi")
        with self.assertRaises(ValueError):
            session.add_message("tool", "result")
        self.assertEqual(session.messages, [Message("user", "hi")])

    def test_commit_system_only_on_change(self):
        session = Session(model="llama3", system="Be brief.")
        self.assertTrue(session.commit_system())
        self.assertFalse(session.commit_system())

        session.system = "Be verbose."
        self.assertTrue(session.commit_system())
        self.assertEqual([m.content for m in session.messages], ["Be brief.", "Be verbose."])

    def test_commit_system_without_system(self):
        session = Session(model="llama3")
        self.assertFalse(session.commit_system())
        self.assertEqual(session.messages, [])

    def test_request_is_a_snapshot(self):
        session = Session(model="llama3", options={"seed": 1})
        session.add_message("user", "hi")
        request = session.request()

        session.add_message("assistant", "hello")
        session.options["seed"] = 2
        self.assertEqual(len(request.messages), 1)
        self.assertEqual(request.options, {"seed": 1})

    def test_payload_omits_empty_settings(self):
        payload = ChatRequest(model="llama3", messages=[Message("user", "hi")]).to_payload()
        self.assertEqual(payload, {
            "model": "llama3",
            "messages": [{"role": "user", "content": "hi"}],
            "stream": True,
        })


if __name__ == "__main__":
    unittest.main()
