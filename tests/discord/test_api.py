import asyncio
import json
import unittest

import httpx

from simon_bot.discord.api import DiscordApi
from simon_bot.discord.rest import DiscordRestClient


class DiscordApiTests(unittest.TestCase):
    def _run(self, handler, action):
        async def go():
            rest = DiscordRestClient("tok", transport=httpx.MockTransport(handler))
            api = DiscordApi(rest, guild_id="guild", channel_id="chan")
            try:
                return await action(api)
            finally:
                await rest.aclose()

        return asyncio.run(go())

    def test_post_prefixes_username_and_references_parent(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"id": "99", "channel_id": "chan"})

        new_id = self._run(handler, lambda api: api.post_channel_message("hi there", "simon-bot", reply_to="5"))

        self.assertEqual("99", new_id)
        self.assertEqual("/api/v10/channels/chan/messages", requests[0].url.path)
        self.assertEqual(
            {"content": "simon-bot: hi there", "message_reference": {"message_id": "5"}},
            json.loads(requests[0].content),
        )

    def test_post_without_reply_has_no_reference(self) -> None:
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"id": "1"})

        self._run(handler, lambda api: api.post_channel_message("hello", "alice"))

        self.assertEqual([{"content": "alice: hello"}], bodies)

    def test_get_guild_member(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            self.assertEqual("/api/v10/guilds/guild/members/u1", request.url.path)
            return httpx.Response(200, json={"user": {"username": "alice", "global_name": None}, "nick": None, "roles": []})

        member = self._run(handler, lambda api: api.get_guild_member("u1"))

        self.assertEqual("alice", member.display_name)

    def test_get_channel_message_ignores_unknown_fields(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={
                    "type": 19,
                    "id": "2",
                    "author": {"id": "u1", "username": "alice"},
                    "content": "hi",
                    "message_reference": {"message_id": "1", "channel_id": "chan"},
                    "pinned": False,
                },
            )

        message = self._run(handler, lambda api: api.get_channel_message("2"))

        self.assertEqual("1", message.parent_id)
        self.assertTrue(message.is_conversation_message)


if __name__ == "__main__":
    unittest.main()
