import asyncio
import unittest

from simon_bot.discord.identity import to_author
from simon_bot.discord.messages import (
    MAX_CHAIN_LENGTH,
    MessageTreeResolver,
    message_id_sort_key,
    split_author_prefix,
)
from simon_bot.discord.schemas import DiscordMessage


def _message(message_id: str, content: str = "hello", parent: str | None = None, author: str = "u1", type_: int | None = None) -> DiscordMessage:
    data = {
        "type": type_ if type_ is not None else (19 if parent else 0),
        "id": message_id,
        "author": {"id": author},
        "content": content,
    }
    if parent:
        data["message_reference"] = {"message_id": parent}
    return DiscordMessage.model_validate(data)


class _FakeApi:
    def __init__(self, messages: list[DiscordMessage]) -> None:
        self._by_id = {m.id: m for m in messages}
        self._listing = messages
        self.fetched: list[str] = []
        self.posted: list[tuple[str, str, str | None]] = []

    async def list_channel_messages(self, limit: int = 50) -> list[DiscordMessage]:
        return self._listing[:limit]

    async def get_channel_message(self, message_id: str) -> DiscordMessage:
        self.fetched.append(message_id)
        return self._by_id[message_id]

    async def post_channel_message(self, text: str, username: str, reply_to: str | None = None) -> str:
        self.posted.append((text, username, reply_to))
        return "new-id"


class _FakeIdentities:
    def __init__(self, names: dict[str, str]) -> None:
        self._names = names
        self.loaded: list[str] = []

    async def load(self, user_id: str):
        self.loaded.append(user_id)
        return to_author(self._names[user_id])


def _resolver(messages: list[DiscordMessage], names: dict[str, str] | None = None) -> tuple[MessageTreeResolver, _FakeApi, _FakeIdentities]:
    api = _FakeApi(messages)
    identities = _FakeIdentities(names or {"u1": "alice", "u2": "bob"})
    return MessageTreeResolver(api, identities, bot_username="simon-bot"), api, identities


class HelperTests(unittest.TestCase):
    def test_split_author_prefix(self) -> None:
        self.assertEqual(("alice", "hi: there"), split_author_prefix("alice: hi: there"))
        self.assertIsNone(split_author_prefix("no prefix here"))

    def test_snowflakes_sort_numerically(self) -> None:
        ids = ["100", "9", "10"]
        self.assertEqual(["9", "10", "100"], sorted(ids, key=message_id_sort_key))


class ChannelMessagesTests(unittest.TestCase):
    def test_builds_sorted_reply_forest(self) -> None:
        messages = [
            _message("30", "second"),
            _message("12", "reply two", parent="10"),
            _message("11", "reply one", parent="10"),
            _message("10", "first"),
            _message("13", "nested", parent="11"),
        ]
        resolver, _, _ = _resolver(messages)

        forest = asyncio.run(resolver.get_channel_messages(50))

        self.assertEqual(["10", "30"], [m.id for m in forest])
        self.assertEqual(["11", "12"], [m.id for m in forest[0].replies])
        self.assertEqual(["13"], [m.id for m in forest[0].replies[0].replies])
        self.assertEqual([], forest[1].replies)

    def test_orphaned_reply_is_dropped(self) -> None:
        messages = [
            _message("1", "top"),
            _message("2", "kept", parent="1"),
            _message("3", "orphan", parent="99"),
            _message("4", "child of orphan", parent="3"),
        ]
        resolver, _, _ = _resolver(messages)

        forest = asyncio.run(resolver.get_channel_messages(50))

        self.assertEqual(["1"], [m.id for m in forest])
        self.assertEqual(["2"], [m.id for m in forest[0].replies])

    def test_skips_system_messages(self) -> None:
        messages = [_message("1", "top"), _message("2", "pinned a message", type_=6)]
        resolver, _, _ = _resolver(messages)

        forest = asyncio.run(resolver.get_channel_messages(50))

        self.assertEqual(["1"], [m.id for m in forest])

    def test_resolves_authors_from_prefix_or_identity(self) -> None:
        messages = [
            _message("1", "carol: **hi** there"),
            _message("2", "plain text", author="u2"),
        ]
        resolver, _, identities = _resolver(messages)

        forest = asyncio.run(resolver.get_channel_messages(50))

        self.assertEqual("carol", forest[0].author.name)
        self.assertEqual("<strong>hi</strong> there", forest[0].content)
        self.assertEqual("bob", forest[1].author.name)
        self.assertEqual(["u2"], identities.loaded)

    def test_marks_edited_messages(self) -> None:
        edited = DiscordMessage.model_validate(
            {"type": 0, "id": "1", "author": {"id": "u1"}, "content": "x", "edited_timestamp": "2024-01-01T00:00:00Z"}
        )
        resolver, _, _ = _resolver([edited])

        forest = asyncio.run(resolver.get_channel_messages(50))

        self.assertTrue(forest[0].edited)


class MessageChainTests(unittest.TestCase):
    def test_chain_is_root_first(self) -> None:
        messages = [
            _message("1", "alice: hey simon-bot"),
            _message("2", "simon-bot: hi alice", parent="1"),
            _message("3", "what's up", parent="2", author="u2"),
        ]
        resolver, api, _ = _resolver(messages)

        chain = asyncio.run(resolver.get_message_chain("3"))

        self.assertEqual(["1", "2", "3"], [e.id for e in chain])
        self.assertEqual(["3", "2", "1"], api.fetched)
        self.assertEqual(("alice", "hey simon-bot", False), (chain[0].username, chain[0].content, chain[0].is_bot))
        self.assertEqual(("simon-bot", "hi alice", True), (chain[1].username, chain[1].content, chain[1].is_bot))
        self.assertEqual(("bob", "what's up", False), (chain[2].username, chain[2].content, chain[2].is_bot))

    def test_cycle_terminates(self) -> None:
        messages = [_message("A", "a", parent="B"), _message("B", "b", parent="A")]
        resolver, api, _ = _resolver(messages)

        chain = asyncio.run(resolver.get_message_chain("B"))

        self.assertEqual(["A", "B"], [e.id for e in chain])
        self.assertEqual(["B", "A"], api.fetched)

    def test_self_reference_terminates(self) -> None:
        resolver, api, _ = _resolver([_message("A", "a", parent="A")])

        chain = asyncio.run(resolver.get_message_chain("A"))

        self.assertEqual(["A"], [e.id for e in chain])
        self.assertEqual(["A"], api.fetched)

    def test_depth_is_capped(self) -> None:
        messages = [_message("1", "root")]
        messages += [_message(str(i), f"reply {i}", parent=str(i - 1)) for i in range(2, 101)]
        resolver, api, _ = _resolver(messages)

        chain = asyncio.run(resolver.get_message_chain("100"))

        self.assertEqual(MAX_CHAIN_LENGTH, len(chain))
        self.assertEqual(MAX_CHAIN_LENGTH, len(api.fetched))
        self.assertEqual("51", chain[0].id)
        self.assertEqual("100", chain[-1].id)

    def test_post_delegates_to_api(self) -> None:
        resolver, api, _ = _resolver([])

        new_id = asyncio.run(resolver.post_channel_message("hello", "simon-bot", "5"))

        self.assertEqual("new-id", new_id)
        self.assertEqual([("hello", "simon-bot", "5")], api.posted)


if __name__ == "__main__":
    unittest.main()
