import asyncio
import unittest

from simon_bot.discord.identity import IdentityResolver, LruCache
from simon_bot.discord.rendering import string_to_color
from simon_bot.discord.schemas import GuildMember


def _member(username: str, global_name: str | None = None, nick: str | None = None) -> GuildMember:
    return GuildMember.model_validate({"user": {"username": username, "global_name": global_name}, "nick": nick})


class _FakeMembers:
    def __init__(self, members: dict[str, GuildMember]) -> None:
        self._members = members
        self.calls: list[str] = []
        self.in_progress = 0
        self.max_in_progress = 0
        self.release = asyncio.Event()

    async def fetch(self, user_id: str) -> GuildMember:
        self.calls.append(user_id)
        self.in_progress += 1
        self.max_in_progress = max(self.max_in_progress, self.in_progress)
        try:
            await self.release.wait()
        finally:
            self.in_progress -= 1
        if user_id not in self._members:
            raise LookupError(f"unknown member {user_id}")
        return self._members[user_id]


class IdentityResolverTests(unittest.TestCase):
    def test_concurrent_loads_are_fetched_together(self) -> None:
        async def scenario() -> None:
            members = _FakeMembers({"a": _member("alice"), "b": _member("bob", nick="Bobby")})
            resolver = IdentityResolver(members.fetch)

            pending = asyncio.gather(resolver.load("a"), resolver.load("b"), resolver.load("a"))
            for _ in range(10):
                await asyncio.sleep(0)
            self.assertEqual(2, members.max_in_progress)
            members.release.set()
            alice, bob, alice_again = await pending

            self.assertEqual(["a", "b"], members.calls)
            self.assertEqual("alice", alice.name)
            self.assertEqual("Bobby", bob.name)
            self.assertEqual(string_to_color("Bobby"), bob.color)
            self.assertIs(alice, alice_again)

        asyncio.run(scenario())

    def test_results_are_memoized(self) -> None:
        async def scenario() -> None:
            members = _FakeMembers({"a": _member("alice", global_name="Alice A")})
            members.release.set()
            resolver = IdentityResolver(members.fetch)

            first = await resolver.load("a")
            second = await resolver.load("a")

            self.assertEqual("Alice A", first.name)
            self.assertIs(first, second)
            self.assertEqual(["a"], members.calls)

        asyncio.run(scenario())

    def test_failure_is_isolated_per_key(self) -> None:
        async def scenario() -> None:
            members = _FakeMembers({"a": _member("alice")})
            members.release.set()
            resolver = IdentityResolver(members.fetch)

            results = await resolver.load_many(["a", "missing"])

            self.assertEqual("alice", results[0].name)
            self.assertIsInstance(results[1], LookupError)

            # Failures are not cached.
            with self.assertRaises(LookupError):
                await resolver.load("missing")
            self.assertEqual(["a", "missing", "missing"], members.calls)

        asyncio.run(scenario())


class LruCacheTests(unittest.TestCase):
    def test_evicts_least_recently_used(self) -> None:
        cache: LruCache[str, int] = LruCache(2)
        cache.set("a", 1)
        cache.set("b", 2)
        self.assertEqual(1, cache.get("a"))
        cache.set("c", 3)

        self.assertEqual(2, len(cache))
        self.assertIn("a", cache)
        self.assertNotIn("b", cache)
        self.assertIsNone(cache.get("b"))

    def test_overwrite_refreshes_entry(self) -> None:
        cache: LruCache[str, int] = LruCache(2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("a", 10)
        cache.set("c", 3)

        self.assertEqual(10, cache.get("a"))
        self.assertNotIn("b", cache)


if __name__ == "__main__":
    unittest.main()
