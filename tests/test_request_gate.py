import unittest

from app.core.exceptions import AuthError
from app.core.security import token_codec
from app.repositories.memory import InMemoryUserRepository
from app.services.request_gate import RequestGate


class TestRequestGate(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.users = InMemoryUserRepository()
        self.user = await self.users.insert({"email": "a@example.com", "name": "Ann Lee", "password_hash": "x"})
        self.gate = RequestGate(self.users)

    async def assertRejected(self, token, message):
        with self.assertRaises(AuthError) as ctx:
            await self.gate.authenticate(token)
        self.assertEqual(ctx.exception.message, message)

    async def test_valid_access_token(self):
        token = token_codec.issue_access(self.user["id"], self.user["email"]).token

        context = await self.gate.authenticate(token)

        self.assertEqual(context.user_id, self.user["id"])
        self.assertEqual(context.claims["email"], "a@example.com")

    async def test_missing_token(self):
        await self.assertRejected(None, "No authentication token provided")

    async def test_invalid_token(self):
        await self.assertRejected("abc.def.ghi", "Invalid or expired authentication token")

    async def test_refresh_token_is_wrong_type(self):
        token = token_codec.issue_refresh(self.user["id"], self.user["email"]).token
        await self.assertRejected(token, "Invalid token type")

    async def test_inactive_user(self):
        token = token_codec.issue_access(self.user["id"], self.user["email"]).token
        await self.users.update(self.user["id"], {"is_active": False})

        await self.assertRejected(token, "User not found or inactive")

    async def test_unknown_user(self):
        token = token_codec.issue_access("missing-id", "ghost@example.com").token
        await self.assertRejected(token, "User not found or inactive")


if __name__ == "__main__":
    unittest.main()
