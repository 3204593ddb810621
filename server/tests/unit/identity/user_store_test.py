"""Unit tests for the user store."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from music_store.identity import schema
from music_store.identity.models import User, UserClaim, UserLogin
from music_store.identity.user_store import UserStore


@pytest.fixture
def mock_client():
    client = MagicMock()
    client.query = AsyncMock(return_value=[])
    client.query_one = AsyncMock(return_value=None)
    client.query_value = AsyncMock()
    client.execute = AsyncMock(return_value="INSERT 0 1")
    return client


@pytest.fixture
def mock_context(mock_client):
    context = MagicMock()
    context.client = mock_client
    context.initialize = AsyncMock()
    context.close = AsyncMock()
    return context


@pytest.fixture
def store(mock_context):
    return UserStore(mock_context)


@pytest.fixture
def sample_user():
    return User(id="u-1", user_name="alice", email="alice@example.com", password_hash="h")


def _user_row(user: User) -> dict:
    return user.model_dump()


class TestUserStoreUsers:
    """Test user CRUD."""

    @pytest.mark.asyncio
    async def test_create_inserts_every_column(self, store, mock_client, sample_user):
        result = await store.create(sample_user)

        assert result == sample_user
        query, *values = mock_client.execute.await_args.args
        assert query.startswith(f"INSERT INTO {schema.USERS_TABLE}")
        assert "$12" in query
        assert values[0] == "u-1"
        assert values[1] == "alice"
        assert len(values) == len(schema.USER_COLUMNS)

    @pytest.mark.asyncio
    async def test_update_returns_true_when_row_changed(self, store, mock_client, sample_user):
        mock_client.execute.return_value = "UPDATE 1"
        assert await store.update(sample_user) is True
        query = mock_client.execute.await_args.args[0]
        assert "WHERE id = $1" in query
        assert "user_name = $2" in query

    @pytest.mark.asyncio
    async def test_update_missing_user(self, store, mock_client, sample_user):
        mock_client.execute.return_value = "UPDATE 0"
        assert await store.update(sample_user) is False

    @pytest.mark.asyncio
    async def test_delete(self, store, mock_client):
        mock_client.execute.return_value = "DELETE 1"
        assert await store.delete("u-1") is True
        mock_client.execute.assert_awaited_once_with(
            f"DELETE FROM {schema.USERS_TABLE} WHERE id = $1", "u-1"
        )

    @pytest.mark.asyncio
    async def test_find_by_id(self, store, mock_client, sample_user):
        mock_client.query_one.return_value = _user_row(sample_user)
        assert await store.find_by_id("u-1") == sample_user

    @pytest.mark.asyncio
    async def test_find_by_name_ignores_case(self, store, mock_client, sample_user):
        mock_client.query_one.return_value = _user_row(sample_user)

        user = await store.find_by_name("ALICE")

        assert user == sample_user
        query, name = mock_client.query_one.await_args.args
        assert "LOWER(user_name) = LOWER($1)" in query
        assert name == "ALICE"

    @pytest.mark.asyncio
    async def test_find_by_email_not_found(self, store, mock_client):
        assert await store.find_by_email("nobody@example.com") is None
        assert "LOWER(email)" in mock_client.query_one.await_args.args[0]


class TestUserStorePasswords:
    """Test password hash access."""

    @pytest.mark.asyncio
    async def test_get_password_hash(self, store, mock_client):
        mock_client.query_value.return_value = "hash"
        assert await store.get_password_hash("u-1") == "hash"

    @pytest.mark.asyncio
    async def test_set_password_hash(self, store, mock_client):
        mock_client.execute.return_value = "UPDATE 1"
        assert await store.set_password_hash("u-1", "new", "stamp") is True
        assert mock_client.execute.await_args.args[1:] == ("u-1", "new", "stamp")


class TestUserStoreRolesClaimsLogins:
    """Test roles, claims and external logins."""

    @pytest.mark.asyncio
    async def test_add_to_role_creates_role_then_membership(self, store, mock_client):
        await store.add_to_role("u-1", "Administrator")

        first, second = mock_client.execute.await_args_list
        assert f"INSERT INTO {schema.ROLES_TABLE}" in first.args[0]
        assert first.args[2] == "Administrator"
        assert f"INSERT INTO {schema.USER_ROLES_TABLE}" in second.args[0]
        assert second.args[1:] == ("u-1", "Administrator")

    @pytest.mark.asyncio
    async def test_remove_from_role(self, store, mock_client):
        mock_client.execute.return_value = "DELETE 0"
        assert await store.remove_from_role("u-1", "Administrator") is False

    @pytest.mark.asyncio
    async def test_get_roles(self, store, mock_client):
        mock_client.query.return_value = [{"name": "Administrator"}, {"name": "Customer"}]
        assert await store.get_roles("u-1") == ["Administrator", "Customer"]

    @pytest.mark.asyncio
    async def test_add_claim_returns_generated_id(self, store, mock_client):
        mock_client.query_value.return_value = 7
        claim = await store.add_claim(UserClaim(user_id="u-1", claim_type="cart", claim_value="3"))
        assert claim.id == 7
        assert claim.claim_type == "cart"

    @pytest.mark.asyncio
    async def test_get_claims(self, store, mock_client):
        mock_client.query.return_value = [
            {"id": 1, "user_id": "u-1", "claim_type": "cart", "claim_value": "3"}
        ]
        claims = await store.get_claims("u-1")
        assert claims == [UserClaim(id=1, user_id="u-1", claim_type="cart", claim_value="3")]

    @pytest.mark.asyncio
    async def test_add_login_and_find_by_login(self, store, mock_client, sample_user):
        await store.add_login(
            UserLogin(login_provider="Google", provider_key="g-123", user_id="u-1")
        )
        assert mock_client.execute.await_args.args[1:] == ("Google", "g-123", "u-1")

        mock_client.query_one.return_value = _user_row(sample_user)
        user = await store.find_by_login("Google", "g-123")
        assert user == sample_user
        assert mock_client.query_one.await_args.args[1:] == ("Google", "g-123")


class TestUserStoreLifecycle:
    @pytest.mark.asyncio
    async def test_initialize_and_close_delegate_to_context(self, store, mock_context):
        await store.initialize()
        await store.close()
        mock_context.initialize.assert_awaited_once()
        mock_context.close.assert_awaited_once()
