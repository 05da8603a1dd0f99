from typing import Optional

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from test_helpers import ChatUser, login, register_test_user


async def _registered(
    client: AsyncClient,
    session_maker: async_sessionmaker[AsyncSession],
    email: str,
    username: str,
    dealership_id: Optional[int] = None,
) -> ChatUser:
    user = await register_test_user(session_maker, email, username, dealership_id)
    return ChatUser(user=user, headers=await login(client, email))


@pytest.fixture(scope="function")
async def buyer(
    test_client: AsyncClient,
    db_test_session_manager: async_sessionmaker[AsyncSession],
) -> ChatUser:
    return await _registered(
        test_client, db_test_session_manager, "buyer@example.com", "buyer"
    )


# Staff member of dealership 42; acts as "42" in dealer conversations
@pytest.fixture(scope="function")
async def dealer_staff(
    test_client: AsyncClient,
    db_test_session_manager: async_sessionmaker[AsyncSession],
) -> ChatUser:
    return await _registered(
        test_client, db_test_session_manager, "staff@example.com", "staff", dealership_id=42
    )


@pytest.fixture(scope="function")
async def seller(
    test_client: AsyncClient,
    db_test_session_manager: async_sessionmaker[AsyncSession],
) -> ChatUser:
    return await _registered(
        test_client, db_test_session_manager, "seller@example.com", "seller"
    )


@pytest.fixture(scope="function")
async def outsider(
    test_client: AsyncClient,
    db_test_session_manager: async_sessionmaker[AsyncSession],
) -> ChatUser:
    return await _registered(
        test_client, db_test_session_manager, "outsider@example.com", "outsider"
    )
