"""Pytest configuration and shared fixtures."""
from unittest.mock import AsyncMock, MagicMock

import pytest

from helpers import NOON_WEDNESDAY
from restobot.models.cart import CustomerRef


@pytest.fixture
def now():
    return NOON_WEDNESDAY


@pytest.fixture
def customer():
    return CustomerRef(phone="+919800000001")


@pytest.fixture
def store():
    """Stand-in for OfferService"""
    fake = MagicMock()
    fake.query_offers = AsyncMock(return_value=[])
    fake.count_prior_orders = AsyncMock(return_value=0)
    fake.record_offer_usage = AsyncMock()
    fake.increment_offer_usage_count = AsyncMock(return_value=True)
    return fake


@pytest.fixture
def conn():
    """asyncpg connection double"""
    connection = MagicMock()
    connection.fetch = AsyncMock(return_value=[])
    connection.fetchrow = AsyncMock(return_value=None)
    connection.fetchval = AsyncMock(return_value=None)
    connection.execute = AsyncMock(return_value="UPDATE 1")
    connection.executemany = AsyncMock()

    transaction = MagicMock()
    transaction.__aenter__ = AsyncMock(return_value=transaction)
    transaction.__aexit__ = AsyncMock(return_value=False)
    connection.transaction = MagicMock(return_value=transaction)
    return connection


@pytest.fixture
def db(conn):
    """Database double whose pool hands out ``conn``"""
    acquire = MagicMock()
    acquire.__aenter__ = AsyncMock(return_value=conn)
    acquire.__aexit__ = AsyncMock(return_value=False)

    database = MagicMock()
    database.pool.acquire = MagicMock(return_value=acquire)
    return database
