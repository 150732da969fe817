"""
Record types shared by unit and integration tests.
"""
import datetime
from dataclasses import dataclass, field

import pytest
from recordmap import Int32, RegistryBuilder, column

builder = RegistryBuilder()


@builder.model('users', partial_update=True)
@dataclass
class User:
    id: int = column(primary=True, default=0)
    name: str = ''
    email: str = ''
    password: str = column(redact=True, default='')
    is_active: bool | None = None
    score: float = 0.0
    tags: list = field(default_factory=list)
    created_at: datetime.datetime | None = column(update=False, default=None)
    updated_at: datetime.datetime | None = column(auto_timestamp=True, default=None)


@builder.model('accounts')
@dataclass
class Account:
    id: int = column(primary=True, default=0)
    owner: str = ''
    balance: int = 0
    settings: dict = field(default_factory=dict)
    note: str = column(ignore=True, default='')


@builder.model('line_items')
@dataclass
class LineItem:
    order_id: int = column(primary=True, default=0)
    line_no: Int32 = column(primary=True, default=0)
    sku: str = column('SKU', default='')
    quantity: int = 0


@dataclass
class Unregistered:
    id: int = 0


REGISTRY = builder.build()


@pytest.fixture
def registry():
    """Registry holding User, Account and LineItem"""
    return REGISTRY


@pytest.fixture
def user_meta():
    return REGISTRY[User]


@pytest.fixture
def account_meta():
    return REGISTRY[Account]


@pytest.fixture
def line_item_meta():
    return REGISTRY[LineItem]
