"""Pytest configuration and shared fixtures."""
import pytest
from dataclasses import dataclass, field
from typing import Any, Dict

import changeset.config as config_module


@dataclass
class Address:
    """Nested attribute object used as content."""
    city: str = "Springfield"
    zip: str = "00000"


@dataclass
class User:
    """Attribute-style content with a save() hook."""
    name: str = "Al"
    age: int = 30
    address: Address = field(default_factory=Address)
    saved: list = field(default_factory=list)

    def save(self, options=None):
        self.saved.append(options)
        return "saved"


def reject_blank(key, new_value, old_value, changes, content):
    """Rejects empty strings with a message."""
    if new_value == "":
        return f"{key} can't be blank"
    return True


@pytest.fixture(autouse=True)
def reset_default_options():
    """Restore built-in changeset defaults after each test."""
    original = config_module._default_options
    yield
    config_module._default_options = original


@pytest.fixture
def content() -> Dict[str, Any]:
    """Provide plain nested dict content."""
    return {"name": "Al", "age": 30, "address": {"city": "Springfield", "zip": "00000"}}


@pytest.fixture
def user() -> User:
    """Provide dataclass content."""
    return User()


@pytest.fixture
def validator():
    return reject_blank
