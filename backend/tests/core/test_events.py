"""Tests for immutable domain events."""

import pytest

from command_core.core.command import CommandMetadata
from command_core.core.events import Event


def test_payload_is_a_frozen_copy():
    source = {"user": {"id": "u1"}, "tags": ["a"]}
    event = Event("user.registered", source, CommandMetadata.create())
    source["user"]["id"] = "changed"

    assert event.payload["user"]["id"] == "u1"
    assert event.payload["tags"] == ("a",)
    with pytest.raises(TypeError):
        event.payload["user"]["id"] = "x"


def test_to_dict_thaws_payload():
    event = Event("x.y", {"a": {"b": [1]}}, CommandMetadata.create(actor_id="u1"))
    data = event.to_dict()
    assert data["payload"] == {"a": {"b": [1]}}
    assert data["metadata"]["actor_id"] == "u1"


@pytest.mark.parametrize("event_type", ["", "*"])
def test_rejects_empty_and_wildcard_types(event_type):
    with pytest.raises(ValueError):
        Event(event_type, {}, CommandMetadata.create())
