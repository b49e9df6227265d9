"""Tests for serialize/deserialize and JSON text."""

import json

import pytest

from propfx import DecodeError, Instance, prop
from propfx.serialization import RECURSIVE


class Item(Instance):
    name = prop(default="sword")
    weight = prop(default=3.5)


class Pack(Instance):
    owner = prop(default="nobody")
    items = prop(default=list)


class TestSerialize:
    def test_plain_fields(self):
        assert Item().serialize() == {"name": "sword", "weight": 3.5}

    def test_callables_dropped(self):
        i = Item()
        i.on_use = lambda: None
        i.effects = {"fire": 2, "hook": print}
        data = i.serialize()
        assert "on_use" not in data
        assert data["effects"] == {"fire": 2}

    def test_nested_instances(self):
        p = Pack(owner="ayla")
        p.items.append(Item(name="bow"))
        assert p.serialize() == {
            "owner": "ayla",
            "items": [{"name": "bow", "weight": 3.5}],
        }

    def test_recursive_container(self):
        p = Pack()
        p.items.append(p.items)
        assert p.serialize()["items"] == [RECURSIVE]

    def test_self_reference(self):
        p = Pack()
        p.items.append(p)
        assert p.serialize()["items"] == [RECURSIVE]

    def test_listeners_not_included(self):
        i = Item()
        i.on("hit", lambda: None)
        i.bind_property("name", lambda new, old: None)
        assert set(i.serialize()) == {"name", "weight"}

    def test_tuple_and_set_kept(self):
        i = Item()
        i.pos = (1, 2)
        i.flags = {"a"}
        data = i.serialize()
        assert data["pos"] == (1, 2)
        assert data["flags"] == {"a"}


class TestDeserialize:
    def test_assigns_without_notifying(self):
        i = Item()
        seen = []
        i.on("changed", lambda *args: seen.append(args))
        i.deserialize({"name": "axe", "durability": 10, "bad": len})
        assert i.name == "axe"
        assert i.durability == 10
        assert not i.has_value("bad")
        assert seen == []


class TestText:
    def test_to_text_is_json(self):
        assert json.loads(Item().to_text()) == {"name": "sword", "weight": 3.5}

    def test_round_trip_through_text(self):
        a = Pack(owner="ayla")
        a.items.extend(["rope", "torch"])
        b = Pack()
        b.from_text(a.to_text())
        assert b.owner == "ayla"
        assert b.items == ["rope", "torch"]

    def test_invalid_text(self):
        with pytest.raises(DecodeError):
            Item().from_text("{not json")

    def test_non_object_text(self):
        with pytest.raises(DecodeError):
            Item().from_text("[1, 2]")

    def test_decode_error_is_value_error(self):
        with pytest.raises(ValueError):
            Item().from_text("")
