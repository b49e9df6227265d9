"""Tests for property descriptors and the resolver."""

import pytest

from propfx import (
    ConstructionError,
    Instance,
    PropertyKind,
    ReadonlyPropertyError,
    accessor,
    computed,
    lazy,
    prop,
)


class Unit(Instance):
    hp = prop(default=100)

    @computed("hp")
    def is_alive(self):
        return self.hp > 0


class TestStored:
    def test_default_applied(self):
        u = Unit()
        assert u.hp == 100

    def test_write_and_read(self):
        u = Unit()
        u.hp = 42
        assert u.hp == 42

    def test_constructor_values(self):
        u = Unit(hp=7)
        assert u.hp == 7

    def test_factory_default_runs_per_instance(self):
        class Bag(Instance):
            items = prop(default=list)

        a, b = Bag(), Bag()
        a.items.append(1)
        assert b.items == []
        assert a.items is not b.items

    def test_literal_mutable_default_is_copied(self):
        class Bag(Instance):
            items = prop(default={"gold": 0})

        a, b = Bag(), Bag()
        a.items["gold"] = 5
        assert b.items == {"gold": 0}

    def test_class_literal_becomes_property(self):
        class Hero(Instance):
            name = "nobody"
            MAX_LEVEL = 99

        h = Hero()
        assert h.name == "nobody"
        assert Hero.MAX_LEVEL == 99
        seen = []
        h.on("changed:name", lambda new, old: seen.append((new, old)))
        h.name = "ayla"
        assert seen == [("ayla", "nobody")]

    def test_unset_stored_reads_none(self):
        class Thing(Instance):
            label = prop()

        assert Thing().label is None

    def test_dynamic_field(self):
        u = Unit()
        u.mana = 5
        assert u.mana == 5

    def test_missing_attribute(self):
        u = Unit()
        with pytest.raises(AttributeError):
            u.nothing_here

    def test_updated_at_moves(self):
        u = Unit()
        before = u.updated_at
        u._updated_at = before - 10
        u.hp = 1
        assert u.updated_at >= before


class TestReadonly:
    def test_readonly_write_fails(self):
        class Thing(Instance):
            kind = prop(default="rock", readonly=True)

        t = Thing()
        with pytest.raises(ReadonlyPropertyError) as info:
            t.kind = "paper"
        assert info.value.name == "kind"
        assert t.kind == "rock"

    def test_readonly_can_be_initialised(self):
        class Thing(Instance):
            kind = prop(default="rock", readonly=True)

        assert Thing(kind="paper").kind == "paper"

    def test_computed_write_fails(self):
        u = Unit()
        with pytest.raises(ReadonlyPropertyError) as info:
            u.is_alive = False
        assert info.value.name == "is_alive"
        assert u.is_alive is True

    def test_readonly_error_is_attribute_error(self):
        u = Unit()
        with pytest.raises(AttributeError):
            u.is_alive = False


class TestComputed:
    def test_never_stale(self):
        u = Unit()
        assert u.hp == 100
        assert u.is_alive is True
        u.hp = 0
        assert u.is_alive is False

    def test_recomputes_every_read(self):
        calls = []

        class Counter(Instance):
            n = prop(default=1)

            @computed("n")
            def doubled(self):
                calls.append(1)
                return self.n * 2

        c = Counter()
        c.doubled
        c.doubled
        assert len(calls) == 2

    def test_dependency_change_notifies_computed(self):
        u = Unit()
        seen = []
        u.bind_property("is_alive", lambda new, old: seen.append((new, old)))
        u.hp = 50
        assert seen == []  # still alive
        u.hp = 0
        assert seen == [(False, True)]

    def test_define_computed(self):
        class Box(Instance):
            w = prop(default=2)
            h = prop(default=3)

        Box.define_computed("area", ["w", "h"], lambda self: self.w * self.h)
        b = Box()
        assert b.area == 6
        b.w = 10
        assert b.area == 30

    def test_descriptor_is_always_readonly(self):
        desc = computed("x")(lambda self: 1)
        assert desc.kind is PropertyKind.COMPUTED
        assert desc.readonly


class TestLazy:
    def test_initialised_once(self):
        calls = []

        class Thing(Instance):
            @lazy
            def data(self):
                calls.append(1)
                return [1, 2, 3]

        t = Thing()
        assert calls == []
        assert t.data == [1, 2, 3]
        assert t.data == [1, 2, 3]
        assert len(calls) == 1

    def test_first_read_notifies(self):
        class Thing(Instance):
            @lazy
            def data(self):
                return "ready"

        t = Thing()
        seen = []
        t.on("changed:data", lambda new, old: seen.append((new, old)))
        t.data
        assert seen == [("ready", None)]

    def test_lazy_with_setter_rejected(self):
        from propfx import PropertyDescriptor

        with pytest.raises(ConstructionError):
            PropertyDescriptor(PropertyKind.LAZY, initializer=lambda s: 1, setter=lambda s, v: None)


class TestAccessor:
    def test_getter_and_setter(self):
        def _set(self, value):
            self.raw_set("celsius", value)

        class Temp(Instance):
            celsius = accessor(setter=_set, default=0)
            fahrenheit = accessor(getter=lambda self: self.celsius * 9 / 5 + 32)

        t = Temp()
        t.celsius = 100
        assert t.fahrenheit == 212

    def test_setter_no_op_still_notifies(self):
        def _clamp(self, value):
            if value >= 0:
                self.raw_set("level", value)

        class Meter(Instance):
            level = accessor(setter=_clamp, default=1)

        m = Meter()
        seen = []
        m.on("changed:level", lambda new, old: seen.append((new, old)))
        m.level = -5  # setter refuses
        assert m.level == 1
        assert seen == [(1, 1)]

    def test_setter_transforms_value(self):
        class Name(Instance):
            text = accessor(setter=lambda self, v: self.raw_set("text", v.strip()))

        n = Name()
        seen = []
        n.on("changed", lambda key, new, old: seen.append((key, new, old)))
        n.text = "  hi  "
        assert n.text == "hi"
        assert seen == [("text", "hi", None)]

    def test_accessor_needs_a_function(self):
        with pytest.raises(ConstructionError):
            accessor()


class TestInheritance:
    def test_subclass_inherits_properties(self):
        class Boss(Unit):
            armor = prop(default=5)

        b = Boss()
        assert b.hp == 100
        assert b.armor == 5
        b.hp = 0
        assert b.is_alive is False

    def test_subclass_override(self):
        class Tank(Unit):
            hp = prop(default=500)

        assert Tank().hp == 500
        assert Unit().hp == 100

    def test_statics_walk_ancestors(self):
        class Base(Instance):
            pass

        Base.define_static("species", "human")

        class Child(Base):
            pass

        c = Child()
        assert c.species == "human"
        assert Child.get_static("species") == "human"
        c.species = "elf"  # instance field shadows the static
        assert c.species == "elf"
        assert Child().species == "human"

    def test_define_and_remove_property(self):
        class Thing(Instance):
            pass

        Thing.define_property("color", prop(default="red"))
        t = Thing()
        assert t.color == "red"
        Thing.remove_property("color")
        assert "color" not in Thing.__descriptor__.properties
        assert not Thing().has_value("color")


class TestAttributeErrorInsideProperty:
    def test_computed_runs_once(self):
        calls = []

        class Broken(Instance):
            @computed()
            def label(self):
                calls.append(1)
                raise AttributeError("no label source")

        with pytest.raises(AttributeError):
            Broken().label
        assert calls == [1]

    def test_lazy_runs_once(self):
        calls = []

        class Broken(Instance):
            @lazy
            def cache(self):
                calls.append(1)
                return self.missing_source

        b = Broken()
        with pytest.raises(AttributeError, match="cache"):
            b.cache
        assert calls == [1]
        assert not b.has_value("cache")
