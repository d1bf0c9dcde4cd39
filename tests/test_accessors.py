"""Accessor slot tests.

These tests verify:
- Get and set halves are wrapped independently
- ``#set`` targets the setter half and is rejected on plain methods
- Class access exposes fget/fset running the chains
- Read-only properties and inherited properties
"""

from __future__ import annotations

import pytest

from chainwrap import AccessorHalf, ConfigurationError, SlotDescriptor


def make_token_class():
    class Token:
        def __init__(self):
            self._visible = True

        @property
        def visible(self):
            return self._visible

        @visible.setter
        def visible(self, value):
            self._visible = value

        def draw(self):
            return "drawn"

    return Token


class TestAccessorHalves:
    """Tests for the get and set chains of a property."""

    def test_get_half(self, engine):
        """Test a getter wrapper sees and can change the value."""
        Token = make_token_class()
        engine.namespace["Token"] = Token

        def hide(wrapped, token):
            return wrapped() and token._visible != "hidden"

        engine.register("my-pkg", "Token.visible", hide)

        token = Token()
        assert token.visible is True
        token._visible = "hidden"
        assert token.visible is False

    def test_set_half(self, engine):
        """Test a setter wrapper receives the assigned value."""
        Token = make_token_class()
        engine.namespace["Token"] = Token
        seen = []

        def coerce(wrapped, token, value):
            seen.append(value)
            wrapped(bool(value))

        engine.register("my-pkg", "Token.visible#set", coerce)

        token = Token()
        token.visible = 0
        assert seen == [0]
        assert token._visible is False

    def test_halves_are_independent(self, engine):
        """Test a get-only wrapper leaves the original setter reachable."""
        Token = make_token_class()
        engine.namespace["Token"] = Token
        engine.register("my-pkg", "Token.visible", lambda wrapped, token: not wrapped())

        token = Token()
        token.visible = False
        assert token._visible is False
        assert token.visible is True

        registrations = engine.registrations("Token.visible")
        assert [r.half for r in registrations] == [AccessorHalf.GET]
        assert engine.registrations("Token.visible#set") == []

    def test_same_package_may_wrap_both_halves(self, engine):
        """Test one package can hold a get and a set registration."""
        Token = make_token_class()
        engine.namespace["Token"] = Token

        engine.register("my-pkg", "Token.visible", lambda wrapped, token: wrapped())
        engine.register("my-pkg", "Token.visible#set", lambda wrapped, token, v: wrapped(v))

        wrapper = engine.registry.find("Token.visible")
        assert len(wrapper.registrations()) == 2

    def test_setter_suffix_on_method_rejected(self, engine):
        """Test ``#set`` on a plain method is a configuration error."""
        Token = make_token_class()
        original = Token.__dict__["draw"]
        engine.namespace["Token"] = Token

        with pytest.raises(ConfigurationError, match="not an accessor"):
            engine.register("my-pkg", "Token.draw#set", lambda wrapped, token: wrapped())

        assert Token.__dict__["draw"] is original
        assert engine.registry.find("Token.draw") is None


class TestAccessorClassAccess:
    """Tests for accessing a wrapped accessor through its class."""

    def test_class_access_returns_descriptor(self, engine):
        """Test fget and fset on the class run the chains."""
        Token = make_token_class()
        engine.namespace["Token"] = Token
        calls = []

        def on_get(wrapped, token):
            calls.append("get")
            return wrapped()

        def on_set(wrapped, token, value):
            calls.append("set")
            return wrapped(value)

        engine.register("my-pkg", "Token.visible", on_get)
        engine.register("my-pkg", "Token.visible#set", on_set)

        descriptor = Token.visible
        assert isinstance(descriptor, SlotDescriptor)

        token = Token()
        descriptor.fset(token, False)
        assert descriptor.fget(token) is False
        assert calls == ["set", "get"]

    def test_property_restored(self, engine):
        """Test unregistering both halves puts the property back."""
        Token = make_token_class()
        original = Token.__dict__["visible"]
        engine.namespace["Token"] = Token

        engine.register("my-pkg", "Token.visible", lambda wrapped, token: wrapped())
        engine.register("my-pkg", "Token.visible#set", lambda wrapped, token, v: wrapped(v))

        engine.unregister("my-pkg", "Token.visible")
        assert isinstance(Token.__dict__["visible"], SlotDescriptor)

        engine.unregister("my-pkg", "Token.visible#set")
        assert Token.__dict__["visible"] is original


class TestAccessorEdgeCases:
    """Tests for read-only and inherited properties."""

    def test_read_only_property_setter_chain(self, engine):
        """Test a set chain on a read-only property ends in AttributeError."""

        class Token:
            @property
            def size(self):
                return 3

        engine.namespace["Token"] = Token
        seen = []

        def on_set(wrapped, token, value):
            seen.append(value)
            return wrapped(value)

        engine.register("my-pkg", "Token.size#set", on_set)

        token = Token()
        assert token.size == 3
        with pytest.raises(AttributeError):
            token.size = 4
        assert seen == [4]

    def test_inherited_property(self, engine):
        """Test wrapping a property a subclass inherits."""
        Token = make_token_class()

        class Tile(Token):
            pass

        engine.namespace["Tile"] = Tile
        engine.register("my-pkg", "Tile.visible", lambda wrapped, tile: f"tile:{wrapped()}")

        assert Tile().visible == "tile:True"
        assert Token().visible is True

        engine.unregister("my-pkg", "Tile.visible")
        assert "visible" not in Tile.__dict__

    def test_custom_data_descriptor(self, engine):
        """Test any data descriptor is wrapped as an accessor."""

        class Stored:
            def __set_name__(self, owner, name):
                self.key = "_" + name

            def __get__(self, instance, owner=None):
                if instance is None:
                    return self
                return getattr(instance, self.key, 0)

            def __set__(self, instance, value):
                setattr(instance, self.key, value)

        class Counter:
            value = Stored()

        engine.namespace["Counter"] = Counter
        engine.register("my-pkg", "Counter.value#set", lambda wrapped, c, v: wrapped(v * 2))

        counter = Counter()
        counter.value = 5
        assert counter.value == 10
        assert engine.registry.find("Counter.value").halves == (
            AccessorHalf.GET,
            AccessorHalf.SET,
        )
