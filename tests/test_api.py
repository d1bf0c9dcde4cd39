"""ChainWrap facade tests.

These tests verify:
- Lifecycle checks around ready() and ready_on()
- Argument and option validation of register()
- unregister() and unregister_all()
- ignore_conflicts() validation
- Version, fallback and debug properties
- The process-wide instance
"""

from __future__ import annotations

import logging
import types

import pytest

from chainwrap import (
    PACKAGE_ID,
    VERSION,
    ChainWrap,
    ConfigurationError,
    EngineSettings,
    EventBridge,
    PackageInfo,
    PerfMode,
    WrapperRegistry,
    WrapperType,
    default_package_lookup,
)


@pytest.fixture
def host(engine):
    class Token:
        def draw(self):
            return "drawn"

        def refresh(self):
            return "refreshed"

        @property
        def visible(self):
            return True

        @visible.setter
        def visible(self, value):
            pass

    engine.namespace["Token"] = Token
    return Token


def forward(wrapped, *args, **kwargs):
    return wrapped(*args[1:], **kwargs)


class TestLifecycle:
    """Tests for registration before and after ready()."""

    def test_register_before_ready_rejected(self):
        """Test packages cannot register until the engine is ready."""
        engine = ChainWrap()

        with pytest.raises(ConfigurationError, match="not ready"):
            engine.register("my-pkg", "Token.draw", forward)

    def test_engine_registers_only_before_ready(self):
        """Test the engine's own package registers before ready() only."""

        class Game:
            def setup(self):
                return "set up"

        engine = ChainWrap()
        engine.namespace["Game"] = Game
        try:
            engine.register(PACKAGE_ID, "Game.setup", forward, "WRAPPER")
            engine.ready()

            with pytest.raises(ConfigurationError, match="after it is ready"):
                engine.register(PACKAGE_ID, "Game.setup", forward, "WRAPPER")
        finally:
            engine.unwrap_all()

    def test_ready_is_idempotent(self):
        """Test ready() publishes its event once."""
        engine = ChainWrap()
        published = []
        engine.events.subscribe("chainwrap.ready", published.append)

        engine.ready()
        engine.ready()

        assert engine.is_ready is True
        assert published == [engine]

    def test_ready_on(self):
        """Test ready_on() makes the engine ready when the target first runs."""

        class Game:
            def setup(self, mode):
                return f"set up {mode}"

        engine = ChainWrap()
        engine.namespace["Game"] = Game
        try:
            engine.ready_on("Game.setup")
            assert engine.is_ready is False

            game = Game()
            assert game.setup("solo") == "set up solo"
            assert engine.is_ready is True
            assert game.setup("duo") == "set up duo"

            chain = engine.compiled_chain("Game.setup")
            assert chain.perf_mode is PerfMode.FAST
            assert chain.entries[0].type is WrapperType.WRAPPER
        finally:
            engine.unwrap_all()

    def test_ready_on_module_function(self):
        """Test ready_on() forwards the arguments of a receiver-less slot."""
        module = types.ModuleType("game")
        module.boot = lambda mode: f"booted {mode}"

        engine = ChainWrap()
        engine.namespace["game"] = module
        try:
            engine.ready_on("game.boot")
            assert module.boot("solo") == "booted solo"
            assert engine.is_ready is True
        finally:
            engine.unwrap_all()

    def test_engine_registrations_logged_only_in_debug(self, caplog):
        """Test the engine's own registrations are quiet unless debug is on."""

        class Game:
            def setup(self):
                return None

        for debug in (False, True):
            engine = ChainWrap(settings=EngineSettings(debug=debug))
            engine.namespace["Game"] = Game
            caplog.clear()
            with caplog.at_level(logging.INFO, logger="chainwrap"):
                engine.ready_on("Game.setup")
            engine.unwrap_all()

            logged = any("Registered a wrapper" in r.message for r in caplog.records)
            assert logged is debug


class TestRegisterValidation:
    """Tests for register() argument checks."""

    def test_type_is_case_insensitive(self, engine, host):
        """Test lower case type names are accepted."""
        engine.register("my-pkg", "Token.draw", forward, "wrapper")

        assert engine.registrations("Token.draw")[0].type is WrapperType.WRAPPER

    def test_invalid_type(self, engine, host):
        """Test an unknown type is rejected."""
        with pytest.raises(ConfigurationError, match="Invalid type"):
            engine.register("my-pkg", "Token.draw", forward, "BOGUS")
        with pytest.raises(ConfigurationError, match="Invalid type"):
            engine.register("my-pkg", "Token.draw", forward, 3)

        assert engine.registry.find("Token.draw") is None

    @pytest.mark.parametrize(
        "options",
        [
            {"chain": "yes"},
            {"perf_mode": "TURBO"},
            {"unknown": True},
            ["chain", True],
        ],
    )
    def test_invalid_options(self, engine, host, options):
        """Test malformed options are rejected."""
        with pytest.raises(ConfigurationError):
            engine.register("my-pkg", "Token.draw", forward, "MIXED", options)

    def test_wrapper_must_chain(self, engine, host):
        """Test a WRAPPER cannot opt out of receiving wrapped."""
        with pytest.raises(ConfigurationError, match="chain=True"):
            engine.register("my-pkg", "Token.draw", lambda token: None, "WRAPPER", {"chain": False})

    def test_chain_defaults(self, engine, host):
        """Test chain defaults to True except for OVERRIDE."""
        engine.register("p1", "Token.draw", forward)
        engine.register("p2", "Token.refresh", lambda token: "overridden", "OVERRIDE")

        assert engine.registrations("Token.draw")[0].chain is True
        assert engine.registrations("Token.refresh")[0].chain is False
        assert host().refresh() == "overridden"

    def test_non_callable_fn(self, engine, host):
        """Test fn must be callable."""
        with pytest.raises(ConfigurationError, match="must be a function"):
            engine.register("my-pkg", "Token.draw", "not a function")

    def test_non_string_target(self, engine, host):
        """Test target must be a string."""
        with pytest.raises(ConfigurationError, match="must be a string"):
            engine.register("my-pkg", host.draw, forward)

    @pytest.mark.parametrize("package_id", ["", "bad id!", None])
    def test_unknown_package(self, engine, host, package_id):
        """Test unidentifiable packages are rejected."""
        with pytest.raises(ConfigurationError):
            engine.register(package_id, "Token.draw", forward)

    def test_custom_package_lookup(self, host):
        """Test the package lookup seam decides which ids are known."""
        known = {"my-pkg": PackageInfo("my-pkg", title="My Package", kind="module")}
        engine = ChainWrap(package_lookup=known.get)
        engine.namespace["Token"] = host
        engine.settings.priorities["module:my-pkg"] = 3
        engine.ready()
        try:
            engine.register("my-pkg", "Token.draw", forward)
            assert engine.registrations("Token.draw")[0].priority == 3

            with pytest.raises(ConfigurationError, match="Could not identify package"):
                engine.register("other-pkg", "Token.draw", forward)
        finally:
            engine.unwrap_all()

    @pytest.mark.parametrize(
        ("target", "message"),
        [
            ("Token", "Invalid target"),
            ("Token.1draw", "Invalid target"),
            ("Token..draw", "Invalid target"),
            ("chainwrap.api", "chainwrap internals"),
            ("Missing.draw", "Could not find target"),
            ("Token.missing", "Could not find target"),
        ],
    )
    def test_invalid_targets(self, engine, host, target, message):
        """Test malformed and unresolvable targets are rejected."""
        with pytest.raises(ConfigurationError, match=message):
            engine.register("my-pkg", target, forward)

    def test_non_callable_slot(self, engine):
        """Test plain data attributes cannot be wrapped."""

        class Token:
            size = 3

        engine.namespace["Token"] = Token

        with pytest.raises(ConfigurationError, match="not callable"):
            engine.register("my-pkg", "Token.size", forward)


class TestUnregister:
    """Tests for unregister() and unregister_all()."""

    def test_unregister_unknown(self, engine, host):
        """Test unregistering nothing fails unless fail=False."""
        with pytest.raises(ConfigurationError, match="no such wrapper"):
            engine.unregister("my-pkg", "Token.draw")

        engine.register("other-pkg", "Token.draw", forward)
        with pytest.raises(ConfigurationError, match="no such wrapper"):
            engine.unregister("my-pkg", "Token.draw")

        assert engine.unregister("my-pkg", "Token.draw", fail=False) is None

    def test_unregister_setter_of_method(self, engine, host):
        """Test a setter suffix on a plain method is only an error when fail=True."""
        engine.register("my-pkg", "Token.draw", forward)

        assert engine.unregister("my-pkg", "Token.draw#set", fail=False) is None
        with pytest.raises(ConfigurationError, match="not an accessor"):
            engine.unregister("my-pkg", "Token.draw#set")

        assert [r.package_info.id for r in engine.registrations("Token.draw")] == ["my-pkg"]
        assert host().draw() == "drawn"

    def test_unregister_keeps_other_packages(self, engine, host):
        """Test unregistering one package leaves the rest of the chain."""
        engine.register("p1", "Token.draw", forward)
        engine.register("p2", "Token.draw", forward)

        engine.unregister("p1", "Token.draw")

        assert [r.package_info.id for r in engine.registrations("Token.draw")] == ["p2"]
        assert host().draw() == "drawn"

    def test_unregister_all(self, engine, host):
        """Test every registration of a package is removed, both accessor halves included."""
        original_draw = host.__dict__["draw"]
        engine.register("my-pkg", "Token.draw", forward)
        engine.register("my-pkg", "Token.visible", lambda wrapped, token: wrapped())
        engine.register("my-pkg", "Token.visible#set", lambda wrapped, token, v: wrapped(v))
        engine.register("other-pkg", "Token.refresh", forward)

        engine.unregister_all("my-pkg")

        assert host.__dict__["draw"] is original_draw
        assert isinstance(host.__dict__["visible"], property)
        assert [w.name for w in engine.registry] == ["Token.refresh"]

    def test_introspection_of_unknown_target(self, engine):
        """Test registrations() and compiled_chain() on an unwrapped target."""
        assert engine.registrations("Token.draw") == []
        assert engine.compiled_chain("Token.draw") is None


class TestIgnoreConflicts:
    """Tests for ignore_conflicts() validation."""

    def test_requires_ready(self):
        """Test ignore rules can only be declared once the engine is ready."""
        with pytest.raises(ConfigurationError, match="not ready"):
            ChainWrap().ignore_conflicts("my-pkg", "other-pkg", "Token.draw")

    def test_rule_stored(self, engine):
        """Test strings and lists are accepted and setter suffixes stripped."""
        engine.ignore_conflicts("my-pkg", ["p1", "p2"], ["Token.draw", "Token.visible#set"])

        (rule,) = engine.conflicts.rules
        assert rule.package_id == "my-pkg"
        assert rule.ignore_ids == ["p1", "p2"]
        assert rule.targets == ["Token.draw", "Token.visible"]
        assert rule.ignore_errors is False

    def test_unknown_ids_dropped(self, engine):
        """Test a call naming only unknown packages is a no-op."""
        engine.ignore_conflicts("my-pkg", ["bad id!"], "Token.draw")
        assert engine.conflicts.rules == []

        engine.ignore_conflicts("my-pkg", ["bad id!", "p1"], "Token.draw")
        assert engine.conflicts.rules[0].ignore_ids == ["p1"]

    @pytest.mark.parametrize(
        ("ignore_ids", "targets", "options"),
        [
            ([1], "Token.draw", None),
            ("p1", ["Token draw"], None),
            ("p1", 5, None),
            ("p1", "Token.draw", {"ignore_errors": "yes"}),
            ("p1", "Token.draw", {"ignore_warnings": True}),
        ],
    )
    def test_invalid_arguments(self, engine, ignore_ids, targets, options):
        """Test malformed ignore_conflicts() arguments are rejected."""
        with pytest.raises(ConfigurationError):
            engine.ignore_conflicts("my-pkg", ignore_ids, targets, options)


class TestProperties:
    """Tests for version, fallback and debug properties."""

    def test_version(self, engine):
        """Test version and versions agree."""
        assert engine.version == VERSION
        major, minor, patch, suffix, meta = engine.versions
        assert VERSION == f"{major}.{minor}.{patch}.{suffix}{meta}"

    def test_version_at_least(self, engine):
        """Test version comparison is most significant component first."""
        major, minor, patch, suffix, _ = engine.versions

        assert engine.version_at_least(major)
        assert engine.version_at_least(major, minor, patch, suffix)
        assert engine.version_at_least(major - 1, minor + 50)
        assert not engine.version_at_least(major, minor, patch + 1)
        assert not engine.version_at_least(major, minor + 1)
        assert not engine.version_at_least(major + 1)

    def test_is_fallback(self, engine):
        assert engine.is_fallback is False

    def test_debug(self, engine):
        """Test debug reads and writes the settings."""
        assert engine.debug is False
        engine.debug = True
        assert engine.settings.debug is True

        with pytest.raises(ConfigurationError, match="Invalid debug value"):
            engine.debug = "sometimes"

    def test_default_package_lookup(self):
        """Test the default lookup accepts well-formed ids only."""
        assert default_package_lookup(PACKAGE_ID).is_engine
        assert default_package_lookup("my-pkg").key == "package:my-pkg"
        assert default_package_lookup("my pkg") is None


class TestProcessInstance:
    """Tests for the process-wide engine."""

    def setup_method(self):
        """Start every test without a process-wide engine."""
        ChainWrap.reset_instance()
        WrapperRegistry.reset_instance()
        EventBridge.reset_instance()

    def teardown_method(self):
        """Drop the process-wide engine and its collaborators."""
        ChainWrap.reset_instance()
        WrapperRegistry.reset_instance()
        EventBridge.reset_instance()

    def test_instance_is_shared(self, monkeypatch):
        """Test instance() returns one engine wired to the shared singletons."""
        monkeypatch.delenv("CHAINWRAP_SETTINGS", raising=False)
        monkeypatch.setenv("CHAINWRAP_HIGH_PERFORMANCE", "true")

        engine = ChainWrap.instance()

        assert ChainWrap.instance() is engine
        assert engine.registry is WrapperRegistry.instance()
        assert engine.events is EventBridge.instance()
        assert engine.settings.high_performance is True

    def test_reset_instance_unwraps(self, monkeypatch):
        """Test reset_instance() restores what the shared engine wrapped."""
        monkeypatch.delenv("CHAINWRAP_SETTINGS", raising=False)

        class Token:
            def draw(self):
                return "drawn"

        original = Token.__dict__["draw"]
        engine = ChainWrap.instance()
        engine.namespace["Token"] = Token
        engine.ready()
        engine.register("my-pkg", "Token.draw", forward)

        ChainWrap.reset_instance()

        assert Token.__dict__["draw"] is original
        assert ChainWrap.instance() is not engine
