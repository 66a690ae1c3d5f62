import sys
import textwrap

import pytest

from confgraph.annotations import component_scan, configuration
from confgraph.builders import make_store, resolve_configuration
from confgraph.domain import Definition
from confgraph.errors import ConfigurationError, MalformedDirectiveError
from confgraph.scanning import default_definition_name
from confgraph.settings import ResolverSettings

PACKAGE = "confgraph_scan_fixture"

MODULES = {
    "__init__.py": "",
    "services.py": """
        from confgraph.annotations import component

        @component()
        class UserService:
            pass

        @component("repo")
        class Repository:
            pass

        class Plain:
            pass
    """,
    "config.py": """
        from confgraph.annotations import bean, configuration

        @configuration()
        class ScannedConfig:
            @bean()
            def clock(self):
                pass
    """,
    "sub/__init__.py": "",
    "sub/dev.py": """
        from confgraph.annotations import component, profile

        @component()
        @profile("dev")
        class DevOnly:
            pass
    """,
}


@pytest.fixture
def scan_package(tmp_path, monkeypatch):
    root = tmp_path / PACKAGE
    for relative, source in MODULES.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(source))
    monkeypatch.syspath_prepend(str(tmp_path))

    yield PACKAGE

    for name in [name for name in sys.modules if name.split(".")[0] == PACKAGE]:
        del sys.modules[name]


@pytest.fixture
def settings() -> ResolverSettings:
    return ResolverSettings(deferred_imports=True, fail_fast=True, active_profiles=[])


def test_default_definition_names():
    class UserService:
        pass

    class URLMapper:
        pass

    assert default_definition_name(UserService) == "userService"
    assert default_definition_name(URLMapper) == "URLMapper"


def test_scan_registers_components_and_resolves_them(scan_package, settings):
    @configuration()
    @component_scan(scan_package, lazy_init=True)
    class App:
        pass

    store = make_store(App)
    result = resolve_configuration(store, settings=settings)

    assert [unit.simple_name for unit in result.units] == ["ScannedConfig", "Repository", "UserService", "App"]
    assert store.names() == ["app", "scannedConfig", "repo", "userService", "clock"]
    assert store.get("repo").origin == "scan"
    assert store.get("repo").attributes["lazy_init"] is True
    assert result.unit(f"{scan_package}.config.ScannedConfig").definition_name == "scannedConfig"
    assert result.passes == 1


def test_scan_applies_conditions_of_discovered_classes(scan_package, settings):
    @configuration()
    @component_scan(scan_package)
    class App:
        pass

    store = make_store(App)
    resolve_configuration(store, profiles={"dev"}, settings=settings)

    assert "devOnly" in store


def test_scan_name_conflicts_are_rejected(scan_package, settings):
    @configuration()
    @component_scan(scan_package)
    class App:
        pass

    store = make_store(App)
    store.register("userService", Definition("confgraph_elsewhere:UserService"))

    with pytest.raises(ConfigurationError, match="conflicts with existing definition"):
        resolve_configuration(store, settings=settings)


def test_scan_of_missing_package_is_malformed(settings):
    @configuration()
    @component_scan("confgraph_no_such_package")
    class App:
        pass

    with pytest.raises(MalformedDirectiveError, match="Cannot scan package"):
        resolve_configuration(make_store(App), settings=settings)
