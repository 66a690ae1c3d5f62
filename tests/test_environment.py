import pytest

from confgraph.annotations import configuration, property_source
from confgraph.builders import make_store, resolve_configuration
from confgraph.environment import (
    CompositePropertySource,
    Environment,
    PropertySource,
    PropertySourceRegistry,
    ResourceLoader,
)
from confgraph.errors import MalformedDirectiveError
from confgraph.problems import CollectingProblemReporter
from confgraph.settings import ResolverSettings


@pytest.fixture
def settings() -> ResolverSettings:
    return ResolverSettings(deferred_imports=True, fail_fast=True, active_profiles=[])


@pytest.fixture
def properties_file(tmp_path):
    path = tmp_path / "app.properties"
    path.write_text("# application defaults\ngreeting = hello\nname=first\nflag\n")
    return path


@pytest.fixture
def yaml_file(tmp_path):
    path = tmp_path / "app.yaml"
    path.write_text("name: second\ndatabase:\n  url: sqlite://\n  pool: 5\n")
    return path


@pytest.mark.parametrize(
    "stated,active,accepted",
    [
        ([], set(), True),
        (["dev"], {"dev"}, True),
        (["dev"], {"prod"}, False),
        (["!test"], {"dev"}, True),
        (["!test"], {"test"}, False),
        (["dev", "prod"], {"prod"}, True),
        (["dev", "!test"], {"dev", "test"}, False),
    ],
)
def test_accepts_profiles(stated, active, accepted):
    assert Environment(active).accepts_profiles(stated) is accepted


def test_registry_lookup_prefers_earlier_sources():
    registry = PropertySourceRegistry(
        [PropertySource("first", {"key": "one"}), PropertySource("second", {"key": "two", "other": "x"})]
    )

    assert registry.get_property("key") == "one"
    assert registry.get_property("other") == "x"
    assert registry.get_property("missing", "default") == "default"


def test_registry_keeps_names_unique():
    registry = PropertySourceRegistry([PropertySource("a", {}), PropertySource("b", {})])

    registry.add_first(PropertySource("b", {"key": "new"}))
    registry.add_last(PropertySource("a", {}))

    assert registry.names() == ["b", "a"]
    assert registry.get("b").get("key") == "new"


def test_composite_consults_members_in_order():
    composite = CompositePropertySource("shared", [PropertySource("one", {"key": "first"})])
    composite.add(PropertySource("two", {"key": "second", "extra": "value"}))

    assert composite.get("key") == "first"
    assert composite.get("extra") == "value"
    assert "extra" in composite
    assert "missing" not in composite


def test_loader_reads_properties(properties_file):
    properties = ResourceLoader().load(str(properties_file))

    assert properties == {"greeting": "hello", "name": "first", "flag": ""}


def test_loader_flattens_nested_yaml(yaml_file):
    properties = ResourceLoader().load(f"file:{yaml_file}")

    assert properties == {"name": "second", "database.url": "sqlite://", "database.pool": 5}


def test_loader_reads_json_and_toml_relative_to_base_path(tmp_path):
    (tmp_path / "app.json").write_text('{"server": {"port": 8080}}')
    (tmp_path / "app.toml").write_text('[server]\nhost = "localhost"\n')
    loader = ResourceLoader(tmp_path)

    assert loader.load("app.json") == {"server.port": 8080}
    assert loader.load("app.toml") == {"server.host": "localhost"}


def test_loader_rejects_invalid_yaml(tmp_path):
    path = tmp_path / "broken.yaml"
    path.write_text("key: [unterminated\n")

    with pytest.raises(ValueError, match="Invalid YAML"):
        ResourceLoader().load(str(path))


def test_loader_reports_missing_packages_as_missing_resources():
    with pytest.raises(FileNotFoundError):
        ResourceLoader().load("package:confgraph_no_such_package/app.properties")


def test_property_sources_earlier_declarations_win(settings, properties_file, yaml_file):
    @configuration()
    @property_source(str(properties_file), str(yaml_file))
    class App:
        pass

    result = resolve_configuration(make_store(App), settings=settings)

    assert result.property_sources.names() == [str(properties_file), str(yaml_file)]
    assert result.property_sources.get_property("name") == "first"
    assert result.property_sources.get_property("database.url") == "sqlite://"


def test_named_property_sources_merge_into_a_composite(settings, properties_file, yaml_file):
    @configuration()
    @property_source(str(properties_file), name="shared")
    class First:
        pass

    @configuration()
    @property_source(str(yaml_file), name="shared")
    class Second:
        pass

    result = resolve_configuration(make_store(First, Second), settings=settings)

    shared = result.property_sources.get("shared")
    assert isinstance(shared, CompositePropertySource)
    assert len(shared.members) == 2
    assert result.property_sources.get_property("name") == "first"
    assert result.property_sources.get_property("database.pool") == 5


def test_same_location_is_loaded_once(settings, properties_file):
    @configuration()
    @property_source(str(properties_file))
    class First:
        pass

    @configuration()
    @property_source(str(properties_file))
    class Second:
        pass

    result = resolve_configuration(make_store(First, Second), settings=settings)

    assert len(result.property_sources) == 1
    assert not isinstance(result.property_sources.get(str(properties_file)), CompositePropertySource)


def test_property_sources_extend_the_supplied_environment(settings, properties_file):
    @configuration()
    @property_source(str(properties_file))
    class App:
        pass

    environment = Environment(property_sources=PropertySourceRegistry([PropertySource("system", {"name": "sys"})]))
    resolve_configuration(make_store(App), settings=settings, environment=environment)

    assert environment.property_sources.names() == ["system", str(properties_file)]
    assert environment.get_property("name") == "sys"
    assert environment.get_property("greeting") == "hello"


def test_missing_optional_property_source_is_ignored(settings, tmp_path):
    @configuration()
    @property_source(str(tmp_path / "missing.properties"), ignore_resource_not_found=True)
    class App:
        pass

    result = resolve_configuration(make_store(App), settings=settings)

    assert len(result.property_sources) == 0


def test_missing_property_source_is_malformed(settings, tmp_path):
    @configuration()
    @property_source(str(tmp_path / "missing.properties"))
    class App:
        pass

    with pytest.raises(MalformedDirectiveError, match="not resolvable"):
        resolve_configuration(make_store(App), settings=settings)


def test_property_source_without_locations_is_malformed(settings):
    @configuration()
    @property_source()
    class App:
        pass

    reporter = CollectingProblemReporter()
    resolve_configuration(make_store(App), settings=settings, problem_reporter=reporter)

    assert [problem.error_type for problem in reporter.errors] == [MalformedDirectiveError]
    assert reporter.errors[0].message == "At least one property source location is required"


def test_settings_are_read_from_the_environment(monkeypatch):
    monkeypatch.setenv("CONFGRAPH_FAIL_FAST", "false")
    monkeypatch.setenv("CONFGRAPH_DEFERRED_IMPORTS", "0")
    monkeypatch.setenv("CONFGRAPH_ACTIVE_PROFILES", '["dev", "local"]')

    settings = ResolverSettings()

    assert settings.fail_fast is False
    assert settings.deferred_imports is False
    assert settings.active_profiles == ["dev", "local"]


def test_settings_defaults(monkeypatch):
    for name in ("CONFGRAPH_FAIL_FAST", "CONFGRAPH_DEFERRED_IMPORTS", "CONFGRAPH_ACTIVE_PROFILES"):
        monkeypatch.delenv(name, raising=False)

    settings = ResolverSettings()

    assert settings.fail_fast is True
    assert settings.deferred_imports is True
    assert settings.active_profiles == []


def test_property_source_listing_is_repeatable(settings, properties_file, yaml_file):
    @configuration()
    @property_source(str(yaml_file), name="shared")
    class First:
        pass

    @configuration()
    @property_source(str(properties_file), str(properties_file), name="shared")
    @property_source(str(yaml_file))
    class Second:
        pass

    def listing():
        result = resolve_configuration(make_store(First, Second), settings=settings)
        return [
            (source.name, [member.properties for member in getattr(source, "members", [source])])
            for source in result.property_sources
        ]

    assert listing() == listing()
