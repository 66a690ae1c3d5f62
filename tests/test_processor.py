from typing import final

import pytest

from confgraph.annotations import bean, component, configuration, import_resource, imports, order, profile
from confgraph.builders import make_store, resolve_configuration, validate
from confgraph.classifier import CONFIGURATION_KIND_ATTRIBUTE, ORDER_ATTRIBUTE
from confgraph.definitions import DefinitionStore
from confgraph.domain import Definition, UnitKind, identity_of
from confgraph.errors import ConfigurationError, DuplicateInvocationError, MalformedDirectiveError
from confgraph.problems import CollectingProblemReporter
from confgraph.processor import ConfigurationProcessor
from confgraph.selectors import ImportRegistrar
from confgraph.settings import ResolverSettings


@configuration()
class ResourceImportedConfig:
    @bean()
    def imported_bean(self):
        pass


@pytest.fixture
def settings() -> ResolverSettings:
    return ResolverSettings(deferred_imports=True, fail_fast=True, active_profiles=[])


@pytest.fixture
def processor(settings) -> ConfigurationProcessor:
    return ConfigurationProcessor(settings=settings)


def test_registrar_output_is_resolved_in_a_second_pass(processor):
    @configuration()
    class Extra:
        @bean()
        def extra_bean(self):
            pass

    class Registrar(ImportRegistrar):
        def register_definitions(self, importing, store):
            store.register("extra", Definition(Extra))

    @configuration()
    @imports(Registrar)
    class App:
        pass

    store = make_store(App)
    result = processor.process(store)

    assert result.passes == 2
    assert [unit.simple_name for unit in result.units] == ["App", "Extra"]
    assert store.get("extra_bean").factory_unit == identity_of(Extra)


def test_second_invocation_against_the_same_store_is_rejected(processor):
    @configuration()
    class App:
        pass

    store = make_store(App)
    processor.process(store)

    with pytest.raises(DuplicateInvocationError):
        processor.process(store)


def test_processor_can_process_another_store(processor):
    @configuration()
    class App:
        pass

    processor.process(make_store(App))
    result = processor.process(make_store(App))

    assert [unit.simple_name for unit in result.units] == ["App"]


def test_resolution_is_repeatable(settings):
    @configuration()
    class Common:
        @bean()
        def common_bean(self):
            pass

    @configuration()
    @imports(Common)
    class First:
        @bean()
        def first_bean(self):
            pass

    @configuration()
    @imports(Common)
    class Second:
        pass

    def snapshot():
        result = resolve_configuration(make_store(First, Second), settings=settings)
        return [
            (unit.identity, list(unit.imported_by), unit.bean_method_names())
            for unit in result.units
        ]

    assert snapshot() == snapshot()


def test_candidates_are_resolved_in_declared_order(processor):
    @configuration()
    @order(2)
    class Second:
        pass

    @configuration()
    class Unordered:
        pass

    @configuration()
    @order(1)
    class First:
        pass

    store = make_store(Unordered, Second, First)
    result = processor.process(store)

    assert [unit.simple_name for unit in result.units] == ["First", "Second", "Unordered"]
    assert store.get("first").attributes[ORDER_ATTRIBUTE] == 1
    assert store.get("unordered").attributes[CONFIGURATION_KIND_ATTRIBUTE] is UnitKind.FULL


def test_lite_units_are_resolved(processor):
    @component()
    class Helper:
        @bean()
        def helper_bean(self):
            pass

    class Factory:
        @bean()
        def factory_bean(self):
            pass

    class Plain:
        pass

    result = processor.process(make_store(Helper, Factory, Plain))

    assert [unit.simple_name for unit in result.units] == ["Helper", "Factory"]
    assert all(unit.kind is UnitKind.LITE for unit in result.units)


def test_imported_units_and_bean_methods_are_registered(processor):
    @configuration()
    class DataConfig:
        @bean(aliases=["ds"])
        def data_source(self):
            pass

    @configuration()
    @imports(DataConfig)
    class App:
        pass

    store = make_store(App)
    result = processor.process(store)

    imported = store.get(identity_of(DataConfig))
    assert imported.origin == "import"
    assert imported.attributes[CONFIGURATION_KIND_ATTRIBUTE] is UnitKind.FULL
    assert result.unit(identity_of(DataConfig)).definition_name == identity_of(DataConfig)
    assert store.get("ds").factory_method == "data_source"
    assert result.passes == 1


def test_profiles_gate_units(settings):
    @configuration()
    @profile("dev")
    class DevConfig:
        pass

    @configuration()
    @profile("!dev")
    class ProdConfig:
        pass

    result = resolve_configuration(make_store(DevConfig, ProdConfig), profiles={"dev"}, settings=settings)

    assert [unit.simple_name for unit in result.units] == ["DevConfig"]


def test_active_profiles_default_to_settings():
    @configuration()
    @profile("dev")
    class DevConfig:
        pass

    settings = ResolverSettings(active_profiles=["dev"])
    result = resolve_configuration(make_store(DevConfig), settings=settings)

    assert [unit.simple_name for unit in result.units] == ["DevConfig"]


def test_imported_resource_definitions_are_registered_and_resolved(processor, tmp_path):
    definitions = tmp_path / "definitions.properties"
    definitions.write_text(
        f"importedConfig={__name__}:ResourceImportedConfig\n"
        "orderedDict=collections:OrderedDict\n"
    )

    @configuration()
    @import_resource(str(definitions))
    class App:
        pass

    store = make_store(App)
    result = processor.process(store)

    assert store.get("orderedDict").origin == "resource"
    assert result.passes == 2
    assert [unit.simple_name for unit in result.units] == ["App", "ResourceImportedConfig"]
    assert "imported_bean" in store


def test_import_resource_without_locations_is_malformed(processor):
    @configuration()
    @import_resource()
    class App:
        pass

    with pytest.raises(MalformedDirectiveError, match="At least one resource location"):
        processor.process(make_store(App))


def test_import_resource_with_unknown_reader_fails(processor, tmp_path):
    @configuration()
    @import_resource(str(tmp_path / "beans.xml"), reader="xml")
    class App:
        pass

    with pytest.raises(ConfigurationError, match="No resource reader named 'xml'"):
        processor.process(make_store(App))


def test_missing_imported_resource_is_malformed(processor, tmp_path):
    @configuration()
    @import_resource(str(tmp_path / "missing.properties"))
    class App:
        pass

    with pytest.raises(MalformedDirectiveError, match="Failed to import definitions"):
        processor.process(make_store(App))


def test_final_configuration_class_fails_validation(processor):
    @final
    @configuration()
    class Sealed:
        pass

    with pytest.raises(ConfigurationError, match="may not be final"):
        processor.process(make_store(Sealed))


def test_final_bean_methods_are_collected_as_problems():
    @configuration()
    class App:
        @bean()
        @final
        def sealed_bean(self):
            pass

        @staticmethod
        @bean()
        def static_bean():
            pass

    reporter = CollectingProblemReporter()
    result = resolve_configuration(
        make_store(App), settings=ResolverSettings(fail_fast=False), problem_reporter=reporter
    )

    assert [problem.message for problem in reporter.errors] == [
        "Bean method 'sealed_bean' must not be final; remove the final modifier to allow 'App' to be extended."
    ]
    assert validate(result.units) == reporter.errors


def test_validation_problems_are_reported_once_across_passes():
    @configuration()
    class Extra:
        pass

    class Registrar(ImportRegistrar):
        def register_definitions(self, importing, store):
            store.register("extra", Definition(Extra))

    @configuration()
    @imports(Registrar)
    class App:
        @bean()
        @final
        def sealed_bean(self):
            pass

    reporter = CollectingProblemReporter()
    result = resolve_configuration(
        make_store(App), settings=ResolverSettings(fail_fast=False), problem_reporter=reporter
    )

    assert result.passes == 2
    assert [problem.unit for problem in reporter.errors] == [identity_of(App)]


def test_final_lite_units_are_not_validated():
    @final
    @component()
    class Sealed:
        pass

    result = resolve_configuration(make_store(Sealed), settings=ResolverSettings())

    assert validate(result.units) == []


def test_already_classified_definitions_are_not_resolved_again(processor):
    @configuration()
    class App:
        pass

    store = DefinitionStore()
    store.register("app", Definition(App, attributes={CONFIGURATION_KIND_ATTRIBUTE: UnitKind.FULL}))

    result = processor.process(store)

    assert result.units == []
    assert result.passes == 0
