"""Confgraph configuration graph resolution.

Confgraph resolves declaratively annotated configuration classes into a
complete graph of configuration units. Starting from root definitions, it
follows imports, selectors, registrars, nested member classes, superclasses
and interfaces, collects bean methods and property sources, and repeats until
no new configuration units appear.

Key Features:
    - Full and lite configuration units, classified from annotations
    - Plain, selector, deferred-selector and registrar imports
    - Circular import detection with the offending import chain
    - Profile and custom conditions, evaluated per phase
    - Property sources loaded from properties, JSON, TOML and YAML resources
    - Fixed-point resolution over definitions registered along the way

Basic Usage:
    >>> from confgraph.annotations import bean, configuration, imports
    >>> from confgraph.builders import make_store, resolve_configuration
    >>>
    >>> @configuration()
    ... class DataConfig:
    ...     @bean()
    ...     def data_source(self):
    ...         ...
    >>>
    >>> @configuration()
    ... @imports(DataConfig)
    ... class AppConfig:
    ...     pass
    >>>
    >>> result = resolve_configuration(make_store(AppConfig), profiles={"dev"})
    >>> [unit.simple_name for unit in result.units]   # ["DataConfig", "AppConfig"]

The framework consists of several core modules:
    - annotations: Markers declaring units, imports, bean methods and conditions
    - builders: High-level resolution functions
    - processor: The fixed-point driver over a definition store
    - resolver: Expansion of units into their full closure
    - materializer: Registration of definitions for resolved units
    - errors: Framework-specific exceptions
"""
