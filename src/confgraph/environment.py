"""Environment, property sources and resource loading.

The environment exposes the active profiles and an ordered list of named
property sources. Configuration units contribute further sources through
:func:`~confgraph.annotations.property_source`; sources earlier in the list
take precedence during lookup.
"""

import json
import logging
import tomllib
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping, Optional

import yaml

from confgraph.definitions import DefinitionStore

__all__ = [
    "PropertySource",
    "CompositePropertySource",
    "PropertySourceRegistry",
    "Environment",
    "ResourceLoader",
    "ResolutionContext",
]

logger = logging.getLogger(__name__)


class PropertySource:
    """A named mapping of property keys to values."""

    def __init__(self, name: str, properties: Mapping[str, Any]):
        self.name = name
        self.properties = properties

    def get(self, key: str) -> Optional[Any]:
        return self.properties.get(key)

    def __contains__(self, key: str) -> bool:
        return key in self.properties

    def __repr__(self):
        return f"{type(self).__name__}({self.name!r})"


class CompositePropertySource(PropertySource):
    """Several sources sharing one name; members are consulted in the order they were added."""

    def __init__(self, name: str, members: Iterable[PropertySource] = ()):
        super().__init__(name, {})
        self.members: list[PropertySource] = list(members)

    def add(self, source: PropertySource):
        self.members.append(source)

    def get(self, key: str) -> Optional[Any]:
        for member in self.members:
            if key in member:
                return member.get(key)
        return None

    def __contains__(self, key: str) -> bool:
        return any(key in member for member in self.members)


class PropertySourceRegistry:
    """Ordered collection of uniquely named property sources."""

    def __init__(self, sources: Iterable[PropertySource] = ()):
        self._sources: list[PropertySource] = []
        for source in sources:
            self.add_last(source)

    def add_last(self, source: PropertySource):
        self._remove_if_present(source.name)
        self._sources.append(source)

    def add_first(self, source: PropertySource):
        self._remove_if_present(source.name)
        self._sources.insert(0, source)

    def replace(self, name: str, source: PropertySource):
        index = self.names().index(name)
        self._sources[index] = source

    def get(self, name: str) -> Optional[PropertySource]:
        return next((s for s in self._sources if s.name == name), None)

    def names(self) -> list[str]:
        return [source.name for source in self._sources]

    def get_property(self, key: str, default: Any = None) -> Any:
        for source in self._sources:
            if key in source:
                return source.get(key)
        return default

    def _remove_if_present(self, name: str):
        self._sources = [s for s in self._sources if s.name != name]

    def __contains__(self, name: str) -> bool:
        return any(source.name == name for source in self._sources)

    def __iter__(self) -> Iterator[PropertySource]:
        return iter(list(self._sources))

    def __len__(self) -> int:
        return len(self._sources)


class Environment:
    """Active profiles plus the property sources visible to configuration units."""

    def __init__(
        self,
        active_profiles: Iterable[str] = (),
        property_sources: Optional[PropertySourceRegistry] = None,
    ):
        self.active_profiles = set(active_profiles)
        self.property_sources = property_sources or PropertySourceRegistry()

    def get_property(self, key: str, default: Any = None) -> Any:
        return self.property_sources.get_property(key, default)

    def accepts_profiles(self, stated: Iterable[str]) -> bool:
        """Check if stated profile requirements match the active profiles.

        - Normal profiles ("dev", "prod") must be active
        - Exclusion profiles ("!test") must NOT be active
        - No stated profiles matches any selection

        Example:
            >>> Environment({"dev"}).accepts_profiles(["dev"])      # True
            >>> Environment({"dev"}).accepts_profiles(["!test"])    # True
            >>> Environment({"test"}).accepts_profiles(["!test"])   # False
            >>> Environment({"dev"}).accepts_profiles(["prod"])     # False
        """
        stated = list(stated)
        provided = [p for p in stated if not p.startswith("!")]
        excluded = [p[1:] for p in stated if p.startswith("!")]

        return not any(e in self.active_profiles for e in excluded) and (
            not provided or any(p in self.active_profiles for p in provided)
        )


class ResourceLoader:
    """Load property resources from files or packages.

    Locations are file paths, optionally prefixed with ``file:``, or package
    resources written as ``package:some.package/relative/path``. The format is
    chosen by suffix: ``.json``, ``.toml``, ``.yaml``/``.yml``, anything else
    is read as ``key=value`` lines.
    """

    def __init__(self, base_path: Optional[Path] = None):
        self._base_path = base_path

    def load(self, location: str, encoding: Optional[str] = None) -> dict[str, Any]:
        """Read the properties at ``location``.

        Raises:
            FileNotFoundError: If there is no resource at ``location``.
            ValueError: If the resource cannot be parsed.
        """
        text = self.read_text(location, encoding)
        suffix = Path(location.split("/")[-1]).suffix.lower()
        if suffix == ".json":
            return _flatten(json.loads(text))
        if suffix == ".toml":
            return _flatten(tomllib.loads(text))
        if suffix in (".yaml", ".yml"):
            try:
                return _flatten(yaml.safe_load(text) or {})
            except yaml.YAMLError as ex:
                raise ValueError(f"Invalid YAML in {location}: {ex}") from ex
        return _parse_properties(text)

    def read_text(self, location: str, encoding: Optional[str] = None) -> str:
        encoding = encoding or "utf-8"
        if location.startswith("package:"):
            package, _, relative = location[len("package:"):].partition("/")
            try:
                return resources.files(package).joinpath(relative).read_text(encoding)
            except ModuleNotFoundError as ex:
                raise FileNotFoundError(f"No package {package} for resource {location}") from ex

        path = Path(location.removeprefix("file:"))
        if self._base_path is not None and not path.is_absolute():
            path = self._base_path / path
        return path.read_text(encoding)


def _flatten(values: Mapping[str, Any], prefix: str = "") -> dict[str, Any]:
    flattened = {}
    for key, value in values.items():
        full_key = f"{prefix}{key}"
        if isinstance(value, Mapping):
            flattened.update(_flatten(value, f"{full_key}."))
        else:
            flattened[full_key] = value
    return flattened


def _parse_properties(text: str) -> dict[str, str]:
    properties = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith(("#", "!")):
            continue
        separator = min((i for i in (line.find("="), line.find(":")) if i >= 0), default=-1)
        if separator < 0:
            properties[line] = ""
        else:
            properties[line[:separator].strip()] = line[separator + 1:].strip()
    return properties


@dataclass(frozen=True)
class ResolutionContext:
    """Collaborators handed to every selector and registrar when it is instantiated."""

    environment: Environment
    resource_loader: ResourceLoader
    store: DefinitionStore
