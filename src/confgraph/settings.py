"""Settings for configuration resolution.

Values are read from ``CONFGRAPH_``-prefixed environment variables, e.g.
``CONFGRAPH_ACTIVE_PROFILES='["dev"]'`` or ``CONFGRAPH_FAIL_FAST=false``.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = ["ResolverSettings"]


class ResolverSettings(BaseSettings):
    """Defaults used by :class:`~confgraph.processor.ConfigurationProcessor`.

    Attributes:
        deferred_imports: Queue deferred selectors until the end of each pass.
            When disabled they run as soon as they are imported.
        fail_fast: Abort on the first reported problem. When disabled, problems
            are collected and resolution carries on.
        active_profiles: Profiles active when no environment is supplied.
    """

    model_config = SettingsConfigDict(
        env_prefix="CONFGRAPH_",
        extra="ignore",
    )

    deferred_imports: bool = True
    fail_fast: bool = True
    active_profiles: list[str] = Field(default_factory=list)
