"""
Provider wiring: builds the transport client once and hands it to every
resource and data source it instantiates.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from .core.client import ClientOptions, MetabaseClient
from .core.config import AppConfig
from .resources.base import LIFECYCLE_OPERATIONS, Resource
from .resources.registry import (
    get_data_source_spec,
    get_resource_spec,
    iter_data_source_specs,
    iter_resource_specs,
)

log = logging.getLogger(__name__)


class ProviderError(RuntimeError):
    pass


def check_resource_conformance(cls: type) -> None:
    """Registration-time check that a class offers the full lifecycle."""
    missing = [op for op in LIFECYCLE_OPERATIONS if not callable(getattr(cls, op, None))]
    if missing:
        raise ProviderError(f"{cls.__name__} does not implement: {', '.join(missing)}")


def build_client(cfg: AppConfig) -> MetabaseClient:
    return MetabaseClient(
        cfg.metabase.host,
        api_key=cfg.metabase.api_key,
        username=cfg.metabase.username,
        password=cfg.metabase.password,
        options=ClientOptions(
            verify=bool(cfg.http.verify_tls),
            timeout_sec=float(cfg.http.timeout_sec),
            headers=dict(cfg.metabase.headers or {}),
        ),
    )


class MetabaseProvider:
    """Entry point for an orchestrator: resources and data sources share one client."""

    def __init__(self, client: MetabaseClient, *, logger: Optional[logging.LoggerAdapter] = None) -> None:
        self.client = client
        self.log = logger or log
        self._resources: Dict[str, Any] = {}
        self._data_sources: Dict[str, Any] = {}

    @classmethod
    def configure(cls, cfg: AppConfig, *, logger: Optional[logging.LoggerAdapter] = None) -> "MetabaseProvider":
        client = build_client(cfg)
        (logger or log).info("Configured Metabase client for %s", cfg.metabase.host)
        return cls(client, logger=logger)

    def resource(self, key: str) -> Resource:
        if key not in self._resources:
            spec = get_resource_spec(key)
            cls = spec.load_class()
            check_resource_conformance(cls)
            self._resources[key] = cls(self.client, logger=self.log)
        return self._resources[key]

    def data_source(self, key: str) -> Any:
        if key not in self._data_sources:
            cls = get_data_source_spec(key).load_class()
            if not callable(getattr(cls, "read", None)):
                raise ProviderError(f"{cls.__name__} does not implement: read")
            self._data_sources[key] = cls(self.client, logger=self.log)
        return self._data_sources[key]

    def resources(self) -> Dict[str, Resource]:
        return {spec.key: self.resource(spec.key) for spec in iter_resource_specs()}

    def data_sources(self) -> Dict[str, Any]:
        return {spec.key: self.data_source(spec.key) for spec in iter_data_source_specs()}
