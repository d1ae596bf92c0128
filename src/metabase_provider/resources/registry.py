"""Registry of managed resource kinds and read-only data sources."""

from __future__ import annotations

from dataclasses import dataclass
from importlib import import_module
from typing import Dict, Iterable


@dataclass(frozen=True)
class ResourceSpec:
    key: str                # short name used on the command line
    type_name: str          # provider type name (metabase_<kind>)
    help: str               # argparse help
    module: str             # module path
    class_name: str         # class symbol in module

    def load_class(self):
        mod = import_module(self.module)
        return getattr(mod, self.class_name)


_RESOURCES: Dict[str, ResourceSpec] = {
    "database": ResourceSpec(
        key="database",
        type_name="metabase_database",
        help="Database connection",
        module="metabase_provider.resources.database",
        class_name="DatabaseResource",
    ),
    "permissions_group": ResourceSpec(
        key="permissions_group",
        type_name="metabase_permissions_group",
        help="Permissions (user) group",
        module="metabase_provider.resources.permissions_group",
        class_name="PermissionsGroupResource",
    ),
    "user": ResourceSpec(
        key="user",
        type_name="metabase_user",
        help="User account",
        module="metabase_provider.resources.user",
        class_name="UserResource",
    ),
}

_DATA_SOURCES: Dict[str, ResourceSpec] = {
    "database": ResourceSpec(
        key="database",
        type_name="metabase_database",
        help="Look up a database (public details only)",
        module="metabase_provider.resources.data_sources",
        class_name="DatabaseDataSource",
    ),
    "permissions_group": ResourceSpec(
        key="permissions_group",
        type_name="metabase_permissions_group",
        help="Look up a permissions group",
        module="metabase_provider.resources.data_sources",
        class_name="PermissionsGroupDataSource",
    ),
    "user": ResourceSpec(
        key="user",
        type_name="metabase_user",
        help="Look up a user",
        module="metabase_provider.resources.data_sources",
        class_name="UserDataSource",
    ),
    "current_user": ResourceSpec(
        key="current_user",
        type_name="metabase_current_user",
        help="Look up the authenticated user",
        module="metabase_provider.resources.data_sources",
        class_name="CurrentUserDataSource",
    ),
}


def get_resource_spec(key: str) -> ResourceSpec:
    try:
        return _RESOURCES[key]
    except KeyError:
        raise KeyError(f"Unknown resource '{key}'. Known: {', '.join(sorted(_RESOURCES))}") from None


def get_data_source_spec(key: str) -> ResourceSpec:
    try:
        return _DATA_SOURCES[key]
    except KeyError:
        raise KeyError(f"Unknown data source '{key}'. Known: {', '.join(sorted(_DATA_SOURCES))}") from None


def iter_resource_specs() -> Iterable[ResourceSpec]:
    return _RESOURCES.values()


def iter_data_source_specs() -> Iterable[ResourceSpec]:
    return _DATA_SOURCES.values()
