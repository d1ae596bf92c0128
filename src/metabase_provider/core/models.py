"""
Domain objects exchanged with the Metabase API.

`from_api` parses the JSON the API returns; `to_payload` builds the JSON
bodies sent on create/update. Unknown keys in API responses are ignored.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

ENGINE_ATHENA = "athena"
ENGINE_REDSHIFT = "redshift"
ENGINE_BIGQUERY = "bigquery"
ENGINE_DRUID = "druid"
ENGINE_GOOGLE_ANALYTICS = "googleanalytics"
ENGINE_H2 = "h2"
ENGINE_MONGO = "mongo"
ENGINE_MYSQL = "mysql"
ENGINE_ORACLE = "oracle"
ENGINE_POSTGRES = "postgres"
ENGINE_PRESTO = "presto-jdbc"
ENGINE_PRESTO_DEPRECATED = "presto"
ENGINE_SNOWFLAKE = "snowflake"
ENGINE_SPARKSQL = "sparksql"
ENGINE_SQLSERVER = "sqlserver"
ENGINE_SQLITE = "sqlite"

ALLOWED_ENGINES = (
    ENGINE_ATHENA,
    ENGINE_REDSHIFT,
    ENGINE_BIGQUERY,
    ENGINE_DRUID,
    ENGINE_GOOGLE_ANALYTICS,
    ENGINE_H2,
    ENGINE_MONGO,
    ENGINE_MYSQL,
    ENGINE_ORACLE,
    ENGINE_POSTGRES,
    ENGINE_PRESTO,
    ENGINE_PRESTO_DEPRECATED,
    ENGINE_SNOWFLAKE,
    ENGINE_SPARKSQL,
    ENGINE_SQLSERVER,
    ENGINE_SQLITE,
)

SCHEDULE_METADATA_SYNC = "metadata_sync"
SCHEDULE_CACHE_FIELD_VALUES = "cache_field_values"
KNOWN_SCHEDULES = (SCHEDULE_METADATA_SYNC, SCHEDULE_CACHE_FIELD_VALUES)


# ---------- Databases ----------

@dataclass
class ScheduleSettings:
    type: str
    day: Optional[str] = None
    frame: Optional[str] = None
    hour: Optional[int] = None
    minute: Optional[int] = None

    @classmethod
    def from_api(cls, raw: Optional[Dict[str, Any]]) -> Optional["ScheduleSettings"]:
        if raw is None:
            return None
        return cls(
            type=str(raw.get("schedule_type") or ""),
            day=raw.get("schedule_day"),
            frame=raw.get("schedule_frame"),
            hour=raw.get("schedule_hour"),
            minute=raw.get("schedule_minute"),
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "schedule_type": self.type,
            "schedule_day": self.day,
            "schedule_frame": self.frame,
            "schedule_hour": self.hour,
            "schedule_minute": self.minute,
        }


@dataclass
class Database:
    id: int
    name: str
    engine: str
    details: Optional[Dict[str, Any]] = None
    schedules: Optional[Dict[str, Optional[ScheduleSettings]]] = None
    features: List[str] = field(default_factory=list)
    description: Optional[str] = None
    caveats: Optional[str] = None
    points_of_interest: Optional[str] = None
    timezone: Optional[str] = None
    auto_run_queries: bool = False
    refingerprint: Optional[bool] = None
    is_full_sync: bool = False
    is_on_demand: bool = False
    is_sample: bool = False
    cache_ttl: Optional[int] = None
    settings: Optional[Dict[str, Any]] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "Database":
        schedules_raw = raw.get("schedules")
        schedules: Optional[Dict[str, Optional[ScheduleSettings]]] = None
        if isinstance(schedules_raw, dict):
            schedules = {k: ScheduleSettings.from_api(v) for k, v in schedules_raw.items()}
        return cls(
            id=int(raw["id"]),
            name=str(raw.get("name") or ""),
            engine=str(raw.get("engine") or ""),
            details=raw.get("details"),
            schedules=schedules,
            features=list(raw.get("features") or []),
            description=raw.get("description"),
            caveats=raw.get("caveats"),
            points_of_interest=raw.get("points_of_interest"),
            timezone=raw.get("timezone"),
            auto_run_queries=bool(raw.get("auto_run_queries", False)),
            refingerprint=raw.get("refingerprint"),
            is_full_sync=bool(raw.get("is_full_sync", False)),
            is_on_demand=bool(raw.get("is_on_demand", False)),
            is_sample=bool(raw.get("is_sample", False)),
            cache_ttl=raw.get("cache_ttl"),
            settings=raw.get("settings"),
            created_at=raw.get("created_at"),
            updated_at=raw.get("updated_at"),
        )


@dataclass
class DatabaseRequest:
    """Full-replace body for POST /database and PUT /database/:id."""
    name: str
    engine: str
    details: Dict[str, Any]
    schedules: Optional[Dict[str, Optional[ScheduleSettings]]] = None
    refingerprint: Optional[bool] = None
    caveats: Optional[str] = None
    points_of_interest: Optional[str] = None
    auto_run_queries: Optional[bool] = None
    cache_ttl: Optional[int] = None
    settings: Optional[Dict[str, Any]] = None

    def to_payload(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "name": self.name,
            "engine": self.engine,
            "details": dict(self.details),
        }
        if self.schedules is not None:
            body["schedules"] = {
                k: (v.to_payload() if v is not None else None) for k, v in self.schedules.items()
            }
        optional = {
            "refingerprint": self.refingerprint,
            "caveats": self.caveats,
            "points_of_interest": self.points_of_interest,
            "auto_run_queries": self.auto_run_queries,
            "cache_ttl": self.cache_ttl,
            "settings": self.settings,
        }
        body.update({k: v for k, v in optional.items() if v is not None})
        return body


# ---------- Permissions groups ----------

@dataclass
class PermissionsGroup:
    id: int
    name: str
    member_count: Optional[int] = None

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "PermissionsGroup":
        return cls(id=int(raw["id"]), name=str(raw.get("name") or ""), member_count=raw.get("member_count"))


@dataclass
class PermissionsGroupRequest:
    name: str

    def to_payload(self) -> Dict[str, Any]:
        return {"name": self.name}


# ---------- Users ----------

@dataclass(frozen=True)
class GroupMembership:
    id: int

    def to_payload(self) -> Dict[str, Any]:
        return {"id": self.id}


def _memberships_from_api(raw: Dict[str, Any]) -> List[GroupMembership]:
    # Newer releases return objects, older ones a bare `group_ids` list.
    items = raw.get("user_group_memberships")
    if isinstance(items, list):
        return [GroupMembership(int(m["id"])) for m in items if isinstance(m, dict) and "id" in m]
    ids = raw.get("group_ids")
    if isinstance(ids, list):
        return [GroupMembership(int(g)) for g in ids]
    return []


@dataclass
class User:
    id: int
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    common_name: Optional[str] = None
    locale: Optional[str] = None
    group_memberships: List[GroupMembership] = field(default_factory=list)
    google_auth: bool = False
    ldap_auth: bool = False
    is_active: bool = True
    is_installer: Optional[bool] = None
    is_qbnewb: bool = False
    is_superuser: bool = False
    has_invited_second_user: bool = False
    has_question_and_dashboard: bool = False
    date_joined: Optional[str] = None
    first_login: Optional[str] = None
    last_login: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "User":
        return cls(
            id=int(raw["id"]),
            email=str(raw.get("email") or ""),
            first_name=raw.get("first_name"),
            last_name=raw.get("last_name"),
            common_name=raw.get("common_name"),
            locale=raw.get("locale"),
            group_memberships=_memberships_from_api(raw),
            google_auth=bool(raw.get("google_auth", False)),
            ldap_auth=bool(raw.get("ldap_auth", False)),
            is_active=bool(raw.get("is_active", True)),
            is_installer=raw.get("is_installer"),
            is_qbnewb=bool(raw.get("is_qbnewb", False)),
            is_superuser=bool(raw.get("is_superuser", False)),
            has_invited_second_user=bool(raw.get("has_invited_second_user", False)),
            has_question_and_dashboard=bool(raw.get("has_question_and_dashboard", False)),
            date_joined=raw.get("date_joined"),
            first_login=raw.get("first_login"),
            last_login=raw.get("last_login"),
            updated_at=raw.get("updated_at"),
        )


def _memberships_payload(memberships: Optional[List[GroupMembership]]) -> Optional[List[Dict[str, Any]]]:
    if memberships is None:
        return None
    return [m.to_payload() for m in memberships]


@dataclass
class UserCreateRequest:
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    group_memberships: Optional[List[GroupMembership]] = None

    def to_payload(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"email": self.email}
        if self.first_name is not None:
            body["first_name"] = self.first_name
        if self.last_name is not None:
            body["last_name"] = self.last_name
        if self.group_memberships is not None:
            body["user_group_memberships"] = _memberships_payload(self.group_memberships)
        return body


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


# Marks a field left out of an update body; `None` is sent as JSON null.
UNSET: Any = _Unset()


@dataclass
class UserUpdateRequest:
    """Full-replace body for PUT /user/:id; only UNSET fields are left out."""
    email: Any = UNSET
    first_name: Any = UNSET
    last_name: Any = UNSET
    locale: Any = UNSET
    is_superuser: Any = UNSET
    group_memberships: Optional[List[GroupMembership]] = None

    def to_payload(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {}
        for key in ("email", "first_name", "last_name", "locale", "is_superuser"):
            value = getattr(self, key)
            if value is not UNSET:
                body[key] = value
        if self.group_memberships is not None:
            body["user_group_memberships"] = _memberships_payload(self.group_memberships)
        return body
