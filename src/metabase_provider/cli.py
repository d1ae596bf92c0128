"""
Command-line interface for metabase-provider (minimal orchestrator).

Usage (examples):
  - Offline validation of a declared resource:
      mbprov validate --resource database --config ./db.yml

  - Create or update a resource, persisting state to a JSON file:
      mbprov apply --resource user --config ./alice.yml --state ./state/alice.json \
        --host http://127.0.0.1:3000 --username admin@example.com --password ...

  - Refresh / destroy / import / lookup:
      mbprov refresh --resource user --state ./state/alice.json
      mbprov destroy --resource user --state ./state/alice.json
      mbprov import  --resource database --id 3 --state ./state/db3.json
      mbprov lookup  --data-source current_user
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

import yaml

from .core.config import AppConfig, ConfigError, load_config
from .core.diagnostics import Diagnostics
from .core.errors import TransportError
from .core.logging_setup import build_logger
from .core.values import StateModel
from .provider import MetabaseProvider
from .resources.base import LifecycleResponse
from .resources.registry import iter_data_source_specs, iter_resource_specs

EXIT_OK = 0
EXIT_ERROR = 2


# ---------- Files ----------

def _read_declaration(path: str) -> Dict[str, Any]:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with p.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Resource config must be a mapping: {path}")
    return data


def _read_state(path: str) -> Optional[Dict[str, Any]]:
    p = Path(path)
    if not p.exists():
        return None
    with p.open("r", encoding="utf-8") as f:
        doc = json.load(f)
    return doc.get("state") if isinstance(doc, dict) else None


def _write_state(path: str, resource: str, state: StateModel) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    doc = {"resource": resource, "state": state.to_dict()}
    tmp = p.with_suffix(p.suffix + ".tmp")
    tmp.write_text(json.dumps(doc, indent=2, sort_keys=True), encoding="utf-8")
    os.replace(tmp, p)


def _remove_state(path: str) -> None:
    p = Path(path)
    if p.exists():
        p.unlink()


def _public_view(resource: Any, state: StateModel) -> Dict[str, Any]:
    out = state.to_dict()
    for name in resource.schema.sensitive_names:
        if name in out and out[name] is not None:
            out[name] = "(sensitive)"
    return out


# ---------- Reporting ----------

def _print_diagnostics(diags: Iterable[Any], logger: Any) -> None:
    for d in diags:
        line = str(d)
        logger.debug("Diagnostic: %s", line)
        print(line, file=sys.stderr)


def _finish(status: str, res: LifecycleResponse, logger: Any, *, extra_diags: Optional[Diagnostics] = None) -> int:
    diags = Diagnostics()
    diags.extend(extra_diags or [])
    diags.extend(res.diagnostics)
    _print_diagnostics(diags, logger)
    if diags.has_error():
        logger.info("Result: ERROR")
        print("ERROR")
        return EXIT_ERROR
    logger.info("Result: %s", status)
    print(status)
    return EXIT_OK


# ---------- Arguments ----------

def _build_arg_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config-file", default="", help="Provider settings YAML (default: mbprov.yml search)")
    common.add_argument("--host", default="", help="Metabase base URL (or METABASE_HOST)")
    common.add_argument("--api-key", default="", help="Metabase API key (or METABASE_API_KEY)")
    common.add_argument("--username", default="", help="Metabase username (or METABASE_USERNAME)")
    common.add_argument("--password", default="", help="Metabase password (or METABASE_PASSWORD)")
    common.add_argument("--verify-tls", default=None, choices=["true", "false"], help="Verify TLS (https)")
    common.add_argument("--timeout-sec", type=int, default=None, help="HTTP timeout seconds")
    common.add_argument("--logs-dir", default=None, help="Logs base directory")
    common.add_argument("--console-level", default=None, help="Console log level (INFO..CRITICAL)")
    common.add_argument("--file-level", default=None, help="File log level (DEBUG..CRITICAL)")

    resources = [s.key for s in iter_resource_specs()]
    resource_help = "; ".join(f"{s.key} = {s.help} ({s.type_name})" for s in iter_resource_specs())
    p = argparse.ArgumentParser(prog="mbprov", description="Metabase state reconciliation CLI")
    sub = p.add_subparsers(dest="cmd", required=True)

    v = sub.add_parser("validate", parents=[common], help="Validate a declared resource (no network)")
    v.add_argument("--resource", required=True, choices=resources, help=resource_help)
    v.add_argument("--config", required=True, help="Declared resource YAML")

    pl = sub.add_parser("plan", parents=[common], help="Show what apply would change (no network)")
    pl.add_argument("--resource", required=True, choices=resources, help=resource_help)
    pl.add_argument("--config", required=True, help="Declared resource YAML")
    pl.add_argument("--state", default="", help="State file (JSON)")

    a = sub.add_parser("apply", parents=[common], help="Create, update or replace a resource")
    a.add_argument("--resource", required=True, choices=resources, help=resource_help)
    a.add_argument("--config", required=True, help="Declared resource YAML")
    a.add_argument("--state", default="", help="State file (JSON)")

    r = sub.add_parser("refresh", parents=[common], help="Re-read a resource into its state file")
    r.add_argument("--resource", required=True, choices=resources, help=resource_help)
    r.add_argument("--state", default="", help="State file (JSON)")

    d = sub.add_parser("destroy", parents=[common], help="Delete (or deactivate) a resource")
    d.add_argument("--resource", required=True, choices=resources, help=resource_help)
    d.add_argument("--state", default="", help="State file (JSON)")

    i = sub.add_parser("import", parents=[common], help="Bring an existing object under management")
    i.add_argument("--resource", required=True, choices=resources, help=resource_help)
    i.add_argument("--id", required=True, help="Remote numeric ID")
    i.add_argument("--state", default="", help="State file (JSON)")

    lk = sub.add_parser("lookup", parents=[common], help="Read a data source")
    lk.add_argument(
        "--data-source",
        required=True,
        choices=[s.key for s in iter_data_source_specs()],
        help="; ".join(f"{s.key} = {s.help}" for s in iter_data_source_specs()),
    )
    lk.add_argument("--id", default=None, help="Remote numeric ID (not used by current_user)")

    return p


def _cli_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    metabase = {k: getattr(args, k) for k in ("host", "api_key", "username", "password") if getattr(args, k)}
    http: Dict[str, Any] = {}
    if args.verify_tls is not None:
        http["verify_tls"] = args.verify_tls
    if args.timeout_sec is not None:
        http["timeout_sec"] = args.timeout_sec
    logging_cfg = {
        k: v for k, v in {
            "base_dir": args.logs_dir,
            "console_level": args.console_level,
            "file_level": args.file_level,
        }.items() if v is not None
    }
    out: Dict[str, Any] = {}
    if metabase:
        out["metabase"] = metabase
    if http:
        out["http"] = http
    if logging_cfg:
        out["logging"] = logging_cfg
    return out


def _load(args: argparse.Namespace, *, require_connection: bool = True) -> AppConfig:
    kwargs: Dict[str, Any] = {"require_connection": require_connection}
    if args.config_file:
        kwargs["files"] = (args.config_file,)
    return load_config(_cli_overrides(args), **kwargs)


def _state_path(args: argparse.Namespace, cfg: AppConfig) -> str:
    return args.state or os.path.join(cfg.app.state_dir, f"{args.resource}.json")


# ---------- Commands ----------

def _validate_cmd(args: argparse.Namespace, provider: MetabaseProvider, cfg: AppConfig, logger: Any) -> int:
    resource = provider.resource(args.resource)
    config, diags = resource.parse_config(_read_declaration(args.config))
    if not diags.has_error():
        diags.extend(resource.validate_config(config))
    return _finish("VALID", LifecycleResponse(diagnostics=diags), logger)


def _plan_cmd(args: argparse.Namespace, provider: MetabaseProvider, cfg: AppConfig, logger: Any) -> int:
    resource = provider.resource(args.resource)
    config, diags = resource.parse_config(_read_declaration(args.config))
    if not diags.has_error():
        diags.extend(resource.validate_config(config))
    if diags.has_error():
        return _finish("ERROR", LifecycleResponse(diagnostics=diags), logger)

    raw_prior = _read_state(_state_path(args, cfg))
    prior = resource.schema.model.from_dict(raw_prior) if raw_prior is not None else None
    result = resource.plan(config, prior)
    if prior is None:
        status = "CREATE"
    elif result.requires_replace:
        status = "REPLACE " + ",".join(result.requires_replace)
    elif result.has_changes:
        status = "UPDATE " + ",".join(result.changed)
    else:
        status = "UNCHANGED"
    return _finish(status, LifecycleResponse(diagnostics=diags), logger)


def _apply_cmd(args: argparse.Namespace, provider: MetabaseProvider, cfg: AppConfig, logger: Any) -> int:
    resource = provider.resource(args.resource)
    path = _state_path(args, cfg)

    config, diags = resource.parse_config(_read_declaration(args.config))
    if not diags.has_error():
        diags.extend(resource.validate_config(config))
    if diags.has_error():
        return _finish("ERROR", LifecycleResponse(diagnostics=diags), logger)

    raw_prior = _read_state(path)
    prior = None
    if raw_prior is not None:
        refreshed = resource.read(resource.schema.model.from_dict(raw_prior))
        diags.extend(refreshed.diagnostics)
        if not refreshed.ok:
            return _finish("ERROR", LifecycleResponse(diagnostics=diags), logger)
        if refreshed.removed:
            logger.info("Tracked %s disappeared remotely; it will be recreated", args.resource)
            _remove_state(path)
        else:
            prior = refreshed.state
            _write_state(path, args.resource, prior)

    result = resource.plan(config, prior)
    if prior is None:
        status, res = "CREATED", resource.create(result.planned)
    elif result.requires_replace:
        logger.info("Replacing %s (changed: %s)", args.resource, ", ".join(result.requires_replace))
        removed = resource.delete(prior)
        if not removed.ok:
            return _finish("ERROR", removed, logger, extra_diags=diags)
        _remove_state(path)
        status, res = "REPLACED", resource.create(resource.plan(config, None).planned)
    elif result.has_changes:
        status, res = "UPDATED", resource.update(result.planned, prior)
    else:
        return _finish("UNCHANGED", LifecycleResponse(state=prior), logger, extra_diags=diags)

    if res.state is not None:
        _write_state(path, args.resource, res.state)
        logger.debug("State: %s", _public_view(resource, res.state))
    return _finish(status, res, logger, extra_diags=diags)


def _refresh_cmd(args: argparse.Namespace, provider: MetabaseProvider, cfg: AppConfig, logger: Any) -> int:
    resource = provider.resource(args.resource)
    path = _state_path(args, cfg)
    raw = _read_state(path)
    if raw is None:
        raise FileNotFoundError(f"No state at {path}")
    res = resource.read(resource.schema.model.from_dict(raw))
    if res.removed:
        _remove_state(path)
        return _finish("REMOVED", res, logger)
    if res.state is not None:
        _write_state(path, args.resource, res.state)
    return _finish("REFRESHED", res, logger)


def _destroy_cmd(args: argparse.Namespace, provider: MetabaseProvider, cfg: AppConfig, logger: Any) -> int:
    resource = provider.resource(args.resource)
    path = _state_path(args, cfg)
    raw = _read_state(path)
    if raw is None:
        raise FileNotFoundError(f"No state at {path}")
    res = resource.delete(resource.schema.model.from_dict(raw))
    if res.ok:
        _remove_state(path)
    return _finish("DESTROYED", res, logger)


def _import_cmd(args: argparse.Namespace, provider: MetabaseProvider, cfg: AppConfig, logger: Any) -> int:
    resource = provider.resource(args.resource)
    res = resource.import_state(args.id)
    if res.state is not None and res.ok:
        _write_state(_state_path(args, cfg), args.resource, res.state)
    return _finish("IMPORTED", res, logger)


def _lookup_cmd(args: argparse.Namespace, provider: MetabaseProvider, cfg: AppConfig, logger: Any) -> int:
    source = provider.data_source(args.data_source)
    raw = {"id": int(args.id)} if args.id is not None else {}
    config, diags = source.parse_config(raw)
    res = source.read(config)
    if res.state is not None:
        print(json.dumps(res.state.to_dict(), indent=2, sort_keys=True))
    return _finish("OK", res, logger, extra_diags=diags)


_COMMANDS = {
    "validate": _validate_cmd,
    "plan": _plan_cmd,
    "apply": _apply_cmd,
    "refresh": _refresh_cmd,
    "destroy": _destroy_cmd,
    "import": _import_cmd,
    "lookup": _lookup_cmd,
}

_OFFLINE = {"validate", "plan"}


def main(argv: Iterable[str] | None = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    offline = args.cmd in _OFFLINE

    try:
        cfg = _load(args, require_connection=not offline)
    except (ConfigError, OSError, yaml.YAMLError) as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_ERROR

    logger = build_logger(
        run_id=cfg.run_id,
        action=args.cmd,
        base_dir=cfg.logging.base_dir,
        console_level=cfg.logging.console_level,
        file_level=cfg.logging.file_level,
        extra={"resource": getattr(args, "resource", None) or getattr(args, "data_source", None)},
    )
    logger.info("Starting mbprov %s", args.cmd)

    try:
        if offline:
            # Offline commands never touch the network; resources get no client.
            provider = MetabaseProvider(client=None, logger=logger)  # type: ignore[arg-type]
        else:
            provider = MetabaseProvider.configure(cfg, logger=logger)
        return _COMMANDS[args.cmd](args, provider, cfg, logger)
    except TransportError as exc:
        logger.error("Could not reach Metabase: %s", exc)
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_ERROR
    except (OSError, ValueError, yaml.YAMLError) as exc:
        logger.error("%s", exc)
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
