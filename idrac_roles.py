#!/usr/bin/env python3
# =========================================
# file: idrac_roles.py
# =========================================
from __future__ import annotations
import re, sys, traceback
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
import idrac_core as core
import idrac_text as text
import idrac_errors as err

PROG = "idrac-roles"
RESERVED_ROLES = frozenset({"Administrator", "Operator", "ReadOnly"})
LEGACY_MARKERS = ("12G", "13G", "14G", "15G", "16G")
ROLE_NAME_RE = re.compile(r"^[A-Za-z0-9_-]+$")

class RoleActionKind(str, Enum):
    LIST = "get_custom_roles"
    CREATE = "create_role"
    DELETE = "delete_role"

@dataclass(frozen=True)
class RoleAction:
    kind: RoleActionKind
    name: Optional[str] = None
    dmtf: Optional[str] = None
    oem: Optional[str] = None
    path: Optional[str] = None
    exact: bool = False

def model_supported(model: str) -> bool:
    return not any(m in model for m in LEGACY_MARKERS)

def probe_roles_support(client: core.RedfishClient) -> Tuple[bool, Optional[str]]:
    reply = client.get(core.RF_MANAGER_MODEL)
    if reply.status != 200:
        core.logger.debug("model probe returned %s", reply.status)
        return False, None
    model = reply.json().get("Model")
    if not isinstance(model, str): return False, None
    return model_supported(model), model

def require_roles_support(client: core.RedfishClient) -> str:
    ok, model = probe_roles_support(client)
    if not ok:
        raise err.UnsupportedVersionError(
            f"iDRAC version detected does not support custom roles (model: {model or 'unknown'})", model)
    return model  # type: ignore[return-value]

def is_reserved_role(path: str, exact: bool = False) -> bool:
    if exact:
        return path.rstrip("/").rsplit("/", 1)[-1] in RESERVED_ROLES
    return any(r in path for r in RESERVED_ROLES)

def custom_role_paths(collection: Dict[str, Any], exact: bool = False) -> List[str]:
    paths: List[str] = []
    for item in collection.get("Members") or []:
        uri = item.get("@odata.id") if isinstance(item, dict) else None
        if uri and not is_reserved_role(uri, exact):
            paths.append(uri)
    return paths

def list_custom_roles(client: core.RedfishClient, exact: bool = False) -> core.ActionResult:
    action = RoleActionKind.LIST.value
    reply = client.get(core.RF_ROLES)
    if reply.status != 200:
        return core.unexpected(action, reply, "GET on Roles collection")
    roles: List[Dict[str, Any]] = []
    for uri in custom_role_paths(reply.json(), exact):
        r = client.get(uri)
        if r.status != 200:
            return core.unexpected(action, r, f"GET on {uri}")
        roles.append(r.json())
    if not roles:
        return core.ActionResult(True, action, reply.status, "no custom roles detected", data=[])
    return core.ActionResult(True, action, reply.status, f"{len(roles)} custom role(s) detected", data=roles)

def _warn_unknown(tokens: Iterable[str], vocabulary: List[str], kind: str) -> None:
    for t in tokens:
        if t not in vocabulary:
            core.logger.warning("%s privilege %r is not a known value; sending it anyway", kind, t)

def build_role_payload(name: str, dmtf: Optional[str], oem: Optional[str]) -> Dict[str, Any]:
    return {"RoleId": name, "AssignedPrivileges": core.split_csv(dmtf), "OemPrivileges": core.split_csv(oem)}

def create_role(client: core.RedfishClient, name: str, dmtf: Optional[str], oem: Optional[str]) -> core.ActionResult:
    action = RoleActionKind.CREATE.value
    payload = build_role_payload(name, dmtf, oem)
    _warn_unknown(payload["AssignedPrivileges"], text.DMTF_PRIVILEGES, "DMTF")
    _warn_unknown(payload["OemPrivileges"], text.OEM_PRIVILEGES, "OEM")
    reply = client.post(core.RF_ROLES, payload)
    if reply.status != 201:
        return core.unexpected(action, reply, f"POST command to create custom role {name!r}")
    location = reply.headers.get("Location") or f"{core.RF_ROLES}/{name}"
    return core.ActionResult(True, action, reply.status, f"POST command passed to create custom role {name!r}",
                             data={"RoleId": name, "uri": location, "payload": payload})

def delete_role(client: core.RedfishClient, path: str) -> core.ActionResult:
    action = RoleActionKind.DELETE.value
    reply = client.delete(path)
    if reply.status != 204:
        return core.unexpected(action, reply, f"DELETE command for {path}")
    return core.ActionResult(True, action, reply.status, f"DELETE command passed to delete custom role {path}",
                             data={"uri": path})

def dispatch(client: core.RedfishClient, action: RoleAction) -> core.ActionResult:
    if action.kind is RoleActionKind.LIST:
        return list_custom_roles(client, exact=action.exact)
    if action.kind is RoleActionKind.CREATE:
        return create_role(client, action.name or "", action.dmtf, action.oem)
    return delete_role(client, action.path or "")

def build_parser():
    p = core.build_common_parser(PROG, text.description_for(PROG, "Manage iDRAC custom user roles over Redfish."))
    mx = p.add_mutually_exclusive_group()
    mx.add_argument("--get-custom-roles", action="store_true", help="List custom roles")
    mx.add_argument("--create", metavar="NAME", help="Create a custom role with this RoleId")
    mx.add_argument("--delete", metavar="PATH", help="Delete the custom role at this URI")
    p.add_argument("--dmtf-privileges", metavar="CSV",
                   help="Comma separated DMTF privileges for --create. Values: " + ", ".join(text.DMTF_PRIVILEGES))
    p.add_argument("--oem-privileges", metavar="CSV",
                   help="Comma separated OEM privileges for --create. Values: " + ", ".join(text.OEM_PRIVILEGES))
    p.add_argument("--strict-role-match", action="store_true",
                   help="Skip built-in roles by exact RoleId instead of substring match on the URI")
    return p

def resolve_action(args) -> RoleAction:
    has_privs = bool(args.dmtf_privileges or args.oem_privileges)
    if args.create is not None:
        if not ROLE_NAME_RE.match(args.create):
            raise err.InvalidInvocationError(f"invalid role name {args.create!r}: use letters, digits, '-' or '_'")
        if not (core.split_csv(args.dmtf_privileges) or core.split_csv(args.oem_privileges)):
            raise err.InvalidInvocationError("--create needs --dmtf-privileges and/or --oem-privileges")
        return RoleAction(RoleActionKind.CREATE, name=args.create, dmtf=args.dmtf_privileges, oem=args.oem_privileges)
    if has_privs:
        raise err.InvalidInvocationError("--dmtf-privileges/--oem-privileges are only valid with --create")
    if args.delete is not None:
        if not args.delete.strip():
            raise err.InvalidInvocationError("--delete needs a role URI")
        return RoleAction(RoleActionKind.DELETE, path=args.delete.strip())
    if args.get_custom_roles:
        return RoleAction(RoleActionKind.LIST, exact=args.strict_role_match)
    raise err.InvalidInvocationError("no action given: use --get-custom-roles, --create or --delete")

def print_roles_table(roles: List[Dict[str, Any]]) -> None:
    print("\nRoleId               | AssignedPrivileges                  | OemPrivileges")
    print("---------------------+-------------------------------------+------------------------------")
    for r in roles:
        rid = str(r.get("RoleId") or r.get("Id") or "")
        dmtf = ",".join(r.get("AssignedPrivileges") or [])
        oem = ",".join(r.get("OemPrivileges") or [])
        print(f"{rid[:20]:<20} | {dmtf[:35]:<35} | {oem}")
    print()

def emit(result: core.ActionResult, out_format: str) -> None:
    if out_format == "json":
        core.emit_json(result.to_dict()); return
    if result.ok and result.action == RoleActionKind.LIST.value and result.data:
        print_roles_table(result.data)
    core.emit_status(result)

def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.script_examples:
        for e in text.examples_for(PROG): print(e)
        err.exit_with(err.ExitCode.OK)
    if args.config_help:
        print(text.CONFIG_HELP); err.exit_with(err.ExitCode.OK)
    core.set_debug(args.debug)
    try:
        action = resolve_action(args)
        ctx = core.build_context(args, core.AppConfig(args.config))
    except err.IdracError as e:
        parser.print_usage(sys.stderr)
        err.exit_with(err.map_request_error(e), f"error: {e}")
    client = core.RedfishClient(ctx)
    try:
        if not args.skip_probe:
            model = require_roles_support(client)
            core.logger.debug("iDRAC model %s supports custom roles", model)
        result = dispatch(client, action)
    except err.UnsupportedVersionError as e:
        err.exit_with(err.ExitCode.UNSUPPORTED, f"WARNING: {e}")
    except Exception as e:
        if args.debug: traceback.print_exc()
        err.exit_with(err.map_request_error(e), f"error: {e}")
    finally:
        client.close()
    emit(result, args.format)
    err.exit_with(err.ExitCode.OK if result.ok else err.code_for_status(result.status))

if __name__ == "__main__":
    main()
