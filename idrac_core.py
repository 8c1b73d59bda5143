# =========================================
# file: idrac_core.py
# =========================================
from __future__ import annotations
import argparse, configparser, json, logging, os, sys
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple
import requests
from requests import Session
from requests import exceptions as rx
from requests.adapters import HTTPAdapter
from requests.auth import HTTPBasicAuth
from requests.structures import CaseInsensitiveDict
from urllib3.exceptions import InsecureRequestWarning
from urllib3.util.retry import Retry

import idrac_errors as err

RF_MANAGER_MODEL = "/redfish/v1/Managers/iDRAC.Embedded.1?$select=Model"
RF_CHASSIS = "/redfish/v1/Chassis/System.Embedded.1"
RF_ROLES = "/redfish/v1/AccountService/Roles"
RF_SYSTEM = "/redfish/v1/Systems/System.Embedded.1/"
RF_CHASSIS_RESET = "/redfish/v1/Chassis/System.Embedded.1/Actions/Chassis.Reset"
RF_SYSTEM_RESET = "/redfish/v1/Systems/System.Embedded.1/Actions/ComputerSystem.Reset"
RF_EXTENDED_RESET = "/redfish/v1/Chassis/System.Embedded.1/Actions/Oem/DellOemChassis.ExtendedReset"

DEFAULT_CFG = os.path.expanduser("~/.idrac.ini")
DEFAULT_TIMEOUT = 30.0
DEFAULT_RETRIES = 0
DEFAULT_BACKOFF = 0.5
DEFAULT_POWER_OFF_WAIT = 10.0

logger = logging.getLogger("idrac_cli")
if not logger.handlers:
    _h = logging.StreamHandler(sys.stderr)
    _h.setLevel(logging.INFO)
    _h.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
    logger.addHandler(_h)
logger.setLevel(logging.DEBUG)

# iDRAC ships self-signed certificates; verification is off unless --secure.
requests.packages.urllib3.disable_warnings(InsecureRequestWarning)  # type: ignore[attr-defined]

def set_debug(enabled: bool) -> None:
    for h in logger.handlers:
        h.setLevel(logging.DEBUG if enabled else logging.INFO)

@dataclass(frozen=True)
class Credentials:
    user: Optional[str] = None
    password: Optional[str] = None
    token: Optional[str] = None

    @property
    def uses_token(self) -> bool: return bool(self.token)

    def auth(self) -> Optional[HTTPBasicAuth]:
        if self.uses_token: return None
        return HTTPBasicAuth(self.user or "", self.password or "")

    def headers(self) -> Dict[str, str]:
        return {"X-Auth-Token": self.token} if self.uses_token else {}  # type: ignore[dict-item]

@dataclass(frozen=True)
class Context:
    base: str
    creds: Credentials
    insecure: bool = True
    timeout: float = DEFAULT_TIMEOUT
    retries: int = DEFAULT_RETRIES
    backoff: float = DEFAULT_BACKOFF
    power_off_wait: float = DEFAULT_POWER_OFF_WAIT
    debug: bool = False

@dataclass
class Reply:
    status: int
    body: str = ""
    headers: CaseInsensitiveDict = field(default_factory=CaseInsensitiveDict)

    def json(self) -> Dict[str, Any]:
        if not self.body.strip(): return {}
        try:
            data = json.loads(self.body)
        except ValueError as e:
            raise err.TransportError(f"non-JSON response (status {self.status})", e)
        return data if isinstance(data, dict) else {"value": data}

@dataclass
class ActionResult:
    ok: bool
    action: str
    status: Optional[int] = None
    message: str = ""
    body: str = ""
    data: Any = None

    def to_dict(self) -> Dict[str, Any]: return asdict(self)

def unexpected(action: str, reply: Reply, what: str) -> ActionResult:
    return ActionResult(False, action, reply.status,
                        f"{what} failed, status code {reply.status} returned", reply.body)

def _make_retry(retries: int, backoff: float) -> Retry:
    # Only idempotent reads are ever retried; resets and deletes go out once.
    base_kwargs = dict(
        total=retries, connect=retries, read=retries,
        backoff_factor=backoff, status_forcelist=(502,503,504),
        raise_on_status=False,
    )
    return Retry(allowed_methods=frozenset({"GET"}), **base_kwargs)

class RedfishClient:
    def __init__(self, ctx: Context, session: Optional[Session] = None):
        self.ctx = ctx
        self.base = ctx.base.rstrip("/")
        self.session = session if session is not None else self._build_session(ctx.retries, ctx.backoff)

    def _dbg(self, msg: str) -> None:
        if self.ctx.debug:
            sys.stderr.write(f"[debug] {msg}\n")
            logger.debug(msg)

    def _build_session(self, retries: int, backoff: float) -> Session:
        sess = requests.Session()
        adapter = HTTPAdapter(max_retries=_make_retry(retries, backoff), pool_maxsize=2)
        sess.mount("http://", adapter)
        sess.mount("https://", adapter)
        return sess

    def url_for(self, path_or_abs: str) -> str:
        return path_or_abs if path_or_abs.startswith(("http://","https://")) else f"{self.base}{path_or_abs}"

    def request(self, method: str, path_or_abs: str, payload: Optional[dict] = None,
                headers: Optional[Dict[str, str]] = None) -> Reply:
        url = self.url_for(path_or_abs)
        hdrs = dict(self.ctx.creds.headers())
        if headers: hdrs.update(headers)
        self._dbg(f"{method} {url}" + (f" payload={payload}" if payload is not None else ""))
        try:
            r = self.session.request(method, url, json=payload, headers=hdrs or None,
                                     auth=self.ctx.creds.auth(), verify=not self.ctx.insecure,
                                     timeout=self.ctx.timeout)
        except rx.RequestException as e:
            raise err.TransportError(f"{method} {url}: {e}", e)
        self._dbg(f"-> {r.status_code}")
        return Reply(r.status_code, r.text or "", CaseInsensitiveDict(r.headers or {}))

    def get(self, path_or_abs: str) -> Reply: return self.request("GET", path_or_abs)

    def post(self, path_or_abs: str, payload: dict) -> Reply:
        return self.request("POST", path_or_abs, payload, {"Content-Type": "application/json"})

    def delete(self, path_or_abs: str) -> Reply: return self.request("DELETE", path_or_abs)

    def close(self) -> None: self.session.close()

@dataclass
class Defaults:
    insecure: bool = True
    timeout: float = DEFAULT_TIMEOUT
    retries: int = DEFAULT_RETRIES
    backoff: float = DEFAULT_BACKOFF
    power_off_wait: float = DEFAULT_POWER_OFF_WAIT

class AppConfig:
    def __init__(self, path: Optional[str]):
        self.path = path or DEFAULT_CFG
        self.cfg = configparser.ConfigParser()
        if os.path.exists(self.path):
            try:
                self.cfg.read(self.path)
            except configparser.Error as e:
                raise err.ConfigError(f"cannot parse config {self.path}: {e}")

    def hosts_map(self) -> Dict[str, str]:
        return dict(self.cfg.items("hosts")) if self.cfg.has_section("hosts") else {}

    def defaults(self) -> Defaults:
        d = Defaults()
        if self.cfg.has_section("defaults"):
            try:
                d.insecure = self.cfg.getboolean("defaults","insecure", fallback=d.insecure)
                d.timeout = self.cfg.getfloat("defaults","timeout", fallback=d.timeout)
                d.retries = self.cfg.getint("defaults","retries", fallback=d.retries)
                d.backoff = self.cfg.getfloat("defaults","backoff", fallback=d.backoff)
                d.power_off_wait = self.cfg.getfloat("defaults","power_off_wait", fallback=d.power_off_wait)
            except ValueError as e:
                raise err.ConfigError(f"bad value in [defaults] of {self.path}: {e}")
        if d.timeout <= 0: raise err.ConfigError(f"[defaults] timeout must be > 0 in {self.path}")
        if d.retries < 0: raise err.ConfigError(f"[defaults] retries must be >= 0 in {self.path}")
        if d.backoff < 0: raise err.ConfigError(f"[defaults] backoff must be >= 0 in {self.path}")
        if d.power_off_wait < 0: raise err.ConfigError(f"[defaults] power_off_wait must be >= 0 in {self.path}")
        return d

    def get_credentials(self, user_arg: Optional[str], pw_arg: Optional[str], token_arg: Optional[str]) -> Credentials:
        if token_arg: return Credentials(token=token_arg)
        user = user_arg or self.cfg.get("auth", "user", fallback=None)
        pw = pw_arg or self.cfg.get("auth", "password", fallback=None)
        if not (user_arg or pw_arg):
            token = self.cfg.get("auth", "token", fallback=None)
            if token and not (user and pw): return Credentials(token=token)
        return Credentials(user=user, password=pw)

    def resolve_host(self, host_arg: str) -> Tuple[str, Optional[str]]:
        hmap = self.hosts_map()
        return (hmap[host_arg], host_arg) if host_arg in hmap else (host_arg, None)

def base_url(host: str) -> str:
    return host if host.startswith(("http://","https://")) else f"https://{host}"

def parse_flag(value: Any, name: str, default: bool = False) -> bool:
    if value is None: return default
    if isinstance(value, bool): return value
    if isinstance(value, str) and value.strip().lower() in configparser.ConfigParser.BOOLEAN_STATES:
        return configparser.ConfigParser.BOOLEAN_STATES[value.strip().lower()]
    raise err.InvalidInvocationError(f"{name} must be a boolean, got {value!r}")

def _combine_tls_flags(insecure: Optional[bool], secure: Optional[bool]) -> Optional[bool]:
    if insecure is None and secure is None: return None
    if insecure and secure: return None
    return True if insecure else False if secure else None

def build_common_parser(prog: str, description: str) -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog=prog, add_help=True, allow_abbrev=False, description=description,
                                formatter_class=argparse.RawTextHelpFormatter)
    p.add_argument("-ip","--ip", dest="host", help="iDRAC address (IP or DNS), or a nickname from [hosts]")
    p.add_argument("-u","--user", help="iDRAC username (falls back to [auth] user)")
    p.add_argument("-p","--password", help="iDRAC password (falls back to [auth] password)")
    p.add_argument("-x","--token", help="X-Auth-Token session token; replaces username/password")
    p.add_argument("-c","--config", help=f"Config file (default: {DEFAULT_CFG} if present)")
    p.add_argument("--insecure", dest="insecure", action="store_true", default=None, help="Skip TLS verification (default)")
    p.add_argument("--secure", dest="secure", action="store_true", default=None, help="Verify the iDRAC TLS certificate")
    p.add_argument("--timeout", type=float, help=f"HTTP timeout seconds (default {DEFAULT_TIMEOUT})")
    p.add_argument("--retries", type=int, help=f"Retries for GET requests only (default {DEFAULT_RETRIES})")
    p.add_argument("--backoff", type=float, help=f"Retry backoff factor (default {DEFAULT_BACKOFF})")
    p.add_argument("--skip-probe", action="store_true", help="Do not check the iDRAC generation before acting")
    p.add_argument("--format", choices=["table","json"], default="table", help="Output format")
    p.add_argument("--debug", action="store_true", help="Verbose debug to stderr")
    p.add_argument("--script-examples", action="store_true", help="Print example invocations and exit")
    p.add_argument("--config-help", action="store_true", help="Print INI config help and exit")
    return p

def build_context(args: argparse.Namespace, cfg: AppConfig) -> Context:
    if not args.host:
        raise err.InvalidInvocationError("--ip is required for this action")
    d = cfg.defaults()
    tls = _combine_tls_flags(args.insecure, args.secure)
    creds = cfg.get_credentials(args.user, args.password, args.token)
    if not creds.uses_token and not (creds.user and creds.password):
        raise err.InvalidInvocationError("provide -u/-p, -x, or an [auth] section in the config file")
    host, nick = cfg.resolve_host(args.host)
    if nick: logger.debug("host %s resolved to %s", nick, host)
    base = base_url(host)
    return Context(
        base=base, creds=creds,
        insecure=d.insecure if tls is None else tls,
        timeout=args.timeout if args.timeout is not None else d.timeout,
        retries=args.retries if args.retries is not None else d.retries,
        backoff=args.backoff if args.backoff is not None else d.backoff,
        power_off_wait=d.power_off_wait,
        debug=bool(args.debug),
    )

def split_csv(value: Optional[str]) -> List[str]:
    if not value: return []
    return [t.strip() for t in value.split(",") if t.strip()]

def emit_json(data: dict) -> None:
    print(json.dumps(data, indent=2))

def emit_status(result: ActionResult) -> None:
    if result.ok:
        print(f"PASS: {result.message}" if result.message else "PASS")
    else:
        print(f"FAIL: {result.message}")
        if result.body: print(f"Detailed error message: {result.body}")
