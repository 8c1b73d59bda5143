#!/usr/bin/env python3
# file: idrac_web.py
from __future__ import annotations

import os
import logging
from typing import Any, Dict, Optional, Tuple

from flask import Flask, request, render_template_string, jsonify

import idrac_core as core
import idrac_errors as err
import idrac_power as power
import idrac_roles as roles

APP_PORT = int(os.environ.get("FLASK_PORT", "8000"))

# ---------------------- Config helpers ----------------------
def _load_cfg(path: Optional[str]) -> core.AppConfig:
    return core.AppConfig(path or os.environ.get("IDRAC_CONFIG") or core.DEFAULT_CFG)

def _client_for(host_token: str, data: Dict[str, Any]) -> core.RedfishClient:
    cfg = _load_cfg(data.get("config_path"))
    d = cfg.defaults()
    creds = cfg.get_credentials(data.get("user"), data.get("password"), data.get("token"))
    if not creds.uses_token and not (creds.user and creds.password):
        raise err.InvalidInvocationError("no credentials: pass user/password/token or set [auth] in the config")
    host, _ = cfg.resolve_host(host_token)
    ctx = core.Context(base=core.base_url(host), creds=creds,
                       insecure=core.parse_flag(data.get("insecure"), "insecure", d.insecure), timeout=d.timeout,
                       retries=d.retries, backoff=d.backoff, power_off_wait=d.power_off_wait)
    return core.RedfishClient(ctx)

def _error(e: Exception) -> Tuple[Any, int]:
    code = err.map_request_error(e)
    http = 400 if code in (err.ExitCode.USAGE, err.ExitCode.CONFIG) else 200
    return jsonify({"ok": False, "error": str(e), "exit_code": code}), http

def _run(host: str, fn) -> Tuple[Any, int]:
    data = request.get_json(force=True, silent=True) or {}
    try:
        client = _client_for(host, data)
    except err.IdracError as e:
        return _error(e)
    try:
        res = fn(client, data)
    except err.IdracError as e:
        return _error(e)
    finally:
        client.close()
    return jsonify(res.to_dict()), 200

# ---------------------- Flask app ----------------------
app = Flask(__name__)
logging.getLogger("werkzeug").setLevel(logging.WARNING)

INDEX_HTML = """<!doctype html>
<html><head><meta charset="utf-8"><title>iDRAC roles &amp; power</title></head>
<body>
<h1>iDRAC roles &amp; power</h1>
<p>Config: {{ config_path }}</p>
<table border="1" cellpadding="4">
<tr><th>Host</th><th>Address</th><th>Roles</th><th>Power</th></tr>
{% for nick, addr in hosts %}
<tr><td>{{ nick }}</td><td>{{ addr }}</td>
<td><a href="/api/{{ nick }}/roles">roles</a></td>
<td><a href="/api/{{ nick }}/power">power state</a></td></tr>
{% else %}
<tr><td colspan="4">No [hosts] in config</td></tr>
{% endfor %}
</table>
</body></html>
"""

# ---------------------- Routes ----------------------
@app.route("/", methods=["GET"])
def index():
    cfg = _load_cfg(None)
    return render_template_string(INDEX_HTML, config_path=cfg.path, hosts=sorted(cfg.hosts_map().items()))

@app.route("/api/<host>/roles", methods=["GET"])
def api_list_roles(host: str):
    exact = request.args.get("strict", "").lower() in ("1", "true", "yes")
    def _do(client, data):
        roles.require_roles_support(client)
        return roles.list_custom_roles(client, exact=exact)
    return _run(host, _do)

@app.route("/api/<host>/roles", methods=["POST"])
def api_create_role(host: str):
    def _do(client, data):
        name = str(data.get("name") or "")
        if not roles.ROLE_NAME_RE.match(name):
            raise err.InvalidInvocationError(f"invalid role name {name!r}")
        dmtf, oem = data.get("dmtf"), data.get("oem")
        if isinstance(dmtf, list): dmtf = ",".join(dmtf)
        if isinstance(oem, list): oem = ",".join(oem)
        if not (core.split_csv(dmtf) or core.split_csv(oem)):
            raise err.InvalidInvocationError("dmtf and/or oem privileges are required")
        roles.require_roles_support(client)
        return roles.create_role(client, name, dmtf, oem)
    return _run(host, _do)

@app.route("/api/<host>/roles", methods=["DELETE"])
def api_delete_role(host: str):
    path = request.args.get("path", "").strip()
    def _do(client, data):
        if not path: raise err.InvalidInvocationError("missing role path")
        roles.require_roles_support(client)
        return roles.delete_role(client, path)
    return _run(host, _do)

@app.route("/api/<host>/power", methods=["GET"])
def api_power_state(host: str):
    def _do(client, data):
        power.require_power_support(client)
        return power.get_power_state(client)
    return _run(host, _do)

@app.route("/api/<host>/power", methods=["POST"])
def api_power_cycle(host: str):
    def _do(client, data):
        mode = data.get("mode")
        if mode not in ("dmtf", "oem"):
            raise err.InvalidInvocationError("mode must be 'dmtf' or 'oem'")
        power_off = core.parse_flag(data.get("power_off"), "power_off")
        poll = core.parse_flag(data.get("poll"), "poll")
        if mode == "oem":
            power.build_extended_reset_payload(data.get("final_power_state"))
        power.require_power_support(client)
        if mode == "dmtf":
            return power.dmtf_power_cycle(client)
        return power.oem_power_cycle(client, power_off, data.get("final_power_state"), poll)
    return _run(host, _do)

def main() -> None:
    app.run(host="0.0.0.0", port=APP_PORT)

if __name__ == "__main__":
    main()
