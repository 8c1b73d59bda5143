#!/usr/bin/env python3
# =========================================
# file: idrac_power.py
# =========================================
from __future__ import annotations
import sys, time, traceback
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Sequence
import idrac_core as core
import idrac_text as text
import idrac_errors as err

PROG = "idrac-power"
FINAL_POWER_STATES = ("On", "Off")
POLL_INTERVAL = 1.0

class PowerActionKind(str, Enum):
    GET_STATE = "get_power_state"
    DMTF_CYCLE = "dmtf_powercycle"
    OEM_CYCLE = "oem_powercycle"

@dataclass(frozen=True)
class PowerAction:
    kind: PowerActionKind
    power_off: bool = False
    final_power_state: Optional[str] = None
    poll: bool = False

def probe_power_support(client: core.RedfishClient) -> bool:
    return client.get(core.RF_CHASSIS).status in (200, 202)

def require_power_support(client: core.RedfishClient) -> None:
    if not probe_power_support(client):
        raise err.UnsupportedVersionError("iDRAC version detected does not support virtual AC cycle")

def get_power_state(client: core.RedfishClient) -> core.ActionResult:
    action = PowerActionKind.GET_STATE.value
    reply = client.get(core.RF_SYSTEM)
    if reply.status != 200:
        return core.unexpected(action, reply, "GET on System resource")
    state = reply.json().get("PowerState")
    return core.ActionResult(True, action, reply.status, f"current server power state: {state}", data=state)

def dmtf_power_cycle(client: core.RedfishClient) -> core.ActionResult:
    """Virtual AC cycle via the standard Chassis.Reset action.

    Some iDRAC releases only accept this while the server is already off; the
    current state is not checked here.
    """
    action = PowerActionKind.DMTF_CYCLE.value
    reply = client.post(core.RF_CHASSIS_RESET, {"ResetType": "PowerCycle"})
    if reply.status != 204:
        return core.unexpected(action, reply, "POST command for DMTF PowerCycle")
    return core.ActionResult(True, action, reply.status, "POST command passed for DMTF PowerCycle, server will now virtual AC cycle")

def force_off(client: core.RedfishClient) -> core.ActionResult:
    reply = client.post(core.RF_SYSTEM_RESET, {"ResetType": "ForceOff"})
    if reply.status != 204:
        return core.unexpected("force_off", reply, "POST command to power off the server")
    return core.ActionResult(True, "force_off", reply.status, "POST command passed to power off the server")

def build_extended_reset_payload(final_power_state: Optional[str] = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"ResetType": "PowerCycle"}
    if final_power_state:
        if final_power_state not in FINAL_POWER_STATES:
            raise err.InvalidInvocationError(f"final power state must be one of {', '.join(FINAL_POWER_STATES)}")
        payload["FinalPowerState"] = final_power_state
    return payload

def wait_for_power_off(client: core.RedfishClient, budget: float, interval: float = POLL_INTERVAL) -> bool:
    attempts = max(1, int(budget / interval)) if interval > 0 else 1
    for i in range(attempts):
        res = get_power_state(client)
        if res.ok and res.data == "Off":
            core.logger.info("server reports power state Off after %d check(s)", i + 1)
            return True
        time.sleep(interval)
    return False

def oem_power_cycle(client: core.RedfishClient, power_off: bool = False, final_power_state: Optional[str] = None,
                    poll: bool = False) -> core.ActionResult:
    """Dell OEM ExtendedReset, optionally preceded by a ForceOff.

    A failed ForceOff stops here and the extended reset is not sent. There is
    no rollback when the extended reset fails after a successful ForceOff, so
    the server can be left powered off.
    """
    action = PowerActionKind.OEM_CYCLE.value
    payload = build_extended_reset_payload(final_power_state)
    if power_off:
        off = force_off(client)
        if not off.ok:
            off.action = action
            off.message += "; extended reset not attempted"
            return off
        wait = client.ctx.power_off_wait
        if poll:
            if not wait_for_power_off(client, wait):
                core.logger.warning("server did not report Off within %s seconds, continuing", wait)
        else:
            core.logger.info("waiting %s seconds for the power off to settle", wait)
            time.sleep(wait)
    reply = client.post(core.RF_EXTENDED_RESET, payload)
    if reply.status != 204:
        return core.unexpected(action, reply, "POST command for OEM ExtendedReset")
    return core.ActionResult(True, action, reply.status,
                             "POST command passed for OEM ExtendedReset, server will now virtual AC cycle",
                             data={"payload": payload, "power_off": power_off})

def dispatch(client: core.RedfishClient, action: PowerAction) -> core.ActionResult:
    if action.kind is PowerActionKind.GET_STATE:
        return get_power_state(client)
    if action.kind is PowerActionKind.DMTF_CYCLE:
        return dmtf_power_cycle(client)
    return oem_power_cycle(client, action.power_off, action.final_power_state, action.poll)

def build_parser():
    p = core.build_common_parser(PROG, text.description_for(PROG, "Virtual AC cycle an iDRAC managed server over Redfish."))
    mx = p.add_mutually_exclusive_group()
    mx.add_argument("--get-power-state", action="store_true", help="Get current server power state")
    mx.add_argument("--dmtf-powercycle", action="store_true", help="Virtual AC cycle using the DMTF Chassis.Reset action")
    mx.add_argument("--oem-powercycle", action="store_true", help="Virtual AC cycle using the Dell OEM ExtendedReset action")
    p.add_argument("--power-off", action="store_true", help="With --oem-powercycle: force the server off first")
    p.add_argument("--final-power-state", choices=list(FINAL_POWER_STATES),
                   help="With --oem-powercycle: power state the server is left in afterwards")
    p.add_argument("--wait-poll", action="store_true",
                   help="With --power-off: poll for the Off state instead of a fixed wait")
    return p

def resolve_action(args) -> PowerAction:
    if args.oem_powercycle:
        return PowerAction(PowerActionKind.OEM_CYCLE, power_off=args.power_off,
                           final_power_state=args.final_power_state, poll=args.wait_poll)
    if args.power_off or args.final_power_state or args.wait_poll:
        raise err.InvalidInvocationError("--power-off/--final-power-state/--wait-poll are only valid with --oem-powercycle")
    if args.get_power_state:
        return PowerAction(PowerActionKind.GET_STATE)
    if args.dmtf_powercycle:
        return PowerAction(PowerActionKind.DMTF_CYCLE)
    raise err.InvalidInvocationError("no action given: use --get-power-state, --dmtf-powercycle or --oem-powercycle")

def emit(result: core.ActionResult, out_format: str) -> None:
    if out_format == "json":
        core.emit_json(result.to_dict())
    else:
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
            require_power_support(client)
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
