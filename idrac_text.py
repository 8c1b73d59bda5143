# =========================================
# file: idrac_text.py
# =========================================
from typing import Dict, List

DMTF_PRIVILEGES: List[str] = [
    "Login", "ConfigureManager", "ConfigureUsers", "ConfigureSelf", "ConfigureComponents",
    "NoAuth", "ConfigureCompositionInfrastructure", "AdministrateSystems", "OperateSystems",
    "AdministrateStorage",
]

OEM_PRIVILEGES: List[str] = [
    "ClearLogs", "AccessVirtualConsole", "AccessVirtualMedia", "TestAlerts", "ExecuteDebugCommands",
]

CONFIG_HELP = """        Config file (INI). Default: ~/.idrac.ini

[auth]
user = <username>
password = <password>
# token = <X-Auth-Token>  (used when user/password are not set)

[defaults]
insecure = true
timeout = 30
retries = 0
backoff = 0.5
power_off_wait = 10

[hosts]
# r640-a = 192.168.0.120
"""

def examples_for(command: str) -> List[str]:
    mapping: Dict[str, List[str]] = {
        "idrac-roles": [
            "idrac-roles -ip 192.168.0.120 -u root -p calvin --get-custom-roles",
            "idrac-roles -ip 192.168.0.120 -x 7bd9bb9a8727ec366a9cef5bc83b2708 --get-custom-roles --format json",
            "idrac-roles -ip 192.168.0.120 -u root -p calvin --create Tech1 --dmtf-privileges Login,ConfigureManager --oem-privileges ClearLogs,AccessVirtualConsole",
            "idrac-roles -ip 192.168.0.120 -u root -p calvin --delete /redfish/v1/AccountService/Roles/Tech1",
        ],
        "idrac-power": [
            "idrac-power -ip 192.168.0.120 -u root -p calvin --get-power-state",
            "idrac-power -ip 192.168.0.120 -u root -p calvin --dmtf-powercycle",
            "idrac-power -ip 192.168.0.120 -u root -p calvin --oem-powercycle --final-power-state On",
            "idrac-power -ip 192.168.0.120 -u root -p calvin --oem-powercycle --power-off --wait-poll",
        ],
    }
    return mapping.get(command, [])

def action_descriptions(command: str) -> Dict[str, str]:
    if command == "idrac-roles":
        return {
            "--get-custom-roles": "List custom roles (built-in Administrator/Operator/ReadOnly are skipped).",
            "--create NAME": "Create a custom role; needs --dmtf-privileges and/or --oem-privileges.",
            "--delete PATH": "Delete a custom role by its URI, e.g. /redfish/v1/AccountService/Roles/Tech1.",
        }
    return {
        "--get-power-state": "Print the current server power state.",
        "--dmtf-powercycle": "Virtual AC cycle through the DMTF Chassis.Reset action. Server should be off first on some iDRAC releases.",
        "--oem-powercycle": "Virtual AC cycle through the Dell OEM ExtendedReset action; also drains flea power.",
    }

def description_for(command: str, summary: str) -> str:
    lines = [summary, "", "Actions:"]
    for k, v in action_descriptions(command).items():
        lines.append(f"  {k:20s} {v}")
    lines.append("")
    lines.append("Tip: run --script-examples for sample invocations.")
    return "\n".join(lines)
