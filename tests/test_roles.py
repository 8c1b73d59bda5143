import json
import pytest
import idrac_core as core
import idrac_errors as err
import idrac_roles as roles
from conftest import FakeResponse, HOST

ROLES = core.RF_ROLES

def _collection(*names):
    return FakeResponse(200, {"Members": [{"@odata.id": f"{ROLES}/{n}"} for n in names]})

def _role(name, dmtf=("Login",), oem=()):
    return FakeResponse(200, {"@odata.id": f"{ROLES}/{name}", "RoleId": name,
                              "AssignedPrivileges": list(dmtf), "OemPrivileges": list(oem)})

@pytest.mark.parametrize("model", ["12G Monolithic", "13G DCS", "14G Monolithic", "15G Modular", "16G Monolithic"])
def test_legacy_models_unsupported(model):
    assert roles.model_supported(model) is False

@pytest.mark.parametrize("model", ["17G Monolithic", "iDRAC 10", "", "11G"])
def test_other_models_supported(model):
    assert roles.model_supported(model) is True

def test_probe_reads_model(make_client):
    client, sess = make_client({("GET", core.RF_MANAGER_MODEL): FakeResponse(200, {"Model": "17G Monolithic"})})
    assert roles.probe_roles_support(client) == (True, "17G Monolithic")
    assert sess.paths() == [core.RF_MANAGER_MODEL]

def test_probe_legacy_raises(make_client):
    client, _ = make_client({("GET", core.RF_MANAGER_MODEL): FakeResponse(200, {"Model": "14G Monolithic"})})
    with pytest.raises(err.UnsupportedVersionError) as ei:
        roles.require_roles_support(client)
    assert ei.value.model == "14G Monolithic"

def test_probe_non_200_unsupported(make_client):
    client, _ = make_client({("GET", core.RF_MANAGER_MODEL): FakeResponse(401, text="denied")})
    assert roles.probe_roles_support(client) == (False, None)

def test_list_skips_builtin_roles(make_client):
    client, sess = make_client({
        ("GET", ROLES): _collection("Administrator", "Operator", "ReadOnly", "Tech1", "Tech2"),
        ("GET", f"{ROLES}/Tech1"): _role("Tech1"),
        ("GET", f"{ROLES}/Tech2"): _role("Tech2", oem=("ClearLogs",)),
    })
    res = roles.list_custom_roles(client)
    assert res.ok
    assert [r["RoleId"] for r in res.data] == ["Tech1", "Tech2"]
    assert sess.paths() == [ROLES, f"{ROLES}/Tech1", f"{ROLES}/Tech2"]
    for p in sess.paths()[1:]:
        assert not any(b in p for b in ("Administrator", "Operator", "ReadOnly"))

def test_list_substring_match_is_default(make_client):
    client, sess = make_client({
        ("GET", ROLES): _collection("MyOperatorRole", "Tech1"),
        ("GET", f"{ROLES}/Tech1"): _role("Tech1"),
        ("GET", f"{ROLES}/MyOperatorRole"): _role("MyOperatorRole"),
    })
    res = roles.list_custom_roles(client)
    assert [r["RoleId"] for r in res.data] == ["Tech1"]
    client2, _ = make_client(dict(sess.routes))
    res2 = roles.list_custom_roles(client2, exact=True)
    assert [r["RoleId"] for r in res2.data] == ["MyOperatorRole", "Tech1"]

def test_is_reserved_role_exact():
    assert roles.is_reserved_role(f"{ROLES}/Operator", exact=True)
    assert roles.is_reserved_role(f"{ROLES}/ReadOnly/", exact=True)
    assert not roles.is_reserved_role(f"{ROLES}/Operators", exact=True)
    assert roles.is_reserved_role(f"{ROLES}/Operators")

def test_list_empty_reported_distinctly(make_client):
    client, sess = make_client({("GET", ROLES): _collection("Administrator", "Operator", "ReadOnly")})
    res = roles.list_custom_roles(client)
    assert res.ok and res.data == []
    assert "no custom roles" in res.message
    assert len(sess.calls) == 1

def test_list_member_failure(make_client):
    client, _ = make_client({
        ("GET", ROLES): _collection("Tech1"),
        ("GET", f"{ROLES}/Tech1"): FakeResponse(500, text="boom"),
    })
    res = roles.list_custom_roles(client)
    assert not res.ok and res.status == 500 and res.body == "boom"

def test_build_role_payload():
    body = roles.build_role_payload("Tech1", "Login,ConfigureManager", None)
    assert body == {"RoleId": "Tech1", "AssignedPrivileges": ["Login", "ConfigureManager"], "OemPrivileges": []}
    assert roles.build_role_payload("Tech1", None, "ClearLogs")["OemPrivileges"] == ["ClearLogs"]
    assert roles.build_role_payload("Tech1", "Login", None)["AssignedPrivileges"] == ["Login"]

def test_create_role_pass(make_client):
    client, sess = make_client({("POST", ROLES): FakeResponse(201, headers={"Location": f"{ROLES}/Tech1"})})
    res = roles.create_role(client, "Tech1", "Login,ConfigureManager", "ClearLogs,AccessVirtualConsole")
    assert res.ok and res.status == 201
    assert res.data["uri"] == f"{ROLES}/Tech1"
    assert sess.calls[0]["json"] == {"RoleId": "Tech1", "AssignedPrivileges": ["Login", "ConfigureManager"],
                                     "OemPrivileges": ["ClearLogs", "AccessVirtualConsole"]}

@pytest.mark.parametrize("status", [200, 202, 204, 400, 409])
def test_create_role_fail_unless_201(make_client, status):
    client, _ = make_client({("POST", ROLES): FakeResponse(status, text='{"error": "nope"}')})
    res = roles.create_role(client, "Tech1", "Login", None)
    assert not res.ok
    assert res.status == status
    assert str(status) in res.message
    assert res.body == '{"error": "nope"}'

@pytest.mark.parametrize("status,ok", [(204, True), (200, False), (404, False)])
def test_delete_role(make_client, status, ok):
    path = f"{ROLES}/Tech1"
    client, sess = make_client({("DELETE", path): FakeResponse(status)})
    res = roles.delete_role(client, path)
    assert res.ok is ok and res.status == status
    assert sess.paths("DELETE") == [path]

def _args(*argv):
    return roles.build_parser().parse_args(list(argv))

def test_resolve_action():
    a = roles.resolve_action(_args("--create", "Tech1", "--dmtf-privileges", "Login"))
    assert a.kind is roles.RoleActionKind.CREATE and a.name == "Tech1" and a.dmtf == "Login"
    assert roles.resolve_action(_args("--delete", f"{ROLES}/Tech1")).path == f"{ROLES}/Tech1"
    assert roles.resolve_action(_args("--get-custom-roles", "--strict-role-match")).exact is True

@pytest.mark.parametrize("argv", [
    [],
    ["--create", "Tech1"],
    ["--create", "Tech 1", "--dmtf-privileges", "Login"],
    ["--get-custom-roles", "--oem-privileges", "ClearLogs"],
    ["--delete", " "],
])
def test_resolve_action_rejects(argv):
    with pytest.raises(err.InvalidInvocationError):
        roles.resolve_action(_args(*argv))

def test_mutually_exclusive_flags():
    with pytest.raises(SystemExit) as ei:
        _args("--get-custom-roles", "--delete", "x")
    assert ei.value.code == 2

def _main(argv):
    with pytest.raises(SystemExit) as ei:
        roles.main(argv)
    return ei.value.code

def test_main_list(patch_session, no_config, capsys):
    sess = patch_session({
        ("GET", core.RF_MANAGER_MODEL): FakeResponse(200, {"Model": "17G Monolithic"}),
        ("GET", ROLES): _collection("Administrator", "Tech1"),
        ("GET", f"{ROLES}/Tech1"): _role("Tech1", dmtf=("Login", "ConfigureManager")),
    })
    code = _main(["-ip", HOST, "-u", "root", "-p", "calvin", "-c", no_config, "--get-custom-roles"])
    out = capsys.readouterr().out
    assert code == err.ExitCode.OK
    assert "Tech1" in out and "Login,ConfigureManager" in out and "PASS" in out
    assert sess.closed

def test_main_json(patch_session, no_config, capsys):
    patch_session({
        ("GET", core.RF_MANAGER_MODEL): FakeResponse(200, {"Model": "17G Monolithic"}),
        ("GET", ROLES): _collection("ReadOnly"),
    })
    code = _main(["-ip", HOST, "-x", "tok", "-c", no_config, "--get-custom-roles", "--format", "json"])
    data = json.loads(capsys.readouterr().out)
    assert code == err.ExitCode.OK
    assert data["ok"] is True and data["data"] == [] and "no custom roles" in data["message"]

def test_main_unsupported_aborts_before_action(patch_session, no_config, capsys):
    sess = patch_session({("GET", core.RF_MANAGER_MODEL): FakeResponse(200, {"Model": "15G Monolithic"})})
    code = _main(["-ip", HOST, "-u", "root", "-p", "calvin", "-c", no_config,
                  "--create", "Tech1", "--dmtf-privileges", "Login"])
    assert code == err.ExitCode.UNSUPPORTED
    assert sess.paths() == [core.RF_MANAGER_MODEL]
    assert "WARNING" in capsys.readouterr().err

def test_main_create_failure_exit_code(patch_session, no_config, capsys):
    patch_session({
        ("GET", core.RF_MANAGER_MODEL): FakeResponse(200, {"Model": "17G Monolithic"}),
        ("POST", ROLES): FakeResponse(400, text="bad privilege"),
    })
    code = _main(["-ip", HOST, "-u", "root", "-p", "calvin", "-c", no_config,
                  "--create", "Tech1", "--oem-privileges", "ClearLogs"])
    out = capsys.readouterr().out
    assert code == err.ExitCode.DEVICE
    assert "FAIL" in out and "400" in out and "bad privilege" in out

def test_main_usage_error_makes_no_calls(patch_session, no_config):
    sess = patch_session()
    assert _main(["-ip", HOST, "-u", "root", "-p", "calvin", "-c", no_config, "--create", "Tech1"]) == err.ExitCode.USAGE
    assert sess.calls == []

def test_main_skip_probe(patch_session, no_config):
    sess = patch_session({("DELETE", f"{ROLES}/Tech1"): FakeResponse(204)})
    code = _main(["-ip", HOST, "-u", "root", "-p", "calvin", "-c", no_config, "--skip-probe",
                  "--delete", f"{ROLES}/Tech1"])
    assert code == err.ExitCode.OK
    assert sess.paths() == [f"{ROLES}/Tech1"]

def test_script_examples(capsys):
    assert _main(["--script-examples"]) == err.ExitCode.OK
    assert "--get-custom-roles" in capsys.readouterr().out

def test_main_transport_error_during_probe(patch_session, no_config):
    from requests import exceptions as rx
    sess = patch_session({("GET", core.RF_MANAGER_MODEL): rx.ConnectionError("refused")})
    code = _main(["-ip", HOST, "-u", "root", "-p", "calvin", "-c", no_config,
                  "--create", "Tech1", "--dmtf-privileges", "Login"])
    assert code == err.ExitCode.NETWORK
    assert sess.paths() == [core.RF_MANAGER_MODEL]

def test_create_role_location_header_case_insensitive(make_client):
    client, _ = make_client({("POST", ROLES): FakeResponse(201, headers={"location": f"{ROLES}/Custom7"})})
    res = roles.create_role(client, "Tech1", "Login", None)
    assert res.data["uri"] == f"{ROLES}/Custom7"
