import json

import hsp_cli
from hsp_core.ledger import AuditLedger


def test_no_command_prints_help(capsys):
    assert hsp_cli.main([]) == 1
    assert "usage" in capsys.readouterr().out.lower()


def test_demo_exports_a_verifiable_ledger(tmp_path, capsys):
    out = tmp_path / "demo.jsonl"
    assert hsp_cli.main(["demo", "--export", str(out)]) == 0
    text = capsys.readouterr().out
    assert "Integrity:     OK" in text
    assert "Low-risk action type: query" in text
    assert "Value exceeds 1000" in text

    ok, reason, count = AuditLedger.verify_file(str(out))
    assert (ok, reason) == (True, "OK")
    assert count > 0


def test_verify_reports_ok_and_tampering(tmp_path, capsys):
    out = tmp_path / "demo.jsonl"
    hsp_cli.main(["demo", "--export", str(out)])
    capsys.readouterr()

    assert hsp_cli.main(["verify", str(out)]) == 0
    assert "AUDIT_LEDGER_OK" in capsys.readouterr().out

    lines = out.read_text(encoding="utf-8").splitlines()
    rec = json.loads(lines[0])
    rec["actor_id"] = "someone-else"
    lines[0] = json.dumps(rec)
    out.write_text("\n".join(lines) + "\n", encoding="utf-8")

    assert hsp_cli.main(["verify", str(out), "--json"]) == 1
    payload = json.loads(capsys.readouterr().out)
    assert payload["ok"] is False
    assert payload["command"] == "verify"
    assert payload["reason"] == "HASH_MISMATCH"
    assert payload["path"] == str(out)


def test_classify_uses_config_rules(tmp_path, capsys):
    cfg = tmp_path / "config.json"
    cfg.write_text(
        json.dumps(
            {
                "escalation_rules": [
                    {"when": {"field": "value", "op": "gt", "value": 1000}, "level": "HIGH", "reason": "Value exceeds 1000"}
                ]
            }
        ),
        encoding="utf-8",
    )
    action = tmp_path / "action.json"
    action.write_text(
        json.dumps(
            {
                "id": "a-1",
                "agent_id": "agent-001",
                "type": "read",
                "description": "r",
                "value": 5000,
                "requested_at": "2026-01-12T12:00:00Z",
            }
        ),
        encoding="utf-8",
    )

    assert hsp_cli.main(["--config", str(cfg), "classify", str(action)]) == 0
    out = capsys.readouterr().out
    assert "HIGH" in out
    assert "Value exceeds 1000" in out
    assert "Requires approval: yes" in out


def test_config_shows_env_values(monkeypatch, capsys):
    monkeypatch.setenv("HSP_MAX_AGENT_LOOPS", "4")
    assert hsp_cli.main(["config"]) == 0
    assert json.loads(capsys.readouterr().out)["max_agent_loops"] == 4


def test_invalid_config_file_fails_cleanly(tmp_path, capsys):
    cfg = tmp_path / "config.json"
    cfg.write_text("{broken", encoding="utf-8")
    assert hsp_cli.main(["--config", str(cfg), "config"]) == 2
    assert "CONFIG_ERROR" in capsys.readouterr().err


def test_keygen_outputs_key_material(capsys):
    assert hsp_cli.main(["keygen", "--key-id", "alice"]) == 0
    data = json.loads(capsys.readouterr().out)
    assert data["key_id"] == "alice"
    assert len(data["public_key_hex"]) == 64
    assert len(data["private_key_hex"]) == 64


def test_verify_missing_file_fails(tmp_path, capsys):
    missing = tmp_path / "nope.jsonl"
    assert hsp_cli.main(["verify", str(missing)]) == 1
    assert "AUDIT_LEDGER_FAIL: NO_FILE" in capsys.readouterr().out

    assert hsp_cli.main(["verify", str(missing), "--json"]) == 1
    payload = json.loads(capsys.readouterr().out)
    assert payload["ok"] is False
    assert payload["reason"] == "NO_FILE"


def test_classify_rejects_action_without_timestamp(tmp_path, capsys):
    action = tmp_path / "action.json"
    action.write_text(json.dumps({"id": "a-1", "agent_id": "agent-001", "type": "read"}), encoding="utf-8")
    assert hsp_cli.main(["classify", str(action)]) == 2
    assert "requested_at is required" in capsys.readouterr().err
