"""Tests for the command-line entry point."""

import json

import pytest

from formation_agent.config import Config
from formation_agent.core.models import ConfirmationAction, FieldSnapshot, StorageKey
from formation_agent.main import build_parser, make_prompt, parse_answer, run
from formation_agent.messaging import message_types as mt
from formation_agent.storage.backends import JsonFileKeyValueStore
from formation_agent.storage.field_memory_store import FieldMemoryStore
from formation_agent.storage.form_storage import FormStorage


@pytest.fixture
def config(tmp_path):
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps({"storage": {"data_file": str(tmp_path / "storage.json")}}))
    return Config(str(config_file))


async def run_command(config, *argv):
    return await run(build_parser().parse_args(list(argv)), config)


def test_parse_answer():
    assert parse_answer("Y") is ConfirmationAction.PRIMARY
    assert parse_answer(" fill ") is ConfirmationAction.PRIMARY
    assert parse_answer("never") is ConfirmationAction.NEVER
    assert parse_answer("no") is ConfirmationAction.DECLINE
    assert parse_answer("maybe") is ConfirmationAction.DECLINE
    assert parse_answer(None) is ConfirmationAction.DECLINE


@pytest.mark.asyncio
async def test_fixed_answer_prompt():
    prompt = make_prompt("never")
    assert await prompt(mt.ConfirmationKind.AUTOFILL, {"previewFields": ["Email"]}) is ConfirmationAction.NEVER


def test_parser_rejects_unknown_modes():
    parser = build_parser()
    args = parser.parse_args(["policy", "set", "https://a.com", "fields_email", "--autofill", "never"])
    assert (args.command, args.policy_command, args.autofill, args.save) == ("policy", "set", "never", None)
    with pytest.raises(SystemExit):
        parser.parse_args(["policy", "set", "https://a.com", "fields_email", "--autofill", "sometimes"])
    with pytest.raises(SystemExit):
        parser.parse_args([])


@pytest.mark.asyncio
async def test_list_on_empty_store(config, capsys):
    assert await run_command(config, "list") == 0
    assert "No saved data" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_policy_and_save_mode_commands(config, capsys):
    assert await run_command(config, "policy", "set", "https://a.com", "fields_email", "--save", "always") == 0
    assert json.loads(capsys.readouterr().out) == {"saveMode": "always", "autofillMode": "ask"}

    assert await run_command(config, "policy", "reset", "https://a.com", "fields_email") == 0
    assert json.loads(capsys.readouterr().out) == {"saveMode": "ask", "autofillMode": "ask"}

    await run_command(config, "save-mode", "on")
    assert capsys.readouterr().out.strip() == "Save mode is on"
    await run_command(config, "save-mode", "status")
    assert capsys.readouterr().out.strip() == "Save mode is on"
    await run_command(config, "save-mode", "off")
    assert capsys.readouterr().out.strip() == "Save mode is off"


@pytest.mark.asyncio
async def test_list_delete_and_clear_site(config, capsys):
    store = JsonFileKeyValueStore(config.get_storage_path())
    await FormStorage(store).save(StorageKey("https://a.com", "/", "fields_email"), {"email": "a@b.com"})
    await FormStorage(store).save(StorageKey("https://b.com", "/", "fields_q"), {"q": "x"})
    memory = await FieldMemoryStore(store).save(
        "https://a.com/", "SET 1", [FieldSnapshot('input[name="email"]', "a@b.com", "Email", "email")]
    )

    await run_command(config, "list")
    listing = capsys.readouterr().out
    assert "form_https://a.com/_fields_email  (1 fields, save=ask, autofill=ask)" in listing
    assert memory.id in listing

    assert await run_command(config, "delete", "form_https://b.com/_fields_q") == 0
    assert await run_command(config, "delete", "no-such-memory") == 1
    assert "Nothing stored under no-such-memory" in capsys.readouterr().out

    await run_command(config, "clear-site", "https://a.com")
    assert "Removed 1 form record(s) and 1 field memory(ies) for https://a.com" in capsys.readouterr().out

    fresh = JsonFileKeyValueStore(config.get_storage_path())
    assert await FormStorage(fresh).list_all() == []
    assert await FieldMemoryStore(fresh).get_all() == []


@pytest.mark.asyncio
async def test_stats(config, capsys):
    assert await run_command(config, "stats") == 0
    stats = json.loads(capsys.readouterr().out)
    assert stats["storage"]["form_data_count"] == 0
    assert "field_memories" in stats
