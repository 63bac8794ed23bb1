import copy

from typer.testing import CliRunner

import azchat.main as main_module
from azchat.config import DEFAULT_CONFIG, ConfigError
from azchat.providers.base import CompletionResult
from azchat.models import ErrorClass

from conftest import FakeGateway


RUNNER = CliRunner()


def _config(**azure):
    cfg = copy.deepcopy(DEFAULT_CONFIG)
    cfg["azure"].update(azure)
    return cfg


def _complete_config():
    return _config(
        endpoint="https://example.openai.azure.com/",
        deployment="gpt-4o",
        api_key="sk-test-1234567890",
    )


def _use(monkeypatch, config, gateway=None):
    monkeypatch.setattr(main_module, "_load_config", lambda: config)
    gateway = gateway or FakeGateway()
    monkeypatch.setattr(main_module, "AzureGateway", lambda settings: gateway)
    return gateway


def _logs(directory):
    return sorted(directory.glob("conversation_log_*.txt"))


def test_chat_missing_config_exits_nonzero_without_log(isolated_dir, monkeypatch):
    _use(monkeypatch, _config(endpoint="https://example.openai.azure.com/"))

    result = RUNNER.invoke(main_module.app, ["chat"], input="exit\n")

    assert result.exit_code == 1
    assert "DEPLOYMENT_NAME" in result.output
    assert "AZURE_OPENAI_API_KEY" in result.output
    assert _logs(isolated_dir) == []


def test_chat_exit_at_first_prompt(isolated_dir, monkeypatch):
    gateway = _use(monkeypatch, _complete_config())

    result = RUNNER.invoke(main_module.app, ["chat"], input="exit\n")

    assert result.exit_code == 0
    assert "Goodbye" in result.output
    assert gateway.calls == []
    [log] = _logs(isolated_dir)
    lines = log.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    assert "[SYSTEM]: Conversation session started" in lines[0]
    assert "[SYSTEM]: Conversation ended by user." in lines[1]


def test_chat_localized_exit_word(isolated_dir, monkeypatch):
    _use(monkeypatch, _complete_config())

    result = RUNNER.invoke(main_module.app, ["chat"], input="終了\n")

    assert result.exit_code == 0
    [log] = _logs(isolated_dir)
    assert log.read_text(encoding="utf-8").count("[SYSTEM]: Conversation ended by user.") == 1


def test_chat_round_trip_then_exit(isolated_dir, monkeypatch):
    gateway = _use(
        monkeypatch,
        _complete_config(),
        FakeGateway(CompletionResult.from_text("Hi there!")),
    )

    result = RUNNER.invoke(main_module.app, ["chat"], input="Hello\nexit\n")

    assert result.exit_code == 0
    assert "Hi there!" in result.output
    assert gateway.calls[0][-1] == {"role": "user", "content": "Hello"}
    [log] = _logs(isolated_dir)
    lines = log.read_text(encoding="utf-8").splitlines()
    assert [l.split(" ", 1)[1].split(":", 1)[0] for l in lines] == [
        "[SYSTEM]",
        "[USER]",
        "[ASSISTANT]",
        "[SYSTEM]",
    ]


def test_chat_end_of_input_exits_cleanly(isolated_dir, monkeypatch):
    _use(monkeypatch, _complete_config())

    result = RUNNER.invoke(main_module.app, ["chat"], input="")

    assert result.exit_code == 0
    [log] = _logs(isolated_dir)
    assert "Conversation ended (input closed)." in log.read_text(encoding="utf-8")


def test_chat_log_dir_option(isolated_dir, monkeypatch):
    _use(monkeypatch, _complete_config())

    result = RUNNER.invoke(
        main_module.app, ["chat", "--log-dir", "logs"], input="exit\n"
    )

    assert result.exit_code == 0
    assert len(_logs(isolated_dir / "logs")) == 1


def test_ask_accepts_unquoted_multi_word_prompt(isolated_dir, monkeypatch):
    gateway = _use(
        monkeypatch,
        _complete_config(),
        FakeGateway(CompletionResult.from_text("Sure.")),
    )

    result = RUNNER.invoke(main_module.app, ["ask", "help", "me", "with", "task"])

    assert result.exit_code == 0
    assert gateway.calls[0][-1]["content"] == "help me with task"
    assert "Sure." in result.output


def test_ask_exits_one_on_gateway_error(isolated_dir, monkeypatch):
    _use(
        monkeypatch,
        _complete_config(),
        FakeGateway(CompletionResult.failure(ErrorClass.OTHER_ERROR, "boom")),
    )

    result = RUNNER.invoke(main_module.app, ["ask", "hello"])

    assert result.exit_code == 1
    assert "boom" in result.output
    [log] = _logs(isolated_dir)
    assert "[SYSTEM]: Error: boom" in log.read_text(encoding="utf-8")


def test_status_masks_api_key(isolated_dir, monkeypatch):
    _use(monkeypatch, _complete_config())
    (isolated_dir / "conversation_log_2024-05-01T10-00-00.000Z.txt").write_text("")

    result = RUNNER.invoke(main_module.app, ["status"])

    assert result.exit_code == 0
    assert "sk-test-1234567890" not in result.output
    assert "sk-t" in result.output
    assert "conversation_log_2024-05-01T10-00-00.000Z.txt" in result.output


def test_mask_secret():
    assert main_module._mask_secret(None) == "—"
    assert main_module._mask_secret("short") == "****"
    assert main_module._mask_secret("abcdefghijkl") == "abcd…ijkl"


def test_malformed_config_section_exits_nonzero(isolated_dir, monkeypatch):
    def broken_config():
        raise ConfigError("[chat] must be a table, got str")

    monkeypatch.setattr(main_module, "load_env_file", lambda: None)
    monkeypatch.setattr(main_module, "load_config", broken_config)

    result = RUNNER.invoke(main_module.app, ["status"])

    assert result.exit_code == 1
    assert "must be a table" in result.output


def test_ask_interrupted_logs_termination(isolated_dir, monkeypatch):
    _use(monkeypatch, _complete_config(), FakeGateway(KeyboardInterrupt()))

    result = RUNNER.invoke(main_module.app, ["ask", "hello"])

    assert result.exit_code == 130
    [log] = _logs(isolated_dir)
    assert log.read_text(encoding="utf-8").count("Conversation ended (interrupted).") == 1
