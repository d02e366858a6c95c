"""
Unit tests for the agent registry and command composition.
"""

import json

import pytest

from asmgr import agents
from asmgr.agents import (
    AgentKind,
    REGISTRY,
    agent_binary,
    build_argv,
    build_command,
    encode_claude_project_path,
    extract_session_id,
    gemini_project_hash,
    has_transcripts,
    read_codex_session_meta,
    transcripts_root,
)
from asmgr.models import Instance

TOKEN = "0f3c5e2a-7b1d-4c8e-9a6f-2d4b8c1e3f5a"


class TestAgentKind:
    """Tests for AgentKind.parse"""

    def test_empty_means_claude(self):
        assert AgentKind.parse("") == AgentKind.CLAUDE
        assert AgentKind.parse(None) == AgentKind.CLAUDE

    def test_known_value(self):
        assert AgentKind.parse("codex") == AgentKind.CODEX

    def test_unknown_value_is_custom(self):
        assert AgentKind.parse("my-wrapper") == AgentKind.CUSTOM


class TestRegistry:
    """Capabilities of the built-in kinds"""

    def test_every_kind_has_a_record(self):
        assert set(REGISTRY) == set(AgentKind)

    @pytest.mark.parametrize("kind,resume,auto", [
        (AgentKind.CLAUDE, True, True),
        (AgentKind.GEMINI, True, False),
        (AgentKind.AIDER, False, True),
        (AgentKind.CODEX, True, True),
        (AgentKind.CURSOR, False, False),
        (AgentKind.TERMINAL, False, False),
    ])
    def test_capabilities(self, kind, resume, auto):
        config = REGISTRY[kind]

        assert config.supports_resume is resume
        assert config.supports_auto_approve is auto

    def test_gemini_toggles_in_band(self):
        assert REGISTRY[AgentKind.GEMINI].supports_auto_approve_toggle
        assert REGISTRY[AgentKind.GEMINI].in_band_auto_yes_key == "C-y"


class TestBuildArgv:
    """Tests for build_argv"""

    def test_claude_plain(self):
        assert build_argv(AgentKind.CLAUDE).argv == ["claude"]

    def test_claude_auto_yes_and_resume(self):
        cmd = build_argv(AgentKind.CLAUDE, auto_yes=True, resume_token=TOKEN, cwd="/tmp/p")

        assert cmd.argv == ["claude", "--dangerously-skip-permissions", "--resume", TOKEN]
        assert cmd.cwd == "/tmp/p"

    def test_codex_resume_is_subcommand(self):
        cmd = build_argv(AgentKind.CODEX, auto_yes=True, resume_token="abc")

        assert cmd.argv == ["codex", "resume", "--full-auto", "abc"]

    def test_amazonq_resume_subcommand(self):
        cmd = build_argv(AgentKind.AMAZONQ, resume_token="abc")

        assert cmd.argv == ["q", "chat", "--resume", "abc"]

    def test_token_dropped_for_kind_without_resume(self):
        cmd = build_argv(AgentKind.AIDER, auto_yes=True, resume_token="abc")

        assert cmd.argv == ["aider", "--yes"]

    def test_auto_yes_ignored_without_flag(self):
        assert build_argv(AgentKind.GEMINI, auto_yes=True).argv == ["gemini"]

    def test_terminal_is_empty(self):
        cmd = build_argv(AgentKind.TERMINAL, cwd="/tmp/p")

        assert cmd.argv == []
        assert not cmd

    def test_custom_is_verbatim(self):
        cmd = build_argv(AgentKind.CUSTOM, custom_command="npx my-agent --flag 'two words'")

        assert cmd.shell == "npx my-agent --flag 'two words'"
        assert cmd.argv == ["npx", "my-agent", "--flag", "two words"]

    def test_shell_quotes_argv(self):
        cmd = build_argv(AgentKind.CLAUDE, resume_token="a b")

        assert cmd.shell == "claude --resume 'a b'"


class TestBuildCommand:
    """Tests for build_command"""

    def test_uses_stored_token(self):
        inst = Instance(id="X", name="demo", path="/tmp/p", resume_session_id=TOKEN)

        assert build_command(inst).argv == ["claude", "--resume", TOKEN]

    def test_explicit_token_overrides(self):
        inst = Instance(id="X", name="demo", path="/tmp/p", resume_session_id=TOKEN)

        assert build_command(inst, resume_token="").argv == ["claude"]


class TestAgentBinary:
    """Tests for agent_binary"""

    def test_registry_kind(self):
        assert agent_binary(AgentKind.AMAZONQ) == "q"

    def test_custom_first_word(self):
        assert agent_binary(AgentKind.CUSTOM, "npx my-agent") == "npx"

    def test_custom_quoted_path_with_spaces(self):
        command = "'/opt/My Tools/agent' --fast"

        assert agent_binary(AgentKind.CUSTOM, command) == "/opt/My Tools/agent"
        assert build_argv(AgentKind.CUSTOM, custom_command=command).argv[0] == agent_binary(
            AgentKind.CUSTOM, command)

    def test_custom_unbalanced_quote_falls_back(self):
        assert agent_binary(AgentKind.CUSTOM, "agent 'oops") == "agent"

    def test_terminal_has_none(self):
        assert agent_binary(AgentKind.TERMINAL) is None


class TestTranscriptPaths:
    """Tests for transcript discovery paths"""

    def test_encode_claude_project_path(self, tmp_path):
        project = tmp_path / "my_project dir"
        project.mkdir()

        encoded = encode_claude_project_path(str(project))

        assert encoded.startswith("-")
        assert not encoded.startswith("--")
        assert "_" not in encoded
        assert " " not in encoded
        assert "/" not in encoded
        assert encoded.endswith("my-project-dir")

    def test_claude_root(self, tmp_path, monkeypatch):
        monkeypatch.setattr(agents, "CLAUDE_PROJECTS_PATH", tmp_path)

        root = transcripts_root(AgentKind.CLAUDE, "/work/app")

        assert root == tmp_path / encode_claude_project_path("/work/app")

    def test_gemini_root(self, tmp_path, monkeypatch):
        monkeypatch.setattr(agents, "GEMINI_TMP_PATH", tmp_path)

        root = transcripts_root(AgentKind.GEMINI, "/work/app")

        assert root == tmp_path / gemini_project_hash("/work/app") / "chats"

    def test_no_root_for_aider(self):
        assert transcripts_root(AgentKind.AIDER, "/work/app") is None
        assert has_transcripts(AgentKind.AIDER, "/work/app") is False

    def test_has_transcripts(self, tmp_path, monkeypatch):
        monkeypatch.setattr(agents, "CLAUDE_PROJECTS_PATH", tmp_path)
        (tmp_path / encode_claude_project_path("/work/app")).mkdir()

        assert has_transcripts(AgentKind.CLAUDE, "/work/app") is True


class TestExtractSessionId:
    """Tests for extract_session_id"""

    def test_claude_uuid_file(self, tmp_path):
        path = tmp_path / f"{TOKEN}.jsonl"
        path.write_text("")

        assert extract_session_id(AgentKind.CLAUDE, path) == TOKEN

    def test_claude_subagent_file_is_ignored(self, tmp_path):
        path = tmp_path / "agent-1234.jsonl"
        path.write_text("")

        assert extract_session_id(AgentKind.CLAUDE, path) is None

    def test_gemini_session_id(self, tmp_path):
        path = tmp_path / "session-1.json"
        path.write_text(json.dumps({"sessionId": "g-1", "messages": []}))

        assert extract_session_id(AgentKind.GEMINI, path) == "g-1"

    def test_codex_meta(self, tmp_path):
        path = tmp_path / "rollout-1.jsonl"
        path.write_text(
            json.dumps({"type": "session_meta", "payload": {"id": "c-1", "cwd": "/work/app"}}) + "\n"
        )

        assert read_codex_session_meta(path) == ("c-1", "/work/app")
        assert extract_session_id(AgentKind.CODEX, path) == "c-1"
