"""Extraction response parsing and both extractor backends."""

from __future__ import annotations

import asyncio
import json
import shlex
import sys
import time
from pathlib import Path

import pytest

from recollect.errors import ConfigurationError, ExtractionError, ExtractionTimeout
from recollect.extract import CommandExtractor, Extractor, LMExtractor, build_extraction_prompt, parse_extraction_response
from recollect.extract.lm import build_lm
from recollect.extract.response import find_json_array, strip_code_fence
from recollect.memory.models import DEFAULT_IMPORTANCE, MemoryType
from tests.helpers import make_config


def test_non_json_response_yields_no_memories() -> None:
    assert parse_extraction_response("not json") == []
    assert parse_extraction_response("") == []
    assert parse_extraction_response(None) == []
    assert parse_extraction_response('[{"content": "unterminated"') == []


def test_fenced_response_is_unwrapped() -> None:
    raw = '```json\n[{"content": "Chose PostgreSQL", "type": "Decision", "importance": 0.8, "tags": ["db"]}]\n```'
    memories = parse_extraction_response(raw)
    assert len(memories) == 1
    assert memories[0].content == "Chose PostgreSQL"
    assert memories[0].type is MemoryType.decision
    assert memories[0].importance == 0.8
    assert memories[0].tags == ["db"]


def test_array_embedded_in_prose_is_found() -> None:
    raw = 'Here you go:\n[{"content": "Use uv for installs"}]\nHope that helps [really].'
    memories = parse_extraction_response(raw)
    assert [memory.content for memory in memories] == ["Use uv for installs"]


def test_malformed_candidates_are_dropped_not_repaired() -> None:
    raw = json.dumps(
        [
            {"content": "kept", "importance": 0.9},
            {"content": "   "},
            {"type": "Decision"},
            "just a string",
            {"content": "bad importance", "importance": "high"},
            {"content": "bool importance", "importance": True},
        ]
    )
    memories = parse_extraction_response(raw)
    assert [memory.content for memory in memories] == ["kept"]


def test_importance_defaults_and_clamps() -> None:
    raw = json.dumps(
        [
            {"content": "no importance"},
            {"content": "too high", "importance": 3},
            {"content": "negative", "importance": -0.5},
            {"content": "low but valid", "importance": 0.2},
            {"content": "numeric string", "importance": "0.65"},
        ]
    )
    values = [memory.importance for memory in parse_extraction_response(raw)]
    assert values == [DEFAULT_IMPORTANCE, 1.0, 0.0, 0.2, 0.65]


def test_unknown_type_is_omitted_and_tags_deduplicated() -> None:
    raw = json.dumps([{"content": "x", "type": "Rumor", "tags": ["a", "b", "a", 7, " b "]}])
    memory = parse_extraction_response(raw)[0]
    assert memory.type is None
    assert memory.tags == ["a", "b"]


def test_type_matching_is_case_insensitive() -> None:
    memory = parse_extraction_response('[{"content": "x", "type": "insight"}]')[0]
    assert memory.type is MemoryType.insight


def test_empty_array_means_nothing_to_remember() -> None:
    assert parse_extraction_response("[]") == []


def test_fence_helpers() -> None:
    assert strip_code_fence("```\n[1]\n```") == "[1]"
    assert strip_code_fence("  [2]  ") == "[2]"
    assert find_json_array("a [1, 2] b") == [1, 2]


def test_prompt_embeds_conversation_and_type_labels() -> None:
    prompt = build_extraction_prompt("USER: hi")
    assert "<conversation>\nUSER: hi\n</conversation>" in prompt
    assert "Decision/Insight/Pattern/Preference/Context" in prompt
    assert prompt.rstrip().endswith("If nothing worth remembering, respond with []")


def _script_command(tmp_path: Path, body: str) -> str:
    script = tmp_path / "fake_extractor.py"
    script.write_text(body, encoding="utf-8")
    return f"{shlex.quote(sys.executable)} {shlex.quote(str(script))} @{{prompt_file}}"


_ECHO_SCRIPT = """
import json, sys
path = sys.argv[1].lstrip("@")
prompt = open(path, encoding="utf-8").read()
start = prompt.index("<conversation>\\n") + len("<conversation>\\n")
end = prompt.index("\\n</conversation>")
print("```json")
print(json.dumps([
    {"content": "conversation length " + str(end - start), "type": "Context", "importance": 0.9, "tags": ["len"]},
    {"content": path, "importance": 0.5},
]))
print("```")
"""


def test_command_extractor_runs_subprocess_with_prompt_file(tmp_path: Path) -> None:
    extractor = CommandExtractor(_script_command(tmp_path, _ECHO_SCRIPT), max_chars=100, timeout_seconds=30)
    assert isinstance(extractor, Extractor)

    memories = asyncio.run(extractor.extract("x" * 500))

    assert memories[0].content == "conversation length 100"
    assert memories[0].type is MemoryType.context
    prompt_path = Path(memories[1].content)
    assert not prompt_path.exists()


def test_command_extractor_timeout_kills_process(tmp_path: Path) -> None:
    command = _script_command(tmp_path, "import time\ntime.sleep(30)\n")
    extractor = CommandExtractor(command, timeout_seconds=0.5)
    started = time.monotonic()
    with pytest.raises(ExtractionTimeout) as exc:
        asyncio.run(extractor.extract("USER: hi"))
    assert time.monotonic() - started < 10
    assert "timed out" in str(exc.value)


def test_command_extractor_nonzero_exit_is_error(tmp_path: Path) -> None:
    command = _script_command(tmp_path, "import sys\nsys.stderr.write('quota exceeded')\nsys.exit(3)\n")
    extractor = CommandExtractor(command)
    with pytest.raises(ExtractionError) as exc:
        asyncio.run(extractor.extract("USER: hi"))
    assert "quota exceeded" in str(exc.value)
    assert not isinstance(exc.value, ExtractionTimeout)


def test_command_extractor_garbage_output_is_empty(tmp_path: Path) -> None:
    extractor = CommandExtractor(_script_command(tmp_path, "print('I could not find anything useful')\n"))
    assert asyncio.run(extractor.extract("USER: hi")) == []


def test_command_extractor_availability(tmp_path: Path) -> None:
    assert CommandExtractor(_script_command(tmp_path, "")).check_available()
    with pytest.raises(ConfigurationError):
        CommandExtractor("definitely-not-a-real-binary-xyz @{prompt_file}").check_available()
    with pytest.raises(ConfigurationError):
        CommandExtractor("   ").check_available()


def test_command_extractor_from_config_uses_batch_budgets(tmp_path: Path) -> None:
    config = make_config(tmp_path, batch_max_chars=1234, batch_timeout=12.0)
    extractor = CommandExtractor.from_config(config)
    assert extractor.max_chars == 1234
    assert extractor.timeout_seconds == 12.0
    assert extractor.argv_for(Path("/tmp/p.txt")) == ["extract-memories", "@/tmp/p.txt"]


class _FakeLM:
    def __init__(self, reply: object = None, *, delay: float = 0.0, error: Exception | None = None) -> None:
        self.reply = reply
        self.delay = delay
        self.error = error
        self.prompts: list[str] = []

    def __call__(self, prompt: str) -> object:
        self.prompts.append(prompt)
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.reply


def test_lm_extractor_parses_first_completion() -> None:
    lm = _FakeLM(['[{"content": "Prefers tabs", "type": "Preference"}]', "[]"])
    extractor = LMExtractor(lm, max_chars=10)
    memories = asyncio.run(extractor.extract("0123456789abcdef"))
    assert [memory.content for memory in memories] == ["Prefers tabs"]
    assert "0123456789\n</conversation>" in lm.prompts[0]
    assert "abcdef" not in lm.prompts[0]


def test_lm_extractor_accepts_dict_completions() -> None:
    extractor = LMExtractor(_FakeLM([{"text": '[{"content": "x"}]'}]))
    assert len(asyncio.run(extractor.extract("USER: hi"))) == 1


def test_lm_extractor_timeout() -> None:
    extractor = LMExtractor(_FakeLM(["[]"], delay=2.0), timeout_seconds=0.2)
    with pytest.raises(ExtractionTimeout):
        asyncio.run(extractor.extract("USER: hi"))


def test_lm_extractor_timeout_does_not_wait_for_abandoned_call() -> None:
    extractor = LMExtractor(_FakeLM(["[]"], delay=3.0), timeout_seconds=0.2)
    started = time.monotonic()
    with pytest.raises(ExtractionTimeout):
        asyncio.run(extractor.extract("USER: hi"))
    assert time.monotonic() - started < 1.5


def test_build_lm_bounds_each_request(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    seen: list[dict[str, object]] = []
    monkeypatch.setattr("recollect.extract.lm.dspy.LM", lambda model, **kwargs: seen.append(kwargs) or model)
    build_lm(make_config(tmp_path, lm_provider="ollama", live_timeout=7.0))
    build_lm(make_config(tmp_path, lm_provider="openrouter", lm_api_key="sk-test", live_timeout=9.0))
    assert [kwargs["timeout"] for kwargs in seen] == [7.0, 9.0]


def test_lm_extractor_wraps_provider_errors() -> None:
    extractor = LMExtractor(_FakeLM(error=RuntimeError("rate limited")))
    with pytest.raises(ExtractionError) as exc:
        asyncio.run(extractor.extract("USER: hi"))
    assert "rate limited" in str(exc.value)


def test_build_lm_requires_openrouter_key(tmp_path: Path) -> None:
    config = make_config(tmp_path, lm_provider="openrouter", lm_api_key=None)
    with pytest.raises(ConfigurationError):
        build_lm(config)


def test_build_lm_rejects_unknown_provider(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError):
        build_lm(make_config(tmp_path, lm_provider="carrier-pigeon"))


def test_build_lm_ollama(tmp_path: Path) -> None:
    lm = build_lm(make_config(tmp_path, lm_provider="ollama", lm_model="qwen3:8b"))
    assert lm.model == "ollama_chat/qwen3:8b"
