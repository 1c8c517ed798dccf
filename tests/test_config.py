from core.config_manager import SystemConfig, get_config
from core.utils import load_prompt, parse_llm_json


def test_defaults_without_runtime_file(tmp_path):
    cfg = get_config(tmp_path / "missing.yaml")
    assert cfg.SUGGESTION_LIMIT == 8
    assert cfg.DISCARD_STALE_SUGGESTIONS is True


def test_runtime_overrides(tmp_path):
    path = tmp_path / "runtime.yaml"
    path.write_text(
        "SUGGESTION_MAX_CHARS: 20\nDEFAULT_THEME: dark\nUNKNOWN_KEY: 1\n",
        encoding="utf-8",
    )

    cfg = get_config(path)

    assert cfg.SUGGESTION_MAX_CHARS == 20
    assert cfg.DEFAULT_THEME == "dark"
    assert not hasattr(cfg, "UNKNOWN_KEY")


def test_invalid_preferences_fall_back():
    cfg = SystemConfig(DEFAULT_THEME="neon", DEFAULT_FONT_SIZE="huge")
    assert cfg.DEFAULT_THEME == "light"
    assert cfg.DEFAULT_FONT_SIZE == "medium"


def test_broken_runtime_file_is_ignored(tmp_path):
    path = tmp_path / "runtime.yaml"
    path.write_text("SUGGESTION_LIMIT: [unclosed\n", encoding="utf-8")
    assert get_config(path).SUGGESTION_LIMIT == 8


def test_load_prompt_injects_variables():
    prompt = load_prompt("suggest/sub_goals", {"main_goal": "健康", "limit": 8, "existing": "", "transcript_block": ""})
    assert "「健康」" in prompt
    assert "{main_goal}" not in prompt


def test_missing_prompt_is_empty():
    assert load_prompt("suggest/does_not_exist") == ""


def test_parse_llm_json():
    assert parse_llm_json('```\n["a"]\n```') == ["a"]
    assert parse_llm_json("{broken") is None
    assert parse_llm_json("") is None
