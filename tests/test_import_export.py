import json
from datetime import date

import pytest

from core import chart_model
from core.exceptions import ChartValidationError
from core.import_export import (
    export_filename,
    export_json,
    export_text,
    load_chart_file,
    save_chart_file,
    validate,
)
from core.models import CellPath, ViewMode, ViewState


def _sample_chart():
    chart = chart_model.create_empty()
    chart = chart_model.update_cell_at(chart, CellPath.main(), {"text": "健康"})
    chart = chart_model.update_sub_goal(chart, 0, {"text": "運動", "notes": "每週三次"})
    chart = chart_model.update_task(chart, 0, 0, {"text": "跑步", "isCompleted": True, "frequency": "weekly"})
    chart = chart_model.update_task(chart, 0, 1, {"text": "游泳"})
    return chart


def _raw(**overrides):
    data = chart_model.create_empty().to_dict()
    data.update(overrides)
    return data


def test_json_round_trip_preserves_chart():
    chart = _sample_chart()
    assert validate(export_json(chart)) == chart


def test_round_trip_after_suggestions():
    chart = chart_model.apply_suggestions(_sample_chart(), ViewState(), ["a", "b"])
    chart = chart_model.apply_suggestions(
        chart, ViewState(mode=ViewMode.SUB, focused_sub_goal_index=0), ["c"]
    )

    assert validate(export_json(chart)) == chart


def test_unknown_fields_survive_round_trip():
    raw = _raw(version=2)
    raw["mainGoal"]["color"] = "red"
    raw["tasks"][1][2]["tags"] = ["a", "b"]

    exported = json.loads(export_json(validate(raw)))

    assert exported["version"] == 2
    assert exported["mainGoal"]["color"] == "red"
    assert exported["tasks"][1][2]["tags"] == ["a", "b"]


def test_mistyped_known_field_is_kept_verbatim():
    raw = _raw()
    raw["subGoals"][0]["progress"] = "half"

    chart = validate(raw)

    assert chart.sub_goals[0].progress is None
    assert json.loads(export_json(chart))["subGoals"][0]["progress"] == "half"


def test_import_keeps_stored_progress():
    raw = _raw()
    raw["subGoals"][2]["progress"] = 40

    assert validate(raw).sub_goals[2].progress == 40


@pytest.mark.parametrize("value", [150, -5, 33.5])
def test_out_of_range_progress_is_kept_verbatim(value):
    raw = _raw()
    raw["subGoals"][0]["progress"] = value

    chart = validate(raw)

    assert chart.sub_goals[0].progress is None
    assert chart.sub_goals[0].extra["progress"] == value


def test_whole_float_progress_is_accepted():
    raw = _raw()
    raw["subGoals"][0]["progress"] = 50.0

    assert validate(raw).sub_goals[0].progress == 50


def test_short_arrays_are_padded_with_blank_cells():
    chart = validate({"mainGoal": {"text": "x"}, "subGoals": [{"text": "a"}], "tasks": [[{"text": "t"}]]})

    assert chart.main_goal.id == "main"
    assert chart.sub_goals[0].text == "a"
    assert chart.sub_goals[7].id == "sub-7"
    assert chart.tasks[0][0].text == "t"
    assert chart.tasks[0][0].id == "task-0-0"
    assert chart.tasks[5][5].id == "task-5-5"


def test_long_arrays_are_truncated():
    raw = _raw()
    raw["subGoals"].append({"id": "sub-8", "text": "extra"})
    assert len(validate(raw).sub_goals) == 8


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        "[1, 2]",
        {"subGoals": [], "tasks": []},
        {"mainGoal": "x", "subGoals": [], "tasks": []},
        {"mainGoal": {}, "subGoals": {}, "tasks": []},
        {"mainGoal": {}, "subGoals": [], "tasks": "none"},
        {"mainGoal": {}, "subGoals": [], "tasks": [{"text": "t"}]},
        {"mainGoal": {}, "subGoals": ["text"], "tasks": []},
    ],
)
def test_invalid_shapes_are_rejected(raw):
    with pytest.raises(ChartValidationError):
        validate(raw)


def test_export_text_lists_non_empty_subtrees():
    text = export_text(_sample_chart(), today=date(2024, 3, 9))

    assert text == (
        "曼陀羅思考法 - 核心目標：健康\n"
        "日期：2024-03-09\n"
        "\n"
        "================================\n"
        "\n"
        "[區域 1] 子目標：運動\n"
        "  - 跑步\n"
        "  - 游泳\n"
        "\n"
    )


def test_export_text_of_empty_chart():
    text = export_text(chart_model.create_empty(), today=date(2024, 1, 1))
    assert text.startswith("曼陀羅思考法 - 核心目標：未定義\n")
    assert "[區域" not in text


def test_export_filename():
    assert export_filename(_sample_chart(), "json", date(2024, 3, 9)) == "mandala-健康-2024-03-09.json"
    assert export_filename(chart_model.create_empty(), "txt", date(2024, 3, 9)) == "mandala-untitled-2024-03-09.txt"


def test_save_and_load_file(tmp_path):
    chart = _sample_chart()
    target = save_chart_file(chart, tmp_path / "backup" / "chart.json")

    assert target.exists()
    assert load_chart_file(target) == chart


def test_load_missing_file_raises(tmp_path):
    with pytest.raises(ChartValidationError):
        load_chart_file(tmp_path / "missing.json")
