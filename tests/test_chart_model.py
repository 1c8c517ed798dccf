import pytest

from core import chart_model
from core.models import EMPTY_CELL, CellKind, CellPath, Frequency, ViewMode, ViewState


def _sub_view(focus: int) -> ViewState:
    return ViewState(mode=ViewMode.SUB, focused_sub_goal_index=focus)


def test_create_empty_has_fixed_shape_and_ids():
    chart = chart_model.create_empty()

    assert chart.main_goal.id == "main"
    assert [sub.id for sub in chart.sub_goals] == [f"sub-{i}" for i in range(8)]
    assert len(chart.tasks) == 8
    assert all(len(group) == 8 for group in chart.tasks)
    assert chart.tasks[3][5].id == "task-3-5"
    assert all(task.text == "" for group in chart.tasks for task in group)


def test_resolve_target_in_main_view():
    view = ViewState()
    assert chart_model.resolve_target(view, 4) == CellPath.main()
    assert chart_model.resolve_target(view, 0) == CellPath.sub(0)
    assert chart_model.resolve_target(view, 5) == CellPath.sub(3)
    assert chart_model.resolve_target(view, 3) == CellPath.sub(7)


def test_resolve_target_in_sub_view():
    view = _sub_view(2)
    assert chart_model.resolve_target(view, 4) == CellPath.sub(2)
    assert chart_model.resolve_target(view, 8) == CellPath.task(2, 4)


def test_get_cell_with_invalid_position_returns_sentinel():
    chart = chart_model.create_empty()
    assert chart_model.get_cell(chart, ViewState(), 9) is EMPTY_CELL
    assert chart_model.get_cell(chart, ViewState(), -1) is EMPTY_CELL


def test_update_cell_returns_new_chart():
    chart = chart_model.create_empty()
    updated = chart_model.update_cell(chart, ViewState(), 1, {"text": "健康"})

    assert updated.sub_goals[1].text == "健康"
    assert chart.sub_goals[1].text == ""
    assert updated.main_goal is chart.main_goal
    assert updated.tasks == chart.tasks


def test_center_edit_in_sub_view_targets_focused_sub_goal():
    chart = chart_model.create_empty()
    updated = chart_model.update_cell(chart, _sub_view(6), 4, {"text": "閱讀"})

    assert updated.sub_goals[6].text == "閱讀"
    assert updated.main_goal.text == ""


def test_update_cell_with_invalid_position_is_noop():
    chart = chart_model.create_empty()
    assert chart_model.update_cell(chart, ViewState(), 12, {"text": "x"}) is chart


def test_task_edit_recomputes_sub_goal_progress():
    view = _sub_view(0)
    chart = chart_model.create_empty()
    for pos in (0, 1, 2):
        chart = chart_model.update_cell(chart, view, pos, {"text": f"t{pos}"})
    assert chart.sub_goals[0].progress == 0

    chart = chart_model.update_cell(chart, view, 0, {"isCompleted": True})
    assert chart.sub_goals[0].progress == 33

    chart = chart_model.update_cell(chart, view, 1, {"is_completed": True})
    assert chart.sub_goals[0].progress == 67


def test_completed_task_without_text_does_not_count():
    chart = chart_model.create_empty()
    chart = chart_model.update_task(chart, 1, 0, {"text": "a", "isCompleted": True})
    chart = chart_model.update_task(chart, 1, 1, {"isCompleted": True})

    assert chart.sub_goals[1].progress == 100


def test_patch_accepts_json_and_attribute_names():
    chart = chart_model.create_empty()
    chart = chart_model.update_sub_goal(chart, 0, {"notes": "n", "imageRef": "data:x", "frequency": "daily"})

    cell = chart.sub_goals[0]
    assert cell.notes == "n"
    assert cell.image_ref == "data:x"
    assert cell.frequency == Frequency.DAILY


def test_patch_rejects_id_and_unknown_fields():
    chart = chart_model.create_empty()
    with pytest.raises(ValueError):
        chart_model.update_sub_goal(chart, 0, {"id": "other"})
    with pytest.raises(ValueError):
        chart_model.update_sub_goal(chart, 0, {"colour": "red"})


def test_clear_subtree_resets_only_that_subtree():
    chart = chart_model.create_empty()
    chart = chart_model.update_cell_at(chart, CellPath.main(), {"text": "核心"})
    chart = chart_model.update_sub_goal(chart, 2, {"text": "s2"})
    chart = chart_model.update_sub_goal(chart, 3, {"text": "s3"})
    chart = chart_model.update_task(chart, 2, 0, {"text": "t", "isCompleted": True})
    chart = chart_model.update_task(chart, 3, 0, {"text": "u"})

    cleared = chart_model.clear_subtree(chart, 2)

    assert cleared.sub_goals[2].text == ""
    assert cleared.sub_goals[2].progress is None
    assert cleared.sub_goals[2].id == "sub-2"
    assert all(task.text == "" for task in cleared.tasks[2])
    assert cleared.tasks[2][0].id == "task-2-0"
    assert cleared.main_goal.text == "核心"
    assert cleared.sub_goals[3].text == "s3"
    assert cleared.tasks[3][0].text == "u"


def test_clear_subtree_with_invalid_index_is_noop():
    chart = chart_model.create_empty()
    assert chart_model.clear_subtree(chart, 8) is chart


def test_clear_chart_matches_create_empty():
    assert chart_model.clear_chart() == chart_model.create_empty()


def test_apply_suggestions_fills_empty_slots_in_order():
    chart = chart_model.update_sub_goal(chart_model.create_empty(), 0, {"text": "x"})
    ideas = [f"idea{i}" for i in range(1, 10)]

    result = chart_model.apply_suggestions(chart, ViewState(), ideas)

    assert [sub.text for sub in result.sub_goals] == ["x"] + [f"idea{i}" for i in range(1, 8)]


def test_apply_suggestions_never_overwrites_existing_text():
    chart = chart_model.create_empty()
    chart = chart_model.update_sub_goal(chart, 1, {"text": "keep"})
    chart = chart_model.update_sub_goal(chart, 5, {"text": "also"})

    result = chart_model.apply_suggestions(chart, ViewState(), ["a", "b", "c"])

    assert [sub.text for sub in result.sub_goals] == ["a", "keep", "b", "c", "", "also", "", ""]


def test_apply_suggestions_in_sub_view_recomputes_progress():
    chart = chart_model.update_task(chart_model.create_empty(), 1, 0, {"text": "done", "isCompleted": True})
    assert chart.sub_goals[1].progress == 100

    result = chart_model.apply_suggestions(chart, _sub_view(1), ["a", "b", "c"])

    assert [task.text for task in result.tasks[1][:4]] == ["done", "a", "b", "c"]
    assert result.sub_goals[1].progress == 25


def test_apply_suggestions_without_ideas_returns_same_chart():
    chart = chart_model.create_empty()
    assert chart_model.apply_suggestions(chart, ViewState(), []) is chart
    assert chart_model.apply_suggestions(chart, ViewState(), ["", ""]) is chart


def test_bucket_texts_lists_non_empty_outer_cells():
    chart = chart_model.create_empty()
    chart = chart_model.update_task(chart, 4, 2, {"text": "a"})
    chart = chart_model.update_task(chart, 4, 7, {"text": "b"})
    chart = chart_model.update_sub_goal(chart, 4, {"text": "center"})

    assert chart_model.bucket_texts(chart, _sub_view(4)) == ["a", "b"]
    assert chart_model.bucket_texts(chart, ViewState()) == ["center"]
    assert all(path.kind == CellKind.TASK for path in chart_model.bucket_paths(_sub_view(4)))
