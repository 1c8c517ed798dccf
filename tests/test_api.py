import asyncio
from urllib.parse import unquote

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

import web.backend.routers.chart as chart_router
from core.exceptions import ConfigError
from core.panels import Panel
from web.backend.app import app


@pytest.fixture
def api_session(session, monkeypatch):
    monkeypatch.setattr(chart_router, "_session", session)
    return session


def test_edit_cells_and_read_state(api_session):
    asyncio.run(chart_router.patch_cell(chart_router.CellPatchRequest(text="健康"), pos=4))
    req = chart_router.CellPatchRequest(**{"text": "跑步", "isCompleted": True})
    state = asyncio.run(chart_router.patch_task(req, sub_index=0, index=0))

    assert state["chart"]["mainGoal"]["text"] == "健康"
    assert state["chart"]["tasks"][0][0]["isCompleted"] is True
    assert state["chart"]["subGoals"][0]["progress"] == 100

    cell = asyncio.run(chart_router.get_cell(pos=4))
    assert cell["text"] == "健康"


def test_navigation(api_session):
    result = asyncio.run(chart_router.zoom_in(pos=1))
    assert result["changed"]
    assert result["view"]["mode"] == "SUB"

    result = asyncio.run(chart_router.select_cell(pos=0))
    assert result["view"]["selection"] == {"kind": "task", "index": 0, "subIndex": 1}

    assert asyncio.run(chart_router.activate_cell(pos=4))["view"]["mode"] == "MAIN"
    assert not asyncio.run(chart_router.back_to_main())["changed"]


def test_clear_flow(api_session):
    asyncio.run(chart_router.patch_sub_goal(chart_router.CellPatchRequest(text="a"), index=3))
    action = asyncio.run(chart_router.request_clear())
    assert action["kind"] == "clear_chart"
    assert api_session.chart.sub_goals[3].text == "a"

    state = asyncio.run(chart_router.confirm_action(chart_router.ConfirmRequest(action_id=action["id"])))
    assert state["chart"]["subGoals"][3]["text"] == ""
    assert state["pending"] is None


def test_confirm_without_pending_is_conflict(api_session):
    with pytest.raises(HTTPException) as exc:
        asyncio.run(chart_router.confirm_action(chart_router.ConfirmRequest()))
    assert exc.value.status_code == 409


def test_import_flow(api_session):
    with pytest.raises(HTTPException) as exc:
        asyncio.run(chart_router.request_import({"mainGoal": {}, "subGoals": "x", "tasks": []}))
    assert exc.value.status_code == 400

    action = asyncio.run(chart_router.request_import({"mainGoal": {"text": "新"}, "subGoals": [], "tasks": []}))
    assert action["kind"] == "import"
    asyncio.run(chart_router.cancel_action())
    assert api_session.chart.main_goal.text == ""


def test_media_panel_without_selection_is_conflict(api_session):
    with pytest.raises(HTTPException) as exc:
        asyncio.run(chart_router.toggle_panel(Panel.MEDIA))
    assert exc.value.status_code == 409

    result = asyncio.run(chart_router.toggle_panel(Panel.PROGRESS))
    assert result["panels"]["progress"] is True


def test_export_text_download(api_session):
    api_session.edit_cell(4, {"text": "健康"})
    response = asyncio.run(chart_router.download_text())

    assert "核心目標：健康" in response.body.decode("utf-8")
    assert "mandala-健康-" in unquote(response.headers["content-disposition"])


def test_suggest_endpoint(api_session, suggestions):
    api_session.edit_cell(4, {"text": "健康"})
    suggestions.ideas = ["運動"]

    result = asyncio.run(chart_router.suggest())

    assert result["outcome"]["filled"] == 1
    assert result["chart"]["subGoals"][0]["text"] == "運動"


def test_model_config_failure_is_bad_gateway(api_session, suggestions):
    api_session.edit_cell(4, {"text": "健康"})

    def missing_key():
        raise ConfigError("OpenAI API key not found")

    suggestions.on_call = missing_key

    with pytest.raises(HTTPException) as exc:
        asyncio.run(chart_router.suggest())
    assert exc.value.status_code == 502
    assert not api_session.is_suggesting


def test_chat_endpoint(api_session, fake_llm):
    fake_llm.content = "好"
    result = asyncio.run(chart_router.chat(chart_router.ChatRequest(message="嗨")))

    assert result["reply"]["text"] == "好"
    assert len(result["messages"]) == 3

    with pytest.raises(HTTPException) as exc:
        asyncio.run(chart_router.chat(chart_router.ChatRequest(message=" ")))
    assert exc.value.status_code == 400


def test_media_endpoint(api_session, media):
    api_session.select(4)
    result = asyncio.run(chart_router.generate_image(chart_router.MediaRequest(prompt="lake")))

    assert result["success"]
    assert result["cell"]["imageRef"] == media.GENERATED


def test_http_routes(api_session):
    client = TestClient(app)

    assert client.get("/health").json()["status"] == "ok"
    assert client.get("/api/v1/chart/cells/9").status_code == 422
    assert client.patch("/api/v1/chart/cells/4", json={"text": "x"}).status_code == 200
    assert client.get("/api/v1/chart/progress").json()["overall"] == 0
    assert client.post("/api/v1/chart/panels/media/toggle").status_code == 409
    assert api_session.chart.main_goal.text == "x"
