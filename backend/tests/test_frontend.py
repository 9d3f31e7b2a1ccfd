from __future__ import annotations

import json
from pathlib import Path

import pytest
import requests
from streamlit.testing.v1 import AppTest

APP_PATH = Path(__file__).resolve().parents[2] / "frontend" / "app.py"

PROFILE = {
    "user_id": "user-1",
    "health_goal": "lose_weight",
    "dietary_preference": "vegan",
    "activity_level": "moderate",
    "daily_calorie_target": 1800,
    "daily_water_target_ml": 2000,
}


class FakeResponse:
    """Just enough of ``requests.Response`` for the Streamlit client."""

    def __init__(self, status_code: int, payload: dict | None = None, lines: list | None = None) -> None:
        self.status_code = status_code
        self._payload = payload
        self._lines = lines or []
        self.encoding = None

    @property
    def text(self) -> str:
        return json.dumps(self._payload) if self._payload is not None else ""

    def json(self) -> dict:
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload

    def iter_lines(self, decode_unicode: bool = False):
        return iter(self._lines)

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, *exc_info) -> bool:
        return False


class FakeBackend:
    """Stands in for the FastAPI backend behind ``requests``."""

    def __init__(self, profile: dict | None = None) -> None:
        self.profile = profile
        self.chat_responses: list = []
        self.chat_payloads: list = []
        self.calls: list = []

    def _profile_or_404(self, payload: dict | None) -> FakeResponse:
        if self.profile is None:
            return FakeResponse(404, {"detail": "Profile not found"})
        return FakeResponse(200, payload)

    def request(self, method: str, url: str, **_kwargs) -> FakeResponse:
        self.calls.append((method, url))
        if "/dashboard/" in url:
            return self._profile_or_404(
                {
                    "calorie_target": PROFILE["daily_calorie_target"],
                    "water_target_ml": PROFILE["daily_water_target_ml"],
                    "goal_label": "lose weight",
                    "diet_label": "vegan",
                    "profile": self.profile,
                }
            )
        return FakeResponse(200, {"status": "ok"})

    def get(self, url: str, **_kwargs) -> FakeResponse:
        self.calls.append(("GET", url))
        return self._profile_or_404(self.profile)

    def post(self, url: str, **kwargs) -> FakeResponse:
        self.calls.append(("POST", url))
        self.chat_payloads.append(kwargs["json"])
        return self.chat_responses.pop(0)


@pytest.fixture()
def backend(monkeypatch) -> FakeBackend:
    fake = FakeBackend()
    monkeypatch.setattr(requests, "request", fake.request)
    monkeypatch.setattr(requests, "get", fake.get)
    monkeypatch.setattr(requests, "post", fake.post)
    return fake


def _signed_in_app(user_id: str = "user-1") -> AppTest:
    at = AppTest.from_file(str(APP_PATH), default_timeout=10)
    at.session_state["user_id"] = user_id
    return at.run()


def test_skip_without_profile_shows_empty_goal_card(backend: FakeBackend) -> None:
    at = _signed_in_app()
    assert at.session_state["page"] == "profile"

    skip = next(button for button in at.button if button.label == "Skip for Now")
    at = skip.click().run()

    assert at.session_state["page"] == "dashboard"
    assert not any("Could not load dashboard" in warning.value for warning in at.warning)
    assert any("Set up your profile" in caption.value for caption in at.caption)
    assert not any("/dashboard/" in url for _method, url in backend.calls)


def test_failed_chat_turn_is_not_resent(backend: FakeBackend) -> None:
    backend.profile = PROFILE
    backend.chat_responses = [
        FakeResponse(429, {"error": "Rate limit exceeded. Please try again in a moment."}),
        FakeResponse(
            200,
            lines=[
                'data: {"choices":[{"delta":{"content":"Sounds tasty"}}]}',
                "",
                "data: [DONE]",
            ],
        ),
    ]
    at = _signed_in_app()

    at = at.chat_input[0].set_value("I ate pizza").run()

    assert any("Rate limit exceeded" in error.value for error in at.error)
    assert [m["role"] for m in at.session_state["chat_history"]] == ["assistant"]

    at = at.chat_input[0].set_value("Any lighter dinner ideas?").run()

    assert backend.chat_payloads[1]["messages"] == [
        {"role": "user", "content": "Any lighter dinner ideas?"},
    ]
    assert backend.chat_payloads[1]["userProfile"]["health_goal"] == "lose_weight"
    assert at.session_state["chat_history"][-1] == {"role": "assistant", "content": "Sounds tasty"}
