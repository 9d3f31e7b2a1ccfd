import json
import os
from typing import Any, Dict, Iterator, List, Optional

import requests
import streamlit as st
from dotenv import load_dotenv

load_dotenv()

DEFAULT_BACKEND_URL = os.getenv("BACKEND_API_BASE", "http://localhost:8000/api")

GENDERS = {"": "Select gender", "male": "Male", "female": "Female", "other": "Other"}
GOALS = {
    "": "Select your goal",
    "lose_weight": "Lose Weight",
    "maintain_weight": "Maintain Weight",
    "gain_muscle": "Gain Muscle",
    "general_health": "General Health",
}
DIETS = {
    "none": "No Preference",
    "vegetarian": "Vegetarian",
    "vegan": "Vegan",
    "keto": "Keto",
    "paleo": "Paleo",
    "mediterranean": "Mediterranean",
    "high_protein": "High Protein",
}
ACTIVITY_LEVELS = {
    "sedentary": "Sedentary",
    "light": "Light",
    "moderate": "Moderate",
    "active": "Active",
    "very_active": "Very Active",
}
WELCOME_MESSAGE = "Hi! I'm your nutrition companion. Tell me what you ate or ask me for meal ideas."


def _backend_request(method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
    url = f"{st.session_state.backend_url.rstrip('/')}" + path
    response = requests.request(method, url, timeout=30, **kwargs)
    if response.status_code >= 400:
        raise RuntimeError(f"{response.status_code}: {response.text}")
    try:
        return response.json()
    except ValueError:
        return {}


def load_profile(user_id: str) -> Optional[Dict[str, Any]]:
    url = f"{st.session_state.backend_url.rstrip('/')}/profiles/{user_id}"
    response = requests.get(url, timeout=30)
    if response.status_code == 404:
        return None
    if response.status_code >= 400:
        raise RuntimeError(f"{response.status_code}: {response.text}")
    return response.json()


def _error_message(response: requests.Response) -> str:
    try:
        return response.json().get("error") or response.text
    except ValueError:
        return response.text or f"Request failed with status {response.status_code}"


def stream_chat(messages: List[Dict[str, str]], profile: Optional[Dict[str, Any]]) -> Iterator[str]:
    """Yield assistant text deltas from the relay's event stream."""
    payload: Dict[str, Any] = {"messages": messages}
    if profile:
        payload["userProfile"] = {
            "dietary_preference": profile.get("dietary_preference"),
            "health_goal": profile.get("health_goal"),
            "daily_calorie_target": profile.get("daily_calorie_target"),
        }
    url = f"{st.session_state.backend_url.rstrip('/')}/chat"
    with requests.post(url, json=payload, stream=True, timeout=(10, None)) as response:
        if response.status_code >= 400:
            raise RuntimeError(_error_message(response))
        response.encoding = "utf-8"
        for line in response.iter_lines(decode_unicode=True):
            if not line or not line.startswith("data:"):
                continue
            data = line[5:].strip()
            if data == "[DONE]":
                break
            try:
                event = json.loads(data)
            except ValueError:
                continue
            choices = event.get("choices") or [{}]
            delta = (choices[0].get("delta") or {}).get("content")
            if delta:
                yield delta


def sign_out() -> None:
    for key in ("user_id", "profile", "chat_history"):
        st.session_state.pop(key, None)
    st.session_state.page = "auth"


st.set_page_config(
    page_title="NutriBot",
    page_icon="🥗",
    layout="wide",
)

if "backend_url" not in st.session_state:
    st.session_state.backend_url = DEFAULT_BACKEND_URL
if "page" not in st.session_state:
    st.session_state.page = "dashboard"


def render_auth() -> None:
    st.title("🥗 NutriBot")
    st.caption("Your nutrition companion")
    with st.form("sign-in-form"):
        user_id = st.text_input("User ID", placeholder="e.g. jane@example.com")
        submitted = st.form_submit_button("Sign in")
    if submitted:
        if not user_id.strip():
            st.warning("Please enter a user ID.")
            return
        st.session_state.user_id = user_id.strip()
        st.session_state.page = "dashboard"
        st.rerun()


def render_profile_setup(user_id: str) -> None:
    st.title("Set Up Your Profile")
    st.caption("Help us personalize your nutrition journey")
    current = st.session_state.get("profile") or {}

    with st.form("profile-form"):
        col1, col2 = st.columns(2)
        with col1:
            age = st.number_input("Age", min_value=0, max_value=149, value=current.get("age") or 0)
            height_cm = st.number_input("Height (cm)", min_value=0.0, value=float(current.get("height_cm") or 0))
        with col2:
            gender = st.selectbox(
                "Gender",
                list(GENDERS),
                index=list(GENDERS).index(current.get("gender") or ""),
                format_func=GENDERS.get,
            )
            weight_kg = st.number_input("Weight (kg)", min_value=0.0, value=float(current.get("weight_kg") or 0))
        health_goal = st.selectbox(
            "Health Goal",
            list(GOALS),
            index=list(GOALS).index(current.get("health_goal") or ""),
            format_func=GOALS.get,
        )
        dietary_preference = st.selectbox(
            "Dietary Preference",
            list(DIETS),
            index=list(DIETS).index(current.get("dietary_preference") or "none"),
            format_func=DIETS.get,
        )
        activity_level = st.selectbox(
            "Activity Level",
            list(ACTIVITY_LEVELS),
            index=list(ACTIVITY_LEVELS).index(current.get("activity_level") or "moderate"),
            format_func=ACTIVITY_LEVELS.get,
        )
        calories = st.number_input(
            "Daily Calorie Target (optional)",
            min_value=0,
            value=current.get("daily_calorie_target") or 0,
            step=50,
        )
        water = st.number_input(
            "Daily Water Target in ml (optional)",
            min_value=0,
            value=current.get("daily_water_target_ml") or 0,
            step=250,
        )
        skip_col, save_col = st.columns(2)
        with skip_col:
            skipped = st.form_submit_button("Skip for Now")
        with save_col:
            saved = st.form_submit_button("Save Profile", type="primary")

    if skipped:
        st.session_state.page = "dashboard"
        st.rerun()
    if saved:
        payload = {
            "age": int(age) or None,
            "gender": gender or None,
            "height_cm": height_cm or None,
            "weight_kg": weight_kg or None,
            "health_goal": health_goal or None,
            "dietary_preference": dietary_preference,
            "activity_level": activity_level,
            "daily_calorie_target": int(calories) or None,
            "daily_water_target_ml": int(water) or None,
        }
        try:
            st.session_state.profile = _backend_request("PUT", f"/profiles/{user_id}", json=payload)
        except Exception as exc:  # noqa: BLE001
            st.error(f"Could not save profile: {exc}")
        else:
            st.toast("Profile saved successfully!")
            st.session_state.page = "dashboard"
            st.rerun()


def render_goal_card(user_id: str, profile: Optional[Dict[str, Any]]) -> None:
    if profile is None:
        with st.container(border=True):
            st.subheader("Today's Goal")
            st.caption("Set up your profile to see your daily targets.")
        return
    try:
        dashboard = _backend_request("GET", f"/dashboard/{user_id}")
    except Exception as exc:  # noqa: BLE001
        st.warning(f"Could not load dashboard: {exc}")
        return
    with st.container(border=True):
        st.subheader("Today's Goal")
        st.caption("Track your daily nutrition")
        if dashboard.get("calorie_target"):
            st.metric("Calories", dashboard["calorie_target"])
        if dashboard.get("water_target_ml"):
            st.metric("Water", f"{dashboard['water_target_ml']}ml")
        if dashboard.get("goal_label"):
            st.write(f"Goal: {dashboard['goal_label']}")
        if dashboard.get("diet_label"):
            st.write(f"Diet: {dashboard['diet_label']}")
    st.info("💪 Keep it up! Small changes lead to big results. Log your meals and stay consistent!")


def render_chat(profile: Optional[Dict[str, Any]]) -> None:
    if "chat_history" not in st.session_state:
        st.session_state.chat_history: List[Dict[str, str]] = [
            {"role": "assistant", "content": WELCOME_MESSAGE},
        ]

    for message in st.session_state.chat_history:
        with st.chat_message(message["role"]):
            st.markdown(message["content"])

    prompt = st.chat_input("Log a meal or ask for suggestions...")
    if not prompt:
        return

    st.session_state.chat_history.append({"role": "user", "content": prompt})
    with st.chat_message("user"):
        st.markdown(prompt)

    # The welcome message is local UI chrome, not part of the conversation
    turns = st.session_state.chat_history[1:]
    with st.chat_message("assistant"):
        try:
            answer = st.write_stream(stream_chat(turns, profile))
        except Exception as exc:  # noqa: BLE001
            # Drop the unanswered turn so the next request does not repeat it
            st.session_state.chat_history.pop()
            st.error(str(exc))
            return
    if answer:
        st.session_state.chat_history.append({"role": "assistant", "content": answer})
    else:
        st.session_state.chat_history.pop()


def render_dashboard(user_id: str, profile: Optional[Dict[str, Any]]) -> None:
    header, actions = st.columns([4, 1])
    with header:
        st.title("🥗 NutriBot")
        st.caption("Your nutrition companion")
    with actions:
        if st.button("Profile", key="profile_btn"):
            st.session_state.page = "profile"
            st.rerun()
        if st.button("Sign out", key="sign_out_btn"):
            sign_out()
            st.toast("Logged out successfully")
            st.rerun()

    stats_col, chat_col = st.columns([1, 2])
    with stats_col:
        render_goal_card(user_id, profile)
    with chat_col:
        render_chat(profile)


with st.sidebar:
    st.header("Settings")
    st.text_input(
        "Backend URL",
        help="FastAPI base path. Default assumes `uvicorn backend.app.main:app --reload` on port 8000.",
        key="backend_url",
    )
    if st.button("Ping backend", key="ping_backend_btn"):
        try:
            health = _backend_request("GET", "/health")
            st.success(f"Backend reachable: {health}")
        except Exception as exc:  # noqa: BLE001
            st.error(f"Unable to reach backend: {exc}")


active_user = st.session_state.get("user_id")
if not active_user:
    render_auth()
else:
    if "profile" not in st.session_state:
        try:
            st.session_state.profile = load_profile(active_user)
        except Exception as exc:  # noqa: BLE001
            st.error(f"Could not load profile: {exc}")
            st.stop()
        if st.session_state.profile is None:
            st.session_state.page = "profile"

    if st.session_state.page == "profile":
        render_profile_setup(active_user)
    else:
        render_dashboard(active_user, st.session_state.profile)
