"""Streamlit dashboard for the Room Planner chess grid."""

from __future__ import annotations

import datetime
from typing import Any, Dict, List, Optional

import pandas as pd
import requests
import streamlit as st

# ==========================================
# Configuration & Constants
# ==========================================
# Point this to your local FastAPI server
API_BASE_URL = "http://127.0.0.1:8000"

WEEKDAY_NAMES = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
KIND_OPTIONS = ["reservation", "rental", "event", "class"]

st.set_page_config(
    page_title="Room Planner",
    page_icon="🗓️",
    layout="wide",
)

# ==========================================
# API Helper Functions
# ==========================================
def fetch_timeline(target_date: str, must_have_activity: bool) -> Optional[Dict[str, Any]]:
    """Calls the backend timeline view."""
    try:
        response = requests.get(
            f"{API_BASE_URL}/timeline",
            params={"date": target_date, "must_have_activity": must_have_activity},
            timeout=5,
        )
        response.raise_for_status()
        return response.json()
    except requests.exceptions.RequestException as e:
        st.error(f"Backend connection failed: {e}")
        return None


def post_placement(payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Creates a booking; a 409 body is returned so conflicts can be shown."""
    try:
        response = requests.post(f"{API_BASE_URL}/placements", json=payload, timeout=5)
        if response.status_code == 409:
            return response.json()
        response.raise_for_status()
        return response.json()
    except requests.exceptions.RequestException as e:
        st.error(f"Booking failed: {e}")
        return None


def post_recurrence(payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    try:
        response = requests.post(f"{API_BASE_URL}/recurrences", json=payload, timeout=30)
        response.raise_for_status()
        return response.json()
    except requests.exceptions.RequestException as e:
        st.error(f"Recurring schedule failed: {e}")
        return None


# ==========================================
# Grid helpers
# ==========================================
def build_grid_frame(timeline: Dict[str, Any]) -> pd.DataFrame:
    """One row per grid line, one column per room; cells hold booking titles."""
    labels: List[str] = timeline.get("row_labels", [])
    columns: Dict[str, List[str]] = {}
    for item in timeline.get("timelines", []):
        cells = [""] * len(labels)
        for activity in item.get("activities", []):
            grid = activity.get("grid")
            if not grid:
                continue
            text = activity["title"]
            if activity.get("subtitle"):
                text = f"{text} ({activity['subtitle']})"
            for row in range(grid["row_start"], grid["row_start"] + grid["row_span"]):
                cells[row] = f"{cells[row]} | {text}" if cells[row] else text
        columns[item["resource"]["name"]] = cells
    return pd.DataFrame(columns, index=labels)


def build_free_slot_frame(timeline: Dict[str, Any]) -> pd.DataFrame:
    rows = [
        {
            "Room": item["resource"]["name"],
            "From": slot["start_time"],
            "To": slot["end_time"],
            "Length": slot["duration_label"],
        }
        for item in timeline.get("timelines", [])
        for slot in item.get("free_slots", [])
    ]
    return pd.DataFrame(rows, columns=["Room", "From", "To", "Length"])


# ==========================================
# UI Page Functions
# ==========================================
def render_grid_page() -> None:
    st.header("🗓️ Room Grid")
    st.markdown("Every room for one day. Rooms in use right now are listed first.")

    col1, col2 = st.columns(2)
    with col1:
        target_date = st.date_input("Day", datetime.date.today())
    with col2:
        must_have_activity = st.checkbox("Only rooms with bookings", value=False)

    timeline = fetch_timeline(str(target_date), must_have_activity)
    if not timeline:
        return
    if not timeline.get("timelines"):
        st.info("No rooms match the current filters.")
        return

    occupied = [item["resource"]["name"] for item in timeline["timelines"] if item["is_occupied_now"]]
    metric_col1, metric_col2 = st.columns(2)
    metric_col1.metric("Rooms shown", len(timeline["timelines"]))
    metric_col2.metric("Occupied now", len(occupied))

    st.dataframe(build_grid_frame(timeline), use_container_width=True, height=600)

    st.write("### Free slots")
    st.dataframe(build_free_slot_frame(timeline), use_container_width=True)


def render_booking_page() -> None:
    st.header("➕ Book a Room")

    col1, col2, col3 = st.columns(3)
    with col1:
        resource_id = st.text_input("Room ID", "studio-1")
        kind = st.selectbox("Kind", KIND_OPTIONS)
    with col2:
        target_date = st.date_input("Date", datetime.date.today())
        start_time = st.time_input("Start", datetime.time(10, 0), step=1800)
        end_time = st.time_input("End", datetime.time(11, 0), step=1800)
    with col3:
        title = st.text_input("Title", "")
        subtitle = st.text_input("Booked by", "")
        relocate = st.checkbox("Move to the nearest free slot on conflict", value=True)

    if st.button("Book", type="primary"):
        result = post_placement(
            {
                "resource_id": resource_id,
                "kind": kind,
                "date": str(target_date),
                "start_time": start_time.strftime("%H:%M"),
                "end_time": end_time.strftime("%H:%M"),
                "title": title or None,
                "subtitle": subtitle or None,
                "relocate": relocate,
            }
        )
        if not result:
            return
        detail = result.get("detail")
        if isinstance(detail, dict):
            st.error(f"Not booked ({detail.get('status')})")
            if detail.get("message"):
                st.code(detail["message"])
        elif detail:
            st.error(str(detail))
        else:
            activity = result["activity"]
            if result.get("shifted"):
                st.warning(
                    f"Requested time was taken; booked {activity['start_time']}-{activity['end_time']} "
                    f"({result.get('direction')} by {result.get('shift_minutes')} min)"
                )
            else:
                st.success(f"Booked {activity['start_time']}-{activity['end_time']}")


def render_recurrence_page() -> None:
    st.header("🔁 Recurring Classes")
    st.markdown("Dates that are already taken are skipped and listed with the reason.")

    col1, col2 = st.columns(2)
    with col1:
        resource_id = st.text_input("Room ID", "studio-1", key="recurrence_room")
        title = st.text_input("Class title", "Group class")
        weekdays = st.multiselect("Weekdays", WEEKDAY_NAMES, default=["Mon", "Wed"])
    with col2:
        date_from = st.date_input("From", datetime.date.today(), key="recurrence_from")
        date_to = st.date_input(
            "To",
            datetime.date.today() + datetime.timedelta(days=27),
            key="recurrence_to",
        )
        start_time = st.time_input("Start", datetime.time(10, 0), step=1800, key="recurrence_start")
        end_time = st.time_input("End", datetime.time(11, 0), step=1800, key="recurrence_end")

    if st.button("Create schedule", type="primary"):
        result = post_recurrence(
            {
                "resource_id": resource_id,
                "date_from": str(date_from),
                "date_to": str(date_to),
                "title": title,
                "slots": [
                    {
                        "weekdays": [WEEKDAY_NAMES.index(day) for day in weekdays],
                        "start_time": start_time.strftime("%H:%M"),
                        "end_time": end_time.strftime("%H:%M"),
                    }
                ],
            }
        )
        if not result:
            return
        metric_col1, metric_col2 = st.columns(2)
        metric_col1.metric("Created", result.get("created_count", 0))
        metric_col2.metric("Skipped", result.get("skipped_count", 0))
        skipped = result.get("skipped", [])
        if skipped:
            st.write("### Skipped dates")
            st.dataframe(
                pd.DataFrame(
                    [
                        {"Date": item["date"], "Time": f"{item['start_time']}-{item['end_time']}", "Reason": item["reason"]}
                        for item in skipped
                    ]
                ),
                use_container_width=True,
            )


# ==========================================
# Main App Router
# ==========================================
def main() -> None:
    st.sidebar.title("Room Planner")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigation Module",
        ["Room Grid", "Book a Room", "Recurring Classes"]
    )

    st.sidebar.markdown("---")
    st.sidebar.caption(f"API: {API_BASE_URL}")

    if page == "Room Grid":
        render_grid_page()
    elif page == "Book a Room":
        render_booking_page()
    elif page == "Recurring Classes":
        render_recurrence_page()

if __name__ == "__main__":
    main()
