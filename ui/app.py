"""
AutoTimer Streamlit UI - Live countdown, controls and settings via the status/command bridge.
"""
import streamlit as st
import time
import sys
from pathlib import Path
import pandas as pd

sys.path.insert(0, str(Path(__file__).parent.parent))

from autotimer import (
    SettingsStore,
    ConfigurationError,
    EventLogger,
    CommandBus,
    ServiceManager,
    read_status,
    should_acknowledge,
    storage_root,
)
from autotimer.settings import DURATION_RANGE_MIN, INACTIVITY_THRESHOLD_RANGE_SEC, SOUND_VOLUME_RANGE
from streamlit_autorefresh import st_autorefresh

# Page config
st.set_page_config(page_title="AutoTimer", page_icon="⏱", layout="wide")

# CSS
st.markdown("""
<style>
.status-running { color: #28a745; font-weight: bold; }
.status-paused { color: #fd7e14; font-weight: bold; }
.status-idle { color: #6c757d; font-weight: bold; }
.countdown { font-size: 4rem; font-weight: bold; font-family: monospace; }
.waiting-banner {
    background-color: #fff3cd;
    border: 1px solid #ffc107;
    color: #856404;
    padding: 1rem;
    border-radius: 0.5rem;
    margin: 1rem 0;
}
</style>
""", unsafe_allow_html=True)

# Auto-refresh every 1 second
st_autorefresh(interval=1000, key="datarefresh")

# Initialize session state
if 'settings_store' not in st.session_state:
    st.session_state.settings_store = SettingsStore()
if 'event_logger' not in st.session_state:
    st.session_state.event_logger = EventLogger()
if 'command_bus' not in st.session_state:
    st.session_state.command_bus = CommandBus()
if 'service_manager' not in st.session_state:
    st.session_state.service_manager = ServiceManager()

command_bus = st.session_state.command_bus

# True only on the first render of this browser session, not on auto-refresh reruns
first_view = 'opened' not in st.session_state
st.session_state.opened = True

st.title("⏱ AutoTimer")
st.caption("Activity-aware work timer")


def load_live_status():
    """Load live status from status.json"""
    status_file = storage_root() / "status.json"

    if not status_file.exists():
        return None, "File not found"

    # Check if file is stale (>3 seconds old)
    age = time.time() - status_file.stat().st_mtime
    if age > 3.0:
        return None, f"Stale ({age:.1f}s old)"

    status = read_status(str(status_file))
    if status is None:
        return None, "Unreadable"
    return status, None


status, error = load_live_status()

# Status Section
st.header("📊 Live Status")

if error:
    st.markdown(f"""
    <div class="waiting-banner">
        <strong>⏳ Waiting for background service...</strong><br>
        Reason: {error}<br>
        <br>
        Start it below, or run in a terminal:<br>
        <code>python dev_runner.py --diagnostics</code>
    </div>
    """, unsafe_allow_html=True)
else:
    phase = status['phase']
    if phase == 'running':
        st.markdown('<p class="status-running">▶ RUNNING</p>', unsafe_allow_html=True)
    elif phase == 'paused':
        st.markdown('<p class="status-paused">⏸ PAUSED - waiting for activity</p>', unsafe_allow_html=True)
    else:
        st.markdown('<p class="status-idle">■ IDLE</p>', unsafe_allow_html=True)

    st.markdown(f'<p class="countdown">{status["remaining_formatted"]}</p>', unsafe_allow_html=True)

    col1, col2, col3, col4 = st.columns(4)
    activity = status['activity']

    with col1:
        st.metric("Session Length", f"{status['duration_min']} min")

    with col2:
        st.metric("Sessions Completed", status['sessions_completed'])

    with col3:
        st.metric("Idle", f"{activity.get('idle_seconds', 0.0):.0f}s")

    with col4:
        st.metric("Auto Pauses", activity.get('auto_pause_count', 0))

    if status['pending_restart']:
        st.info("🔁 New session starting shortly")
    if activity.get('manual_only'):
        st.info("✋ Activity monitoring disabled (manual operation)")
    for source, reason in activity.get('degraded_sources', {}).items():
        st.warning(f"⚠️ {source} unavailable: {reason}")

    escalation = status['escalation']
    clicked = False
    if escalation.get('escalating'):
        st.success("🔔 Session complete! Take a break.")
        if not escalation.get('acknowledged'):
            clicked = st.button("✅ I saw it")

    if should_acknowledge(status, first_view=first_view, clicked=clicked):
        command_bus.send("acknowledge", origin="dashboard")

# Controls Section
st.header("🎛 Controls")
col1, col2, col3, col4, col5 = st.columns(5)
if col1.button("▶ Start"):
    command_bus.send("start", origin="dashboard")
if col2.button("⏯ Pause / Resume"):
    command_bus.send("toggle", origin="dashboard")
if col3.button("⏹ Stop"):
    command_bus.send("stop", origin="dashboard")
if col4.button("↺ Reset"):
    command_bus.send("reset", origin="dashboard")
if col5.button("🔔 Test Notification"):
    command_bus.send("test_notification", origin="dashboard")

# Background service
service_manager = st.session_state.service_manager
with st.expander("🖥 Background Service"):
    if service_manager.is_running():
        st.success(f"Running (PID {service_manager.get_pid()})")
        if st.button("Stop Service"):
            service_manager.stop_background()
    else:
        st.warning("Not running")
        if st.button("Start Service"):
            service_manager.start_background()
    st.code(service_manager.get_logs(lines=20))

st.divider()

# Settings Section
st.header("⚙️ Settings")
current = st.session_state.settings_store.get()

col1, col2, col3 = st.columns(3)
duration = col1.slider("Session (min)", DURATION_RANGE_MIN[0], DURATION_RANGE_MIN[1], current.duration)
threshold = col2.slider("Inactivity threshold (s)", INACTIVITY_THRESHOLD_RANGE_SEC[0],
                        INACTIVITY_THRESHOLD_RANGE_SEC[1], current.inactivity_threshold_seconds, 5)
volume = col3.slider("Volume", SOUND_VOLUME_RANGE[0], SOUND_VOLUME_RANGE[1], current.sound_volume)

col1, col2, col3 = st.columns(3)
push = col1.checkbox("Push notifications", current.push_notification_enabled)
sound = col2.checkbox("Sound", current.sound_enabled)
flash = col3.checkbox("Flash / attention", current.flash_enabled)

col1, col2, col3 = st.columns(3)
auto_start = col1.checkbox("Start on activity", current.auto_start)
auto_restart = col2.checkbox("Restart after completion", current.auto_restart_enabled)
monitoring = col3.checkbox("Activity monitoring", current.activity_monitoring)

custom_sound = st.text_input("Custom sound file", current.custom_sound_path or "")

if st.button("💾 Save Settings"):
    try:
        st.session_state.settings_store.update(
            duration=duration,
            inactivity_threshold_seconds=threshold,
            sound_volume=volume,
            push_notification_enabled=push,
            sound_enabled=sound,
            flash_enabled=flash,
            auto_start=auto_start,
            auto_restart=auto_restart,
            activity_monitoring=monitoring,
            custom_sound_path=custom_sound or None
        )
        st.success("✅ Saved! Duration and thresholds apply on the next tick.")
    except ConfigurationError as e:
        st.error(f"Invalid setting: {e}")

if st.button("↩ Restore Defaults"):
    st.session_state.settings_store.reset()
    st.success("✅ Defaults restored")

st.divider()

# Stats Section
st.header("📈 Today's Stats")
events = st.session_state.event_logger.get_recent_events(200)
completed = [e for e in events if e['event_type'] == 'completed']
failures = [e for e in events if e['event_type'] in ('channel_unavailable', 'channel_failed')]
col1, col2 = st.columns(2)
col1.metric("Completed Sessions", len(completed))
col2.metric("Channel Failures", len(failures))

st.divider()

# Event Log
st.header("📋 Event Log")
if events:
    df = pd.DataFrame(events)
    st.dataframe(df[['timestamp', 'event_type', 'state', 'reason']].tail(20), use_container_width=True)
    if st.button("🗑️ Clear Event Log"):
        st.session_state.event_logger.purge_logs()
        st.success("✅ Cleared")
else:
    st.info("No events yet")

st.caption("AutoTimer v1")
