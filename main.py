import asyncio
from typing import Dict

import streamlit as st

# Local application imports
from jellycue.api import is_jellyfin_url, parse_jellyfin_url
from jellycue.domain import EpisodeBookmark
from jellycue.errors import PlayerError
from jellycue.logs import configure_logging
from jellycue.repository import JsonBookmarkRepository
from jellycue.runner import run_player
from jellycue.settings import load_settings, save_settings
from jellycue.utils import format_episode_code

# === CONSTANTS & CONFIGURATION ===
PAGE_TITLE = "jellycue"
PAGE_ICON = "⏯️"
PREFERENCE_LABELS = {
    "sync_playback_progress": "Sync playback progress",
    "autoplay_next_episode": "Autoplay next episode",
    "set_video_title": "Set video title from metadata",
    "show_notifications": "Show on-screen notifications",
    "debug_logging": "Debug logging",
}
CSS = """
.main-header { font-size: 2.4rem; font-weight: 700; }
.sub-header { color: #888; margin-bottom: 1rem; }
.card-title { font-weight: 600; font-size: 1.1rem; }
.badge { border-radius: 4px; padding: 2px 6px; margin-right: 4px; font-size: 0.75rem; background: #333; }
"""

# === INITIALIZATION ===
st.set_page_config(
    page_title=PAGE_TITLE,
    page_icon=PAGE_ICON,
    layout="centered",
    initial_sidebar_state="expanded"
)
st.markdown(f"<style>{CSS}</style>", unsafe_allow_html=True)


# === COMPONENT RENDERERS ===
def render_sidebar(settings: Dict):
    with st.sidebar:
        st.markdown("### Preferences")

        for key, label in PREFERENCE_LABELS.items():
            st.checkbox(label, value=bool(settings.get(key)), key=f"pref_{key}")
        st.text_input("mpv executable", value=settings.get("player_executable", "mpv"), key="pref_exe")

        if st.button("Save", use_container_width=True):
            for key in PREFERENCE_LABELS:
                settings[key] = st.session_state[f"pref_{key}"]
            settings["player_executable"] = st.session_state.pref_exe
            save_settings(settings)
            configure_logging(settings)
            st.rerun()


def render_bookmark(bookmark: EpisodeBookmark, repository: JsonBookmarkRepository):
    """Renders one "continue watching" card."""
    k_id = bookmark.series_id
    code = format_episode_code(bookmark.season_number, bookmark.episode_number)

    with st.container():
        col_info, col_actions = st.columns([0.85, 0.15], gap="small")
        with col_info:
            st.markdown(
                f'<div class="card-title">{bookmark.series_name or bookmark.series_id}</div>'
                f'<span class="badge">{code}</span>'
                f'<span class="badge">{bookmark.server_base}</span>'
                f'<span class="badge">{bookmark.timestamp:%Y-%m-%d %H:%M}</span>',
                unsafe_allow_html=True,
            )
        with col_actions:
            if st.button("✕", key=f"del_{k_id}", use_container_width=True, help="Forget this series"):
                repository.delete_bookmark(bookmark.series_id)
                st.rerun()


# === MAIN ENTRY POINT ===
def main():
    settings = load_settings()
    configure_logging(settings)
    repository = JsonBookmarkRepository()

    render_sidebar(settings)

    st.markdown('<div class="main-header">jellycue.</div>', unsafe_allow_html=True)
    st.markdown('<div class="sub-header">Jellyfin progress sync and autoplay for mpv</div>',
                unsafe_allow_html=True)

    url = st.text_input("Stream URL", placeholder="https://server/Items/<id>/Download?api_key=…")
    if st.button("▶ Play", use_container_width=True, disabled=not url,
                 help="Opens mpv; this page waits until the player is closed."):
        if not is_jellyfin_url(url) or parse_jellyfin_url(url) is None:
            st.warning("Not a Jellyfin item URL; playback will not be tracked.")
        try:
            with st.spinner("Playing in mpv… this page resumes once the player window is closed."):
                asyncio.run(run_player(url, settings, repository))
        except PlayerError as e:
            st.error(f"Could not start the player: {e}")
        st.rerun()

    st.markdown("#### Continue watching")
    bookmarks = sorted(repository.load_all_bookmarks().values(), key=lambda b: b.timestamp, reverse=True)
    if not bookmarks:
        st.info("📚 Nothing here yet. Play an episode to start tracking a series.")
    else:
        for bookmark in bookmarks:
            render_bookmark(bookmark, repository)


if __name__ == "__main__":
    main()
