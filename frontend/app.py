import json
import os
import re
from pathlib import Path

import requests
import streamlit as st

from helpers import filename_from, pill, suggestion_html

API_BASE = os.getenv("SEPARATOR_API_BASE", "http://127.0.0.1:8000")
API_SESSIONS = f"{API_BASE}/api/v1/sessions"

PAGE_TITLE = "Thumbnail Separator · Gemini"

# paths
HERE = Path(__file__).resolve().parent
PROJECT_ROOT = HERE.parent
ENV_PATH = PROJECT_ROOT / ".env"
ENV_EXAMPLE_PATH = PROJECT_ROOT / ".env.example"


GEMINI_KEY_NAME = "GEMINI_API_KEY"
PLACEHOLDER_VALUES = {"", "your_key_here", "YOUR_KEY_HERE", "your_key", "replace_me"}

LAYER_ICONS = {
    "person": "👤",
    "text": "Tt",
    "object": "📦",
    "background": "🌄",
    "effect": "✨",
    "logo": "💠",
}


def read_text(path: Path):
    try:
        return path.read_text(encoding="utf-8")
    except OSError:
        return None


def extract_key(contents: str | None):
    if not contents:
        return None
    for line in contents.splitlines():
        line = line.strip()
        if line.startswith(f"{GEMINI_KEY_NAME}="):
            return line.split("=", 1)[1].strip()
    return None


def save_env_from_example(user_key: str):
    example_text = read_text(ENV_EXAMPLE_PATH) or ""

    pattern = re.compile(rf"^{GEMINI_KEY_NAME}\s*=.*$", flags=re.MULTILINE)
    new_line = f"{GEMINI_KEY_NAME}={user_key}"

    if pattern.search(example_text):
        new_contents = pattern.sub(new_line, example_text)
    else:
        new_contents = example_text + ("\n" if example_text and not example_text.endswith("\n") else "") + new_line + "\n"

    ENV_PATH.write_text(new_contents, encoding="utf-8")


def api(method: str, path: str = "", **kwargs) -> requests.Response | None:
    """Call the backend; on transport failure show the error and return None."""
    try:
        return requests.request(method, f"{API_SESSIONS}{path}", timeout=kwargs.pop("timeout", 30), **kwargs)
    except requests.exceptions.RequestException as e:
        st.error(f"Could not reach backend: {e}")
        return None


def show_backend_error(resp: requests.Response):
    try:
        detail = resp.json().get("detail", resp.text)
    except ValueError:
        detail = resp.text
    st.error(detail)


# ---------- startup check ----------
current_key = extract_key(read_text(ENV_PATH)) or os.getenv(GEMINI_KEY_NAME)
needs_key = current_key is None or current_key in PLACEHOLDER_VALUES

if needs_key:
    st.set_page_config(page_title="API Key Required", layout="centered")

    st.markdown("<h2 style='text-align:center;'>Gemini API Key required</h2>", unsafe_allow_html=True)
    st.markdown(
        """
        The backend needs a valid `GEMINI_API_KEY` in `.env`. Paste your key below;
        `.env` is created from `.env.example` with only `GEMINI_API_KEY` replaced.
        Restart the backend afterwards so it picks the key up.
        """
    )

    key_input = st.text_input("Enter your Gemini API Key", type="password", key="gemini_input")
    if st.button("Save & Continue"):
        if not key_input or not key_input.strip():
            st.error("API key cannot be empty.")
        else:
            try:
                save_env_from_example(key_input.strip())
            except OSError as e:
                st.error(f"Failed to save key: {e}")
            else:
                st.success("Saved! The app will reload now.")
                st.rerun()

    # Block the rest of the app until key is set.
    st.stop()

st.set_page_config(
    page_title=PAGE_TITLE,
    layout="wide",
    initial_sidebar_state="collapsed",
)

# ---------- STYLING ----------
st.markdown(
    """
    <style>
    @import url('https://fonts.googleapis.com/css2?family=Inter:wght@400;500;600;700&display=swap');

    * {
        font-family: 'Inter', system-ui, -apple-system, BlinkMacSystemFont, "Segoe UI", sans-serif;
    }

    [data-testid="stAppViewContainer"] {
        background: #030712;
        color: #e5e7eb;
    }

    .section-label {
        font-size: 0.78rem;
        text-transform: uppercase;
        color: #6b7280;
        margin-bottom: 0.55rem;
        letter-spacing: 0.12em;
    }

    .pill {
        font-size: 0.7rem;
        padding: 0.2rem 0.65rem;
        border-radius: 999px;
        border: 1px solid rgba(59,130,246,0.5);
        color: #60a5fa;
        text-transform: uppercase;
        letter-spacing: 0.08em;
    }

    .suggestion {
        font-size: 0.82rem;
        color: #d1d5db;
        padding: 0.35rem 0.5rem;
        border-radius: 0.7rem;
        background: rgba(31,41,55,0.5);
        margin-bottom: 0.28rem;
    }

    .swatch-row {
        display: flex;
        height: 4rem;
        border-radius: 0.75rem;
        overflow: hidden;
    }

    .swatch {
        flex: 1;
        display: flex;
        align-items: flex-end;
        justify-content: center;
        padding-bottom: 0.4rem;
        font-size: 0.65rem;
        color: white;
        text-shadow: 0 1px 2px black;
    }

    .thumb-placeholder {
        width: 100%;
        height: 2.5rem;
        border-radius: 0.3rem;
        background: #4b5563;
    }
    </style>
    """,
    unsafe_allow_html=True,
)

# ---------- STATE ----------
if "session_id" not in st.session_state:
    st.session_state.session_id = ""


def load_snapshot():
    sid = st.session_state.session_id
    if sid:
        r = api("GET", f"/{sid}")
        if r is None:
            st.stop()
        if r.ok:
            return r.json()
    r = api("POST")
    if r is None or not r.ok:
        st.stop()
    snapshot = r.json()
    st.session_state.session_id = snapshot["session_id"]
    return snapshot


snapshot = load_snapshot()
sid = snapshot["session_id"]
status = snapshot["status"]

# ---------- HEADER ----------
header_left, header_right = st.columns([0.75, 0.25])
with header_left:
    st.markdown("## Thumbnail Separator <span class='pill'>Gemini</span>", unsafe_allow_html=True)
with header_right:
    if status == "SUCCESS" and st.button("New project"):
        api("POST", f"/{sid}/reset")
        st.rerun()

# =========================================================
# IDLE: UPLOAD
# =========================================================
if status == "IDLE":
    st.markdown("### Deconstruct your thumbnails instantly.")
    st.caption(
        "Upload any YouTube or gaming thumbnail. Gemini separates the layers, "
        "analyzes visual weight and suggests improvements."
    )

    uploaded = st.file_uploader(
        "Drop thumbnail here",
        type=["png", "jpg", "jpeg", "webp"],
        label_visibility="collapsed",
    )
    if uploaded:
        st.image(uploaded, caption="Preview", use_container_width=True)

    if st.button("Separate layers"):
        if uploaded is None:
            st.warning("Upload a thumbnail first.")
        else:
            files = {"file": (uploaded.name, uploaded.getvalue(), uploaded.type)}
            with st.spinner("Deconstructing thumbnail… detecting layers, analyzing composition, extracting colors"):
                r = api("POST", f"/{sid}/image", files=files, timeout=120)
            if r is not None:
                if not r.ok:
                    show_backend_error(r)
                else:
                    st.rerun()
    st.stop()

# =========================================================
# ANALYZING (e.g. another tab submitted)
# =========================================================
if status == "ANALYZING":
    st.info("Analysis in progress…")
    if st.button("Refresh"):
        st.rerun()
    st.stop()

# =========================================================
# ERROR
# =========================================================
if status == "ERROR":
    st.markdown("### ⚠️ Analysis Failed")
    st.error(snapshot.get("error") or "Failed to analyze image")
    if st.button("Try Again"):
        api("POST", f"/{sid}/retry")
        st.rerun()
    st.stop()

# =========================================================
# SUCCESS: EDITOR
# =========================================================
result = snapshot.get("result") or {"layers": [], "analysis": {}}
layers = result.get("layers") or []
selected_id = snapshot.get("selected_layer_id")
selected = next((l for l in layers if l["id"] == selected_id), None)

left, right = st.columns([0.68, 0.32])

with left:
    if selected:
        # ISOLATED VIEW - only the selected layer crop
        r = api("GET", f"/{sid}/layers/{selected['id']}/crop", params={"source": "canvas"})
        if r is not None and r.status_code == 200:
            st.image(r.content, use_container_width=True)
        else:
            st.markdown("<div class='thumb-placeholder' style='height:12rem;'></div>", unsafe_allow_html=True)
            st.caption("Crop unavailable for this layer.")

        st.markdown(f"### {selected['label']}")
        badges = pill(selected["category"])
        if selected.get("subtype"):
            badges += " " + pill(selected["subtype"])
        st.markdown(badges, unsafe_allow_html=True)

        b1, b2 = st.columns(2)
        with b1:
            if st.button("← Back to Composition"):
                api("POST", f"/{sid}/selection", data={"layer_id": ""})
                st.rerun()
        with b2:
            if r is not None and r.status_code == 200:
                st.download_button(
                    "⬇ Download PNG",
                    data=r.content,
                    file_name=filename_from(r.headers, "layer_crop.png"),
                    mime="image/png",
                )
    else:
        # FULL COMPOSITION VIEW
        r = api("GET", f"/{sid}/overlay")
        if r is not None and r.status_code == 200:
            st.image(r.content, use_container_width=True)
        else:
            st.caption("Overlay unavailable.")

    # Bottom toolbar
    t1, t2 = st.columns([0.7, 0.3])
    with t1:
        st.caption(
            f"{len(layers)} Layers Detected · Resolution: "
            f"{snapshot.get('image_width')}x{snapshot.get('image_height')}"
        )
    with t2:
        export = api("GET", f"/{sid}/export")
        if export is not None and export.ok:
            st.download_button(
                "Export JSON",
                data=export.content,
                file_name=filename_from(export.headers, "thumbnail_data.json"),
                mime="application/json",
            )

with right:
    layers_tab, analysis_tab = st.tabs(["Layers", "Analysis"])

    with layers_tab:
        st.markdown(f"<div class='section-label'>Layers · {len(layers)}</div>", unsafe_allow_html=True)
        if not layers:
            st.caption("No layers detected.")

        # Top layer first
        for layer in reversed(layers):
            lid = layer["id"]
            c_vis, c_thumb, c_info = st.columns([0.15, 0.25, 0.6])

            with c_vis:
                if st.button("👁" if layer["visible"] else "🚫", key=f"vis-{lid}"):
                    api("POST", f"/{sid}/layers/{lid}/visibility")
                    st.rerun()

            thumb = api("GET", f"/{sid}/layers/{lid}/crop", params={"source": "list"})
            with c_thumb:
                if thumb is not None and thumb.status_code == 200:
                    st.image(thumb.content, use_container_width=True)
                else:
                    st.markdown("<div class='thumb-placeholder'></div>", unsafe_allow_html=True)

            with c_info:
                icon = LAYER_ICONS.get(layer["category"], "🔹")
                marker = "**" if lid == selected_id else ""
                st.markdown(f"{icon} {marker}{layer['label']}{marker}")
                st.caption(f"{layer.get('subtype') or layer['category']} • Z: {layer['z_index']}")

                a1, a2 = st.columns(2)
                with a1:
                    if st.button("Inspect", key=f"sel-{lid}"):
                        api("POST", f"/{sid}/selection", data={"layer_id": lid})
                        st.rerun()
                with a2:
                    if thumb is not None and thumb.status_code == 200:
                        st.download_button(
                            "⬇",
                            data=thumb.content,
                            file_name=filename_from(thumb.headers, "layer.png"),
                            mime="image/png",
                            key=f"dl-{lid}",
                        )

        st.caption("Foreground ↑ · Background ↓")

    with analysis_tab:
        r = api("GET", f"/{sid}/analysis")
        if r is None or not r.ok:
            st.caption("Analysis unavailable.")
        else:
            payload = r.json()
            analysis = payload["analysis"]
            charts = payload["charts"]

            st.markdown("<div class='section-label'>✨ AI Suggestions</div>", unsafe_allow_html=True)
            for s in analysis.get("suggestions") or []:
                st.markdown(suggestion_html(s), unsafe_allow_html=True)

            st.markdown("<div class='section-label'>Composition metrics</div>", unsafe_allow_html=True)
            m1, m2 = st.columns(2)
            m1.metric("Rule of Thirds", analysis["rule_of_thirds_score"])
            m2.metric("Visual Balance", analysis["visual_balance_score"])

            st.markdown("<div class='section-label'>Score map</div>", unsafe_allow_html=True)
            st.bar_chart(charts["score_map"], x="subject", y="score")

            st.markdown("<div class='section-label'>Layers by type</div>", unsafe_allow_html=True)
            st.bar_chart(
                [{"type": k, "layers": v} for k, v in charts["category_counts"].items()],
                x="type",
                y="layers",
            )

            st.markdown("<div class='section-label'>Dominant palette</div>", unsafe_allow_html=True)
            if charts["palette"]:
                swatches = "".join(
                    f"<div class='swatch' style='background:{c};'>{c}</div>" for c in charts["palette"]
                )
                st.markdown(f"<div class='swatch-row'>{swatches}</div>", unsafe_allow_html=True)
            else:
                st.caption("No palette returned.")

            with st.expander("Raw metadata"):
                st.code(
                    json.dumps(
                        {
                            "brightness": analysis.get("brightness_map"),
                            "contrast": analysis.get("contrast_level"),
                            "centerMass": analysis.get("visual_weight_center"),
                        },
                        indent=2,
                    ),
                    language="json",
                )
