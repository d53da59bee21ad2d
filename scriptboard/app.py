from __future__ import annotations

import os
import sys
from datetime import datetime
from typing import List, Optional, Tuple

import streamlit as st
from streamlit.delta_generator import DeltaGenerator
from dotenv import load_dotenv

# Ensure project root is on sys.path
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

# Load environment
load_dotenv(os.path.join(PROJECT_ROOT, ".env"))

from scriptboard.config import load_config  # noqa: E402
from scriptboard.errors import RemoteServiceError, ScriptboardError, describe_error  # noqa: E402
from scriptboard.models import ASPECT_RATIOS, ItemStatus, StoryboardItem  # noqa: E402
from scriptboard.pipeline import Pipeline  # noqa: E402
from scriptboard.services import connectivity_probe, openrouter_key_probe  # noqa: E402
from scriptboard.services.storage import (  # noqa: E402
    IMAGES_ZIP_FILE_NAME,
    PROMPTS_FILE_NAME,
    build_images_zip,
    data_url_to_bytes_and_mime,
    decode_script_upload,
    load_reference_image,
    prompts_to_text,
)
from scriptboard.state import CONTENT_PROMPTS, CONTENT_SCRIPT, AppState  # noqa: E402


SIDEBAR_THUMB_WIDTH = 180
GRID_COLUMNS = 3


# --------------------------
# Page configuration & Styles
# --------------------------
st.set_page_config(
    page_title="Scriptboard",
    layout="wide",
    page_icon="🎬",
    initial_sidebar_state="expanded",
)

st.markdown(
    """
<style>
  .main-header { background: linear-gradient(135deg, #4f46e5 0%, #7c3aed 100%); color: white; padding: 1.25rem 1rem; border-radius: 10px; margin-bottom: 1.25rem; text-align: center; }
  .main-header h1 { margin: 0; font-size: 2.25rem; font-weight: 700; }
  .status-indicator { padding: 0.35rem 0.75rem; border-radius: 16px; font-size: 0.85rem; font-weight: 600; display: inline-block; }
  .status-ok { background-color: #d4edda; color: #155724; border: 1px solid #c3e6cb; }
  .status-fail { background-color: #f8d7da; color: #721c24; border: 1px solid #f5c6cb; }
  .log-container { background: #2d3748; color: #e2e8f0; border-radius: 8px; padding: 0.75rem; font-family: 'Monaco','Menlo','Ubuntu Mono',monospace; font-size: 0.75rem; max-height: 320px; overflow-y: auto; }
</style>
""",
    unsafe_allow_html=True,
)


# --------------------------
# Session State & Utilities
# --------------------------
def _log(message: str) -> None:
    ts = datetime.now().strftime("%H:%M:%S")
    st.session_state.app_state.logs.append(f"[{ts}] {message}")


def _init_session() -> None:
    if "initialized" not in st.session_state:
        st.session_state.initialized = True
        st.session_state.cfg = load_config()
        st.session_state.app_state = AppState()
        st.session_state.pipeline = Pipeline(st.session_state.cfg, on_log=_log)
        st.session_state.pending_action = None  # type: Optional[Tuple]


def _state() -> AppState:
    return st.session_state.app_state


def _pipeline() -> Pipeline:
    return st.session_state.pipeline


def _header() -> None:
    st.markdown(
        """
        <div class="main-header">
            <h1>🎬 Scriptboard</h1>
            <p>Turn a script or a list of prompts into an AI-generated storyboard</p>
        </div>
        """,
        unsafe_allow_html=True,
    )


# --------------------------
# Sidebar: Settings
# --------------------------
def _on_script_upload() -> None:
    uploaded = st.session_state.get("script_uploader")
    if uploaded is not None:
        st.session_state.script_input = decode_script_upload(uploaded.getvalue())


def _seed_widget(key: str, value: str) -> None:
    # Widgets that are not rendered on a run lose their value; restore it from AppState
    if key not in st.session_state:
        st.session_state[key] = value


def _sidebar() -> None:
    state = _state()
    cfg = st.session_state.cfg

    st.subheader("🔗 Connection")
    if not cfg.openrouter_api_key:
        st.error("OPENROUTER_API_KEY is missing. Add it to your environment or .env.")
    else:
        if "probe" not in st.session_state:
            ok, msg = connectivity_probe()
            if ok:
                ok, msg = openrouter_key_probe(cfg.openrouter_api_key)
            st.session_state.probe = (ok, msg)
        ok, msg = st.session_state.probe
        klass = "status-ok" if ok else "status-fail"
        label = "✅ Connected" if ok else "❌ Disconnected"
        st.markdown(f'<div class="status-indicator {klass}">{label}</div>', unsafe_allow_html=True)
        if not ok:
            st.caption(f"Error: {msg}")

    st.divider()

    st.subheader("📝 Content")
    labels = {CONTENT_SCRIPT: "From Script", CONTENT_PROMPTS: "From Prompts"}
    _seed_widget("content_type_input", state.content_type)
    state.content_type = st.radio(
        "Source",
        options=[CONTENT_SCRIPT, CONTENT_PROMPTS],
        format_func=lambda v: labels[v],
        horizontal=True,
        key="content_type_input",
    )
    if state.content_type == CONTENT_SCRIPT:
        _seed_widget("script_input", state.script)
        state.script = st.text_area("Script", placeholder="Paste your script here...", height=180, key="script_input")
        st.file_uploader(
            "Upload Script (.txt)",
            type=["txt"],
            key="script_uploader",
            on_change=_on_script_upload,
        )
    else:
        _seed_widget("prompts_input", state.prompts_text)
        state.prompts_text = st.text_area(
            "Prompts",
            placeholder="Paste your prompts here, one per line...",
            height=180,
            key="prompts_input",
        )

    _seed_widget("niche_input", state.niche)
    state.niche = st.text_input("Niche / Topic", placeholder="e.g., futuristic gadgets, ancient history", key="niche_input")

    st.divider()

    st.subheader("🎨 Image Style")
    ref_file = st.file_uploader(
        "Reference Image",
        type=["png", "jpg", "jpeg", "webp"],
        key="reference_uploader",
        help="Generated images will emulate the style of this image.",
    )
    if ref_file is None:
        state.reference_image = None
    else:
        try:
            state.reference_image = load_reference_image(ref_file.getvalue(), ref_file.type)
            st.image(state.reference_image.data, caption="Reference", width=SIDEBAR_THUMB_WIDTH)
        except ScriptboardError as e:
            state.reference_image = None
            st.caption(f"Reference unavailable: {e}")

    _seed_widget("style_keywords_input", state.style_keywords)
    state.style_keywords = st.text_input(
        "Style Keywords",
        placeholder="e.g., cinematic, photorealistic, 4k",
        key="style_keywords_input",
    )
    _seed_widget("aspect_ratio_input", state.aspect_ratio)
    state.aspect_ratio = st.selectbox("Aspect Ratio", options=list(ASPECT_RATIOS), key="aspect_ratio_input")

    if state.content_type == CONTENT_SCRIPT:
        _seed_widget("ai_instruction_input", state.ai_instruction)
        state.ai_instruction = st.text_area("AI Request for Prompts", height=220, key="ai_instruction_input")

    st.divider()

    busy = st.session_state.pending_action is not None
    st.button(
        "⚡ Generate Images",
        type="primary",
        disabled=busy or not cfg.openrouter_api_key,
        use_container_width=True,
        on_click=_request_action,
        args=(("generate",),),
    )
    st.button(
        "♻️ Reset App",
        disabled=busy,
        use_container_width=True,
        help="Clear settings and results.",
        on_click=_reset_app,
    )


# --------------------------
# Main Content
# --------------------------
def _main_content() -> None:
    if st.session_state.pending_action is not None:
        _process_pending_action()
        return

    state = _state()
    pipeline = _pipeline()

    if state.error:
        st.error(state.error)

    if pipeline.generated_prompts:
        _render_prompts(pipeline.generated_prompts)

    if not pipeline.storyboard:
        if not state.error:
            st.info("Your generated content will appear here.")
        return

    _render_storyboard(pipeline.storyboard)


def _render_prompts(prompts: List[str]) -> None:
    col_title, col_dl = st.columns([3, 1])
    with col_title:
        st.subheader("🧾 Generated Prompts (Script Based)")
    with col_dl:
        st.download_button(
            label="💾 Download",
            data=prompts_to_text(prompts),
            file_name=PROMPTS_FILE_NAME,
            mime="text/plain",
            key="dl_prompts",
            use_container_width=True,
        )
    with st.expander(f"{len(prompts)} prompts", expanded=False):
        for i, prompt in enumerate(prompts, start=1):
            st.markdown(f"**{i}.** {prompt}")


def _render_storyboard(storyboard: List[StoryboardItem]) -> None:
    has_success = any(item.status == ItemStatus.SUCCESS for item in storyboard)
    col_title, col_dl = st.columns([3, 1])
    with col_title:
        st.subheader("🎬 Generated Images")
    with col_dl:
        st.download_button(
            label="📦 Download All (.zip)",
            data=build_images_zip(storyboard) if has_success else b"",
            file_name=IMAGES_ZIP_FILE_NAME,
            mime="application/zip",
            key="dl_zip",
            disabled=not has_success,
            use_container_width=True,
        )

    columns = st.columns(GRID_COLUMNS)
    for i, item in enumerate(storyboard):
        with columns[i % GRID_COLUMNS]:
            _render_item_card(i, item)


def _render_live_storyboard(storyboard: List[StoryboardItem]) -> List[DeltaGenerator]:
    """Draw the grid with one placeholder per card so cards can be redrawn mid-run."""
    st.subheader("🎬 Generated Images")
    columns = st.columns(GRID_COLUMNS)
    placeholders: List[DeltaGenerator] = []
    for i, item in enumerate(storyboard):
        with columns[i % GRID_COLUMNS]:
            placeholders.append(st.empty())
        _redraw_card(placeholders[i], i, item)
    return placeholders


def _redraw_card(placeholder: DeltaGenerator, index: int, item: StoryboardItem) -> None:
    with placeholder.container():
        _render_item_card(index, item, live=True)


def _render_item_card(index: int, item: StoryboardItem, live: bool = False) -> None:
    with st.container(border=True):
        if item.status == ItemStatus.SUCCESS and item.image_url:
            image_bytes, _mime = data_url_to_bytes_and_mime(item.image_url)
            st.image(image_bytes, use_container_width=True)
        elif item.status == ItemStatus.GENERATING:
            st.info("🔄 Generating…")
        elif item.status == ItemStatus.ERROR:
            st.error("❌ Generation Failed")
            if item.error_message:
                st.caption(item.error_message)
            # Retry is offered once the page is idle again
            if not live:
                st.button(
                    "🔁 Retry",
                    key=f"retry_{index}",
                    on_click=_request_action,
                    args=(("retry", index),),
                )
        else:
            st.caption("Waiting…")
        st.markdown(f"**{index + 1}.** {item.prompt}")


# --------------------------
# Right Panel: Progress & Logs
# --------------------------
def _right_panel() -> None:
    state = _state()
    st.subheader("📊 Progress")
    if state.current_operation:
        st.info(f"🔄 {state.current_operation}")
    else:
        st.caption("Idle")

    st.subheader("📋 Activity Log")
    if state.logs:
        st.markdown("<div class=\"log-container\">" + "<br>".join(state.logs[-40:]) + "</div>", unsafe_allow_html=True)
        if st.button("🗑️ Clear Logs", use_container_width=True):
            state.logs = []
    else:
        st.caption("No activity yet")


# --------------------------
# Actions
# --------------------------
def _request_action(action: Tuple) -> None:
    st.session_state.pending_action = action


def _process_pending_action() -> None:
    action = st.session_state.pending_action
    if action is None:
        return
    try:
        if action[0] == "generate":
            _generate()
        elif action[0] == "retry":
            _retry(action[1])
    finally:
        st.session_state.pending_action = None
        _state().current_operation = None
    # Re-render so the sidebar controls pick up the finished state
    st.rerun()


def _generate() -> None:
    state = _state()
    pipeline = _pipeline()
    state.error = None
    progress = st.progress(0.0)
    status = st.empty()
    placeholders: List[DeltaGenerator] = []

    def on_item(index: int, item: StoryboardItem) -> None:
        if not placeholders:
            placeholders.extend(_render_live_storyboard(pipeline.storyboard))
        _redraw_card(placeholders[index], index, item)
        total = len(pipeline.storyboard)
        if item.status == ItemStatus.GENERATING:
            state.current_operation = f"Generating image {index + 1} of {total}..."
            status.text(state.current_operation)
        elif item.status in (ItemStatus.SUCCESS, ItemStatus.ERROR):
            progress.progress((index + 1) / total)

    try:
        state.current_operation = "Preparing prompts…"
        status.text(state.current_operation)
        pipeline.run(state.build_source(), state.image_settings(), on_item=on_item)
    except RemoteServiceError as e:
        # Only stage 1 lets remote errors escape; stage 2 records them per item
        state.error = f"Error during prompt generation: {describe_error(e)}"
        _log(f"❌ Prompt generation failed: {e}")
    except ScriptboardError as e:
        state.error = describe_error(e)
        _log(f"❌ Generation not started: {state.error}")
    except Exception as e:  # noqa: BLE001
        state.error = f"Generation failed: {describe_error(e)}"
        _log(f"❌ Generation failed: {e!r}")
    finally:
        progress.empty()
        status.empty()


def _retry(index: int) -> None:
    state = _state()
    pipeline = _pipeline()
    placeholders = _render_live_storyboard(pipeline.storyboard)

    def on_item(i: int, item: StoryboardItem) -> None:
        _redraw_card(placeholders[i], i, item)

    try:
        state.current_operation = f"Retrying image {index + 1}..."
        pipeline.retry_item(index, settings=state.image_settings(), on_item=on_item)
    except ScriptboardError as e:
        state.error = describe_error(e)
        _log(f"❌ Retry failed: {state.error}")
    except Exception as e:  # noqa: BLE001
        state.error = f"Retry failed: {describe_error(e)}"
        _log(f"❌ Retry failed: {e!r}")


def _reset_app() -> None:
    for key in list(st.session_state.keys()):
        del st.session_state[key]
    _init_session()


# --------------------------
# Entry Point
# --------------------------
def main() -> None:
    _init_session()
    _header()

    col1, col2, col3 = st.columns([1.1, 2.8, 0.8])
    with col1:
        _sidebar()
    with col2:
        _main_content()
    with col3:
        _right_panel()


if __name__ == "__main__":
    main()
