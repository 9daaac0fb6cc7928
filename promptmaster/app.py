"""PromptMaster - Gradio workbench for interview-driven prompt engineering."""

import argparse
import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import gradio as gr

from .config import (
    AppSettings,
    FeatureType,
    Language,
    get_all_models,
    load_settings,
    save_settings,
    validate_settings,
)
from .editor import EditorEngine
from .errors import PromptMasterError, get_error_message
from .export import export_as_json, export_as_markdown, generate_share_link, parse_share_link
from .interview import InterviewSession
from .llm import PromptService
from .models import Speaker
from .router import FeatureRouter, ProviderFactory
from .storage import USER_STORE_FILE, KeyValueStore, YamlFileStore

logger = logging.getLogger(__name__)

REFRESH_INTERVAL = 1.0


class Workbench:
    """Everything one local user works with: settings, interview and editor."""

    def __init__(self, store: KeyValueStore, provider_factory: Optional[ProviderFactory] = None):
        self.store = store
        self.settings = load_settings(store)
        self.router = FeatureRouter(self.settings, provider_factory)
        self.service = PromptService(self.router)
        self.interview = InterviewSession(self.router)
        self.editor: Optional[EditorEngine] = None

    @property
    def language(self) -> Language:
        return self.settings.language

    def update_settings(self, settings: AppSettings) -> None:
        save_settings(self.store, settings)
        self.settings = settings
        self.router.update_settings(settings)

    async def open_editor(self, prompt: str, context: str) -> EditorEngine:
        """Replace the editor with a fresh one on ``prompt``."""
        if self.editor is not None:
            await self.editor.close()
        self.editor = EditorEngine(self.service, context, self.language, prompt)
        self.editor.start()
        return self.editor


# Global state
WORKBENCH: Optional[Workbench] = None


def get_workbench() -> Workbench:
    """Get the current workbench."""
    if WORKBENCH is None:
        raise RuntimeError("Workbench not initialized")
    return WORKBENCH


def set_workbench(workbench: Workbench):
    """Set the current workbench."""
    global WORKBENCH
    WORKBENCH = workbench


def error_status(e: Exception) -> str:
    return f"❌ {get_error_message(e)}"


# ============================================================================
# Section 1: Interview
# ============================================================================


def chat_history() -> List[Dict[str, str]]:
    """Interview transcript in Chatbot message format."""
    history = []
    for turn in get_workbench().interview.transcript:
        if turn.speaker == Speaker.SYSTEM:
            continue
        role = "user" if turn.speaker == Speaker.USER else "assistant"
        history.append({"role": role, "content": turn.text})
    return history


def option_updates(options) -> list:
    """Show one button per quick option, hide the rest."""
    options = list(options)
    updates = []
    for i in range(3):
        if i < len(options):
            updates.append(gr.update(value=options[i], visible=True))
        else:
            updates.append(gr.update(value="", visible=False))
    return updates


async def start_interview_ui() -> tuple:
    """Open a new interview and show the first question."""
    workbench = get_workbench()
    try:
        response = await workbench.interview.begin(workbench.language)
    except PromptMasterError as e:
        return (chat_history(), *option_updates([]), error_status(e))
    return (chat_history(), *option_updates(response.options), "")


async def send_answer_ui(text: str) -> tuple:
    """Send an answer and show the next question."""
    if not text or not text.strip():
        return (chat_history(), *option_updates([]), "", "")

    workbench = get_workbench()
    try:
        response = await workbench.interview.send_turn(text.replace("**", "").strip(), workbench.language)
    except PromptMasterError as e:
        return (chat_history(), *option_updates([]), text, error_status(e))

    status = "✅ Draft ready - use 'Generate Draft' to open it in the editor" if response.is_final_draft else ""
    return (chat_history(), *option_updates(response.options), "", status)


async def reroll_options_ui() -> tuple:
    """Ask for three different quick options."""
    workbench = get_workbench()
    try:
        response = await workbench.interview.reroll(workbench.language)
    except PromptMasterError as e:
        return (chat_history(), *option_updates([]), error_status(e))
    return (chat_history(), *option_updates(response.options), "")


async def generate_draft_ui() -> tuple:
    """Finalize the interview and move the draft into the editor."""
    workbench = get_workbench()
    try:
        draft = await workbench.interview.finalize(workbench.language)
    except PromptMasterError as e:
        return (gr.update(), gr.update(), error_status(e))

    editor = await workbench.open_editor(draft, workbench.interview.context_summary())
    return editor.prompt, editor.context, "✅ Draft moved to the editor"


# ============================================================================
# Section 2: Import
# ============================================================================


async def import_prompt_ui(prompt: str) -> tuple:
    """Start editing an existing prompt, inferring its context."""
    if not prompt or not prompt.strip():
        return gr.update(), gr.update(), "⚠️ Paste a prompt first"

    workbench = get_workbench()
    try:
        context = await workbench.service.reverse_engineer_context(prompt, workbench.language)
    except PromptMasterError as e:
        return gr.update(), gr.update(), error_status(e)

    editor = await workbench.open_editor(prompt, context)
    return editor.prompt, editor.context, "✅ Prompt imported"


async def import_share_link_ui(url: str) -> tuple:
    """Start editing the prompt carried by a share link."""
    data = parse_share_link(url or "")
    if data is None:
        return gr.update(), gr.update(), "❌ Not a valid share link"

    editor = await get_workbench().open_editor(data["prompt"], data["context"] or "")
    return editor.prompt, editor.context, "✅ Shared prompt loaded"


# ============================================================================
# Section 3: Editor
# ============================================================================


def suggestion_choices(editor: EditorEngine) -> List[Tuple[str, str]]:
    return [
        (f"[{s.type.value}] {s.original_text} → {s.suggested_text}", s.id)
        for s in editor.suggestions
    ]


def lock_rows(editor: EditorEngine) -> List[List[str]]:
    return [[lock.text, lock.pillar.value] for lock in editor.locked_segments]


def editor_panel() -> tuple:
    """Feedback, suggestions, locks and busy state of the current editor."""
    editor = get_workbench().editor
    if editor is None:
        return "", gr.update(choices=[], value=None), [], gr.update(choices=[], value=None), ""

    feedback = f"💡 {editor.feedback}"
    if editor.is_typing:
        feedback += " _(thinking...)_"
    if editor.show_undo:
        feedback += "\n\n↩️ Undo available"

    if editor.is_processing:
        busy = f"⏳ {editor.processing_kind.value}..."
    elif editor.last_error:
        busy = f"⚠️ {editor.last_error}"
    else:
        busy = ""

    return (
        feedback,
        gr.update(choices=suggestion_choices(editor), value=editor.active_suggestion_id),
        lock_rows(editor),
        gr.update(choices=[(lock.text, lock.id) for lock in editor.locked_segments], value=None),
        busy,
    )


def require_editor() -> EditorEngine:
    editor = get_workbench().editor
    if editor is None:
        raise PromptMasterError("Finish the interview or import a prompt first")
    return editor


async def edit_prompt_ui(text: str):
    """Manual edit from the prompt box."""
    editor = get_workbench().editor
    if editor is not None and text != editor.prompt:
        editor.update_prompt(text)


async def deep_scan_ui() -> tuple:
    try:
        editor = require_editor()
        ran = await editor.deep_scan()
    except PromptMasterError as e:
        return (*editor_panel(), error_status(e))
    status = f"🔍 {len(editor.suggestions)} suggestions" if ran else "⏳ Busy"
    return (*editor_panel(), status)


async def apply_suggestion_ui(suggestion_id: Optional[str]) -> tuple:
    try:
        editor = require_editor()
    except PromptMasterError as e:
        return (gr.update(), *editor_panel(), error_status(e))
    if not suggestion_id or not editor.apply_suggestion(suggestion_id):
        return (gr.update(), *editor_panel(), "⚠️ Select a suggestion")
    return (editor.prompt, *editor_panel(), "✅ Suggestion applied")


async def dismiss_suggestion_ui(suggestion_id: Optional[str]) -> tuple:
    editor = get_workbench().editor
    if editor is not None and suggestion_id:
        editor.dismiss_suggestion(suggestion_id)
    return editor_panel()


async def select_suggestion_ui(suggestion_id: Optional[str]):
    editor = get_workbench().editor
    if editor is not None:
        editor.set_active_suggestion(suggestion_id)


async def apply_feedback_ui() -> tuple:
    try:
        editor = require_editor()
        ran = await editor.apply_feedback()
    except PromptMasterError as e:
        return (gr.update(), *editor_panel(), error_status(e))
    return (editor.prompt, *editor_panel(), "✅ Tip applied" if ran else "⚠️ Nothing to apply")


async def dismiss_feedback_ui() -> tuple:
    try:
        editor = require_editor()
        await editor.dismiss_feedback()
    except PromptMasterError as e:
        return (*editor_panel(), error_status(e))
    return (*editor_panel(), "")


async def undo_ui() -> tuple:
    editor = get_workbench().editor
    if editor is None or not editor.undo():
        return (gr.update(), *editor_panel(), "⚠️ Nothing to undo")
    return (editor.prompt, *editor_panel(), "↩️ Restored")


async def reconstruct_ui() -> tuple:
    try:
        editor = require_editor()
        ran = await editor.reconstruct()
    except PromptMasterError as e:
        return (gr.update(), *editor_panel(), error_status(e))
    return (editor.prompt, *editor_panel(), "✨ Prompt rewritten" if ran else "⏳ Busy")


async def reconstruct_selection_ui(start: float, end: float) -> tuple:
    try:
        editor = require_editor()
        ran = await editor.reconstruct_selection(int(start or 0), int(end or 0))
    except (PromptMasterError, ValueError) as e:
        return (gr.update(), *editor_panel(), error_status(e))
    return (editor.prompt, *editor_panel(), "✨ Selection rewritten" if ran else "⏳ Busy")


async def add_lock_ui(text: str) -> tuple:
    try:
        editor = require_editor()
    except PromptMasterError as e:
        return ("", *editor_panel(), error_status(e))
    if not text or text not in editor.prompt:
        return (text, *editor_panel(), "⚠️ Lock text must appear in the prompt")
    lock = editor.add_lock(text)
    return ("", *editor_panel(), "🔒 Locked" if lock else "⚠️ Already locked")


async def remove_lock_ui(lock_id: Optional[str]) -> tuple:
    editor = get_workbench().editor
    if editor is not None and lock_id:
        editor.remove_lock(lock_id)
    return editor_panel()


# ============================================================================
# Section 4: Export
# ============================================================================


def export_ui(kind: str) -> str:
    editor = get_workbench().editor
    if editor is None:
        return ""
    if kind == "markdown":
        return export_as_markdown(editor.prompt, editor.context)
    if kind == "json":
        return export_as_json(editor.prompt, editor.context, {"language": editor.language.value})
    return generate_share_link(editor.prompt, editor.context)


# ============================================================================
# Section 5: Settings
# ============================================================================


def model_choices() -> List[Tuple[str, str]]:
    settings = get_workbench().settings
    return [(model.name, model.id) for model in get_all_models(settings.api.custom_models)]


def settings_status(settings: AppSettings) -> str:
    errors = validate_settings(settings)
    if errors:
        return "⚠️ Issues:\n" + "\n".join(f"  - {e}" for e in errors)
    return "✅ Settings valid"


def save_settings_ui(
    language: str,
    gemini_api_key: str,
    deepseek_api_key: str,
    openai_api_key: str,
    default_api_key: str,
    default_base_url: str,
    *feature_models: str,
) -> str:
    """Save settings and apply them to every later call."""
    workbench = get_workbench()
    current = workbench.settings
    models = {feature: model_id for feature, model_id in zip(FeatureType, feature_models) if model_id}

    try:
        settings = current.model_copy(update={
            "language": Language(language),
            "api": current.api.model_copy(update={
                "gemini_api_key": gemini_api_key or "",
                "deepseek_api_key": deepseek_api_key or "",
                "openai_api_key": openai_api_key or "",
                "default_api_key": default_api_key or "",
                "default_base_url": default_base_url or "",
                "models": {**current.api.models, **models},
            }),
        })
        workbench.update_settings(settings)
    except (OSError, ValueError) as e:
        return error_status(e)

    return settings_status(settings)


# ============================================================================
# Main UI
# ============================================================================


def create_ui(workbench: Workbench):
    """Create Gradio UI."""
    set_workbench(workbench)
    settings = workbench.settings

    with gr.Blocks(title="PromptMaster") as demo:
        gr.Markdown("# 🎯 PromptMaster\nInterview → Draft → Edit")

        with gr.Tabs():
            with gr.Tab("Interview"):
                chatbot = gr.Chatbot(label="Consultant", height=420)
                with gr.Row():
                    option_buttons = [gr.Button(visible=False, size="sm") for _ in range(3)]
                answer_input = gr.Textbox(label="Your answer", placeholder="Type an answer and press Enter")
                with gr.Row():
                    start_btn = gr.Button("▶️ Start Interview", variant="primary")
                    reroll_btn = gr.Button("🎲 Other Options", size="sm")
                    draft_btn = gr.Button("📝 Generate Draft", variant="secondary")
                interview_status = gr.Textbox(label="Status", interactive=False, show_label=False)

            with gr.Tab("Import"):
                import_input = gr.Textbox(label="Existing prompt", lines=10)
                import_btn = gr.Button("📥 Import Prompt", variant="primary")
                share_input = gr.Textbox(label="Share link", placeholder="https://promptmaster.app?share=...")
                share_btn = gr.Button("🔗 Open Share Link", size="sm")
                import_status = gr.Textbox(label="Status", interactive=False, show_label=False)

            with gr.Tab("Editor"):
                with gr.Row():
                    with gr.Column(scale=2):
                        prompt_box = gr.Textbox(label="Prompt", lines=18)
                        with gr.Accordion("Context", open=False):
                            context_box = gr.Textbox(label="Context", lines=8, interactive=False, show_label=False)
                    with gr.Column(scale=1):
                        feedback_md = gr.Markdown()
                        with gr.Row():
                            apply_feedback_btn = gr.Button("✅ Apply Tip", size="sm")
                            dismiss_feedback_btn = gr.Button("🙅 Another Tip", size="sm")
                            undo_btn = gr.Button("↩️ Undo", size="sm")

                        gr.Markdown("### Suggestions")
                        scan_btn = gr.Button("🔍 Deep Scan", size="sm")
                        suggestion_radio = gr.Radio(choices=[], label="Suggestions", show_label=False)
                        with gr.Row():
                            apply_suggestion_btn = gr.Button("Apply", size="sm")
                            dismiss_suggestion_btn = gr.Button("Dismiss", size="sm")

                        gr.Markdown("### Rewrite")
                        reconstruct_btn = gr.Button("✨ Rewrite Prompt", variant="primary", size="sm")
                        with gr.Row():
                            start_input = gr.Number(label="From", value=0, precision=0)
                            end_input = gr.Number(label="To", value=0, precision=0)
                        rewrite_selection_btn = gr.Button("✨ Rewrite Selection", size="sm")

                        gr.Markdown("### Locks")
                        lock_input = gr.Textbox(label="Text to lock", placeholder="Exact text from the prompt")
                        add_lock_btn = gr.Button("🔒 Lock", size="sm")
                        lock_table = gr.Dataframe(headers=["Text", "Pillar"], interactive=False)
                        lock_dropdown = gr.Dropdown(choices=[], label="Remove lock")
                        remove_lock_btn = gr.Button("🔓 Unlock", size="sm")

                busy_md = gr.Markdown()
                editor_status = gr.Textbox(label="Status", interactive=False, show_label=False)

            with gr.Tab("Export"):
                with gr.Row():
                    markdown_btn = gr.Button("Markdown")
                    json_btn = gr.Button("JSON")
                    link_btn = gr.Button("Share Link")
                export_output = gr.Code(label="Export", language="markdown")

            with gr.Tab("Settings"):
                gr.Markdown(f"_(saved to `{getattr(workbench.store, 'path', 'memory')}`)_")
                language_dropdown = gr.Dropdown(
                    choices=[("简体中文", Language.CHINESE.value), ("English", Language.ENGLISH.value)],
                    value=settings.language.value,
                    label="Language",
                )
                with gr.Row():
                    gemini_key_input = gr.Textbox(label="Gemini API Key", value=settings.api.gemini_api_key, type="password")
                    deepseek_key_input = gr.Textbox(label="DeepSeek API Key", value=settings.api.deepseek_api_key, type="password")
                    openai_key_input = gr.Textbox(label="OpenAI API Key", value=settings.api.openai_api_key, type="password")
                with gr.Row():
                    default_key_input = gr.Textbox(label="Default API Key", value=settings.api.default_api_key, type="password")
                    default_url_input = gr.Textbox(
                        label="Default Base URL",
                        value=settings.api.default_base_url,
                        placeholder="Leave empty to use each provider's endpoint",
                    )

                gr.Markdown("### Models per Feature")
                feature_dropdowns = [
                    gr.Dropdown(
                        choices=model_choices(),
                        value=settings.api.models.get(feature),
                        label=feature.value,
                    )
                    for feature in FeatureType
                ]
                save_settings_btn = gr.Button("💾 Save Settings", variant="primary")
                settings_output = gr.Textbox(label="Status", value=settings_status(settings), lines=3)

        # ====================================================================
        # Event Handlers
        # ====================================================================

        panel = [feedback_md, suggestion_radio, lock_table, lock_dropdown, busy_md]

        # Interview
        start_btn.click(
            fn=start_interview_ui,
            outputs=[chatbot, *option_buttons, interview_status],
        )
        answer_input.submit(
            fn=send_answer_ui,
            inputs=[answer_input],
            outputs=[chatbot, *option_buttons, answer_input, interview_status],
        )
        for button in option_buttons:
            button.click(
                fn=send_answer_ui,
                inputs=[button],
                outputs=[chatbot, *option_buttons, answer_input, interview_status],
            )
        reroll_btn.click(
            fn=reroll_options_ui,
            outputs=[chatbot, *option_buttons, interview_status],
        )
        draft_btn.click(
            fn=generate_draft_ui,
            outputs=[prompt_box, context_box, interview_status],
        ).then(fn=editor_panel, outputs=panel)

        # Import
        import_btn.click(
            fn=import_prompt_ui,
            inputs=[import_input],
            outputs=[prompt_box, context_box, import_status],
        ).then(fn=editor_panel, outputs=panel)
        share_btn.click(
            fn=import_share_link_ui,
            inputs=[share_input],
            outputs=[prompt_box, context_box, import_status],
        ).then(fn=editor_panel, outputs=panel)

        # Editor
        prompt_box.input(fn=edit_prompt_ui, inputs=[prompt_box], show_progress="hidden")
        scan_btn.click(fn=deep_scan_ui, outputs=[*panel, editor_status])
        suggestion_radio.select(fn=select_suggestion_ui, inputs=[suggestion_radio], show_progress="hidden")
        apply_suggestion_btn.click(
            fn=apply_suggestion_ui,
            inputs=[suggestion_radio],
            outputs=[prompt_box, *panel, editor_status],
        )
        dismiss_suggestion_btn.click(fn=dismiss_suggestion_ui, inputs=[suggestion_radio], outputs=panel)
        apply_feedback_btn.click(fn=apply_feedback_ui, outputs=[prompt_box, *panel, editor_status])
        dismiss_feedback_btn.click(fn=dismiss_feedback_ui, outputs=[*panel, editor_status])
        undo_btn.click(fn=undo_ui, outputs=[prompt_box, *panel, editor_status])
        reconstruct_btn.click(fn=reconstruct_ui, outputs=[prompt_box, *panel, editor_status])
        rewrite_selection_btn.click(
            fn=reconstruct_selection_ui,
            inputs=[start_input, end_input],
            outputs=[prompt_box, *panel, editor_status],
        )
        add_lock_btn.click(fn=add_lock_ui, inputs=[lock_input], outputs=[lock_input, *panel, editor_status])
        remove_lock_btn.click(fn=remove_lock_ui, inputs=[lock_dropdown], outputs=panel)

        # Mentor tips and lock classification land in the background
        timer = gr.Timer(REFRESH_INTERVAL)
        timer.tick(fn=editor_panel, outputs=panel, show_progress="hidden")

        # Export
        markdown_btn.click(fn=lambda: export_ui("markdown"), outputs=[export_output])
        json_btn.click(fn=lambda: export_ui("json"), outputs=[export_output])
        link_btn.click(fn=lambda: export_ui("link"), outputs=[export_output])

        # Settings
        save_settings_btn.click(
            fn=save_settings_ui,
            inputs=[
                language_dropdown,
                gemini_key_input,
                deepseek_key_input,
                openai_key_input,
                default_key_input,
                default_url_input,
                *feature_dropdowns,
            ],
            outputs=[settings_output],
        )

    return demo


def main():
    """Main entry point for CLI."""
    parser = argparse.ArgumentParser(description="PromptMaster - interview-driven prompt engineering workbench")
    parser.add_argument(
        "--port",
        type=int,
        default=7860,
        help="Port to run Gradio server (default: 7860)",
    )
    parser.add_argument(
        "--store",
        type=Path,
        default=USER_STORE_FILE,
        help=f"Settings store file (default: {USER_STORE_FILE})",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    workbench = Workbench(YamlFileStore(args.store))
    logger.info("Settings store: %s", args.store)
    logger.info("Starting server on port %d...", args.port)

    # Create and launch UI
    demo = create_ui(workbench)
    demo.launch(
        server_name="0.0.0.0",
        server_port=args.port,
        theme=gr.themes.Soft(),
    )


if __name__ == "__main__":
    main()
