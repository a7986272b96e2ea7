"""
StartAI - Gradio UI
===================
Single-file Gradio Blocks front end. Auth, chat history and the two-pass
prompt chain are driven through the backend services directly; this module
only renders what the session manager and chat controller hold.
"""

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "backend"))

import gradio as gr
from database import SessionLocal, engine
from logging_config import configure_logging
from models.db_models import Base
from services import auth
from settings import settings
from services.client_session import SessionManager, AuthEvent, TOKEN_STORAGE_KEY, THEME_STORAGE_KEY
from services.conversation import (
    ChatController,
    ChatState,
    SUGGESTIONS,
    format_chat_date,
    to_chatbot_messages,
)

configure_logging()
settings.warn_if_default_auth_secret()

# ---------------------------------------------------------------------------
# Database init
# ---------------------------------------------------------------------------
Base.metadata.create_all(bind=engine)

SIGN_IN = "Sign in"
SIGN_UP = "Sign up"
PENDING_TEXT = "*Thinking…*"


# ---------------------------------------------------------------------------
# Per-browser session
# ---------------------------------------------------------------------------
class UISession:
    """Session manager and chat controller for one browser tab."""

    def __init__(self, cached_token: str = ""):
        self.storage = {TOKEN_STORAGE_KEY: cached_token} if cached_token else {}
        self.auth = SessionManager(SessionLocal, self.storage)
        self.chat = ChatController(
            SessionLocal,
            self.auth.current_token,
            on_session_lost=self.auth.expire,
        )
        self.auth.subscribe(self._on_auth_change)

    def _on_auth_change(self, event: AuthEvent, session) -> None:
        if session is None:
            self.chat.reset()
        elif event in (AuthEvent.SIGNED_IN, AuthEvent.INITIAL_SESSION):
            # an unsent goal survives signing back in
            draft = self.chat.draft
            self.chat.reset()
            self.chat.draft = draft
            self.chat.load_chats()

    @property
    def token(self) -> str:
        return self.storage.get(TOKEN_STORAGE_KEY, "")


def _chat_choices(ui: UISession) -> list[tuple[str, str]]:
    return [(f"{c.title}  ·  {format_chat_date(c.created_at)}", c.id) for c in ui.chat.chats]


def _render(ui: UISession, notice: str = ""):
    """Values for the render outputs wired in create_app, in order."""
    signed_in = ui.auth.session is not None
    controller = ui.chat
    status = notice or (f"⚠️ {controller.error}" if controller.state == ChatState.ERROR else "")
    draft = ""
    if signed_in and controller.draft:
        draft, controller.draft = controller.draft, None
    return (
        ui,
        gr.update(visible=not signed_in),
        gr.update(visible=signed_in),
        f"**{ui.auth.session.email}**" if signed_in else "",
        gr.update(choices=_chat_choices(ui), value=controller.current_chat_id),
        to_chatbot_messages(controller.transcript),
        gr.update(visible=signed_in and controller.current_chat_id is None),
        gr.update(value=draft, interactive=not controller.is_loading),
        status,
        ui.token,
    )


# ---------------------------------------------------------------------------
# Event handlers
# ---------------------------------------------------------------------------
def on_load(cached_token: str):
    ui = UISession(cached_token or "")
    ui.auth.restore()
    return _render(ui)


def on_auth(email: str, password: str, mode: str, ui: UISession | None):
    ui = ui or UISession()
    try:
        if mode == SIGN_UP:
            ui.auth.sign_up(email, password)
        else:
            ui.auth.sign_in(email, password)
    except auth.AuthError as e:
        return _render(ui, notice=f"⚠️ {e}")
    return _render(ui)


def on_sign_out(ui: UISession | None):
    ui = ui or UISession()
    ui.auth.sign_out()
    return _render(ui, notice="Signed out.")


def on_new_chat(ui: UISession | None):
    if ui is None:
        return _render(UISession())
    ui.chat.start_new_chat()
    return _render(ui)


def on_select_chat(chat_id: str, ui: UISession | None):
    if ui is None:
        return _render(UISession())
    if chat_id:
        ui.chat.select_chat(chat_id)
    return _render(ui)


def on_delete_chat(ui: UISession | None):
    if ui is None:
        return _render(UISession())
    if ui.chat.current_chat_id:
        ui.chat.delete_chat(ui.chat.current_chat_id)
    return _render(ui)


async def on_send(text: str, ui: UISession | None):
    """Show the user turn and a pending marker first, then the saved replies.

    If the user turn could not be saved (for example the session ran out), the
    text goes back into the input box.
    """
    if ui is None or ui.auth.session is None or not (text or "").strip() or ui.chat.is_loading:
        yield _render(ui or UISession())
        return

    preview = to_chatbot_messages(ui.chat.transcript) + [
        {"role": "user", "content": text},
        {"role": "assistant", "content": PENDING_TEXT},
    ]
    yield (
        ui, gr.update(), gr.update(), gr.update(), gr.update(),
        preview,
        gr.update(visible=False),
        gr.update(value="", interactive=False),
        "", ui.token,
    )
    await ui.chat.send(text)
    yield _render(ui)


def toggle_theme(theme: str) -> str:
    return "light" if theme == "dark" else "dark"


APPLY_THEME_JS = """
(theme) => {
    if (theme === 'light') { document.body.classList.remove('dark'); }
    else { document.body.classList.add('dark'); }
    return theme;
}
"""

# ---------------------------------------------------------------------------
# Custom CSS
# ---------------------------------------------------------------------------
CUSTOM_CSS = """
.gradio-container { max-width: 100% !important; font-family: 'Inter', sans-serif !important; }
footer { display: none !important; }

#sidebar {
    border-right: 1px solid rgba(127,127,127,0.15) !important;
}
#chat-list .wrap { max-height: 55vh; overflow-y: auto; }

#auth-card {
    max-width: 420px;
    margin: 10vh auto 0 auto;
    padding: 24px;
    border-radius: 12px;
}
.suggestion button { text-align: left !important; }
"""


# ---------------------------------------------------------------------------
# Build Gradio UI
# ---------------------------------------------------------------------------
def create_app():
    theme = gr.themes.Base(
        primary_hue=gr.themes.colors.blue,
        neutral_hue=gr.themes.colors.slate,
        font=gr.themes.GoogleFont("Inter"),
    )

    with gr.Blocks(title="StartAI", theme=theme, css=CUSTOM_CSS, fill_height=True) as app:
        # ---- State ----
        ui_state = gr.State(None)
        token_store = gr.BrowserState("", storage_key=TOKEN_STORAGE_KEY)
        theme_store = gr.BrowserState("dark", storage_key=THEME_STORAGE_KEY)

        # ============ AUTH FORM ============
        with gr.Column(visible=True, elem_id="auth-card") as auth_col:
            gr.Markdown("## StartAI")
            auth_mode = gr.Radio(choices=[SIGN_IN, SIGN_UP], value=SIGN_IN, show_label=False)
            email_input = gr.Textbox(label="Email", type="email")
            password_input = gr.Textbox(label="Password", type="password")
            auth_btn = gr.Button(SIGN_IN, variant="primary")

        with gr.Row(visible=False, equal_height=True) as main_row:
            # ============ SIDEBAR ============
            with gr.Column(scale=1, min_width=260, elem_id="sidebar"):
                gr.Markdown("### Chat history")
                new_chat_btn = gr.Button("➕  New chat", variant="primary")
                chat_list = gr.Radio(choices=[], label="Chats", show_label=False, elem_id="chat-list")
                delete_btn = gr.Button("🗑️  Delete chat", variant="secondary", size="sm")
                gr.Markdown("---")
                user_md = gr.Markdown("")
                with gr.Row():
                    theme_btn = gr.Button("🌓", size="sm", min_width=40)
                    sign_out_btn = gr.Button("Sign out", size="sm")

            # ============ MAIN CHAT AREA ============
            with gr.Column(scale=4, min_width=600):
                chatbot = gr.Chatbot(
                    type="messages",
                    label="StartAI",
                    height="70vh",
                    render_markdown=True,
                    placeholder=(
                        '<div style="text-align:center;padding:3em">'
                        '<h2 style="margin-bottom:0.5em">Start a new conversation</h2>'
                        '<p style="color:#94a3b8">Describe the goal you want to achieve and '
                        "StartAI will help you put together a plan of action.</p></div>"
                    ),
                )
                with gr.Column(visible=False) as empty_col:
                    suggestion_btns = [gr.Button(s, size="sm", elem_classes="suggestion") for s in SUGGESTIONS]
                msg_input = gr.Textbox(
                    placeholder="Describe your goal…",
                    show_label=False,
                    submit_btn=True,
                    lines=1,
                    max_lines=6,
                )

        status_md = gr.Markdown("")

        # ============ EVENT WIRING ============
        render_outputs = [
            ui_state, auth_col, main_row, user_md, chat_list, chatbot, empty_col, msg_input, status_md, token_store,
        ]

        app.load(fn=on_load, inputs=token_store, outputs=render_outputs)
        app.load(fn=None, inputs=theme_store, js=APPLY_THEME_JS)

        auth_mode.change(fn=lambda mode: gr.update(value=mode), inputs=auth_mode, outputs=auth_btn)
        auth_btn.click(
            fn=on_auth,
            inputs=[email_input, password_input, auth_mode, ui_state],
            outputs=render_outputs,
        ).then(fn=lambda: "", outputs=password_input)

        sign_out_btn.click(fn=on_sign_out, inputs=ui_state, outputs=render_outputs)
        new_chat_btn.click(fn=on_new_chat, inputs=ui_state, outputs=render_outputs)
        chat_list.input(fn=on_select_chat, inputs=[chat_list, ui_state], outputs=render_outputs)
        delete_btn.click(fn=on_delete_chat, inputs=ui_state, outputs=render_outputs)

        msg_input.submit(fn=on_send, inputs=[msg_input, ui_state], outputs=render_outputs)
        for btn in suggestion_btns:
            btn.click(fn=on_send, inputs=[btn, ui_state], outputs=render_outputs)

        theme_btn.click(fn=toggle_theme, inputs=theme_store, outputs=theme_store).then(
            fn=None, inputs=theme_store, js=APPLY_THEME_JS
        )

    return app


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    app = create_app()
    app.launch(
        server_name="0.0.0.0",
        server_port=7860,
        share=False,
        show_error=True,
    )
