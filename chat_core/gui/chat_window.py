import tkinter as tk
from tkinter import scrolledtext

from chat_core.api.service import build_session
from chat_core.domain.models import TurnState
from chat_core.gui.transcript import render_transcript

WINDOW_WIDTH = 600
WINDOW_HEIGHT = 600


class TkScheduler:
    """Post callbacks onto the Tk event loop; callable from worker threads."""

    def __init__(self, root):
        self._root = root

    def call_soon(self, callback):
        self._root.after(0, callback)


class ChatWindow:
    def __init__(self, root, cfg=None):
        self.root = root
        self.root.title("Chat")
        self.root.geometry(f"{WINDOW_WIDTH}x{WINDOW_HEIGHT}")
        self.session = build_session(
            TkScheduler(root),
            cfg=cfg,
            reset_input=self.reset_input,
            on_state_change=self.on_state_change,
        )
        self.session.store.subscribe(self.redraw)

        self.chat = scrolledtext.ScrolledText(root, wrap=tk.WORD, state=tk.DISABLED)
        self.chat.pack(fill=tk.BOTH, expand=True, padx=8, pady=8)
        self.chat.tag_config("user_label", foreground="#1a73e8", font=("TkDefaultFont", 10, "bold"))
        self.chat.tag_config("assistant_label", foreground="#34a853", font=("TkDefaultFont", 10, "bold"))
        self.chat.tag_config("user")
        self.chat.tag_config("assistant")

        bottom = tk.Frame(root)
        bottom.pack(fill=tk.X, padx=8, pady=(0, 8))
        self.entry = tk.Entry(bottom)
        self.entry.pack(side=tk.LEFT, fill=tk.X, expand=True)
        self.entry.bind("<Return>", self.on_send_event)
        self.send_btn = tk.Button(bottom, text="Send", command=self.on_send)
        self.send_btn.pack(side=tk.LEFT, padx=(8, 0))
        self.status = tk.Label(root, text="Ready", anchor=tk.W)
        self.status.pack(fill=tk.X, padx=8)
        self.entry.focus_set()

    def on_send(self):
        self.session.controller.submit(self.entry.get())

    def on_send_event(self, event):
        self.on_send()
        return "break"

    def reset_input(self):
        self.entry.delete(0, tk.END)

    def on_state_change(self, state: TurnState):
        if state.active:
            self.send_btn.config(state=tk.DISABLED)
            self.status.config(text="Streaming...")
        else:
            self.send_btn.config(state=tk.NORMAL)
            self.status.config(text="Ready")

    def redraw(self):
        self.chat.config(state=tk.NORMAL)
        self.chat.delete(1.0, tk.END)
        for text, tag in render_transcript(self.session.store.snapshot()):
            self.chat.insert(tk.END, text, tag)
        self.chat.config(state=tk.DISABLED)
        self.chat.see(tk.END)


def run(cfg=None):
    root = tk.Tk()
    ChatWindow(root, cfg=cfg)
    root.mainloop()
