#!/usr/bin/env python3
"""Small Tkinter front-end with a single "Export Project Files" button.

The window collects the project URL (or a CDP endpoint of an already signed-in
browser) and an output folder, then runs ``project_files_export`` on a worker
thread. Widget updates from the worker are queued and applied by the Tk main
loop.
"""

from __future__ import annotations

import logging
import os
import queue
import threading
import tkinter as tk
from pathlib import Path
from tkinter import filedialog, messagebox, ttk
from typing import Callable

import project_files_export
from export_trigger import IDLE_LABEL, ExportTrigger
from extraction_rules import ExtractionRules

DEFAULT_BROWSER_DIR = Path(__file__).resolve().parent / "playwright-browsers"
os.environ.setdefault("PLAYWRIGHT_BROWSERS_PATH", str(DEFAULT_BROWSER_DIR))


class _QueueLogHandler(logging.Handler):
    def __init__(self, log_queue: "queue.Queue[str]") -> None:
        super().__init__(level=logging.INFO)
        self.log_queue = log_queue
        self.setFormatter(logging.Formatter("%(levelname)s %(message)s"))

    def emit(self, record: logging.LogRecord) -> None:
        self.log_queue.put(self.format(record))


class ExportApp(tk.Tk):
    """Main Tkinter application window."""

    def __init__(self) -> None:
        super().__init__()
        self.title("Project Files Export")
        self.minsize(640, 420)

        self.log_queue: queue.Queue[str] = queue.Queue()
        self.ui_queue: queue.Queue[Callable[[], None]] = queue.Queue()

        self.url_var = tk.StringVar(value=project_files_export.DEFAULT_URL)
        self.cdp_url_var = tk.StringVar()
        self.output_dir_var = tk.StringVar(value=str(project_files_export.DEFAULT_OUTPUT_DIR.resolve()))
        self.title_var = tk.StringVar()
        self.start_wait_var = tk.StringVar(value="30")

        self._build_widgets()
        self.trigger = ExportTrigger(
            set_label=lambda text: self._on_ui(lambda: self.export_button.configure(text=text)),
            set_enabled=lambda enabled: self._on_ui(
                lambda: self.export_button.configure(state="normal" if enabled else "disabled")
            ),
            schedule=lambda delay, callback: self._on_ui(
                lambda: self.after(int(delay * 1000), callback)
            ),
            notify=lambda title, message: self._on_ui(lambda: messagebox.showinfo(title, message)),
            revert_delay=ExtractionRules().completion_label_delay,
        )

        handler = _QueueLogHandler(self.log_queue)
        logging.getLogger().addHandler(handler)
        logging.getLogger().setLevel(logging.INFO)
        self.after(100, self._process_queues)

    # ------------------------------------------------------------------ UI setup
    def _build_widgets(self) -> None:
        main = ttk.Frame(self, padding=12)
        main.pack(fill="both", expand=True)

        self._add_labeled_entry(main, 0, "Project page URL", self.url_var)
        self._add_labeled_entry(main, 1, "Attach to browser (CDP URL)", self.cdp_url_var)
        self._add_labeled_entry(main, 2, "Project title (optional)", self.title_var)
        self._add_labeled_entry(main, 3, "Seconds to wait before scanning", self.start_wait_var, width=8)
        self._add_directory_picker(main, 4, "Output folder", self.output_dir_var)

        ttk.Label(
            main,
            text=(
                "Without a CDP URL a new browser window opens. Log in and open the "
                "project page in it before the wait runs out."
            ),
            wraplength=560,
            foreground="#555555",
        ).grid(row=5, column=0, sticky="w", pady=(2, 8))

        self.export_button = ttk.Button(main, text=IDLE_LABEL, command=self._trigger_export, width=40)
        self.export_button.grid(row=6, column=0, sticky="w", pady=(6, 8))

        ttk.Label(main, text="Activity log", font=("Segoe UI", 10, "bold")).grid(row=7, column=0, sticky="w")
        self.log_text = tk.Text(main, height=12, wrap="word", state="disabled")
        self.log_text.grid(row=8, column=0, sticky="nsew")
        main.grid_columnconfigure(0, weight=1)
        main.grid_rowconfigure(8, weight=1)

    def _add_labeled_entry(
        self,
        parent: ttk.Frame,
        row: int,
        label: str,
        variable: tk.StringVar,
        *,
        width: int = 60,
    ) -> None:
        frame = ttk.Frame(parent)
        frame.grid(row=row, column=0, sticky="ew", pady=2)
        ttk.Label(frame, text=label, width=30, anchor="w").pack(side="left")
        entry = ttk.Entry(frame, textvariable=variable, width=width)
        entry.pack(side="left", padx=(4, 0), fill="x", expand=width > 10)

    def _add_directory_picker(
        self,
        parent: ttk.Frame,
        row: int,
        label: str,
        variable: tk.StringVar,
    ) -> None:
        frame = ttk.Frame(parent)
        frame.grid(row=row, column=0, sticky="ew", pady=2)
        ttk.Label(frame, text=label, width=30, anchor="w").pack(side="left")
        entry = ttk.Entry(frame, textvariable=variable, width=60)
        entry.pack(side="left", padx=(4, 4), fill="x", expand=True)

        def browse() -> None:
            directory = filedialog.askdirectory(title=f"Select {label}")
            if directory:
                variable.set(directory)

        ttk.Button(frame, text="Browse…", command=browse).pack(side="left")

    # ------------------------------------------------------------------ Queue helpers
    def _on_ui(self, callback: Callable[[], None]) -> None:
        self.ui_queue.put(callback)

    def _process_queues(self) -> None:
        while not self.ui_queue.empty():
            self.ui_queue.get_nowait()()
        while not self.log_queue.empty():
            line = self.log_queue.get_nowait()
            self.log_text.configure(state="normal")
            self.log_text.insert("end", line + "\n")
            self.log_text.see("end")
            self.log_text.configure(state="disabled")
        self.after(120, self._process_queues)

    # ------------------------------------------------------------------ Task trigger
    def _build_argv(self) -> list[str]:
        argv = [
            "--url",
            self.url_var.get().strip() or project_files_export.DEFAULT_URL,
            "--output-dir",
            self.output_dir_var.get().strip() or str(project_files_export.DEFAULT_OUTPUT_DIR),
            "--start-wait",
            self.start_wait_var.get().strip() or "0",
            "--headed",
        ]
        if self.cdp_url_var.get().strip():
            argv += ["--cdp-url", self.cdp_url_var.get().strip()]
        if self.title_var.get().strip():
            argv += ["--title", self.title_var.get().strip()]
        return argv

    def _trigger_export(self) -> None:
        if self.trigger.is_running:
            return
        try:
            args = project_files_export.parse_args(self._build_argv())
        except SystemExit:
            messagebox.showerror("Invalid settings", "Check the URL, wait and output folder fields.")
            return

        def task() -> None:
            run = self.trigger.activate(
                lambda on_status: project_files_export.run_export(args, on_status)
            )
            if run is not None and run.package is not None:
                self.log_queue.put(f"Saved {len(run.package.written)} files to {args.output_dir}")

        threading.Thread(target=task, daemon=True).start()


def launch() -> None:
    """Entry point compatible with PyInstaller."""
    app = ExportApp()
    app.mainloop()


if __name__ == "__main__":
    launch()
