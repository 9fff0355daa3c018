"""
GUI implementation for Vendure Catalog Importer.

This module contains the tkinter/ttkbootstrap GUI code.
"""

import os
import threading
import logging
import queue
from tkinter import filedialog, messagebox
import ttkbootstrap as tb
from ttkbootstrap.tooltip import ToolTip

from .config import load_config, save_config, SCRIPT_VERSION
from .product_processing import process_products, ImportSetupError
from .sources import InputFileError

INPUT_FILETYPES = [
    ("Product files", "*.xlsx *.csv *.json"),
    ("Excel files", "*.xlsx"),
    ("CSV files", "*.csv"),
    ("JSON files", "*.json"),
    ("All files", "*.*"),
]

# (config key, label, tooltip, masked)
CONNECTION_FIELDS = [
    ("ADMIN_API", "Admin API URL:", "Vendure Admin API endpoint (e.g., http://localhost:3000/admin-api)", False),
    ("ADMIN_USER", "Admin User:", "Administrator username", False),
    ("ADMIN_PASS", "Admin Password:", "Administrator password", True),
    ("VENDURE_CHANNEL", "Channel Token:", "Optional channel token sent as the vendure-token header", False),
]

IMPORT_FIELDS = [
    ("DEFAULT_LANGUAGE", "Language Code:", "Language of names, slugs and descriptions (e.g., en, es)", False),
    ("DEFAULT_STOCK_ON_HAND", "Default Stock:", "Stock on hand for variants without a stock quantity", False),
    ("MAX_IMAGES", "Max Images:", "Maximum images uploaded per product", False),
    ("RETRY_ATTEMPTS", "Retries:", "Retries for locked/busy/timeout errors on mutations", False),
]


def _settings_section(frame, row, title, fields, cfg, variables):
    tb.Label(frame, text=title, font=("Arial", 11, "bold")).grid(
        row=row, column=0, columnspan=2, sticky="w", pady=(10, 5)
    )
    tb.Separator(frame, orient="horizontal").grid(
        row=row + 1, column=0, columnspan=2, sticky="ew", pady=(0, 10)
    )
    row += 2
    for key, label, tip, masked in fields:
        tb.Label(frame, text=label).grid(row=row, column=0, sticky="w", padx=5, pady=5)
        var = tb.StringVar(value=str(cfg.get(key, "")))
        entry = tb.Entry(frame, textvariable=var, width=50, show="*" if masked else "")
        entry.grid(row=row, column=1, sticky="ew", padx=5, pady=5)
        ToolTip(entry, text=tip)
        variables[key] = var
        row += 1
    return row


def open_system_settings(cfg, parent):
    """Open the system settings dialog."""
    settings_window = tb.Toplevel(parent)
    settings_window.title("System Settings")
    settings_window.geometry("700x560")
    settings_window.transient(parent)
    settings_window.grab_set()

    main_frame = tb.Frame(settings_window, padding=20)
    main_frame.pack(fill="both", expand=True)

    tb.Label(
        main_frame,
        text="System Settings",
        font=("Arial", 14, "bold")
    ).grid(row=0, column=0, columnspan=2, pady=(0, 20))

    variables = {}
    row = _settings_section(main_frame, 1, "Vendure Connection", CONNECTION_FIELDS, cfg, variables)
    row = _settings_section(main_frame, row, "Import Settings", IMPORT_FIELDS, cfg, variables)

    reindex_var = tb.BooleanVar(value=bool(cfg.get("REINDEX_AFTER_IMPORT", False)))
    tb.Checkbutton(
        main_frame,
        text="Rebuild search index after import",
        variable=reindex_var,
        bootstyle="info-round-toggle"
    ).grid(row=row, column=0, columnspan=2, sticky="w", padx=5, pady=10)

    main_frame.columnconfigure(1, weight=1)

    button_frame = tb.Frame(settings_window)
    button_frame.pack(side="bottom", fill="x", padx=20, pady=20)

    def save_settings():
        """Save settings and close dialog."""
        for key, var in variables.items():
            cfg[key] = var.get().strip()
        cfg["REINDEX_AFTER_IMPORT"] = reindex_var.get()

        save_config(cfg)
        messagebox.showinfo("Settings Saved", "System settings have been saved successfully.")
        settings_window.destroy()

    tb.Button(
        button_frame,
        text="Save",
        command=save_settings,
        bootstyle="success",
        width=15
    ).pack(side="right", padx=5)

    tb.Button(
        button_frame,
        text="Cancel",
        command=settings_window.destroy,
        bootstyle="secondary",
        width=15
    ).pack(side="right")


def _file_row(container, cfg, key, label, tooltip_text, dialog, **dialog_options):
    """Add a labelled path entry with a Browse button; the path auto-saves to config."""
    row = container.grid_size()[1]

    label_frame = tb.Frame(container)
    label_frame.grid(row=row, column=0, sticky="w", padx=5, pady=5)
    tb.Label(label_frame, text=label, anchor="w").pack(side="left")
    help_icon = tb.Label(label_frame, text=" ⓘ ", font=("Arial", 9),
                         foreground="#5BC0DE", cursor="hand2")
    help_icon.pack(side="left")
    tb.Label(label_frame, text=":", anchor="w").pack(side="left")
    ToolTip(help_icon, text=tooltip_text, bootstyle="info")

    var = tb.StringVar(value=cfg.get(key, ""))
    tb.Entry(container, textvariable=var, width=50).grid(
        row=row, column=1, sticky="ew", padx=5, pady=5
    )

    def browse():
        try:
            filename = dialog(title=f"Select {label}", **dialog_options)
            if filename:
                var.set(filename)
        except Exception as e:
            messagebox.showerror("Browse Failed", f"Failed to open file dialog:\n\n{str(e)}")

    tb.Button(container, text="Browse", command=browse, bootstyle="info-outline").grid(
        row=row, column=2, padx=5, pady=5
    )

    def on_change(*args):
        cfg[key] = var.get()
        save_config(cfg)

    var.trace_add("write", on_change)
    return var, row


def build_gui():
    """Build the main GUI application."""
    cfg = load_config()

    app = tb.Window(themename="darkly")
    app.title("Vendure Catalog Importer")
    app.geometry(cfg.get("WINDOW_GEOMETRY", "900x800"))

    menu_bar = tb.Menu(app)
    app.config(menu=menu_bar)
    settings_menu = tb.Menu(menu_bar, tearoff=0)
    menu_bar.add_cascade(label="Settings", menu=settings_menu)
    settings_menu.add_command(label="System Settings", command=lambda: open_system_settings(cfg, app))

    toolbar = tb.Frame(app)
    toolbar.pack(side="top", fill="x", padx=5, pady=5)
    tb.Button(
        toolbar,
        text="⚙️ Settings",
        command=lambda: open_system_settings(cfg, app),
        bootstyle="secondary-outline"
    ).pack(side="left", padx=5)

    container = tb.Frame(app)
    container.pack(fill="both", expand=True, padx=10, pady=10)
    container.columnconfigure(1, weight=1)

    tb.Label(container, text="Vendure Catalog Importer", font=("Arial", 14, "bold")).grid(
        row=0, column=0, columnspan=3, pady=10
    )

    input_var, _ = _file_row(
        container, cfg, "INPUT_FILE", "Input File",
        "Select the scraped catalog (.xlsx, .csv or .json).\n\n"
        "Each row needs a title/name; categories use 'A|B|C' or\n"
        "'category:A|category:B'; variants come from variants_json.",
        filedialog.askopenfilename, filetypes=INPUT_FILETYPES
    )
    product_output_var, _ = _file_row(
        container, cfg, "PRODUCT_OUTPUT_FILE", "Product Output File",
        "Where to save per-row results: product ids, status\n"
        "(created/failed/skipped), failing step and error message.",
        filedialog.asksaveasfilename, defaultextension=".json",
        filetypes=[("JSON files", "*.json"), ("All files", "*.*")]
    )
    _file_row(
        container, cfg, "COLLECTIONS_OUTPUT_FILE", "Collections Output File",
        "Where to save the collections created during the run\n"
        "(id, name, slug and parent of each one).",
        filedialog.asksaveasfilename, defaultextension=".json",
        filetypes=[("JSON files", "*.json"), ("All files", "*.*")]
    )
    log_file_var, log_row = _file_row(
        container, cfg, "LOG_FILE", "Log File",
        "Where to save detailed processing logs.\n\n"
        "Tip: Include the date in the filename (e.g., import_2025-10-26.log)",
        filedialog.asksaveasfilename, defaultextension=".log",
        filetypes=[("Log files", "*.log *.txt"), ("All files", "*.*")]
    )

    def delete_log_file():
        """Delete the log file after confirmation."""
        log_path = log_file_var.get().strip()
        if not log_path:
            messagebox.showwarning("No File", "No log file path specified.")
            return
        if not os.path.exists(log_path):
            messagebox.showwarning("File Not Found", f"Log file does not exist:\n{log_path}")
            return
        if messagebox.askyesno("Confirm Delete", f"Delete this log file?\n\n{log_path}"):
            try:
                os.remove(log_path)
            except OSError as e:
                messagebox.showerror("Delete Failed", f"Failed to delete log file:\n\n{str(e)}")

    tb.Button(container, text="Delete", command=delete_log_file, bootstyle="danger-outline").grid(
        row=log_row, column=3, padx=5, pady=5
    )

    # Execution Mode
    row = container.grid_size()[1]
    label_frame = tb.Frame(container)
    label_frame.grid(row=row, column=0, sticky="w", padx=5, pady=5)
    tb.Label(label_frame, text="Execution Mode", anchor="w").pack(side="left")
    help_icon = tb.Label(label_frame, text=" ⓘ ", font=("Arial", 9),
                         foreground="#5BC0DE", cursor="hand2")
    help_icon.pack(side="left")
    tb.Label(label_frame, text=":", anchor="w").pack(side="left")
    ToolTip(help_icon, bootstyle="info", text=(
        "• Resume: skips products imported successfully in an earlier run.\n"
        "• Overwrite: deletes those products and imports them again.\n"
        "• Fresh: ignores the restore point and imports every row."
    ))

    mode_frame = tb.Frame(container)
    mode_frame.grid(row=row, column=1, columnspan=2, sticky="w", padx=5, pady=5)
    execution_mode_var = tb.StringVar(value=cfg.get("EXECUTION_MODE", "resume"))
    for value, text, style in (
        ("resume", "Resume from Last Run", "primary"),
        ("overwrite", "Overwrite & Continue", "warning"),
        ("fresh", "Fresh Import", "info"),
    ):
        tb.Radiobutton(
            mode_frame, text=text, variable=execution_mode_var, value=value, bootstyle=style
        ).pack(side="left", padx=(0, 20))

    def on_execution_mode_change(*args):
        cfg["EXECUTION_MODE"] = execution_mode_var.get()
        save_config(cfg)

    execution_mode_var.trace_add("write", on_execution_mode_change)

    button_frame = tb.Frame(app)
    button_frame.pack(pady=10)

    status_queue = queue.Queue()
    button_control_queue = queue.Queue()

    def status(msg):
        """Queue a status line; safe to call from the worker thread."""
        status_queue.put(msg)

    def validate_inputs():
        """Validate all required inputs."""
        if not input_var.get().strip():
            messagebox.showerror("Validation Error", "Input File is required.")
            return False
        if not os.path.exists(input_var.get()):
            messagebox.showerror("Validation Error", "Input File does not exist.")
            return False
        if not product_output_var.get().strip():
            messagebox.showerror("Validation Error", "Product Output File is required.")
            return False
        if not str(cfg.get("ADMIN_API", "")).strip():
            messagebox.showerror("Validation Error", "Admin API URL is required.\n\nPlease configure it in Settings.")
            return False
        return True

    def validate_and_start():
        """Validate inputs and start processing."""
        if not validate_inputs():
            return

        clear_status()
        start_btn.config(state="disabled")
        validate_btn.config(state="disabled")

        def run_processing():
            try:
                process_products(cfg, status, execution_mode=cfg.get("EXECUTION_MODE", "resume"))
            except (ImportSetupError, InputFileError) as e:
                status(f"❌ Cannot start import: {e}")
                logging.error(f"Fatal setup error: {e}")
            except Exception as e:
                status(f"❌ Fatal error: {e}")
                logging.exception("Full traceback:")
            finally:
                status("")
                status("=" * 80)
                status("Processing stopped. Buttons re-enabled.")
                status("=" * 80)
                button_control_queue.put("enable_buttons")

        threading.Thread(target=run_processing, daemon=True).start()

    validate_btn = tb.Button(button_frame, text="Validate Settings", command=validate_inputs, bootstyle="info")
    validate_btn.pack(side="left", padx=5)

    start_btn = tb.Button(button_frame, text="Start Import", command=validate_and_start, bootstyle="success")
    start_btn.pack(side="left", padx=5)

    def on_closing():
        """Handle window close event."""
        cfg["WINDOW_GEOMETRY"] = app.geometry()
        save_config(cfg)
        app.quit()

    tb.Button(button_frame, text="Exit", command=on_closing, bootstyle="secondary").pack(side="left", padx=5)

    tb.Label(app, text="Status Log:", anchor="w").pack(anchor="w", padx=10, pady=(10, 0))
    status_log = tb.Text(app, height=100, state="disabled")
    status_log.pack(fill="both", expand=True, padx=10, pady=(0, 10))

    def process_status_queue():
        """Drain queued status lines and button signals. Runs in the main thread."""
        messages = []
        while True:
            try:
                messages.append(status_queue.get_nowait())
            except queue.Empty:
                break

        if messages:
            status_log.config(state="normal")
            for msg in messages:
                status_log.insert("end", msg + "\n")
            status_log.see("end")
            status_log.config(state="disabled")

        while True:
            try:
                signal = button_control_queue.get_nowait()
            except queue.Empty:
                break
            if signal == "enable_buttons":
                start_btn.config(state="normal")
                validate_btn.config(state="normal")

        app.after(50, process_status_queue)

    def clear_status():
        status_log.config(state="normal")
        status_log.delete("1.0", "end")
        status_log.config(state="disabled")

    app.protocol("WM_DELETE_WINDOW", on_closing)
    app.after(50, process_status_queue)

    status("=" * 80)
    status(f"{SCRIPT_VERSION}")
    status("=" * 80)

    app.mainloop()
