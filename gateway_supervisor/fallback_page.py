"""
Safe-mode diagnostic page.

Rendered on every request so it always shows the current state and the
latest captured output. Every dynamic value goes through ``escape`` since
log output and failure text are untrusted.
"""

from __future__ import annotations

import html
from typing import Mapping

from .config import SupervisorConfig
from .log_buffer import NO_OUTPUT_PLACEHOLDER, RollingLogBuffer
from .state import Stage, SupervisorState


def escape(value: object) -> str:
    """Escape the five HTML metacharacters: & < > " '"""
    return html.escape(str(value), quote=True)


def combined_logs(logs: Mapping[Stage, RollingLogBuffer]) -> str:
    """Concatenate the phase logs, each under a ``[stage]`` label."""
    sections = []
    for stage in (Stage.PREFLIGHT, Stage.MAIN_SERVICE):
        buffer = logs.get(stage)
        text = buffer.snapshot() if buffer is not None else NO_OUTPUT_PLACEHOLDER
        sections.append(f"[{stage.value}]\n{text}")
    return "\n\n".join(sections)


def render_fallback_page(
    state: SupervisorState,
    logs: Mapping[Stage, RollingLogBuffer],
    config: SupervisorConfig,
) -> str:
    failure_stage = state.failure_stage.value if state.failure_stage else "unknown"
    exit_code = "unknown" if state.failure_exit_code is None else str(state.failure_exit_code)
    signal = state.failure_signal or "none"

    return _PAGE_TEMPLATE.format(
        failure_stage=escape(failure_stage),
        exit_code=escape(exit_code),
        signal=escape(signal),
        status=escape(state.mode.value),
        logs=escape(combined_logs(logs)),
        filebrowser_path=escape(config.filebrowser_path),
        terminal_path=escape(config.terminal_path),
        preflight_label=escape(Stage.PREFLIGHT.value),
        service_label=escape(Stage.MAIN_SERVICE.value),
    )


# Doubled braces are literal CSS/JS braces for str.format
_PAGE_TEMPLATE = '''<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <title>Gateway - Safe Mode</title>
    <style>
        :root {{ color-scheme: dark light; }}
        * {{ box-sizing: border-box; }}
        body {{
            margin: 0;
            padding: 32px 16px;
            min-height: 100vh;
            font-family: system-ui, -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif;
            background: radial-gradient(circle at top, #1f2937 0, #020617 55%);
            color: #e5e7eb;
        }}
        .shell {{ max-width: 1120px; margin: auto; }}
        .card {{
            display: grid;
            grid-template-columns: minmax(0, 1.4fr) minmax(0, 1.1fr);
            gap: 18px;
            padding: 20px 22px;
            border-radius: 18px;
            border: 1px solid rgba(148, 163, 184, 0.2);
            background: #111827;
            box-shadow: 0 22px 60px rgba(15, 23, 42, 0.8);
        }}
        @media (max-width: 900px) {{
            .card {{ grid-template-columns: minmax(0, 1fr); }}
        }}
        .status-pill {{
            display: inline-block;
            padding: 4px 10px;
            border-radius: 999px;
            border: 1px solid rgba(248, 113, 113, 0.5);
            color: #f97373;
            font-size: 11px;
            letter-spacing: 0.04em;
            text-transform: uppercase;
        }}
        h1 {{ font-size: 22px; margin: 10px 0 0; font-weight: 600; }}
        h4 {{ margin: 18px 0 8px; }}
        .subtext {{ font-size: 13px; color: #9ca3af; line-height: 1.5; }}
        .meta-row {{ display: flex; flex-wrap: wrap; gap: 8px; margin-top: 14px; }}
        .meta-pill {{
            padding: 4px 9px;
            border-radius: 999px;
            border: 1px solid rgba(148, 163, 184, 0.4);
            font-size: 11px;
            color: #9ca3af;
        }}
        .meta-value {{ color: #e5e7eb; margin-left: 6px; }}
        .actions {{ display: flex; flex-wrap: wrap; gap: 10px; }}
        .btn {{
            padding: 7px 14px;
            border-radius: 999px;
            border: 1px solid rgba(148, 163, 184, 0.5);
            background: #0f172a;
            color: #9ca3af;
            font-size: 13px;
            cursor: pointer;
            text-decoration: none;
        }}
        .btn-primary {{ background: #3b82f6; border-color: #3b82f6; color: #fff; }}
        .btn[disabled] {{ opacity: 0.7; cursor: default; }}
        .logs-card {{
            display: flex;
            flex-direction: column;
            min-height: 220px;
            max-height: 420px;
            padding: 10px 12px;
            border-radius: 14px;
            border: 1px solid rgba(55, 65, 81, 0.85);
            background: #020617;
        }}
        .logs-title {{ font-size: 13px; font-weight: 500; }}
        .logs-subtitle {{ font-size: 11px; color: #9ca3af; }}
        .log-area {{
            flex: 1;
            margin-top: 8px;
            padding: 8px 10px;
            overflow: auto;
            border-radius: 10px;
            border: 1px solid rgba(31, 41, 55, 0.8);
            font-family: ui-monospace, SFMono-Regular, Menlo, Consolas, monospace;
            font-size: 11px;
            line-height: 1.4;
            color: #d1d5db;
        }}
        .log-area pre {{ margin: 0; white-space: pre-wrap; word-break: break-word; }}
        .footer-hint {{ margin-top: 10px; font-size: 11px; color: #9ca3af; }}
    </style>
</head>
<body>
    <div class="shell">
        <div class="card">
            <div>
                <span class="status-pill" id="status">Safe mode ({status})</span>
                <h1>Gateway failed to start</h1>
                <p class="subtext">
                    The gateway did not come up successfully. Review the startup logs,
                    use the file browser or web terminal in this pod to fix the
                    configuration, then restart the pod.
                </p>
                <div class="meta-row">
                    <div class="meta-pill">Failure stage<span class="meta-value" id="failureStage">{failure_stage}</span></div>
                    <div class="meta-pill">Exit code<span class="meta-value" id="exitCode">{exit_code}</span></div>
                    <div class="meta-pill">Signal<span class="meta-value" id="signal">{signal}</span></div>
                </div>
                <h4>Tools</h4>
                <div class="actions">
                    <a class="btn" href="{filebrowser_path}" target="_blank" rel="noreferrer">Open file browser</a>
                    <a class="btn" href="{terminal_path}" target="_blank" rel="noreferrer">Open terminal</a>
                </div>
                <h4>Actions</h4>
                <div class="actions">
                    <button class="btn btn-primary" id="restartBtn">Restart pod</button>
                    <button class="btn" id="copyBtn">Copy logs</button>
                </div>
            </div>
            <div class="logs-card">
                <div class="logs-title">Recent startup logs</div>
                <div class="logs-subtitle">Combined output from <code>{preflight_label}</code> and <code>{service_label}</code></div>
                <div class="log-area" id="logArea"><pre>{logs}</pre></div>
                <div class="footer-hint">After fixing the issue, click <strong>Restart pod</strong> to trigger a fresh startup.</div>
            </div>
        </div>
    </div>
    <script>
        const restartBtn = document.getElementById("restartBtn");
        const copyBtn = document.getElementById("copyBtn");
        const logArea = document.getElementById("logArea");

        restartBtn.addEventListener("click", async () => {{
            restartBtn.disabled = true;
            restartBtn.textContent = "Requesting restart...";
            try {{
                const res = await fetch("/restart", {{
                    method: "POST",
                    headers: {{ "Content-Type": "application/json" }},
                }});
                if (!res.ok) {{
                    throw new Error("HTTP " + res.status);
                }}
                restartBtn.textContent = "Restart requested";
            }} catch (err) {{
                restartBtn.disabled = false;
                restartBtn.textContent = "Restart pod";
                alert("Failed to request restart: " + err);
            }}
        }});

        copyBtn.addEventListener("click", async () => {{
            try {{
                await navigator.clipboard.writeText(logArea.innerText || logArea.textContent || "");
                copyBtn.textContent = "Copied";
                setTimeout(() => {{ copyBtn.textContent = "Copy logs"; }}, 2200);
            }} catch (err) {{
                alert("Failed to copy logs: " + err);
            }}
        }});
    </script>
</body>
</html>
'''
