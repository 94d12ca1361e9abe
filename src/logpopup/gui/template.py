"""HTML 模板生成。

单个等宽文本区域 + 顶部工具栏（置顶按钮、状态）。
Python 侧通过 evaluate_js 调用 appendText / replaceText / setStatus，
页面通过 window.pywebview.api 回传滚动位置、置顶切换和关闭请求。
"""

from __future__ import annotations

import html

from .colors import COLORS

__all__ = [
    "generate_html",
    "AT_BOTTOM_THRESHOLD_PX",
]

# 距离底部小于该像素数视为"在底部"，恢复自动滚动
AT_BOTTOM_THRESHOLD_PX = 50


def generate_html(*, title: str = "logpopup", on_top: bool = False) -> str:
    """生成 HTML 模板。

    Args:
        title: 窗口标题（通常是被执行的命令）
        on_top: 初始是否置顶

    Returns:
        完整的 HTML 字符串
    """
    return f'''<!DOCTYPE html>
<html>
<head>
<meta charset="UTF-8">
<title>{html.escape(title)}</title>
<style>
* {{ margin: 0; padding: 0; box-sizing: border-box; }}
html {{
    overscroll-behavior: none;
}}
body {{
    background: {COLORS["bg"]};
    color: {COLORS["fg"]};
    font-family: Monaco, Menlo, Consolas, 'Courier New', monospace;
    font-size: 12px;
    line-height: 1.4;
    height: 100vh;
    display: flex;
    flex-direction: column;
    overscroll-behavior: none;
}}

/* Toolbar */
#toolbar {{
    background: {COLORS["bg_secondary"]};
    border-bottom: 1px solid {COLORS["border"]};
    padding: 4px 8px;
    display: flex;
    gap: 8px;
    align-items: center;
    flex-shrink: 0;
}}
#toolbar button {{
    background: #333;
    border: 1px solid {COLORS["border"]};
    color: {COLORS["fg"]};
    padding: 3px 10px;
    cursor: pointer;
    font-size: 11px;
    border-radius: 3px;
}}
#toolbar button:hover {{ background: {COLORS["hover"]}; }}
#toolbar button.active {{ color: {COLORS["pinned"]}; border-color: {COLORS["pinned"]}; }}
#command {{
    flex: 1;
    font-size: 11px;
    color: {COLORS["fg_muted"]};
    overflow: hidden;
    text-overflow: ellipsis;
    white-space: nowrap;
}}
#status {{
    font-size: 11px;
    color: {COLORS["fg_dim"]};
}}
#status.success {{ color: {COLORS["success"]}; }}
#status.error {{ color: {COLORS["error"]}; }}

/* Output */
#output {{
    flex: 1;
    overflow-y: auto;
    padding: 4px 8px;
    white-space: pre-wrap;
    word-break: break-all;
    user-select: text;
    -webkit-user-select: text;
    overscroll-behavior: none;
}}
#output::selection, #output *::selection {{ background: {COLORS["selection"]}; }}
</style>
</head>
<body>
<div id="toolbar">
    <button id="pin-btn" title="Keep window on top">Pin</button>
    <span id="command">{html.escape(title)}</span>
    <span id="status">running</span>
</div>
<pre id="output"></pre>
<script>
const AT_BOTTOM_THRESHOLD = {AT_BOTTOM_THRESHOLD_PX};
const output = document.getElementById('output');
const pinBtn = document.getElementById('pin-btn');
const statusEl = document.getElementById('status');

let atBottom = true;
let pinned = {'true' if on_top else 'false'};

function api() {{
    return (window.pywebview && window.pywebview.api) ? window.pywebview.api : null;
}}

function isAtBottom() {{
    return output.scrollHeight - output.scrollTop - output.clientHeight < AT_BOTTOM_THRESHOLD;
}}

function scrollToEnd() {{
    output.scrollTop = output.scrollHeight;
}}

// Append a batch of output
function appendText(text, follow) {{
    output.appendChild(document.createTextNode(text));
    if (follow) {{
        scrollToEnd();
    }}
}}

// Replace everything after a trim
function replaceText(text, follow) {{
    output.textContent = text;
    if (follow) {{
        scrollToEnd();
    }}
}}

function setStatus(line, ok) {{
    statusEl.textContent = line;
    statusEl.className = ok ? 'success' : 'error';
}}

function renderPin() {{
    pinBtn.classList.toggle('active', pinned);
    pinBtn.textContent = pinned ? 'Pinned' : 'Pin';
}}

// Report scroll position changes only
output.addEventListener('scroll', () => {{
    const now = isAtBottom();
    if (now !== atBottom) {{
        atBottom = now;
        const a = api();
        if (a) a.scroll_changed(now);
    }}
}});

pinBtn.addEventListener('click', () => {{
    const a = api();
    if (!a) return;
    a.toggle_pin().then((state) => {{
        pinned = state;
        renderPin();
    }});
}});

document.addEventListener('keydown', (e) => {{
    const a = api();
    if (!a) return;
    if (e.key === 'Escape') {{
        // Unpin and send to back
        pinned = false;
        renderPin();
        a.lower();
        e.preventDefault();
    }} else if ((e.ctrlKey || e.metaKey) && (e.key === 'w' || e.key === 'q')) {{
        a.request_close();
        e.preventDefault();
    }}
}});

renderPin();
</script>
</body>
</html>
'''
