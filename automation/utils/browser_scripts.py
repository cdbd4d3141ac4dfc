"""
Shared JavaScript snippets evaluated in the page by the automation engine.
"""

STOPWATCH_ELEMENT_ID = "media-links-stopwatch"
SCRIPT_PROBE_FLAG = "__bookmarkletTestFlag"

STOPWATCH_POSITIONS = {
    "top-left": {"top": "20px", "left": "20px", "bottom": "auto", "right": "auto"},
    "top-right": {"top": "20px", "right": "20px", "bottom": "auto", "left": "auto"},
    "bottom-left": {"bottom": "20px", "left": "20px", "top": "auto", "right": "auto"},
    "bottom-right": {"bottom": "20px", "right": "20px", "top": "auto", "left": "auto"},
}

# --- DOM actions -----------------------------------------------------------

JS_ELEMENT_TYPE = """(el) => (el.type || '').toLowerCase()"""

JS_SET_CHECKED = """(el, checked) => {
    el.checked = checked;
    el.dispatchEvent(new Event('change', { bubbles: true }));
}"""

JS_NATIVE_CLICK = """(el) => el.click()"""

JS_SET_VALUE = """(el, value) => {
    el.value = value;
    el.dispatchEvent(new Event('input', { bubbles: true }));
    el.dispatchEvent(new Event('change', { bubbles: true }));
}"""

JS_GET_TEXT = """(el) => el.textContent || el.value || ''"""

JS_BODY_TEXT = """() => (document.body ? document.body.textContent : '') || ''"""

JS_ALERT = """(message) => { alert(message); }"""

# --- Script execution strategies --------------------------------------------

SCRIPT_TAG_TEMPLATE = "try {{ {code} }} catch (e) {{ console.error('Bookmarklet error:', e); }}"

JS_PROBE_SCRIPT_FLAG = """(flag) => {
    const present = window[flag] === true;
    delete window[flag];
    return present;
}"""

JS_PROBE_EVAL = """() => {
    try {
        return new Function('return true')() === true;
    } catch (e) {
        return false;
    }
}"""

JS_RUN_EVAL = """(code) => { (0, eval)(code); return true; }"""

JS_RUN_FUNCTION = """(code) => { new Function(code)(); return true; }"""

# --- Stopwatch overlay -------------------------------------------------------

JS_RENDER_STOPWATCH = """(opts) => {
    let el = document.getElementById(opts.id);
    if (!el) {
        el = document.createElement('div');
        el.id = opts.id;
        el.style.cssText = 'position:fixed;z-index:2147483646;padding:6px 10px;border-radius:8px;' +
            'background:rgba(31,41,55,0.9);color:#f9fafb;font:13px -apple-system,BlinkMacSystemFont,sans-serif;' +
            'cursor:pointer;user-select:none;';
        const time = document.createElement('span');
        time.id = opts.id + '-time';
        el.appendChild(time);
        (document.body || document.documentElement).appendChild(el);
    }
    Object.assign(el.style, opts.position);
    const time = document.getElementById(opts.id + '-time');
    if (opts.minimized) {
        time.textContent = '⏱';
        el.title = 'Time on page: ' + opts.time + '\\nClick to expand';
    } else {
        time.textContent = opts.time;
        el.title = 'Time on page';
    }
}"""

JS_REMOVE_STOPWATCH = """(id) => {
    const el = document.getElementById(id);
    if (el && el.parentNode) el.parentNode.removeChild(el);
}"""
