"""
JavaScript sources for script-injection operations.

Each constant is a function expression; the surface calls it with the
injection's ``args`` and returns its (JSON-serializable) value.
"""

from __future__ import annotations


def function_from_body(body: str) -> str:
    """Wrap a raw script body (``tabs.executeScript``) into a callable function expression."""
    return "function () {\n" + (body or "") + "\n}"


EXTRACT_TEXT_JS = """
(selector) => {
    if (selector) {
        return Array.from(document.querySelectorAll(selector)).map(el => el.textContent);
    }
    return document.body ? document.body.textContent : '';
}
"""

FIND_ELEMENTS_JS = """
(selector) => {
    return Array.from(document.querySelectorAll(selector)).map((el, index) => {
        const r = el.getBoundingClientRect();
        return {
            index,
            tagName: el.tagName,
            id: el.id,
            className: typeof el.className === 'string' ? el.className : '',
            text: (el.textContent || '').substring(0, 100),
            attributes: Array.from(el.attributes).reduce((acc, attr) => {
                acc[attr.name] = attr.value;
                return acc;
            }, {}),
            rect: {x: r.x, y: r.y, width: r.width, height: r.height, top: r.top, right: r.right, bottom: r.bottom, left: r.left},
        };
    });
}
"""

CLICK_JS = """
(selector, index) => {
    const element = document.querySelectorAll(selector)[index || 0];
    if (!element) return false;
    element.click();
    return true;
}
"""

TYPE_JS = """
(selector, text, append) => {
    const element = document.querySelector(selector);
    if (!element || (element.tagName !== 'INPUT' && element.tagName !== 'TEXTAREA')) return false;
    if (append) {
        element.value += text;
    } else {
        element.value = text;
    }
    element.dispatchEvent(new Event('input', {bubbles: true}));
    element.dispatchEvent(new Event('change', {bubbles: true}));
    return true;
}
"""

SEND_KEY_JS = """
(selector, key, modifiers) => {
    const target = selector ? document.querySelector(selector) : (document.activeElement || document.body);
    if (!target) return {success: false, error: 'No element found'};
    const mods = new Set((modifiers || []).map(m => String(m).toLowerCase()));
    const init = {
        key,
        code: key.length === 1 ? 'Key' + key.toUpperCase() : key,
        bubbles: true,
        cancelable: true,
        ctrlKey: mods.has('ctrl') || mods.has('control'),
        shiftKey: mods.has('shift'),
        altKey: mods.has('alt'),
        metaKey: mods.has('meta') || mods.has('cmd'),
    };
    if (selector && typeof target.focus === 'function') target.focus();
    target.dispatchEvent(new KeyboardEvent('keydown', init));
    target.dispatchEvent(new KeyboardEvent('keypress', init));
    const editable = target.tagName === 'INPUT' || target.tagName === 'TEXTAREA';
    if (editable && key.length === 1 && !init.ctrlKey && !init.metaKey && !init.altKey) {
        target.value += key;
        target.dispatchEvent(new Event('input', {bubbles: true}));
    }
    target.dispatchEvent(new KeyboardEvent('keyup', init));
    return {success: true};
}
"""

SCROLL_JS = """
(x, y, selector, behavior) => {
    if (selector) {
        const element = document.querySelector(selector);
        if (!element) throw new Error('Element not found: ' + selector);
        element.scrollIntoView({behavior: behavior || 'smooth', block: 'center', inline: 'center'});
    } else {
        window.scrollTo({
            left: x !== undefined && x !== null ? x : window.scrollX,
            top: y !== undefined && y !== null ? y : window.scrollY,
            behavior: behavior || 'smooth',
        });
    }
    return {x: window.scrollX || window.pageXOffset || 0, y: window.scrollY || window.pageYOffset || 0};
}
"""

ELEMENT_EXISTS_JS = """
(selector) => document.querySelector(selector) !== null
"""

IFRAME_READY_JS = """
(selector) => {
    const iframe = document.querySelector(selector);
    if (!iframe) return false;
    try {
        const doc = iframe.contentDocument || iframe.contentWindow.document;
        return !!doc && doc.readyState === 'complete';
    } catch (e) {
        return true;
    }
}
"""

STORAGE_GET_JS = """
(area, key) => {
    const store = window[area];
    if (key) return {[key]: store.getItem(key)};
    return {...store};
}
"""

STORAGE_SET_JS = """
(area, key, value) => {
    window[area].setItem(key, value);
    return true;
}
"""

STORAGE_CLEAR_JS = """
(area) => {
    window[area].clear();
    return true;
}
"""

# Serializes the element tree under ``rootSelector`` (or <body>) for Python-side
# analysis: actionable discovery and accessibility snapshots.
DOM_SNAPSHOT_JS = """
(rootSelector, maxNodes) => {
    const root = rootSelector ? document.querySelector(rootSelector) : (document.body || document.documentElement);
    if (!root) return null;
    const skip = new Set(['SCRIPT', 'STYLE', 'NOSCRIPT', 'TEMPLATE', 'HEAD', 'META', 'LINK']);
    const limit = maxNodes || 5000;
    let count = 0;
    const nthOf = (el) => {
        let n = 1;
        let sib = el.previousElementSibling;
        while (sib) { n++; sib = sib.previousElementSibling; }
        return n;
    };
    const walk = (el) => {
        if (count >= limit || skip.has(el.tagName)) return null;
        count++;
        const style = window.getComputedStyle(el);
        const r = el.getBoundingClientRect();
        const attrs = {};
        for (const a of Array.from(el.attributes)) attrs[a.name] = a.value;
        let text = '';
        for (const node of Array.from(el.childNodes)) {
            if (node.nodeType === Node.TEXT_NODE) text += node.textContent;
        }
        const out = {
            tag: el.tagName.toLowerCase(),
            attrs,
            text: text.replace(/\\s+/g, ' ').trim(),
            nth: nthOf(el),
            rect: {x: r.x, y: r.y, width: r.width, height: r.height},
            hidden: style.display === 'none' || style.visibility === 'hidden' || el.hidden === true,
            disabled: el.disabled === true,
            children: [],
        };
        if ('value' in el && typeof el.value === 'string' && ['INPUT', 'TEXTAREA', 'SELECT'].includes(el.tagName)) {
            out.value = el.value;
        }
        if (el.tagName === 'INPUT' && (el.type === 'checkbox' || el.type === 'radio')) out.checked = el.checked;
        for (const child of Array.from(el.children)) {
            const c = walk(child);
            if (c) out.children.push(c);
        }
        return out;
    };
    return {
        root: walk(root),
        viewport: {width: window.innerWidth, height: window.innerHeight},
        url: location.href,
    };
}
"""

ELEMENT_INFO_JS = """
(selector, includeStyles) => {
    const element = document.querySelector(selector);
    if (!element) return null;
    const rect = element.getBoundingClientRect();
    const styles = window.getComputedStyle(element);
    return {
        tagName: element.tagName,
        id: element.id,
        className: typeof element.className === 'string' ? element.className : '',
        textContent: element.textContent,
        innerHTML: element.innerHTML,
        value: element.value,
        href: element.href,
        src: element.src,
        alt: element.alt,
        title: element.title,
        type: element.type,
        name: element.name,
        placeholder: element.placeholder,
        disabled: element.disabled,
        checked: element.checked,
        selected: element.selected,
        rect: {top: rect.top, right: rect.right, bottom: rect.bottom, left: rect.left,
               width: rect.width, height: rect.height, x: rect.x, y: rect.y},
        isVisible: rect.width > 0 && rect.height > 0 && styles.display !== 'none' && styles.visibility !== 'hidden',
        styles: includeStyles ? {
            display: styles.display, visibility: styles.visibility, position: styles.position,
            zIndex: styles.zIndex, opacity: styles.opacity, color: styles.color,
            backgroundColor: styles.backgroundColor, fontSize: styles.fontSize,
            fontFamily: styles.fontFamily, fontWeight: styles.fontWeight, textAlign: styles.textAlign,
            lineHeight: styles.lineHeight, padding: styles.padding, margin: styles.margin, border: styles.border,
        } : null,
        attributes: Array.from(element.attributes).reduce((acc, attr) => {
            acc[attr.name] = attr.value;
            return acc;
        }, {}),
        dataset: {...element.dataset},
    };
}
"""

HIGHLIGHT_JS = """
(selector, outline, backgroundColor, duration) => {
    const elements = Array.from(document.querySelectorAll(selector));
    const original = elements.map(el => ({el, outline: el.style.outline, bg: el.style.backgroundColor}));
    for (const el of elements) {
        el.style.outline = outline || '2px solid red';
        if (backgroundColor) el.style.backgroundColor = backgroundColor;
    }
    if (duration) {
        setTimeout(() => {
            for (const o of original) {
                o.el.style.outline = o.outline;
                o.el.style.backgroundColor = o.bg;
            }
        }, duration);
    }
    return {count: elements.length};
}
"""

SIMULATE_EVENT_JS = """
(selector, eventType, options) => {
    const element = document.querySelector(selector);
    if (!element) return false;
    const init = {bubbles: true, cancelable: true, ...(options || {})};
    let event;
    if (eventType.startsWith('mouse') || eventType === 'click' || eventType === 'dblclick') {
        event = new MouseEvent(eventType, {view: window, ...init});
    } else if (eventType.startsWith('key')) {
        event = new KeyboardEvent(eventType, {view: window, ...init});
    } else if (eventType === 'focus' || eventType === 'blur') {
        event = new FocusEvent(eventType, {view: window, ...init});
    } else {
        event = new Event(eventType, init);
    }
    element.dispatchEvent(event);
    return true;
}
"""

STRUCTURED_DATA_JS = """
(rowSelector, columnSelectors, extractAttribute) => {
    const data = [];
    for (const row of Array.from(document.querySelectorAll(rowSelector))) {
        const rowData = {};
        for (const [key, sel] of Object.entries(columnSelectors || {})) {
            const el = row.querySelector(sel);
            if (el) rowData[key] = extractAttribute ? el.getAttribute(extractAttribute) : el.textContent.trim();
        }
        if (Object.keys(rowData).length > 0) data.push(rowData);
    }
    return data;
}
"""

INJECT_CSS_JS = """
(styleId, css) => {
    let style = document.getElementById(styleId);
    if (!style) {
        style = document.createElement('style');
        style.id = styleId;
        (document.head || document.documentElement).appendChild(style);
    }
    style.textContent = css;
    return true;
}
"""

REMOVE_CSS_JS = """
(styleId) => {
    const style = document.getElementById(styleId);
    if (!style) return false;
    style.remove();
    return true;
}
"""

OBSERVE_MUTATIONS_JS = """
(observerId, selector, options) => {
    const prev = window.__tabBridgeObserver;
    if (prev && prev.observer) prev.observer.disconnect();
    const target = selector ? document.querySelector(selector) : document.body;
    if (!target) return {ok: false};
    const nodeInfo = (node) => ({nodeType: node.nodeType, nodeName: node.nodeName, textContent: node.textContent});
    const state = {id: observerId, mutations: [], observer: null};
    state.observer = new MutationObserver((list) => {
        for (const m of list) {
            state.mutations.push({
                type: m.type,
                target: m.target.tagName,
                targetId: m.target.id,
                targetClass: typeof m.target.className === 'string' ? m.target.className : '',
                attributeName: m.attributeName,
                oldValue: m.oldValue,
                addedNodes: Array.from(m.addedNodes).map(nodeInfo),
                removedNodes: Array.from(m.removedNodes).map(nodeInfo),
            });
        }
    });
    state.observer.observe(target, options);
    window.__tabBridgeObserver = state;
    return {ok: true};
}
"""

COLLECT_MUTATIONS_JS = """
(observerId, disconnect) => {
    const state = window.__tabBridgeObserver;
    if (!state || state.id !== observerId) return null;
    if (disconnect) {
        state.observer.disconnect();
        window.__tabBridgeObserver = null;
    }
    return state.mutations.slice();
}
"""

FIND_IFRAMES_JS = """
(namePattern, selector) => {
    const matches = [];
    document.querySelectorAll('iframe, frame').forEach((iframe, index) => {
        let match = false;
        if (namePattern && iframe.name && iframe.name.includes(namePattern)) match = true;
        if (selector) {
            try {
                if (iframe.matches(selector)) match = true;
            } catch (e) {
                // invalid selector
            }
        }
        if (match) matches.push({index, name: iframe.name, id: iframe.id, src: iframe.src});
    });
    return matches;
}
"""
