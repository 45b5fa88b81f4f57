"""
HTML wrapper for viewing a problem in the browser.

The problem body is Markdeep and is embedded verbatim (no escaping); stored
documents are trusted markup. Assets are served by the static host.
"""

PAGE_HEAD = (
    '<meta charset="utf-8">'
    '<link rel="icon" type="image/svg+xml" href="/favicon.svg" />'
    "<style>body{background:"
    "radial-gradient(1200px 800px at 10% -10%, #ffe7c7 0%, transparent 60%),"
    "radial-gradient(900px 600px at 90% 10%, #d9efe6 0%, transparent 55%),"
    "#f4f0e8;}</style>"
)

# Hides the raw source until markdeep.min.js has rendered it.
PAGE_TAIL = (
    '<style class="fallback">body {visibility: hidden;white-space: pre;'
    'font-family: "JetBrains Mono", "monospace";}</style>'
    '<script src="/markdeep.min.js" charset="utf-8"></script>'
    '<script>window.alreadyProcessedMarkdeep || (document.body.style.visibility = "visible")</script>'
)


def render_problem_page(body: str) -> str:
    """Wrap a stored problem body in the Markdeep page template."""
    return f"{PAGE_HEAD}{body}{PAGE_TAIL}"
