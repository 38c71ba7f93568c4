"""
=============================================================================
HTML PAGES
=============================================================================

The four pages the server generates itself:

    render_home()               gallery of hosted apps at /
    render_directory_listing()  folder without an index.html
    render_status()             every non-JSON error (400, 403, 404, ...)
    render_redirect()           body of the 301 trailing-slash redirect

Pages are plain f-strings. Every value that came from the filesystem or a
manifest goes through html.escape() on the way in.

=============================================================================
"""

from html import escape
from typing import Optional, Sequence

from .hosting.manifest import HostedApplication
from .hosting.paths import DirectoryEntry


_STYLE = """
        body { font-family: system-ui, sans-serif; margin: 0; padding: 24px; background: #f6f7f9; color: #1f2328; }
        h1 { font-size: 1.6rem; margin: 0 0 8px; }
        a { color: #0969da; text-decoration: none; }
        a:hover { text-decoration: underline; }
        .meta { color: #59636e; margin-bottom: 24px; }
        .gallery { display: grid; grid-template-columns: repeat(auto-fill, minmax(240px, 1fr)); gap: 16px; }
        .card { background: #fff; border: 1px solid #d1d9e0; border-radius: 8px; padding: 16px; }
        .card img { width: 64px; height: 64px; object-fit: contain; }
        .tag { display: inline-block; font-size: 0.75rem; padding: 2px 8px; margin: 2px; border-radius: 12px; background: #ddf4ff; }
        .tag-empty { background: #eaeef2; color: #59636e; }
        ul.listing { list-style: none; padding: 0; font-family: monospace; }
        ul.listing li { padding: 4px 0; }
"""


def _page(title: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="utf-8">
    <title>{escape(title)}</title>
    <style>{_STYLE}    </style>
</head>
<body>
{body}
</body>
</html>
"""


class PageRenderer:
    """
    Renders server-generated pages.

    Args:
        listen_url: Base URL shown on the home page, e.g.
            "http://localhost:5000/".
    """

    def __init__(self, listen_url: str):
        self.listen_url = listen_url

    def render_home(self, applications: Sequence[HostedApplication]) -> str:
        if not applications:
            gallery = """    <div class="empty">
        <p>No applications found. Create a folder in the content root to get started.</p>
    </div>"""
        else:
            cards = "\n".join(self._render_card(app) for app in applications)
            gallery = f"""    <div class="gallery">
{cards}
    </div>"""

        body = f"""    <h1>Hosted applications</h1>
    <p class="meta">Serving {len(applications)} app(s) at <a href="{escape(self.listen_url)}">{escape(self.listen_url)}</a></p>
{gallery}"""
        return _page("Hosted applications", body)

    def _render_card(self, app: HostedApplication) -> str:
        if app.tags:
            tags = "".join(f'<span class="tag">{escape(tag)}</span>' for tag in app.tags)
        else:
            tags = '<span class="tag tag-empty">No Tags</span>'

        data_tags = ",".join(tag.lower() for tag in app.tags)

        return f"""        <a class="card" id="app-{escape(app.directory_id)}" href="{escape(app.url)}" data-name="{escape(app.display_name.lower())}" data-tags="{escape(data_tags)}">
            <img src="{escape(app.image_url)}" alt="">
            <h2>{escape(app.display_name)}</h2>
            <p>{escape(app.description)}</p>
            <div class="tags">{tags}</div>
        </a>"""

    def render_directory_listing(
        self,
        request_path: str,
        parent_url: Optional[str],
        directories: Sequence[DirectoryEntry],
        files: Sequence[DirectoryEntry],
    ) -> str:
        items = []
        if parent_url:
            items.append(f'<li><a href="{escape(parent_url)}">../</a></li>')

        if not directories and not files:
            items.append("<li><em>This folder is empty.</em></li>")

        for entry in (*directories, *files):
            items.append(f'<li><a href="{escape(entry.url)}">{escape(entry.name)}</a></li>')

        entries = "\n        ".join(items)
        body = f"""    <h1>Index of {escape(request_path)}</h1>
    <ul class="listing">
        {entries}
    </ul>"""
        return _page(f"Index of {request_path}", body)

    def render_status(self, status: str, message: str) -> str:
        body = f"""    <h1>{escape(status)}</h1>
    <p>{escape(message)}</p>
    <p><a href="/">Back to the gallery</a></p>"""
        return _page(status, body)

    def render_redirect(self, location: str) -> str:
        body = f"""    <h1>Moved</h1>
    <p>This page has moved to <a href="{escape(location)}">{escape(location)}</a>.</p>"""
        return _page("Moved", body)
