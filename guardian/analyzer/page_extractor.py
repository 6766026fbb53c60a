"""Extract page structure (forms, links, scripts, text) from raw HTML."""

from __future__ import annotations

import logging
import re
from html.parser import HTMLParser
from urllib.parse import urljoin

from .models import FormData, InputField, LinkData, PageStructure, ScriptSummary

logger = logging.getLogger(__name__)

OBFUSCATION_PATTERN = re.compile(r"eval\(|document\.write\(|unescape\(")

_SKIP_TEXT_TAGS = {"script", "style", "noscript"}
_FORM_FIELD_TAGS = {"input", "select", "textarea", "button"}
_MAX_HTML = 2_000_000


class _PageParser(HTMLParser):
    def __init__(self, base_url: str) -> None:
        super().__init__(convert_charrefs=True)
        self.base_url = base_url
        self.title = ""
        self.metadata: dict[str, str] = {}
        self.forms: list[dict] = []
        self.links: list[dict] = []
        self.script_count = 0
        self.external_scripts: list[str] = []
        self.has_inline_script = False
        self.suspicious_script = False

        self._chunks: list[str] = []
        self._skip_depth = 0
        self._in_title = False
        self._current_form: dict | None = None
        self._current_link: dict | None = None
        self._script_body: list[str] | None = None

    def _resolve(self, value: str) -> str:
        try:
            return urljoin(self.base_url, value)
        except ValueError:
            return value

    def handle_starttag(self, tag: str, attrs) -> None:  # type: ignore[override]
        attr = {k.lower(): (v or "") for k, v in attrs}

        if tag in _SKIP_TEXT_TAGS:
            self._skip_depth += 1
        if tag == "title":
            self._in_title = True
        elif tag == "meta":
            name = attr.get("name") or attr.get("property")
            content = attr.get("content")
            if name and content:
                self.metadata[name] = content
        elif tag == "form":
            action = attr.get("action", "").strip()
            self._current_form = {
                "action": self._resolve(action) if action else self.base_url,
                "method": (attr.get("method") or "get").lower(),
                "inputs": [],
            }
            self.forms.append(self._current_form)
        elif tag in _FORM_FIELD_TAGS and self._current_form is not None:
            if tag == "input":
                field_type = (attr.get("type") or "text").lower()
            elif tag == "button":
                field_type = (attr.get("type") or "submit").lower()
            elif tag == "select":
                field_type = "select-one" if "multiple" not in attr else "select-multiple"
            else:
                field_type = "textarea"
            self._current_form["inputs"].append(
                InputField(
                    type=field_type,
                    name=attr.get("name", ""),
                    required="required" in attr,
                    placeholder=attr.get("placeholder", ""),
                )
            )
        elif tag == "a" and "href" in attr:
            href = attr["href"].strip()
            self._current_link = {
                "href": self._resolve(href) if href else "",
                "target": attr.get("target", ""),
                "text": [],
            }
        elif tag == "script":
            self.script_count += 1
            src = attr.get("src", "").strip()
            if src:
                self.external_scripts.append(self._resolve(src))
                self._script_body = None
            else:
                self._script_body = []

    def handle_startendtag(self, tag: str, attrs) -> None:  # type: ignore[override]
        self.handle_starttag(tag, attrs)
        if tag in _SKIP_TEXT_TAGS:
            self.handle_endtag(tag)

    def handle_endtag(self, tag: str) -> None:  # type: ignore[override]
        if tag in _SKIP_TEXT_TAGS and self._skip_depth:
            self._skip_depth -= 1
        if tag == "title":
            self._in_title = False
        elif tag == "form":
            self._current_form = None
        elif tag == "a" and self._current_link is not None:
            self._finish_link()
        elif tag == "script" and self._script_body is not None:
            body = "".join(self._script_body)
            if body.strip():
                self.has_inline_script = True
                if OBFUSCATION_PATTERN.search(body):
                    self.suspicious_script = True
            self._script_body = None

    def handle_data(self, data: str) -> None:  # type: ignore[override]
        if self._script_body is not None:
            self._script_body.append(data)
            return
        if self._in_title:
            self.title += data
            return
        if self._skip_depth:
            return
        if self._current_link is not None:
            self._current_link["text"].append(data)
        if data and data.strip():
            self._chunks.append(data.strip())

    def _finish_link(self) -> None:
        link = self._current_link
        self._current_link = None
        href = link["href"]
        if not href or href.lower().startswith("javascript:"):
            return
        text = " ".join("".join(link["text"]).split())
        self.links.append({"href": href, "text": text, "target": link["target"]})

    def finish(self) -> None:
        if self._current_link is not None:
            self._finish_link()
        if self._script_body is not None:
            self.handle_endtag("script")

    def text(self) -> str:
        return " ".join(self._chunks)


def extract_page_structure(url: str, html: str) -> PageStructure:
    """Parse raw HTML into a PageStructure. Malformed markup is tolerated."""
    html = html or ""
    parser = _PageParser(url)
    try:
        parser.feed(html[:_MAX_HTML])
        parser.close()
    except Exception as exc:
        # HTMLParser is lenient; keep whatever was collected before the failure.
        logger.debug("HTML parse error for %s: %s", url, exc)
    parser.finish()

    forms = tuple(
        FormData(action=f["action"], method=f["method"], inputs=tuple(f["inputs"]))
        for f in parser.forms
    )
    links = tuple(LinkData(href=l["href"], text=l["text"], target=l["target"]) for l in parser.links)
    scripts = ScriptSummary(
        count=parser.script_count,
        external=tuple(parser.external_scripts),
        has_inline=parser.has_inline_script,
        suspicious=parser.suspicious_script,
    )

    return PageStructure(
        url=url,
        title=" ".join(parser.title.split()),
        text=parser.text(),
        html=html,
        forms=forms,
        links=links,
        scripts=scripts,
        metadata=dict(parser.metadata),
    )
