"""
Streaming markup transform.

``HTMLRewriter`` holds a table of callbacks keyed by tag name. Each call to
``transform()`` returns a ``MarkupTransform`` that is fed the document in
arbitrary chunks and hands back rewritten markup as soon as it is safe to
emit. Untouched tags are emitted exactly as they appeared in the input.

Callbacks registered for a tag:

    element(Element)   start tag seen; attributes may be changed or the
                       element removed together with its content
    text(TextChunk)    a chunk of text inside the element; the chunk that
                       closes a text node has ``last_in_text_node`` set
    end_tag(EndTag)    end tag seen; always runs after the final text chunk
                       of the element has been dispatched
"""

import re
from dataclasses import dataclass
from html.parser import HTMLParser
from typing import Callable, Dict, List, Optional, Tuple

# An ampersand that would start a character reference
_CHARREF_START = re.compile(r"&(?=#?\w+;)")


VOID_ELEMENTS = frozenset(
    {
        "area",
        "base",
        "br",
        "col",
        "embed",
        "hr",
        "img",
        "input",
        "link",
        "meta",
        "param",
        "source",
        "track",
        "wbr",
    }
)


def _escape_attribute(value: str) -> str:
    return _CHARREF_START.sub("&amp;", value).replace('"', "&quot;")


class Element:
    """A start tag whose attributes can be read and changed."""

    def __init__(self, tag: str, attrs, raw: str, self_closing: bool = False):
        self.tag = tag
        self.self_closing = self_closing
        self.removed = False
        self.modified = False
        self._attrs: List[List[Optional[str]]] = [[name, value] for name, value in attrs]
        self._raw = raw

    def has_attribute(self, name: str) -> bool:
        return any(attr_name == name for attr_name, _ in self._attrs)

    def get_attribute(self, name: str) -> Optional[str]:
        for attr_name, value in self._attrs:
            if attr_name == name:
                return value if value is not None else ""
        return None

    def set_attribute(self, name: str, value: str) -> None:
        self.modified = True
        for attr in self._attrs:
            if attr[0] == name:
                attr[1] = value
                return
        self._attrs.append([name, value])

    def remove(self) -> None:
        self.removed = True

    def serialize(self) -> str:
        if not self.modified:
            return self._raw
        parts = [f"<{self.tag}"]
        for name, value in self._attrs:
            if value is None:
                parts.append(f" {name}")
            else:
                parts.append(f' {name}="{_escape_attribute(value)}"')
        parts.append(" />" if self.self_closing else ">")
        return "".join(parts)


class TextChunk:
    """One piece of a text node, as delivered by the parser."""

    def __init__(self, text: str, last_in_text_node: bool):
        self.text = text
        self.last_in_text_node = last_in_text_node
        self._replacement: Optional[str] = None

    def replace(self, content: str) -> None:
        self._replacement = content

    @property
    def output(self) -> str:
        return self.text if self._replacement is None else self._replacement


class EndTag:
    """The end tag of a handled element; content can be inserted before it."""

    def __init__(self, element: Element, raw: str):
        self.element = element
        self.raw = raw
        self._before: List[str] = []

    def before(self, content: str) -> None:
        self._before.append(content)

    def serialize(self) -> str:
        return "".join(self._before) + self.raw


@dataclass(frozen=True)
class TagHandlers:
    element: Optional[Callable[[Element], None]] = None
    text: Optional[Callable[[TextChunk], None]] = None
    end_tag: Optional[Callable[[EndTag], None]] = None


@dataclass
class _OpenElement:
    tag: str
    element: Element
    handlers: Tuple[TagHandlers, ...]


class MarkupTransform(HTMLParser):
    """Per-document transform state. Feed with write(), finish with end()."""

    def __init__(self, handlers: Dict[str, Tuple[TagHandlers, ...]]):
        super().__init__(convert_charrefs=False)
        self._handlers = handlers
        self._out: List[str] = []
        self._open: List[_OpenElement] = []
        self._text_target: Optional[_OpenElement] = None
        self._text_open = False
        self._skip_tag: Optional[str] = None
        self._skip_depth = 0
        self._endtag_start: Optional[int] = None
        self._emit_source: Optional[Callable[[str], None]] = None

    @property
    def pending_input(self) -> str:
        """Input received but not parsed yet."""
        return self.rawdata

    def write(self, chunk: str) -> str:
        self.feed(chunk)
        return self._drain()

    def end(self) -> str:
        self.close()
        if self.rawdata:
            # Unterminated script or style content is kept back by the parser
            self._text(self.rawdata)
            self.rawdata = ""
        self._finish_text()
        while self._open:
            self._close_element(self._open.pop(), "")
        return self._drain()

    def _drain(self) -> str:
        output = "".join(self._out)
        self._out.clear()
        return output

    # Text nodes

    def _dispatch_text(self, chunk: TextChunk) -> None:
        target = self._text_target
        if target is not None:
            for handlers in target.handlers:
                if handlers.text:
                    handlers.text(chunk)
        self._out.append(chunk.output)

    def _finish_text(self) -> None:
        if not self._text_open:
            return
        self._text_open = False
        self._dispatch_text(TextChunk("", True))
        self._text_target = None

    def _text(self, data: str) -> None:
        if self._skip_tag:
            return
        if not self._text_open:
            self._text_open = True
            self._text_target = self._open[-1] if self._open else None
        self._dispatch_text(TextChunk(data, False))

    def handle_data(self, data):
        self._text(data)

    def handle_entityref(self, name):
        self._emit_source = self._text

    def handle_charref(self, name):
        self._emit_source = self._text

    # Tags

    def _start(self, tag: str, attrs, self_closing: bool) -> None:
        if self._skip_tag:
            if tag == self._skip_tag and not self_closing:
                self._skip_depth += 1
            return
        self._finish_text()

        element = Element(tag, attrs, self.get_starttag_text() or "", self_closing)
        handlers = self._handlers.get(tag, ())
        for handler in handlers:
            if handler.element:
                handler.element(element)
            if element.removed:
                break

        has_content = not self_closing and tag not in VOID_ELEMENTS
        if element.removed:
            if has_content:
                self._skip_tag = tag
                self._skip_depth = 1
            return

        self._out.append(element.serialize())
        if has_content and any(h.text or h.end_tag for h in handlers):
            self._open.append(_OpenElement(tag, element, handlers))

    def handle_starttag(self, tag, attrs):
        self._start(tag, attrs, False)

    def handle_startendtag(self, tag, attrs):
        self._start(tag, attrs, True)

    def parse_endtag(self, i):
        self._endtag_start = i
        return super().parse_endtag(i)

    def _raw_endtag(self, tag: str) -> str:
        start = self._endtag_start
        self._endtag_start = None
        if start is not None and self.rawdata.startswith("</", start):
            end = self.rawdata.find(">", start)
            if end != -1:
                return self.rawdata[start : end + 1]
        return f"</{tag}>"

    def handle_endtag(self, tag):
        raw = self._raw_endtag(tag)
        if self._skip_tag:
            if tag == self._skip_tag:
                self._skip_depth -= 1
                if self._skip_depth == 0:
                    self._skip_tag = None
            return
        self._finish_text()

        for index in range(len(self._open) - 1, -1, -1):
            if self._open[index].tag == tag:
                # Elements left open inside this one are closed implicitly
                while len(self._open) > index + 1:
                    self._close_element(self._open.pop(), "")
                self._close_element(self._open.pop(), raw)
                return
        self._out.append(raw)

    def _close_element(self, entry: _OpenElement, raw: str) -> None:
        end_tag = EndTag(entry.element, raw)
        for handlers in entry.handlers:
            if handlers.end_tag:
                handlers.end_tag(end_tag)
        self._out.append(end_tag.serialize())

    # Everything else passes through

    def _passthrough(self, markup: str) -> None:
        if self._skip_tag:
            return
        self._finish_text()
        self._out.append(markup)

    def handle_comment(self, data):
        self._emit_source = self._passthrough

    def handle_decl(self, decl):
        self._emit_source = self._passthrough

    def handle_pi(self, data):
        self._emit_source = self._passthrough

    def unknown_decl(self, data):
        self._emit_source = self._passthrough

    def updatepos(self, i, j):
        # References, comments and declarations are re-emitted from the source
        # slice; its end is only known once the parser advances past it
        emit, self._emit_source = self._emit_source, None
        if emit is not None and i < j:
            emit(self.rawdata[i:j])
        return super().updatepos(i, j)


class HTMLRewriter:
    """Registration table of tag callbacks, shared by all transforms it creates."""

    def __init__(self):
        self._handlers: Dict[str, List[TagHandlers]] = {}

    def on(
        self,
        tag: str,
        element: Optional[Callable[[Element], None]] = None,
        text: Optional[Callable[[TextChunk], None]] = None,
        end_tag: Optional[Callable[[EndTag], None]] = None,
    ) -> "HTMLRewriter":
        self._handlers.setdefault(tag.lower(), []).append(
            TagHandlers(element=element, text=text, end_tag=end_tag)
        )
        return self

    @property
    def tags(self) -> List[str]:
        return list(self._handlers)

    def transform(self) -> MarkupTransform:
        return MarkupTransform({tag: tuple(h) for tag, h in self._handlers.items()})

    def rewrite(self, markup: str) -> str:
        """Rewrite a complete document in one go."""
        transform = self.transform()
        return transform.write(markup) + transform.end()
