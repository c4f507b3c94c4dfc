"""Streaming ``start-with`` subtree filter for RPC replies.

Devices that do not implement XPath filtering return whole lists; this module
selects the list entries client-side in one pass over the reply::

    /rpc-reply/data/terminal-device/logical-channels/channel[start-with(index,'10115')]

Only the last path segment (the target element) and the predicate are
interpreted. Every target element whose ``index`` child text begins with
``10115`` is kept with its whole subtree, every other one is dropped, and all
surrounding wrapper elements pass through untouched.
"""
from dataclasses import dataclass
from typing import List, Sequence, Tuple, Union
from xml.parsers import expat
from xml.sax.saxutils import escape, quoteattr

from ncprobe.config import FILTER_FEED_SIZE
from ncprobe.errors import FilterParseError, UnsupportedPredicateError
from ncprobe.utils import format_xml, log_error

START_WITH = "start-with"
OPAQUE = "opaque"


def local_name(name: str) -> str:
    return name.rsplit(":", 1)[-1]


@dataclass(frozen=True)
class FilterSpec:
    path: Tuple[str, ...]
    target: str
    kind: str
    predicate: str
    field: str = ""
    literal: str = ""


def parse_filter(expression: str) -> FilterSpec:
    text = (expression or "").strip().strip("/ ")
    bracket = text.find("[")
    if bracket == -1:
        raise FilterParseError("no predicate found")

    path = tuple(segment.strip() for segment in text[:bracket].split("/"))
    if not path[-1]:
        raise FilterParseError("empty path")

    predicate = text[bracket:].strip("[]").strip()
    target = local_name(path[-1])
    if not predicate.startswith(START_WITH + "("):
        return FilterSpec(path=path, target=target, kind=OPAQUE, predicate=predicate)

    args = predicate[len(START_WITH) + 1:]
    if args.endswith(")"):
        args = args[:-1]
    parts = args.split(",", 1)
    if len(parts) != 2 or not parts[0].strip():
        raise FilterParseError(f"invalid start-with predicate: {predicate}")
    return FilterSpec(
        path=path,
        target=target,
        kind=START_WITH,
        predicate=predicate,
        field=local_name(parts[0].strip()),
        literal=parts[1].strip().strip("'\""),
    )


def _render_start(name: str, attributes: Sequence[str]) -> str:
    # ordered_attributes gives a flat [name, value, name, value, ...] list
    attrs = "".join(
        f" {attributes[i]}={quoteattr(attributes[i + 1])}" for i in range(0, len(attributes), 2)
    )
    return f"<{name}{attrs}>"


class SubtreeFilter:
    """Push-style filter: ``feed()`` text as it arrives, then ``close()``.

    Elements outside a candidate subtree are written through immediately and
    tracked on a stack so that ``close()`` can close whatever a truncated
    input left open. A candidate subtree is buffered until its end tag and
    then either flushed or discarded.
    """

    def __init__(self, spec: FilterSpec):
        if spec.kind != START_WITH:
            raise UnsupportedPredicateError(
                f"unsupported predicate [{spec.predicate}]: only start-with(field,'literal') can be evaluated"
            )
        self.spec = spec
        self.kept = 0
        self.dropped = 0
        self.error = ""

        self._output: List[str] = []
        self._subtree: List[str] = []
        self._stack: List[str] = []
        self._text: List[str] = []
        self._depth = 0
        self._keep = False
        self._field_open = False
        self._stopped = False
        self._closed = False

        self._parser = expat.ParserCreate()
        self._parser.ordered_attributes = True
        self._parser.StartElementHandler = self._on_start
        self._parser.EndElementHandler = self._on_end
        self._parser.CharacterDataHandler = self._text.append

    def feed(self, data: str) -> None:
        if self._stopped or self._closed:
            return
        try:
            self._parser.Parse(data, False)
        except expat.ExpatError as exc:
            self._stop(exc)

    def close(self) -> str:
        if not self._closed:
            self._closed = True
            if not self._stopped:
                try:
                    self._parser.Parse("", True)
                except expat.ExpatError as exc:
                    self._stop(exc)
            self._flush_text()
            if self._depth or self._stack:
                log_error(
                    f"filter input ended with {len(self._stack)} open element(s)"
                    f"{' inside an unfinished ' + self.spec.target if self._depth else ''}"
                    f"{': ' + self.error if self.error else ''}; closing them"
                )
            # An unfinished candidate subtree is never emitted.
            self._subtree = []
            self._depth = 0
            while self._stack:
                self._output.append(f"</{self._stack.pop()}>\n")
        return "".join(self._output)

    def _stop(self, exc: expat.ExpatError) -> None:
        self._stopped = True
        self.error = f"{expat.ErrorString(exc.code)} at line {exc.lineno}, column {exc.offset}"

    def _flush_text(self) -> None:
        if not self._text:
            return
        data = "".join(self._text)
        del self._text[:]
        if self._depth:
            self._subtree.append(escape(data))
            if self._field_open and data.startswith(self.spec.literal):
                self._keep = True
        else:
            self._output.append(escape(data))
        self._field_open = False

    def _on_start(self, name: str, attributes: List[str]) -> None:
        self._flush_text()
        tag = _render_start(name, attributes)
        local = local_name(name)
        if self._depth:
            self._depth += 1
            self._subtree.append(tag)
            self._field_open = local == self.spec.field
        elif local == self.spec.target:
            self._depth = 1
            self._subtree = [tag]
            self._keep = False
        else:
            self._output.append(tag)
            self._stack.append(name)

    def _on_end(self, name: str) -> None:
        self._flush_text()
        self._field_open = False
        if self._depth:
            self._subtree.append(f"</{name}>")
            self._depth -= 1
            if self._depth == 0:
                if self._keep:
                    self._output.extend(self._subtree)
                    self._output.append("\n")
                    self.kept += 1
                else:
                    self.dropped += 1
                self._subtree = []
                self._keep = False
        elif self._stack:
            self._output.append(f"</{name}>\n")
            self._stack.pop()


def apply_filter(xml_text: str, expression: Union[str, FilterSpec]) -> str:
    spec = parse_filter(expression) if isinstance(expression, str) else expression
    subtree_filter = SubtreeFilter(spec)
    for offset in range(0, len(xml_text), FILTER_FEED_SIZE):
        subtree_filter.feed(xml_text[offset:offset + FILTER_FEED_SIZE])
    return format_xml(subtree_filter.close())
