"""
Serialized block markup.

Block editor content is HTML interleaved with comment delimiters::

    <!-- wp:gatherpress/rsvp {"className":"gatherpress--is-hidden"} -->
    <div class="wp-block-gatherpress-rsvp">...</div>
    <!-- /wp:gatherpress/rsvp -->

    <!-- wp:gatherpress/add-to-calendar /-->

``parse_blocks`` turns content into a tree of ``Block`` nodes and freeform
HTML strings; ``serialize_blocks`` turns it back. Untouched blocks keep
their original delimiter text, so parse + serialize is lossless.
"""

import json
import re
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any, Union

from driftfix.utils.logging import get_logger

logger = get_logger("driftfix.steps.blocks")

BLOCK_DELIMITER = re.compile(
    r"<!--\s+(?P<closer>/)?wp:(?P<namespace>[a-z][a-z0-9_-]*/)?(?P<name>[a-z][a-z0-9_-]*)\s+"
    r"(?P<attrs>\{.*?\}\s+)?(?P<void>/)?-->",
    re.DOTALL,
)

HTML_CLASS_ATTRIBUTE = re.compile(
    r"(?P<lead>(?<![\w-])class\s*=\s*)(?P<quote>[\"'])(?P<value>.*?)(?P=quote)",
    re.IGNORECASE | re.DOTALL,
)

Node = Union["Block", str]


@dataclass
class Block:
    """One parsed block; ``inner`` holds nested blocks and HTML strings."""

    name: str
    attrs: dict[str, Any] = field(default_factory=dict)
    inner: list[Node] = field(default_factory=list)
    void: bool = False
    opener: str = ""
    closer: str = ""
    attrs_valid: bool = True
    dirty: bool = False

    @property
    def short_name(self) -> str:
        return self.name[len("core/"):] if self.name.startswith("core/") else self.name

    def render_opener(self) -> str:
        attrs = f"{serialize_attrs(self.attrs)} " if self.attrs else ""
        end = "/-->" if self.void else "-->"
        return f"<!-- wp:{self.short_name} {attrs}{end}"

    def render_closer(self) -> str:
        return f"<!-- /wp:{self.short_name} -->"


def serialize_attrs(attrs: Mapping[str, Any]) -> str:
    """JSON-encode block attributes the way the block editor stores them."""
    encoded = json.dumps(attrs, separators=(",", ":"), ensure_ascii=False)
    # Keep the comment delimiter and HTML parsers from seeing markup in attributes
    return (
        encoded.replace("--", "\\u002d\\u002d")
        .replace("<", "\\u003c")
        .replace(">", "\\u003e")
        .replace("&", "\\u0026")
        .replace('\\"', "\\u0022")
    )


def _decode_attrs(raw: str | None) -> tuple[dict[str, Any], bool]:
    if not raw:
        return {}, True
    try:
        value = json.loads(raw.strip())
    except json.JSONDecodeError:
        return {}, False
    if not isinstance(value, dict):
        return {}, False
    return value, True


def parse_blocks(content: str) -> list[Node]:
    """
    Parse serialized block content.

    Unbalanced closing delimiters are kept as text; blocks left open at the
    end of the content are closed implicitly.

    Args:
        content: Serialized post content

    Returns:
        Top-level nodes (Block instances and freeform HTML strings)
    """
    root: list[Node] = []
    stack: list[Block] = []
    pos = 0

    def emit(node: Node) -> None:
        (stack[-1].inner if stack else root).append(node)

    for match in BLOCK_DELIMITER.finditer(content):
        if match.start() > pos:
            emit(content[pos:match.start()])
        pos = match.end()

        name = (match.group("namespace") or "core/") + match.group("name")
        raw = match.group(0)

        if match.group("closer"):
            if stack and stack[-1].name == name:
                block = stack.pop()
                block.closer = raw
                emit(block)
            else:
                emit(raw)
            continue

        attrs, valid = _decode_attrs(match.group("attrs"))
        block = Block(name, attrs, void=bool(match.group("void")), opener=raw, attrs_valid=valid)
        if block.void:
            emit(block)
        else:
            stack.append(block)

    if pos < len(content):
        emit(content[pos:])
    while stack:
        emit(stack.pop())
    return root


def serialize_blocks(nodes: list[Node]) -> str:
    return "".join(_serialize_node(node) for node in nodes)


def _serialize_node(node: Node) -> str:
    if isinstance(node, str):
        return node
    opener = node.render_opener() if node.dirty else node.opener
    if node.void:
        return opener
    return opener + serialize_blocks(node.inner) + node.closer


def walk_blocks(nodes: list[Node]) -> Iterator[Block]:
    """Yield every block in document order, depth first."""
    for node in nodes:
        if isinstance(node, Block):
            yield node
            yield from walk_blocks(node.inner)


def _map_class_tokens(value: str, class_map: Mapping[str, str]) -> tuple[str, int]:
    parts = re.split(r"(\s+)", value)
    count = 0
    for i, part in enumerate(parts):
        if part in class_map:
            parts[i] = class_map[part]
            count += 1
    return "".join(parts), count


def rename_classes_in_html(html: str, class_map: Mapping[str, str]) -> tuple[str, int]:
    """Rename whole class tokens inside HTML ``class="..."`` attributes."""
    total = 0

    def replace(match: re.Match) -> str:
        nonlocal total
        value, count = _map_class_tokens(match.group("value"), class_map)
        total += count
        return f"{match.group('lead')}{match.group('quote')}{value}{match.group('quote')}"

    result = HTML_CLASS_ATTRIBUTE.sub(replace, html)
    return result, total


def rename_classes(nodes: list[Node], class_map: Mapping[str, str]) -> int:
    """
    Rename CSS classes in block ``className`` attributes and rendered HTML.

    Only whole class tokens are renamed, never substrings.

    Returns:
        Number of class tokens renamed
    """
    count = 0
    for i, node in enumerate(nodes):
        if isinstance(node, str):
            html, renamed = rename_classes_in_html(node, class_map)
            if renamed:
                nodes[i] = html
                count += renamed
            continue

        class_name = node.attrs.get("className") if node.attrs_valid else None
        if isinstance(class_name, str):
            value, renamed = _map_class_tokens(class_name, class_map)
            if renamed:
                node.attrs["className"] = value
                node.dirty = True
                count += renamed
        count += rename_classes(node.inner, class_map)
    return count


def replace_void_blocks(nodes: list[Node], name: str, replacement: str) -> int:
    """
    Replace attribute-less void blocks named ``name`` with raw markup.

    Returns:
        Number of blocks replaced
    """
    count = 0
    for i, node in enumerate(nodes):
        if not isinstance(node, Block):
            continue
        if node.void and node.name == name:
            if node.attrs or not node.attrs_valid:
                logger.debug(f"Keeping {name} block with attributes: {node.opener}")
                continue
            nodes[i] = replacement
            count += 1
        else:
            count += replace_void_blocks(node.inner, name, replacement)
    return count


def literal_replace(content: str, replacements: Mapping[str, str]) -> tuple[str, int]:
    """Exact substring substitution for content without a parser."""
    total = 0
    for old, new in replacements.items():
        occurrences = content.count(old)
        if occurrences:
            content = content.replace(old, new)
            total += occurrences
    return content, total


# ----------------------------------------------------------------------
# Content rewriters: content -> (new content, number of changes)
# ----------------------------------------------------------------------

Rewriter = Callable[[str], tuple[str, int]]


def block_rewriter(transform: Callable[[list[Node]], int]) -> Rewriter:
    """Build a rewriter that edits the parsed block tree in place."""

    def rewrite(content: str) -> tuple[str, int]:
        nodes = parse_blocks(content)
        changes = transform(nodes)
        if not changes:
            return content, 0
        return serialize_blocks(nodes), changes

    return rewrite


def class_rename_rewriter(class_map: Mapping[str, str]) -> Rewriter:
    return block_rewriter(lambda nodes: rename_classes(nodes, class_map))


def void_block_rewriter(name: str, replacement: str) -> Rewriter:
    return block_rewriter(lambda nodes: replace_void_blocks(nodes, name, replacement))


def literal_rewriter(replacements: Mapping[str, str]) -> Rewriter:
    return lambda content: literal_replace(content, replacements)
