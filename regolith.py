# -*- coding: utf-8 -*-
from __future__ import annotations

import dataclasses
import sys
import threading
from contextlib import contextmanager
from dataclasses import dataclass

from typing import TYPE_CHECKING

import regolith_ast as ast

if TYPE_CHECKING:
    from typing import (
        Any,
        Callable,
        Dict,
        Iterator,
        List,
        Optional as Opt,
        Sequence as Seq,
        Tuple,
        Union,
    )

    WriterF = Callable[[str], Any]
    AttrsT = Dict[str, Any]
    Child = Union["SvgElement", str]

# Display constants
DEBUG = False  # if true, writes layout information into data-x attributes
PRECISION = 10  # decimals kept before trimming, hides FMA rounding noise
AR = 10  # radius of quantifier and alternation curves
CONNECTOR_WIDTH = 20  # room reserved on each side of an alternation for its curves
ARROW_SIZE = 5  # half-height of the direction arrow on repeat loops
SVG_NAMESPACE = "http://www.w3.org/2000/svg"
ALWAYS_CLOSED = ("svg", "g", "text", "tspan", "style")  # never self-closed
FRAMES_PER_LEVEL = 4  # layout stack frames spent per level of AST nesting


def fmtNum(val: float) -> str:
    s = f"{val:.{PRECISION}f}"
    if "." in s:
        s = s.rstrip("0").rstrip(".")
    if s == "-0":
        s = "0"
    return s


def escapeText(val: str) -> str:
    return (
        val.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )


def escapeAttr(val: Union[str, float]) -> str:
    if isinstance(val, str):
        return escapeText(val)
    return fmtNum(val)


def measureText(text: str, config: Config) -> float:
    return len(text) * config.charWidth


def addDebug(node: RenderedNode, rule: str) -> RenderedNode:
    if not DEBUG:
        return node
    b = node.bbox
    node.element.attrs["data-x"] = " ".join(
        [rule]
        + [
            fmtNum(v)
            for v in (b.x, b.y, b.width, b.height, b.anchorLeft, b.anchorRight, b.anchorY)
        ]
    )
    return node


def nestingDepth(node: Any) -> int:
    """
    Number of AST nodes on the longest root-to-leaf chain under node.
    Walks with an explicit stack, so it works on trees too deep to recurse into.
    """
    deepest = 0
    stack: List[Tuple[Any, int]] = [(node, 1)]
    while stack:
        item, level = stack.pop()
        if isinstance(item, tuple):
            stack.extend((child, level) for child in item)
        elif dataclasses.is_dataclass(item) and not isinstance(item, type):
            deepest = max(deepest, level)
            for field in dataclasses.fields(item):
                stack.append((getattr(item, field.name), level + 1))
    return deepest


_headroomLock = threading.Lock()
_headroomClaims: List[int] = []
_baseRecursionLimit = 0


@contextmanager
def recursionHeadroom(frames: int) -> Iterator[None]:
    """
    Raises the interpreter's recursion limit by frames for the duration of
    the block. Overlapping blocks in other threads share one raised limit,
    which drops back to the original once the last of them exits.
    """
    global _baseRecursionLimit
    with _headroomLock:
        if not _headroomClaims:
            _baseRecursionLimit = sys.getrecursionlimit()
        _headroomClaims.append(frames)
        sys.setrecursionlimit(_baseRecursionLimit + max(_headroomClaims))
    try:
        yield
    finally:
        with _headroomLock:
            _headroomClaims.remove(frames)
            sys.setrecursionlimit(_baseRecursionLimit + max(_headroomClaims + [0]))


@dataclass
class Config:
    # Dimensions
    padding: float = 10
    horizontalGap: float = 10
    verticalGap: float = 5
    cornerRadius: float = 3
    curveRadius: float = AR
    connectorWidth: float = CONNECTOR_WIDTH
    arrowSize: float = ARROW_SIZE

    # Typography
    fontFamily: str = "monospace"
    fontSize: float = 14
    charWidth: float = 8.4  # approximate advance of a 14px monospace glyph

    # Colors
    backgroundColor: str = "transparent"
    textColor: str = "#000"
    lineColor: str = "#000"
    lineWidth: float = 2

    # Per-node colors
    literalFill: str = "#ff6b6b"
    charsetFill: str = "#cbcbba"
    escapeFill: str = "#bada55"
    anchorFill: str = "#6b6659"
    anyCharFill: str = "#dae9e5"
    subexpFill: str = "none"  # outermost groups stay transparent
    subexpStroke: str = "#908c83"
    # Nested groups cycle through these. Light tints keep black text readable
    # and stay distinguishable under the common forms of color blindness.
    subexpColors: Tuple[str, ...] = (
        "#cce5ff",
        "#d4edda",
        "#fff3cd",
        "#f8d7da",
        "#e2d5f0",
    )
    flagsFill: str = "#c8e0f9"
    repeatLabelColor: str = "#666"
    recursiveRefFill: str = "#c9b3ff"
    calloutFill: str = "#ffd699"
    backtrackControlFill: str = "#ffb3a7"
    conditionalFill: str = "#b3e5fc"
    commentFill: str = "#e8e8e8"
    optionsFill: str = "#e8e8e8"
    optionsStroke: str = "#999"

    def copy(self, **overrides: Any) -> Config:
        return dataclasses.replace(self, **overrides)


@dataclass(frozen=True)
class BoundingBox:
    x: float
    y: float
    width: float
    height: float
    # where connectors attach: left/right x, and the y of the connector line
    anchorLeft: float
    anchorRight: float
    anchorY: float

    @classmethod
    def sized(cls, width: float, height: float, x: float = 0, y: float = 0) -> BoundingBox:
        return cls(x, y, width, height, x, x + width, y + height / 2)

    @property
    def x2(self) -> float:
        return self.x + self.width

    @property
    def y2(self) -> float:
        return self.y + self.height

    def translate(self, dx: float, dy: float) -> BoundingBox:
        return BoundingBox(
            self.x + dx,
            self.y + dy,
            self.width,
            self.height,
            self.anchorLeft + dx,
            self.anchorRight + dx,
            self.anchorY + dy,
        )


@dataclass
class RenderedNode:
    element: SvgElement
    bbox: BoundingBox


class SvgElement:
    def __init__(self, name: str, attrs: Opt[AttrsT] = None, text: Opt[str] = None):
        self.name = name
        # Insertion order is output order; None and "" values are left out.
        self.attrs: AttrsT = attrs or {}
        self.children: List[Child] = [text] if text else []

    def addTo(self, parent: SvgElement) -> SvgElement:
        parent.children.append(self)
        return self

    def writeSvg(self, write: WriterF) -> None:
        # Element trees nest as deep as the pattern, so walk them with a stack.
        # Entries are (verbatim, item): closing tags are written as-is.
        stack: List[Tuple[bool, Child]] = [(False, self)]
        while stack:
            verbatim, item = stack.pop()
            if verbatim:
                write(item)
            elif isinstance(item, SvgElement):
                item.writeTag(write, stack)
            else:
                write(escapeText(item))

    def writeTag(self, write: WriterF, stack: List[Tuple[bool, Child]]) -> None:
        write(f"<{self.name}")
        for name, value in self.attrs.items():
            if value is None or value == "":
                continue
            write(f' {name}="{escapeAttr(value)}"')
        if not self.children and self.name not in ALWAYS_CLOSED:
            write("/>")
            return
        write(">")
        stack.append((True, f"</{self.name}>"))
        stack.extend((False, child) for child in reversed(self.children))

    def render(self) -> str:
        out: List[str] = []
        self.writeSvg(out.append)
        return "".join(out)

    def __repr__(self) -> str:
        return f"SvgElement({self.name}, {self.attrs}, {self.children})"


class Group(SvgElement):
    def __init__(
        self,
        cls: Opt[str] = None,
        transform: Opt[str] = None,
        children: Opt[Seq[SvgElement]] = None,
    ):
        SvgElement.__init__(self, "g", {"class": cls, "transform": transform})
        self.children = list(children or [])


class Rect(SvgElement):
    def __init__(
        self,
        x: float,
        y: float,
        width: float,
        height: float,
        rx: float = 0,
        ry: float = 0,
        fill: Opt[str] = None,
        stroke: Opt[str] = None,
        strokeWidth: float = 0,
        cls: Opt[str] = None,
    ):
        SvgElement.__init__(
            self,
            "rect",
            {
                "x": x,
                "y": y,
                "width": width,
                "height": height,
                "rx": rx if rx > 0 else None,
                "ry": ry if ry > 0 else None,
                "fill": fill,
                "stroke": stroke,
                "stroke-width": strokeWidth if strokeWidth > 0 else None,
                "class": cls,
            },
        )


class Text(SvgElement):
    def __init__(
        self,
        x: float,
        y: float,
        content: str = "",
        fontFamily: Opt[str] = None,
        fontSize: float = 0,
        fill: Opt[str] = None,
        anchor: Opt[str] = None,
        cls: Opt[str] = None,
        spans: Opt[Seq[TSpan]] = None,
    ):
        SvgElement.__init__(
            self,
            "text",
            {
                "x": x,
                "y": y,
                "font-family": fontFamily,
                "font-size": fontSize if fontSize > 0 else None,
                "fill": fill,
                "text-anchor": anchor,
                "class": cls,
            },
        )
        self.children = list(spans) if spans else ([content] if content else [])


class TSpan(SvgElement):
    def __init__(self, content: str, cls: Opt[str] = None, fill: Opt[str] = None):
        SvgElement.__init__(self, "tspan", {"class": cls, "fill": fill}, content)


class Path(SvgElement):
    """
    A <path> that builds its own data, starting with a move to (x, y).
    Every command is absolute and every number goes through fmtNum.
    """

    def __init__(
        self,
        x: float,
        y: float,
        stroke: Opt[str] = None,
        strokeWidth: float = 0,
        cls: Opt[str] = None,
        fill: str = "none",
    ):
        SvgElement.__init__(
            self,
            "path",
            {
                "d": f"M {fmtNum(x)} {fmtNum(y)}",
                "fill": fill,
                "stroke": stroke,
                "stroke-width": strokeWidth if strokeWidth > 0 else None,
                "class": cls,
            },
        )

    def _cmd(self, cmd: str, *args: float) -> Path:
        self.attrs["d"] += " " + " ".join([cmd] + [fmtNum(a) for a in args])
        return self

    def moveTo(self, x: float, y: float) -> Path:
        return self._cmd("M", x, y)

    def lineTo(self, x: float, y: float) -> Path:
        return self._cmd("L", x, y)

    def horizontalTo(self, x: float) -> Path:
        return self._cmd("H", x)

    def verticalTo(self, y: float) -> Path:
        return self._cmd("V", y)

    def quadraticTo(self, cx: float, cy: float, x: float, y: float) -> Path:
        return self._cmd("Q", cx, cy, x, y)

    def cubicTo(
        self, c1x: float, c1y: float, c2x: float, c2y: float, x: float, y: float
    ) -> Path:
        return self._cmd("C", c1x, c1y, c2x, c2y, x, y)

    def arcTo(
        self,
        rx: float,
        ry: float,
        rotation: float,
        largeArc: bool,
        sweep: bool,
        x: float,
        y: float,
    ) -> Path:
        return self._cmd("A", rx, ry, rotation, int(largeArc), int(sweep), x, y)

    @property
    def d(self) -> str:
        return self.attrs["d"]


class Line(SvgElement):
    def __init__(
        self,
        x1: float,
        y1: float,
        x2: float,
        y2: float,
        stroke: Opt[str] = None,
        strokeWidth: float = 0,
        cls: Opt[str] = None,
    ):
        SvgElement.__init__(
            self,
            "line",
            {
                "x1": x1,
                "y1": y1,
                "x2": x2,
                "y2": y2,
                "stroke": stroke,
                "stroke-width": strokeWidth if strokeWidth > 0 else None,
                "class": cls,
            },
        )


class Style(SvgElement):
    def __init__(self, css: str):
        SvgElement.__init__(self, "style")
        self.css = css

    def __repr__(self) -> str:
        return f"Style({repr(self.css)})"

    def writeTag(self, write: WriterF, stack: List[Tuple[bool, Child]]) -> None:
        # Write included stylesheet as CDATA. See https://developer.mozilla.org/en-US/docs/Web/SVG/Element/style
        cdata = "/* <![CDATA[ */\n{css}\n/* ]]> */\n".format(css=self.css)
        write("<style>{cdata}</style>".format(cdata=cdata))


class Svg(SvgElement):
    def __init__(
        self,
        width: float,
        height: float,
        children: Opt[Seq[SvgElement]] = None,
        style: Opt[Style] = None,
    ):
        SvgElement.__init__(
            self,
            "svg",
            {
                "xmlns": SVG_NAMESPACE,
                "width": width,
                "height": height,
                "viewBox": f"0 0 {fmtNum(width)} {fmtNum(height)}",
            },
        )
        if style is not None:
            style.addTo(self)
        self.children.extend(children or [])


def translate(dx: float, dy: float) -> Opt[str]:
    if dx == 0 and dy == 0:
        return None
    return f"translate({fmtNum(dx)},{fmtNum(dy)})"


def wrapWithTransform(el: SvgElement, dx: float, dy: float) -> SvgElement:
    if dx == 0 and dy == 0:
        return el
    return Group(transform=translate(dx, dy), children=[el])


def spaceHorizontally(
    items: Seq[RenderedNode], gap: float
) -> Tuple[List[RenderedNode], BoundingBox]:
    """
    Lays items out left to right, gap apart, sliding each one down
    so that every item's connector runs along the same line.
    """
    if not items:
        return [], BoundingBox.sized(0, 0)
    maxAnchorY = max(item.bbox.anchorY for item in items)
    result: List[RenderedNode] = []
    x: float = 0
    top = bottom = None
    for item in items:
        dx = x - item.bbox.x
        dy = maxAnchorY - item.bbox.anchorY
        box = item.bbox.translate(dx, dy)
        result.append(RenderedNode(wrapWithTransform(item.element, dx, dy), box))
        top = box.y if top is None else min(top, box.y)
        bottom = box.y2 if bottom is None else max(bottom, box.y2)
        x = box.x2 + gap
    assert top is not None and bottom is not None
    return result, BoundingBox(
        0,
        top,
        result[-1].bbox.x2,
        bottom - top,
        result[0].bbox.anchorLeft,
        result[-1].bbox.anchorRight,
        maxAnchorY,
    )


def spaceVertically(
    items: Seq[RenderedNode], gap: float
) -> Tuple[List[RenderedNode], BoundingBox]:
    """
    Stacks items top to bottom, gap apart, each centered in the widest one's width.
    The stack's connector sits at its mid-height.
    """
    if not items:
        return [], BoundingBox.sized(0, 0)
    maxWidth = max(item.bbox.width for item in items)
    result: List[RenderedNode] = []
    y: float = 0
    for item in items:
        dx = (maxWidth - item.bbox.width) / 2 - item.bbox.x
        dy = y - item.bbox.y
        box = item.bbox.translate(dx, dy)
        result.append(RenderedNode(wrapWithTransform(item.element, dx, dy), box))
        y = box.y2 + gap
    height = result[-1].bbox.y2
    return result, BoundingBox(0, 0, maxWidth, height, 0, maxWidth, height / 2)


ANCHOR_LABELS = {
    ast.ANCHOR_START: "Start of line",
    ast.ANCHOR_END: "End of line",
    ast.ANCHOR_WORD_BOUNDARY: "Word boundary",
    ast.ANCHOR_NON_WORD_BOUNDARY: "Non-word boundary",
    ast.ANCHOR_WORD_START: "Start of word",
    ast.ANCHOR_WORD_END: "End of word",
    ast.ANCHOR_STRING_START: "Start of input",
    ast.ANCHOR_STRING_END: "End of input",
    ast.ANCHOR_ABSOLUTE_END: "Absolute end",
    ast.ANCHOR_END_OF_PREVIOUS_MATCH: "End of previous match",
    ast.ANCHOR_GRAPHEME_CLUSTER_BOUNDARY: "Grapheme cluster boundary",
}

GROUP_LABELS = {
    ast.GROUP_NON_CAPTURE: "non-capturing group",
    ast.GROUP_POSITIVE_LOOKAHEAD: "positive lookahead",
    ast.GROUP_NEGATIVE_LOOKAHEAD: "negative lookahead",
    ast.GROUP_POSITIVE_LOOKBEHIND: "positive lookbehind",
    ast.GROUP_NEGATIVE_LOOKBEHIND: "negative lookbehind",
    ast.GROUP_NON_ATOMIC_POSITIVE_LOOKAHEAD: "non-atomic lookahead",
    ast.GROUP_NON_ATOMIC_POSITIVE_LOOKBEHIND: "non-atomic lookbehind",
    ast.GROUP_SCRIPT_RUN: "script run",
    ast.GROUP_ATOMIC_SCRIPT_RUN: "atomic script run",
    ast.GROUP_ATOMIC: "atomic group",
}

ASSERTION_CONDITION_LABELS = {
    ast.GROUP_POSITIVE_LOOKAHEAD: "if followed by...",
    ast.GROUP_NEGATIVE_LOOKAHEAD: "if not followed by...",
    ast.GROUP_POSITIVE_LOOKBEHIND: "if preceded by...",
    ast.GROUP_NEGATIVE_LOOKBEHIND: "if not preceded by...",
}

POSIX_LABELS = {
    "alnum": "alphanumeric",
    "alpha": "alphabetic",
    "blank": "blank (space/tab)",
    "cntrl": "control character",
    "digit": "digit",
    "graph": "visible character",
    "lower": "lowercase",
    "print": "printable",
    "punct": "punctuation",
    "space": "whitespace",
    "upper": "uppercase",
    "xdigit": "hex digit",
}

FLAG_LABELS = {
    "d": "hasIndices",
    "g": "global",
    "i": "ignore case",
    "m": "multiline",
    "s": "dotAll",
    "u": "unicode",
    "v": "unicodeSets",
    "y": "sticky",
    "x": "extended",
    "n": "explicit capture",
    "U": "ungreedy",
    "J": "duplicate names",
}

# verb: (label without an argument, label format with one)
BACKTRACK_LABELS = {
    "ACCEPT": ("accept match", "accept match"),
    "FAIL": ("force fail", "force fail"),
    "MARK": ("mark", "mark '{0}'"),
    "COMMIT": ("commit (no retry)", "commit (no retry)"),
    "PRUNE": ("prune", "prune '{0}'"),
    "SKIP": ("skip", "skip to '{0}'"),
    "THEN": ("then (try next alt)", "then '{0}'"),
}

SET_OPERATION_WORDS = {
    ast.CharsetIntersection: "and",
    ast.CharsetSubtraction: "but not",
}


def kindOf(node: Any) -> str:
    return getattr(node, "kind", None) or type(node).__name__


def escapeLabel(esc: ast.Escape) -> str:
    if esc.value:
        return esc.value
    if esc.code:
        return "\\" + esc.code
    return esc.escapeType


def posixLabel(pc: ast.POSIXClass) -> str:
    label = POSIX_LABELS.get(pc.name, pc.name)
    return "NOT " + label if pc.negated else label


def unicodePropertyLabel(upe: ast.UnicodePropertyEscape) -> str:
    if upe.negated:
        return f"NOT Unicode {upe.property}"
    return f"Unicode {upe.property}"


def charsetItemLabel(item: Any) -> str:
    if isinstance(item, ast.CharsetLiteral):
        return f'"{item.text}"'
    if isinstance(item, ast.CharsetRange):
        return f'"{item.first}" - "{item.last}"'
    if isinstance(item, ast.Escape):
        return escapeLabel(item)
    if isinstance(item, ast.POSIXClass):
        return posixLabel(item)
    if isinstance(item, ast.UnicodePropertyEscape):
        return unicodePropertyLabel(item)
    if isinstance(item, ast.CharsetStringDisjunction):
        return " or ".join(f'"{s}"' for s in item.strings)
    if isinstance(item, ast.Charset):
        return charsetSummary(item)
    return f"<{kindOf(item)}>"


def setExpressionLines(expr: Any) -> List[str]:
    word = SET_OPERATION_WORDS.get(type(expr))
    if word is None:
        return [f"<{kindOf(expr)}>"]
    lines: List[str] = []
    for i, operand in enumerate(expr.operands):
        if i > 0:
            lines.append(word)
        lines.append(charsetItemLabel(operand))
    return lines


def charsetSummary(charset: ast.Charset) -> str:
    # One-line form, for charsets nested inside set operations.
    parts = [charsetItemLabel(item) for item in charset.items]
    if charset.setExpression is not None:
        parts.append(" ".join(setExpressionLines(charset.setExpression)))
    return ("[^" if charset.inverted else "[") + ", ".join(parts) + "]"


def repeatLabel(repeat: ast.Repeat) -> str:
    if repeat.min == repeat.max:
        label = "" if repeat.min == 1 else f"{repeat.min} times"
    elif repeat.max == ast.UNBOUNDED:
        # * and + are drawn by shape alone
        label = "" if repeat.min in (0, 1) else f"{repeat.min}+ times"
    else:
        label = f"{repeat.min} to {repeat.max} times"
    if repeat.possessive:
        label = label + " (possessive)" if label else "possessive"
    return label


def flagLabel(flag: str) -> str:
    return FLAG_LABELS.get(flag, f"flag '{flag}'")


def patternOptionsLabel(options: Seq[ast.PatternOption]) -> str:
    parts = [
        f"*{opt.name}={opt.value}" if opt.value else f"*{opt.name}" for opt in options
    ]
    return "Options: " + ", ".join(parts)


def conditionLabel(cond: Any) -> str:
    if isinstance(cond, ast.BackReference):
        if cond.name:
            return f"if '{cond.name}' matched"
        return f"if group {abs(cond.number)} matched"
    if isinstance(cond, ast.RecursiveRef):
        if cond.target == "R":
            return "if in recursion"
        if cond.target in ("DEFINE", ""):
            return "DEFINE"
        return f"if in recursion to '{cond.target}'"
    if isinstance(cond, ast.Literal):
        return "DEFINE" if cond.text == "DEFINE" else f"if {cond.text}"
    if isinstance(cond, ast.Subexp):
        return ASSERTION_CONDITION_LABELS.get(cond.groupType, "if assertion")
    return "if condition"


class Renderer:
    """
    Turns a regolith_ast tree into a railroad diagram.

    Each rule returns a RenderedNode laid out at the origin; parents move
    their children with translate() groups. Group nesting depth is passed
    down explicitly, so one Renderer can be shared between threads.
    """

    def __init__(self, config: Opt[Config] = None):
        self.config = config if config is not None else Config()

    def render(self, regexp: ast.Regexp) -> str:
        out: List[str] = []
        self.writeSvg(regexp, out.append)
        return "".join(out)

    def writeSvg(self, regexp: ast.Regexp, write: WriterF) -> None:
        self.buildSvg(regexp).writeSvg(write)

    def buildSvg(self, regexp: ast.Regexp) -> Svg:
        if not isinstance(regexp, ast.Regexp):
            raise TypeError(f"expected a Regexp at the root, got {type(regexp).__name__}")
        cfg = self.config
        padding = cfg.padding
        with recursionHeadroom(nestingDepth(regexp) * FRAMES_PER_LEVEL):
            rendered = self.renderRegexp(regexp, 0)
        box = rendered.bbox
        width = box.width + 2 * padding
        height = box.height + 2 * padding

        flags: Opt[RenderedNode] = None
        if regexp.flags:
            flags = self.renderFlags(regexp.flags)
            width += flags.bbox.width + padding
            height = max(height, flags.bbox.height + 2 * padding)

        banner: Opt[RenderedNode] = None
        bannerHeight: float = 0
        if regexp.options:
            banner = self.renderPatternOptions(regexp.options)
            bannerHeight = banner.bbox.height + padding / 2
            width = max(width, banner.bbox.width + 2 * padding)
            height += bannerHeight

        top = bannerHeight + padding
        anchorY = top + box.anchorY - box.y
        contentRight = padding + box.width
        children: List[SvgElement] = [
            Line(
                padding / 2,
                anchorY,
                padding + box.anchorLeft - box.x,
                anchorY,
                stroke=cfg.lineColor,
                strokeWidth=cfg.lineWidth,
            ),
            Line(
                padding + box.anchorRight - box.x,
                anchorY,
                contentRight + padding / 2,
                anchorY,
                stroke=cfg.lineColor,
                strokeWidth=cfg.lineWidth,
            ),
            Group(
                transform=translate(padding - box.x, top - box.y),
                children=[rendered.element],
            ),
        ]
        if banner is not None:
            children.append(
                Group(
                    transform=translate(padding, padding / 2),
                    children=[banner.element],
                )
            )
        if flags is not None:
            children.append(
                Group(
                    transform=translate(contentRight + padding, top),
                    children=[flags.element],
                )
            )
        return Svg(width, height, children, Style(self.styles()))

    def styles(self) -> str:
        cfg = self.config
        small = fmtNum(cfg.fontSize - 2)
        return f"""\
	svg {{ background-color: {cfg.backgroundColor}; }}
	text {{ font-family: {cfg.fontFamily}; font-size: {fmtNum(cfg.fontSize)}px; fill: {cfg.textColor}; }}
	.literal > rect {{ fill: {cfg.literalFill}; }}
	.escape > rect {{ fill: {cfg.escapeFill}; }}
	.charset > rect {{ fill: {cfg.charsetFill}; }}
	.anchor > rect {{ fill: {cfg.anchorFill}; }}
	.anchor > text {{ fill: #fff; }}
	.any-character > rect {{ fill: {cfg.anyCharFill}; }}
	.flags > rect {{ fill: {cfg.flagsFill}; }}
	.recursive-ref > rect {{ fill: {cfg.recursiveRefFill}; }}
	.callout > rect {{ fill: {cfg.calloutFill}; }}
	.backtrack-control > rect {{ fill: {cfg.backtrackControlFill}; }}
	.conditional > rect {{ fill: {cfg.conditionalFill}; }}
	.condition-label > rect, .unknown > rect {{ fill: none; stroke: {cfg.lineColor}; }}
	.comment > rect {{ fill: {cfg.commentFill}; stroke: #999; stroke-dasharray: 4,2; }}
	.comment > text {{ fill: #666; font-style: italic; }}
	.quote {{ fill: {cfg.textColor}; }}
	.subexp-label, .charset-label, .flags-label, .conditional-label {{ font-size: {small}px; font-style: italic; }}
	.repeat-label {{ fill: {cfg.repeatLabelColor}; font-size: {small}px; }}
"""

    def groupFill(self, depth: int) -> str:
        # depth 0 is always the neutral fill; deeper groups cycle the palette
        colors = self.config.subexpColors
        if depth == 0 or not colors:
            return self.config.subexpFill
        return colors[(depth - 1) % len(colors)]

    # Primitive boxes

    def renderLabel(
        self,
        text: str,
        cls: str,
        fontSize: Opt[float] = None,
        textCls: Opt[str] = None,
    ) -> RenderedNode:
        cfg = self.config
        padding = cfg.padding / 2
        lines = text.split("\n")
        width = max(measureText(line, cfg) for line in lines) + 2 * padding
        height = cfg.fontSize * len(lines) + 2 * padding
        group = Group(cls=cls)
        Rect(0, 0, width, height, rx=cfg.cornerRadius, ry=cfg.cornerRadius).addTo(group)
        baseline = padding + cfg.fontSize / 2 + cfg.fontSize / 3
        for i, line in enumerate(lines):
            Text(
                width / 2,
                baseline + i * cfg.fontSize,
                line,
                fontFamily=cfg.fontFamily,
                fontSize=fontSize if fontSize is not None else cfg.fontSize,
                anchor="middle",
                cls=textCls,
            ).addTo(group)
        return addDebug(RenderedNode(group, BoundingBox.sized(width, height)), cls)

    def renderQuotedLabel(self, text: str, cls: str) -> RenderedNode:
        cfg = self.config
        padding = cfg.padding / 2
        width = measureText(f'"{text}"', cfg) + 2 * padding
        height = cfg.fontSize + 2 * padding
        group = Group(cls=cls)
        Rect(0, 0, width, height, rx=cfg.cornerRadius, ry=cfg.cornerRadius).addTo(group)
        Text(
            width / 2,
            height / 2 + cfg.fontSize / 3,
            fontFamily=cfg.fontFamily,
            fontSize=cfg.fontSize,
            anchor="middle",
            spans=[TSpan('"', cls="quote"), TSpan(text), TSpan('"', cls="quote")],
        ).addTo(group)
        return addDebug(RenderedNode(group, BoundingBox.sized(width, height)), cls)

    def renderBoxedList(self, heading: str, items: Seq[str], cls: str) -> RenderedNode:
        cfg = self.config
        padding = cfg.padding
        contentWidth = max(
            [measureText(item, cfg) for item in items] + [0]
        ) + 2 * padding
        contentWidth = max(contentWidth, measureText(heading, cfg))
        headingHeight = cfg.fontSize + padding
        itemHeight = cfg.fontSize + padding / 2
        width = contentWidth + 2 * padding
        height = headingHeight + len(items) * itemHeight + padding

        group = Group(cls=cls)
        Rect(0, 0, width, height, rx=cfg.cornerRadius, ry=cfg.cornerRadius).addTo(group)
        Text(
            padding,
            cfg.fontSize,
            heading,
            fontFamily=cfg.fontFamily,
            fontSize=cfg.fontSize - 2,
            cls=f"{cls}-label",
        ).addTo(group)
        y = headingHeight + cfg.fontSize
        for item in items:
            Text(
                width / 2,
                y,
                item,
                fontFamily=cfg.fontFamily,
                fontSize=cfg.fontSize,
                anchor="middle",
            ).addTo(group)
            y += itemHeight
        return addDebug(RenderedNode(group, BoundingBox.sized(width, height)), cls)

    def renderTitledBox(
        self,
        title: str,
        content: RenderedNode,
        cls: str,
        fill: Opt[str] = None,
        stroke: Opt[str] = None,
    ) -> RenderedNode:
        cfg = self.config
        padding = cfg.padding
        titleHeight = cfg.fontSize + padding
        inner = content.bbox
        width = max(inner.width, measureText(title, cfg)) + 2 * padding
        height = titleHeight + inner.height + padding

        group = Group(cls=cls)
        Rect(
            0,
            0,
            width,
            height,
            rx=cfg.cornerRadius,
            ry=cfg.cornerRadius,
            fill=fill,
            stroke=stroke,
            strokeWidth=cfg.lineWidth if stroke else 0,
        ).addTo(group)
        Text(
            padding,
            cfg.fontSize,
            title,
            fontFamily=cfg.fontFamily,
            fontSize=cfg.fontSize - 2,
            cls=f"{cls}-label",
        ).addTo(group)
        contentX = (width - inner.width) / 2
        Group(
            transform=translate(contentX - inner.x, titleHeight - inner.y),
            children=[content.element],
        ).addTo(group)
        box = BoundingBox(
            0, 0, width, height, 0, width, titleHeight + inner.anchorY - inner.y
        )
        return addDebug(RenderedNode(group, box), cls)

    # Structure

    def renderNode(self, node: Any, depth: int) -> RenderedNode:
        rule = NODE_RULES.get(type(node))
        if rule is None:
            return self.renderLabel(f"<{kindOf(node)}>", "unknown")
        return rule(self, node, depth)

    def renderRegexp(self, regexp: ast.Regexp, depth: int) -> RenderedNode:
        if not regexp.matches:
            return RenderedNode(Group(), BoundingBox.sized(0, 0))
        if len(regexp.matches) == 1:
            return self.renderMatch(regexp.matches[0], depth)

        cfg = self.config
        r = cfg.curveRadius
        branches, stack = spaceVertically(
            [self.renderMatch(match, depth) for match in regexp.matches],
            cfg.verticalGap * 2,
        )
        width = stack.width + 2 * cfg.connectorWidth
        height = stack.height
        anchorY = height / 2

        group = Group(cls="regexp")
        for branch in branches:
            y = branch.bbox.anchorY
            left = cfg.connectorWidth + branch.bbox.anchorLeft
            right = cfg.connectorWidth + branch.bbox.anchorRight
            entryPath = Path(0, anchorY, cfg.lineColor, cfg.lineWidth, "connector")
            exitPath = Path(right, y, cfg.lineColor, cfg.lineWidth, "connector")
            if y == anchorY:
                entryPath.horizontalTo(left)
                exitPath.horizontalTo(width)
            else:
                # +1 bends down toward a lower branch, -1 up toward a higher one
                sign = 1 if y > anchorY else -1
                # the two bends must fit in the vertical run between the anchors
                bend = min(r, abs(y - anchorY) / 2)
                (
                    entryPath.quadraticTo(r, anchorY, r, anchorY + sign * bend)
                    .verticalTo(y - sign * bend)
                    .quadraticTo(r, y, left, y)
                )
                (
                    exitPath.quadraticTo(width - r, y, width - r, y - sign * bend)
                    .verticalTo(anchorY + sign * bend)
                    .quadraticTo(width - r, anchorY, width, anchorY)
                )
            entryPath.addTo(group)
            exitPath.addTo(group)
        Group(
            transform=translate(cfg.connectorWidth, 0),
            children=[branch.element for branch in branches],
        ).addTo(group)
        box = BoundingBox(0, 0, width, height, 0, width, anchorY)
        return addDebug(RenderedNode(group, box), "regexp")

    def renderMatch(self, match: ast.Match, depth: int) -> RenderedNode:
        if not match.fragments:
            return RenderedNode(Group(), BoundingBox.sized(0, 0))
        cfg = self.config
        items, box = spaceHorizontally(
            [self.renderMatchFragment(frag, depth) for frag in match.fragments],
            cfg.horizontalGap,
        )
        group = Group(cls="match")
        if len(items) > 1:
            path = Path(
                items[0].bbox.anchorRight,
                box.anchorY,
                cfg.lineColor,
                cfg.lineWidth,
                "connector",
            )
            for i in range(1, len(items)):
                if i > 1:
                    path.moveTo(items[i - 1].bbox.anchorRight, box.anchorY)
                path.lineTo(items[i].bbox.anchorLeft, box.anchorY)
            path.addTo(group)
        group.children.extend(item.element for item in items)
        return addDebug(RenderedNode(group, box), "match")

    def renderMatchFragment(self, frag: ast.MatchFragment, depth: int) -> RenderedNode:
        content = self.renderNode(frag.content, depth)
        if frag.repeat is None:
            return content
        return self.renderRepeat(content, frag.repeat)

    def renderRepeat(self, content: RenderedNode, repeat: ast.Repeat) -> RenderedNode:
        """
        Wraps a quantified item with a skip path over it (when it may match
        zero times) and a loop path under it (when it may match more than once).
        The loop carries an arrow: pointing back toward the start for greedy
        loops, forward for lazy ones.
        """
        cfg = self.config
        r = cfg.curveRadius
        hasSkip = repeat.min == 0
        hasLoop = repeat.max != 1
        inner = content.bbox

        skipHeight = r * 2 if hasSkip else 0
        loopHeight = r * 2 if hasLoop else 0
        width = inner.width + 2 * r
        height = inner.height + skipHeight + loopHeight
        anchorY = skipHeight + inner.anchorY - inner.y

        group = Group(cls="repeat")
        if hasSkip:
            (
                Path(0, anchorY, cfg.lineColor, cfg.lineWidth, "skip-path")
                .quadraticTo(0, anchorY - r, r, anchorY - r)
                .horizontalTo(width - r)
                .quadraticTo(width, anchorY - r, width, anchorY)
                .addTo(group)
            )
        if hasLoop:
            loopY = skipHeight + inner.height + r
            (
                Path(width, anchorY, cfg.lineColor, cfg.lineWidth, "loop-path")
                .quadraticTo(width, loopY, width - r, loopY)
                .horizontalTo(r)
                .quadraticTo(0, loopY, 0, anchorY)
                .addTo(group)
            )
            arrowX = width / 2
            size = cfg.arrowSize
            tail = arrowX + size if repeat.greedy else arrowX - size
            (
                Path(tail, loopY - size, cfg.lineColor, cfg.lineWidth, "repeat-arrow")
                .lineTo(arrowX, loopY)
                .lineTo(tail, loopY + size)
                .addTo(group)
            )
            label = repeatLabel(repeat)
            if label:
                Text(
                    arrowX,
                    loopY + cfg.fontSize,
                    label,
                    fontFamily=cfg.fontFamily,
                    fontSize=cfg.fontSize - 2,
                    anchor="middle",
                    cls="repeat-label",
                ).addTo(group)
                height += cfg.fontSize

        Group(
            transform=translate(r - inner.x, skipHeight - inner.y),
            children=[content.element],
        ).addTo(group)
        if hasSkip or hasLoop:
            Line(0, anchorY, r, anchorY, cfg.lineColor, cfg.lineWidth).addTo(group)
            Line(
                r + inner.width, anchorY, width, anchorY, cfg.lineColor, cfg.lineWidth
            ).addTo(group)
        box = BoundingBox(0, 0, width, height, 0, width, anchorY)
        return addDebug(RenderedNode(group, box), "repeat")

    # Leaves

    def renderLiteral(self, node: ast.Literal, depth: int) -> RenderedNode:
        return self.renderQuotedLabel(node.text, "literal")

    def renderQuotedLiteral(self, node: ast.QuotedLiteral, depth: int) -> RenderedNode:
        return self.renderQuotedLabel(node.text, "literal")

    def renderEscape(self, node: ast.Escape, depth: int) -> RenderedNode:
        return self.renderLabel(escapeLabel(node), "escape")

    def renderAnchor(self, node: ast.Anchor, depth: int) -> RenderedNode:
        return self.renderLabel(ANCHOR_LABELS.get(node.anchorType, node.anchorType), "anchor")

    def renderAnyCharacter(self, node: ast.AnyCharacter, depth: int) -> RenderedNode:
        return self.renderLabel("any character", "any-character")

    def renderBackReference(self, node: ast.BackReference, depth: int) -> RenderedNode:
        if node.name:
            return self.renderLabel(f"back reference '{node.name}'", "escape")
        return self.renderLabel(f"back reference #{node.number}", "escape")

    def renderUnicodePropertyEscape(
        self, node: ast.UnicodePropertyEscape, depth: int
    ) -> RenderedNode:
        return self.renderLabel(unicodePropertyLabel(node), "escape")

    def renderComment(self, node: ast.Comment, depth: int) -> RenderedNode:
        return self.renderLabel(
            "# " + node.text,
            "comment",
            fontSize=self.config.fontSize - 2,
            textCls="comment-text",
        )

    def renderRecursiveRef(self, node: ast.RecursiveRef, depth: int) -> RenderedNode:
        target = node.target
        if target in ("R", "0"):
            label = "recurse whole pattern"
        elif not target:
            label = "recurse"
        elif target[0] in "+-" or target[0].isdigit():
            label = f"recurse to group {target}"
        else:
            label = f"recurse to '{target}'"
        return self.renderLabel(label, "recursive-ref")

    def renderBacktrackControl(
        self, node: ast.BacktrackControl, depth: int
    ) -> RenderedNode:
        if node.verb in BACKTRACK_LABELS:
            bare, withArg = BACKTRACK_LABELS[node.verb]
            label = withArg.format(node.arg) if node.arg else bare
        elif node.arg:
            label = f"*{node.verb}:{node.arg}"
        else:
            label = f"*{node.verb}"
        return self.renderLabel(label, "backtrack-control")

    def renderCallout(self, node: ast.Callout, depth: int) -> RenderedNode:
        if node.number >= 0:
            return self.renderLabel(f"callout ({node.number})", "callout")
        return self.renderLabel(f'callout "{node.text}"', "callout")

    def renderCharset(self, node: ast.Charset, depth: int) -> RenderedNode:
        lines = [charsetItemLabel(item) for item in node.items]
        if node.setExpression is not None:
            lines += setExpressionLines(node.setExpression)
        heading = "None of:" if node.inverted else "One of:"
        return self.renderBoxedList(heading, lines, "charset")

    def renderFlags(self, flags: str) -> RenderedNode:
        return self.renderBoxedList("Flags:", [flagLabel(f) for f in flags], "flags")

    def renderPatternOptions(self, options: Seq[ast.PatternOption]) -> RenderedNode:
        cfg = self.config
        padding = cfg.padding / 2
        label = patternOptionsLabel(options)
        width = measureText(label, cfg) + 2 * padding
        height = cfg.fontSize + 2 * padding
        group = Group(cls="pattern-options")
        Rect(
            0,
            0,
            width,
            height,
            rx=cfg.cornerRadius,
            ry=cfg.cornerRadius,
            fill=cfg.optionsFill,
            stroke=cfg.optionsStroke,
            strokeWidth=cfg.lineWidth,
        ).addTo(group)
        Text(
            width / 2,
            height / 2 + cfg.fontSize / 3,
            label,
            fontFamily=cfg.fontFamily,
            fontSize=cfg.fontSize - 2,
            anchor="middle",
            cls="pattern-options-label",
        ).addTo(group)
        return addDebug(RenderedNode(group, BoundingBox.sized(width, height)), "options")

    # Containers

    def renderGroup(self, title: str, regexp: ast.Regexp, depth: int) -> RenderedNode:
        content = self.renderRegexp(regexp, depth + 1)
        return self.renderTitledBox(
            title, content, "subexp", self.groupFill(depth), self.config.subexpStroke
        )

    def renderSubexp(self, node: ast.Subexp, depth: int) -> RenderedNode:
        if node.groupType == ast.GROUP_CAPTURE:
            title = f"group #{node.number}"
        elif node.groupType == ast.GROUP_NAMED_CAPTURE:
            title = f"group #{node.number} '{node.name}'"
        else:
            title = GROUP_LABELS.get(node.groupType, node.groupType)
        return self.renderGroup(title, node.regexp, depth)

    def renderBranchReset(self, node: ast.BranchReset, depth: int) -> RenderedNode:
        return self.renderGroup("branch reset", node.regexp, depth)

    def renderBalancedGroup(self, node: ast.BalancedGroup, depth: int) -> RenderedNode:
        if node.name:
            title = f"balanced group '{node.name}' (pop '{node.otherName}')"
        else:
            title = f"balance (pop '{node.otherName}')"
        return self.renderGroup(title, node.regexp, depth)

    def renderInlineModifier(self, node: ast.InlineModifier, depth: int) -> RenderedNode:
        parts = []
        if node.enable:
            parts.append("+" + node.enable)
        if node.disable:
            parts.append("-" + node.disable)
        label = "flags: " + " ".join(parts) if parts else "flags"
        if node.regexp is None:
            return self.renderLabel(label, "flags")
        return self.renderTitledBox(label, self.renderRegexp(node.regexp, depth), "flags")

    def renderConditional(self, node: ast.Conditional, depth: int) -> RenderedNode:
        cfg = self.config
        branches = [("then", node.trueMatch, "condition-yes")]
        if node.falseMatch is not None:
            branches.append(("else", node.falseMatch, "condition-no"))

        rows: List[RenderedNode] = []
        for word, regexp, cls in branches:
            items, box = spaceHorizontally(
                [
                    self.renderLabel(word, "condition-label"),
                    self.renderRegexp(regexp, depth),
                ],
                cfg.horizontalGap,
            )
            rows.append(RenderedNode(Group(cls=cls, children=[i.element for i in items]), box))

        width = max(row.bbox.width for row in rows)
        group = Group()
        y: float = 0
        for i, row in enumerate(rows):
            if i > 0:
                y += cfg.verticalGap
            row.element.attrs["transform"] = translate((width - row.bbox.width) / 2, y - row.bbox.y)
            row.element.addTo(group)
            y += row.bbox.height
        content = RenderedNode(group, BoundingBox.sized(width, y))
        return self.renderTitledBox(conditionLabel(node.condition), content, "conditional")


NODE_RULES: Dict[type, Callable[[Renderer, Any, int], RenderedNode]] = {
    ast.Regexp: Renderer.renderRegexp,
    ast.Match: Renderer.renderMatch,
    ast.MatchFragment: Renderer.renderMatchFragment,
    ast.Literal: Renderer.renderLiteral,
    ast.QuotedLiteral: Renderer.renderQuotedLiteral,
    ast.Escape: Renderer.renderEscape,
    ast.Anchor: Renderer.renderAnchor,
    ast.AnyCharacter: Renderer.renderAnyCharacter,
    ast.Charset: Renderer.renderCharset,
    ast.Subexp: Renderer.renderSubexp,
    ast.BackReference: Renderer.renderBackReference,
    ast.UnicodePropertyEscape: Renderer.renderUnicodePropertyEscape,
    ast.Comment: Renderer.renderComment,
    ast.InlineModifier: Renderer.renderInlineModifier,
    ast.BalancedGroup: Renderer.renderBalancedGroup,
    ast.Conditional: Renderer.renderConditional,
    ast.RecursiveRef: Renderer.renderRecursiveRef,
    ast.BranchReset: Renderer.renderBranchReset,
    ast.BacktrackControl: Renderer.renderBacktrackControl,
    ast.Callout: Renderer.renderCallout,
}


def render(regexp: ast.Regexp, config: Opt[Config] = None) -> str:
    return Renderer(config).render(regexp)
