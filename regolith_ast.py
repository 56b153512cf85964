# -*- coding: utf-8 -*-
"""
Syntax tree shared by every regex flavor parser.

The flavor parsers build these nodes; regolith only reads them. Nodes are
frozen, and each nested Regexp belongs to exactly one parent.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any, Optional as Opt, Tuple, Union

    Content = Any
    CharsetItem = Union[
        "CharsetLiteral",
        "CharsetRange",
        "Escape",
        "POSIXClass",
        "CharsetStringDisjunction",
        "Charset",
    ]
    SetOperand = Union["CharsetItem", "Charset"]


UNBOUNDED = -1

# Anchor types
ANCHOR_START = "start"  # ^
ANCHOR_END = "end"  # $
ANCHOR_WORD_BOUNDARY = "word_boundary"  # \b
ANCHOR_NON_WORD_BOUNDARY = "non_word_boundary"  # \B
ANCHOR_STRING_START = "string_start"  # \A
ANCHOR_STRING_END = "string_end"  # \Z
ANCHOR_ABSOLUTE_END = "absolute_end"  # \z
ANCHOR_WORD_START = "word_start"  # \<
ANCHOR_WORD_END = "word_end"  # \>
ANCHOR_END_OF_PREVIOUS_MATCH = "end_of_previous_match"  # \G
ANCHOR_GRAPHEME_CLUSTER_BOUNDARY = "grapheme_cluster_boundary"  # \b{g}

# Group types
GROUP_CAPTURE = "capture"
GROUP_NAMED_CAPTURE = "named_capture"
GROUP_NON_CAPTURE = "non_capture"
GROUP_POSITIVE_LOOKAHEAD = "positive_lookahead"
GROUP_NEGATIVE_LOOKAHEAD = "negative_lookahead"
GROUP_POSITIVE_LOOKBEHIND = "positive_lookbehind"
GROUP_NEGATIVE_LOOKBEHIND = "negative_lookbehind"
GROUP_NON_ATOMIC_POSITIVE_LOOKAHEAD = "non_atomic_positive_lookahead"
GROUP_NON_ATOMIC_POSITIVE_LOOKBEHIND = "non_atomic_positive_lookbehind"
GROUP_ATOMIC = "atomic"
GROUP_SCRIPT_RUN = "script_run"
GROUP_ATOMIC_SCRIPT_RUN = "atomic_script_run"

# POSIX class names
POSIX_CLASSES = (
    "alnum",
    "alpha",
    "blank",
    "cntrl",
    "digit",
    "graph",
    "lower",
    "print",
    "punct",
    "space",
    "upper",
    "xdigit",
)


@dataclass(frozen=True)
class Regexp:
    matches: Tuple[Match, ...] = ()
    flags: str = ""
    options: Tuple[PatternOption, ...] = ()
    kind = "regexp"

    def __post_init__(self) -> None:
        object.__setattr__(self, "matches", tuple(self.matches))
        object.__setattr__(self, "options", tuple(self.options))


@dataclass(frozen=True)
class Match:
    fragments: Tuple[MatchFragment, ...] = ()
    kind = "match"

    def __post_init__(self) -> None:
        object.__setattr__(self, "fragments", tuple(self.fragments))


@dataclass(frozen=True)
class Repeat:
    min: int = 0
    max: int = UNBOUNDED  # UNBOUNDED for no upper limit
    greedy: bool = True
    possessive: bool = False
    kind = "repeat"


@dataclass(frozen=True)
class MatchFragment:
    content: Content
    repeat: Opt[Repeat] = None
    kind = "match_fragment"


@dataclass(frozen=True)
class Literal:
    text: str
    kind = "literal"


@dataclass(frozen=True)
class AnyCharacter:
    kind = "any_character"


@dataclass(frozen=True)
class Anchor:
    anchorType: str
    kind = "anchor"


@dataclass(frozen=True)
class Escape:
    escapeType: str = "literal"
    code: str = ""
    value: str = ""  # display description, e.g. "digit"
    kind = "escape"


@dataclass(frozen=True)
class CharsetLiteral:
    text: str
    kind = "charset_literal"


@dataclass(frozen=True)
class CharsetRange:
    first: str
    last: str
    kind = "charset_range"


@dataclass(frozen=True)
class POSIXClass:
    name: str
    negated: bool = False
    kind = "posix_class"


@dataclass(frozen=True)
class CharsetStringDisjunction:
    # \q{abc|def} in JavaScript v-mode
    strings: Tuple[str, ...] = ()
    kind = "charset_string_disjunction"

    def __post_init__(self) -> None:
        object.__setattr__(self, "strings", tuple(self.strings))


@dataclass(frozen=True)
class CharsetIntersection:
    operands: Tuple[SetOperand, ...] = ()
    kind = "charset_intersection"

    def __post_init__(self) -> None:
        object.__setattr__(self, "operands", tuple(self.operands))


@dataclass(frozen=True)
class CharsetSubtraction:
    operands: Tuple[SetOperand, ...] = ()
    kind = "charset_subtraction"

    def __post_init__(self) -> None:
        object.__setattr__(self, "operands", tuple(self.operands))


@dataclass(frozen=True)
class Charset:
    items: Tuple[CharsetItem, ...] = ()
    inverted: bool = False
    # Set operations ([\w&&\d], [\w--[0-9]]) replace items when present.
    setExpression: Opt[Union[CharsetIntersection, CharsetSubtraction]] = None
    kind = "charset"

    def __post_init__(self) -> None:
        object.__setattr__(self, "items", tuple(self.items))


@dataclass(frozen=True)
class Subexp:
    groupType: str
    regexp: Regexp
    number: int = 0  # capture number, 0 when not capturing
    name: str = ""
    kind = "subexp"


@dataclass(frozen=True)
class BackReference:
    number: int = 0
    name: str = ""
    kind = "back_reference"


@dataclass(frozen=True)
class UnicodePropertyEscape:
    property: str
    negated: bool = False
    kind = "unicode_property_escape"


@dataclass(frozen=True)
class Conditional:
    # condition is a BackReference, RecursiveRef, Literal or lookaround Subexp
    condition: Content
    trueMatch: Regexp
    falseMatch: Opt[Regexp] = None
    kind = "conditional"


@dataclass(frozen=True)
class RecursiveRef:
    target: str  # "R" for the whole pattern, a group number or a name
    kind = "recursive_ref"


@dataclass(frozen=True)
class BranchReset:
    regexp: Regexp
    kind = "branch_reset"


@dataclass(frozen=True)
class BacktrackControl:
    verb: str
    arg: str = ""
    kind = "backtrack_control"


@dataclass(frozen=True)
class Callout:
    number: int = -1  # -1 for string callouts
    text: str = ""
    kind = "callout"


@dataclass(frozen=True)
class Comment:
    text: str
    kind = "comment"


@dataclass(frozen=True)
class QuotedLiteral:
    text: str
    kind = "quoted_literal"


@dataclass(frozen=True)
class InlineModifier:
    enable: str = ""
    disable: str = ""
    regexp: Opt[Regexp] = None  # set for the scoped form (?i:...)
    kind = "inline_modifier"


@dataclass(frozen=True)
class BalancedGroup:
    otherName: str
    regexp: Regexp
    name: str = ""  # empty for (?<-other>...)
    kind = "balanced_group"


@dataclass(frozen=True)
class PatternOption:
    name: str
    value: str = ""  # only LIMIT_* options carry a value
    kind = "pattern_option"


class ParseError(ValueError):
    """
    Raised by a flavor parser when a pattern can't be parsed.
    line and column are 1-based, and None when the parser couldn't tell.
    """

    def __init__(self, message: str, line: Opt[int] = None, column: Opt[int] = None):
        ValueError.__init__(self, message)
        self.message = message
        self.line = line
        self.column = column

    def __str__(self) -> str:
        if self.line is not None and self.column is not None:
            return f"{self.line}:{self.column}: {self.message}"
        return self.message

    def __repr__(self) -> str:
        return f"ParseError({repr(self.message)}, line={repr(self.line)}, column={repr(self.column)})"

    def formatWithPattern(self, pattern: str) -> str:
        lines = ["Error parsing pattern:", "", f"  {pattern}"]
        if self.column is not None and 0 < self.column <= len(pattern):
            lines.append("  " + " " * (self.column - 1) + "^")
        lines += ["", self.message]
        return "\n".join(lines) + "\n"
