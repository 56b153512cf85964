from __future__ import annotations

import re
import sys
import unittest
import xml.etree.ElementTree as ET
from pathlib import Path

TESTS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = TESTS_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT))

import regolith
import regolith_ast as ast
from regolith import Config, Renderer

SVG_NS = "{http://www.w3.org/2000/svg}"
GROUP_FILL_RE = re.compile(r'<rect [^>]*fill="([^"]*)" stroke="#908c83"')


def frag(content, repeat=None) -> ast.MatchFragment:
    return ast.MatchFragment(content, repeat)


def seq(*contents) -> ast.Regexp:
    return ast.Regexp([ast.Match([c if isinstance(c, ast.MatchFragment) else frag(c) for c in contents])])


def alt(*branches) -> ast.Regexp:
    return ast.Regexp([ast.Match([frag(b)]) for b in branches])


def lit(text: str) -> ast.Literal:
    return ast.Literal(text)


def render(regexp: ast.Regexp, **overrides) -> str:
    return Renderer(Config(**overrides)).render(regexp)


class Mystery:
    kind = "mystery"


class DocumentTests(unittest.TestCase):
    def test_single_literal_dimensions(self) -> None:
        svg = render(seq(lit("abc")))
        self.assertTrue(svg.startswith('<svg xmlns="http://www.w3.org/2000/svg" width="72" height="44" viewBox="0 0 72 44">'))
        self.assertTrue(svg.endswith("</svg>"))

    def test_empty_pattern(self) -> None:
        svg = render(ast.Regexp())
        self.assertIn('width="20" height="20" viewBox="0 0 20 20"', svg)
        self.assertIsNotNone(ET.fromstring(svg))

    def test_empty_pattern_follows_padding(self) -> None:
        self.assertIn('viewBox="0 0 40 40"', render(ast.Regexp(), padding=20))

    def test_start_and_end_lines(self) -> None:
        svg = render(seq(lit("abc")))
        self.assertIn('<line x1="5" y1="22" x2="10" y2="22" stroke="#000" stroke-width="2"/>', svg)
        self.assertIn('<line x1="62" y1="22" x2="67" y2="22" stroke="#000" stroke-width="2"/>', svg)

    def test_style_block_is_first_child(self) -> None:
        svg = render(seq(lit("a")))
        self.assertIn('viewBox="0 0 55.2 44"><style>/* <![CDATA[ */', svg)

    def test_well_formed(self) -> None:
        regexp = seq(
            ast.Subexp(ast.GROUP_CAPTURE, alt(lit("<&>"), lit("'\"")), 1),
            frag(ast.Charset([ast.CharsetRange("a", "z")]), ast.Repeat(2, 5)),
            Mystery(),
        )
        svg = render(regexp)
        root = ET.fromstring(svg)
        self.assertEqual(root.tag, SVG_NS + "svg")
        self.assertEqual(svg.count("<g ") + svg.count("<g>"), svg.count("</g>"))

    def test_deterministic(self) -> None:
        regexp = seq(
            ast.Anchor(ast.ANCHOR_START),
            ast.Subexp(ast.GROUP_NAMED_CAPTURE, alt(lit("x"), lit("yy")), 1, "n"),
            frag(ast.AnyCharacter(), ast.Repeat(0, ast.UNBOUNDED, greedy=False)),
        )
        renderer = Renderer()
        self.assertEqual(renderer.render(regexp), renderer.render(regexp))
        self.assertEqual(renderer.render(regexp), regolith.render(regexp))

    def test_streaming_matches_render(self) -> None:
        regexp = seq(lit("a"), lit("b"))
        chunks: list = []
        Renderer().writeSvg(regexp, chunks.append)
        self.assertEqual("".join(chunks), Renderer().render(regexp))

    def test_root_must_be_regexp(self) -> None:
        with self.assertRaises(TypeError):
            Renderer().render(ast.Match())


class AlternationTests(unittest.TestCase):
    def test_three_branches(self) -> None:
        svg = render(alt(lit("a"), lit("b"), lit("c")))
        self.assertIn('d="M 0 46 Q 10 46 10 36 V 22 Q 10 12 20 12"', svg)
        self.assertIn('d="M 0 46 H 20"', svg)
        self.assertIn('d="M 0 46 Q 10 46 10 56 V 70 Q 10 80 20 80"', svg)
        self.assertEqual(svg.count("<path "), 6)
        self.assertEqual(svg.count('class="literal"'), 3)
        self.assertIn('<g transform="translate(20,0)">', svg)

    def test_stack_height(self) -> None:
        node = Renderer().renderRegexp(alt(lit("a"), lit("b"), lit("c")), 0)
        self.assertEqual(node.bbox.height, 92)
        self.assertEqual(node.bbox.anchorY, 46)

    def test_close_branch_bends_stay_between_anchors(self) -> None:
        # aggregate anchor 17, first branch anchor 12: the bends shrink to 2.5
        regexp = ast.Regexp([ast.Match([frag(lit("a"))]), ast.Match()])
        svg = render(regexp)
        self.assertIn('d="M 0 17 Q 10 17 10 14.5 V 14.5 Q 10 12 20 12"', svg)
        self.assertIn('d="M 55.2 12 Q 65.2 12 65.2 14.5 V 14.5 Q 65.2 17 75.2 17"', svg)
        self.assertIn('d="M 0 17 Q 10 17 10 25.5 V 25.5 Q 10 34 37.6 34"', svg)


class SequenceTests(unittest.TestCase):
    def test_connector_between_items(self) -> None:
        node = Renderer().renderMatch(seq(lit("a"), lit("b")).matches[0], 0)
        paths = [c for c in node.element.children if isinstance(c, regolith.Path)]
        self.assertEqual(len(paths), 1)
        self.assertEqual(paths[0].attrs["class"], "connector")
        self.assertEqual(paths[0].d, "M 35.2 12 L 45.2 12")

    def test_single_item_has_no_connector(self) -> None:
        self.assertNotIn("connector", render(seq(lit("a"))))


class QuantifierTests(unittest.TestCase):
    def shapes(self, repeat: ast.Repeat) -> str:
        return render(seq(frag(lit("a"), repeat)))

    def test_star(self) -> None:
        svg = self.shapes(ast.Repeat(0, ast.UNBOUNDED))
        self.assertIn('class="skip-path"', svg)
        self.assertIn('class="loop-path"', svg)
        self.assertNotIn('class="repeat-label"', svg)

    def test_plus(self) -> None:
        svg = self.shapes(ast.Repeat(1, ast.UNBOUNDED))
        self.assertNotIn('class="skip-path"', svg)
        self.assertIn('class="loop-path"', svg)

    def test_optional(self) -> None:
        svg = self.shapes(ast.Repeat(0, 1))
        self.assertIn('class="skip-path"', svg)
        self.assertNotIn('class="loop-path"', svg)
        self.assertNotIn('class="repeat-arrow"', svg)

    def test_exact_count(self) -> None:
        svg = self.shapes(ast.Repeat(3, 3))
        self.assertNotIn('class="skip-path"', svg)
        self.assertIn('class="loop-path"', svg)
        self.assertIn(">3 times</text>", svg)

    def test_exactly_once_draws_nothing_extra(self) -> None:
        node = Renderer().renderRepeat(Renderer().renderLiteral(lit("a"), 0), ast.Repeat(1, 1))
        self.assertFalse(any(isinstance(c, (regolith.Path, regolith.Line)) for c in node.element.children))

    def test_greedy_arrow_points_back(self) -> None:
        svg = self.shapes(ast.Repeat(0, ast.UNBOUNDED))
        self.assertIn('d="M 32.6 49 L 27.6 54 L 32.6 59"', svg)

    def test_lazy_arrow_points_forward(self) -> None:
        svg = self.shapes(ast.Repeat(0, ast.UNBOUNDED, greedy=False))
        self.assertIn('d="M 22.6 49 L 27.6 54 L 22.6 59"', svg)

    def test_box_size(self) -> None:
        node = Renderer().renderRepeat(Renderer().renderLiteral(lit("a"), 0), ast.Repeat(2, 4))
        # 24 content + 20 loop + 14 label; no skip
        self.assertEqual(node.bbox.height, 58)
        self.assertEqual(node.bbox.anchorY, 12)

    def test_labels(self) -> None:
        cases = [
            (ast.Repeat(1, 1), ""),
            (ast.Repeat(3, 3), "3 times"),
            (ast.Repeat(0, ast.UNBOUNDED), ""),
            (ast.Repeat(1, ast.UNBOUNDED), ""),
            (ast.Repeat(2, ast.UNBOUNDED), "2+ times"),
            (ast.Repeat(2, 5), "2 to 5 times"),
            (ast.Repeat(1, ast.UNBOUNDED, possessive=True), "possessive"),
            (ast.Repeat(2, 5, possessive=True), "2 to 5 times (possessive)"),
        ]
        for repeat, label in cases:
            with self.subTest(repeat=repeat):
                self.assertEqual(regolith.repeatLabel(repeat), label)


class LabelTests(unittest.TestCase):
    def assertRenders(self, content, *fragments: str) -> None:
        svg = render(seq(content))
        for fragment in fragments:
            self.assertIn(fragment, svg)

    def test_literal_is_quoted(self) -> None:
        self.assertRenders(
            lit("abc"),
            '<g class="literal">',
            '<tspan class="quote">&quot;</tspan><tspan>abc</tspan><tspan class="quote">&quot;</tspan>',
        )

    def test_quoted_literal(self) -> None:
        self.assertRenders(ast.QuotedLiteral("a.b"), '<tspan>a.b</tspan>')

    def test_escapes(self) -> None:
        self.assertRenders(ast.Escape("digit", "d", "digit"), '<g class="escape">', ">digit</text>")
        self.assertRenders(ast.Escape("control", "t"), ">\\t</text>")
        self.assertRenders(ast.Escape("hex"), ">hex</text>")

    def test_anchor(self) -> None:
        self.assertRenders(ast.Anchor(ast.ANCHOR_START), '<g class="anchor">', ">Start of line</text>")
        self.assertRenders(ast.Anchor(ast.ANCHOR_WORD_BOUNDARY), ">Word boundary</text>")

    def test_any_character(self) -> None:
        self.assertRenders(ast.AnyCharacter(), ">any character</text>")

    def test_back_reference(self) -> None:
        self.assertRenders(ast.BackReference(1), ">back reference #1</text>")
        self.assertRenders(ast.BackReference(name="x"), ">back reference &apos;x&apos;</text>")

    def test_unicode_property(self) -> None:
        self.assertRenders(ast.UnicodePropertyEscape("Letter"), ">Unicode Letter</text>")
        self.assertRenders(ast.UnicodePropertyEscape("Letter", True), ">NOT Unicode Letter</text>")

    def test_comment(self) -> None:
        self.assertRenders(ast.Comment("year"), '<g class="comment">', 'class="comment-text"># year</text>')

    def test_recursive_ref(self) -> None:
        self.assertRenders(ast.RecursiveRef("R"), ">recurse whole pattern</text>")
        self.assertRenders(ast.RecursiveRef("1"), ">recurse to group 1</text>")
        self.assertRenders(ast.RecursiveRef("-1"), ">recurse to group -1</text>")
        self.assertRenders(ast.RecursiveRef("name"), ">recurse to &apos;name&apos;</text>")

    def test_backtrack_control(self) -> None:
        self.assertRenders(ast.BacktrackControl("ACCEPT"), ">accept match</text>")
        self.assertRenders(ast.BacktrackControl("MARK", "x"), ">mark &apos;x&apos;</text>")
        self.assertRenders(ast.BacktrackControl("FOO"), ">*FOO</text>")
        self.assertRenders(ast.BacktrackControl("FOO", "bar"), ">*FOO:bar</text>")

    def test_callout(self) -> None:
        self.assertRenders(ast.Callout(1), ">callout (1)</text>")
        self.assertRenders(ast.Callout(text="abc"), ">callout &quot;abc&quot;</text>")

    def test_charset(self) -> None:
        charset = ast.Charset([ast.CharsetLiteral("a"), ast.CharsetRange("a", "z")])
        self.assertRenders(
            charset,
            '<g class="charset">',
            ">One of:</text>",
            ">&quot;a&quot;</text>",
            ">&quot;a&quot; - &quot;z&quot;</text>",
        )
        self.assertRenders(ast.Charset([ast.CharsetLiteral("a")], inverted=True), ">None of:</text>")

    def test_charset_items(self) -> None:
        charset = ast.Charset(
            [
                ast.POSIXClass("digit"),
                ast.POSIXClass("alpha", negated=True),
                ast.CharsetStringDisjunction(["abc", "def"]),
            ]
        )
        self.assertRenders(
            charset,
            ">digit</text>",
            ">NOT alphabetic</text>",
            ">&quot;abc&quot; or &quot;def&quot;</text>",
        )

    def test_set_operations(self) -> None:
        word, digit = ast.Escape("word", "w", "word"), ast.Escape("digit", "d", "digit")
        self.assertRenders(
            ast.Charset(setExpression=ast.CharsetIntersection([word, digit])),
            ">word</text>",
            ">and</text>",
            ">digit</text>",
        )
        nested = ast.Charset([ast.CharsetRange("0", "9")])
        self.assertRenders(
            ast.Charset(setExpression=ast.CharsetSubtraction([word, nested])),
            ">but not</text>",
            ">[&quot;0&quot; - &quot;9&quot;]</text>",
        )

    def test_unknown_kind_falls_back(self) -> None:
        self.assertRenders(Mystery(), '<g class="unknown">', ">&lt;mystery&gt;</text>")
        self.assertRenders(ast.PatternOption("UTF"), ">&lt;pattern_option&gt;</text>")

    def test_multi_line_label(self) -> None:
        node = Renderer().renderLabel("one\ntwo", "escape")
        texts = [c for c in node.element.children if isinstance(c, regolith.Text)]
        self.assertEqual(len(texts), 2)
        self.assertEqual(node.bbox.height, 38)
        self.assertAlmostEqual(node.bbox.width, 35.2)


class GroupTests(unittest.TestCase):
    def test_capture_group(self) -> None:
        svg = render(seq(ast.Subexp(ast.GROUP_CAPTURE, seq(lit("abc")), 1)))
        self.assertIn('<g class="subexp">', svg)
        self.assertIn(">group #1</text>", svg)
        self.assertIn("<tspan>abc</tspan>", svg)

    def test_group_titles(self) -> None:
        inner = seq(lit("a"))
        cases = [
            (ast.Subexp(ast.GROUP_NAMED_CAPTURE, inner, 2, "year"), "group #2 &apos;year&apos;"),
            (ast.Subexp(ast.GROUP_NON_CAPTURE, inner), "non-capturing group"),
            (ast.Subexp(ast.GROUP_POSITIVE_LOOKAHEAD, inner), "positive lookahead"),
            (ast.Subexp(ast.GROUP_NEGATIVE_LOOKBEHIND, inner), "negative lookbehind"),
            (ast.Subexp(ast.GROUP_ATOMIC, inner), "atomic group"),
            (ast.BranchReset(inner), "branch reset"),
            (ast.BalancedGroup("open", inner, "close"), "balanced group &apos;close&apos; (pop &apos;open&apos;)"),
            (ast.BalancedGroup("open", inner), "balance (pop &apos;open&apos;)"),
        ]
        for node, title in cases:
            with self.subTest(title=title):
                self.assertIn(f'class="subexp-label">{title}</text>', render(seq(node)))

    def test_nested_fills(self) -> None:
        inner = seq(
            ast.Subexp(ast.GROUP_CAPTURE, seq(lit("a")), 2),
            ast.Subexp(ast.GROUP_CAPTURE, seq(lit("b")), 3),
        )
        svg = render(seq(ast.Subexp(ast.GROUP_CAPTURE, inner, 1)))
        self.assertEqual(GROUP_FILL_RE.findall(svg), ["none", "#cce5ff", "#cce5ff"])

    def test_fills_follow_depth(self) -> None:
        regexp = seq(lit("x"))
        for number in range(3, 0, -1):
            regexp = seq(ast.Subexp(ast.GROUP_CAPTURE, regexp, number))
        self.assertEqual(GROUP_FILL_RE.findall(render(regexp)), ["none", "#cce5ff", "#d4edda"])

    def test_branch_reset_and_balanced_group_nest(self) -> None:
        innermost = seq(ast.Subexp(ast.GROUP_CAPTURE, seq(lit("x")), 2))
        for middle in (ast.BranchReset(innermost), ast.BalancedGroup("open", innermost, "close")):
            with self.subTest(kind=middle.kind):
                regexp = seq(ast.Subexp(ast.GROUP_CAPTURE, seq(middle), 1))
                self.assertEqual(GROUP_FILL_RE.findall(render(regexp)), ["none", "#cce5ff", "#d4edda"])

    def test_palette_cycles(self) -> None:
        renderer = Renderer()
        self.assertEqual(renderer.groupFill(0), "none")
        self.assertEqual(renderer.groupFill(1), "#cce5ff")
        self.assertEqual(renderer.groupFill(5), "#e2d5f0")
        self.assertEqual(renderer.groupFill(6), "#cce5ff")

    def test_empty_palette(self) -> None:
        self.assertEqual(Renderer(Config(subexpColors=())).groupFill(3), "none")

    def test_scoped_modifier_keeps_depth(self) -> None:
        modifier = ast.InlineModifier("i", regexp=seq(ast.Subexp(ast.GROUP_CAPTURE, seq(lit("a")), 1)))
        svg = render(seq(modifier))
        self.assertIn('class="flags-label">flags: +i</text>', svg)
        self.assertEqual(GROUP_FILL_RE.findall(svg), ["none"])

    def test_global_modifier(self) -> None:
        svg = render(seq(ast.InlineModifier("i", "s"), lit("a")))
        self.assertIn('<g class="flags">', svg)
        self.assertIn(">flags: +i -s</text>", svg)

    def test_box_encloses_content(self) -> None:
        node = Renderer().renderNode(ast.Subexp(ast.GROUP_CAPTURE, seq(lit("abc")), 1), 0)
        # the title is wider than the content; 24 title + 24 content + 10
        self.assertAlmostEqual(node.bbox.width, 87.2)
        self.assertEqual(node.bbox.height, 58)
        self.assertEqual(node.bbox.anchorY, 36)


class ConditionalTests(unittest.TestCase):
    def test_then_and_else(self) -> None:
        node = ast.Conditional(ast.BackReference(1), seq(lit("a")), seq(lit("b")))
        svg = render(seq(node))
        self.assertIn('<g class="conditional">', svg)
        self.assertIn(">if group 1 matched</text>", svg)
        self.assertIn('class="condition-yes"', svg)
        self.assertIn('class="condition-no"', svg)
        self.assertIn(">then</text>", svg)
        self.assertIn(">else</text>", svg)

    def test_then_only(self) -> None:
        svg = render(seq(ast.Conditional(ast.BackReference(name="x"), seq(lit("a")))))
        self.assertIn(">if &apos;x&apos; matched</text>", svg)
        self.assertNotIn("condition-no", svg)

    def test_condition_labels(self) -> None:
        cases = [
            (ast.BackReference(-1), "if group 1 matched"),
            (ast.RecursiveRef("R"), "if in recursion"),
            (ast.RecursiveRef("DEFINE"), "DEFINE"),
            (ast.RecursiveRef("x"), "if in recursion to 'x'"),
            (ast.Literal("DEFINE"), "DEFINE"),
            (ast.Subexp(ast.GROUP_POSITIVE_LOOKAHEAD, seq(lit("a"))), "if followed by..."),
            (ast.Subexp(ast.GROUP_NEGATIVE_LOOKBEHIND, seq(lit("a"))), "if not preceded by..."),
            (ast.Subexp(ast.GROUP_ATOMIC, seq(lit("a"))), "if assertion"),
            (ast.AnyCharacter(), "if condition"),
        ]
        for cond, label in cases:
            with self.subTest(label=label):
                self.assertEqual(regolith.conditionLabel(cond), label)


class FlagsAndOptionsTests(unittest.TestCase):
    def test_flags_box(self) -> None:
        svg = render(ast.Regexp([ast.Match([frag(lit("a"))])], flags="gi"))
        self.assertIn(">Flags:</text>", svg)
        self.assertIn(">global</text>", svg)
        self.assertIn(">ignore case</text>", svg)
        self.assertIn('width="197.6" height="92"', svg)

    def test_unknown_flag(self) -> None:
        self.assertEqual(regolith.flagLabel("c"), "flag 'c'")

    def test_options_banner(self) -> None:
        options = [ast.PatternOption("UTF"), ast.PatternOption("LIMIT_MATCH", "10")]
        svg = render(ast.Regexp([ast.Match([frag(lit("a"))])], options=options))
        self.assertIn(">Options: *UTF, *LIMIT_MATCH=10</text>", svg)
        self.assertIn('width="282" height="73"', svg)


class ConfigTests(unittest.TestCase):
    def test_fill_override_reaches_styles(self) -> None:
        svg = render(seq(lit("a")), literalFill="#123456")
        self.assertIn(".literal > rect { fill: #123456; }", svg)

    def test_copy(self) -> None:
        base = Config()
        wider = base.copy(padding=20)
        self.assertEqual(wider.padding, 20)
        self.assertEqual(base.padding, 10)
        self.assertEqual(wider.fontSize, base.fontSize)

    def test_char_width(self) -> None:
        node = Renderer(Config(charWidth=10)).renderLiteral(lit("a"), 0)
        self.assertEqual(node.bbox.width, 40)


class DeepNestingTests(unittest.TestCase):
    def nested(self, levels: int) -> ast.Regexp:
        regexp = seq(lit("x"))
        for number in range(levels, 0, -1):
            regexp = seq(ast.Subexp(ast.GROUP_CAPTURE, regexp, number))
        return regexp

    def test_nesting_depth(self) -> None:
        self.assertEqual(regolith.nestingDepth(seq(lit("x"))), 4)
        self.assertEqual(regolith.nestingDepth(self.nested(2)), 12)
        self.assertEqual(regolith.nestingDepth(ast.Regexp()), 1)

    def test_nesting_depth_counts_charsets(self) -> None:
        charset = ast.Charset([ast.Charset([ast.CharsetLiteral("a")])])
        self.assertEqual(regolith.nestingDepth(seq(charset)), 6)

    def test_five_hundred_groups(self) -> None:
        limit = sys.getrecursionlimit()
        svg = Renderer().render(self.nested(500))
        self.assertTrue(svg.endswith("</g></svg>"))
        self.assertEqual(svg.count('<g class="subexp">'), 500)
        self.assertIn(">group #500</text>", svg)
        self.assertEqual(svg.count("<g ") + svg.count("<g>"), svg.count("</g>"))
        self.assertEqual(sys.getrecursionlimit(), limit)

    def test_headroom_is_scoped(self) -> None:
        limit = sys.getrecursionlimit()
        with regolith.recursionHeadroom(1000):
            self.assertEqual(sys.getrecursionlimit(), limit + 1000)
            with regolith.recursionHeadroom(300):
                self.assertEqual(sys.getrecursionlimit(), limit + 1000)
        self.assertEqual(sys.getrecursionlimit(), limit)

    def test_headroom_restored_after_error(self) -> None:
        limit = sys.getrecursionlimit()
        with self.assertRaises(KeyError):
            with regolith.recursionHeadroom(500):
                raise KeyError("x")
        self.assertEqual(sys.getrecursionlimit(), limit)


class AnchorBoundsTests(unittest.TestCase):
    def setUp(self) -> None:
        regolith.DEBUG = True

    def tearDown(self) -> None:
        regolith.DEBUG = False

    def test_anchor_inside_every_box(self) -> None:
        regexp = seq(
            ast.Subexp(ast.GROUP_CAPTURE, alt(lit("a"), lit("bb"), lit("ccc")), 1),
            frag(ast.Charset([ast.CharsetLiteral("x")]), ast.Repeat(0, ast.UNBOUNDED)),
            ast.Conditional(ast.BackReference(1), seq(lit("y")), seq(lit("z"))),
        )
        root = ET.fromstring(Renderer().render(regexp))
        boxes = [el.get("data-x").split() for el in root.iter() if el.get("data-x")]
        self.assertTrue(boxes)
        for rule, x, y, w, h, left, right, anchorY in boxes:
            with self.subTest(rule=rule):
                self.assertLessEqual(float(y), float(anchorY))
                self.assertLessEqual(float(anchorY), float(y) + float(h))
                self.assertLessEqual(float(left), float(right))


if __name__ == "__main__":
    unittest.main()
