# =============================================================================
# test_rewriter.py - Rewrite Engine Tests
# =============================================================================
# Tests for the single-pass rewriter.
#
# Test coverage includes:
#   - Passthrough of text without extended syntax
#   - Immediate prefix on instruction operands only
#   - Indirect brackets, sigils, global labels
#   - Inline aliases: definition, use, eviction, shadowing, cycles
#   - Blocks: qualified labels, forward references, nesting, anonymous
#   - Line markers and block balance handling
#   - The escape evaluator hook
# =============================================================================

import logging

import pytest
from raspp.config import Config
from raspp.errors import (
    AliasCycleError,
    AliasDefinitionError,
    EvaluatorError,
    PreprocessorError,
    UnbalancedScopeError,
)
from raspp.rewriter import Rewriter


# =============================================================================
# Helper Functions
# =============================================================================

def rewrite(source: str, markers: bool = False, evaluator=None, **options) -> str:
    """Rewrite `source` as file "t.S"; line markers are off unless asked for."""
    config = Config(line_markers=markers, **options)
    return Rewriter(source, "t.S", config=config, evaluator=evaluator).rewrite()


# =============================================================================
# Passthrough
# =============================================================================

class TestPassthrough:
    """Text without extended syntax is copied unchanged."""

    @pytest.mark.parametrize("source", [
        "",
        "    move.l d0, d1\n    rts\n",
        "// comment with 4 numbers [and] @sigils\n",
        '    .ascii "a [b] @c $d 4"\n',
        '#include "x.h"\n',
        "    .section .text\n",
        "    .word 1, 2, 3\n",
        "    move.l 4(a0), d0\n",
        "    add #4, d0\n",
        "x { y }\n",
    ])
    def test_unchanged(self, source):
        assert rewrite(source) == source

    def test_unterminated_string(self):
        assert rewrite('move "abc') == 'move "abc'

    def test_deterministic(self):
        source = (
            "f: {\n"
            "    move foo@a0, d0\n"
            "loop:\n"
            "    add 4, foo\n"
            "    bra .loop\n"
            "}\n"
        )
        assert rewrite(source, markers=True) == rewrite(source, markers=True)


# =============================================================================
# Immediate Prefix
# =============================================================================

class TestImmediate:
    """Numeric operands of instructions get the immediate marker."""

    def test_first_operand(self):
        assert rewrite("add 4, d0") == "add #4, d0"

    def test_later_operand(self):
        assert rewrite("add d0, 4") == "add d0, #4"

    def test_pseudo_op(self):
        assert rewrite(".word 4") == ".word 4"

    def test_macro(self):
        assert rewrite("foo$ 4, d0") == "foo$ 4, d0"

    def test_negative_number(self):
        assert rewrite("add -4, d0") == "add #-4, d0"

    def test_negative_after_comma(self):
        assert rewrite("sub d0,-4") == "sub d0,#-4"

    def test_displacement(self):
        assert rewrite("move.l 4(a0), d0") == "move.l 4(a0), d0"

    def test_number_inside_brackets(self):
        assert rewrite("move.l [a0, 42], d0") == "move.l (a0, 42), d0"

    def test_after_label(self):
        assert rewrite("label: add 4, d0") == "label: add #4, d0"

    def test_number_first_on_line(self):
        assert rewrite("4 add") == "4 add"

    def test_preprocessor_directive(self):
        assert rewrite("#define X 4") == "#define X 4"

    def test_statement_separator_resets_line(self):
        source = "add 4, d0; .word 4; add 5, d1"
        assert rewrite(source) == "add #4, d0; .word 4; add #5, d1"

    def test_line_continuation(self):
        assert rewrite("add 4, \\\n d0") == "add #4, \\\n d0"

    def test_custom_marker(self):
        assert rewrite("add 4, d0", immediate_prefix="$") == "add $4, d0"


# =============================================================================
# Brackets, Sigils and Global Labels
# =============================================================================

class TestSimpleRewrites:
    """Context-free rewrites."""

    def test_indirect(self):
        assert rewrite("move.l [a0], d0") == "move.l (a0), d0"

    def test_predecrement(self):
        assert rewrite("move.l [-a0], d0") == "move.l -(a0), d0"

    def test_postincrement(self):
        assert rewrite("move.l [a0+], d0") == "move.l (a0)+, d0"

    def test_sigils(self):
        assert rewrite("move @count, $tmp") == "move ARG(count), VAR(tmp)"

    def test_sigil_formats(self):
        result = rewrite("move @a, $b", argument_format="\\{name}", variable_format="{name}_v")
        assert result == "move \\a, b_v"

    def test_global_label(self):
        assert rewrite("start::\n    rts") == "start: .global start;\n    rts"


# =============================================================================
# Aliases
# =============================================================================

class TestAliases:
    """Inline one-to-one aliases."""

    def test_define_and_use(self):
        source = "move foo@a0, d0\nmove foo, d1"
        assert rewrite(source) == "move _(foo)a0, d0\nmove a0, d1"

    def test_equals_form(self):
        assert rewrite("move foo = a0, d0") == "move _(foo)a0, d0"

    def test_first_identifier_is_never_an_alias(self):
        source = "foo = a0\nmove foo, d0"
        assert rewrite(source) == source

    def test_reusing_value_drops_old_name(self):
        source = "move foo@a0, d0\nmove bar@a0, d1\nmove foo, d2"
        assert rewrite(source) == "move _(foo)a0, d0\nmove _(bar)a0, d1\nmove foo, d2"

    def test_chain(self):
        source = "move x@d0, d1\nmove y@x, d2\nmove y, d3"
        assert rewrite(source) == "move _(x)d0, d1\nmove _(y)d0, d2\nmove d0, d3"

    def test_cycle(self):
        with pytest.raises(AliasCycleError) as excinfo:
            rewrite("move foo@bar, d0\nmove bar@foo, d1")
        assert excinfo.value.chain == ["bar", "foo", "bar"]
        assert excinfo.value.location.line == 2
        assert "alias cycle: bar -> foo -> bar" in str(excinfo.value)

    def test_self_alias(self):
        with pytest.raises(AliasDefinitionError) as excinfo:
            rewrite("move d0@d0, d1")
        assert "d0@d0" in str(excinfo.value)

    def test_errors_share_base_class(self):
        with pytest.raises(PreprocessorError):
            rewrite("move d0@d0, d1")

    def test_block_shadows_outer_alias(self):
        source = (
            "move foo@a0, d0\n"
            "f: {\n"
            "    move foo@a1, d0\n"
            "    move foo, d1\n"
            "}\n"
            "move foo, d2"
        )
        expected = (
            "move _(foo)a0, d0\n"
            "#define scope f\n"
            ".fn f\n"
            '# 3 "t.S"\n'
            "    move _(foo)a1, d0\n"
            "    move a1, d1\n"
            "#undef scope\n"
            ".endfn\n"
            '# 6 "t.S"\n'
            "move a0, d2"
        )
        assert rewrite(source, markers=True) == expected

    def test_outer_alias_visible_in_block(self):
        source = "move foo@a0, d0\nf: {\n    move foo, d1\n}"
        assert "    move a0, d1" in rewrite(source)


# =============================================================================
# Blocks and Labels
# =============================================================================

class TestBlocks:
    """Blocks, qualified labels and line markers."""

    def test_nested_blocks(self):
        source = "a: {\nx: {\nn:\n    bra n\n}\n}"
        expected = (
            "#define scope a\n"
            ".fn a\n"
            '# 2 "t.S"\n'
            "#undef scope\n"
            "#define scope a$x\n"
            ".fn a$x\n"
            '# 3 "t.S"\n'
            "a$x$n:\n"
            "    bra a$x$n\n"
            "#undef scope\n"
            ".endfn\n"
            "#define scope a\n"
            '# 6 "t.S"\n'
            "#undef scope\n"
            ".endfn\n"
            '# 7 "t.S"'
        )
        result = rewrite(source, markers=True)
        assert result == expected
        assert result.count(".endfn") == 2

    def test_forward_reference_with_local_marker(self):
        source = (
            "f: {\n"
            "    bra .done\n"
            "    nop\n"
            ".done:\n"
            "    rts\n"
            "}"
        )
        expected = (
            "#define scope f\n"
            ".fn f\n"
            "    bra f$done\n"
            "    nop\n"
            "f$done:\n"
            "    rts\n"
            "#undef scope\n"
            ".endfn"
        )
        assert rewrite(source) == expected

    def test_forward_reference_bare_name(self):
        result = rewrite("f: {\n    bra done\ndone:\n}")
        assert "    bra f$done\n" in result
        assert "f$done:" in result

    def test_outer_labels_and_nested_block_names(self):
        source = (
            "f: {\n"
            "top:\n"
            "    bra g\n"
            "g: {\n"
            "    bra top\n"
            "}\n"
            "}"
        )
        result = rewrite(source)
        assert "    bra f$g\n" in result
        assert "    bra f$top\n" in result
        assert "#define scope f$g" in result

    def test_same_label_in_sibling_blocks(self):
        source = "f: {\nloop:\n}\ng: {\nloop:\n}"
        result = rewrite(source)
        assert "f$loop:" in result
        assert "g$loop:" in result

    def test_pseudo_op_operand_sees_prescanned_label(self):
        result = rewrite("f: {\n    .word .tbl\n.tbl:\n}")
        assert "    .word f$tbl\n" in result

    def test_local_reference_at_root(self):
        assert rewrite("bra .skip\n.skip:") == "bra skip\nskip:"

    def test_anonymous_block(self):
        result = rewrite("{\nx:\n}")
        assert result == "#define scope _0\n.fn _0\n_0$x:\n#undef scope\n.endfn"

    def test_custom_separator(self):
        assert "f_x:" in rewrite("f: {\nx:\n}", separator="_")

    def test_line_markers(self):
        result = rewrite("f: {\nnop\n}\nnop", markers=True)
        assert result == (
            "#define scope f\n"
            ".fn f\n"
            '# 2 "t.S"\n'
            "nop\n"
            "#undef scope\n"
            ".endfn\n"
            '# 4 "t.S"\n'
            "nop"
        )

    def test_block_name_on_its_own_line(self):
        result = rewrite("f:\n{\nnop\n}\nnop", markers=True)
        assert result.startswith('#define scope f\n.fn f\n# 3 "t.S"\nnop\n')

    def test_comment_between_name_and_brace(self):
        result = rewrite("f:  // entry\n{\nloop:\n  bra loop\n}\n")
        assert result.startswith("#define scope f\n.fn f\n")
        assert "  bra f$loop\n" in result
        assert "_0" not in result

    def test_inline_nested_blocks(self):
        assert rewrite("a: { x: { } }\n") == (
            "#define scope a\n"
            ".fn a\n"
            "#undef scope\n"
            "#define scope a$x\n"
            ".fn a$x\n"
            "#undef scope\n"
            ".endfn\n"
            "#define scope a\n"
            "#undef scope\n"
            ".endfn\n"
        )

    def test_inline_blocks_with_line_markers(self):
        assert rewrite("a: { x: { } }\n", markers=True) == (
            "#define scope a\n"
            ".fn a\n"
            '# 1 "t.S"\n'
            "#undef scope\n"
            "#define scope a$x\n"
            ".fn a$x\n"
            '# 1 "t.S"\n'
            "#undef scope\n"
            ".endfn\n"
            "#define scope a\n"
            '# 1 "t.S"\n'
            "#undef scope\n"
            ".endfn\n"
            '# 2 "t.S"\n'
        )

    def test_inline_block_labels(self):
        result = rewrite("a: { x: { n: bra n; } }\n")
        assert "a$x$n: bra a$x$n;" in result
        assert result.count(".endfn") == 2

    def test_brace_after_mnemonic_is_text(self):
        result = rewrite("f: {\n  .byte { 1 }\n  nop }\n}\n")
        assert "  .byte { 1 }\n" in result
        assert "  nop }\n" in result
        assert result.count(".endfn") == 1

    def test_scope_state_after_rewrite(self):
        rewriter = Rewriter("a: {\nx: {\n}\n}\n", "t.S", config=Config(line_markers=False))
        rewriter.rewrite()
        assert [s.qualified for s in rewriter.scopes.all_scopes()] == ["a", "a$x"]
        assert rewriter.scopes.depth == 0


# =============================================================================
# Block Balance
# =============================================================================

class TestBalance:
    """Stray closes and unclosed blocks."""

    def test_stray_close_is_ignored(self, caplog):
        with caplog.at_level(logging.WARNING, logger="raspp"):
            result = rewrite("nop\n}\nnop")
        assert result == "nop\n\nnop"
        assert "ignoring block close" in caplog.text

    def test_stray_close_strict(self):
        with pytest.raises(UnbalancedScopeError) as excinfo:
            rewrite("nop\n}\nnop", strict_scopes=True)
        assert excinfo.value.location.line == 2

    def test_unclosed_block_warns(self, caplog):
        with caplog.at_level(logging.WARNING, logger="raspp"):
            result = rewrite("f: {\nnop")
        assert result == "#define scope f\n.fn f\nnop"
        assert "unclosed block(s)" in caplog.text
        assert "'f'" in caplog.text

    def test_unclosed_block_strict(self):
        with pytest.raises(UnbalancedScopeError):
            rewrite("f: {\nnop", strict_scopes=True)


# =============================================================================
# Escape Evaluator
# =============================================================================

class TestEvaluator:
    """Backtick escapes and the external evaluator."""

    def test_without_evaluator(self):
        assert rewrite("move `x`, d0") == "move `x`, d0"

    def test_with_evaluator(self):
        result = rewrite("move `x`, d0", evaluator=lambda payload: payload.upper())
        assert result == "move X, d0"

    def test_evaluator_failure(self):
        def broken(payload):
            raise ValueError("bad payload")

        with pytest.raises(EvaluatorError) as excinfo:
            rewrite("move `x`, d0", evaluator=broken)
        assert isinstance(excinfo.value.__cause__, ValueError)
        assert "bad payload" in str(excinfo.value)
