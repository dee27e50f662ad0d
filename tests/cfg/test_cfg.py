"""CFG builder and basic path extraction tests."""

import logging

import pytest

from wpcheck.cfg import (
    Assert, AssignAction, Assume, CfgBuilder, NodeKind, build_cfg,
)
from wpcheck.dot import export_function, render_dot
from wpcheck.errors import MisplacedAnnotationError, MissingInvariantError
from wpcheck.frontend.python import PythonFrontend
from wpcheck.ir import (
    Annotation, AnnotationKind, Assign, BinaryOp, FunctionIR, Literal, Loop,
    Return, Variable,
)
from wpcheck.paths import PathKind, extract_basic_paths


SUM_FIRST_N = """
def sum_first_n(n: int) -> int:
    pre(n >= 0)
    i = 1
    sum = 0
    invariant(i <= n + 1 and sum == (i - 1) * i // 2)
    while i <= n:
        sum = sum + i
        i = i + 1
    post(sum == n * (n + 1) // 2)
    return sum
"""

NESTED = """
def square(n: int) -> int:
    pre(n >= 0)
    i = 0
    c = 0
    invariant(0 <= i and i <= n and c == i * n)
    while i < n:
        j = 0
        invariant(i < n and 0 <= j and j <= n and c == i * n + j)
        while j < n:
            c = c + 1
            j = j + 1
        i = i + 1
    post(c == n * n)
    return c
"""


def function(source):
    return PythonFrontend().parse_function(source, "test.py")


def build(source, assert_mode="cut"):
    return CfgBuilder(assert_mode).build(function(source))


class TestCFGBuilder:

    def test_single_entry(self):
        cfg = build(SUM_FIRST_N)
        assert len(cfg.nodes_of_kind(NodeKind.ENTRY)) == 1
        assert cfg.node(cfg.entry).kind == NodeKind.ENTRY

    def test_loop_head_is_cut_point(self):
        cfg = build(SUM_FIRST_N)
        heads = cfg.nodes_of_kind(NodeKind.LOOPHEAD)
        assert len(heads) == 1
        assert heads[0].is_cut_point

    def test_loop_edges(self):
        cfg = build(SUM_FIRST_N)
        head = cfg.nodes_of_kind(NodeKind.LOOPHEAD)[0]
        guards = [str(e.guard) for e in cfg.successors(head.id)]
        assert guards == ["(i <= n)", "!((i <= n))"]
        back = [e for e in cfg.edges if e.back_edge]
        assert len(back) == 1 and back[0].target == head.id

    def test_entry_is_not_cut_point_with_pre(self):
        cfg = build(SUM_FIRST_N)
        assert not cfg.node(cfg.entry).is_cut_point
        pre_nodes = [n for n in cfg.nodes if n.annotation == AnnotationKind.PRE]
        assert len(pre_nodes) == 1 and pre_nodes[0].actions == []

    def test_entry_is_cut_point_without_pre(self):
        cfg = build("""
        def f(x: int) -> int:
            post(result == x)
            return x
        """)
        entry = cfg.node(cfg.entry)
        assert entry.is_cut_point
        assert str(entry.predicate) == "true"

    def test_post_attached_to_every_return(self):
        cfg = build("""
        def sign(x: int) -> int:
            post(result >= -1 and result <= 1)
            if x > 0:
                return 1
            elif x < 0:
                return -1
            return 0
        """)
        returns = cfg.nodes_of_kind(NodeKind.RETURN)
        assert len(returns) == 3
        assert len({str(r.predicate) for r in returns}) == 1

    def test_pre_after_docstring_ensures(self):
        cfg = build('''
        def inc(x: int) -> int:
            """Ensures: result == x + 1"""
            pre(x >= 0)
            return x + 1
        ''')
        (pre,) = [n for n in cfg.nodes if n.annotation == AnnotationKind.PRE]
        assert str(pre.predicate) == "(x >= 0)"
        assert str(cfg.nodes_of_kind(NodeKind.RETURN)[0].predicate) == "(result == (x + 1))"

    def test_implicit_return(self):
        cfg = build("""
        def f(x: int):
            pre(x > 0)
            x = x + 1
        """)
        assert len(cfg.nodes_of_kind(NodeKind.RETURN)) == 1

    def test_return_assigns_result(self):
        cfg = build("""
        def f(x: int) -> int:
            pre(x > 0)
            return x + 1
        """)
        actions = [a for n in cfg.nodes for a in n.actions]
        assert actions == [AssignAction("result", BinaryOp("+", Variable("x"), Literal(1)))]

    def test_conditional_rejoins(self):
        cfg = build("""
        def abs_val(x: int) -> int:
            post(result >= 0)
            if x < 0:
                y = -x
            else:
                y = x
            return y
        """)
        branch = cfg.nodes_of_kind(NodeKind.BRANCH)[0]
        targets = [e.target for e in cfg.successors(branch.id)]
        joins = {cfg.successors(t)[0].target for t in targets}
        assert len(joins) == 1

    def test_actions_accumulate_in_one_block(self):
        cfg = build(SUM_FIRST_N)
        blocks = [n for n in cfg.nodes_of_kind(NodeKind.BLOCK) if n.actions]
        assert [str(a) for a in blocks[0].actions] == ["i := 1", "sum := 0"]

    def test_inline_assert_is_an_action(self):
        cfg = build("""
        def f(x: int) -> int:
            pre(x > 0)
            assert x != 0
            return x
        """, assert_mode="inline")
        actions = [a for n in cfg.nodes for a in n.actions]
        assert isinstance(actions[0], Assert)

    def test_cut_assert_is_a_node(self):
        cfg = build("""
        def f(x: int) -> int:
            pre(x > 0)
            assert x != 0
            return x
        """)
        asserts = [n for n in cfg.nodes if n.annotation == AnnotationKind.ASSERT]
        assert len(asserts) == 1 and asserts[0].is_cut_point

    def test_unknown_assert_mode(self):
        with pytest.raises(ValueError):
            CfgBuilder("sometimes")

    def test_dead_code_warning(self, caplog):
        caplog.set_level(logging.WARNING, logger="wpcheck.cfg")
        cfg = build("""
        def f(x: int) -> int:
            pre(x > 0)
            return x
            x = 1
        """)
        assert "Unreachable" in caplog.text
        assert all(not n.actions or n.actions[0].var == "result" for n in cfg.nodes)

    def test_builds_from_handwritten_ir(self):
        func = FunctionIR(name="g", params=["x"], body=[
            Annotation(kind=AnnotationKind.PRE, predicate=BinaryOp(">", Variable("x"), Literal(0))),
            Annotation(kind=AnnotationKind.INVARIANT, predicate=BinaryOp(">=", Variable("x"), Literal(0))),
            Loop(cond=BinaryOp(">", Variable("x"), Literal(0)),
                 body=[Assign(var="x", expr=BinaryOp("-", Variable("x"), Literal(1)))]),
            Return(expr=Variable("x")),
        ])
        cfg = build_cfg(func)
        head = cfg.nodes_of_kind(NodeKind.LOOPHEAD)[0]
        assert str(head.predicate) == "(x >= 0)"


class TestStructuralErrors:

    def test_missing_invariant(self):
        source = SUM_FIRST_N.replace(
            "    invariant(i <= n + 1 and sum == (i - 1) * i // 2)\n", "")
        with pytest.raises(MissingInvariantError):
            build(source)

    def test_invariant_not_before_loop(self):
        with pytest.raises(MisplacedAnnotationError):
            build("""
            def f(x: int) -> int:
                pre(x > 0)
                invariant(x > 0)
                x = x + 1
                return x
            """)

    def test_pre_not_first(self):
        with pytest.raises(MisplacedAnnotationError):
            build("""
            def f(x: int) -> int:
                x = x + 1
                pre(x > 0)
                return x
            """)

    def test_two_preconditions(self):
        with pytest.raises(MisplacedAnnotationError):
            build("""
            def f(x: int) -> int:
                pre(x > 0)
                pre(x < 10)
                return x
            """)

    def test_pre_after_post_and_statement(self):
        with pytest.raises(MisplacedAnnotationError):
            build("""
            def f(x: int) -> int:
                post(result > 0)
                x = x + 1
                pre(x > 0)
                return x
            """)

    def test_nested_post(self):
        with pytest.raises(MisplacedAnnotationError):
            build("""
            def f(x: int) -> int:
                pre(x > 0)
                if x > 1:
                    post(result > 1)
                return x
            """)

    def test_post_after_return(self):
        with pytest.raises(MisplacedAnnotationError):
            build("""
            def f(x: int) -> int:
                pre(x > 0)
                return x
                post(result > 0)
            """)

    def test_error_carries_location(self):
        source = SUM_FIRST_N.replace(
            "    invariant(i <= n + 1 and sum == (i - 1) * i // 2)\n", "")
        with pytest.raises(MissingInvariantError) as info:
            build(source)
        assert info.value.location.line == 6


class TestBasicPaths:

    def test_straight_line_has_one_path(self):
        paths = extract_basic_paths(build("""
        def inc(x: int) -> int:
            pre(x >= 0)
            y = x + 1
            post(result > x)
            return y
        """))
        assert len(paths) == 1
        assert paths[0].kind == PathKind.POSTCONDITION
        assert [str(a) for a in paths[0].actions] == ["y := (x + 1)", "result := y"]

    def test_single_loop_has_three_paths(self):
        paths = extract_basic_paths(build(SUM_FIRST_N))
        assert [p.kind for p in paths] == [
            PathKind.INITIATION, PathKind.PRESERVATION, PathKind.POSTCONDITION]

    def test_preservation_path_actions(self):
        paths = extract_basic_paths(build(SUM_FIRST_N))
        preserve = paths[1]
        assert preserve.start is preserve.end
        assert isinstance(preserve.actions[0], Assume)
        assert [str(a) for a in preserve.actions[1:]] == ["sum := (sum + i)", "i := (i + 1)"]

    def test_exit_path_assumes_negated_guard(self):
        paths = extract_basic_paths(build(SUM_FIRST_N))
        assert str(paths[2].actions[0]) == "assume !((i <= n))"

    def test_branches_give_one_path_each(self):
        paths = extract_basic_paths(build("""
        def abs_val(x: int) -> int:
            post(result >= 0)
            if x < 0:
                y = -x
            else:
                y = x
            return y
        """))
        assert len(paths) == 2
        assert str(paths[0].actions[0]) == "assume (x < 0)"
        assert str(paths[1].actions[0]) == "assume !((x < 0))"

    def test_early_returns(self):
        paths = extract_basic_paths(build("""
        def sign(x: int) -> int:
            post(result >= -1 and result <= 1)
            if x > 0:
                return 1
            elif x < 0:
                return -1
            return 0
        """))
        assert len(paths) == 3
        assert all(p.kind == PathKind.POSTCONDITION for p in paths)

    def test_nested_loops(self):
        paths = extract_basic_paths(build(NESTED))
        kinds = [p.kind for p in paths]
        assert len(paths) == 5
        assert kinds.count(PathKind.PRESERVATION) == 2
        assert kinds.count(PathKind.INITIATION) == 2
        assert kinds.count(PathKind.POSTCONDITION) == 1

    def test_assert_cut_splits_path(self):
        paths = extract_basic_paths(build("""
        def f(x: int) -> int:
            pre(x > 0)
            y = x + 1
            assert y > 1
            return y
        """))
        assert [p.kind for p in paths] == [PathKind.ASSERTION, PathKind.POSTCONDITION]

    def test_paths_are_loop_free(self):
        for path in extract_basic_paths(build(NESTED)):
            inner = [n.id for n in path.nodes[1:-1]]
            assert len(inner) == len(set(inner))
            assert path.start.id not in inner

    def test_path_numbering_is_stable(self):
        first = [str(p) for p in extract_basic_paths(build(NESTED))]
        second = [str(p) for p in extract_basic_paths(build(NESTED))]
        assert first == second


class TestDotExport:

    def test_render_cfg(self):
        text = render_dot(build(SUM_FIRST_N).view())
        assert text.startswith('digraph "sum_first_n"')
        assert "back to loop" in text
        assert "shape=Mdiamond" in text

    def test_render_escapes_quotes(self):
        cfg = build(SUM_FIRST_N)
        cfg.name = 'say "hi"'
        assert 'digraph "say \\"hi\\""' in render_dot(cfg.view())

    def test_export_function(self, tmp_path):
        cfg = build(SUM_FIRST_N)
        paths = extract_basic_paths(cfg)
        written = export_function(cfg, paths, str(tmp_path))
        directory = tmp_path / "sum_first_n"
        assert (directory / "sum_first_n.dot").is_file()
        for i in range(3):
            assert (directory / f"basic_path_{i}.dot").is_file()
        assert len(written) == 4

    def test_path_view_only_has_path_nodes(self):
        cfg = build(SUM_FIRST_N)
        path = extract_basic_paths(cfg)[0]
        view = path.view()
        assert {n.id for n in view.nodes} == {n.id for n in path.nodes}
        assert len(view.edges) == len(path.edges)
