import pytest

from changed_files_ci.config import CiContext, DiffSettings
from changed_files_ci.history import BRANCH_FETCH_ARGS, MAX_MERGE_BASE_ATTEMPTS, TAG_FETCH_ARGS
from changed_files_ci.models import NULL_SHA, DiffOperator
from changed_files_ci.ranges import (
    RangeError,
    RangeErrorKind,
    resolve_pull_request_range,
    resolve_push_range,
)


def _linear(graph, *shas):
    parent = None
    for idx, sha in enumerate(shas):
        graph.commit(sha, [parent] if parent else [], files={"f.txt": str(idx)})
        parent = sha
    return graph


def _push_ci(**kwargs) -> CiContext:
    values = {"ref": "refs/heads/main", "ref_name": "main"}
    values.update(kwargs)
    return CiContext(**values)


def _pr_ci(**kwargs) -> CiContext:
    values = {
        "ref": "refs/pull/7/merge",
        "pull_request_number": "7",
        "pull_request_base_ref": "main",
        "pull_request_head_ref": "feature",
        "pull_request_base_sha": "b1",
    }
    values.update(kwargs)
    return CiContext(**values)


def _pull_request_graph(graph):
    # b0 - b1 (origin/main)
    #   \
    #    h1 - h2 (HEAD)
    graph.commit("b0", [], files={"base.txt": "0"})
    graph.commit("b1", ["b0"], files={"base.txt": "1"})
    graph.commit("h1", ["b0"], files={"base.txt": "0", "feature.txt": "1"})
    graph.commit("h2", ["h1"], files={"base.txt": "0", "feature.txt": "2"})
    graph.refs["origin/main"] = "b1"
    return graph


def test_push_uses_first_parent(graph):
    _linear(graph, "c1", "c2", "c3")
    ctx = resolve_push_range(graph, DiffSettings(), _push_ci())
    assert (ctx.previous, ctx.current, ctx.operator) == ("c2", "c3", DiffOperator.TWO_DOT)
    assert ctx.initial_commit is False


def test_push_since_last_remote_commit_uses_before_sha(graph):
    _linear(graph, "abc123", "c2", "c3")
    settings = DiffSettings(since_last_remote_commit=True)
    ctx = resolve_push_range(graph, settings, _push_ci(event_before="abc123"))
    assert ctx.previous == "abc123"
    assert ctx.current == "c3"
    assert ctx.operator is DiffOperator.TWO_DOT


def test_push_forced_ignores_before_sha(graph):
    _linear(graph, "abc123", "c2", "c3")
    settings = DiffSettings(since_last_remote_commit=True)
    ctx = resolve_push_range(graph, settings, _push_ci(event_before="abc123", event_forced=True))
    assert ctx.previous == "c2"


def test_push_null_before_sha_falls_back_to_parent(graph):
    _linear(graph, "c1", "c2")
    settings = DiffSettings(since_last_remote_commit=True)
    ctx = resolve_push_range(graph, settings, _push_ci(event_before=NULL_SHA))
    assert ctx.previous == "c1"


def test_push_before_equal_to_current_steps_back(graph):
    _linear(graph, "c1", "c2", "c3")
    settings = DiffSettings(since_last_remote_commit=True)
    ctx = resolve_push_range(graph, settings, _push_ci(event_before="c3"))
    assert ctx.previous == "c2"


def test_push_initial_commit_short_circuits(graph):
    _linear(graph, "root")
    ctx = resolve_push_range(graph, DiffSettings(), _push_ci())
    assert ctx.initial_commit is True
    assert ctx.previous == ctx.current == "root"
    assert graph.diff_calls == []


def test_push_base_sha_equal_to_current_is_fatal(graph):
    _linear(graph, "c1", "c2")
    with pytest.raises(RangeError) as exc:
        resolve_push_range(graph, DiffSettings(base_sha="c2"), _push_ci())
    assert exc.value.kind is RangeErrorKind.EMPTY_RANGE
    assert exc.value.exit_code != 0
    assert "fetch_depth" in str(exc.value)


def test_push_unknown_base_sha_is_not_found(graph):
    _linear(graph, "c1", "c2")
    with pytest.raises(RangeError) as exc:
        resolve_push_range(graph, DiffSettings(base_sha="deadbeef"), _push_ci())
    assert exc.value.kind is RangeErrorKind.NOT_FOUND


def test_push_unknown_sha_override_is_not_found(graph):
    _linear(graph, "c1", "c2")
    with pytest.raises(RangeError) as exc:
        resolve_push_range(graph, DiffSettings(sha="missing"), _push_ci())
    assert exc.value.kind is RangeErrorKind.NOT_FOUND


def test_push_sha_and_base_sha_overrides(graph):
    _linear(graph, "c1", "c2", "c3")
    ctx = resolve_push_range(graph, DiffSettings(sha="c2", base_sha="c1"), _push_ci())
    assert (ctx.previous, ctx.current) == ("c1", "c2")


def test_push_until_and_since(graph):
    _linear(graph, "c1", "c2", "c3", "c4")
    graph.until["2024-01-02"] = "c3"
    graph.since["2024-01-01"] = ["c4", "c3", "c2"]
    settings = DiffSettings(until="2024-01-02", since="2024-01-01")
    ctx = resolve_push_range(graph, settings, _push_ci())
    assert ctx.current == "c3"
    assert ctx.previous == "c2"


def test_push_until_without_commit_is_not_found(graph):
    _linear(graph, "c1", "c2")
    with pytest.raises(RangeError) as exc:
        resolve_push_range(graph, DiffSettings(until="1999-01-01"), _push_ci())
    assert exc.value.kind is RangeErrorKind.NOT_FOUND


def test_push_tag_compares_with_previous_tag(graph):
    _linear(graph, "c1", "c2", "c3")
    graph.tags = ["v2.0.0", "v1.0.0"]
    graph.refs["v1.0.0"] = "c1"
    ci = _push_ci(ref="refs/tags/v2.0.0", ref_name="v2.0.0", event_base_ref="refs/heads/main")
    ctx = resolve_push_range(graph, DiffSettings(), ci)
    assert (ctx.previous, ctx.current) == ("c1", "c3")


def test_push_tag_without_previous_tag_is_not_found(graph):
    _linear(graph, "c1", "c2")
    graph.tags = ["v1.0.0"]
    ci = _push_ci(ref="refs/tags/v1.0.0", ref_name="v1.0.0")
    with pytest.raises(RangeError) as exc:
        resolve_push_range(graph, DiffSettings(), ci)
    assert exc.value.kind is RangeErrorKind.NOT_FOUND


def test_push_shallow_clone_deepens_branch(graph):
    _linear(graph, "c1", "c2")
    graph.shallow = True
    resolve_push_range(graph, DiffSettings(fetch_depth=25), _push_ci())
    call = graph.fetch_calls[0]
    assert call["refspecs"] == ["+refs/heads/main:refs/remotes/origin/main"]
    assert call["depth"] == 25
    assert call["extra_args"] == BRANCH_FETCH_ARGS


def test_push_shallow_tag_deepens_source_branch_and_submodules(graph, make_graph):
    _linear(graph, "c1", "c2")
    graph.shallow = True
    graph.tags = ["v2", "v1"]
    graph.refs["v1"] = "c1"
    graph.subgraphs["lib"] = make_graph("repo/lib")
    ci = _push_ci(ref="refs/tags/v2", ref_name="v2", event_base_ref="refs/heads/release")
    resolve_push_range(graph, DiffSettings(), ci)

    assert graph.fetch_calls[0]["refspecs"] == ["+refs/heads/release:refs/remotes/origin/release"]
    assert graph.fetch_calls[0]["extra_args"] == TAG_FETCH_ARGS
    sub_call = graph.subgraphs["lib"].fetch_calls[0]
    assert sub_call["remote"] is None
    assert sub_call["depth"] == 50


def test_push_fetch_failure_is_not_fatal(graph):
    _linear(graph, "c1", "c2")
    graph.shallow = True
    graph.fetch_results = [128]
    ctx = resolve_push_range(graph, DiffSettings(), _push_ci())
    assert ctx.previous == "c1"


def test_pull_request_defaults_to_three_dot(graph):
    _pull_request_graph(graph)
    ctx = resolve_pull_request_range(graph, DiffSettings(), _pr_ci())
    assert (ctx.previous, ctx.current, ctx.operator) == ("b1", "h2", DiffOperator.THREE_DOT)
    # the validating diff is taken from the merge base
    assert graph.diff_calls == [("b0", "h2")]


def test_pull_request_empty_base_ref_forces_two_dot(graph):
    _pull_request_graph(graph)
    ctx = resolve_pull_request_range(graph, DiffSettings(), _pr_ci(pull_request_base_ref=""))
    assert ctx.operator is DiffOperator.TWO_DOT
    assert ctx.previous == "b1"


def test_pull_request_fork_forces_two_dot(graph):
    _pull_request_graph(graph)
    ctx = resolve_pull_request_range(graph, DiffSettings(), _pr_ci(head_repo_fork=True))
    assert ctx.operator is DiffOperator.TWO_DOT


def test_pull_request_unreachable_merge_base_forces_two_dot(graph):
    _pull_request_graph(graph)
    # a shallow clone where main's history is cut off from the head's
    graph.parents["b1"] = ["b-missing"]
    graph.shallow = True
    ctx = resolve_pull_request_range(graph, DiffSettings(), _pr_ci())

    assert ctx.operator is DiffOperator.TWO_DOT
    assert ctx.previous == "b1"
    deepen_calls = [c for c in graph.fetch_calls if c["refspecs"] == ["+refs/heads/main:refs/remotes/origin/main"]]
    assert len(deepen_calls) == MAX_MERGE_BASE_ATTEMPTS


def test_pull_request_deepening_recovers_merge_base(graph):
    _pull_request_graph(graph)
    graph.parents["b1"] = ["b-missing"]
    graph.shallow = True

    def reveal_history(g):
        if len(g.fetch_calls) == 3:
            g.parents["b1"] = ["b0"]

    graph.on_fetch = reveal_history
    ctx = resolve_pull_request_range(graph, DiffSettings(), _pr_ci())

    assert ctx.operator is DiffOperator.THREE_DOT
    # head fetch, then two deepen attempts
    assert len(graph.fetch_calls) == 3


def test_pull_request_head_fetch_fallback(graph):
    _pull_request_graph(graph)
    graph.shallow = True
    graph.fetch_results = [1]
    resolve_pull_request_range(graph, DiffSettings(), _pr_ci())
    assert graph.fetch_calls[0]["refspecs"] == ["pull/7/head:feature"]
    assert graph.fetch_calls[1]["refspecs"] == ["+refs/heads/feature*:refs/remotes/origin/feature*"]


def test_pull_request_since_last_remote_commit(graph):
    _pull_request_graph(graph)
    settings = DiffSettings(since_last_remote_commit=True)
    ctx = resolve_pull_request_range(graph, settings, _pr_ci(event_before="h1"))
    assert ctx.previous == "h1"


def test_pull_request_unresolvable_before_falls_back_to_base_sha(graph):
    _pull_request_graph(graph)
    graph.shallow = True
    settings = DiffSettings(since_last_remote_commit=True)
    ctx = resolve_pull_request_range(graph, settings, _pr_ci(event_before="gone"))
    assert ctx.previous == "b1"
    assert graph.tracked == ["main"]


def test_pull_request_missing_base_branch_uses_base_sha(graph):
    _pull_request_graph(graph)
    del graph.refs["origin/main"]
    ctx = resolve_pull_request_range(graph, DiffSettings(), _pr_ci(pull_request_base_sha="b0"))
    assert ctx.previous == "b0"


def test_pull_request_without_changes_is_fatal(graph):
    _pull_request_graph(graph)
    graph.commit("h3", ["h2"], files={"base.txt": "0", "feature.txt": "2"})
    with pytest.raises(RangeError) as exc:
        resolve_pull_request_range(graph, DiffSettings(base_sha="h2"), _pr_ci())
    assert exc.value.kind is RangeErrorKind.EMPTY_RANGE


def test_pull_request_unknown_previous_is_not_found(graph):
    _pull_request_graph(graph)
    del graph.refs["origin/main"]
    with pytest.raises(RangeError) as exc:
        resolve_pull_request_range(graph, DiffSettings(), _pr_ci(pull_request_base_sha="nope"))
    assert exc.value.kind is RangeErrorKind.NOT_FOUND
