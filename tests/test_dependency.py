"""Tests for the dependency resolver."""

import pytest

from bpm.dependency import Resolver
from bpm.errors import (
    ConflictingVersions,
    CyclicDependency,
    UnknownPackage,
    UnknownRepository,
    UnknownVersion,
)
from bpm.meta import PackageReference, RepositorySet, parse_manifest


def _pkg(*deps):
    return {"path": "/opt/pkg", "binaries": ["bin"], "dependencies": list(deps)}


def _resolver(data, repo="main", extra=None):
    repos = [parse_manifest(data, repo)]
    for repo_id, repo_data in (extra or {}).items():
        repos.append(parse_manifest(repo_data, repo_id))
    return Resolver(RepositorySet(repos))


def _ref(text):
    repo, name, version = (text.split(":") + [None])[:3]
    return PackageReference(repo, name, version)


class TestOrdering:

    def test_neovim_plan(self, neovim_repos):
        plan = Resolver(neovim_repos).resolve(PackageReference("main", "neovim", "0.9.0"))
        assert plan.as_list() == ["main:libuv:1.0.0", "main:neovim:0.9.0"]
        assert plan.root == PackageReference("main", "neovim", "0.9.0")

    def test_leaf_package(self, neovim_repos):
        plan = Resolver(neovim_repos).resolve(PackageReference("main", "libuv"))
        assert plan.as_list() == ["main:libuv:1.0.0"]

    def test_diamond_is_deduplicated(self):
        data = {
            "app": {"1.0": _pkg("main:left:1.0", "main:right:1.0")},
            "left": {"1.0": _pkg("main:base:1.0")},
            "right": {"1.0": _pkg("main:base:1.0")},
            "base": {"1.0": _pkg()},
        }
        plan = _resolver(data).resolve(_ref("main:app:1.0"))
        assert plan.as_list() == ["main:base:1.0", "main:left:1.0", "main:right:1.0", "main:app:1.0"]

    def test_every_step_after_its_dependencies(self):
        data = {
            "a": {"1": _pkg("main:b:1", "main:c:1", "main:d:1")},
            "b": {"1": _pkg("main:d:1", "main:e:1")},
            "c": {"1": _pkg("main:e:1")},
            "d": {"1": _pkg("main:e:1")},
            "e": {"1": _pkg()},
        }
        resolver = _resolver(data)
        plan = resolver.resolve(_ref("main:a:1"))
        steps = plan.steps
        assert len(steps) == len(set(steps)) == 5
        for ref in steps:
            for dep in plan.versions[ref].dependencies:
                assert steps.index(dep) < steps.index(ref)

    def test_declared_dependency_order_is_kept(self):
        data = {
            "app": {"1": _pkg("main:z:1", "main:a:1")},
            "z": {"1": _pkg()},
            "a": {"1": _pkg()},
        }
        plan = _resolver(data).resolve(_ref("main:app:1"))
        assert plan.as_list() == ["main:z:1", "main:a:1", "main:app:1"]

    def test_cross_repository_dependency(self):
        data = {"app": {"1": _pkg("extra:lib:2")}}
        extra = {"extra": {"lib": {"2": _pkg()}}}
        plan = _resolver(data, extra=extra).resolve(_ref("main:app:1"))
        assert plan.as_list() == ["extra:lib:2", "main:app:1"]

    def test_unpinned_root_picks_latest(self):
        data = {"tool": {"1.0.0": _pkg(), "0.9.0": _pkg()}}
        plan = _resolver(data).resolve(_ref("main:tool"))
        assert plan.as_list() == ["main:tool:1.0.0"]

    def test_pinned_and_unpinned_same_version_collapse(self):
        data = {
            "app": {"1": _pkg("main:lib", "main:mid:1")},
            "mid": {"1": _pkg("main:lib:2.0")},
            "lib": {"1.0": _pkg(), "2.0": _pkg()},
        }
        plan = _resolver(data).resolve(_ref("main:app:1"))
        assert plan.as_list() == ["main:lib:2.0", "main:mid:1", "main:app:1"]

    def test_deep_chain_has_no_recursion_limit(self):
        depth = 5000
        data = {f"p{i}": {"1": _pkg(f"main:p{i + 1}:1")} for i in range(depth)}
        data[f"p{depth}"] = {"1": _pkg()}
        plan = _resolver(data).resolve(_ref("main:p0:1"))
        assert len(plan) == depth + 1
        assert plan.steps[0] == _ref(f"main:p{depth}:1")
        assert plan.steps[-1] == _ref("main:p0:1")


class TestFailures:

    def test_two_node_cycle(self):
        data = {"a": {"1": _pkg("main:b:1")}, "b": {"1": _pkg("main:a:1")}}
        with pytest.raises(CyclicDependency) as exc:
            _resolver(data).resolve(_ref("main:a:1"))
        assert [str(r) for r in exc.value.path] == ["main:a:1", "main:b:1", "main:a:1"]

    def test_self_dependency(self):
        data = {"a": {"1": _pkg("main:a")}}
        with pytest.raises(CyclicDependency) as exc:
            _resolver(data).resolve(_ref("main:a:1"))
        assert len(exc.value.path) == 2

    def test_cycle_below_root(self):
        data = {
            "app": {"1": _pkg("main:x:1")},
            "x": {"1": _pkg("main:y:1")},
            "y": {"1": _pkg("main:z:1")},
            "z": {"1": _pkg("main:x:1")},
        }
        with pytest.raises(CyclicDependency) as exc:
            _resolver(data).resolve(_ref("main:app:1"))
        assert [r.name for r in exc.value.path] == ["app", "x", "y", "z", "x"]

    def test_unknown_repository(self, neovim_repos):
        with pytest.raises(UnknownRepository):
            Resolver(neovim_repos).resolve(_ref("extra:neovim"))

    def test_unknown_package(self, neovim_repos):
        with pytest.raises(UnknownPackage):
            Resolver(neovim_repos).resolve(_ref("main:emacs"))

    def test_unknown_version(self, neovim_repos):
        with pytest.raises(UnknownVersion):
            Resolver(neovim_repos).resolve(_ref("main:neovim:0.1.0"))

    def test_missing_transitive_dependency(self):
        data = {"app": {"1": _pkg("main:lib:9.9")}, "lib": {"1.0": _pkg()}}
        with pytest.raises(UnknownVersion) as exc:
            _resolver(data).resolve(_ref("main:app:1"))
        assert (exc.value.name, exc.value.version) == ("lib", "9.9")

    def test_conflicting_versions(self):
        data = {
            "app": {"1": _pkg("main:a:1", "main:b:1")},
            "a": {"1": _pkg("main:x:1.0")},
            "b": {"1": _pkg("main:x:2.0")},
            "x": {"1.0": _pkg(), "2.0": _pkg()},
        }
        with pytest.raises(ConflictingVersions) as exc:
            _resolver(data).resolve(_ref("main:app:1"))
        assert (exc.value.v1, exc.value.v2) == ("1.0", "2.0")
        assert "main:x" in exc.value.name


class TestExplain:

    def test_tree_marks_repeated_nodes(self):
        data = {
            "app": {"1": _pkg("main:left:1", "main:right:1")},
            "left": {"1": _pkg("main:base:1")},
            "right": {"1": _pkg("main:base:1")},
            "base": {"1": _pkg()},
        }
        tree = _resolver(data).explain(_ref("main:app:1"))
        assert tree["reference"] == "main:app:1"
        left, right = tree["dependencies"]
        assert left["dependencies"][0] == {"reference": "main:base:1", "dependencies": []}
        assert right["dependencies"][0]["seen"] is True

    def test_explain_propagates_errors(self):
        data = {"a": {"1": _pkg("main:b:1")}, "b": {"1": _pkg("main:a:1")}}
        with pytest.raises(CyclicDependency):
            _resolver(data).explain(_ref("main:a:1"))
