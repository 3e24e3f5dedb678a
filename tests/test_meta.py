"""Tests for the manifest model, reference parsing and manifest loading."""

import pytest

from bpm.errors import ManifestError, UnknownPackage, UnknownRepository, UnknownVersion
from bpm.meta import (
    PackageReference,
    RepositorySet,
    load_manifest,
    load_repositories,
    parse_dependency,
    parse_manifest,
    parse_reference,
    version_key,
)

from conftest import write_manifest


def _repos(versions, name="tool"):
    data = {name: {v: {"path": "/opt/x", "binaries": ["x"]} for v in versions}}
    return RepositorySet([parse_manifest(data, "main")])


class TestVersionOrdering:

    def test_highest_version_selected(self):
        repos = _repos(["1.0.0", "0.9.0"])
        assert repos.latest_version("main", "tool").version == "1.0.0"

    def test_natural_not_lexicographic(self):
        repos = _repos(["1.9.0", "1.10.0", "1.2"])
        assert repos.latest_version("main", "tool").version == "1.10.0"

    def test_equal_versions_later_declaration_wins(self):
        repos = _repos(["1.0", "1.0.0"])
        assert repos.latest_version("main", "tool").version == "1.0.0"
        repos = _repos(["1.0.0", "1.0"])
        assert repos.latest_version("main", "tool").version == "1.0"

    def test_unparsable_versions_rank_below_pep440(self):
        assert version_key("nightly") < version_key("0.0.1")
        assert version_key("alpha") < version_key("beta")
        repos = _repos(["nightly", "0.1.0"])
        assert repos.latest_version("main", "tool").version == "0.1.0"


class TestLookup:

    def test_lookup_exact(self, neovim_repos):
        pv = neovim_repos.lookup("main", "neovim", "0.9.0")
        assert pv.binaries == ("bin/nvim",)
        assert pv.dependencies == (PackageReference("main", "libuv", "1.0.0"),)

    def test_lookup_without_version_is_latest(self, neovim_repos):
        assert neovim_repos.lookup("main", "libuv").version == "1.0.0"

    def test_unknown_repository(self, neovim_repos):
        with pytest.raises(UnknownRepository) as exc:
            neovim_repos.lookup("extra", "neovim")
        assert exc.value.repo == "extra"

    def test_unknown_package(self, neovim_repos):
        with pytest.raises(UnknownPackage):
            neovim_repos.lookup("main", "vim")

    def test_lookup_is_case_sensitive(self, neovim_repos):
        with pytest.raises(UnknownPackage):
            neovim_repos.lookup("main", "Neovim")

    def test_unknown_version(self, neovim_repos):
        with pytest.raises(UnknownVersion) as exc:
            neovim_repos.lookup("main", "neovim", "0.8.0")
        assert exc.value.version == "0.8.0"

    def test_duplicate_repository_rejected(self, neovim_data):
        repos = RepositorySet([parse_manifest(neovim_data, "main")])
        with pytest.raises(ManifestError):
            repos.add(parse_manifest(neovim_data, "main"))

    def test_search(self, neovim_repos):
        assert neovim_repos.search("uv") == [("main", "libuv", ["1.0.0"])]
        assert neovim_repos.search("zzz") == []


class TestReferences:

    def test_parse_reference(self):
        assert parse_reference("main:neovim") == PackageReference("main", "neovim")
        assert parse_reference("main:neovim:0.9.0") == PackageReference("main", "neovim", "0.9.0")

    @pytest.mark.parametrize("text", ["neovim", "main:", "a:b:c:d", ""])
    def test_parse_reference_invalid(self, text):
        with pytest.raises(ManifestError):
            parse_reference(text)

    def test_bare_dependency_uses_declaring_repo(self):
        assert parse_dependency("libuv", "main") == PackageReference("main", "libuv")
        assert parse_dependency("extra:libuv", "main") == PackageReference("extra", "libuv")

    def test_str_round_trip(self):
        ref = PackageReference("main", "neovim", "0.9.0")
        assert parse_reference(str(ref)) == ref


class TestManifestLoading:

    def test_load_toml_nested(self, tmp_path):
        manifest = write_manifest(tmp_path / "main", """
[neovim."0.9.0"]
path = "/opt/neovim"
binaries = ["bin/nvim"]
dependencies = ["main:libuv:1.0.0", "libtermkey"]

[libuv."1.0.0"]
path = "/opt/libuv"
binaries = ["libuv.so"]
""")
        repo = load_manifest(str(manifest), "main")
        pv = repo.packages["neovim"]["0.9.0"]
        assert pv.path == "/opt/neovim"
        assert pv.dependencies == (
            PackageReference("main", "libuv", "1.0.0"),
            PackageReference("main", "libtermkey"),
        )
        assert repo.packages["libuv"]["1.0.0"].dependencies == ()

    def test_load_flat_keys(self, tmp_path):
        manifest = write_manifest(tmp_path / "main", """
["neovim.0.9.0"]
path = "/opt/neovim"
binaries = ["nvim"]
""")
        repo = load_manifest(str(manifest), "main")
        assert list(repo.packages["neovim"]) == ["0.9.0"]

    def test_load_yaml(self, tmp_path):
        (tmp_path / "packages.yml").write_text(
            'ripgrep:\n  "14.0.0":\n    path: /opt/rg\n    binaries: [rg]\n', encoding="utf-8")
        repo = load_manifest(str(tmp_path / "packages.yml"), "tools")
        assert repo.packages["ripgrep"]["14.0.0"].binaries == ("rg",)

    def test_empty_binaries_rejected(self):
        with pytest.raises(ManifestError, match="binaries"):
            parse_manifest({"x": {"1.0": {"path": "/opt/x", "binaries": []}}}, "main")

    def test_binaries_with_same_store_name_rejected(self):
        raw = {"x": {"1.0": {"path": "/opt/x", "binaries": ["bin/tool", "libexec/tool"]}}}
        with pytest.raises(ManifestError, match="tool"):
            parse_manifest(raw, "main")

    def test_repeated_binary_is_deduplicated(self):
        raw = {"x": {"1.0": {"path": "/opt/x", "binaries": ["bin/x", "bin/x"]}}}
        assert parse_manifest(raw, "main").packages["x"]["1.0"].binaries == ("bin/x",)

    def test_missing_path_rejected(self):
        with pytest.raises(ManifestError, match="path"):
            parse_manifest({"x": {"1.0": {"binaries": ["x"]}}}, "main")

    def test_malformed_toml(self, tmp_path):
        manifest = write_manifest(tmp_path / "main", "[neovim\n")
        with pytest.raises(ManifestError):
            load_manifest(str(manifest), "main")

    def test_load_repositories(self, tmp_path):
        write_manifest(tmp_path / "main", '[a."1.0"]\npath = "/a"\nbinaries = ["a"]\n')
        write_manifest(tmp_path / "extra", '[b."2.0"]\npath = "/b"\nbinaries = ["b"]\n')
        (tmp_path / "empty").mkdir()
        repos = load_repositories(str(tmp_path))
        assert sorted(r.id for r in repos) == ["extra", "main"]
        assert repos.lookup("extra", "b").version == "2.0"

    def test_load_repositories_missing_dir(self, tmp_path):
        assert len(load_repositories(str(tmp_path / "nope"))) == 0
