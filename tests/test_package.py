from pathlib import Path

import pytest

from clib_install.exceptions import ManifestParseError
from clib_install.models.manifest import (
    Manifest,
    load_local_manifest,
    load_manifest_file,
)
from clib_install.models.package import (
    PackageDescriptor,
    PackageIdentifier,
    is_local_target,
    normalize_version,
    parse_slug,
)
from clib_install.utils.urls import raw_file_url, registry_index_url, url_host


class TestSlugs:
    @pytest.mark.parametrize(
        "slug, expected",
        [
            ("list", (PackageIdentifier("clibs", "list"), "master")),
            ("clibs/list", (PackageIdentifier("clibs", "list"), "master")),
            ("owner/pkg@1.2.3", (PackageIdentifier("owner", "pkg"), "1.2.3")),
            ("owner/pkg@*", (PackageIdentifier("owner", "pkg"), "master")),
            ("owner/pkg@", (PackageIdentifier("owner", "pkg"), "master")),
            ("  owner/pkg@v2 ", (PackageIdentifier("owner", "pkg"), "v2")),
            ("/pkg", (PackageIdentifier("clibs", "pkg"), "master")),
        ],
    )
    def test_parse_slug(self, slug, expected) -> None:
        assert parse_slug(slug) == expected

    @pytest.mark.parametrize("slug", ["", "owner/", "@1.0"])
    def test_parse_slug_rejects_missing_name(self, slug) -> None:
        with pytest.raises(ValueError):
            parse_slug(slug)

    @pytest.mark.parametrize(
        "version, expected",
        [(None, "master"), ("", "master"), ("*", "master"), ("latest", "master"),
         ("1.0.0", "1.0.0")],
    )
    def test_normalize_version(self, version, expected) -> None:
        assert normalize_version(version) == expected

    def test_identifier_equality_ignores_spelling(self) -> None:
        assert PackageIdentifier.parse("list@1.0") == PackageIdentifier.parse(
            "clibs/list"
        )
        assert str(PackageIdentifier("a", "b")) == "a/b"


class TestLocalTargets:
    @pytest.mark.parametrize("slug", [".", "./"])
    def test_project_forms_are_local(self, slug) -> None:
        assert is_local_target(slug)

    def test_existing_file_is_local(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.chdir(tmp_path)
        (tmp_path / "deps.json").write_text("{}")

        assert is_local_target("deps.json")
        assert is_local_target(str(tmp_path / "deps.json"))
        assert not is_local_target("owner/pkg")

    @pytest.mark.parametrize("slug", ["./vendor", "../x", "/abs/missing/path"])
    def test_missing_paths_are_not_local(
        self, slug, tmp_path: Path, monkeypatch
    ) -> None:
        monkeypatch.chdir(tmp_path)
        (tmp_path / "vendor").mkdir()

        assert not is_local_target(slug)


class TestManifestFiles:
    def test_undecodable_manifest(self, tmp_path: Path) -> None:
        path = tmp_path / "clib.json"
        path.write_bytes(b'{"name": "\xff\xfe"}')

        with pytest.raises(ManifestParseError):
            load_manifest_file(path)

    def test_unreadable_manifest(self, tmp_path: Path) -> None:
        (tmp_path / "clib.json").mkdir()

        with pytest.raises(ManifestParseError):
            load_manifest_file(tmp_path / "clib.json")

    def test_project_without_manifest(self, tmp_path: Path) -> None:
        assert load_local_manifest(tmp_path) is None

    def test_clib_json_preferred_over_package_json(self, tmp_path: Path) -> None:
        (tmp_path / "clib.json").write_text('{"name": "clib"}')
        (tmp_path / "package.json").write_text('{"name": "npm"}')

        assert load_local_manifest(tmp_path).name == "clib"


class TestDescriptor:
    def test_declared_version_and_name(self) -> None:
        manifest = Manifest(name="list.c", version="0.4.0", src=["src/list.c"])
        descriptor = manifest.to_descriptor(
            PackageIdentifier("clibs", "list"), "master", "https://github.com/clibs/list"
        )

        assert descriptor.key == "clibs/list@master"
        assert descriptor.resolved_version == "0.4.0"
        assert descriptor.install_name == "list.c"
        assert descriptor.src == ("src/list.c",)

    def test_dependency_slugs(self) -> None:
        descriptor = PackageDescriptor(
            identifier=PackageIdentifier("a", "b"),
            version="master",
            href="",
            dependencies={"x/y": "*"},
            development={"t/t": "1.0"},
        )

        assert descriptor.dependency_slugs() == {"x/y": "*"}
        assert descriptor.dependency_slugs(True) == {"x/y": "*", "t/t": "1.0"}
        with pytest.raises(TypeError):
            descriptor.dependencies["z/z"] = "1"

    def test_null_sections_and_numeric_ranges(self) -> None:
        manifest = Manifest.model_validate(
            {"dependencies": None, "development": {"a/b": 1}, "src": None}
        )

        assert manifest.dependencies == {}
        assert manifest.development == {"a/b": "1"}
        assert manifest.src == []


class TestUrls:
    def test_github_wiki_index(self) -> None:
        assert registry_index_url("https://github.com/clibs/clib/wiki/Packages") == (
            "https://raw.githubusercontent.com/wiki/clibs/clib/Packages.md"
        )
        assert registry_index_url("https://x.org/index.json") == "https://x.org/index.json"

    @pytest.mark.parametrize(
        "href, expected",
        [
            (
                "https://github.com/clibs/list",
                "https://raw.githubusercontent.com/clibs/list/1.0/src/list.c",
            ),
            (
                "https://github.com/clibs/list.git",
                "https://raw.githubusercontent.com/clibs/list/1.0/src/list.c",
            ),
            (
                "https://gitlab.example.com/acme/list",
                "https://gitlab.example.com/acme/list/-/raw/1.0/src/list.c",
            ),
            ("https://files.example.com/list/", "https://files.example.com/list/1.0/src/list.c"),
        ],
    )
    def test_raw_file_url(self, href, expected) -> None:
        assert raw_file_url(href, "1.0", "/src/list.c") == expected

    def test_url_host(self) -> None:
        assert url_host("https://GitHub.com/a/b") == "github.com"
        assert url_host("not a url") == ""
