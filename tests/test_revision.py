"""
Tests for application revision archive assembly.
"""

import time
import zipfile
import pytest
from pathlib import Path
from unittest.mock import patch

from cdrunner.errors import ConfigurationError, PackagingFailure
from cdrunner.revision import ApplicationRevision

CAC = "CUSTOM_APPSPEC_CONTENT"
AC = "APPSPEC_CONTENT"
REVISION_PATHS = "some/path/**/*.html\nappspec.yml"
RESULT_PATHS = ["index.html", "inner/path/error.html", "inner/path/test/test.html", "appspec.yml"]


class RevisionFixture:
    """Base and temp directories plus the captured packaging log."""

    def __init__(self, root: Path):
        self.base_dir = root / "base"
        self.temp_dir = root / "temp"
        self.base_dir.mkdir()
        self.temp_dir.mkdir()
        self.messages = []

    def write(self, relative: str, content: str = None, base: Path = None) -> Path:
        path = (base or self.base_dir) / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content if content is not None else relative)
        return path

    def fill(self, with_appspec: bool) -> None:
        for p in ("some/path/index.html", "some/path/inner/path/error.html", "some/path/inner/path/test/test.html",
                  "another/path/index.html", "another/path/inner/path/error.html",
                  "another/path/inner/path/test/test.html"):
            self.write(p)
        if with_appspec:
            self.write("appspec.yml", AC)

    def create(self, paths: str, custom_appspec: str = None) -> ApplicationRevision:
        return ApplicationRevision(
            "test_revision", paths, self.base_dir, self.temp_dir, custom_appspec
        ).with_logger(self.messages.append)

    def log(self, *lines: str) -> list:
        return [
            line.replace("##BASE_DIR##", str(self.base_dir)).replace("##TEMP_DIR##", str(self.temp_dir))
            for line in lines
        ]


@pytest.fixture
def rev(tmp_path):
    return RevisionFixture(tmp_path)


def assert_revision(archive: Path, paths: list, appspec_content: str) -> None:
    with zipfile.ZipFile(archive) as zf:
        names = zf.namelist()
        assert sorted(names) == sorted(paths)
        assert zf.read("appspec.yml").decode("utf-8") == appspec_content


class TestReadyRevision:
    """Test pre-built archives are returned as is."""

    @pytest.mark.parametrize("ext", [".zip", ".tar", ".tar.gz"])
    def test_ready_revision(self, rev, ext):
        """Test a relative ready revision is resolved against the base directory."""
        path = "some/path/readyRevision" + ext
        ready = rev.write(path)

        assert rev.create(path).get_archive() == ready
        assert rev.messages == []

    def test_ready_revision_absolute_path(self, rev):
        """Test an absolute ready revision passes through."""
        ready = rev.write("some/path/readyRevision.zip", base=rev.temp_dir)
        assert rev.create(str(ready)).get_archive() == ready


class TestAppSpec:
    """Test appspec.yml discovery and custom AppSpec injection."""

    def test_no_files_found(self, rev):
        """Test an empty file set fails instead of producing an empty archive."""
        with pytest.raises(ConfigurationError, match="No application revision files found"):
            rev.create(REVISION_PATHS).get_archive()
        assert not (rev.temp_dir / "test_revision.zip").exists()

    def test_no_appspec_yml_found(self, rev):
        """Test a missing appspec.yml without custom AppSpec fails."""
        rev.fill(False)
        with pytest.raises(ConfigurationError) as e:
            rev.create(REVISION_PATHS).get_archive()
        assert str(e.value) == (
            "No appspec.yml file found among application revision files and no custom AppSpec file provided"
        )

    def test_custom_content_provided(self, rev):
        """Test literal custom AppSpec content is written to the temp directory."""
        rev.fill(False)

        assert_revision(rev.create(REVISION_PATHS, CAC).get_archive(), RESULT_PATHS, CAC)
        assert (rev.temp_dir / "appspec.yml").read_text() == CAC
        assert rev.messages == rev.log(
            "Will use custom AppSpec file ##TEMP_DIR##/appspec.yml",
            "Packaging 4 files to application revision ##TEMP_DIR##/test_revision.zip",
        )

    def test_custom_content_reuses_existing_file(self, rev):
        """Test an already materialized custom AppSpec is not rewritten."""
        rev.fill(False)
        rev.write("appspec.yml", "EARLIER", base=rev.temp_dir)

        assert_revision(rev.create(REVISION_PATHS, CAC).get_archive(), RESULT_PATHS, "EARLIER")

    def test_custom_path_provided(self, rev):
        """Test a relative custom AppSpec path is resolved against the base directory."""
        rev.fill(False)
        rev.write("another/path/appspec.yml", CAC)

        assert_revision(rev.create(REVISION_PATHS, "another/path/appspec.yml").get_archive(), RESULT_PATHS, CAC)
        assert rev.messages == rev.log(
            "Will use custom AppSpec file ##BASE_DIR##/another/path/appspec.yml",
            "Packaging 4 files to application revision ##TEMP_DIR##/test_revision.zip",
        )

    def test_custom_absolute_path_provided(self, rev):
        """Test an absolute custom AppSpec path is used as is."""
        rev.fill(False)
        custom = rev.write("some/path/appspec.yml", CAC, base=rev.temp_dir)

        assert_revision(rev.create(REVISION_PATHS, str(custom)).get_archive(), RESULT_PATHS, CAC)
        assert rev.messages == rev.log(
            "Will use custom AppSpec file ##TEMP_DIR##/some/path/appspec.yml",
            "Packaging 4 files to application revision ##TEMP_DIR##/test_revision.zip",
        )

    def test_existing_appspec_replaced_by_custom_content(self, rev):
        """Test custom content replaces the collected appspec.yml."""
        rev.fill(True)

        archive = rev.create(REVISION_PATHS, CAC).get_archive()

        assert_revision(archive, RESULT_PATHS, CAC)
        with zipfile.ZipFile(archive) as zf:
            assert zf.namelist().count("appspec.yml") == 1
        assert rev.messages == rev.log(
            "Will replace existing AppSpec file ##BASE_DIR##/appspec.yml with custom ##TEMP_DIR##/appspec.yml",
            "Packaging 4 files to application revision ##TEMP_DIR##/test_revision.zip",
        )

    def test_existing_appspec_replaced_by_custom_path(self, rev):
        """Test a custom AppSpec path replaces the collected appspec.yml."""
        rev.fill(True)
        rev.write("another/path/appspec.yml", CAC)

        assert_revision(rev.create(REVISION_PATHS, "another/path/appspec.yml").get_archive(), RESULT_PATHS, CAC)
        assert rev.messages == rev.log(
            "Will replace existing AppSpec file ##BASE_DIR##/appspec.yml "
            "with custom ##BASE_DIR##/another/path/appspec.yml",
            "Packaging 4 files to application revision ##TEMP_DIR##/test_revision.zip",
        )

    def test_custom_appspec_already_collected(self, rev):
        """Test a custom AppSpec that is also matched by the rules is packaged once."""
        rev.fill(False)
        rev.write("another/path/appspec.yml", CAC)

        archive = rev.create("**", "another/path/appspec.yml").get_archive()

        with zipfile.ZipFile(archive) as zf:
            names = zf.namelist()
        assert names.count("appspec.yml") == 1
        assert "another/path/appspec.yml" not in names
        assert len(names) == 7


class TestPackaging:
    """Test archive layout for different rule sets."""

    def test_with_appspec_yml(self, rev):
        """Test the archive is written to the temp directory."""
        rev.fill(True)

        archive = rev.create(REVISION_PATHS).get_archive()

        assert archive == rev.temp_dir / "test_revision.zip"
        assert_revision(archive, RESULT_PATHS, AC)
        assert rev.messages == rev.log("Packaging 4 files to application revision ##TEMP_DIR##/test_revision.zip")

    def test_zip_name_kept(self, rev):
        """Test a name ending in .zip is not extended."""
        rev.fill(True)
        archive = ApplicationRevision("app.zip", "**", rev.base_dir, rev.temp_dir).get_archive()
        assert archive == rev.temp_dir / "app.zip"

    def test_wildcard_two_stars(self, rev):
        """Test a directory wildcard strips the directory prefix."""
        rev.fill(True)
        assert_revision(rev.create("some/path/**,appspec.yml").get_archive(), RESULT_PATHS, AC)

    def test_wildcard_include_all(self, rev):
        """Test ** packages every file with its relative path."""
        rev.fill(True)

        assert_revision(rev.create("**").get_archive(), [
            "some/path/index.html", "some/path/inner/path/error.html", "some/path/inner/path/test/test.html",
            "another/path/index.html", "another/path/inner/path/error.html",
            "another/path/inner/path/test/test.html", "appspec.yml",
        ], AC)
        assert rev.messages == rev.log("Packaging 7 files to application revision ##TEMP_DIR##/test_revision.zip")

    def test_simple_paths(self, rev):
        """Test exact paths land in the archive root."""
        rev.fill(True)
        paths = "some/path/index.html,some/path/inner/path/error.html,some/path/inner/path/test/test.html,appspec.yml"

        assert_revision(rev.create(paths).get_archive(), ["index.html", "error.html", "test.html", "appspec.yml"], AC)

    def test_simple_dir(self, rev):
        """Test a directory rule keeps paths below the directory."""
        rev.fill(True)
        assert_revision(
            rev.create("some/path/inner/path/,appspec.yml").get_archive(),
            ["error.html", "test/test.html", "appspec.yml"], AC,
        )

    def test_simple_paths_with_mapping(self, rev):
        """Test exact paths with destinations."""
        rev.fill(False)
        rev.write("another/path/appspec.yml", AC)
        paths = ("some/path/index.html=>pages/dist,some/path/inner/path/error.html=>pages/dist/error,"
                 "some/path/inner/path/test/test.html=>pages,another/path/appspec.yml => .")

        assert_revision(rev.create(paths).get_archive(), [
            "pages/dist/index.html", "pages/dist/error/error.html", "pages/test.html", "appspec.yml",
        ], AC)

    def test_simple_paths_with_mapping_with_slashes(self, rev):
        """Test leading and trailing slashes of destinations are ignored."""
        rev.fill(False)
        rev.write("another/path/appspec.yml", AC)
        paths = ("some/path/index.html=>/pages/dist,some/path/inner/path/error.html=>pages/dist/error/,"
                 "some/path/inner/path/test/test.html=>/pages/,another/path/appspec.yml => .")

        assert_revision(rev.create(paths).get_archive(), [
            "pages/dist/index.html", "pages/dist/error/error.html", "pages/test.html", "appspec.yml",
        ], AC)

    def test_simple_dir_with_mapping(self, rev):
        """Test overlapping directory rules, the last matching one wins."""
        rev.fill(True)
        paths = "some/path/=>pages/dist,some/path/inner/path/=>pages/dist/error,some/path/inner/path/test/=>pages,appspec.yml"

        assert_revision(rev.create(paths).get_archive(), [
            "pages/dist/index.html", "pages/dist/error/error.html", "pages/test.html", "appspec.yml",
        ], AC)

    def test_wildcard_two_stars_with_mapping(self, rev):
        """Test overlapping wildcard rules with destinations."""
        rev.fill(True)
        paths = "some/path/**=>pages/dist,some/path/inner/path/test/**=>pages,appspec.yml => ."

        assert_revision(rev.create(paths).get_archive(), [
            "pages/dist/index.html", "pages/dist/inner/path/error.html", "pages/test.html", "appspec.yml",
        ], AC)

    def test_wildcard_with_plus_prefix(self, rev):
        """Test include markers on rules."""
        rev.fill(True)
        paths = "+:some/path/**=>pages/dist,+:some/path/inner/path/test/**=>pages,+:appspec.yml"

        assert_revision(rev.create(paths).get_archive(), [
            "pages/dist/index.html", "pages/dist/inner/path/error.html", "pages/test.html", "appspec.yml",
        ], AC)

    def test_wildcard_three_stars_with_mapping(self, rev):
        """Test file wildcards below directory wildcards."""
        rev.fill(True)
        paths = "some/path/**/*.html=>pages/dist,some/path/inner/path/test/**/*.html=>pages,appspec.yml => ."

        assert_revision(rev.create(paths).get_archive(), [
            "pages/dist/index.html", "pages/dist/inner/path/error.html", "pages/test.html", "appspec.yml",
        ], AC)

    def test_wildcard_include_all_with_mapping(self, rev):
        """Test a catch-all rule overridden by later and exact rules."""
        rev.fill(True)
        paths = "** => pages/dist,some/path/**/test/** => pages,another/path/**/test/** => .,appspec.yml => ."

        assert_revision(rev.create(paths).get_archive(), [
            "pages/dist/some/path/index.html", "pages/dist/some/path/inner/path/error.html", "pages/test.html",
            "pages/dist/another/path/index.html", "pages/dist/another/path/inner/path/error.html",
            "test.html", "appspec.yml",
        ], AC)

    def test_only_dot(self, rev):
        """Test "." packages the whole base directory."""
        rev.fill(True)
        with zipfile.ZipFile(rev.create(".").get_archive()) as zf:
            assert len(zf.namelist()) == 7

    def test_empty_from(self, rev):
        """Test an empty source maps every file below the destination."""
        rev.fill(True)

        assert_revision(rev.create("=>dist,appspec.yml").get_archive(), [
            "dist/some/path/index.html", "dist/some/path/inner/path/error.html",
            "dist/some/path/inner/path/test/test.html", "dist/another/path/index.html",
            "dist/another/path/inner/path/error.html", "dist/another/path/inner/path/test/test.html",
            "appspec.yml",
        ], AC)

    @pytest.mark.parametrize("separator", ["\r\n", "\n\n"])
    def test_blank_items_package_nothing_extra(self, rev, separator):
        """Test CRLF breaks and blank lines between rules do not package unlisted files."""
        rev.write("out/a.txt")
        rev.write("secret.env")
        rev.write("appspec.yml", AC)

        assert_revision(rev.create(f"out/**=>dist{separator}appspec.yml").get_archive(),
                        ["dist/a.txt", "appspec.yml"], AC)

    def test_no_false_matches(self, rev):
        """Test similarly named files are not mapped by unrelated rules."""
        rev.fill(True)
        rev.write("another_file")

        assert_revision(rev.create("another/path/**=>dist , appspec.yml, another_file ").get_archive(), [
            "dist/index.html", "dist/inner/path/error.html", "dist/inner/path/test/test.html",
            "appspec.yml", "another_file",
        ], AC)

    def test_contents_and_timestamps_preserved(self, rev):
        """Test unpacking the archive reproduces every file and its modification time."""
        rev.fill(True)
        blob = rev.write("bin/data.bin")
        blob.write_bytes(bytes(range(256)) * 1024)

        archive = rev.create("**").get_archive()

        with zipfile.ZipFile(archive) as zf:
            for info in zf.infolist():
                source = rev.base_dir / info.filename
                assert zf.read(info) == source.read_bytes()
            info = zf.getinfo("bin/data.bin")
        expected = time.localtime(blob.stat().st_mtime)[:5]
        assert info.date_time[:5] == expected

    def test_read_failure(self, rev):
        """Test an unreadable file aborts packaging naming the file."""
        rev.fill(True)

        with patch("cdrunner.revision.shutil.copyfileobj", side_effect=OSError("disk error")):
            with pytest.raises(PackagingFailure, match="Failed to add file .* to application revision") as e:
                rev.create(REVISION_PATHS).get_archive()

        assert isinstance(e.value.__cause__, OSError)
