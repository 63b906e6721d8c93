"""Tests for the module zip archive builder."""

import os
import zipfile
from pathlib import Path

import pytest

from installas.module import ModuleVersion
from installas.proxy import archive
from installas.proxy.archive import ArchiveBuilder, is_vendored_package
from installas.proxy.errors import ArchiveError, ProxyIOError


@pytest.fixture
def module():
    """Module identity used by most tests."""
    return ModuleVersion.create("example.com/foo", "v1.0.0")


@pytest.fixture
def source_dir(tmp_path):
    """Create a module source tree with files that must be excluded."""
    src = tmp_path / "src"
    src.mkdir()
    (src / "go.mod").write_text("module example.com/foo\n")
    (src / "main.go").write_text("package main\n\nfunc main() {}\n")
    (src / "sub").mkdir()
    (src / "sub" / "util.go").write_text("package sub\n")

    # VCS metadata
    (src / ".git").mkdir()
    (src / ".git" / "config").write_text("[core]\n")

    # Nested module
    (src / "nested").mkdir()
    (src / "nested" / "go.mod").write_text("module example.com/foo/nested\n")
    (src / "nested" / "x.go").write_text("package nested\n")

    # Vendor directory
    (src / "vendor" / "example.com" / "dep").mkdir(parents=True)
    (src / "vendor" / "modules.txt").write_text("# example.com/dep v1.0.0\n")
    (src / "vendor" / "example.com" / "dep" / "dep.go").write_text("package dep\n")
    return src


@pytest.fixture
def dest(tmp_path):
    """Destination path for the archive."""
    out = tmp_path / "out"
    out.mkdir()
    return out / "v1.0.0.zip"


class TestVendoredPackage:
    """Tests for vendored package detection."""

    def test_vendored_files(self):
        """Test files inside vendored packages."""
        assert is_vendored_package("vendor/example.com/dep/dep.go") is True
        assert is_vendored_package("sub/vendor/x/y.go") is True

    def test_nested_vendor_fixed_offset(self):
        """Test nested vendor directories use the fixed-offset remainder."""
        assert is_vendored_package("sub/vendor/x.go") is True
        assert is_vendored_package("a/vendor/x.go") is True

    def test_nested_vendor_file_excluded(self, source_dir):
        """Test a file directly in a nested vendor directory is left out."""
        (source_dir / "sub" / "vendor").mkdir()
        (source_dir / "sub" / "vendor" / "x.go").write_text("package x\n")

        names = [rel for rel, _ in ArchiveBuilder().collect_files(source_dir)]
        assert "sub/vendor/x.go" not in names

    def test_vendor_top_level_files(self):
        """Test files directly in vendor/ are kept."""
        assert is_vendored_package("vendor/modules.txt") is False

    def test_unrelated_paths(self):
        """Test paths outside vendor directories."""
        assert is_vendored_package("main.go") is False
        assert is_vendored_package("vendored/x/y.go") is False


class TestCollectFiles:
    """Tests for file selection."""

    def test_excludes(self, source_dir):
        """Test VCS dirs, nested modules and vendored packages are skipped."""
        names = [rel for rel, _ in ArchiveBuilder().collect_files(source_dir)]
        assert names == ["go.mod", "main.go", "sub/util.go", "vendor/modules.txt"]

    @pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unsupported")
    def test_symlinks_skipped(self, source_dir):
        """Test symlinks are not archived."""
        os.symlink(source_dir / "main.go", source_dir / "link.go")
        os.symlink(source_dir / "sub", source_dir / "linkdir")

        names = [rel for rel, _ in ArchiveBuilder().collect_files(source_dir)]
        assert "link.go" not in names
        assert not any(name.startswith("linkdir/") for name in names)

    def test_missing_source(self, tmp_path):
        """Test a missing source directory is an IO error."""
        with pytest.raises(ProxyIOError):
            ArchiveBuilder().collect_files(tmp_path / "missing")

    def test_case_collision(self):
        """Test case-insensitive collisions are rejected."""
        files = [("README", Path("a")), ("readme", Path("b"))]
        with pytest.raises(ArchiveError, match="collision"):
            ArchiveBuilder._check_collisions(files)

    def test_case_collision_in_directory(self):
        """Test collisions between directory names are rejected."""
        files = [("Sub/a.go", Path("a")), ("sub/b.go", Path("b"))]
        with pytest.raises(ArchiveError):
            ArchiveBuilder._check_collisions(files)

    def test_no_collision_same_directory(self):
        """Test files sharing a directory are fine."""
        files = [("sub/a.go", Path("a")), ("sub/b.go", Path("b"))]
        ArchiveBuilder._check_collisions(files)

    def test_invalid_char_in_file_name(self, source_dir):
        """Test names with characters the go command rejects."""
        (source_dir / "it's.txt").write_text("quote\n")

        with pytest.raises(ArchiveError, match="invalid char"):
            ArchiveBuilder().collect_files(source_dir)

    def test_invalid_char_in_directory_name(self, source_dir):
        """Test directory elements are checked too."""
        (source_dir / "a*b").mkdir()
        (source_dir / "a*b" / "c.go").write_text("package c\n")

        with pytest.raises(ArchiveError, match="invalid char"):
            ArchiveBuilder().collect_files(source_dir)

    @pytest.mark.parametrize("name", ["aux.go", "CON", "lpt1.txt", "nul.tar.gz"])
    def test_windows_reserved_names(self, source_dir, name):
        """Test Windows device names are rejected with or without extension."""
        (source_dir / name).write_text("x\n")

        with pytest.raises(ArchiveError, match="disallowed"):
            ArchiveBuilder().collect_files(source_dir)

    def test_reserved_name_as_directory(self, source_dir):
        """Test reserved names are rejected as directory elements."""
        (source_dir / "com1").mkdir()
        (source_dir / "com1" / "x.go").write_text("package x\n")

        with pytest.raises(ArchiveError, match="disallowed"):
            ArchiveBuilder().collect_files(source_dir)

    def test_permitted_file_names(self, source_dir):
        """Test spaces, allowed punctuation and non-ASCII letters are kept."""
        for name in (
            "read me.txt",
            "a+b=c!#$%&().txt",
            "[x]{y}~^@.go",
            "\u0436.go",
            "auxiliary.go",
        ):
            (source_dir / name).write_text("x\n")

        names = [rel for rel, _ in ArchiveBuilder().collect_files(source_dir)]
        assert "read me.txt" in names
        assert "\u0436.go" in names
        assert "auxiliary.go" in names

    def test_invalid_name_checked_before_writing(self, module, source_dir, dest):
        """Test no archive or staging file is written for an invalid tree."""
        (source_dir / "it's.txt").write_text("quote\n")

        with pytest.raises(ArchiveError):
            ArchiveBuilder().build(module, source_dir, dest)

        assert list(dest.parent.iterdir()) == []


class TestBuild:
    """Tests for archive creation."""

    def test_entries_prefixed(self, module, source_dir, dest):
        """Test every entry is prefixed with module@version/."""
        ArchiveBuilder().build(module, source_dir, dest)

        with zipfile.ZipFile(dest) as zf:
            names = zf.namelist()

        assert names == [
            "example.com/foo@v1.0.0/go.mod",
            "example.com/foo@v1.0.0/main.go",
            "example.com/foo@v1.0.0/sub/util.go",
            "example.com/foo@v1.0.0/vendor/modules.txt",
        ]

    def test_round_trip(self, module, source_dir, dest, tmp_path):
        """Test extraction reproduces the kept files exactly."""
        ArchiveBuilder().build(module, source_dir, dest)

        extract_dir = tmp_path / "extract"
        with zipfile.ZipFile(dest) as zf:
            zf.extractall(extract_dir)

        root = extract_dir / "example.com" / "foo@v1.0.0"
        extracted = sorted(
            p.relative_to(root).as_posix() for p in root.rglob("*") if p.is_file()
        )
        assert extracted == ["go.mod", "main.go", "sub/util.go", "vendor/modules.txt"]
        for rel in extracted:
            assert (root / rel).read_bytes() == (source_dir / rel).read_bytes()

    def test_metadata_normalized(self, module, source_dir, dest):
        """Test timestamps and modes are fixed."""
        os.utime(source_dir / "main.go", (1_700_000_000, 1_700_000_000))
        os.chmod(source_dir / "main.go", 0o755)

        ArchiveBuilder().build(module, source_dir, dest)

        with zipfile.ZipFile(dest) as zf:
            for info in zf.infolist():
                assert info.date_time == (1980, 1, 1, 0, 0, 0)
                assert (info.external_attr >> 16) & 0o777 == 0o644
                assert info.compress_type == zipfile.ZIP_DEFLATED

    def test_deterministic(self, module, source_dir, tmp_path):
        """Test the same tree always yields identical bytes."""
        first = tmp_path / "a.zip"
        second = tmp_path / "b.zip"
        ArchiveBuilder().build(module, source_dir, first)
        (source_dir / "main.go").touch()
        ArchiveBuilder().build(module, source_dir, second)

        assert first.read_bytes() == second.read_bytes()

    def test_no_staging_file_left(self, module, source_dir, dest):
        """Test the staging file is renamed away."""
        ArchiveBuilder().build(module, source_dir, dest)

        assert dest.exists()
        assert not dest.with_suffix(".zip.tmp").exists()
        assert sorted(p.name for p in dest.parent.iterdir()) == ["v1.0.0.zip"]

    def test_build_without_manifest(self, module, tmp_path, dest):
        """Test the builder itself tolerates a tree without go.mod."""
        src = tmp_path / "bare"
        src.mkdir()
        (src / "a.go").write_text("package a\n")

        ArchiveBuilder().build(module, src, dest)

        with zipfile.ZipFile(dest) as zf:
            assert zf.namelist() == ["example.com/foo@v1.0.0/a.go"]

    def test_go_mod_too_large(self, module, source_dir, dest, monkeypatch):
        """Test the go.mod size limit."""
        monkeypatch.setattr(archive, "MAX_GO_MOD", 4)

        with pytest.raises(ArchiveError, match="go.mod file too large"):
            ArchiveBuilder().build(module, source_dir, dest)
        assert not dest.exists()

    def test_total_size_limit(self, module, source_dir, dest, monkeypatch):
        """Test the total size limit."""
        monkeypatch.setattr(archive, "MAX_ZIP_FILE", 10)

        with pytest.raises(ArchiveError, match="exceeds"):
            ArchiveBuilder().build(module, source_dir, dest)

    def test_unwritable_destination(self, module, source_dir, tmp_path):
        """Test write failures surface as ProxyIOError with the path."""
        dest = tmp_path / "no-such-dir" / "v1.0.0.zip"

        with pytest.raises(ProxyIOError) as exc_info:
            ArchiveBuilder().build(module, source_dir, dest)

        assert exc_info.value.path == dest
        assert isinstance(exc_info.value, OSError)


class TestDisappearingFiles:
    """Tests for files removed while the archive is being built."""

    def test_removed_before_copy(self, module, source_dir, dest, monkeypatch):
        """Test a file deleted after selection fails the build cleanly."""
        builder = ArchiveBuilder()
        victim = source_dir / "main.go"

        def check_sizes_then_delete(files):
            ArchiveBuilder._check_sizes(files)
            victim.unlink()

        monkeypatch.setattr(builder, "_check_sizes", check_sizes_then_delete)

        with pytest.raises(ProxyIOError, match="disappeared") as exc_info:
            builder.build(module, source_dir, dest)

        assert exc_info.value.path == victim
        assert not dest.exists()
        assert not dest.with_suffix(".zip.tmp").exists()

    def test_removed_before_size_check(self, module, source_dir, dest, monkeypatch):
        """Test a file deleted after the walk is reported with its path."""
        builder = ArchiveBuilder()
        victim = source_dir / "sub" / "util.go"
        collect = builder.collect_files

        def collect_then_delete(src):
            files = collect(src)
            victim.unlink()
            return files

        monkeypatch.setattr(builder, "collect_files", collect_then_delete)

        with pytest.raises(ProxyIOError, match="disappeared") as exc_info:
            builder.build(module, source_dir, dest)

        assert exc_info.value.path == victim
        assert list(dest.parent.iterdir()) == []

    def test_removed_during_walk(self, source_dir, monkeypatch):
        """Test a listed file that no longer exists is reported with its path."""
        real_walk = os.walk

        def walk_with_stale_entry(top, onerror=None):
            for dirpath, dirnames, filenames in real_walk(top, onerror=onerror):
                if Path(dirpath) == source_dir:
                    filenames = filenames + ["gone.go"]
                yield dirpath, dirnames, filenames

        monkeypatch.setattr(archive.os, "walk", walk_with_stale_entry)

        with pytest.raises(ProxyIOError, match="disappeared") as exc_info:
            ArchiveBuilder().collect_files(source_dir)

        assert exc_info.value.path == source_dir / "gone.go"
