"""
Filesystem Tool Tests
---------------------
read_file, write_file, list_directory and replace, driven through the
registry the way an agent loop drives them.

Tests cover:
- Boundary enforcement per tool
- Paging, binary detection and size caps
- Atomic, idempotent, cancellable writes
- Replace ambiguity handling
"""

import os
import stat
import pytest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from core.errors import ErrorKind


def _fail_kind(result):
    assert not result.success, f"expected failure, got {result.payload!r}"
    return result.kind


class TestReadFile:
    """read_file tool."""

    def test_reads_text(self, registry, workspace):
        (workspace / "a.txt").write_text("one\ntwo\nthree\n")

        result = registry.invoke("read_file", {"absolute_path": str(workspace / "a.txt")})

        assert result.success
        content = result.payload
        assert content.text == "one\ntwo\nthree\n"
        assert content.total_lines == 3
        assert (content.start_line, content.end_line) == (1, 3)
        assert not content.truncated
        assert content.path == str(workspace / "a.txt")

    def test_paging(self, registry, workspace):
        (workspace / "a.txt").write_text("".join(f"line {i}\n" for i in range(10)))

        result = registry.invoke("read_file", {
            "absolute_path": str(workspace / "a.txt"), "offset": 2, "limit": 3,
        })

        content = result.payload
        assert content.text == "line 2\nline 3\nline 4\n"
        assert (content.start_line, content.end_line) == (3, 5)
        assert content.truncated
        assert content.next_offset == 5

    def test_offset_past_end(self, registry, workspace):
        (workspace / "a.txt").write_text("only\n")

        result = registry.invoke("read_file", {"absolute_path": str(workspace / "a.txt"), "offset": 5})

        assert result.success
        assert result.payload.text == ""
        assert result.payload.end_line == 0

    def test_binary_flagged(self, registry, workspace):
        data = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR"
        (workspace / "logo.png").write_bytes(data)

        result = registry.invoke("read_file", {"absolute_path": str(workspace / "logo.png")})

        content = result.payload
        assert content.is_binary
        assert content.data == data
        assert content.text is None
        assert content.mime_type == "image/png"

    def test_dotdot_escape(self, registry, workspace):
        result = registry.invoke("read_file", {"absolute_path": f"{workspace}/../etc/passwd"})

        assert _fail_kind(result) == ErrorKind.PATH_OUTSIDE_WORKSPACE
        assert not result.recoverable

    def test_symlink_escape(self, registry, workspace, outside):
        (workspace / "leak.txt").symlink_to(outside / "secret.txt")

        result = registry.invoke("read_file", {"absolute_path": str(workspace / "leak.txt")})

        assert _fail_kind(result) == ErrorKind.PATH_OUTSIDE_WORKSPACE

    def test_missing_file(self, registry, workspace):
        result = registry.invoke("read_file", {"absolute_path": str(workspace / "nope.txt")})
        assert _fail_kind(result) == ErrorKind.FILE_NOT_FOUND

    def test_directory(self, registry, workspace):
        (workspace / "src").mkdir()

        result = registry.invoke("read_file", {"absolute_path": str(workspace / "src")})

        assert _fail_kind(result) == ErrorKind.VALIDATION_ERROR

    def test_relative_path(self, registry):
        result = registry.invoke("read_file", {"absolute_path": "a.txt"})
        assert _fail_kind(result) == ErrorKind.VALIDATION_ERROR

    def test_size_cap(self, make_registry, workspace):
        registry = make_registry(max_read_bytes=16)
        (workspace / "big.txt").write_text("x" * 17)

        result = registry.invoke("read_file", {"absolute_path": str(workspace / "big.txt")})

        assert _fail_kind(result) == ErrorKind.VALIDATION_ERROR
        assert result.context["size"] == 17


class TestWriteFile:
    """write_file tool."""

    def test_creates_file_and_parents(self, registry, workspace):
        target = workspace / "src" / "deep" / "a.ts"

        result = registry.invoke("write_file", {"file_path": str(target), "content": "export {}\n"})

        assert result.success
        assert target.read_text() == "export {}\n"
        assert result.payload.created
        assert result.payload.bytes_written == len("export {}\n")

    def test_overwrite_is_default(self, registry, workspace):
        target = workspace / "a.txt"
        target.write_text("old")

        result = registry.invoke("write_file", {"file_path": str(target), "content": "new"})

        assert result.success
        assert not result.payload.created
        assert target.read_text() == "new"

    def test_idempotent(self, registry, workspace):
        args = {"file_path": str(workspace / "a.txt"), "content": "same\n"}

        first = registry.invoke("write_file", args)
        snapshot = sorted(os.listdir(workspace))
        second = registry.invoke("write_file", args)

        assert first.success and second.success
        assert (workspace / "a.txt").read_text() == "same\n"
        assert sorted(os.listdir(workspace)) == snapshot == ["a.txt"]

    def test_create_mode_refuses_existing(self, registry, workspace):
        target = workspace / "a.txt"
        target.write_text("keep")

        result = registry.invoke("write_file", {
            "file_path": str(target), "content": "new", "mode": "create",
        })

        assert _fail_kind(result) == ErrorKind.ALREADY_EXISTS
        assert target.read_text() == "keep"

    def test_unicode_content(self, registry, workspace):
        target = workspace / "u.txt"

        result = registry.invoke("write_file", {"file_path": str(target), "content": "héllo ✓"})

        assert result.payload.bytes_written == len("héllo ✓".encode("utf-8"))
        assert target.read_text(encoding="utf-8") == "héllo ✓"

    def test_preserves_mode(self, registry, workspace):
        target = workspace / "run.sh"
        target.write_text("#!/bin/sh\n")
        target.chmod(0o750)

        registry.invoke("write_file", {"file_path": str(target), "content": "#!/bin/sh\necho hi\n"})

        assert stat.S_IMODE(target.stat().st_mode) == 0o750

    def test_directory_target(self, registry, workspace):
        (workspace / "src").mkdir()

        result = registry.invoke("write_file", {"file_path": str(workspace / "src"), "content": "x"})

        assert _fail_kind(result) == ErrorKind.VALIDATION_ERROR

    def test_parent_is_a_file(self, registry, workspace):
        (workspace / "a.txt").write_text("x")

        result = registry.invoke("write_file", {
            "file_path": str(workspace / "a.txt" / "b.txt"), "content": "x",
        })

        assert _fail_kind(result) == ErrorKind.VALIDATION_ERROR
        assert result.context["field"] == "file_path"
        assert result.context["parent"] == str(workspace / "a.txt")

    def test_intermediate_symlink_escape(self, registry, workspace, outside):
        (workspace / "out").symlink_to(outside)

        result = registry.invoke("write_file", {
            "file_path": str(workspace / "out" / "planted.txt"), "content": "x",
        })

        assert _fail_kind(result) == ErrorKind.PATH_OUTSIDE_WORKSPACE
        assert not (outside / "planted.txt").exists()

    def test_content_cap(self, make_registry, workspace):
        registry = make_registry(max_write_bytes=4)

        result = registry.invoke("write_file", {"file_path": str(workspace / "a.txt"), "content": "12345"})

        assert _fail_kind(result) == ErrorKind.VALIDATION_ERROR
        assert not (workspace / "a.txt").exists()

    def test_cancel_mid_write_keeps_old_content(self, make_registry, workspace, cancel_after):
        registry = make_registry(write_chunk_size=4)
        target = workspace / "a.txt"
        target.write_text("original")

        invocation = registry.lookup("write_file").build({
            "file_path": str(target), "content": "n" * 64,
        })
        result = invocation.execute(cancel_after(5))

        assert result.kind == ErrorKind.CANCELLED
        assert target.read_text() == "original"
        assert os.listdir(workspace) == ["a.txt"]

    def test_cancel_removes_created_parents(self, make_registry, workspace, cancel_after):
        registry = make_registry(write_chunk_size=4)
        target = workspace / "new" / "deep" / "a.txt"

        invocation = registry.lookup("write_file").build({
            "file_path": str(target), "content": "n" * 64,
        })
        result = invocation.execute(cancel_after(4))

        assert result.kind == ErrorKind.CANCELLED
        assert os.listdir(workspace) == []

    def test_cancelled_before_start(self, registry, workspace, cancel_after):
        invocation = registry.lookup("write_file").build({
            "file_path": str(workspace / "a.txt"), "content": "x",
        })

        result = invocation.execute(cancel_after(0))

        assert result.kind == ErrorKind.CANCELLED
        assert not (workspace / "a.txt").exists()


class TestListDirectory:
    """list_directory tool."""

    def test_entries_in_name_order(self, registry, workspace):
        src = workspace / "src"
        src.mkdir()
        (src / "b.ts").write_text("b")
        (src / "sub").mkdir()
        (src / "a.ts").write_text("aa")

        result = registry.invoke("list_directory", {"path": str(src)})

        entries = result.payload.entries
        assert [(e.name, e.type) for e in entries] == [
            ("a.ts", "file"), ("b.ts", "file"), ("sub", "dir"),
        ]
        assert entries[0].size == 2

    def test_hidden_and_ignore(self, registry, workspace):
        for name in (".env", "app.log", "main.py"):
            (workspace / name).write_text("x")

        result = registry.invoke("list_directory", {
            "path": str(workspace), "ignore": ["*.log"], "include_hidden": False,
        })

        assert [e.name for e in result.payload.entries] == ["main.py"]

    def test_recursive(self, registry, workspace):
        (workspace / "src" / "sub").mkdir(parents=True)
        (workspace / "src" / "sub" / "c.ts").write_text("c")
        (workspace / "top.txt").write_text("t")

        result = registry.invoke("list_directory", {"path": str(workspace), "recursive": True})

        assert [e.path for e in result.payload.entries] == [
            "src", "src/sub", "src/sub/c.ts", "top.txt",
        ]

    def test_symlinks(self, registry, workspace, outside):
        (workspace / "real.txt").write_text("x")
        (workspace / "inside").symlink_to(workspace / "real.txt")
        (workspace / "outside").symlink_to(outside)

        result = registry.invoke("list_directory", {"path": str(workspace)})

        assert [(e.name, e.type) for e in result.payload.entries] == [
            ("inside", "symlink"), ("real.txt", "file"),
        ]

    def test_recursion_does_not_follow_symlinks(self, registry, workspace):
        (workspace / "d").mkdir()
        (workspace / "d" / "f.txt").write_text("x")
        (workspace / "loop").symlink_to(workspace)

        result = registry.invoke("list_directory", {"path": str(workspace), "recursive": True})

        assert [e.path for e in result.payload.entries] == ["d", "d/f.txt", "loop"]

    def test_truncated(self, make_registry, workspace):
        registry = make_registry(max_list_entries=2)
        for name in ("a", "b", "c"):
            (workspace / name).write_text(name)

        result = registry.invoke("list_directory", {"path": str(workspace)})

        assert len(result.payload.entries) == 2
        assert result.payload.truncated

    def test_not_a_directory(self, registry, workspace):
        (workspace / "a.txt").write_text("x")

        result = registry.invoke("list_directory", {"path": str(workspace / "a.txt")})

        assert _fail_kind(result) == ErrorKind.VALIDATION_ERROR

    def test_outside(self, registry, outside):
        result = registry.invoke("list_directory", {"path": str(outside)})
        assert _fail_kind(result) == ErrorKind.PATH_OUTSIDE_WORKSPACE


class TestReplace:
    """replace tool."""

    def test_single_replacement(self, registry, workspace):
        target = workspace / "a.py"
        target.write_text("x = 1\ny = 2\n")

        result = registry.invoke("replace", {
            "file_path": str(target), "old_string": "y = 2", "new_string": "y = 3",
        })

        assert result.success
        assert result.payload.replacements == 1
        assert target.read_text() == "x = 1\ny = 3\n"

    def test_missing_pattern(self, registry, workspace):
        target = workspace / "a.py"
        target.write_text("x = 1\n")

        result = registry.invoke("replace", {
            "file_path": str(target), "old_string": "z = 9", "new_string": "z = 0",
        })

        assert _fail_kind(result) == ErrorKind.PATTERN_NOT_FOUND
        assert result.context["occurrences"] == 0

    def test_ambiguous_pattern_is_not_applied(self, registry, workspace):
        target = workspace / "a.py"
        target.write_text("x = 1\nx = 1\n")

        result = registry.invoke("replace", {
            "file_path": str(target), "old_string": "x = 1", "new_string": "x = 2",
        })

        assert _fail_kind(result) == ErrorKind.PATTERN_NOT_FOUND
        assert result.context["occurrences"] == 2
        assert target.read_text() == "x = 1\nx = 1\n"

    def test_expected_replacements(self, registry, workspace):
        target = workspace / "a.py"
        target.write_text("x = 1\nx = 1\n")

        result = registry.invoke("replace", {
            "file_path": str(target), "old_string": "x = 1", "new_string": "x = 2",
            "expected_replacements": 2,
        })

        assert result.payload.replacements == 2
        assert target.read_text() == "x = 2\nx = 2\n"

    def test_replace_all(self, registry, workspace):
        target = workspace / "a.py"
        target.write_text("a a a")

        result = registry.invoke("replace", {
            "file_path": str(target), "old_string": "a", "new_string": "b", "replace_all": True,
        })

        assert result.payload.replacements == 3
        assert target.read_text() == "b b b"

    def test_replace_all_with_expected_count(self, registry, workspace):
        (workspace / "a.py").write_text("a")

        result = registry.invoke("replace", {
            "file_path": str(workspace / "a.py"), "old_string": "a", "new_string": "b",
            "replace_all": True, "expected_replacements": 1,
        })

        assert _fail_kind(result) == ErrorKind.VALIDATION_ERROR

    def test_identical_strings(self, registry, workspace):
        (workspace / "a.py").write_text("a")

        result = registry.invoke("replace", {
            "file_path": str(workspace / "a.py"), "old_string": "a", "new_string": "a",
        })

        assert _fail_kind(result) == ErrorKind.VALIDATION_ERROR

    def test_empty_old_string_creates_file(self, registry, workspace):
        target = workspace / "pkg" / "new.py"

        result = registry.invoke("replace", {
            "file_path": str(target), "old_string": "", "new_string": "print('hi')\n",
        })

        assert result.success
        assert result.payload.created
        assert target.read_text() == "print('hi')\n"

    def test_empty_old_string_on_existing_file(self, registry, workspace):
        (workspace / "a.py").write_text("a")

        result = registry.invoke("replace", {
            "file_path": str(workspace / "a.py"), "old_string": "", "new_string": "b",
        })

        assert _fail_kind(result) == ErrorKind.ALREADY_EXISTS

    def test_missing_file(self, registry, workspace):
        result = registry.invoke("replace", {
            "file_path": str(workspace / "nope.py"), "old_string": "a", "new_string": "b",
        })

        assert _fail_kind(result) == ErrorKind.FILE_NOT_FOUND

    def test_line_endings_preserved(self, registry, workspace):
        target = workspace / "win.txt"
        target.write_bytes(b"one\r\ntwo\r\n")

        registry.invoke("replace", {
            "file_path": str(target), "old_string": "two", "new_string": "2",
        })

        assert target.read_bytes() == b"one\r\n2\r\n"

    def test_describe(self, registry, workspace):
        (workspace / "a.py").write_text("x = 1\n")

        summary = registry.describe("replace", {
            "file_path": str(workspace / "a.py"), "old_string": "x = 1", "new_string": "x = 2",
        })

        assert summary == "a.py: x = 1 => x = 2"


@pytest.mark.skipif(
    sys.platform == "win32" or os.geteuid() == 0,
    reason="needs POSIX permissions enforced for a non-root user"
)
class TestUnreadableDirectory:
    """Permission errors during build keep their kind."""

    @pytest.fixture
    def locked(self, workspace):
        path = workspace / "locked"
        path.mkdir()
        path.chmod(0o000)
        yield path
        path.chmod(0o755)

    def test_write_file(self, registry, locked):
        result = registry.invoke("write_file", {
            "file_path": str(locked / "a.txt"), "content": "x",
        })

        assert _fail_kind(result) == ErrorKind.PERMISSION_DENIED
        assert result.recoverable
        assert result.context["errno"] == "EACCES"

    def test_replace(self, registry, locked):
        result = registry.invoke("replace", {
            "file_path": str(locked / "a.txt"), "old_string": "a", "new_string": "b",
        })

        assert _fail_kind(result) == ErrorKind.PERMISSION_DENIED

    def test_replace_creating_file(self, registry, locked):
        result = registry.invoke("replace", {
            "file_path": str(locked / "new.txt"), "old_string": "", "new_string": "b",
        })

        assert _fail_kind(result) == ErrorKind.PERMISSION_DENIED

    def test_not_logged_as_unexpected(self, registry, locked, caplog):
        with caplog.at_level("ERROR", logger="workbench.tools.registry"):
            registry.invoke("write_file", {"file_path": str(locked / "a.txt"), "content": "x"})

        assert not [r for r in caplog.records if r.levelname == "ERROR"]
