"""Tests for ExportRetryPolicy."""

from collections import namedtuple
from unittest.mock import patch

import pytest

from tiny11_builder.errors import (
    DiskSpaceError,
    ExternalToolError,
    NotFoundError,
    PermissionDeniedError,
)
from tiny11_builder.image.export import (
    COMPRESSION_MAX,
    COMPRESSION_RECOVERY,
    ExportRetryPolicy,
    work_file_for,
)
from tiny11_builder.tools import ToolSet

# Size of every image FakeWindows exports
EXPORT_SIZE = 4096

DiskUsage = namedtuple("DiskUsage", "total used free")


@pytest.fixture
def dism(fake_windows):
    return ToolSet.from_runner(fake_windows).dism


@pytest.fixture
def source(tmp_path):
    path = tmp_path / "sources" / "install.wim"
    path.parent.mkdir()
    path.write_bytes(b"\0" * 8192)
    return path


def _policy(dism, **overrides):
    options = {
        "attempts": 3,
        "backoff_seconds": 0,
        "space_margin": 0,
        "min_size": 1,
        "sleep": lambda seconds: None,
    }
    options.update(overrides)
    return ExportRetryPolicy(dism, **options)


class TestWorkFile:
    """Test work file naming."""

    def test_work_file_for(self, tmp_path) -> None:
        """The work file should sit next to the target with a 2 suffix."""
        assert work_file_for(tmp_path / "install.wim") == tmp_path / "install2.wim"
        assert work_file_for(tmp_path / "install.esd") == tmp_path / "install2.esd"


class TestExportRetryPolicy:
    """Test export retries, validation and space checks."""

    def test_export_in_place(self, dism, fake_windows, source) -> None:
        """A successful export should replace the source and report sizes."""
        result = _policy(dism).export(source, 2, COMPRESSION_RECOVERY)

        assert result.target == source
        assert source.stat().st_size == EXPORT_SIZE
        assert result.size_before == 8192
        assert result.size_after == EXPORT_SIZE
        assert result.ratio == pytest.approx(50.0)
        assert len(result.attempts) == 1
        assert not work_file_for(source).exists()

        cmd = fake_windows.ran("/Export-Image")[0]
        assert f"/DestinationImageFile:{work_file_for(source)}" in cmd
        assert "/SourceIndex:2" in cmd
        assert "/Compress:recovery" in cmd
        assert "/CheckIntegrity" in cmd

    def test_export_to_new_target(self, dism, source) -> None:
        """Exporting to another file should remove the source when replacing."""
        target = source.with_name("install.esd")
        result = _policy(dism).export(source, 1, COMPRESSION_RECOVERY, target=target)

        assert result.target == target
        assert target.is_file()
        assert not source.exists()

    def test_export_keeps_source_when_asked(self, dism, source) -> None:
        """replace_source=False should leave the source in place."""
        target = source.with_name("converted.wim")
        _policy(dism).export(source, 1, COMPRESSION_MAX, target=target, replace_source=False)

        assert source.is_file()
        assert target.is_file()

    def test_retry_then_succeed(self, dism, fake_windows, source) -> None:
        """A transient failure should be retried with a backoff."""
        sleeps = []
        fake_windows.fail("/Export-Image", times=1)

        result = _policy(dism, sleep=sleeps.append, backoff_seconds=5).export(source, 1)

        assert len(result.attempts) == 2
        assert [attempt.ordinal for attempt in result.attempts] == [1, 2]
        assert sleeps == [5]

    def test_all_attempts_fail(self, dism, fake_windows, source) -> None:
        """Exhausted attempts should raise export_failed and leave no work file."""
        fake_windows.fail("/Export-Image")

        with pytest.raises(ExternalToolError) as exc_info:
            _policy(dism).export(source, 1)

        assert exc_info.value.code == "export_failed"
        assert "simulated failure" in exc_info.value.output
        assert len(fake_windows.ran("/Export-Image")) == 3
        assert not work_file_for(source).exists()
        assert source.is_file()

    def test_too_small_output_rejected(self, dism, source) -> None:
        """An implausibly small export should be discarded and retried."""
        with pytest.raises(ExternalToolError) as exc_info:
            _policy(dism, min_size=EXPORT_SIZE + 1).export(source, 1)

        assert exc_info.value.code == "export_failed"
        assert isinstance(exc_info.value.__cause__, ExternalToolError)
        assert exc_info.value.__cause__.code == "export_too_small"
        assert not work_file_for(source).exists()
        assert source.stat().st_size == 8192

    def test_stale_work_file_removed(self, dism, source) -> None:
        """A work file left by an earlier run should not survive a failed export."""
        work_file = work_file_for(source)
        work_file.write_bytes(b"partial")

        with pytest.raises(ExternalToolError):
            _policy(dism, min_size=EXPORT_SIZE + 1, attempts=1).export(source, 1)

        assert not work_file.exists()

    def test_disk_space_checked_before_any_attempt(self, dism, fake_windows, source) -> None:
        """Insufficient space should raise DiskSpaceError without calling DISM."""
        policy = _policy(
            dism,
            space_margin=1024,
            disk_usage=lambda path: DiskUsage(total=10_000, used=9_000, free=1_000),
        )

        with pytest.raises(DiskSpaceError) as exc_info:
            policy.export(source, 1)

        assert exc_info.value.context["required"] == 8192 + 1024
        assert exc_info.value.context["available"] == 1_000
        assert fake_windows.ran("/Export-Image") == []
        assert not work_file_for(source).exists()

    def test_disk_usage_error_proceeds(self, dism, source) -> None:
        """An unreadable free-space figure should not block the export."""

        def broken(path):
            raise OSError("not supported")

        result = _policy(dism, disk_usage=broken).export(source, 1)
        assert result.size_after == EXPORT_SIZE

    def test_failed_move_keeps_source(self, dism, source) -> None:
        """A failed move into place should leave the original image intact."""
        with patch(
            "tiny11_builder.image.export.os.replace", side_effect=PermissionError("locked")
        ):
            with pytest.raises(PermissionDeniedError) as exc_info:
                _policy(dism).export(source, 1)

        assert source.is_file()
        assert source.stat().st_size == 8192
        assert not work_file_for(source).exists()
        assert isinstance(exc_info.value.__cause__, PermissionError)

    def test_failed_move_to_new_target_keeps_source(self, dism, source) -> None:
        """The source should only be removed after the export is in place."""
        target = source.with_name("install.esd")
        with patch(
            "tiny11_builder.image.export.os.replace", side_effect=PermissionError("locked")
        ):
            with pytest.raises(PermissionDeniedError):
                _policy(dism).export(source, 1, target=target)

        assert source.is_file()
        assert not target.exists()

    def test_missing_source(self, dism, tmp_path) -> None:
        """A missing source image should raise NotFoundError."""
        with pytest.raises(NotFoundError):
            _policy(dism).export(tmp_path / "missing.wim", 1)

    def test_to_dict(self, dism, source) -> None:
        """to_dict should be JSON friendly."""
        data = _policy(dism).export(source, 1).to_dict()
        assert data["attempts"] == 1
        assert data["ratio"] == 50.0
        assert data["target"] == str(source)
