"""Tests for app, package and file removal."""

import logging

import pytest

from tiny11_builder.errors import NotFoundError
from tiny11_builder.removal import apps, core, edge, nano
from tiny11_builder.removal.files import delete_path, remove_paths
from tiny11_builder.tools import ToolSet
from tiny11_builder.types import RemovalReport


@pytest.fixture
def tools(fake_windows):
    return ToolSet.from_runner(fake_windows)


@pytest.fixture
def mount_dir(fake_windows, tmp_path):
    path = tmp_path / "scratch"
    fake_windows._populate(path)
    return path


class TestMatching:
    """Test package name matching and listing parsers."""

    def test_prefix_match_is_case_sensitive(self) -> None:
        """Plain patterns should match as case-sensitive substrings."""
        assert apps.matches("Microsoft.BingNews_4.2_neutral", "Microsoft.BingNews")
        assert not apps.matches("microsoft.bingnews_4.2_neutral", "Microsoft.BingNews")

    def test_wildcard_match_ignores_case(self) -> None:
        """*pattern* should match ignoring case."""
        assert apps.matches("Microsoft.WindowsCamera_1.0", "*camera*")
        assert not apps.matches("Microsoft.WindowsCalculator_1.0", "*camera*")

    def test_parse_provisioned_packages(self) -> None:
        """PackageName lines should be collected, truncated names dropped."""
        output = (
            "PackageName : Microsoft.BingNews_4.2.0.0_neutral_~_8wekyb3d8bbwe\n"
            "PackageName : Microsoft.Very...Long\n"
            "DisplayName : ignored\n"
        )
        assert apps.parse_provisioned_packages(output) == [
            "Microsoft.BingNews_4.2.0.0_neutral_~_8wekyb3d8bbwe"
        ]

    def test_parse_package_table(self) -> None:
        """Matching table rows should yield their first column once."""
        output = (
            "Package Identity | State\n"
            "Microsoft-Windows-MediaPlayer-Package~31bf | Installed\n"
            "Microsoft-Windows-MediaPlayer-Package~31bf | Installed\n"
            "Microsoft-Windows-Foundation-Package~31bf | Installed\n"
        )
        assert apps.parse_package_table(output, ["MediaPlayer-Package~"]) == [
            "Microsoft-Windows-MediaPlayer-Package~31bf"
        ]

    def test_language_packages_follow_language(self) -> None:
        """Language feature patterns should embed the detected language."""
        patterns = apps.system_package_patterns("de-DE")
        assert any("Handwriting-de-DE" in pattern for pattern in patterns)
        assert any("OCR-de-DE" in pattern for pattern in apps.nano_package_patterns("de-DE"))

    def test_short_name(self) -> None:
        """short_name should strip the version and publisher."""
        assert apps.short_name("Clipchamp.Clipchamp_2.2.8.0_neutral_~_yxz") == "Clipchamp.Clipchamp"


class TestAppRemoval:
    """Test DISM-backed removal."""

    def test_remove_provisioned_apps(self, tools, fake_windows, mount_dir) -> None:
        """Only listed apps should be removed."""
        report = apps.remove_provisioned_apps(tools.dism, mount_dir)

        assert report.items == ["Microsoft.BingNews", "Clipchamp.Clipchamp"]
        assert report.removed == 2
        removed = fake_windows.ran("/Remove-ProvisionedAppxPackage")
        assert all("Calculator" not in " ".join(cmd) for cmd in removed)

    def test_individual_failure_is_counted(self, tools, fake_windows, mount_dir) -> None:
        """A package that fails to remove should not stop the others."""
        fake_windows.fail("/PackageName:Microsoft.BingNews")
        report = apps.remove_provisioned_apps(tools.dism, mount_dir)
        assert report.failed == 1
        assert report.items == ["Clipchamp.Clipchamp"]

    def test_remove_system_packages(self, tools, fake_windows, mount_dir) -> None:
        """Matching servicing packages should be removed by identity."""
        report = apps.remove_system_packages(
            tools.dism, mount_dir, apps.system_package_patterns("en-US")
        )
        assert report.items == [
            "Microsoft-Windows-MediaPlayer-Package~31bf3856ad364e35~amd64~~10.0.22621.1"
        ]
        assert fake_windows.ran("/Remove-Package")

    def test_cleanup_windows_apps(self, mount_dir) -> None:
        """Leftover WindowsApps folders of removed apps should be deleted."""
        windows_apps = mount_dir / "Program Files" / "WindowsApps"
        (windows_apps / "Microsoft.Windows.Photos_2024").mkdir(parents=True)
        (windows_apps / "Microsoft.WindowsStore_2024").mkdir()

        report = apps.cleanup_windows_apps(mount_dir)

        assert report.items == ["Microsoft.Windows.Photos_2024"]
        assert (windows_apps / "Microsoft.WindowsStore_2024").is_dir()


class TestFileRemoval:
    """Test filesystem removal helpers."""

    def test_remove_paths_counts(self, tmp_path) -> None:
        """Existing entries should be removed and missing ones skipped."""
        (tmp_path / "file.txt").write_text("x")
        (tmp_path / "folder").mkdir()
        (tmp_path / "folder" / "nested.txt").write_text("y")

        report = remove_paths(
            [tmp_path / "file.txt", tmp_path / "folder", tmp_path / "missing"],
            RemovalReport(),
            logging.getLogger("test"),
        )

        assert report.removed == 2
        assert report.skipped == 1
        assert not (tmp_path / "folder").exists()

    def test_delete_read_only_file(self, tmp_path) -> None:
        """Read-only files should still be deleted."""
        path = tmp_path / "locked.txt"
        path.write_text("x")
        path.chmod(0o444)
        delete_path(path)
        assert not path.exists()


class TestEdgeAndTasks:
    """Test Edge, OneDrive and scheduled task removal."""

    def test_remove_edge(self, tools, mount_dir) -> None:
        """Edge program folders and WebView WinSxS copies should go."""
        winsxs = mount_dir / "Windows" / "WinSxS"
        (winsxs / "amd64_microsoft-edge-webview_31bf_1.0").mkdir()

        report = edge.remove_edge(tools.acl, mount_dir, "amd64")

        assert not (mount_dir / "Program Files (x86)" / "Microsoft" / "Edge").exists()
        assert not (winsxs / "amd64_microsoft-edge-webview_31bf_1.0").exists()
        assert report.removed == 2

    def test_remove_onedrive(self, tools, mount_dir) -> None:
        """The OneDrive setup stub should be deleted."""
        report = edge.remove_onedrive(tools.acl, mount_dir)
        assert report.removed == 1
        assert not (mount_dir / "Windows" / "System32" / "OneDriveSetup.exe").exists()

    def test_remove_scheduled_tasks(self, mount_dir) -> None:
        """Telemetry task definitions should be removed when present."""
        tasks = mount_dir / "Windows" / "System32" / "Tasks" / "Microsoft" / "Windows"
        (tasks / "Chkdsk").mkdir(parents=True)
        (tasks / "Chkdsk" / "Proxy").write_text("<Task/>")

        report = edge.remove_scheduled_tasks(mount_dir)

        assert report.removed == 1
        assert report.skipped == len(edge.TELEMETRY_TASKS) - 1


class TestCoreRemoval:
    """Test core variant removals."""

    def test_reduce_winsxs_keeps_only_listed_entries(self, tools, mount_dir) -> None:
        """Only keep-list entries should survive the WinSxS reduction."""
        winsxs = mount_dir / "Windows" / "WinSxS"
        servicing = winsxs / "amd64_microsoft-windows-servicingstack_31bf3856ad364e35_10.0"
        servicing.mkdir()
        (servicing / "stack.dll").write_bytes(b"MZ")

        report = core.reduce_winsxs(tools.acl, mount_dir, "amd64")

        remaining = sorted(entry.name for entry in winsxs.iterdir())
        assert remaining == sorted(["Manifests", servicing.name])
        assert (winsxs / "Manifests" / "keep.manifest").is_file()
        assert not (mount_dir / "Windows" / "WinSxS_edit").exists()
        assert report.removed == 1

    def test_reduce_winsxs_requires_directory(self, tools, tmp_path) -> None:
        """A mount without WinSxS should raise NotFoundError."""
        with pytest.raises(NotFoundError):
            core.reduce_winsxs(tools.acl, tmp_path)

    def test_remove_winre_leaves_placeholder(self, tools, mount_dir) -> None:
        """winre.wim should be replaced by an empty file."""
        report = core.remove_winre(tools.acl, mount_dir)
        winre = mount_dir / "Windows" / "System32" / "Recovery" / "winre.wim"
        assert report.removed == 1
        assert winre.is_file()
        assert winre.stat().st_size == 0

    def test_enable_netfx3(self, tools, fake_windows, mount_dir, source_tree) -> None:
        """.NET 3.5 should be enabled from sources/sxs of the media."""
        core.enable_netfx3(tools.dism, mount_dir, source_tree)
        cmd = fake_windows.ran("/Enable-Feature")[0]
        assert "/FeatureName:NetFX3" in cmd
        assert f"/Source:{source_tree / 'sources' / 'sxs'}" in cmd

    def test_enable_netfx3_without_payload(self, tools, mount_dir, tmp_path) -> None:
        """Media without sources/sxs should raise NotFoundError."""
        with pytest.raises(NotFoundError):
            core.enable_netfx3(tools.dism, mount_dir, tmp_path)


class TestNanoRemoval:
    """Test nano variant removals."""

    def test_font_keep_list(self) -> None:
        """Core UI fonts should be kept and CJK fonts removed."""
        assert nano.font_is_kept("segoeui.ttf")
        assert nano.font_is_kept("Arial.ttf")
        assert not nano.font_is_kept("segoeuihistoric.ttf")
        assert not nano.font_is_kept("msyh.ttc")
        assert not nano.font_is_kept("webdings.ttf")

    def test_slim_fonts(self, mount_dir) -> None:
        """Fonts outside the keep list should be deleted."""
        fonts = mount_dir / "Windows" / "Fonts"
        fonts.mkdir()
        for name in ("segoeui.ttf", "msyh.ttc", "webdings.ttf"):
            (fonts / name).write_bytes(b"font")

        report = nano.slim_fonts(mount_dir)

        assert sorted(p.name for p in fonts.iterdir()) == ["segoeui.ttf"]
        assert report.removed == 2

    def test_slim_driver_store(self, mount_dir) -> None:
        """Printer and scanner driver packages should be removed."""
        repository = mount_dir / "Windows" / "System32" / "DriverStore" / "FileRepository"
        for name in ("prnms001.inf_amd64", "scanner.inf_amd64", "netrtwlane.inf_amd64"):
            (repository / name).mkdir(parents=True)

        nano.slim_driver_store(mount_dir)

        assert sorted(p.name for p in repository.iterdir()) == ["netrtwlane.inf_amd64"]

    def test_take_ownership_counts_existing(self, tools, fake_windows, mount_dir) -> None:
        """Only existing targets should be unlocked."""
        report = nano.take_ownership(tools.acl, mount_dir)
        assert report.removed + report.skipped == len(nano.OWNERSHIP_TARGETS)
        assert "Windows/WinSxS" in [item.replace("\\", "/") for item in report.items]
        assert len(fake_windows.ran("takeown")) == report.removed

    def test_service_deletions(self) -> None:
        """Each service should map to a key under the loaded SYSTEM hive."""
        deletions = nano.service_deletions()
        assert len(deletions) == len(nano.SERVICES)
        assert deletions[0].path == "HKLM\\zSYSTEM\\ControlSet001\\Services\\Spooler"
