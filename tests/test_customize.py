"""Tests for themes and preinstalled software."""

import json

import pytest

from tiny11_builder.customize.preinstall import (
    PreinstallApp,
    PreinstallManifest,
    load_manifest,
    setup_complete_entry,
    stage_apps,
)
from tiny11_builder.customize.theme import (
    BrandingData,
    Theme,
    apply_theme,
    branding_tweaks,
    is_default_theme,
    list_themes,
    load_theme,
    parse_color,
    validate_theme,
)
from tiny11_builder.errors import InvalidInputError, NotFoundError
from tiny11_builder.image.mount import ImageMountGuard
from tiny11_builder.registry.session import NTUSER, SOFTWARE, RegistryEditSession
from tiny11_builder.tools import ToolSet


@pytest.fixture
def themes_dir(tmp_path):
    root = tmp_path / "themes"
    ocean = root / "ocean"
    ocean.mkdir(parents=True)
    (ocean / "theme.json").write_text(
        json.dumps(
            {
                "name": "Ocean",
                "version": "1.0",
                "author": "tester",
                "branding": {"enabled": True, "configFile": "branding.json"},
                "wallpapers": {
                    "enabled": True,
                    "desktop": "wallpapers/desk.jpg",
                    "lockscreen": "wallpapers/missing.jpg",
                    "setAsDefault": True,
                },
                "colors": {"enabled": True, "configFile": "colors.json"},
                "advanced": {
                    "enabled": True,
                    "settings": {"showFileExtensions": True, "accentColor": "#112233"},
                },
            }
        )
    )
    (ocean / "branding.json").write_text(
        json.dumps(
            {
                "productName": "Ocean OS",
                "systemInfo": {"manufacturer": "Tiny Corp", "supportURL": "https://example.org"},
            }
        )
    )
    (ocean / "wallpapers").mkdir()
    (ocean / "wallpapers" / "desk.jpg").write_bytes(b"\xff\xd8jpeg")
    # No colors.json: the colors section fails on its own

    (root / "plain").mkdir()
    (root / "plain" / "theme.yaml").write_text("name: Plain\n")
    (root / "not-a-theme").mkdir()
    return root


@pytest.fixture
def loaded_registry(fake_windows, tmp_path):
    """A registry session with hives loaded from a mounted image."""
    tools = ToolSet.from_runner(fake_windows)
    guard = ImageMountGuard(tools.dism, tools.acl, tmp_path / "scratch", settle_seconds=0)
    image = tmp_path / "install.wim"
    image.write_bytes(b"\0" * 64)
    guard.mount(image, 1)
    registry = RegistryEditSession(tools.reg, guard, attempts=1, wait_seconds=0)
    registry.load()
    yield registry, guard.mount_dir
    registry.unload()
    guard.unmount(commit=False)


class TestThemeLoading:
    """Test theme discovery and parsing."""

    def test_list_themes(self, themes_dir) -> None:
        """Only directories with a theme document should be listed."""
        assert list_themes(themes_dir) == ["ocean", "plain"]

    def test_list_themes_missing_dir(self, tmp_path) -> None:
        """A missing themes directory should list nothing."""
        assert list_themes(tmp_path / "missing") == []

    def test_load_theme_camel_case(self, themes_dir) -> None:
        """camelCase keys should populate the snake_case fields."""
        theme = load_theme(themes_dir, "ocean")
        assert theme.name == "Ocean"
        assert theme.wallpapers.set_as_default is True
        assert theme.advanced.settings.show_file_extensions is True
        assert theme.directory == themes_dir / "ocean"
        assert theme.slug == "ocean"

    def test_load_yaml_theme(self, themes_dir) -> None:
        """theme.yaml should load like theme.json."""
        theme = load_theme(themes_dir, "plain")
        assert theme.name == "Plain"
        assert not theme.branding.enabled

    def test_unknown_theme(self, themes_dir) -> None:
        """A missing theme should raise NotFoundError listing the available ones."""
        with pytest.raises(NotFoundError) as exc_info:
            load_theme(themes_dir, "missing")
        assert exc_info.value.context["available"] == ["ocean", "plain"]

    def test_invalid_theme(self, themes_dir) -> None:
        """A document without a name should raise InvalidInputError."""
        broken = themes_dir / "broken"
        broken.mkdir()
        (broken / "theme.json").write_text('{"version": "1"}')
        with pytest.raises(InvalidInputError):
            load_theme(themes_dir, "broken")

    def test_validate_theme_reports_missing_assets(self, themes_dir) -> None:
        """Referenced assets that do not exist should produce warnings."""
        warnings = validate_theme(load_theme(themes_dir, "ocean"))
        assert warnings == ["lock screen wallpaper not found: wallpapers/missing.jpg"]

    @pytest.mark.parametrize("name", [None, "", "default", " Default "])
    def test_default_theme_names(self, name) -> None:
        """Empty names and 'default' should mean no theming."""
        assert is_default_theme(name)

    def test_named_theme_is_not_default(self) -> None:
        """A real theme name should not be treated as default."""
        assert not is_default_theme("ocean")


class TestThemeApplication:
    """Test applying themes to a mounted image."""

    def test_parse_color(self) -> None:
        """#RRGGBB should become 0xBBGGRR."""
        assert parse_color("#112233") == "0x332211"
        assert parse_color("0x00ff00") == "0x00ff00"
        assert parse_color("nonsense") == "0x000000"

    def test_branding_tweaks_skip_empty_fields(self) -> None:
        """Only non-empty branding fields should produce values."""
        branding = BrandingData.model_validate(
            {"productName": "Ocean OS", "systemInfo": {"model": "T1"}}
        )
        tweaks = branding_tweaks(branding)
        assert [tweak.name for tweak in tweaks] == ["ProductName", "Model"]

    def test_apply_theme_sections_are_independent(
        self, themes_dir, loaded_registry, fake_windows
    ) -> None:
        """A failing section should not stop the other sections."""
        registry, mount_dir = loaded_registry
        theme = load_theme(themes_dir, "ocean")

        report = apply_theme(registry, mount_dir, theme)

        assert report.applied == ["branding", "wallpapers", "advanced"]
        assert report.failed == ["colors"]
        wallpaper = mount_dir / "Windows" / "Web" / "Wallpaper" / "ocean" / "desktop.jpg"
        assert wallpaper.read_bytes() == b"\xff\xd8jpeg"
        assert report.files == [str(wallpaper)]
        assert fake_windows.ran("ProductName")
        assert fake_windows.ran("HideFileExt")
        assert fake_windows.ran("0x332211")
        # Branding (3) + desktop wallpaper (1) + advanced (2)
        assert report.tweaks == 6

    def test_apply_theme_without_sections(self, loaded_registry, fake_windows) -> None:
        """A theme with nothing enabled should apply nothing."""
        registry, mount_dir = loaded_registry
        before = len(fake_windows.commands)

        report = apply_theme(registry, mount_dir, Theme(name="Empty"))

        assert report.applied == []
        assert report.tweaks == 0
        assert len(fake_windows.commands) == before

    def test_registry_paths_use_loaded_hives(
        self, themes_dir, loaded_registry, fake_windows
    ) -> None:
        """Theme values should be written below the loaded hive aliases."""
        registry, mount_dir = loaded_registry
        apply_theme(registry, mount_dir, load_theme(themes_dir, "ocean"))
        added = [cmd[2] for cmd in fake_windows.ran("reg add")]
        assert all(path.startswith((NTUSER, SOFTWARE)) for path in added)


@pytest.fixture
def preinstall_dir(tmp_path):
    root = tmp_path / "preinstall"
    (root / "installers").mkdir(parents=True)
    (root / "installers" / "7z.exe").write_bytes(b"MZ7z")
    (root / "installers" / "firefox.exe").write_bytes(b"MZff")
    (root / "preinstall.json").write_text(
        json.dumps(
            {
                "enabled": True,
                "apps": [
                    {
                        "id": "7zip",
                        "name": "7-Zip",
                        "version": "24.08",
                        "source": "installers/7z.exe",
                        "silent": True,
                    },
                    {
                        "id": "firefox",
                        "name": "Firefox",
                        "source": "installers/firefox.exe",
                        "installCmd": "firefox.exe -ms",
                    },
                    {"id": "missing", "source": "installers/missing.exe"},
                ],
            }
        )
    )
    return root


class TestPreinstall:
    """Test the preinstall manifest and staging."""

    def test_load_manifest(self, preinstall_dir) -> None:
        """The manifest should parse with camelCase keys."""
        manifest = load_manifest(preinstall_dir)
        assert manifest.enabled
        assert [app.id for app in manifest.apps] == ["7zip", "firefox", "missing"]
        assert manifest.apps[1].install_cmd == "firefox.exe -ms"

    def test_missing_manifest_is_empty(self, tmp_path) -> None:
        """No manifest should mean an empty, disabled one."""
        manifest = load_manifest(tmp_path)
        assert not manifest.enabled
        assert manifest.apps == []

    def test_invalid_manifest(self, tmp_path) -> None:
        """An app without a source should raise InvalidInputError."""
        (tmp_path / "preinstall.yaml").write_text("apps:\n  - id: broken\n")
        with pytest.raises(InvalidInputError):
            load_manifest(tmp_path)

    def test_filter_apps(self, preinstall_dir) -> None:
        """An empty selection should mean every app; a selection keeps manifest order."""
        manifest = load_manifest(preinstall_dir)
        assert len(manifest.filter_apps()) == 3
        assert [app.id for app in manifest.filter_apps(["firefox", "7zip"])] == [
            "7zip",
            "firefox",
        ]

    def test_filter_unknown_app(self) -> None:
        """Unknown ids should raise InvalidInputError naming them."""
        manifest = PreinstallManifest(apps=[PreinstallApp(id="a", source="a.exe")])
        with pytest.raises(InvalidInputError) as exc_info:
            manifest.filter_apps(["a", "b"])
        assert exc_info.value.context["unknown"] == ["b"]

    def test_command(self) -> None:
        """Silent apps should get silent switches; install_cmd overrides the file name."""
        assert PreinstallApp(id="a", source="x/a.exe", silent=True).command == "a.exe /S /Silent"
        assert PreinstallApp(id="b", source="b.exe", install_cmd="b.exe -q").command == "b.exe -q"

    def test_setup_complete_entry(self) -> None:
        """The entry should change into the staging folder before running."""
        entry = setup_complete_entry(PreinstallApp(id="a", name="App", source="a.exe"))
        assert "echo Installing App..." in entry
        assert entry.endswith("a.exe\n")

    def test_stage_apps(self, preinstall_dir, tmp_path) -> None:
        """Present installers should be staged; missing ones counted as failed."""
        mount_dir = tmp_path / "mount"
        apps = load_manifest(preinstall_dir).filter_apps()

        report = stage_apps(mount_dir, preinstall_dir, apps)

        assert report.items == ["7zip", "firefox"]
        assert report.failed == 1
        staged = mount_dir / "Windows" / "Setup" / "PreInstall"
        assert sorted(p.name for p in staged.iterdir()) == ["7z.exe", "firefox.exe"]
        script = (mount_dir / "Windows" / "Setup" / "Scripts" / "SetupComplete.cmd").read_bytes()
        assert b"7z.exe /S /Silent\r\n" in script
        assert b"firefox.exe -ms\r\n" in script
