"""Tests for template resolution and download."""

import random
import subprocess
from unittest.mock import patch

import pytest

from devspawn.errors import CatalogUnreachableError, DownloadFailedError, TemplateNotFoundError
from devspawn.host.catalog import ProxmoxTemplateCatalog, natural_key, parse_available, pick_template
from devspawn.models.config import DevspawnConfig
from devspawn.models.template import TemplateArtifact
from devspawn.utils.commands import CommandResult

CATALOG = [
    "ubuntu-20.04-standard_20.04-1_amd64.tar.gz",
    "ubuntu-22.04-standard_22.04-1_amd64.tar.zst",
    "ubuntu-22.04-standard_22.04-10_amd64.tar.zst",
    "ubuntu-22.04-standard_22.04-2_amd64.tar.zst",
    "ubuntu-22.04-minimal_22.04-12_amd64.tar.zst",
    "ubuntu-24.04-standard_24.04-2_amd64.tar.zst",
    "debian-12-standard_12.7-1_amd64.tar.zst",
]


@pytest.fixture
def config(tmp_path):
    return DevspawnConfig(
        proxmox={"template_cache_dir": str(tmp_path / "cache")},
        policy={"download_attempts": 3, "download_retry_delay": 1},
    )


@pytest.fixture
def catalog(config):
    return ProxmoxTemplateCatalog(config, sleep=lambda s: None)


def artifact_in(cache_dir, filename="ubuntu-22.04-standard_22.04-1_amd64.tar.zst"):
    return TemplateArtifact(
        os="ubuntu", version="22.04", filename=filename,
        storage="local", cache_path=str(cache_dir / filename),
    )


class TestPickTemplate:
    """Test template selection."""

    def test_picks_greatest_version(self):
        assert pick_template(CATALOG, "ubuntu", "22.04") == "ubuntu-22.04-standard_22.04-10_amd64.tar.zst"

    def test_independent_of_listing_order(self):
        expected = pick_template(CATALOG, "ubuntu", "22.04")
        rng = random.Random(7)
        for _ in range(10):
            shuffled = list(CATALOG)
            rng.shuffle(shuffled)
            assert pick_template(shuffled, "ubuntu", "22.04") == expected

    def test_only_standard_images(self):
        assert "minimal" not in pick_template(CATALOG, "ubuntu", "22.04")

    def test_no_match(self):
        with pytest.raises(TemplateNotFoundError):
            pick_template(CATALOG, "ubuntu", "18.04")

    def test_natural_key_orders_numbers(self):
        assert natural_key("a-10") > natural_key("a-9")

    def test_parse_available(self):
        output = (
            "system          debian-12-standard_12.7-1_amd64.tar.zst\n"
            "system          ubuntu-22.04-standard_22.04-1_amd64.tar.zst\n"
            "\n"
        )
        assert parse_available(output) == [
            "debian-12-standard_12.7-1_amd64.tar.zst",
            "ubuntu-22.04-standard_22.04-1_amd64.tar.zst",
        ]


class TestProxmoxTemplateCatalog:
    """Test ProxmoxTemplateCatalog."""

    @patch("devspawn.host.catalog.run_command")
    def test_resolve(self, mock_run, catalog, tmp_path):
        listing = "".join(f"system {name}\n" for name in CATALOG)
        mock_run.side_effect = [CommandResult(0), CommandResult(0, listing)]

        artifact = catalog.resolve("ubuntu-22.04")

        assert artifact.filename == "ubuntu-22.04-standard_22.04-10_amd64.tar.zst"
        assert artifact.volume_ref == "local:vztmpl/ubuntu-22.04-standard_22.04-10_amd64.tar.zst"
        assert artifact.cache_path == str(tmp_path / "cache" / artifact.filename)
        assert mock_run.call_args_list[0][0][0] == ["pveam", "update"]

    @patch("devspawn.host.catalog.run_command")
    def test_resolve_survives_failed_update(self, mock_run, catalog):
        listing = "".join(f"system {name}\n" for name in CATALOG)
        mock_run.side_effect = [
            subprocess.CalledProcessError(1, ["pveam", "update"]),
            CommandResult(0, listing),
        ]
        assert catalog.resolve("debian-12").filename == "debian-12-standard_12.7-1_amd64.tar.zst"

    @patch("devspawn.host.catalog.run_command")
    def test_catalog_unreachable(self, mock_run, catalog):
        mock_run.side_effect = [CommandResult(0), subprocess.CalledProcessError(255, ["pveam"])]
        with pytest.raises(CatalogUnreachableError):
            catalog.resolve("ubuntu-22.04")

    def test_bad_os_template(self, catalog):
        with pytest.raises(TemplateNotFoundError):
            catalog.resolve("ubuntu")

    @patch("devspawn.host.catalog.run_command")
    def test_cached_template_skips_download(self, mock_run, catalog, tmp_path):
        artifact = artifact_in(tmp_path / "cache")
        (tmp_path / "cache").mkdir()
        (tmp_path / "cache" / artifact.filename).write_bytes(b"tar")

        assert catalog.ensure_downloaded(artifact) == artifact.cache_path
        mock_run.assert_not_called()

    def test_download_retries_then_succeeds(self, catalog, tmp_path):
        artifact = artifact_in(tmp_path / "cache")
        calls = []

        def fake_run(cmd, timeout=None, **kwargs):
            calls.append(cmd)
            if len(calls) < 2:
                raise subprocess.CalledProcessError(1, cmd)
            (tmp_path / "cache").mkdir(exist_ok=True)
            (tmp_path / "cache" / artifact.filename).write_bytes(b"tar")
            return CommandResult(0)

        with patch("devspawn.host.catalog.run_command", side_effect=fake_run):
            assert catalog.ensure_downloaded(artifact) == artifact.cache_path
        assert calls == [["pveam", "download", "local", artifact.filename]] * 2

    @patch("devspawn.host.catalog.run_command")
    def test_download_gives_up(self, mock_run, catalog, tmp_path):
        mock_run.side_effect = subprocess.CalledProcessError(1, ["pveam"])
        with pytest.raises(DownloadFailedError):
            catalog.ensure_downloaded(artifact_in(tmp_path / "cache"))
        assert mock_run.call_count == 3

    @patch("devspawn.host.catalog.run_command")
    def test_download_timeout(self, mock_run, catalog, tmp_path):
        mock_run.side_effect = subprocess.TimeoutExpired(["pveam"], 900)
        with pytest.raises(DownloadFailedError, match="timed out"):
            catalog.ensure_downloaded(artifact_in(tmp_path / "cache"))

    @patch("devspawn.host.catalog.run_command")
    def test_download_without_file(self, mock_run, catalog, tmp_path):
        mock_run.return_value = CommandResult(0)
        with pytest.raises(DownloadFailedError, match="does not exist"):
            catalog.ensure_downloaded(artifact_in(tmp_path / "cache"))
