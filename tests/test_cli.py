"""
Tests for the tinypix command line client.
"""
import zipfile

import pytest

from tinypix import cli
from tinypix.config import get_settings
from tinypix.core.preferences import QualityPreferences
from conftest import make_jpeg, make_png


@pytest.fixture
def prefs_path(tmp_path, monkeypatch):
    path = tmp_path / "prefs.json"
    monkeypatch.setenv("TINYPIX_PREFERENCES_PATH", str(path))
    get_settings.cache_clear()
    yield path
    get_settings.cache_clear()


def test_compress_locally_writes_files_and_archive(tmp_path, prefs_path, capsys):
    (tmp_path / "photo.jpg").write_bytes(make_jpeg(200, 150))
    (tmp_path / "logo.png").write_bytes(make_png(50, 40))
    out = tmp_path / "out"

    code = cli.main([
        "compress", str(tmp_path / "photo.jpg"), str(tmp_path / "logo.png"),
        "--local", "--output-dir", str(out), "--suffix", "-min", "--zip", str(out / "all.zip"),
    ])

    assert code == 0
    assert (out / "photo-min.jpg").exists()
    assert (out / "logo-min.png").exists()
    with zipfile.ZipFile(out / "all.zip") as archive:
        assert sorted(archive.namelist()) == ["logo-min.png", "photo-min.jpg"]
    assert "2 of 2 compressed" in capsys.readouterr().out


def test_rejected_files_make_exit_code_nonzero(tmp_path, prefs_path, capsys):
    (tmp_path / "notes.txt").write_text("hello")
    (tmp_path / "a.png").write_bytes(make_png(16, 16))

    code = cli.main(["compress", str(tmp_path / "notes.txt"), str(tmp_path / "a.png"),
                     "--local", "--output-dir", str(tmp_path / "out")])

    assert code == 1
    assert "rejected notes.txt" in capsys.readouterr().err
    assert (tmp_path / "out" / "a.png").exists()


def test_nothing_to_compress(tmp_path, prefs_path):
    (tmp_path / "notes.txt").write_text("hello")
    assert cli.main(["compress", str(tmp_path / "notes.txt"), "--local"]) == 1


def test_remember_stores_qualities(tmp_path, prefs_path):
    (tmp_path / "a.jpg").write_bytes(make_jpeg(16, 16))

    cli.main(["compress", str(tmp_path / "a.jpg"), "--local", "--quality", "55",
              "--png-quality", "45", "--remember", "--output-dir", str(tmp_path / "out")])

    stored = QualityPreferences(prefs_path).load()
    assert (stored.jpeg_quality, stored.png_quality) == (55, 45)
