"""Tests for the import CLI argument handling and dry-run mode."""

from __future__ import annotations

import uuid

import pytest

from app.ingest.cli import main

_OWNER = str(uuid.UUID(int=7))


def test_dry_run_prints_counts(tmp_path, capsys):
    export = tmp_path / "export.txt"
    export.write_text("#\t\tTitle\tArtist\n1\t\tSong\tA\n2\t\tsong\tB\n3\t\tOther\tC\n")

    main([str(export), "--owner", _OWNER, "--dry-run"])

    assert "Parsed 3 tracks, 2 after title dedupe" in capsys.readouterr().out


def test_missing_file_exits_1(tmp_path):
    with pytest.raises(SystemExit) as exc_info:
        main([str(tmp_path / "nope.txt"), "--owner", _OWNER])
    assert exc_info.value.code == 1


def test_empty_file_exits_1(tmp_path, capsys):
    export = tmp_path / "export.txt"
    export.write_bytes(b"")
    with pytest.raises(SystemExit) as exc_info:
        main([str(export), "--owner", _OWNER, "--dry-run"])
    assert exc_info.value.code == 1
    assert "Empty file uploaded." in capsys.readouterr().err


def test_owner_is_required(tmp_path):
    with pytest.raises(SystemExit) as exc_info:
        main([str(tmp_path / "x.txt")])
    assert exc_info.value.code == 2
