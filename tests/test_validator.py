"""Tests for the EPUBCheck runner, using fake executables."""

import os
import stat
from pathlib import Path

import pytest

from epub_optimizer.core.validator import EpubCheckValidator
from epub_optimizer.errors import ValidationError


def fake_executable(directory: Path, name: str, body: str) -> Path:
    path = directory / name
    path.write_text(f"#!/bin/sh\n{body}\n")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def bin_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    directory = tmp_path / "bin"
    directory.mkdir()
    monkeypatch.setenv("PATH", str(directory))
    return directory


@pytest.fixture
def book(tmp_path: Path) -> Path:
    path = tmp_path / "book.epub"
    path.write_bytes(b"PK")
    return path


def test_not_available_is_skipped(bin_dir: Path, book: Path):
    validator = EpubCheckValidator()

    assert validator.command() is None
    result = validator.validate(book)
    assert result.ran is False
    assert result.passed is True


def test_epubcheck_on_path_passes(bin_dir: Path, book: Path):
    fake_executable(bin_dir, "epubcheck", 'echo "No errors or warnings detected."')

    result = EpubCheckValidator().validate(book)

    assert result.ran and result.passed
    assert result.exit_code == 0
    assert "No errors" in result.output
    assert result.command[-1] == str(book)


def test_jar_runs_through_java_and_reports_exit_code(bin_dir: Path, book: Path, tmp_path: Path):
    java = fake_executable(bin_dir, "java", 'echo "$@"; echo "ERROR(RSC-005)" >&2; exit 2')
    jar = tmp_path / "epubcheck.jar"
    jar.write_bytes(b"jar")

    result = EpubCheckValidator(jar_path=jar, java=str(java)).validate(book)

    assert result.ran
    assert not result.passed
    assert result.exit_code == 2
    assert result.command[:3] == [str(java), "-jar", str(jar)]
    assert f"-jar {jar} {book}" in result.output
    assert "RSC-005" in result.output


def test_missing_jar_is_an_error(bin_dir: Path, tmp_path: Path, book: Path):
    with pytest.raises(ValidationError):
        EpubCheckValidator(jar_path=tmp_path / "missing.jar").validate(book)


def test_timeout_is_an_error(bin_dir: Path, book: Path):
    fake_executable(bin_dir, "epubcheck", "PATH=/usr/bin:/bin exec sleep 5")

    with pytest.raises(ValidationError, match="timed out"):
        EpubCheckValidator(timeout=0.2).validate(book)


def test_fake_executable_is_found(bin_dir: Path):
    fake_executable(bin_dir, "epubcheck", "exit 0")

    assert EpubCheckValidator().command() == [os.path.join(str(bin_dir), "epubcheck")]
