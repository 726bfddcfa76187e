"""Tests for working-tree change detection."""

from __future__ import annotations

from pathlib import Path

import pytest

from sdkgen.errors import ProcessExecutionError
from sdkgen.git.changes import ChangeDetector, parse_status
from sdkgen.languages import DEFAULT_LANGUAGES, resolve_language
from sdkgen.process import FakeProcessRunner, ProcessResult

_STATUS = """On branch master
Changes to be committed:
  (use "git reset HEAD <file>..." to unstage)

\tmodified:   azure-mgmt-sql/azure/mgmt/sql/models.py
\tnew file:   azure-mgmt-sql/azure/mgmt/sql/operations/retention.py
\trenamed:    old/name.py -> azure-mgmt-web/azure/mgmt/web/client.py
\tdeleted:    stale.py
"""


def test_parse_status_extracts_changed_paths() -> None:
    assert parse_status(_STATUS) == [
        "azure-mgmt-sql/azure/mgmt/sql/models.py",
        "azure-mgmt-sql/azure/mgmt/sql/operations/retention.py",
        "azure-mgmt-web/azure/mgmt/web/client.py",
    ]


def test_parse_status_of_clean_tree_is_empty() -> None:
    assert parse_status("On branch master\nnothing to commit, working tree clean\n") == []


def test_detect_changed_files_stages_before_reading_status(tmp_path: Path) -> None:
    runner = FakeProcessRunner({"git status": ProcessResult(exit_code=0, stdout=_STATUS)})

    changed = ChangeDetector(runner).detect_changed_files(tmp_path)

    assert runner.commands() == ["git add -A", "git status"]
    assert len(changed) == 3


def test_detect_changed_files_raises_when_git_fails(tmp_path: Path) -> None:
    runner = FakeProcessRunner({"git add -A": ProcessResult(exit_code=128, stderr="not a git repository")})

    with pytest.raises(ProcessExecutionError) as excinfo:
        ChangeDetector(runner).detect_changed_files(tmp_path)

    assert excinfo.value.result.exit_code == 128


def test_changed_package_folders_walk_up_to_the_marker(tmp_path: Path) -> None:
    for package in ("azure-mgmt-sql", "azure-mgmt-web"):
        (tmp_path / package).mkdir()
        (tmp_path / package / "setup.py").write_text("", encoding="utf-8")
    rule = resolve_language("Azure/azure-sdk-for-python", DEFAULT_LANGUAGES)

    folders = ChangeDetector(FakeProcessRunner()).detect_changed_package_folders(
        tmp_path,
        parse_status(_STATUS) + ["README.md"],
        rule,
    )

    assert folders == [tmp_path / "azure-mgmt-sql", tmp_path / "azure-mgmt-web"]


def test_changed_package_folders_need_a_marker(tmp_path: Path) -> None:
    rule = resolve_language("Azure/azure-sdk-for-go", DEFAULT_LANGUAGES)

    folders = ChangeDetector(FakeProcessRunner()).detect_changed_package_folders(
        tmp_path, ["services/sql/client.go"], rule
    )

    assert folders == []
