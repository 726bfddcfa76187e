"""Tests for language rules."""

from __future__ import annotations

import pytest

from sdkgen.errors import ConfigParseError
from sdkgen.languages import DEFAULT_LANGUAGES, languages_from_config, resolve_language


@pytest.mark.parametrize(
    ("repository", "language"),
    [
        ("Azure/azure-sdk-for-python", "python"),
        ("Azure/Azure-SDK-for-JS", "javascript"),
        ("Azure/azure-sdk-for-node", "javascript"),
        ("Azure/azure-sdk-for-java", "java"),
        ("Azure/azure-sdk-for-go", "go"),
        ("Azure/azure-sdk-for-net", "dotnet"),
    ],
)
def test_default_rules_match_repository_names(repository: str, language: str) -> None:
    rule = resolve_language(repository, DEFAULT_LANGUAGES)

    assert rule is not None
    assert rule.name == language


def test_unknown_repository_has_no_rule() -> None:
    assert resolve_language("Azure/azure-cli", DEFAULT_LANGUAGES) is None


def test_only_some_languages_are_packaged() -> None:
    packaged = {rule.name for rule in DEFAULT_LANGUAGES if rule.packaged}

    assert packaged == {"python", "javascript", "java"}


def test_languages_from_config_builds_rules() -> None:
    rules = languages_from_config(
        [
            {
                "name": "ruby",
                "patterns": "sdk-for-ruby",
                "install_commands": ["bundle install"],
                "package_marker": "Gemfile",
                "build_command": "gem build",
                "artifact_glob": "*.gem",
            }
        ]
    )

    (rule,) = rules
    assert rule.matches("Azure/azure-sdk-for-ruby")
    assert rule.install_commands == ("bundle install",)
    assert rule.packaged


@pytest.mark.parametrize("entries", [{"name": "x"}, ["python"], [{"name": "x"}], [{"patterns": ["y"]}]])
def test_languages_from_config_rejects_bad_entries(entries: object) -> None:
    with pytest.raises(ConfigParseError):
        languages_from_config(entries)
