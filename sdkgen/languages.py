"""Language descriptors for SDK repositories.

Languages are data: a repository is matched against ``patterns`` (case
insensitive regular expressions searched in the repository name) and the
first matching descriptor decides how its changed packages are built.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from .errors import ConfigParseError


@dataclass(frozen=True)
class LanguageRule:
    """How to recognise, prepare and package one SDK language."""

    name: str
    patterns: Sequence[str]
    install_commands: Sequence[str] = field(default_factory=tuple)
    package_marker: Optional[str] = None
    build_command: Optional[str] = None
    artifact_glob: Optional[str] = None

    def matches(self, repository: str) -> bool:
        return any(
            re.search(pattern, repository, flags=re.IGNORECASE) for pattern in self.patterns
        )

    @property
    def packaged(self) -> bool:
        return bool(self.package_marker and self.build_command and self.artifact_glob)


DEFAULT_LANGUAGES: Sequence[LanguageRule] = (
    LanguageRule(
        name="python",
        patterns=("sdk-for-python",),
        package_marker="setup.py",
        build_command="python setup.py sdist --formats=gztar",
        artifact_glob="dist/*.tar.gz",
    ),
    LanguageRule(
        name="javascript",
        patterns=("sdk-for-js", "sdk-for-node"),
        install_commands=("npm install",),
        package_marker="package.json",
        build_command="npm pack",
        artifact_glob="*.tgz",
    ),
    LanguageRule(
        name="java",
        patterns=("sdk-for-java",),
        package_marker="pom.xml",
        build_command="mvn package -q -DskipTests",
        artifact_glob="target/*.jar",
    ),
    LanguageRule(name="go", patterns=("sdk-for-go",)),
    LanguageRule(name="dotnet", patterns=("sdk-for-net",)),
)


def resolve_language(
    repository: str, rules: Iterable[LanguageRule]
) -> Optional[LanguageRule]:
    """Return the first rule matching ``repository`` or ``None``."""
    for rule in rules:
        if rule.matches(repository):
            return rule
    return None


def languages_from_config(entries: Any) -> List[LanguageRule]:
    """Build language rules from a list of mappings (``.sdkgen.yml`` ``languages``)."""
    if not isinstance(entries, list):
        raise ConfigParseError("languages must be a list of mappings")
    rules: List[LanguageRule] = []
    for entry in entries:
        if not isinstance(entry, Mapping):
            raise ConfigParseError("each language entry must be a mapping")
        name = entry.get("name")
        patterns = _str_list(entry.get("patterns"))
        if not isinstance(name, str) or not name or not patterns:
            raise ConfigParseError("language entries need a name and at least one pattern")
        rules.append(
            LanguageRule(
                name=name,
                patterns=tuple(patterns),
                install_commands=tuple(_str_list(entry.get("install_commands"))),
                package_marker=_opt_str(entry.get("package_marker")),
                build_command=_opt_str(entry.get("build_command")),
                artifact_glob=_opt_str(entry.get("artifact_glob")),
            )
        )
    return rules


def _str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [str(item) for item in value if isinstance(item, (str, int, float))]
    return []


def _opt_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


__all__ = ["DEFAULT_LANGUAGES", "LanguageRule", "languages_from_config", "resolve_language"]
