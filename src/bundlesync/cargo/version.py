"""
Semantic versions for cargo manifests.

Versions have the form ``MAJOR.MINOR.PATCH[-TAG[.BUILD]]`` where TAG is one of
``prealpha``, ``alpha``, ``beta`` or ``rc`` and BUILD is a non-negative integer
or another tag name (standing for that tag's rank). Ordering is delegated to
PEP 440 by mapping each version onto ``packaging.version.Version``:

    prealpha.N -> X.Y.Z.devN
    alpha.N    -> X.Y.ZaN
    beta.N     -> X.Y.ZbN
    rc.N       -> X.Y.ZrcN

which gives prealpha < alpha < beta < rc < release for equal cores, and
compares builds numerically within a tag.
"""

import re
from functools import total_ordering
from typing import Optional

from packaging.version import Version

from bundlesync.constants import MAX_VERSION_LENGTH, PRERELEASE_TAGS
from bundlesync.exceptions import VersionError

NO_PRERELEASE = "none"

_PEP440_SEGMENT = {
    "prealpha": ".dev",
    "alpha": "a",
    "beta": "b",
    "rc": "rc",
}


@total_ordering
class SemVer:
    """A parsed, totally ordered semantic version."""

    _TAGS = "|".join(PRERELEASE_TAGS)
    VERSION_RX = re.compile(
        rf"^(\d+)\.(\d+)\.(\d+)(?:-({_TAGS})(?:\.(\d+|{_TAGS}))?)?$"
    )

    def __init__(
        self,
        major: int,
        minor: int,
        patch: int,
        prerelease: str = NO_PRERELEASE,
        build: int = 0,
    ) -> None:
        if prerelease != NO_PRERELEASE and prerelease not in _PEP440_SEGMENT:
            raise VersionError(
                f"unknown prerelease tag {prerelease!r}", field="version", value=prerelease
            )
        self.major = major
        self.minor = minor
        self.patch = patch
        self.prerelease = prerelease
        self.build = build
        core = f"{major}.{minor}.{patch}"
        if prerelease == NO_PRERELEASE:
            self._key = Version(core)
        else:
            self._key = Version(f"{core}{_PEP440_SEGMENT[prerelease]}{build}")

    @classmethod
    def from_string(cls, version: str) -> Optional["SemVer"]:
        """
        Parse a version string.

        Parameters:
            version (str): Candidate version, 1 to 256 characters long.

        Returns:
            Optional[SemVer]: The parsed version, or None if the string is not a valid version.
        """
        if not isinstance(version, str) or not 0 < len(version) <= MAX_VERSION_LENGTH:
            return None
        match = cls.VERSION_RX.match(version)
        if not match:
            return None
        major, minor, patch, tag, build = match.groups()
        if tag is None:
            return cls(int(major), int(minor), int(patch))
        if build is None:
            build_number = 0
        elif build.isdigit():
            build_number = int(build)
        else:
            build_number = PRERELEASE_TAGS.index(build)
        return cls(int(major), int(minor), int(patch), tag, build_number)

    @classmethod
    def parse(cls, version: str) -> "SemVer":
        """
        Parse a version string, raising on failure.

        Raises:
            VersionError: If `version` is not a valid semantic version.
        """
        parsed = cls.from_string(version)
        if parsed is None:
            raise VersionError(
                f"{version} is not a valid semantic version", field="version", value=version
            )
        return parsed

    @classmethod
    def null(cls) -> "SemVer":
        return cls(0, 0, 0)

    def is_prerelease(self) -> bool:
        return self.prerelease != NO_PRERELEASE

    def is_greater(self, other: "SemVer") -> bool:
        return self._key > other._key

    def is_lower(self, other: "SemVer") -> bool:
        return self._key < other._key

    def is_equal(self, other: "SemVer") -> bool:
        return self._key == other._key

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SemVer):
            return NotImplemented
        return self._key == other._key

    def __lt__(self, other: "SemVer") -> bool:
        if not isinstance(other, SemVer):
            return NotImplemented
        return self._key < other._key

    def __hash__(self) -> int:
        return hash(self._key)

    def __str__(self) -> str:
        core = f"{self.major}.{self.minor}.{self.patch}"
        if not self.is_prerelease():
            return core
        return f"{core}-{self.prerelease}.{self.build}"

    def __repr__(self) -> str:
        return f"SemVer({str(self)!r})"
