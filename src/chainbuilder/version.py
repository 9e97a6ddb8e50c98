# Copyright 2024 Shane Loretz.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

from dataclasses import dataclass, replace
import enum
import logging
import re
from typing import Optional


logger = logging.getLogger(__name__)


SEMVER_REGEX = re.compile(
    r"^v?(?P<major>0|[1-9]\d*)"
    r"(?:\.(?P<minor>0|[1-9]\d*))?"
    r"(?:\.(?P<patch>0|[1-9]\d*))?"
    r"(?:-(?P<prerelease>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+(?P<metadata>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)


class BumpComponent(enum.Enum):

    NONE = "none"
    PRE = "pre"
    PATCH = "patch"
    MINOR = "minor"
    MAJOR = "major"

    @classmethod
    def parse(cls, text: str) -> "BumpComponent":
        try:
            return cls(text)
        except ValueError:
            choices = "|".join(c.value for c in cls)
            raise ValueError(f"Unknown version component '{text}', use one of {choices}")

    def __str__(self):
        return self.value


@dataclass(frozen=True)
class SemVer:

    major: int
    minor: int
    patch: int
    prerelease: str = ""
    metadata: str = ""

    @classmethod
    def parse(cls, text: str) -> Optional["SemVer"]:
        """Return the parsed version, or None if text is not a semantic version."""
        m = SEMVER_REGEX.match(text.strip())
        if m is None:
            return None
        return cls(
            major=int(m.group("major")),
            minor=int(m.group("minor") or 0),
            patch=int(m.group("patch") or 0),
            prerelease=m.group("prerelease") or "",
            metadata=m.group("metadata") or "",
        )

    def inc_patch(self) -> "SemVer":
        if self.prerelease:
            # Releasing a pre-release keeps the patch number it was heading to
            return SemVer(self.major, self.minor, self.patch)
        return SemVer(self.major, self.minor, self.patch + 1)

    def inc_minor(self) -> "SemVer":
        return SemVer(self.major, self.minor + 1, 0)

    def inc_major(self) -> "SemVer":
        return SemVer(self.major + 1, 0, 0)

    def __str__(self):
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += f"-{self.prerelease}"
        if self.metadata:
            text += f"+{self.metadata}"
        return text


def tags_for(version: str) -> list[str]:
    """Return the tags an image with the given version is published under.

    Released versions are also published as major.minor and major so that
    consumers can follow a release line. Pre-releases only get their own tag.
    """
    v = SemVer.parse(version)
    if v is None:
        return [version] if version else []
    if v.prerelease:
        return [str(v)]
    return [str(v), f"{v.major}.{v.minor}", f"{v.major}"]


def _next_prerelease(prerelease: str) -> int:
    if not prerelease:
        return 1
    try:
        return int(prerelease) + 1
    except ValueError:
        logger.warning(f"Can't increment pre-release '{prerelease}', starting again from 0")
        return 1


def bump(version: str, component: BumpComponent) -> list[str]:
    """Bump a version and return its tags, the new full version first."""
    v = SemVer.parse(version)
    if v is None:
        logger.warning(f"'{version}' is not a semantic version so it can't be bumped")
        return [version]

    if component == BumpComponent.NONE:
        return tags_for(version)
    elif component == BumpComponent.PRE:
        new_v = replace(v, prerelease=str(_next_prerelease(v.prerelease)), metadata="")
    elif component == BumpComponent.PATCH:
        new_v = v.inc_patch()
    elif component == BumpComponent.MINOR:
        new_v = v.inc_minor()
    elif component == BumpComponent.MAJOR:
        new_v = v.inc_major()
    else:
        raise ValueError(f"Don't understand version component {component}")

    if v.prerelease and component != BumpComponent.PRE:
        # Stay on the pre-release line of the new version
        new_v = replace(new_v, prerelease="0")
    return tags_for(str(new_v))
