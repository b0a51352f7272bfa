"""Resolution of ``file://`` and ``package://`` resource URLs to filesystem paths."""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Callable, Mapping

__all__ = [
    "UrlType",
    "PackageNotFoundError",
    "resolve_url",
    "parse_url",
    "get_package_file_name",
    "get_resolved_path",
]

_FILE_PREFIX = "file:///"
_PACKAGE_PREFIX = "package://"
_ROS_HOME_VAR = "${ROS_HOME}"

ShareLookup = Callable[[str], str]


class UrlType(Enum):
    """Kind of a resource URL."""

    EMPTY = 0
    FILE = 1
    PACKAGE = 2
    INVALID = 3


class PackageNotFoundError(LookupError):
    """Raised when a package's share directory cannot be located."""


def _ros_home(env: Mapping[str, str]) -> str:
    ros_home = env.get("ROS_HOME", "")
    if ros_home:
        return ros_home
    home = env.get("HOME", "")
    if home:
        return home + "/.ros"
    return ""


def resolve_url(url: str, env: Mapping[str, str] | None = None) -> str:
    """Substitute ``${ROS_HOME}``; every other ``$`` is left as it is."""
    if _ROS_HOME_VAR not in url:
        return url
    environment = os.environ if env is None else env
    return url.replace(_ROS_HOME_VAR, _ros_home(environment))


def parse_url(url: str) -> UrlType:
    """Classify ``url`` by its scheme."""
    if url == "":
        return UrlType.EMPTY
    if url[: len(_FILE_PREFIX)].lower() == _FILE_PREFIX:
        return UrlType.FILE
    prefix_len = len(_PACKAGE_PREFIX)
    if url[:prefix_len].lower() == _PACKAGE_PREFIX:
        # A package name must be present and something must follow its '/'.
        rest = url.find("/", prefix_len)
        if prefix_len < rest < len(url) - 1:
            return UrlType.PACKAGE
    return UrlType.INVALID


def _ament_share_lookup(env: Mapping[str, str]) -> ShareLookup:
    def lookup(package: str) -> str:
        for prefix in env.get("AMENT_PREFIX_PATH", "").split(os.pathsep):
            if not prefix:
                continue
            marker = Path(prefix, "share", "ament_index", "resource_index", "packages", package)
            if marker.is_file():
                return str(Path(prefix, "share", package))
        raise PackageNotFoundError(f"package '{package}' not found")

    return lookup


def get_package_file_name(url: str, share_lookup: ShareLookup | None = None) -> str:
    """Map ``package://name/rest`` to ``<share dir of name>/rest``.

    Returns an empty string when the lookup yields an empty share directory.
    """
    prefix_len = len(_PACKAGE_PREFIX)
    rest = url.find("/", prefix_len)
    if rest < 0:
        raise ValueError(f"malformed package URL: {url!r}")
    package = url[prefix_len:rest]
    lookup = share_lookup if share_lookup is not None else _ament_share_lookup(os.environ)
    pkg_path = lookup(package)
    if not pkg_path:
        return ""
    return pkg_path + url[rest:]


def get_resolved_path(
    url: str,
    share_lookup: ShareLookup | None = None,
    env: Mapping[str, str] | None = None,
) -> Path | None:
    """Resolve ``url`` to a path, or return ``None`` if it names nothing."""
    environment = os.environ if env is None else env
    resolved = resolve_url(url, environment)
    url_type = parse_url(url)
    if url_type is UrlType.FILE:
        result = resolved[len("file://"):]
    elif url_type is UrlType.PACKAGE:
        lookup = share_lookup if share_lookup is not None else _ament_share_lookup(environment)
        result = get_package_file_name(resolved, lookup)
    else:
        result = ""
    return Path(result) if result else None