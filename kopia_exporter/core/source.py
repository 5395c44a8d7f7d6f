"""Rendering of snapshot sources into ``user@host:/path`` label strings.

User names and hosts are checked against an explicit whitelist so the
rendered string stays unambiguous: ``@`` separates the user from the host
and ``:`` separates the host from the path, so neither may appear inside
those segments. Paths are free-form and only appear after the first ``:``.
"""

import re
from typing import Dict

from .errors import InvalidSourceField
from .models import Source

# Letters, digits, dot, underscore, hyphen, plus and dollar (Windows machine accounts).
USER_NAME_PATTERN = re.compile(r"[A-Za-z0-9._+$-]+")
# RFC 1123 host names, plus underscore which kopia accepts for host overrides.
HOST_PATTERN = re.compile(r"[A-Za-z0-9._-]+")


def _invalid_fields(source: Source) -> Dict[str, str]:
    invalid = {}
    if not USER_NAME_PATTERN.fullmatch(source.user_name):
        invalid["user"] = source.user_name
    if not HOST_PATTERN.fullmatch(source.host):
        invalid["host"] = source.host
    return invalid


def render_source(source: Source) -> str:
    """Render ``source`` as ``user@host:path``.

    Raises:
        InvalidSourceField: If the user name or host fails the whitelist.
            Every offending field is listed in its ``fields``.
    """
    invalid = _invalid_fields(source)
    if invalid:
        raise InvalidSourceField(invalid)
    return f"{source.user_name}@{source.host}:{source.path}"
