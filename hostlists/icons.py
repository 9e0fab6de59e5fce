"""
icons.py - Structural validation of service icons

Every service ships its icon as inline SVG markup in `icon_svg`. An icon is
valid when it parses as XML and its root element is <svg>.
"""
from __future__ import annotations

import xml.etree.ElementTree as ET
from typing import Iterable

from hostlists.errors import InvalidAsset

ICON_FIELD = "icon_svg"


def check_svg(markup: object) -> str | None:
    """Return the reason markup is not a valid SVG document, or None."""
    if not isinstance(markup, str) or not markup.strip():
        return "icon is missing"
    try:
        root = ET.fromstring(markup)
    except ET.ParseError as e:
        return f"malformed SVG ({e})"
    tag = root.tag.rsplit("}", 1)[-1]
    if tag != "svg":
        return f"root element is <{tag}>, expected <svg>"
    return None


def validate_icons(services: Iterable[dict]) -> None:
    """Raise InvalidAsset for the first service whose icon is not valid."""
    for service in services:
        reason = check_svg(service.get(ICON_FIELD))
        if reason:
            raise InvalidAsset(service.get("id"), reason)
