from __future__ import annotations

import pytest

from hostlists.errors import InvalidAsset
from hostlists.icons import check_svg, validate_icons
from tests.conftest import VALID_SVG


def test_valid_svg() -> None:
    assert check_svg(VALID_SVG) is None


def test_svg_without_namespace_is_valid() -> None:
    assert check_svg("<svg><rect/></svg>") is None


@pytest.mark.parametrize(
    "markup",
    [None, "", "   ", "<svg><path></svg>", "<div></div>", "not markup at all"],
)
def test_invalid_svg(markup: object) -> None:
    assert check_svg(markup) is not None


def test_validate_icons_names_offending_service() -> None:
    services = [{"id": "ok", "icon_svg": VALID_SVG}, {"id": "broken", "icon_svg": "<svg>"}]

    with pytest.raises(InvalidAsset) as excinfo:
        validate_icons(services)
    assert excinfo.value.entity_id == "broken"
    assert "broken" in str(excinfo.value)


def test_validate_icons_accepts_valid_services() -> None:
    validate_icons([{"id": "a", "icon_svg": VALID_SVG}, {"id": "b", "icon_svg": VALID_SVG}])
