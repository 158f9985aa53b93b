from pathlib import Path

import pytest

from packs_print.core.config import PACKAGE_ROOT
from packs_print.printing.errors import RenderError
from packs_print.printing.render import TemplateRenderer


def test_render_fills_fields(templates_dir):
    renderer = TemplateRenderer(str(templates_dir))
    payload = renderer.render("label", {"name": "Widget"})
    assert payload == b'N\nA20,20,0,4,1,1,N,"Widget"\nP1\n'


def test_list_templates(templates_dir):
    assert TemplateRenderer(str(templates_dir)).list_templates() == ["blank", "label"]


def test_unknown_template(templates_dir):
    with pytest.raises(RenderError) as exc:
        TemplateRenderer(str(templates_dir)).render("nope", {})
    assert exc.value.template == "nope"
    assert exc.value.code == "render_error"


def test_unknown_media_has_no_templates(templates_dir):
    with pytest.raises(RenderError):
        TemplateRenderer(str(templates_dir), media="4x6").render("label", {"name": "x"})


def test_missing_field_is_an_error(templates_dir):
    with pytest.raises(RenderError) as exc:
        TemplateRenderer(str(templates_dir)).render("label", {})
    assert "name" in exc.value.reason


def test_empty_output_is_an_error(templates_dir):
    with pytest.raises(RenderError) as exc:
        TemplateRenderer(str(templates_dir)).render("blank", {})
    assert "empty" in exc.value.reason


def test_unencodable_output(templates_dir):
    renderer = TemplateRenderer(str(templates_dir), encoding="ascii")
    with pytest.raises(RenderError):
        renderer.render("label", {"name": "Café"})
    assert TemplateRenderer(str(templates_dir)).render("label", {"name": "Café"}).count(b"\xe9") == 1


def test_clear_cache_picks_up_edits(templates_dir):
    renderer = TemplateRenderer(str(templates_dir))
    assert renderer.render("label", {"name": "a"}).startswith(b"N\n")
    (Path(templates_dir) / "2x1" / "label.epl").write_text("N\nP2\n", encoding="utf-8")
    renderer.clear_cache()
    assert renderer.render("label", {"name": "a"}) == b"N\nP2\n"


def test_bundled_templates_render():
    root = PACKAGE_ROOT / "label_templates"
    label = TemplateRenderer(str(root), media="2x1").render("label", {"name": "Widget", "sku": "W-1"})
    assert b"Widget" in label and b"W-1" in label
    assert TemplateRenderer(str(root), media="2x1").render("test", {}).strip()
    shipping = TemplateRenderer(str(root), media="4x6").render(
        "shipping", {"to_name": "Ada", "address_lines": ["1 Main St", "Springfield"]}
    )
    assert b"Springfield" in shipping
