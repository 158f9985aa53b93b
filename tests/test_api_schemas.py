import pytest

from packs_print.web import schemas as s


def _limits(**over):
    base = {
        "MAX_TEMPLATE_LEN": 100,
        "MAX_FIELDS": 100,
        "MAX_COPIES": 100,
    }
    base.update(over)
    return {"limits": base}


def test_schema_accepts_valid_payload():
    data = {"template": " label ", "data": {"name": "Widget", "sku": "W-100"}, "copies": 2}
    req = s.JobSubmitRequest.model_validate(data, context=_limits())
    assert req.template == "label"
    assert list(req.data) == ["name", "sku"]
    assert req.copies == 2


def test_schema_copies_optional():
    req = s.JobSubmitRequest.model_validate({"template": "label"}, context=_limits())
    assert req.copies is None
    assert req.data == {}


def test_schema_limits_enforced_by_context():
    data = {"template": "label", "data": {"a": 1, "b": 2}}
    with pytest.raises(Exception):
        s.JobSubmitRequest.model_validate(data, context=_limits(MAX_FIELDS=1))
    with pytest.raises(Exception):
        s.JobSubmitRequest.model_validate({"template": "label", "copies": 5}, context=_limits(MAX_COPIES=4))


@pytest.mark.parametrize("copies", [0, -1, True, "2", 1.5])
def test_schema_rejects_bad_copies(copies):
    with pytest.raises(Exception):
        s.JobSubmitRequest.model_validate({"template": "label", "copies": copies}, context=_limits())


@pytest.mark.parametrize("template", ["", "   ", "../secret", "a\x07b"])
def test_schema_rejects_bad_template(template):
    with pytest.raises(Exception):
        s.JobSubmitRequest.model_validate({"template": template}, context=_limits())
