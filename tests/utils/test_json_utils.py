import json

import pytest

from utils.json_utils import dumps_result, safe_json_loads, unwrap_body


def test_safe_json_loads_falls_back_to_embedded_object():
    assert safe_json_loads('noise {"a": 1} trailing') == {"a": 1}
    assert safe_json_loads("{'a': 1}") == {"a": 1}
    assert safe_json_loads("not json") == {}
    assert safe_json_loads(None) == {}


def test_unwrap_body_handles_double_encoded_body():
    payload = json.dumps({"statusCode": 200, "body": json.dumps({"files": {"/a.ts": "x"}})})
    assert unwrap_body(payload) == {"files": {"/a.ts": "x"}}


def test_unwrap_body_passes_plain_payloads_through():
    assert unwrap_body({"files": {}}) == {"files": {}}
    assert unwrap_body({"body": {"ok": True}}) == {"ok": True}
    assert unwrap_body([1, 2]) == [1, 2]


def test_dumps_result_keeps_unicode():
    text = dumps_result({"message": "héllo"})
    assert "héllo" in text
    assert text.startswith("{\n  ")


def test_unwrap_body_rejects_text_that_is_not_json():
    with pytest.raises(ValueError):
        unwrap_body("<html>502 Bad Gateway</html>")
    with pytest.raises(ValueError):
        unwrap_body({"statusCode": 200, "body": "not json"})
