from __future__ import annotations

import pytest

from hermes.http import Method, is_html, is_json, media_type, normalize_method


def test_media_type_helpers() -> None:
    assert media_type("Text/HTML; charset=UTF-8") == "text/html"
    assert media_type(None) == ""
    assert is_html("text/html; charset=utf-8")
    assert not is_html("application/json")
    assert is_json("application/json")
    assert is_json("application/problem+json")
    assert not is_json("text/plain")


def test_normalize_method() -> None:
    assert normalize_method("get") == "GET"
    assert normalize_method(Method.PATCH) == "PATCH"
    with pytest.raises(ValueError):
        normalize_method(" ")
