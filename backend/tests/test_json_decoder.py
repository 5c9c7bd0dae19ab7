"""Tests for strict JSON request decoding."""
from typing import Dict, List, Optional, Union

import pytest
from pydantic import BaseModel, ConfigDict, Field

from conftest import Payload
from toolkit import ToolsConfig
from toolkit.errors import (
    EmptyBody,
    JSONSyntaxError,
    MultipleJSONValues,
    TypeMismatch,
    UnknownField,
)
from toolkit.jsonio.decoder import decode_json


class Address(BaseModel):
    city: str = ""
    zip_code: str = Field(default="", alias="zipCode")


class Person(BaseModel):
    name: str
    age: int = 0
    address: Optional[Address] = None
    tags: List[str] = Field(default_factory=list)
    previous: List[Address] = Field(default_factory=list)
    extra: Dict[str, int] = Field(default_factory=dict)


class Loose(BaseModel):
    model_config = ConfigDict(extra="allow")

    foo: str = ""


class Registry(BaseModel):
    entries: Optional[Dict[str, Address]] = None


class Point(BaseModel):
    x: int


class Either(BaseModel):
    value: Union[Point, Dict[str, str]]


class TestDecodeJSON:
    """Classification of bodies into values or taxonomy errors."""

    def test_good_json(self):
        result = decode_json(b'{"foo":"bar"}', Payload)
        assert result == Payload(foo="bar")

    def test_surrounding_whitespace_allowed(self):
        assert decode_json(b'  \n{"foo": "bar"}\n\t ', Payload).foo == "bar"

    def test_badly_formed_json(self):
        with pytest.raises(JSONSyntaxError) as exc_info:
            decode_json(b'{"foo":}', Payload)

        assert exc_info.value.kind == "SyntaxError"
        assert exc_info.value.details["offset"] == 8
        assert exc_info.value.message == "body contains badly formed JSON (at character 8)"

    def test_syntax_error_inside_value(self):
        with pytest.raises(JSONSyntaxError):
            decode_json(b'{"foo":1"}', Payload)

    def test_unquoted_key(self):
        with pytest.raises(JSONSyntaxError):
            decode_json(b'{booo:"1"}', Payload)

    def test_not_json(self):
        with pytest.raises(JSONSyntaxError) as exc_info:
            decode_json(b"hello", Payload)

        assert exc_info.value.details["offset"] == 1

    def test_truncated_body_has_no_offset(self):
        with pytest.raises(JSONSyntaxError) as exc_info:
            decode_json(b'{"foo":"bar"', Payload)

        assert exc_info.value.message == "body contains badly formed JSON"

    def test_non_standard_constants_rejected(self):
        with pytest.raises(JSONSyntaxError):
            decode_json(b'{"age": NaN, "name": "x"}', Person)

    def test_invalid_utf8_rejected(self):
        with pytest.raises(JSONSyntaxError):
            decode_json(b'{"foo":"\xff"}', Payload)

    def test_offset_counts_bytes(self):
        """Multi-byte characters before the error shift the byte offset."""
        with pytest.raises(JSONSyntaxError) as exc_info:
            decode_json('{"foo":"é"x}'.encode("utf-8"), Payload)

        assert exc_info.value.details["offset"] == 12

    def test_incorrect_type_names_field(self):
        with pytest.raises(TypeMismatch) as exc_info:
            decode_json(b'{"foo": 1}', Payload)

        assert exc_info.value.details["field"] == "foo"
        assert exc_info.value.message == 'body contains incorrect JSON type for field "foo"'

    def test_numeric_string_not_coerced(self):
        with pytest.raises(TypeMismatch) as exc_info:
            decode_json(b'{"name": "x", "age": "12"}', Person)

        assert exc_info.value.details["field"] == "age"

    def test_nested_type_mismatch_uses_dotted_path(self):
        with pytest.raises(TypeMismatch) as exc_info:
            decode_json(b'{"name": "x", "address": {"city": 5}}', Person)

        assert exc_info.value.details["field"] == "address.city"

    def test_top_level_type_mismatch_reports_offset(self):
        with pytest.raises(TypeMismatch) as exc_info:
            decode_json(b'  ["foo"]', Payload)

        assert exc_info.value.details["offset"] == 3

    def test_missing_required_field(self):
        with pytest.raises(TypeMismatch) as exc_info:
            decode_json(b'{"age": 3}', Person)

        assert exc_info.value.message == 'body is missing required field "name"'

    def test_two_json_values(self):
        with pytest.raises(MultipleJSONValues) as exc_info:
            decode_json(b'{"foo": "bar"}{"alpha":"beta"}', Payload)

        assert exc_info.value.message == "body must contain only one JSON value"

    def test_trailing_garbage(self):
        with pytest.raises(MultipleJSONValues):
            decode_json(b'{"foo": "bar"} trailing', Payload)

    @pytest.mark.parametrize("body", [b"", b"   ", b"\n\t\r "])
    def test_empty_body(self, body):
        with pytest.raises(EmptyBody) as exc_info:
            decode_json(body, Payload)

        assert exc_info.value.message == "body must not be empty"

    def test_unknown_field(self):
        with pytest.raises(UnknownField) as exc_info:
            decode_json(b'{"fooo":"1"}', Payload)

        assert exc_info.value.details["field"] == "fooo"
        assert exc_info.value.message == 'body contains unknown key "fooo"'

    def test_allow_unknown_field_leaves_zero_value(self):
        result = decode_json(b'{"fooo":"1"}', Payload, allow_unknown_fields=True)

        assert result.foo == ""

    def test_unknown_nested_field(self):
        with pytest.raises(UnknownField) as exc_info:
            decode_json(b'{"name": "x", "address": {"town": "y"}}', Person)

        assert exc_info.value.details["field"] == "address.town"

    def test_unknown_field_inside_list_items(self):
        with pytest.raises(UnknownField) as exc_info:
            decode_json(b'{"name": "x", "previous": [{"city": "a"}, {"planet": "b"}]}', Person)

        assert exc_info.value.details["field"] == "previous.planet"

    def test_alias_is_the_accepted_key(self):
        result = decode_json(b'{"name": "x", "address": {"zipCode": "123"}}', Person)

        assert result.address.zip_code == "123"

    def test_free_form_dict_keys_are_not_unknown(self):
        result = decode_json(b'{"name": "x", "extra": {"anything": 1}}', Person)

        assert result.extra == {"anything": 1}

    def test_model_allowing_extra_accepts_unknown_keys(self):
        result = decode_json(b'{"foo": "a", "bar": "b"}', Loose)

        assert result.foo == "a"

    def test_optional_dict_of_models_keys_are_free_form(self):
        result = decode_json(b'{"entries": {"home": {"city": "Oslo"}}}', Registry)

        assert result.entries["home"].city == "Oslo"

    def test_unknown_field_inside_optional_dict_values(self):
        with pytest.raises(UnknownField) as exc_info:
            decode_json(b'{"entries": {"home": {"planet": "Mars"}}}', Registry)

        assert exc_info.value.details["field"] == "entries.home.planet"

    def test_union_with_dict_member_left_to_validator(self):
        result = decode_json(b'{"value": {"anything": "s"}}', Either)

        assert result.value == {"anything": "s"}

    def test_non_model_targets(self):
        assert decode_json(b"[1, 2, 3]", List[int]) == [1, 2, 3]
        assert decode_json(b'{"a": 1}', dict) == {"a": 1}

        with pytest.raises(TypeMismatch):
            decode_json(b'[1, "2"]', List[int])

    def test_type_error_reported_before_trailing_data(self):
        with pytest.raises(TypeMismatch):
            decode_json(b'{"foo": 1}{"foo": "x"}', Payload)


class TestReadJSON:
    """Request-level decoding through a FastAPI endpoint."""

    def test_good_request(self, make_client):
        client = make_client(ToolsConfig())

        response = client.post("/json", content=b'{"foo":"bar"}')

        assert response.status_code == 200
        assert response.json() == {"error": False, "message": "ok", "data": {"foo": "bar"}}

    def test_body_over_limit(self, make_client):
        client = make_client(ToolsConfig(max_json_bytes=5, allow_unknown_fields=True))

        response = client.post("/json", content=b'{"foo":"bar"}')

        assert response.status_code == 413
        assert response.json() == {
            "error": True,
            "message": "body must not be larger than 5 bytes",
        }

    def test_chunked_body_over_limit(self, make_client):
        client = make_client(ToolsConfig(max_json_bytes=8))

        def chunks():
            yield b'{"foo":'
            yield b'"a much longer value"}'

        response = client.post("/json", content=chunks())

        assert response.status_code == 413

    def test_unknown_field_rejected_by_default(self, make_client):
        client = make_client(ToolsConfig())

        response = client.post("/json", content=b'{"fooo":"1"}')

        assert response.status_code == 400
        assert response.json()["message"] == 'body contains unknown key "fooo"'

    def test_unknown_field_allowed_by_config(self, make_client):
        client = make_client(ToolsConfig(allow_unknown_fields=True))

        response = client.post("/json", content=b'{"fooo":"1"}')

        assert response.status_code == 200
        assert response.json()["data"] == {"foo": ""}

    def test_empty_request(self, make_client):
        client = make_client(ToolsConfig())

        response = client.post("/json", content=b"")

        assert response.status_code == 400
        assert response.json()["message"] == "body must not be empty"

    def test_parser_text_never_leaks(self, make_client):
        client = make_client(ToolsConfig())

        response = client.post("/json", content=b'{"foo":}')

        assert "Expecting" not in response.json()["message"]
