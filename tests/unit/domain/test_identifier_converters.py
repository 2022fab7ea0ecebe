"""Tests for repokit/domain/identifier_converters.py."""

import json
import uuid

import pytest
from pydantic import BaseModel, ValidationError

from repokit.domain.exceptions import DeserializationFailure, InvalidArgumentError
from repokit.domain.identifier_converters import IdentifierConverters, identifier_converters
from repokit.domain.identifiers import IntId
from sample_entities import EventNumber, GadgetId, OrderId, SkuCode, WidgetId


@pytest.fixture
def converters():
    return IdentifierConverters()


# --- encode ---

def test_encode_returns_bare_primitive(converters):
    assert converters.encode(WidgetId(7)) == 7
    assert converters.encode(SkuCode("AB")) == "AB"


def test_encode_json_writes_bare_primitive(converters):
    value = uuid.uuid4()
    assert converters.encode_json(WidgetId(7)) == "7"
    assert converters.encode_json(GadgetId(value)) == json.dumps(str(value))
    assert converters.encode_json(SkuCode("AB")) == '"AB"'


def test_converter_rejects_other_identifier_type(converters):
    with pytest.raises(InvalidArgumentError):
        converters.converter_for(WidgetId).encode(OrderId(1))


# --- decode ---

def test_decode_builds_the_concrete_type(converters):
    assert converters.decode(WidgetId, 7) == WidgetId(7)
    assert converters.decode(EventNumber, 2**40) == EventNumber(2**40)


def test_decode_accepts_uuid_text(converters):
    value = uuid.uuid4()
    assert converters.decode(GadgetId, str(value)) == GadgetId(value)


def test_decode_json(converters):
    assert converters.decode_json(WidgetId, "7") == WidgetId(7)
    assert converters.decode_json(SkuCode, '"AB"') == SkuCode("AB")


@pytest.mark.parametrize("raw", ["7", 7.5, True, None])
def test_decode_rejects_wrong_primitive_for_int_family(converters, raw):
    with pytest.raises(DeserializationFailure) as exc_info:
        converters.decode(WidgetId, raw)
    assert exc_info.value.target_type == "WidgetId"


def test_decode_rejects_values_failing_validation(converters):
    with pytest.raises(DeserializationFailure) as exc_info:
        converters.decode(WidgetId, 0)
    assert "WidgetId" in str(exc_info.value)


def test_decode_rejects_nil_uuid(converters):
    with pytest.raises(DeserializationFailure):
        converters.decode(GadgetId, str(uuid.UUID(int=0)))


def test_decode_json_rejects_malformed_document(converters):
    with pytest.raises(DeserializationFailure):
        converters.decode_json(WidgetId, "{not json")


def test_deserialization_failure_is_a_value_error(converters):
    with pytest.raises(ValueError):
        converters.decode(SkuCode, "   ")


# --- registry ---

def test_register_builds_converters_eagerly(converters):
    converters.register(WidgetId, GadgetId)
    assert WidgetId in converters
    assert len(converters) == 2


def test_register_rejects_non_identifier_types(converters):
    with pytest.raises(InvalidArgumentError):
        converters.register(int)
    with pytest.raises(InvalidArgumentError):
        converters.register(IntId)


def test_converter_is_cached(converters):
    assert converters.converter_for(WidgetId) is converters.converter_for(WidgetId)


# --- pydantic integration ---

class OrderDto(BaseModel):
    widget_id: WidgetId
    gadget_id: GadgetId | None = None


def test_model_validates_bare_primitive():
    dto = OrderDto.model_validate({"widget_id": 5})
    assert dto.widget_id == WidgetId(5)


def test_model_accepts_identifier_instance():
    assert OrderDto(widget_id=WidgetId(5)).widget_id == WidgetId(5)


def test_model_serializes_bare_primitive():
    value = uuid.uuid4()
    dto = OrderDto(widget_id=WidgetId(5), gadget_id=GadgetId(value))
    assert json.loads(dto.model_dump_json()) == {"widget_id": 5, "gadget_id": str(value)}


def test_model_json_round_trip():
    dto = OrderDto(widget_id=WidgetId(5))
    assert OrderDto.model_validate_json(dto.model_dump_json()) == dto


def test_model_rejects_invalid_identifier():
    with pytest.raises(ValidationError):
        OrderDto.model_validate({"widget_id": 0})


def test_model_rejects_other_identifier_type():
    with pytest.raises(ValidationError):
        OrderDto(widget_id=OrderId(5))


def test_module_registry_is_shared():
    assert identifier_converters.converter_for(WidgetId).id_type is WidgetId
