"""Tests for validated primitive types."""

import pytest
from pydantic import ValidationError

from hostvisor.common.frozen_model import FrozenModel
from hostvisor.common.frozen_model import UnknownFieldUpdateError
from hostvisor.common.primitives import NonEmptyStr
from hostvisor.common.primitives import NonNegativeInt
from hostvisor.common.primitives import PortNumber


class _Example(FrozenModel):
    name: NonEmptyStr
    port: PortNumber
    count: NonNegativeInt = NonNegativeInt(0)


def test_non_empty_str_strips_whitespace() -> None:
    assert NonEmptyStr("  host-1 ") == "host-1"


@pytest.mark.parametrize("value", ["", "   "])
def test_non_empty_str_rejects_blank(value: str) -> None:
    with pytest.raises(ValueError):
        NonEmptyStr(value)


@pytest.mark.parametrize("value", [0, 65536])
def test_port_number_rejects_out_of_range(value: int) -> None:
    with pytest.raises(ValueError):
        PortNumber(value)


def test_non_negative_int_rejects_negative() -> None:
    with pytest.raises(ValueError):
        NonNegativeInt(-1)


def test_primitives_validate_inside_models() -> None:
    model = _Example(name="svc", port=2385)

    assert isinstance(model.name, NonEmptyStr)
    assert isinstance(model.port, PortNumber)
    with pytest.raises(ValidationError):
        _Example(name="", port=2385)
    with pytest.raises(ValidationError):
        _Example(name="svc", port=0)


def test_with_updates_returns_modified_copy() -> None:
    model = _Example(name="svc", port=2385)

    updated = model.with_updates(port=PortNumber(2386))

    assert updated.port == 2386
    assert model.port == 2385


def test_with_updates_rejects_unknown_fields() -> None:
    with pytest.raises(UnknownFieldUpdateError, match="prot"):
        _Example(name="svc", port=2385).with_updates(prot=1)
