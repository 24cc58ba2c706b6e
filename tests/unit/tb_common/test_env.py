import pytest

from tb_common.config.env import parse_bool_env, parse_float_env, parse_int_env, parse_list_env

pytestmark = [pytest.mark.unit, pytest.mark.unit_common]


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("1", True), ("TRUE", True), (" yes ", True), ("on", True), ("0", False), ("off", False), (None, None)],
)
def test_parse_bool_env(raw, expected):
    assert parse_bool_env(raw) is expected


def test_parse_numbers():
    assert parse_int_env("4") == 4
    assert parse_int_env("four") is None
    assert parse_int_env(None) is None
    assert parse_float_env("2.5") == 2.5
    assert parse_float_env("x") is None


def test_parse_list_env_drops_empty_items():
    assert parse_list_env("wgpu, cuda-fusion,,") == ["wgpu", "cuda-fusion"]
    assert parse_list_env("") == []
    assert parse_list_env(None) is None
