import pytest

from sunkv.resp_types import (
    Array,
    BulkString,
    Integer,
    RespError,
    RespType,
    SimpleString,
    make_array,
    make_bulk_string,
    make_error,
    make_integer,
    make_null_array,
    make_null_bulk_string,
    make_simple_string,
)

LLONG_MAX = 9223372036854775807


def test_simple_string_encoding():
    value = make_simple_string("Hello World")
    assert value.encode() == b"+Hello World\r\n"
    assert value.to_string() == "Hello World"
    assert value.is_simple_string()


def test_error_encoding():
    value = make_error("Something went wrong")
    assert value.encode() == b"-Something went wrong\r\n"
    assert value.to_string() == "ERROR: Something went wrong"
    assert value.is_error()


def test_integer_encoding():
    value = make_integer(12345)
    assert value.encode() == b":12345\r\n"
    assert value.to_string() == "12345"
    assert value.is_integer()


def test_negative_integer():
    assert make_integer(-12345).to_string() == "-12345"
    assert make_integer(-12345).encode() == b":-12345\r\n"


def test_bulk_string_encoding():
    value = make_bulk_string("Hello")
    assert value.encode() == b"$5\r\nHello\r\n"
    assert value.to_string() == "Hello"
    assert value.is_bulk_string()
    assert not value.is_null()


def test_null_bulk_string():
    value = make_null_bulk_string()
    assert value.encode() == b"$-1\r\n"
    assert value.to_string() == "(null)"
    assert value.is_null()


def test_array_encoding():
    array = make_array([make_simple_string("GET"), make_bulk_string("key"), make_integer(1)])
    assert array.encode() == b"*3\r\n+GET\r\n$3\r\nkey\r\n:1\r\n"
    assert array.to_string() == "[GET, key, 1]"
    assert len(array) == 3
    assert array.is_array()


def test_null_array():
    array = make_null_array()
    assert array.encode() == b"*-1\r\n"
    assert array.to_string() == "(null array)"
    assert array.is_null()


def test_empty_array():
    array = make_array([])
    assert array.encode() == b"*0\r\n"
    assert array.to_string() == "[]"
    assert not array.is_null()


def test_nested_array_encoding():
    inner = make_array([make_simple_string("SET"), make_bulk_string("key"), make_bulk_string("value")])
    outer = make_array([make_simple_string("MULTI"), inner])
    assert outer.encode() == b"*2\r\n+MULTI\r\n*3\r\n+SET\r\n$3\r\nkey\r\n$5\r\nvalue\r\n"


@pytest.mark.parametrize("number", [9223372036854775807, LLONG_MAX])
def test_large_integer(number):
    value = make_integer(number)
    assert value.encode() == b":" + str(number).encode() + b"\r\n"
    assert value.to_string() == "9223372036854775807"


def test_add_value_clears_null():
    array = make_null_array()
    array.add_value(make_integer(1))
    assert not array.is_null()
    assert array.encode() == b"*1\r\n:1\r\n"


def test_bulk_string_is_binary_safe():
    value = BulkString(b"a\r\nb")
    assert value.encode() == b"$4\r\na\r\nb\r\n"


def test_null_kinds_alias_their_markers():
    assert RespType.NULL_BULK is RespType.BULK_STRING
    assert make_null_bulk_string().resp_type is RespType.NULL_BULK
    assert make_null_array().resp_type is RespType.NULL_ARRAY


def test_factories_return_expected_classes():
    assert make_simple_string("x") == SimpleString("x")
    assert make_error("x") == RespError("x")
    assert make_integer(1) == Integer(1)
    assert make_array([]) == Array([])


def test_str_matches_to_string():
    assert str(make_error("bad")) == "ERROR: bad"