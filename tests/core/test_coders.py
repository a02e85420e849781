from __future__ import annotations

import datetime

import pytest

from sqlio.coders import Coder, JSONCoder, PickleCoder, StrUtf8Coder


def test_pickle_coder_keeps_types():
    coder = PickleCoder()
    value = (1, "ada", datetime.date(1815, 12, 10))

    assert coder.decode(coder.encode(value)) == value


def test_json_coder_turns_tuples_into_lists():
    coder = JSONCoder()

    assert coder.encode((1, "ada")) == b'[1,"ada"]'
    assert coder.decode(b'[1,"ada"]') == [1, "ada"]


def test_json_coder_rejects_unencodable_values():
    with pytest.raises(TypeError):
        JSONCoder().encode(datetime.date(1815, 12, 10))


def test_str_utf8_coder():
    coder = StrUtf8Coder()

    assert coder.encode("Grüße") == "Grüße".encode()
    assert coder.decode(coder.encode("Grüße")) == "Grüße"


def test_coders_compare_by_type():
    assert JSONCoder() == JSONCoder()
    assert JSONCoder() != PickleCoder()
    assert len({StrUtf8Coder(), StrUtf8Coder(), PickleCoder()}) == 2


def test_coder_is_abstract():
    with pytest.raises(TypeError):
        Coder()  # type: ignore[abstract]
