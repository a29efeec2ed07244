"""Tests for the MetaTable annotation container."""

from microplane import MetaTable


def test_put_list_on_missing_key():
    table = MetaTable()
    table.put_list("Channel", "GFP")
    assert table["Channel"] == ["GFP"]


def test_put_list_promotes_scalar():
    """Test that appending to a scalar converts it into a list."""
    table = MetaTable()
    table["gain"] = 1.5
    table.put_list("gain", 2.0)
    table.put_list("gain", 2.5)
    assert table["gain"] == [1.5, 2.0, 2.5]


def test_insertion_order_preserved():
    table = MetaTable()
    for key in ("layout", "representation", "history"):
        table[key] = key.upper()
    assert list(table) == ["layout", "representation", "history"]


def test_copy_is_independent():
    table = MetaTable({"a": 1})
    duplicate = table.copy()
    duplicate["b"] = 2

    assert isinstance(duplicate, MetaTable)
    assert "b" not in table
    assert repr(table) == "MetaTable({'a': 1})"
