"""
Property-based tests for inventory finalization and logical addresses.
"""

from hypothesis import given, settings
from hypothesis import strategies as st

from scml.core.addresses import LogicalFileAddress
from scml.services.inventory_service import finalize_lines
from tests.content_library_utils import inventory_line


@given(st.lists(inventory_line(), max_size=30))
def test_finalize_is_idempotent(lines):
    once = finalize_lines(lines)
    assert finalize_lines(once) == once


@given(st.lists(inventory_line(), max_size=30))
def test_finalize_is_unique_and_sorted(lines):
    result = finalize_lines(lines)
    keys = [line.casefold() for line in result]

    assert len(set(keys)) == len(keys)
    assert keys == sorted(keys)
    assert {line.casefold() for line in lines} == set(keys)


@given(st.lists(inventory_line(), min_size=1, max_size=10))
def test_finalize_keeps_first_spelling(lines):
    duplicated = lines + [line.upper() for line in lines]

    result = finalize_lines(duplicated)

    first_seen = {}
    for line in duplicated:
        first_seen.setdefault(line.casefold(), line)
    assert sorted(result) == sorted(first_seen.values())


@given(inventory_line())
def test_address_round_trip(line):
    address = LogicalFileAddress.parse(line)
    assert str(address) == line


@settings(max_examples=50)
@given(inventory_line())
def test_unc_form_parses_to_same_address(line):
    unc = "\\\\" + line.replace("/", "\\")
    assert LogicalFileAddress.parse(unc) == LogicalFileAddress.parse(line)
