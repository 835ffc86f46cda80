import pytest

from autoshop.tickets.identifiers import TicketIdGenerator


def test_ids_are_sequential():
    generator = TicketIdGenerator()
    assert [generator.next_id() for _ in range(3)] == ["t1", "t2", "t3"]


def test_seed_skips_past_existing_ids():
    generator = TicketIdGenerator("t")
    assert generator.seed(["t1", "t7", "t3", "legacy-42", "tx"]) == 8
    assert generator.next_id() == "t8"


def test_seed_never_moves_counter_backwards():
    generator = TicketIdGenerator("t", start=10)
    generator.seed(["t2"])
    assert generator.next_id() == "t10"


def test_parse_sequence_requires_prefix_and_digits():
    generator = TicketIdGenerator("RO-")
    assert generator.parse_sequence("RO-12") == 12
    assert generator.parse_sequence("t12") is None
    assert generator.parse_sequence("RO-") is None


def test_empty_prefix_is_rejected():
    with pytest.raises(ValueError):
        TicketIdGenerator("")
