"""
Tests for the FIFO stock allocator.

Unit tests for the line-queue helpers plus Hypothesis properties for allocate().
"""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from marketplace.models.domain import AllocationResult
from marketplace.services.stock_allocator import (
    allocate,
    count_stock,
    normalize_stock,
    parse_stock_lines,
)

# ============================================================================
# Hypothesis Strategies
# ============================================================================

stock_lines = st.lists(
    st.text(
        alphabet=st.characters(exclude_categories=("Cc", "Cs", "Zl", "Zp", "Zs")),
        min_size=1,
        max_size=30,
    ),
    max_size=20,
)
quantities = st.integers(min_value=1, max_value=40)


class TestParseStockLines:
    """Tests for splitting stock text into units."""

    def test_empty_and_none(self) -> None:
        assert parse_stock_lines(None) == []
        assert parse_stock_lines("") == []

    def test_blank_lines_discarded(self) -> None:
        assert parse_stock_lines("A\n\n  \nB\n") == ["A", "B"]

    def test_crlf_removed_padding_kept(self) -> None:
        assert parse_stock_lines("  user:pass \r\nKEY-2\r\n") == ["  user:pass ", "KEY-2"]

    def test_count_stock(self) -> None:
        assert count_stock("A\nB\n\nC") == 3
        assert count_stock(None) == 0

    def test_normalize_stock(self) -> None:
        assert normalize_stock("\nA\n \nB\n") == "A\nB"


class TestAllocate:
    """Tests for allocate()."""

    def test_takes_first_line(self) -> None:
        """KEY1/KEY2 stock, quantity 1: KEY1 delivered, KEY2 remains."""
        result = allocate("KEY1\nKEY2\n", 1)

        assert result.delivered == ("KEY1",)
        assert result.remaining_stock_text == "KEY2"
        assert result.shortfall == 0
        assert result.ok is True

    def test_delivers_lines_verbatim(self) -> None:
        result = allocate("user:pass \nKEY2\n", 1)

        assert result.delivered == ("user:pass ",)
        assert result.remaining_stock_text == "KEY2"

    def test_takes_everything(self) -> None:
        result = allocate("KEY1\n", 1)

        assert result.delivered == ("KEY1",)
        assert result.remaining_stock_text == ""
        assert result.ok is True

    def test_preserves_insertion_order(self) -> None:
        result = allocate("c\na\nb\nd", 3)

        assert result.delivered == ("c", "a", "b")
        assert result.remaining_stock_text == "d"

    def test_shortfall_delivers_nothing(self) -> None:
        result = allocate("KEY1\n\nKEY2", 5)

        assert result.delivered == ()
        assert result.shortfall == 3
        assert result.remaining_stock_text == "KEY1\nKEY2"
        assert result.ok is False

    def test_empty_stock_shortfall(self) -> None:
        result = allocate("", 1)

        assert result.shortfall == 1
        assert result.delivered == ()

    @pytest.mark.parametrize("quantity", [0, -1, True, 1.5, "1"])
    def test_rejects_bad_quantity(self, quantity) -> None:
        with pytest.raises(ValueError, match="positive integer"):
            allocate("KEY1", quantity)

    def test_pure(self) -> None:
        """Repeated calls on the same text return the same answer."""
        stock = "A\nB\nC"
        assert allocate(stock, 2) == allocate(stock, 2)


class TestAllocationResult:
    """Tests for AllocationResult invariants."""

    def test_negative_shortfall_rejected(self) -> None:
        with pytest.raises(ValueError, match="negative"):
            AllocationResult(delivered=(), remaining_stock_text="", shortfall=-1)

    def test_short_allocation_cannot_deliver(self) -> None:
        with pytest.raises(ValueError, match="cannot deliver"):
            AllocationResult(delivered=("A",), remaining_stock_text="", shortfall=1)


class TestAllocateProperties:
    """Property-based tests for allocation correctness."""

    @given(lines=stock_lines, quantity=quantities)
    def test_first_q_lines_or_nothing(self, lines: list[str], quantity: int) -> None:
        """Q <= K takes the first Q lines in order; Q > K delivers nothing."""
        result = allocate("\n".join(lines), quantity)
        available = len(lines)

        if quantity <= available:
            assert list(result.delivered) == lines[:quantity]
            assert parse_stock_lines(result.remaining_stock_text) == lines[quantity:]
            assert result.shortfall == 0
        else:
            assert result.delivered == ()
            assert result.shortfall == quantity - available
            assert parse_stock_lines(result.remaining_stock_text) == lines

    @given(lines=stock_lines, quantity=quantities)
    def test_no_line_lost_or_duplicated(self, lines: list[str], quantity: int) -> None:
        result = allocate("\n".join(lines), quantity)

        assert list(result.delivered) + parse_stock_lines(result.remaining_stock_text) == lines

    @given(lines=stock_lines, first=quantities, second=quantities)
    def test_sequential_allocations_follow_fifo(
        self, lines: list[str], first: int, second: int
    ) -> None:
        """Two allocations in a row equal one allocation of the combined quantity."""
        one = allocate("\n".join(lines), first)
        if not one.ok:
            return
        two = allocate(one.remaining_stock_text, second)
        if not two.ok:
            return

        combined = allocate("\n".join(lines), first + second)
        assert one.delivered + two.delivered == combined.delivered
        assert two.remaining_stock_text == combined.remaining_stock_text
