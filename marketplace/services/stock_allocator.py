"""
Stock Allocator - FIFO allocation over line-delimited stock text.

Stock is stored as one deliverable credential per line, oldest first.
Allocation is a pure function: callers decide whether to persist the
remaining text once every item of an order has been satisfied.
"""

from marketplace.models.domain import AllocationResult


def parse_stock_lines(stock_text: str | None) -> list[str]:
    """
    Split stock text into its non-blank lines, in original order.

    Lines are delivered as stored; only a CRLF line ending is removed.
    """
    if not stock_text:
        return []
    lines = (line.removesuffix("\r") for line in stock_text.split("\n"))
    return [line for line in lines if line.strip()]


def count_stock(stock_text: str | None) -> int:
    """Number of units available in a stock text."""
    return len(parse_stock_lines(stock_text))


def normalize_stock(stock_text: str | None) -> str:
    """Canonical form of a stock text: non-blank lines joined with newlines."""
    return "\n".join(parse_stock_lines(stock_text))


def allocate(stock_text: str | None, quantity: int) -> AllocationResult:
    """
    Take the first `quantity` lines from the stock queue.

    Args:
        stock_text: Newline-delimited stock, earliest line first
        quantity: Units requested, must be positive

    Returns:
        AllocationResult. On shortfall nothing is delivered and the remaining
        text is the whole (normalized) stock.

    Raises:
        ValueError: If quantity is not a positive integer
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValueError(f"Quantity must be a positive integer: {quantity!r}")

    lines = parse_stock_lines(stock_text)
    shortfall = max(0, quantity - len(lines))

    if shortfall:
        return AllocationResult(
            delivered=(),
            remaining_stock_text="\n".join(lines),
            shortfall=shortfall,
        )

    return AllocationResult(
        delivered=tuple(lines[:quantity]),
        remaining_stock_text="\n".join(lines[quantity:]),
        shortfall=0,
    )
