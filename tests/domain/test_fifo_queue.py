import pytest

from sharepool.core.errors import ValidationError
from sharepool.domain.fifo import FifoQueue


def test_positions_are_dense_and_one_based() -> None:
    queue = FifoQueue([11, 12, 13])

    assert queue.positions() == {11: 1, 12: 2, 13: 3}
    assert list(queue) == [11, 12, 13]


def test_remove_compacts_positions() -> None:
    queue = FifoQueue([11, 12, 13])

    queue.remove(12)

    assert queue.positions() == {11: 1, 13: 2}
    assert 12 not in queue
    assert len(queue) == 2


def test_requeue_moves_order_to_the_tail() -> None:
    queue = FifoQueue([11, 12, 13])

    assert queue.requeue(11) == 3
    assert list(queue) == [12, 13, 11]
    assert queue.position_of(12) == 1


def test_rebuild_from_stored_positions_tolerates_gaps() -> None:
    queue = FifoQueue.from_positions([(7, 30), (2, 10), (4, 20)])

    assert list(queue) == [10, 20, 30]
    assert queue.positions() == {10: 1, 20: 2, 30: 3}


def test_duplicate_and_missing_ids_are_rejected() -> None:
    queue = FifoQueue([1])

    with pytest.raises(ValidationError):
        queue.append(1)
    with pytest.raises(ValidationError):
        queue.remove(2)
    with pytest.raises(ValidationError):
        queue.position_of(2)
