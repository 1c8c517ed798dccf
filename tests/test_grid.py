import pytest

from core.exceptions import GridContractError
from core.grid import (
    CENTER_POSITION,
    OUTER_POSITIONS,
    index_to_position,
    is_valid_position,
    position_to_index,
)


def test_outer_ring_is_clockwise_from_top_left():
    assert [position_to_index(p) for p in range(9)] == [0, 1, 2, 7, None, 3, 6, 5, 4]


def test_center_has_no_outer_index():
    assert position_to_index(CENTER_POSITION) is None


def test_index_and_position_are_inverse():
    for idx in range(8):
        assert position_to_index(index_to_position(idx)) == idx
    assert sorted(OUTER_POSITIONS) == [0, 1, 2, 3, 5, 6, 7, 8]


@pytest.mark.parametrize("pos", [-1, 9, 42, True, "4", None])
def test_position_outside_grid_raises(pos):
    assert not is_valid_position(pos)
    with pytest.raises(GridContractError):
        position_to_index(pos)


@pytest.mark.parametrize("idx", [-1, 8, False, None])
def test_index_outside_ring_raises(idx):
    with pytest.raises(GridContractError) as exc:
        index_to_position(idx)
    # 同时是 ValueError，调用方可以按标准库习惯捕获
    assert isinstance(exc.value, ValueError)
