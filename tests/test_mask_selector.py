import numpy as np
import pytest

from samcut.core.contracts import MaskCandidateSet
from samcut.segmentation.mask_selector import MaskSelector


def candidates(scores):
    planes = np.zeros((len(scores), 2, 2), dtype=np.uint8)
    return MaskCandidateSet.from_planar(planes, scores)


def test_tie_keeps_first_maximum():
    selected = MaskSelector().select(candidates([0.7, 0.91, 0.91]))
    assert selected.index == 1
    assert selected.score == pytest.approx(0.91)


def test_selection_is_deterministic():
    selector = MaskSelector()
    cands = candidates([0.3, 0.2, 0.9])
    first = selector.select(cands)
    second = selector.select(cands)
    assert (first.index, first.score) == (second.index, second.score) == (2, pytest.approx(0.9))


def test_single_candidate():
    assert MaskSelector().select(candidates([0.1])).index == 0


def test_empty_set_rejected():
    with pytest.raises(ValueError):
        MaskSelector().select(candidates([]))


def test_interleaved_layout_accessors():
    planes = np.zeros((3, 2, 2), dtype=np.uint8)
    planes[1, 0, 1] = 1
    cands = MaskCandidateSet.from_planar(planes, [0.1, 0.2, 0.3])

    assert cands.masks.shape == (2, 2, 3)
    # pixel index 1 is (row 0, col 1); flat offset is 3 * 1 + 1
    assert cands.masks.reshape(-1)[4] == 1
    assert cands.label_at(1, 1) == 1
    assert cands.label_at(1, 0) == 0
    assert cands.candidate_plane(1).tolist() == [[0, 1], [0, 0]]


def test_label_at_rejects_out_of_range_indices():
    cands = MaskCandidateSet.from_planar(np.ones((3, 2, 2), dtype=np.uint8), [0.1, 0.2, 0.3])

    with pytest.raises(IndexError):
        cands.label_at(0, 3)
    with pytest.raises(IndexError):
        cands.label_at(0, -1)
    with pytest.raises(IndexError):
        cands.label_at(4, 0)
    assert cands.label_at(3, 2) == 1
