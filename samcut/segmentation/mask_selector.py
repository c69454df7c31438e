"""
Best-candidate selection.
"""

from __future__ import annotations

from samcut.core.contracts import MaskCandidateSet, SelectedMask


class MaskSelector:
    """
    Picks the candidate with the highest quality score.

    Ties go to the lowest index. Scores are only compared, never
    interpreted.
    """

    def select(self, candidates: MaskCandidateSet) -> SelectedMask:
        if candidates.count == 0:
            raise ValueError("Cannot select from an empty candidate set")

        best_index = 0
        best_score = float(candidates.scores[0])
        for i in range(1, candidates.count):
            score = float(candidates.scores[i])
            if score > best_score:
                best_index = i
                best_score = score

        return SelectedMask(candidates=candidates, index=best_index, score=best_score)
