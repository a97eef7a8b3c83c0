from typing import Tuple

import numpy as np


_COLUMNS = ("x1", "y1", "x2", "y2", "scores", "classes")


def _as_column(name: str, values: np.ndarray) -> np.ndarray:
    arr = np.asarray(values, dtype=np.float32)
    if arr.ndim != 1:
        raise ValueError(f"DetectionSet column '{name}' must be 1-D, got shape {arr.shape}")
    return arr


def _as_columns(*columns: np.ndarray) -> Tuple[np.ndarray, ...]:
    arrays = tuple(_as_column(name, col) for name, col in zip(_COLUMNS, columns))
    lengths = {arr.shape[0] for arr in arrays}
    if len(lengths) > 1:
        sizes = ", ".join(f"{name}={arr.shape[0]}" for name, arr in zip(_COLUMNS, arrays))
        raise ValueError(f"DetectionSet columns must have equal length ({sizes})")
    return arrays


class DetectionSet:
    """
    Candidate boxes of one image, stored column-wise.

    Each column (x1, y1, x2, y2, scores, classes) is a 1-D float32 array and
    all of them always have the same length. Columns are only replaced as a
    whole set, so a failed `append` leaves the set untouched.
    Class ids are kept as floats so that every column shares one dtype.
    """

    __slots__ = ("_x1", "_y1", "_x2", "_y2", "_scores", "_classes")

    def __init__(
        self,
        x1: np.ndarray,
        y1: np.ndarray,
        x2: np.ndarray,
        y2: np.ndarray,
        scores: np.ndarray,
        classes: np.ndarray,
    ):
        self._set_columns(_as_columns(x1, y1, x2, y2, scores, classes))

    @classmethod
    def empty(cls) -> "DetectionSet":
        e = np.empty((0,), dtype=np.float32)
        return cls(e, e, e, e, e, e)

    def _set_columns(self, columns: Tuple[np.ndarray, ...]) -> None:
        self._x1, self._y1, self._x2, self._y2, self._scores, self._classes = columns

    @property
    def x1(self) -> np.ndarray:
        return self._x1

    @property
    def y1(self) -> np.ndarray:
        return self._y1

    @property
    def x2(self) -> np.ndarray:
        return self._x2

    @property
    def y2(self) -> np.ndarray:
        return self._y2

    @property
    def scores(self) -> np.ndarray:
        return self._scores

    @property
    def classes(self) -> np.ndarray:
        return self._classes

    def __len__(self) -> int:
        return int(self._scores.shape[0])

    def __repr__(self) -> str:
        return f"DetectionSet(len={len(self)})"

    def boxes(self) -> np.ndarray:
        """(N, 4) array of [x1, y1, x2, y2]."""
        return np.stack([self._x1, self._y1, self._x2, self._y2], axis=1)

    def append(
        self,
        x1: np.ndarray,
        y1: np.ndarray,
        x2: np.ndarray,
        y2: np.ndarray,
        scores: np.ndarray,
        classes: np.ndarray,
    ) -> None:
        new = _as_columns(x1, y1, x2, y2, scores, classes)
        if new[0].shape[0] == 0:
            return
        current = (self._x1, self._y1, self._x2, self._y2, self._scores, self._classes)
        self._set_columns(tuple(np.concatenate([old, add]) for old, add in zip(current, new)))

    def extend(self, other: "DetectionSet") -> None:
        self.append(other.x1, other.y1, other.x2, other.y2, other.scores, other.classes)

    def sort_by_score_and_trim(self, k: int) -> None:
        """
        Keep the `k` highest-scoring rows, stored in ascending score order.

        Rows with equal scores are ranked by their original position (earlier
        rows rank higher), so the result is deterministic for a given input.
        """

        if k < 0:
            raise ValueError(f"k must be >= 0, got {k}")

        order = np.argsort(-self._scores, kind="stable")[:k][::-1]
        current = (self._x1, self._y1, self._x2, self._y2, self._scores, self._classes)
        self._set_columns(tuple(col[order] for col in current))
