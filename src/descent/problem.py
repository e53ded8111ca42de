# ---------------------------------------------------------------------
# problem.py
#
# Data passed between the line-search driver and the direction
# strategies: the current iterate, what the problem can evaluate and
# what a strategy needs.
# ---------------------------------------------------------------------

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import NamedTuple, Optional, Protocol, Tuple

import numpy as np


class EvaluationType(enum.IntFlag):
    """Quantities the driver must compute at ``x_next``."""

    NO_EVALUATION = 0
    FUNC_EVALUATION = 1
    GRAD_EVALUATION = 2
    HESS_EVALUATION = 4


class IterationType(enum.IntEnum):
    NO_ITERATION = 0
    MAJOR_ITERATION = 1
    MINOR_ITERATION = 2
    SUB_ITERATION = 3
    INIT_ITERATION = 4


class Needs(NamedTuple):
    gradient: bool
    hessian: bool


@dataclass
class ProblemInfo:
    has_gradient: bool = True
    has_hessian: bool = False


@dataclass
class Location:
    """
    Iterate state owned by the driver.

    Direction strategies read it but never write to it; they keep their
    own copies of whatever they need from previous iterations.
    """

    x: np.ndarray
    f: float = float("nan")
    gradient: Optional[np.ndarray] = None
    hessian: Optional[np.ndarray] = None


class NextDirectioner(Protocol):
    def init_direction(self, loc: Location, direction: np.ndarray) -> float:
        ...

    def next_direction(self, loc: Location, direction: np.ndarray) -> float:
        ...

    def needs(self) -> Needs:
        ...


class LinesearchMethod(Protocol):
    def init(self, f: float, proj_grad: float, step: float) -> None:
        ...

    def iterate(self, f: float, proj_grad: float) -> Tuple[bool, float]:
        ...
