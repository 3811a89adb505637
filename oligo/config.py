"""Run configuration for the oligo command line tool."""

from dataclasses import dataclass
from typing import Optional

from oligo.exceptions import ParameterError

METHODS = ('kmeans', 'aib', 'both')


@dataclass
class OligoConfig:
    """Configuration for an oligo run.

    Attributes:
        oligo_length: Length of the counted oligonucleotides (default: 4)
        fragment_length: Length of the windows sampled from each sequence,
            also the minimum length of a retained sequence (default: 5000)
        method: Clustering method to run: 'kmeans', 'aib' or 'both'
        num_centers: Number of k-means clusters (default: 10)
        seed: Seed for window sampling and k-means initialization (default: None = unseeded)
        max_threads: Worker threads for oligo counting (default: 1)
        max_iterations: k-means refinement iterations (default: 100)
    """
    oligo_length: int = 4
    fragment_length: int = 5000
    method: str = 'both'
    num_centers: int = 10
    seed: Optional[int] = None
    max_threads: int = 1
    max_iterations: int = 100

    @classmethod
    def from_args(cls, args) -> 'OligoConfig':
        """Create config from parsed command-line arguments."""
        return cls(
            oligo_length=args.oligo_length,
            fragment_length=args.fragment_length,
            method=args.method,
            num_centers=args.num_centers,
            seed=args.seed,
            max_threads=args.threads,
            max_iterations=getattr(args, 'max_iterations', 100),
        )

    @property
    def run_kmeans(self) -> bool:
        return self.method in ('kmeans', 'both')

    @property
    def run_aib(self) -> bool:
        return self.method in ('aib', 'both')

    def validate(self) -> None:
        if self.oligo_length < 1:
            raise ParameterError(f"Oligo length must be at least 1, got {self.oligo_length}")
        if self.fragment_length < self.oligo_length:
            raise ParameterError(
                f"Fragment length ({self.fragment_length}) must not be smaller "
                f"than the oligo length ({self.oligo_length})"
            )
        if self.method not in METHODS:
            raise ParameterError(f"Unknown clustering method {self.method!r}, expected one of {METHODS}")
        if self.num_centers < 1:
            raise ParameterError(f"Number of centers must be at least 1, got {self.num_centers}")
        if self.max_threads < 1:
            raise ParameterError(f"Number of threads must be at least 1, got {self.max_threads}")
        if self.max_iterations < 1:
            raise ParameterError(f"Number of iterations must be at least 1, got {self.max_iterations}")
