#!/usr/bin/env python3
"""
Oligo categorizes sequence data based on oligonucleotide usage frequency.

Sequences from a FASTA file are sampled into an oligo usage frequency matrix
which is clustered with k-means and/or the Agglomerative Information
Bottleneck. k-means assignments are reported per sequence and the AIB result
is written as a Newick tree.
"""

import argparse
import logging
import random
import sys
from typing import List, Optional, TextIO

import numpy as np

from oligo import __version__
from oligo.cluster import aib_tree, format_assignments, run_kmeans
from oligo.config import METHODS, OligoConfig
from oligo.exceptions import OligoError
from oligo.fasta import SequenceStore
from oligo.kmer import FrequencyBuilder


def parse_arguments():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Cluster sequences by oligonucleotide usage frequency"
    )
    parser.add_argument("fasta_file", help="Input FASTA file")
    parser.add_argument("--oligo-length", "-k", type=int, default=4,
                        help="Length of the counted oligonucleotides (default: 4). "
                             "The matrix has 4^k columns, so larger values become very "
                             "computationally intensive.")
    parser.add_argument("--fragment-length", "-f", type=int, default=5000,
                        help="Length of the fragments sampled from each sequence (default: 5000). "
                             "Shorter sequences are ignored; smaller fragments retain less fidelity.")
    parser.add_argument("--method", choices=METHODS, default="both",
                        help="Clustering method to run (default: both)")
    parser.add_argument("--num-centers", type=int, default=10,
                        help="Number of k-means clusters (default: 10)")
    parser.add_argument("--max-iterations", type=int, default=100,
                        help="Maximum k-means refinement iterations (default: 100)")
    parser.add_argument("--seed", type=int, default=None,
                        help="Random seed for fragment sampling and k-means initialization "
                             "(default: unseeded)")
    parser.add_argument("--threads", type=int, default=1, metavar="N",
                        help="Worker threads for oligo counting (default: 1)")
    parser.add_argument("--print-matrix", action="store_true",
                        help="Print the oligo usage frequency matrix before clustering")
    parser.add_argument("-o", "--output", default=None,
                        help="Write results to this file instead of standard output")
    parser.add_argument("--log-file", default=None,
                        help="Also write log messages to this file")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    parser.add_argument("--version", action="version",
                        version=f"Oligo {__version__}",
                        help="Show program's version number and exit")
    return parser.parse_args()


LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


def setup_logging(log_level: str, log_file: Optional[str] = None) -> None:
    """Log to stderr and, if log_file is given, to that file as well.

    Handlers already on the root logger are replaced. The file starts with the
    program version and the command line that produced it.
    """
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode='w'))
    logging.basicConfig(level=getattr(logging, log_level), format=LOG_FORMAT,
                        handlers=handlers, force=True)

    if log_file:
        logging.info(f"Oligo {__version__}: {' '.join(sys.argv)}")


def format_matrix(ids: List[str], matrix: np.ndarray) -> List[str]:
    return [
        f"{identifier}: " + ' '.join(f"{value:.4f}" for value in row)
        for identifier, row in zip(ids, matrix)
    ]


def run(fasta_file: str, config: OligoConfig, out: TextIO, print_matrix: bool = False) -> None:
    """Run the full pipeline on a FASTA file and write the results to out."""
    config.validate()

    with SequenceStore(fasta_file) as store:
        builder = FrequencyBuilder(
            oligo_length=config.oligo_length,
            fragment_length=config.fragment_length,
            rng=random.Random(config.seed),
            max_threads=config.max_threads,
        )
        logging.info("Generating the oligo usage frequency matrix")
        matrix = builder.build(store)
        ids = store.retained_identifiers()
        logging.info(f"Built {matrix.shape[0]} x {matrix.shape[1]} frequency matrix "
                     f"({len(store) - len(ids)} sequences shorter than {config.fragment_length} skipped)")

    if print_matrix:
        for line in format_matrix(ids, matrix):
            print(line, file=out)

    if config.run_kmeans:
        logging.info("Running the k-means algorithm")
        result = run_kmeans(matrix, config.num_centers, seed=config.seed,
                            max_iterations=config.max_iterations)
        for line in format_assignments(ids, result):
            print(line, file=out)

    if config.run_aib:
        logging.info("Running the AIB algorithm")
        tree = aib_tree(ids, matrix)
        print(tree.to_newick(), file=out)


def main():
    args = parse_arguments()
    setup_logging(args.log_level, args.log_file)

    config = OligoConfig.from_args(args)
    logging.debug(f"Configuration: {config}")

    try:
        if args.output:
            with open(args.output, 'w') as out:
                run(args.fasta_file, config, out, print_matrix=args.print_matrix)
            logging.info(f"Results written to {args.output}")
        else:
            run(args.fasta_file, config, sys.stdout, print_matrix=args.print_matrix)
    except OligoError as e:
        logging.error(str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
