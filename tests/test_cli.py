"""End-to-end tests for the oligo command line tool."""

import io
import logging
import random
import sys
from argparse import Namespace
from unittest.mock import patch

import pytest

from oligo import __version__
from oligo.config import OligoConfig
from oligo.core import format_matrix, main, run
from oligo.exceptions import ParameterError


def biased_sequence(seed_str: str, alphabet: str, length: int) -> str:
    rng = random.Random(seed_str)
    return ''.join(rng.choice(alphabet) for _ in range(length))


@pytest.fixture(autouse=True)
def restore_logging():
    """main() reconfigures the root logger; put it back after each test."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
            if isinstance(handler, logging.FileHandler):
                handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)


@pytest.fixture
def grouped_fasta(tmp_path):
    path = tmp_path / "grouped.fasta"
    with open(path, 'w') as f:
        for i in range(3):
            f.write(f">at{i} AT rich\n{biased_sequence(f'at{i}', 'AAAT', 600)}\n")
        for i in range(3):
            f.write(f">gc{i} GC rich\n{biased_sequence(f'gc{i}', 'GGGC', 600)}\n")
        f.write(">short too short to sample\nACGTACGT\n")
    return str(path)


def run_main(args_list):
    with patch.object(sys, 'argv', ['oligo'] + args_list):
        main()


def test_full_run_prints_assignments_and_tree(grouped_fasta, capsys):
    run_main([grouped_fasta, '-k', '2', '-f', '200', '--seed', '1',
              '--num-centers', '2', '--log-level', 'WARNING'])
    lines = capsys.readouterr().out.strip().splitlines()

    assignments = {}
    for line in lines[:-1]:
        identifier, rest = line.split(': ')
        assignments[identifier.strip()] = int(rest.split('\t')[0])

    assert sorted(assignments) == ['at0', 'at1', 'at2', 'gc0', 'gc1', 'gc2']
    assert assignments['at0'] == assignments['at1'] == assignments['at2']
    assert assignments['gc0'] == assignments['gc1'] == assignments['gc2']
    assert assignments['at0'] != assignments['gc0']

    newick = lines[-1]
    assert newick.endswith(';')
    assert newick.count('(') == 5
    for identifier in assignments:
        assert newick.count(f"{identifier}:") == 1
    assert 'short' not in newick


def test_aib_only_prints_tree(grouped_fasta, capsys):
    run_main([grouped_fasta, '-k', '2', '-f', '200', '--seed', '4', '--method', 'aib',
              '--log-level', 'WARNING'])
    lines = capsys.readouterr().out.strip().splitlines()

    assert len(lines) == 1
    assert lines[0].endswith(';')


def test_output_file_and_matrix(grouped_fasta, tmp_path, capsys):
    output = tmp_path / "result.txt"
    run_main([grouped_fasta, '-k', '1', '-f', '100', '--seed', '2', '--method', 'kmeans',
              '--num-centers', '2', '--print-matrix', '-o', str(output), '--log-level', 'WARNING'])

    assert capsys.readouterr().out == ''
    lines = output.read_text().splitlines()
    # Six matrix rows followed by six assignments
    assert len(lines) == 12
    assert lines[0].startswith('at0: ')
    assert len(lines[0].split(': ')[1].split()) == 4


def test_seeded_runs_are_identical(grouped_fasta):
    config = OligoConfig(oligo_length=2, fragment_length=150, seed=9, num_centers=2)
    first, second = io.StringIO(), io.StringIO()
    run(grouped_fasta, config, first)
    run(grouped_fasta, config, second)
    assert first.getvalue() == second.getvalue()


def test_missing_file_exits_with_error(tmp_path):
    with pytest.raises(SystemExit) as excinfo:
        run_main([str(tmp_path / 'missing.fasta'), '--log-level', 'CRITICAL'])
    assert excinfo.value.code == 1


def test_fragment_longer_than_all_sequences_exits_with_error(grouped_fasta):
    with pytest.raises(SystemExit) as excinfo:
        run_main([grouped_fasta, '-f', '5000', '--log-level', 'CRITICAL'])
    assert excinfo.value.code == 1


def test_log_file_records_version_and_command_line(grouped_fasta, tmp_path):
    log_file = tmp_path / "oligo.log"
    run_main([grouped_fasta, '-k', '1', '-f', '100', '--seed', '3', '--method', 'aib',
              '-o', str(tmp_path / "tree.nwk"), '--log-file', str(log_file)])

    lines = log_file.read_text().splitlines()
    assert f"INFO - Oligo {__version__}: oligo {grouped_fasta}" in lines[0]
    assert any("Running the AIB algorithm" in line for line in lines)


def test_format_matrix():
    assert format_matrix(['x'], [[0.5, 0.25]]) == ['x: 0.5000 0.2500']


def test_config_from_args():
    args = Namespace(oligo_length=3, fragment_length=900, method='aib', num_centers=4,
                     seed=5, threads=2, max_iterations=50)
    config = OligoConfig.from_args(args)

    assert config.oligo_length == 3
    assert config.max_threads == 2
    assert config.run_aib and not config.run_kmeans
    config.validate()


@pytest.mark.parametrize("changes", [
    {'oligo_length': 0},
    {'oligo_length': 5, 'fragment_length': 4},
    {'method': 'ward'},
    {'num_centers': 0},
    {'max_threads': 0},
    {'max_iterations': 0},
])
def test_config_validation(changes):
    with pytest.raises(ParameterError):
        OligoConfig(**changes).validate()
