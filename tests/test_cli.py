# tests/test_cli.py
import logging

import pytest

from permeabilityanalysis.__main__ import EXIT_INVALID_INPUT, EXIT_OK, build_parser, main, options_from_args
from permeabilityanalysis.model.io import IOManager
from permeabilityanalysis.model.options import Engine, FlowAxis


@pytest.fixture(autouse=True)
def restore_package_logger():
    yield
    logger = logging.getLogger("permeabilityanalysis")
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def network_file(lattice, tmp_path):
    path = tmp_path / "lattice.json"
    IOManager.save_network(lattice, str(path))
    return path


def test_run_with_exports(network_file, tmp_path, capsys):
    csv_path = tmp_path / "out.csv"
    report_path = tmp_path / "out.txt"
    h5_path = tmp_path / "out.h5"
    code = main([
        str(network_file), "--engine", "darcy", "three-resistor",
        "--csv", str(csv_path), "--report", str(report_path), "--flow-h5", str(h5_path),
        "--log-level", "WARNING",
    ])
    assert code == EXIT_OK
    assert "PERMEABILITY ANALYSIS REPORT" in capsys.readouterr().out
    assert csv_path.exists()
    assert "Three-resistor:" in report_path.read_text(encoding="utf-8")
    assert set(IOManager.load_flow_hdf5(str(h5_path))) == {Engine.DARCY, Engine.THREE_RESISTOR}


def test_missing_file_is_invalid_input(tmp_path):
    assert main([str(tmp_path / "missing.json"), "--log-level", "ERROR"]) == EXIT_INVALID_INPUT


def test_malformed_network_is_invalid_input(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text("{")
    assert main([str(path), "--log-level", "ERROR"]) == EXIT_INVALID_INPUT


@pytest.mark.parametrize("content", [
    b'{"pores": [{"id": 0, "position": [0, 0, 0], "radius": "abc"}], "throats": []}',
    b'{"name": "\xe9chantillon", "pores": [], "throats": []}',
])
def test_unreadable_network_values_are_invalid_input(tmp_path, content):
    path = tmp_path / "bad.json"
    path.write_bytes(content)
    assert main([str(path), "--log-level", "ERROR"]) == EXIT_INVALID_INPUT


def test_invalid_pressures_are_invalid_input(network_file):
    code = main([str(network_file), "--inlet-pressure", "0", "--outlet-pressure", "1", "--log-level", "ERROR"])
    assert code == EXIT_INVALID_INPUT


def test_options_from_args():
    args = build_parser().parse_args([
        "net.json", "--axis", "x", "--engine", "entrance", "--no-tortuosity", "--confining-pressure", "15",
    ])
    options = options_from_args(args)
    assert options.axis is FlowAxis.X
    assert options.selected_engines() == (Engine.ENTRANCE,)
    assert not options.correct_for_tortuosity
    assert options.confining.active
    assert options.confining.pressure_mpa == 15.0


def test_unknown_engine_is_rejected_by_the_parser():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["net.json", "--engine", "lbm"])
