"""
Command Line Entry Point
========================
Loads a network, runs the permeability calculation and prints a report.

Why is this file needed?
------------------------
It is the composition root of a command-line run. It:
1. Configures logging (the library itself never does).
2. Translates the command-line flags into `PermeabilityOptions` and `SolverSettings`.
3. Writes the requested exports.

Usage:
    $ python -m permeabilityanalysis network.json --axis z --engine darcy entrance
"""
import argparse
import logging
import sys
from typing import Optional, Sequence

from permeabilityanalysis.config import DEFAULT_MAX_ITERATIONS, DEFAULT_TOLERANCE
from permeabilityanalysis.exceptions import NetworkError
from permeabilityanalysis.logging_config import setup_logging
from permeabilityanalysis.model.io import IOManager
from permeabilityanalysis.model.options import (
    ConfiningPressureOptions,
    Engine,
    FlowAxis,
    PermeabilityOptions,
    SolverSettings,
)
from permeabilityanalysis.solvers.solver import calculate_permeability

EXIT_OK = 0
EXIT_INVALID_INPUT = 2

logger = logging.getLogger("permeabilityanalysis.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="permeabilityanalysis",
        description="Absolute permeability of a pore-network model.",
    )
    parser.add_argument("network", help="Pore network JSON file.")
    parser.add_argument("--axis", choices=[a.value for a in FlowAxis], default=FlowAxis.Z.value,
                        help="Flow direction (default: z).")
    parser.add_argument("--viscosity", type=float, default=1.0, help="Fluid viscosity in cP (default: 1.0).")
    parser.add_argument("--engine", nargs="+", choices=[e.value for e in Engine], default=[Engine.DARCY.value],
                        help="Conductance engines to run (default: darcy).")
    parser.add_argument("--gpu", action="store_true", help="Solve on the GPU (falls back to CPU).")
    parser.add_argument("--no-tortuosity", action="store_true", help="Skip the tortuosity correction.")
    parser.add_argument("--inlet-pressure", type=float, default=1.0, help="Inlet pressure in Pa (default: 1.0).")
    parser.add_argument("--outlet-pressure", type=float, default=0.0, help="Outlet pressure in Pa (default: 0.0).")
    parser.add_argument("--confining-pressure", type=float, default=None, metavar="MPA",
                        help="Apply a confining pressure (MPa).")
    parser.add_argument("--tolerance", type=float, default=DEFAULT_TOLERANCE, help="CG residual tolerance.")
    parser.add_argument("--max-iterations", type=int, default=DEFAULT_MAX_ITERATIONS, help="CG iteration cap.")
    parser.add_argument("--csv", metavar="PATH", help="Export the results as CSV.")
    parser.add_argument("--report", metavar="PATH", help="Export a text report.")
    parser.add_argument("--flow-h5", metavar="PATH", help="Export pore pressures and throat flows to HDF5.")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Logging level (default: INFO).")
    parser.add_argument("--log-file", help="Also write the log to this file.")
    return parser


def options_from_args(args: argparse.Namespace) -> PermeabilityOptions:
    engines = {Engine(e) for e in args.engine}
    confining = ConfiningPressureOptions()
    if args.confining_pressure is not None:
        confining = ConfiningPressureOptions(enabled=True, pressure_mpa=args.confining_pressure)

    return PermeabilityOptions(
        axis=FlowAxis(args.axis),
        viscosity_cp=args.viscosity,
        darcy=Engine.DARCY in engines,
        entrance=Engine.ENTRANCE in engines,
        three_resistor=Engine.THREE_RESISTOR in engines,
        use_gpu=args.gpu,
        correct_for_tortuosity=not args.no_tortuosity,
        inlet_pressure=args.inlet_pressure,
        outlet_pressure=args.outlet_pressure,
        confining=confining,
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    # 1. Setup Logging (Console + Optional File)
    setup_logging(level=getattr(logging, args.log_level), log_file=args.log_file)

    # 2. Options
    try:
        options = options_from_args(args)
        settings = SolverSettings(tolerance=args.tolerance, max_iterations=args.max_iterations)
    except ValueError as e:
        logger.error(f"Invalid options: {e}")
        return EXIT_INVALID_INPUT

    # 3. Network
    try:
        network = IOManager.load_network(args.network)
    except (NetworkError, OSError) as e:
        logger.error(f"Could not load network '{args.network}': {e}")
        return EXIT_INVALID_INPUT

    # 4. Solve
    results = calculate_permeability(network, options, settings)

    # 5. Report and exports
    print(IOManager.format_report(results, network.name), end="")
    if args.csv:
        IOManager.export_results_csv(results, args.csv, network.name)
    if args.report:
        IOManager.export_results_report(results, args.report, network.name)
    if args.flow_h5:
        IOManager.export_flow_hdf5(results, args.flow_h5)

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
