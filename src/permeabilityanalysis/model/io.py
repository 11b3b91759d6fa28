"""
Input/Output Manager
Loads and saves pore networks (JSON) and exports permeability results
(CSV table, text report, HDF5 flow field).
"""
import csv
from datetime import datetime
import json
import logging
import os
from importlib.metadata import version, PackageNotFoundError
from typing import Dict, Optional

import h5py
import numpy as np

from permeabilityanalysis.config import MILLIDARCY_PER_DARCY
from permeabilityanalysis.exceptions import NetworkError
from permeabilityanalysis.model.network import PoreNetwork
from permeabilityanalysis.model.options import Engine
from permeabilityanalysis.model.results import FlowData, PermeabilityResults

# Get module logger
logger = logging.getLogger(__name__)

try:
    APP_VERSION = version("permeabilityanalysis")
except PackageNotFoundError:
    APP_VERSION = "0.0.0-dev"

REPORT_RULE = "=" * 80


class IOManager:

    # ---- NETWORK ----

    @staticmethod
    def load_network(filepath: str) -> PoreNetwork:
        """
        Read a network from a JSON file.

        Raises:
            NetworkError: The file is not valid JSON or violates the network contract.
        """
        logger.info(f"Loading network from: {filepath}")
        try:
            with open(filepath, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"File '{filepath}' is not valid JSON: {e}")
            raise NetworkError(f"File '{filepath}' is not valid JSON: {e}") from e
        except UnicodeDecodeError as e:
            logger.error(f"File '{filepath}' is not UTF-8 text: {e}")
            raise NetworkError(f"File '{filepath}' is not UTF-8 text: {e}") from e

        if not isinstance(data, dict):
            raise NetworkError(f"File '{filepath}' does not contain a network object.")

        default_name = os.path.splitext(os.path.basename(filepath))[0]
        network = PoreNetwork.from_dict(data, name=data.get("name") or default_name)
        logger.info(f"Loaded {network!r}")
        return network

    @staticmethod
    def save_network(network: PoreNetwork, filepath: str) -> None:
        logger.info(f"Saving network to: {filepath}")
        try:
            with open(filepath, "w", encoding="utf-8") as f:
                json.dump(network.to_dict(), f, indent=2)
        except Exception as e:
            logger.exception(f"Failed to save network: {e}")
            raise e

    # ---- RESULTS ----

    @staticmethod
    def export_results_csv(results: PermeabilityResults, filepath: str, dataset_name: str = "network") -> None:
        """Write the results as a CSV table (flow parameters, then one row per engine)."""
        logger.info(f"Exporting results to CSV: {filepath}")
        try:
            with open(filepath, "w", encoding="utf-8", newline="") as f:
                writer = csv.writer(f)
                writer.writerow(["Permeability Analysis Results"])
                writer.writerow(["Dataset", dataset_name])
                writer.writerow(["Date", datetime.now().strftime("%Y-%m-%d %H:%M:%S")])
                writer.writerow([])

                writer.writerow(["Flow Parameters"])
                writer.writerow(["Parameter", "Value", "Unit"])
                writer.writerow(["Flow Axis", results.axis.name if results.axis else "", ""])
                writer.writerow(["Pressure Drop", f"{results.pressure_drop:.3f}", "Pa"])
                writer.writerow(["Fluid Viscosity", f"{results.viscosity_cp:.3f}", "cP"])
                writer.writerow(["Voxel Size", f"{results.voxel_size:.3f}", "um"])
                writer.writerow(["Pore Count", results.pore_count, ""])
                writer.writerow(["Throat Count", results.throat_count, ""])
                writer.writerow(["Tortuosity", f"{results.tortuosity:.4f}", ""])
                if results.confining_pressure > 0.0:
                    writer.writerow(["Confining Pressure", f"{results.confining_pressure:.3f}", "MPa"])
                    writer.writerow(["Closed Throats", results.closed_throats, ""])
                writer.writerow([])

                writer.writerow(["Permeability Results"])
                writer.writerow([
                    "Method", "Uncorrected (mD)", "Corrected (mD)", "Uncorrected (D)", "Corrected (D)",
                    "Total Flow Rate (m3/s)", "Model Length (um)", "Cross-section (um2)",
                ])
                for engine, result in results.engines.items():
                    writer.writerow([
                        engine.label,
                        f"{result.uncorrected:.6f}",
                        f"{result.corrected:.6f}",
                        f"{result.uncorrected / MILLIDARCY_PER_DARCY:.9f}",
                        f"{result.corrected / MILLIDARCY_PER_DARCY:.9f}",
                        f"{result.total_flow_rate:.3e}",
                        f"{result.model_length * 1e6:.3f}",
                        f"{result.cross_section * 1e12:.3f}",
                    ])
        except Exception as e:
            logger.exception(f"Failed to export results: {e}")
            raise e

    @staticmethod
    def format_report(results: PermeabilityResults, dataset_name: str = "network") -> str:
        """Plain text report of the results."""
        tau = max(results.tortuosity, 1.0)
        lines = [
            REPORT_RULE,
            "PERMEABILITY ANALYSIS REPORT".center(80).rstrip(),
            REPORT_RULE,
            "",
            f"Dataset: {dataset_name}",
            f"Date: {datetime.now():%Y-%m-%d %H:%M:%S}",
            "",
            "NETWORK PROPERTIES",
            "------------------",
            f"  Pores:                {results.pore_count:,}",
            f"  Throats:              {results.throat_count:,}",
            f"  Voxel Size:           {results.voxel_size:.3f} um",
            f"  Tortuosity:           {results.tortuosity:.4f}",
            f"  Correction (1/tau^2): {1.0 / (tau * tau):.4f}",
            "",
            "FLOW CONFIGURATION",
            "------------------",
            f"  Flow Axis:            {results.axis.name if results.axis else '-'}",
            f"  Pressure Drop:        {results.pressure_drop:.3f} Pa",
            f"  Fluid Viscosity:      {results.viscosity_cp:.3f} cP",
        ]
        if results.confining_pressure > 0.0:
            lines += [
                f"  Confining Pressure:   {results.confining_pressure:.3f} MPa",
                f"  Pore Reduction:       {results.pore_reduction:.1f} %",
                f"  Throat Reduction:     {results.throat_reduction:.1f} %",
                f"  Closed Throats:       {results.closed_throats:,}",
            ]
        lines += ["", "PERMEABILITY RESULTS", "--------------------"]

        for engine, result in results.engines.items():
            lines += [
                f"  {engine.label}:",
                f"    Model Length:       {result.model_length * 1e6:.3f} um",
                f"    Cross-section:      {result.cross_section * 1e12:.3f} um²",
                f"    Total Flow Rate:    {result.total_flow_rate:.3e} m³/s",
                f"    Uncorrected:        {result.uncorrected:.6f} mD "
                f"({result.uncorrected / MILLIDARCY_PER_DARCY:.9f} D)",
                f"    Corrected:          {result.corrected:.6f} mD "
                f"({result.corrected / MILLIDARCY_PER_DARCY:.9f} D)",
            ]
        if not results.engines:
            lines.append("  (no engine produced a result)")

        lines += ["", REPORT_RULE]
        return "\n".join(lines) + "\n"

    @staticmethod
    def export_results_report(results: PermeabilityResults, filepath: str, dataset_name: str = "network") -> None:
        logger.info(f"Exporting results report: {filepath}")
        try:
            with open(filepath, "w", encoding="utf-8") as f:
                f.write(IOManager.format_report(results, dataset_name))
        except Exception as e:
            logger.exception(f"Failed to export report: {e}")
            raise e

    # ---- FLOW FIELD (HDF5) ----

    @staticmethod
    def export_flow_hdf5(results: PermeabilityResults, filepath: str) -> None:
        """
        Save the pore pressures and throat flow rates of every engine.

        Layout: ``/flow/<engine>/{pore_ids, pore_pressures, throat_ids,
        throat_flow_rates}`` with the permeabilities as group attributes.
        """
        logger.info(f"Exporting flow field to: {filepath}")
        try:
            with h5py.File(filepath, "w") as f:
                f.attrs["version"] = APP_VERSION
                f.attrs["results_json"] = json.dumps(results.to_dict())

                grp_flow = f.create_group("flow")
                for engine, result in results.engines.items():
                    grp = grp_flow.create_group(engine.value)
                    grp.attrs["uncorrected_md"] = result.uncorrected
                    grp.attrs["corrected_md"] = result.corrected
                    grp.attrs["total_flow_rate"] = result.total_flow_rate

                    pores = result.flow.pore_pressures
                    throats = result.flow.throat_flow_rates
                    grp.create_dataset("pore_ids", data=np.array(list(pores.keys()), dtype=np.int64))
                    grp.create_dataset("pore_pressures", data=np.array(list(pores.values()), dtype=np.float64),
                                       compression="gzip")
                    grp.create_dataset("throat_ids", data=np.array(list(throats.keys()), dtype=np.int64))
                    grp.create_dataset("throat_flow_rates",
                                       data=np.array(list(throats.values()), dtype=np.float64),
                                       compression="gzip")
                    logger.debug(f"Saved flow field of {engine.label}: {len(pores)} pores, {len(throats)} throats")
        except Exception as e:
            logger.exception(f"Failed to export flow field: {e}")
            raise e

    @staticmethod
    def load_flow_hdf5(filepath: str) -> Dict[Engine, FlowData]:
        logger.info(f"Loading flow field from: {filepath}")
        if not h5py.is_hdf5(filepath):
            msg = f"File '{filepath}' is not a valid HDF5 file."
            logger.error(msg)
            raise ValueError(msg)

        flows: Dict[Engine, FlowData] = {}
        with h5py.File(filepath, "r") as f:
            grp_flow: Optional[h5py.Group] = f.get("flow")
            if grp_flow is None:
                logger.warning(f"No flow data in '{filepath}'.")
                return flows
            for key, grp in grp_flow.items():
                pore_ids = grp["pore_ids"][:].tolist()
                throat_ids = grp["throat_ids"][:].tolist()
                flows[Engine(key)] = FlowData(
                    pore_pressures=dict(zip(pore_ids, grp["pore_pressures"][:].tolist())),
                    throat_flow_rates=dict(zip(throat_ids, grp["throat_flow_rates"][:].tolist())),
                )
        return flows
