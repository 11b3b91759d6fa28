"""
Geometric Tortuosity
====================
Average shortest inlet-to-outlet path through the throat graph divided by the
straight length of the sample.
"""
from __future__ import annotations

import logging
from typing import Optional

import numpy as np
import scipy as sp
from scipy.sparse.csgraph import dijkstra

from permeabilityanalysis.analysis.boundary import BoundaryPores, classify_boundary
from permeabilityanalysis.config import DIJKSTRA_CHUNK_ENTRIES, TORTUOSITY_MAX, TORTUOSITY_MIN
from permeabilityanalysis.model.network import PoreNetwork
from permeabilityanalysis.model.options import FlowAxis

logger = logging.getLogger(__name__)


def build_distance_graph(network: PoreNetwork) -> sp.sparse.csr_matrix:
    """
    Undirected weighted graph of the network, indexed by pore position.

    One entry per connected pore pair (upper triangle), weighted by the
    distance between the two pore centers in meters. Of several throats
    joining the same pair the shortest is kept. Coincident pore centers get
    the smallest positive weight so the throat still counts as an edge.
    """
    n = network.number_of_pores
    rows = []
    cols = []
    for throat in network.throats:
        i = network.pore_position(throat.pore1_id)
        j = network.pore_position(throat.pore2_id)
        if i == j:
            continue
        rows.append(min(i, j))
        cols.append(max(i, j))

    rows = np.asarray(rows, dtype=np.int64)
    cols = np.asarray(cols, dtype=np.int64)
    positions = network.positions
    lengths = np.linalg.norm(positions[rows] - positions[cols], axis=1) * network.voxel_size_m
    lengths = np.maximum(lengths, np.finfo(np.float64).tiny)

    # shortest throat first within each pair, then keep the first of each pair
    order = np.lexsort((lengths, cols, rows))
    rows, cols, lengths = rows[order], cols[order], lengths[order]
    _, first = np.unique(rows * n + cols, return_index=True)

    return sp.sparse.csr_matrix((lengths[first], (rows[first], cols[first])), shape=(n, n))


def geometric_tortuosity(
    network: PoreNetwork,
    axis: FlowAxis,
    boundary: Optional[BoundaryPores] = None,
) -> float:
    """
    Geometric tortuosity of the network along `axis`.

    Dijkstra runs from every inlet pore; the shortest path to every reachable
    outlet pore enters the mean. Inlets are processed in blocks so the
    distance matrix stays bounded on large networks.

    Unreachable inlet/outlet pairs are skipped. When no pair is connected (or
    the sample has no length) the neutral value 1.0 is returned. The result is
    clamped to [1, 10].
    """
    if network.number_of_pores == 0:
        return 1.0

    if boundary is None:
        boundary = classify_boundary(network, axis)
    if boundary.is_empty or boundary.length <= 0.0:
        return 1.0

    graph = build_distance_graph(network)
    inlets = np.array(sorted(network.pore_position(pid) for pid in boundary.inlets), dtype=np.int64)
    outlets = np.array(sorted(network.pore_position(pid) for pid in boundary.outlets), dtype=np.int64)

    block = max(1, DIJKSTRA_CHUNK_ENTRIES // network.number_of_pores)
    total_length = 0.0
    path_count = 0
    for start in range(0, inlets.size, block):
        distances = np.atleast_2d(dijkstra(csgraph=graph, directed=False, indices=inlets[start:start + block]))
        paths = distances[:, outlets]
        reachable = paths[np.isfinite(paths)]
        total_length += float(reachable.sum())
        path_count += reachable.size

    if path_count == 0:
        logger.warning(f"No inlet-outlet path found along {axis.name}; using tortuosity 1.0.")
        return 1.0

    tortuosity = (total_length / path_count) / boundary.length
    logger.debug(f"Tortuosity along {axis.name}: {path_count} connected inlet-outlet pairs")
    return max(TORTUOSITY_MIN, min(TORTUOSITY_MAX, tortuosity))
