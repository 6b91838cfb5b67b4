# Copyright (C) 2023-2024 Björn A. Lindqvist <bjourne@gmail.com>
from brunelnet.brunel2000 import *
from brunelnet.simulation import Simulation
from humanize import metric
from pathlib import Path

import logging
import numpy as np

log = logging.getLogger(__name__)

def save_network_params(dir, params):
    arr = np.array([[k.encode(), v] for k, v in params.as_pairs()])
    np.save(dir / FILE_NETWORK_PARAMS, arr)

def write_synapses_and_index(dir, src, dst, delay, weight):
    perm = np.lexsort((dst, delay, src))
    src, dst = src[perm], dst[perm]
    delay, weight = delay[perm], weight[perm]

    np.save(dir / FILE_SYNAPSE_DST, dst)
    np.save(dir / FILE_SYNAPSE_WEIGHT, weight)
    np.save(dir / FILE_SYNAPSE_DELAY, delay)

    # Offsets, one slot per node id so that nodes without outgoing
    # synapses get an empty range.
    n_nodes = int(max(np.max(src, initial = 0), np.max(dst, initial = 0)))
    cnts = np.bincount(src, minlength = n_nodes + 1)
    ofs = np.concatenate(([0], np.cumsum(cnts))).astype(np.uint32)
    np.save(dir / FILE_SYNAPSE_OFFSET, ofs)

def save_network(kernel, params, dir):
    dir = Path(dir)
    dir.mkdir(exist_ok = True, parents = True)
    save_network_params(dir, params)
    src, dst, weight, delay = kernel.get_connections()
    write_synapses_and_index(dir, src, dst, delay, weight)
    log.info('Wrote %s synapses to %s', metric(len(src)), dir)

def load_network(dir):
    dir = Path(dir)
    dst = np.load(dir / FILE_SYNAPSE_DST)
    weight = np.load(dir / FILE_SYNAPSE_WEIGHT)
    delay = np.load(dir / FILE_SYNAPSE_DELAY)
    ofs = np.load(dir / FILE_SYNAPSE_OFFSET)
    return ofs, dst, weight, delay

def build(config, dir = DIR_NETWORK_BASE, bprg = None):
    sim = Simulation(config, bprg = bprg)
    sim.configure()
    sim.build()
    if bprg:
        bprg.next_phase('Writing %s synapses', metric(sim.kernel.n_conn))
    save_network(sim.kernel, sim.params, dir)
    return sim
