# Copyright (C) 2023-2024 Björn A. Lindqvist <bjourne@gmail.com>
from brunelnet.errors import ConfigurationError
from brunelnet.kernel import CollectorParams
from pathlib import Path

import numpy as np

def check_n_rec(pop, n_rec):
    if not 0 <= n_rec <= len(pop):
        raise ConfigurationError(
            'cannot record %d of %d %s neurons'
            % (n_rec, len(pop), pop.kind))

def create_collector(kernel, pop, n_rec, path = None):
    """Creates a collector for pop with exactly n_rec reserved
    connection slots."""
    check_n_rec(pop, n_rec)
    params = CollectorParams(
        label = pop.kind,
        to_file = path is not None,
        path = path
    )
    cid = kernel.create_spike_collector(params)
    kernel.reserve_connections(cid, n_rec)
    return cid

def create_collectors(kernel, net, n_rec, paths = None):
    paths = paths or {}
    for pop in net.populations:
        net.collectors[pop.kind] = create_collector(
            kernel, pop, n_rec, paths.get(pop.kind))

def wire_recorders(kernel, pop, collector, n_rec):
    """Connects the first n_rec neurons of pop to the collector with
    unit weight and a delay of one step."""
    check_n_rec(pop, n_rec)
    kernel.convergent_connect(pop.ids[:n_rec], collector,
                              1.0, kernel.resolution)

def wire_network(kernel, net, n_rec):
    for pop in net.populations:
        wire_recorders(kernel, pop, net.collectors[pop.kind], n_rec)

def compute_rate(n_events, n_rec, simtime):
    """Mean rate in Hz of n_rec neurons over simtime ms."""
    if n_events == 0:
        return 0.0
    return n_events / (n_rec * simtime) * 1000.0

def load_spike_log(path):
    path = Path(path)
    if path.stat().st_size == 0:
        return np.empty(0, np.uint32), np.empty(0, np.float64)
    arr = np.loadtxt(path, ndmin = 2)
    return arr[:, 0].astype(np.uint32), arr[:, 1]

def rate_from_log(path, n_rec, simtime):
    senders, _ = load_spike_log(path)
    return compute_rate(len(senders), n_rec, simtime)
