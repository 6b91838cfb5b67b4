# Copyright (C) 2023-2024 Björn A. Lindqvist <bjourne@gmail.com>
from brunelnet.errors import ConfigurationError
from humanize import metric

import logging
import numpy as np

log = logging.getLogger(__name__)

# Targets per progress update
N_PROGRESS_CHUNK = 1000

def check_indegrees(params):
    # Autapses are excluded so a population can only offer n - 1
    # distinct sources to its own members.
    for name, c, n in [('CE', params.CE, params.NE),
                       ('CI', params.CI, params.NI)]:
        if c > n - 1:
            raise ConfigurationError(
                '%s = %d exceeds the %d distinct sources available'
                % (name, c, n - 1))

def draw_sources(rng, pop, c, exclude = None):
    """Draws c distinct ids from pop. If exclude is an index into pop,
    that neuron is never drawn."""
    n = len(pop)
    if exclude is None:
        idx = rng.choice(n, c, replace = False)
    else:
        idx = rng.choice(n - 1, c, replace = False)
        idx[idx >= exclude] += 1
    return pop.ids[idx]

def create_noise(kernel, net, params):
    for pop in net.populations:
        node_id = kernel.create_poisson_source(params.p_rate)
        kernel.reserve_connections(node_id, len(pop))
        net.noise[pop.kind] = node_id

def connect_population(kernel, net, pop, params, rng, bprg = None):
    exc, inh = net.excitatory, net.inhibitory
    n = len(pop)
    for at, t in enumerate(pop.ids):
        src = draw_sources(rng, exc, params.CE, at if pop is exc else None)
        kernel.convergent_connect(src, t, params.JE, params.delay)
        src = draw_sources(rng, inh, params.CI, at if pop is inh else None)
        kernel.convergent_connect(src, t, params.JI, params.delay)
        if bprg and (at + 1) % N_PROGRESS_CHUNK == 0:
            bprg.next_steps(N_PROGRESS_CHUNK, '%s / %s',
                            metric(at + 1), metric(n))

    # External drive is excitatory for both populations
    kernel.divergent_connect(net.noise[pop.kind], pop.ids,
                             params.JE, params.delay)

def connect_network(kernel, net, params, rng, bprg = None):
    """Gives every neuron CE excitatory, CI inhibitory and one Poisson
    synapse. Targets are visited excitatory first, each population in
    creation order, and all draws come from rng so the graph is fixed
    by its seed."""
    check_indegrees(params)
    if not net.noise:
        create_noise(kernel, net, params)
    for pop in net.populations:
        if bprg:
            bprg.set_current_task(len(pop), 'Connecting %s', pop.kind)
        n0 = kernel.n_conn
        connect_population(kernel, net, pop, params, rng, bprg)
        log.info('Connected %s %s neurons with %s synapses',
                 metric(len(pop)), pop.kind, metric(kernel.n_conn - n0))
