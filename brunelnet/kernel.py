# Copyright (C) 2023-2024 Björn A. Lindqvist <bjourne@gmail.com>
"""Single-process simulation kernel for networks of iaf_psc_alpha
neurons.

Membrane dynamics use the exact integration scheme of NEST: the
synaptic current is an alpha function and the subthreshold state is
propagated one step at a time with the matrix exponential of the
linear system. Spikes travel through a ring buffer indexed by delay.
"""
from brunelnet.brunel2000 import *
from brunelnet.errors import CapacityWarning, ConfigurationError, OrderingError
from dataclasses import dataclass
from pathlib import Path

import logging
import numpy as np
import warnings

log = logging.getLogger(__name__)

# Node kinds
NEURON = 0
POISSON = 1
COLLECTOR = 2

KIND_NAMES = {NEURON : 'neuron', POISSON : 'poisson', COLLECTOR : 'collector'}

@dataclass
class NeuronParams:
    C_m: float = C_M
    tau_m: float = TAU_MEM
    tau_syn: float = TAU_SYN
    t_ref: float = TAU_REF
    E_L: float = U0
    V_reset: float = U0
    V_th: float = THETA
    V_m: float = U0

@dataclass
class PoissonParams:
    rate: float = 0.0

@dataclass
class CollectorParams:
    label: str = ''
    to_memory: bool = True
    to_file: bool = False
    path: Path = None

def alpha_propagators(tau_m, tau_syn, C_m, dt):
    """Returns P11, P21, P22, P31, P32, P33 for the state (dI, I, V).
    Works elementwise on arrays."""
    tau_m, tau_syn, C_m = np.broadcast_arrays(
        np.asarray(tau_m, np.float64),
        np.asarray(tau_syn, np.float64),
        np.asarray(C_m, np.float64))
    P11 = np.exp(-dt / tau_syn)
    P22 = P11
    P21 = dt * P11
    P33 = np.exp(-dt / tau_m)

    # Singular case tau_m == tau_syn handled by its limit
    same = np.isclose(tau_m, tau_syn)
    d = np.where(same, 1.0, tau_m - tau_syn)
    beta = tau_syn * tau_m / d
    gamma = beta / C_m
    P32 = np.where(same,
                   dt / C_m * P33,
                   gamma * (P33 - P11))
    P31 = np.where(same,
                   0.5 * dt * dt / C_m * P33,
                   gamma * (beta * (P33 - P11) - dt * P11))
    return P11, P21, P22, P31, P32, P33

class Collector:
    def __init__(self, node_id, params):
        self.node_id = node_id
        self.params = params
        self.n_events = 0
        self.senders = []
        self.times = []
        self.sink = None
        self.error = None

    def open(self):
        if self.params.to_file:
            self.sink = open(self.params.path, 'w')

    def close(self):
        if self.sink is None:
            return
        sink, self.sink = self.sink, None
        try:
            sink.close()
        except OSError as e:
            log.error('Closing spike log %s failed: %s', self.params.path, e)
            if self.error is None:
                self.error = e

    def record(self, senders, stamp):
        n = len(senders)
        self.n_events += n
        if self.params.to_memory:
            self.senders.append(senders)
            self.times.append(np.full(n, stamp))
        if self.sink is None:
            return
        try:
            self.sink.write(''.join('%d\t%s\n' % (s, stamp)
                                    for s in senders))
        except OSError as e:
            log.error('Spike log %s failed, dropping it: %s',
                      self.params.path, e)
            self.error = e
            self.close()

    def events(self):
        if not self.senders:
            return np.empty(0, np.uint32), np.empty(0, np.float64)
        return np.concatenate(self.senders), np.concatenate(self.times)

def flat_ranges(starts, lens):
    # Concatenation of range(s, s + l) for each pair
    tot = np.sum(lens)
    if tot == 0:
        return np.empty(0, np.int64)
    ofs = np.cumsum(lens) - lens
    return np.repeat(starts - ofs, lens) + np.arange(tot)

class Kernel:
    def __init__(self):
        self.reset()

    def reset(self):
        self.resolution = DT
        self.min_delay = DT
        self.max_delay = DT
        self.n_threads = KERNEL_N_THREADS
        self.steps = 0
        self.rng = np.random.default_rng(list(KERNEL_SEEDS))

        # Node 0 is never handed out
        self.kinds = np.zeros(1, np.int8) - 1
        self.neuron_params = {}
        self.rates = {}
        self.collectors = {}

        self.reserved = 0
        self.n_conn = 0
        self.src = None
        self.dst = None
        self.weight = None
        self.delay = None
        self.frozen = False

    # Kernel status
    @property
    def time(self):
        return self.steps * self.resolution

    @property
    def n_nodes(self):
        return len(self.kinds) - 1

    def set_kernel_limits(self, resolution, min_delay, max_delay):
        if self.n_nodes > 0:
            raise OrderingError(
                'kernel limits must be set before nodes are created')
        if resolution <= 0:
            raise ConfigurationError('resolution must be positive')
        if min_delay < resolution or max_delay < min_delay:
            raise ConfigurationError(
                'need resolution <= min_delay <= max_delay, got %r, %r, %r'
                % (resolution, min_delay, max_delay))
        self.resolution = resolution
        self.min_delay = min_delay
        self.max_delay = max_delay

    def set_rng_seeds(self, seeds):
        seeds = list(seeds)
        if len(seeds) != self.n_threads:
            raise ConfigurationError(
                'need %d seed(s), one per thread, got %d'
                % (self.n_threads, len(seeds)))
        self.rng = np.random.default_rng(seeds)

    def to_steps(self, ms):
        return int(ms / self.resolution + 0.5)

    # Node creation
    def _add_nodes(self, kind, n):
        if self.frozen:
            raise OrderingError('cannot create nodes after simulating')
        first = len(self.kinds)
        self.kinds = np.concatenate((self.kinds, np.full(n, kind, np.int8)))
        return np.arange(first, first + n, dtype = np.uint32)

    def create_neurons(self, n, params = None):
        ids = self._add_nodes(NEURON, n)
        params = params or NeuronParams()
        for i in ids:
            self.neuron_params[int(i)] = params
        return ids

    def set_neuron_parameters(self, ids, params):
        ids = np.atleast_1d(ids)
        self.check_nodes(ids, NEURON)
        for i in ids:
            self.neuron_params[int(i)] = params

    def create_poisson_source(self, rate):
        if rate < 0:
            raise ConfigurationError('negative Poisson rate %r' % rate)
        node_id = int(self._add_nodes(POISSON, 1)[0])
        self.rates[node_id] = PoissonParams(rate)
        return node_id

    def create_spike_collector(self, params = None):
        params = params or CollectorParams()
        if params.to_file and params.path is None:
            raise ConfigurationError('collector writing to file needs a path')
        node_id = int(self._add_nodes(COLLECTOR, 1)[0])
        self.collectors[node_id] = Collector(node_id, params)
        return node_id

    def check_nodes(self, ids, kind = None):
        ids = np.asarray(ids)
        if np.any((ids < 1) | (ids > self.n_nodes)):
            raise OrderingError('unknown node id(s) in %s' % ids)
        if kind is not None and np.any(self.kinds[ids] != kind):
            raise ConfigurationError(
                'expected %s node(s)' % KIND_NAMES[kind])

    # Connections
    @property
    def capacity(self):
        return 0 if self.src is None else len(self.src)

    def reserve_connections(self, node_id, n):
        self.check_nodes([node_id])
        self.reserved += n
        if self.src is not None and self.reserved > self.capacity:
            self._grow(self.reserved)

    def _grow(self, cap):
        warnings.warn(
            'growing connection storage from %d to %d synapses'
            % (self.capacity, cap), CapacityWarning, stacklevel = 4)
        n = self.n_conn
        arrs = self.src, self.dst, self.weight, self.delay
        self._allocate(cap)
        for old, new in zip(arrs, (self.src, self.dst,
                                   self.weight, self.delay)):
            new[:n] = old[:n]

    def _allocate(self, cap):
        self.src = np.empty(cap, np.uint32)
        self.dst = np.empty(cap, np.uint32)
        self.weight = np.empty(cap, np.float64)
        self.delay = np.empty(cap, np.uint16)

    def _add(self, src, dst, weight, delay):
        if self.frozen:
            raise OrderingError('cannot connect after simulating')
        self.check_nodes(src)
        self.check_nodes(dst)
        src_kinds = self.kinds[src]
        dst_kinds = self.kinds[dst]
        if np.any(src_kinds == COLLECTOR):
            raise ConfigurationError('collectors cannot be sources')
        if np.any(dst_kinds == POISSON):
            raise ConfigurationError('Poisson sources cannot be targets')
        if np.any((dst_kinds == COLLECTOR) & (src_kinds != NEURON)):
            raise ConfigurationError('collectors only record neurons')

        lo = self.to_steps(self.min_delay)
        hi = self.to_steps(self.max_delay)
        d = self.to_steps(delay)
        if not lo <= d <= hi:
            raise ConfigurationError(
                'delay %r outside [%r, %r]'
                % (delay, self.min_delay, self.max_delay))

        n = max(len(src), len(dst))
        need = self.n_conn + n
        if self.src is None:
            if need > self.reserved:
                warnings.warn(
                    'connecting %d synapses with only %d reserved'
                    % (need, self.reserved), CapacityWarning,
                    stacklevel = 3)
            self._allocate(max(need, self.reserved))
        elif need > self.capacity:
            self._grow(max(need, 2 * self.capacity))

        at = self.n_conn
        self.src[at:need] = src
        self.dst[at:need] = dst
        self.weight[at:need] = weight
        self.delay[at:need] = d
        self.n_conn = need

    def connect(self, source, target, weight, delay):
        self._add(np.array([source]), np.array([target]), weight, delay)
        return self.n_conn - 1

    def convergent_connect(self, sources, target, weight, delay):
        sources = np.asarray(sources, np.uint32)
        self._add(sources, np.full(len(sources), target, np.uint32),
                  weight, delay)

    def divergent_connect(self, source, targets, weight, delay):
        targets = np.asarray(targets, np.uint32)
        self._add(np.full(len(targets), source, np.uint32), targets,
                  weight, delay)

    def get_connections(self):
        n = self.n_conn
        if n == 0:
            return (np.empty(0, np.uint32), np.empty(0, np.uint32),
                    np.empty(0, np.float64), np.empty(0, np.float64))
        return (self.src[:n].copy(), self.dst[:n].copy(),
                self.weight[:n].copy(),
                self.delay[:n] * self.resolution)

    # Simulation
    def _freeze(self):
        n = self.n_conn
        src = np.empty(0, np.uint32) if self.src is None else self.src[:n]
        dst = np.empty(0, np.uint32) if self.dst is None else self.dst[:n]
        weight = np.empty(0) if self.weight is None else self.weight[:n]
        delay = (np.empty(0, np.uint16)
                 if self.delay is None else self.delay[:n])
        src_kinds = self.kinds[src]
        dst_kinds = self.kinds[dst]
        n_nodes = len(self.kinds)

        # Neuron to neuron synapses, CSR by source
        sel = (src_kinds == NEURON) & (dst_kinds == NEURON)
        order = np.flatnonzero(sel)
        order = order[np.argsort(src[order], kind = 'stable')]
        self.syn_dst = dst[order]
        self.syn_weight = weight[order]
        self.syn_delay = delay[order]
        del order
        cnts = np.bincount(src[sel], minlength = n_nodes)
        self.syn_ofs = np.concatenate(([0], np.cumsum(cnts)))

        # Poisson drive, an independent train per synapse
        sel = src_kinds == POISSON
        rates = np.array([self.rates[int(s)].rate for s in src[sel]])
        self.psn_lam = rates * 0.001 * self.resolution
        self.psn_dst = dst[sel].astype(np.int64)
        self.psn_weight = weight[sel]
        self.psn_delay = delay[sel].astype(np.int64)

        # Recorded neurons per collector
        sel = dst_kinds == COLLECTOR
        self.rec_sources = {
            cid : np.unique(src[sel][dst[sel] == cid]).astype(np.int64)
            for cid in self.collectors
        }

        # Neuron state, relative to E_L
        ids = np.flatnonzero(self.kinds == NEURON)
        ps = [self.neuron_params[int(i)] for i in ids]
        tau_m = np.array([p.tau_m for p in ps])
        tau_syn = np.array([p.tau_syn for p in ps])
        C_m = np.array([p.C_m for p in ps])
        E_L = np.array([p.E_L for p in ps])
        (self.P11, self.P21, self.P22,
         self.P31, self.P32, self.P33) = alpha_propagators(
             tau_m, tau_syn, C_m, self.resolution)
        self.psc_init = np.e / tau_syn
        self.V_th = np.array([p.V_th for p in ps]) - E_L
        self.V_reset = np.array([p.V_reset for p in ps]) - E_L
        self.ref_steps = np.array([self.to_steps(p.t_ref) for p in ps])
        self.neuron_ids = ids
        self.V = np.array([p.V_m for p in ps]) - E_L
        self.y1 = np.zeros(len(ids))
        self.y2 = np.zeros(len(ids))
        self.ref = np.zeros(len(ids), np.int64)

        self.ring_len = self.to_steps(self.max_delay) + 1
        self.ring = np.zeros((self.ring_len, n_nodes))
        self.frozen = True
        log.debug('Froze %d synapses among %d nodes', n, self.n_nodes)

    def open_collectors(self):
        for c in self.collectors.values():
            c.open()

    def close_collectors(self):
        for c in self.collectors.values():
            c.close()

    def _step(self):
        t = self.steps
        L = self.ring_len
        slot = t % L

        if len(self.psn_dst):
            cnts = self.rng.poisson(self.psn_lam)
            hit = np.flatnonzero(cnts)
            np.add.at(self.ring,
                      ((t + self.psn_delay[hit]) % L, self.psn_dst[hit]),
                      cnts[hit] * self.psn_weight[hit])

        ids = self.neuron_ids
        inp = self.ring[slot, ids]
        self.ring[slot] = 0.0

        free = self.ref == 0
        V = self.P31 * self.y1 + self.P32 * self.y2 + self.P33 * self.V
        self.V = np.where(free, V, self.V)
        self.ref = np.where(free, self.ref, self.ref - 1)
        self.y2 = self.P21 * self.y1 + self.P22 * self.y2
        self.y1 = self.P11 * self.y1 + self.psc_init * inp

        spiked = self.V >= self.V_th
        self.V[spiked] = self.V_reset[spiked]
        self.ref[spiked] = self.ref_steps[spiked]
        spikes = ids[spiked]
        self.steps += 1

        if len(spikes) == 0:
            return
        idx = flat_ranges(self.syn_ofs[spikes],
                          self.syn_ofs[spikes + 1] - self.syn_ofs[spikes])
        np.add.at(self.ring,
                  ((t + self.syn_delay[idx].astype(np.int64)) % L,
                   self.syn_dst[idx]),
                  self.syn_weight[idx])

        stamp = round(self.steps * self.resolution, 6)
        fired = np.zeros(len(self.kinds), bool)
        fired[spikes] = True
        for cid, srcs in self.rec_sources.items():
            hit = srcs[fired[srcs]]
            if len(hit):
                self.collectors[cid].record(hit, stamp)

    def advance(self, duration):
        if not self.frozen:
            self._freeze()
        for _ in range(self.to_steps(duration)):
            self._step()

    # Collected data
    def get_collected_events(self, collector_id):
        self.check_nodes([collector_id], COLLECTOR)
        return self.collectors[collector_id].n_events

    def get_events(self, collector_id):
        self.check_nodes([collector_id], COLLECTOR)
        return self.collectors[collector_id].events()
