# Copyright (C) 2023-2024 Björn A. Lindqvist <bjourne@gmail.com>
from brunelnet.connectivity import connect_network, create_noise
from brunelnet.errors import OrderingError
from brunelnet.kernel import Kernel
from brunelnet.populations import EXCITATORY, INHIBITORY, create_populations
from brunelnet.recording import compute_rate, create_collectors, wire_network
from dataclasses import dataclass, field
from enum import Enum
from humanize import metric
from pathlib import Path
from time import perf_counter, process_time

import logging
import numpy as np

log = logging.getLogger(__name__)

# Steps per progress update
N_STEPS_CHUNK = 100

class State(Enum):
    UNCONFIGURED = 'unconfigured'
    CONFIGURED = 'configured'
    BUILT = 'built'
    RUNNING = 'running'
    COMPLETED = 'completed'
    ABORTED = 'aborted'

@dataclass
class RunResult:
    n_neurons: int
    n_synapses: int
    events_exc: int
    events_inh: int
    rate_exc: float
    rate_inh: float
    build_time: float
    build_cpu_time: float
    sim_time: float
    sim_cpu_time: float
    simtime: float
    sink_errors: list = field(default_factory = list)

class Simulation:
    def __init__(self, config, kernel = None, bprg = None):
        self.config = config
        self.kernel = kernel or Kernel()
        self.bprg = bprg
        self.state = State.UNCONFIGURED
        self.params = None
        self.net = None
        self.build_time = self.build_cpu_time = 0.0
        self.sim_time = self.sim_cpu_time = 0.0
        self.simtime = 0.0

    def _expect(self, state):
        if self.state != state:
            raise OrderingError('simulation is %s, expected %s'
                                % (self.state.value, state.value))

    def _next_phase(self, fmt, *args):
        if self.bprg:
            self.bprg.next_phase(fmt, *args)

    def configure(self):
        self._expect(State.UNCONFIGURED)
        cfg = self.config
        self.params = cfg.validate()
        self.kernel.set_kernel_limits(cfg.dt, cfg.min_delay, cfg.max_delay)
        self.state = State.CONFIGURED

    def build(self):
        self._expect(State.CONFIGURED)
        t0, c0 = perf_counter(), process_time()
        try:
            self._build()
        except BaseException:
            self.state = State.ABORTED
            raise
        self.build_time = perf_counter() - t0
        self.build_cpu_time = process_time() - c0
        self.state = State.BUILT
        log.info('Built %s neurons and %s synapses in %.2f s',
                 metric(self.params.N), metric(self.kernel.n_conn),
                 self.build_time)

    def _build(self):
        cfg, params, kernel = self.config, self.params, self.kernel
        rng = np.random.default_rng(cfg.connect_seed)

        self._next_phase('Creating %s neurons', metric(params.N))
        self.net = create_populations(kernel, params)
        create_noise(kernel, self.net, params)
        create_collectors(kernel, self.net, cfg.n_rec, cfg.spike_paths())

        self._next_phase('Connecting %s neurons', metric(params.N))
        connect_network(kernel, self.net, params, rng, self.bprg)

        self._next_phase('Wiring %s recorders', 2)
        wire_network(kernel, self.net, cfg.n_rec)

    def run(self, should_stop = None):
        """Advances the kernel one step at a time until simtime has
        passed. should_stop is polled between steps."""
        self._expect(State.BUILT)
        cfg, kernel = self.config, self.kernel
        kernel.set_rng_seeds(cfg.kernel_seeds)
        if cfg.output_dir is not None:
            Path(cfg.output_dir).mkdir(exist_ok = True, parents = True)
        kernel.open_collectors()

        self.state = State.RUNNING
        n_steps = kernel.to_steps(cfg.simtime)
        self._next_phase('Simulating %s ms', cfg.simtime)
        if self.bprg:
            self.bprg.set_current_task(n_steps, 'Simulating')
        t0, c0 = perf_counter(), process_time()
        stopped = False
        try:
            for i in range(n_steps):
                if should_stop and should_stop():
                    log.warning('Stopped after %d of %d steps', i, n_steps)
                    stopped = True
                    break
                kernel.advance(cfg.dt)
                if self.bprg and (i + 1) % N_STEPS_CHUNK == 0:
                    self.bprg.next_steps(N_STEPS_CHUNK, '%s ms',
                                         '%.1f' % kernel.time)
        finally:
            kernel.close_collectors()
            self.sim_time = perf_counter() - t0
            self.sim_cpu_time = process_time() - c0
        self.simtime = kernel.time if stopped else cfg.simtime
        self.state = State.COMPLETED
        return self.result()

    def result(self):
        self._expect(State.COMPLETED)
        kernel, net, n_rec = self.kernel, self.net, self.config.n_rec
        ev_exc = kernel.get_collected_events(net.collectors[EXCITATORY])
        ev_inh = kernel.get_collected_events(net.collectors[INHIBITORY])
        errors = [c.error for c in kernel.collectors.values()
                  if c.error is not None]
        return RunResult(
            n_neurons = self.params.N,
            n_synapses = kernel.n_conn,
            events_exc = ev_exc,
            events_inh = ev_inh,
            rate_exc = compute_rate(ev_exc, n_rec, self.simtime),
            rate_inh = compute_rate(ev_inh, n_rec, self.simtime),
            build_time = self.build_time,
            build_cpu_time = self.build_cpu_time,
            sim_time = self.sim_time,
            sim_cpu_time = self.sim_cpu_time,
            simtime = self.simtime,
            sink_errors = errors
        )

def run_experiment(config, kernel = None, bprg = None):
    sim = Simulation(config, kernel, bprg)
    sim.configure()
    sim.build()
    return sim.run()
