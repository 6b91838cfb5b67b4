# Copyright (C) 2023-2024 Björn A. Lindqvist <bjourne@gmail.com>
from brunelnet.brunel2000 import *
from brunelnet.connectivity import check_indegrees
from brunelnet.errors import ConfigurationError
from brunelnet.params import derive_parameters
from brunelnet.populations import EXCITATORY, INHIBITORY
from dataclasses import dataclass
from pathlib import Path

@dataclass
class ExperimentConfig:
    order: int = ORDER
    epsilon: float = EPSILON
    g: float = G
    eta: float = ETA
    J: float = J
    tau_mem: float = TAU_MEM
    tau_syn: float = TAU_SYN
    tau_ref: float = TAU_REF
    theta: float = THETA
    U0: float = U0
    delay: float = DELAY
    fudge: float = FUDGE

    simtime: float = SIMTIME
    dt: float = DT
    n_rec: int = N_REC

    connect_seed: int = CONNECT_SEED
    kernel_seeds: tuple = KERNEL_SEEDS

    # No spike logs are written if None
    output_dir: Path = DIR_OUTPUT
    file_exc: str = FILE_SPIKES_EXC
    file_inh: str = FILE_SPIKES_INH

    @property
    def min_delay(self):
        return self.dt

    @property
    def max_delay(self):
        return self.delay

    def derive(self):
        return derive_parameters(
            order = self.order, g = self.g, eta = self.eta, J = self.J,
            tau_mem = self.tau_mem, tau_syn = self.tau_syn,
            tau_ref = self.tau_ref, theta = self.theta,
            delay = self.delay, epsilon = self.epsilon, U0 = self.U0,
            fudge = self.fudge
        )

    def spike_paths(self):
        if self.output_dir is None:
            return None
        d = Path(self.output_dir)
        return {EXCITATORY : d / self.file_exc, INHIBITORY : d / self.file_inh}

    def validate(self):
        """Checks everything that can be checked without a kernel and
        returns the derived parameters."""
        for name in ['dt', 'simtime', 'epsilon']:
            if getattr(self, name) <= 0:
                raise ConfigurationError('%s must be positive' % name)
        for name in ['g', 'eta', 'n_rec']:
            if getattr(self, name) < 0:
                raise ConfigurationError('%s must not be negative' % name)
        if self.delay < self.dt:
            raise ConfigurationError(
                'delay %r shorter than the resolution %r'
                % (self.delay, self.dt))
        n_steps = self.delay / self.dt
        if abs(n_steps - round(n_steps)) > 1e-9:
            raise ConfigurationError(
                'delay %r is not a multiple of the resolution %r'
                % (self.delay, self.dt))
        if len(self.kernel_seeds) != KERNEL_N_THREADS:
            raise ConfigurationError(
                'need %d kernel seed(s), got %d'
                % (KERNEL_N_THREADS, len(self.kernel_seeds)))

        params = self.derive()
        check_indegrees(params)
        if params.p_rate == 0.0 and params.eta > 0:
            raise ConfigurationError(
                'no finite external rate for CE = %d, J = %r'
                % (params.CE, params.J))
        if self.n_rec > params.NI:
            raise ConfigurationError(
                'cannot record %d neurons from populations of %d and %d'
                % (self.n_rec, params.NE, params.NI))
        return params
