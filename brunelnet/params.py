# Copyright (C) 2023-2024 Björn A. Lindqvist <bjourne@gmail.com>
from brunelnet.brunel2000 import *
from brunelnet.errors import ConfigurationError
from dataclasses import asdict, dataclass

def round_count(x):
    # No banker's rounding
    return int(x + 0.5)

@dataclass(frozen = True)
class ModelParameters:
    # Inputs
    order: int
    g: float
    eta: float
    J: float
    tau_mem: float
    tau_syn: float
    tau_ref: float
    theta: float
    delay: float
    epsilon: float
    U0: float
    fudge: float

    # Population sizes
    NE: int
    NI: int
    N: int

    # In-degrees
    CE: int
    CI: int
    C: int
    C_ext: int

    # Weights in pA
    JE: float
    JI: float

    # Rates
    nu_thresh: float
    nu_ext: float
    p_rate: float

    def as_pairs(self):
        return [(k, v) for k, v in asdict(self).items()]

def derive_parameters(order = ORDER, g = G, eta = ETA, J = J,
                      tau_mem = TAU_MEM, tau_syn = TAU_SYN,
                      tau_ref = TAU_REF, theta = THETA, delay = DELAY,
                      epsilon = EPSILON, U0 = U0, fudge = FUDGE):
    if order <= 0:
        raise ConfigurationError('order must be positive, got %r' % order)
    for name, val in [('tau_syn', tau_syn), ('tau_mem', tau_mem)]:
        if val <= 0:
            raise ConfigurationError(
                '%s must be positive, got %r' % (name, val))
    if tau_ref < 0:
        raise ConfigurationError('tau_ref must be non-negative')

    NE = E_PER_ORDER * order
    NI = I_PER_ORDER * order
    CE = round_count(epsilon * NE)
    CI = round_count(epsilon * NI)
    JE = J / tau_syn * fudge
    JI = -g * JE

    # Rate needed to reach threshold without feedback, per synapse.
    # Without excitatory synapses no rate suffices.
    C_ext = CE
    if CE == 0 or J == 0:
        nu_thresh = nu_ext = float('inf')
        p_rate = 0.0
    else:
        nu_thresh = theta / (J * CE * tau_mem)
        nu_ext = eta * nu_thresh
        p_rate = 1000.0 * nu_ext * C_ext
    return ModelParameters(
        order, g, eta, J, tau_mem, tau_syn, tau_ref, theta, delay,
        epsilon, U0, fudge,
        NE, NI, NE + NI,
        CE, CI, CE + CI, C_ext,
        JE, JI,
        nu_thresh, nu_ext, p_rate
    )

def expected_synapse_count(params, n_rec):
    return (params.C + 1) * params.N + 2 * n_rec
