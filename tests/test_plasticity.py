import math

import numpy as np
import pytest

from laggeo.materials import MaterialTable
from laggeo.numba.kernels_plastic import mohr_coulomb_return_numba
from laggeo.plasticity import IdentityPlasticity, MohrCoulombPlasticity

LAM, MU = 3.0e10, 3.0e10
C0 = 1.0e6
PHI = 30.0


def _mc_f(p_min, p_max, coh=C0, phi=PHI):
    anphi = (1.0 + math.sin(math.radians(phi))) / (1.0 - math.sin(math.radians(phi)))
    return p_min - p_max * anphi + 2.0 * coh * math.sqrt(anphi)


def _return(sig, pls=0.0, eta=0.0, dt=1.0, c0=C0, c1=C0):
    return mohr_coulomb_return_numba(
        np.asarray(sig, dtype=np.float64), pls, LAM, MU, 0.0, c0, c1, 0.0, 1.0, PHI, 0.0, eta, dt,
    )


def test_elastic_state_untouched():
    sig = np.diag([-10.0e6, -10.0e6])
    sig_new, pls, failure = _return(sig)
    assert failure == 0
    assert pls == 0.0
    assert np.array_equal(sig_new, sig)


def test_shear_failure_returns_to_yield_surface():
    sig = np.diag([-100.0e6, -10.0e6])
    assert _mc_f(-100.0e6, -10.0e6) < 0.0

    sig_new, pls, failure = _return(sig)
    w = np.linalg.eigvalsh(sig_new)
    assert failure == 1
    assert pls > 0.0
    assert abs(_mc_f(w[0], w[-1])) < 1e-6 * 100.0e6
    # principal directions are kept
    assert abs(sig_new[0, 1]) < 1e-6


def test_tension_failure_caps_max_principal():
    sig = np.diag([5.0e6, 1.0e6, 0.0])
    sig_new, pls, failure = _return(sig)
    w = np.linalg.eigvalsh(sig_new)
    assert failure == 2
    assert pls > 0.0
    assert w[-1] == pytest.approx(0.0, abs=1e-3)


def test_viscoplastic_relaxation_is_partial():
    sig = np.diag([-100.0e6, -10.0e6])
    full, pls_full, _ = _return(sig)
    eta = MU  # eta / mu = 1 s
    part, pls_part, failure = _return(sig, eta=eta, dt=1.0)
    assert failure == 1
    assert np.isclose(pls_part, 0.5 * pls_full)
    assert np.allclose(part, 0.5 * (sig + full))


def test_cohesion_softens_with_plastic_strain():
    sig = np.diag([-60.0e6, -10.0e6])
    # 20 MPa intact, 0.1 MPa fully softened (pls >= 1)
    _, _, intact = _return(sig, pls=0.0, c0=20.0e6, c1=0.1e6)
    _, _, partly = _return(sig, pls=0.5, c0=20.0e6, c1=0.1e6)
    _, _, weak = _return(sig, pls=2.0, c0=20.0e6, c1=0.1e6)
    assert intact == 0
    assert partly == 0
    assert weak == 1


def test_cell_models_on_zone_arrays():
    attrs = np.array([0, 1])
    table = MaterialTable.from_lists(
        attrs, lam=[LAM], mu=[MU], cohesion0=[C0], cohesion1=[C0], friction_angle=[PHI],
        tension_cutoff=[0.0], plastic_viscosity=[0.0, MU],
    )
    zones = table.cell_arrays()
    s = np.array([[-100.0e6, -10.0e6, 0.0], [-10.0e6, -10.0e6, 0.0]])
    pls = np.zeros(2)

    s_id, pls_id = IdentityPlasticity().return_map(s, pls, zones, 1.0)
    assert np.array_equal(s_id, s) and s_id is not s
    assert np.array_equal(pls_id, pls)

    model = MohrCoulombPlasticity()
    s_new, pls_new = model.return_map(s, pls, zones, 1.0)
    assert model.last_failure.tolist() == [1, 0]
    assert pls_new[0] > 0.0 and pls_new[1] == 0.0
    assert np.array_equal(s_new[1], s[1])
    # inputs untouched
    assert s[0, 0] == -100.0e6

    # the viscosity list is ignored unless the model is viscoplastic
    vp = MohrCoulombPlasticity(viscoplastic=True)
    s_vp, _ = vp.return_map(s, pls, table.with_attributes(np.array([1, 1])).cell_arrays(), 1.0)
    assert not np.allclose(s_vp[0], s_new[0])
