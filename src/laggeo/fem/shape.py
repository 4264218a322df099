"""Q4 / Hex8 shape functions and tensor-product Gauss rules.

The reference cell is the unit box ``[0, 1]^dim`` so that singular values of
the element Jacobian are physical edge lengths.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from laggeo.errors import ConfigurationError


def q4_shape(xi: float, eta: float):
    # N1..N4 (counter-clockwise)
    N = np.array(
        [(1 - xi) * (1 - eta),
         xi * (1 - eta),
         xi * eta,
         (1 - xi) * eta],
        dtype=float,
    )
    dN = np.array(
        [[-(1 - eta), -(1 - xi)],
         [(1 - eta), -xi],
         [eta, xi],
         [-eta, (1 - xi)]],
        dtype=float,
    )
    return N, dN


def hex8_shape(xi: float, eta: float, zeta: float):
    # bottom face (zeta=0) counter-clockwise, then top face
    corners = np.array(
        [[0, 0, 0], [1, 0, 0], [1, 1, 0], [0, 1, 0],
         [0, 0, 1], [1, 0, 1], [1, 1, 1], [0, 1, 1]],
        dtype=float,
    )
    p = np.array([xi, eta, zeta], dtype=float)
    # 1D factors: c*p + (1-c)*(1-p), derivative 2c-1
    f = corners * p + (1.0 - corners) * (1.0 - p)
    df = 2.0 * corners - 1.0
    N = f[:, 0] * f[:, 1] * f[:, 2]
    dN = np.empty((8, 3), dtype=float)
    dN[:, 0] = df[:, 0] * f[:, 1] * f[:, 2]
    dN[:, 1] = f[:, 0] * df[:, 1] * f[:, 2]
    dN[:, 2] = f[:, 0] * f[:, 1] * df[:, 2]
    return N, dN


def gauss_1d(n: int):
    """Gauss-Legendre points and weights mapped to [0, 1]."""
    x, w = np.polynomial.legendre.leggauss(int(n))
    return 0.5 * (x + 1.0), 0.5 * w


@dataclass(frozen=True)
class ReferenceElement:
    """Tabulated shape data of the Q1 element for one quadrature rule.

    Attributes
    ----------
    dim : int
    q1d : int
        Gauss points per direction.
    points : (nq, dim)
    weights : (nq,)
    N : (nq, nen)
        Shape values at the points.
    dN : (nq, nen, dim)
        Reference gradients at the points.
    """

    dim: int
    q1d: int
    points: np.ndarray
    weights: np.ndarray
    N: np.ndarray
    dN: np.ndarray

    @property
    def nq(self) -> int:
        return int(self.weights.shape[0])


def reference_element(dim: int, q1d: int) -> ReferenceElement:
    if dim not in (2, 3):
        raise ConfigurationError(f"Unsupported dimension dim={dim}")
    if q1d not in (1, 2, 3):
        raise ConfigurationError(f"Unsupported quadrature points per direction: {q1d}")

    x1, w1 = gauss_1d(q1d)
    pts, wts, Ns, dNs = [], [], [], []
    if dim == 2:
        # x runs fastest
        for j in range(q1d):
            for i in range(q1d):
                N, dN = q4_shape(x1[i], x1[j])
                pts.append((x1[i], x1[j]))
                wts.append(w1[i] * w1[j])
                Ns.append(N)
                dNs.append(dN)
    else:
        for k in range(q1d):
            for j in range(q1d):
                for i in range(q1d):
                    N, dN = hex8_shape(x1[i], x1[j], x1[k])
                    pts.append((x1[i], x1[j], x1[k]))
                    wts.append(w1[i] * w1[j] * w1[k])
                    Ns.append(N)
                    dNs.append(dN)

    return ReferenceElement(
        dim=dim,
        q1d=q1d,
        points=np.array(pts, dtype=float),
        weights=np.array(wts, dtype=float),
        N=np.ascontiguousarray(np.array(Ns, dtype=float)),
        dN=np.ascontiguousarray(np.array(dNs, dtype=float)),
    )
