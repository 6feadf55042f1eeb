"""
Element-local residual of a vertex-centered finite-volume (box) scheme.
"""

import typing
from abc import ABC, abstractmethod

import numpy as np

from ncpflow._precision import get_dtype
from ncpflow.indices import ModelIndices
from ncpflow.types import ElementContextLike, EqVector, RateVector

__all__ = ["BoxLocalResidual"]


class BoxLocalResidual(ABC):
    r"""
    Assembles the residual of all sub-control volumes of one element from
    model-specific storage, flux and source terms.

    The storage term is discretized in time with the implicit Euler method:

    .. math::
        R_i = \frac{(S_i^{n+1} - S_i^{n}) |V_i|}{\Delta t}
            + \sum_{f} F_f - |V_i| q_i

    Fluxes over a face are added to the inside and subtracted from the
    outside sub-control volume so that conservation holds at the face.
    """

    def __init__(self, indices: ModelIndices) -> None:
        self.indices = indices

    @abstractmethod
    def compute_storage(
        self, element_context: ElementContextLike, scv_idx: int, time_idx: int
    ) -> EqVector:
        """
        Amount of each conserved quantity per unit volume of a sub-control volume.
        """
        raise NotImplementedError

    @abstractmethod
    def compute_flux(
        self, element_context: ElementContextLike, face_idx: int, time_idx: int
    ) -> RateVector:
        """Total flux of each conserved quantity over a sub-control volume face."""
        raise NotImplementedError

    @abstractmethod
    def compute_source(
        self, element_context: ElementContextLike, scv_idx: int, time_idx: int
    ) -> RateVector:
        """Source of each conserved quantity per unit volume of a sub-control volume."""
        raise NotImplementedError

    def eval(
        self, element_context: ElementContextLike
    ) -> typing.Tuple[np.typing.NDArray, np.typing.NDArray]:
        """
        Evaluate the local residual of an element.

        :param element_context: Element to evaluate.
        :return: A tuple (residual, storage_term), both shaped (num_scv, num_eq).
            The storage term is the volume-scaled time derivative of the storage.
        """
        num_scv = element_context.num_scv()
        dtype = get_dtype()
        residual = np.zeros((num_scv, self.indices.num_eq), dtype=dtype)
        storage_term = np.zeros((num_scv, self.indices.num_eq), dtype=dtype)

        self._eval_storage(element_context, storage_term)
        residual += storage_term
        self._eval_fluxes(element_context, residual)
        self._eval_volume_sources(element_context, residual)
        self._eval_boundary(element_context, residual)
        return residual, storage_term

    def _scv_volume(
        self, element_context: ElementContextLike, scv_idx: int, time_idx: int
    ) -> float:
        scv = element_context.fv_elem_geom(time_idx).sub_control_volumes[scv_idx]
        return scv.volume * element_context.vol_vars(scv_idx, time_idx).extrusion_factor

    def _eval_storage(
        self, element_context: ElementContextLike, storage_term: np.typing.NDArray
    ) -> None:
        dt = element_context.time_step_size()
        for scv_idx in range(element_context.num_scv()):
            current = self.compute_storage(element_context, scv_idx, 0)
            current = current * self._scv_volume(element_context, scv_idx, 0)
            previous = self.compute_storage(element_context, scv_idx, 1)
            previous = previous * self._scv_volume(element_context, scv_idx, 1)
            storage_term[scv_idx] = (current - previous) / dt

    def _eval_fluxes(
        self, element_context: ElementContextLike, residual: np.typing.NDArray
    ) -> None:
        for face_idx in range(element_context.num_faces()):
            flux_vars = element_context.flux_vars(face_idx, 0)
            inside, outside = flux_vars.inside_idx, flux_vars.outside_idx
            flux = self.compute_flux(element_context, face_idx, 0)
            extrusion_factor = 0.5 * (
                element_context.vol_vars(inside, 0).extrusion_factor
                + element_context.vol_vars(outside, 0).extrusion_factor
            )
            flux = flux * extrusion_factor
            residual[inside] += flux
            residual[outside] -= flux

    def _eval_volume_sources(
        self, element_context: ElementContextLike, residual: np.typing.NDArray
    ) -> None:
        for scv_idx in range(element_context.num_scv()):
            source = self.compute_source(element_context, scv_idx, 0)
            residual[scv_idx] -= source * self._scv_volume(element_context, scv_idx, 0)

    def _eval_boundary(
        self, element_context: ElementContextLike, residual: np.typing.NDArray
    ) -> None:
        problem = element_context.problem()
        geometry = element_context.fv_elem_geom(0)
        for boundary_face_idx in range(geometry.num_boundary_faces):
            scv_idx = element_context.boundary_face_scv(boundary_face_idx)
            flux = problem.neumann(element_context, boundary_face_idx, 0)
            residual[scv_idx] += (
                flux * element_context.vol_vars(scv_idx, 0).extrusion_factor
            )

        for scv_idx in range(element_context.num_scv()):
            constraints = problem.dirichlet(element_context, scv_idx)
            if not constraints:
                continue
            primary_vars = element_context.primary_vars(scv_idx, 0)
            for eq_idx, value in constraints.items():
                residual[scv_idx, eq_idx] = primary_vars[eq_idx] - value
