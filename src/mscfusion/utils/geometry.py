"""3D geometry utilities: rotations, rigid/similarity transforms, boxes."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import numpy as np

logger = logging.getLogger(__name__)


def qvec2rotmat(qvec: list[float] | np.ndarray) -> np.ndarray:
    """Convert quaternion (w, x, y, z) to 3x3 rotation matrix."""
    w, x, y, z = np.asarray(qvec, dtype=np.float64) / np.linalg.norm(qvec)
    return np.array([
        [1 - 2*y*y - 2*z*z, 2*x*y - 2*w*z, 2*x*z + 2*w*y],
        [2*x*y + 2*w*z, 1 - 2*x*x - 2*z*z, 2*y*z - 2*w*x],
        [2*x*z - 2*w*y, 2*y*z + 2*w*x, 1 - 2*x*x - 2*y*y],
    ])


def make_w2c(qvec: list[float], tvec: list[float]) -> np.ndarray:
    """Build 4x4 world-to-camera matrix from COLMAP quaternion + translation."""
    w2c = np.eye(4)
    w2c[:3, :3] = qvec2rotmat(qvec)
    w2c[:3, 3] = tvec
    return w2c


def is_rigid(matrix: np.ndarray, atol: float = 1e-5) -> bool:
    """True if ``matrix`` is a 4x4 rotation + translation."""
    m = np.asarray(matrix, dtype=np.float64)
    if m.shape != (4, 4):
        return False
    r = m[:3, :3]
    return (
        np.allclose(m[3], [0.0, 0.0, 0.0, 1.0], atol=atol)
        and np.allclose(r @ r.T, np.eye(3), atol=atol)
        and np.linalg.det(r) > 0
    )


def invert_rigid(matrix: np.ndarray) -> np.ndarray:
    """Inverse of a 4x4 rigid transform without a general matrix inverse."""
    m = np.asarray(matrix, dtype=np.float64)
    inv = np.eye(4)
    inv[:3, :3] = m[:3, :3].T
    inv[:3, 3] = -m[:3, :3].T @ m[:3, 3]
    return inv


def look_at(eye, target, up=(0.0, -1.0, 0.0)) -> np.ndarray:
    """World-from-camera pose for a +z-forward, +y-down camera at ``eye``."""
    eye = np.asarray(eye, dtype=np.float64)
    forward = np.asarray(target, dtype=np.float64) - eye
    forward /= np.linalg.norm(forward)
    right = np.cross(forward, np.asarray(up, dtype=np.float64))
    norm = np.linalg.norm(right)
    if norm < 1e-12:
        raise ValueError("look_at: up vector is parallel to the viewing direction")
    right /= norm
    down = np.cross(forward, right)
    pose = np.eye(4)
    pose[:3, 0] = right
    pose[:3, 1] = down
    pose[:3, 2] = forward
    pose[:3, 3] = eye
    return pose


def transform_points(matrix: np.ndarray, points: np.ndarray) -> np.ndarray:
    """Apply a 4x4 affine transform to (N, 3) points."""
    m = np.asarray(matrix, dtype=np.float64)
    return points @ m[:3, :3].T + m[:3, 3]


def transform_normals(matrix: np.ndarray, normals: np.ndarray) -> np.ndarray:
    """Apply the inverse transpose of the linear part of ``matrix`` to (N, 3) normals.

    Results are renormalised; zero normals stay zero.
    """
    linear = np.asarray(matrix, dtype=np.float64)[:3, :3]
    normal_matrix = np.linalg.inv(linear).T
    out = normals @ normal_matrix.T
    norms = np.linalg.norm(out, axis=-1, keepdims=True)
    return np.divide(out, norms, out=np.zeros_like(out), where=norms > 1e-12)


@dataclass(frozen=True, eq=False)
class SimilarityTransform:
    """Uniform scale, rotation and translation: ``x' = s * R @ x + t``."""

    scale: float = 1.0
    rotation: np.ndarray = field(default_factory=lambda: np.eye(3))
    translation: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self) -> None:
        if not self.scale > 0:
            raise ValueError(f"Similarity scale must be positive, got {self.scale}")
        rotation = np.array(self.rotation, dtype=np.float64).reshape(3, 3)
        if not np.allclose(rotation @ rotation.T, np.eye(3), atol=1e-5):
            raise ValueError("Similarity rotation is not orthonormal")
        translation = np.array(self.translation, dtype=np.float64).reshape(3)
        rotation.flags.writeable = False
        translation.flags.writeable = False
        object.__setattr__(self, "scale", float(self.scale))
        object.__setattr__(self, "rotation", rotation)
        object.__setattr__(self, "translation", translation)

    @classmethod
    def from_voxel_grid(cls, voxel_size: float, origin) -> "SimilarityTransform":
        """Axis-aligned grid whose corner (0, 0, 0) sits at world ``origin``."""
        return cls(scale=voxel_size, translation=np.asarray(origin, dtype=np.float64))

    def as_matrix(self) -> np.ndarray:
        m = np.eye(4)
        m[:3, :3] = self.scale * self.rotation
        m[:3, 3] = self.translation
        return m

    def inverse(self) -> "SimilarityTransform":
        inv_rot = self.rotation.T
        return SimilarityTransform(
            scale=1.0 / self.scale,
            rotation=inv_rot,
            translation=-(inv_rot @ self.translation) / self.scale,
        )

    def transform_points(self, points: np.ndarray) -> np.ndarray:
        return self.scale * (points @ self.rotation.T) + self.translation

    def transform_vectors(self, vectors: np.ndarray) -> np.ndarray:
        return self.scale * (vectors @ self.rotation.T)


@dataclass(frozen=True, eq=False)
class Box3:
    """Axis-aligned box ``[minimum, maximum]``."""

    minimum: np.ndarray
    maximum: np.ndarray

    @property
    def size(self) -> np.ndarray:
        return self.maximum - self.minimum

    @property
    def center(self) -> np.ndarray:
        return 0.5 * (self.minimum + self.maximum)

    def contains(self, points: np.ndarray) -> np.ndarray:
        return np.all((points >= self.minimum) & (points <= self.maximum), axis=-1)

    def corners(self) -> np.ndarray:
        """The eight corners, (8, 3)."""
        idx = np.array([[i, j, k] for i in (0, 1) for j in (0, 1) for k in (0, 1)])
        return np.where(idx == 0, self.minimum, self.maximum)


def intersect_rays_box(
    origins: np.ndarray, directions: np.ndarray, box: Box3
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Slab test for (N, 3) rays against ``box``.

    Returns (t_near, t_far, hit). ``t_near`` is clamped to 0 so rays
    starting inside the box begin at their origin.
    """
    with np.errstate(divide="ignore", invalid="ignore"):
        inv_dir = 1.0 / directions
        t0 = (box.minimum - origins) * inv_dir
        t1 = (box.maximum - origins) * inv_dir
    t_lo = np.where(np.isnan(t0), -np.inf, np.minimum(t0, t1))
    t_hi = np.where(np.isnan(t1), np.inf, np.maximum(t0, t1))
    # Parallel rays outside a slab never enter it
    parallel = directions == 0
    inside = (origins >= box.minimum) & (origins <= box.maximum)
    t_lo = np.where(parallel, np.where(inside, -np.inf, np.inf), t_lo)
    t_hi = np.where(parallel, np.where(inside, np.inf, -np.inf), t_hi)

    t_near = np.maximum(t_lo.max(axis=-1), 0.0)
    t_far = t_hi.min(axis=-1)
    return t_near, t_far, t_far > t_near
