"""SE(3) pose representation for rigid body transformations."""

from __future__ import annotations

from dataclasses import dataclass

import cv2
import numpy as np


@dataclass
class SE3:
    """Rigid body transformation (rotation + translation) in SE(3).

    Frames follow the ``a_T_b`` naming convention: a transform ``a_T_b`` maps
    points expressed in frame ``b`` into frame ``a``:

        p_a = R @ p_b + t

    Attributes:
        rotation: 3x3 orthonormal rotation matrix (det = +1)
        translation: 3D translation vector
    """

    rotation: np.ndarray  # 3x3 rotation matrix
    translation: np.ndarray  # (3,) translation vector

    def __post_init__(self) -> None:
        """Validate and normalize inputs."""
        self.rotation = np.asarray(self.rotation, dtype=np.float64)
        self.translation = np.asarray(self.translation, dtype=np.float64).flatten()

        if self.rotation.shape != (3, 3):
            raise ValueError(f"Rotation must be 3x3, got {self.rotation.shape}")
        if self.translation.shape != (3,):
            raise ValueError(
                f"Translation must be (3,), got {self.translation.shape}"
            )

    @classmethod
    def identity(cls) -> SE3:
        """Create identity transformation (no rotation, no translation)."""
        return cls(rotation=np.eye(3), translation=np.zeros(3))

    @classmethod
    def from_matrix(cls, T: np.ndarray) -> SE3:
        """Create SE3 from 4x4 homogeneous transformation matrix.

        Args:
            T: 4x4 transformation matrix of the form:
               [[R  t]
                [0  1]]

        Returns:
            SE3 transformation
        """
        T = np.asarray(T)
        if T.shape != (4, 4):
            raise ValueError(f"Transform must be 4x4, got {T.shape}")

        return cls(rotation=T[:3, :3], translation=T[:3, 3])

    @classmethod
    def from_rvec_tvec(cls, rvec: np.ndarray, tvec: np.ndarray) -> SE3:
        """Create SE3 from a Rodrigues vector (axis * angle) and translation."""
        R, _ = cv2.Rodrigues(np.asarray(rvec, dtype=np.float64).reshape(3, 1))
        return cls(rotation=R, translation=np.asarray(tvec).flatten())

    @classmethod
    def from_quaternion(
        cls,
        quaternion: np.ndarray,
        translation: np.ndarray,
    ) -> SE3:
        """Create SE3 from a quaternion and translation.

        Uses the Hamilton convention where the quaternion is ordered
        (w, x, y, z). The quaternion is normalized before conversion.

        Args:
            quaternion: Quaternion (w, x, y, z)
            translation: 3D translation vector

        Returns:
            SE3 transformation
        """
        q = np.asarray(quaternion, dtype=np.float64).flatten()
        if q.shape != (4,):
            raise ValueError(f"Quaternion must be (4,), got {q.shape}")

        norm = np.linalg.norm(q)
        if norm == 0.0:
            raise ValueError("Quaternion must have non-zero norm")
        qw, qx, qy, qz = q / norm

        R = np.array(
            [
                [
                    1 - 2 * qy * qy - 2 * qz * qz,
                    2 * qx * qy - 2 * qz * qw,
                    2 * qx * qz + 2 * qy * qw,
                ],
                [
                    2 * qx * qy + 2 * qz * qw,
                    1 - 2 * qx * qx - 2 * qz * qz,
                    2 * qy * qz - 2 * qx * qw,
                ],
                [
                    2 * qx * qz - 2 * qy * qw,
                    2 * qy * qz + 2 * qx * qw,
                    1 - 2 * qx * qx - 2 * qy * qy,
                ],
            ],
            dtype=np.float64,
        )

        return cls(rotation=R, translation=np.asarray(translation).flatten())

    def to_matrix(self) -> np.ndarray:
        """Convert to 4x4 homogeneous transformation matrix."""
        T = np.eye(4, dtype=np.float64)
        T[:3, :3] = self.rotation
        T[:3, 3] = self.translation
        return T

    def to_rvec_tvec(self) -> tuple[np.ndarray, np.ndarray]:
        """Convert to Rodrigues vector and translation."""
        rvec, _ = cv2.Rodrigues(self.rotation)
        return rvec.flatten(), self.translation.copy()

    def to_quaternion(self) -> np.ndarray:
        """Convert the rotation to a unit quaternion (w, x, y, z).

        The sign is chosen so that w >= 0.

        Returns:
            (4,) quaternion array
        """
        R = self.rotation
        trace = np.trace(R)

        # Shepperd's method: branch on the largest diagonal term for stability
        if trace > 0.0:
            s = 2.0 * np.sqrt(trace + 1.0)
            q = np.array(
                [
                    0.25 * s,
                    (R[2, 1] - R[1, 2]) / s,
                    (R[0, 2] - R[2, 0]) / s,
                    (R[1, 0] - R[0, 1]) / s,
                ]
            )
        elif R[0, 0] > R[1, 1] and R[0, 0] > R[2, 2]:
            s = 2.0 * np.sqrt(1.0 + R[0, 0] - R[1, 1] - R[2, 2])
            q = np.array(
                [
                    (R[2, 1] - R[1, 2]) / s,
                    0.25 * s,
                    (R[0, 1] + R[1, 0]) / s,
                    (R[0, 2] + R[2, 0]) / s,
                ]
            )
        elif R[1, 1] > R[2, 2]:
            s = 2.0 * np.sqrt(1.0 + R[1, 1] - R[0, 0] - R[2, 2])
            q = np.array(
                [
                    (R[0, 2] - R[2, 0]) / s,
                    (R[0, 1] + R[1, 0]) / s,
                    0.25 * s,
                    (R[1, 2] + R[2, 1]) / s,
                ]
            )
        else:
            s = 2.0 * np.sqrt(1.0 + R[2, 2] - R[0, 0] - R[1, 1])
            q = np.array(
                [
                    (R[1, 0] - R[0, 1]) / s,
                    (R[0, 2] + R[2, 0]) / s,
                    (R[1, 2] + R[2, 1]) / s,
                    0.25 * s,
                ]
            )

        q = q / np.linalg.norm(q)
        if q[0] < 0.0:
            q = -q
        return q

    def rotation_angle(self) -> float:
        """Return the magnitude of the rotation in radians."""
        rvec, _ = self.to_rvec_tvec()
        return float(np.linalg.norm(rvec))

    def inverse(self) -> SE3:
        """Compute the inverse transformation T^{-1}.

        For T = [R, t], the inverse is [R^T, -R^T @ t].
        """
        R_inv = self.rotation.T
        t_inv = -R_inv @ self.translation
        return SE3(rotation=R_inv, translation=t_inv)

    def compose(self, other: SE3) -> SE3:
        """Compose with another transformation: self @ other.

        Example:
            world_T_body.compose(body_T_sensor) gives world_T_sensor

        Args:
            other: SE3 transformation to compose with

        Returns:
            Composed SE3 transformation (self @ other)
        """
        R = self.rotation @ other.rotation
        t = self.rotation @ other.translation + self.translation
        return SE3(rotation=R, translation=t)

    def transform_points(self, points: np.ndarray) -> np.ndarray:
        """Apply the transformation to an Nx3 array of points."""
        points = np.asarray(points, dtype=np.float64)
        if points.ndim == 1:
            points = points.reshape(1, 3)

        if points.shape[1] != 3:
            raise ValueError(f"Points must be Nx3, got {points.shape}")

        return (self.rotation @ points.T).T + self.translation

    def is_close(self, other: SE3, rtol: float = 1e-9, atol: float = 1e-9) -> bool:
        """Check whether two transforms are equal within tolerance."""
        return bool(
            np.allclose(self.rotation, other.rotation, rtol=rtol, atol=atol)
            and np.allclose(self.translation, other.translation, rtol=rtol, atol=atol)
        )

    def __repr__(self) -> str:
        """Return string representation."""
        t = self.translation
        q = self.to_quaternion()
        return (
            f"SE3(t=[{t[0]:.3f}, {t[1]:.3f}, {t[2]:.3f}], "
            f"q=[{q[0]:.3f}, {q[1]:.3f}, {q[2]:.3f}, {q[3]:.3f}])"
        )

    def __matmul__(self, other: SE3) -> SE3:
        """Matrix multiplication operator for composition: T1 @ T2."""
        return self.compose(other)
